import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

from ..policy import AuthPolicy
from ..ports.attempt_tracker import AttemptTracker
from ..ports.audit_logger import AuditLogger
from ..ports.otp_repo import OTPError, OTPRepository, OTPVerification
from ..ports.session_repo import IssuedSession, Principal, SessionDto, SessionError, SessionRepository
from ..ports.sms_sender import SmsSender
from ..ports.user_repo import AccountStatus, NewUser, UserDto, UserRepository
from ...exceptions import (
    AuthError, AuthenticationError, AuthorizationError, ConflictError, InternalError, LockedError,
    NotFoundError, TransientStoreError, ValidationError,
)
from ...utils import (
    MIN_PASSWORD_LENGTH, current_timestamp, dummy_password_hash, hash_password, is_valid_username,
    mask_phone_number, normalize_phone_number, normalize_username, verify_password,
)

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 8
USERNAME_FORMAT_MESSAGE = "Username must be 3-20 characters, alphanumeric and underscore only"

OTP_ERROR_MESSAGES = {
    OTPError.NOT_FOUND: "No active OTP found",
    OTPError.EXPIRED: "OTP has expired",
    OTPError.ATTEMPTS_EXCEEDED: "Too many incorrect attempts. Please request a new OTP",
    OTPError.MISMATCH: "Invalid OTP code",
}

SESSION_ERROR_MESSAGES = {
    SessionError.NOT_FOUND: "Session not found",
    SessionError.INVALIDATED: "Session is inactive",
    SessionError.EXPIRED: "Session has expired",
}


@dataclass
class ClientInfo:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None


@dataclass
class RegistrationProfile:
    first_name: Optional[str]
    last_name: Optional[str]
    username: Optional[str]
    phone_number: Optional[str]
    password: Optional[str]
    role: Optional[str]
    avatar: Optional[str]


@dataclass
class OTPDispatch:
    message: str
    expires_at: int
    # Only populated when the policy enables the development echo
    otp: Optional[str] = None


@dataclass
class UsernameAvailability:
    available: bool
    message: str


@dataclass
class AuthResult:
    user: UserDto
    session: IssuedSession


@dataclass
class AuthService:
    """Registration, login, session check and logout workflows.

    Registration is ``send_otp -> verify_otp -> register``. Nothing is held
    between the steps: ``register`` looks up a verified OTP for the phone in
    the store itself instead of trusting that ``verify_otp`` ran.
    """

    user_repo: UserRepository
    otp_repo: OTPRepository
    session_repo: SessionRepository
    sms_sender: SmsSender
    audit: AuditLogger
    attempt_tracker: AttemptTracker
    policy: AuthPolicy = field(default_factory=AuthPolicy)
    clock: Callable[[], int] = current_timestamp

    @contextmanager
    def _store_guard(self, message: str):
        """Turn store outages into a generic InternalError, keeping the cause in the log."""
        try:
            yield
        except TransientStoreError as e:
            logger.exception(f"{message}: {e.message}")
            raise InternalError(message) from e

    def _normalize_phone(self, phone_number) -> Optional[str]:
        return normalize_phone_number(phone_number, self.policy.default_country_code)

    # ------------------------
    # OTP
    # ------------------------
    def send_otp(self, phone_number: Optional[str], client: Optional[ClientInfo] = None) -> OTPDispatch:
        client = client or ClientInfo()
        if not phone_number:
            raise ValidationError("Phone number is required")
        phone = self._normalize_phone(phone_number)
        if not phone:
            raise ValidationError("Invalid phone number format")

        with self._store_guard("Failed to send OTP"):
            phone_status = self.user_repo.phone_number_exists(phone)
            if phone_status.exists and phone_status.verified:
                raise ConflictError("Phone number already registered")
            record = self.otp_repo.create_otp(phone, self.policy.otp_purpose, self.policy.otp_ttl_seconds)

        try:
            self.sms_sender.send_otp(phone, record.otp_code)
        except Exception as e:
            logger.exception(f"OTP delivery failed for {mask_phone_number(phone)}")
            self.audit.log("otp_send_failed", phone, request_id=client.request_id,
                           ip_address=client.ip_address, success=False, details={"error": str(e)})
            raise InternalError("Failed to send OTP") from e

        self.audit.log("otp_sent", phone, request_id=client.request_id, ip_address=client.ip_address)
        return OTPDispatch(
            message="OTP sent successfully",
            expires_at=record.expires_at,
            otp=record.otp_code if self.policy.echo_otp else None,
        )

    def verify_otp(self, phone_number: Optional[str], otp_code: Optional[str]) -> OTPVerification:
        if not phone_number or not otp_code:
            raise ValidationError("Phone number and OTP are required")
        phone = self._normalize_phone(phone_number)
        if not phone:
            raise ValidationError("Invalid phone number format")

        with self._store_guard("Failed to verify OTP"):
            result = self.otp_repo.verify_otp(phone, str(otp_code).strip(), self.policy.otp_purpose)
        if not result.success:
            logger.info(f"OTP verification failed for {mask_phone_number(phone)}: {result.error.value}")
            raise ValidationError(OTP_ERROR_MESSAGES[result.error])
        return result

    # ------------------------
    # Registration
    # ------------------------
    def check_username(self, username: Optional[str]) -> UsernameAvailability:
        if not username:
            raise ValidationError("Username is required")
        normalized = normalize_username(username)
        if not is_valid_username(normalized):
            raise ValidationError(USERNAME_FORMAT_MESSAGE)
        with self._store_guard("Failed to check username"):
            exists = self.user_repo.username_exists(normalized)
        return UsernameAvailability(
            available=not exists,
            message="Username already taken" if exists else "Username available",
        )

    def _check_lockout(self, phone: str) -> None:
        status = self.attempt_tracker.status(phone)
        if status.locked:
            raise self._locked_error(status.retry_after)

    def _locked_error(self, retry_after: int) -> LockedError:
        return LockedError(
            f"Too many failed registration attempts. Please try again in {retry_after} seconds.",
            extra={"retryAfter": retry_after},
            headers={"Retry-After": str(retry_after)},
        )

    def _registration_failure(self, phone: str, error: AuthError) -> None:
        """Count a rejected registration against the phone, then raise."""
        status = self.attempt_tracker.record_failure(phone)
        if status.locked:
            raise self._locked_error(status.retry_after)
        error.extra["remainingAttempts"] = max(0, self.policy.registration_max_attempts - status.attempts)
        raise error

    def register(self, profile: RegistrationProfile, client: Optional[ClientInfo] = None) -> AuthResult:
        client = client or ClientInfo()
        required = (profile.first_name, profile.last_name, profile.username, profile.phone_number,
                    profile.password, profile.role, profile.avatar)
        if not all(required):
            raise ValidationError("All fields are required")

        phone = self._normalize_phone(profile.phone_number)
        if not phone or len(phone.lstrip("+")) < MIN_PHONE_DIGITS:
            raise ValidationError("Invalid phone number format. Phone number must be at least 8 digits.")

        self._check_lockout(phone)

        with self._store_guard("Registration failed"):
            # Checked again here: another registration may have claimed the
            # phone since send_otp
            phone_status = self.user_repo.phone_number_exists(phone)
            if phone_status.exists and phone_status.verified:
                raise ConflictError("Phone number already registered")

            since = self.clock() - self.policy.otp_verified_window_seconds
            verified_otp = self.otp_repo.find_recent_verified(phone, since, self.policy.otp_purpose)
            if verified_otp is None:
                self._registration_failure(phone, ValidationError("Please verify your phone number with OTP first"))

            username = normalize_username(profile.username)
            if not is_valid_username(username):
                self._registration_failure(phone, ValidationError(USERNAME_FORMAT_MESSAGE))
            if self.user_repo.username_exists(username):
                self._registration_failure(phone, ConflictError("Username already taken"))

            if len(profile.password) < MIN_PASSWORD_LENGTH:
                self._registration_failure(
                    phone, ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters"))

            user = self.user_repo.create_user(NewUser(
                first_name=profile.first_name,
                last_name=profile.last_name,
                username=username,
                phone_number=phone,
                password_hash=hash_password(profile.password),
                role=profile.role,
                avatar=profile.avatar,
            ))

        self.attempt_tracker.clear(phone)

        try:
            self.otp_repo.delete_otp(phone, verified_otp.created_at)
        except Exception as e:
            # The TTL reaper gets it eventually
            logger.warning(f"OTP cleanup failed for {mask_phone_number(phone)}: {e}")

        try:
            issued = self._mint_session(user, client, remember_me=False)
        except TransientStoreError as e:
            # The user exists now; the client recovers by logging in
            logger.exception(f"Session creation failed after registering user {user.user_id}")
            self.audit.log("register", phone, user.user_id, client.request_id, client.ip_address,
                           success=False, details={"stage": "session"})
            raise InternalError("Account created but sign-in failed. Please log in.") from e

        self.audit.log("register", phone, user.user_id, client.request_id, client.ip_address)
        logger.info(f"Registered user {user.user_id} ({user.username})")
        return AuthResult(user=user, session=issued)

    # ------------------------
    # Login / sessions
    # ------------------------
    def _mint_session(self, user: UserDto, client: ClientInfo, remember_me: bool) -> IssuedSession:
        principal = Principal(user_id=user.user_id, username=user.username, role=user.role)
        return self.session_repo.create_session(principal, client.ip_address, client.user_agent, remember_me)

    def login(self, username: Optional[str], password: Optional[str], remember_me: bool = False,
              client: Optional[ClientInfo] = None) -> AuthResult:
        client = client or ClientInfo()
        if not username or not password:
            raise ValidationError("Username and password are required")

        normalized = normalize_username(username)
        with self._store_guard("Login failed"):
            user = self.user_repo.get_user_by_username(normalized)

        # Same message and same bcrypt work for unknown user and wrong password
        password_hash = user.password_hash if user else dummy_password_hash()
        if not verify_password(password, password_hash) or user is None:
            self.audit.log("login", user_id=user.user_id if user else None, request_id=client.request_id,
                           ip_address=client.ip_address, success=False, details={"reason": "invalid_credentials"})
            raise AuthenticationError("Invalid credentials")

        if user.account_status != AccountStatus.ACTIVE.value:
            raise AuthorizationError(f"Account is {user.account_status}. Please contact support.")
        if not user.phone_verified:
            raise AuthorizationError("Phone number not verified. Please complete registration.")

        try:
            self.user_repo.update_last_login(user.user_id)
        except Exception as e:
            logger.warning(f"Could not update last login for user {user.user_id}: {e}")

        with self._store_guard("Login failed"):
            issued = self._mint_session(user, client, remember_me=bool(remember_me))

        self.audit.log("login", user.phone_number, user.user_id, client.request_id, client.ip_address)
        return AuthResult(user=user, session=issued)

    def check_session(self, session_id: Optional[str]) -> SessionDto:
        if not session_id:
            raise NotFoundError("Session ID required")
        with self._store_guard("Session validation failed"):
            result = self.session_repo.validate_session(session_id)
        if not result.valid:
            raise NotFoundError(SESSION_ERROR_MESSAGES[result.error])

        session = result.session
        try:
            self.session_repo.update_session_activity(session_id)
            session = replace(session, last_activity_at=self.clock())
        except Exception as e:
            logger.warning(f"Could not refresh activity for session of user {session.user_id}: {e}")
        return session

    def logout(self, session_id: Optional[str], client: Optional[ClientInfo] = None) -> None:
        """Always succeeds; unknown or already invalid sessions are fine."""
        client = client or ClientInfo()
        if not session_id:
            return
        try:
            self.session_repo.invalidate_session(session_id)
        except Exception as e:
            logger.warning(f"Logout could not invalidate session: {e}")
            return
        self.audit.log("logout", request_id=client.request_id, ip_address=client.ip_address)
