import re
import secrets
import time
import uuid
from typing import Optional

from passlib.context import CryptContext

DEFAULT_COUNTRY_CODE = "+91"
USERNAME_PATTERN = re.compile(r"^[a-z0-9_]{3,20}$")
MIN_PASSWORD_LENGTH = 8
DEFAULT_BCRYPT_ROUNDS = 12

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__default_rounds=DEFAULT_BCRYPT_ROUNDS)
_dummy_hash: Optional[str] = None


def configure_password_hashing(rounds: int) -> None:
    """Swap the bcrypt cost factor (tests use a low one)."""
    global pwd_context, _dummy_hash
    pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__default_rounds=rounds)
    _dummy_hash = None


# =========================
# Normalization
# =========================
def normalize_phone_number(phone, default_country_code: str = DEFAULT_COUNTRY_CODE) -> Optional[str]:
    """Best-effort E.164-like normalization.

    Keeps digits and a leading ``+``. A bare 10-digit number gets the default
    country code; anything else is returned stripped but otherwise untouched.
    This is not full E.164 validation.
    """
    if not phone or not isinstance(phone, str):
        return None
    phone = phone.strip()
    digits = re.sub(r"\D", "", phone)
    if not digits:
        return None
    if phone.startswith("+"):
        return "+" + digits
    if len(digits) == 10:
        return default_country_code + digits
    return digits


def normalize_username(username) -> Optional[str]:
    if not username or not isinstance(username, str):
        return None
    return username.strip().lower()


def is_valid_username(username: Optional[str]) -> bool:
    return bool(username) and USERNAME_PATTERN.match(username) is not None


def mask_phone_number(phone: Optional[str]) -> str:
    """Phone number safe for log lines: only the last 4 digits survive."""
    if not phone:
        return "<none>"
    return "*" * max(len(phone) - 4, 0) + phone[-4:]


# =========================
# Passwords
# =========================
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        # Malformed or unknown hash format
        return False


def dummy_password_hash() -> str:
    """A hash of a random secret at the current cost.

    Login checks passwords against it when the username is unknown, so both
    failures spend the same bcrypt time.
    """
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = pwd_context.hash(secrets.token_urlsafe(16))
    return _dummy_hash


# =========================
# Identifiers / codes / time
# =========================
def generate_otp() -> str:
    """Generate a 6-digit OTP, uniform over 100000-999999."""
    return str(100000 + secrets.randbelow(900000))


def generate_user_id() -> str:
    return str(uuid.uuid4())


def generate_session_id() -> str:
    """Opaque, URL-safe, 256 bits of entropy."""
    return secrets.token_urlsafe(32)


def current_timestamp() -> int:
    return int(time.time())
