import logging
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from .....db.models import User, PhoneClaim
from .....application.ports.user_repo import (
    AccountStatus, NewUser, PhoneStatus, UserDto, UserRepository,
)
from .....exceptions import ConflictError, TransientStoreError
from .....utils import current_timestamp, generate_user_id

logger = logging.getLogger(__name__)


class SqlUserRepository(UserRepository):
    def __init__(self, session: Session, clock: Callable[[], int] = current_timestamp):
        self.session = session
        self.clock = clock

    def _to_dto(self, user: User) -> UserDto:
        return UserDto(
            user_id=user.user_id,
            first_name=user.first_name,
            last_name=user.last_name,
            username=user.username,
            phone_number=user.phone_number,
            password_hash=user.password_hash,
            role=user.role,
            avatar=user.avatar,
            account_status=user.account_status,
            phone_verified=bool(user.phone_verified),
            last_login_at=user.last_login_at,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )

    def username_exists(self, username: str) -> bool:
        return self.get_user_by_username(username) is not None

    def phone_number_exists(self, phone_number: str) -> PhoneStatus:
        try:
            users = self.session.exec(select(User).where(User.phone_number == phone_number)).all()
        except SQLAlchemyError as e:
            raise TransientStoreError(f"phone lookup failed: {e}") from e
        if not users:
            return PhoneStatus(exists=False, verified=False)
        return PhoneStatus(exists=True, verified=any(u.phone_verified for u in users))

    def create_user(self, profile: NewUser) -> UserDto:
        """Insert the user and its phone claim atomically.

        The unique username column and the phone_claims primary key are the
        preconditions; losing a race surfaces as ConflictError.
        """
        now = self.clock()
        user = User(
            user_id=generate_user_id(),
            first_name=profile.first_name,
            last_name=profile.last_name,
            username=profile.username,
            phone_number=profile.phone_number,
            password_hash=profile.password_hash,
            role=profile.role or "user",
            avatar=profile.avatar,
            account_status=AccountStatus.ACTIVE.value,
            phone_verified=True,
            last_login_at=None,
            created_at=now,
            updated_at=now,
        )
        claim = PhoneClaim(phone_number=profile.phone_number, user_id=user.user_id, created_at=now)
        try:
            self.session.add(user)
            # Flush the user first so the claim's foreign key resolves
            self.session.flush()
            self.session.add(claim)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logger.info(f"User insert rejected by uniqueness constraint: {e.orig}")
            raise ConflictError("Username or phone number already registered") from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise TransientStoreError(f"user insert failed: {e}") from e
        self.session.refresh(user)
        return self._to_dto(user)

    def get_user_by_username(self, username: str) -> Optional[UserDto]:
        try:
            user = self.session.exec(select(User).where(User.username == username)).first()
        except SQLAlchemyError as e:
            raise TransientStoreError(f"username lookup failed: {e}") from e
        return self._to_dto(user) if user else None

    def get_user_by_id(self, user_id: str) -> Optional[UserDto]:
        try:
            user = self.session.get(User, user_id)
        except SQLAlchemyError as e:
            raise TransientStoreError(f"user lookup failed: {e}") from e
        return self._to_dto(user) if user else None

    def update_last_login(self, user_id: str) -> None:
        now = self.clock()
        self._update(user_id, last_login_at=now, updated_at=now)

    def set_account_status(self, user_id: str, status: AccountStatus) -> None:
        self._update(user_id, account_status=AccountStatus(status).value, updated_at=self.clock())

    def _update(self, user_id: str, **values) -> None:
        try:
            self.session.exec(update(User).where(User.user_id == user_id).values(**values))
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise TransientStoreError(f"user update failed: {e}") from e
