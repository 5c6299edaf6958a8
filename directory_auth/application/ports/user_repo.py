from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Optional


class AccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    PENDING = "pending"
    BANNED = "banned"


@dataclass
class NewUser:
    first_name: str
    last_name: str
    username: str
    phone_number: str
    password_hash: str
    role: str
    avatar: str


@dataclass
class UserDto:
    user_id: str
    first_name: str
    last_name: str
    username: str
    phone_number: str
    password_hash: str
    role: str
    avatar: Optional[str]
    account_status: str
    phone_verified: bool
    last_login_at: Optional[int]
    created_at: int
    updated_at: int


@dataclass(frozen=True)
class PhoneStatus:
    exists: bool
    verified: bool


class UserRepository(Protocol):
    def username_exists(self, username: str) -> bool:
        ...

    def phone_number_exists(self, phone_number: str) -> PhoneStatus:
        ...

    def create_user(self, profile: NewUser) -> UserDto:
        ...

    def get_user_by_username(self, username: str) -> Optional[UserDto]:
        ...

    def get_user_by_id(self, user_id: str) -> Optional[UserDto]:
        ...

    def update_last_login(self, user_id: str) -> None:
        ...

    def set_account_status(self, user_id: str, status: AccountStatus) -> None:
        ...
