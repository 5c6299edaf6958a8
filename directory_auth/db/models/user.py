# directory_auth/db/models/user.py
from typing import Optional
from sqlmodel import SQLModel, Field
import uuid


class User(SQLModel, table=True):
    __tablename__ = "users"
    user_id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    username: str = Field(max_length=20, unique=True, index=True)
    phone_number: str = Field(max_length=20, index=True)
    password_hash: str = Field(max_length=255)
    role: str = Field(default="user", max_length=20)
    avatar: Optional[str] = Field(default=None, max_length=255)
    account_status: str = Field(default="active", max_length=20)
    phone_verified: bool = Field(default=False)
    last_login_at: Optional[int] = Field(default=None)
    created_at: int
    updated_at: int


class PhoneClaim(SQLModel, table=True):
    """One row per phone number owned by a verified user."""
    __tablename__ = "phone_claims"
    phone_number: str = Field(max_length=20, primary_key=True)
    user_id: str = Field(foreign_key="users.user_id", index=True)
    created_at: int
