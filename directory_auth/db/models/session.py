# directory_auth/db/models/session.py
from typing import Optional
from sqlmodel import SQLModel, Field


class UserSession(SQLModel, table=True):
    __tablename__ = "sessions"
    session_id: str = Field(max_length=64, primary_key=True)
    user_id: str = Field(max_length=36, index=True)
    username: str = Field(max_length=20)
    role: str = Field(max_length=20)
    ip_address: Optional[str] = Field(default=None, max_length=45)
    user_agent: Optional[str] = Field(default=None)
    remember_me: bool = Field(default=False)
    created_at: int
    last_activity_at: int
    expires_at: int = Field(index=True)
    is_active: bool = Field(default=True)
