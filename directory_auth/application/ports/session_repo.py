from dataclasses import dataclass
from enum import Enum
from typing import List, Protocol, Optional


@dataclass(frozen=True)
class Principal:
    user_id: str
    username: str
    role: str


@dataclass
class SessionDto:
    session_id: str
    user_id: str
    username: str
    role: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    remember_me: bool
    created_at: int
    last_activity_at: int
    expires_at: int
    is_active: bool


@dataclass(frozen=True)
class IssuedSession:
    session_id: str
    expires_at: int


class SessionError(str, Enum):
    NOT_FOUND = "not_found"
    INVALIDATED = "invalidated"
    EXPIRED = "expired"


@dataclass(frozen=True)
class SessionValidation:
    valid: bool
    session: Optional[SessionDto] = None
    error: Optional[SessionError] = None


class SessionRepository(Protocol):
    def create_session(self, principal: Principal, ip_address: Optional[str],
                       user_agent: Optional[str], remember_me: bool = False) -> IssuedSession:
        ...

    def validate_session(self, session_id: str) -> SessionValidation:
        ...

    def update_session_activity(self, session_id: str) -> None:
        ...

    def invalidate_session(self, session_id: str) -> None:
        ...

    def get_user_sessions(self, user_id: str) -> List[SessionDto]:
        ...

    def purge_expired(self, now: Optional[int] = None) -> int:
        ...
