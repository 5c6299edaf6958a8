import logging
from typing import Callable, List, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .....db.models import UserSession
from .....application.ports.session_repo import (
    IssuedSession, Principal, SessionDto, SessionError, SessionRepository, SessionValidation,
)
from .....exceptions import TransientStoreError
from .....utils import current_timestamp, generate_session_id

logger = logging.getLogger(__name__)

SESSION_SHORT_SECONDS = 24 * 3600
SESSION_LONG_SECONDS = 30 * 24 * 3600


class SqlSessionRepository(SessionRepository):
    def __init__(self, session: Session, short_seconds: int = SESSION_SHORT_SECONDS,
                 long_seconds: int = SESSION_LONG_SECONDS,
                 clock: Callable[[], int] = current_timestamp):
        self.session = session
        self.short_seconds = short_seconds
        self.long_seconds = long_seconds
        self.clock = clock

    def _to_dto(self, rec: UserSession) -> SessionDto:
        return SessionDto(
            session_id=rec.session_id,
            user_id=rec.user_id,
            username=rec.username,
            role=rec.role,
            ip_address=rec.ip_address,
            user_agent=rec.user_agent,
            remember_me=bool(rec.remember_me),
            created_at=rec.created_at,
            last_activity_at=rec.last_activity_at,
            expires_at=rec.expires_at,
            is_active=bool(rec.is_active),
        )

    def create_session(self, principal: Principal, ip_address: Optional[str],
                       user_agent: Optional[str], remember_me: bool = False) -> IssuedSession:
        now = self.clock()
        expires_at = now + (self.long_seconds if remember_me else self.short_seconds)
        session_id = generate_session_id()
        rec = UserSession(
            session_id=session_id,
            user_id=principal.user_id,
            username=principal.username,
            role=principal.role,
            ip_address=ip_address,
            user_agent=user_agent,
            remember_me=bool(remember_me),
            created_at=now,
            last_activity_at=now,
            expires_at=expires_at,
            is_active=True,
        )
        try:
            self.session.add(rec)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise TransientStoreError(f"session insert failed: {e}") from e
        return IssuedSession(session_id=session_id, expires_at=expires_at)

    def get_session(self, session_id: str) -> Optional[SessionDto]:
        try:
            rec = self.session.get(UserSession, session_id)
        except SQLAlchemyError as e:
            raise TransientStoreError(f"session lookup failed: {e}") from e
        return self._to_dto(rec) if rec else None

    def validate_session(self, session_id: str) -> SessionValidation:
        session = self.get_session(session_id)
        if session is None:
            return SessionValidation(valid=False, error=SessionError.NOT_FOUND)
        if not session.is_active:
            return SessionValidation(valid=False, error=SessionError.INVALIDATED)
        if session.expires_at < self.clock():
            return SessionValidation(valid=False, error=SessionError.EXPIRED)
        return SessionValidation(valid=True, session=session)

    def update_session_activity(self, session_id: str) -> None:
        # expires_at is fixed at issue time; activity never extends it
        self._update(session_id, last_activity_at=self.clock())

    def invalidate_session(self, session_id: str) -> None:
        self._update(session_id, is_active=False)

    def get_user_sessions(self, user_id: str) -> List[SessionDto]:
        statement = (
            select(UserSession)
            .where(UserSession.user_id == user_id, UserSession.is_active == True)  # noqa: E712
            .order_by(UserSession.created_at.desc())
        )
        try:
            return [self._to_dto(rec) for rec in self.session.exec(statement).all()]
        except SQLAlchemyError as e:
            raise TransientStoreError(f"session listing failed: {e}") from e

    def purge_expired(self, now: Optional[int] = None) -> int:
        cutoff = self.clock() if now is None else now
        try:
            result = self.session.exec(delete(UserSession).where(UserSession.expires_at < cutoff))
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise TransientStoreError(f"session purge failed: {e}") from e
        logger.info(f"Purged {result.rowcount} expired sessions")
        return result.rowcount

    def _update(self, session_id: str, **values) -> None:
        # Unknown ids update zero rows, which is not an error
        try:
            self.session.exec(update(UserSession).where(UserSession.session_id == session_id).values(**values))
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise TransientStoreError(f"session update failed: {e}") from e
