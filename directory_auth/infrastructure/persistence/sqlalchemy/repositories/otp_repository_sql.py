import logging
from typing import Callable, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .....db.models import OTPRecord
from .....application.ports.otp_repo import (
    OTPError, OTPRecordDto, OTPRepository, OTPVerification,
)
from .....exceptions import TransientStoreError
from .....utils import current_timestamp, generate_otp

logger = logging.getLogger(__name__)

OTP_EXPIRY_SECONDS = 10 * 60
MAX_OTP_ATTEMPTS = 5


class SqlOTPRepository(OTPRepository):
    """OTP records keyed by (phone_number, created_at).

    Only the most recent record for a phone and purpose is operative: a newer
    code supersedes older ones without rewriting them.
    """

    def __init__(self, session: Session, ttl_seconds: int = OTP_EXPIRY_SECONDS,
                 max_attempts: int = MAX_OTP_ATTEMPTS,
                 clock: Callable[[], int] = current_timestamp,
                 code_factory: Callable[[], str] = generate_otp):
        self.session = session
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts
        self.clock = clock
        self.code_factory = code_factory

    def _to_dto(self, rec: OTPRecord) -> OTPRecordDto:
        return OTPRecordDto(
            phone_number=rec.phone_number,
            created_at=rec.created_at,
            otp_code=rec.otp_code,
            purpose=rec.purpose,
            verified=bool(rec.verified),
            expires_at=rec.expires_at,
            attempts=rec.attempts,
        )

    def create_otp(self, phone_number: str, purpose: str = "registration",
                   ttl_seconds: Optional[int] = None) -> OTPRecordDto:
        now = self.clock()
        rec = OTPRecord(
            phone_number=phone_number,
            created_at=now,
            otp_code=self.code_factory(),
            purpose=purpose,
            verified=False,
            expires_at=now + (ttl_seconds or self.ttl_seconds),
            attempts=0,
        )
        try:
            self.session.add(rec)
            self.session.commit()
            self.session.refresh(rec)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise TransientStoreError(f"OTP insert failed: {e}") from e
        return self._to_dto(rec)

    def _latest(self, phone_number: str, purpose: str) -> Optional[OTPRecord]:
        statement = (
            select(OTPRecord)
            .where(OTPRecord.phone_number == phone_number, OTPRecord.purpose == purpose)
            .order_by(OTPRecord.created_at.desc(), OTPRecord.id.desc())
            .limit(1)
        )
        return self.session.exec(statement).first()

    def verify_otp(self, phone_number: str, otp_code: str, purpose: str = "registration") -> OTPVerification:
        now = self.clock()
        try:
            rec = self._latest(phone_number, purpose)
            if rec is None:
                return OTPVerification(success=False, error=OTPError.NOT_FOUND)
            if rec.expires_at < now:
                return OTPVerification(success=False, error=OTPError.EXPIRED)
            if rec.attempts >= self.max_attempts:
                return OTPVerification(success=False, error=OTPError.ATTEMPTS_EXCEEDED)

            # The row read above may already be stale; both writes below
            # re-check the cap in SQL and report the cap when they lose
            under_cap = (OTPRecord.id == rec.id, OTPRecord.attempts < self.max_attempts)
            if rec.otp_code != otp_code:
                result = self.session.exec(
                    update(OTPRecord)
                    .where(*under_cap)
                    .values(attempts=OTPRecord.attempts + 1)
                )
                self.session.commit()
                if result.rowcount == 0:
                    return OTPVerification(success=False, error=OTPError.ATTEMPTS_EXCEEDED)
                return OTPVerification(success=False, error=OTPError.MISMATCH)

            if not rec.verified:
                result = self.session.exec(
                    update(OTPRecord)
                    .where(*under_cap)
                    .values(verified=True)
                )
                self.session.commit()
                if result.rowcount == 0:
                    return OTPVerification(success=False, error=OTPError.ATTEMPTS_EXCEEDED)
            fresh = self.session.get(OTPRecord, rec.id)
            return OTPVerification(success=True, record=self._to_dto(fresh))
        except SQLAlchemyError as e:
            self.session.rollback()
            raise TransientStoreError(f"OTP verification failed: {e}") from e

    def find_recent_verified(self, phone_number: str, since: int,
                             purpose: str = "registration") -> Optional[OTPRecordDto]:
        statement = (
            select(OTPRecord)
            .where(
                OTPRecord.phone_number == phone_number,
                OTPRecord.created_at >= since,
                OTPRecord.purpose == purpose,
                OTPRecord.verified == True,  # noqa: E712
            )
            .order_by(OTPRecord.created_at.desc(), OTPRecord.id.desc())
            .limit(1)
        )
        try:
            rec = self.session.exec(statement).first()
        except SQLAlchemyError as e:
            raise TransientStoreError(f"OTP lookup failed: {e}") from e
        return self._to_dto(rec) if rec else None

    def delete_otp(self, phone_number: str, created_at: int) -> None:
        try:
            self.session.exec(
                delete(OTPRecord).where(
                    OTPRecord.phone_number == phone_number,
                    OTPRecord.created_at == created_at,
                )
            )
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise TransientStoreError(f"OTP delete failed: {e}") from e

    def purge_expired(self, now: Optional[int] = None) -> int:
        """Reap expired records, the job a store-level TTL would do."""
        cutoff = self.clock() if now is None else now
        try:
            result = self.session.exec(delete(OTPRecord).where(OTPRecord.expires_at < cutoff))
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise TransientStoreError(f"OTP purge failed: {e}") from e
        logger.info(f"Purged {result.rowcount} expired OTP records")
        return result.rowcount
