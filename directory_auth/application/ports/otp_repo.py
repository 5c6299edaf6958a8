from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Optional


@dataclass
class OTPRecordDto:
    phone_number: str
    created_at: int
    otp_code: str
    purpose: str
    verified: bool
    expires_at: int
    attempts: int


class OTPError(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ATTEMPTS_EXCEEDED = "attempts_exceeded"
    MISMATCH = "mismatch"


@dataclass(frozen=True)
class OTPVerification:
    success: bool
    error: Optional[OTPError] = None
    record: Optional[OTPRecordDto] = None


class OTPRepository(Protocol):
    def create_otp(self, phone_number: str, purpose: str = "registration",
                   ttl_seconds: Optional[int] = None) -> OTPRecordDto:
        ...

    def verify_otp(self, phone_number: str, otp_code: str, purpose: str = "registration") -> OTPVerification:
        ...

    def find_recent_verified(self, phone_number: str, since: int,
                             purpose: str = "registration") -> Optional[OTPRecordDto]:
        ...

    def delete_otp(self, phone_number: str, created_at: int) -> None:
        ...

    def purge_expired(self, now: Optional[int] = None) -> int:
        ...
