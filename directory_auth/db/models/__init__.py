# Models package (re-export table models for stable imports)
from .user import User, PhoneClaim
from .otp import OTPRecord
from .session import UserSession

__all__ = [
    "User",
    "PhoneClaim",
    "OTPRecord",
    "UserSession",
]
