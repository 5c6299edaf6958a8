from typing import Optional

from pydantic import Field

from ..common.common import CamelModel, MessageResponse

__all__ = [
    "SendOTPRequest", "SendOTPResponse", "VerifyOTPRequest", "VerifyOTPResponse",
    "CheckUsernameRequest", "CheckUsernameResponse", "RegisterRequest", "LoginRequest",
    "UserResponse", "IssuedSessionResponse", "AuthResponse", "SessionResponse",
    "SessionCheckResponse", "LogoutResponse",
]


# Request fields are optional so that missing values reach the service and get
# its specific messages instead of a generic body error.

class SendOTPRequest(CamelModel):
    phone_number: Optional[str] = Field(None, description="Phone number, with or without country code")


class SendOTPResponse(MessageResponse):
    otp: Optional[str] = Field(None, description="Only returned when OTP_DEV_ECHO is enabled")


class VerifyOTPRequest(CamelModel):
    phone_number: Optional[str] = None
    otp_code: Optional[str] = Field(None, description="6-digit OTP")


class VerifyOTPResponse(MessageResponse):
    verified: bool = True


class CheckUsernameRequest(CamelModel):
    username: Optional[str] = None


class CheckUsernameResponse(CamelModel):
    available: bool
    message: str


class RegisterRequest(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    phone_number: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    avatar: Optional[str] = None


class LoginRequest(CamelModel):
    username: Optional[str] = None
    password: Optional[str] = None
    remember_me: Optional[bool] = False


class UserResponse(CamelModel):
    user_id: str
    first_name: str
    last_name: str
    username: str
    phone_number: str
    role: str
    avatar: Optional[str] = None
    account_status: str
    phone_verified: bool
    last_login_at: Optional[int] = None
    created_at: int
    updated_at: int


class IssuedSessionResponse(CamelModel):
    session_id: str
    expires_at: int


class AuthResponse(MessageResponse):
    user: UserResponse
    session: IssuedSessionResponse


class SessionResponse(CamelModel):
    session_id: str
    user_id: str
    username: str
    role: str
    remember_me: bool
    created_at: int
    last_activity_at: int
    expires_at: int


class SessionCheckResponse(CamelModel):
    success: bool = True
    valid: bool = True
    session: SessionResponse


class LogoutResponse(MessageResponse):
    pass
