from dataclasses import dataclass


@dataclass(frozen=True)
class AuthPolicy:
    """Immutable auth configuration handed to the service at construction."""

    default_country_code: str = "+91"
    otp_ttl_seconds: int = 600
    max_otp_attempts: int = 5
    # How far back registration looks for a verified OTP
    otp_verified_window_seconds: int = 600
    # Dev-only: include the generated code in the send-otp response
    echo_otp: bool = False
    session_short_seconds: int = 24 * 3600
    session_long_seconds: int = 30 * 24 * 3600
    otp_purpose: str = "registration"
    # Registration lockout threshold, mirrored by the attempt tracker
    registration_max_attempts: int = 5
