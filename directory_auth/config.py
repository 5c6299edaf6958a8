# directory_auth/config.py
import os
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict
from typing import Optional, List
from functools import lru_cache

from .application.policy import AuthPolicy


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Application Settings
    APP_NAME: str = "Directory Auth API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True
    API_PREFIX: str = "/api/auth"

    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = int(os.environ.get("PORT", 8000))

    # Database Settings
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "sqlite:///./directory_auth.db")

    # CORS Settings (accept comma-separated strings to avoid JSON parsing in env)
    ALLOWED_ORIGINS: str = os.environ.get("ALLOWED_ORIGINS", "*")
    CORS_ALLOW_CREDENTIALS: bool = True

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Redis backs rate limiting and registration lockout when set
    REDIS_URL: Optional[str] = os.environ.get("REDIS_URL", None)

    # Twilio Settings
    TWILIO_ACCOUNT_SID: str = os.environ.get("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN: str = os.environ.get("TWILIO_AUTH_TOKEN", "")
    TWILIO_PHONE_NUMBER: str = os.environ.get("TWILIO_PHONE_NUMBER", "")

    # Phone numbers / OTP
    DEFAULT_COUNTRY_CODE: str = "+91"
    OTP_EXPIRY_MINUTES: int = 10
    MAX_OTP_ATTEMPTS: int = 5
    OTP_VERIFIED_WINDOW_SECONDS: int = 600
    # Development only: return the OTP code in the send-otp response
    OTP_DEV_ECHO: bool = False

    # Sessions
    SESSION_SHORT_HOURS: int = 24
    SESSION_LONG_DAYS: int = 30
    SESSION_HEADER: str = "x-session-id"
    SESSION_COOKIE: str = "sessionId"
    SESSION_COOKIE_SECURE: bool = False

    # Passwords
    BCRYPT_ROUNDS: int = 12

    # Registration lockout (per phone number)
    REGISTRATION_MAX_ATTEMPTS: int = 5
    REGISTRATION_LOCKOUT_SECONDS: int = 15 * 60

    # Rate limiting (per client IP, fixed windows)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_OTP: int = 3
    RATE_LIMIT_OTP_WINDOW_SEC: int = 10 * 60
    RATE_LIMIT_REGISTER: int = 10
    RATE_LIMIT_LOGIN: int = 5
    RATE_LIMIT_GENERAL: int = 100
    RATE_LIMIT_WINDOW_SEC: int = 15 * 60

    def _split_csv(self, value: str) -> List[str]:
        if value is None:
            return []
        value = value.strip()
        if value == "":
            return []
        return [item.strip() for item in value.split(",")]

    @property
    def allowed_origins_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_ORIGINS)

    @property
    def twilio_configured(self) -> bool:
        return bool(self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN and self.TWILIO_PHONE_NUMBER)

    def auth_policy(self) -> AuthPolicy:
        """Freeze the auth knobs into the value injected into AuthService."""
        return AuthPolicy(
            default_country_code=self.DEFAULT_COUNTRY_CODE,
            otp_ttl_seconds=self.OTP_EXPIRY_MINUTES * 60,
            max_otp_attempts=self.MAX_OTP_ATTEMPTS,
            otp_verified_window_seconds=self.OTP_VERIFIED_WINDOW_SECONDS,
            echo_otp=self.OTP_DEV_ECHO,
            session_short_seconds=self.SESSION_SHORT_HOURS * 3600,
            session_long_seconds=self.SESSION_LONG_DAYS * 24 * 3600,
            registration_max_attempts=self.REGISTRATION_MAX_ATTEMPTS,
        )


@lru_cache()
def get_settings() -> Settings:
    s = Settings()
    # Normalize ALLOWED_ORIGINS if provided as comma-separated string env var CORS_ORIGINS
    cors_env = os.environ.get("CORS_ORIGINS")
    if cors_env:
        s.ALLOWED_ORIGINS = cors_env
    return s


settings: Settings = get_settings()
