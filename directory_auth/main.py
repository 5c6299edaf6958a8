from contextlib import asynccontextmanager
from typing import Callable, Optional
import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

# Load environment variables as early as possible
load_dotenv()

from .config import Settings, settings as default_settings
from .database import create_db_and_tables, engine as default_engine
from .exceptions import AuthError, auth_exception_handler, request_validation_exception_handler
from .middleware import ErrorHandlingMiddleware, LoggingMiddleware, SecurityMiddleware
from .routers import auth_router
from .schemas import HealthResponse
from .utils import configure_password_hashing, current_timestamp
from .application.ports.attempt_tracker import AttemptTracker
from .application.ports.audit_logger import AuditLogger
from .application.ports.rate_limiter import RateLimiter
from .application.ports.sms_sender import SmsSender
from .infrastructure.audit.std_logger import StdAuditLogger
from .infrastructure.rate_limit.memory_attempt_tracker import InMemoryAttemptTracker
from .infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter
from .infrastructure.rate_limit.redis_attempt_tracker import RedisAttemptTracker
from .infrastructure.rate_limit.redis_rate_limiter import RedisRateLimiter
from .infrastructure.sms.log_sender import LoggingSmsSender
from .infrastructure.sms.twilio_sender import TwilioSmsSender

# Configure logging
logging.basicConfig(
    level=getattr(logging, default_settings.LOG_LEVEL.upper(), logging.INFO),
    format=default_settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


def build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.REDIS_URL:
        logger.info("Using Redis rate limiter")
        return RedisRateLimiter(url=settings.REDIS_URL)
    return InMemoryRateLimiter()


def build_attempt_tracker(settings: Settings) -> AttemptTracker:
    kwargs = dict(
        max_attempts=settings.REGISTRATION_MAX_ATTEMPTS,
        lockout_seconds=settings.REGISTRATION_LOCKOUT_SECONDS,
        reset_window_seconds=settings.REGISTRATION_LOCKOUT_SECONDS,
    )
    if settings.REDIS_URL:
        return RedisAttemptTracker(url=settings.REDIS_URL, **kwargs)
    return InMemoryAttemptTracker(**kwargs)


def build_sms_sender(settings: Settings) -> SmsSender:
    if settings.twilio_configured:
        logger.info("Twilio SMS delivery enabled")
        return TwilioSmsSender(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_PHONE_NUMBER,
            expiry_minutes=settings.OTP_EXPIRY_MINUTES,
        )
    logger.warning("Twilio is not configured; OTP codes will not be delivered")
    return LoggingSmsSender()


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    clock: Callable[[], int] = current_timestamp,
    rate_limiter: Optional[RateLimiter] = None,
    attempt_tracker: Optional[AttemptTracker] = None,
    sms_sender: Optional[SmsSender] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> FastAPI:
    """Build the application. Every collaborator can be overridden for tests."""
    settings = settings or default_settings
    engine = engine if engine is not None else default_engine

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.APP_NAME}...")
        app.state.db_init_ok = True
        app.state.db_init_error = None
        try:
            create_db_and_tables(app.state.engine)
            logger.info("Database initialized successfully")
        except Exception as e:
            # Do not crash the app; report via health endpoint
            app.state.db_init_ok = False
            app.state.db_init_error = str(e)
            logger.exception("Database initialization failed")
        yield
        logger.info(f"Shutting down {settings.APP_NAME}...")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url=("/docs" if settings.DOCS_ENABLED else None),
        redoc_url=("/redoc" if settings.DOCS_ENABLED else None),
        openapi_url=("/openapi.json" if settings.DOCS_ENABLED else None)
    )

    configure_password_hashing(settings.BCRYPT_ROUNDS)

    app.state.settings = settings
    app.state.engine = engine
    app.state.clock = clock
    app.state.policy = settings.auth_policy()
    app.state.rate_limiter = rate_limiter or build_rate_limiter(settings)
    app.state.attempt_tracker = attempt_tracker or build_attempt_tracker(settings)
    app.state.sms_sender = sms_sender or build_sms_sender(settings)
    app.state.audit_logger = audit_logger or StdAuditLogger()

    app.add_exception_handler(AuthError, auth_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

    app.add_middleware(ErrorHandlingMiddleware, debug=settings.DEBUG)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(SecurityMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router.router)

    @app.get("/health", response_model=HealthResponse)
    def health_check():
        return HealthResponse(
            status="ok" if getattr(app.state, "db_init_ok", True) else "degraded",
            version=settings.APP_VERSION,
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("directory_auth.main:app", host=default_settings.HOST, port=default_settings.PORT)
