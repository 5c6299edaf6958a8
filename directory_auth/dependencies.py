import logging
from typing import Callable, Iterator, Optional

from fastapi import Depends, Request
from sqlmodel import Session

from .application.services.auth_service import AuthService, ClientInfo
from .application.ports.session_repo import SessionDto
from .exceptions import RateLimitError
from .infrastructure.persistence.sqlalchemy.repositories.otp_repository_sql import SqlOTPRepository
from .infrastructure.persistence.sqlalchemy.repositories.session_repository_sql import SqlSessionRepository
from .infrastructure.persistence.sqlalchemy.repositories.user_repository_sql import SqlUserRepository

logger = logging.getLogger(__name__)


def get_session(request: Request) -> Iterator[Session]:
    with Session(request.app.state.engine) as session:
        yield session


def get_auth_service(request: Request, session: Session = Depends(get_session)) -> AuthService:
    state = request.app.state
    policy = state.policy
    return AuthService(
        user_repo=SqlUserRepository(session, clock=state.clock),
        otp_repo=SqlOTPRepository(session, ttl_seconds=policy.otp_ttl_seconds,
                                  max_attempts=policy.max_otp_attempts, clock=state.clock),
        session_repo=SqlSessionRepository(session, short_seconds=policy.session_short_seconds,
                                          long_seconds=policy.session_long_seconds, clock=state.clock),
        sms_sender=state.sms_sender,
        audit=state.audit_logger,
        attempt_tracker=state.attempt_tracker,
        policy=policy,
        clock=state.clock,
    )


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def get_client_info(request: Request) -> ClientInfo:
    return ClientInfo(
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        request_id=request.headers.get("x-request-id"),
    )


def get_session_id(request: Request) -> Optional[str]:
    """Session id from the configured header, falling back to the cookie."""
    settings = request.app.state.settings
    return request.headers.get(settings.SESSION_HEADER) or request.cookies.get(settings.SESSION_COOKIE)


def get_current_session(
    session_id: Optional[str] = Depends(get_session_id),
    auth_service: AuthService = Depends(get_auth_service),
) -> SessionDto:
    """Authorize a request by its session; raises NotFoundError (401) otherwise.

    Other routers use this to protect their endpoints with the same session
    lookup as ``GET /session``.
    """
    return auth_service.check_session(session_id)


def rate_limit(scope: str, limit_setting: str, window_setting: str = "RATE_LIMIT_WINDOW_SEC") -> Callable:
    """Build a dependency enforcing a fixed-window limit per client IP.

    Limits are read from settings by name at request time so tests can
    swap the settings object on app.state.
    """

    def dependency(request: Request) -> None:
        settings = request.app.state.settings
        if not settings.RATE_LIMIT_ENABLED:
            return
        max_requests = getattr(settings, limit_setting)
        window_seconds = getattr(settings, window_setting)
        key = f"{scope}:{get_client_ip(request)}"
        limiter = request.app.state.rate_limiter
        if not limiter.allow(key, max_requests, window_seconds):
            retry_after = limiter.retry_after(key, window_seconds)
            logger.warning(f"Rate limit exceeded for {key}")
            raise RateLimitError(
                extra={"retryAfter": retry_after},
                headers={"Retry-After": str(retry_after)},
            )

    return dependency


otp_rate_limit = rate_limit("otp", "RATE_LIMIT_OTP", "RATE_LIMIT_OTP_WINDOW_SEC")
register_rate_limit = rate_limit("register", "RATE_LIMIT_REGISTER")
login_rate_limit = rate_limit("login", "RATE_LIMIT_LOGIN")
general_rate_limit = rate_limit("general", "RATE_LIMIT_GENERAL")
