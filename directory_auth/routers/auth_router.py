import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from ..application.ports.session_repo import IssuedSession, SessionDto
from ..application.ports.user_repo import UserDto
from ..application.services.auth_service import AuthService, ClientInfo, RegistrationProfile
from ..config import settings
from ..dependencies import (
    general_rate_limit, get_auth_service, get_client_info, get_session_id,
    login_rate_limit, otp_rate_limit, register_rate_limit,
)
from ..schemas import (
    AuthResponse, CheckUsernameRequest, CheckUsernameResponse, ErrorResponse, IssuedSessionResponse, LoginRequest,
    LogoutResponse, RegisterRequest, SendOTPRequest, SendOTPResponse, SessionCheckResponse,
    SessionResponse, UserResponse, VerifyOTPRequest, VerifyOTPResponse,
)

logger = logging.getLogger(__name__)

# Every failure renders through the AuthError handlers as ErrorResponse
ERROR_RESPONSES = {
    status: {"model": ErrorResponse}
    for status in (400, 401, 403, 423, 429, 500)
}

router = APIRouter(prefix=settings.API_PREFIX, tags=["Authentication"], responses=ERROR_RESPONSES)


def _user_response(user: UserDto) -> UserResponse:
    # Never serialize password_hash
    return UserResponse(
        user_id=user.user_id,
        first_name=user.first_name,
        last_name=user.last_name,
        username=user.username,
        phone_number=user.phone_number,
        role=user.role,
        avatar=user.avatar,
        account_status=user.account_status,
        phone_verified=user.phone_verified,
        last_login_at=user.last_login_at,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _set_session_cookie(request: Request, response: Response, issued: IssuedSession) -> None:
    state = request.app.state
    response.set_cookie(
        key=state.settings.SESSION_COOKIE,
        value=issued.session_id,
        max_age=max(0, issued.expires_at - state.clock()),
        httponly=True,
        secure=state.settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )


@router.post("/send-otp", response_model=SendOTPResponse, response_model_exclude_none=True,
             dependencies=[Depends(otp_rate_limit)])
def send_otp(
    payload: SendOTPRequest,
    client: ClientInfo = Depends(get_client_info),
    auth_service: AuthService = Depends(get_auth_service),
):
    dispatch = auth_service.send_otp(payload.phone_number, client)
    return SendOTPResponse(message=dispatch.message, otp=dispatch.otp)


@router.post("/verify-otp", response_model=VerifyOTPResponse, dependencies=[Depends(general_rate_limit)])
def verify_otp(payload: VerifyOTPRequest, auth_service: AuthService = Depends(get_auth_service)):
    auth_service.verify_otp(payload.phone_number, payload.otp_code)
    return VerifyOTPResponse(message="Phone number verified successfully")


@router.post("/check-username", response_model=CheckUsernameResponse,
             dependencies=[Depends(general_rate_limit)])
def check_username(payload: CheckUsernameRequest, auth_service: AuthService = Depends(get_auth_service)):
    result = auth_service.check_username(payload.username)
    return CheckUsernameResponse(available=result.available, message=result.message)


@router.post("/register", response_model=AuthResponse, dependencies=[Depends(register_rate_limit)])
def register(
    payload: RegisterRequest,
    request: Request,
    response: Response,
    client: ClientInfo = Depends(get_client_info),
    auth_service: AuthService = Depends(get_auth_service),
):
    profile = RegistrationProfile(
        first_name=payload.first_name,
        last_name=payload.last_name,
        username=payload.username,
        phone_number=payload.phone_number,
        password=payload.password,
        role=payload.role,
        avatar=payload.avatar,
    )
    result = auth_service.register(profile, client)
    _set_session_cookie(request, response, result.session)
    return AuthResponse(
        message="Registration successful",
        user=_user_response(result.user),
        session=IssuedSessionResponse(session_id=result.session.session_id, expires_at=result.session.expires_at),
    )


@router.post("/login", response_model=AuthResponse, dependencies=[Depends(login_rate_limit)])
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    client: ClientInfo = Depends(get_client_info),
    auth_service: AuthService = Depends(get_auth_service),
):
    result = auth_service.login(payload.username, payload.password, bool(payload.remember_me), client)
    _set_session_cookie(request, response, result.session)
    return AuthResponse(
        message="Login successful",
        user=_user_response(result.user),
        session=IssuedSessionResponse(session_id=result.session.session_id, expires_at=result.session.expires_at),
    )


@router.get("/session", response_model=SessionCheckResponse)
def check_session(
    session_id: Optional[str] = Depends(get_session_id),
    auth_service: AuthService = Depends(get_auth_service),
):
    session: SessionDto = auth_service.check_session(session_id)
    return SessionCheckResponse(session=SessionResponse(
        session_id=session.session_id,
        user_id=session.user_id,
        username=session.username,
        role=session.role,
        remember_me=session.remember_me,
        created_at=session.created_at,
        last_activity_at=session.last_activity_at,
        expires_at=session.expires_at,
    ))


@router.post("/logout", response_model=LogoutResponse)
def logout(
    request: Request,
    response: Response,
    session_id: Optional[str] = Depends(get_session_id),
    client: ClientInfo = Depends(get_client_info),
    auth_service: AuthService = Depends(get_auth_service),
):
    auth_service.logout(session_id, client)
    response.delete_cookie(request.app.state.settings.SESSION_COOKIE)
    return LogoutResponse(message="Logged out successfully")
