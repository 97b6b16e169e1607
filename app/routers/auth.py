from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import Union
from app.core.database import get_db
from app.schemas.auth import (
    LoginRequest, AdminLoginRequest, GoogleOAuthRequest, RegisterRequest,
    CsrfTokenResponse, TokenResponse, SessionResponse, UserResponse,
)
from app.schemas.session import AdminSession, UserSession
from app.services.auth_service import AuthService, IssuedSession
from app.core.config import settings
from app.core.security import generate_csrf_token
from app.dependencies.auth import get_auth_service, get_current_session, require_csrf
from app.dependencies.rate_limit import auth_rate_limit
from app.utils.helpers import format_response, get_client_ip, get_user_agent

router = APIRouter(prefix="/auth", tags=["authentication"])


def _token_response(issued: IssuedSession) -> TokenResponse:
    session = issued.session
    return TokenResponse(
        access_token=issued.token,
        expires_in=issued.expires_in,
        user_id=session.user_id,
        email=session.email,
        name=session.name,
        role=session.role.value,
        session_type=session.session_type,
        provider=session.provider.value,
        session_id=session.session_id,
    )


@router.post("/register", status_code=201)
async def register(
    payload: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
    _: None = Depends(auth_rate_limit),
):
    """
    Credentials sign-up
    - Bot check
    - Create user with role=user
    """
    user = await auth_service.register(
        db=db,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        turnstile_token=payload.turnstile_token,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return format_response(UserResponse.model_validate(user).model_dump(mode="json"))


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
    _: None = Depends(auth_rate_limit),
):
    """Login with email/password and receive a user session token"""
    issued = await auth_service.login(
        db=db,
        email=payload.email,
        password=payload.password,
        turnstile_token=payload.turnstile_token,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return _token_response(issued)


@router.post("/admin/login", response_model=TokenResponse)
async def admin_login(
    payload: AdminLoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
    _: None = Depends(auth_rate_limit),
):
    """Login with the operator credentials and receive an admin session token"""
    issued = await auth_service.admin_login(
        db=db,
        email=payload.email,
        password=payload.password,
        turnstile_token=payload.turnstile_token,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return _token_response(issued)


@router.post("/google", response_model=TokenResponse)
async def google_login(
    payload: GoogleOAuthRequest,
    request: Request,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
    _: None = Depends(auth_rate_limit),
):
    """
    Google sign-in
    - Verify Google ID token
    - Create or reuse the Google-provider user
    """
    issued = auth_service.google_login(
        db=db,
        id_token_str=payload.id_token,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return _token_response(issued)


@router.post("/logout", status_code=200)
async def logout(
    request: Request,
    session: Union[UserSession, AdminSession] = Depends(require_csrf),
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Revoke the current session"""
    auth_service.logout(
        db=db,
        session=session,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return format_response({"message": "Logged out successfully"})


@router.get("/session", response_model=SessionResponse)
async def current_session(
    session: Union[UserSession, AdminSession] = Depends(get_current_session),
):
    """Current validated session; a refreshed token is returned in X-Session-Token"""
    return SessionResponse(
        user_id=session.user_id,
        email=session.email,
        name=session.name,
        role=session.role.value,
        session_type=session.session_type,
        provider=session.provider.value,
        session_id=session.session_id,
        issued_at=session.issued_at,
    )


@router.get("/csrf", response_model=CsrfTokenResponse)
async def csrf_token(
    session: Union[UserSession, AdminSession] = Depends(get_current_session),
):
    """CSRF token for the current session; required on state-changing requests"""
    return CsrfTokenResponse(
        csrf_token=generate_csrf_token(),
        expires_in=settings.CSRF_TOKEN_MAX_AGE_MINUTES * 60,
    )
