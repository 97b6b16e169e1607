import logging
from typing import Optional, Union
from fastapi import Depends, Request, Response
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.core.constants import SecurityEventType, Severity, UserRole
from app.core.security import verify_csrf_token
from app.core.database import get_db
from app.schemas.security import SecurityEvent
from app.schemas.session import AdminSession, UserSession
from app.services.security_monitor import SecurityMonitor
from app.services.auth_service import AdminCredentials, AuthService
from app.services.session_security import SessionSecurity
from app.services.turnstile_service import TurnstileVerifier
from app.utils.errors import (
    AdminAccessRequiredError, CsrfValidationError, InvalidSessionError, UserSessionRequiredError,
)
from app.utils.helpers import get_client_ip, get_user_agent

logger = logging.getLogger(__name__)

SESSION_TOKEN_HEADER = "X-Session-Token"
CSRF_TOKEN_HEADER = "X-CSRF-Token"
CSRF_PROTECTED_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

security = HTTPBearer(auto_error=False)


def get_auth_service() -> AuthService:
    return AuthService(AdminCredentials.from_settings(), TurnstileVerifier.from_settings())


async def get_current_session(
    request: Request,
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> Union[UserSession, AdminSession]:
    """
    Resolve and validate the bearer session token
    - Rejected, revoked or expired tokens resolve to no session (401)
    - A valid session is re-signed; the new token goes out in X-Session-Token
    """
    ip_address = get_client_ip(request)
    user_agent = get_user_agent(request)
    token = credentials.credentials if credentials else None

    session = auth_service.resolve_session(db, token, ip_address, user_agent)
    result = SessionSecurity.validate(db, session, ip_address, user_agent)
    if not result.valid:
        logger.info(f"Session rejected: {result.reason}")
        raise InvalidSessionError()

    refreshed = auth_service.refresh_session_token(db, result.session)
    response.headers[SESSION_TOKEN_HEADER] = refreshed.token
    return result.session


async def require_admin_session(
    session: Union[UserSession, AdminSession] = Depends(get_current_session),
) -> AdminSession:
    """Admin routes need role=admin on an admin session."""
    if not isinstance(session, AdminSession) or session.role != UserRole.ADMIN:
        raise AdminAccessRequiredError()
    return session


async def require_user_session(
    session: Union[UserSession, AdminSession] = Depends(get_current_session),
) -> UserSession:
    """Client routes need a user session; admin sessions are refused."""
    if not isinstance(session, UserSession):
        raise UserSessionRequiredError()
    return session


async def require_csrf(
    request: Request,
    session: Union[UserSession, AdminSession] = Depends(get_current_session),
    db: Session = Depends(get_db),
) -> Union[UserSession, AdminSession]:
    """State-changing authenticated requests must carry a valid X-CSRF-Token."""
    if request.method not in CSRF_PROTECTED_METHODS:
        return session
    token = request.headers.get(CSRF_TOKEN_HEADER)
    if verify_csrf_token(token):
        return session

    SecurityMonitor.log_security_event(db, SecurityEvent(
        user_id=session.user_id,
        session_id=session.session_id,
        event=SecurityEventType.CSRF_VIOLATION,
        severity=Severity.MEDIUM,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        details={
            "reason": "Invalid CSRF token" if token else "Missing CSRF token",
            "method": request.method,
            "path": request.url.path,
        },
    ))
    raise CsrfValidationError()
