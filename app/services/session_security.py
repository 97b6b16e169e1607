"""Per-request session validation."""
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.constants import AuthProvider, SecurityEventType, Severity, UserRole
from app.schemas.security import SecurityEvent
from app.schemas.session import (
    AdminSession, AnonymousSession, AnySession, SessionValidationResult, UserSession,
)
from app.services.security_monitor import SecurityMonitor

logger = logging.getLogger(__name__)

NO_SESSION = "No session found"
SECURITY_VIOLATION = "Session security violation detected"
ROLE_ESCALATION = "Role escalation attempt detected"
SUSPICIOUS_ACTIVITY = "Suspicious activity detected"
VALIDATION_FAILED = "Session validation failed"


def is_session_too_old(session, now: datetime) -> bool:
    """Age check standing in for hijack detection; no IP or device comparison."""
    max_age = timedelta(hours=settings.SESSION_HIJACK_MAX_AGE_HOURS)
    return now - session.issued_at > max_age


def is_role_escalation_attempt(session) -> bool:
    """True unless admin session type, admin role and admin provider all agree."""
    is_admin_type = isinstance(session, AdminSession)
    is_admin_role = session.role == UserRole.ADMIN
    is_admin_provider = session.provider == AuthProvider.ADMIN_CREDENTIALS
    return not (is_admin_type == is_admin_role and is_admin_role == is_admin_provider)


class SessionSecurity:

    @staticmethod
    def validate(
        db: Session,
        session: Optional[AnySession],
        ip_address: str = "unknown",
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SessionValidationResult:
        """
        Validate a session for the current request, stopping at the first failure
        - No session
        - Token age past the hijack limit
        - Role / session type / provider inconsistency
        - Anomalies on the user's recent activity (non-admin only)
        """
        try:
            if session is None or isinstance(session, AnonymousSession):
                return SessionValidationResult(valid=False, reason=NO_SESSION)
            if not isinstance(session, (UserSession, AdminSession)):
                raise TypeError(f"Unhandled session type: {type(session).__name__}")

            now = now or datetime.now(timezone.utc)

            if is_session_too_old(session, now):
                SecurityMonitor.log_security_event(db, SecurityEvent(
                    user_id=session.user_id,
                    session_id=session.session_id,
                    event=SecurityEventType.SUSPICIOUS_ACTIVITY,
                    severity=Severity.CRITICAL,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    details={
                        "reason": "Potential session hijacking detected",
                        "session_type": session.session_type,
                        "user_role": session.role.value,
                    },
                ), now=now)
                return SessionValidationResult(valid=False, reason=SECURITY_VIOLATION)

            if is_role_escalation_attempt(session):
                SecurityMonitor.log_security_event(db, SecurityEvent(
                    user_id=session.user_id,
                    session_id=session.session_id,
                    event=SecurityEventType.ROLE_ESCALATION_ATTEMPT,
                    severity=Severity.CRITICAL,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    details={
                        "current_role": session.role.value,
                        "session_type": session.session_type,
                        "provider": session.provider.value,
                    },
                ), now=now)
                return SessionValidationResult(valid=False, reason=ROLE_ESCALATION)

            if isinstance(session, UserSession) and SecurityMonitor.detect_suspicious_activity(
                db, session.user_id, ip_address, now=now,
            ):
                return SessionValidationResult(valid=False, reason=SUSPICIOUS_ACTIVITY)

            return SessionValidationResult(valid=True, session=session)
        except Exception as e:
            logger.exception(f"Session validation error: {e}")
            SecurityMonitor.log_security_event(db, SecurityEvent(
                user_id=getattr(session, "user_id", None),
                session_id=getattr(session, "session_id", None),
                event=SecurityEventType.SUSPICIOUS_ACTIVITY,
                severity=Severity.HIGH,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "Session validation error", "error": type(e).__name__},
            ))
            return SessionValidationResult(valid=False, reason=VALIDATION_FAILED)
