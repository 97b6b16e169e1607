"""Application constants such as roles, session types and security events."""
from enum import Enum


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class SessionType(str, Enum):
    USER = "user"
    ADMIN = "admin"


class AuthProvider(str, Enum):
    CREDENTIALS = "credentials"
    ADMIN_CREDENTIALS = "admin-credentials"
    GOOGLE = "google"


class SecurityEventType(str, Enum):
    LOGIN_ATTEMPT = "login_attempt"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    LOGOUT = "logout"
    SESSION_EXPIRED = "session_expired"
    ROLE_ESCALATION_ATTEMPT = "role_escalation_attempt"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    CSRF_VIOLATION = "csrf_violation"
    TURNSTILE_FAILURE = "turnstile_failure"


class Severity(str, Enum):
    """Ordered urgency of a security event (low < medium < high < critical)."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def level(self) -> int:
        return {"low": 0, "medium": 1, "high": 2, "critical": 3}[self.value]

    def __ge__(self, other: "Severity") -> bool:
        return self.level >= other.level

    def __gt__(self, other: "Severity") -> bool:
        return self.level > other.level

    def __le__(self, other: "Severity") -> bool:
        return self.level <= other.level

    def __lt__(self, other: "Severity") -> bool:
        return self.level < other.level


ADMIN_PRINCIPAL_ID = "admin-user"
SECURITY_ALERT_LOGGER = "app.security.alerts"
