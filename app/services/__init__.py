"""Service layer package."""

__all__ = [
    "auth_service",
    "security_monitor",
    "session_security",
    "turnstile_service",
]
