"""Session value types.

A decoded session token is one of three shapes, tagged by ``session_type``:

* ``AnonymousSession`` - no (usable) token was presented.
* ``UserSession`` - minted by the credentials or Google path.
* ``AdminSession`` - minted by the fixed admin-credentials path.

``role`` and ``provider`` are deliberately not narrowed per variant: a
forged or stale token can carry any combination, and the consistency checks
need to see it as-is.
"""
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from app.core.constants import AuthProvider, SessionType, UserRole


class AnonymousSession(BaseModel):
    session_type: Literal["anonymous"] = "anonymous"


class _AuthenticatedSession(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject: str
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: UserRole
    provider: AuthProvider
    session_id: str
    issued_at: datetime

    def to_claims(self) -> Dict[str, Any]:
        """Token claims, without ``iat``/``exp`` which the signer stamps."""
        return {
            "sub": self.subject,
            "user_id": self.user_id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "session_type": self.session_type,
            "provider": self.provider.value,
            "session_id": self.session_id,
        }


class UserSession(_AuthenticatedSession):
    session_type: Literal["user"] = SessionType.USER.value


class AdminSession(_AuthenticatedSession):
    session_type: Literal["admin"] = SessionType.ADMIN.value


Session = Annotated[Union[UserSession, AdminSession], Field(discriminator="session_type")]
AnySession = Union[AnonymousSession, UserSession, AdminSession]

_session_adapter = TypeAdapter(Session)


def session_from_claims(claims: Dict[str, Any]) -> Union[UserSession, AdminSession]:
    """Build the tagged session from verified token claims.

    Raises ``pydantic.ValidationError`` when the claims do not describe a
    known session shape.
    """
    return _session_adapter.validate_python({
        "subject": claims.get("sub"),
        "user_id": claims.get("user_id"),
        "email": claims.get("email"),
        "name": claims.get("name"),
        "role": claims.get("role"),
        "provider": claims.get("provider"),
        "session_type": claims.get("session_type"),
        "session_id": claims.get("session_id"),
        "issued_at": datetime.fromtimestamp(int(claims.get("iat", 0)), tz=timezone.utc),
    })


class SessionValidationResult(BaseModel):
    valid: bool
    session: Optional[Union[UserSession, AdminSession]] = None
    reason: Optional[str] = None
