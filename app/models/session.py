"""Session record model for tracking issued session tokens."""
from sqlalchemy import Column, String, DateTime, Boolean
from app.core.database import Base
from app.models.base import ObjectIdMixin, utcnow


class SessionRecord(ObjectIdMixin, Base):
    __tablename__ = "auth_sessions"

    session_id = Column(String(128), unique=True, nullable=False, index=True)
    # Principal id as minted into the token ("admin-user" for operator sessions)
    principal_id = Column(String(64), nullable=False, index=True)
    session_type = Column(String(20), nullable=False, index=True)
    provider = Column(String(50), nullable=False)

    # Session metadata
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    last_seen_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=True)

    # Revocation
    is_revoked = Column(Boolean, default=False, index=True)
    revoked_at = Column(DateTime, nullable=True)
    revoked_reason = Column(String(255), nullable=True)
