"""Security event and user activity log models.

Both tables are append-only: rows are inserted by the security monitor and
never updated in place.
"""
from sqlalchemy import Column, String, Boolean, Index, JSON
from app.core.database import Base
from app.models.base import ObjectIdMixin, CreatedAtMixin


class SecurityLog(ObjectIdMixin, CreatedAtMixin, Base):
    __tablename__ = "security_logs"

    # Best-effort reference to users.id; no foreign key is enforced
    user_id = Column(String(24), nullable=True, index=True)
    session_id = Column(String(128), nullable=True, index=True)
    event = Column(String(50), nullable=False, index=True)
    severity = Column(String(20), nullable=False, index=True)
    ip_address = Column(String(64), nullable=False, default="unknown", index=True)
    user_agent = Column(String(512), nullable=True)
    details = Column(JSON, nullable=False, default=dict)
    resolved = Column(Boolean, nullable=False, default=False, index=True)

    __table_args__ = (
        Index("ix_security_logs_event_severity_created", "event", "severity", "created_at"),
        Index("ix_security_logs_ip_created", "ip_address", "created_at"),
        Index("ix_security_logs_user_event_created", "user_id", "event", "created_at"),
    )


class ActivityLog(ObjectIdMixin, CreatedAtMixin, Base):
    __tablename__ = "activity_logs"

    user_id = Column(String(24), nullable=False, index=True)
    action = Column(String(100), nullable=False, index=True)
    resource = Column(String(100), nullable=False, index=True)
    resource_id = Column(String(24), nullable=True, index=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
