"""Base SQLAlchemy model utilities."""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from app.utils.helpers import generate_object_id


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation used by every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ObjectIdMixin:
    id = Column(String(24), primary_key=True, index=True, default=generate_object_id)


class CreatedAtMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
