from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.constants import SecurityEventType, Severity


class SecurityEvent(BaseModel):
    """A security event as submitted to the event logger."""
    event: SecurityEventType
    severity: Severity
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    ip_address: str = "unknown"
    user_agent: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class LogResult(BaseModel):
    """Outcome of a best-effort log write. Callers may ignore it."""
    ok: bool
    record_id: Optional[str] = None
    error: Optional[str] = None


class TurnstileResult(BaseModel):
    """Response body of the bot-verification endpoint."""
    success: bool
    error_codes: List[str] = Field(default_factory=list, alias="error-codes")
    challenge_ts: Optional[str] = None
    hostname: Optional[str] = None
    action: Optional[str] = None
    cdata: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CountBucket(BaseModel):
    key: Optional[str]
    count: int


TimeRange = Literal["hour", "day", "week", "month"]


class SecurityMetrics(BaseModel):
    time_range: TimeRange
    since: datetime
    event_counts: List[CountBucket]
    severity_counts: List[CountBucket]
    top_ips: List[CountBucket]
    unresolved_alerts: int


class MonthlyActivity(BaseModel):
    month: str
    activities: int
