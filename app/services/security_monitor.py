"""Security event logging, user activity logging and anomaly detection.

Logging here is best-effort: a failed write is rolled back, reported on the
application logger and returned as a ``LogResult`` with ``ok=False``. It never
raises into the action being observed.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
import calendar
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.constants import SECURITY_ALERT_LOGGER, SecurityEventType, Severity
from app.models.audit import ActivityLog, SecurityLog
from app.schemas.security import (
    CountBucket, LogResult, MonthlyActivity, SecurityEvent, SecurityMetrics, TimeRange,
)
from app.utils.helpers import normalize_object_id

logger = logging.getLogger(__name__)
alert_logger = logging.getLogger(SECURITY_ALERT_LOGGER)

SECURITY_ALERT_ACTION = "security_alert"

TIME_RANGES: Dict[str, timedelta] = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}


def _naive_utc(now: Optional[datetime]) -> datetime:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc).replace(tzinfo=None)
    return now


class SecurityMonitor:

    @staticmethod
    def log_security_event(db: Session, event: SecurityEvent, now: Optional[datetime] = None) -> LogResult:
        """Append a security event.

        ``user_id`` is kept only if it is a well-formed identity reference.
        Critical events with a user also write a ``security_alert`` activity
        record and go to the operator alert logger.
        """
        created_at = _naive_utc(now)
        user_id = normalize_object_id(event.user_id)
        try:
            record = SecurityLog(
                user_id=user_id,
                session_id=event.session_id,
                event=event.event.value,
                severity=event.severity.value,
                ip_address=event.ip_address or "unknown",
                user_agent=event.user_agent,
                details=event.details,
                resolved=False,
                created_at=created_at,
            )
            db.add(record)

            if event.severity == Severity.CRITICAL and user_id:
                db.add(ActivityLog(
                    user_id=user_id,
                    action=SECURITY_ALERT_ACTION,
                    resource="security",
                    details={
                        "event": event.event.value,
                        "severity": event.severity.value,
                        "ip_address": event.ip_address,
                        "timestamp": created_at.isoformat(),
                    },
                    ip_address=event.ip_address,
                    user_agent=event.user_agent,
                    created_at=created_at,
                ))

            db.commit()
        except Exception as e:
            SecurityMonitor._rollback(db)
            logger.error(f"Failed to log security event {event.event.value}: {e}")
            return LogResult(ok=False, error=str(e))

        if event.severity >= Severity.HIGH:
            logger.warning(f"Security event {event.event.value} ({event.severity.value}) from {event.ip_address}")
        if event.severity == Severity.CRITICAL and user_id:
            alert_logger.critical(
                "%s user=%s session=%s ip=%s details=%s",
                event.event.value,
                user_id,
                event.session_id,
                event.ip_address,
                event.details,
            )
        return LogResult(ok=True, record_id=record.id)

    @staticmethod
    def log_user_activity(
        db: Session,
        user_id: Optional[str],
        action: str,
        resource: str,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LogResult:
        """Append a user activity record; skipped when ``user_id`` is malformed."""
        if not normalize_object_id(user_id):
            return LogResult(ok=False, error="invalid user id")

        try:
            record = ActivityLog(
                user_id=user_id,
                action=action,
                resource=resource,
                resource_id=normalize_object_id(resource_id),
                details=details,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            db.add(record)
            db.commit()
        except Exception as e:
            SecurityMonitor._rollback(db)
            logger.error(f"Failed to log user activity {action}: {e}")
            return LogResult(ok=False, error=str(e))
        return LogResult(ok=True, record_id=record.id)

    @staticmethod
    def detect_suspicious_activity(
        db: Session,
        user_id: Optional[str],
        ip_address: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """Flag failure clustering or IP fan-out for a user over the trailing window.

        Logs a ``suspicious_activity`` event when returning True.
        """
        if not normalize_object_id(user_id):
            return False

        now = _naive_utc(now)
        window = timedelta(minutes=settings.SUSPICIOUS_WINDOW_MINUTES)
        since = now - window
        window_label = f"{settings.SUSPICIOUS_WINDOW_MINUTES} minutes"

        try:
            failed_logins = (
                db.query(func.count(SecurityLog.id))
                .filter(
                    SecurityLog.user_id == user_id,
                    SecurityLog.event == SecurityEventType.LOGIN_FAILURE.value,
                    SecurityLog.created_at >= since,
                    SecurityLog.created_at <= now,
                )
                .scalar()
            )

            if failed_logins >= settings.FAILED_LOGIN_THRESHOLD:
                SecurityMonitor.log_security_event(db, SecurityEvent(
                    user_id=user_id,
                    event=SecurityEventType.SUSPICIOUS_ACTIVITY,
                    severity=Severity.HIGH,
                    ip_address=ip_address,
                    details={
                        "reason": "Multiple failed login attempts",
                        "count": failed_logins,
                        "time_window": window_label,
                    },
                ), now=now)
                return True

            rows = (
                db.query(SecurityLog.ip_address)
                .filter(
                    SecurityLog.user_id == user_id,
                    SecurityLog.event == SecurityEventType.LOGIN_SUCCESS.value,
                    SecurityLog.created_at >= since,
                    SecurityLog.created_at <= now,
                )
                .distinct()
                .all()
            )
            recent_ips = sorted(row[0] for row in rows)

            if len(recent_ips) >= settings.DISTINCT_IP_THRESHOLD:
                SecurityMonitor.log_security_event(db, SecurityEvent(
                    user_id=user_id,
                    event=SecurityEventType.SUSPICIOUS_ACTIVITY,
                    severity=Severity.MEDIUM,
                    ip_address=ip_address,
                    details={
                        "reason": "Multiple IP addresses",
                        "ips": recent_ips,
                        "time_window": window_label,
                    },
                ), now=now)
                return True
        except Exception as e:
            SecurityMonitor._rollback(db)
            logger.error(f"Failed to detect suspicious activity for {user_id}: {e}")
            return False

        return False

    @staticmethod
    def get_security_metrics(
        db: Session,
        time_range: TimeRange = "day",
        now: Optional[datetime] = None,
    ) -> SecurityMetrics:
        """Aggregate recent security events for the admin dashboard."""
        now = _naive_utc(now)
        since = now - TIME_RANGES[time_range]

        event_rows = (
            db.query(SecurityLog.event, func.count(SecurityLog.id).label("count"))
            .filter(SecurityLog.created_at >= since)
            .group_by(SecurityLog.event)
            .order_by(func.count(SecurityLog.id).desc())
            .all()
        )
        severity_rows = (
            db.query(SecurityLog.severity, func.count(SecurityLog.id).label("count"))
            .filter(SecurityLog.created_at >= since)
            .group_by(SecurityLog.severity)
            .all()
        )
        ip_rows = (
            db.query(SecurityLog.ip_address, func.count(SecurityLog.id).label("count"))
            .filter(SecurityLog.created_at >= since)
            .group_by(SecurityLog.ip_address)
            .order_by(func.count(SecurityLog.id).desc())
            .limit(10)
            .all()
        )
        unresolved = (
            db.query(func.count(SecurityLog.id))
            .filter(
                SecurityLog.resolved.is_(False),
                SecurityLog.severity.in_([s.value for s in Severity if s >= Severity.HIGH]),
            )
            .scalar()
        )

        return SecurityMetrics(
            time_range=time_range,
            since=since,
            event_counts=[CountBucket(key=key, count=count) for key, count in event_rows],
            severity_counts=[CountBucket(key=key, count=count) for key, count in severity_rows],
            top_ips=[CountBucket(key=key, count=count) for key, count in ip_rows],
            unresolved_alerts=unresolved or 0,
        )

    @staticmethod
    def get_monthly_activity(
        db: Session,
        user_id: Optional[str],
        months: int = 6,
        now: Optional[datetime] = None,
    ) -> List[MonthlyActivity]:
        """Activity record counts per calendar month, oldest first, for the last ``months`` months."""
        if not normalize_object_id(user_id):
            return []

        now = _naive_utc(now)
        year, month = now.year, now.month - (months - 1)
        while month < 1:
            month += 12
            year -= 1
        since = datetime(year, month, 1)

        rows = (
            db.query(ActivityLog.created_at)
            .filter(ActivityLog.user_id == user_id, ActivityLog.created_at >= since)
            .all()
        )
        counts: Dict[Tuple[int, int], int] = {}
        for (created_at,) in rows:
            key = (created_at.year, created_at.month)
            counts[key] = counts.get(key, 0) + 1

        return [
            MonthlyActivity(month=calendar.month_abbr[m], activities=counts[(y, m)])
            for (y, m) in sorted(counts)
        ]

    @staticmethod
    def _rollback(db: Session) -> None:
        try:
            db.rollback()
        except Exception as rollback_error:
            logger.error(f"Rollback after logging failure also failed: {rollback_error}")
