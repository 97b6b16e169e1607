"""Security event logging, anomaly detection and metrics."""
from datetime import datetime, timedelta, timezone
from unittest import mock

from app.core.constants import SecurityEventType, Severity
from app.models.audit import ActivityLog, SecurityLog
from app.schemas.security import SecurityEvent
from app.services import security_monitor
from app.services.security_monitor import SecurityMonitor
from app.utils.helpers import generate_object_id

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _event(event, severity=Severity.LOW, user_id=None, ip="203.0.113.10", **details):
    return SecurityEvent(event=event, severity=severity, user_id=user_id, ip_address=ip, details=details)


def _suspicious_events(db, user_id):
    return db.query(SecurityLog).filter(
        SecurityLog.user_id == user_id,
        SecurityLog.event == SecurityEventType.SUSPICIOUS_ACTIVITY.value,
    ).all()


def test_malformed_user_id_is_dropped_not_raised(db_session):
    result = SecurityMonitor.log_security_event(
        db_session, _event(SecurityEventType.LOGIN_FAILURE, Severity.MEDIUM, user_id="not-an-id"),
    )

    assert result.ok is True
    record = db_session.query(SecurityLog).filter(SecurityLog.id == result.record_id).one()
    assert record.user_id is None
    assert record.event == "login_failure"
    assert record.resolved is False


def test_database_failure_returns_error_result(db_session):
    with mock.patch.object(db_session, "commit", side_effect=RuntimeError("db down")):
        result = SecurityMonitor.log_security_event(
            db_session, _event(SecurityEventType.LOGIN_SUCCESS),
        )

    assert result.ok is False
    assert "db down" in result.error


def test_critical_event_writes_security_alert_activity(db_session):
    user_id = generate_object_id()

    with mock.patch.object(security_monitor.alert_logger, "critical") as alert:
        result = SecurityMonitor.log_security_event(
            db_session, _event(SecurityEventType.ROLE_ESCALATION_ATTEMPT, Severity.CRITICAL, user_id=user_id),
        )

    assert result.ok is True
    activity = db_session.query(ActivityLog).filter(ActivityLog.user_id == user_id).one()
    assert activity.action == "security_alert"
    assert activity.details["event"] == "role_escalation_attempt"
    alert.assert_called_once()


def test_critical_event_without_user_has_no_alert(db_session):
    with mock.patch.object(security_monitor.alert_logger, "critical") as alert:
        SecurityMonitor.log_security_event(
            db_session, _event(SecurityEventType.SUSPICIOUS_ACTIVITY, Severity.CRITICAL),
        )

    assert db_session.query(ActivityLog).count() == 0
    alert.assert_not_called()


def test_user_activity_requires_valid_user_id(db_session):
    skipped = SecurityMonitor.log_user_activity(db_session, "admin-user", "logout", "session")
    stored = SecurityMonitor.log_user_activity(db_session, generate_object_id(), "logout", "session")

    assert skipped.ok is False
    assert stored.ok is True
    assert db_session.query(ActivityLog).count() == 1


def test_five_failures_in_window_flag_user(db_session):
    user_id = generate_object_id()
    for minute in range(5):
        SecurityMonitor.log_security_event(
            db_session,
            _event(SecurityEventType.LOGIN_FAILURE, Severity.MEDIUM, user_id=user_id),
            now=NOW + timedelta(minutes=minute),
        )

    flagged = SecurityMonitor.detect_suspicious_activity(
        db_session, user_id, "203.0.113.10", now=NOW + timedelta(minutes=5),
    )

    assert flagged is True
    events = _suspicious_events(db_session, user_id)
    assert len(events) == 1
    assert events[0].severity == "high"
    assert events[0].details["reason"] == "Multiple failed login attempts"
    assert events[0].details["count"] == 5


def test_four_failures_do_not_flag(db_session):
    user_id = generate_object_id()
    for minute in range(4):
        SecurityMonitor.log_security_event(
            db_session,
            _event(SecurityEventType.LOGIN_FAILURE, Severity.MEDIUM, user_id=user_id),
            now=NOW + timedelta(minutes=minute),
        )

    assert SecurityMonitor.detect_suspicious_activity(
        db_session, user_id, "203.0.113.10", now=NOW + timedelta(minutes=5),
    ) is False
    assert _suspicious_events(db_session, user_id) == []


def test_failure_outside_window_does_not_count(db_session):
    user_id = generate_object_id()
    for _ in range(4):
        SecurityMonitor.log_security_event(
            db_session, _event(SecurityEventType.LOGIN_FAILURE, Severity.MEDIUM, user_id=user_id), now=NOW,
        )
    later = NOW + timedelta(minutes=61)
    SecurityMonitor.log_security_event(
        db_session, _event(SecurityEventType.LOGIN_FAILURE, Severity.MEDIUM, user_id=user_id), now=later,
    )

    assert SecurityMonitor.detect_suspicious_activity(db_session, user_id, "203.0.113.10", now=later) is False


def test_three_distinct_success_ips_flag_user(db_session):
    user_id = generate_object_id()
    for minute, ip in enumerate(["198.51.100.1", "198.51.100.2", "198.51.100.3"]):
        SecurityMonitor.log_security_event(
            db_session,
            _event(SecurityEventType.LOGIN_SUCCESS, user_id=user_id, ip=ip),
            now=NOW + timedelta(minutes=minute),
        )

    assert SecurityMonitor.detect_suspicious_activity(
        db_session, user_id, "198.51.100.3", now=NOW + timedelta(minutes=10),
    ) is True
    event = _suspicious_events(db_session, user_id)[0]
    assert event.severity == "medium"
    assert event.details["reason"] == "Multiple IP addresses"
    assert event.details["ips"] == ["198.51.100.1", "198.51.100.2", "198.51.100.3"]


def test_two_distinct_success_ips_do_not_flag(db_session):
    user_id = generate_object_id()
    for ip in ["198.51.100.1", "198.51.100.2", "198.51.100.2"]:
        SecurityMonitor.log_security_event(
            db_session, _event(SecurityEventType.LOGIN_SUCCESS, user_id=user_id, ip=ip), now=NOW,
        )

    assert SecurityMonitor.detect_suspicious_activity(
        db_session, user_id, "198.51.100.2", now=NOW + timedelta(minutes=1),
    ) is False


def test_detector_ignores_malformed_user_id(db_session):
    assert SecurityMonitor.detect_suspicious_activity(db_session, "admin-user", "203.0.113.10") is False


def test_security_metrics_aggregate_recent_events(db_session):
    user_id = generate_object_id()
    SecurityMonitor.log_security_event(
        db_session, _event(SecurityEventType.LOGIN_FAILURE, Severity.MEDIUM, ip="203.0.113.5"), now=NOW,
    )
    SecurityMonitor.log_security_event(
        db_session, _event(SecurityEventType.LOGIN_FAILURE, Severity.MEDIUM, ip="203.0.113.5"), now=NOW,
    )
    SecurityMonitor.log_security_event(
        db_session,
        _event(SecurityEventType.ROLE_ESCALATION_ATTEMPT, Severity.CRITICAL, user_id=user_id, ip="203.0.113.6"),
        now=NOW,
    )
    # Outside the hour range
    SecurityMonitor.log_security_event(
        db_session, _event(SecurityEventType.LOGIN_SUCCESS, ip="203.0.113.7"), now=NOW - timedelta(hours=3),
    )

    metrics = SecurityMonitor.get_security_metrics(db_session, "hour", now=NOW + timedelta(minutes=1))

    events = {bucket.key: bucket.count for bucket in metrics.event_counts}
    assert events == {"login_failure": 2, "role_escalation_attempt": 1}
    severities = {bucket.key: bucket.count for bucket in metrics.severity_counts}
    assert severities == {"medium": 2, "critical": 1}
    assert metrics.top_ips[0].key == "203.0.113.5"
    assert metrics.top_ips[0].count == 2
    assert metrics.unresolved_alerts == 1


def test_monthly_activity_groups_by_month(db_session):
    user_id = generate_object_id()
    for created_at in [datetime(2026, 1, 5), datetime(2026, 1, 20), datetime(2026, 2, 2), datetime(2025, 6, 1)]:
        db_session.add(ActivityLog(user_id=user_id, action="login", resource="session", created_at=created_at))
    db_session.commit()

    activity = SecurityMonitor.get_monthly_activity(db_session, user_id, now=NOW)

    assert [(a.month, a.activities) for a in activity] == [("Jan", 2), ("Feb", 1)]
