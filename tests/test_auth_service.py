"""Session issuing, examination and revocation."""
from datetime import datetime, timedelta, timezone
from unittest import mock

import httpx
import pytest

from app.core.constants import AuthProvider, SecurityEventType, UserRole
from app.core.security import decode_session_token, encode_session_token
from app.models.audit import ActivityLog, SecurityLog
from app.models.session import SessionRecord
from app.models.user import User
from app.schemas.session import AdminSession, AnonymousSession, UserSession
from app.services import auth_service as auth_service_module
from app.services.auth_service import AdminCredentials, AuthService
from app.services.turnstile_service import TurnstileVerifier
from app.utils.errors import (
    InvalidCredentialsError, MissingCredentialsError,
    SecurityVerificationError, Unauthorized, UserAlreadyExistsError,
)
from tests.conftest import (
    ADMIN_EMAIL, ADMIN_PASSWORD, GOOD_TURNSTILE_TOKEN, USER_PASSWORD, fake_google_verifier,
)

IP = "203.0.113.20"


def _events(db, event, severity=None):
    query = db.query(SecurityLog).filter(SecurityLog.event == event.value)
    if severity:
        query = query.filter(SecurityLog.severity == severity)
    return query.all()


# ---- Admin path ----

async def test_admin_login_issues_admin_session(db_session, auth_service):
    issued = await auth_service.admin_login(db_session, ADMIN_EMAIL, ADMIN_PASSWORD, GOOD_TURNSTILE_TOKEN, IP)

    claims = decode_session_token(issued.token)
    assert claims["role"] == "admin"
    assert claims["session_type"] == "admin"
    assert claims["provider"] == "admin-credentials"
    assert claims["user_id"] == "admin-user"
    assert claims["session_id"].startswith("admin-session-")
    assert claims["sub"].startswith("admin-admin-user-")
    assert isinstance(issued.session, AdminSession)

    success = _events(db_session, SecurityEventType.LOGIN_SUCCESS)
    assert len(success) == 1
    assert success[0].user_id is None
    assert success[0].details["provider"] == "admin-credentials"
    assert db_session.query(SessionRecord).filter(
        SessionRecord.session_id == issued.session.session_id
    ).count() == 1


async def test_admin_login_wrong_password(db_session, auth_service):
    with pytest.raises(InvalidCredentialsError):
        await auth_service.admin_login(db_session, ADMIN_EMAIL, "wrong", GOOD_TURNSTILE_TOKEN, IP)

    failures = _events(db_session, SecurityEventType.LOGIN_FAILURE)
    assert len(failures) == 1
    assert failures[0].severity == "high"
    assert _events(db_session, SecurityEventType.LOGIN_SUCCESS) == []
    assert db_session.query(SessionRecord).count() == 0


async def test_admin_login_unconfigured_credentials_fail_closed(db_session, turnstile_verifier):
    service = AuthService(AdminCredentials(), turnstile_verifier)

    with pytest.raises(InvalidCredentialsError):
        await service.admin_login(db_session, ADMIN_EMAIL, ADMIN_PASSWORD, GOOD_TURNSTILE_TOKEN, IP)


async def test_admin_login_without_bot_token(db_session, auth_service):
    with pytest.raises(SecurityVerificationError):
        await auth_service.admin_login(db_session, ADMIN_EMAIL, ADMIN_PASSWORD, None, IP)

    failures = _events(db_session, SecurityEventType.TURNSTILE_FAILURE)
    assert len(failures) == 1
    assert failures[0].severity == "high"
    assert failures[0].details["login_type"] == "admin"


async def test_admin_login_missing_fields(db_session, auth_service):
    with pytest.raises(MissingCredentialsError):
        await auth_service.admin_login(db_session, ADMIN_EMAIL, "", GOOD_TURNSTILE_TOKEN, IP)


def test_admin_credentials_repr_hides_password(admin_credentials):
    assert ADMIN_PASSWORD not in repr(admin_credentials)
    assert admin_credentials.matches(ADMIN_EMAIL.upper(), ADMIN_PASSWORD) is True
    assert admin_credentials.matches(ADMIN_EMAIL, ADMIN_PASSWORD + "x") is False


# ---- Credentials path ----

async def test_credentials_login_uses_stored_role(db_session, auth_service, make_user):
    user = make_user()

    issued = await auth_service.login(db_session, user.email, USER_PASSWORD, GOOD_TURNSTILE_TOKEN, IP)

    assert isinstance(issued.session, UserSession)
    assert issued.session.user_id == user.id
    assert issued.session.role == UserRole.USER
    assert issued.session.provider == AuthProvider.CREDENTIALS
    assert issued.session.session_id.startswith("user-session-")


async def test_credentials_login_bad_password_is_generic(db_session, auth_service, make_user):
    user = make_user()

    with pytest.raises(InvalidCredentialsError) as exc:
        await auth_service.login(db_session, user.email, "Wrong1234", GOOD_TURNSTILE_TOKEN, IP)

    assert exc.value.detail == "Invalid email or password"
    failure = _events(db_session, SecurityEventType.LOGIN_FAILURE)[0]
    assert failure.user_id == user.id
    assert failure.details["reason"] == "Invalid password"


async def test_credentials_login_unknown_user(db_session, auth_service):
    with pytest.raises(InvalidCredentialsError):
        await auth_service.login(db_session, "nobody@example.com", USER_PASSWORD, GOOD_TURNSTILE_TOKEN, IP)

    failure = _events(db_session, SecurityEventType.LOGIN_FAILURE)[0]
    assert failure.severity == "medium"
    assert failure.details["reason"] == "User not found or wrong provider"


async def test_credentials_login_rejects_google_account(db_session, auth_service, make_user):
    user = make_user(provider="google")

    with pytest.raises(InvalidCredentialsError):
        await auth_service.login(db_session, user.email, USER_PASSWORD, GOOD_TURNSTILE_TOKEN, IP)


async def test_failed_bot_check_rejects_login(db_session, auth_service, make_user):
    user = make_user()

    with pytest.raises(SecurityVerificationError):
        await auth_service.login(db_session, user.email, USER_PASSWORD, "bad-token", IP)

    failure = _events(db_session, SecurityEventType.TURNSTILE_FAILURE)[0]
    assert failure.severity == "medium"
    assert failure.details["errors"] == ["invalid-input-response"]
    assert _events(db_session, SecurityEventType.LOGIN_SUCCESS) == []


async def test_bot_check_network_failure_rejects_login(db_session, admin_credentials, make_user):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    verifier = TurnstileVerifier(
        secret_key="secret", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    service = AuthService(admin_credentials, verifier)
    user = make_user()

    with pytest.raises(SecurityVerificationError):
        await service.login(db_session, user.email, USER_PASSWORD, GOOD_TURNSTILE_TOKEN, IP)

    failure = _events(db_session, SecurityEventType.TURNSTILE_FAILURE)[0]
    assert failure.details["errors"] == ["network-error"]


async def test_bot_check_without_secret_rejects_login(db_session, admin_credentials, make_user):
    service = AuthService(admin_credentials, TurnstileVerifier(secret_key=None))
    user = make_user()

    with pytest.raises(SecurityVerificationError):
        await service.login(db_session, user.email, USER_PASSWORD, GOOD_TURNSTILE_TOKEN, IP)


# ---- Registration ----

async def test_register_creates_user_and_activity(db_session, auth_service):
    user = await auth_service.register(
        db_session, "New Client", "New@Example.com", USER_PASSWORD, GOOD_TURNSTILE_TOKEN, IP,
    )

    assert user.email == "new@example.com"
    assert user.role == "user"
    assert user.provider == "credentials"
    assert user.compare_password(USER_PASSWORD)
    activity = db_session.query(ActivityLog).filter(ActivityLog.user_id == user.id).one()
    assert activity.action == "account_created"


async def test_register_duplicate_email(db_session, auth_service, make_user):
    make_user(email="taken@example.com")

    with pytest.raises(UserAlreadyExistsError):
        await auth_service.register(
            db_session, "Other", "taken@example.com", USER_PASSWORD, GOOD_TURNSTILE_TOKEN, IP,
        )


# ---- Google path ----

def test_google_first_sign_in_creates_user(db_session, auth_service):
    issued = auth_service.google_login(db_session, "google:new@example.com:New Client", IP)

    user = db_session.query(User).filter(User.email == "new@example.com").one()
    assert user.provider == "google"
    assert user.password_hash is None
    assert issued.session.user_id == user.id
    assert issued.session.provider == AuthProvider.GOOGLE

    again = auth_service.google_login(db_session, "google:new@example.com:New Client", IP)
    assert again.session.user_id == user.id
    assert db_session.query(User).count() == 1


def test_google_sign_in_reuses_existing_account_untouched(db_session, auth_service, make_user):
    user = make_user(email="client@example.com")
    password_hash = user.password_hash

    issued = auth_service.google_login(db_session, "google:client@example.com:Someone Else", IP)

    assert issued.session.user_id == user.id
    assert issued.session.provider == AuthProvider.GOOGLE
    assert issued.session.role == UserRole.USER
    assert db_session.query(User).count() == 1

    db_session.refresh(user)
    assert user.provider == "credentials"
    assert user.name == "Test Client"
    assert user.password_hash == password_hash
    assert user.last_login is None
    assert _events(db_session, SecurityEventType.LOGIN_FAILURE) == []


def test_google_invalid_token(db_session, auth_service):
    with pytest.raises(Unauthorized):
        auth_service.google_login(db_session, "garbage", IP)

    assert len(_events(db_session, SecurityEventType.LOGIN_FAILURE)) == 1


def test_verify_google_token_checks_audience(monkeypatch):
    monkeypatch.setattr(auth_service_module.settings, "GOOGLE_CLIENT_ID", "client-id")
    with mock.patch.object(auth_service_module.id_token, "verify_oauth2_token") as verify:
        verify.return_value = {"email": "g@example.com", "name": "G", "picture": "https://img"}

        data = auth_service_module.verify_google_token("id-token")

    assert data == {"email": "g@example.com", "name": "G", "image": "https://img"}
    assert verify.call_args.args[0] == "id-token"
    assert verify.call_args.args[2] == "client-id"


def test_verify_google_token_requires_client_id(monkeypatch):
    monkeypatch.setattr(auth_service_module.settings, "GOOGLE_CLIENT_ID", None)
    with pytest.raises(ValueError):
        auth_service_module.verify_google_token("id-token")


# ---- Examination ----

def _user_session(user, **overrides):
    values = dict(
        subject=f"user-{user.id}-1",
        user_id=user.id,
        email=user.email,
        name=user.name,
        role=UserRole(user.role),
        provider=AuthProvider(user.provider),
        session_id="user-session-1-abcd",
        issued_at=datetime.now(timezone.utc),
    )
    values.update(overrides)
    return UserSession(**values)


def test_admin_session_with_user_role_is_repaired_once(db_session, auth_service):
    session = AdminSession(
        subject="admin-admin-user-1",
        user_id="admin-user",
        role=UserRole.USER,
        provider=AuthProvider.ADMIN_CREDENTIALS,
        session_id="admin-session-1-abcd",
        issued_at=datetime.now(timezone.utc),
    )

    repaired = auth_service.examine_session(db_session, session, IP)
    repaired_again = auth_service.examine_session(db_session, repaired, IP)

    assert repaired.role == UserRole.ADMIN
    assert repaired_again == repaired
    events = _events(db_session, SecurityEventType.ROLE_ESCALATION_ATTEMPT, "critical")
    assert len(events) == 1


def test_user_session_claiming_admin_is_rejected(db_session, auth_service, make_user):
    user = make_user()
    session = _user_session(user, role=UserRole.ADMIN)

    assert auth_service.examine_session(db_session, session, IP) is None
    assert len(_events(db_session, SecurityEventType.ROLE_ESCALATION_ATTEMPT, "critical")) == 1
    # The forged claim is not laundered by the role re-sync
    assert _events(db_session, SecurityEventType.SUSPICIOUS_ACTIVITY) == []


def test_promoted_user_session_is_rejected_after_resync(db_session, auth_service, make_user):
    user = make_user()
    session = _user_session(user)
    user.role = "admin"
    db_session.commit()

    assert auth_service.examine_session(db_session, session, IP) is None
    change = _events(db_session, SecurityEventType.SUSPICIOUS_ACTIVITY, "high")
    assert change[0].details["reason"] == "Role change detected during session"
    assert len(_events(db_session, SecurityEventType.ROLE_ESCALATION_ATTEMPT)) == 1


def test_resolve_session_round_trip(db_session, auth_service, make_user):
    user = make_user()
    token = encode_session_token(_user_session(user).to_claims())

    session = auth_service.resolve_session(db_session, token, IP)

    assert isinstance(session, UserSession)
    assert session.user_id == user.id


def test_resolve_expired_token(db_session, auth_service, make_user):
    user = make_user()
    issued_at = datetime.now(timezone.utc) - timedelta(days=31)
    token = encode_session_token(_user_session(user).to_claims(), issued_at=issued_at)

    assert isinstance(auth_service.resolve_session(db_session, token, IP), AnonymousSession)
    assert len(_events(db_session, SecurityEventType.SESSION_EXPIRED, "low")) == 1


def test_resolve_forged_signature(db_session, auth_service):
    assert isinstance(auth_service.resolve_session(db_session, "not.a.token", IP), AnonymousSession)
    assert len(_events(db_session, SecurityEventType.SUSPICIOUS_ACTIVITY, "medium")) == 1


def test_resolve_without_token_logs_nothing(db_session, auth_service):
    assert isinstance(auth_service.resolve_session(db_session, None), AnonymousSession)
    assert db_session.query(SecurityLog).count() == 0


async def test_logout_revokes_session(db_session, auth_service, make_user):
    user = make_user()
    issued = await auth_service.login(db_session, user.email, USER_PASSWORD, GOOD_TURNSTILE_TOKEN, IP)

    auth_service.logout(db_session, issued.session, IP)

    assert isinstance(auth_service.resolve_session(db_session, issued.token, IP), AnonymousSession)
    assert len(_events(db_session, SecurityEventType.LOGOUT, "low")) == 1
    assert db_session.query(ActivityLog).filter(ActivityLog.action == "logout").count() == 1


def test_refresh_moves_issue_time_forward(db_session, auth_service, make_user):
    user = make_user()
    session = _user_session(user, issued_at=datetime.now(timezone.utc) - timedelta(hours=20))

    refreshed = auth_service.refresh_session_token(db_session, session)

    claims = decode_session_token(refreshed.token)
    assert refreshed.session.issued_at > session.issued_at
    assert claims["session_id"] == session.session_id
    assert claims["exp"] - claims["iat"] == refreshed.expires_in


async def test_refresh_keeps_session_record_expiry_current(db_session, auth_service, make_user):
    user = make_user()
    issued = await auth_service.login(db_session, user.email, USER_PASSWORD, GOOD_TURNSTILE_TOKEN, IP)
    record = db_session.query(SessionRecord).filter(SessionRecord.session_id == issued.session.session_id).one()
    first_expiry = record.expires_at

    later = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(hours=2)
    refreshed = auth_service.refresh_session_token(db_session, issued.session, now=later)

    db_session.refresh(record)
    expected = later.replace(tzinfo=None) + timedelta(seconds=refreshed.expires_in)
    assert record.expires_at == expected
    assert record.expires_at > first_expiry
    assert record.last_seen_at == later.replace(tzinfo=None)
