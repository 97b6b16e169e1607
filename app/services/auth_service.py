from sqlalchemy.orm import Session
from app.models.user import User
from app.models.session import SessionRecord
from app.models.base import utcnow
from app.core.security import (
    hash_password, constant_time_equals, encode_session_token,
    decode_session_token, TokenExpiredError,
)
from app.core.config import settings
from app.core.constants import (
    ADMIN_PRINCIPAL_ID, AuthProvider, SecurityEventType, SessionType, Severity, UserRole,
)
from app.schemas.security import SecurityEvent
from app.schemas.session import (
    AdminSession, AnonymousSession, AnySession, UserSession, session_from_claims,
)
from app.services.security_monitor import SecurityMonitor
from app.services.turnstile_service import TurnstileConfigurationError, TurnstileVerifier
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from app.utils.errors import (
    InvalidCredentialsError, MissingCredentialsError, SecurityVerificationError,
    Unauthorized, UserAlreadyExistsError,
)
from google.auth.transport import requests
from google.oauth2 import id_token
import logging
import secrets

logger = logging.getLogger(__name__)

Authenticated = Union[UserSession, AdminSession]


class AdminCredentials(BaseModel):
    """The fixed operator email/password pair for the admin sign-in path."""
    model_config = ConfigDict(frozen=True)

    email: Optional[str] = None
    password: Optional[str] = Field(None, repr=False)

    @classmethod
    def from_settings(cls) -> "AdminCredentials":
        return cls(email=settings.ADMIN_EMAIL, password=settings.ADMIN_PASSWORD)

    @property
    def configured(self) -> bool:
        return bool(self.email and self.password)

    def matches(self, email: str, password: str) -> bool:
        if not self.configured:
            return False
        # Evaluate both comparisons so timing does not reveal which one failed
        email_ok = constant_time_equals(email.strip().lower(), self.email.strip().lower())
        password_ok = constant_time_equals(password, self.password)
        return email_ok and password_ok


class IssuedSession(BaseModel):
    session: Authenticated
    token: str
    expires_in: int


def verify_google_token(id_token_str: str) -> dict:
    """
    Verify a Google ID token
    - Validate token signature and audience
    - Return the identity claims we use
    """
    if not settings.GOOGLE_CLIENT_ID:
        raise ValueError("GOOGLE_CLIENT_ID is not configured")

    idinfo = id_token.verify_oauth2_token(
        id_token_str,
        requests.Request(),
        settings.GOOGLE_CLIENT_ID,
    )
    return {
        "email": idinfo["email"],
        "name": idinfo.get("name", ""),
        "image": idinfo.get("picture"),
    }


class AuthService:
    """Authenticates principals and mints, examines and revokes session tokens.

    Sign-in runs as: bot check -> authenticate -> issue. Any step may reject,
    and every rejection is written to the security log before raising.
    """

    def __init__(
        self,
        admin_credentials: AdminCredentials,
        turnstile: TurnstileVerifier,
        google_verifier: Callable[[str], dict] = verify_google_token,
    ):
        self.admin_credentials = admin_credentials
        self.turnstile = turnstile
        self.google_verifier = google_verifier

    # ---- Sign-in paths ----

    async def login(
        self,
        db: Session,
        email: Optional[str],
        password: Optional[str],
        turnstile_token: Optional[str],
        ip_address: str,
        user_agent: str = "",
    ) -> IssuedSession:
        """
        Credentials login
        - Bot check
        - Look up a credentials-provider user and compare the password
        - Issue a user session carrying the stored role
        """
        if not email or not password:
            raise MissingCredentialsError()

        await self._verify_bot_check(
            db, turnstile_token, email, ip_address, user_agent,
            severity=Severity.MEDIUM, login_type="user",
        )

        user = db.query(User).filter(User.email == email.strip().lower()).first()
        if not user or user.provider != AuthProvider.CREDENTIALS.value:
            self._log_login_failure(
                db, None, email, "User not found or wrong provider", ip_address, user_agent,
            )
            raise InvalidCredentialsError()

        if not user.compare_password(password):
            self._log_login_failure(
                db, user.id, email, "Invalid password", ip_address, user_agent,
            )
            raise InvalidCredentialsError()

        user.last_login = utcnow()
        db.commit()

        return self._issue(
            db,
            principal_id=user.id,
            email=user.email,
            name=user.name,
            role=UserRole(user.role),
            provider=AuthProvider.CREDENTIALS,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def admin_login(
        self,
        db: Session,
        email: Optional[str],
        password: Optional[str],
        turnstile_token: Optional[str],
        ip_address: str,
        user_agent: str = "",
    ) -> IssuedSession:
        """
        Admin login against the fixed operator credentials (no user lookup)
        - Issue an admin session with role=admin unconditionally
        """
        if not email or not password:
            raise MissingCredentialsError("Admin email and password are required")

        await self._verify_bot_check(
            db, turnstile_token, email, ip_address, user_agent,
            severity=Severity.HIGH, login_type="admin",
        )

        if not self.admin_credentials.matches(email, password):
            self._log_login_failure(
                db, None, email, "Invalid admin credentials", ip_address, user_agent,
                severity=Severity.HIGH, login_type="admin",
            )
            raise InvalidCredentialsError()

        return self._issue(
            db,
            principal_id=ADMIN_PRINCIPAL_ID,
            email=self.admin_credentials.email,
            name="Admin",
            role=UserRole.ADMIN,
            provider=AuthProvider.ADMIN_CREDENTIALS,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    def google_login(
        self,
        db: Session,
        id_token_str: str,
        ip_address: str,
        user_agent: str = "",
    ) -> IssuedSession:
        """
        Google sign-in
        - Verify token
        - Create the local user on first sign-in
        - A known email reuses the stored identity and role; the row is not modified
        """
        try:
            google_data = self.google_verifier(id_token_str)
        except Exception as e:
            logger.error(f"Google token verification failed: {e}")
            self._log_login_failure(
                db, None, None, "Invalid Google token", ip_address, user_agent, login_type="google",
            )
            raise Unauthorized("Invalid Google token")

        email = google_data["email"].strip().lower()
        user = db.query(User).filter(User.email == email).first()

        if not user:
            user = User(
                email=email,
                name=google_data.get("name") or None,
                image=google_data.get("image"),
                provider=AuthProvider.GOOGLE.value,
                role=UserRole.USER.value,
                last_login=utcnow(),
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            logger.info(f"Created user {user.id} from first Google sign-in")
            SecurityMonitor.log_user_activity(
                db, user.id, "account_created", "user", resource_id=user.id,
                details={"provider": AuthProvider.GOOGLE.value},
                ip_address=ip_address, user_agent=user_agent,
            )
        elif user.provider == AuthProvider.GOOGLE.value:
            user.last_login = utcnow()
            db.commit()

        return self._issue(
            db,
            principal_id=user.id,
            email=user.email,
            name=user.name,
            role=UserRole(user.role),
            provider=AuthProvider.GOOGLE,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def register(
        self,
        db: Session,
        name: str,
        email: str,
        password: str,
        turnstile_token: Optional[str],
        ip_address: str,
        user_agent: str = "",
    ) -> User:
        """Create a credentials-provider account with role=user."""
        await self._verify_bot_check(
            db, turnstile_token, email, ip_address, user_agent,
            severity=Severity.MEDIUM, login_type="register",
        )

        email = email.strip().lower()
        if db.query(User).filter(User.email == email).first():
            raise UserAlreadyExistsError()

        user = User(
            name=name,
            email=email,
            password_hash=hash_password(password),
            provider=AuthProvider.CREDENTIALS.value,
            role=UserRole.USER.value,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        SecurityMonitor.log_user_activity(
            db, user.id, "account_created", "user", resource_id=user.id,
            details={"provider": AuthProvider.CREDENTIALS.value},
            ip_address=ip_address, user_agent=user_agent,
        )
        return user

    # ---- Token lifecycle ----

    def resolve_session(
        self,
        db: Session,
        token: Optional[str],
        ip_address: str = "unknown",
        user_agent: Optional[str] = None,
    ) -> AnySession:
        """Decode a presented token into a session and examine it.

        Returns ``AnonymousSession`` for a missing, malformed, expired,
        revoked or rejected token.
        """
        if not token:
            return AnonymousSession()

        try:
            claims = decode_session_token(token)
        except TokenExpiredError:
            SecurityMonitor.log_security_event(db, SecurityEvent(
                event=SecurityEventType.SESSION_EXPIRED,
                severity=Severity.LOW,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "Session token expired"},
            ))
            return AnonymousSession()

        if claims is None:
            SecurityMonitor.log_security_event(db, SecurityEvent(
                event=SecurityEventType.SUSPICIOUS_ACTIVITY,
                severity=Severity.MEDIUM,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "Session token failed signature verification"},
            ))
            return AnonymousSession()

        try:
            session = session_from_claims(claims)
        except ValidationError as e:
            SecurityMonitor.log_security_event(db, SecurityEvent(
                event=SecurityEventType.SUSPICIOUS_ACTIVITY,
                severity=Severity.HIGH,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "Malformed session claims", "errors": e.error_count()},
            ))
            return AnonymousSession()

        if self.is_revoked(db, session.session_id):
            return AnonymousSession()

        examined = self.examine_session(db, session, ip_address, user_agent)
        return examined if examined is not None else AnonymousSession()

    def examine_session(
        self,
        db: Session,
        session: Authenticated,
        ip_address: str = "unknown",
        user_agent: Optional[str] = None,
    ) -> Optional[Authenticated]:
        """Re-derive trust from a presented session.

        The presented claims are checked for consistency first, so a forged
        admin role on a user session is rejected rather than overwritten by
        the role re-sync. User sessions then pick up their current stored
        role and are checked again.
        """
        checked = self.enforce_consistency(db, session, ip_address, user_agent)
        if checked is None:
            return None

        if isinstance(checked, UserSession):
            synced = self._sync_role(db, checked, ip_address, user_agent)
            if synced.role != checked.role:
                return self.enforce_consistency(db, synced, ip_address, user_agent)
            return synced
        if isinstance(checked, AdminSession):
            return checked
        raise TypeError(f"Unhandled session type: {type(checked).__name__}")

    def enforce_consistency(
        self,
        db: Session,
        session: Authenticated,
        ip_address: str = "unknown",
        user_agent: Optional[str] = None,
    ) -> Optional[Authenticated]:
        """Apply the role/session-type rule to a session.

        - admin session with a non-admin role: repaired to role=admin
        - user session with role=admin: rejected (None)

        Both directions record a critical ``role_escalation_attempt``.
        Repairing an already-consistent session is a no-op.
        """
        if isinstance(session, AdminSession):
            if session.role == UserRole.ADMIN:
                return session
            self._log_role_escalation(
                db, session, "Admin session with non-admin role", ip_address, user_agent,
            )
            return session.model_copy(update={"role": UserRole.ADMIN})

        if isinstance(session, UserSession):
            if session.role != UserRole.ADMIN:
                return session
            self._log_role_escalation(
                db, session, "User session attempting admin role", ip_address, user_agent,
            )
            return None

        raise TypeError(f"Unhandled session type: {type(session).__name__}")

    def refresh_session_token(
        self,
        db: Session,
        session: Authenticated,
        now: Optional[datetime] = None,
    ) -> IssuedSession:
        """Re-sign a validated session with a fresh issue time (sliding expiry).

        The session record's ``expires_at`` follows the new token.
        """
        now = now or datetime.now(timezone.utc)
        refreshed = self._sign(session.model_copy(update={"issued_at": now}))

        record = db.query(SessionRecord).filter(SessionRecord.session_id == session.session_id).first()
        if record is not None:
            issued_at = refreshed.session.issued_at.astimezone(timezone.utc).replace(tzinfo=None)
            record.expires_at = issued_at + timedelta(seconds=refreshed.expires_in)
            record.last_seen_at = issued_at
            db.commit()
        return refreshed

    def logout(
        self,
        db: Session,
        session: Authenticated,
        ip_address: str = "unknown",
        user_agent: Optional[str] = None,
    ) -> None:
        """Revoke the session and record the logout."""
        now = utcnow()
        record = db.query(SessionRecord).filter(SessionRecord.session_id == session.session_id).first()
        if record is None:
            record = SessionRecord(
                session_id=session.session_id,
                principal_id=session.user_id,
                session_type=session.session_type,
                provider=session.provider.value,
            )
            db.add(record)
        record.is_revoked = True
        record.revoked_at = now
        record.revoked_reason = "logout"
        db.commit()

        SecurityMonitor.log_security_event(db, SecurityEvent(
            user_id=session.user_id,
            session_id=session.session_id,
            event=SecurityEventType.LOGOUT,
            severity=Severity.LOW,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"session_type": session.session_type, "timestamp": now.isoformat()},
        ))
        SecurityMonitor.log_user_activity(
            db, session.user_id, "logout", "session",
            details={"session_id": session.session_id},
            ip_address=ip_address, user_agent=user_agent,
        )

    @staticmethod
    def is_revoked(db: Session, session_id: str) -> bool:
        """True if the session was revoked; otherwise marks its record as seen."""
        record = db.query(SessionRecord).filter(SessionRecord.session_id == session_id).first()
        if record is None:
            return False
        if record.is_revoked:
            return True
        record.last_seen_at = utcnow()
        db.commit()
        return False

    # ---- Internals ----

    async def _verify_bot_check(
        self,
        db: Session,
        turnstile_token: Optional[str],
        email: Optional[str],
        ip_address: str,
        user_agent: str,
        severity: Severity,
        login_type: str,
    ) -> None:
        if not turnstile_token:
            error_codes = ["missing-input-response"]
        else:
            try:
                result = await self.turnstile.verify(turnstile_token)
                error_codes = [] if result.success else (result.error_codes or ["verification-failed"])
            except TurnstileConfigurationError as e:
                logger.error(f"Turnstile verification unavailable: {e}")
                error_codes = ["configuration-error"]

        if not error_codes:
            return

        SecurityMonitor.log_security_event(db, SecurityEvent(
            event=SecurityEventType.TURNSTILE_FAILURE,
            severity=severity,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"errors": error_codes, "email": email, "login_type": login_type},
        ))
        raise SecurityVerificationError()

    def _issue(
        self,
        db: Session,
        principal_id: str,
        email: Optional[str],
        name: Optional[str],
        role: UserRole,
        provider: AuthProvider,
        ip_address: str,
        user_agent: str,
    ) -> IssuedSession:
        now = datetime.now(timezone.utc)
        timestamp = int(now.timestamp() * 1000)
        session_type = SessionType.ADMIN if provider == AuthProvider.ADMIN_CREDENTIALS else SessionType.USER
        session_cls = AdminSession if session_type == SessionType.ADMIN else UserSession

        session = session_cls(
            subject=f"{session_type.value}-{principal_id}-{timestamp}",
            user_id=principal_id,
            email=email,
            name=name,
            role=role,
            provider=provider,
            session_id=f"{session_type.value}-session-{timestamp}-{secrets.token_hex(4)}",
            issued_at=now,
        )
        issued = self._sign(session)

        db.add(SessionRecord(
            session_id=session.session_id,
            principal_id=principal_id,
            session_type=session_type.value,
            provider=provider.value,
            ip_address=ip_address,
            user_agent=user_agent,
            expires_at=now.replace(tzinfo=None) + timedelta(seconds=issued.expires_in),
        ))
        db.commit()

        SecurityMonitor.log_security_event(db, SecurityEvent(
            user_id=principal_id,
            session_id=session.session_id,
            event=SecurityEventType.LOGIN_SUCCESS,
            severity=Severity.LOW,
            ip_address=ip_address,
            user_agent=user_agent,
            details={
                "provider": provider.value,
                "session_type": session_type.value,
                "timestamp": now.isoformat(),
            },
        ))
        logger.info(f"Issued {session_type.value} session {session.session_id} via {provider.value}")
        return issued

    @staticmethod
    def _sign(session: Authenticated) -> IssuedSession:
        max_age = timedelta(days=settings.SESSION_MAX_AGE_DAYS)
        token = encode_session_token(session.to_claims(), issued_at=session.issued_at, max_age=max_age)
        # Claims carry whole seconds; keep the returned session in step with the token
        issued_at = datetime.fromtimestamp(int(session.issued_at.timestamp()), tz=timezone.utc)
        return IssuedSession(
            session=session.model_copy(update={"issued_at": issued_at}),
            token=token,
            expires_in=int(max_age.total_seconds()),
        )

    def _sync_role(
        self,
        db: Session,
        session: UserSession,
        ip_address: str,
        user_agent: Optional[str],
    ) -> UserSession:
        if not session.email:
            return session
        try:
            user = db.query(User).filter(User.email == session.email).first()
        except Exception as e:
            logger.error(f"Role re-sync failed for session {session.session_id}: {e}")
            return session
        if user is None:
            return session

        stored_role = UserRole(user.role)
        if stored_role != session.role:
            SecurityMonitor.log_security_event(db, SecurityEvent(
                user_id=session.user_id,
                session_id=session.session_id,
                event=SecurityEventType.SUSPICIOUS_ACTIVITY,
                severity=Severity.HIGH,
                ip_address=ip_address,
                user_agent=user_agent,
                details={
                    "reason": "Role change detected during session",
                    "old_role": session.role.value,
                    "new_role": stored_role.value,
                },
            ))
        return session.model_copy(update={"role": stored_role, "user_id": user.id})

    @staticmethod
    def _log_login_failure(
        db: Session,
        user_id: Optional[str],
        email: Optional[str],
        reason: str,
        ip_address: str,
        user_agent: str,
        severity: Severity = Severity.MEDIUM,
        login_type: str = "user",
    ) -> None:
        SecurityMonitor.log_security_event(db, SecurityEvent(
            user_id=user_id,
            event=SecurityEventType.LOGIN_FAILURE,
            severity=severity,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"reason": reason, "email": email, "login_type": login_type},
        ))

    @staticmethod
    def _log_role_escalation(
        db: Session,
        session: Authenticated,
        reason: str,
        ip_address: str,
        user_agent: Optional[str],
    ) -> None:
        SecurityMonitor.log_security_event(db, SecurityEvent(
            user_id=session.user_id,
            session_id=session.session_id,
            event=SecurityEventType.ROLE_ESCALATION_ATTEMPT,
            severity=Severity.CRITICAL,
            ip_address=ip_address,
            user_agent=user_agent,
            details={
                "reason": reason,
                "session_type": session.session_type,
                "role": session.role.value,
                "provider": session.provider.value,
            },
        ))
