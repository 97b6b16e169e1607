from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
import hashlib
import hmac
import secrets
from app.core.config import settings

pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
)


class TokenExpiredError(Exception):
    """Raised when a session token is well-formed but past its expiry."""


def hash_password(password: str) -> str:
    if not password or not isinstance(password, str):
        raise ValueError("Password must be a non-empty string")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not plain_password or not hashed_password:
        return False
    if not isinstance(plain_password, str):
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception:
        return False


def constant_time_equals(left: Optional[str], right: Optional[str]) -> bool:
    """Compare two secrets without leaking timing; None never matches."""
    if left is None or right is None:
        return False
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))


def _signing_key() -> str:
    if not settings.SECRET_KEY:
        raise RuntimeError("SECRET_KEY is not configured; refusing to sign session tokens")
    return settings.SECRET_KEY


def encode_session_token(
    claims: Dict[str, Any],
    issued_at: Optional[datetime] = None,
    max_age: Optional[timedelta] = None,
) -> str:
    """Sign session claims, stamping ``iat`` and ``exp``."""
    issued_at = issued_at or datetime.now(timezone.utc)
    max_age = max_age or timedelta(days=settings.SESSION_MAX_AGE_DAYS)
    payload = dict(claims)
    payload.update({
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + max_age).timestamp()),
    })
    return jwt.encode(payload, _signing_key(), algorithm=settings.ALGORITHM)


def decode_session_token(token: str) -> Optional[Dict[str, Any]]:
    """Return verified claims, None for a bad token, or raise TokenExpiredError."""
    if not token or not settings.SECRET_KEY:
        return None
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"verify_aud": False},
        )
    except ExpiredSignatureError as exc:
        raise TokenExpiredError("Session token expired") from exc
    except JWTError:
        return None


def _csrf_signature(payload: str) -> str:
    return hmac.new(settings.CSRF_SECRET.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def generate_csrf_token(now: Optional[datetime] = None) -> str:
    """Return ``<ms timestamp>.<random hex>.<hmac-sha256>`` signed with CSRF_SECRET."""
    if not settings.CSRF_SECRET:
        raise RuntimeError("CSRF_SECRET is not configured; refusing to issue CSRF tokens")
    now = now or datetime.now(timezone.utc)
    payload = f"{int(now.timestamp() * 1000)}.{secrets.token_hex(16)}"
    return f"{payload}.{_csrf_signature(payload)}"


def verify_csrf_token(token: Optional[str], now: Optional[datetime] = None) -> bool:
    """True for a correctly signed token younger than CSRF_TOKEN_MAX_AGE_MINUTES."""
    if not token or not settings.CSRF_SECRET:
        return False
    parts = token.split(".")
    if len(parts) != 3:
        return False

    timestamp, random_value, signature = parts
    if not constant_time_equals(signature, _csrf_signature(f"{timestamp}.{random_value}")):
        return False
    try:
        issued_ms = int(timestamp)
    except ValueError:
        return False

    now = now or datetime.now(timezone.utc)
    age_ms = int(now.timestamp() * 1000) - issued_ms
    return 0 <= age_ms < settings.CSRF_TOKEN_MAX_AGE_MINUTES * 60 * 1000
