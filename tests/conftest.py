"""Pytest fixtures for async FastAPI testing.

Loads `.env.test`, initializes a clean test database, and provides an
`AsyncClient` for integration tests. The Turnstile endpoint is served by an
`httpx.MockTransport` and Google token verification is replaced with a fake,
so tests make no outbound requests.
"""
import pathlib
import pytest
from dotenv import load_dotenv

# settings are read at import time; load .env.test before any app module
ROOT = pathlib.Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=str(ROOT / ".env.test"), override=True)

import httpx  # noqa: E402

ADMIN_EMAIL = "admin@studio.test"
ADMIN_PASSWORD = "Adm1nPassw0rd!"
GOOD_TURNSTILE_TOKEN = "good-turnstile-token"
USER_PASSWORD = "StrongPassw0rd"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session")
def prepare_database():
    """Create clean schema for the test session."""
    from app.core.database import engine, Base

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    yield

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(prepare_database):
    """Yield a SQLAlchemy session; all rows are removed afterwards."""
    from app.core.database import SessionLocal, Base

    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
        db.close()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    from app.dependencies.rate_limit import reset_buckets

    reset_buckets()
    yield
    reset_buckets()


def turnstile_handler(request: httpx.Request) -> httpx.Response:
    form = dict(httpx.QueryParams(request.content.decode()))
    if form.get("response") == GOOD_TURNSTILE_TOKEN:
        return httpx.Response(200, json={"success": True, "error-codes": [], "hostname": "studio.test"})
    return httpx.Response(200, json={"success": False, "error-codes": ["invalid-input-response"]})


@pytest.fixture
def turnstile_verifier():
    from app.services.turnstile_service import TurnstileVerifier

    client = httpx.AsyncClient(transport=httpx.MockTransport(turnstile_handler))
    return TurnstileVerifier(secret_key="test-turnstile-secret", client=client)


def fake_google_verifier(token: str) -> dict:
    """Accepts tokens shaped ``google:<email>:<name>``."""
    parts = token.split(":")
    if len(parts) != 3 or parts[0] != "google":
        raise ValueError("Token used too late or malformed")
    return {"email": parts[1], "name": parts[2], "image": None}


@pytest.fixture
def admin_credentials():
    from app.services.auth_service import AdminCredentials

    return AdminCredentials(email=ADMIN_EMAIL, password=ADMIN_PASSWORD)


@pytest.fixture
def auth_service(admin_credentials, turnstile_verifier):
    from app.services.auth_service import AuthService

    return AuthService(admin_credentials, turnstile_verifier, google_verifier=fake_google_verifier)


@pytest.fixture
def make_user(db_session):
    """Factory for persisted users."""
    from app.core.security import hash_password
    from app.models.user import User

    def _make(email="client@example.com", role="user", provider="credentials", password=USER_PASSWORD):
        user = User(
            email=email,
            name="Test Client",
            role=role,
            provider=provider,
            password_hash=hash_password(password) if provider == "credentials" else None,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def test_app(auth_service):
    """FastAPI app wired to the test auth service."""
    from app.main import create_app
    from app.dependencies.auth import get_auth_service

    app = create_app()
    app.dependency_overrides[get_auth_service] = lambda: auth_service
    return app


@pytest.fixture
async def async_client(db_session, test_app):
    """Provide an httpx AsyncClient configured with the FastAPI app."""
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://testserver") as client:
        yield client
