"""Test fixtures — a throwaway SQLite database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own file-backed SQLite database (aiosqlite) with the
   schema created from the ORM metadata.
2. The HTTP client overrides get_db so every request opens its own
   session on that database, exactly like production, and overrides the
   token codec with fixed test secrets.
3. Rate-limit counters are cleared between tests.

Environment is set before anything from medconnect is imported, because
settings are read once at import time.
"""

import os

os.environ.setdefault("MEDCONNECT_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("MEDCONNECT_JWT_ACCESS_SECRET", "test-access-secret-0123456789abcdef")
os.environ.setdefault("MEDCONNECT_JWT_REFRESH_SECRET", "test-refresh-secret-0123456789abcdef")
os.environ.setdefault("MEDCONNECT_BCRYPT_ROUNDS", "4")
os.environ.setdefault("MEDCONNECT_RATE_LIMIT_MAX_REQUESTS", "10000")
os.environ.setdefault("MEDCONNECT_AUTH_RATE_LIMIT_MAX_REQUESTS", "10000")
os.environ.setdefault("MEDCONNECT_TOKEN_CLEANUP_INTERVAL_SECONDS", "0")

import uuid  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from medconnect.auth.dependencies import get_token_codec  # noqa: E402
from medconnect.auth.jwt import TokenCodec  # noqa: E402
from medconnect.auth.password import hash_password  # noqa: E402
from medconnect.auth.rate_limit import memory_store  # noqa: E402
from medconnect.db.engine import get_db  # noqa: E402
from medconnect.db.models import Base, Role  # noqa: E402
from medconnect.main import app  # noqa: E402
from medconnect.services.auth_service import AuthService  # noqa: E402
from medconnect.services.credential_store import CredentialStore  # noqa: E402

TEST_ROUNDS = 4
PASSWORD = "Secure123pass"


def unique_email(prefix: str = "agent") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@clinicnet.io"


@pytest.fixture()
def codec() -> TokenCodec:
    return TokenCodec(
        access_secret="fixture-access-secret",
        refresh_secret="fixture-refresh-secret",
    )


@pytest_asyncio.fixture()
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'medconnect.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture()
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def auth_service(db_session, codec) -> AuthService:
    return AuthService(db_session, codec=codec, bcrypt_rounds=TEST_ROUNDS)


@pytest_asyncio.fixture()
async def client(session_factory, codec):
    """HTTP client against the real app with DB + codec overridden."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_codec] = lambda: codec
    memory_store.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    memory_store.reset()


async def register_agent(client, email: str | None = None, password: str = PASSWORD, **extra):
    """Register through the API and return the response `data` block."""
    body = {
        "email": email or unique_email(),
        "password": password,
        "name": "Harbor Health Agents",
        "companyName": "Harbor Health Ltd",
        **extra,
    }
    r = await client.post("/api/v1/auth/register", json=body)
    assert r.status_code == 201, r.text
    return r.json()["data"]


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture()
async def admin_headers(client, session_factory):
    """Create an ADMIN directly in the store, log in through the API."""
    email = unique_email("admin")
    async with session_factory() as db:
        await CredentialStore(db).create_user(
            {
                "email": email,
                "password_hash": hash_password(PASSWORD, TEST_ROUNDS),
                "role": Role.ADMIN.value,
            }
        )
    r = await client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    assert r.status_code == 200, r.text
    return bearer(r.json()["data"]["tokens"]["accessToken"])
