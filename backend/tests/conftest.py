"""
Noted.AI Backend: Test Configuration (conftest.py)
==================================================

What:  Shared pytest fixtures for the whole suite.
How:   A fresh in-memory SQLite database per test (aiosqlite + StaticPool,
       so every session sees the same connection), a fresh app per test,
       and fakes for the three outside services (LLM, SMTP, Stripe)
       installed through app.dependency_overrides.

Fixture Hierarchy (all function-scoped):
    engine ── session_factory ── db_session
                             └── app ── client
    fake_llm, fake_mailer, fake_gateway ── app
    make_user ── user ── headers
    mock_db_session (service unit tests)
"""

import os

# Before any noted import: settings are read once at import time
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["OPENAI_API_KEY"] = ""
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["SMTP_HOST"] = ""
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"

from typing import AsyncGenerator, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import noted.models  # noqa: F401  registers tables
from noted.database import Base, get_db_session
from noted.dependencies import get_llm_service, get_mailer, get_stripe_gateway
from noted.main import create_app
from noted.models.user import User
from noted.services.auth_service import create_access_token, hash_password
from noted.services.billing_service import StripeGateway
from noted.services.email_service import Mailer
from noted.services.llm_base import LLMService

DEFAULT_PASSWORD = "password123"


# ══════════════════════════════════════════════════════════════════════════
# Fakes
# ══════════════════════════════════════════════════════════════════════════

class FakeLLM(LLMService):
    """
    Scriptable LLMService.

    `responses` are returned in order; an Exception instance in the list is
    raised instead. Every call's keyword arguments are kept in `calls`.
    """

    def __init__(self, configured: bool = False, responses: Optional[List] = None):
        self._configured = configured
        self.responses = list(responses or [])
        self.calls: List[dict] = []
        self.health = "available" if configured else "fallback"

    @property
    def configured(self) -> bool:
        return self._configured

    async def complete(self, **kwargs) -> str:
        self.calls.append(kwargs)
        result = self.responses.pop(0) if self.responses else "generated text"
        if isinstance(result, Exception):
            raise result
        return result

    async def health_check(self) -> str:
        return self.health


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A session for arranging and inspecting rows directly."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_db_session():
    """
    Mock async session for service unit tests that never touch SQL.

    Usage:
        mock_db_session.execute.return_value.scalar_one_or_none.return_value = note
    """
    session = AsyncMock()
    session.execute = AsyncMock(return_value=MagicMock())
    session.flush = AsyncMock()
    session.delete = AsyncMock()
    session.add = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# Service fakes
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def fake_llm() -> FakeLLM:
    """Unconfigured by default: every AI call takes the fallback path."""
    return FakeLLM()


@pytest.fixture
def fake_mailer():
    mailer = MagicMock(spec=Mailer)
    mailer.configured = False
    return mailer


@pytest.fixture
def fake_gateway():
    return MagicMock(spec=StripeGateway)


# ══════════════════════════════════════════════════════════════════════════
# Application
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def app(session_factory, fake_llm, fake_mailer, fake_gateway):
    app = create_app()

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_llm_service] = lambda: fake_llm
    app.dependency_overrides[get_mailer] = lambda: fake_mailer
    app.dependency_overrides[get_stripe_gateway] = lambda: fake_gateway
    return app


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ══════════════════════════════════════════════════════════════════════════
# Users
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def make_user(session_factory):
    """
    Factory: `user = await make_user(email=..., plan="student", usage_total_summaries=5)`.

    Any User column can be passed as a keyword.
    """
    counter = {"n": 0}

    async def _make_user(email: Optional[str] = None, password: str = DEFAULT_PASSWORD, **fields) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"student{counter['n']}@example.edu",
            password_hash=await hash_password(password),
            first_name=fields.pop("first_name", "Ada"),
            last_name=fields.pop("last_name", "Lovelace"),
            **fields,
        )
        async with session_factory() as session:
            session.add(user)
            await session.commit()
        return user

    return _make_user


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest_asyncio.fixture
async def user(make_user) -> User:
    return await make_user(email="ada@example.edu")


@pytest.fixture
def headers(user) -> dict:
    return auth_headers(user)


async def reload_user(session_factory, user_id) -> User:
    async with session_factory() as session:
        return await session.get(User, user_id)
