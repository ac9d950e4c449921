"""Shared fixtures for the passkey server tests."""

import os

# Must be set before passkey_server.main builds its module-level app
os.environ.setdefault("PASSKEY_STORAGE_BACKEND", "memory")
os.environ.setdefault("PASSKEY_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("PASSKEY_ENABLE_BACKGROUND_TASKS", "false")

import pytest
from fastapi.testclient import TestClient

from passkey_server.config import Settings
from passkey_server.database import close_db, create_engine, create_session_factory, init_db
from passkey_server.main import create_app
from passkey_server.schemas.ceremony import RelyingParty
from passkey_server.services.challenge_store import MemoryChallengeStore, SQLChallengeStore
from passkey_server.services.credential_registry import (
    MemoryCredentialRegistry,
    SQLCredentialRegistry,
)
from passkey_server.services.webauthn_service import WebAuthnService
from tests.fakes import FakeClock, FakeVerifier, InspectableChallengeStore


@pytest.fixture
def settings() -> Settings:
    """Settings for an isolated in-memory application."""
    return Settings(
        storage_backend="memory",
        rate_limit_enabled=False,
        enable_background_tasks=False,
        database_url="sqlite+aiosqlite:///:memory:",
    )


@pytest.fixture
def relying_party(settings: Settings) -> RelyingParty:
    return RelyingParty(**settings.get_relying_party_config())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
async def session_factory(settings: Settings):
    """Session factory over a fresh in-memory SQLite database."""
    engine = create_engine(settings)
    await init_db(engine)
    yield create_session_factory(engine)
    await close_db(engine)


@pytest.fixture(params=["memory", "sql"])
async def registry(request, session_factory):
    """Credential registry for each storage backend."""
    if request.param == "memory":
        return MemoryCredentialRegistry()
    return SQLCredentialRegistry(session_factory)


@pytest.fixture(params=["memory", "sql"])
async def challenge_store(request, session_factory, clock):
    """Challenge store for each storage backend, driven by the fake clock."""
    if request.param == "memory":
        return MemoryChallengeStore(ttl_seconds=300, clock=clock)
    return SQLChallengeStore(session_factory, ttl_seconds=300, clock=clock)


@pytest.fixture
def service(relying_party, verifier, clock) -> WebAuthnService:
    """Ceremony services over in-memory stores."""
    return WebAuthnService(
        registry=MemoryCredentialRegistry(),
        challenges=InspectableChallengeStore(ttl_seconds=300, clock=clock),
        verifier=verifier,
        relying_party=relying_party,
    )


@pytest.fixture
def client(settings, verifier):
    """Test client for an application using the fake verifier."""
    app = create_app(settings, verifier=verifier)
    with TestClient(app) as test_client:
        yield test_client
