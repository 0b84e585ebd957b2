"""
tests/conftest.py -- Shared test fixtures for the marketplace auth tests.

This module provides:
  - engine / store / ledger / service: file-backed SQLite per test (unit tests)
  - unreachable_engine: an engine stand-in whose connections always fail
  - make_vendor / make_client: factory fixtures for registration requests
  - _patch_lifespan(): wires a test engine + service into app.state
  - api_client: TestClient over the real app with an isolated database

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit-test fixtures use a file under tmp_path so the
concurrency tests get real SQLite locking.

DEBUG and RATE_LIMIT_ENABLED must be set before any auth/api import so
get_settings() generates signing secrets and the login limiter is a no-op.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set env before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from api.main import app
from auth.db import create_auth_engine
from auth.ledger import RefreshTokenLedger
from auth.models import ClientRegistration, VendorRegistration
from auth.session import SessionService, build_session_service
from auth.store import CredentialStore
from core.config import get_settings

# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _vendor_registration(email: str = "vendor@x.com", password: str = "Abcd1234") -> VendorRegistration:
    return VendorRegistration(
        email=email,
        password=password,
        company_name="PT Vendor Jaya",
        phone="081234567890",
        address="Jl. Sudirman 1, Jakarta",
        npwp="01.234.567.8-901.000",
    )


def _client_registration(email: str = "c@x.com", password: str = "Abcd1234") -> ClientRegistration:
    return ClientRegistration(
        email=email,
        password=password,
        contact_person="Budi",
        phone="+6281234567890",
        company_name="CV Client",
        address="Jl. Thamrin 2, Jakarta",
    )


@pytest.fixture
def make_vendor():
    """Factory fixture: make_vendor(email=..., password=...) -> VendorRegistration."""
    return _vendor_registration


@pytest.fixture
def make_client():
    """Factory fixture: make_client(email=..., password=...) -> ClientRegistration."""
    return _client_registration


# ---------------------------------------------------------------------------
# Unit-test fixtures -- fresh file-backed database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def engine(tmp_path) -> Generator[Engine, None, None]:
    eng = create_auth_engine(f"sqlite:///{tmp_path / 'auth.db'}")
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine: Engine) -> CredentialStore:
    return CredentialStore(engine)


@pytest.fixture
def ledger(engine: Engine) -> RefreshTokenLedger:
    return RefreshTokenLedger(engine)


@pytest.fixture
def service(engine: Engine) -> SessionService:
    return build_session_service(get_settings(), engine)


class _UnreachableEngine:
    """Stands in for an Engine whose database has gone away: every checkout fails."""

    def _fail(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))

    connect = _fail
    begin = _fail


@pytest.fixture
def unreachable_engine() -> _UnreachableEngine:
    """Swap in with monkeypatch.setattr(component, "engine", unreachable_engine)."""
    return _UnreachableEngine()


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(engine: Engine, service: SessionService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-created test engine and service into app.state so
    TestClient routes see the isolated test DB rather than the default file.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.session_service = service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, SessionService], None, None]:
    """Yield (client, service) for API integration tests.

    One in-memory database per test module; tests use distinct emails so
    they do not interfere with each other inside the module.
    """
    name = request.module.__name__.rsplit(".", 1)[-1]
    eng = create_auth_engine(f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true")
    svc = build_session_service(get_settings(), eng)

    app.router.lifespan_context = _patch_lifespan(eng, svc)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, svc

    eng.dispose()
