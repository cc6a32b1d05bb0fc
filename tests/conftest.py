"""
Shared pytest fixtures for the Carbon Access Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - tenant: Pre-created Tenant entity
    - make_tenant / make_user: factories for seeded rows
    - auth_headers: Bearer header for a User
"""

import itertools

import pytest

from carbonaccess import create_app
from carbonaccess.models import db as _db
from carbonaccess.models.auth import Tenant, User
from carbonaccess.services.jwt_service import generate_token_for

_seq = itertools.count(1)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    cache = app.extensions["consultant_scope_cache"]
    with app.app_context():
        # Tables are recreated per test and ids are reused; a cached owner
        # from a previous test would be stale.
        cache.clear()
        yield
        cache.clear()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Seed helpers ─────────────────────────────────────────────────────────


def _make_tenant(**kw) -> Tenant:
    n = next(_seq)
    t = Tenant(name=kw.pop("name", f"Client {n}"), slug=kw.pop("slug", f"client-{n}"), **kw)
    _db.session.add(t)
    _db.session.flush()
    return t


def _make_user(role: str, tenant: Tenant | None = None, **kw) -> User:
    n = next(_seq)
    u = User(
        role=role,
        tenant_id=tenant.id if tenant is not None else kw.pop("tenant_id", None),
        email=kw.pop("email", f"{role}-{n}@example.com"),
        full_name=kw.pop("full_name", f"{role.replace('_', ' ').title()} {n}"),
        **kw,
    )
    _db.session.add(u)
    _db.session.flush()
    return u


@pytest.fixture()
def tenant():
    """A tenant with no ownership chain."""
    return _make_tenant(name="Acme Manufacturing", slug="acme")


@pytest.fixture()
def make_tenant():
    """Factory: make_tenant(**columns) -> Tenant (flushed)."""
    return _make_tenant


@pytest.fixture()
def make_user():
    """Factory: make_user(role, tenant=None, **columns) -> User (flushed)."""
    return _make_user


@pytest.fixture()
def auth_headers():
    """Return a callable producing an Authorization header for a user."""
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {generate_token_for(user)}"}
    return _headers
