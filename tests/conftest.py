"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, created fresh for each test
- Organizations for tenant-scoped tests
- Recording audit sink and message dispatcher
- HTTPX AsyncClient with the organization header set
"""
import os
import uuid
from datetime import datetime, timezone
from typing import AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Keep the app's own engine off disk before anything imports settings.
os.environ["DATABASE_URL"] = "sqlite://"

from practice_growth.core.deps import get_db
from practice_growth.db.base import Base
from practice_growth.db.models import Organization
from practice_growth.main import app
from practice_growth.services.audit_service import RecordingAuditSink, get_audit_sink
from practice_growth.services.messaging import DispatchError, get_dispatcher


# =============================================================================
# Clock
# =============================================================================

NOW = datetime(2026, 3, 2, 17, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed evaluation time (09:00 in America/Los_Angeles)."""
    return NOW


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    """Session bound to the per-test database; app code may commit freely."""
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture(scope="function")
def second_session(engine) -> Generator[Session, None, None]:
    """An independent session on the same database, standing in for a concurrent writer."""
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


def _make_org(db: Session, name: str) -> Organization:
    org = Organization(
        id=uuid.uuid4(),
        name=name,
        slug=f"{name.lower().replace(' ', '-')}-{uuid.uuid4().hex[:8]}",
        timezone="America/Los_Angeles",
        review_links={"google": "https://g.page/r/test-practice/review"},
    )
    db.add(org)
    db.commit()
    return org


@pytest.fixture(scope="function")
def test_org(db: Session) -> Organization:
    """Create a test organization."""
    return _make_org(db, "Spine Center")


@pytest.fixture(scope="function")
def other_org(db: Session) -> Organization:
    """A second tenant for isolation checks."""
    return _make_org(db, "Other Clinic")


# =============================================================================
# Collaborators
# =============================================================================

@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


class RecordingDispatcher:
    """Remembers every hand-off; optionally fails the channels listed in ``fail``."""

    def __init__(self, fail: tuple[str, ...] = ()):
        self.fail = fail
        self.calls: list[tuple[str, str | None, dict]] = []

    def _handle(self, kind: str, target: str | None, context: dict) -> str:
        if kind in self.fail:
            raise DispatchError(f"{kind} provider unavailable")
        self.calls.append((kind, target, context))
        return f"{kind}-{len(self.calls)}"

    def send_email(self, org_id, to, template_id, context):
        return self._handle("email", to, context)

    def send_sms(self, org_id, to, template_id, context):
        return self._handle("sms", to, context)

    def create_task(self, org_id, title, description, assignee_id, context):
        return self._handle("task", title, context)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def make_dispatcher() -> type[RecordingDispatcher]:
    return RecordingDispatcher


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(
    db: Session,
    audit_sink: RecordingAuditSink,
    dispatcher: RecordingDispatcher,
) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient without tenant headers."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_audit_sink] = lambda: audit_sink
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def org_client(client: AsyncClient, test_org: Organization) -> AsyncClient:
    """The same client acting for ``test_org``."""
    client.headers["X-Organization-ID"] = str(test_org.id)
    client.headers["X-User-ID"] = str(uuid.uuid4())
    return client
