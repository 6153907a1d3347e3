import pytest
import os
from datetime import datetime, timedelta, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from perfreview.database import Base
from perfreview.models.document import StoredDocument
from perfreview.identity import Identity, StaticIdentityProvider
from perfreview.schemas.user import UserRole
from perfreview.services.cycle_service import CycleService
from perfreview.services.review_service import ReviewLifecycleEngine
from perfreview.services.user_service import UserService
from perfreview.store import InMemoryDocumentStore, SqlDocumentStore

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

FIXED_NOW = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock; `advance` moves it forward."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


def make_scores(autonomy=3, mastery=3, purpose=3, text="Solid quarter"):
    """Dimension payload in the shape callers send it."""
    return {
        "autonomy": {"text": f"{text} (autonomy)", "score": autonomy},
        "mastery": {"text": f"{text} (mastery)", "score": mastery},
        "purpose": {"text": f"{text} (purpose)", "score": purpose},
    }


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Plain session for inspecting rows written by the SQL store."""
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def sql_store():
    """SQLAlchemy-backed store; all documents are removed after each test."""
    store = SqlDocumentStore(TestingSessionLocal)
    yield store
    with TestingSessionLocal() as session:
        session.query(StoredDocument).delete()
        session.commit()


@pytest.fixture(scope="function")
def store():
    return InMemoryDocumentStore()


@pytest.fixture(scope="function")
def clock():
    return FakeClock()


@pytest.fixture(scope="function")
def admin():
    return Identity(id="admin-1", name="Ada Admin", email="ada@example.com", role=UserRole.ADMIN)


@pytest.fixture(scope="function")
def manager():
    return Identity(id="mgr-1", name="Max Manager", email="max@example.com", role=UserRole.MANAGER)


@pytest.fixture(scope="function")
def alice():
    return Identity(id="user-a", name="Alice", email="alice@example.com")


@pytest.fixture(scope="function")
def bob():
    return Identity(id="user-b", name="Bob", email="bob@example.com")


@pytest.fixture(scope="function")
def erin():
    return Identity(id="user-e", name="Erin", email="erin@example.com")


@pytest.fixture(scope="function")
def carol():
    return Identity(id="user-c", name="Carol", email="carol@example.com")


@pytest.fixture(scope="function")
def identity(admin):
    """Identity provider acting as the admin unless a test switches it."""
    return StaticIdentityProvider(admin)


@pytest.fixture(scope="function")
def cycles(store, identity, clock):
    return CycleService(store, identity=identity, clock=clock)


@pytest.fixture(scope="function")
def users(store, identity, clock):
    return UserService(store, identity=identity, clock=clock)


@pytest.fixture(scope="function")
def review_engine(store, cycles, identity, clock):
    return ReviewLifecycleEngine(store, cycles=cycles, identity=identity, clock=clock)


@pytest.fixture(scope="function")
def active_cycle(cycles, clock):
    """Cycle C: self review due in 5 days, peer review due in 10 days."""
    return cycles.create_cycle(
        "Q4 2026",
        self_review_due=clock() + timedelta(days=5),
        peer_review_due=clock() + timedelta(days=10),
    )


@pytest.fixture(scope="function")
def submitted_review(review_engine, active_cycle, alice, bob, erin):
    """Alice's self review naming Bob and Erin as peer reviewers."""
    return review_engine.create_self_review(
        active_cycle.id, alice, make_scores(3, 2, 4), [bob.id, erin.id]
    )
