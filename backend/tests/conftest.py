"""
Pytest configuration and shared fixtures for testing.
"""
import os
import sys
from pathlib import Path

# SQLite file next to this conftest so it lands inside tests/ regardless of
# the working directory. Environment must be in place before examprep is
# imported: settings and the engine are built at import time.
_TEST_DB = Path(__file__).parent / "test.db"
SQLALCHEMY_DATABASE_URL = f"sqlite:///{_TEST_DB}"

os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", SQLALCHEMY_DATABASE_URL)
os.environ.setdefault("ENV", "test")

# Make the backend root importable (tests.factories, examprep)
backend_root = Path(__file__).parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from contextlib import asynccontextmanager  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from examprep.core.identity import SubjectIdentity  # noqa: E402
from examprep.core.security import create_access_token  # noqa: E402
from examprep.main import app  # noqa: E402
from examprep.models import Base, get_db  # noqa: E402
from tests.factories import make_sample_test, make_test  # noqa: E402


@asynccontextmanager
async def _test_lifespan(app):
    """No-op lifespan for tests: no Sentry, no background purge loop."""
    yield


app.router.lifespan_context = _test_lifespan


def create_test_application():
    """Fresh app instance with the production lifespan disabled."""
    from examprep.main import create_application

    test_app = create_application()
    test_app.router.lifespan_context = _test_lifespan
    return test_app


engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    """
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def testing_session_local():
    """Session factory bound to the test database, for multi-session tests."""
    return TestingSessionLocal


@pytest.fixture(scope="function")
def client(db_session):
    """
    Create a test client with database dependency override.

    Each request gets its own session on the same test.db file where
    db_session creates data.
    """

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def identity():
    """The subject taking tests in most scenarios."""
    return SubjectIdentity(user_id="1001", email="student@example.com")


@pytest.fixture
def other_identity():
    return SubjectIdentity(user_id="2002", email="rival@example.com")


def _headers_for(identity: SubjectIdentity) -> dict:
    claims = {}
    if identity.user_id:
        claims["user_id"] = identity.user_id
    if identity.email:
        claims["email"] = identity.email
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


@pytest.fixture
def auth_headers(identity):
    """
    Create authentication headers for the default subject.
    """
    return _headers_for(identity)


@pytest.fixture
def other_auth_headers(other_identity):
    return _headers_for(other_identity)


@pytest.fixture
def sample_test(db_session):
    """
    Five-question, 30-minute test with 4 / -1 / 0 weighting.

    Answer key: A, B, C, D, A.
    """
    return make_sample_test(db_session)


@pytest.fixture
def test_factory(db_session):
    """Create additional tests: ``test_factory(duration_minutes=10, ...)``."""

    def _create(**kwargs):
        return make_test(db_session, **kwargs)

    return _create
