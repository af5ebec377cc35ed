import asyncio
import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure tests use an in-memory SQLite DB and JSON columns stay generic
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("FORCE_GENERIC_JSON", "1")
os.environ["GEMINI_API_KEY"] = ""

from labinsight.app import app  # noqa: E402
from labinsight.db.session import Base, get_db  # noqa: E402
from labinsight.services.gemini import get_completion_client  # noqa: E402
from labinsight.services.session_store import open_session  # noqa: E402


# In-memory SQLite shared across connections
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def create_schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def _override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = _override_get_db
app.dependency_overrides[get_completion_client] = lambda: None

# Code paths that import SessionLocal/engine directly use the test engine
import labinsight.db.session as session_mod  # noqa: E402
session_mod.engine = engine
session_mod.SessionLocal = TestingSessionLocal
import labinsight.models as models_mod  # noqa: E402
models_mod.engine = engine


class FakeCompletionClient:
    """Deterministic stand-in for the Gemini client."""

    model = "fake-model"

    def __init__(self, reply: str = "", error: Exception = None, delay: float = 0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls = []

    async def complete(self, prompt: str, max_tokens: int = 1000, temperature: float = 0.0) -> str:
        self.calls.append({"prompt": prompt, "max_tokens": max_tokens, "temperature": temperature})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    # ensure limiter state fresh each test
    app.state.limiter.reset()
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def anon_session(db):
    return open_session(db, ttl_days=30)


@pytest.fixture
def session_token(anon_session):
    return anon_session.session_token


@pytest.fixture
def use_llm():
    """Route requests to a FakeCompletionClient; returns the client."""
    def install(reply: str = "", error: Exception = None, delay: float = 0.0) -> FakeCompletionClient:
        fake = FakeCompletionClient(reply=reply, error=error, delay=delay)
        app.dependency_overrides[get_completion_client] = lambda: fake
        return fake

    yield install
    app.dependency_overrides[get_completion_client] = lambda: None


def pytest_configure(config):
    """Allow overriding the coverage floor via environment variable for local runs."""
    env_floor = os.getenv("PYTEST_COV_FAIL_UNDER") or os.getenv("COV_FAIL_UNDER")
    if env_floor is not None and hasattr(config.option, "cov_fail_under"):
        try:
            config.option.cov_fail_under = float(env_floor)
        except ValueError:
            pass


@pytest.fixture
def make_llm():
    """Factory for FakeCompletionClient instances used directly by service tests."""
    return FakeCompletionClient
