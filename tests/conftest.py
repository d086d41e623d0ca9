"""
Shared fixtures: temporary SQLite database, JWT auth headers, fake model providers.
Environment is set before alqemist is imported so get_settings() sees it.
"""
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="alqemist-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["IDENTITY_JWT_SECRET"] = "test-secret"
os.environ["IDENTITY_JWT_ALGORITHM"] = "HS256"
os.environ["IDENTITY_JWT_ISSUER"] = ""
os.environ["IDENTITY_WEBHOOK_SECRET"] = "whsec-test"
os.environ["REDIS_URL"] = ""
os.environ["TASK_SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["STREAM_DELAY_MS"] = "0"
os.environ["NOTIFICATION_WEBHOOK_URL"] = ""
for _key in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GOOGLE_AI_API_KEY", "OPENROUTER_API_KEY", "VERTEX_PROJECT_ID"):
    os.environ[_key] = ""

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from jose import jwt

from alqemist.config import get_settings
from alqemist.database import Base, SessionLocal, engine
from alqemist.dependencies import get_model_catalog, get_provider_registry
from alqemist.main import app
from alqemist.models.user import User
from alqemist.services.llm_providers import LLMProvider, ProviderRegistry
from alqemist.services.model_catalog import DEFAULT_CATALOG
from alqemist.services.task_scheduler import TaskScheduler


class FakeProvider(LLMProvider):
    """Streams fixed chunks. With `error` set, raises it after `fail_after` chunks."""

    def __init__(self, name: str, chunks: list[str] | None = None, error: Exception | None = None, fail_after: int = 0):
        super().__init__(get_settings())
        self.name = name
        self.chunks = chunks if chunks is not None else ["Hello ", "from ", f"{name} ", "model."]
        self.error = error
        self.fail_after = fail_after
        self.calls: list[str] = []

    def is_configured(self) -> bool:
        return True

    def stream_chat(self, model_id, messages, system):
        self.calls.append(model_id)
        for i, chunk in enumerate(self.chunks):
            if self.error is not None and i == self.fail_after:
                raise self.error
            yield chunk
        if self.error is not None:
            raise self.error


class ProviderError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RecordingNotifier:
    def __init__(self, fail_for: set[str] | None = None):
        self.sent: list[str] = []
        self.fail_for = fail_for or set()

    def send(self, task) -> None:
        if task.title in self.fail_for:
            raise RuntimeError("delivery failed")
        self.sent.append(task.id)


def make_token(sub: str = "user_1", **claims) -> str:
    payload = {"sub": sub, "email": f"{sub}@example.com", "name": "Test User", **claims}
    return jwt.encode(payload, "test-secret", algorithm="HS256")


@pytest.fixture(autouse=True)
def setup_database():
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    u = User(id="user_1", email="user_1@example.com", name="Test User")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def scheduler(notifier):
    return TaskScheduler(notifier)


@pytest.fixture
def providers():
    return {name: FakeProvider(name) for name in ("openai", "anthropic", "google", "openrouter")}


@pytest.fixture
def fake_registry(providers):
    registry = ProviderRegistry(list(providers.values()))
    app.dependency_overrides[get_provider_registry] = lambda: registry
    app.dependency_overrides[get_model_catalog] = lambda: DEFAULT_CATALOG
    return registry


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}


@pytest_asyncio.fixture
async def client():
    """Create an async test client (lifespan not run: no sweeper, no Redis)"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
