"""
Shared pytest fixtures for the chatbot backend.

Every test gets a fresh in-memory SQLite database. HTTP tests go through
FastAPI's TestClient with the DB session and the Gemini client replaced by
fixtures, so nothing leaves the process.
"""

import os

# Settings are cached on first import; pin them before any chatbot module loads.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["GEMINI_API_KEY"] = ""
os.environ["VERTEX_PROJECT_ID"] = ""
os.environ["REDIS_URL"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import chatbot.models  # noqa: F401 - register models on Base.metadata
from chatbot.auth import create_access_token, hash_password
from chatbot.database import Base, get_db
from chatbot.main import app
from chatbot.models import Conversation, MessageSender, User
from chatbot.repositories.chat_repository import save_message
from chatbot.routers.chat import get_ai_client


class FakeAiClient:
    """Stands in for GeminiChatClient; records every call."""

    def __init__(self, reply="Hello from the model", error=None, configured=True):
        self.reply = reply
        self.error = error
        self.configured = configured
        self.calls = []

    @property
    def is_configured(self):
        return self.configured

    async def generate_reply(self, history, prompt):
        self.calls.append({"history": history, "prompt": prompt})
        if self.error is not None:
            raise self.error
        return self.reply


class FakeRedis:
    """Minimal async Redis LIST implementation (LRANGE/RPUSH/RPUSHX/LTRIM/EXPIRE/DELETE/pipeline)."""

    def __init__(self):
        self.lists = {}
        self.ttls = {}

    async def ping(self):
        return True

    @staticmethod
    def _bounds(length, start, end):
        if start < 0:
            start = max(length + start, 0)
        if end < 0:
            end = length + end
        return start, end + 1

    async def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        lo, hi = self._bounds(len(items), start, end)
        return items[lo:hi]

    async def rpush(self, key, *values):
        self.lists.setdefault(key, []).extend(values)
        return len(self.lists[key])

    async def rpushx(self, key, *values):
        if key not in self.lists:
            return 0
        return await self.rpush(key, *values)

    async def ltrim(self, key, start, end):
        items = self.lists.get(key, [])
        lo, hi = self._bounds(len(items), start, end)
        self.lists[key] = items[lo:hi]

    async def expire(self, key, seconds):
        self.ttls[key] = seconds

    async def delete(self, key):
        self.lists.pop(key, None)
        self.ttls.pop(key, None)

    def pipeline(self):
        return FakePipeline(self)


class FlakyRedis(FakeRedis):
    """FakeRedis whose n-th RPUSHX calls (1-based) raise, like a dropped connection mid-turn."""

    def __init__(self, fail_on=()):
        super().__init__()
        self.fail_on = set(fail_on)
        self.rpushx_calls = 0

    async def rpushx(self, key, *values):
        self.rpushx_calls += 1
        if self.rpushx_calls in self.fail_on:
            raise ConnectionError("Connection reset by peer")
        return await super().rpushx(key, *values)


class FakePipeline:
    def __init__(self, redis):
        self._redis = redis
        self._ops = []

    def __getattr__(self, name):
        def queue(*args):
            self._ops.append((name, args))
            return self
        return queue

    async def execute(self):
        for name, args in self._ops:
            await getattr(self._redis, name)(*args)
        self._ops = []


class BrokenRedis:
    """Every command fails, like a Redis server that went away."""

    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            raise ConnectionError("Redis connection refused")
        return fail

    def pipeline(self):
        raise ConnectionError("Redis connection refused")


# ===== DATABASE FIXTURES =====


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


# ===== DOMAIN FIXTURES =====


@pytest.fixture
def make_user(db):
    def _make(username="alice", email=None, password="secret123"):
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            password=hash_password(password),
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def make_conversation(db):
    def _make(user, title="New Chat"):
        conv = Conversation(user_id=user.id, title=title)
        db.add(conv)
        db.commit()
        db.refresh(conv)
        return conv

    return _make


@pytest.fixture
def seed_messages(db):
    def _seed(conversation_id, count):
        """Alternate user/ai messages with contents m1..m{count}."""
        senders = [MessageSender.USER.value, MessageSender.AI.value]
        return [
            save_message(db, conversation_id, senders[i % 2], f"m{i + 1}")
            for i in range(count)
        ]

    return _seed


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


# ===== MOCK FIXTURES =====


@pytest.fixture
def ai_client():
    return FakeAiClient()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def flaky_redis():
    def _make(*fail_on):
        return FlakyRedis(fail_on)

    return _make


@pytest.fixture
def broken_redis():
    return BrokenRedis()


# ===== APP FIXTURES =====


@pytest.fixture
def client(db, ai_client):
    """TestClient bound to the test database and the fake Gemini client."""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_ai_client] = lambda: ai_client
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ===== CONFIGURATION =====


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
