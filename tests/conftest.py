import pytest
from fakes import FakeRedis

from relay.config import Settings
from relay.services.kv_store import KeyValueStore


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def memory_store():
    return KeyValueStore()


@pytest.fixture
def settings():
    return Settings(_env_file=None, kv_url=None, bot_type="echo", reply_deadline_seconds=0.05)


@pytest.fixture
def mock_env(monkeypatch):
    """Set test environment variables."""
    monkeypatch.setenv("GPT_TOKEN", "test-key")
    monkeypatch.setenv("BOT_TYPE", "gpt")
    monkeypatch.delenv("KV_URL", raising=False)
    monkeypatch.delenv("REDIS_URL", raising=False)
