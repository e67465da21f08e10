"""Pytest configuration and fixtures."""

import os

# Configuration is read when coachmem is first imported
os.environ.setdefault('ENVIRONMENT', 'test')
os.environ.setdefault('LOG_LEVEL', 'WARNING')
os.environ.setdefault('SUPABASE_URL', 'https://test.supabase.co')
os.environ.setdefault('SUPABASE_SERVICE_ROLE_KEY', 'test-key')
os.environ.setdefault('BEDROCK_RERANK_ENABLED', 'false')
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-east-1')

import pytest  # noqa: E402

from coachmem.utils.config import load_config  # noqa: E402
from coachmem.utils.ttl_cache import TTLCache  # noqa: E402
from tests.fakes.fake_llm import FakeLLM  # noqa: E402
from tests.fakes.fake_store import FakeStore  # noqa: E402


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def app_config():
    config = load_config()
    config.background.batch_delay = 0.0
    return config


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def cache(clock):
    return TTLCache(max_entries=100, clock=clock)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def llm():
    return FakeLLM()
