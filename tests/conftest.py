"""Pytest configuration and fixtures."""

import os
import re

import pytest


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch, tmp_path):
    """Isolate environment variables for each test.

    Configuration lookups never see the user's real config directory or
    LAYERSTORE_* overrides.
    """
    original_env = os.environ.copy()

    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.delenv("LAYERSTORE_KEY_FIELD", raising=False)
    monkeypatch.delenv("LAYERSTORE_REDIS_URL", raising=False)

    yield

    os.environ.clear()
    os.environ.update(original_env)


def redis_glob_match(pattern: str, name: str) -> bool:
    """Match like Redis glob patterns, where a backslash escapes the next character."""
    parts = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\" and i + 1 < len(pattern):
            parts.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        elif char == "[" and "]" in pattern[i + 1 :]:
            end = pattern.index("]", i + 1)
            parts.append(f"[{pattern[i + 1 : end]}]")
            i = end
        else:
            parts.append(re.escape(char))
        i += 1
    return re.fullmatch("".join(parts), name, re.DOTALL) is not None


class FakeClock:
    """Manually advanced replacement for time.monotonic."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """In-memory stand-in for a ``redis.asyncio.Redis`` client.

    Mirrors the subset of commands RedisStorage issues, with
    ``decode_responses=True`` semantics.
    """

    def __init__(self):
        self.data: dict[str, str] = {}
        self.closed = False
        self.mget_calls: list[list[str]] = []

    async def ping(self):
        return True

    async def exists(self, *names):
        return sum(1 for name in names if name in self.data)

    async def set(self, name, value, nx=False, xx=False):
        if nx and name in self.data:
            return None
        if xx and name not in self.data:
            return None
        self.data[name] = value
        return True

    async def get(self, name):
        return self.data.get(name)

    async def mget(self, keys):
        keys = list(keys)
        self.mget_calls.append(keys)
        return [self.data.get(key) for key in keys]

    async def getdel(self, name):
        return self.data.pop(name, None)

    async def scan_iter(self, match=None, count=None):
        for name in sorted(self.data):
            if match is None or redis_glob_match(match, name):
                yield name

    async def aclose(self):
        self.closed = True


@pytest.fixture
def clock():
    """A controllable clock for expiry tests."""
    return FakeClock()


@pytest.fixture
def fake_redis():
    """An empty fake Redis client."""
    return FakeRedis()


@pytest.fixture
def user():
    """A sample entity."""
    return {"id": "1", "name": "Ada", "email": "ada@example.com"}


@pytest.fixture
def users():
    """Several sample entities."""
    return [
        {"id": "1", "name": "Ada"},
        {"id": "2", "name": "Grace"},
        {"id": "3", "name": "Barbara"},
    ]
