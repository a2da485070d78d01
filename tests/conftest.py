"""Shared fixtures: in-memory Redis double, settings factory, temp SQLite store."""

import asyncio
import fnmatch
import sys
from pathlib import Path
from typing import Dict, Optional, Set

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "server"))

from core.cache import RedisBackend  # noqa: E402
from core.config import Settings  # noqa: E402
from core.database import Database  # noqa: E402
from models.transcript import TranscriptRecord, Utterance  # noqa: E402
from services.cache_monitor import CacheMonitor  # noqa: E402
from services.cache_service import CacheService  # noqa: E402
from services.search_indexing import SearchIndexingService  # noqa: E402


class FakeRedis:
    """Coroutine subset of redis.asyncio.Redis used by RedisBackend.

    Commands named in `fail_on` raise a redis ConnectionError.
    """

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.fail_on: Set[str] = set()
        self.ping_delay: float = 0.0
        self.flush_calls = 0
        self.closed = False
        self.memory_human: Optional[str] = "1.02M"

    def _check(self, command: str) -> None:
        if command in self.fail_on:
            raise RedisConnectionError(f"{command} failed")

    async def ping(self):
        if self.ping_delay:
            await asyncio.sleep(self.ping_delay)
        self._check("ping")
        return True

    async def get(self, key):
        self._check("get")
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self._check("setex")
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys):
        self._check("delete")
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(self, match=None, count=None):
        self._check("scan")
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def flushall(self):
        self._check("flushall")
        self.flush_calls += 1
        self.store.clear()
        self.ttls.clear()
        return True

    async def dbsize(self):
        self._check("dbsize")
        return len(self.store)

    async def info(self, section=None):
        self._check("info")
        if self.memory_human is None:
            return {}
        return {"used_memory_human": self.memory_human}

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def make_settings(tmp_path):
    """Build Settings that ignore .env files and point at a temp SQLite file."""
    def _make(**overrides) -> Settings:
        values = {
            "environment": "test",
            "database_url": f"sqlite+aiosqlite:///{tmp_path}/test.db",
            "redis_retry_interval": 0,
            "index_batch_delay": 0,
            "log_format": "console",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def backend(settings, fake_redis) -> RedisBackend:
    return RedisBackend(settings, client_factory=lambda: fake_redis)


@pytest.fixture
def cache_service(backend, settings) -> CacheService:
    return CacheService(backend, settings)


@pytest.fixture
def cache_monitor(cache_service, backend, settings) -> CacheMonitor:
    return CacheMonitor(cache_service, backend, settings)


@pytest.fixture
async def database(settings):
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


@pytest.fixture
def search_indexing(database, cache_service) -> SearchIndexingService:
    return SearchIndexingService(database, cache=cache_service, batch_delay=0)


@pytest.fixture
def make_transcript(database):
    """Insert a transcript row and return its record."""
    counter = {"n": 0}

    async def _make(**fields) -> TranscriptRecord:
        counter["n"] += 1
        n = counter["n"]
        values = {
            "id": f"t-{n}",
            "video_id": f"vid{n}",
            "title": f"Transcript {n}",
            "description": None,
            "language": "en",
            "status": "completed",
            "utterances": [Utterance(text="hello world")],
        }
        values.update(fields)
        return await database.create_transcript(TranscriptRecord(**values))

    return _make
