# tests/test_flow_store.py
"""
Tests for the OAuth flow-state stores.

Verifies:
  - Single-slot overwrite semantics.
  - Conditional clear by provider and verifier.
  - TTL expiry (in-memory).
  - WATCH/MULTI conditional delete (Redis, against a fake client).
"""

from __future__ import annotations

import asyncio

import pytest
from redis.exceptions import WatchError

from promptboost.models import OAuthFlowState
from promptboost.state.redis import RedisFlowStore


def flow(provider: str = "openrouter", verifier: str = "v" * 43) -> OAuthFlowState:
    return OAuthFlowState(provider=provider, code_verifier=verifier)


@pytest.mark.asyncio
class TestInMemoryFlowStore:
    async def test_initially_empty(self, memory_store):
        assert await memory_store.load() is None
        assert await memory_store.clear() is False

    async def test_save_overwrites(self, memory_store):
        await memory_store.save(flow(verifier="a" * 43))
        await memory_store.save(flow(verifier="b" * 43))
        state = await memory_store.load()
        assert state.code_verifier == "b" * 43

    async def test_clear_matching_provider(self, memory_store):
        await memory_store.save(flow())
        assert await memory_store.clear(provider="openai") is False
        assert await memory_store.clear(provider="openrouter") is True
        assert await memory_store.load() is None

    async def test_clear_never_removes_newer_flow(self, memory_store):
        await memory_store.save(flow(verifier="old" + "x" * 40))
        await memory_store.save(flow(verifier="new" + "x" * 40))

        assert await memory_store.clear(provider="openrouter", code_verifier="old" + "x" * 40) is False
        assert (await memory_store.load()).code_verifier == "new" + "x" * 40

    async def test_ttl_expiry(self, memory_store):
        await memory_store.save(flow(), ttl_seconds=0.01)
        await asyncio.sleep(0.03)
        assert await memory_store.load() is None

    async def test_concurrent_saves_leave_one_entry(self, memory_store):
        await asyncio.gather(*(memory_store.save(flow(verifier=f"{i:043d}")) for i in range(20)))
        state = await memory_store.load()
        assert state is not None
        assert await memory_store.clear() is True
        assert await memory_store.load() is None


class FakePipeline:
    def __init__(self, client: "FakeRedis") -> None:
        self.client = client
        self.queued: list[str] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    async def watch(self, key: str) -> None:
        self.client.watched.append(key)

    async def get(self, key: str):
        value = self.client.data.get(key)
        if self.client.replace_after_watch is not None:
            # Another process writes between WATCH and EXEC.
            self.client.data[key] = self.client.replace_after_watch
            self.client.replace_after_watch = None
            self.client.dirty = True
        return value

    def multi(self) -> None:
        pass

    def delete(self, key: str) -> None:
        self.queued.append(key)

    async def execute(self) -> list[int]:
        if self.client.dirty:
            raise WatchError("watched key changed")
        for key in self.queued:
            self.client.data.pop(key, None)
        return [1] * len(self.queued)


class FakeRedis:
    """Minimal stand-in for redis.asyncio.Redis with decode_responses=True."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.expiry: dict[str, int | None] = {}
        self.watched: list[str] = []
        self.replace_after_watch: str | None = None
        self.dirty = False
        self.closed = False

    async def get(self, key: str):
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.data[key] = value
        self.expiry[key] = ex
        return True

    async def delete(self, key: str) -> int:
        return 1 if self.data.pop(key, None) is not None else 0

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def redis_store(fake_redis):
    return RedisFlowStore(client=fake_redis, key="test:oauth_state")


@pytest.mark.asyncio
class TestRedisFlowStore:
    async def test_roundtrip_with_ttl(self, redis_store, fake_redis):
        await redis_store.save(flow(), ttl_seconds=59.2)

        state = await redis_store.load()

        assert state.provider == "openrouter"
        assert fake_redis.expiry["test:oauth_state"] == 60

    async def test_unconditional_clear(self, redis_store):
        await redis_store.save(flow())
        assert await redis_store.clear() is True
        assert await redis_store.clear() is False

    async def test_conditional_clear_uses_watch(self, redis_store, fake_redis):
        await redis_store.save(flow())

        assert await redis_store.clear(provider="openrouter", code_verifier="v" * 43) is True

        assert fake_redis.watched == ["test:oauth_state"]
        assert await redis_store.load() is None

    async def test_conditional_clear_skips_other_flow(self, redis_store):
        await redis_store.save(flow(provider="other"))
        assert await redis_store.clear(provider="openrouter") is False
        assert (await redis_store.load()).provider == "other"

    async def test_concurrent_overwrite_wins(self, redis_store, fake_redis):
        await redis_store.save(flow(verifier="old" + "x" * 40))
        newer = flow(verifier="new" + "x" * 40).model_dump_json()
        fake_redis.replace_after_watch = newer

        assert await redis_store.clear(provider="openrouter", code_verifier="old" + "x" * 40) is False
        assert (await redis_store.load()).code_verifier == "new" + "x" * 40

    async def test_close(self, redis_store, fake_redis):
        await redis_store.close()
        assert fake_redis.closed is True


def test_redis_store_requires_url_or_client():
    with pytest.raises(ValueError):
        RedisFlowStore()
