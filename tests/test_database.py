from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from pastevault.database import InMemoryStore, RedisStore, Write, build_backend
from pastevault.engine import PasteStore
from pastevault.errors import StorageError
from pastevault.models import PasteRecord
from tests.conftest import T0


def _record(**kwargs) -> PasteRecord:
    defaults = dict(id="abc", content="hello", created_at=T0)
    return PasteRecord(**{**defaults, **kwargs})


class TestPasteRecord:
    def test_mapping_round_trip_keeps_every_field(self):
        record = _record(ttl_seconds=60, max_views=3, current_views=2)
        assert PasteRecord.from_mapping(record.to_mapping()) == record

    def test_unset_constraints_are_omitted(self):
        mapping = _record().to_mapping()
        assert "ttl_seconds" not in mapping
        assert "max_views" not in mapping
        restored = PasteRecord.from_mapping(mapping)
        assert restored.ttl_seconds is None
        assert restored.max_views is None

    def test_derived_fields(self):
        record = _record(ttl_seconds=60, max_views=3, current_views=1)
        assert record.expires_at == T0.replace(minute=1)
        assert record.remaining_views == 2
        assert not record.is_dead(T0)
        assert record.is_dead(T0.replace(minute=1))


class TestRedisStore:
    def test_persisted_layout(self, redis_backend):
        store = PasteStore(redis_backend, clock=lambda: T0, id_factory=lambda: "abc")
        store.create("hello", ttl_seconds=60, max_views=3)

        raw = redis_backend.redis.hgetall("paste:abc")
        assert raw == {
            "id": "abc",
            "content": "hello",
            "created_at": T0.isoformat(),
            "ttl_seconds": "60",
            "max_views": "3",
            "current_views": "0",
        }
        assert redis_backend.redis.zscore("pastes:expiry", "abc") == T0.timestamp() + 60
        assert redis_backend.redis.ttl("paste:abc") > 0

    def test_untimed_paste_is_not_indexed(self, redis_backend):
        redis_backend.insert(_record())
        assert redis_backend.redis.zcard("pastes:expiry") == 0
        assert redis_backend.redis.ttl("paste:abc") == -1

    def test_insert_refuses_taken_id(self, redis_backend):
        assert redis_backend.insert(_record()) is True
        assert redis_backend.insert(_record(content="other")) is False
        assert redis_backend.peek("abc").content == "hello"

    def test_fetch_updates_view_counter(self, redis_backend):
        store = PasteStore(redis_backend, clock=lambda: T0, id_factory=lambda: "abc")
        store.create("hello", max_views=3)
        store.fetch_and_consume("abc")
        assert redis_backend.redis.hget("paste:abc", "current_views") == "1"

    def test_last_view_removes_key_and_index_entry(self, redis_backend):
        store = PasteStore(redis_backend, clock=lambda: T0, id_factory=lambda: "abc")
        store.create("hello", ttl_seconds=60, max_views=1)
        store.fetch_and_consume("abc")
        assert redis_backend.redis.exists("paste:abc") == 0
        assert redis_backend.redis.zscore("pastes:expiry", "abc") is None

    def test_reap_drops_stale_index_entries(self, redis_backend):
        store = PasteStore(redis_backend, clock=lambda: T0, id_factory=lambda: "abc")
        store.create("hello", ttl_seconds=60)
        # Key vanished on its own, e.g. through native Redis expiry
        redis_backend.redis.delete("paste:abc")

        assert store.reap(now=T0.replace(hour=1)) == 0
        assert redis_backend.redis.zcard("pastes:expiry") == 0

    def test_reap_skips_live_paste_with_early_index_score(self, redis_backend):
        redis_backend.insert(_record(ttl_seconds=3600))
        redis_backend.insert(_record(id="gone", ttl_seconds=10))
        redis_backend.redis.zadd("pastes:expiry", {"abc": T0.timestamp()})
        store = PasteStore(redis_backend, clock=lambda: T0.replace(minute=1), reap_batch_size=1)

        assert store.reap() == 1
        assert redis_backend.peek("abc") is not None
        assert redis_backend.peek("gone") is None

    def test_redis_errors_become_storage_errors(self):
        client = MagicMock()
        client.transaction.side_effect = RedisConnectionError("refused")
        client.hgetall.side_effect = RedisConnectionError("refused")
        backend = RedisStore(client)

        with pytest.raises(StorageError):
            backend.insert(_record())
        with pytest.raises(StorageError):
            backend.apply("abc", lambda record: (Write.KEEP, None))
        with pytest.raises(StorageError):
            backend.peek("abc")


class TestBuildBackend:
    def test_memory_when_configured(self):
        settings = SimpleNamespace(STORAGE_BACKEND="memory", REDIS_URL="redis://unused")
        assert isinstance(build_backend(settings), InMemoryStore)

    def test_redis_when_reachable(self):
        settings = SimpleNamespace(STORAGE_BACKEND="redis", REDIS_URL="redis://localhost:6379")
        with patch("pastevault.database.Redis.from_url", return_value=MagicMock()):
            backend = build_backend(settings)
        assert isinstance(backend, RedisStore)

    def test_falls_back_to_memory_when_redis_unreachable(self):
        client = MagicMock()
        client.ping.side_effect = RedisConnectionError("refused")
        settings = SimpleNamespace(STORAGE_BACKEND="redis", REDIS_URL="redis://localhost:6379")
        with patch("pastevault.database.Redis.from_url", return_value=client):
            backend = build_backend(settings)
        assert isinstance(backend, InMemoryStore)

    def test_falls_back_to_memory_on_malformed_url(self):
        settings = SimpleNamespace(STORAGE_BACKEND="redis", REDIS_URL="not-a-redis-url")
        backend = build_backend(settings)
        assert isinstance(backend, InMemoryStore)


def test_peek_does_not_count_a_view(backend):
    store = PasteStore(backend, clock=lambda: T0, id_factory=lambda: "abc")
    store.create("hello", max_views=1)
    assert backend.peek("abc").current_views == 0
    assert backend.peek("abc").current_views == 0
    assert store.fetch_and_consume("abc").remaining_views == 0


def test_errors_fall_back_to_default_message():
    assert StorageError().message == StorageError.default_message
    assert StorageError(None).to_response() == {
        "error": "STORAGE_ERROR",
        "message": StorageError.default_message,
    }
    assert StorageError("redis down").message == "redis down"
