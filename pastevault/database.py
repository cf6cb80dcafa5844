"""
Storage backends for paste records.
Redis is the primary store; an in-memory store serves development and tests.

Both backends honour the same contract: ``apply`` runs a mutation against one
paste as a single atomic read-modify-write, and operations on different ids
never wait on each other.
"""
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple, TypeVar

from redis import Redis
from redis.exceptions import ConnectionError, RedisError

from pastevault.errors import StorageError
from pastevault.models import PasteRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Write(Enum):
    """What ``apply`` should persist after a mutation has looked at a record."""
    KEEP = "keep"
    UPDATE = "update"
    DELETE = "delete"


# Receives a private copy of the record (or None) and returns the write to
# perform plus the value ``apply`` hands back. May run more than once.
Mutation = Callable[[Optional[PasteRecord]], Tuple[Write, T]]


class PasteBackend(ABC):
    """Mapping from paste id to record with per-key atomic updates."""

    name = "abstract"

    @abstractmethod
    def insert(self, record: PasteRecord) -> bool:
        """Store a new record. Returns False if the id is already taken."""

    @abstractmethod
    def apply(self, paste_id: str, mutation: Mutation) -> T:
        """Run ``mutation`` atomically for one paste id."""

    @abstractmethod
    def peek(self, paste_id: str) -> Optional[PasteRecord]:
        """
        Read a record without applying any expiry logic or counting a view.

        Inspection helper for diagnostics and tests; request paths must go
        through ``apply``.
        """

    @abstractmethod
    def iter_expiry_candidates(self, now: datetime, batch_size: int) -> Iterator[List[str]]:
        """Yield batches of ids that may be dead as of ``now``."""

    @abstractmethod
    def ping(self) -> bool:
        """Health check."""


class KeyedLock:
    """
    One mutex per key, created on demand and dropped once nobody holds or
    waits on it. The registry guard is only held to look up an entry.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, list] = {}

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class InMemoryStore(PasteBackend):
    """In-memory store for development/testing (when Redis unavailable)."""

    name = "memory"

    def __init__(self):
        self.store: Dict[str, PasteRecord] = {}
        self.locks = KeyedLock()

    def insert(self, record: PasteRecord) -> bool:
        with self.locks.hold(record.id):
            if record.id in self.store:
                return False
            self.store[record.id] = record.model_copy()
            return True

    def apply(self, paste_id: str, mutation: Mutation) -> T:
        with self.locks.hold(paste_id):
            current = self.store.get(paste_id)
            record = current.model_copy() if current is not None else None
            write, result = mutation(record)
            if write is Write.UPDATE and record is not None:
                self.store[paste_id] = record
            elif write is Write.DELETE:
                self.store.pop(paste_id, None)
            return result

    def peek(self, paste_id: str) -> Optional[PasteRecord]:
        record = self.store.get(paste_id)
        return record.model_copy() if record is not None else None

    def iter_expiry_candidates(self, now: datetime, batch_size: int) -> Iterator[List[str]]:
        snapshot = list(self.store.items())
        dead = [paste_id for paste_id, record in snapshot if record.is_dead(now)]
        for start in range(0, len(dead), batch_size):
            yield dead[start:start + batch_size]

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self.store)


class RedisStore(PasteBackend):
    """
    Redis-backed store.

    Each paste is a hash at ``paste:<id>``; pastes with a TTL are also
    indexed in the ``pastes:expiry`` sorted set, scored by expiry epoch
    seconds. Updates run as WATCH/MULTI/EXEC transactions on the paste key.
    """

    name = "redis"
    KEY_PREFIX = "paste:"
    EXPIRY_INDEX = "pastes:expiry"

    def __init__(self, redis: Redis):
        self.redis = redis

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        return cls(Redis.from_url(url, decode_responses=True))

    def _key(self, paste_id: str) -> str:
        return f"{self.KEY_PREFIX}{paste_id}"

    def insert(self, record: PasteRecord) -> bool:
        key = self._key(record.id)

        def _txn(pipe) -> bool:
            if pipe.exists(key):
                return False
            pipe.multi()
            pipe.hset(key, mapping=record.to_mapping())
            if record.ttl_seconds is not None:
                pipe.zadd(self.EXPIRY_INDEX, {record.id: record.expires_at.timestamp()})
                # Native expiry only reclaims memory; reads never rely on it
                pipe.expire(key, record.ttl_seconds)
            return True

        try:
            return self.redis.transaction(_txn, key, value_from_callable=True)
        except RedisError as e:
            logger.error(f"Error saving paste {record.id}: {e}")
            raise StorageError(f"Failed to save paste: {type(e).__name__}") from e

    def apply(self, paste_id: str, mutation: Mutation) -> T:
        key = self._key(paste_id)

        def _txn(pipe):
            raw = pipe.hgetall(key)
            record = PasteRecord.from_mapping(raw) if raw else None
            write, result = mutation(record)
            pipe.multi()
            if write is Write.UPDATE and record is not None:
                pipe.hset(key, "current_views", str(record.current_views))
            elif write is Write.DELETE:
                pipe.delete(key)
                pipe.zrem(self.EXPIRY_INDEX, paste_id)
            return result

        try:
            return self.redis.transaction(_txn, key, value_from_callable=True)
        except RedisError as e:
            logger.error(f"Error updating paste {paste_id}: {e}")
            raise StorageError(f"Failed to update paste: {type(e).__name__}") from e

    def peek(self, paste_id: str) -> Optional[PasteRecord]:
        try:
            raw = self.redis.hgetall(self._key(paste_id))
        except RedisError as e:
            raise StorageError(f"Failed to read paste: {type(e).__name__}") from e
        return PasteRecord.from_mapping(raw) if raw else None

    def iter_expiry_candidates(self, now: datetime, batch_size: int) -> Iterator[List[str]]:
        # Reaped ids leave the index, so the offset only advances past ids
        # that were still present after the caller handled the batch.
        offset = 0
        now_ts = now.timestamp()
        try:
            while True:
                ids = self.redis.zrangebyscore(
                    self.EXPIRY_INDEX, "-inf", now_ts, start=offset, num=batch_size
                )
                if not ids:
                    return
                yield ids
                with self.redis.pipeline(transaction=False) as pipe:
                    for paste_id in ids:
                        pipe.zscore(self.EXPIRY_INDEX, paste_id)
                    offset += sum(score is not None for score in pipe.execute())
        except RedisError as e:
            logger.error(f"Error scanning expiry index: {e}")
            raise StorageError(f"Failed to scan expiry index: {type(e).__name__}") from e

    def ping(self) -> bool:
        return bool(self.redis.ping())


def build_backend(settings) -> PasteBackend:
    """
    Pick the storage backend from settings.

    Redis is tried first unless STORAGE_BACKEND=memory; an unreachable Redis
    falls back to the in-memory store.
    """
    if settings.STORAGE_BACKEND == "memory":
        logger.info("Using in-memory storage (STORAGE_BACKEND=memory)")
        return InMemoryStore()

    try:
        logger.info(f"Attempting to connect to Redis: {settings.REDIS_URL[:30]}...")
        backend = RedisStore.from_url(settings.REDIS_URL)
        backend.ping()
        logger.info("✓ Redis connected successfully")
        return backend
    except ConnectionError as e:
        logger.error(f"❌ ConnectionError connecting to Redis: {type(e).__name__}: {str(e)}")
    except Exception as e:
        logger.error(f"❌ Unexpected error connecting to Redis: {type(e).__name__}: {str(e)}")
    logger.warning("Using in-memory fallback. Data will NOT persist across restarts.")
    return InMemoryStore()
