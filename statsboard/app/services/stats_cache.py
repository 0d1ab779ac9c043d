"""
Stats Cache Service

Cache-aside storage for analytics summaries.
A broken cache never fails a request: reads degrade to a miss and writes are
dropped, both with a warning.
"""

import asyncio
import json
import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import STATS_CACHE_RETRY_AFTER_S, STATS_CACHE_TTL_S
from ..models.stats_cache import StatsCache
from ..utils.error_handlers import CacheUnavailableError
from .periods import as_utc

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "stats:user:"


def stats_cache_key(owner_id: int | str) -> str:
    return f"{CACHE_KEY_PREFIX}{owner_id}"


class CacheStore(Protocol):
    name: str

    def get(self, key: str) -> dict[str, Any] | None: ...

    def set(self, key: str, value: dict[str, Any], ttl_s: int) -> None: ...

    def ping(self) -> bool: ...


class NullCacheStore:
    """Caching disabled: every lookup misses, every write is dropped."""
    name = "none"

    def get(self, key: str) -> dict[str, Any] | None:
        return None

    def set(self, key: str, value: dict[str, Any], ttl_s: int) -> None:
        return None

    def ping(self) -> bool:
        return False


class MemoryCacheStore:
    """
    Process-local store.
    Values are kept as JSON text so a hit always returns a fresh, equal copy.
    """
    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, str]] = {}

    def get(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            entry = self._entries.get(key)
            if not entry:
                return None
            expires_at, payload = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
        return json.loads(payload)

    def set(self, key: str, value: dict[str, Any], ttl_s: int) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        with self._lock:
            self._entries[key] = (self._clock() + ttl_s, payload)

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class DatabaseCacheStore:
    """Rows in the stats_cache table; shared by every worker on the same database."""
    name = "db"

    def __init__(
        self,
        session_factory: Callable[[], Session],
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._session_factory = session_factory
        self._now = now

    def get(self, key: str) -> dict[str, Any] | None:
        db = self._session_factory()
        try:
            entry = db.query(StatsCache).filter(StatsCache.cache_key == key).first()
            if not entry:
                return None

            # Check expiration
            if as_utc(entry.expires_at) <= self._now():
                logger.debug("Cache expired for key %s", key)
                return None

            try:
                return json.loads(entry.payload_json)
            except json.JSONDecodeError:
                logger.warning("Cache corruption for key %s: invalid JSON", key)
                return None
        except SQLAlchemyError as e:
            raise CacheUnavailableError(f"Cache read failed: {e}") from e
        finally:
            db.close()

    def set(self, key: str, value: dict[str, Any], ttl_s: int) -> None:
        expires_at = (self._now() + timedelta(seconds=ttl_s)).astimezone(timezone.utc).replace(tzinfo=None)
        payload = json.dumps(value, ensure_ascii=False)
        db = self._session_factory()
        try:
            existing = db.query(StatsCache).filter(StatsCache.cache_key == key).first()
            if existing:
                existing.payload_json = payload
                existing.expires_at = expires_at
            else:
                db.add(StatsCache(cache_key=key, payload_json=payload, expires_at=expires_at))
            db.commit()
        except IntegrityError:
            # A concurrent miss for the same owner inserted first; its value is just as fresh.
            db.rollback()
            logger.debug("Cache entry for key %s already written by another request", key)
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheUnavailableError(f"Cache write failed: {e}") from e
        finally:
            db.close()

    def ping(self) -> bool:
        db = self._session_factory()
        try:
            db.query(StatsCache.id).limit(1).all()
            return True
        except SQLAlchemyError as e:
            logger.warning("Cache ping failed: %s", e)
            return False
        finally:
            db.close()

    def purge_expired(self) -> int:
        """
        Delete entries past their expiry.

        Returns:
            Number of entries deleted.
        """
        cutoff = self._now().astimezone(timezone.utc).replace(tzinfo=None)
        db = self._session_factory()
        try:
            count = db.query(StatsCache).filter(StatsCache.expires_at <= cutoff).delete()
            db.commit()
            logger.info("Purged %s expired stats cache entries", count)
            return count
        except SQLAlchemyError as e:
            logger.warning("Cache cleanup error: %s", e)
            db.rollback()
            return 0
        finally:
            db.close()


def build_cache_store(backend: str, session_factory: Callable[[], Session]) -> CacheStore:
    if backend == "memory":
        return MemoryCacheStore()
    if backend in {"none", "off", "disabled"}:
        return NullCacheStore()
    if backend != "db":
        logger.warning("Unknown STATS_CACHE_BACKEND=%r, falling back to 'db'", backend)
    return DatabaseCacheStore(session_factory)


class StatsCacheManager:
    """
    get/set around a CacheStore keyed by owner id, with a fixed TTL.

    After any store error the manager stops talking to the store for
    `retry_after_s` seconds and reports misses; requests recompute meanwhile.
    """

    def __init__(
        self,
        store: CacheStore,
        *,
        ttl_s: int = STATS_CACHE_TTL_S,
        retry_after_s: float = STATS_CACHE_RETRY_AFTER_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.ttl_s = int(ttl_s)
        self._retry_after_s = retry_after_s
        self._clock = clock
        self._unavailable_until = 0.0

    @staticmethod
    def key(owner_id: int | str) -> str:
        return stats_cache_key(owner_id)

    @property
    def available(self) -> bool:
        return self._clock() >= self._unavailable_until

    def _mark_unavailable(self) -> None:
        self._unavailable_until = self._clock() + self._retry_after_s

    async def get(self, owner_id: int | str) -> dict[str, Any] | None:
        """Cached summary, or None on miss / expiry / store failure."""
        if not self.available:
            return None
        key = self.key(owner_id)
        try:
            cached = await asyncio.to_thread(self.store.get, key)
        except Exception as e:
            logger.warning("Cache retrieval error for key %s: %s", key, e)
            self._mark_unavailable()
            return None
        if cached is not None:
            logger.debug("Cache HIT: %s", key)
        return cached

    async def set(self, owner_id: int | str, value: dict[str, Any]) -> bool:
        """Store a freshly computed summary. Returns False when the write was dropped."""
        if not self.available:
            return False
        key = self.key(owner_id)
        try:
            await asyncio.to_thread(self.store.set, key, value, self.ttl_s)
        except Exception as e:
            logger.warning("Cache storage error for key %s: %s", key, e)
            self._mark_unavailable()
            return False
        logger.debug("Cache SET: %s (TTL: %ss)", key, self.ttl_s)
        return True

    async def ping(self) -> bool:
        try:
            return bool(await asyncio.to_thread(self.store.ping))
        except Exception as e:
            logger.warning("Cache ping error: %s", e)
            return False
