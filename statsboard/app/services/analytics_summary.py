import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .metric_aggregator import MetricAggregator
from .periods import build_windows, utc_now
from .record_store import RecordStore
from .stats_cache import StatsCacheManager
from .stats_composer import compose_summary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SummaryResult:
    payload: dict[str, Any]
    cache_hit: bool
    cache_key: str


class AnalyticsService:
    """
    Cache-aside pipeline for one owner's dashboard summary:
    cache lookup -> (miss) concurrent reads -> composition.

    Storing a fresh result is left to the caller so it can happen after the
    response is sent.
    """

    def __init__(
        self,
        store: RecordStore,
        aggregator: MetricAggregator,
        cache: StatsCacheManager,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.aggregator = aggregator
        self.cache = cache
        self._clock = clock

    async def resolve_owner(self, subject: str) -> int | None:
        return await asyncio.to_thread(self.store.find_owner_id, subject)

    async def compute(self, owner_id: int, *, now: datetime | None = None) -> dict[str, Any]:
        """Fresh summary, bypassing the cache."""
        now = now or self._clock()
        windows = build_windows(now)
        raw = await self.aggregator.collect(owner_id, windows)
        summary = compose_summary(raw, now)
        logger.info(
            "Analytics summary computed for user=%s (applications=%s, scores=%s)",
            owner_id,
            raw.total_applications,
            raw.score_count,
        )
        return summary.to_payload()

    async def summary(self, owner_id: int, *, now: datetime | None = None) -> SummaryResult:
        key = self.cache.key(owner_id)
        cached = await self.cache.get(owner_id)
        if cached is not None:
            return SummaryResult(payload=cached, cache_hit=True, cache_key=key)
        payload = await self.compute(owner_id, now=now)
        return SummaryResult(payload=payload, cache_hit=False, cache_key=key)
