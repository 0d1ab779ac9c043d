import asyncio
import logging
from dataclasses import dataclass, field

from ..models.applied_job import APPLICATION_STATUSES
from ..utils.error_handlers import StoreUnavailableError, get_error_message
from .periods import WEEK_BUCKETS, StatsWindows
from .record_store import (
    ApplicationRecord,
    CompanyRow,
    MonthlyScoreRow,
    RecordStore,
    ScoreSnapshot,
    ScoreSummary,
)

logger = logging.getLogger(__name__)

RECENT_APPLICATIONS_LIMIT = 5
TOP_COMPANIES_LIMIT = 5


@dataclass(frozen=True)
class RawMetrics:
    """Plain numbers and grouped rows; no percentages, no formatting."""
    total_applications: int = 0
    current_month_applications: int = 0
    previous_month_applications: int = 0
    last_7_days_applications: int = 0
    status_counts: dict[str, int] = field(default_factory=lambda: {s: 0 for s in APPLICATION_STATUSES})
    score_count: int = 0
    # 0.0 when there are no snapshots, never NaN.
    average_score: float = 0.0
    monthly_scores: list[MonthlyScoreRow] = field(default_factory=list)
    recent_scores: list[ScoreSnapshot] = field(default_factory=list)
    recent_applications: list[ApplicationRecord] = field(default_factory=list)
    top_companies: list[CompanyRow] = field(default_factory=list)
    # (label, count), oldest first
    weekly_counts: list[tuple[str, int]] = field(
        default_factory=lambda: [(f"Week {i}", 0) for i in range(1, WEEK_BUCKETS + 1)]
    )


def fill_status_counts(raw: dict[str, int]) -> dict[str, int]:
    """Every stage present, 0 when the grouping produced no row for it."""
    return {stage: int(raw.get(stage, 0) or 0) for stage in APPLICATION_STATUSES}


class MetricAggregator:
    def __init__(self, store: RecordStore, *, timeout_s: float, detailed_scores_limit: int = 50):
        self._store = store
        self._timeout_s = timeout_s
        self._detailed_scores_limit = detailed_scores_limit

    async def collect(self, owner_id: int, windows: StatsWindows) -> RawMetrics:
        """
        Run every read for one owner concurrently and join them.

        The whole read phase shares one deadline; missing it fails the request
        with StoreUnavailableError instead of waiting on a stuck connection.
        """
        try:
            return await asyncio.wait_for(self._gather(owner_id, windows), timeout=self._timeout_s)
        except asyncio.TimeoutError as e:
            logger.error("Record store timed out after %.1fs for user=%s", self._timeout_s, owner_id)
            raise StoreUnavailableError(get_error_message("stats_unavailable")) from e

    async def _gather(self, owner_id: int, windows: StatsWindows) -> RawMetrics:
        store = self._store

        def read(fn, *args, **kwargs):
            return asyncio.to_thread(fn, owner_id, *args, **kwargs)

        weekly_reads = [read(store.count_applications, window=week.window) for week in windows.weeks]

        (
            total,
            current_month,
            previous_month,
            last_7_days,
            status_rows,
            score_summary,
            monthly,
            recent_scores,
            recent_apps,
            companies,
            *weekly,
        ) = await asyncio.gather(
            read(store.count_applications),
            read(store.count_applications, window=windows.current_month),
            read(store.count_applications, window=windows.previous_month),
            read(store.count_applications, window=windows.last_7_days),
            read(store.count_by_status),
            read(store.score_summary),
            read(store.monthly_scores, since=windows.score_series.start),
            read(store.recent_scores, limit=self._detailed_scores_limit),
            read(store.recent_applications, limit=RECENT_APPLICATIONS_LIMIT),
            read(store.top_companies, limit=TOP_COMPANIES_LIMIT),
            *weekly_reads,
        )

        summary: ScoreSummary = score_summary
        return RawMetrics(
            total_applications=total,
            current_month_applications=current_month,
            previous_month_applications=previous_month,
            last_7_days_applications=last_7_days,
            status_counts=fill_status_counts(status_rows),
            score_count=summary.count,
            average_score=summary.average if summary.count and summary.average is not None else 0.0,
            monthly_scores=monthly,
            recent_scores=recent_scores,
            recent_applications=recent_apps,
            top_companies=companies,
            weekly_counts=[(week.label, count) for week, count in zip(windows.weeks, weekly)],
        )
