import logging
from collections.abc import Callable
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .. import database
from ..config import DETAILED_SCORES_LIMIT, STATS_CACHE_BACKEND, STORE_TIMEOUT_S
from ..services.analytics_summary import AnalyticsService
from ..services.metric_aggregator import MetricAggregator
from ..services.periods import utc_now
from ..services.record_store import RecordStore
from ..services.stats_cache import CacheStore, StatsCacheManager, build_cache_store
from ..utils.dependencies import get_current_user
from ..utils.error_handlers import NotFoundError, get_error_message

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["Analytics"])


def _session_factory() -> Session:
    # Resolved per call so a rebound database.SessionLocal (tests) is honoured.
    return database.get_session_factory()()


def build_analytics_service(
    *,
    cache_store: CacheStore | None = None,
    timeout_s: float = STORE_TIMEOUT_S,
    clock: Callable[[], datetime] = utc_now,
) -> AnalyticsService:
    store = RecordStore(_session_factory)
    return AnalyticsService(
        store=store,
        aggregator=MetricAggregator(store, timeout_s=timeout_s, detailed_scores_limit=DETAILED_SCORES_LIMIT),
        cache=StatsCacheManager(
            cache_store if cache_store is not None else build_cache_store(STATS_CACHE_BACKEND, _session_factory)
        ),
        clock=clock,
    )


def get_analytics_service(request: Request) -> AnalyticsService:
    service = getattr(request.app.state, "analytics", None)
    if service is None:
        service = build_analytics_service()
        request.app.state.analytics = service
    return service


@router.get("/summary")
async def analytics_summary(
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    service: AnalyticsService = Depends(get_analytics_service),
):
    owner_id = await service.resolve_owner(user["sub"])
    if owner_id is None:
        logger.info("Analytics summary requested for unknown user subject=%s", user["sub"])
        raise NotFoundError(get_error_message("user_not_found"))

    result = await service.summary(owner_id)
    if not result.cache_hit:
        # Runs after the response is sent; a slow or failing cache never delays it.
        background_tasks.add_task(service.cache.set, owner_id, result.payload)

    return JSONResponse(
        content=result.payload,
        headers={
            "X-Cache": "HIT" if result.cache_hit else "MISS",
            "X-Cache-Key": result.cache_key,
        },
    )
