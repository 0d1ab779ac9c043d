import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from . import database
from .api import analytics as analytics_api
from .config import STATS_CACHE_BACKEND
from .services.stats_cache import DatabaseCacheStore
from .utils.error_handlers import create_error_response, get_error_message, register_exception_handlers

app = FastAPI(title="Job Search Analytics")

app.include_router(analytics_api.router)
register_exception_handlers(app)

logger = logging.getLogger(__name__)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "Backend running",
        "service": "Job Search Analytics"
    }


@app.get("/health/db")
def db_health():
    try:
        with database.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"success": True, "database": "ok"}
    except OperationalError as e:
        logger.warning("DB health check failed: %s", e)
        return create_error_response(503, get_error_message("database_error"))


@app.get("/health/cache")
async def cache_health(request: Request):
    """Report the cache backend and whether it answers; never fails the request."""
    service = analytics_api.get_analytics_service(request)
    return {
        "success": True,
        "backend": service.cache.store.name,
        "reachable": await service.cache.ping(),
        "ttl_s": service.cache.ttl_s,
    }


_default_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
_extra_origins = [
    origin.strip()
    for origin in os.getenv("FRONTEND_ORIGINS", "").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=[*_default_origins, *_extra_origins],
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
    expose_headers=["X-Cache", "X-Cache-Key"],
)


@app.on_event("startup")
def on_startup() -> None:
    try:
        database.init_db()
    except SQLAlchemyError as e:
        # Keep serving: summary requests report the store as unavailable until the DB is back.
        logger.error("Database initialization failed: %s", e)
        return

    if STATS_CACHE_BACKEND == "db":
        DatabaseCacheStore(database.get_session_factory()).purge_expired()
