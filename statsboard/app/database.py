import logging

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_ECHO, DATABASE_URL, STORE_TIMEOUT_S

logger = logging.getLogger(__name__)


def _normalize_database_url(url: str) -> str:
    # Allow simpler `.env` values like `mysql://...` and upgrade to the driver form.
    return url.replace("mysql://", "mysql+pymysql://", 1) if url.startswith("mysql://") else url


def engine_options(url: str, timeout_s: float = STORE_TIMEOUT_S) -> dict:
    """
    create_engine kwargs for `url`.

    Driver and pool waits are bounded by the same budget as a summary's read
    phase, so a worker thread abandoned by a timed-out request still ends.
    """
    seconds = max(1, int(timeout_s))
    options = {"pool_pre_ping": True, "echo": DATABASE_ECHO}
    if url.startswith("sqlite"):
        # Summary reads fan out over worker threads, so SQLite connections must be shareable.
        # `timeout` is how long a statement waits on a locked database.
        options["connect_args"] = {"check_same_thread": False, "timeout": seconds}
        return options

    options["pool_timeout"] = seconds
    if url.startswith("mysql"):
        options["connect_args"] = {
            "connect_timeout": seconds,
            "read_timeout": seconds,
            "write_timeout": seconds,
        }
    elif url.startswith("postgresql"):
        options["connect_args"] = {
            "connect_timeout": seconds,
            "options": f"-c statement_timeout={seconds * 1000}",
        }
    return options


_db_url = _normalize_database_url((DATABASE_URL or "").strip())
_engine_kwargs = engine_options(_db_url)

engine = create_engine(_db_url, **_engine_kwargs)

if _db_url.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):  # noqa: ANN001
        try:
            cursor = dbapi_connection.cursor()
            # Better concurrency for reads+writes in local dev.
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.execute(f"PRAGMA busy_timeout={_engine_kwargs['connect_args']['timeout'] * 1000};")
            cursor.close()
        except Exception as e:
            logger.warning("Failed to set SQLite pragmas: %s", e)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()


def get_session_factory():
    """
    Return the current session factory.

    Looked up at call time (not import time) so tests can rebind `SessionLocal`.
    """
    return SessionLocal


def init_db():
    # Import models so they register with SQLAlchemy metadata before create_all.
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
