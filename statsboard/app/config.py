import os
from pathlib import Path
from dotenv import load_dotenv

# Override=True so changes in .env take effect on process reload (and not get
# stuck on old environment variables).
#
# For automated tests (SQLite), we need to prevent .env from overriding the
# test DATABASE_URL. Set DISABLE_DOTENV=1 to skip loading .env.
if os.getenv("DISABLE_DOTENV") != "1":
    load_dotenv(override=True)


def _env_flag(name: str, default: str = "0") -> bool:
    return (os.getenv(name, default) or default).strip() in {"1", "true", "True", "yes", "YES"}


_raw_database_url = (os.getenv("DATABASE_URL") or "").strip()
# Default to a local SQLite DB for dev so the service can start out-of-the-box.
# Use an absolute path so it works regardless of current working directory.
_default_sqlite_path = (Path(__file__).resolve().parent.parent / "dev.db").as_posix()
DATABASE_URL = _raw_database_url or f"sqlite:///{_default_sqlite_path}"
DATABASE_ECHO = _env_flag("DATABASE_ECHO")

# Auth / JWT
# Tokens are minted by the identity service; we only verify them. Keep a default for
# local dev so the server can boot even if SECRET_KEY isn't set.
SECRET_KEY = os.getenv("SECRET_KEY", "dev_secret_change_me")

# -------------------- Analytics summary --------------------
# Upper bound for the whole read phase of one summary request.
STORE_TIMEOUT_S = float(os.getenv("STORE_TIMEOUT_S", "10") or "10")
DETAILED_SCORES_LIMIT = int(os.getenv("DETAILED_SCORES_LIMIT", "50") or "50")

# -------------------- Stats cache --------------------
# db     -> rows in the stats_cache table (shared across workers)
# memory -> process-local dict (tests / single-process dev)
# none   -> caching disabled, every request recomputes
STATS_CACHE_BACKEND = (os.getenv("STATS_CACHE_BACKEND", "db") or "db").strip().lower()
STATS_CACHE_TTL_S = int(os.getenv("STATS_CACHE_TTL_S", "300") or "300")
# After a cache read/write error, skip the store for this long.
STATS_CACHE_RETRY_AFTER_S = float(os.getenv("STATS_CACHE_RETRY_AFTER_S", "30") or "30")
