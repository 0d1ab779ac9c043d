import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


# Ensure `import statsboard.app...` works regardless of where pytest is run from.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Must be set before statsboard.app.config is first imported (test modules import it at collection).
os.environ["DISABLE_DOTENV"] = "1"
os.environ["STATS_CACHE_BACKEND"] = "memory"

# Reference instant for every deterministic test: Sunday 2025-06-15 12:00 UTC.
FIXED_NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite3"


@pytest.fixture()
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture()
def session_factory(test_db_path: Path):
    """
    Session factory bound to a fresh temporary SQLite DB, also installed as the
    shared `database.SessionLocal` so router dependencies use it.
    """
    os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{test_db_path}"

    from statsboard.app import database as db

    engine = create_engine(
        os.environ["DATABASE_URL"],
        connect_args={"check_same_thread": False},
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Patch the shared database module so router dependencies use the test DB.
    db.engine = engine
    db.SessionLocal = TestingSessionLocal

    # Import models so Base metadata is populated, then create tables.
    from statsboard.app import models  # noqa: F401

    db.Base.metadata.drop_all(bind=engine)
    db.Base.metadata.create_all(bind=engine)

    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture()
def memory_cache():
    from statsboard.app.services.stats_cache import MemoryCacheStore

    return MemoryCacheStore()


@pytest.fixture()
def app(session_factory, memory_cache, fixed_now) -> FastAPI:
    """
    A FastAPI app with the analytics router wired to the temporary SQLite DB,
    an in-memory cache and a pinned clock.

    We intentionally do NOT import `statsboard.app.main` so no startup hooks run.
    """
    from statsboard.app.api import analytics as analytics_api
    from statsboard.app.utils.error_handlers import register_exception_handlers

    fastapi_app = FastAPI()
    fastapi_app.include_router(analytics_api.router)
    register_exception_handlers(fastapi_app)
    fastapi_app.state.analytics = analytics_api.build_analytics_service(
        cache_store=memory_cache,
        clock=lambda: fixed_now,
    )
    return fastapi_app


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def db_session(session_factory):
    """
    Direct SQLAlchemy session bound to the same temporary SQLite DB used by the test app.
    """
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


class Seeder:
    """Inserts rows the way the owning features would."""

    def __init__(self, db):
        self.db = db
        self._n = 0

    def user(self, *, external_id: str | None = None, email: str | None = None):
        from statsboard.app.models.user import User

        self._n += 1
        user = User(email=email or f"user{self._n}@example.com", external_id=external_id, name=f"User {self._n}")
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def application(
        self,
        user,
        *,
        applied_at: datetime,
        status: str = "Applied",
        company: str | None = "Acme",
        title: str = "Backend Engineer",
        match_score: float | None = None,
    ):
        from statsboard.app.models.applied_job import AppliedJob

        row = AppliedJob(
            user_id=user.id,
            title=title,
            company=company,
            status=status,
            match_score=match_score,
            applied_at=applied_at,
        )
        self.db.add(row)
        self.db.commit()
        return row

    def score(
        self,
        user,
        *,
        score: int,
        created_at: datetime,
        resume_text: str | None = None,
        job_description: str | None = None,
        analysis: dict | str | None = None,
    ):
        from statsboard.app.models.ats_score import AtsScore

        row = AtsScore(
            user_id=user.id,
            score=score,
            created_at=created_at,
            resume_text=resume_text,
            job_description=job_description,
            analysis_json=json.dumps(analysis) if isinstance(analysis, dict) else analysis,
        )
        self.db.add(row)
        self.db.commit()
        return row


@pytest.fixture()
def seed(db_session) -> Seeder:
    return Seeder(db_session)


@pytest.fixture()
def auth_headers():
    from statsboard.app.utils.jwt import create_access_token

    def _headers(subject) -> dict:
        token = create_access_token({"sub": str(subject)})
        return {"Authorization": f"Bearer {token}"}

    return _headers
