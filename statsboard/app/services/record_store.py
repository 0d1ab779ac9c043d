"""
Read-only queries over tracked applications and ATS score snapshots.

Every method opens (and closes) its own session, so callers may run several
of them at once on worker threads. Database failures surface as
StoreUnavailableError; nothing here retries.
"""

import json
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.applied_job import DEFAULT_APPLICATION_STATUS, AppliedJob
from ..models.ats_score import AtsScore
from ..models.user import User
from ..utils.error_handlers import StoreUnavailableError, get_error_message
from .periods import Window, as_utc, month_key

logger = logging.getLogger(__name__)

ANALYSIS_KEYS = ("missingKeywords", "recommendations", "strengths", "weaknesses")


@dataclass(frozen=True)
class ApplicationRecord:
    id: int
    title: str
    company: str | None
    match_score: float | None
    status: str
    applied_at: datetime


@dataclass(frozen=True)
class ScoreSnapshot:
    id: int
    score: int
    created_at: datetime
    resume_text: str | None = None
    job_description: str | None = None
    analysis: dict[str, list[str]] | None = None


@dataclass(frozen=True)
class CompanyRow:
    # None when the application has no company recorded.
    company: str | None
    applications: int
    avg_score: float | None


@dataclass(frozen=True)
class MonthlyScoreRow:
    period_key: str
    average: float
    count: int


@dataclass(frozen=True)
class ScoreSummary:
    count: int = 0
    average: float | None = None


@dataclass
class _MonthAccumulator:
    total: float = 0.0
    count: int = 0


def _db_time(value: datetime) -> datetime:
    # Stored timestamps are naive UTC on SQLite/MySQL; bind the same shape.
    return as_utc(value).replace(tzinfo=None)


def _parse_analysis(raw: str | None) -> dict[str, list[str]] | None:
    if not raw:
        return None
    try:
        payload: Any = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed ATS analysis JSON")
        return None
    if not isinstance(payload, dict):
        return None
    analysis: dict[str, list[str]] = {}
    for key in ANALYSIS_KEYS:
        items = payload.get(key)
        if isinstance(items, list):
            analysis[key] = [str(x) for x in items if x is not None]
    return analysis or None


class RecordStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            logger.error("Record store error during %s: %s", operation, e)
            raise StoreUnavailableError(get_error_message("stats_unavailable")) from e
        finally:
            db.close()

    @staticmethod
    def _apply_window(query, column, window: Window | None):
        if window is None:
            return query
        query = query.filter(column >= _db_time(window.start))
        if window.end is not None:
            query = query.filter(column < _db_time(window.end))
        return query

    # -------------------- owners --------------------

    def find_owner_id(self, subject: str) -> int | None:
        """Map a token subject (numeric users.id or external id) to users.id."""
        with self._session("owner lookup") as db:
            query = db.query(User.id)
            if subject.isdigit():
                query = query.filter(User.id == int(subject))
            else:
                query = query.filter(User.external_id == subject)
            row = query.first()
            return int(row[0]) if row else None

    # -------------------- applications --------------------

    def count_applications(
        self,
        owner_id: int,
        *,
        window: Window | None = None,
        status: str | None = None,
    ) -> int:
        with self._session("count applications") as db:
            query = db.query(func.count(AppliedJob.id)).filter(AppliedJob.user_id == owner_id)
            query = self._apply_window(query, AppliedJob.applied_at, window)
            if status is not None:
                query = query.filter(AppliedJob.status == status)
            return int(query.scalar() or 0)

    def count_by_status(self, owner_id: int) -> dict[str, int]:
        """Raw status -> count rows; stages with no applications are simply absent."""
        with self._session("count by status") as db:
            rows = (
                db.query(AppliedJob.status, func.count(AppliedJob.id))
                .filter(AppliedJob.user_id == owner_id)
                .group_by(AppliedJob.status)
                .all()
            )
        counts: dict[str, int] = {}
        for status, count in rows:
            key = (status or "").strip() or DEFAULT_APPLICATION_STATUS
            counts[key] = counts.get(key, 0) + int(count or 0)
        return counts

    def top_companies(self, owner_id: int, *, limit: int = 5) -> list[CompanyRow]:
        with self._session("company rollup") as db:
            company_key = func.nullif(func.trim(AppliedJob.company), "")
            applications = func.count(AppliedJob.id)
            rows = (
                db.query(company_key, applications, func.avg(AppliedJob.match_score))
                .filter(AppliedJob.user_id == owner_id)
                .group_by(company_key)
                .order_by(applications.desc(), company_key.asc())
                .limit(limit)
                .all()
            )
        return [
            CompanyRow(
                company=company,
                applications=int(count or 0),
                avg_score=float(avg) if avg is not None else None,
            )
            for company, count, avg in rows
        ]

    def recent_applications(self, owner_id: int, *, limit: int = 5) -> list[ApplicationRecord]:
        with self._session("recent applications") as db:
            rows = (
                db.query(AppliedJob)
                .filter(AppliedJob.user_id == owner_id)
                .order_by(AppliedJob.applied_at.desc(), AppliedJob.id.desc())
                .limit(limit)
                .all()
            )
            return [
                ApplicationRecord(
                    id=int(a.id),
                    title=a.title,
                    company=a.company,
                    match_score=float(a.match_score) if a.match_score is not None else None,
                    status=(a.status or "").strip() or DEFAULT_APPLICATION_STATUS,
                    applied_at=as_utc(a.applied_at),
                )
                for a in rows
            ]

    # -------------------- score snapshots --------------------

    def score_summary(self, owner_id: int) -> ScoreSummary:
        with self._session("score summary") as db:
            count, average = (
                db.query(func.count(AtsScore.id), func.avg(AtsScore.score))
                .filter(AtsScore.user_id == owner_id)
                .one()
            )
        return ScoreSummary(
            count=int(count or 0),
            average=float(average) if average is not None else None,
        )

    def monthly_scores(self, owner_id: int, *, since: datetime) -> list[MonthlyScoreRow]:
        """Average and count per calendar month (UTC), ascending by month."""
        with self._session("monthly scores") as db:
            rows = (
                db.query(AtsScore.created_at, AtsScore.score)
                .filter(AtsScore.user_id == owner_id, AtsScore.created_at >= _db_time(since))
                .all()
            )
        # Bucketing in Python keeps the query portable (strftime vs DATE_FORMAT).
        buckets: dict[str, _MonthAccumulator] = {}
        for created_at, score in rows:
            if created_at is None or score is None:
                continue
            acc = buckets.setdefault(month_key(as_utc(created_at)), _MonthAccumulator())
            acc.total += float(score)
            acc.count += 1
        return [
            MonthlyScoreRow(period_key=key, average=acc.total / acc.count, count=acc.count)
            for key, acc in sorted(buckets.items())
        ]

    def recent_scores(self, owner_id: int, *, limit: int = 50) -> list[ScoreSnapshot]:
        with self._session("recent scores") as db:
            rows = (
                db.query(AtsScore)
                .filter(AtsScore.user_id == owner_id)
                .order_by(AtsScore.created_at.desc(), AtsScore.id.desc())
                .limit(limit)
                .all()
            )
            return [
                ScoreSnapshot(
                    id=int(s.id),
                    score=int(s.score),
                    created_at=as_utc(s.created_at),
                    resume_text=s.resume_text,
                    job_description=s.job_description,
                    analysis=_parse_analysis(s.analysis_json),
                )
                for s in rows
            ]
