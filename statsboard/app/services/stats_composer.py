"""
Turns RawMetrics into the analytics summary the dashboard renders.

Pure: no I/O and no clock reads. The reference instant comes in from the
caller so daysAgo agrees with the windows the counts were taken over.

Numeric policy:
- every ratio has an explicit zero-denominator branch (0, never NaN)
- rounding is half-up (floor(x + 0.5)) for every displayed number
- percentages are clamped to [0, 100]; month-over-month change to
  [MIN_CHANGE_PERCENT, MAX_CHANGE_PERCENT]
Funnel percentages are rounded independently and may not sum to exactly 100.
"""

import math
from datetime import datetime

from ..models.applied_job import DEFAULT_APPLICATION_STATUS
from ..schemas.analytics import (
    AnalyticsSummary,
    ChangeType,
    DetailedScore,
    FunnelStage,
    HeadlineStat,
    Insights,
    RecentApplication,
    ScoreAnalysis,
    ScorePoint,
    TopCompany,
    WeeklyPoint,
)
from .metric_aggregator import RawMetrics
from .periods import days_ago
from .record_store import CompanyRow, ScoreSnapshot

FUNNEL_STAGES = (
    ("Applied", "Briefcase"),
    ("Assessment", "BrainCircuit"),
    ("Interviewing", "Users"),
    ("Offer", "Award"),
)
ACTIVE_STAGES = tuple(stage for stage, _ in FUNNEL_STAGES)
RESPONDED_STAGES = ("Assessment", "Interviewing", "Offer")

UNKNOWN_COMPANY = "Unknown"
EXCERPT_MAX_CHARS = 100

MIN_CHANGE_PERCENT = -100
MAX_CHANGE_PERCENT = 9999

EXCELLENT_SCORE = 80
GOOD_SCORE = 60
INTERVIEW_CONVERSION_TARGET = 10


def round_half_up(value: float) -> int:
    if value is None or not math.isfinite(value):
        return 0
    return int(math.floor(value + 0.5))


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def percent_change(current: int, previous: int) -> int:
    """Month-over-month change; 0 -> n counts as +100%, 0 -> 0 as 0%."""
    if previous > 0:
        change = round_half_up((current - previous) / previous * 100)
    else:
        change = 100 if current > 0 else 0
    return clamp(change, MIN_CHANGE_PERCENT, MAX_CHANGE_PERCENT)


def ratio_percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return clamp(round_half_up(part / whole * 100), 0, 100)


def score_percent(value: float | None) -> int:
    return clamp(round_half_up(value or 0.0), 0, 100)


def format_change(change: int) -> str:
    return f"{'+' if change >= 0 else ''}{change}%"


def change_direction(change: int) -> ChangeType:
    # Zero reads as "+0%", so it goes with increase.
    return "increase" if change >= 0 else "decrease"


def excerpt(text: str | None, limit: int = EXCERPT_MAX_CHARS) -> str | None:
    if not text:
        return None
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def company_label(company: str | None) -> str:
    # Missing company is its own bucket rather than being dropped.
    if company is None or not company.strip():
        return UNKNOWN_COMPANY
    return company


def _score_badge(avg: int) -> tuple[str, ChangeType]:
    if avg >= EXCELLENT_SCORE:
        return "Excellent", "increase"
    if avg >= GOOD_SCORE:
        return "Good", "neutral"
    return "Improve", "decrease"


def _detailed_score(snapshot: ScoreSnapshot, now: datetime) -> DetailedScore:
    return DetailedScore(
        id=str(snapshot.id),
        score=score_percent(snapshot.score),
        date=snapshot.created_at,
        resume_text=excerpt(snapshot.resume_text),
        job_description=excerpt(snapshot.job_description),
        analysis=ScoreAnalysis.model_validate(snapshot.analysis) if snapshot.analysis else None,
        created_at=snapshot.created_at,
        days_ago=days_ago(now, snapshot.created_at),
    )


def _top_company(row: CompanyRow) -> TopCompany:
    return TopCompany(
        name=company_label(row.company),
        applications=row.applications,
        avg_score=score_percent(row.avg_score),
    )


def compose_summary(raw: RawMetrics, now: datetime) -> AnalyticsSummary:
    counts = raw.status_counts
    total_active = sum(counts.get(stage, 0) for stage in ACTIVE_STAGES)
    interviews = counts.get("Interviewing", 0)
    offers = counts.get("Offer", 0)
    saved = counts.get("Saved", 0)

    applied_change = percent_change(raw.current_month_applications, raw.previous_month_applications)
    conversion_to_interview = ratio_percent(interviews, total_active)
    conversion_to_offer = ratio_percent(offers, total_active)
    response_rate = ratio_percent(
        sum(counts.get(stage, 0) for stage in RESPONDED_STAGES),
        raw.total_applications,
    )
    average_score = score_percent(raw.average_score) if raw.score_count else 0
    badge, badge_type = _score_badge(average_score)

    stats = [
        HeadlineStat(
            label="Total Applications",
            value=str(raw.total_applications),
            icon="Briefcase",
            change=format_change(applied_change),
            change_type=change_direction(applied_change),
            change_magnitude=applied_change,
            subtext=f"{raw.current_month_applications} this month",
        ),
        HeadlineStat(
            label="Average Match Score",
            value=f"{average_score}%",
            icon="Target",
            change=badge,
            change_type=badge_type,
            change_magnitude=average_score,
            subtext=f"{response_rate}% response rate",
        ),
        HeadlineStat(
            label="Active Interviews",
            value=str(interviews),
            icon="Calendar",
            change=f"{conversion_to_interview}%",
            change_type="increase" if conversion_to_interview >= INTERVIEW_CONVERSION_TARGET else "neutral",
            change_magnitude=conversion_to_interview,
            subtext="conversion rate",
        ),
        HeadlineStat(
            label="Saved Jobs",
            value=str(saved),
            icon="BookmarkPlus",
            change=str(raw.last_7_days_applications),
            change_type="neutral",
            change_magnitude=raw.last_7_days_applications,
            subtext="last 7 days",
        ),
    ]

    funnel = [
        FunnelStage(
            stage=stage,
            count=counts.get(stage, 0),
            icon=icon,
            percentage=ratio_percent(counts.get(stage, 0), total_active),
        )
        for stage, icon in FUNNEL_STAGES
    ]

    return AnalyticsSummary(
        stats=stats,
        application_funnel=funnel,
        score_over_time=[
            ScorePoint(date=row.period_key, score=score_percent(row.average), count=row.count)
            for row in raw.monthly_scores
            if row.count > 0
        ],
        detailed_scores=[_detailed_score(s, now) for s in raw.recent_scores],
        recent_applications=[
            RecentApplication(
                id=str(a.id),
                title=a.title,
                company=a.company,
                score=score_percent(a.match_score),
                status=a.status or DEFAULT_APPLICATION_STATUS,
                applied_at=a.applied_at,
                days_ago=days_ago(now, a.applied_at),
            )
            for a in raw.recent_applications
        ],
        top_companies=[_top_company(row) for row in raw.top_companies],
        weekly_trend=[WeeklyPoint(week=label, applications=count) for label, count in raw.weekly_counts],
        insights=Insights(
            total_applications=raw.total_applications,
            saved_jobs=saved,
            interviews=interviews,
            offers=offers,
            rejections=counts.get("Rejected", 0),
            response_rate=response_rate,
            conversion_to_interview=conversion_to_interview,
            conversion_to_offer=conversion_to_offer,
            average_score=average_score,
            recent_activity=raw.last_7_days_applications,
        ),
    )
