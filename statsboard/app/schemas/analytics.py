from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ChangeType = Literal["increase", "decrease", "neutral"]


def _clamp_percent(v: int) -> int:
    if v < 0:
        return 0
    if v > 100:
        return 100
    return v


class _CamelModel(BaseModel):
    # Wire format is camelCase (dashboard contract); Python side stays snake_case.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HeadlineStat(_CamelModel):
    label: str
    value: str
    icon: str
    change: str
    change_type: ChangeType = "neutral"
    # Signed number behind `change`; the average itself for the score badge.
    change_magnitude: int = 0
    subtext: str = ""


class FunnelStage(_CamelModel):
    stage: str
    count: int = 0
    icon: str
    percentage: int = 0

    @field_validator("percentage")
    @classmethod
    def _clamp_percentage(cls, v: int) -> int:
        return _clamp_percent(v)


class ScorePoint(_CamelModel):
    date: str  # YYYY-MM
    score: int = 0
    count: int = 0

    @field_validator("score")
    @classmethod
    def _clamp_score(cls, v: int) -> int:
        return _clamp_percent(v)


class ScoreAnalysis(_CamelModel):
    missing_keywords: list[str] | None = None
    recommendations: list[str] | None = None
    strengths: list[str] | None = None
    weaknesses: list[str] | None = None


class DetailedScore(_CamelModel):
    id: str
    score: int = 0
    date: datetime
    resume_text: str | None = None
    job_description: str | None = None
    analysis: ScoreAnalysis | None = None
    created_at: datetime
    days_ago: int = Field(default=0, ge=0)

    @field_validator("score")
    @classmethod
    def _clamp_score(cls, v: int) -> int:
        return _clamp_percent(v)


class RecentApplication(_CamelModel):
    id: str
    title: str
    company: str | None = None
    score: int = 0
    status: str
    applied_at: datetime
    days_ago: int = Field(default=0, ge=0)

    @field_validator("score")
    @classmethod
    def _clamp_score(cls, v: int) -> int:
        return _clamp_percent(v)


class TopCompany(_CamelModel):
    name: str
    applications: int = 0
    avg_score: int = 0

    @field_validator("avg_score")
    @classmethod
    def _clamp_avg(cls, v: int) -> int:
        return _clamp_percent(v)


class WeeklyPoint(_CamelModel):
    week: str
    applications: int = 0


class Insights(_CamelModel):
    total_applications: int = 0
    saved_jobs: int = 0
    interviews: int = 0
    offers: int = 0
    rejections: int = 0
    response_rate: int = 0
    conversion_to_interview: int = 0
    conversion_to_offer: int = 0
    average_score: int = 0
    recent_activity: int = 0

    @field_validator("response_rate", "conversion_to_interview", "conversion_to_offer", "average_score")
    @classmethod
    def _clamp_rates(cls, v: int) -> int:
        return _clamp_percent(v)


class AnalyticsSummary(_CamelModel):
    stats: list[HeadlineStat] = Field(default_factory=list)
    application_funnel: list[FunnelStage] = Field(default_factory=list)
    score_over_time: list[ScorePoint] = Field(default_factory=list)
    detailed_scores: list[DetailedScore] = Field(default_factory=list)
    recent_applications: list[RecentApplication] = Field(default_factory=list)
    top_companies: list[TopCompany] = Field(default_factory=list)
    weekly_trend: list[WeeklyPoint] = Field(default_factory=list)
    insights: Insights = Field(default_factory=Insights)

    def to_payload(self) -> dict:
        """JSON-ready dict with camelCase keys (what the cache stores and the API returns)."""
        return self.model_dump(mode="json", by_alias=True)
