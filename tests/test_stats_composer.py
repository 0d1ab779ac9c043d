import math
from datetime import timedelta

import pytest
from pydantic import ValidationError

from statsboard.app.schemas.analytics import FunnelStage
from statsboard.app.services.metric_aggregator import RawMetrics, fill_status_counts
from statsboard.app.services.record_store import ApplicationRecord, CompanyRow, MonthlyScoreRow, ScoreSnapshot
from statsboard.app.services.stats_composer import (
    compose_summary,
    excerpt,
    percent_change,
    ratio_percent,
    round_half_up,
)


def _payload(raw: RawMetrics, now) -> dict:
    return compose_summary(raw, now).to_payload()


def _percent_fields(payload: dict) -> list[int]:
    values = [stage["percentage"] for stage in payload["applicationFunnel"]]
    values += [point["score"] for point in payload["scoreOverTime"]]
    values += [s["score"] for s in payload["detailedScores"]]
    values += [a["score"] for a in payload["recentApplications"]]
    values += [c["avgScore"] for c in payload["topCompanies"]]
    insights = payload["insights"]
    values += [
        insights["responseRate"],
        insights["conversionToInterview"],
        insights["conversionToOffer"],
        insights["averageScore"],
    ]
    return values


@pytest.mark.parametrize(
    "current, previous, expected",
    [
        (10, 4, 150),
        (3, 0, 100),
        (0, 0, 0),
        (2, 4, -50),
        (0, 5, -100),
        (1, 3, -67),
        (3, 2, 50),
        (100000, 1, 9999),
    ],
)
def test_percent_change(current, previous, expected):
    assert percent_change(current, previous) == expected


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(33.333) == 33
    assert round_half_up(-2.5) == -2
    assert round_half_up(math.nan) == 0
    assert round_half_up(math.inf) == 0


def test_ratio_percent_zero_denominator():
    assert ratio_percent(0, 0) == 0
    assert ratio_percent(5, 0) == 0
    assert ratio_percent(1, 3) == 33
    assert ratio_percent(2, 3) == 67


def test_excerpt_bounds_long_text():
    assert excerpt(None) is None
    assert excerpt("") is None
    assert excerpt("short") == "short"
    long = "x" * 250
    assert excerpt(long) == "x" * 100 + "..."


def test_zero_data_owner_gets_all_zero_summary(fixed_now):
    payload = _payload(RawMetrics(), fixed_now)

    assert [s["label"] for s in payload["stats"]] == [
        "Total Applications",
        "Average Match Score",
        "Active Interviews",
        "Saved Jobs",
    ]
    assert payload["stats"][0]["value"] == "0"
    assert payload["stats"][0]["change"] == "+0%"
    assert payload["stats"][0]["changeMagnitude"] == 0
    assert payload["stats"][1]["value"] == "0%"

    assert [f["stage"] for f in payload["applicationFunnel"]] == ["Applied", "Assessment", "Interviewing", "Offer"]
    assert all(f["count"] == 0 and f["percentage"] == 0 for f in payload["applicationFunnel"])

    assert [w["week"] for w in payload["weeklyTrend"]] == ["Week 1", "Week 2", "Week 3", "Week 4"]
    assert all(w["applications"] == 0 for w in payload["weeklyTrend"])

    assert payload["scoreOverTime"] == []
    assert payload["detailedScores"] == []
    assert payload["recentApplications"] == []
    assert payload["topCompanies"] == []
    assert all(v == 0 for v in payload["insights"].values())


def test_month_over_month_increase(fixed_now):
    raw = RawMetrics(total_applications=14, current_month_applications=10, previous_month_applications=4)
    headline = _payload(raw, fixed_now)["stats"][0]

    assert headline["value"] == "14"
    assert headline["change"] == "+150%"
    assert headline["changeType"] == "increase"
    assert headline["changeMagnitude"] == 150
    assert headline["subtext"] == "10 this month"


def test_zero_previous_month_counts_as_full_increase(fixed_now):
    raw = RawMetrics(total_applications=3, current_month_applications=3, previous_month_applications=0)
    headline = _payload(raw, fixed_now)["stats"][0]

    assert headline["changeMagnitude"] == 100
    assert headline["change"] == "+100%"


def test_unchanged_month_counts_as_increase(fixed_now):
    raw = RawMetrics(total_applications=6, current_month_applications=3, previous_month_applications=3)
    headline = _payload(raw, fixed_now)["stats"][0]

    assert headline["change"] == "+0%"
    assert headline["changeType"] == "increase"
    assert headline["changeMagnitude"] == 0


def test_month_over_month_decrease(fixed_now):
    raw = RawMetrics(total_applications=6, current_month_applications=2, previous_month_applications=4)
    headline = _payload(raw, fixed_now)["stats"][0]

    assert headline["change"] == "-50%"
    assert headline["changeType"] == "decrease"


def test_funnel_excludes_saved_and_rejected_from_active(fixed_now):
    counts = fill_status_counts({"Applied": 1, "Assessment": 1, "Interviewing": 1, "Saved": 5, "Rejected": 7})
    raw = RawMetrics(total_applications=15, status_counts=counts)
    payload = _payload(raw, fixed_now)

    funnel = {f["stage"]: f for f in payload["applicationFunnel"]}
    assert funnel["Applied"]["percentage"] == 33
    assert funnel["Assessment"]["percentage"] == 33
    assert funnel["Interviewing"]["percentage"] == 33
    assert funnel["Offer"]["percentage"] == 0
    # Independent rounding: 99, not forced to 100.
    assert sum(f["percentage"] for f in payload["applicationFunnel"]) == 99

    insights = payload["insights"]
    assert insights["savedJobs"] == 5
    assert insights["rejections"] == 7
    assert insights["conversionToInterview"] == 33
    assert insights["conversionToOffer"] == 0
    # (1 + 1 + 0) / 15
    assert insights["responseRate"] == 13


def test_response_rate_and_conversion(fixed_now):
    counts = fill_status_counts({"Applied": 6, "Assessment": 1, "Interviewing": 2, "Offer": 1})
    raw = RawMetrics(total_applications=10, status_counts=counts)
    payload = _payload(raw, fixed_now)

    assert payload["insights"]["responseRate"] == 40
    assert payload["insights"]["conversionToInterview"] == 20
    assert payload["insights"]["conversionToOffer"] == 10
    interviews = payload["stats"][2]
    assert interviews["value"] == "2"
    assert interviews["change"] == "20%"
    assert interviews["changeType"] == "increase"


def test_average_match_score_badges(fixed_now):
    def badge(avg):
        raw = RawMetrics(score_count=1, average_score=avg)
        stat = _payload(raw, fixed_now)["stats"][1]
        return stat["value"], stat["change"], stat["changeType"], stat["changeMagnitude"]

    assert badge(80.0) == ("80%", "Excellent", "increase", 80)
    assert badge(79.5) == ("80%", "Excellent", "increase", 80)
    assert badge(65.0) == ("65%", "Good", "neutral", 65)
    assert badge(40.0) == ("40%", "Improve", "decrease", 40)


def test_detailed_scores_and_average(fixed_now):
    snapshots = [
        ScoreSnapshot(id=i, score=s, created_at=fixed_now - timedelta(days=i, hours=1))
        for i, s in enumerate([60, 70, 80, 90, 100])
    ]
    raw = RawMetrics(score_count=5, average_score=80.0, recent_scores=snapshots)
    payload = _payload(raw, fixed_now)

    assert payload["insights"]["averageScore"] == 80
    assert payload["stats"][1]["value"] == "80%"
    assert len(payload["detailedScores"]) == 5
    assert [s["daysAgo"] for s in payload["detailedScores"]] == [0, 1, 2, 3, 4]
    assert all(s["daysAgo"] >= 0 for s in payload["detailedScores"])


def test_detailed_score_excerpts_and_analysis(fixed_now):
    snapshot = ScoreSnapshot(
        id=7,
        score=72,
        created_at=fixed_now - timedelta(days=1),
        resume_text="r" * 300,
        job_description="Python role",
        analysis={"missingKeywords": ["Kafka"], "strengths": ["SQL"]},
    )
    detail = _payload(RawMetrics(score_count=1, average_score=72, recent_scores=[snapshot]), fixed_now)[
        "detailedScores"
    ][0]

    assert detail["id"] == "7"
    assert detail["resumeText"] == "r" * 100 + "..."
    assert detail["jobDescription"] == "Python role"
    assert detail["analysis"] == {
        "missingKeywords": ["Kafka"],
        "recommendations": None,
        "strengths": ["SQL"],
        "weaknesses": None,
    }
    assert detail["date"] == detail["createdAt"]


def test_top_companies_average_and_unknown_bucket(fixed_now):
    rows = [
        CompanyRow(company="Acme", applications=2, avg_score=80.0),
        CompanyRow(company=None, applications=1, avg_score=None),
    ]
    payload = _payload(RawMetrics(top_companies=rows), fixed_now)

    assert payload["topCompanies"] == [
        {"name": "Acme", "applications": 2, "avgScore": 80},
        {"name": "Unknown", "applications": 1, "avgScore": 0},
    ]


def test_recent_applications_enriched_with_days_ago(fixed_now):
    apps = [
        ApplicationRecord(
            id=3,
            title="Data Engineer",
            company="Globex",
            match_score=None,
            status="Interviewing",
            applied_at=fixed_now - timedelta(days=10),
        )
    ]
    recent = _payload(RawMetrics(recent_applications=apps), fixed_now)["recentApplications"][0]

    assert recent["id"] == "3"
    assert recent["score"] == 0
    assert recent["status"] == "Interviewing"
    assert recent["daysAgo"] == 10


def test_score_over_time_rounds_monthly_average(fixed_now):
    rows = [
        MonthlyScoreRow(period_key="2025-05", average=72.5, count=2),
        MonthlyScoreRow(period_key="2025-06", average=88.0, count=1),
    ]
    payload = _payload(RawMetrics(monthly_scores=rows), fixed_now)

    assert payload["scoreOverTime"] == [
        {"date": "2025-05", "score": 73, "count": 2},
        {"date": "2025-06", "score": 88, "count": 1},
    ]


def test_out_of_range_scores_do_not_crash_and_are_clamped(fixed_now):
    snapshots = [
        ScoreSnapshot(id=1, score=150, created_at=fixed_now),
        ScoreSnapshot(id=2, score=-5, created_at=fixed_now),
    ]
    raw = RawMetrics(
        score_count=2,
        average_score=130.0,
        recent_scores=snapshots,
        monthly_scores=[MonthlyScoreRow(period_key="2025-06", average=math.nan, count=2)],
        top_companies=[CompanyRow(company="Acme", applications=1, avg_score=250.0)],
    )
    payload = _payload(raw, fixed_now)

    assert [s["score"] for s in payload["detailedScores"]] == [100, 0]
    assert payload["insights"]["averageScore"] == 100
    assert payload["scoreOverTime"][0]["score"] == 0
    assert payload["topCompanies"][0]["avgScore"] == 100


def test_every_percentage_is_a_bounded_integer(fixed_now):
    counts = fill_status_counts({"Applied": 3, "Assessment": 2, "Interviewing": 2, "Offer": 1, "Rejected": 4})
    raw = RawMetrics(
        total_applications=12,
        current_month_applications=1,
        previous_month_applications=7,
        status_counts=counts,
        score_count=3,
        average_score=66.6666,
        top_companies=[CompanyRow(company="Acme", applications=12, avg_score=55.5)],
    )
    payload = _payload(raw, fixed_now)

    for value in _percent_fields(payload):
        assert isinstance(value, int)
        assert 0 <= value <= 100
    for stat in payload["stats"]:
        magnitude = stat["changeMagnitude"]
        assert isinstance(magnitude, int) and -100 <= magnitude <= 9999


def test_every_headline_stat_has_integer_magnitude_with_no_data(fixed_now):
    magnitudes = [s["changeMagnitude"] for s in _payload(RawMetrics(), fixed_now)["stats"]]

    assert magnitudes == [0, 0, 0, 0]
    assert all(isinstance(m, int) for m in magnitudes)


def test_composition_is_deterministic(fixed_now):
    raw = RawMetrics(total_applications=4, current_month_applications=2, previous_month_applications=1)
    assert _payload(raw, fixed_now) == _payload(raw, fixed_now)


def test_schema_clamps_percentages_and_rejects_non_numbers():
    assert FunnelStage(stage="Applied", icon="Briefcase", percentage=150).percentage == 100
    assert FunnelStage(stage="Applied", icon="Briefcase", percentage=-3).percentage == 0

    with pytest.raises(ValidationError):
        FunnelStage(stage="Applied", icon="Briefcase", percentage="lots")
