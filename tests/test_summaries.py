from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from toggl_mcp_fast.summaries import (
    NO_PROJECT,
    daily_report,
    day_range,
    entry_seconds,
    get_date_range,
    project_summaries,
    week_range,
    weekly_report,
    workspace_summaries,
)


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# 2026-02-18 is a Wednesday.
TODAY = date(2026, 2, 18)


@pytest.mark.parametrize(
    ("period", "start", "end"),
    [
        ("today", _utc(2026, 2, 18), _utc(2026, 2, 19)),
        ("yesterday", _utc(2026, 2, 17), _utc(2026, 2, 18)),
        ("week", _utc(2026, 2, 16), _utc(2026, 2, 23)),
        ("lastWeek", _utc(2026, 2, 9), _utc(2026, 2, 16)),
        ("month", _utc(2026, 2, 1), _utc(2026, 3, 1)),
        ("lastMonth", _utc(2026, 1, 1), _utc(2026, 2, 1)),
    ],
)
def test_date_ranges(period: str, start: datetime, end: datetime):
    assert get_date_range(period, TODAY) == (start, end)


def test_last_month_across_year_boundary():
    assert get_date_range("lastMonth", date(2026, 1, 10)) == (_utc(2025, 12, 1), _utc(2026, 1, 1))


def test_unknown_period():
    with pytest.raises(ValueError, match="unknown period"):
        get_date_range("fortnight", TODAY)


def test_running_entry_counts_until_now():
    entry = {"duration": -1, "start": "2026-02-18T09:00:00Z"}

    assert entry_seconds(entry, now=_utc(2026, 2, 18, 9, 30)) == 1800
    assert entry_seconds({"duration": 90}) == 90
    assert entry_seconds({"duration": None}) == 0


def test_project_summaries_sorted_largest_first():
    hydrated = [
        {"project_id": 10, "project_name": "Website", "client_name": "Globex", "duration": 600},
        {"project_id": 11, "project_name": "Mobile", "duration": 7200, "billable": True},
        {"project_id": None, "duration": 60},
        {"project_id": 10, "project_name": "Website", "client_name": "Globex", "duration": 600},
    ]

    summaries = project_summaries(hydrated)

    assert [s["project_name"] for s in summaries] == ["Mobile", "Website", NO_PROJECT]
    assert summaries[0]["billable_hours"] == 2.0
    assert summaries[1] == {
        "project_name": "Website",
        "project_ids": [10],
        "client_name": "Globex",
        "total_seconds": 1200,
        "total_hours": 0.33,
        "billable_seconds": 0,
        "billable_hours": 0.0,
        "entry_count": 2,
    }
    assert summaries[2]["project_ids"] == []


def test_project_summaries_group_by_resolved_name():
    hydrated = [
        {"workspace_id": 1, "project_id": 10, "project_name": "Support", "duration": 300},
        {"workspace_id": 2, "project_id": 20, "project_name": "Support", "duration": 900},
        {"workspace_id": 1, "project_id": 30, "project_name": "Unknown", "duration": 60},
    ]

    summaries = project_summaries(hydrated)

    assert len(summaries) == 2
    assert summaries[0]["project_name"] == "Support"
    assert summaries[0]["project_ids"] == [10, 20]
    assert summaries[0]["total_seconds"] == 1200


def test_workspace_summaries_count_projects():
    hydrated = [
        {"workspace_id": 1, "workspace_name": "Acme", "project_id": 10, "duration": 100},
        {"workspace_id": 1, "workspace_name": "Acme", "project_id": None, "duration": 100},
        {"workspace_id": 2, "workspace_name": "Side", "project_id": 20, "duration": 500},
    ]

    summaries = workspace_summaries(hydrated)

    assert [(s["workspace_name"], s["project_count"]) for s in summaries] == [
        ("Side", 1),
        ("Acme", 2),
    ]
    assert summaries[1]["workspace_ids"] == [1]


def test_summaries_of_nothing():
    assert project_summaries([]) == []
    assert workspace_summaries([]) == []


def test_week_range_offsets():
    assert week_range(0, TODAY) == (_utc(2026, 2, 16), _utc(2026, 2, 23))
    assert week_range(-1, TODAY) == (_utc(2026, 2, 9), _utc(2026, 2, 16))
    assert day_range(TODAY) == (_utc(2026, 2, 18), _utc(2026, 2, 19))


def test_daily_report_totals_and_breakdowns():
    hydrated = [
        {"workspace_id": 1, "workspace_name": "Acme", "project_id": 10,
         "project_name": "Website", "duration": 3600, "billable": True},
        {"workspace_id": 1, "workspace_name": "Acme", "project_id": None, "duration": 1800},
    ]

    report = daily_report(TODAY, hydrated)

    assert report["date"] == "2026-02-18"
    assert report["total_hours"] == 1.5
    assert report["billable_hours"] == 1.0
    assert report["entry_count"] == 2
    assert [p["project_name"] for p in report["projects"]] == ["Website", NO_PROJECT]
    assert [w["workspace_name"] for w in report["workspaces"]] == ["Acme"]


def test_weekly_report_lists_every_day():
    hydrated = [
        {"workspace_id": 1, "workspace_name": "Acme", "project_id": 10,
         "project_name": "Website", "start": "2026-02-16T09:00:00Z", "duration": 3600},
        {"workspace_id": 1, "workspace_name": "Acme", "project_id": 10,
         "project_name": "Website", "start": "2026-02-18T23:30:00-02:00", "duration": 1800},
    ]

    report = weekly_report(date(2026, 2, 16), hydrated)

    assert (report["week_start"], report["week_end"]) == ("2026-02-16", "2026-02-22")
    assert [d["date"] for d in report["days"]] == [f"2026-02-{n}" for n in range(16, 23)]
    assert report["days"][0]["weekday"] == "Monday"
    assert report["days"][0]["total_seconds"] == 3600
    # 23:30 at -02:00 is already Thursday in UTC.
    assert report["days"][3]["total_seconds"] == 1800
    assert report["days"][2]["entry_count"] == 0
    assert report["total_hours"] == 1.5
    assert report["projects"][0]["entry_count"] == 2
