"""
Period ranges, per-project / per-workspace aggregation, and daily and weekly reports.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from .hydration import UNKNOWN_NAME
from .models import parse_timestamp

PERIODS = ("today", "yesterday", "week", "lastWeek", "month", "lastMonth")
NO_PROJECT = "No Project"


def _midnight(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _month_start(day: date) -> date:
    return day.replace(day=1)


def get_date_range(period: str, today: date | None = None) -> tuple[datetime, datetime]:
    """Return ``(start, end)`` for a named period; ``end`` is exclusive.

    Weeks start on Monday. Times are UTC midnights.
    """
    today = today or datetime.now(timezone.utc).date()
    if period == "today":
        start = today
        end = today + timedelta(days=1)
    elif period == "yesterday":
        start = today - timedelta(days=1)
        end = today
    elif period == "week":
        start = today - timedelta(days=today.weekday())
        end = start + timedelta(days=7)
    elif period == "lastWeek":
        end = today - timedelta(days=today.weekday())
        start = end - timedelta(days=7)
    elif period == "month":
        start = _month_start(today)
        end = _month_start(start + timedelta(days=32))
    elif period == "lastMonth":
        end = _month_start(today)
        start = _month_start(end - timedelta(days=1))
    else:
        raise ValueError(f"unknown period {period!r}; expected one of {', '.join(PERIODS)}")
    return _midnight(start), _midnight(end)


def entry_seconds(entry: dict[str, Any], now: datetime | None = None) -> int:
    """Tracked seconds for an entry; a running entry counts up to ``now``."""
    duration = entry.get("duration") or 0
    if duration >= 0:
        return int(duration)
    start = entry.get("start")
    if not start:
        return 0
    now = now or datetime.now(timezone.utc)
    return max(0, int((now - parse_timestamp(start)).total_seconds()))


def seconds_to_hours(seconds: int) -> float:
    return round(seconds / 3600, 2)


def _totals(entries: list[dict[str, Any]], now: datetime | None) -> dict[str, Any]:
    total = sum(entry_seconds(e, now) for e in entries)
    billable = sum(entry_seconds(e, now) for e in entries if e.get("billable"))
    return {
        "total_seconds": total,
        "total_hours": seconds_to_hours(total),
        "billable_seconds": billable,
        "billable_hours": seconds_to_hours(billable),
        "entry_count": len(entries),
    }


def _group_by(
    entries: Iterable[dict[str, Any]], key: Callable[[dict[str, Any]], Any]
) -> dict[Any, list[dict[str, Any]]]:
    groups: dict[Any, list[dict[str, Any]]] = {}
    for entry in entries:
        groups.setdefault(key(entry), []).append(entry)
    return groups


def _project_label(entry: dict[str, Any]) -> str:
    if entry.get("project_id") is None:
        return NO_PROJECT
    return entry.get("project_name") or UNKNOWN_NAME


def _workspace_label(entry: dict[str, Any]) -> str:
    return entry.get("workspace_name") or UNKNOWN_NAME


def project_summaries(
    hydrated: Iterable[dict[str, Any]], now: datetime | None = None
) -> list[dict[str, Any]]:
    """Totals per resolved project name, largest first.

    Entries are grouped by name, so same-named projects in different
    workspaces share one row; ``project_ids`` lists every ID folded in.
    """
    summaries = []
    for name, entries in _group_by(hydrated, _project_label).items():
        project_ids = sorted({e["project_id"] for e in entries if e.get("project_id") is not None})
        summaries.append(
            {
                "project_name": name,
                "project_ids": project_ids,
                "client_name": entries[0].get("client_name"),
                **_totals(entries, now),
            }
        )
    summaries.sort(key=lambda s: s["total_seconds"], reverse=True)
    return summaries


def workspace_summaries(
    hydrated: Iterable[dict[str, Any]], now: datetime | None = None
) -> list[dict[str, Any]]:
    """Totals per resolved workspace name, largest first."""
    summaries = []
    for name, entries in _group_by(hydrated, _workspace_label).items():
        summaries.append(
            {
                "workspace_name": name,
                "workspace_ids": sorted(
                    {e["workspace_id"] for e in entries if e.get("workspace_id") is not None}
                ),
                "project_count": len({_project_label(e) for e in entries}),
                **_totals(entries, now),
            }
        )
    summaries.sort(key=lambda s: s["total_seconds"], reverse=True)
    return summaries


def day_range(day: date) -> tuple[datetime, datetime]:
    return _midnight(day), _midnight(day + timedelta(days=1))


def week_range(week_offset: int = 0, today: date | None = None) -> tuple[datetime, datetime]:
    """Monday-to-Monday range ``week_offset`` weeks from the current one."""
    start, end = get_date_range("week", today)
    shift = timedelta(weeks=week_offset)
    return start + shift, end + shift


def _entry_day(entry: dict[str, Any]) -> date | None:
    start = entry.get("start")
    if not start:
        return None
    return parse_timestamp(start).astimezone(timezone.utc).date()


def daily_report(
    day: date, hydrated: Iterable[dict[str, Any]], now: datetime | None = None
) -> dict[str, Any]:
    entries = list(hydrated)
    return {
        "date": day.isoformat(),
        **_totals(entries, now),
        "projects": project_summaries(entries, now),
        "workspaces": workspace_summaries(entries, now),
    }


def weekly_report(
    week_start: date, hydrated: Iterable[dict[str, Any]], now: datetime | None = None
) -> dict[str, Any]:
    """Week totals with a Monday-to-Sunday breakdown; empty days are listed too."""
    entries = list(hydrated)
    by_day = _group_by(entries, _entry_day)
    days = []
    for offset in range(7):
        day = week_start + timedelta(days=offset)
        day_entries = by_day.get(day, [])
        days.append(
            {
                "date": day.isoformat(),
                "weekday": day.strftime("%A"),
                **_totals(day_entries, now),
            }
        )
    return {
        "week_start": week_start.isoformat(),
        "week_end": (week_start + timedelta(days=6)).isoformat(),
        **_totals(entries, now),
        "days": days,
        "projects": project_summaries(entries, now),
        "workspaces": workspace_summaries(entries, now),
    }
