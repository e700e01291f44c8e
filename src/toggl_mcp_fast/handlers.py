"""
Tool handlers.

Each handler takes the router first and the tool arguments as keywords, and
returns plain JSON-serializable data. Argument problems raise
``ToolInputError``; upstream failures propagate as ``TogglApiError`` and are
turned into ``Err`` results by the router.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from .models import (
    ClientCreate,
    ProjectCreate,
    ProjectUpdate,
    TimeEntryCreate,
    TimeEntryUpdate,
    parse_timestamp,
)
from .results import ToolInputError
from .summaries import (
    daily_report as daily_report_of,
    day_range,
    get_date_range,
    project_summaries,
    seconds_to_hours,
    week_range,
    weekly_report as weekly_report_of,
    workspace_summaries,
)

if TYPE_CHECKING:
    from .router import ToolRouter

Handler = Callable[..., Any]


def _require_workspace(router: ToolRouter, workspace_id: int | None) -> int:
    resolved = workspace_id or router.default_workspace_id
    if not resolved:
        raise ToolInputError(
            "Workspace ID required (set TOGGL_DEFAULT_WORKSPACE_ID or provide workspace_id)",
            code="missing_workspace",
        )
    return resolved


def _parse_bound(value: str, *, end: bool) -> datetime:
    try:
        parsed = parse_timestamp(value)
    except ValueError:
        raise ToolInputError(f"Invalid date {value!r}; expected ISO 8601") from None
    # A bare end date covers that whole day.
    if end and len(value) == 10:
        parsed += timedelta(days=1)
    return parsed


def _resolve_range(
    period: str | None,
    start_date: str | None,
    end_date: str | None,
    default_period: str,
) -> tuple[datetime, datetime]:
    if period:
        try:
            return get_date_range(period)
        except ValueError as exc:
            raise ToolInputError(str(exc)) from None
    if start_date or end_date:
        now = datetime.now(timezone.utc)
        start = _parse_bound(start_date, end=False) if start_date else now
        end = _parse_bound(end_date, end=True) if end_date else now
        if end < start:
            raise ToolInputError("end_date must not be before start_date")
        return start, end
    return get_date_range(default_period)


def _mask_email(email: str | None) -> str | None:
    if not email:
        return None
    user, _, domain = email.partition("@")
    if not domain:
        return "***"
    if len(user) <= 2:
        masked = "*" * len(user)
    else:
        masked = f"{user[0]}***{user[-1]}"
    return f"{masked}@{domain}"


def _project_view(project: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": project.get("id"),
        "name": project.get("name"),
        "workspace_id": project.get("workspace_id"),
        "client_id": project.get("client_id"),
        "active": project.get("active"),
        "billable": project.get("billable"),
        "color": project.get("color"),
        "is_private": project.get("is_private"),
    }


def _hydrate_one(router: ToolRouter, entry: dict[str, Any]) -> dict[str, Any]:
    router.ensure_cache()
    return router.cache.hydrate_time_entries([entry])[0]


def check_auth(router: ToolRouter) -> dict[str, Any]:
    me = router.api.get_me()
    workspaces = router.api.list_workspaces()
    return {
        "authenticated": True,
        "user": {
            "id": me.get("id"),
            "email": _mask_email(me.get("email")),
            "fullname": me.get("fullname"),
        },
        "workspaces": [{"id": ws.get("id"), "name": ws.get("name")} for ws in workspaces],
    }


def get_time_entries(
    router: ToolRouter,
    period: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    workspace_id: int | None = None,
    project_id: int | None = None,
) -> dict[str, Any]:
    start, end = _resolve_range(period, start_date, end_date, default_period="today")
    router.ensure_cache()
    entries = router.api.list_time_entries(start, end)
    if workspace_id:
        entries = [e for e in entries if e.get("workspace_id") == workspace_id]
    if project_id:
        entries = [e for e in entries if e.get("project_id") == project_id]
    hydrated = router.cache.hydrate_time_entries(entries)
    return {"count": len(hydrated), "entries": hydrated}


def get_current_entry(router: ToolRouter) -> dict[str, Any]:
    entry = router.api.get_current_time_entry()
    if not entry:
        return {"running": False, "message": "No timer currently running"}
    return {"running": True, "entry": _hydrate_one(router, entry)}


def start_timer(
    router: ToolRouter,
    description: str | None = None,
    workspace_id: int | None = None,
    project_id: int | None = None,
    task_id: int | None = None,
    tags: list[str] | None = None,
) -> dict[str, Any]:
    ws_id = _require_workspace(router, workspace_id)
    entry = router.api.start_timer(ws_id, description, project_id, task_id, tags)
    return {"success": True, "message": "Timer started", "entry": _hydrate_one(router, entry)}


def stop_timer(router: ToolRouter) -> dict[str, Any]:
    current = router.api.get_current_time_entry()
    if not current:
        return {"success": False, "message": "No timer currently running"}
    stopped = router.api.stop_timer(current["workspace_id"], current["id"])
    return {"success": True, "message": "Timer stopped", "entry": _hydrate_one(router, stopped)}


def create_entry(
    router: ToolRouter,
    description: str | None = None,
    start: str | None = None,
    stop: str | None = None,
    duration: int | None = None,
    workspace_id: int | None = None,
    project_id: int | None = None,
    task_id: int | None = None,
    billable: bool | None = None,
    tags: list[str] | None = None,
) -> dict[str, Any]:
    ws_id = _require_workspace(router, workspace_id)
    if not start:
        raise ToolInputError("start is required (ISO 8601 format)")
    if description is None:
        raise ToolInputError("description is required")
    entry = TimeEntryCreate(
        description=description,
        start=start,
        stop=stop,
        duration=duration,
        project_id=project_id,
        task_id=task_id,
        billable=billable,
        tags=tags,
    )
    try:
        entry.resolve_times()
    except ValueError as exc:
        raise ToolInputError(str(exc)) from None
    created = router.api.create_time_entry(ws_id, entry)
    return {
        "success": True,
        "message": "Time entry created",
        "entry": _hydrate_one(router, created),
    }


def update_time_entry(
    router: ToolRouter,
    time_entry_id: int | None = None,
    workspace_id: int | None = None,
    description: str | None = None,
    project_id: int | None = None,
    task_id: int | None = None,
    billable: bool | None = None,
    start: str | None = None,
    stop: str | None = None,
    duration: int | None = None,
    tags: list[str] | None = None,
) -> dict[str, Any]:
    ws_id = _require_workspace(router, workspace_id)
    if not time_entry_id:
        raise ToolInputError("Time entry ID is required")
    updates = TimeEntryUpdate(
        description=description,
        project_id=project_id,
        task_id=task_id,
        billable=billable,
        start=start,
        stop=stop,
        duration=duration,
        tags=tags,
    )
    if updates.is_empty():
        raise ToolInputError("No fields to update")
    updated = router.api.update_time_entry(ws_id, time_entry_id, updates)
    return {
        "success": True,
        "message": "Time entry updated",
        "entry": _hydrate_one(router, updated),
    }


def delete_time_entry(
    router: ToolRouter,
    time_entry_id: int | None = None,
    workspace_id: int | None = None,
) -> dict[str, Any]:
    ws_id = _require_workspace(router, workspace_id)
    if not time_entry_id:
        raise ToolInputError("Time entry ID is required")
    router.api.delete_time_entry(ws_id, time_entry_id)
    return {"success": True, "message": f"Time entry {time_entry_id} deleted"}


def list_workspaces(router: ToolRouter) -> dict[str, Any]:
    workspaces = router.api.list_workspaces()
    return {
        "count": len(workspaces),
        "workspaces": [
            {
                "id": ws.get("id"),
                "name": ws.get("name"),
                "premium": ws.get("premium"),
                "default_currency": ws.get("default_currency"),
            }
            for ws in workspaces
        ],
    }


def list_projects(router: ToolRouter, workspace_id: int | None = None) -> dict[str, Any]:
    ws_id = _require_workspace(router, workspace_id)
    projects = router.api.list_projects(ws_id)
    return {
        "workspace_id": ws_id,
        "count": len(projects),
        "projects": [
            {
                "id": p.get("id"),
                "name": p.get("name"),
                "active": p.get("active"),
                "billable": p.get("billable"),
                "color": p.get("color"),
                "client_id": p.get("client_id"),
            }
            for p in projects
        ],
    }


def list_clients(router: ToolRouter, workspace_id: int | None = None) -> dict[str, Any]:
    ws_id = _require_workspace(router, workspace_id)
    clients = router.api.list_clients(ws_id)
    return {
        "workspace_id": ws_id,
        "count": len(clients),
        "clients": [
            {"id": c.get("id"), "name": c.get("name"), "archived": c.get("archived")}
            for c in clients
        ],
    }


def create_client(
    router: ToolRouter,
    name: str | None = None,
    workspace_id: int | None = None,
    notes: str | None = None,
) -> dict[str, Any]:
    ws_id = _require_workspace(router, workspace_id)
    if not name:
        raise ToolInputError("Client name is required")
    client = router.api.create_client(ws_id, ClientCreate(name=name, notes=notes))
    return {
        "success": True,
        "message": f'Client "{client.get("name")}" created',
        "client": {
            "id": client.get("id"),
            "name": client.get("name"),
            "workspace_id": client.get("wid", client.get("workspace_id")),
            "notes": client.get("notes"),
        },
    }


def create_project(
    router: ToolRouter,
    name: str | None = None,
    workspace_id: int | None = None,
    client_id: int | None = None,
    is_private: bool | None = None,
    active: bool | None = None,
    color: str | None = None,
    billable: bool | None = None,
    estimated_hours: float | None = None,
) -> dict[str, Any]:
    ws_id = _require_workspace(router, workspace_id)
    if not name:
        raise ToolInputError("Project name is required")
    project = router.api.create_project(
        ws_id,
        ProjectCreate(
            name=name,
            client_id=client_id,
            is_private=is_private,
            active=active,
            color=color,
            billable=billable,
            estimated_hours=estimated_hours,
        ),
    )
    return {
        "success": True,
        "message": f'Project "{project.get("name")}" created',
        "project": _project_view(project),
    }


def update_project(
    router: ToolRouter,
    project_id: int | None = None,
    workspace_id: int | None = None,
    name: str | None = None,
    client_id: int | None = None,
    active: bool | None = None,
    is_private: bool | None = None,
    color: str | None = None,
    billable: bool | None = None,
    estimated_hours: float | None = None,
) -> dict[str, Any]:
    ws_id = _require_workspace(router, workspace_id)
    if not project_id:
        raise ToolInputError("Project ID is required")
    updates = ProjectUpdate(
        name=name,
        client_id=client_id,
        active=active,
        is_private=is_private,
        color=color,
        billable=billable,
        estimated_hours=estimated_hours,
    )
    if updates.is_empty():
        raise ToolInputError("No fields to update")
    project = router.api.update_project(ws_id, project_id, updates)
    return {
        "success": True,
        "message": f'Project "{project.get("name")}" updated',
        "project": _project_view(project),
    }


def project_summary(
    router: ToolRouter,
    period: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    workspace_id: int | None = None,
) -> dict[str, Any]:
    start, end = _resolve_range(period, start_date, end_date, default_period="week")
    router.ensure_cache()
    entries = router.api.list_time_entries(start, end)
    if workspace_id:
        entries = [e for e in entries if e.get("workspace_id") == workspace_id]
    summaries = project_summaries(router.cache.hydrate_time_entries(entries))
    return {
        "project_count": len(summaries),
        "total_hours": seconds_to_hours(sum(s["total_seconds"] for s in summaries)),
        "projects": summaries,
    }


def workspace_summary(
    router: ToolRouter,
    period: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> dict[str, Any]:
    start, end = _resolve_range(period, start_date, end_date, default_period="week")
    router.ensure_cache()
    entries = router.api.list_time_entries(start, end)
    summaries = workspace_summaries(router.cache.hydrate_time_entries(entries))
    return {
        "workspace_count": len(summaries),
        "total_hours": seconds_to_hours(sum(s["total_seconds"] for s in summaries)),
        "workspaces": summaries,
    }


def _hydrated_range(router: ToolRouter, start: datetime, end: datetime) -> list[dict[str, Any]]:
    router.ensure_cache()
    return router.cache.hydrate_time_entries(router.api.list_time_entries(start, end))


def daily_report(router: ToolRouter, date: str | None = None) -> dict[str, Any]:
    if date:
        try:
            day = datetime.strptime(date, "%Y-%m-%d").date()
        except ValueError:
            raise ToolInputError(f"Invalid date {date!r}; expected YYYY-MM-DD") from None
    else:
        day = datetime.now(timezone.utc).date()
    start, end = day_range(day)
    return daily_report_of(day, _hydrated_range(router, start, end))


def weekly_report(router: ToolRouter, week_offset: int = 0) -> dict[str, Any]:
    if isinstance(week_offset, bool) or not isinstance(week_offset, int):
        raise ToolInputError("week_offset must be an integer (0 = this week, -1 = last week)")
    start, end = week_range(week_offset)
    return weekly_report_of(start.date(), _hydrated_range(router, start, end))


def warm_cache(router: ToolRouter, workspace_id: int | None = None) -> dict[str, Any]:
    router.warm_cache(workspace_id or router.default_workspace_id)
    return {
        "success": True,
        "message": "Cache warmed successfully",
        "stats": router.cache.get_stats().to_dict(),
    }


def cache_stats(router: ToolRouter) -> dict[str, Any]:
    stats = router.cache.get_stats()
    return {
        **stats.to_dict(),
        "hit_rate": f"{round(stats.hit_rate * 100)}%",
        "cache_warmed": router.cache_warmed,
    }


def clear_cache(router: ToolRouter) -> dict[str, Any]:
    router.clear_cache()
    return {"success": True, "message": "Cache cleared successfully"}


def get_health(router: ToolRouter) -> dict[str, Any]:
    return router.get_health()


TOOL_HANDLERS: dict[str, Handler] = {
    "check_auth": check_auth,
    "get_time_entries": get_time_entries,
    "get_current_entry": get_current_entry,
    "start_timer": start_timer,
    "stop_timer": stop_timer,
    "create_entry": create_entry,
    "update_time_entry": update_time_entry,
    "delete_time_entry": delete_time_entry,
    "list_workspaces": list_workspaces,
    "list_projects": list_projects,
    "list_clients": list_clients,
    "create_client": create_client,
    "create_project": create_project,
    "update_project": update_project,
    "project_summary": project_summary,
    "workspace_summary": workspace_summary,
    "daily_report": daily_report,
    "weekly_report": weekly_report,
    "warm_cache": warm_cache,
    "cache_stats": cache_stats,
    "clear_cache": clear_cache,
    "get_health": get_health,
}
