"""
MCP server exposing Toggl Track with cached name hydration.
"""

from __future__ import annotations

import argparse
import atexit
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP

from .cache_manager import CacheManager
from .config import ConfigError, Settings, load_settings
from .router import ToolRouter
from .toggl_api import TogglApiClient

logger = logging.getLogger(__name__)

VERSION = "1.1.0"


@asynccontextmanager
async def _lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Warm the entity cache; a failure leaves the server running with lazy lookups."""
    get_router().ensure_cache()
    try:
        yield
    finally:
        _shutdown()


mcp = FastMCP(
    "Toggl (cached)",
    instructions=(
        "Toggl Track time tracking. "
        "Time entries are returned with workspace, project and client names "
        "resolved from a local cache of reference entities. "
        "Writes go straight to Toggl and invalidate the affected cached entities. "
        "Dates are ISO 8601; periods are today, yesterday, week, lastWeek, month, lastMonth."
    ),
    lifespan=_lifespan,
)

_settings: Settings | None = None
_api: TogglApiClient | None = None
_cache: CacheManager | None = None
_router: ToolRouter | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def get_api() -> TogglApiClient:
    global _api
    if _api is None:
        _api = TogglApiClient.from_settings(get_settings())
    return _api


def get_cache() -> CacheManager:
    global _cache
    if _cache is None:
        settings = get_settings()
        _cache = CacheManager(
            settings.cache,
            get_api(),
            default_workspace_id=settings.default_workspace_id,
        )
    return _cache


def get_router() -> ToolRouter:
    global _router
    if _router is None:
        _router = ToolRouter(get_api(), get_cache(), get_settings().default_workspace_id)
    return _router


def _shutdown() -> None:
    if _api is not None:
        _api.close()


atexit.register(_shutdown)


def _call(tool_name: str, **kwargs: Any) -> Any:
    return get_router().call(tool_name, kwargs).to_dict()


@mcp.tool()
def check_auth() -> dict[str, Any]:
    """Verify the Toggl API token and list accessible workspaces.

    Returns:
        dict with "authenticated", "user" ({id, email (masked), fullname}) and
        "workspaces" (list of {id, name}).
    """
    return _call("check_auth")


@mcp.tool()
def get_time_entries(
    period: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    workspace_id: int | None = None,
    project_id: int | None = None,
) -> dict[str, Any]:
    """List time entries with workspace, project and client names attached.

    Args:
        period: One of today, yesterday, week, lastWeek, month, lastMonth.
        start_date: Range start (ISO 8601). Ignored when period is given.
        end_date: Range end (ISO 8601); a bare date includes that whole day.
        workspace_id: Only entries from this workspace.
        project_id: Only entries for this project.

    Returns:
        dict with "count" and "entries". Defaults to today.
    """
    return _call(
        "get_time_entries",
        period=period,
        start_date=start_date,
        end_date=end_date,
        workspace_id=workspace_id,
        project_id=project_id,
    )


@mcp.tool()
def get_current_entry() -> dict[str, Any]:
    """Return the running time entry, if any."""
    return _call("get_current_entry")


@mcp.tool()
def start_timer(
    description: str | None = None,
    workspace_id: int | None = None,
    project_id: int | None = None,
    task_id: int | None = None,
    tags: list[str] | None = None,
) -> dict[str, Any]:
    """Start a new running time entry.

    Args:
        description: What is being worked on.
        workspace_id: Workspace ID (uses TOGGL_DEFAULT_WORKSPACE_ID if omitted).
        project_id: Project to track against.
        task_id: Task to track against.
        tags: Tag names.
    """
    return _call(
        "start_timer",
        description=description,
        workspace_id=workspace_id,
        project_id=project_id,
        task_id=task_id,
        tags=tags,
    )


@mcp.tool()
def stop_timer() -> dict[str, Any]:
    """Stop the running time entry."""
    return _call("stop_timer")


@mcp.tool()
def create_entry(
    description: str,
    start: str,
    stop: str | None = None,
    duration: int | None = None,
    workspace_id: int | None = None,
    project_id: int | None = None,
    task_id: int | None = None,
    billable: bool | None = None,
    tags: list[str] | None = None,
) -> dict[str, Any]:
    """Create a completed time entry.

    Args:
        description: Entry description.
        start: Start time, ISO 8601 (e.g. 2026-02-17T11:30:00-06:00).
        stop: Stop time, ISO 8601. Provide stop or duration.
        duration: Duration in seconds. Provide stop or duration.
        workspace_id: Workspace ID (uses default if omitted).
        project_id: Project ID.
        task_id: Task ID.
        billable: Whether the entry is billable.
        tags: Tag names.
    """
    return _call(
        "create_entry",
        description=description,
        start=start,
        stop=stop,
        duration=duration,
        workspace_id=workspace_id,
        project_id=project_id,
        task_id=task_id,
        billable=billable,
        tags=tags,
    )


@mcp.tool()
def update_time_entry(
    time_entry_id: int,
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
    """Update fields of an existing time entry. Only given fields change."""
    return _call(
        "update_time_entry",
        time_entry_id=time_entry_id,
        workspace_id=workspace_id,
        description=description,
        project_id=project_id,
        task_id=task_id,
        billable=billable,
        start=start,
        stop=stop,
        duration=duration,
        tags=tags,
    )


@mcp.tool()
def delete_time_entry(time_entry_id: int, workspace_id: int | None = None) -> dict[str, Any]:
    """Delete a time entry."""
    return _call("delete_time_entry", time_entry_id=time_entry_id, workspace_id=workspace_id)


@mcp.tool()
def list_workspaces() -> dict[str, Any]:
    """List accessible workspaces with {id, name, premium, default_currency}."""
    return _call("list_workspaces")


@mcp.tool()
def list_projects(workspace_id: int | None = None) -> dict[str, Any]:
    """List projects in a workspace with {id, name, active, billable, color, client_id}."""
    return _call("list_projects", workspace_id=workspace_id)


@mcp.tool()
def list_clients(workspace_id: int | None = None) -> dict[str, Any]:
    """List clients in a workspace with {id, name, archived}."""
    return _call("list_clients", workspace_id=workspace_id)


@mcp.tool()
def create_client(
    name: str,
    workspace_id: int | None = None,
    notes: str | None = None,
) -> dict[str, Any]:
    """Create a client. Cached clients are invalidated afterwards."""
    return _call("create_client", name=name, workspace_id=workspace_id, notes=notes)


@mcp.tool()
def create_project(
    name: str,
    workspace_id: int | None = None,
    client_id: int | None = None,
    is_private: bool | None = None,
    active: bool | None = None,
    color: str | None = None,
    billable: bool | None = None,
    estimated_hours: float | None = None,
) -> dict[str, Any]:
    """Create a project. Cached projects are invalidated afterwards.

    Args:
        name: Project name.
        workspace_id: Workspace ID (uses default if omitted).
        client_id: Client the project belongs to.
        is_private: Whether the project is private.
        active: Whether the project is active.
        color: Hex color, e.g. "#06aaf5".
        billable: Whether time on the project is billable (paid plans).
        estimated_hours: Estimated hours (paid plans).
    """
    return _call(
        "create_project",
        name=name,
        workspace_id=workspace_id,
        client_id=client_id,
        is_private=is_private,
        active=active,
        color=color,
        billable=billable,
        estimated_hours=estimated_hours,
    )


@mcp.tool()
def update_project(
    project_id: int,
    workspace_id: int | None = None,
    name: str | None = None,
    client_id: int | None = None,
    active: bool | None = None,
    is_private: bool | None = None,
    color: str | None = None,
    billable: bool | None = None,
    estimated_hours: float | None = None,
) -> dict[str, Any]:
    """Update a project. Only given fields change; cached projects are invalidated."""
    return _call(
        "update_project",
        project_id=project_id,
        workspace_id=workspace_id,
        name=name,
        client_id=client_id,
        active=active,
        is_private=is_private,
        color=color,
        billable=billable,
        estimated_hours=estimated_hours,
    )


@mcp.tool()
def project_summary(
    period: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    workspace_id: int | None = None,
) -> dict[str, Any]:
    """Total and billable hours per project, largest first. Defaults to this week."""
    return _call(
        "project_summary",
        period=period,
        start_date=start_date,
        end_date=end_date,
        workspace_id=workspace_id,
    )


@mcp.tool()
def workspace_summary(
    period: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> dict[str, Any]:
    """Total and billable hours per workspace, largest first. Defaults to this week."""
    return _call("workspace_summary", period=period, start_date=start_date, end_date=end_date)


@mcp.tool()
def daily_report(date: str | None = None) -> dict[str, Any]:
    """Hours for one day by project and by workspace.

    Args:
        date: Day to report (YYYY-MM-DD, UTC). Defaults to today.
    """
    return _call("daily_report", date=date)


@mcp.tool()
def weekly_report(week_offset: int = 0) -> dict[str, Any]:
    """Hours for a Monday-to-Sunday week with a per-day breakdown and project totals.

    Args:
        week_offset: Weeks from the current one (0 = this week, -1 = last week).
    """
    return _call("weekly_report", week_offset=week_offset)


@mcp.tool()
def warm_cache(workspace_id: int | None = None) -> dict[str, Any]:
    """Preload workspaces, projects and clients into the cache."""
    return _call("warm_cache", workspace_id=workspace_id)


@mcp.tool()
def cache_stats() -> dict[str, Any]:
    """Return cache hits, misses, evictions, size and hit rate."""
    return _call("cache_stats")


@mcp.tool()
def clear_cache() -> dict[str, Any]:
    """Drop all cached entities and reset cache statistics."""
    return _call("clear_cache")


@mcp.tool()
def get_health() -> dict[str, Any]:
    """Return cache configuration and statistics plus upstream API health."""
    return _call("get_health")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="toggl-mcp-fast",
        description="Toggl Track MCP server with cached name hydration.",
    )
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {VERSION}")
    parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    try:
        get_settings()
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")
    mcp.run()
