"""
Attach workspace/project/client names to raw time entries.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol

UNKNOWN_NAME = "Unknown"


class NameResolver(Protocol):
    def get_workspace_name(self, workspace_id: int) -> str: ...

    def get_project(
        self, project_id: int, workspace_id: int | None = None
    ) -> dict[str, Any] | None: ...

    def get_client_name(self, client_id: int, workspace_id: int | None = None) -> str: ...


def hydrate_entry(entry: dict[str, Any], resolver: NameResolver) -> dict[str, Any]:
    """Return a copy of ``entry`` with resolved names.

    Resolution runs workspace, then project, then client, because the client is
    only reachable through the project. A project without a client is normal.
    """
    hydrated = dict(entry)
    workspace_id = entry.get("workspace_id")
    if workspace_id is None:
        hydrated["workspace_name"] = UNKNOWN_NAME
    else:
        hydrated["workspace_name"] = resolver.get_workspace_name(workspace_id)

    project_id = entry.get("project_id")
    if project_id is None:
        return hydrated

    project = resolver.get_project(project_id, workspace_id)
    if project is None:
        hydrated["project_name"] = UNKNOWN_NAME
        return hydrated

    hydrated["project_name"] = project.get("name") or UNKNOWN_NAME
    client_id = project.get("client_id")
    if client_id is not None:
        hydrated["client_name"] = resolver.get_client_name(
            client_id, project.get("workspace_id", workspace_id)
        )
    return hydrated


def hydrate_time_entries(
    entries: Iterable[dict[str, Any]], resolver: NameResolver
) -> list[dict[str, Any]]:
    """Hydrate entries 1:1, preserving input order."""
    return [hydrate_entry(entry, resolver) for entry in entries]
