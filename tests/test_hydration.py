from __future__ import annotations

from typing import Any

from toggl_mcp_fast.hydration import UNKNOWN_NAME, hydrate_entry, hydrate_time_entries


class FakeResolver:
    def __init__(self):
        self.workspaces = {1: "Acme"}
        self.projects: dict[int, dict[str, Any]] = {
            10: {"id": 10, "name": "Website", "client_id": 5, "workspace_id": 1},
            11: {"id": 11, "name": "Internal", "workspace_id": 1},
        }
        self.clients = {5: "Globex"}
        self.calls: list[tuple[str, int]] = []

    def get_workspace_name(self, workspace_id: int) -> str:
        self.calls.append(("workspace", workspace_id))
        return self.workspaces.get(workspace_id, UNKNOWN_NAME)

    def get_project(self, project_id: int, workspace_id: int | None = None):
        self.calls.append(("project", project_id))
        return self.projects.get(project_id)

    def get_client_name(self, client_id: int, workspace_id: int | None = None) -> str:
        self.calls.append(("client", client_id))
        return self.clients.get(client_id, UNKNOWN_NAME)


def test_resolution_order_is_workspace_project_client():
    resolver = FakeResolver()

    hydrate_entry({"id": 1, "workspace_id": 1, "project_id": 10}, resolver)

    assert resolver.calls == [("workspace", 1), ("project", 10), ("client", 5)]


def test_entry_without_project_only_gets_workspace_name():
    resolver = FakeResolver()

    hydrated = hydrate_entry({"id": 1, "workspace_id": 1, "project_id": None}, resolver)

    assert hydrated["workspace_name"] == "Acme"
    assert "project_name" not in hydrated
    assert "client_name" not in hydrated
    assert resolver.calls == [("workspace", 1)]


def test_project_without_client_is_not_an_error():
    resolver = FakeResolver()

    hydrated = hydrate_entry({"id": 1, "workspace_id": 1, "project_id": 11}, resolver)

    assert hydrated["project_name"] == "Internal"
    assert "client_name" not in hydrated


def test_unresolved_project_gets_placeholder_and_skips_client():
    resolver = FakeResolver()

    hydrated = hydrate_entry({"id": 1, "workspace_id": 1, "project_id": 404}, resolver)

    assert hydrated["project_name"] == UNKNOWN_NAME
    assert ("client", 5) not in resolver.calls


def test_input_is_not_mutated():
    entry = {"id": 1, "workspace_id": 1, "project_id": 10, "tags": ["a"]}

    hydrated = hydrate_entry(entry, FakeResolver())

    assert "workspace_name" not in entry
    assert hydrated["tags"] == ["a"]


def test_order_and_cardinality_preserved():
    entries = [
        {"id": 3, "workspace_id": 1, "project_id": 10},
        {"id": 1, "workspace_id": 2},
        {"id": 2, "workspace_id": 1, "project_id": 404},
    ]

    hydrated = hydrate_time_entries(entries, FakeResolver())

    assert [e["id"] for e in hydrated] == [3, 1, 2]
    assert hydrated[1]["workspace_name"] == UNKNOWN_NAME


def test_empty_input():
    assert hydrate_time_entries([], FakeResolver()) == []


def test_entry_without_workspace_is_not_looked_up():
    resolver = FakeResolver()

    hydrated = hydrate_entry({"id": 1, "workspace_id": None, "project_id": 11}, resolver)

    assert hydrated["workspace_name"] == UNKNOWN_NAME
    assert hydrated["project_name"] == "Internal"
    assert resolver.calls == [("project", 11)]
