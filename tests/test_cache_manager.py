from __future__ import annotations

from typing import Any

import pytest

from toggl_mcp_fast.cache_manager import CacheManager, CacheStats, CacheWarmError
from toggl_mcp_fast.config import CacheConfig
from toggl_mcp_fast.models import CLIENT, PROJECT, WORKSPACE
from toggl_mcp_fast.toggl_api import TogglApiError


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeUpstream:
    def __init__(self):
        self.workspaces: dict[int, dict[str, Any]] = {}
        self.projects: dict[int, dict[str, Any]] = {}
        self.clients: dict[int, dict[str, Any]] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.failures: dict[str, Exception] = {}

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.failures:
            raise self.failures[name]

    def list_workspaces(self) -> list[dict[str, Any]]:
        self._record("list_workspaces")
        return list(self.workspaces.values())

    def list_projects(self, workspace_id: int) -> list[dict[str, Any]]:
        self._record("list_projects", workspace_id)
        return [p for p in self.projects.values() if p["workspace_id"] == workspace_id]

    def list_clients(self, workspace_id: int) -> list[dict[str, Any]]:
        self._record("list_clients", workspace_id)
        return [c for c in self.clients.values() if c["workspace_id"] == workspace_id]

    def get_workspace(self, workspace_id: int) -> dict[str, Any] | None:
        self._record("get_workspace", workspace_id)
        return self.workspaces.get(workspace_id)

    def get_project(self, project_id: int, workspace_id: int) -> dict[str, Any] | None:
        self._record("get_project", project_id, workspace_id)
        return self.projects.get(project_id)

    def get_client(self, client_id: int, workspace_id: int) -> dict[str, Any] | None:
        self._record("get_client", client_id, workspace_id)
        return self.clients.get(client_id)

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


def _acme_upstream() -> FakeUpstream:
    upstream = FakeUpstream()
    upstream.workspaces[1] = {"id": 1, "name": "Acme"}
    upstream.projects[10] = {"id": 10, "name": "Website", "client_id": 5, "workspace_id": 1}
    upstream.clients[5] = {"id": 5, "name": "Globex", "workspace_id": 1}
    return upstream


def _make_manager(
    upstream: FakeUpstream,
    *,
    ttl_ms: int = 60_000,
    max_size: int = 100,
    default_workspace_id: int | None = None,
) -> tuple[CacheManager, FakeClock]:
    clock = FakeClock()
    manager = CacheManager(
        CacheConfig(ttl_ms=ttl_ms, max_size=max_size),
        upstream,
        default_workspace_id=default_workspace_id,
        clock=clock,
    )
    return manager, clock


def test_warm_cache_fetches_workspaces_then_projects_then_clients():
    upstream = _acme_upstream()
    upstream.workspaces[2] = {"id": 2, "name": "Side"}
    manager, _ = _make_manager(upstream)

    manager.warm_cache()

    assert upstream.call_names() == [
        "list_workspaces",
        "list_projects",
        "list_clients",
        "list_projects",
        "list_clients",
    ]
    assert manager.get_stats().size == 4


def test_warm_cache_with_workspace_only_loads_that_workspace_children():
    upstream = _acme_upstream()
    upstream.workspaces[2] = {"id": 2, "name": "Side"}
    manager, _ = _make_manager(upstream)

    manager.warm_cache(1)

    assert upstream.calls == [
        ("list_workspaces", ()),
        ("list_projects", (1,)),
        ("list_clients", (1,)),
    ]


def test_warm_cache_workspace_failure_raises():
    upstream = _acme_upstream()
    upstream.failures["list_workspaces"] = TogglApiError("toggl_unavailable", "down")
    manager, _ = _make_manager(upstream)

    with pytest.raises(CacheWarmError) as exc_info:
        manager.warm_cache()

    assert exc_info.value.code == "cache_warm_failed"
    assert manager.get_stats().size == 0


def test_warm_cache_keeps_partial_results_and_reports_aggregate_failure():
    upstream = _acme_upstream()
    upstream.failures["list_projects"] = TogglApiError("toggl_rate_limited", "slow down")
    manager, _ = _make_manager(upstream)

    with pytest.raises(CacheWarmError) as exc_info:
        manager.warm_cache()

    assert len(exc_info.value.errors) == 1
    assert "projects for workspace 1" in exc_info.value.errors[0]
    assert manager.store.get(WORKSPACE, 1) == {"id": 1, "name": "Acme"}
    assert manager.store.get(CLIENT, 5) is not None
    assert manager.store.get(PROJECT, 10) is None
    assert manager.last_warmed_at is None


def test_hydrate_after_warm_is_served_from_cache():
    upstream = _acme_upstream()
    manager, _ = _make_manager(upstream)
    manager.warm_cache()
    upstream.calls.clear()

    hydrated = manager.hydrate_time_entries([{"id": 100, "workspace_id": 1, "project_id": 10}])

    assert hydrated == [
        {
            "id": 100,
            "workspace_id": 1,
            "project_id": 10,
            "workspace_name": "Acme",
            "project_name": "Website",
            "client_name": "Globex",
        }
    ]
    stats = manager.get_stats()
    # workspace + project + client (reached through the project)
    assert stats.hits == 3
    assert stats.misses == 0
    assert upstream.calls == []


def test_hydrate_without_client_counts_two_hits():
    upstream = _acme_upstream()
    upstream.projects[10]["client_id"] = None
    manager, _ = _make_manager(upstream)
    manager.warm_cache()

    hydrated = manager.hydrate_time_entries([{"id": 100, "workspace_id": 1, "project_id": 10}])

    assert hydrated[0]["workspace_name"] == "Acme"
    assert hydrated[0]["project_name"] == "Website"
    assert "client_name" not in hydrated[0]
    stats = manager.get_stats()
    assert (stats.hits, stats.misses) == (2, 0)


def test_miss_fetches_single_entity_and_stores_it():
    upstream = _acme_upstream()
    manager, _ = _make_manager(upstream)

    assert manager.get_project_name(10, 1) == "Website"
    assert manager.get_project_name(10, 1) == "Website"

    assert upstream.calls == [("get_project", (10, 1))]
    stats = manager.get_stats()
    assert (stats.hits, stats.misses) == (1, 1)


def test_unreachable_upstream_degrades_to_placeholder():
    upstream = _acme_upstream()
    manager, _ = _make_manager(upstream)
    manager.store.put(WORKSPACE, 1, {"id": 1, "name": "Acme"})
    upstream.failures["get_project"] = TogglApiError("toggl_unavailable", "offline")

    hydrated = manager.hydrate_time_entries([{"id": 100, "workspace_id": 1, "project_id": 99}])

    assert hydrated[0]["workspace_name"] == "Acme"
    assert hydrated[0]["project_name"] == "Unknown"
    assert manager.get_stats().misses == 1


def test_one_unresolvable_project_does_not_abort_batch():
    upstream = _acme_upstream()
    manager, _ = _make_manager(upstream)
    manager.warm_cache()
    upstream.failures["get_project"] = TogglApiError("toggl_unavailable", "offline")

    entries = [{"id": i, "workspace_id": 1, "project_id": 10} for i in range(49)]
    entries.insert(17, {"id": 999, "workspace_id": 1, "project_id": 404})

    hydrated = manager.hydrate_time_entries(entries)

    assert len(hydrated) == 50
    assert [e["id"] for e in hydrated] == [e["id"] for e in entries]
    assert hydrated[17]["project_name"] == "Unknown"
    assert sum(1 for e in hydrated if e["project_name"] == "Website") == 49


def test_not_found_is_not_cached():
    upstream = _acme_upstream()
    manager, _ = _make_manager(upstream)

    assert manager.get_client_name(77, 1) == "Unknown"
    assert manager.get_client_name(77, 1) == "Unknown"

    assert upstream.call_names() == ["get_client", "get_client"]
    assert manager.get_stats().misses == 2


def test_project_lookup_without_workspace_uses_default():
    upstream = _acme_upstream()
    manager, _ = _make_manager(upstream, default_workspace_id=1)

    assert manager.get_project_name(10) == "Website"
    assert upstream.calls == [("get_project", (10, 1))]


def test_project_lookup_without_any_workspace_degrades():
    upstream = _acme_upstream()
    manager, _ = _make_manager(upstream)

    assert manager.get_project_name(10) == "Unknown"
    assert upstream.calls == []
    assert manager.get_stats().misses == 1


def test_expired_entry_triggers_refetch():
    upstream = _acme_upstream()
    manager, clock = _make_manager(upstream, ttl_ms=1000)
    manager.warm_cache()
    upstream.workspaces[1] = {"id": 1, "name": "Acme Renamed"}

    assert manager.get_workspace_name(1) == "Acme"
    clock.now += 1.0
    assert manager.get_workspace_name(1) == "Acme Renamed"
    assert upstream.call_names()[-1] == "get_workspace"


def test_hydrate_empty_list():
    manager, _ = _make_manager(_acme_upstream())

    assert manager.hydrate_time_entries([]) == []


def test_invalidate_kind_forces_refetch_after_write():
    upstream = _acme_upstream()
    manager, clock = _make_manager(upstream)
    manager.warm_cache()
    warmed_at = manager.store.stored_at(PROJECT, 10)

    clock.now += 5
    upstream.projects[10] = {**upstream.projects[10], "name": "Website v2"}
    manager.invalidate(PROJECT)

    assert manager.get_project_name(10, 1) == "Website v2"
    assert manager.store.stored_at(PROJECT, 10) > warmed_at


def test_invalidate_single_entity():
    upstream = _acme_upstream()
    manager, _ = _make_manager(upstream)
    manager.warm_cache()

    manager.invalidate(CLIENT, 5)

    assert manager.store.get(CLIENT, 5) is None
    assert manager.store.get(PROJECT, 10) is not None


def test_invalidate_uncached_kind_is_noop():
    upstream = _acme_upstream()
    manager, _ = _make_manager(upstream)
    manager.warm_cache()
    size = manager.get_stats().size

    manager.invalidate("time_entry")

    assert manager.get_stats().size == size


def test_clear_cache_resets_everything():
    upstream = _acme_upstream()
    manager, _ = _make_manager(upstream, max_size=2)
    manager.warm_cache()
    manager.get_workspace_name(1)
    manager.get_workspace_name(404)
    assert manager.get_stats().evictions > 0

    manager.clear_cache()

    assert manager.get_stats() == CacheStats(hits=0, misses=0, evictions=0, size=0)


def test_stats_hit_rate():
    assert CacheStats().hit_rate == 0.0
    assert CacheStats(hits=3, misses=1).hit_rate == 0.75


def test_max_size_bounds_warm_results():
    upstream = _acme_upstream()
    for pid in range(11, 20):
        upstream.projects[pid] = {"id": pid, "name": f"P{pid}", "workspace_id": 1}
    manager, _ = _make_manager(upstream, max_size=5)

    manager.warm_cache()

    stats = manager.get_stats()
    assert stats.size == 5
    assert stats.evictions == 7
