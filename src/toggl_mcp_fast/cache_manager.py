"""
Cache manager for Toggl reference entities.

Warms the entity store from the upstream API, resolves names with a
lookup-then-fetch fallback, hydrates time entries, and invalidates entries
after local writes so that renamed or newly created entities are never served
from a stale copy.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass
from typing import Any, Protocol

from .config import CacheConfig
from .entity_store import EntityStore
from .hydration import UNKNOWN_NAME, hydrate_time_entries
from .models import CACHED_KINDS, CLIENT, PROJECT, WORKSPACE

logger = logging.getLogger(__name__)


class UpstreamAccessor(Protocol):
    def list_workspaces(self) -> list[dict[str, Any]]: ...

    def list_projects(self, workspace_id: int) -> list[dict[str, Any]]: ...

    def list_clients(self, workspace_id: int) -> list[dict[str, Any]]: ...

    def get_workspace(self, workspace_id: int) -> dict[str, Any] | None: ...

    def get_project(self, project_id: int, workspace_id: int) -> dict[str, Any] | None: ...

    def get_client(self, client_id: int, workspace_id: int) -> dict[str, Any] | None: ...


class CacheWarmError(RuntimeError):
    """Raised when one or more upstream fetches failed while warming."""

    def __init__(self, errors: list[str]):
        super().__init__("cache warm failed: " + "; ".join(errors))
        self.code = "cache_warm_failed"
        self.errors = errors


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class CacheManager:
    """Owns the entity store and the hit/miss counters for the process."""

    def __init__(
        self,
        config: CacheConfig,
        api: UpstreamAccessor,
        *,
        default_workspace_id: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config = config
        self._api = api
        self._default_workspace_id = default_workspace_id
        self._store = EntityStore(config.ttl_seconds, config.max_size, clock=clock)
        self._stats_lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self.last_warmed_at: float | None = None

    @property
    def store(self) -> EntityStore:
        return self._store

    @property
    def config(self) -> CacheConfig:
        return self._config

    def _count(self, hit: bool) -> None:
        with self._stats_lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1

    def _store_all(self, kind: str, entities: Iterable[dict[str, Any]]) -> int:
        stored = 0
        for entity in entities:
            entity_id = entity.get("id")
            if entity_id is None:
                continue
            self._store.put(kind, entity_id, entity)
            stored += 1
        return stored

    def warm_cache(self, workspace_id: int | None = None) -> None:
        """Load workspaces, then each relevant workspace's projects and clients.

        Whatever was stored before a failure stays stored; all failures are
        reported together as one ``CacheWarmError``.
        """
        try:
            workspaces = self._api.list_workspaces()
        except Exception as exc:
            raise CacheWarmError([f"workspaces: {exc}"]) from exc

        self._store_all(WORKSPACE, workspaces)
        if workspace_id is not None:
            target_ids = [workspace_id]
        else:
            target_ids = [ws["id"] for ws in workspaces if ws.get("id") is not None]

        errors: list[str] = []
        for ws_id in target_ids:
            try:
                count = self._store_all(PROJECT, self._api.list_projects(ws_id))
                logger.debug("Cached %d projects for workspace %s", count, ws_id)
            except Exception as exc:
                errors.append(f"projects for workspace {ws_id}: {exc}")
            try:
                count = self._store_all(CLIENT, self._api.list_clients(ws_id))
                logger.debug("Cached %d clients for workspace %s", count, ws_id)
            except Exception as exc:
                errors.append(f"clients for workspace {ws_id}: {exc}")

        if errors:
            logger.warning("Cache warm incomplete: %s", "; ".join(errors))
            raise CacheWarmError(errors)

        self.last_warmed_at = time.time()
        logger.info(
            "Cache warmed: %d workspaces, %d entries total",
            len(workspaces),
            self._store.size(),
        )

    def _lookup(
        self,
        kind: str,
        entity_id: int,
        fetch: Callable[[], dict[str, Any] | None],
    ) -> dict[str, Any] | None:
        cached = self._store.get(kind, entity_id)
        if cached is not None:
            self._count(hit=True)
            return cached

        self._count(hit=False)
        try:
            value = fetch()
        except Exception as exc:
            logger.warning("Could not fetch %s %s: %s", kind, entity_id, exc)
            return None
        if value is None:
            logger.info("%s %s not found upstream", kind, entity_id)
            return None
        self._store.put(kind, entity_id, value)
        return value

    def _scope(self, workspace_id: int | None) -> int | None:
        return workspace_id if workspace_id is not None else self._default_workspace_id

    def _fetch_scoped(
        self, getter: Callable[[int, int], dict[str, Any] | None], entity_id: int, workspace_id: int | None
    ) -> Callable[[], dict[str, Any] | None]:
        scope = self._scope(workspace_id)

        def fetch() -> dict[str, Any] | None:
            if scope is None:
                raise LookupError("no workspace to look it up in")
            return getter(entity_id, scope)

        return fetch

    def get_workspace(self, workspace_id: int) -> dict[str, Any] | None:
        return self._lookup(
            WORKSPACE, workspace_id, lambda: self._api.get_workspace(workspace_id)
        )

    def get_project(
        self, project_id: int, workspace_id: int | None = None
    ) -> dict[str, Any] | None:
        return self._lookup(
            PROJECT,
            project_id,
            self._fetch_scoped(self._api.get_project, project_id, workspace_id),
        )

    def get_client(
        self, client_id: int, workspace_id: int | None = None
    ) -> dict[str, Any] | None:
        return self._lookup(
            CLIENT,
            client_id,
            self._fetch_scoped(self._api.get_client, client_id, workspace_id),
        )

    @staticmethod
    def _name_of(entity: dict[str, Any] | None) -> str:
        if entity is None:
            return UNKNOWN_NAME
        return entity.get("name") or UNKNOWN_NAME

    def get_workspace_name(self, workspace_id: int) -> str:
        return self._name_of(self.get_workspace(workspace_id))

    def get_project_name(self, project_id: int, workspace_id: int | None = None) -> str:
        return self._name_of(self.get_project(project_id, workspace_id))

    def get_client_name(self, client_id: int, workspace_id: int | None = None) -> str:
        return self._name_of(self.get_client(client_id, workspace_id))

    def hydrate_time_entries(self, entries: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
        return hydrate_time_entries(entries, self)

    def invalidate(self, kind: str, entity_id: int | None = None) -> None:
        """Drop cached entries after a write.

        Without an ``entity_id`` the whole kind is dropped. Kinds that are not
        cached (time entries) have nothing to drop.
        """
        if kind not in CACHED_KINDS:
            logger.debug("Nothing cached for %s; no invalidation needed", kind)
            return
        if entity_id is None:
            removed = self._store.invalidate_kind(kind)
            logger.info("Invalidated %d cached %s entries", removed, kind)
        else:
            self._store.invalidate(kind, entity_id)
            logger.info("Invalidated cached %s %s", kind, entity_id)

    def clear_cache(self) -> None:
        self._store.invalidate_all()
        self._store.reset_evictions()
        with self._stats_lock:
            self._hits = 0
            self._misses = 0
        self.last_warmed_at = None
        logger.info("Cache cleared")

    def get_stats(self) -> CacheStats:
        with self._stats_lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._store.evictions,
                size=self._store.size(),
            )
