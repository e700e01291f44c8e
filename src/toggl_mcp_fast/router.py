"""
Tool routing with lazy cache warming and write-through invalidation.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from . import handlers
from .cache_manager import CacheManager, CacheWarmError
from .models import CACHED_KINDS, CLIENT, PROJECT, TIME_ENTRY
from .results import Err, Ok, ToolInputError, ToolResult
from .toggl_api import TogglApiClient, TogglApiError

logger = logging.getLogger(__name__)

# Entity kinds whose cached copies a mutating tool can make stale.
WRITE_INVALIDATIONS: dict[str, tuple[str, ...]] = {
    "create_project": (PROJECT,),
    "update_project": (PROJECT,),
    "create_client": (CLIENT,),
    "start_timer": (TIME_ENTRY,),
    "stop_timer": (TIME_ENTRY,),
    "create_entry": (TIME_ENTRY,),
    "update_time_entry": (TIME_ENTRY,),
    "delete_time_entry": (TIME_ENTRY,),
}


class ToolRouter:
    """Dispatches tool calls to handlers and keeps the entity cache coherent."""

    def __init__(
        self,
        api: TogglApiClient,
        cache: CacheManager,
        default_workspace_id: int | None = None,
    ):
        self._api = api
        self._cache = cache
        self._default_workspace_id = default_workspace_id
        self._cache_warmed = False
        self._state_lock = threading.RLock()

    @property
    def api(self) -> TogglApiClient:
        return self._api

    @property
    def cache(self) -> CacheManager:
        return self._cache

    @property
    def default_workspace_id(self) -> int | None:
        return self._default_workspace_id

    @property
    def cache_warmed(self) -> bool:
        return self._cache_warmed

    def warm_cache(self, workspace_id: int | None = None) -> None:
        with self._state_lock:
            self._cache.warm_cache(workspace_id)
            self._cache_warmed = True

    def ensure_cache(self) -> None:
        """Warm once; on failure keep going and retry on the next access."""
        with self._state_lock:
            if self._cache_warmed:
                return
            try:
                self.warm_cache(self._default_workspace_id)
            except CacheWarmError as exc:
                logger.warning("Failed to warm cache, resolving names on demand: %s", exc)

    def clear_cache(self) -> None:
        with self._state_lock:
            self._cache.clear_cache()
            self._cache_warmed = False

    def _invalidate_after_write(self, tool_name: str) -> None:
        kinds = WRITE_INVALIDATIONS.get(tool_name, ())
        for kind in kinds:
            self._cache.invalidate(kind)
        if any(kind in CACHED_KINDS for kind in kinds):
            # Re-list in bulk on the next read instead of fetching each dropped entity.
            with self._state_lock:
                self._cache_warmed = False

    def call(self, tool_name: str, arguments: dict[str, Any] | None = None) -> ToolResult:
        handler = handlers.TOOL_HANDLERS.get(tool_name)
        if handler is None:
            return Err("unknown_tool", f"Unknown tool: {tool_name}")

        args = {k: v for k, v in (arguments or {}).items() if v is not None}
        try:
            return Ok(handler(self, **args))
        except ToolInputError as exc:
            return Err(exc.code, exc.message)
        except TogglApiError as exc:
            logger.warning("Toggl API call failed for %s: %s", tool_name, exc)
            return Err(exc.code, exc.message)
        except CacheWarmError as exc:
            return Err(exc.code, str(exc))
        finally:
            # The upstream may have applied a write even if its response failed.
            self._invalidate_after_write(tool_name)

    def get_health(self) -> dict[str, Any]:
        stats = self._cache.get_stats()
        return {
            "cache": {
                **stats.to_dict(),
                "hitRate": stats.hit_rate,
                "warmed": self._cache_warmed,
                "lastWarmedAt": self._cache.last_warmed_at,
                "ttlMs": self._cache.config.ttl_ms,
                "maxSize": self._cache.config.max_size,
                "batchSize": self._cache.config.batch_size,
            },
            "api": self._api.get_health(),
            "defaultWorkspaceId": self._default_workspace_id,
        }
