"""
Toggl Track v9 REST client.

Requests are serialized under one lock and spaced by a minimum interval so the
upstream rate limit (about one request per second) is respected. Rate-limit and
server errors are retried with exponential backoff; everything else fails fast.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx

from .config import Settings
from .models import (
    CREATED_WITH,
    ClientCreate,
    ProjectCreate,
    ProjectUpdate,
    TimeEntryCreate,
    TimeEntryUpdate,
    format_timestamp,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
BACKOFF_BASE_SECONDS = 1.0


class TogglApiError(RuntimeError):
    """Raised when a Toggl API call fails."""

    def __init__(self, code: str, message: str, status: int | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status


class TogglApiClient:
    """Synchronous, rate-limited accessor for workspaces, projects, clients and time entries."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        *,
        min_request_interval_seconds: float = 1.0,
        max_retries: int = 3,
        batch_size: int = 100,
        timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            auth=(api_key, "api_token"),
            timeout=timeout_seconds,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )
        self._min_interval = min_request_interval_seconds
        self._max_retries = max(1, max_retries)
        self._batch_size = batch_size
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()
        self._last_request_at: float | None = None

        self._request_count = 0
        self._failure_count = 0
        self._last_error: str | None = None
        self._last_failure_at: float | None = None
        self._last_success_at: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> TogglApiClient:
        return cls(
            settings.api_key,
            settings.api_base_url,
            min_request_interval_seconds=settings.min_request_interval_seconds,
            max_retries=settings.max_retries,
            batch_size=settings.cache.batch_size,
        )

    def _throttle(self) -> None:
        if self._last_request_at is None:
            return
        wait = self._min_interval - (self._clock() - self._last_request_at)
        if wait > 0:
            self._sleep(wait)

    @staticmethod
    def _retry_after(response: httpx.Response) -> float:
        raw = response.headers.get("Retry-After")
        if not raw:
            return 0.0
        try:
            return max(0.0, float(raw))
        except ValueError:
            return 0.0

    def _record_failure(self, error: str) -> None:
        self._failure_count += 1
        self._last_failure_at = time.time()
        self._last_error = error

    def _record_success(self) -> None:
        self._failure_count = 0
        self._last_error = None
        self._last_success_at = time.time()

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        self._throttle()
        try:
            return self._client.request(method, path, **kwargs)
        finally:
            self._last_request_at = self._clock()
            self._request_count += 1

    def _request(
        self,
        method: str,
        path: str,
        *,
        allow_not_found: bool = False,
        **kwargs: Any,
    ) -> Any:
        with self._lock:
            last_error: TogglApiError | None = None
            retry_after = 0.0
            for attempt in range(self._max_retries):
                if attempt:
                    backoff = BACKOFF_BASE_SECONDS * (2 ** (attempt - 1))
                    self._sleep(max(backoff, retry_after))
                    retry_after = 0.0
                try:
                    response = self._send(method, path, **kwargs)
                except httpx.TransportError as exc:
                    last_error = TogglApiError(
                        "toggl_unavailable", f"{method} {path} failed: {exc}"
                    )
                    self._record_failure(last_error.message)
                    logger.warning(
                        "Toggl request %s %s failed (attempt %d/%d): %s",
                        method, path, attempt + 1, self._max_retries, exc,
                    )
                    continue

                status = response.status_code
                if status == 404 and allow_not_found:
                    self._record_success()
                    return None
                if status in RETRYABLE_STATUS:
                    code = "toggl_rate_limited" if status == 429 else "toggl_unavailable"
                    last_error = TogglApiError(
                        code, f"{method} {path} returned {status}", status=status
                    )
                    self._record_failure(last_error.message)
                    logger.warning(
                        "Toggl request %s %s returned %d (attempt %d/%d)",
                        method, path, status, attempt + 1, self._max_retries,
                    )
                    retry_after = self._retry_after(response)
                    continue
                if status >= 400:
                    message = response.text.strip() or response.reason_phrase
                    error = TogglApiError(
                        "toggl_http_error",
                        f"{method} {path} returned {status}: {message[:200]}",
                        status=status,
                    )
                    self._record_failure(error.message)
                    raise error

                self._record_success()
                if not response.content:
                    return None
                return response.json()

            if last_error is None:
                raise TogglApiError("toggl_unavailable", f"{method} {path} was never attempted")
            raise last_error

    # Reference entities

    def list_workspaces(self) -> list[dict[str, Any]]:
        return self._request("GET", "/workspaces") or []

    def get_workspace(self, workspace_id: int) -> dict[str, Any] | None:
        return self._request("GET", f"/workspaces/{workspace_id}", allow_not_found=True)

    def list_projects(self, workspace_id: int) -> list[dict[str, Any]]:
        projects: list[dict[str, Any]] = []
        page = 1
        while True:
            batch = self._request(
                "GET",
                f"/workspaces/{workspace_id}/projects",
                params={"page": page, "per_page": self._batch_size},
            ) or []
            projects.extend(batch)
            if len(batch) < self._batch_size:
                return projects
            page += 1

    def get_project(self, project_id: int, workspace_id: int) -> dict[str, Any] | None:
        return self._request(
            "GET", f"/workspaces/{workspace_id}/projects/{project_id}", allow_not_found=True
        )

    def list_clients(self, workspace_id: int) -> list[dict[str, Any]]:
        return self._request("GET", f"/workspaces/{workspace_id}/clients") or []

    def get_client(self, client_id: int, workspace_id: int) -> dict[str, Any] | None:
        return self._request(
            "GET", f"/workspaces/{workspace_id}/clients/{client_id}", allow_not_found=True
        )

    def get_me(self) -> dict[str, Any]:
        return self._request("GET", "/me")

    # Mutations on reference entities

    def create_project(self, workspace_id: int, project: ProjectCreate) -> dict[str, Any]:
        return self._request(
            "POST", f"/workspaces/{workspace_id}/projects", json=project.to_payload()
        )

    def update_project(
        self, workspace_id: int, project_id: int, updates: ProjectUpdate
    ) -> dict[str, Any]:
        return self._request(
            "PUT",
            f"/workspaces/{workspace_id}/projects/{project_id}",
            json=updates.to_payload(),
        )

    def create_client(self, workspace_id: int, client: ClientCreate) -> dict[str, Any]:
        payload = client.to_payload()
        payload["wid"] = workspace_id
        return self._request("POST", f"/workspaces/{workspace_id}/clients", json=payload)

    # Time entries

    def list_time_entries(self, start: datetime, end: datetime) -> list[dict[str, Any]]:
        params = {"start_date": format_timestamp(start), "end_date": format_timestamp(end)}
        return self._request("GET", "/me/time_entries", params=params) or []

    def get_current_time_entry(self) -> dict[str, Any] | None:
        return self._request("GET", "/me/time_entries/current")

    def start_timer(
        self,
        workspace_id: int,
        description: str | None = None,
        project_id: int | None = None,
        task_id: int | None = None,
        tags: list[str] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "created_with": CREATED_WITH,
            "workspace_id": workspace_id,
            "start": format_timestamp(datetime.now(timezone.utc)),
            "duration": -1,
        }
        if description is not None:
            payload["description"] = description
        if project_id is not None:
            payload["project_id"] = project_id
        if task_id is not None:
            payload["task_id"] = task_id
        if tags is not None:
            payload["tags"] = tags
        return self._request("POST", f"/workspaces/{workspace_id}/time_entries", json=payload)

    def stop_timer(self, workspace_id: int, time_entry_id: int) -> dict[str, Any]:
        return self._request(
            "PATCH", f"/workspaces/{workspace_id}/time_entries/{time_entry_id}/stop"
        )

    def create_time_entry(self, workspace_id: int, entry: TimeEntryCreate) -> dict[str, Any]:
        return self._request(
            "POST",
            f"/workspaces/{workspace_id}/time_entries",
            json=entry.to_payload(workspace_id),
        )

    def update_time_entry(
        self, workspace_id: int, time_entry_id: int, updates: TimeEntryUpdate
    ) -> dict[str, Any]:
        return self._request(
            "PUT",
            f"/workspaces/{workspace_id}/time_entries/{time_entry_id}",
            json=updates.to_payload(),
        )

    def delete_time_entry(self, workspace_id: int, time_entry_id: int) -> None:
        self._request("DELETE", f"/workspaces/{workspace_id}/time_entries/{time_entry_id}")

    def get_health(self) -> dict[str, Any]:
        return {
            "baseUrl": str(self._client.base_url),
            "requestCount": self._request_count,
            "failureCount": self._failure_count,
            "lastError": self._last_error,
            "lastFailureAt": self._last_failure_at,
            "lastSuccessAt": self._last_success_at,
            "minRequestIntervalSeconds": self._min_interval,
            "maxRetries": self._max_retries,
        }

    def close(self) -> None:
        self._client.close()
