"""
Entity kinds and typed partial records for Toggl write operations.

Optional fields default to ``None`` which means "absent": only present fields
are sent upstream, so a partial update never clobbers untouched attributes.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

WORKSPACE = "workspace"
PROJECT = "project"
CLIENT = "client"
TIME_ENTRY = "time_entry"

CACHED_KINDS = (WORKSPACE, PROJECT, CLIENT)

CREATED_WITH = "toggl-mcp-fast"


def _present(record: Any) -> dict[str, Any]:
    return {key: value for key, value in asdict(record).items() if value is not None}


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp; a trailing ``Z`` is accepted."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class ProjectCreate:
    name: str
    client_id: int | None = None
    is_private: bool | None = None
    active: bool | None = None
    color: str | None = None
    billable: bool | None = None
    estimated_hours: float | None = None

    def to_payload(self) -> dict[str, Any]:
        return _present(self)


@dataclass
class ProjectUpdate:
    name: str | None = None
    client_id: int | None = None
    is_private: bool | None = None
    active: bool | None = None
    color: str | None = None
    billable: bool | None = None
    estimated_hours: float | None = None

    def to_payload(self) -> dict[str, Any]:
        return _present(self)

    def is_empty(self) -> bool:
        return not self.to_payload()


@dataclass
class ClientCreate:
    name: str
    notes: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return _present(self)


@dataclass
class TimeEntryCreate:
    description: str
    start: str
    stop: str | None = None
    duration: int | None = None
    project_id: int | None = None
    task_id: int | None = None
    billable: bool | None = None
    tags: list[str] | None = None

    def resolve_times(self) -> None:
        """Fill in whichever of ``stop``/``duration`` is missing.

        Raises:
            ValueError: neither ``stop`` nor ``duration`` was given.
        """
        start = parse_timestamp(self.start)
        if self.stop is not None and self.duration is None:
            delta = parse_timestamp(self.stop) - start
            self.duration = math.ceil(delta.total_seconds())
        elif self.duration is not None and self.stop is None:
            self.stop = format_timestamp(start + timedelta(seconds=self.duration))
        elif self.stop is None and self.duration is None:
            raise ValueError("Either stop or duration is required")

    def to_payload(self, workspace_id: int) -> dict[str, Any]:
        payload = _present(self)
        payload["workspace_id"] = workspace_id
        payload["created_with"] = CREATED_WITH
        return payload


@dataclass
class TimeEntryUpdate:
    description: str | None = None
    project_id: int | None = None
    task_id: int | None = None
    billable: bool | None = None
    start: str | None = None
    stop: str | None = None
    duration: int | None = None
    tags: list[str] | None = None

    def to_payload(self) -> dict[str, Any]:
        return _present(self)

    def is_empty(self) -> bool:
        return not self.to_payload()
