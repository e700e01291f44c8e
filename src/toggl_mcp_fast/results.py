"""
Result types returned to the tool layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class ToolInputError(ValueError):
    """Raised by handlers when tool arguments are missing or invalid."""

    def __init__(self, message: str, code: str = "invalid_arguments"):
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class Ok:
    value: Any

    ok = True

    def to_dict(self) -> Any:
        return self.value


@dataclass(frozen=True)
class Err:
    code: str
    message: str

    ok = False

    def to_dict(self) -> dict[str, Any]:
        return {"error": True, "code": self.code, "message": self.message}


ToolResult = Ok | Err
