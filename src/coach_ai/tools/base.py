from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..store import Store

TOOL_ERROR = "TOOL_ERROR"
INVALID_PARAMETERS = "INVALID_PARAMETERS"
PERMISSION_DENIED = "PERMISSION_DENIED"
UNAUTHORIZED = "UNAUTHORIZED"
TOOL_NOT_FOUND = "TOOL_NOT_FOUND"


class Role(IntEnum):
    """Caller tiers. The integer value is the privilege rank."""

    FREE = 0
    PREMIUM = 1
    COACH = 2

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_tier(cls, tier: str | None) -> "Role":
        normalized = (tier or "").strip().upper()
        if normalized in cls.__members__:
            return cls[normalized]
        return cls.FREE


@dataclass(frozen=True)
class ToolContext:
    store: "Store"
    caller_id: int
    caller_role: Role


def tool_success(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


def tool_error(message: str, code: str | None = None) -> dict[str, Any]:
    return {"success": False, "error": {"code": code or TOOL_ERROR, "message": message}}


def not_found_code(resource: str) -> str:
    return f"{resource.strip().upper().replace(' ', '_')}_NOT_FOUND"


def is_tool_response(value: Any) -> bool:
    if not isinstance(value, dict) or set(value) not in ({"success", "data"}, {"success", "error"}):
        return False
    if value["success"] is True:
        return "data" in value
    error = value.get("error")
    return (
        value["success"] is False
        and isinstance(error, dict)
        and isinstance(error.get("code"), str)
        and isinstance(error.get("message"), str)
    )
