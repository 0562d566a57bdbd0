from __future__ import annotations

from typing import Any

from .base import PERMISSION_DENIED, Role, tool_error


def has_permission(caller_role: Role, required_role: Role) -> bool:
    return Role(caller_role) >= Role(required_role)


def check_permission(required_role: Role | None, caller_role: Role) -> dict[str, Any] | None:
    """Return a PERMISSION_DENIED envelope when the caller's tier is too low, else None.

    Pure and synchronous: it must run before the tool touches the store.
    """
    if required_role is None or has_permission(caller_role, required_role):
        return None
    required = Role(required_role).label
    actual = Role(caller_role).label
    return tool_error(
        f"This feature requires {required} tier or higher. You are on {actual} tier.",
        PERMISSION_DENIED,
    )
