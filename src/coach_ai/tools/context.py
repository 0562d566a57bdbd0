from __future__ import annotations

from dataclasses import replace

from ..store import Store
from .base import Role, ToolContext


def create_tool_context(store: Store, user_id: int) -> ToolContext:
    """Build the per-request context for an authenticated user.

    The role comes from the profile tier; users without a profile are FREE.
    """
    tier = store.profiles.get_tier(user_id)
    return ToolContext(store=store, caller_id=user_id, caller_role=Role.from_tier(tier))


def create_test_context(store: Store, user_id: int, role: Role = Role.FREE) -> ToolContext:
    return ToolContext(store=store, caller_id=user_id, caller_role=role)


def with_role_override(ctx: ToolContext, role: Role) -> ToolContext:
    return replace(ctx, caller_role=role)
