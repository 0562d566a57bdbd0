from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from .base import Role, ToolContext, not_found_code, tool_error, tool_success
from .registry import NoParameters, create_tool, factories_by_name


@create_tool(
    name="get_coach_profile",
    description="Get the coach's own profile: name, tier, experience and specializations.",
    required_role=Role.COACH,
)
async def get_coach_profile(params: NoParameters, ctx: ToolContext) -> dict:
    profile = ctx.store.profiles.get_by_user(ctx.caller_id)
    if not profile:
        return tool_error("Profile not found", not_found_code("profile"))

    return tool_success(
        {
            "profile": {
                "id": ctx.caller_id,
                "name": profile["name"],
                "tier": profile["tier"],
                "experience_level": profile["experience_level"],
                # Coaches keep their specializations in the goals list.
                "specializations": profile["goals"],
                "created_at": profile["created_at"],
            }
        }
    )


class PendingInvitationsParams(BaseModel):
    status: Literal["pending", "accepted", "all"] = "pending"
    limit: int = Field(default=20, ge=1, le=50)


@create_tool(
    name="get_pending_invitations",
    description="Get client assignments the coach has sent, by default only those still awaiting acceptance.",
    parameters=PendingInvitationsParams,
    required_role=Role.COACH,
)
async def get_pending_invitations(params: PendingInvitationsParams, ctx: ToolContext) -> dict:
    rows = ctx.store.relationships.list_for_coach(
        ctx.caller_id,
        status="pending" if params.status == "pending" else None,
        limit=params.limit,
    )
    if params.status == "accepted":
        rows = [row for row in rows if row["accepted_at"]]

    profiles = {p["user_id"]: p for p in ctx.store.profiles.list_by_users([row["client_id"] for row in rows])}
    return tool_success(
        {
            "invitations": [
                {
                    "relationship_id": row["id"],
                    "client_id": row["client_id"],
                    "client_name": (profiles.get(row["client_id"]) or {}).get("name"),
                    "status": row["status"],
                    "assigned_at": row["assigned_at"],
                    "accepted_at": row["accepted_at"],
                }
                for row in rows
            ],
            "total_count": len(rows),
        }
    )


PROFILE_TOOLS = factories_by_name(
    get_coach_profile,
    get_pending_invitations,
)
