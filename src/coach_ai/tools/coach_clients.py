from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from ..repositories import days_ago_date, days_ago_iso
from ..services.tenancy import list_clients
from .base import Role, ToolContext, tool_error, tool_success
from .coach_common import ClientScopedParams, client_access_error
from .registry import create_tool, factories_by_name


class ClientListParams(BaseModel):
    status: Literal["active", "all"] = "active"
    limit: int = Field(default=20, ge=1, le=50)


@create_tool(
    name="get_client_list",
    description=(
        "Get the list of clients assigned to the coach. Use this when the coach asks to see their clients, "
        "how many clients they have, or needs the roster."
    ),
    parameters=ClientListParams,
    required_role=Role.COACH,
)
async def get_client_list(params: ClientListParams, ctx: ToolContext) -> dict:
    result = list_clients(ctx.store, ctx.caller_id, status=params.status, limit=params.limit)
    return tool_success(
        {
            "has_clients": bool(result["clients"]),
            "clients": result["clients"],
            "total_count": result["total_count"],
        }
    )


@create_tool(
    name="get_client_profile",
    description="Get the profile of one client: experience level, goals, injuries and preferences.",
    parameters=ClientScopedParams,
    required_role=Role.COACH,
)
async def get_client_profile(params: ClientScopedParams, ctx: ToolContext) -> dict:
    denied = client_access_error(ctx, params.client_id)
    if denied:
        return denied

    profile = ctx.store.profiles.get_by_user(params.client_id)
    if not profile:
        return tool_error("Client not found", "CLIENT_NOT_FOUND")

    return tool_success(
        {
            "client": {
                "id": params.client_id,
                "name": profile["name"],
                "experience_level": profile["experience_level"],
                "goals": profile["goals"],
                "injuries": profile["injuries"],
                "tier": profile["tier"],
                "preferred_weight_unit": profile["preferred_weight_unit"],
            }
        }
    )


class ClientWorkoutsParams(ClientScopedParams):
    limit: int = Field(default=10, ge=1, le=30)


@create_tool(
    name="get_client_workouts",
    description="Get recent workouts for a specific client.",
    parameters=ClientWorkoutsParams,
    required_role=Role.COACH,
)
async def get_client_workouts(params: ClientWorkoutsParams, ctx: ToolContext) -> dict:
    denied = client_access_error(ctx, params.client_id)
    if denied:
        return denied

    rows = ctx.store.workouts.list_recent(params.client_id, params.limit)
    return tool_success(
        {
            "client_id": params.client_id,
            "workouts": [
                {
                    "id": row["id"],
                    "name": row["name"],
                    "status": row["status"],
                    "started_at": row["started_at"],
                    "completed_at": row["completed_at"],
                    "duration": row["duration"],
                }
                for row in rows
            ],
            "total_count": len(rows),
        }
    )


class ClientPeriodParams(ClientScopedParams):
    days: int = Field(default=30, ge=7, le=90)


@create_tool(
    name="get_client_progress",
    description="Get a progress summary for a specific client over a period.",
    parameters=ClientPeriodParams,
    required_role=Role.COACH,
)
async def get_client_progress(params: ClientPeriodParams, ctx: ToolContext) -> dict:
    denied = client_access_error(ctx, params.client_id)
    if denied:
        return denied

    workouts = ctx.store.workouts.list_since(params.client_id, days_ago_iso(params.days))
    program = ctx.store.programs.get_active(params.client_id)
    return tool_success(
        {
            "client_id": params.client_id,
            "period": f"Last {params.days} days",
            "progress": {
                "workouts_completed": sum(1 for row in workouts if row["status"] == "completed"),
                "has_active_program": program is not None,
                "program_name": program["name"] if program else None,
                "program_adherence": program["adherence_percent"] if program else None,
            },
        }
    )


class ClientHealthParams(ClientScopedParams):
    days: int = Field(default=7, ge=1, le=30)


@create_tool(
    name="get_client_health_data",
    description="Get readiness check-ins and wearable health metrics for a specific client.",
    parameters=ClientHealthParams,
    required_role=Role.COACH,
)
async def get_client_health_data(params: ClientHealthParams, ctx: ToolContext) -> dict:
    denied = client_access_error(ctx, params.client_id)
    if denied:
        return denied

    since = days_ago_date(params.days)
    readiness = ctx.store.readiness.list_since(params.client_id, since)
    health = ctx.store.health.list_since(params.client_id, since)
    return tool_success(
        {
            "client_id": params.client_id,
            "readiness": [
                {
                    "date": row["date"],
                    "score": row["overall_score"],
                    "energy": row["energy_level"],
                    "soreness": row["soreness"],
                }
                for row in readiness
            ],
            "health": [
                {
                    "date": row["date"],
                    "steps": row["steps"],
                    "sleep_hours": row["sleep_hours"],
                    "recovery_score": row["recovery_score"],
                }
                for row in health
            ],
        }
    )


@create_tool(
    name="get_client_program",
    description="Get the active training program of a specific client.",
    parameters=ClientScopedParams,
    required_role=Role.COACH,
)
async def get_client_program(params: ClientScopedParams, ctx: ToolContext) -> dict:
    denied = client_access_error(ctx, params.client_id)
    if denied:
        return denied

    program = ctx.store.programs.get_active(params.client_id)
    if not program:
        return tool_success({"has_program": False, "message": "Client has no active program"})

    return tool_success(
        {
            "has_program": True,
            "program": {
                "id": program["id"],
                "name": program["name"],
                "program_type": program["program_type"],
                "current_week": program["current_week"],
                "total_weeks": program["duration_weeks"],
                "adherence_percent": program["adherence_percent"],
                "start_date": program["start_date"],
            },
        }
    )


class ClientCheckInsParams(ClientScopedParams):
    limit: int = Field(default=7, ge=1, le=30)


@create_tool(
    name="get_client_check_ins",
    description="Get the most recent readiness check-ins of a client.",
    parameters=ClientCheckInsParams,
    required_role=Role.COACH,
)
async def get_client_check_ins(params: ClientCheckInsParams, ctx: ToolContext) -> dict:
    denied = client_access_error(ctx, params.client_id)
    if denied:
        return denied

    rows = ctx.store.readiness.list_recent(params.client_id, params.limit)
    return tool_success(
        {
            "client_id": params.client_id,
            "check_ins": [
                {
                    "date": row["date"],
                    "overall_score": row["overall_score"],
                    "sleep_quality": row["sleep_quality"],
                    "energy_level": row["energy_level"],
                    "motivation": row["motivation"],
                    "soreness": row["soreness"],
                    "stress": row["stress"],
                    "notes": row["notes"],
                }
                for row in rows
            ],
        }
    )


NoteCategory = Literal["general", "workout", "nutrition", "injury", "progress", "goal", "check_in"]


class CoachNotesParams(ClientScopedParams):
    category: NoteCategory | Literal["all"] = "all"
    limit: int = Field(default=20, ge=1, le=50)


@create_tool(
    name="get_coach_notes",
    description="Get the coach's private notes about a specific client, pinned notes first.",
    parameters=CoachNotesParams,
    required_role=Role.COACH,
)
async def get_coach_notes(params: CoachNotesParams, ctx: ToolContext) -> dict:
    denied = client_access_error(ctx, params.client_id)
    if denied:
        return denied

    notes = ctx.store.notes.list_for_client(
        ctx.caller_id,
        params.client_id,
        category=None if params.category == "all" else params.category,
        limit=params.limit,
    )
    return tool_success(
        {
            "client_id": params.client_id,
            "notes": [
                {
                    "id": note["id"],
                    "title": note["title"],
                    "content": note["content"],
                    "category": note["category"],
                    "is_pinned": bool(note["is_pinned"]),
                    "created_at": note["created_at"],
                    "updated_at": note["updated_at"],
                }
                for note in notes
            ],
            "total_count": len(notes),
        }
    )


class AddCoachNoteParams(ClientScopedParams):
    content: str = Field(min_length=1, max_length=5000)
    title: str | None = Field(default=None, max_length=200)
    category: NoteCategory = "general"
    is_pinned: bool = False


@create_tool(
    name="add_coach_note",
    description="Save a private coach note about a client.",
    parameters=AddCoachNoteParams,
    required_role=Role.COACH,
)
async def add_coach_note(params: AddCoachNoteParams, ctx: ToolContext) -> dict:
    denied = client_access_error(ctx, params.client_id, "add notes for this client")
    if denied:
        return denied

    note_id = ctx.store.notes.create(
        ctx.caller_id,
        params.client_id,
        params.content,
        title=params.title,
        category=params.category,
        is_pinned=params.is_pinned,
    )
    return tool_success({"note_id": note_id, "client_id": params.client_id})


@create_tool(
    name="get_client_injuries",
    description="Get the current injuries and exercise restrictions of a client.",
    parameters=ClientScopedParams,
    required_role=Role.COACH,
)
async def get_client_injuries(params: ClientScopedParams, ctx: ToolContext) -> dict:
    denied = client_access_error(ctx, params.client_id)
    if denied:
        return denied

    profile = ctx.store.profiles.get_by_user(params.client_id)
    if not profile:
        return tool_error("Client not found", "CLIENT_NOT_FOUND")

    return tool_success(
        {
            "client_id": params.client_id,
            "current_injuries": profile["injuries"],
            "exercises_to_avoid": profile["exercises_to_avoid"],
        }
    )


CLIENT_TOOLS = factories_by_name(
    get_client_list,
    get_client_profile,
    get_client_workouts,
    get_client_progress,
    get_client_health_data,
    get_client_program,
    get_client_check_ins,
    get_coach_notes,
    add_coach_note,
    get_client_injuries,
)
