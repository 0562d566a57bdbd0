from __future__ import annotations

import logging
from datetime import date
from typing import Literal

from dateutil import parser
from pydantic import BaseModel, Field, field_validator

from ..services.tenancy import active_client_ids
from .base import Role, ToolContext, tool_error, tool_success
from .coach_common import ClientScopedParams, client_access_error
from .registry import create_tool, factories_by_name

logger = logging.getLogger(__name__)

ProgramType = Literal["strength", "running", "hybrid", "crossfit", "custom"]


def parse_start_date(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    try:
        return parser.parse(value).date().isoformat()
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"Unrecognized date: {value}") from exc


class ProgramTemplatesParams(BaseModel):
    program_type: ProgramType | Literal["all"] = "all"
    limit: int = Field(default=20, ge=1, le=50)


@create_tool(
    name="get_program_templates",
    description="Get the program templates available for assignment, newest first.",
    parameters=ProgramTemplatesParams,
    required_role=Role.COACH,
)
async def get_program_templates(params: ProgramTemplatesParams, ctx: ToolContext) -> dict:
    templates = ctx.store.programs.list_templates(
        None if params.program_type == "all" else params.program_type,
        limit=params.limit,
    )
    return tool_success(
        {
            "templates": [
                {
                    "id": row["id"],
                    "name": row["name"],
                    "description": row["description"],
                    "program_type": row["program_type"],
                    "duration_weeks": row["duration_weeks"],
                    "days_per_week": row["days_per_week"],
                    "primary_goal": row["primary_goal"],
                }
                for row in templates
            ],
            "total_count": len(templates),
        }
    )


class ProgramCustomizations(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    days_per_week: int | None = Field(default=None, ge=1, le=7)


class AssignProgramParams(ClientScopedParams):
    template_id: int = Field(ge=1, description="Program template ID")
    start_date: str | None = Field(default=None, description="Start date, e.g. 2026-03-01")
    customizations: ProgramCustomizations | None = None

    @field_validator("start_date")
    @classmethod
    def _normalize_start_date(cls, value: str | None) -> str | None:
        return parse_start_date(value)


@create_tool(
    name="assign_program_to_client",
    description="Create an active program for a client from a template. Fails if the client already has one.",
    parameters=AssignProgramParams,
    required_role=Role.COACH,
)
async def assign_program_to_client(params: AssignProgramParams, ctx: ToolContext) -> dict:
    denied = client_access_error(ctx, params.client_id, "assign programs to this client")
    if denied:
        return denied

    template = ctx.store.programs.get_template(params.template_id)
    if not template:
        return tool_error("Template not found", "TEMPLATE_NOT_FOUND")

    if ctx.store.programs.get_active(params.client_id):
        return tool_error("Client already has an active program", "PROGRAM_EXISTS")

    customizations = params.customizations or ProgramCustomizations()
    start_date = params.start_date or date.today().isoformat()
    program_id = ctx.store.programs.create(
        user_id=params.client_id,
        name=customizations.name or template["name"],
        description=template["description"],
        program_type=template["program_type"],
        duration_weeks=template["duration_weeks"],
        days_per_week=customizations.days_per_week or template["days_per_week"],
        primary_goal=template["primary_goal"],
        status="active",
        start_date=start_date,
        template_id=template["id"],
        created_by_coach_id=ctx.caller_id,
    )
    logger.info("Coach %s assigned template %s to client %s", ctx.caller_id, template["id"], params.client_id)

    program = ctx.store.programs.get(program_id)
    return tool_success(
        {
            "program": {
                "id": program_id,
                "name": program["name"],
                "client_id": params.client_id,
                "start_date": program["start_date"],
            }
        }
    )


class ProgramAdherenceParams(BaseModel):
    client_id: int | None = Field(default=None, ge=1, description="Specific client ID")


@create_tool(
    name="get_program_adherence",
    description="Get program adherence for one client, or for every active client of the coach.",
    parameters=ProgramAdherenceParams,
    required_role=Role.COACH,
)
async def get_program_adherence(params: ProgramAdherenceParams, ctx: ToolContext) -> dict:
    if params.client_id is not None:
        denied = client_access_error(ctx, params.client_id)
        if denied:
            return denied

        program = ctx.store.programs.get_active(params.client_id)
        if not program:
            return tool_success({"has_program": False})

        return tool_success(
            {
                "has_program": True,
                "client_id": params.client_id,
                "adherence": {
                    "program_name": program["name"],
                    "adherence_percent": program["adherence_percent"] or 0,
                    "workouts_completed": program["total_workouts_completed"],
                    "workouts_scheduled": program["total_workouts_scheduled"],
                    "current_week": program["current_week"],
                    "total_weeks": program["duration_weeks"],
                },
            }
        )

    client_ids = active_client_ids(ctx.store, ctx.caller_id)
    if not client_ids:
        return tool_success({"has_clients": False, "clients": []})

    programs = ctx.store.programs.list_active_for_users(client_ids)
    return tool_success(
        {
            "has_clients": True,
            "clients": [
                {
                    "client_id": row["user_id"],
                    "program_name": row["name"],
                    "adherence_percent": row["adherence_percent"] or 0,
                    "current_week": row["current_week"],
                    "total_weeks": row["duration_weeks"],
                }
                for row in programs
            ],
        }
    )


PROGRAM_TOOLS = factories_by_name(
    get_program_templates,
    assign_program_to_client,
    get_program_adherence,
)
