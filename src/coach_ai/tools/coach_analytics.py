from __future__ import annotations

from pydantic import BaseModel, Field

from ..repositories import days_ago_date, days_ago_iso
from ..services.tenancy import all_clients
from .base import Role, ToolContext, tool_success
from .coach_common import client_access_error
from .coach_clients import ClientPeriodParams
from .registry import create_tool, factories_by_name


@create_tool(
    name="get_client_analytics_summary",
    description=(
        "Get an analytics summary for one client: workouts started and completed, completion rate, "
        "program adherence and readiness. Use this when the coach asks how a client is doing."
    ),
    parameters=ClientPeriodParams,
    required_role=Role.COACH,
)
async def get_client_analytics_summary(params: ClientPeriodParams, ctx: ToolContext) -> dict:
    denied = client_access_error(ctx, params.client_id)
    if denied:
        return denied

    workouts = ctx.store.workouts.list_since(params.client_id, days_ago_iso(params.days))
    program = ctx.store.programs.get_active(params.client_id)
    readiness = ctx.store.readiness.list_since(params.client_id, days_ago_date(params.days))

    completed = [row for row in workouts if row["status"] == "completed"]
    scores = [row["overall_score"] for row in readiness if row["overall_score"] is not None]
    return tool_success(
        {
            "client_id": params.client_id,
            "period": f"Last {params.days} days",
            "analytics": {
                "workouts_completed": len(completed),
                "workouts_started": len(workouts),
                "completion_rate": round(len(completed) / len(workouts) * 100) if workouts else 0,
                "program_adherence": program["adherence_percent"] if program else None,
                "average_readiness": round(sum(scores) / len(scores)) if scores else None,
                "check_ins_completed": len(readiness),
                "last_workout": completed[0]["completed_at"] if completed else None,
                "last_check_in": readiness[0]["date"] if readiness else None,
            },
        }
    )


class AtRiskParams(BaseModel):
    inactive_days: int = Field(default=7, ge=1, le=30)
    low_adherence_threshold: float = Field(default=50, ge=0, le=100)


@create_tool(
    name="get_at_risk_clients",
    description="Find active clients who may need attention: low program adherence or no recent workouts.",
    parameters=AtRiskParams,
    required_role=Role.COACH,
)
async def get_at_risk_clients(params: AtRiskParams, ctx: ToolContext) -> dict:
    clients = all_clients(ctx.store, ctx.caller_id, status="active")
    names = {client["client_id"]: client["name"] for client in clients}
    client_ids = list(names)

    low_adherence = [
        {
            "client_id": row["user_id"],
            "name": names.get(row["user_id"]),
            "program_name": row["name"],
            "adherence_percent": row["adherence_percent"],
        }
        for row in ctx.store.programs.list_active_for_users(client_ids)
        if row["adherence_percent"] is not None and row["adherence_percent"] < params.low_adherence_threshold
    ]

    cutoff = days_ago_iso(params.inactive_days)
    last_started = ctx.store.workouts.last_started_at(client_ids)
    inactive = [
        {
            "client_id": client_id,
            "name": names[client_id],
            "last_workout_at": last_started.get(client_id),
        }
        for client_id in client_ids
        if last_started.get(client_id) is None or last_started[client_id] < cutoff
    ]

    return tool_success(
        {
            "at_risk_clients": {"low_adherence": low_adherence, "inactive": inactive},
            "thresholds": {
                "inactive_days": params.inactive_days,
                "low_adherence_threshold": params.low_adherence_threshold,
            },
        }
    )


ANALYTICS_TOOLS = factories_by_name(
    get_client_analytics_summary,
    get_at_risk_clients,
)
