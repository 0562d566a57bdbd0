from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Literal

from dateutil import parser
from pydantic import BaseModel, Field

from ..repositories import days_ago_date, days_ago_iso
from .base import Role, ToolContext, not_found_code, tool_error, tool_success
from .registry import NoParameters, create_tool, factories_by_name


def _seconds_since(value: str) -> int:
    started = parser.isoparse(value)
    if started.tzinfo is None:
        started = started.replace(tzinfo=timezone.utc)
    return max(0, int((datetime.now(timezone.utc) - started).total_seconds()))


def _estimated_1rm(weight: float, reps: int) -> float:
    return round(weight * (1 + reps / 30), 1) if reps > 1 else weight


@create_tool(
    name="get_user_profile",
    description=(
        "Get the current user profile including goals, experience level, injuries, and training preferences. "
        "Use this when the user asks about their profile, goals, experience or tier, or to personalize advice."
    ),
)
async def get_user_profile(params: NoParameters, ctx: ToolContext) -> dict:
    profile = ctx.store.profiles.get_by_user(ctx.caller_id)
    if not profile:
        return tool_error("User profile not found", not_found_code("profile"))

    return tool_success(
        {
            "name": profile["name"],
            "experience_level": profile["experience_level"],
            "goals": profile["goals"],
            "injuries": profile["injuries"],
            "preferred_equipment": profile["preferred_equipment"],
            "preferred_weight_unit": profile["preferred_weight_unit"],
            "training_frequency": profile["training_frequency"],
            "tier": profile["tier"],
        }
    )


@create_tool(
    name="get_user_preferences",
    description=(
        "Get user settings and preferences only: weight unit, theme, notifications and the equipment the user owns. "
        "For finding exercises use search_exercises instead."
    ),
)
async def get_user_preferences(params: NoParameters, ctx: ToolContext) -> dict:
    profile = ctx.store.profiles.get_by_user(ctx.caller_id)
    if not profile:
        return tool_error("User profile not found", not_found_code("profile"))

    return tool_success(
        {
            "preferred_weight_unit": profile["preferred_weight_unit"],
            "preferred_equipment": profile["preferred_equipment"],
            "favorite_exercises": profile["favorite_exercises"],
            "exercises_to_avoid": profile["exercises_to_avoid"],
            "theme": profile["theme"],
            "notifications_enabled": profile["notifications_enabled"],
        }
    )


@create_tool(
    name="get_active_injuries",
    description=(
        "Get the injuries the user currently has logged and the exercises they should avoid. "
        "Check this before recommending exercises."
    ),
)
async def get_active_injuries(params: NoParameters, ctx: ToolContext) -> dict:
    profile = ctx.store.profiles.get_by_user(ctx.caller_id) or {}
    injuries = (profile.get("injuries") or "").strip()
    return tool_success(
        {
            "active_injuries": injuries or None,
            "has_active_injuries": bool(injuries),
            "exercises_to_avoid": profile.get("exercises_to_avoid") or [],
        }
    )


class RecentWorkoutsParams(BaseModel):
    limit: int = Field(default=7, ge=1, le=30, description="Number of workouts to return")


@create_tool(
    name="get_recent_workouts",
    description="Get the user's most recent completed workouts.",
    parameters=RecentWorkoutsParams,
)
async def get_recent_workouts(params: RecentWorkoutsParams, ctx: ToolContext) -> dict:
    rows = ctx.store.workouts.list_recent(ctx.caller_id, params.limit, status="completed")
    return tool_success(
        {
            "workouts": [
                {
                    "id": row["id"],
                    "name": row["name"],
                    "date": row["completed_at"] or row["started_at"],
                    "duration": row["duration"],
                    "notes": row["notes"],
                }
                for row in rows
            ],
            "total_count": len(rows),
        }
    )


@create_tool(
    name="get_active_workout",
    description="Get the workout session currently in progress with the sets logged so far.",
)
async def get_active_workout(params: NoParameters, ctx: ToolContext) -> dict:
    workout = ctx.store.workouts.get_active(ctx.caller_id)
    if not workout:
        return tool_success({"has_active_workout": False})

    sets = ctx.store.workouts.list_sets_for_workout(workout["id"])
    total_volume = sum((row["weight"] or 0) * (row["reps"] or 0) for row in sets)
    return tool_success(
        {
            "has_active_workout": True,
            "workout": {
                "id": workout["id"],
                "name": workout["name"],
                "started_at": workout["started_at"],
                "duration": _seconds_since(workout["started_at"]),
                "sets": [
                    {
                        "exercise_name": row["exercise_name"],
                        "weight": row["weight"],
                        "weight_unit": row["weight_unit"],
                        "reps": row["reps"],
                        "is_pr": bool(row["is_pr"]),
                    }
                    for row in sets
                ],
                "total_volume": total_volume,
            },
        }
    )


class ExerciseHistoryParams(BaseModel):
    exercise_name: str = Field(min_length=1, description="Name of the exercise to get history for")
    limit: int = Field(default=20, ge=1, le=100, description="Number of sets to return")


@create_tool(
    name="get_exercise_history",
    description="Get the user's logged sets for one exercise, newest first, including PR flags.",
    parameters=ExerciseHistoryParams,
)
async def get_exercise_history(params: ExerciseHistoryParams, ctx: ToolContext) -> dict:
    exercise = ctx.store.exercises.find_by_name(params.exercise_name)
    if not exercise:
        return tool_error(f'Exercise "{params.exercise_name}" not found', not_found_code("exercise"))

    sets = ctx.store.workouts.list_sets_for_exercise(ctx.caller_id, exercise["id"], params.limit)
    return tool_success(
        {
            "exercise": {
                "id": exercise["id"],
                "name": exercise["name"],
                "primary_muscle": exercise["primary_muscle"],
            },
            "sets": [
                {
                    "date": row["created_at"],
                    "weight": row["weight"],
                    "weight_unit": row["weight_unit"],
                    "reps": row["reps"],
                    "rpe": row["rpe"],
                    "is_pr": bool(row["is_pr"]),
                }
                for row in sets
            ],
            "total_sets": len(sets),
        }
    )


class PersonalRecordsParams(BaseModel):
    exercise_name: str | None = Field(default=None, description="Filter by specific exercise")


@create_tool(
    name="get_personal_records",
    description="Get the user's personal records, optionally for a single exercise.",
    parameters=PersonalRecordsParams,
)
async def get_personal_records(params: PersonalRecordsParams, ctx: ToolContext) -> dict:
    exercise_id = None
    if params.exercise_name:
        exercise = ctx.store.exercises.find_by_name(params.exercise_name)
        if not exercise:
            return tool_error(f'Exercise "{params.exercise_name}" not found', not_found_code("exercise"))
        exercise_id = exercise["id"]

    records = ctx.store.personal_records.list_for_user(ctx.caller_id, exercise_id=exercise_id)
    recent_cutoff = days_ago_iso(30)
    return tool_success(
        {
            "records": [
                {
                    "exercise_name": row["exercise_name"],
                    "weight": row["weight"],
                    "reps": row["reps"],
                    "estimated_1rm": row["estimated_1rm"],
                    "achieved_at": row["achieved_at"],
                }
                for row in records
            ],
            "total_prs": len(records),
            "recent_prs": sum(1 for row in records if row["achieved_at"] >= recent_cutoff),
        }
    )


class SearchExercisesParams(BaseModel):
    query: str = Field(description="Search query for exercise name")
    muscle_group: str | None = Field(default=None, description="Filter by primary muscle group")
    limit: int = Field(default=10, ge=1, le=20, description="Max results")


@create_tool(
    name="search_exercises",
    description="Search the exercise database by name, optionally filtered by primary muscle group.",
    parameters=SearchExercisesParams,
)
async def search_exercises(params: SearchExercisesParams, ctx: ToolContext) -> dict:
    rows = ctx.store.exercises.search(params.query, params.muscle_group, params.limit)
    return tool_success(
        {
            "exercises": [
                {
                    "id": row["id"],
                    "name": row["name"],
                    "primary_muscle": row["primary_muscle"],
                    "equipment": row["equipment"],
                    "is_compound": bool(row["is_compound"]),
                }
                for row in rows
            ],
            "count": len(rows),
        }
    )


class ExerciseSubstitutesParams(BaseModel):
    exercise_name: str = Field(min_length=1, description="Name of the exercise to find substitutes for")
    available_equipment: list[str] | None = Field(default=None, description="Equipment available")


@create_tool(
    name="get_exercise_substitutes",
    description="Get alternative exercises that target the same primary muscle group.",
    parameters=ExerciseSubstitutesParams,
)
async def get_exercise_substitutes(params: ExerciseSubstitutesParams, ctx: ToolContext) -> dict:
    exercise = ctx.store.exercises.find_by_name(params.exercise_name)
    if not exercise:
        return tool_error(f'Exercise "{params.exercise_name}" not found', not_found_code("exercise"))

    substitutes = ctx.store.exercises.substitutes(exercise, equipment=params.available_equipment)
    return tool_success(
        {
            "original": {
                "id": exercise["id"],
                "name": exercise["name"],
                "primary_muscle": exercise["primary_muscle"],
            },
            "substitutes": [
                {
                    "id": row["id"],
                    "name": row["name"],
                    "equipment": row["equipment"],
                    "is_compound": bool(row["is_compound"]),
                }
                for row in substitutes
            ],
        }
    )


class LogWorkoutSetParams(BaseModel):
    exercise_name: str = Field(min_length=1, description="Name of the exercise")
    weight: float = Field(ge=0, description="Weight used")
    weight_unit: Literal["lbs", "kg"] = Field(description="Weight unit")
    reps: int = Field(ge=1, description="Number of reps completed")
    rpe: float | None = Field(default=None, ge=1, le=10, description="Rate of perceived exertion (1-10)")
    idempotency_key: str | None = Field(
        default=None,
        min_length=1,
        max_length=100,
        description="Client-chosen key; repeating a call with the same key returns the original set",
    )


def _duplicate_set(existing: dict) -> dict:
    return tool_success(
        {
            "set_id": existing["id"],
            "workout_id": existing["workout_id"],
            "is_pr": bool(existing["is_pr"]),
            "duplicate": True,
        }
    )


@create_tool(
    name="log_workout_set",
    description="Log a set in the user's active workout session. Flags new personal records.",
    parameters=LogWorkoutSetParams,
)
async def log_workout_set(params: LogWorkoutSetParams, ctx: ToolContext) -> dict:
    store = ctx.store
    if params.idempotency_key:
        existing = store.workouts.get_set_by_key(ctx.caller_id, params.idempotency_key)
        if existing:
            return _duplicate_set(existing)

    workout = store.workouts.get_active(ctx.caller_id)
    if not workout:
        return tool_error("No active workout. Start a workout first, then log sets.", "NO_ACTIVE_WORKOUT")

    exercise = store.exercises.find_by_name(params.exercise_name)
    if not exercise:
        return tool_error(f'Exercise "{params.exercise_name}" not found', not_found_code("exercise"))

    best = store.personal_records.best_for_exercise(ctx.caller_id, exercise["id"])
    estimate = _estimated_1rm(params.weight, params.reps)
    is_pr = params.weight > 0 and (best is None or estimate > (best["estimated_1rm"] or 0))

    try:
        set_id = store.workouts.add_set(
            workout_id=workout["id"],
            user_id=ctx.caller_id,
            exercise_id=exercise["id"],
            weight=params.weight,
            weight_unit=params.weight_unit,
            reps=params.reps,
            rpe=params.rpe,
            is_pr=is_pr,
            idempotency_key=params.idempotency_key,
        )
    except sqlite3.IntegrityError:
        # A concurrent retry with the same key logged the set first.
        existing = params.idempotency_key and store.workouts.get_set_by_key(ctx.caller_id, params.idempotency_key)
        if not existing:
            raise
        return _duplicate_set(existing)

    if is_pr:
        store.personal_records.create(ctx.caller_id, exercise["id"], params.weight, params.reps)

    return tool_success(
        {
            "set_id": set_id,
            "workout_id": workout["id"],
            "exercise_name": exercise["name"],
            "estimated_1rm": estimate,
            "is_pr": is_pr,
            "duplicate": False,
        }
    )


@create_tool(
    name="get_active_program",
    description="Get an overview of the user's currently active training program.",
)
async def get_active_program(params: NoParameters, ctx: ToolContext) -> dict:
    program = ctx.store.programs.get_active(ctx.caller_id)
    if not program:
        return tool_success(
            {
                "has_active_program": False,
                "message": "No active program. Would you like to start one?",
            }
        )

    return tool_success(
        {
            "has_active_program": True,
            "program": {
                "id": program["id"],
                "name": program["name"],
                "description": program["description"],
                "program_type": program["program_type"],
                "duration_weeks": program["duration_weeks"],
                "days_per_week": program["days_per_week"],
                "current_week": program["current_week"],
                "current_day": program["current_day"],
                "start_date": program["start_date"],
                "end_date": program["end_date"],
                "primary_goal": program["primary_goal"],
                "adherence_percent": program["adherence_percent"],
            },
        }
    )


@create_tool(
    name="get_program_progress",
    description="Get detailed progress for the active training program.",
    required_role=Role.PREMIUM,
)
async def get_program_progress(params: NoParameters, ctx: ToolContext) -> dict:
    program = ctx.store.programs.get_active(ctx.caller_id)
    if not program:
        return tool_error("No active program found", not_found_code("program"))

    duration_weeks = program["duration_weeks"] or 1
    return tool_success(
        {
            "program": {"id": program["id"], "name": program["name"]},
            "progress": {
                "current_week": program["current_week"],
                "total_weeks": program["duration_weeks"],
                "completed_weeks": program["completed_weeks"],
                "percent_complete": round(program["completed_weeks"] / duration_weeks * 100),
                "workouts_completed": program["total_workouts_completed"],
                "workouts_scheduled": program["total_workouts_scheduled"],
                "adherence_percent": program["adherence_percent"],
            },
        }
    )


class ReadinessParams(BaseModel):
    days: int = Field(default=1, ge=1, le=30, description="Number of days of readiness data")


@create_tool(
    name="get_readiness_score",
    description=(
        "Get the user's readiness score for today or recent days. Use this when the user asks whether they are "
        "ready to train or how recovered they are."
    ),
    parameters=ReadinessParams,
)
async def get_readiness_score(params: ReadinessParams, ctx: ToolContext) -> dict:
    scores = ctx.store.readiness.list_since(ctx.caller_id, days_ago_date(params.days - 1))
    if not scores:
        return tool_success(
            {
                "has_readiness_data": False,
                "message": "No readiness data logged. Consider doing a quick check-in!",
            }
        )

    latest = scores[0]
    return tool_success(
        {
            "has_readiness_data": True,
            "today": {
                "overall_score": latest["overall_score"],
                "sleep_quality": latest["sleep_quality"],
                "energy_level": latest["energy_level"],
                "motivation": latest["motivation"],
                "soreness": latest["soreness"],
                "stress": latest["stress"],
                "notes": latest["notes"],
                "date": latest["date"],
            },
            "history": [{"overall_score": row["overall_score"], "date": row["date"]} for row in scores[1:]],
        }
    )


class HealthMetricsParams(BaseModel):
    days: int = Field(default=7, ge=1, le=30, description="Number of days")


@create_tool(
    name="get_health_metrics",
    description="Get wearable health metrics (steps, resting heart rate, HRV, sleep) with averages.",
    parameters=HealthMetricsParams,
    required_role=Role.PREMIUM,
)
async def get_health_metrics(params: HealthMetricsParams, ctx: ToolContext) -> dict:
    metrics = ctx.store.health.list_since(ctx.caller_id, days_ago_date(params.days - 1))
    if not metrics:
        return tool_success({"has_metrics": False, "message": "No health metrics synced. Connect a wearable!"})

    latest = metrics[0]
    return tool_success(
        {
            "has_metrics": True,
            "latest": {
                "date": latest["date"],
                "steps": latest["steps"],
                "active_minutes": latest["active_minutes"],
                "resting_heart_rate": latest["resting_heart_rate"],
                "hrv": latest["heart_rate_variability"],
                "sleep_hours": latest["sleep_hours"],
                "recovery_score": latest["recovery_score"],
            },
            "averages": {
                "avg_steps": round(sum(row["steps"] or 0 for row in metrics) / len(metrics)),
                "avg_sleep_hours": round(sum(row["sleep_hours"] or 0 for row in metrics) / len(metrics), 1),
            },
            "days": len(metrics),
        }
    )


class VolumeAnalyticsParams(BaseModel):
    days: int = Field(default=30, ge=7, le=90, description="Number of days to analyze")


@create_tool(
    name="get_volume_analytics",
    description="Get training volume (sets, reps, weight x reps) per muscle group over a period.",
    parameters=VolumeAnalyticsParams,
    required_role=Role.PREMIUM,
)
async def get_volume_analytics(params: VolumeAnalyticsParams, ctx: ToolContext) -> dict:
    rows = ctx.store.workouts.volume_by_muscle_since(ctx.caller_id, days_ago_iso(params.days))
    return tool_success(
        {
            "period": f"Last {params.days} days",
            "by_muscle_group": [
                {
                    "muscle_group": row["muscle_group"],
                    "total_sets": row["total_sets"],
                    "total_reps": row["total_reps"],
                    "total_volume": row["total_volume"],
                }
                for row in rows
            ],
            "total_volume": sum(row["total_volume"] or 0 for row in rows),
        }
    )


ATHLETE_TOOLS = factories_by_name(
    get_user_profile,
    get_user_preferences,
    get_active_injuries,
    get_recent_workouts,
    get_active_workout,
    get_exercise_history,
    get_personal_records,
    search_exercises,
    get_exercise_substitutes,
    log_workout_set,
    get_active_program,
    get_program_progress,
    get_readiness_score,
    get_health_metrics,
    get_volume_analytics,
)
