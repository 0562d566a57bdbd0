from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

from .db import get_connection

RELATIONSHIP_STATUSES = ("pending", "active", "inactive", "terminated")

_PROFILE_LIST_FIELDS = ("goals", "preferred_equipment", "favorite_exercises", "exercises_to_avoid")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def days_ago_iso(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


def days_ago_date(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).date().isoformat()


def _placeholders(values: list) -> str:
    return ", ".join("?" for _ in values)


class _Repository:
    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        return get_connection(self._db_path)


class UserRepository(_Repository):
    def create(self, email: str, password_hash: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO users (email, password_hash) VALUES (?, ?)",
                (email.strip().lower(), password_hash),
            )
            return int(cursor.lastrowid)

    def get_by_email(self, email: str) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE lower(email) = lower(?)",
                (email.strip(),),
            ).fetchone()
        return dict(row) if row else None

    def get_by_id(self, user_id: int) -> dict | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return dict(row) if row else None

    def update_password_hash(self, user_id: int, password_hash: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET password_hash = ? WHERE id = ?",
                (password_hash, user_id),
            )


def _decode_profile(row: sqlite3.Row | None) -> dict | None:
    if not row:
        return None
    payload = dict(row)
    for field in _PROFILE_LIST_FIELDS:
        raw = payload.pop(f"{field}_json", None) or "[]"
        try:
            payload[field] = json.loads(raw)
        except ValueError:
            payload[field] = []
    payload["notifications_enabled"] = bool(payload.get("notifications_enabled"))
    return payload


class ProfileRepository(_Repository):
    def upsert(
        self,
        user_id: int,
        name: str | None = None,
        tier: str = "free",
        experience_level: str = "beginner",
        goals: list[str] | None = None,
        injuries: str | None = None,
        training_frequency: str | None = None,
        preferred_equipment: list[str] | None = None,
        favorite_exercises: list[str] | None = None,
        exercises_to_avoid: list[str] | None = None,
        preferred_weight_unit: str = "lbs",
        theme: str = "auto",
        notifications_enabled: bool = True,
    ) -> None:
        values = (
            name,
            tier,
            experience_level,
            json.dumps(goals or [], ensure_ascii=False),
            injuries,
            training_frequency,
            json.dumps(preferred_equipment or [], ensure_ascii=False),
            json.dumps(favorite_exercises or [], ensure_ascii=False),
            json.dumps(exercises_to_avoid or [], ensure_ascii=False),
            preferred_weight_unit,
            theme,
            1 if notifications_enabled else 0,
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO user_profiles (
                    user_id,
                    name,
                    tier,
                    experience_level,
                    goals_json,
                    injuries,
                    training_frequency,
                    preferred_equipment_json,
                    favorite_exercises_json,
                    exercises_to_avoid_json,
                    preferred_weight_unit,
                    theme,
                    notifications_enabled
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    name = excluded.name,
                    tier = excluded.tier,
                    experience_level = excluded.experience_level,
                    goals_json = excluded.goals_json,
                    injuries = excluded.injuries,
                    training_frequency = excluded.training_frequency,
                    preferred_equipment_json = excluded.preferred_equipment_json,
                    favorite_exercises_json = excluded.favorite_exercises_json,
                    exercises_to_avoid_json = excluded.exercises_to_avoid_json,
                    preferred_weight_unit = excluded.preferred_weight_unit,
                    theme = excluded.theme,
                    notifications_enabled = excluded.notifications_enabled,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (user_id, *values),
            )

    def get_by_user(self, user_id: int) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM user_profiles WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return _decode_profile(row)

    def get_tier(self, user_id: int) -> str | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT tier FROM user_profiles WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return row["tier"] if row else None

    def list_by_users(self, user_ids: list[int]) -> list[dict]:
        if not user_ids:
            return []
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM user_profiles WHERE user_id IN ({_placeholders(user_ids)})",
                tuple(user_ids),
            ).fetchall()
        return [_decode_profile(row) for row in rows]


class RelationshipRepository(_Repository):
    def create(
        self,
        coach_id: int,
        client_id: int,
        assigned_by: int | None = None,
        relationship_notes: str | None = None,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO coach_clients (coach_id, client_id, status, assigned_at, assigned_by, relationship_notes)
                VALUES (?, ?, 'pending', ?, ?, ?)
                """,
                (coach_id, client_id, utc_now_iso(), assigned_by or coach_id, relationship_notes),
            )
            return int(cursor.lastrowid)

    def get(self, relationship_id: int) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM coach_clients WHERE id = ?",
                (relationship_id,),
            ).fetchone()
        return dict(row) if row else None

    def latest_for_pair(self, coach_id: int, client_id: int) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT *
                FROM coach_clients
                WHERE coach_id = ? AND client_id = ?
                ORDER BY assigned_at DESC, id DESC
                LIMIT 1
                """,
                (coach_id, client_id),
            ).fetchone()
        return dict(row) if row else None

    def exists_with_status(self, coach_id: int, client_id: int, status: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT 1
                FROM coach_clients
                WHERE coach_id = ? AND client_id = ? AND status = ?
                LIMIT 1
                """,
                (coach_id, client_id, status),
            ).fetchone()
        return row is not None

    def open_for_pair(self, coach_id: int, client_id: int) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT *
                FROM coach_clients
                WHERE coach_id = ? AND client_id = ? AND status != 'terminated'
                ORDER BY id DESC
                LIMIT 1
                """,
                (coach_id, client_id),
            ).fetchone()
        return dict(row) if row else None

    def list_for_coach(self, coach_id: int, status: str | None, limit: int | None = None) -> list[dict]:
        where_status = "AND status = ?" if status else ""
        params: tuple = (coach_id, status) if status else (coach_id,)
        limit_clause = "LIMIT ?" if limit is not None else ""
        if limit is not None:
            params += (limit,)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM coach_clients
                WHERE coach_id = ?
                  {where_status}
                ORDER BY assigned_at DESC, id DESC
                {limit_clause}
                """,
                params,
            ).fetchall()
        return [dict(row) for row in rows]

    def list_for_client(self, client_id: int, status: str | None = None) -> list[dict]:
        where_status = "AND status = ?" if status else ""
        params: tuple = (client_id, status) if status else (client_id,)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM coach_clients
                WHERE client_id = ?
                  {where_status}
                ORDER BY assigned_at DESC, id DESC
                """,
                params,
            ).fetchall()
        return [dict(row) for row in rows]

    def transition(
        self,
        relationship_id: int,
        from_status: str,
        to_status: str,
        reason: str | None = None,
    ) -> bool:
        now = utc_now_iso()
        accepted_at = now if from_status == "pending" and to_status == "active" else None
        terminated_at = now if to_status == "terminated" else None
        with self._connect() as conn:
            result = conn.execute(
                """
                UPDATE coach_clients
                SET status = ?,
                    accepted_at = COALESCE(?, accepted_at),
                    terminated_at = COALESCE(?, terminated_at),
                    termination_reason = COALESCE(?, termination_reason),
                    updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (to_status, accepted_at, terminated_at, reason, now, relationship_id, from_status),
            )
            return result.rowcount > 0

    def delete_pending(self, relationship_id: int) -> bool:
        with self._connect() as conn:
            result = conn.execute(
                "DELETE FROM coach_clients WHERE id = ? AND status = 'pending'",
                (relationship_id,),
            )
            return result.rowcount > 0


class NoteRepository(_Repository):
    def create(
        self,
        coach_id: int,
        client_id: int,
        content: str,
        title: str | None = None,
        category: str = "general",
        is_pinned: bool = False,
    ) -> int:
        now = utc_now_iso()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO coach_notes (coach_id, client_id, title, content, category, is_pinned, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (coach_id, client_id, title, content, category, 1 if is_pinned else 0, now, now),
            )
            return int(cursor.lastrowid)

    def list_for_client(
        self,
        coach_id: int,
        client_id: int,
        category: str | None = None,
        limit: int = 50,
    ) -> list[dict]:
        where_category = "AND category = ?" if category else ""
        params: tuple = (coach_id, client_id, category, limit) if category else (coach_id, client_id, limit)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM coach_notes
                WHERE coach_id = ? AND client_id = ?
                  {where_category}
                ORDER BY is_pinned DESC, created_at DESC, id DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
        return [dict(row) for row in rows]


class ExerciseRepository(_Repository):
    def create(
        self,
        name: str,
        primary_muscle: str | None = None,
        equipment: str | None = None,
        is_compound: bool = False,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO exercises (name, primary_muscle, equipment, is_compound)
                VALUES (?, ?, ?, ?)
                """,
                (name, primary_muscle, equipment, 1 if is_compound else 0),
            )
            return int(cursor.lastrowid)

    def find_by_name(self, fragment: str) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT *
                FROM exercises
                WHERE lower(name) LIKE lower(?)
                ORDER BY CASE WHEN lower(name) = lower(?) THEN 0 ELSE 1 END, length(name), id
                LIMIT 1
                """,
                (f"%{fragment.strip()}%", fragment.strip()),
            ).fetchone()
        return dict(row) if row else None

    def search(self, query: str, muscle_group: str | None = None, limit: int = 10) -> list[dict]:
        where_muscle = "AND lower(primary_muscle) = lower(?)" if muscle_group else ""
        params: tuple = (
            (f"%{query.strip()}%", muscle_group, limit) if muscle_group else (f"%{query.strip()}%", limit)
        )
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM exercises
                WHERE lower(name) LIKE lower(?)
                  {where_muscle}
                ORDER BY name ASC
                LIMIT ?
                """,
                params,
            ).fetchall()
        return [dict(row) for row in rows]

    def substitutes(self, exercise: dict, equipment: list[str] | None = None, limit: int = 5) -> list[dict]:
        where_equipment = f"AND equipment IN ({_placeholders(equipment)})" if equipment else ""
        params = [exercise["primary_muscle"], exercise["id"], *(equipment or []), limit]
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM exercises
                WHERE primary_muscle = ? AND id != ?
                  {where_equipment}
                ORDER BY is_compound DESC, name ASC
                LIMIT ?
                """,
                tuple(params),
            ).fetchall()
        return [dict(row) for row in rows]


class WorkoutRepository(_Repository):
    def create(
        self,
        user_id: int,
        name: str,
        status: str = "active",
        started_at: str | None = None,
        completed_at: str | None = None,
        duration: int | None = None,
        notes: str | None = None,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO workouts (user_id, name, status, started_at, completed_at, duration, notes)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (user_id, name, status, started_at or utc_now_iso(), completed_at, duration, notes),
            )
            return int(cursor.lastrowid)

    def get_active(self, user_id: int) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT *
                FROM workouts
                WHERE user_id = ? AND status = 'active'
                ORDER BY started_at DESC, id DESC
                LIMIT 1
                """,
                (user_id,),
            ).fetchone()
        return dict(row) if row else None

    def list_recent(self, user_id: int, limit: int, status: str | None = None) -> list[dict]:
        where_status = "AND status = ?" if status else ""
        params: tuple = (user_id, status, limit) if status else (user_id, limit)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM workouts
                WHERE user_id = ?
                  {where_status}
                ORDER BY COALESCE(completed_at, started_at) DESC, id DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
        return [dict(row) for row in rows]

    def list_since(self, user_id: int, since_iso: str) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM workouts
                WHERE user_id = ? AND started_at >= ?
                ORDER BY started_at DESC, id DESC
                """,
                (user_id, since_iso),
            ).fetchall()
        return [dict(row) for row in rows]

    def last_started_at(self, user_ids: list[int]) -> dict[int, str]:
        if not user_ids:
            return {}
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT user_id, MAX(started_at) AS last_started_at
                FROM workouts
                WHERE user_id IN ({_placeholders(user_ids)})
                GROUP BY user_id
                """,
                tuple(user_ids),
            ).fetchall()
        return {int(row["user_id"]): row["last_started_at"] for row in rows}

    def list_sets_for_workout(self, workout_id: int) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT s.*, e.name AS exercise_name
                FROM workout_sets s
                JOIN exercises e ON e.id = s.exercise_id
                WHERE s.workout_id = ?
                ORDER BY s.created_at DESC, s.id DESC
                """,
                (workout_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    def list_sets_for_exercise(self, user_id: int, exercise_id: int, limit: int) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM workout_sets
                WHERE user_id = ? AND exercise_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (user_id, exercise_id, limit),
            ).fetchall()
        return [dict(row) for row in rows]

    def get_set_by_key(self, user_id: int, idempotency_key: str) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM workout_sets WHERE user_id = ? AND idempotency_key = ?",
                (user_id, idempotency_key),
            ).fetchone()
        return dict(row) if row else None

    def add_set(
        self,
        workout_id: int,
        user_id: int,
        exercise_id: int,
        weight: float,
        weight_unit: str,
        reps: int,
        rpe: float | None = None,
        is_pr: bool = False,
        idempotency_key: str | None = None,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO workout_sets (
                    workout_id, user_id, exercise_id, weight, weight_unit, reps, rpe, is_pr, idempotency_key, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    workout_id,
                    user_id,
                    exercise_id,
                    weight,
                    weight_unit,
                    reps,
                    rpe,
                    1 if is_pr else 0,
                    idempotency_key,
                    utc_now_iso(),
                ),
            )
            return int(cursor.lastrowid)

    def volume_by_muscle_since(self, user_id: int, since_iso: str) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT COALESCE(e.primary_muscle, 'other') AS muscle_group,
                       COUNT(s.id) AS total_sets,
                       SUM(COALESCE(s.reps, 0)) AS total_reps,
                       SUM(COALESCE(s.weight, 0) * COALESCE(s.reps, 0)) AS total_volume
                FROM workout_sets s
                JOIN exercises e ON e.id = s.exercise_id
                WHERE s.user_id = ? AND s.created_at >= ?
                GROUP BY muscle_group
                ORDER BY total_volume DESC
                """,
                (user_id, since_iso),
            ).fetchall()
        return [dict(row) for row in rows]


class PersonalRecordRepository(_Repository):
    def create(
        self,
        user_id: int,
        exercise_id: int,
        weight: float,
        reps: int,
        achieved_at: str | None = None,
    ) -> int:
        # Epley estimate
        estimated_1rm = round(weight * (1 + reps / 30), 1) if reps > 1 else weight
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO personal_records (user_id, exercise_id, weight, reps, estimated_1rm, achieved_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, exercise_id, weight, reps, estimated_1rm, achieved_at or utc_now_iso()),
            )
            return int(cursor.lastrowid)

    def best_for_exercise(self, user_id: int, exercise_id: int) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT *
                FROM personal_records
                WHERE user_id = ? AND exercise_id = ?
                ORDER BY estimated_1rm DESC, id DESC
                LIMIT 1
                """,
                (user_id, exercise_id),
            ).fetchone()
        return dict(row) if row else None

    def list_for_user(self, user_id: int, exercise_id: int | None = None, limit: int = 20) -> list[dict]:
        where_exercise = "AND p.exercise_id = ?" if exercise_id is not None else ""
        params: tuple = (user_id, exercise_id, limit) if exercise_id is not None else (user_id, limit)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT p.*, e.name AS exercise_name
                FROM personal_records p
                JOIN exercises e ON e.id = p.exercise_id
                WHERE p.user_id = ?
                  {where_exercise}
                ORDER BY p.achieved_at DESC, p.id DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
        return [dict(row) for row in rows]


class ProgramRepository(_Repository):
    def create(
        self,
        name: str,
        user_id: int | None = None,
        description: str | None = None,
        program_type: str = "strength",
        duration_weeks: int = 4,
        days_per_week: int = 3,
        primary_goal: str | None = None,
        status: str = "draft",
        is_template: bool = False,
        start_date: str | None = None,
        adherence_percent: float | None = None,
        total_workouts_completed: int = 0,
        total_workouts_scheduled: int = 0,
        completed_weeks: int = 0,
        current_week: int = 1,
        template_id: int | None = None,
        created_by_coach_id: int | None = None,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO training_programs (
                    user_id, name, description, program_type, duration_weeks, days_per_week, primary_goal,
                    status, is_template, start_date, adherence_percent, total_workouts_completed,
                    total_workouts_scheduled, completed_weeks, current_week, template_id, created_by_coach_id
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    name,
                    description,
                    program_type,
                    duration_weeks,
                    days_per_week,
                    primary_goal,
                    status,
                    1 if is_template else 0,
                    start_date,
                    adherence_percent,
                    total_workouts_completed,
                    total_workouts_scheduled,
                    completed_weeks,
                    current_week,
                    template_id,
                    created_by_coach_id,
                ),
            )
            return int(cursor.lastrowid)

    def get(self, program_id: int) -> dict | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM training_programs WHERE id = ?", (program_id,)).fetchone()
        return dict(row) if row else None

    def get_active(self, user_id: int) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT *
                FROM training_programs
                WHERE user_id = ? AND status = 'active' AND is_template = 0
                ORDER BY id DESC
                LIMIT 1
                """,
                (user_id,),
            ).fetchone()
        return dict(row) if row else None

    def get_template(self, template_id: int) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM training_programs WHERE id = ? AND is_template = 1",
                (template_id,),
            ).fetchone()
        return dict(row) if row else None

    def list_templates(self, program_type: str | None = None, limit: int = 20) -> list[dict]:
        where_type = "AND program_type = ?" if program_type else ""
        params: tuple = (program_type, limit) if program_type else (limit,)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM training_programs
                WHERE is_template = 1
                  {where_type}
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
        return [dict(row) for row in rows]

    def list_active_for_users(self, user_ids: list[int]) -> list[dict]:
        if not user_ids:
            return []
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM training_programs
                WHERE status = 'active' AND is_template = 0
                  AND user_id IN ({_placeholders(user_ids)})
                ORDER BY user_id, id DESC
                """,
                tuple(user_ids),
            ).fetchall()
        return [dict(row) for row in rows]


class ReadinessRepository(_Repository):
    def create(
        self,
        user_id: int,
        date: str,
        overall_score: int,
        sleep_quality: int | None = None,
        energy_level: int | None = None,
        motivation: int | None = None,
        soreness: int | None = None,
        stress: int | None = None,
        notes: str | None = None,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO readiness_scores (
                    user_id, date, overall_score, sleep_quality, energy_level, motivation, soreness, stress, notes
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (user_id, date, overall_score, sleep_quality, energy_level, motivation, soreness, stress, notes),
            )
            return int(cursor.lastrowid)

    def list_since(self, user_id: int, since_date: str) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM readiness_scores
                WHERE user_id = ? AND date >= ?
                ORDER BY date DESC, id DESC
                """,
                (user_id, since_date),
            ).fetchall()
        return [dict(row) for row in rows]

    def list_recent(self, user_id: int, limit: int) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM readiness_scores
                WHERE user_id = ?
                ORDER BY date DESC, id DESC
                LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()
        return [dict(row) for row in rows]


class HealthMetricsRepository(_Repository):
    def upsert(
        self,
        user_id: int,
        date: str,
        steps: int | None = None,
        active_minutes: int | None = None,
        resting_heart_rate: int | None = None,
        heart_rate_variability: float | None = None,
        sleep_hours: float | None = None,
        recovery_score: int | None = None,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO daily_health_metrics (
                    user_id, date, steps, active_minutes, resting_heart_rate,
                    heart_rate_variability, sleep_hours, recovery_score
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, date) DO UPDATE SET
                    steps = excluded.steps,
                    active_minutes = excluded.active_minutes,
                    resting_heart_rate = excluded.resting_heart_rate,
                    heart_rate_variability = excluded.heart_rate_variability,
                    sleep_hours = excluded.sleep_hours,
                    recovery_score = excluded.recovery_score
                """,
                (
                    user_id,
                    date,
                    steps,
                    active_minutes,
                    resting_heart_rate,
                    heart_rate_variability,
                    sleep_hours,
                    recovery_score,
                ),
            )

    def list_since(self, user_id: int, since_date: str) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM daily_health_metrics
                WHERE user_id = ? AND date >= ?
                ORDER BY date DESC
                """,
                (user_id, since_date),
            ).fetchall()
        return [dict(row) for row in rows]


class ConversationRepository(_Repository):
    def create(self, user_id: int, conversation_type: str = "general", title: str | None = None) -> int:
        now = utc_now_iso()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO conversations (user_id, conversation_type, title, message_count, created_at, updated_at)
                VALUES (?, ?, ?, 0, ?, ?)
                """,
                (user_id, conversation_type, title, now, now),
            )
            return int(cursor.lastrowid)

    def get(self, conversation_id: int) -> dict | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM conversations WHERE id = ?", (conversation_id,)).fetchone()
        return dict(row) if row else None

    def list_for_users(self, user_ids: list[int], conversation_type: str, limit: int) -> list[dict]:
        if not user_ids:
            return []
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM conversations
                WHERE conversation_type = ?
                  AND user_id IN ({_placeholders(user_ids)})
                ORDER BY updated_at DESC, id DESC
                LIMIT ?
                """,
                (conversation_type, *user_ids, limit),
            ).fetchall()
        return [dict(row) for row in rows]

    def get_message_by_key(self, user_id: int, idempotency_key: str) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM messages WHERE user_id = ? AND idempotency_key = ?",
                (user_id, idempotency_key),
            ).fetchone()
        return dict(row) if row else None

    def add_message(
        self,
        conversation_id: int,
        user_id: int,
        role: str,
        content: str,
        idempotency_key: str | None = None,
    ) -> int:
        now = utc_now_iso()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO messages (conversation_id, user_id, role, content, idempotency_key, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (conversation_id, user_id, role, content, idempotency_key, now),
            )
            conn.execute(
                """
                UPDATE conversations
                SET message_count = message_count + 1, updated_at = ?
                WHERE id = ?
                """,
                (now, conversation_id),
            )
            return int(cursor.lastrowid)

    def list_messages(self, conversation_id: int, limit: int, before: str | None = None) -> list[dict]:
        where_before = "AND created_at < ?" if before else ""
        params: tuple = (conversation_id, before, limit) if before else (conversation_id, limit)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM messages
                WHERE conversation_id = ?
                  {where_before}
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
        return [dict(row) for row in rows]
