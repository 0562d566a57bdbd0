from __future__ import annotations

import sqlite3
from pathlib import Path

from .config import settings


def get_connection(db_path: Path | None = None) -> sqlite3.Connection:
    path = Path(db_path or settings.db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: Path | None = None) -> None:
    with get_connection(db_path) as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS user_profiles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL UNIQUE,
                name TEXT,
                experience_level TEXT NOT NULL DEFAULT 'beginner',
                goals_json TEXT NOT NULL DEFAULT '[]',
                training_frequency TEXT,
                preferred_equipment_json TEXT NOT NULL DEFAULT '[]',
                favorite_exercises_json TEXT NOT NULL DEFAULT '[]',
                exercises_to_avoid_json TEXT NOT NULL DEFAULT '[]',
                injuries TEXT,
                tier TEXT NOT NULL DEFAULT 'free',
                theme TEXT NOT NULL DEFAULT 'auto',
                preferred_weight_unit TEXT NOT NULL DEFAULT 'lbs',
                notifications_enabled INTEGER NOT NULL DEFAULT 1,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS coach_clients (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                coach_id INTEGER NOT NULL,
                client_id INTEGER NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'active', 'inactive', 'terminated')),
                assigned_at TEXT NOT NULL,
                assigned_by INTEGER,
                accepted_at TEXT,
                terminated_at TEXT,
                termination_reason TEXT,
                relationship_notes TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY(coach_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY(client_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY(assigned_by) REFERENCES users(id) ON DELETE SET NULL
            );

            CREATE INDEX IF NOT EXISTS idx_coach_clients_pair
                ON coach_clients (coach_id, client_id, status);

            -- At most one open relationship per pair; terminated rows stay as history.
            CREATE UNIQUE INDEX IF NOT EXISTS uq_coach_clients_open
                ON coach_clients (coach_id, client_id) WHERE status != 'terminated';

            CREATE TABLE IF NOT EXISTS coach_notes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                coach_id INTEGER NOT NULL,
                client_id INTEGER NOT NULL,
                title TEXT,
                content TEXT NOT NULL,
                category TEXT NOT NULL DEFAULT 'general',
                is_pinned INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY(coach_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY(client_id) REFERENCES users(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS exercises (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                primary_muscle TEXT,
                equipment TEXT,
                is_compound INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS workouts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                name TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                started_at TEXT NOT NULL,
                completed_at TEXT,
                duration INTEGER,
                notes TEXT,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS workout_sets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workout_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                exercise_id INTEGER NOT NULL,
                weight REAL,
                weight_unit TEXT NOT NULL DEFAULT 'lbs',
                reps INTEGER,
                rpe REAL,
                is_pr INTEGER NOT NULL DEFAULT 0,
                idempotency_key TEXT,
                created_at TEXT NOT NULL,
                UNIQUE(user_id, idempotency_key),
                FOREIGN KEY(workout_id) REFERENCES workouts(id) ON DELETE CASCADE,
                FOREIGN KEY(exercise_id) REFERENCES exercises(id)
            );

            CREATE TABLE IF NOT EXISTS personal_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                exercise_id INTEGER NOT NULL,
                weight REAL NOT NULL,
                reps INTEGER NOT NULL,
                estimated_1rm REAL,
                achieved_at TEXT NOT NULL,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY(exercise_id) REFERENCES exercises(id)
            );

            CREATE TABLE IF NOT EXISTS training_programs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER,
                name TEXT NOT NULL,
                description TEXT,
                program_type TEXT NOT NULL DEFAULT 'strength',
                duration_weeks INTEGER NOT NULL DEFAULT 4,
                days_per_week INTEGER NOT NULL DEFAULT 3,
                primary_goal TEXT,
                status TEXT NOT NULL DEFAULT 'draft',
                is_template INTEGER NOT NULL DEFAULT 0,
                current_week INTEGER NOT NULL DEFAULT 1,
                current_day INTEGER NOT NULL DEFAULT 1,
                start_date TEXT,
                end_date TEXT,
                adherence_percent REAL,
                total_workouts_completed INTEGER NOT NULL DEFAULT 0,
                total_workouts_scheduled INTEGER NOT NULL DEFAULT 0,
                completed_weeks INTEGER NOT NULL DEFAULT 0,
                template_id INTEGER,
                created_by_coach_id INTEGER,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY(template_id) REFERENCES training_programs(id) ON DELETE SET NULL
            );

            CREATE TABLE IF NOT EXISTS readiness_scores (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                date TEXT NOT NULL,
                overall_score INTEGER,
                sleep_quality INTEGER,
                energy_level INTEGER,
                motivation INTEGER,
                soreness INTEGER,
                stress INTEGER,
                notes TEXT,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS daily_health_metrics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                date TEXT NOT NULL,
                steps INTEGER,
                active_minutes INTEGER,
                resting_heart_rate INTEGER,
                heart_rate_variability REAL,
                sleep_hours REAL,
                recovery_score INTEGER,
                UNIQUE(user_id, date),
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS conversations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                conversation_type TEXT NOT NULL DEFAULT 'general',
                title TEXT,
                message_count INTEGER NOT NULL DEFAULT 0,
                is_archived INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                idempotency_key TEXT,
                created_at TEXT NOT NULL,
                UNIQUE(user_id, idempotency_key),
                FOREIGN KEY(conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
            );
            """
        )
