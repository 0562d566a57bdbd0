from __future__ import annotations

from pathlib import Path

from .config import settings
from .db import init_db
from .repositories import (
    ConversationRepository,
    ExerciseRepository,
    HealthMetricsRepository,
    NoteRepository,
    PersonalRecordRepository,
    ProfileRepository,
    ProgramRepository,
    ReadinessRepository,
    RelationshipRepository,
    UserRepository,
    WorkoutRepository,
)


class Store:
    """Data-store handle passed to tools through ``ToolContext``.

    Every repository opens its own sqlite connection per operation, so a single
    ``Store`` can be shared by concurrent tool calls without extra locking.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = Path(db_path or settings.db_path)
        self.users = UserRepository(self.db_path)
        self.profiles = ProfileRepository(self.db_path)
        self.relationships = RelationshipRepository(self.db_path)
        self.notes = NoteRepository(self.db_path)
        self.exercises = ExerciseRepository(self.db_path)
        self.workouts = WorkoutRepository(self.db_path)
        self.personal_records = PersonalRecordRepository(self.db_path)
        self.programs = ProgramRepository(self.db_path)
        self.readiness = ReadinessRepository(self.db_path)
        self.health = HealthMetricsRepository(self.db_path)
        self.conversations = ConversationRepository(self.db_path)

    def init(self) -> "Store":
        init_db(self.db_path)
        return self

    def __repr__(self) -> str:
        return f"Store(db_path={str(self.db_path)!r})"
