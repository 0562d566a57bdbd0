from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _bool_env(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() == "true"


@dataclass(frozen=True)
class Settings:
    db_path: Path = Path(os.getenv("COACH_AI_DB_PATH", "data/coach_ai.db"))
    export_dir: Path = Path(os.getenv("COACH_AI_EXPORT_DIR", "data/exports"))

    log_level: str = os.getenv("COACH_AI_LOG_LEVEL", "INFO").strip().upper()

    app_base_url: str = os.getenv("COACH_AI_APP_BASE_URL", "http://127.0.0.1:8000")
    session_secret: str = os.getenv("COACH_AI_SESSION_SECRET", "change-me-in-production")
    session_max_age_seconds: int = int(os.getenv("COACH_AI_SESSION_MAX_AGE_SECONDS", "86400"))

    client_list_limit: int = int(os.getenv("COACH_AI_CLIENT_LIST_LIMIT", "50"))

    # When false, TOOL_ERROR envelopes carry a generic message instead of the exception text.
    tool_error_details: bool = _bool_env("COACH_AI_TOOL_ERROR_DETAILS", "true")


settings = Settings()
