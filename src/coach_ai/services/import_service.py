from __future__ import annotations

import logging
import re
import unicodedata
from datetime import datetime
from pathlib import Path
from typing import Any

from ..config import settings
from ..store import Store
from ..tools.base import Role
from .csv_io import read_csv_rows, write_csv_rows
from .relationship_service import RelationshipError, assign_client
from .tenancy import all_clients

logger = logging.getLogger(__name__)

ALIASES = {
    "email": ["email", "e-mail", "mail", "client_email", "email address"],
    "name": ["name", "full_name", "client", "client_name", "athlete"],
    "notes": ["notes", "note", "relationship_notes", "comment"],
}

EXPORT_FIELDS = ["relationship_id", "client_id", "email", "name", "status", "assigned_at", "accepted_at", "tier"]


class ClientImportError(ValueError):
    pass


def _normalize_key(value: str) -> str:
    text = str(value).strip().lower()
    text = unicodedata.normalize("NFKD", text)
    text = "".join(char for char in text if not unicodedata.combining(char))
    text = re.sub(r"[^a-z0-9]+", " ", text)
    return " ".join(text.split())


def _first_present(row: dict[str, Any], keys: list[str]) -> str:
    lowered = {_normalize_key(str(k)): v for k, v in row.items() if k is not None}
    for key in keys:
        value = lowered.get(_normalize_key(key))
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def _has_column(rows: list[dict], keys: list[str]) -> bool:
    if not rows:
        return True
    headers = {_normalize_key(str(k)) for k in rows[0] if k is not None}
    return any(_normalize_key(key) in headers for key in keys)


def import_clients(store: Store, coach_id: int, csv_path: Path) -> tuple[int, int]:
    """Assign every known user listed in the CSV as a pending client of the coach.

    Rows without an email, with an unknown email, or for a client who already
    has an open relationship with this coach are skipped.
    """
    if Role.from_tier(store.profiles.get_tier(coach_id)) < Role.COACH:
        raise ClientImportError(f"User {coach_id} is not a coach")

    rows = read_csv_rows(csv_path)
    if not _has_column(rows, ALIASES["email"]):
        raise ClientImportError(f"{csv_path} has no email column")

    assigned = 0
    skipped = 0
    seen: set[str] = set()
    for row in rows:
        email = _first_present(row, ALIASES["email"]).lower()
        if not email or email in seen:
            skipped += 1
            continue
        seen.add(email)

        user = store.users.get_by_email(email)
        if not user:
            logger.info("Skipping %s: no such user", email)
            skipped += 1
            continue

        try:
            assign_client(
                store,
                coach_id,
                user["id"],
                assigned_by=coach_id,
                relationship_notes=_first_present(row, ALIASES["notes"]) or None,
            )
        except RelationshipError as exc:
            logger.info("Skipping %s: %s", email, exc)
            skipped += 1
            continue
        assigned += 1

    logger.info("Client import for coach %s: %s assigned, %s skipped", coach_id, assigned, skipped)
    return assigned, skipped


def export_clients(store: Store, coach_id: int, csv_path: Path | None = None, status: str = "all") -> Path:
    clients = all_clients(store, coach_id, status=status)
    for client in clients:
        user = store.users.get_by_id(client["client_id"]) or {}
        client["email"] = user.get("email", "")

    if csv_path is None:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        csv_path = settings.export_dir / f"clients_{coach_id}_{stamp}.csv"
    return write_csv_rows(csv_path, clients, EXPORT_FIELDS)
