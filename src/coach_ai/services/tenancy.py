"""Coach-client tenant authorization.

Only a relationship row with ``status = 'active'`` grants a coach access to a
client's data. Tenant-scoped tools call :func:`is_authorized` before reading or
writing anything that belongs to the client.
"""

from __future__ import annotations

from ..config import settings
from ..repositories import RELATIONSHIP_STATUSES
from ..store import Store

CLIENT_STATUS_FILTERS = ("all", *RELATIONSHIP_STATUSES)


def verify_relationship(store: Store, coach_id: int, client_id: int) -> dict | None:
    """Most recent relationship row for the pair, whatever its status."""
    return store.relationships.latest_for_pair(coach_id, client_id)


def is_authorized(store: Store, coach_id: int, client_id: int) -> bool:
    return store.relationships.exists_with_status(coach_id, client_id, "active")


def _relationship_rows(store: Store, coach_id: int, status: str, limit: int | None) -> list[dict]:
    if status not in CLIENT_STATUS_FILTERS:
        raise ValueError(f"Unsupported status filter: {status}")
    return store.relationships.list_for_coach(coach_id, status=None if status == "all" else status, limit=limit)


def list_clients(store: Store, coach_id: int, status: str = "active", limit: int | None = None) -> dict:
    """One page of the roster, capped at ``settings.client_list_limit`` unless a limit is given."""
    relationships = _relationship_rows(store, coach_id, status, limit or settings.client_list_limit)
    return _roster(store, relationships)


def all_clients(store: Store, coach_id: int, status: str = "active") -> list[dict]:
    """Every client in ``status``, uncapped; for exports and coach-wide analytics."""
    return _roster(store, _relationship_rows(store, coach_id, status, None))["clients"]


def _roster(store: Store, relationships: list[dict]) -> dict:
    if not relationships:
        return {"clients": [], "total_count": 0}

    profiles = store.profiles.list_by_users(sorted({row["client_id"] for row in relationships}))
    profile_map = {profile["user_id"]: profile for profile in profiles}

    clients = []
    for row in relationships:
        profile = profile_map.get(row["client_id"]) or {}
        clients.append(
            {
                "relationship_id": row["id"],
                "client_id": row["client_id"],
                "status": row["status"],
                "assigned_at": row["assigned_at"],
                "accepted_at": row["accepted_at"],
                "name": profile.get("name") or "Unknown",
                "experience_level": profile.get("experience_level"),
                "tier": profile.get("tier"),
            }
        )
    return {"clients": clients, "total_count": len(clients)}


def active_client_ids(store: Store, coach_id: int) -> list[int]:
    return [row["client_id"] for row in store.relationships.list_for_coach(coach_id, status="active")]
