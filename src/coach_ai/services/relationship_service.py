from __future__ import annotations

import logging
import sqlite3

from ..store import Store
from ..tools.base import Role

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"active"}),
    "active": frozenset({"inactive", "terminated"}),
    "inactive": frozenset({"active", "terminated"}),
    "terminated": frozenset(),
}


class RelationshipError(ValueError):
    def __init__(self, message: str, code: str = "INVALID_RELATIONSHIP") -> None:
        super().__init__(message)
        self.code = code


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def _get_relationship(store: Store, relationship_id: int) -> dict:
    relationship = store.relationships.get(relationship_id)
    if not relationship:
        raise RelationshipError("Relationship not found", "RELATIONSHIP_NOT_FOUND")
    return relationship


def _require_party(relationship: dict, user_id: int, *, coach: bool = True, client: bool = True) -> None:
    allowed = set()
    if coach:
        allowed.add(relationship["coach_id"])
    if client:
        allowed.add(relationship["client_id"])
    if user_id not in allowed:
        raise RelationshipError("Not a party to this relationship", "FORBIDDEN")


def _transition(store: Store, relationship: dict, to_status: str, reason: str | None = None) -> dict:
    from_status = relationship["status"]
    if not can_transition(from_status, to_status):
        raise RelationshipError(
            f"Cannot move relationship from {from_status} to {to_status}",
            "INVALID_TRANSITION",
        )
    if not store.relationships.transition(relationship["id"], from_status, to_status, reason=reason):
        # Another request changed the row between our read and the conditional update.
        raise RelationshipError("Relationship status changed concurrently", "INVALID_TRANSITION")

    logger.info(
        "Relationship %s (coach=%s, client=%s) %s -> %s",
        relationship["id"],
        relationship["coach_id"],
        relationship["client_id"],
        from_status,
        to_status,
    )
    return store.relationships.get(relationship["id"])


def assign_client(
    store: Store,
    coach_id: int,
    client_id: int,
    assigned_by: int | None = None,
    relationship_notes: str | None = None,
) -> dict:
    if coach_id == client_id:
        raise RelationshipError("A coach cannot be their own client")
    if Role.from_tier(store.profiles.get_tier(coach_id)) < Role.COACH:
        raise RelationshipError("Only coaches can assign clients", "FORBIDDEN")
    if not store.users.get_by_id(client_id):
        raise RelationshipError("Client not found", "CLIENT_NOT_FOUND")

    existing = store.relationships.open_for_pair(coach_id, client_id)
    if existing:
        raise RelationshipError(
            f"Relationship already exists with status {existing['status']}",
            "RELATIONSHIP_EXISTS",
        )

    try:
        relationship_id = store.relationships.create(
            coach_id,
            client_id,
            assigned_by=assigned_by,
            relationship_notes=relationship_notes,
        )
    except sqlite3.IntegrityError as exc:
        # A concurrent assignment for the same pair won the open-relationship index.
        winner = store.relationships.open_for_pair(coach_id, client_id)
        if not winner:
            raise
        raise RelationshipError(
            f"Relationship already exists with status {winner['status']}",
            "RELATIONSHIP_EXISTS",
        ) from exc

    logger.info("Coach %s assigned client %s (relationship %s)", coach_id, client_id, relationship_id)
    return store.relationships.get(relationship_id)


def accept_assignment(store: Store, client_id: int, relationship_id: int) -> dict:
    relationship = _get_relationship(store, relationship_id)
    _require_party(relationship, client_id, coach=False)
    return _transition(store, relationship, "active")


def decline_assignment(store: Store, client_id: int, relationship_id: int) -> None:
    relationship = _get_relationship(store, relationship_id)
    _require_party(relationship, client_id, coach=False)
    _delete_pending(store, relationship)


def withdraw_assignment(store: Store, coach_id: int, relationship_id: int) -> None:
    relationship = _get_relationship(store, relationship_id)
    _require_party(relationship, coach_id, client=False)
    _delete_pending(store, relationship)


def _delete_pending(store: Store, relationship: dict) -> None:
    if relationship["status"] != "pending" or not store.relationships.delete_pending(relationship["id"]):
        raise RelationshipError("Only pending relationships can be removed", "INVALID_TRANSITION")
    logger.info("Pending relationship %s removed", relationship["id"])


def deactivate_relationship(store: Store, coach_id: int, relationship_id: int) -> dict:
    relationship = _get_relationship(store, relationship_id)
    _require_party(relationship, coach_id, client=False)
    return _transition(store, relationship, "inactive")


def resume_relationship(store: Store, coach_id: int, relationship_id: int) -> dict:
    relationship = _get_relationship(store, relationship_id)
    _require_party(relationship, coach_id, client=False)
    return _transition(store, relationship, "active")


def terminate_relationship(store: Store, user_id: int, relationship_id: int, reason: str | None = None) -> dict:
    relationship = _get_relationship(store, relationship_id)
    _require_party(relationship, user_id)
    return _transition(store, relationship, "terminated", reason=reason)
