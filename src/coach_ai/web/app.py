from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, Literal

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, Field
from starlette.middleware.sessions import SessionMiddleware

from ..config import settings
from ..logging_setup import configure_logging
from ..services.relationship_service import (
    RelationshipError,
    accept_assignment,
    assign_client,
    deactivate_relationship,
    decline_assignment,
    resume_relationship,
    terminate_relationship,
    withdraw_assignment,
)
from ..services.tenancy import list_clients
from ..store import Store
from ..tools import Role, all_tool_factories, collect_tools, create_tool_context, describe_tools, run_tool


@lru_cache(maxsize=1)
def get_store() -> Store:
    return Store().init()


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    yield


app = FastAPI(title="coach-AI API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    max_age=settings.session_max_age_seconds,
)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_RELATIONSHIP_STATUS_CODES = {
    "RELATIONSHIP_NOT_FOUND": 404,
    "CLIENT_NOT_FOUND": 404,
    "FORBIDDEN": 403,
    "RELATIONSHIP_EXISTS": 409,
    "INVALID_TRANSITION": 409,
}


class EmailSignupPayload(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: str | None = Field(default=None, max_length=200)


class EmailSigninPayload(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)


class AssignClientPayload(BaseModel):
    client_email: EmailStr | None = None
    client_id: int | None = Field(default=None, ge=1)
    notes: str | None = Field(default=None, max_length=2000)


class TerminatePayload(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


def _relationship_http_error(error: RelationshipError) -> HTTPException:
    return HTTPException(
        status_code=_RELATIONSHIP_STATUS_CODES.get(error.code, 422),
        detail={"code": error.code, "message": str(error)},
    )


def _session_payload(store: Store, user: dict) -> dict:
    profile = store.profiles.get_by_user(user["id"]) or {}
    return {
        "id": user["id"],
        "email": user["email"],
        "name": profile.get("name") or user["email"],
        "tier": profile.get("tier") or Role.FREE.label,
    }


def require_user(request: Request) -> dict:
    user = request.session.get("user")
    if not user:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user


def require_coach(request: Request, store: Store) -> dict:
    user = require_user(request)
    # Read the tier from the store so a downgrade takes effect before the session expires.
    if Role.from_tier(store.profiles.get_tier(int(user["id"]))) < Role.COACH:
        raise HTTPException(status_code=403, detail="Coach tier required")
    return user


@app.get("/health")
def health() -> dict:
    return {"ok": True, "service": "coach-ai"}


@app.get("/api/me")
def me(request: Request) -> dict:
    user = request.session.get("user")
    return {"authenticated": bool(user), "user": user}


@app.post("/auth/email/signup")
def auth_email_signup(request: Request, payload: EmailSignupPayload, store: Store = Depends(get_store)) -> dict:
    email = payload.email.strip().lower()
    if store.users.get_by_email(email):
        raise HTTPException(status_code=409, detail="Email already exists")

    user_id = store.users.create(email=email, password_hash=pwd_context.hash(payload.password))
    store.profiles.upsert(user_id, name=(payload.name or "").strip() or None)
    request.session["user"] = _session_payload(store, store.users.get_by_id(user_id))
    return {"ok": True, "user": request.session["user"]}


@app.post("/auth/email/signin")
def auth_email_signin(request: Request, payload: EmailSigninPayload, store: Store = Depends(get_store)) -> dict:
    user = store.users.get_by_email(payload.email)
    if not user or not pwd_context.verify(payload.password, user.get("password_hash") or ""):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if pwd_context.needs_update(user["password_hash"]):
        store.users.update_password_hash(user["id"], pwd_context.hash(payload.password))

    request.session["user"] = _session_payload(store, user)
    return {"ok": True, "user": request.session["user"]}


@app.post("/auth/logout")
def auth_logout(request: Request) -> dict:
    request.session.clear()
    return {"ok": True}


@app.get("/api/tools")
def list_tools(request: Request, store: Store = Depends(get_store)) -> dict:
    user = require_user(request)
    ctx = create_tool_context(store, int(user["id"]))
    tools = collect_tools(ctx, all_tool_factories())
    return {"role": ctx.caller_role.label, "tools": describe_tools(tools)}


@app.post("/api/tools/{tool_name}")
async def call_tool(
    tool_name: str,
    request: Request,
    arguments: dict[str, Any] | None = Body(default=None),
    store: Store = Depends(get_store),
) -> dict:
    user = require_user(request)
    # The role is recomputed from the profile on every call, never taken from the session.
    ctx = create_tool_context(store, int(user["id"]))
    tools = collect_tools(ctx, all_tool_factories())
    return await run_tool(tools, tool_name, arguments)


@app.get("/api/coach/clients")
def coach_clients(
    request: Request,
    status: Literal["all", "pending", "active", "inactive", "terminated"] = "active",
    limit: int | None = None,
    store: Store = Depends(get_store),
) -> dict:
    user = require_coach(request, store)
    return list_clients(store, int(user["id"]), status=status, limit=limit)


@app.post("/api/coach/clients")
def coach_assign_client(request: Request, payload: AssignClientPayload, store: Store = Depends(get_store)) -> dict:
    user = require_coach(request, store)
    coach_id = int(user["id"])

    client_id = payload.client_id
    if payload.client_email:
        client = store.users.get_by_email(payload.client_email)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")
        client_id = client["id"]
    if client_id is None:
        raise HTTPException(status_code=422, detail="client_email or client_id is required")

    try:
        relationship = assign_client(store, coach_id, client_id, assigned_by=coach_id, relationship_notes=payload.notes)
    except RelationshipError as error:
        raise _relationship_http_error(error) from error
    return {"ok": True, "relationship": relationship}


@app.post("/api/coach/relationships/{relationship_id}/{action}")
def coach_relationship_action(
    relationship_id: int,
    action: Literal["deactivate", "resume", "terminate", "withdraw"],
    request: Request,
    payload: TerminatePayload | None = None,
    store: Store = Depends(get_store),
) -> dict:
    user = require_coach(request, store)
    coach_id = int(user["id"])
    try:
        if action == "deactivate":
            relationship = deactivate_relationship(store, coach_id, relationship_id)
        elif action == "resume":
            relationship = resume_relationship(store, coach_id, relationship_id)
        elif action == "terminate":
            reason = payload.reason if payload else None
            relationship = terminate_relationship(store, coach_id, relationship_id, reason=reason)
        else:
            withdraw_assignment(store, coach_id, relationship_id)
            relationship = None
    except RelationshipError as error:
        raise _relationship_http_error(error) from error
    return {"ok": True, "relationship": relationship}


@app.get("/api/relationships")
def my_relationships(request: Request, status: str | None = None, store: Store = Depends(get_store)) -> dict:
    user = require_user(request)
    relationships = store.relationships.list_for_client(int(user["id"]), status=status)
    return {"relationships": relationships, "total_count": len(relationships)}


@app.post("/api/relationships/{relationship_id}/{action}")
def client_relationship_action(
    relationship_id: int,
    action: Literal["accept", "decline", "terminate"],
    request: Request,
    payload: TerminatePayload | None = None,
    store: Store = Depends(get_store),
) -> dict:
    user = require_user(request)
    client_id = int(user["id"])
    try:
        if action == "accept":
            relationship = accept_assignment(store, client_id, relationship_id)
        elif action == "decline":
            decline_assignment(store, client_id, relationship_id)
            relationship = None
        else:
            reason = payload.reason if payload else None
            relationship = terminate_relationship(store, client_id, relationship_id, reason=reason)
    except RelationshipError as error:
        raise _relationship_http_error(error) from error
    return {"ok": True, "relationship": relationship}
