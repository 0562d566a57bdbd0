from __future__ import annotations

import asyncio
import json
import socket
from pathlib import Path
from typing import NoReturn

import typer

from .logging_setup import configure_logging
from .services.import_service import ClientImportError, export_clients, import_clients
from .services.relationship_service import (
    RelationshipError,
    accept_assignment,
    assign_client,
    terminate_relationship,
)
from .services.tenancy import CLIENT_STATUS_FILTERS, list_clients
from .store import Store
from .tools import Role, all_tool_factories, collect_tools, create_tool_context, run_tool, with_role_override
from .web.app import app as web_app
from .web.app import get_store, pwd_context

app = typer.Typer(help="coach-AI tool framework CLI")


def _port_is_busy(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(0.25)
        return sock.connect_ex((host, port)) == 0


def _store(ctx: typer.Context) -> Store:
    return ctx.obj["store"]


def _fail(message: str) -> NoReturn:
    typer.echo(message, err=True)
    raise typer.Exit(code=1)


@app.callback()
def main(
    ctx: typer.Context,
    db_path: Path | None = typer.Option(None, "--db-path", help="SQLite database file (defaults to COACH_AI_DB_PATH)"),
    log_level: str | None = typer.Option(None, "--log-level"),
) -> None:
    configure_logging(log_level.upper() if log_level else None)
    ctx.obj = {"store": Store(db_path)}


@app.command("init-db")
def init_db_command(ctx: typer.Context) -> None:
    store = _store(ctx).init()
    typer.echo(f"Database initialized at {store.db_path}")


@app.command("create-user")
def create_user_command(
    ctx: typer.Context,
    email: str = typer.Option(...),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
    name: str = typer.Option(""),
    tier: str = typer.Option("free", help="free, premium or coach"),
) -> None:
    store = _store(ctx).init()
    tier = tier.strip().lower()
    if tier not in {role.label for role in Role}:
        _fail(f"Unknown tier: {tier}")
    if len(password) < 8:
        _fail("Password must be at least 8 characters")
    if store.users.get_by_email(email):
        _fail(f"User already exists: {email}")

    user_id = store.users.create(email, pwd_context.hash(password))
    store.profiles.upsert(user_id, name=name.strip() or None, tier=tier)
    typer.echo(f"User created with id={user_id} tier={tier}")


@app.command("assign-client")
def assign_client_command(
    ctx: typer.Context,
    coach_id: int = typer.Option(...),
    client_email: str = typer.Option(...),
    notes: str = typer.Option(""),
) -> None:
    store = _store(ctx).init()
    client = store.users.get_by_email(client_email)
    if not client:
        _fail(f"No user with email {client_email}")
    try:
        relationship = assign_client(store, coach_id, client["id"], relationship_notes=notes or None)
    except RelationshipError as error:
        _fail(f"{error.code}: {error}")
    typer.echo(f"Relationship {relationship['id']} created with status={relationship['status']}")


@app.command("accept-assignment")
def accept_assignment_command(
    ctx: typer.Context,
    client_id: int = typer.Option(...),
    relationship_id: int = typer.Option(...),
) -> None:
    try:
        relationship = accept_assignment(_store(ctx).init(), client_id, relationship_id)
    except RelationshipError as error:
        _fail(f"{error.code}: {error}")
    typer.echo(f"Relationship {relationship['id']} is now {relationship['status']}")


@app.command("end-relationship")
def end_relationship_command(
    ctx: typer.Context,
    user_id: int = typer.Option(..., help="Coach or client ending the relationship"),
    relationship_id: int = typer.Option(...),
    reason: str = typer.Option(""),
) -> None:
    try:
        relationship = terminate_relationship(_store(ctx).init(), user_id, relationship_id, reason=reason or None)
    except RelationshipError as error:
        _fail(f"{error.code}: {error}")
    typer.echo(f"Relationship {relationship['id']} terminated")


@app.command("list-clients")
def list_clients_command(
    ctx: typer.Context,
    coach_id: int = typer.Option(...),
    status: str = typer.Option("active", help=", ".join(CLIENT_STATUS_FILTERS)),
) -> None:
    try:
        result = list_clients(_store(ctx).init(), coach_id, status=status)
    except ValueError as error:
        _fail(str(error))
    for client in result["clients"]:
        typer.echo(f"{client['relationship_id']}\t{client['client_id']}\t{client['status']}\t{client['name']}")
    typer.echo(f"Total: {result['total_count']}")


@app.command("import-clients")
def import_clients_command(
    ctx: typer.Context,
    coach_id: int = typer.Option(...),
    csv_path: Path = typer.Option(..., exists=True, readable=True),
) -> None:
    try:
        assigned, skipped = import_clients(_store(ctx).init(), coach_id, csv_path)
    except ClientImportError as error:
        _fail(str(error))
    typer.echo(f"Clients assigned: {assigned}, skipped: {skipped}")


@app.command("export-clients")
def export_clients_command(
    ctx: typer.Context,
    coach_id: int = typer.Option(...),
    output: Path | None = typer.Option(None),
    status: str = typer.Option("all"),
) -> None:
    try:
        file_path = export_clients(_store(ctx).init(), coach_id, output, status=status)
    except ValueError as error:
        _fail(str(error))
    typer.echo(f"Client list exported: {file_path}")


@app.command("list-tools")
def list_tools_command() -> None:
    for name, factory in sorted(all_tool_factories().items()):
        role = factory.definition.required_role
        typer.echo(f"{name}\t{role.label if role is not None else '-'}")


@app.command("call-tool")
def call_tool_command(
    ctx: typer.Context,
    name: str = typer.Argument(...),
    user_id: int = typer.Option(...),
    args: str = typer.Option("{}", "--args", help="JSON object with the tool arguments"),
    role: str | None = typer.Option(None, help="Override the role read from the profile"),
) -> None:
    try:
        arguments = json.loads(args)
    except json.JSONDecodeError as error:
        _fail(f"--args is not valid JSON: {error}")
    if not isinstance(arguments, dict):
        _fail("--args must be a JSON object")

    tool_ctx = create_tool_context(_store(ctx).init(), user_id)
    if role:
        tool_ctx = with_role_override(tool_ctx, Role.from_tier(role))
    tools = collect_tools(tool_ctx, all_tool_factories())
    result = asyncio.run(run_tool(tools, name, arguments))
    typer.echo(json.dumps(result, indent=2, default=str))
    if not result["success"]:
        raise typer.Exit(code=1)


@app.command("serve")
def serve_command(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(8000),
) -> None:
    import uvicorn

    if _port_is_busy(host, port):
        _fail(f"Port {port} is already in use. Choose a different --port.")

    store = _store(ctx).init()
    web_app.dependency_overrides[get_store] = lambda: store
    uvicorn.run(web_app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    app()
