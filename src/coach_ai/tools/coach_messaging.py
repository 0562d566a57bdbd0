from __future__ import annotations

import sqlite3
from datetime import timezone

from dateutil import parser
from pydantic import BaseModel, Field, field_validator

from ..services.tenancy import active_client_ids
from .base import Role, ToolContext, not_found_code, tool_error, tool_success
from .coach_common import ClientScopedParams, client_access_error
from .registry import create_tool, factories_by_name

COACH_CONVERSATION = "coach"


def _conversation_summary(row: dict) -> dict:
    return {
        "id": row["id"],
        "client_id": row["user_id"],
        "title": row["title"],
        "message_count": row["message_count"],
        "last_message_at": row["updated_at"],
        "is_archived": bool(row["is_archived"]),
    }


def _duplicate_message(existing: dict) -> dict:
    return tool_success(
        {
            "message_id": existing["id"],
            "conversation_id": existing["conversation_id"],
            "duplicate": True,
        }
    )


class ClientConversationsParams(BaseModel):
    client_id: int | None = Field(default=None, ge=1, description="Filter by specific client")
    limit: int = Field(default=20, ge=1, le=50)


@create_tool(
    name="get_client_conversations",
    description="List coach conversations with one client, or with all active clients.",
    parameters=ClientConversationsParams,
    required_role=Role.COACH,
)
async def get_client_conversations(params: ClientConversationsParams, ctx: ToolContext) -> dict:
    if params.client_id is not None:
        denied = client_access_error(ctx, params.client_id)
        if denied:
            return denied
        client_ids = [params.client_id]
    else:
        client_ids = active_client_ids(ctx.store, ctx.caller_id)

    rows = ctx.store.conversations.list_for_users(client_ids, COACH_CONVERSATION, params.limit)
    return tool_success(
        {
            "conversations": [_conversation_summary(row) for row in rows],
            "total_count": len(rows),
        }
    )


class ConversationMessagesParams(BaseModel):
    conversation_id: int = Field(ge=1, description="Conversation ID")
    limit: int = Field(default=50, ge=1, le=100)
    before: str | None = Field(default=None, description="Only messages created before this timestamp")

    @field_validator("before")
    @classmethod
    def _normalize_before(cls, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            moment = parser.isoparse(value)
        except (ValueError, OverflowError) as exc:
            raise ValueError(f"Expected an ISO 8601 timestamp, got {value!r}") from exc
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(timezone.utc).isoformat()


@create_tool(
    name="get_conversation_messages",
    description="Get messages of one conversation in chronological order.",
    parameters=ConversationMessagesParams,
    required_role=Role.COACH,
)
async def get_conversation_messages(params: ConversationMessagesParams, ctx: ToolContext) -> dict:
    conversation = ctx.store.conversations.get(params.conversation_id)
    if not conversation:
        return tool_error("Conversation not found", not_found_code("conversation"))

    denied = client_access_error(ctx, conversation["user_id"], "view this conversation")
    if denied:
        return denied

    rows = ctx.store.conversations.list_messages(params.conversation_id, params.limit, before=params.before)
    return tool_success(
        {
            "conversation_id": params.conversation_id,
            "messages": [
                {
                    "id": row["id"],
                    "role": row["role"],
                    "content": row["content"],
                    "created_at": row["created_at"],
                }
                for row in reversed(rows)
            ],
        }
    )


class SendMessageParams(ClientScopedParams):
    message: str = Field(min_length=1, max_length=5000, description="Message content")
    conversation_id: int | None = Field(default=None, ge=1, description="Existing conversation ID")
    idempotency_key: str | None = Field(
        default=None,
        min_length=1,
        max_length=100,
        description="Client-chosen key; repeating a call with the same key returns the original message",
    )


@create_tool(
    name="send_message_to_client",
    description="Send a message to a client, starting a new coach conversation unless one is given.",
    parameters=SendMessageParams,
    required_role=Role.COACH,
)
async def send_message_to_client(params: SendMessageParams, ctx: ToolContext) -> dict:
    denied = client_access_error(ctx, params.client_id, "message this client")
    if denied:
        return denied

    store = ctx.store
    if params.idempotency_key:
        existing = store.conversations.get_message_by_key(ctx.caller_id, params.idempotency_key)
        if existing:
            return _duplicate_message(existing)

    conversation_id = params.conversation_id
    if conversation_id is not None:
        conversation = store.conversations.get(conversation_id)
        if not conversation or conversation["user_id"] != params.client_id:
            return tool_error("Conversation not found", not_found_code("conversation"))
    else:
        conversation_id = store.conversations.create(params.client_id, COACH_CONVERSATION, title="Coach Message")

    # Coach messages appear with the assistant role in the client's thread.
    try:
        message_id = store.conversations.add_message(
            conversation_id,
            ctx.caller_id,
            "assistant",
            params.message,
            idempotency_key=params.idempotency_key,
        )
    except sqlite3.IntegrityError:
        existing = params.idempotency_key and store.conversations.get_message_by_key(
            ctx.caller_id, params.idempotency_key
        )
        if not existing:
            raise
        return _duplicate_message(existing)

    return tool_success({"message_id": message_id, "conversation_id": conversation_id, "duplicate": False})


MESSAGING_TOOLS = factories_by_name(
    get_client_conversations,
    get_conversation_messages,
    send_message_to_client,
)
