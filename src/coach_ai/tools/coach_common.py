from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

from ..services.tenancy import is_authorized
from .base import UNAUTHORIZED, ToolContext, tool_error

logger = logging.getLogger(__name__)


class ClientScopedParams(BaseModel):
    client_id: int = Field(ge=1, description="Client user ID")


def client_access_error(ctx: ToolContext, client_id: int, action: str = "view this client") -> dict[str, Any] | None:
    """UNAUTHORIZED envelope unless the caller has an active relationship with the client."""
    if is_authorized(ctx.store, ctx.caller_id, client_id):
        return None
    logger.info("Coach %s has no active relationship with client %s", ctx.caller_id, client_id)
    return tool_error(f"Not authorized to {action}", UNAUTHORIZED)
