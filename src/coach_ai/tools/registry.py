"""Tool definitions, per-request binding and dispatch.

A tool is declared once at import time with :func:`create_tool`, which turns an
``async def execute(params, ctx)`` function into a :class:`ToolFactory`. For each
request the factories are applied to that request's :class:`ToolContext` by
:func:`collect_tools`, producing :class:`BoundTool` objects the agent runtime can
call by name.

Every call of a bound tool goes through the same three steps:

1. the raw arguments are validated against the tool's pydantic model, with
   declared defaults applied (failure -> ``INVALID_PARAMETERS``);
2. the permission gate compares the caller's role with the tool's
   ``required_role`` (failure -> ``PERMISSION_DENIED``);
3. the business logic runs and its envelope is returned unchanged.

Both checks are synchronous and run before the first ``await``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from ..config import settings
from .base import INVALID_PARAMETERS, TOOL_ERROR, TOOL_NOT_FOUND, Role, ToolContext, tool_error
from .permissions import check_permission

logger = logging.getLogger(__name__)

ToolExecute = Callable[[Any, ToolContext], Awaitable[dict[str, Any]]]


class NoParameters(BaseModel):
    """Parameter contract for tools that take no arguments."""


def normalize_tool_name(name: str) -> str:
    return name.strip().lower()


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        parts.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "Invalid parameters - " + "; ".join(parts)


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: type[BaseModel]
    execute: ToolExecute
    required_role: Role | None = None

    def input_schema(self) -> dict[str, Any]:
        return self.parameters.model_json_schema()


class BoundTool:
    """A tool definition closed over one caller's context."""

    def __init__(self, definition: ToolDefinition, ctx: ToolContext) -> None:
        self._definition = definition
        self._ctx = ctx

    @property
    def name(self) -> str:
        return self._definition.name

    @property
    def description(self) -> str:
        return self._definition.description

    @property
    def required_role(self) -> Role | None:
        return self._definition.required_role

    @property
    def context(self) -> ToolContext:
        return self._ctx

    def input_schema(self) -> dict[str, Any]:
        return self._definition.input_schema()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema(),
        }

    async def execute(self, arguments: Mapping[str, Any] | None = None) -> dict[str, Any]:
        definition = self._definition
        ctx = self._ctx

        try:
            params = definition.parameters.model_validate({} if arguments is None else arguments)
        except ValidationError as error:
            logger.info("Rejected arguments for %s: %s", definition.name, error.error_count())
            return tool_error(_format_validation_error(error), INVALID_PARAMETERS)

        denied = check_permission(definition.required_role, ctx.caller_role)
        if denied is not None:
            logger.info(
                "Denied %s for user %s (role=%s, required=%s)",
                definition.name,
                ctx.caller_id,
                ctx.caller_role.label,
                definition.required_role.label if definition.required_role is not None else None,
            )
            return denied

        try:
            return await definition.execute(params, ctx)
        except Exception as exc:
            logger.exception("Tool %s failed for user %s", definition.name, ctx.caller_id)
            message = (str(exc) or exc.__class__.__name__) if settings.tool_error_details else "Tool execution failed"
            return tool_error(message, TOOL_ERROR)

    def __repr__(self) -> str:
        return f"BoundTool(name={self.name!r}, caller_id={self._ctx.caller_id!r})"


class ToolFactory:
    """Callable produced by :func:`create_tool`: ``factory(ctx) -> BoundTool``."""

    def __init__(self, definition: ToolDefinition) -> None:
        self.definition = definition

    @property
    def name(self) -> str:
        return self.definition.name

    def __call__(self, ctx: ToolContext) -> BoundTool:
        return BoundTool(self.definition, ctx)

    def __repr__(self) -> str:
        return f"ToolFactory(name={self.name!r})"


def create_tool(
    *,
    name: str,
    description: str,
    parameters: type[BaseModel] = NoParameters,
    required_role: Role | None = None,
) -> Callable[[ToolExecute], ToolFactory]:
    """Declare a tool.

    Usage::

        @create_tool(name="get_user_profile", description="...")
        async def get_user_profile(params: NoParameters, ctx: ToolContext) -> dict:
            ...
    """

    def decorator(execute: ToolExecute) -> ToolFactory:
        return ToolFactory(
            ToolDefinition(
                name=normalize_tool_name(name),
                description=description,
                parameters=parameters,
                execute=execute,
                required_role=required_role,
            )
        )

    return decorator


def factories_by_name(*factories: ToolFactory) -> dict[str, ToolFactory]:
    collected: dict[str, ToolFactory] = {}
    for factory in factories:
        if factory.name in collected:
            raise ValueError(f"Duplicate tool name: {factory.name}")
        collected[factory.name] = factory
    return collected


def collect_tools(ctx: ToolContext, factories: Mapping[str, Callable[[ToolContext], BoundTool]]) -> dict[str, BoundTool]:
    return {name: factory(ctx) for name, factory in factories.items()}


def describe_tools(tools: Mapping[str, BoundTool]) -> list[dict[str, Any]]:
    return [tools[name].to_dict() for name in sorted(tools)]


async def run_tool(
    tools: Mapping[str, BoundTool],
    tool_name: str,
    arguments: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    tool = tools.get(tool_name) or tools.get(normalize_tool_name(tool_name))
    if tool is None:
        return tool_error(f"Unknown tool: {normalize_tool_name(tool_name)}", TOOL_NOT_FOUND)
    return await tool.execute(arguments)
