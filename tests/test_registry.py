import asyncio
import re
from dataclasses import replace

import pytest
from pydantic import BaseModel, Field

from coach_ai.config import settings
from coach_ai.tools import ATHLETE_TOOLS, COACH_TOOLS, all_tool_factories
from coach_ai.tools.base import Role, ToolContext, tool_error, tool_success
from coach_ai.tools.registry import (
    BoundTool,
    ToolFactory,
    collect_tools,
    create_tool,
    describe_tools,
    factories_by_name,
    run_tool,
)


class EchoParams(BaseModel):
    text: str = Field(min_length=1)
    repeat: int = Field(default=1, ge=1, le=3)


def make_echo(calls, required_role=None, name="echo"):
    @create_tool(name=name, description="Echo text back", parameters=EchoParams, required_role=required_role)
    async def echo(params, ctx):
        calls.append(params)
        return tool_success({"text": params.text * params.repeat, "caller_id": ctx.caller_id})

    return echo


def context(role=Role.FREE, caller_id=1):
    # No store: nothing below touches the data layer.
    return ToolContext(store=None, caller_id=caller_id, caller_role=role)


def test_create_tool_returns_factory_without_running_logic():
    calls = []
    factory = make_echo(calls)
    assert isinstance(factory, ToolFactory)
    assert factory.name == "echo"

    bound = factory(context())
    assert isinstance(bound, BoundTool)
    assert bound.context.caller_id == 1
    assert calls == []


@pytest.mark.asyncio
async def test_declared_defaults_are_applied_before_logic():
    calls = []
    result = await make_echo(calls)(context()).execute({"text": "hi"})

    assert result == {"success": True, "data": {"text": "hi", "caller_id": 1}}
    assert calls[0].repeat == 1


@pytest.mark.asyncio
async def test_missing_required_field_never_reaches_logic():
    calls = []
    tool = make_echo(calls)(context())

    result = await tool.execute({})

    assert result["success"] is False
    assert result["error"]["code"] == "INVALID_PARAMETERS"
    assert "text" in result["error"]["message"]
    assert calls == []


@pytest.mark.asyncio
async def test_out_of_range_value_is_a_contract_error():
    calls = []
    result = await make_echo(calls)(context()).execute({"text": "hi", "repeat": 9})
    assert result["error"]["code"] == "INVALID_PARAMETERS"
    assert calls == []


@pytest.mark.asyncio
async def test_low_role_is_denied_before_logic():
    calls = []
    tool = make_echo(calls, required_role=Role.PREMIUM)(context(Role.FREE))

    result = await tool.execute({"text": "hi"})

    assert result["error"]["code"] == "PERMISSION_DENIED"
    assert "premium" in result["error"]["message"]
    assert "free" in result["error"]["message"]
    assert calls == []


@pytest.mark.asyncio
async def test_arguments_are_validated_before_the_role_gate():
    calls = []
    tool = make_echo(calls, required_role=Role.COACH)(context(Role.FREE))
    result = await tool.execute({"repeat": 2})
    assert result["error"]["code"] == "INVALID_PARAMETERS"


@pytest.mark.asyncio
async def test_sufficient_role_runs_logic():
    calls = []
    tool = make_echo(calls, required_role=Role.PREMIUM)(context(Role.COACH))
    result = await tool.execute({"text": "ab", "repeat": 2})
    assert result["data"]["text"] == "abab"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_logic_envelope_is_returned_unchanged():
    expected = tool_error("Workout not found", "WORKOUT_NOT_FOUND")

    @create_tool(name="lookup", description="Lookup")
    async def lookup(params, ctx):
        return expected

    assert await lookup(context()).execute() is expected


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_tool_error():
    @create_tool(name="explode", description="Always fails")
    async def explode(params, ctx):
        raise RuntimeError("database is locked")

    result = await explode(context()).execute()
    assert result == {"success": False, "error": {"code": "TOOL_ERROR", "message": "database is locked"}}


@pytest.mark.asyncio
async def test_exception_details_can_be_hidden(monkeypatch):
    monkeypatch.setattr("coach_ai.tools.registry.settings", replace(settings, tool_error_details=False))

    @create_tool(name="explode", description="Always fails")
    async def explode(params, ctx):
        raise RuntimeError("secret connection string")

    result = await explode(context()).execute()
    assert result["error"] == {"code": "TOOL_ERROR", "message": "Tool execution failed"}


@pytest.mark.asyncio
async def test_cancellation_propagates():
    @create_tool(name="slow", description="Cancelled mid-flight")
    async def slow(params, ctx):
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await slow(context()).execute()


@pytest.mark.asyncio
async def test_collected_tools_are_bound_per_context():
    calls = []
    factories = {"echo": make_echo(calls)}

    first = collect_tools(context(caller_id=1), factories)
    second = collect_tools(context(caller_id=2), factories)

    assert set(first) == set(second) == {"echo"}
    assert first["echo"] is not second["echo"]

    results = await asyncio.gather(
        first["echo"].execute({"text": "a"}),
        second["echo"].execute({"text": "b"}),
    )
    assert [r["data"]["caller_id"] for r in results] == [1, 2]


@pytest.mark.asyncio
async def test_collected_tools_gate_by_their_own_context_role():
    calls = []
    factories = {"echo": make_echo(calls, required_role=Role.PREMIUM)}

    free = collect_tools(context(Role.FREE), factories)
    premium = collect_tools(context(Role.PREMIUM), factories)

    assert (await free["echo"].execute({"text": "a"}))["error"]["code"] == "PERMISSION_DENIED"
    assert (await premium["echo"].execute({"text": "a"}))["success"] is True
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_concurrent_calls_do_not_share_state():
    calls = []
    tool = make_echo(calls)(context())
    results = await asyncio.gather(*(tool.execute({"text": str(i)}) for i in range(10)))
    assert [r["data"]["text"] for r in results] == [str(i) for i in range(10)]
    assert len(calls) == 10


@pytest.mark.asyncio
async def test_run_tool_dispatches_by_normalized_name():
    calls = []
    tools = collect_tools(context(), factories_by_name(make_echo(calls)))

    assert (await run_tool(tools, " ECHO ", {"text": "x"}))["success"] is True
    missing = await run_tool(tools, "delete_everything", {})
    assert missing["error"]["code"] == "TOOL_NOT_FOUND"


def test_duplicate_names_are_rejected():
    with pytest.raises(ValueError, match="Duplicate tool name: echo"):
        factories_by_name(make_echo([]), make_echo([]))


def test_catalog_lists_name_description_and_schema():
    tools = collect_tools(context(), factories_by_name(make_echo([], name="zeta"), make_echo([], name="alpha")))
    catalog = describe_tools(tools)

    assert [entry["name"] for entry in catalog] == ["alpha", "zeta"]
    schema = catalog[0]["input_schema"]
    assert set(catalog[0]) == {"name", "description", "input_schema"}
    assert schema["required"] == ["text"]
    assert schema["properties"]["repeat"]["default"] == 1


def test_full_catalog_names_are_unique_snake_case():
    factories = all_tool_factories()
    assert len(factories) == len(ATHLETE_TOOLS) + len(COACH_TOOLS)
    for name in factories:
        assert re.fullmatch(r"[a-z][a-z0-9_]*", name), name


def test_coach_catalog_requires_coach_role():
    for factory in COACH_TOOLS.values():
        assert factory.definition.required_role is Role.COACH


def test_premium_athlete_tools():
    premium = {name for name, f in ATHLETE_TOOLS.items() if f.definition.required_role is Role.PREMIUM}
    assert premium == {"get_program_progress", "get_health_metrics", "get_volume_analytics"}
