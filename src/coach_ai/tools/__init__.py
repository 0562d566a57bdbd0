from .athlete_tools import ATHLETE_TOOLS
from .base import Role, ToolContext, is_tool_response, not_found_code, tool_error, tool_success
from .coach_analytics import ANALYTICS_TOOLS
from .coach_clients import CLIENT_TOOLS
from .coach_messaging import MESSAGING_TOOLS
from .coach_profile import PROFILE_TOOLS
from .coach_programs import PROGRAM_TOOLS
from .context import create_test_context, create_tool_context, with_role_override
from .permissions import check_permission, has_permission
from .registry import (
    BoundTool,
    ToolDefinition,
    ToolFactory,
    collect_tools,
    create_tool,
    describe_tools,
    factories_by_name,
    normalize_tool_name,
    run_tool,
)

COACH_TOOLS = factories_by_name(
    *CLIENT_TOOLS.values(),
    *PROGRAM_TOOLS.values(),
    *MESSAGING_TOOLS.values(),
    *ANALYTICS_TOOLS.values(),
    *PROFILE_TOOLS.values(),
)


def all_tool_factories() -> dict[str, ToolFactory]:
    return factories_by_name(*ATHLETE_TOOLS.values(), *COACH_TOOLS.values())


__all__ = [
    "ATHLETE_TOOLS",
    "COACH_TOOLS",
    "all_tool_factories",
    "Role",
    "ToolContext",
    "ToolDefinition",
    "ToolFactory",
    "BoundTool",
    "create_tool",
    "collect_tools",
    "describe_tools",
    "run_tool",
    "factories_by_name",
    "normalize_tool_name",
    "check_permission",
    "has_permission",
    "create_tool_context",
    "create_test_context",
    "with_role_override",
    "tool_success",
    "tool_error",
    "not_found_code",
    "is_tool_response",
]
