from coach_ai.tools.base import is_tool_response, not_found_code, tool_error, tool_success


def test_success_envelope_carries_data_unchanged():
    data = {"workouts": [], "total_count": 0}
    result = tool_success(data)
    assert result == {"success": True, "data": data}
    assert result["data"] is data


def test_error_envelope_defaults_to_tool_error():
    assert tool_error("boom") == {"success": False, "error": {"code": "TOOL_ERROR", "message": "boom"}}
    assert tool_error("nope", "UNAUTHORIZED")["error"]["code"] == "UNAUTHORIZED"


def test_not_found_code_is_derived_from_resource():
    assert not_found_code("exercise") == "EXERCISE_NOT_FOUND"
    assert not_found_code("active workout") == "ACTIVE_WORKOUT_NOT_FOUND"


def test_is_tool_response_accepts_only_the_two_shapes():
    assert is_tool_response(tool_success(None))
    assert is_tool_response(tool_error("x", "CODE"))

    assert not is_tool_response({"success": True})
    assert not is_tool_response({"success": False, "error": "plain string"})
    assert not is_tool_response({"success": True, "data": 1, "error": {"code": "X", "message": "y"}})
    assert not is_tool_response({"ok": True})
    assert not is_tool_response(["success", "data"])
