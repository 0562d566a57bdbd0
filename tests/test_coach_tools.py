import pytest

from coach_ai.repositories import days_ago_iso
from coach_ai.services.relationship_service import (
    accept_assignment,
    assign_client,
    deactivate_relationship,
    terminate_relationship,
)


@pytest.mark.asyncio
async def test_free_caller_is_denied_coach_tools(call_tool, client_id):
    result = await call_tool(client_id, "get_client_list")
    assert result["error"]["code"] == "PERMISSION_DENIED"
    assert result["error"]["message"] == "This feature requires coach tier or higher. You are on free tier."


@pytest.mark.asyncio
async def test_client_access_follows_relationship_lifecycle(store, call_tool, coach_id, client_id):
    pending = assign_client(store, coach_id, client_id)
    result = await call_tool(coach_id, "get_client_profile", {"client_id": client_id})
    assert result["error"]["code"] == "UNAUTHORIZED"

    accept_assignment(store, client_id, pending["id"])
    result = await call_tool(coach_id, "get_client_profile", {"client_id": client_id})
    assert result["success"] is True
    assert result["data"]["client"]["name"] == "Casey Client"

    terminate_relationship(store, coach_id, pending["id"])
    result = await call_tool(coach_id, "get_client_profile", {"client_id": client_id})
    assert result["error"]["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_inactive_relationship_blocks_access(store, call_tool, coach_id, client_id, active_relationship):
    deactivate_relationship(store, coach_id, active_relationship["id"])
    result = await call_tool(coach_id, "get_client_workouts", {"client_id": client_id})
    assert result["error"]["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_other_coaches_client_is_unauthorized(store, make_user, call_tool, client_id, active_relationship):
    other_coach = make_user("coach")
    for name in (
        "get_client_profile",
        "get_client_workouts",
        "get_client_health_data",
        "get_client_program",
        "get_client_check_ins",
        "get_coach_notes",
        "get_client_injuries",
        "get_client_analytics_summary",
    ):
        result = await call_tool(other_coach, name, {"client_id": client_id})
        assert result["error"]["code"] == "UNAUTHORIZED", name


@pytest.mark.asyncio
async def test_client_scoped_tools_require_client_id(call_tool, coach_id):
    result = await call_tool(coach_id, "get_client_profile", {})
    assert result["error"]["code"] == "INVALID_PARAMETERS"


@pytest.mark.asyncio
async def test_client_list(store, make_user, call_tool, coach_id, client_id, active_relationship):
    assign_client(store, coach_id, make_user())

    active = await call_tool(coach_id, "get_client_list")
    assert active["data"]["has_clients"] is True
    assert [c["client_id"] for c in active["data"]["clients"]] == [client_id]

    everyone = await call_tool(coach_id, "get_client_list", {"status": "all"})
    assert everyone["data"]["total_count"] == 2

    bad = await call_tool(coach_id, "get_client_list", {"status": "archived"})
    assert bad["error"]["code"] == "INVALID_PARAMETERS"


@pytest.mark.asyncio
async def test_client_profile_missing(store, make_user, call_tool, coach_id):
    bare = make_user(with_profile=False)
    accept_assignment(store, bare, assign_client(store, coach_id, bare)["id"])
    result = await call_tool(coach_id, "get_client_profile", {"client_id": bare})
    assert result["error"]["code"] == "CLIENT_NOT_FOUND"


@pytest.mark.asyncio
async def test_notes_round_trip(call_tool, coach_id, client_id, active_relationship):
    added = await call_tool(
        coach_id,
        "add_coach_note",
        {"client_id": client_id, "content": "Knee feels better", "category": "injury", "is_pinned": True},
    )
    assert added["success"] is True
    await call_tool(coach_id, "add_coach_note", {"client_id": client_id, "content": "Likes mornings"})

    injury_notes = await call_tool(coach_id, "get_coach_notes", {"client_id": client_id, "category": "injury"})
    assert [n["content"] for n in injury_notes["data"]["notes"]] == ["Knee feels better"]

    all_notes = await call_tool(coach_id, "get_coach_notes", {"client_id": client_id})
    assert all_notes["data"]["total_count"] == 2
    assert all_notes["data"]["notes"][0]["is_pinned"] is True


@pytest.mark.asyncio
async def test_assign_program_from_template(store, call_tool, coach_id, client_id, active_relationship):
    template_id = store.programs.create("5/3/1", is_template=True, duration_weeks=12, days_per_week=4)

    missing = await call_tool(coach_id, "assign_program_to_client", {"client_id": client_id, "template_id": 999})
    assert missing["error"]["code"] == "TEMPLATE_NOT_FOUND"

    result = await call_tool(
        coach_id,
        "assign_program_to_client",
        {
            "client_id": client_id,
            "template_id": template_id,
            "start_date": "March 2, 2026",
            "customizations": {"days_per_week": 3},
        },
    )
    assert result["success"] is True
    assert result["data"]["program"]["start_date"] == "2026-03-02"

    program = store.programs.get_active(client_id)
    assert program["days_per_week"] == 3
    assert program["template_id"] == template_id
    assert program["created_by_coach_id"] == coach_id

    again = await call_tool(coach_id, "assign_program_to_client", {"client_id": client_id, "template_id": template_id})
    assert again["error"]["code"] == "PROGRAM_EXISTS"


@pytest.mark.asyncio
async def test_assign_program_rejects_unparseable_date(store, call_tool, coach_id, client_id, active_relationship):
    template_id = store.programs.create("Base", is_template=True)
    result = await call_tool(
        coach_id,
        "assign_program_to_client",
        {"client_id": client_id, "template_id": template_id, "start_date": "not a date"},
    )
    assert result["error"]["code"] == "INVALID_PARAMETERS"
    assert store.programs.get_active(client_id) is None


@pytest.mark.asyncio
async def test_program_adherence_for_all_clients(store, make_user, call_tool, coach_id, client_id, active_relationship):
    store.programs.create("Block A", user_id=client_id, status="active", adherence_percent=80)
    stranger = make_user()
    store.programs.create("Not yours", user_id=stranger, status="active", adherence_percent=10)

    result = await call_tool(coach_id, "get_program_adherence")
    assert [c["client_id"] for c in result["data"]["clients"]] == [client_id]

    single = await call_tool(coach_id, "get_program_adherence", {"client_id": client_id})
    assert single["data"]["adherence"]["adherence_percent"] == 80

    denied = await call_tool(coach_id, "get_program_adherence", {"client_id": stranger})
    assert denied["error"]["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_send_message_is_idempotent_with_key(store, call_tool, coach_id, client_id, active_relationship):
    args = {"client_id": client_id, "message": "Great session today!", "idempotency_key": "msg-1"}
    first = await call_tool(coach_id, "send_message_to_client", args)
    second = await call_tool(coach_id, "send_message_to_client", args)

    assert first["data"]["duplicate"] is False
    assert second["data"]["duplicate"] is True
    assert second["data"]["message_id"] == first["data"]["message_id"]

    conversation = store.conversations.get(first["data"]["conversation_id"])
    assert conversation["message_count"] == 1

    messages = await call_tool(
        coach_id, "get_conversation_messages", {"conversation_id": conversation["id"]}
    )
    assert [m["content"] for m in messages["data"]["messages"]] == ["Great session today!"]


@pytest.mark.asyncio
async def test_message_sent_by_a_concurrent_retry_is_reported_as_duplicate(
    store, call_tool, coach_id, client_id, active_relationship, monkeypatch
):
    conversation_id = store.conversations.create(client_id, "coach")
    winner = store.conversations.add_message(conversation_id, coach_id, "assistant", "See you Monday", idempotency_key="msg-2")
    get_message_by_key = store.conversations.get_message_by_key
    lookups = []

    def lookup_before_winner_commits(user_id, key):
        lookups.append(key)
        return None if len(lookups) == 1 else get_message_by_key(user_id, key)

    monkeypatch.setattr(store.conversations, "get_message_by_key", lookup_before_winner_commits)
    args = {
        "client_id": client_id,
        "message": "See you Monday",
        "conversation_id": conversation_id,
        "idempotency_key": "msg-2",
    }

    result = await call_tool(coach_id, "send_message_to_client", args)

    assert result["data"] == {"message_id": winner, "conversation_id": conversation_id, "duplicate": True}
    assert store.conversations.get(conversation_id)["message_count"] == 1


@pytest.mark.asyncio
async def test_send_message_into_foreign_conversation(store, make_user, call_tool, coach_id, client_id, active_relationship):
    other_conversation = store.conversations.create(make_user(), "coach")
    result = await call_tool(
        coach_id,
        "send_message_to_client",
        {"client_id": client_id, "message": "hi", "conversation_id": other_conversation},
    )
    assert result["error"]["code"] == "CONVERSATION_NOT_FOUND"


@pytest.mark.asyncio
async def test_conversations_are_tenant_checked(store, make_user, call_tool, coach_id, client_id, active_relationship):
    store.conversations.create(client_id, "coach", title="Check-in")
    outsider_conversation = store.conversations.create(make_user(), "coach")

    listed = await call_tool(coach_id, "get_client_conversations")
    assert [c["client_id"] for c in listed["data"]["conversations"]] == [client_id]

    denied = await call_tool(coach_id, "get_conversation_messages", {"conversation_id": outsider_conversation})
    assert denied["error"]["code"] == "UNAUTHORIZED"

    missing = await call_tool(coach_id, "get_conversation_messages", {"conversation_id": 4242})
    assert missing["error"]["code"] == "CONVERSATION_NOT_FOUND"


@pytest.mark.asyncio
async def test_conversation_messages_before_must_be_a_timestamp(store, call_tool, coach_id, client_id, active_relationship):
    conversation_id = store.conversations.create(client_id, "coach")
    result = await call_tool(
        coach_id, "get_conversation_messages", {"conversation_id": conversation_id, "before": "yesterday-ish"}
    )
    assert result["error"]["code"] == "INVALID_PARAMETERS"


@pytest.mark.asyncio
async def test_analytics_summary(store, call_tool, coach_id, client_id, active_relationship):
    store.workouts.create(client_id, "Push", status="completed", completed_at=days_ago_iso(1))
    store.workouts.create(client_id, "Pull", status="active")

    result = await call_tool(coach_id, "get_client_analytics_summary", {"client_id": client_id})
    analytics = result["data"]["analytics"]
    assert analytics["workouts_started"] == 2
    assert analytics["workouts_completed"] == 1
    assert analytics["completion_rate"] == 50


@pytest.mark.asyncio
async def test_at_risk_clients_only_cover_own_active_clients(store, make_user, call_tool, coach_id, client_id, active_relationship):
    store.programs.create("Slipping", user_id=client_id, status="active", adherence_percent=20)
    stranger = make_user()
    store.programs.create("Someone else", user_id=stranger, status="active", adherence_percent=5)

    result = await call_tool(coach_id, "get_at_risk_clients")
    at_risk = result["data"]["at_risk_clients"]
    assert [c["client_id"] for c in at_risk["low_adherence"]] == [client_id]
    assert [c["client_id"] for c in at_risk["inactive"]] == [client_id]

    store.workouts.create(client_id, "Fresh workout")
    result = await call_tool(coach_id, "get_at_risk_clients")
    assert result["data"]["at_risk_clients"]["inactive"] == []


@pytest.mark.asyncio
async def test_coach_profile_and_pending_invitations(store, make_user, call_tool, coach_id, active_relationship):
    invited = make_user(name="Ivy Invited")
    assign_client(store, coach_id, invited)

    profile = await call_tool(coach_id, "get_coach_profile")
    assert profile["data"]["profile"]["name"] == "Coach Carter"

    pending = await call_tool(coach_id, "get_pending_invitations")
    invitations = pending["data"]["invitations"]
    assert [i["client_name"] for i in invitations] == ["Ivy Invited"]

    everything = await call_tool(coach_id, "get_pending_invitations", {"status": "all"})
    assert everything["data"]["total_count"] == 2
