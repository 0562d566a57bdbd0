import itertools

import pytest

from coach_ai.services.relationship_service import accept_assignment, assign_client
from coach_ai.store import Store
from coach_ai.tools import all_tool_factories, collect_tools, create_tool_context, run_tool


@pytest.fixture
def store(tmp_path):
    return Store(tmp_path / "coach_ai.db").init()


@pytest.fixture
def make_user(store):
    counter = itertools.count(1)

    def _make(tier="free", name=None, email=None, with_profile=True):
        n = next(counter)
        user_id = store.users.create(email or f"user{n}@example.com", "not-a-real-hash")
        if with_profile:
            store.profiles.upsert(user_id, name=name or f"User {n}", tier=tier)
        return user_id

    return _make


@pytest.fixture
def coach_id(make_user):
    return make_user("coach", "Coach Carter")


@pytest.fixture
def client_id(make_user):
    return make_user("free", "Casey Client")


@pytest.fixture
def active_relationship(store, coach_id, client_id):
    relationship = assign_client(store, coach_id, client_id)
    return accept_assignment(store, client_id, relationship["id"])


@pytest.fixture
def call_tool(store):
    """Run a catalog tool the way the web layer does: role read from the profile on every call."""

    async def _call(user_id, name, arguments=None):
        ctx = create_tool_context(store, user_id)
        tools = collect_tools(ctx, all_tool_factories())
        return await run_tool(tools, name, arguments)

    return _call
