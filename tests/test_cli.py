import pytest
from typer.testing import CliRunner

from coach_ai.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def keep_test_logging(monkeypatch):
    # The runner swaps sys.stdout per invocation; a handler bound to it would outlive the run.
    monkeypatch.setattr("coach_ai.cli.configure_logging", lambda level=None: None)


@pytest.fixture
def db_args(tmp_path):
    return ["--db-path", str(tmp_path / "cli.db")]


def invoke(db_args, *args):
    return runner.invoke(app, [*db_args, *args])


def create_user(db_args, email, tier="free"):
    result = invoke(db_args, "create-user", "--email", email, "--password", "long-enough-pw", "--tier", tier)
    assert result.exit_code == 0, result.output
    return int(result.output.split("id=")[1].split()[0])


def test_init_db(db_args, tmp_path):
    result = invoke(db_args, "init-db")
    assert result.exit_code == 0
    assert (tmp_path / "cli.db").exists()


def test_create_user_rejects_unknown_tier(db_args):
    result = invoke(db_args, "create-user", "--email", "x@example.com", "--password", "long-enough-pw", "--tier", "gold")
    assert result.exit_code == 1


def test_relationship_commands(db_args):
    coach_id = create_user(db_args, "coach@example.com", "coach")
    client_id = create_user(db_args, "client@example.com")

    assigned = invoke(db_args, "assign-client", "--coach-id", str(coach_id), "--client-email", "client@example.com")
    assert assigned.exit_code == 0, assigned.output
    assert "status=pending" in assigned.output
    relationship_id = assigned.output.split("Relationship ")[1].split()[0]

    again = invoke(db_args, "assign-client", "--coach-id", str(coach_id), "--client-email", "client@example.com")
    assert again.exit_code == 1

    accepted = invoke(
        db_args, "accept-assignment", "--client-id", str(client_id), "--relationship-id", relationship_id
    )
    assert "is now active" in accepted.output

    listed = invoke(db_args, "list-clients", "--coach-id", str(coach_id))
    assert "Total: 1" in listed.output

    ended = invoke(db_args, "end-relationship", "--user-id", str(client_id), "--relationship-id", relationship_id)
    assert ended.exit_code == 0
    assert "Total: 0" in invoke(db_args, "list-clients", "--coach-id", str(coach_id)).output


def test_list_tools_shows_required_roles():
    result = runner.invoke(app, ["list-tools"])
    assert result.exit_code == 0
    assert "get_client_list\tcoach" in result.output
    assert "get_health_metrics\tpremium" in result.output
    assert "get_user_profile\t-" in result.output


def test_call_tool(db_args):
    user_id = create_user(db_args, "athlete@example.com")

    ok = invoke(db_args, "call-tool", "get_user_profile", "--user-id", str(user_id))
    assert ok.exit_code == 0
    assert '"success": true' in ok.output

    denied = invoke(db_args, "call-tool", "get_health_metrics", "--user-id", str(user_id))
    assert denied.exit_code == 1
    assert "PERMISSION_DENIED" in denied.output

    overridden = invoke(db_args, "call-tool", "get_health_metrics", "--user-id", str(user_id), "--role", "premium")
    assert overridden.exit_code == 0

    bad_json = invoke(db_args, "call-tool", "get_user_profile", "--user-id", str(user_id), "--args", "{oops")
    assert bad_json.exit_code == 1


def test_import_clients_command(db_args, tmp_path):
    coach_id = create_user(db_args, "coach@example.com", "coach")
    create_user(db_args, "ana@example.com")
    csv_path = tmp_path / "clients.csv"
    csv_path.write_text("email\nana@example.com\nghost@example.com\n", encoding="utf-8")

    result = invoke(db_args, "import-clients", "--coach-id", str(coach_id), "--csv-path", str(csv_path))
    assert result.exit_code == 0
    assert "Clients assigned: 1, skipped: 1" in result.output
