import pytest

from coach_ai.services.csv_io import read_csv_rows
from coach_ai.services.import_service import ClientImportError, export_clients, import_clients
from coach_ai.services.relationship_service import assign_client
from coach_ai.services.tenancy import list_clients


def write(path, text):
    path.write_text(text, encoding="utf-8")
    return path


def test_import_assigns_known_users_as_pending(store, tmp_path, make_user, coach_id):
    make_user(email="ana@example.com")
    already = make_user(email="ben@example.com")
    assign_client(store, coach_id, already)

    csv_path = write(
        tmp_path / "clients.csv",
        "\ufeffE-mail,Full Name,Notes\n"
        "ANA@example.com,Ana,Prefers mornings\n"
        "ben@example.com,Ben,\n"
        "ghost@example.com,Ghost,\n"
        ",No Email,\n"
        "ana@example.com,Ana again,\n",
    )

    assigned, skipped = import_clients(store, coach_id, csv_path)

    assert (assigned, skipped) == (1, 4)
    pending = list_clients(store, coach_id, status="pending")["clients"]
    assert len(pending) == 2
    ana = store.users.get_by_email("ana@example.com")
    relationship = store.relationships.latest_for_pair(coach_id, ana["id"])
    assert relationship["status"] == "pending"
    assert relationship["relationship_notes"] == "Prefers mornings"


def test_import_requires_a_coach(store, tmp_path, make_user):
    athlete = make_user("premium")
    csv_path = write(tmp_path / "clients.csv", "email\nana@example.com\n")
    with pytest.raises(ClientImportError):
        import_clients(store, athlete, csv_path)


def test_import_requires_an_email_column(store, tmp_path, coach_id):
    csv_path = write(tmp_path / "clients.csv", "name,phone\nAna,555\n")
    with pytest.raises(ClientImportError, match="no email column"):
        import_clients(store, coach_id, csv_path)


def test_export_writes_client_roster(store, tmp_path, coach_id, client_id, active_relationship):
    output = export_clients(store, coach_id, tmp_path / "out" / "clients.csv")

    rows = read_csv_rows(output)
    assert len(rows) == 1
    assert rows[0]["client_id"] == str(client_id)
    assert rows[0]["status"] == "active"
    assert rows[0]["email"] == store.users.get_by_id(client_id)["email"]
