"""
Tests for client records, search, CSV export and the overdue rule.
"""

import csv
import io
from datetime import date
from pathlib import Path

import pytest

from clientdesk import activity, billing, clients, files, notes, reconciliation, tasks


def _new(**overrides):
    fields = {
        "name": "Northwind Traders",
        "email": "ops@northwind.test",
        "phone": "555-0199",
        "monthly_service_charge": 1250,
    }
    fields.update(overrides)
    return clients.create_client(**fields)


class TestCreateClient:
    def test_defaults(self, empty_db):
        client = _new(website="")
        assert client.status == "active"
        assert client.monthly_service_charge == 1250.0
        assert client.website is None

    def test_logs_creation(self, empty_db):
        client = _new()
        history = activity.list_activity(client.id)
        assert [a.action for a in history] == ["client_created"]
        assert history[0].description == "Client Northwind Traders was created"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": "  "},
            {"email": ""},
            {"monthly_service_charge": -1},
            {"status": "archived"},
            {"favourite_colour": "blue"},
        ],
    )
    def test_invalid_input(self, empty_db, overrides):
        with pytest.raises(ValueError):
            _new(**overrides)


class TestListClients:
    def test_sorted_by_name(self, fixture_db):
        names = [c.name for c in clients.list_clients()]
        assert names == sorted(names, key=str.lower)
        assert len(names) == 4

    def test_search_matches_name_industry_and_contact(self, fixture_db):
        assert {c.id for c in clients.list_clients(search="tech")} == {1, 3}
        assert [c.id for c in clients.list_clients(search="mike")] == [2]
        assert [c.id for c in clients.list_clients(search="HEALTHCARE")] == [3]

    def test_status_filter(self, fixture_db):
        assert [c.id for c in clients.list_clients(status="inactive")] == [4]
        assert len(clients.list_clients(status="all")) == 4


class TestUpdateClient:
    def test_partial_update(self, fixture_db):
        updated = clients.update_client(3, monthly_service_charge=3750.5, industry="Health")
        assert updated.monthly_service_charge == 3750.5
        assert updated.industry == "Health"
        assert updated.name == "HealthTech Innovations"

    def test_manual_active_status_still_follows_billing(self, fixture_db):
        # Digital Marketing Pro still owes January to March 2024
        assert clients.update_client(2, status="active").status == "overdue"
        assert activity.list_activity(2)[0].action == "status_changed"

    def test_manual_inactive_status_is_kept(self, fixture_db):
        assert clients.update_client(2, status="inactive").status == "inactive"

    def test_missing_client(self, fixture_db):
        assert clients.update_client(99, name="Ghost") is None

    def test_required_field_cannot_be_blanked(self, fixture_db):
        with pytest.raises(ValueError):
            clients.update_client(1, email=" ")


class TestDeleteClient:
    def test_cascades_but_keeps_tasks_and_history(self, fixture_db):
        stored = Path(files.save_file(2, "contract.pdf", b"%PDF-1.4").file_path)
        kept = Path(files.save_file(3, "brief.txt", b"keep me").file_path)

        assert clients.delete_client(2)

        assert not stored.exists()
        assert kept.exists()
        assert files.list_files(2) == []

        assert clients.get_client(2) is None
        assert billing.list_client_billing(2) == []
        assert reconciliation.list_payments(2) == []
        assert notes.list_notes(2) == []

        task = tasks.get_task(2)
        assert task.client_id is None
        assert task.client_name is None

        history = activity.list_activity(2)
        assert history[0].action == "client_deleted"

    def test_missing_client(self, fixture_db):
        assert clients.delete_client(99) is False


class TestOverdueRule:
    def test_sync_all_flags_clients_with_past_unpaid_months(self, fixture_db):
        changed = clients.sync_all_overdue_statuses(date(2024, 3, 20))

        # TechFlow owes February; Digital Marketing Pro is already overdue
        assert changed == {1: "overdue"}
        assert clients.get_client(1).status == "overdue"
        assert clients.get_client(4).status == "inactive"

    def test_current_month_does_not_count(self, fixture_db):
        assert clients.sync_all_overdue_statuses(date(2024, 2, 10)) == {}

    def test_clearing_the_debt_restores_active(self, fixture_db):
        clients.sync_all_overdue_statuses(date(2024, 3, 20))
        reconciliation.bulk_settle([2])
        assert clients.get_client(1).status == "active"

    def test_status_change_is_logged(self, fixture_db):
        clients.sync_all_overdue_statuses(date(2024, 3, 20))
        latest = activity.list_activity(1)[0]
        assert latest.action == "status_changed"
        assert latest.metadata == {"from": "active", "to": "overdue"}


class TestExportCsv:
    def test_header_and_rows(self, fixture_db):
        text = clients.export_clients_csv()
        rows = list(csv.reader(io.StringIO(text)))

        assert rows[0] == ["ID", "Name", "Email", "Phone", "Industry", "Monthly Charge", "Status"]
        assert len(rows) == 5
        by_id = {row[0]: row for row in rows[1:]}
        assert by_id["1"][1] == "TechFlow Solutions"
        assert by_id["1"][5] == "1500.00"
        assert by_id["4"][6] == "inactive"

    def test_names_are_always_quoted(self, fixture_db):
        text = clients.export_clients_csv()
        assert '1,"TechFlow Solutions",contact@techflow.com' in text

    def test_quotes_in_names_are_escaped(self, empty_db):
        _new(name='The "Best" Agency, Inc')
        line = clients.export_clients_csv().splitlines()[1]
        assert line.startswith('1,"The ""Best"" Agency, Inc",')
        assert next(csv.reader([line]))[1] == 'The "Best" Agency, Inc'
