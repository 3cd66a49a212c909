"""
API tests against the seeded fixture DB through FastAPI's TestClient.

Startup runs on entering the client: schema convergence, the bootstrap
admin and the overdue status sweep (TechFlow becomes overdue because the
seed's February 2024 bill is unpaid).
"""

import pytest
from fastapi.testclient import TestClient

from clientdesk import config


@pytest.fixture
def anon(fixture_db):
    from api.server import app

    with TestClient(app) as client:
        yield client


@pytest.fixture
def api(anon):
    resp = anon.post(
        "/api/auth/login",
        json={"username": config.ADMIN_USERNAME, "password": config.ADMIN_PASSWORD},
    )
    assert resp.status_code == 200
    return anon


# =============================================================================
# Auth and errors
# =============================================================================


class TestAuth:
    def test_health_is_open(self, anon):
        resp = anon.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert resp.headers["x-request-id"].startswith("req-")

    def test_request_id_is_echoed(self, anon):
        resp = anon.get("/api/health", headers={"X-Request-ID": "req-fromcaller"})
        assert resp.headers["x-request-id"] == "req-fromcaller"

    def test_protected_routes_need_a_session(self, anon):
        resp = anon.get("/api/clients")
        assert resp.status_code == 401
        assert resp.json() == {"message": "Authentication required"}
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_bad_credentials(self, anon):
        resp = anon.post("/api/auth/login", json={"username": "admin", "password": "nope"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid username or password"

    def test_login_me_logout(self, api):
        me = api.get("/api/auth/me").json()
        assert me["username"] == config.ADMIN_USERNAME
        assert me["fullName"] == "Administrator"

        assert api.post("/api/auth/logout").status_code == 204
        assert api.get("/api/auth/me").status_code == 401

    def test_shared_token(self, anon, monkeypatch):
        monkeypatch.setenv(config.API_TOKEN_ENV, "t0ken")

        ok = anon.get("/api/auth/me", headers={"Authorization": "Bearer t0ken"})
        assert ok.status_code == 200
        assert ok.json()["username"] == "api-token"
        assert anon.get("/api/clients", headers={"X-API-Token": "t0ken"}).status_code == 200

        bad = anon.get("/api/clients", headers={"Authorization": "Bearer wrong"})
        assert bad.status_code == 401
        assert bad.json()["message"] == "Invalid authentication token"

    def test_validation_errors_are_400(self, api):
        resp = api.post("/api/clients", json={"name": "Only a name"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["message"] == "Invalid request data"
        assert body["errors"]


# =============================================================================
# Clients
# =============================================================================


class TestClientsApi:
    def test_list_is_camel_case(self, api):
        rows = api.get("/api/clients").json()
        assert len(rows) == 4
        assert {"monthlyServiceCharge", "contactPerson", "createdAt"} <= set(rows[0])

    def test_search_and_status(self, api):
        assert [c["id"] for c in api.get("/api/clients", params={"search": "mike"}).json()] == [2]
        overdue = api.get("/api/clients", params={"status": "overdue"}).json()
        assert {c["id"] for c in overdue} == {1, 2}

    def test_crud(self, api):
        created = api.post(
            "/api/clients",
            json={
                "name": "Northwind",
                "email": "ops@northwind.test",
                "phone": "555-0199",
                "monthlyServiceCharge": 900,
                "contactPerson": "Ana",
            },
        )
        assert created.status_code == 201
        client = created.json()
        assert client["status"] == "active"
        assert client["contactPerson"] == "Ana"

        updated = api.put(f"/api/clients/{client['id']}", json={"industry": "Logistics"}).json()
        assert updated["industry"] == "Logistics"
        assert updated["monthlyServiceCharge"] == 900.0

        assert api.delete(f"/api/clients/{client['id']}").status_code == 204
        missing = api.get(f"/api/clients/{client['id']}")
        assert missing.status_code == 404
        assert missing.json() == {"message": "Client not found"}

    def test_bad_status_is_400(self, api):
        resp = api.put("/api/clients/1", json={"status": "archived"})
        assert resp.status_code == 400
        assert "status must be one of" in resp.json()["message"]

    def test_balance(self, api):
        balance = api.get("/api/clients/2/balance").json()
        assert balance["outstanding"] == 5600.0
        assert balance["unpaidMonths"] == 3

    def test_activity_survives_delete(self, api):
        api.delete("/api/clients/3")
        grouped = api.get("/api/clients/3/activity", params={"grouped": True}).json()
        assert grouped[0]["activities"][0]["action"] == "client_deleted"
        flat = api.get("/api/clients/3/activity").json()
        assert flat[0]["entityType"] == "client"

    def test_csv_export(self, api):
        resp = api.get("/api/export/clients")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert 'filename="clients.csv"' in resp.headers["content-disposition"]
        assert resp.text.splitlines()[0] == "ID,Name,Email,Phone,Industry,Monthly Charge,Status"


# =============================================================================
# Billing and reconciliation
# =============================================================================


class TestBillingApi:
    def test_list_with_status(self, api):
        rows = api.get("/api/billing", params={"status": "partial"}).json()
        assert len(rows) == 1
        assert rows[0]["id"] == 5
        assert rows[0]["paidAmount"] == 1000.0
        assert rows[0]["outstanding"] == 1200.0
        assert rows[0]["clientName"] == "Digital Marketing Pro"

    def test_bad_status_filter(self, api):
        assert api.get("/api/billing", params={"status": "late"}).status_code == 400

    def test_create_duplicate_month(self, api):
        resp = api.post("/api/clients/1/billing", json={"month": 1, "year": 2024, "amount": 1500})
        assert resp.status_code == 400
        assert "already exists" in resp.json()["message"]

    def test_year_view(self, api):
        view = api.get("/api/clients/1/billing/year/2024").json()
        assert view["months"][0]["billing"]["invoiceNumber"] == "INV-202401001"
        assert view["months"][5]["billing"] is None
        assert view["totals"]["outstanding"] == 1500.0

    def test_mark_paid_goes_through_the_ledger(self, api):
        resp = api.put(
            "/api/billing/2",
            json={"isPaid": True, "paymentMethod": "Check", "paidDate": "2024-03-01"},
        )
        assert resp.status_code == 200
        record = resp.json()
        assert record["isPaid"] is True
        assert record["paidDate"] == "2024-03-01"
        assert record["paymentMethod"] == "Check"

        payments = api.get("/api/clients/1/payments").json()
        assert [p["amount"] for p in payments] == [1500.0, 1500.0]
        assert payments[0]["allocations"][0]["billingId"] == 2

    def test_mark_unpaid_reverses_payments(self, api):
        record = api.put("/api/billing/1", json={"isPaid": False}).json()
        assert record["status"] == "unpaid"
        assert record["paidAmount"] == 0.0
        assert api.get("/api/clients/1/payments").json() == []

    def test_amount_below_paid_is_rejected(self, api):
        resp = api.put("/api/billing/5", json={"amount": 500})
        assert resp.status_code == 400

    def test_record_payment(self, api):
        resp = api.post(
            "/api/clients/2/payments",
            json={"amount": 2500, "method": "Wire", "receivedAt": "2024-04-01"},
        )
        assert resp.status_code == 201
        payment = resp.json()
        assert payment["appliedAmount"] == 2500.0
        assert payment["unappliedAmount"] == 0.0
        assert [(a["billingId"], a["amount"]) for a in payment["allocations"]] == [
            (3, 2200.0),
            (4, 300.0),
        ]

    def test_payment_for_another_clients_bill(self, api):
        resp = api.post("/api/clients/1/payments", json={"amount": 100, "billingIds": [3]})
        assert resp.status_code == 400

    def test_bulk_pay(self, api):
        resp = api.post("/api/billing/bulk-pay", json={"billingIds": [2, 3, 4], "paymentMethod": "Cash"})
        body = resp.json()
        assert body["count"] == 3
        assert [s["clientId"] for s in body["settled"]] == [1, 2]
        assert api.get("/api/billing", params={"status": "unpaid"}).json() == []

    def test_bulk_pay_needs_ids(self, api):
        assert api.post("/api/billing/bulk-pay", json={"billingIds": []}).status_code == 400
        assert api.post("/api/billing/bulk-pay", json={"billingIds": [999]}).status_code == 400

    def test_aging(self, api):
        buckets = api.get("/api/billing/aging", params={"as_of": "2024-03-10"}).json()
        assert buckets == [
            {"bucket": "0-15 days", "count": 1, "total": 1200.0},
            {"bucket": "31-60 days", "count": 2, "total": 3700.0},
            {"bucket": "60+ days", "count": 1, "total": 2200.0},
        ]

    def test_reconciliation_by_method(self, api):
        rows = api.get("/api/billing/reconciliation").json()
        assert rows == [
            {"method": "Bank Transfer", "count": 1, "total": 1500.0},
            {"method": "Credit Card", "count": 1, "total": 1000.0},
        ]

    def test_generate_invoices(self, api):
        first = api.post("/api/billing/generate", json={"year": 2024, "month": 4}).json()
        assert [r["clientId"] for r in first["created"]] == [1, 2, 3]
        assert first["created"][0]["invoiceNumber"] == "INV-202404001"

        second = api.post("/api/billing/generate", json={"year": 2024, "month": 4}).json()
        assert second["created"] == []
        assert [s["clientId"] for s in second["skipped"]] == [1, 2, 3]
        assert second["skipped"][0]["reason"] == "already billed"

    def test_stats(self, api):
        stats = api.get("/api/billing/stats", params={"year": 2024}).json()
        assert stats["totalRevenue"] == 2500.0
        assert stats["pendingAmount"] == 7100.0

    def test_delete(self, api):
        assert api.delete("/api/billing/5").status_code == 204
        assert api.delete("/api/billing/5").status_code == 404


class TestInvoicesApi:
    def test_invoice_json(self, api):
        invoice = api.get("/api/clients/2/invoices/2024/3").json()
        assert invoice["invoiceNumber"] == "INV-202403002"
        assert invoice["status"] == "partial"
        assert invoice["balanceDue"] == 1200.0
        assert invoice["items"][0]["unitPrice"] == 2200.0
        assert invoice["client"]["name"] == "Digital Marketing Pro"

    def test_invoice_pdf(self, api):
        resp = api.get("/api/clients/2/invoices/2024/3/pdf")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.content.startswith(b"%PDF")
        assert "INV-202403002.pdf" in resp.headers["content-disposition"]

    def test_public_link_needs_no_login(self, anon):
        resp = anon.get("/api/public/invoices/1/2024/1")
        assert resp.status_code == 200
        assert resp.json()["status"] == "paid"

    def test_bad_month(self, api):
        assert api.get("/api/clients/1/invoices/2024/13").status_code == 400
        assert api.get("/api/clients/99/invoices/2024/1").status_code == 404

    def test_broken_settings_file_is_a_server_error(self, api):
        config.settings_path().write_text("profile: [unclosed\n")

        for url in (
            "/api/clients/1/invoices/2024/1",
            "/api/clients/1/invoices/2024/1/pdf",
            "/api/public/invoices/1/2024/1",
            "/api/settings",
        ):
            resp = api.get(url)
            assert resp.status_code == 500, url
            assert resp.json()["message"] == "Settings file is invalid"


# =============================================================================
# Tasks
# =============================================================================


class TestTasksApi:
    def test_list_paginated(self, api):
        page = api.get("/api/tasks", params={"sort": "dueDate"}).json()
        assert [t["id"] for t in page["data"]] == [5, 2, 4, 1, 3]
        assert page["total"] == 5
        assert page["pageSize"] == 25
        assert page["hasNext"] is False

        second = api.get("/api/tasks", params={"page": 2, "page_size": 2}).json()
        assert len(second["data"]) == 2
        assert second["totalPages"] == 3
        assert second["hasPrev"] is True
        assert second["hasNext"] is True

    def test_filters(self, api):
        assert api.get("/api/tasks", params={"clientId": 1}).json()["total"] == 2
        assert api.get("/api/tasks", params={"status": "done"}).json()["total"] == 2

    def test_bad_sort(self, api):
        resp = api.get("/api/tasks", params={"sort": "title"})
        assert resp.status_code == 400

    def test_overdue_follow_ups_merge_notes_and_tasks(self, api):
        items = api.get("/api/tasks/overdue").json()
        assert [(i["source"], i["id"]) for i in items] == [
            ("note", 2),
            ("task", 2),
            ("task", 1),
            ("task", 3),
            ("note", 3),
        ]
        assert items[1]["clientName"] == "Digital Marketing Pro"

    def test_today_route_is_not_a_task_id(self, api):
        assert api.get("/api/tasks/today").status_code == 200

    def test_kanban_and_move(self, api):
        board = api.get("/api/tasks/kanban").json()
        assert [col["status"] for col in board] == ["todo", "in_progress", "review", "done"]

        moved = api.patch("/api/tasks/2/move", json={"status": "done", "position": 0}).json()
        assert moved["status"] == "done"
        assert moved["position"] == 0
        assert moved["completedAt"] is not None

        done = api.get("/api/tasks/kanban").json()[3]["tasks"]
        assert [(t["id"], t["position"]) for t in done] == [(2, 0), (4, 1), (5, 2)]

    def test_bad_move(self, api):
        assert api.patch("/api/tasks/2/move", json={"status": "blocked", "position": 0}).status_code == 400
        assert api.patch("/api/tasks/2/move", json={"status": "todo", "position": -1}).status_code == 400
        assert api.patch("/api/tasks/99/move", json={"status": "todo", "position": 0}).status_code == 404

    def test_calendar(self, api):
        view = api.get("/api/tasks/calendar", params={"year": 2024, "month": 3}).json()
        assert sorted(view["days"]) == [
            "2024-03-01",
            "2024-03-05",
            "2024-03-08",
            "2024-03-10",
            "2024-03-15",
        ]
        assert view["days"]["2024-03-05"][0]["title"] == "Fix landing page"

    def test_crud(self, api):
        created = api.post(
            "/api/tasks",
            json={"title": "Write ad copy", "clientId": 3, "priority": "high", "dueDate": "2024-04-02"},
        )
        assert created.status_code == 201
        task = created.json()
        assert task["clientName"] == "HealthTech Innovations"
        assert task["position"] == 2

        updated = api.put(f"/api/tasks/{task['id']}", json={"status": "review"}).json()
        assert updated["status"] == "review"
        assert updated["position"] == 0

        assert api.get(f"/api/tasks/{task['id']}").json()["title"] == "Write ad copy"
        assert api.delete(f"/api/tasks/{task['id']}").status_code == 204
        assert api.get(f"/api/tasks/{task['id']}").status_code == 404

    def test_unknown_client(self, api):
        resp = api.post("/api/tasks", json={"title": "Orphan", "clientId": 99})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Client not found"

    def test_reports(self, api):
        aging = api.get("/api/tasks/reports/aging", params={"as_of": "2024-03-20"}).json()
        assert aging["totalOpen"] == 3
        assert aging["buckets"][2]["taskIds"] == [1, 2, 3]

        productivity = api.get(
            "/api/tasks/reports/productivity", params={"as_of": "2024-03-20", "days": 30}
        ).json()
        assert productivity["totalCompleted"] == 2
        assert {row["assignee"] for row in productivity["byAssignee"]} == {"bob", "Unassigned"}

        completion = api.get("/api/tasks/reports/completion", params={"as_of": "2024-03-20"}).json()
        assert completion["total"] == 5
        assert completion["completed"] == 2
        assert completion["rate"] == 40.0
        assert completion["onTime"] == 1


# =============================================================================
# Notes, files, campaigns, dashboard
# =============================================================================


class TestNotesApi:
    def test_list_with_stats(self, api):
        body = api.get("/api/clients/2/notes").json()
        assert [n["id"] for n in body["notes"]] == [2, 3]
        assert body["stats"]["pendingTasks"] == 1

    def test_create_update_delete(self, api):
        created = api.post(
            "/api/clients/1/notes",
            json={"title": "Call", "content": "Follow up", "type": "task", "dueDate": "2024-05-01"},
        )
        assert created.status_code == 201
        note = created.json()
        assert note["isCompleted"] is False

        updated = api.put(f"/api/notes/{note['id']}", json={"isCompleted": True}).json()
        assert updated["isCompleted"] is True

        assert api.delete(f"/api/notes/{note['id']}").status_code == 204
        assert api.put(f"/api/notes/{note['id']}", json={"title": "x"}).status_code == 404

    def test_missing_client(self, api):
        resp = api.post("/api/clients/99/notes", json={"title": "x", "content": "y"})
        assert resp.status_code == 404


class TestFilesApi:
    def test_upload_download_delete(self, api):
        resp = api.post(
            "/api/clients/1/files",
            files={"file": ("brief.txt", b"hello", "text/plain")},
            data={"description": "Kickoff brief"},
        )
        assert resp.status_code == 201
        stored = resp.json()
        assert stored["originalName"] == "brief.txt"
        assert stored["uploadedBy"] == config.ADMIN_USERNAME
        assert stored["description"] == "Kickoff brief"

        assert [f["id"] for f in api.get("/api/clients/1/files").json()] == [stored["id"]]
        download = api.get(f"/api/files/{stored['id']}/download")
        assert download.content == b"hello"

        assert api.delete(f"/api/files/{stored['id']}").status_code == 204
        assert api.get(f"/api/files/{stored['id']}/download").status_code == 404

    def test_too_large(self, api, monkeypatch):
        monkeypatch.setattr(config, "MAX_UPLOAD_BYTES", 4)
        resp = api.post("/api/clients/1/files", files={"file": ("big.txt", b"12345", "text/plain")})
        assert resp.status_code == 413

    def test_no_file(self, api):
        assert api.post("/api/clients/1/files").status_code == 400


class TestCampaignsApi:
    def test_create_and_list(self, api):
        resp = api.post(
            "/api/clients/1/campaigns",
            json={
                "name": "Spring Search",
                "platform": "Google Ads",
                "budget": 500,
                "startDate": "2024-03-01",
                "keywords": ["shoes"],
            },
        )
        assert resp.status_code == 201
        campaign = resp.json()
        assert campaign["clientName"] == "TechFlow Solutions"
        assert campaign["keywords"] == ["shoes"]

        assert [c["id"] for c in api.get("/api/campaigns").json()] == [campaign["id"]]
        assert [c["id"] for c in api.get("/api/clients/1/campaigns").json()] == [campaign["id"]]

    def test_end_before_start(self, api):
        resp = api.post(
            "/api/clients/1/campaigns",
            json={"name": "X", "platform": "Meta", "startDate": "2024-03-01", "endDate": "2024-02-01"},
        )
        assert resp.status_code == 400


class TestDashboardApi:
    def test_stats(self, api):
        stats = api.get("/api/dashboard/stats").json()
        assert stats["totalClients"] == 4
        assert stats["overdueClients"] == 2

    def test_revenue(self, api):
        series = api.get("/api/dashboard/revenue", params={"year": 2024}).json()
        assert series[0] == {"month": 1, "monthName": "Jan", "billed": 3700.0, "collected": 1500.0}

    def test_settings(self, api):
        settings = api.get("/api/settings").json()
        assert settings["company"] == config.DEFAULT_PROFILE["company"]
        assert "fullName" in settings
