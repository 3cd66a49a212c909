"""
Tests for the billing reconciliation engine.

Covers:
- Oldest-first allocation, partial payments and client credit
- Restricting allocation to chosen billing records
- Bulk settlement (one payment per client)
- Reopening a record reverses its allocations
- Aging buckets and per-method totals
- Monthly invoice generation and the invoice view
"""

from datetime import date

import pytest

from clientdesk import activity, billing, clients, config, reconciliation


def _client(name="Acme Corp", charge=1000, status="active"):
    return clients.create_client(
        name=name,
        email=f"{name.split()[0].lower()}@example.com",
        phone="555-0100",
        monthly_service_charge=charge,
        status=status,
    )


def _bill(client_id, year, month, amount=1000):
    return billing.create_billing(client_id, month, year, amount)


class TestAllocatePayment:
    """Distributing a payment across unpaid months."""

    def test_oldest_month_is_paid_first(self, empty_db):
        c = _client()
        jan = _bill(c.id, 2024, 1)
        feb = _bill(c.id, 2024, 2)
        mar = _bill(c.id, 2024, 3)

        payment = reconciliation.allocate_payment(c.id, 1500, method="Bank Transfer", received_at="2024-04-02")

        assert [(a["billing_id"], a["amount"]) for a in payment.allocations] == [
            (jan.id, 1000.0),
            (feb.id, 500.0),
        ]
        assert payment.unapplied_amount == 0

        jan_after = billing.get_billing(jan.id)
        assert jan_after.is_paid
        assert jan_after.paid_date == "2024-04-02"
        assert jan_after.payment_method == "Bank Transfer"

        feb_after = billing.get_billing(feb.id)
        assert not feb_after.is_paid
        assert feb_after.paid_amount == 500.0
        assert feb_after.status == "partial"
        assert feb_after.paid_date is None

        assert billing.get_billing(mar.id).status == "unpaid"

    def test_records_in_different_order_still_fill_oldest_first(self, empty_db):
        c = _client()
        newer = _bill(c.id, 2024, 2)
        older = _bill(c.id, 2023, 12)

        payment = reconciliation.allocate_payment(c.id, 1000, received_at="2024-03-01")

        assert [a["billing_id"] for a in payment.allocations] == [older.id]
        assert billing.get_billing(newer.id).status == "unpaid"

    def test_overpayment_is_kept_as_credit(self, empty_db):
        c = _client()
        _bill(c.id, 2024, 1)

        payment = reconciliation.allocate_payment(c.id, 1200, received_at="2024-01-20")

        assert payment.unapplied_amount == 200.0
        assert payment.applied_amount == 1000.0
        assert billing.client_balance(c.id)["credit"] == 200.0

    def test_cents_are_exact(self, empty_db):
        c = _client(charge=33.33)
        records = [_bill(c.id, 2024, m, 33.33) for m in (1, 2, 3)]

        payment = reconciliation.allocate_payment(c.id, 99.99, received_at="2024-04-01")

        assert payment.unapplied_amount == 0
        assert all(billing.get_billing(r.id).is_paid for r in records)

    def test_billing_ids_restrict_allocation(self, empty_db):
        c = _client()
        jan = _bill(c.id, 2024, 1)
        mar = _bill(c.id, 2024, 3)

        reconciliation.allocate_payment(c.id, 1000, billing_ids=[mar.id], received_at="2024-03-15")

        assert billing.get_billing(mar.id).is_paid
        assert billing.get_billing(jan.id).status == "unpaid"

    def test_foreign_billing_id_is_rejected_and_nothing_is_stored(self, empty_db):
        mine = _client("Mine Ltd")
        other = _client("Other Ltd")
        _bill(mine.id, 2024, 1)
        theirs = _bill(other.id, 2024, 1)

        with pytest.raises(ValueError, match="not found"):
            reconciliation.allocate_payment(mine.id, 500, billing_ids=[theirs.id])

        assert reconciliation.list_payments(mine.id) == []

    def test_non_positive_amount_is_rejected(self, empty_db):
        c = _client()
        with pytest.raises(ValueError):
            reconciliation.allocate_payment(c.id, 0)
        with pytest.raises(ValueError):
            reconciliation.allocate_payment(c.id, -10)

    def test_unknown_client_returns_none(self, empty_db):
        assert reconciliation.allocate_payment(999, 100) is None

    def test_default_method(self, empty_db):
        c = _client()
        payment = reconciliation.allocate_payment(c.id, 100, received_at="2024-01-01")
        assert payment.method == config.DEFAULT_PAYMENT_METHOD

    def test_payment_is_logged(self, empty_db):
        c = _client()
        _bill(c.id, 2024, 1)
        reconciliation.allocate_payment(c.id, 1000, method="Cash", received_at="2024-01-10")

        latest = activity.list_activity(c.id)
        actions = [a.action for a in latest]
        assert "payment_received" in actions
        logged = next(a for a in latest if a.action == "payment_received")
        assert logged.metadata["amount"] == 1000.0
        assert logged.metadata["unapplied"] == 0.0


class TestOverdueStatus:
    """Client status follows unpaid past months."""

    def test_past_unpaid_month_marks_client_overdue(self, empty_db):
        c = _client()
        _bill(c.id, 2020, 1)
        assert clients.get_client(c.id).status == "overdue"

    def test_paying_everything_returns_client_to_active(self, empty_db):
        c = _client()
        _bill(c.id, 2020, 1)
        reconciliation.allocate_payment(c.id, 1000, received_at="2020-02-01")
        assert clients.get_client(c.id).status == "active"

    def test_partial_payment_keeps_client_overdue(self, empty_db):
        c = _client()
        _bill(c.id, 2020, 1)
        reconciliation.allocate_payment(c.id, 400, received_at="2020-02-01")
        assert clients.get_client(c.id).status == "overdue"

    def test_other_statuses_are_untouched(self, empty_db):
        c = _client(status="pending")
        _bill(c.id, 2020, 1)
        assert clients.get_client(c.id).status == "pending"


class TestBulkSettle:
    def test_one_payment_per_client(self, empty_db):
        a = _client("Alpha Inc")
        b = _client("Beta Inc")
        a1 = _bill(a.id, 2024, 1)
        a2 = _bill(a.id, 2024, 2, 500)
        b1 = _bill(b.id, 2024, 1, 750)

        results = reconciliation.bulk_settle([a1.id, a2.id, b1.id], method="Check", paid_date="2024-03-01")

        assert [(r["client_id"], r["amount"]) for r in results] == [(a.id, 1500.0), (b.id, 750.0)]
        assert len(reconciliation.list_payments(a.id)) == 1
        assert len(reconciliation.list_payments(b.id)) == 1
        for record_id in (a1.id, a2.id, b1.id):
            record = billing.get_billing(record_id)
            assert record.is_paid
            assert record.paid_date == "2024-03-01"
            assert record.payment_method == "Check"

    def test_partially_paid_record_settles_only_the_remainder(self, empty_db):
        c = _client()
        jan = _bill(c.id, 2024, 1)
        reconciliation.allocate_payment(c.id, 300, received_at="2024-01-15")

        results = reconciliation.bulk_settle([jan.id])

        assert results[0]["amount"] == 700.0
        assert billing.get_billing(jan.id).paid_amount == 1000.0

    def test_already_paid_records_are_ignored(self, empty_db):
        c = _client()
        jan = _bill(c.id, 2024, 1)
        reconciliation.settle_billing(jan.id)

        assert reconciliation.bulk_settle([jan.id]) == []

    def test_unknown_id_rejects_the_whole_batch(self, empty_db):
        c = _client()
        jan = _bill(c.id, 2024, 1)

        with pytest.raises(ValueError):
            reconciliation.bulk_settle([jan.id, 12345])

        assert not billing.get_billing(jan.id).is_paid

    def test_empty_list_is_rejected(self, empty_db):
        with pytest.raises(ValueError):
            reconciliation.bulk_settle([])


class TestSettleAndReopen:
    def test_settle_pays_remaining_balance(self, empty_db):
        c = _client()
        jan = _bill(c.id, 2024, 1)
        reconciliation.allocate_payment(c.id, 250, received_at="2024-01-05")

        settled = reconciliation.settle_billing(jan.id, method="Wire", paid_date="2024-01-31")

        assert settled.is_paid
        assert settled.paid_amount == 1000.0
        assert settled.paid_date == "2024-01-31"
        assert [p.amount for p in reconciliation.list_payments(c.id)] == [750.0, 250.0]

    def test_settle_missing_record(self, empty_db):
        assert reconciliation.settle_billing(42) is None

    def test_reopen_shrinks_and_removes_payments(self, empty_db):
        c = _client()
        jan = _bill(c.id, 2024, 1)
        feb = _bill(c.id, 2024, 2)
        payment = reconciliation.allocate_payment(c.id, 1500, received_at="2024-02-10")

        reopened = reconciliation.reopen_billing(jan.id)

        assert reopened.status == "unpaid"
        assert reopened.paid_amount == 0
        assert reopened.paid_date is None
        remaining = reconciliation.get_payment(payment.id)
        assert remaining.amount == 500.0
        assert [a["billing_id"] for a in remaining.allocations] == [feb.id]

        reconciliation.reopen_billing(feb.id)
        assert reconciliation.get_payment(payment.id) is None


class TestAgingBuckets:
    def _seed(self):
        c = _client()
        _bill(c.id, 2024, 3)  # 9 days old on 2024-03-10
        _bill(c.id, 2024, 2)  # 38 days
        _bill(c.id, 2023, 12, 400)  # 100 days
        _bill(c.id, 2024, 4)  # not issued yet
        paid = _bill(c.id, 2023, 11)
        reconciliation.settle_billing(paid.id)
        return c

    def test_buckets_by_age_skipping_empty_ones(self, empty_db):
        self._seed()

        result = reconciliation.aging_buckets(date(2024, 3, 10))

        assert result == [
            {"bucket": "0-15 days", "count": 1, "total": 1000.0},
            {"bucket": "31-60 days", "count": 1, "total": 1000.0},
            {"bucket": "60+ days", "count": 1, "total": 400.0},
        ]

    def test_partial_payments_reduce_bucket_totals(self, empty_db):
        c = self._seed()
        # Oldest first: the December record takes the whole payment
        reconciliation.allocate_payment(c.id, 150, received_at="2024-03-01")

        result = reconciliation.aging_buckets(date(2024, 3, 10))

        assert result[-1] == {"bucket": "60+ days", "count": 1, "total": 250.0}

    def test_grace_period_delays_aging(self, empty_db, monkeypatch):
        self._seed()
        monkeypatch.setattr(config, "INVOICE_DUE_DAYS", 10)

        result = reconciliation.aging_buckets(date(2024, 3, 10))

        # March is not issued until the 11th
        assert [b["bucket"] for b in result] == ["16-30 days", "60+ days"]

    def test_bucket_boundaries(self):
        assert reconciliation.bucket_for(0) == "0-15 days"
        assert reconciliation.bucket_for(15) == "0-15 days"
        assert reconciliation.bucket_for(16) == "16-30 days"
        assert reconciliation.bucket_for(30) == "16-30 days"
        assert reconciliation.bucket_for(31) == "31-60 days"
        assert reconciliation.bucket_for(60) == "31-60 days"
        assert reconciliation.bucket_for(61) == "60+ days"

    def test_nothing_outstanding(self, empty_db):
        assert reconciliation.aging_buckets(date(2024, 3, 10)) == []


class TestReconciliationByMethod:
    def test_grouped_and_sorted_by_total(self, empty_db):
        c = _client()
        reconciliation.allocate_payment(c.id, 1000, method="Bank Transfer", received_at="2024-01-01")
        reconciliation.allocate_payment(c.id, 500, method="Bank Transfer", received_at="2024-02-01")
        reconciliation.allocate_payment(c.id, 2000, method="Credit Card", received_at="2024-03-01")

        assert reconciliation.reconciliation_by_method() == [
            {"method": "Credit Card", "count": 1, "total": 2000.0},
            {"method": "Bank Transfer", "count": 2, "total": 1500.0},
        ]


class TestGenerateMonthlyInvoices:
    def test_creates_for_billable_clients_only(self, empty_db):
        active = _client("Active Co", 1000)
        pending = _client("Pending Co", 500, status="pending")
        _client("Gone Co", 800, status="inactive")
        _client("Free Co", 0)

        result = reconciliation.generate_monthly_invoices(2024, 5)

        created = {r.client_id: r for r in result["created"]}
        assert set(created) == {active.id, pending.id}
        assert created[active.id].amount == 1000.0
        assert created[active.id].invoice_number == f"INV-202405{active.id:03d}"
        assert result["skipped"] == []

    def test_second_run_skips_existing(self, empty_db):
        c = _client()
        reconciliation.generate_monthly_invoices(2024, 5)

        again = reconciliation.generate_monthly_invoices(2024, 5)

        assert again["created"] == []
        assert again["skipped"] == [
            {"client_id": c.id, "client_name": "Acme Corp", "reason": "already billed"}
        ]

    def test_invalid_month(self, empty_db):
        with pytest.raises(ValueError):
            reconciliation.generate_monthly_invoices(2024, 13)


class TestInvoiceView:
    def test_partial_invoice(self, empty_db):
        c = _client(charge=1200)
        record = _bill(c.id, 2024, 5, 1200)
        reconciliation.allocate_payment(c.id, 200, received_at="2024-05-20")

        view = reconciliation.invoice_view(c.id, 2024, 5, profile={"company": "Test Agency", "currency": "USD"})

        assert view["billing_id"] == record.id
        assert view["status"] == "partial"
        assert view["amount"] == 1200.0
        assert view["paid_amount"] == 200.0
        assert view["balance_due"] == 1000.0
        assert view["items"][0]["description"] == "Digital marketing services - May 2024"
        assert view["company"]["company"] == "Test Agency"

    def test_without_billing_record_uses_monthly_charge(self, empty_db):
        c = _client(charge=850)

        view = reconciliation.invoice_view(c.id, 2024, 7)

        assert view["billing_id"] is None
        assert view["amount"] == 850.0
        assert view["status"] == "unpaid"
        assert view["invoice_number"] == f"INV-202407{c.id:03d}"

    def test_paid_invoice_has_no_balance(self, empty_db):
        c = _client()
        record = _bill(c.id, 2024, 1)
        reconciliation.settle_billing(record.id, paid_date="2024-01-09")

        view = reconciliation.invoice_view(c.id, 2024, 1)

        assert view["status"] == "paid"
        assert view["balance_due"] == 0
        assert view["paid_date"] == "2024-01-09"

    def test_unknown_client(self, empty_db):
        assert reconciliation.invoice_view(999, 2024, 1) is None
