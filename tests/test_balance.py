"""
Unit Tests: Paid amount / balance due reconciliation
"""
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from core.errors import InvalidInput, NotFound
from utils.balance import amount_due_for_reminder, apply_checkout_completed, compute_balance


def _booking(**fields):
    base = {
        "id": "b-1",
        "total_price": 2000,
        "deposit_amount": 500,
        "payment_status": "pending",
        "payment_milestones": [],
    }
    base.update(fields)
    return base


class TestComputeBalance:

    def test_nothing_paid(self):
        summary = compute_balance(_booking())
        assert summary.paid_amount == 0
        assert summary.balance_due == Decimal("2000")

    def test_deposit_flag_counts_deposit_field(self):
        summary = compute_balance(_booking(payment_status="deposit_paid"))
        assert summary.paid_amount == Decimal("500")
        assert summary.balance_due == Decimal("1500")

    def test_deposit_not_double_counted(self):
        booking = _booking(
            payment_status="deposit-paid",
            payment_milestones=[
                {"id": "d", "name": "Deposit", "amount": 500, "status": "paid"},
                {"id": "f", "name": "Final Payment", "amount": 1500, "status": "pending"},
            ],
        )
        assert compute_balance(booking).paid_amount == Decimal("500")

    def test_paid_flag_overrides_short_itemized_sum(self):
        booking = _booking(
            payment_status="paid",
            payment_milestones=[{"id": "d", "name": "Deposit", "amount": 500, "status": "paid"}],
        )
        summary = compute_balance(booking)
        assert summary.balance_due == 0
        assert summary.paid_amount == Decimal("2000")

    def test_overpayment_is_floored_for_display(self):
        booking = _booking(
            total_price=100,
            payment_milestones=[{"id": "x", "name": "Deposit", "amount": 150, "status": "paid"}],
        )
        summary = compute_balance(booking)
        assert summary.balance_due == 0
        assert summary.raw_balance_due == Decimal("-50")

    def test_milestones_as_json_string(self):
        booking = _booking(payment_milestones='[{"id": "a", "name": "Final Payment", "amount": 1500, "status": "paid"}]')
        assert compute_balance(booking).paid_amount == Decimal("1500")

    def test_malformed_milestone_entries_are_skipped(self):
        booking = _booking(payment_milestones=[
            None,
            "x",
            42,
            {"id": "d", "name": "Deposit", "amount": 500, "status": "paid"},
            {"id": "bad", "name": "Second", "amount": "abc", "status": "paid"},
            {"id": "nostatus", "name": "Third", "amount": 300},
            {"id": "f", "name": "Final Payment", "amount": "250.50", "status": "PAID"},
        ])
        summary = compute_balance(booking)
        assert summary.paid_amount == Decimal("750.50")
        assert summary.balance_due == Decimal("1249.50")

    def test_pure(self):
        booking = _booking(payment_status="deposit_paid")
        assert compute_balance(booking) == compute_balance(booking)

    def test_to_dict_rounds_to_cents(self):
        data = compute_balance(_booking(total_price="99.999")).to_dict()
        assert data["balance_due"] == 100.0


class TestAmountDueForReminder:

    def test_pending_deposit_uses_deposit_amount(self):
        assert amount_due_for_reminder(_booking(payment_status="pending_deposit")) == Decimal("500")

    def test_pending_deposit_without_amount_uses_default_percentage(self):
        booking = _booking(payment_status="pending_deposit", deposit_amount=None)
        assert amount_due_for_reminder(booking) == Decimal("400.00")

    def test_otherwise_sums_unpaid_milestones(self):
        booking = _booking(payment_milestones=[
            {"id": "d", "name": "Deposit", "amount": 500, "status": "paid"},
            {"id": "f", "name": "Final Payment", "amount": 1500, "status": "pending"},
        ])
        assert amount_due_for_reminder(booking) == Decimal("1500")


class TestApplyCheckoutCompleted:

    def _row(self, **fields):
        values = dict(
            id="b-1",
            status="contract_signed",
            payment_status="pending_deposit",
            payments_reference=None,
            payment_milestones=[
                {"id": "d", "name": "Deposit", "amount": 400, "status": "pending", "paid_at": None},
                {"id": "f", "name": "Final Payment", "amount": 1600, "status": "pending", "paid_at": None},
            ],
        )
        values.update(fields)
        return SimpleNamespace(**values)

    def test_deposit_payment(self):
        row = self._row()
        assert apply_checkout_completed(row, {"type": "deposit"}, payment_reference="cs_1") is True
        assert row.payment_status == "deposit_paid"
        assert row.status == "payment_pending"
        assert row.payments_reference == "cs_1"
        assert row.payment_milestones[0]["status"] == "paid"
        assert row.payment_milestones[0]["payment_reference"] == "cs_1"
        assert row.payment_milestones[1]["status"] == "pending"

    def test_deposit_replay_is_noop(self):
        row = self._row(payment_status="deposit_paid")
        assert apply_checkout_completed(row, {"type": "deposit"}) is False

    def test_deposit_then_final_reaches_paid(self):
        row = self._row()
        assert apply_checkout_completed(row, {"type": "deposit"})
        assert apply_checkout_completed(row, {"type": "milestone", "milestone_id": "f"})

        assert row.payment_status == "paid"
        assert row.status == "completed"
        assert all(m["status"] == "paid" for m in row.payment_milestones)

    def test_deposit_recorded_only_on_flag_is_folded_into_plan(self):
        row = self._row(payment_status="deposit_paid")
        assert apply_checkout_completed(row, {"milestone_id": "f"})

        assert row.payment_milestones[0]["status"] == "paid"
        assert row.payment_status == "paid"

    def test_deposit_event_after_deposit_milestone_paid_is_noop(self):
        row = self._row()
        apply_checkout_completed(row, {"milestone_id": "d"})
        assert row.payment_status == "partial"
        assert apply_checkout_completed(row, {"type": "deposit"}) is False

    def test_milestone_payments_move_to_partial_then_paid(self):
        row = self._row()
        now = datetime(2025, 3, 1, 12, 0, 0)

        assert apply_checkout_completed(row, {"type": "milestone", "milestone_id": "d"}, now=now)
        assert row.payment_status == "partial"
        assert row.payment_milestones[0]["paid_at"] == now.isoformat()

        assert apply_checkout_completed(row, {"type": "milestone", "milestone_id": "f"}, now=now)
        assert row.payment_status == "paid"
        assert row.status == "completed"

    def test_milestone_replay_is_noop(self):
        row = self._row()
        apply_checkout_completed(row, {"milestone_id": "d"})
        before = row.payment_milestones
        assert apply_checkout_completed(row, {"milestone_id": "d"}) is False
        assert row.payment_milestones is before

    def test_unknown_milestone(self):
        with pytest.raises(NotFound):
            apply_checkout_completed(self._row(), {"milestone_id": "nope"})

    def test_unknown_type(self):
        with pytest.raises(InvalidInput):
            apply_checkout_completed(self._row(), {"type": "refund"})
