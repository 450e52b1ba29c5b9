"""
Paid amount / balance due reconciliation

A booking records money in three overlapping places: the payment_status flag,
the deposit_amount field, and the itemized payment_milestones list. The
precedence used here:

1. deposit_amount counts as paid when payment_status is deposit_paid, unless a
   milestone named "Deposit" is itself marked paid (it would be counted twice).
2. Every milestone with status "paid" adds its amount.
3. payment_status "paid" wins over the itemized sum when the sum falls short.
"""
import copy
from datetime import datetime
from decimal import Decimal
from typing import NamedTuple, Optional

from core.config import logger, DEFAULT_DEPOSIT_PERCENTAGE
from core.errors import InvalidInput, NotFound
from models.booking import (
    BookingStatus, PaymentStatus, MilestoneStatus, normalize_enum,
)
from utils.milestones import parse_milestones, is_paid, is_deposit, milestone_amount
from utils.money import to_decimal, round_cents

ZERO = Decimal("0")


class BalanceSummary(NamedTuple):
    paid_amount: Decimal
    balance_due: Decimal  # floored at zero, for display
    raw_balance_due: Decimal  # signed, for auditing

    def to_dict(self) -> dict:
        return {
            "paid_amount": float(round_cents(self.paid_amount)),
            "balance_due": float(round_cents(self.balance_due)),
            "raw_balance_due": float(round_cents(self.raw_balance_due)),
        }


def _field(booking, name: str, default=None):
    if isinstance(booking, dict):
        return booking.get(name, default)
    return getattr(booking, name, default)


def compute_balance(booking) -> BalanceSummary:
    """Pure and total over ORM rows or plain mappings."""
    total = to_decimal(_field(booking, "total_price"), ZERO)
    status = normalize_enum(_field(booking, "payment_status"))
    milestones = parse_milestones(_field(booking, "payment_milestones"))

    paid = ZERO
    if status == PaymentStatus.DEPOSIT_PAID.value:
        deposit_milestone_paid = any(is_deposit(m) and is_paid(m) for m in milestones)
        if not deposit_milestone_paid:
            paid += to_decimal(_field(booking, "deposit_amount"), ZERO)

    for m in milestones:
        if not is_paid(m):
            continue
        amount = milestone_amount(m)
        if amount is None:
            continue
        paid += amount

    raw_balance = total - paid

    if status == PaymentStatus.PAID.value and paid < total:
        logger.info(f"[balance] booking {_field(booking, 'id')} flagged paid with itemized sum {paid} < {total}; trusting flag")
        paid = total
        raw_balance = ZERO

    return BalanceSummary(paid_amount=paid, balance_due=max(raw_balance, ZERO), raw_balance_due=raw_balance)


def amount_due_for_reminder(booking) -> Decimal:
    """Deposit while the deposit is outstanding, otherwise the unpaid milestones."""
    if normalize_enum(_field(booking, "payment_status")) == PaymentStatus.PENDING_DEPOSIT.value:
        deposit = to_decimal(_field(booking, "deposit_amount"))
        if deposit is not None:
            return deposit
        total = to_decimal(_field(booking, "total_price"), ZERO)
        return round_cents(total * to_decimal(DEFAULT_DEPOSIT_PERCENTAGE))

    due = ZERO
    for m in parse_milestones(_field(booking, "payment_milestones")):
        if not isinstance(m, dict) or is_paid(m):
            continue
        due += milestone_amount(m) or ZERO
    return due


def _mark_paid(milestone: dict, now: datetime, payment_reference: Optional[str] = None) -> None:
    milestone["status"] = MilestoneStatus.PAID.value
    milestone["paid_at"] = now.isoformat()
    if payment_reference:
        milestone["payment_reference"] = payment_reference


def _plan_settled(milestones: list) -> bool:
    paid_sum = sum((milestone_amount(m) or ZERO for m in milestones if is_paid(m)), ZERO)
    plan_sum = sum((milestone_amount(m) or ZERO for m in milestones if isinstance(m, dict)), ZERO)
    return bool(milestones) and paid_sum >= plan_sum


def apply_checkout_completed(
    booking,
    metadata: dict,
    payment_reference: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """
    Record a confirmed checkout on an ORM booking. Returns False when the event
    was already applied (replayed webhook), True when the booking changed.

    A deposit payment also marks the Deposit milestone paid, so the itemized
    plan stays the single record of what was paid once the status moves past
    deposit_paid.
    """
    now = now or datetime.utcnow()
    payment_type = normalize_enum(metadata.get("type") or "milestone")
    status = normalize_enum(booking.payment_status)
    milestones = copy.deepcopy(parse_milestones(booking.payment_milestones))
    deposit = next((m for m in milestones if is_deposit(m)), None)

    if payment_type == "deposit":
        if status in (PaymentStatus.DEPOSIT_PAID.value, PaymentStatus.PAID.value) or is_paid(deposit):
            return False
        if deposit is not None:
            _mark_paid(deposit, now, payment_reference)
            booking.payment_milestones = milestones
        if payment_reference:
            booking.payments_reference = payment_reference
        if deposit is not None and _plan_settled(milestones):
            booking.payment_status = PaymentStatus.PAID.value
            booking.status = BookingStatus.COMPLETED.value
            return True
        booking.payment_status = PaymentStatus.DEPOSIT_PAID.value
        if normalize_enum(booking.status) == BookingStatus.CONTRACT_SIGNED.value:
            booking.status = BookingStatus.PAYMENT_PENDING.value
        return True

    if payment_type != "milestone":
        raise InvalidInput(f"Unsupported payment type: {payment_type}")

    milestone_id = str(metadata.get("milestone_id") or "")
    target = next((m for m in milestones if isinstance(m, dict) and str(m.get("id")) == milestone_id), None)
    if target is None:
        raise NotFound("Milestone not found")
    if is_paid(target):
        return False

    _mark_paid(target, now, payment_reference)
    # A deposit recorded only on the status flag is folded into the plan before the flag changes
    if status == PaymentStatus.DEPOSIT_PAID.value and deposit is not None and not is_paid(deposit):
        _mark_paid(deposit, now)

    if _plan_settled(milestones):
        booking.payment_status = PaymentStatus.PAID.value
        booking.status = BookingStatus.COMPLETED.value
    elif any(is_paid(m) for m in milestones):
        booking.payment_status = PaymentStatus.PARTIAL.value

    # Reassign so the JSON column is flagged dirty
    booking.payment_milestones = milestones
    return True
