"""
Payment milestone helpers
Standard two-installment plan (Deposit + Final Payment) and tolerant parsing
of the milestone list stored on a booking.
"""
import json
import secrets
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional, List

from core.config import logger, FINAL_PAYMENT_DAYS_BEFORE_EVENT
from core.errors import DataInconsistency, InvalidInput, InvalidAmount
from models.booking import MilestoneStatus
from utils.dates import parse_date
from utils.money import to_decimal, round_cents

DEPOSIT_NAME = "Deposit"
FINAL_PAYMENT_NAME = "Final Payment"


def _milestone_id() -> str:
    return secrets.token_hex(4)


def _new_milestone(name: str, amount: Decimal, due: date) -> dict:
    return {
        "id": _milestone_id(),
        "name": name,
        "amount": amount,
        "percentage": None,
        "due_date": due.isoformat(),
        "status": MilestoneStatus.PENDING.value,
        "paid_at": None,
        "payment_reference": None,
    }


def calculate_deposit_amount(total_price, deposit_percentage) -> Decimal:
    """Deposit from a percentage expressed as a fraction (0.2 == 20%), half-up to cents."""
    total = to_decimal(total_price)
    pct = to_decimal(deposit_percentage)
    if total is None or total < 0:
        raise InvalidAmount("total_price must be a non-negative amount")
    if pct is None or pct < 0 or pct > 1:
        raise InvalidAmount("deposit_percentage must be between 0 and 1")
    return round_cents(total * pct)


def generate_standard_milestones(total_price, deposit_amount, event_date, today: Optional[date] = None) -> List[dict]:
    """
    Deposit due today and Final Payment due FINAL_PAYMENT_DAYS_BEFORE_EVENT days
    before the event. A final due date already in the past is kept as is.
    """
    total = to_decimal(total_price)
    deposit = to_decimal(deposit_amount)
    if total is None or deposit is None:
        raise InvalidInput("total_price and deposit_amount must be numbers")
    if total < 0:
        raise InvalidInput("total_price must be non-negative")
    if deposit < 0 or deposit > total:
        raise InvalidInput("deposit_amount must be between 0 and total_price")

    event_day = parse_date(event_date)
    if event_day is None:
        raise InvalidInput("event_date must be a valid date")

    today = today or datetime.utcnow().date()
    final_due = event_day - timedelta(days=FINAL_PAYMENT_DAYS_BEFORE_EVENT)

    return [
        _new_milestone(DEPOSIT_NAME, deposit, today),
        _new_milestone(FINAL_PAYMENT_NAME, total - deposit, final_due),
    ]


def load_milestones(value) -> list:
    """Strict loader: a list, or a JSON string holding one. Raises DataInconsistency otherwise."""
    if value is None:
        return []
    if isinstance(value, (bytes, str)):
        try:
            value = json.loads(value)
        except (TypeError, ValueError) as ex:
            raise DataInconsistency("unparseable payment_milestones") from ex
    if not isinstance(value, (list, tuple)):
        raise DataInconsistency(f"payment_milestones is {type(value).__name__}, expected list")
    return list(value)


def parse_milestones(value) -> list:
    """
    Milestones may arrive as a list or as a serialized JSON string.
    Anything unparseable is treated as an empty plan.
    """
    try:
        return load_milestones(value)
    except DataInconsistency as ex:
        logger.warning(f"[milestones] {ex.message}; treating as empty")
        return []


def find_milestone(milestones, milestone_id: str) -> Optional[dict]:
    for m in parse_milestones(milestones):
        if isinstance(m, dict) and str(m.get("id")) == str(milestone_id):
            return m
    return None


def is_paid(milestone) -> bool:
    return isinstance(milestone, dict) and str(milestone.get("status") or "").strip().lower() == MilestoneStatus.PAID.value


def is_deposit(milestone) -> bool:
    return isinstance(milestone, dict) and str(milestone.get("name") or "").strip().lower() == DEPOSIT_NAME.lower()


def milestone_amount(milestone) -> Optional[Decimal]:
    if not isinstance(milestone, dict):
        return None
    return to_decimal(milestone.get("amount"))
