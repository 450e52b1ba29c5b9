"""
Activity timeline
Reconstructed from booking field state on every read; nothing here is stored.
"""
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from core.config import RECENT_BOOKING_DAYS
from models.booking import BookingStatus, SENT_STATUSES, normalize_enum
from utils.dates import parse_datetime
from utils.milestones import parse_milestones, milestone_amount
from utils.money import format_money


def _field(booking, name: str, default=None):
    if isinstance(booking, dict):
        return booking.get(name, default)
    return getattr(booking, name, default)


def _client_name(booking) -> str:
    name = _field(booking, "client_name")
    if not name:
        client = _field(booking, "client")
        name = _field(client, "name") if client is not None else None
    return name or "Unknown Client"


def _event(booking, suffix: str, type_: str, description: str, timestamp: datetime, **extra) -> dict:
    booking_id = str(_field(booking, "id"))
    return {
        "id": f"{booking_id}-{suffix}",
        "type": type_,
        "description": description,
        "booking_id": booking_id,
        "client_name": _client_name(booking),
        "timestamp": timestamp,
        **extra,
    }


def booking_events(booking, now: datetime) -> List[dict]:
    events = []
    status = normalize_enum(_field(booking, "status"))
    created_at = parse_datetime(_field(booking, "created_at"))

    if status == BookingStatus.INQUIRY.value:
        if created_at:
            events.append(_event(booking, "inquiry", "inquiry", "Inquiry received", created_at))
    elif status != BookingStatus.DRAFT.value:
        if created_at and created_at >= now - timedelta(days=RECENT_BOOKING_DAYS):
            service = _field(booking, "service_type") or "session"
            events.append(_event(booking, "created", "booking", f"Booking created for {service}", created_at))

    if status in SENT_STATUSES:
        sent_at = parse_datetime(_field(booking, "updated_at")) or created_at
        if sent_at:
            events.append(_event(booking, "contract-sent", "contract_sent", "Contract sent", sent_at))

    signed_at = parse_datetime(_field(booking, "contract_signed_at"))
    if signed_at:
        events.append(_event(booking, "contract-signed", "contract_signed", "Contract signed", signed_at))

    for index, milestone in enumerate(parse_milestones(_field(booking, "payment_milestones"))):
        if not isinstance(milestone, dict):
            continue
        paid_at = parse_datetime(milestone.get("paid_at"))
        amount = milestone_amount(milestone)
        if not paid_at or amount is None:
            continue
        events.append(_event(
            booking, f"payment-{index}", "payment",
            f"Payment received: {format_money(amount)}", paid_at,
            amount=float(amount),
        ))

    reminded_at = parse_datetime(_field(booking, "last_reminder_sent"))
    if reminded_at:
        events.append(_event(booking, "reminder", "reminder", "Payment reminder sent", reminded_at))

    return events


def build_timeline(bookings: Iterable, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[dict]:
    """Most recent first. Equal timestamps keep booking/generation order."""
    now = now or datetime.utcnow()
    events = []
    for booking in bookings:
        events.extend(booking_events(booking, now))
    events.sort(key=lambda e: e["timestamp"], reverse=True)
    if limit is not None:
        events = events[:limit]
    return events
