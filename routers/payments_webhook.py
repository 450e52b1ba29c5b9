"""
Payments Webhook Router
Receives processor events and records confirmed checkouts on bookings
"""
from fastapi import APIRouter, Request, Depends
from sqlalchemy.orm import Session

from core.config import logger
from core.database import get_db
from models.booking import Booking
from utils.balance import apply_checkout_completed
from utils.milestones import find_milestone, milestone_amount
from utils.money import to_decimal
from utils.notifications import notify_payment_received
from utils.payments import verify_webhook

router = APIRouter(prefix="/api/payments", tags=["payments"])

CHECKOUT_COMPLETED = "checkout.session.completed"


def _event_object(payload: dict) -> dict:
    # Common provider shapes: { data: { object: {...} } } or { data: {...} }
    data_node = payload.get("data")
    if isinstance(data_node, dict) and isinstance(data_node.get("object"), dict):
        return data_node["object"]
    if isinstance(data_node, dict):
        return data_node
    return {}


def _paid_item(booking: Booking, metadata: dict):
    """Net amount and label of what a checkout paid for, from its metadata."""
    amount = to_decimal(metadata.get("base_amount"))
    if str(metadata.get("type") or "").strip().lower() == "deposit":
        return (amount if amount is not None else to_decimal(booking.deposit_amount)), "Deposit"
    milestone = find_milestone(booking.payment_milestones, str(metadata.get("milestone_id") or "")) or {}
    if amount is None:
        amount = milestone_amount(milestone)
    return amount, milestone.get("name") or "Payment"


@router.post("/webhook")
async def payments_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Signed with Standard Webhooks headers. Unknown event types are acknowledged
    and ignored; a replayed checkout event leaves the booking untouched.
    """
    raw_body = await request.body()
    payload = verify_webhook(raw_body, request.headers)

    evt_type = str(payload.get("type") or payload.get("event") or "").strip().lower()
    logger.info(f"[payments.webhook] received {evt_type or 'unknown'} event")
    if evt_type != CHECKOUT_COMPLETED:
        return {"received": True, "applied": False}

    event_obj = _event_object(payload)
    metadata = event_obj.get("metadata") if isinstance(event_obj.get("metadata"), dict) else {}
    booking_id = str(metadata.get("booking_id") or "")
    if not booking_id:
        logger.warning("[payments.webhook] checkout event without booking_id metadata")
        return {"received": True, "applied": False}

    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        logger.warning(f"[payments.webhook] booking {booking_id} not found")
        return {"received": True, "applied": False}

    applied = apply_checkout_completed(booking, metadata, payment_reference=event_obj.get("id"))
    if applied:
        db.commit()
        logger.info(f"[payments.webhook] recorded {metadata.get('type') or 'milestone'} payment for booking {booking_id}")
        amount, label = _paid_item(booking, metadata)
        notify_payment_received(booking, amount, label)
    else:
        logger.info(f"[payments.webhook] duplicate event for booking {booking_id}; nothing to do")
    return {"received": True, "applied": applied}
