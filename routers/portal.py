"""
Client Portal Router
Public, token-scoped view of a single booking: contract signing and checkout
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session, joinedload

from core.config import logger
from core.database import get_db
from core.errors import InvalidInput, NotFound
from models.booking import Booking, BookingStatus, PaymentStatus, normalize_enum
from utils.balance import compute_balance
from utils.links import build_portal_url
from utils.milestones import parse_milestones, find_milestone, is_deposit, is_paid, milestone_amount
from utils.money import to_decimal, round_cents
from utils.notifications import notify_contract_signed
from utils.payments import build_checkout_form, create_checkout_session, pick_checkout_url
from utils.pricing import compute_gross_charge

router = APIRouter(prefix="/api/portal", tags=["portal"])


# ============ Pydantic Models ============

class SignContract(BaseModel):
    signature_name: str


class CheckoutRequest(BaseModel):
    type: Optional[str] = None
    milestone_id: Optional[str] = None


# ============ Helper Functions ============

def _booking_for_token(db: Session, token: str) -> Booking:
    token = (token or "").strip()
    if not token:
        raise NotFound("Booking not found")
    booking = db.query(Booking).options(
        joinedload(Booking.client), joinedload(Booking.photographer),
    ).filter(Booking.portal_token == token).first()
    if not booking:
        raise NotFound("Booking not found")
    return booking


def _portal_response(booking: Booking) -> dict:
    data = booking.to_portal_dict()
    data["balance"] = compute_balance(booking).to_dict()
    return data


# ============ Routes ============

@router.get("/{token}")
async def get_portal(token: str, db: Session = Depends(get_db)):
    booking = _booking_for_token(db, token)
    return _portal_response(booking)


@router.post("/{token}/sign")
async def sign_contract(token: str, data: SignContract, db: Session = Depends(get_db)):
    booking = _booking_for_token(db, token)

    name = (data.signature_name or "").strip()
    if not name:
        raise InvalidInput("Signature name is required")
    if not (booking.contract_text or "").strip():
        raise InvalidInput("There is no contract to sign")
    if booking.contract_signed_at:
        raise InvalidInput("Contract already signed")

    booking.contract_signed_at = datetime.utcnow()
    booking.contract_signed_by = name
    booking.status = BookingStatus.CONTRACT_SIGNED.value
    db.commit()
    db.refresh(booking)
    logger.info(f"[portal] contract signed for booking {booking.id}")
    notify_contract_signed(booking)
    return _portal_response(booking)


@router.post("/{token}/checkout")
async def create_checkout(token: str, data: CheckoutRequest, db: Session = Depends(get_db)):
    """
    Start a checkout for the deposit or one milestone. The client is charged
    the fee-inclusive gross so the photographer nets the milestone amount.
    """
    booking = _booking_for_token(db, token)
    photographer = booking.photographer
    if not photographer or not photographer.payments_account_id:
        raise InvalidInput("This photographer is not accepting online payments yet")

    payment_type = normalize_enum(data.type or ("milestone" if data.milestone_id else ""))
    booking_status = normalize_enum(booking.payment_status)
    if booking_status == PaymentStatus.PAID.value:
        raise InvalidInput("Booking is already paid in full")
    milestone = None
    if payment_type == "deposit":
        if booking_status != PaymentStatus.PENDING_DEPOSIT.value:
            raise InvalidInput("Deposit is not outstanding")
        net = to_decimal(booking.deposit_amount)
        description = f"Deposit - {booking.service_type or 'photography'}"
    elif payment_type == "milestone":
        milestone = find_milestone(booking.payment_milestones, data.milestone_id or "")
        if milestone is None:
            raise NotFound("Milestone not found")
        if is_paid(milestone) or (is_deposit(milestone) and booking_status == PaymentStatus.DEPOSIT_PAID.value):
            raise InvalidInput("Milestone already paid")
        net = milestone_amount(milestone)
        description = f"{milestone.get('name') or 'Payment'} - {booking.service_type or 'photography'}"
    else:
        raise InvalidInput("Provide type 'deposit' or a milestone_id")

    if net is None or net <= 0:
        raise InvalidInput("Nothing to pay")

    charge = compute_gross_charge(net)
    metadata = {
        "booking_id": booking.id,
        "milestone_id": milestone.get("id") if milestone else None,
        "type": payment_type,
        "photographer_id": photographer.id,
        "base_amount": str(round_cents(net)),
        "fee_amount": str(round_cents(charge.fee_amount)),
    }
    form = build_checkout_form(
        charge=charge,
        description=description,
        destination_account=photographer.payments_account_id,
        success_url=build_portal_url(booking.portal_token, payment="success"),
        cancel_url=build_portal_url(booking.portal_token, payment="cancelled"),
        metadata=metadata,
    )
    session = await create_checkout_session(form)
    session_id = str(session.get("id") or "")

    if milestone is not None and session_id:
        milestones = parse_milestones(booking.payment_milestones)
        updated = []
        for m in milestones:
            if isinstance(m, dict) and str(m.get("id")) == str(milestone.get("id")):
                m = {**m, "payment_reference": session_id}
            updated.append(m)
        booking.payment_milestones = updated
    elif session_id:
        booking.payments_reference = session_id
    db.commit()

    logger.info(f"[portal] checkout {session_id or '-'} created for booking {booking.id} ({payment_type})")
    return {
        "session_id": session_id or None,
        "url": pick_checkout_url(session),
        "amount": float(round_cents(charge.gross_amount)),
        "base_amount": float(round_cents(net)),
        "fee_amount": float(round_cents(charge.fee_amount)),
    }
