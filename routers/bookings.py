"""
Bookings Router
Clients, bookings and payment milestones for the signed-in photographer
"""
import secrets
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Request, Query, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, joinedload

from core.config import logger, DEFAULT_DEPOSIT_PERCENTAGE
from core.auth import get_uid_from_request, get_photographer
from core.database import get_db
from core.errors import InvalidInput, NotFound
from models.booking import (
    Booking, Client, Photographer, BookingStatus, PaymentStatus,
    parse_booking_status, normalize_enum,
)
from utils.balance import compute_balance
from utils.dates import parse_date
from utils.links import build_portal_url
from utils.milestones import calculate_deposit_amount, generate_standard_milestones, is_paid
from utils.money import to_decimal
from utils.notifications import send_contract_email
from utils.reminders import send_manual_reminder
from utils.timeline import build_timeline

router = APIRouter(prefix="/api", tags=["bookings"])


# ============ Pydantic Models ============

class ClientCreate(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None


class BookingCreate(BaseModel):
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    service_type: Optional[str] = "other"
    event_date: str
    total_price: float = Field(ge=0)
    deposit_amount: Optional[float] = None
    deposit_percentage: Optional[float] = None
    status: Optional[str] = "draft"
    contract_text: Optional[str] = None


class SendContract(BaseModel):
    contract_text: Optional[str] = None


class InquiryCreate(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None
    service_type: Optional[str] = "other"
    event_date: Optional[str] = None
    message: Optional[str] = None


# ============ Helper Functions ============

def _owned_client(db: Session, photographer: Photographer, client_id: str) -> Client:
    client = db.query(Client).filter(
        Client.id == client_id,
        Client.photographer_id == photographer.id,
    ).first()
    if not client:
        raise NotFound("Client not found")
    return client


def _owned_booking(db: Session, photographer: Photographer, booking_id: str) -> Booking:
    booking = db.query(Booking).options(joinedload(Booking.client)).filter(
        Booking.id == booking_id,
        Booking.photographer_id == photographer.id,
    ).first()
    if not booking:
        raise NotFound("Booking not found")
    return booking


def _booking_response(booking: Booking, with_timeline: bool = False) -> dict:
    data = booking.to_dict()
    data["balance"] = compute_balance(booking).to_dict()
    data["portal_url"] = build_portal_url(booking.portal_token)
    if with_timeline:
        data["timeline"] = build_timeline([booking])
    return data


def _next_due_date(milestones: list):
    for m in milestones:
        if not is_paid(m):
            return parse_date(m.get("due_date"))
    return None


def _resolve_deposit(data: BookingCreate, photographer: Photographer) -> Decimal:
    if data.deposit_amount is not None:
        return to_decimal(data.deposit_amount)
    pct = data.deposit_percentage
    if pct is None:
        pct = photographer.deposit_percentage if photographer.deposit_percentage is not None else DEFAULT_DEPOSIT_PERCENTAGE
    return calculate_deposit_amount(data.total_price, pct)


def _unauthorized() -> JSONResponse:
    return JSONResponse({"error": "Unauthorized"}, status_code=401)


# ============ Clients ============

@router.get("/clients")
async def list_clients(
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    uid = get_uid_from_request(request)
    if not uid:
        return _unauthorized()
    photographer = get_photographer(db, uid)

    query = db.query(Client).filter(Client.photographer_id == photographer.id)
    total = query.count()
    clients = query.order_by(Client.created_at.desc()).offset(offset).limit(limit).all()
    return {"clients": [c.to_dict() for c in clients], "total": total, "limit": limit, "offset": offset}


@router.post("/clients")
async def create_client(request: Request, data: ClientCreate, db: Session = Depends(get_db)):
    uid = get_uid_from_request(request)
    if not uid:
        return _unauthorized()
    photographer = get_photographer(db, uid)

    name = (data.name or "").strip()
    if not name:
        raise InvalidInput("Client name is required")
    client = Client(
        photographer_id=photographer.id,
        name=name,
        email=(data.email or "").strip().lower() or None,
        phone=data.phone,
        notes=data.notes,
    )
    db.add(client)
    db.commit()
    db.refresh(client)
    return client.to_dict()


@router.get("/clients/{client_id}")
async def get_client(request: Request, client_id: str, db: Session = Depends(get_db)):
    """Client with their bookings, lifetime totals and activity timeline"""
    uid = get_uid_from_request(request)
    if not uid:
        return _unauthorized()
    photographer = get_photographer(db, uid)
    client = _owned_client(db, photographer, client_id)

    bookings = db.query(Booking).filter(
        Booking.client_id == client.id,
        Booking.photographer_id == photographer.id,
    ).order_by(Booking.created_at.desc()).all()

    total_value = sum((to_decimal(b.total_price, Decimal("0")) for b in bookings), Decimal("0"))
    total_paid = sum((compute_balance(b).paid_amount for b in bookings), Decimal("0"))

    result = client.to_dict()
    result["bookings"] = [_booking_response(b) for b in bookings]
    result["total_value"] = float(total_value)
    result["total_paid"] = float(total_paid)
    result["timeline"] = build_timeline(bookings)
    return result


# ============ Bookings ============

@router.get("/bookings")
async def list_bookings(
    request: Request,
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    uid = get_uid_from_request(request)
    if not uid:
        return _unauthorized()
    photographer = get_photographer(db, uid)

    query = db.query(Booking).options(joinedload(Booking.client)).filter(Booking.photographer_id == photographer.id)
    if status:
        query = query.filter(Booking.status == normalize_enum(status))
    total = query.count()
    bookings = query.order_by(Booking.event_date.asc()).offset(offset).limit(limit).all()
    return {"bookings": [_booking_response(b) for b in bookings], "total": total, "limit": limit, "offset": offset}


@router.post("/bookings")
async def create_booking(request: Request, data: BookingCreate, db: Session = Depends(get_db)):
    """Create a booking with the standard Deposit + Final Payment plan"""
    uid = get_uid_from_request(request)
    if not uid:
        return _unauthorized()
    photographer = get_photographer(db, uid)

    if data.client_id:
        client = _owned_client(db, photographer, data.client_id)
    elif (data.client_name or "").strip():
        client = Client(
            photographer_id=photographer.id,
            name=data.client_name.strip(),
            email=(data.client_email or "").strip().lower() or None,
        )
        db.add(client)
    else:
        raise InvalidInput("client_id or client_name is required")

    event_date = parse_date(data.event_date)
    if event_date is None:
        raise InvalidInput("event_date must be a valid date")

    deposit = _resolve_deposit(data, photographer)
    milestones = generate_standard_milestones(data.total_price, deposit, event_date)

    booking = Booking(
        photographer_id=photographer.id,
        client=client,
        client_email=(data.client_email or client.email or None),
        service_type=(data.service_type or "other").strip().lower(),
        event_date=event_date,
        status=parse_booking_status(data.status, BookingStatus.DRAFT).value,
        contract_text=data.contract_text,
        total_price=to_decimal(data.total_price),
        deposit_amount=deposit,
        payment_status=(PaymentStatus.PENDING_DEPOSIT if deposit > 0 else PaymentStatus.PENDING).value,
        payment_milestones=milestones,
        payment_due_date=_next_due_date(milestones),
        portal_token=secrets.token_urlsafe(32),
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    logger.info(f"[bookings] created booking {booking.id} for photographer {photographer.id}")
    return _booking_response(booking, with_timeline=True)


@router.get("/bookings/{booking_id}")
async def get_booking(request: Request, booking_id: str, db: Session = Depends(get_db)):
    uid = get_uid_from_request(request)
    if not uid:
        return _unauthorized()
    photographer = get_photographer(db, uid)
    booking = _owned_booking(db, photographer, booking_id)
    return _booking_response(booking, with_timeline=True)


@router.post("/bookings/{booking_id}/send-contract")
async def send_contract(request: Request, booking_id: str, data: SendContract, db: Session = Depends(get_db)):
    uid = get_uid_from_request(request)
    if not uid:
        return _unauthorized()
    photographer = get_photographer(db, uid)
    booking = _owned_booking(db, photographer, booking_id)

    if booking.contract_signed_at:
        raise InvalidInput("Contract already signed")
    if data.contract_text:
        booking.contract_text = data.contract_text
    if not (booking.contract_text or "").strip():
        raise InvalidInput("Booking has no contract text")

    booking.status = BookingStatus.CONTRACT_SENT.value
    booking.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(booking)

    data = _booking_response(booking)
    data["email_sent"] = send_contract_email(booking)
    return data


@router.post("/bookings/{booking_id}/send-reminder")
async def send_reminder(request: Request, booking_id: str, db: Session = Depends(get_db)):
    uid = get_uid_from_request(request)
    if not uid:
        return _unauthorized()
    photographer = get_photographer(db, uid)
    booking = _owned_booking(db, photographer, booking_id)

    sent_at = send_manual_reminder(db, booking)
    return {"success": True, "booking_id": booking.id, "last_reminder_sent": sent_at.isoformat()}


# ============ Activity ============

@router.get("/activity")
async def get_activity(
    request: Request,
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Recent activity across all of the photographer's bookings"""
    uid = get_uid_from_request(request)
    if not uid:
        return _unauthorized()
    photographer = get_photographer(db, uid)

    bookings = db.query(Booking).options(joinedload(Booking.client)).filter(
        Booking.photographer_id == photographer.id,
    ).all()
    return {"events": build_timeline(bookings, limit=limit)}


# ============ Public inquiry ============

@router.post("/inquiry/{username}")
async def submit_inquiry(username: str, data: InquiryCreate, db: Session = Depends(get_db)):
    """Public inquiry form: creates (or reuses) the client and an inquiry booking"""
    photographer = db.query(Photographer).filter(Photographer.username == username.strip().lower()).first()
    if not photographer:
        raise NotFound("Photographer not found")

    name = (data.name or "").strip()
    email = (data.email or "").strip().lower()
    if not name or "@" not in email:
        raise InvalidInput("Name and a valid email are required")

    event_date = None
    if data.event_date:
        event_date = parse_date(data.event_date)
        if event_date is None:
            raise InvalidInput("event_date must be a valid date")

    client = db.query(Client).filter(
        Client.photographer_id == photographer.id,
        Client.email == email,
    ).first()
    if not client:
        client = Client(photographer_id=photographer.id, name=name, email=email, phone=data.phone, notes=data.message)
        db.add(client)

    booking = Booking(
        photographer_id=photographer.id,
        client=client,
        client_email=email,
        service_type=(data.service_type or "other").strip().lower(),
        event_date=event_date,
        status=BookingStatus.INQUIRY.value,
        total_price=Decimal("0"),
        payment_status=PaymentStatus.PENDING.value,
        payment_milestones=[],
        portal_token=secrets.token_urlsafe(32),
    )
    db.add(booking)
    db.commit()
    logger.info(f"[inquiry] new inquiry {booking.id} for {photographer.username}")
    return {"success": True, "booking_id": booking.id}
