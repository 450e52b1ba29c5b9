"""
Booking System Models
Photographers, their clients, and bookings with payment milestones
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import Column, String, Text, DateTime, Date, Boolean, Integer, Numeric, ForeignKey, JSON, Index, func
from sqlalchemy.orm import relationship
import uuid
import enum

from core.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def normalize_enum(value) -> str:
    """`DEPOSIT_PAID`, `deposit-paid` and `deposit_paid` are the same value."""
    if isinstance(value, enum.Enum):
        value = value.value
    return str(value or "").strip().lower().replace("-", "_").replace(" ", "_")


def normalized_enum_column(column):
    """SQL-side counterpart of `normalize_enum`, for filtering rows with legacy spellings."""
    return func.replace(func.replace(func.lower(func.trim(column)), "-", "_"), " ", "_")


class BookingStatus(str, enum.Enum):
    INQUIRY = "inquiry"
    DRAFT = "draft"
    CONTRACT_SENT = "contract_sent"
    PROPOSAL_SENT = "proposal_sent"
    CONTRACT_SIGNED = "contract_signed"
    PAYMENT_PENDING = "payment_pending"
    COMPLETED = "completed"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    PENDING_DEPOSIT = "pending_deposit"
    DEPOSIT_PAID = "deposit_paid"


class MilestoneStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


SENT_STATUSES = {BookingStatus.CONTRACT_SENT.value, BookingStatus.PROPOSAL_SENT.value}
SIGNED_STATUSES = {BookingStatus.CONTRACT_SIGNED.value, BookingStatus.PAYMENT_PENDING.value}


def parse_booking_status(value: Optional[str], default: BookingStatus = BookingStatus.INQUIRY) -> BookingStatus:
    try:
        return BookingStatus(normalize_enum(value))
    except ValueError:
        return default


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _money(value) -> Optional[float]:
    return float(value) if value is not None else None


class Photographer(Base):
    """Studio account; owns clients and bookings"""
    __tablename__ = "photographers"

    id = Column(String(36), primary_key=True, default=_uuid)
    uid = Column(String(128), nullable=False, unique=True, index=True)  # Firebase UID

    business_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=False)
    username = Column(String(100), nullable=True, unique=True, index=True)  # public inquiry slug
    logo_url = Column(Text, nullable=True)

    # Reminders
    auto_reminders_enabled = Column(Boolean, default=True, nullable=False)

    # Payments (connected account)
    payments_account_id = Column(String(255), nullable=True)
    deposit_percentage = Column(Numeric(5, 4), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    clients = relationship("Client", back_populates="photographer", cascade="all, delete-orphan")
    bookings = relationship("Booking", back_populates="photographer")

    @property
    def studio_name(self) -> str:
        return self.business_name or self.email

    def to_dict(self):
        return {
            "id": self.id,
            "business_name": self.business_name,
            "email": self.email,
            "username": self.username,
            "logo_url": self.logo_url,
            "auto_reminders_enabled": bool(self.auto_reminders_enabled),
            "payments_connected": bool(self.payments_account_id),
            "deposit_percentage": _money(self.deposit_percentage),
            "created_at": _iso(self.created_at),
        }


class Client(Base):
    """Client/Contact record"""
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=_uuid)
    photographer_id = Column(String(36), ForeignKey("photographers.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    photographer = relationship("Photographer", back_populates="clients")
    bookings = relationship("Booking", back_populates="client")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Booking(Base):
    """Main booking record; payment milestones are stored inline as JSON"""
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=_uuid)
    photographer_id = Column(String(36), ForeignKey("photographers.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True)

    service_type = Column(String(50), default="other")
    event_date = Column(Date, nullable=True, index=True)

    # Lifecycle
    status = Column(String(32), default=BookingStatus.INQUIRY.value, index=True)
    contract_text = Column(Text, nullable=True)
    contract_signed_at = Column(DateTime, nullable=True)
    contract_signed_by = Column(String(255), nullable=True)

    # Pricing
    total_price = Column(Numeric(12, 2), default=0)
    deposit_amount = Column(Numeric(12, 2), nullable=True)
    payment_status = Column(String(32), default=PaymentStatus.PENDING.value, index=True)
    payment_milestones = Column(JSON, default=list)
    payment_due_date = Column(Date, nullable=True, index=True)
    payments_reference = Column(String(255), nullable=True)

    # Client access
    client_email = Column(String(255), nullable=True)
    portal_token = Column(String(64), nullable=False, unique=True, index=True)

    # Reminder bookkeeping
    last_reminder_sent = Column(DateTime, nullable=True)
    reminder_sent_at = Column(DateTime, nullable=True)
    last_reminder_sent_at = Column(DateTime, nullable=True)
    reminder_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    photographer = relationship("Photographer", back_populates="bookings")
    client = relationship("Client", back_populates="bookings")

    __table_args__ = (
        Index("ix_bookings_photographer_event", "photographer_id", "event_date"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "client_email": self.client_email,
            "service_type": self.service_type,
            "event_date": _iso(self.event_date),
            "status": self.status,
            "contract_text": self.contract_text,
            "contract_signed_at": _iso(self.contract_signed_at),
            "contract_signed_by": self.contract_signed_by,
            "total_price": _money(self.total_price),
            "deposit_amount": _money(self.deposit_amount),
            "payment_status": self.payment_status,
            "payment_milestones": self.payment_milestones or [],
            "payment_due_date": _iso(self.payment_due_date),
            "last_reminder_sent": _iso(self.last_reminder_sent),
            "reminder_sent_at": _iso(self.reminder_sent_at),
            "reminder_count": self.reminder_count or 0,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def to_portal_dict(self):
        """Client-facing view: no internal reminder bookkeeping"""
        data = self.to_dict()
        for key in ("last_reminder_sent", "reminder_sent_at", "reminder_count", "client_id"):
            data.pop(key, None)
        data["studio_name"] = self.photographer.studio_name if self.photographer else None
        return data
