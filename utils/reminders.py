"""
Payment reminder sweeps

Two batch passes, each triggered by an external scheduler:

- payment reminders: pending / pending_deposit bookings whose payment_due_date
  is exactly REMINDER_DAYS_BEFORE_DUE days away, at most once per
  REMINDER_COOLDOWN_HOURS (tracked in last_reminder_sent).
- post-event balance nudges: signed bookings whose event was yesterday and
  still carry a balance, strictly once (tracked in reminder_sent_at).

The de-duplication stamp is claimed with a conditional UPDATE before the email
goes out and released again when the send fails, so overlapping sweeps cannot
both send and a failed send leaves the booking eligible.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from core.config import logger, REMINDER_DAYS_BEFORE_DUE, REMINDER_COOLDOWN_HOURS
from core.errors import InvalidInput, UpstreamFailure
from models.booking import Booking, PaymentStatus, SIGNED_STATUSES, normalize_enum, normalized_enum_column
from utils.balance import compute_balance, amount_due_for_reminder
from utils.dates import parse_date, parse_datetime
from utils.emailing import render_email, send_email_smtp
from utils.links import build_portal_url
from utils.money import format_money

REMINDABLE_PAYMENT_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.PENDING_DEPOSIT.value)

SENT = "sent"


@dataclass
class SweepReport:
    sweep: str
    results: List[dict] = field(default_factory=list)

    def record(self, booking_id: str, outcome: str, **extra) -> None:
        self.results.append({"booking_id": booking_id, "outcome": outcome, **extra})

    def skipped(self, booking_id: str, reason: str) -> None:
        self.record(booking_id, f"skipped:{reason}")

    def failed(self, booking_id: str, error: str) -> None:
        self.record(booking_id, f"failed:{error}")

    @property
    def counts(self) -> dict:
        counts = {"sent": 0, "skipped": 0, "failed": 0}
        for r in self.results:
            counts[r["outcome"].split(":", 1)[0]] += 1
        return counts

    def to_dict(self) -> dict:
        return {"sweep": self.sweep, **self.counts, "results": self.results}


# ---- Eligibility ----

def _signed(booking) -> bool:
    return bool(booking.contract_signed_at) or normalize_enum(booking.status) in SIGNED_STATUSES


def is_due_for_payment_reminder(booking, now: datetime) -> bool:
    if normalize_enum(booking.payment_status) not in REMINDABLE_PAYMENT_STATUSES:
        return False
    due = parse_date(booking.payment_due_date)
    if due is None or due != now.date() + timedelta(days=REMINDER_DAYS_BEFORE_DUE):
        return False
    last = parse_datetime(booking.last_reminder_sent)
    return last is None or last < now - timedelta(hours=REMINDER_COOLDOWN_HOURS)


def is_due_for_balance_nudge(booking, photographer, now: datetime) -> bool:
    event_day = parse_date(booking.event_date)
    if event_day is None or event_day != now.date() - timedelta(days=1):
        return False
    if booking.reminder_sent_at is not None or not _signed(booking):
        return False
    if photographer is None or not photographer.auto_reminders_enabled:
        return False
    return compute_balance(booking).balance_due > 0


def resolve_recipient(booking) -> str:
    email = (booking.client_email or (booking.client.email if booking.client else None) or "").strip()
    if not email:
        raise InvalidInput("no client email")
    return email


# ---- Dispatch ----

def _studio_reply_to(booking) -> Optional[str]:
    return booking.photographer.email if booking.photographer else None


def _studio_name(booking) -> str:
    return booking.photographer.studio_name if booking.photographer else "Your Photographer"


def dispatch_payment_reminder(booking) -> None:
    to_addr = resolve_recipient(booking)
    client_name = booking.client.name if booking.client else "Valued Client"
    amount_due = format_money(amount_due_for_reminder(booking))
    due = parse_date(booking.payment_due_date)
    due_date = due.strftime("%b %d, %Y") if due else "N/A"
    portal_url = build_portal_url(booking.portal_token)
    studio_name = _studio_name(booking)

    html = render_email(
        "payment_reminder.html",
        client_name=client_name,
        studio_name=studio_name,
        amount_due=amount_due,
        due_date=due_date,
        portal_url=portal_url,
        logo_url=booking.photographer.logo_url if booking.photographer else None,
    )
    text = (
        f"Hi {client_name},\n\n"
        f"A payment of {amount_due} for your booking with {studio_name} is due on {due_date}.\n\n"
        f"View your booking and pay: {portal_url}\n"
    )
    if not send_email_smtp(
        to_addr=to_addr, subject=f"Payment Reminder: {amount_due} Due Soon", html=html, text=text,
        studio_name=studio_name, reply_to=_studio_reply_to(booking),
    ):
        raise UpstreamFailure("email send failed")


def dispatch_balance_nudge(booking) -> None:
    to_addr = resolve_recipient(booking)
    client_name = booking.client.name if booking.client else "Client"
    balance_due = format_money(compute_balance(booking).balance_due)
    portal_url = build_portal_url(booking.portal_token, payment="true")
    studio_name = _studio_name(booking)
    service_type = booking.service_type or "photography"

    html = render_email(
        "final_balance_reminder.html",
        client_name=client_name,
        studio_name=studio_name,
        service_type=service_type,
        balance_due=balance_due,
        portal_url=portal_url,
        logo_url=booking.photographer.logo_url if booking.photographer else None,
    )
    text = (
        f"Hi {client_name},\n\n"
        f"A remaining balance of {balance_due} is open on your {service_type} booking with {studio_name}.\n\n"
        f"Pay here: {portal_url}\n"
    )
    if not send_email_smtp(
        to_addr=to_addr, subject=f"Remaining balance for your {service_type} session", html=html, text=text,
        studio_name=studio_name, reply_to=_studio_reply_to(booking),
    ):
        raise UpstreamFailure("email send failed")


# ---- Stamp claim / release ----

def _claim_payment_reminder(db: Session, booking_id: str, now: datetime) -> bool:
    cutoff = now - timedelta(hours=REMINDER_COOLDOWN_HOURS)
    claimed = db.query(Booking).filter(
        Booking.id == booking_id,
        or_(Booking.last_reminder_sent.is_(None), Booking.last_reminder_sent < cutoff),
    ).update({Booking.last_reminder_sent: now}, synchronize_session=False)
    db.commit()
    return claimed == 1


def _release_payment_reminder(db: Session, booking_id: str, now: datetime, previous: Optional[datetime]) -> None:
    db.query(Booking).filter(
        Booking.id == booking_id,
        Booking.last_reminder_sent == now,
    ).update({Booking.last_reminder_sent: previous}, synchronize_session=False)
    db.commit()


def _claim_balance_nudge(db: Session, booking_id: str, now: datetime) -> bool:
    claimed = db.query(Booking).filter(
        Booking.id == booking_id,
        Booking.reminder_sent_at.is_(None),
    ).update({
        Booking.reminder_sent_at: now,
        Booking.last_reminder_sent_at: now,
        Booking.reminder_count: Booking.reminder_count + 1,
    }, synchronize_session=False)
    db.commit()
    return claimed == 1


def _release_balance_nudge(db: Session, booking_id: str, now: datetime, previous: Optional[datetime]) -> None:
    db.query(Booking).filter(
        Booking.id == booking_id,
        Booking.reminder_sent_at == now,
    ).update({
        Booking.reminder_sent_at: None,
        Booking.last_reminder_sent_at: previous,
        Booking.reminder_count: Booking.reminder_count - 1,
    }, synchronize_session=False)
    db.commit()


def _send_with_claim(db, booking, now, send, claim, release, previous, report) -> None:
    booking_id = booking.id
    try:
        resolve_recipient(booking)
    except InvalidInput as ex:
        report.failed(booking_id, ex.message)
        return

    if not claim(db, booking_id, now):
        report.skipped(booking_id, "already reminded")
        return

    try:
        send(booking)
    except Exception as ex:
        logger.warning(f"[reminders] {report.sweep} send failed for booking {booking_id}: {ex}")
        try:
            release(db, booking_id, now, previous)
        except Exception as release_ex:
            db.rollback()
            logger.error(f"[reminders] could not release stamp for booking {booking_id}: {release_ex}")
        report.failed(booking_id, getattr(ex, "message", None) or str(ex) or type(ex).__name__)
        return

    report.record(booking_id, SENT)


# ---- Sweeps ----

def run_payment_reminder_sweep(
    db: Session,
    now: Optional[datetime] = None,
    send: Callable = dispatch_payment_reminder,
) -> SweepReport:
    now = now or datetime.utcnow()
    report = SweepReport(sweep="payment-reminders")
    target_day = now.date() + timedelta(days=REMINDER_DAYS_BEFORE_DUE)
    cutoff = now - timedelta(hours=REMINDER_COOLDOWN_HOURS)

    candidates = db.query(Booking).options(
        joinedload(Booking.client), joinedload(Booking.photographer),
    ).filter(
        normalized_enum_column(Booking.payment_status).in_(REMINDABLE_PAYMENT_STATUSES),
        Booking.payment_due_date == target_day,
        or_(Booking.last_reminder_sent.is_(None), Booking.last_reminder_sent < cutoff),
    ).order_by(Booking.created_at.asc()).all()

    logger.info(f"[reminders] payment-reminders: {len(candidates)} candidate(s) due {target_day}")
    for booking in candidates:
        try:
            if not is_due_for_payment_reminder(booking, now):
                report.skipped(booking.id, "not eligible")
                continue
            _send_with_claim(
                db, booking, now, send,
                _claim_payment_reminder, _release_payment_reminder,
                booking.last_reminder_sent, report,
            )
        except Exception as ex:
            db.rollback()
            logger.warning(f"[reminders] payment-reminders error for booking {booking.id}: {ex}")
            report.failed(booking.id, str(ex) or type(ex).__name__)

    logger.info(f"[reminders] payment-reminders summary: {report.counts}")
    return report


def run_post_event_sweep(
    db: Session,
    now: Optional[datetime] = None,
    send: Callable = dispatch_balance_nudge,
) -> SweepReport:
    now = now or datetime.utcnow()
    report = SweepReport(sweep="post-event-reminders")
    yesterday = now.date() - timedelta(days=1)

    candidates = db.query(Booking).options(
        joinedload(Booking.client), joinedload(Booking.photographer),
    ).filter(
        Booking.event_date == yesterday,
        Booking.reminder_sent_at.is_(None),
        or_(Booking.contract_signed_at.isnot(None), normalized_enum_column(Booking.status).in_(sorted(SIGNED_STATUSES))),
    ).order_by(Booking.created_at.asc()).all()

    logger.info(f"[reminders] post-event-reminders: {len(candidates)} candidate(s) for events on {yesterday}")
    for booking in candidates:
        try:
            photographer = booking.photographer
            if photographer is None or not photographer.auto_reminders_enabled:
                report.skipped(booking.id, "auto-reminders disabled")
                continue
            if compute_balance(booking).balance_due <= 0:
                report.skipped(booking.id, "fully paid")
                continue
            if not is_due_for_balance_nudge(booking, photographer, now):
                report.skipped(booking.id, "not eligible")
                continue
            _send_with_claim(
                db, booking, now, send,
                _claim_balance_nudge, _release_balance_nudge,
                booking.last_reminder_sent_at, report,
            )
        except Exception as ex:
            db.rollback()
            logger.warning(f"[reminders] post-event-reminders error for booking {booking.id}: {ex}")
            report.failed(booking.id, str(ex) or type(ex).__name__)

    logger.info(f"[reminders] post-event-reminders summary: {report.counts}")
    return report


def send_manual_reminder(db: Session, booking, now: Optional[datetime] = None, send: Callable = dispatch_payment_reminder) -> datetime:
    """Photographer-initiated payment reminder. Stamps last_reminder_sent only after a successful send."""
    now = now or datetime.utcnow()
    send(booking)
    booking.last_reminder_sent = now
    db.commit()
    logger.info(f"[reminders] manual reminder sent for booking {booking.id}")
    return now
