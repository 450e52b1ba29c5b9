"""
Transactional booking emails

- contract sent: to the client, with the portal link to review and sign
- contract signed / payment received: to the photographer

Every send is a single best-effort attempt. A failure is logged and reported
as False; the request that triggered it still succeeds.
"""
from decimal import Decimal
from typing import Optional

from core.config import logger
from models.booking import Booking
from utils.balance import compute_balance
from utils.dates import parse_date
from utils.emailing import render_email, send_email_smtp
from utils.links import build_dashboard_url, build_portal_url
from utils.money import format_money


def _event_date(booking: Booking) -> str:
    event_day = parse_date(booking.event_date)
    return event_day.strftime("%b %d, %Y") if event_day else "TBD"


def _client_name(booking: Booking) -> str:
    return booking.client.name if booking.client and booking.client.name else "Your client"


def _photographer_email(booking: Booking) -> str:
    return (booking.photographer.email if booking.photographer else "") or ""


def _deliver(kind: str, booking: Booking, to_addr: str, subject: str, html: str, text: str, **kwargs) -> bool:
    if not to_addr:
        logger.warning(f"[notify] {kind} for booking {booking.id} skipped: no recipient")
        return False
    sent = send_email_smtp(to_addr=to_addr, subject=subject, html=html, text=text, **kwargs)
    if sent:
        logger.info(f"[notify] {kind} sent for booking {booking.id}")
    else:
        logger.warning(f"[notify] {kind} for booking {booking.id} could not be sent")
    return sent


def send_contract_email(booking: Booking) -> bool:
    to_addr = (booking.client_email or (booking.client.email if booking.client else None) or "").strip()
    client_name = booking.client.name if booking.client else "there"
    studio_name = booking.photographer.studio_name if booking.photographer else "Your Photographer"
    service_type = booking.service_type or "photography"
    portal_url = build_portal_url(booking.portal_token)
    total_price = format_money(booking.total_price)
    deposit_amount = format_money(booking.deposit_amount) if booking.deposit_amount else None

    html = render_email(
        "contract_sent.html",
        client_name=client_name,
        studio_name=studio_name,
        service_type=service_type,
        event_date=_event_date(booking),
        total_price=total_price,
        deposit_amount=deposit_amount,
        portal_url=portal_url,
        logo_url=booking.photographer.logo_url if booking.photographer else None,
    )
    text = (
        f"Hi {client_name},\n\n"
        f"{studio_name} has prepared the contract for your {service_type} session on {_event_date(booking)}.\n"
        f"Total: {total_price}\n"
        + (f"Deposit: {deposit_amount}\n" if deposit_amount else "")
        + f"\nReview and sign: {portal_url}\n"
    )
    return _deliver(
        "contract_sent", booking, to_addr, f"Your {service_type} contract from {studio_name}", html, text,
        studio_name=studio_name, reply_to=_photographer_email(booking) or None,
    )


def notify_contract_signed(booking: Booking) -> bool:
    client_name = _client_name(booking)
    service_type = booking.service_type or "photography"
    dashboard_url = build_dashboard_url(booking.id)
    html = render_email(
        "contract_signed.html",
        client_name=client_name,
        signed_by=booking.contract_signed_by or client_name,
        service_type=service_type,
        event_date=_event_date(booking),
        booking_id=booking.id,
        dashboard_url=dashboard_url,
        studio_name=booking.photographer.studio_name if booking.photographer else None,
    )
    text = (
        f"{booking.contract_signed_by or client_name} signed the contract for {client_name}'s booking.\n\n"
        f"Service: {service_type}\nEvent date: {_event_date(booking)}\nBooking: {booking.id}\n\n"
        f"{dashboard_url}\n"
    )
    return _deliver(
        "contract_signed", booking, _photographer_email(booking),
        f"Contract signed for {client_name}", html, text,
        reply_to=booking.client_email or None,
    )


def notify_payment_received(booking: Booking, amount: Optional[Decimal], milestone_name: str) -> bool:
    client_name = _client_name(booking)
    paid = format_money(amount)
    balance_due = format_money(compute_balance(booking).balance_due)
    dashboard_url = build_dashboard_url(booking.id)
    html = render_email(
        "payment_received.html",
        client_name=client_name,
        amount=paid,
        milestone_name=milestone_name,
        balance_due=balance_due,
        dashboard_url=dashboard_url,
        studio_name=booking.photographer.studio_name if booking.photographer else None,
    )
    text = (
        f"{client_name} paid {paid} toward {milestone_name}.\n"
        f"Remaining balance: {balance_due}\n\n{dashboard_url}\n"
    )
    return _deliver(
        "payment_received", booking, _photographer_email(booking),
        f"Payment received from {client_name}: {paid}", html, text,
        reply_to=booking.client_email or None,
    )
