"""
Outgoing client email
Jinja2 templates under templates/, delivered over SMTP on behalf of a studio.
"""
import os
import smtplib
import uuid
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, parseaddr
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS, SMTP_TIMEOUT_SEC, MAIL_FROM, TEMPLATES_DIR, logger

APP_NAME = os.getenv("APP_NAME", "Momentum")
BRAND = {
    "brand_bg": os.getenv("EMAIL_BRAND_BG", "#F9FAFB"),
    "button_bg": os.getenv("EMAIL_BRAND_BUTTON_BG", "#111827"),
    "button_text": os.getenv("EMAIL_BRAND_BUTTON_TEXT", "#FFFFFF"),
}
PLAIN_TEXT_FALLBACK = "Open this email in an HTML-capable client to view your booking."

_jinja_env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(["html", "xml"]),
)


def render_email(template_name: str, **context) -> str:
    """Render a client email; studio branding in `context` overrides the app defaults."""
    values = {"app_name": APP_NAME, **BRAND}
    values.update(context)
    return _jinja_env.get_template(template_name).render(**values)


def build_message(
    to_addr: str,
    subject: str,
    html: str,
    text: Optional[str] = None,
    sender: Optional[str] = None,
    studio_name: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> MIMEMultipart:
    # The platform address sends; the studio's name is shown and replies go to the studio
    address = parseaddr(sender or MAIL_FROM)[1] or (sender or MAIL_FROM).strip()
    display_name = studio_name or APP_NAME
    domain = address.rsplit("@", 1)[-1] if "@" in address else "momentum.local"

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = formataddr((display_name, address))
    msg["To"] = to_addr
    msg["Message-ID"] = f"<{uuid.uuid4()}@{domain}>"
    msg["Date"] = formatdate(usegmt=True)
    if reply_to:
        msg["Reply-To"] = reply_to
    msg.attach(MIMEText(text or PLAIN_TEXT_FALLBACK, "plain", _charset="utf-8"))
    msg.attach(MIMEText(html or "", "html", _charset="utf-8"))
    return msg


def send_email_smtp(
    to_addr: str,
    subject: str,
    html: str,
    text: Optional[str] = None,
    studio_name: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> bool:
    """Single delivery attempt. Failures are logged and reported as False; callers decide what to do."""
    if not SMTP_HOST or not SMTP_PASS or not MAIL_FROM:
        logger.error("[email] SMTP not configured; cannot send email")
        return False
    try:
        msg = build_message(to_addr, subject, html, text=text, studio_name=studio_name, reply_to=reply_to)
        with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=SMTP_TIMEOUT_SEC) as server:
            server.starttls()
            if SMTP_USER or SMTP_PASS:
                server.login(SMTP_USER, SMTP_PASS)
            server.sendmail(parseaddr(MAIL_FROM)[1] or MAIL_FROM, [to_addr], msg.as_string())
        logger.info(f"[email] sent '{subject}' to {to_addr}")
        return True
    except (smtplib.SMTPException, OSError) as ex:
        logger.warning(f"[email] SMTP send to {to_addr} failed: {ex}")
        return False
