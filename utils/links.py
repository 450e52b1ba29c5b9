from typing import Optional
from urllib.parse import urlencode

from core.config import APP_URL


def build_portal_url(portal_token: str, base_url: Optional[str] = None, **query) -> str:
    """Client portal link; the token is the only credential it carries."""
    base = (base_url or APP_URL).rstrip("/")
    url = f"{base}/portal/{portal_token}"
    params = {k: v for k, v in query.items() if v is not None}
    if params:
        url = f"{url}?{urlencode(params)}"
    return url


def build_dashboard_url(booking_id: str, base_url: Optional[str] = None) -> str:
    base = (base_url or APP_URL).rstrip("/")
    return f"{base}/dashboard/bookings/{booking_id}"
