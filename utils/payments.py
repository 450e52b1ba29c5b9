"""
Payment processor client
Checkout sessions for connected accounts: the client pays the gross amount,
the platform keeps the application fee, the photographer's account receives
the rest.
"""
from typing import Any, Dict, Optional

import httpx
from standardwebhooks import Webhook, WebhookVerificationError

from core.config import (
    logger,
    PAYMENTS_API_BASE,
    PAYMENTS_API_KEY,
    PAYMENTS_CHECKOUT_PATH,
    PAYMENTS_CURRENCY,
    PAYMENTS_TIMEOUT_SEC,
    PAYMENTS_WEBHOOK_SECRET,
)
from core.errors import InvalidInput, MomentumError, Unauthorized, UpstreamFailure
from utils.pricing import GrossCharge, charge_in_minor_units


def build_headers() -> dict:
    return {
        "Authorization": f"Bearer {(PAYMENTS_API_KEY or '').strip()}",
        "Accept": "application/json",
        "User-Agent": "MomentumBackend/1.0",
    }


def build_checkout_form(
    *,
    charge: GrossCharge,
    description: str,
    destination_account: str,
    success_url: str,
    cancel_url: str,
    metadata: Dict[str, Any],
    currency: Optional[str] = None,
) -> Dict[str, str]:
    """Form-encoded checkout-session body. Amounts are rounded to minor units only here."""
    cents = charge_in_minor_units(charge)
    form = {
        "mode": "payment",
        "payment_method_types[0]": "card",
        "line_items[0][quantity]": "1",
        "line_items[0][price_data][currency]": (currency or PAYMENTS_CURRENCY),
        "line_items[0][price_data][unit_amount]": str(cents["gross_cents"]),
        "line_items[0][price_data][product_data][name]": description,
        "payment_intent_data[application_fee_amount]": str(cents["fee_cents"]),
        "payment_intent_data[transfer_data][destination]": destination_account,
        "success_url": success_url,
        "cancel_url": cancel_url,
    }
    for key, value in metadata.items():
        if value is not None:
            form[f"metadata[{key}]"] = str(value)
    return form


def pick_checkout_url(data: Dict[str, Any]) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    link = data.get("url") or data.get("checkout_url") or data.get("session_url")
    if link:
        return str(link)
    obj = data.get("data")
    if isinstance(obj, dict):
        inner = obj.get("url") or obj.get("checkout_url") or obj.get("session_url") or ""
        return str(inner) or None
    return None


async def create_checkout_session(form: Dict[str, str]) -> Dict[str, Any]:
    """Returns the processor's session object; raises UpstreamFailure on any failure."""
    if not (PAYMENTS_API_KEY or "").strip():
        logger.error("[payments] PAYMENTS_API_KEY not configured")
        raise UpstreamFailure("Payments are not configured")

    url = f"{PAYMENTS_API_BASE}{PAYMENTS_CHECKOUT_PATH}"
    try:
        async with httpx.AsyncClient(timeout=PAYMENTS_TIMEOUT_SEC) as client:
            logger.info(f"[payments] creating checkout session via {url}")
            resp = await client.post(url, headers=build_headers(), data=form)
    except httpx.HTTPError as ex:
        logger.warning(f"[payments] checkout session request failed: {ex}")
        raise UpstreamFailure("Payment provider unavailable") from ex

    if resp.status_code not in (200, 201):
        try:
            body_text = resp.text
        except Exception:
            body_text = ""
        logger.warning(f"[payments] checkout session creation failed: status={resp.status_code} body={body_text[:2000]}")
        raise UpstreamFailure("Payment provider rejected the checkout request")

    try:
        data = resp.json()
    except ValueError as ex:
        raise UpstreamFailure("Payment provider returned an invalid response") from ex
    if not pick_checkout_url(data):
        logger.warning(f"[payments] checkout session response had no url: keys={list(data.keys()) if isinstance(data, dict) else type(data).__name__}")
        raise UpstreamFailure("Payment provider returned no checkout url")
    return data


def verify_webhook(raw_body: bytes, headers) -> dict:
    """Standard Webhooks signature check. Raises Unauthorized on a bad signature."""
    if not PAYMENTS_WEBHOOK_SECRET:
        raise MomentumError("Payments webhook secret not configured")
    wh_headers = {
        "webhook-id": headers.get("webhook-id") or "",
        "webhook-timestamp": headers.get("webhook-timestamp") or "",
        "webhook-signature": headers.get("webhook-signature") or "",
    }
    try:
        payload = Webhook(PAYMENTS_WEBHOOK_SECRET).verify(data=raw_body, headers=wh_headers)
    except WebhookVerificationError as ex:
        logger.warning(f"[payments] webhook signature rejected: {ex}")
        raise Unauthorized("invalid signature") from ex
    if not isinstance(payload, dict):
        raise InvalidInput("invalid payload")
    return payload
