"""
Fee-inclusive pricing

The payee must net exactly `net_amount` after the platform keeps `fee_rate`
of the gross charge, so gross = net / (1 - fee_rate). Adding the fee on top
of the net (net * (1 + fee_rate)) would leave the payee short.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import NamedTuple

from core.config import PLATFORM_FEE_RATE
from core.errors import InvalidAmount
from utils.money import to_decimal


class GrossCharge(NamedTuple):
    gross_amount: Decimal
    fee_amount: Decimal


def compute_gross_charge(net_amount, fee_rate=PLATFORM_FEE_RATE) -> GrossCharge:
    """Unrounded gross charge and fee. Round only when building the processor request."""
    net = to_decimal(net_amount)
    rate = to_decimal(fee_rate)
    if net is None or net < 0:
        raise InvalidAmount("net_amount must be a non-negative amount")
    if rate is None or rate < 0 or rate >= 1:
        raise InvalidAmount("fee_rate must be at least 0 and below 1")

    gross = net / (Decimal(1) - rate)
    return GrossCharge(gross_amount=gross, fee_amount=gross - net)


def to_minor_units(amount) -> int:
    """Amount in currency units -> integer cents, half-up."""
    value = to_decimal(amount)
    if value is None or value < 0:
        raise InvalidAmount("amount must be a non-negative amount")
    return int((value * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def charge_in_minor_units(charge: GrossCharge) -> dict:
    """
    Processor-facing amounts. The fee is derived from the rounded gross and net
    so gross - fee is exactly the net the payee receives, in cents.
    """
    gross_cents = to_minor_units(charge.gross_amount)
    net_cents = to_minor_units(charge.gross_amount - charge.fee_amount)
    return {"gross_cents": gross_cents, "fee_cents": max(gross_cents - net_cents, 0)}
