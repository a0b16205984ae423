"""
Fee and ratio arithmetic.

Ratios are integers over DECIMAL_BASE. Amounts handed to a user are rounded
down; amounts taken from a user are rounded up.
"""

from decimal import Decimal, ROUND_DOWN
from typing import Optional, Tuple

from ..core import quantize_down, quantize_up
from .constants import DECIMAL_BASE, INFINITE_LTV


def fee_on(amount: Decimal, ratio: int, places: Optional[int]) -> Decimal:
    """floor(amount * ratio / DECIMAL_BASE)"""
    return quantize_down(amount * ratio / DECIMAL_BASE, places)


def gross_for_net(net: Decimal, ratio: int, places: Optional[int]) -> Decimal:
    """Smallest gross amount whose fee-net is at least `net`."""
    return quantize_up(net * DECIMAL_BASE / (DECIMAL_BASE - ratio), places)


def split_fee(fee: Decimal, taker_ratio: int, maker_ratio: int, places: Optional[int]) -> Tuple[Decimal, Decimal]:
    """Split a fee into (taker_part, maker_part) in proportion to the two ratios."""
    total = taker_ratio + maker_ratio
    if total == 0 or fee == 0:
        return Decimal("0"), Decimal("0")
    maker_part = quantize_down(fee * maker_ratio / total, places)
    return fee - maker_part, maker_part


def ltv_of(debt_value: Decimal, collateral_value: Decimal) -> int:
    """floor(debt_value * DECIMAL_BASE / collateral_value), INFINITE_LTV without collateral."""
    if collateral_value <= 0:
        return INFINITE_LTV if debt_value > 0 else 0
    return int((debt_value * DECIMAL_BASE / collateral_value).to_integral_value(rounding=ROUND_DOWN))


def pro_rata(total: Decimal, part: Decimal, whole: Decimal, places: Optional[int]) -> Decimal:
    """floor(total * part / whole)"""
    if whole <= 0:
        return Decimal("0")
    return quantize_down(total * part / whole, places)
