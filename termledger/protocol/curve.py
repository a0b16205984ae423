"""
curve.py - Piecewise constant-product pricing of FT against XT

PURE FUNCTIONS - every result depends only on (curve_cuts, xt_reserve, amount).

An order's price is a function of its XT reserve x. Cut i covers
[cut_i.xt_reserve, cut_{i+1}.xt_reserve) and inside it the virtual reserves obey

    (x + offset_i) * y = liq_square_i

so moving x by dx exchanges FT along y. The marginal rate (FT per XT) is
liq_square / (x + offset)**2, which falls as x grows. Lending (buying FT,
selling XT) pushes x up; borrowing (selling FT, buying XT) pulls x down.

Key Formulas (within one cut, v = x + offset, L = liq_square, a = L / v):
    ft_out for xt_in d      = a - L / (v + d)
    xt_in for ft_out r      = L / (a - r) - v
    xt_out for ft_in r      = v - L / (a + r)
    ft_in for xt_out d      = L / (v - d) - a
    d + ft_out(d) = R   ->  d**2 + d*(v + a - R) - R*v = 0
    d + ft_in(d)  = R   ->  d**2 - d*(v + a + R) + R*v = 0

Amounts returned are exact Decimals; callers round them toward the order.
"""

from __future__ import annotations
from bisect import bisect_left, bisect_right
from decimal import Decimal
from typing import Sequence, Tuple

from .config import CurveCut
from .errors import InsufficientLiquidity

ZERO = Decimal("0")


def _breakpoints(cuts: Sequence[CurveCut]):
    return [c.xt_reserve for c in cuts]


def _cut_above(cuts: Sequence[CurveCut], x: Decimal) -> int:
    """Index of the cut used when x moves up."""
    return bisect_right(_breakpoints(cuts), x) - 1


def _cut_below(cuts: Sequence[CurveCut], x: Decimal) -> int:
    """Index of the cut used when x moves down (a breakpoint belongs to the cut below it)."""
    return bisect_left(_breakpoints(cuts), x) - 1


def _upper(cuts: Sequence[CurveCut], i: int):
    return cuts[i + 1].xt_reserve if i + 1 < len(cuts) else None


def _check_amount(amount: Decimal) -> None:
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")


# ============================================================================
# SPOT
# ============================================================================

def marginal_rate(cuts: Sequence[CurveCut], xt_reserve: Decimal) -> Decimal:
    """FT received per XT for an infinitesimal lend at the current reserve."""
    cut = cuts[_cut_above(cuts, xt_reserve)]
    return cut.liq_square / (xt_reserve + cut.offset) ** 2


def ft_price(cuts: Sequence[CurveCut], xt_reserve: Decimal) -> Decimal:
    """Spot price of one FT in debt tokens."""
    return 1 / (1 + marginal_rate(cuts, xt_reserve))


# ============================================================================
# MOVING UP (XT into the reserve, FT out)
# ============================================================================

def ft_out_for_xt_in(cuts: Sequence[CurveCut], xt_reserve: Decimal, xt_in: Decimal) -> Decimal:
    _check_amount(xt_in)
    x, remaining, out = xt_reserve, xt_in, ZERO
    i = _cut_above(cuts, x)
    while remaining > 0:
        cut, upper = cuts[i], _upper(cuts, i)
        step = remaining if upper is None else min(remaining, upper - x)
        v = x + cut.offset
        out += cut.liq_square / v - cut.liq_square / (v + step)
        x += step
        remaining -= step
        i += 1
    return out


def xt_in_for_ft_out(cuts: Sequence[CurveCut], xt_reserve: Decimal, ft_out: Decimal) -> Decimal:
    _check_amount(ft_out)
    x, remaining, xt_in = xt_reserve, ft_out, ZERO
    i = _cut_above(cuts, x)
    while remaining > 0:
        cut, upper = cuts[i], _upper(cuts, i)
        v = x + cut.offset
        a = cut.liq_square / v
        if upper is not None:
            capacity = a - cut.liq_square / (upper + cut.offset)
            if remaining > capacity:
                xt_in += upper - x
                remaining -= capacity
                x = upper
                i += 1
                continue
        if remaining >= a:
            raise InsufficientLiquidity(f"curve cannot pay {ft_out} FT from xt reserve {xt_reserve}")
        xt_in += cut.liq_square / (a - remaining) - v
        remaining = ZERO
    return xt_in


def split_up(cuts: Sequence[CurveCut], xt_reserve: Decimal, total: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Find d with d + ft_out_for_xt_in(d) == total.

    Returns (xt_in, ft_out). Used when `total` pairs worth of value must be
    delivered as FT (buy FT exact out) or when `total` XT are sold (sell XT exact in).
    """
    _check_amount(total)
    x, remaining, xt_in = xt_reserve, total, ZERO
    i = _cut_above(cuts, x)
    while remaining > 0:
        cut, upper = cuts[i], _upper(cuts, i)
        v = x + cut.offset
        a = cut.liq_square / v
        if upper is not None:
            step = upper - x
            crossed = step + a - cut.liq_square / (upper + cut.offset)
            if crossed <= remaining:
                xt_in += step
                remaining -= crossed
                x = upper
                i += 1
                continue
        b = v + a - remaining
        disc = (b * b + 4 * remaining * v).sqrt()
        d = (2 * remaining * v) / (b + disc) if b > 0 else (disc - b) / 2
        xt_in += d
        remaining = ZERO
    return xt_in, total - xt_in


# ============================================================================
# MOVING DOWN (XT out of the reserve, FT in)
# ============================================================================

def xt_out_for_ft_in(cuts: Sequence[CurveCut], xt_reserve: Decimal, ft_in: Decimal) -> Decimal:
    _check_amount(ft_in)
    x, remaining, xt_out = xt_reserve, ft_in, ZERO
    i = _cut_below(cuts, x)
    while remaining > 0:
        if i < 0:
            raise InsufficientLiquidity(f"xt reserve {xt_reserve} exhausted before absorbing {ft_in} FT")
        cut = cuts[i]
        lower = cut.xt_reserve
        v = x + cut.offset
        a = cut.liq_square / v
        capacity = cut.liq_square / (lower + cut.offset) - a
        if remaining > capacity:
            xt_out += x - lower
            remaining -= capacity
            x = lower
            i -= 1
            continue
        xt_out += v - cut.liq_square / (a + remaining)
        remaining = ZERO
    return xt_out


def ft_in_for_xt_out(cuts: Sequence[CurveCut], xt_reserve: Decimal, xt_out: Decimal) -> Decimal:
    _check_amount(xt_out)
    if xt_out > xt_reserve:
        raise InsufficientLiquidity(f"xt out {xt_out} > xt reserve {xt_reserve}")
    x, remaining, ft_in = xt_reserve, xt_out, ZERO
    i = _cut_below(cuts, x)
    while remaining > 0:
        cut = cuts[i]
        step = min(remaining, x - cut.xt_reserve)
        v = x + cut.offset
        ft_in += cut.liq_square / (v - step) - cut.liq_square / v
        x -= step
        remaining -= step
        i -= 1
    return ft_in


def split_down(cuts: Sequence[CurveCut], xt_reserve: Decimal, total: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Find d with d + ft_in_for_xt_out(d) == total.

    Returns (xt_out, ft_in). Used when `total` FT are sold (sell FT exact in)
    or `total` XT must be delivered (buy XT exact out).
    """
    _check_amount(total)
    x, remaining, xt_out = xt_reserve, total, ZERO
    i = _cut_below(cuts, x)
    while remaining > 0:
        if i < 0:
            raise InsufficientLiquidity(f"xt reserve {xt_reserve} exhausted before matching {total}")
        cut = cuts[i]
        lower = cut.xt_reserve
        v = x + cut.offset
        a = cut.liq_square / v
        step = x - lower
        crossed = step + cut.liq_square / (lower + cut.offset) - a
        if crossed < remaining:
            xt_out += step
            remaining -= crossed
            x = lower
            i -= 1
            continue
        big_b = v + a + remaining
        disc = (big_b * big_b - 4 * remaining * v).sqrt()
        xt_out += (2 * remaining * v) / (big_b + disc)
        remaining = ZERO
    return xt_out, total - xt_out
