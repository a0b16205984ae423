"""
config.py - Market, order and loan configuration

Configuration is passed around as frozen dataclasses and stored verbatim in
the owning unit's state. Validation lives in pure validate_* functions that
raise the matching ConfigurationError.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Sequence, Tuple

from .constants import DECIMAL_BASE, MAX_FEE_RATIO
from .errors import FeeTooHigh, InvalidCurveCuts, InvalidLoanConfig


def _to_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class FeeConfig:
    """
    Fee ratios, each an integer scaled by DECIMAL_BASE (10**8 == 100%).

    issue_ft_fee_ref is a reference value kept for config compatibility;
    it is validated and stored but does not enter the issuance fee.
    """
    redeem_fee_ratio: int = 0
    issue_ft_fee_ratio: int = 0
    issue_ft_fee_ref: int = 0
    borrow_taker_fee_ratio: int = 0
    borrow_maker_fee_ratio: int = 0
    lend_taker_fee_ratio: int = 0
    lend_maker_fee_ratio: int = 0

    def ratios(self) -> Tuple[Tuple[str, int], ...]:
        """(field, value) for every ratio capped by MAX_FEE_RATIO."""
        return (
            ('redeem_fee_ratio', self.redeem_fee_ratio),
            ('issue_ft_fee_ratio', self.issue_ft_fee_ratio),
            ('borrow_taker_fee_ratio', self.borrow_taker_fee_ratio),
            ('borrow_maker_fee_ratio', self.borrow_maker_fee_ratio),
            ('lend_taker_fee_ratio', self.lend_taker_fee_ratio),
            ('lend_maker_fee_ratio', self.lend_maker_fee_ratio),
        )


@dataclass(frozen=True, slots=True)
class MarketConfig:
    treasurer: str
    maturity: datetime
    fee_config: FeeConfig = field(default_factory=FeeConfig)


@dataclass(frozen=True, slots=True)
class CurveCut:
    """
    One segment of an order's pricing curve.

    For xt_reserve at or above this cut's breakpoint (and below the next),
    virtual reserves satisfy (xt_reserve + offset) * ft_virtual == liq_square.
    """
    xt_reserve: Decimal
    liq_square: Decimal
    offset: Decimal

    def __post_init__(self):
        object.__setattr__(self, 'xt_reserve', _to_decimal(self.xt_reserve))
        object.__setattr__(self, 'liq_square', _to_decimal(self.liq_square))
        object.__setattr__(self, 'offset', _to_decimal(self.offset))


@dataclass(frozen=True, slots=True)
class OrderConfig:
    max_xt_reserve: Decimal
    curve_cuts: Tuple[CurveCut, ...]

    def __post_init__(self):
        object.__setattr__(self, 'max_xt_reserve', _to_decimal(self.max_xt_reserve))
        object.__setattr__(self, 'curve_cuts', tuple(self.curve_cuts))


@dataclass(frozen=True, slots=True)
class LoanConfig:
    """LTV thresholds scaled by DECIMAL_BASE."""
    max_ltv: int
    liquidation_ltv: int
    liquidatable: bool = True


@dataclass(frozen=True, slots=True)
class GtConfig:
    collateral: str
    debt_token: str
    ft: str
    treasurer: str
    maturity: datetime
    loan_config: LoanConfig


# ============================================================================
# VALIDATION
# ============================================================================

def validate_fee_config(fee_config: FeeConfig) -> None:
    """
    Raises:
        FeeTooHigh: if any ratio exceeds MAX_FEE_RATIO, or issue_ft_fee_ref
                    is not below DECIMAL_BASE
    """
    for name, value in fee_config.ratios():
        if value < 0:
            raise ValueError(f"{name} must be non-negative, got {value}")
        if value > MAX_FEE_RATIO:
            raise FeeTooHigh(name, value, MAX_FEE_RATIO)
    if fee_config.issue_ft_fee_ref < 0:
        raise ValueError(f"issue_ft_fee_ref must be non-negative, got {fee_config.issue_ft_fee_ref}")
    if fee_config.issue_ft_fee_ref >= DECIMAL_BASE:
        raise FeeTooHigh('issue_ft_fee_ref', fee_config.issue_ft_fee_ref, DECIMAL_BASE - 1)


def validate_curve_cuts(cuts: Sequence[CurveCut]) -> None:
    """
    Check that cuts describe a monotonic piecewise curve.

    - at least one cut, the first starting at xt_reserve 0
    - breakpoints strictly increasing
    - liq_square > 0 and xt_reserve + offset > 0 for every cut
    - the marginal FT-per-XT rate never increases across a breakpoint
    """
    if not cuts:
        raise InvalidCurveCuts("no cuts")
    if cuts[0].xt_reserve != 0:
        raise InvalidCurveCuts("first cut must start at xt reserve 0", 0)
    for i, cut in enumerate(cuts):
        if cut.liq_square <= 0:
            raise InvalidCurveCuts("liq_square must be positive", i)
        if cut.xt_reserve + cut.offset <= 0:
            raise InvalidCurveCuts("xt_reserve + offset must be positive", i)
        if i == 0:
            continue
        prev = cuts[i - 1]
        if cut.xt_reserve <= prev.xt_reserve:
            raise InvalidCurveCuts("breakpoints must be strictly increasing", i)
        rate_before = prev.liq_square / (cut.xt_reserve + prev.offset) ** 2
        rate_after = cut.liq_square / (cut.xt_reserve + cut.offset) ** 2
        if rate_after > rate_before:
            raise InvalidCurveCuts("marginal rate increases at breakpoint", i)


def validate_order_config(config: OrderConfig) -> None:
    if config.max_xt_reserve <= 0:
        raise InvalidCurveCuts("max_xt_reserve must be positive")
    validate_curve_cuts(config.curve_cuts)


def validate_loan_config(loan_config: LoanConfig) -> None:
    if not 0 < loan_config.max_ltv < loan_config.liquidation_ltv:
        raise InvalidLoanConfig(
            f"need 0 < max_ltv ({loan_config.max_ltv}) < liquidation_ltv ({loan_config.liquidation_ltv})"
        )
    if loan_config.liquidation_ltv > DECIMAL_BASE:
        raise InvalidLoanConfig(f"liquidation_ltv {loan_config.liquidation_ltv} > {DECIMAL_BASE}")
