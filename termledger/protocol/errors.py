"""
errors.py - Protocol error taxonomy

Every protocol failure is a LedgerError subclass carrying the values that
identify the violated condition. Errors propagate unchanged to the caller;
the enclosing Ledger.atomic() scope undoes any partial effects.

Categories:
    ConfigurationError  - fee caps, curve shape, market config
    TemporalError       - term open/closed, liquidation window
    AuthorizationError  - caller is not owner / maker / approved / component
    EconomicBoundError  - slippage, LTV, reserve and repayment bounds
    ExistenceError      - unknown position, order or whitelist entry
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from ..core import LedgerError


class ProtocolError(LedgerError):
    """Base exception for all protocol errors."""
    pass


class ConfigurationError(ProtocolError):
    pass


class TemporalError(ProtocolError):
    pass


class AuthorizationError(ProtocolError):
    pass


class EconomicBoundError(ProtocolError):
    pass


class ExistenceError(ProtocolError):
    pass


# ============================================================================
# CONFIGURATION
# ============================================================================

class FeeTooHigh(ConfigurationError):
    """A fee ratio exceeds its cap."""

    def __init__(self, field: str, value: int, cap: int):
        self.field = field
        self.value = value
        self.cap = cap
        super().__init__(f"{field}={value} exceeds cap {cap}")


class InvalidCurveCuts(ConfigurationError):
    """Curve cuts are not ordered, not positive, or not monotonic."""

    def __init__(self, reason: str, index: Optional[int] = None):
        self.reason = reason
        self.index = index
        where = f" at cut {index}" if index is not None else ""
        super().__init__(f"invalid curve cuts{where}: {reason}")


class InvalidMarketConfig(ConfigurationError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class InvalidLoanConfig(ConfigurationError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


# ============================================================================
# TEMPORAL
# ============================================================================

class TermIsNotOpen(TemporalError):
    """The operation is only available before maturity."""

    def __init__(self, now: datetime, maturity: datetime):
        self.now = now
        self.maturity = maturity
        super().__init__(f"term closed at {maturity.isoformat()} (now {now.isoformat()})")


class CanNotRedeemBeforeFinalLiquidationDeadline(TemporalError):
    def __init__(self, deadline: datetime):
        self.deadline = deadline
        super().__init__(f"redemption opens at {deadline.isoformat()}")


class LiquidationPeriodEnded(TemporalError):
    """Repayment or liquidation attempted after the final liquidation deadline."""

    def __init__(self, deadline: datetime):
        self.deadline = deadline
        super().__init__(f"liquidation window ended at {deadline.isoformat()}")


# ============================================================================
# AUTHORIZATION
# ============================================================================

class CallerIsNotOwner(AuthorizationError):
    def __init__(self, caller: str, owner: str):
        self.caller = caller
        self.owner = owner
        super().__init__(f"{caller} is not the owner ({owner})")


class CallerIsNotMaker(AuthorizationError):
    def __init__(self, caller: str, maker: str):
        self.caller = caller
        self.maker = maker
        super().__init__(f"{caller} is not the maker ({maker})")


class CallerIsNotTheMarket(AuthorizationError):
    def __init__(self, caller: str, market: str):
        self.caller = caller
        self.market = market
        super().__init__(f"{caller} is not the market ({market})")


class CallerIsNotAuthorized(AuthorizationError):
    """Caller neither owns the position nor is approved for it."""

    def __init__(self, caller: str, gt_id: int):
        self.caller = caller
        self.gt_id = gt_id
        super().__init__(f"{caller} is not authorized for position {gt_id}")


# ============================================================================
# ECONOMIC BOUNDS
# ============================================================================

class InsufficientTokenOut(EconomicBoundError):
    def __init__(self, min_token_out: Decimal, actual: Decimal):
        self.min_token_out = min_token_out
        self.actual = actual
        super().__init__(f"received {actual} < minimum {min_token_out}")


class ExcessiveTokenIn(EconomicBoundError):
    def __init__(self, max_token_in: Decimal, actual: Decimal):
        self.max_token_in = max_token_in
        self.actual = actual
        super().__init__(f"paid {actual} > maximum {max_token_in}")


class LtvBiggerThanExpected(EconomicBoundError):
    def __init__(self, max_ltv: int, actual_ltv: int):
        self.max_ltv = max_ltv
        self.actual_ltv = actual_ltv
        super().__init__(f"ltv {actual_ltv} > expected {max_ltv}")


class GtIsNotHealthy(EconomicBoundError):
    def __init__(self, ltv: int, max_ltv: int):
        self.ltv = ltv
        self.max_ltv = max_ltv
        super().__init__(f"ltv {ltv} > max {max_ltv}")


class GtIsSafe(EconomicBoundError):
    def __init__(self, gt_id: int, ltv: int):
        self.gt_id = gt_id
        self.ltv = ltv
        super().__init__(f"position {gt_id} is not liquidatable (ltv {ltv})")


class RepayAmountTooLarge(EconomicBoundError):
    def __init__(self, max_repay: Decimal, amount: Decimal):
        self.max_repay = max_repay
        self.amount = amount
        super().__init__(f"repay {amount} > allowed {max_repay}")


class InsufficientRepayProceeds(EconomicBoundError):
    def __init__(self, debt: Decimal, available: Decimal):
        self.debt = debt
        self.available = available
        super().__init__(f"swap proceeds {available} cannot cover debt {debt}")


class XtReserveTooHigh(EconomicBoundError):
    def __init__(self, max_xt_reserve: Decimal, resulting: Decimal):
        self.max_xt_reserve = max_xt_reserve
        self.resulting = resulting
        super().__init__(f"xt reserve {resulting} > max {max_xt_reserve}")


class InsufficientReserve(EconomicBoundError):
    def __init__(self, token: str, required: Decimal, available: Decimal):
        self.token = token
        self.required = required
        self.available = available
        super().__init__(f"{token}: need {required}, have {available}")


class InsufficientLiquidity(EconomicBoundError):
    """The curve cannot supply the requested trade."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class CallbackDidNotPay(EconomicBoundError):
    def __init__(self, token: str, expected: Decimal, received: Decimal):
        self.token = token
        self.expected = expected
        self.received = received
        super().__init__(f"callback paid {received} {token}, expected {expected}")


class OracleIsNotWorking(EconomicBoundError):
    def __init__(self, asset: str, reason: str):
        self.asset = asset
        self.reason = reason
        super().__init__(f"oracle for {asset}: {reason}")


# ============================================================================
# EXISTENCE
# ============================================================================

class GtDoesNotExist(ExistenceError):
    def __init__(self, gt_id: Any):
        self.gt_id = gt_id
        super().__init__(f"position {gt_id} does not exist")


class MarketNotWhitelisted(ExistenceError):
    def __init__(self, market: str):
        self.market = market
        super().__init__(f"market {market} is not whitelisted")


class AdapterNotWhitelisted(ExistenceError):
    def __init__(self, adapter: str):
        self.adapter = adapter
        super().__init__(f"adapter {adapter} is not whitelisted")


class OrderNotInMarket(ExistenceError):
    def __init__(self, order: str, market: str):
        self.order = order
        self.market = market
        super().__init__(f"order {order} does not belong to {market}")


# ============================================================================
# EXECUTION
# ============================================================================

class RouterIsPaused(ProtocolError):
    def __init__(self):
        super().__init__("router is paused")


class ReentrantCall(ProtocolError):
    def __init__(self, component: str):
        self.component = component
        super().__init__(f"re-entrant call into {component}")


class TransactionRejected(ProtocolError):
    """The ledger refused a transaction a component submitted."""

    def __init__(self, component: str, operation: str, reason: str):
        self.component = component
        self.operation = operation
        self.reason = reason
        super().__init__(f"{component}.{operation} rejected: {reason}")
