"""
interfaces.py - Callback and swap-adapter protocols

Components call back into user code at three points:
    - Order flash swaps      -> SwapCallback.swap_callback
    - Market.leverage_by_xt  -> LeverageCallback.execute_operation
    - GearingToken.flash_repay -> FlashRepayCallback.execute_flash_repay

The Router executes token conversions outside the venue through whitelisted
SwapAdapters, addressed by SwapUnit entries.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Protocol, runtime_checkable

from ..ledger import Ledger


# Maker hook: notified with (ft_reserve_change, xt_reserve_change) after every swap
MakerHook = Callable[[Decimal, Decimal], None]


@runtime_checkable
class PriceOracle(Protocol):
    def get_price(self, asset: str) -> Decimal:
        """Fresh positive price of asset in the base currency, or raise OracleIsNotWorking."""
        ...


@dataclass(frozen=True, slots=True)
class SwapUnit:
    """One hop of an external swap path."""
    adapter: str
    token_in: str
    token_out: str
    extra_data: Any = None


@runtime_checkable
class SwapAdapter(Protocol):
    def swap(
        self,
        ledger: Ledger,
        wallet: str,
        token_in: str,
        token_out: str,
        amount_in: Decimal,
        extra_data: Any,
    ) -> Decimal:
        """Convert amount_in of token_in held by wallet into token_out; return the amount received."""
        ...


@runtime_checkable
class SwapCallback(Protocol):
    def swap_callback(
        self,
        token_in: str,
        token_out: str,
        amount_in: Decimal,
        amount_out: Decimal,
        callback_data: Any,
    ) -> None:
        """Pay amount_in of token_in to the order after receiving amount_out of token_out."""
        ...


@runtime_checkable
class LeverageCallback(Protocol):
    def execute_operation(
        self,
        recipient: str,
        debt_token: str,
        amount: Decimal,
        callback_data: Any,
    ) -> Any:
        """Turn the advanced debt tokens into collateral; return the collateral data to pledge."""
        ...


@runtime_checkable
class FlashRepayCallback(Protocol):
    def execute_flash_repay(
        self,
        repay_token: str,
        repay_amount: Decimal,
        collateral_token: str,
        collateral_data: Any,
        callback_data: Any,
    ) -> None:
        """Source repay_amount of repay_token from the released collateral."""
        ...
