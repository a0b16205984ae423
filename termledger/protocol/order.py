"""
order.py - Curve-priced FT/XT order

An Order holds FT and XT reserves for one market and quotes four trades
against the debt token. Debt tokens never rest in the order: incoming debt
tokens are immediately minted into FT+XT pairs, and outgoing debt tokens are
obtained by burning pairs.

    side       taker pays -> gets    fee ratios   xt reserve
    BUY_FT     debt  -> FT           lend         up
    SELL_XT    XT    -> debt         lend         up
    SELL_FT    FT    -> debt         borrow       down
    BUY_XT     debt  -> XT           borrow       down

Fees are charged in the debt token: the taker share goes to the market
treasurer and the maker share to the order's maker.

ARCHITECTURE:
=============

1. calculate_swap(): PURE FUNCTION producing a SwapPlan from the curve,
   the current XT reserve, the amount and the fee ratios.
2. Order: validates the plan against reserves and limits, then settles it
   through the market (mint/burn) and the ledger, optionally as a flash swap.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional, Sequence

from ..core import UNIT_TYPE_ORDER, quantize_down, quantize_up
from ..ledger import Ledger
from .component import Component, entry_point, transfer
from .config import CurveCut, OrderConfig, validate_order_config
from .curve import (
    ft_in_for_xt_out, ft_out_for_xt_in, ft_price, split_down, split_up,
    xt_in_for_ft_out, xt_out_for_ft_in,
)
from .errors import (
    CallbackDidNotPay, CallerIsNotMaker, ExcessiveTokenIn, InsufficientLiquidity,
    InsufficientReserve, InsufficientTokenOut, TermIsNotOpen, XtReserveTooHigh,
)
from .fixed_point import fee_on, gross_for_net, split_fee
from .interfaces import MakerHook, SwapCallback

if TYPE_CHECKING:
    from .market import Market


BUY_FT = "BUY_FT"
SELL_FT = "SELL_FT"
BUY_XT = "BUY_XT"
SELL_XT = "SELL_XT"

LEND_SIDES = (BUY_FT, SELL_XT)
DEBT_IN_SIDES = (BUY_FT, BUY_XT)


@dataclass(frozen=True, slots=True)
class SwapPlan:
    """
    Fully priced swap.

    debt_amount is the gross debt-token flow: pulled from the taker on
    BUY_* sides, released by burning `pairs` on SELL_* sides. ft_change and
    xt_change are the order's reserve changes.
    """
    side: str
    amount_in: Decimal
    amount_out: Decimal
    debt_amount: Decimal
    pairs: Decimal
    taker_fee: Decimal
    maker_fee: Decimal
    ft_change: Decimal
    xt_change: Decimal

    @property
    def fee(self) -> Decimal:
        return self.taker_fee + self.maker_fee


def calculate_swap(
    side: str,
    cuts: Sequence[CurveCut],
    xt_reserve: Decimal,
    amount: Decimal,
    exact_in: bool,
    taker_ratio: int,
    maker_ratio: int,
    places: Optional[int],
) -> SwapPlan:
    """
    Price a swap against the curve.

    PURE FUNCTION - All inputs explicit, no hidden state.

    Amounts paid to the taker are rounded down; amounts taken from the taker
    are rounded up.
    """
    if amount <= 0:
        raise ValueError(f"amount must be positive, got {amount}")
    ratio = taker_ratio + maker_ratio
    down = lambda v: quantize_down(v, places)
    up = lambda v: quantize_up(v, places)

    if side == BUY_FT:
        if exact_in:
            debt = amount
            fee = fee_on(debt, ratio, places)
            pairs = debt - fee
            ft_out = down(ft_out_for_xt_in(cuts, xt_reserve, pairs))
            amount_in, amount_out = debt, pairs + ft_out
        else:
            xt_in, _ = split_up(cuts, xt_reserve, amount)
            pairs = up(xt_in)
            debt = gross_for_net(pairs, ratio, places)
            fee = debt - pairs
            amount_in, amount_out = debt, amount
        ft_change, xt_change = pairs - amount_out, pairs

    elif side == BUY_XT:
        if exact_in:
            debt = amount
            fee = fee_on(debt, ratio, places)
            pairs = debt - fee
            xt_out = down(xt_out_for_ft_in(cuts, xt_reserve, pairs))
            amount_in, amount_out = debt, pairs + xt_out
        else:
            _, ft_in = split_down(cuts, xt_reserve, amount)
            pairs = up(ft_in)
            debt = gross_for_net(pairs, ratio, places)
            fee = debt - pairs
            amount_in, amount_out = debt, amount
        ft_change, xt_change = pairs, pairs - amount_out

    elif side == SELL_FT:
        if exact_in:
            xt_out, _ = split_down(cuts, xt_reserve, amount)
            debt = down(xt_out)
            fee = fee_on(debt, ratio, places)
            amount_in, amount_out = amount, debt - fee
        else:
            debt = gross_for_net(amount, ratio, places)
            fee = debt - amount
            amount_in = debt + up(ft_in_for_xt_out(cuts, xt_reserve, debt))
            amount_out = amount
        pairs = debt
        ft_change, xt_change = amount_in - debt, -debt

    elif side == SELL_XT:
        if exact_in:
            _, ft_out = split_up(cuts, xt_reserve, amount)
            debt = down(ft_out)
            fee = fee_on(debt, ratio, places)
            amount_in, amount_out = amount, debt - fee
        else:
            debt = gross_for_net(amount, ratio, places)
            fee = debt - amount
            amount_in = debt + up(xt_in_for_ft_out(cuts, xt_reserve, debt))
            amount_out = amount
        pairs = debt
        ft_change, xt_change = -debt, amount_in - debt

    else:
        raise ValueError(f"unknown swap side {side}")

    if pairs <= 0 or amount_out <= 0:
        raise InsufficientLiquidity(f"{side} of {amount} is too small to settle")
    taker_fee, maker_fee = split_fee(fee, taker_ratio, maker_ratio, places)
    return SwapPlan(
        side=side,
        amount_in=amount_in,
        amount_out=amount_out,
        debt_amount=debt,
        pairs=pairs,
        taker_fee=taker_fee,
        maker_fee=maker_fee,
        ft_change=ft_change,
        xt_change=xt_change,
    )


class Order(Component):
    """
    Maker-owned liquidity on one market. Created through Market.create_order().

    Reserves are the order wallet's FT and XT balances; the curve and
    max_xt_reserve live in the order's unit state.
    """

    unit_type = UNIT_TYPE_ORDER

    def __init__(
        self,
        ledger: Ledger,
        order_id: str,
        market: 'Market',
        maker: str,
        config: OrderConfig,
        swap_callback: Optional[MakerHook] = None,
    ):
        self.market = market
        self._swap_callback = swap_callback
        super().__init__(ledger, order_id, f"Order {order_id}", {
            'market': market.id,
            'maker': maker,
            'config': config,
        })

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def maker(self) -> str:
        return self.state['maker']

    @property
    def config(self) -> OrderConfig:
        return self.state['config']

    @property
    def ft_reserve(self) -> Decimal:
        return self.ledger.get_balance(self.id, self.market.ft)

    @property
    def xt_reserve(self) -> Decimal:
        return self.ledger.get_balance(self.id, self.market.xt)

    def ft_price(self) -> Decimal:
        """Spot price of one FT in debt tokens, before fees."""
        return ft_price(self.config.curve_cuts, self.xt_reserve)

    def _side(self, token_in: str, token_out: str) -> str:
        market = self.market
        sides = {
            (market.debt_token, market.ft): BUY_FT,
            (market.ft, market.debt_token): SELL_FT,
            (market.debt_token, market.xt): BUY_XT,
            (market.xt, market.debt_token): SELL_XT,
        }
        if (token_in, token_out) not in sides:
            raise ValueError(f"unsupported pair {token_in} -> {token_out} on {self.id}")
        return sides[(token_in, token_out)]

    def quote(self, token_in: str, token_out: str, amount: Decimal, exact_in: bool = True) -> SwapPlan:
        """Price a swap without executing it; reserve bounds are checked."""
        side = self._side(token_in, token_out)
        fees = self.market.config.fee_config
        if side in LEND_SIDES:
            taker_ratio, maker_ratio = fees.lend_taker_fee_ratio, fees.lend_maker_fee_ratio
        else:
            taker_ratio, maker_ratio = fees.borrow_taker_fee_ratio, fees.borrow_maker_fee_ratio
        config = self.config
        xt_reserve = self.xt_reserve
        plan = calculate_swap(
            side, config.curve_cuts, xt_reserve, amount, exact_in,
            taker_ratio, maker_ratio, self.market.places,
        )
        new_xt = xt_reserve + plan.xt_change
        if plan.xt_change > 0 and new_xt > config.max_xt_reserve:
            raise XtReserveTooHigh(config.max_xt_reserve, new_xt)
        if new_xt < 0:
            raise InsufficientReserve(self.market.xt, -plan.xt_change, xt_reserve)
        ft_reserve = self.ft_reserve
        if ft_reserve + plan.ft_change < 0:
            raise InsufficientReserve(self.market.ft, -plan.ft_change, ft_reserve)
        return plan

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _only_maker(self, caller: str) -> None:
        maker = self.maker
        if caller != maker:
            raise CallerIsNotMaker(caller, maker)

    def _require_term_open(self) -> None:
        now = self.ledger.current_time
        if now >= self.market.maturity:
            raise TermIsNotOpen(now, self.market.maturity)

    def _require_balance(self, unit: str, required: Decimal) -> None:
        available = self.ledger.get_balance(self.id, unit)
        if available < required:
            raise InsufficientReserve(unit, required, available)

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def _fee_moves(self, plan: SwapPlan) -> list:
        debt = self.market.debt_token
        return [
            transfer(debt, self.id, self.market.config.treasurer, plan.taker_fee, self.id),
            transfer(debt, self.id, self.maker, plan.maker_fee, self.id),
        ]

    def _settle(self, payer: str, recipient: str, token_in: str, token_out: str, plan: SwapPlan) -> None:
        if plan.side in DEBT_IN_SIDES:
            self._submit('SWAP_IN', [transfer(token_in, payer, self.id, plan.amount_in, self.id)] + self._fee_moves(plan))
            self.market.mint(self.id, self.id, plan.pairs)
            self._submit('SWAP_OUT', [transfer(token_out, self.id, recipient, plan.amount_out, self.id)])
        else:
            self._submit('SWAP_IN', [transfer(token_in, payer, self.id, plan.amount_in, self.id)])
            self.market.burn(self.id, self.id, plan.pairs)
            self._submit('SWAP_OUT', self._fee_moves(plan) + [
                transfer(token_out, self.id, recipient, plan.amount_out, self.id),
            ])

    def _settle_flash(
        self,
        recipient: str,
        token_in: str,
        token_out: str,
        plan: SwapPlan,
        callback: SwapCallback,
        callback_data: Any,
    ) -> None:
        """
        Pay out first, let the callback pay in, then verify receipt.

        On BUY sides only the curve output comes from the reserve up front;
        the pairs are minted from the incoming debt tokens and paid after.
        """
        if plan.side in DEBT_IN_SIDES:
            from_reserve = plan.amount_out - plan.pairs
            self._require_balance(token_out, from_reserve)
            self._submit('FLASH_OUT', [transfer(token_out, self.id, recipient, from_reserve, self.id)])
        else:
            self._require_balance(self.market.ft, plan.pairs)
            self._require_balance(self.market.xt, plan.pairs)
            self.market.burn(self.id, self.id, plan.pairs)
            self._submit('FLASH_OUT', self._fee_moves(plan) + [
                transfer(token_out, self.id, recipient, plan.amount_out, self.id),
            ])

        before = self.ledger.get_balance(self.id, token_in)
        callback.swap_callback(token_in, token_out, plan.amount_in, plan.amount_out, callback_data)
        received = self.ledger.get_balance(self.id, token_in) - before
        if received < plan.amount_in:
            raise CallbackDidNotPay(token_in, plan.amount_in, received)

        if plan.side in DEBT_IN_SIDES:
            self._submit('FLASH_FEES', self._fee_moves(plan))
            self.market.mint(self.id, self.id, plan.pairs)
            self._submit('FLASH_PAIRS', [transfer(token_out, self.id, recipient, plan.pairs, self.id)])

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @entry_point
    def swap(
        self,
        caller: str,
        token_in: str,
        token_out: str,
        recipient: str,
        amount: Decimal,
        limit: Decimal,
        exact_in: bool = True,
        callback: Optional[SwapCallback] = None,
        callback_data: Any = None,
    ) -> Decimal:
        """
        Trade against the order.

        exact_in=True: `amount` of token_in is paid, the amount of token_out
        received is returned and must be at least `limit`.
        exact_in=False: `amount` of token_out is received, the amount of
        token_in paid is returned and must be at most `limit`.

        With a callback the order pays token_out first and calls
        callback.swap_callback(); token_in must have arrived when it returns.
        """
        self._require_term_open()
        plan = self.quote(token_in, token_out, amount, exact_in)
        if exact_in and plan.amount_out < limit:
            raise InsufficientTokenOut(limit, plan.amount_out)
        if not exact_in and plan.amount_in > limit:
            raise ExcessiveTokenIn(limit, plan.amount_in)

        if callback is None:
            self._settle(caller, recipient, token_in, token_out, plan)
        else:
            self._settle_flash(recipient, token_in, token_out, plan, callback, callback_data)

        if self._swap_callback is not None:
            self._swap_callback(plan.ft_change, plan.xt_change)
        self._emit(
            'Swap', caller=caller, recipient=recipient, side=plan.side,
            token_in=token_in, token_out=token_out,
            amount_in=plan.amount_in, amount_out=plan.amount_out,
            fee=plan.fee, ft_reserve=self.ft_reserve, xt_reserve=self.xt_reserve,
        )
        return plan.amount_out if exact_in else plan.amount_in

    @entry_point
    def deposit(
        self,
        caller: str,
        debt_amount: Decimal = Decimal("0"),
        ft_amount: Decimal = Decimal("0"),
        xt_amount: Decimal = Decimal("0"),
    ) -> None:
        """Add reserves: debt tokens are minted into pairs, FT and XT are transferred in."""
        if debt_amount < 0 or ft_amount < 0 or xt_amount < 0:
            raise ValueError("deposit amounts must be non-negative")
        market = self.market
        self._submit('DEPOSIT', [
            transfer(market.debt_token, caller, self.id, debt_amount, self.id),
            transfer(market.ft, caller, self.id, ft_amount, self.id),
            transfer(market.xt, caller, self.id, xt_amount, self.id),
        ])
        if debt_amount > 0:
            market.mint(self.id, self.id, debt_amount)
        self._emit('Deposit', caller=caller, debt_amount=debt_amount, ft_amount=ft_amount, xt_amount=xt_amount)

    @entry_point
    def withdraw_assets(self, caller: str, token: str, recipient: str, amount: Decimal) -> None:
        self._only_maker(caller)
        self._require_balance(token, amount)
        self._submit('WITHDRAW', [transfer(token, self.id, recipient, amount, self.id)])
        self._emit('WithdrawAssets', token=token, recipient=recipient, amount=amount)

    @entry_point
    def update_order(
        self,
        caller: str,
        curve_cuts: Optional[Sequence[CurveCut]] = None,
        max_xt_reserve: Optional[Decimal] = None,
    ) -> None:
        self._only_maker(caller)
        state = self.state
        current: OrderConfig = state['config']
        config = OrderConfig(
            max_xt_reserve=max_xt_reserve if max_xt_reserve is not None else current.max_xt_reserve,
            curve_cuts=tuple(curve_cuts) if curve_cuts is not None else current.curve_cuts,
        )
        validate_order_config(config)
        self._submit('UPDATE_ORDER', [], new_state={**state, 'config': config})
        self._emit('UpdateOrder', max_xt_reserve=config.max_xt_reserve, cuts=len(config.curve_cuts))

    @entry_point
    def set_swap_callback(self, caller: str, swap_callback: Optional[MakerHook]) -> None:
        self._only_maker(caller)
        self._swap_callback = swap_callback

    @entry_point
    def transfer_maker(self, caller: str, new_maker: str) -> None:
        self._only_maker(caller)
        self.ledger.ensure_wallet(new_maker)
        state = self.state
        self._submit('TRANSFER_MAKER', [], new_state={**state, 'maker': new_maker})
        self._emit('TransferMaker', previous=caller, maker=new_maker)
