"""
router.py - Aggregation and multi-step orchestration

The Router holds no financial state between calls. Every operation pulls
the caller's tokens into the router wallet, drives Orders, Markets, the
Gearing Token and whitelisted swap adapters, and pushes the results out,
all inside one atomic ledger scope.

Flash flows (leverage, flash repay) hand the Router to a Market or Gearing
Token as the callback. The in-flight context is kept in self._pending and
callbacks arriving without one are refused.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence, Tuple

from ..core import UNIT_TYPE_ROUTER
from ..ledger import Ledger
from .component import Component, entry_point, transfer
from .config import CurveCut
from .errors import (
    AdapterNotWhitelisted, CallerIsNotAuthorized, CallerIsNotOwner,
    CallerIsNotTheMarket, ExcessiveTokenIn, InsufficientRepayProceeds,
    InsufficientTokenOut, LtvBiggerThanExpected, MarketNotWhitelisted,
    OrderNotInMarket, RouterIsPaused,
)
from .interfaces import MakerHook, SwapAdapter, SwapUnit
from .market import Market
from .order import Order

UNBOUNDED = Decimal("Infinity")


class Router(Component):
    """
    Example:
        router = Router(ledger, "router", owner="admin")
        router.set_market_whitelist("admin", market, True)
        received = router.swap_exact_token_to_token(
            "alice", "USDC", market.ft, "alice",
            orders=[order_a, order_b], trading_amts=[Decimal("60"), Decimal("40")],
            min_token_out=Decimal("101"),
        )
    """

    unit_type = UNIT_TYPE_ROUTER

    def __init__(self, ledger: Ledger, router_id: str, owner: str):
        super().__init__(ledger, router_id, f"Router {router_id}", {
            'owner': owner,
            'paused': False,
            'markets': (),
            'adapters': (),
        })
        ledger.ensure_wallet(owner)
        self._adapters: Dict[str, SwapAdapter] = {}
        self._pending: Optional[Dict[str, Any]] = None

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @property
    def owner(self) -> str:
        return self.state['owner']

    @property
    def paused(self) -> bool:
        return self.state['paused']

    def is_market_whitelisted(self, market_id: str) -> bool:
        return market_id in self.state['markets']

    def is_adapter_whitelisted(self, name: str) -> bool:
        return name in self.state['adapters']

    def _only_owner(self, caller: str) -> None:
        owner = self.owner
        if caller != owner:
            raise CallerIsNotOwner(caller, owner)

    @staticmethod
    def _toggle(entries: Tuple[str, ...], key: str, allowed: bool) -> Tuple[str, ...]:
        remaining = tuple(e for e in entries if e != key)
        return remaining + (key,) if allowed else remaining

    @entry_point
    def set_market_whitelist(self, caller: str, market: Market, allowed: bool) -> None:
        self._only_owner(caller)
        state = self.state
        self._submit('WHITELIST_MARKET', [], new_state={
            **state, 'markets': self._toggle(state['markets'], market.id, allowed),
        })
        self._emit('UpdateMarketWhitelist', market=market.id, allowed=allowed)

    @entry_point
    def set_adapter_whitelist(self, caller: str, name: str, adapter: Optional[SwapAdapter], allowed: bool) -> None:
        self._only_owner(caller)
        state = self.state
        self._submit('WHITELIST_ADAPTER', [], new_state={
            **state, 'adapters': self._toggle(state['adapters'], name, allowed),
        })
        if allowed:
            self._adapters[name] = adapter
        self._emit('UpdateSwapAdapterWhitelist', adapter=name, allowed=allowed)

    @entry_point
    def pause(self, caller: str) -> None:
        self._only_owner(caller)
        self._submit('PAUSE', [], new_state={**self.state, 'paused': True})
        self._emit('Paused', caller=caller)

    @entry_point
    def unpause(self, caller: str) -> None:
        self._only_owner(caller)
        self._submit('UNPAUSE', [], new_state={**self.state, 'paused': False})
        self._emit('Unpaused', caller=caller)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _require_active(self) -> None:
        if self.paused:
            raise RouterIsPaused()

    def _check_market(self, market: Market) -> None:
        if not self.is_market_whitelisted(market.id):
            raise MarketNotWhitelisted(market.id)

    def _check_orders(self, orders: Sequence[Order], amounts: Sequence[Decimal], market: Optional[Market] = None) -> None:
        if len(orders) != len(amounts):
            raise ValueError(f"{len(orders)} orders but {len(amounts)} amounts")
        for order in orders:
            self._check_market(order.market)
            if order.id not in order.market.state['orders']:
                raise OrderNotInMarket(order.id, order.market.id)
            if market is not None and order.market is not market:
                raise OrderNotInMarket(order.id, market.id)

    def _check_units(
        self,
        units: Sequence[SwapUnit],
        token_in: Optional[str] = None,
        token_out: Optional[str] = None,
    ) -> None:
        """Adapters must be whitelisted and the path must chain from token_in to token_out."""
        for unit in units:
            if not self.is_adapter_whitelisted(unit.adapter):
                raise AdapterNotWhitelisted(unit.adapter)
        if not units:
            return
        for prev, nxt in zip(units, units[1:]):
            if prev.token_out != nxt.token_in:
                raise ValueError(f"swap path breaks: {prev.token_out} then {nxt.token_in}")
        if token_in is not None and units[0].token_in != token_in:
            raise ValueError(f"swap path must start from {token_in}, got {units[0].token_in}")
        if token_out is not None and units[-1].token_out != token_out:
            raise ValueError(f"swap path must end in {token_out}, got {units[-1].token_out}")

    # ------------------------------------------------------------------
    # Token plumbing
    # ------------------------------------------------------------------

    def _pull(self, operation: str, caller: str, amounts: Sequence[Tuple[str, Decimal]]) -> None:
        for token, qty in amounts:
            self._require_on_grid(token, qty)
        self._submit(operation, [transfer(token, caller, self.id, qty, self.id) for token, qty in amounts])

    def _push(self, operation: str, recipient: str, amounts: Sequence[Tuple[str, Decimal]]) -> None:
        self._submit(operation, [transfer(token, self.id, recipient, qty, self.id) for token, qty in amounts])

    def _held(self, token: str) -> Decimal:
        return self.ledger.get_balance(self.id, token)

    def _swap_orders(
        self,
        token_in: str,
        token_out: str,
        orders: Sequence[Order],
        amounts: Sequence[Decimal],
        exact_in: bool = True,
        budget: Optional[Decimal] = None,
    ) -> Decimal:
        """
        Trade through orders in sequence with the router as payer and recipient.

        Returns the total received (exact_in) or the total paid (exact-out).
        An exact-out budget caps the running total paid.
        """
        total = Decimal("0")
        for order, amount in zip(orders, amounts):
            if amount <= 0:
                continue
            if exact_in:
                limit = Decimal("0")
            else:
                limit = UNBOUNDED if budget is None else budget - total
            total += order.swap(self.id, token_in, token_out, self.id, amount, limit, exact_in)
        return total

    def _do_swap(self, units: Sequence[SwapUnit], amount: Decimal) -> Decimal:
        """Chain whitelisted adapters over the router wallet; returns the final amount."""
        self._check_units(units)
        for unit in units:
            if amount <= 0:
                break
            amount = self._adapters[unit.adapter].swap(
                self.ledger, self.id, unit.token_in, unit.token_out, amount, unit.extra_data,
            )
        return amount

    # ------------------------------------------------------------------
    # Swaps
    # ------------------------------------------------------------------

    @entry_point
    def swap_exact_token_to_token(
        self,
        caller: str,
        token_in: str,
        token_out: str,
        recipient: str,
        orders: Sequence[Order],
        trading_amts: Sequence[Decimal],
        min_token_out: Decimal,
    ) -> Decimal:
        """Sell trading_amts[i] of token_in into orders[i]; all output goes to recipient."""
        self._require_active()
        self._check_orders(orders, trading_amts)
        amount_in = sum(trading_amts, Decimal("0"))
        self._pull('PULL', caller, [(token_in, amount_in)])
        amount_out = self._swap_orders(token_in, token_out, orders, trading_amts)
        if amount_out < min_token_out:
            raise InsufficientTokenOut(min_token_out, amount_out)
        self._push('PUSH', recipient, [(token_out, amount_out)])
        self._emit('SwapExactTokenToToken', caller=caller, recipient=recipient, token_in=token_in,
                   token_out=token_out, orders=tuple(o.id for o in orders),
                   amount_in=amount_in, amount_out=amount_out)
        return amount_out

    @entry_point
    def swap_token_to_exact_token(
        self,
        caller: str,
        token_in: str,
        token_out: str,
        recipient: str,
        orders: Sequence[Order],
        trading_amts: Sequence[Decimal],
        max_token_in: Decimal,
    ) -> Decimal:
        """Buy trading_amts[i] of token_out from orders[i]; returns the token_in spent."""
        self._require_active()
        self._check_orders(orders, trading_amts)
        self._pull('PULL', caller, [(token_in, max_token_in)])
        amount_in = self._swap_orders(token_in, token_out, orders, trading_amts, exact_in=False, budget=max_token_in)
        if amount_in > max_token_in:
            raise ExcessiveTokenIn(max_token_in, amount_in)
        amount_out = sum(trading_amts, Decimal("0"))
        self._push('PUSH', recipient, [(token_out, amount_out)])
        self._push('REFUND', caller, [(token_in, max_token_in - amount_in)])
        self._emit('SwapTokenToExactToken', caller=caller, recipient=recipient, token_in=token_in,
                   token_out=token_out, orders=tuple(o.id for o in orders),
                   amount_in=amount_in, amount_out=amount_out)
        return amount_in

    @entry_point
    def sell_tokens(
        self,
        caller: str,
        recipient: str,
        market: Market,
        ft_in: Decimal,
        xt_in: Decimal,
        orders: Sequence[Order],
        amts_to_sell: Sequence[Decimal],
        min_token_out: Decimal,
    ) -> Decimal:
        """
        Turn FT and XT into debt tokens: matched pairs are burned through the
        market and the surplus side is sold through orders. Unsold surplus is
        returned to the caller.
        """
        self._require_active()
        self._check_market(market)
        self._check_orders(orders, amts_to_sell, market)
        self._pull('PULL', caller, [(market.ft, ft_in), (market.xt, xt_in)])

        pairs = min(ft_in, xt_in)
        if pairs > 0:
            market.burn(self.id, self.id, pairs)
        surplus_token = market.ft if ft_in > xt_in else market.xt
        surplus = abs(ft_in - xt_in)
        to_sell = sum(amts_to_sell, Decimal("0"))
        if to_sell > surplus:
            raise ValueError(f"selling {to_sell} but only {surplus} {surplus_token} left after burning pairs")
        sold = self._swap_orders(surplus_token, market.debt_token, orders, amts_to_sell)

        token_out = pairs + sold
        if token_out < min_token_out:
            raise InsufficientTokenOut(min_token_out, token_out)
        self._push('PUSH', recipient, [(market.debt_token, token_out)])
        self._push('REFUND', caller, [(surplus_token, surplus - to_sell)])
        self._emit('SellTokens', caller=caller, recipient=recipient, market=market.id,
                   ft_in=ft_in, xt_in=xt_in, token_out=token_out)
        return token_out

    # ------------------------------------------------------------------
    # Leverage
    # ------------------------------------------------------------------

    def _leverage(
        self,
        caller: str,
        recipient: str,
        market: Market,
        xt_amount: Decimal,
        token_in: Decimal,
        max_ltv: int,
        units: Sequence[SwapUnit],
    ) -> int:
        self._check_units(units, market.debt_token, market.collateral)
        self._pending = {'market': market, 'units': tuple(units), 'token_in': token_in}
        try:
            gt_id = market.leverage_by_xt(self.id, recipient, xt_amount, self)
        finally:
            self._pending = None
        ltv = market.gt.loan_info(gt_id).ltv
        if ltv > max_ltv:
            raise LtvBiggerThanExpected(max_ltv, ltv)
        self._emit('IssueGt', caller=caller, recipient=recipient, market=market.id, gt_id=gt_id,
                   debt_amount=xt_amount, ltv=ltv)
        return gt_id

    def execute_operation(self, recipient: str, debt_token: str, amount: Decimal, callback_data: Any) -> Decimal:
        """Leverage callback: swap the advance plus the caller's tokens into collateral."""
        pending = self._pending
        if pending is None or 'token_in' not in pending:
            raise CallerIsNotTheMarket("unknown", self.id)
        return self._do_swap(pending['units'], amount + pending['token_in'])

    @entry_point
    def leverage_from_token(
        self,
        caller: str,
        recipient: str,
        market: Market,
        orders: Sequence[Order],
        amts_to_buy_xt: Sequence[Decimal],
        min_xt_out: Decimal,
        token_to_swap: Decimal,
        max_ltv: int,
        units: Sequence[SwapUnit],
    ) -> Tuple[int, Decimal]:
        """
        Buy XT with debt tokens, then open a leveraged position with it.

        amts_to_buy_xt[i] debt tokens are spent on orders[i]; token_to_swap
        more debt tokens are swapped into collateral alongside the advance.

        Returns:
            (gt_id, xt_out)
        """
        self._require_active()
        self._check_market(market)
        self._check_orders(orders, amts_to_buy_xt, market)
        spend = sum(amts_to_buy_xt, Decimal("0"))
        self._pull('PULL', caller, [(market.debt_token, spend + token_to_swap)])
        xt_out = self._swap_orders(market.debt_token, market.xt, orders, amts_to_buy_xt)
        if xt_out < min_xt_out:
            raise InsufficientTokenOut(min_xt_out, xt_out)
        gt_id = self._leverage(caller, recipient, market, xt_out, token_to_swap, max_ltv, units)
        return gt_id, xt_out

    @entry_point
    def leverage_from_xt(
        self,
        caller: str,
        recipient: str,
        market: Market,
        xt_in: Decimal,
        token_in: Decimal,
        max_ltv: int,
        units: Sequence[SwapUnit],
    ) -> int:
        """Open a leveraged position from XT the caller already holds, plus token_in debt tokens."""
        self._require_active()
        self._check_market(market)
        self._pull('PULL', caller, [(market.xt, xt_in), (market.debt_token, token_in)])
        return self._leverage(caller, recipient, market, xt_in, token_in, max_ltv, units)

    # ------------------------------------------------------------------
    # Borrowing
    # ------------------------------------------------------------------

    def _sell_ft_for_debt(
        self,
        market: Market,
        gt_id: int,
        ft_issued: Decimal,
        orders: Sequence[Order],
        token_amts_want_buy: Sequence[Decimal],
    ) -> Decimal:
        """Sell issued FT for exact debt-token amounts; unused FT repays the position."""
        ft_spent = self._swap_orders(
            market.ft, market.debt_token, orders, token_amts_want_buy, exact_in=False, budget=ft_issued,
        )
        leftover = ft_issued - ft_spent
        if leftover > 0:
            market.gt.repay(self.id, gt_id, leftover, by_debt_token=False)
        return sum(token_amts_want_buy, Decimal("0"))

    @entry_point
    def borrow_token_from_collateral(
        self,
        caller: str,
        recipient: str,
        market: Market,
        collateral_in: Decimal,
        orders: Sequence[Order],
        token_amts_want_buy: Sequence[Decimal],
        max_debt_amt: Decimal,
    ) -> int:
        """
        Pledge collateral, issue up to max_debt_amt FT and sell them for
        exactly sum(token_amts_want_buy) debt tokens. The new position goes
        to recipient together with the borrowed tokens.
        """
        self._require_active()
        self._check_market(market)
        self._check_orders(orders, token_amts_want_buy, market)
        self._pull('PULL', caller, [(market.collateral, collateral_in)])
        gt_id, ft_out = market.issue_ft(self.id, self.id, max_debt_amt, collateral_in)
        borrowed = self._sell_ft_for_debt(market, gt_id, ft_out, orders, token_amts_want_buy)
        market.gt.transfer_from(self.id, self.id, recipient, gt_id)
        self._push('PUSH', recipient, [(market.debt_token, borrowed)])
        self._emit('Borrow', caller=caller, recipient=recipient, market=market.id, gt_id=gt_id,
                   collateral_in=collateral_in, debt_amount=market.gt.loan_info(gt_id).debt_amount,
                   borrowed=borrowed)
        return gt_id

    @entry_point
    def borrow_token_from_gt(
        self,
        caller: str,
        recipient: str,
        market: Market,
        gt_id: int,
        orders: Sequence[Order],
        token_amts_want_buy: Sequence[Decimal],
        max_debt_amt: Decimal,
    ) -> Decimal:
        """Borrow more against a position the caller owns; the router must be its approved operator."""
        self._require_active()
        self._check_market(market)
        self._check_orders(orders, token_amts_want_buy, market)
        if market.gt.owner_of(gt_id) != caller:
            raise CallerIsNotAuthorized(caller, gt_id)
        ft_out = market.issue_ft_by_existed_gt(self.id, self.id, max_debt_amt, gt_id)
        borrowed = self._sell_ft_for_debt(market, gt_id, ft_out, orders, token_amts_want_buy)
        self._push('PUSH', recipient, [(market.debt_token, borrowed)])
        self._emit('Borrow', caller=caller, recipient=recipient, market=market.id, gt_id=gt_id,
                   collateral_in=Decimal("0"), debt_amount=market.gt.loan_info(gt_id).debt_amount,
                   borrowed=borrowed)
        return borrowed

    # ------------------------------------------------------------------
    # Repayment
    # ------------------------------------------------------------------

    def execute_flash_repay(
        self,
        repay_token: str,
        repay_amount: Decimal,
        collateral_token: str,
        collateral_data: Any,
        callback_data: Any,
    ) -> None:
        """Flash-repay callback: swap released collateral into the repay token."""
        pending = self._pending
        if pending is None or 'orders' not in pending:
            raise CallerIsNotTheMarket("unknown", self.id)
        market: Market = pending['market']
        proceeds = self._do_swap(pending['units'], collateral_data)
        if repay_token == market.ft:
            self._swap_orders(
                market.debt_token, market.ft, pending['orders'], pending['amounts'],
                exact_in=False, budget=proceeds,
            )
        available = self._held(repay_token)
        if available < repay_amount:
            raise InsufficientRepayProceeds(repay_amount, available)

    @entry_point
    def flash_repay_from_coll(
        self,
        caller: str,
        recipient: str,
        market: Market,
        gt_id: int,
        by_debt_token: bool,
        units: Sequence[SwapUnit],
        orders: Sequence[Order] = (),
        ft_amts_to_buy: Sequence[Decimal] = (),
    ) -> Decimal:
        """
        Close a position using its own collateral.

        The collateral is released to the router, swapped through `units`
        into debt tokens and, when repaying in FT, spent on buying
        ft_amts_to_buy from orders. Whatever remains after the full debt is
        repaid goes to recipient; the debt-token leftover is returned.
        The caller must own the position and have approved the router.
        """
        self._require_active()
        self._check_market(market)
        self._check_units(units, market.collateral, market.debt_token)
        self._check_orders(orders, ft_amts_to_buy, market)
        if market.gt.owner_of(gt_id) != caller:
            raise CallerIsNotAuthorized(caller, gt_id)
        debt_before = self._held(market.debt_token)
        ft_before = self._held(market.ft)

        self._pending = {'market': market, 'units': tuple(units), 'orders': tuple(orders),
                         'amounts': tuple(ft_amts_to_buy)}
        try:
            debt = market.gt.flash_repay(self.id, gt_id, by_debt_token, self)
        finally:
            self._pending = None

        leftover = self._held(market.debt_token) - debt_before
        ft_leftover = self._held(market.ft) - ft_before
        self._push('PUSH', recipient, [(market.debt_token, leftover), (market.ft, ft_leftover)])
        self._emit('FlashRepay', caller=caller, recipient=recipient, market=market.id, gt_id=gt_id,
                   debt_amount=debt, by_debt_token=by_debt_token, leftover=leftover)
        return leftover

    @entry_point
    def repay_by_token_through_ft(
        self,
        caller: str,
        recipient: str,
        market: Market,
        gt_id: int,
        orders: Sequence[Order],
        ft_amts_to_buy: Sequence[Decimal],
        max_token_in: Decimal,
    ) -> Decimal:
        """
        Buy FT with debt tokens and repay a position with it. FT bought beyond
        the outstanding debt and unspent debt tokens go to recipient.

        Returns the debt tokens spent.
        """
        self._require_active()
        self._check_market(market)
        self._check_orders(orders, ft_amts_to_buy, market)
        self._pull('PULL', caller, [(market.debt_token, max_token_in)])
        spent = self._swap_orders(
            market.debt_token, market.ft, orders, ft_amts_to_buy, exact_in=False, budget=max_token_in,
        )
        if spent > max_token_in:
            raise ExcessiveTokenIn(max_token_in, spent)
        ft_bought = sum(ft_amts_to_buy, Decimal("0"))
        repay_amount = min(ft_bought, market.gt.loan_info(gt_id).debt_amount)
        closed = market.gt.repay(self.id, gt_id, repay_amount, by_debt_token=False)
        self._push('REFUND', recipient, [
            (market.debt_token, max_token_in - spent),
            (market.ft, ft_bought - repay_amount),
        ])
        self._emit('RepayByTokenThroughFt', caller=caller, recipient=recipient, market=market.id,
                   gt_id=gt_id, spent=spent, repay_amount=repay_amount, closed=closed)
        return spent

    # ------------------------------------------------------------------
    # Redemption and order setup
    # ------------------------------------------------------------------

    @entry_point
    def redeem_and_swap(
        self,
        caller: str,
        recipient: str,
        market: Market,
        ft_amount: Decimal,
        units: Sequence[SwapUnit],
        min_token_out: Decimal,
    ) -> Decimal:
        """
        Redeem FT and swap the delivered collateral into debt tokens.

        Without units, collateral is passed to recipient unchanged and only
        the debt-token part counts toward min_token_out.
        """
        self._require_active()
        self._check_market(market)
        self._check_units(units, market.collateral, market.debt_token)
        self._pull('PULL', caller, [(market.ft, ft_amount)])
        debt_out, collateral_out = market.redeem(self.id, ft_amount, self.id)
        token_out = debt_out
        if units:
            token_out += self._do_swap(units, collateral_out)
        else:
            self._push('PUSH_COLLATERAL', recipient, [(market.collateral, collateral_out)])
        if token_out < min_token_out:
            raise InsufficientTokenOut(min_token_out, token_out)
        self._push('PUSH', recipient, [(market.debt_token, token_out)])
        self._emit('RedeemAndSwap', caller=caller, recipient=recipient, market=market.id,
                   ft_amount=ft_amount, token_out=token_out)
        return token_out

    @entry_point
    def create_order_and_deposit(
        self,
        caller: str,
        market: Market,
        maker: str,
        max_xt_reserve: Decimal,
        swap_callback: Optional[MakerHook],
        curve_cuts: Sequence[CurveCut],
        debt_amount: Decimal = Decimal("0"),
        ft_amount: Decimal = Decimal("0"),
        xt_amount: Decimal = Decimal("0"),
    ) -> Order:
        self._require_active()
        self._check_market(market)
        order = market.create_order(caller, maker, max_xt_reserve, swap_callback, curve_cuts)
        order.deposit(caller, debt_amount, ft_amount, xt_amount)
        return order
