"""
test_order.py - Unit tests for curve-priced orders

Tests:
- calculate_swap: pricing per side, fee split, bad inputs
- Order.swap: exact-in / exact-out, limits, fees, reserve bounds
- Flash swaps through a callback
- Maker hook notifications
- Maker-only management: withdraw, update, transfer
"""

import pytest
from decimal import Decimal

from termledger.protocol import (
    BUY_FT, BUY_XT, SELL_FT, SELL_XT, CurveCut,
    CallbackDidNotPay, CallerIsNotMaker, ExcessiveTokenIn,
    InsufficientReserve, InsufficientTokenOut, InvalidCurveCuts,
    TermIsNotOpen, XtReserveTooHigh,
    calculate_swap,
)
from tests.venue import (
    CURVE, MATURITY, NonPayingCallback, PayingCallback, RecordingHook,
    debt_conserved, make_order, new_venue, snapshot,
)


X = Decimal("10000")


# ============================================================================
# PURE PRICING
# ============================================================================

class TestCalculateSwap:

    def test_buy_ft_exact_in(self):
        plan = calculate_swap(BUY_FT, CURVE, X, Decimal("100"), True, 0, 0, 6)

        assert plan.side == BUY_FT
        assert plan.amount_in == Decimal("100")
        assert plan.pairs == Decimal("100")
        assert plan.amount_out == Decimal("104.975124")
        assert plan.ft_change == Decimal("-4.975124")
        assert plan.xt_change == Decimal("100")
        assert plan.fee == 0

    def test_buy_ft_exact_in_with_fees(self):
        plan = calculate_swap(BUY_FT, CURVE, X, Decimal("100"), True, 300_000, 200_000, 6)

        assert plan.pairs == Decimal("99.5")
        assert plan.taker_fee == Decimal("0.3")
        assert plan.maker_fee == Decimal("0.2")
        assert plan.amount_out < Decimal("104.975124")

    def test_buy_ft_exact_out(self):
        plan = calculate_swap(BUY_FT, CURVE, X, Decimal("50"), False, 0, 0, 6)

        assert plan.amount_out == Decimal("50")
        assert plan.amount_in == plan.pairs
        assert plan.amount_in < Decimal("50")
        assert plan.xt_change == plan.pairs

    def test_sell_ft_exact_in(self):
        plan = calculate_swap(SELL_FT, CURVE, X, Decimal("100"), True, 0, 0, 6)

        assert Decimal("95") < plan.amount_out < Decimal("95.3")
        assert plan.pairs == plan.amount_out
        assert plan.ft_change == Decimal("100") - plan.pairs
        assert plan.xt_change == -plan.pairs

    def test_sell_ft_exact_out(self):
        plan = calculate_swap(SELL_FT, CURVE, X, Decimal("95"), False, 0, 0, 6)

        assert plan.amount_out == Decimal("95")
        assert Decimal("99") < plan.amount_in < Decimal("100")

    def test_sell_xt_exact_in(self):
        plan = calculate_swap(SELL_XT, CURVE, X, Decimal("100"), True, 0, 0, 6)

        assert Decimal("4") < plan.amount_out < Decimal("5")
        assert plan.ft_change == -plan.pairs
        assert plan.xt_change == Decimal("100") - plan.pairs

    def test_buy_xt_exact_in(self):
        plan = calculate_swap(BUY_XT, CURVE, X, Decimal("5"), True, 0, 0, 6)

        # Buying XT is the leveraged side: 5 debt tokens buy roughly 100 XT
        assert Decimal("90") < plan.amount_out < Decimal("110")
        assert plan.ft_change == Decimal("5")
        assert plan.xt_change == Decimal("5") - plan.amount_out

    def test_non_positive_amount(self):
        with pytest.raises(ValueError):
            calculate_swap(BUY_FT, CURVE, X, Decimal("0"), True, 0, 0, 6)

    def test_unknown_side(self):
        with pytest.raises(ValueError):
            calculate_swap("BORROW", CURVE, X, Decimal("1"), True, 0, 0, 6)


# ============================================================================
# SWAP
# ============================================================================

class TestSwap:

    def test_buy_ft(self, ledger, market, order):
        out = order.swap("alice", "USDC", market.ft, "alice", Decimal("100"), Decimal("104"))

        assert out == Decimal("104.975124")
        assert ledger.get_balance("alice", market.ft) == Decimal("104.975124")
        assert ledger.get_balance("alice", "USDC") == Decimal("99900")
        assert order.ft_reserve == Decimal("9995.024876")
        assert order.xt_reserve == Decimal("10100")
        assert ledger.get_balance(order.id, "USDC") == 0
        assert debt_conserved(market)

    def test_buy_ft_lowers_rate(self, market, order):
        price_before = order.ft_price()
        order.swap("alice", "USDC", market.ft, "alice", Decimal("100"), Decimal("0"))
        assert order.ft_price() > price_before

    def test_buy_ft_exact_out(self, ledger, market, order):
        paid = order.swap("alice", "USDC", market.ft, "alice", Decimal("50"), Decimal("50"), exact_in=False)

        assert ledger.get_balance("alice", market.ft) == Decimal("50")
        assert ledger.get_balance("alice", "USDC") == Decimal("100000") - paid

    def test_sell_ft(self, ledger, market, order):
        market.mint("alice", "alice", Decimal("100"))

        out = order.swap("alice", market.ft, "USDC", "bob", Decimal("100"), Decimal("95"))

        assert ledger.get_balance("bob", "USDC") == Decimal("100000") + out
        assert ledger.get_balance("alice", market.ft) == 0
        assert order.xt_reserve == X - out
        assert debt_conserved(market)

    def test_sell_xt(self, ledger, market, order):
        market.mint("alice", "alice", Decimal("100"))

        out = order.swap("alice", market.xt, "USDC", "alice", Decimal("100"), Decimal("4"))

        assert ledger.get_balance("alice", market.xt) == 0
        assert ledger.get_balance("alice", "USDC") == Decimal("99900") + out

    def test_buy_xt(self, ledger, market, order):
        out = order.swap("alice", "USDC", market.xt, "alice", Decimal("5"), Decimal("90"))
        assert ledger.get_balance("alice", market.xt) == out

    def test_min_out_not_met(self, ledger, market, order):
        before = snapshot(ledger)
        with pytest.raises(InsufficientTokenOut) as exc:
            order.swap("alice", "USDC", market.ft, "alice", Decimal("100"), Decimal("105"))
        assert exc.value.actual == Decimal("104.975124")
        assert snapshot(ledger) == before

    def test_max_in_exceeded(self, market, order):
        with pytest.raises(ExcessiveTokenIn):
            order.swap("alice", "USDC", market.ft, "alice", Decimal("50"), Decimal("1"), exact_in=False)

    def test_unsupported_pair(self, market, order):
        with pytest.raises(ValueError):
            order.swap("alice", market.ft, market.xt, "alice", Decimal("1"), Decimal("0"))

    def test_after_maturity(self, ledger, market, order):
        ledger.advance_time(MATURITY)
        with pytest.raises(TermIsNotOpen):
            order.swap("alice", "USDC", market.ft, "alice", Decimal("100"), Decimal("0"))

    def test_xt_reserve_cap(self, market):
        capped = make_order(market, max_xt_reserve=Decimal("10050"))
        with pytest.raises(XtReserveTooHigh):
            capped.swap("alice", "USDC", market.ft, "alice", Decimal("100"), Decimal("0"))

    def test_ft_reserve_exhausted(self, market, order):
        order.withdraw_assets("maker", market.ft, "maker", Decimal("9990"))
        with pytest.raises(InsufficientReserve):
            order.swap("alice", "USDC", market.ft, "alice", Decimal("1000"), Decimal("0"))

    def test_quote_does_not_move_state(self, ledger, market, order):
        before = snapshot(ledger)
        plan = order.quote("USDC", market.ft, Decimal("100"))
        assert plan.amount_out == Decimal("104.975124")
        assert snapshot(ledger) == before

    def test_swap_event(self, ledger, market, order):
        order.swap("alice", "USDC", market.ft, "alice", Decimal("100"), Decimal("0"))
        event = ledger.get_events("Swap", source=order.id)[-1]
        assert event.data["side"] == BUY_FT
        assert event.data["amount_out"] == Decimal("104.975124")
        assert event.data["xt_reserve"] == Decimal("10100")


class TestFees:

    def test_lend_fees(self, ledger, fee_market):
        order = make_order(fee_market)

        order.swap("alice", "USDC", fee_market.ft, "alice", Decimal("100"), Decimal("0"))

        assert ledger.get_balance("treasury", "USDC") == Decimal("0.3")
        assert ledger.get_balance("maker", "USDC") == Decimal("0.2")
        assert order.xt_reserve == Decimal("10099.5")
        assert debt_conserved(fee_market)

    def test_borrow_fees(self, ledger, fee_market):
        order = make_order(fee_market)
        fee_market.mint("alice", "alice", Decimal("100"))

        out = order.swap("alice", fee_market.ft, "USDC", "alice", Decimal("100"), Decimal("0"))

        taker_fee = ledger.get_balance("treasury", "USDC")
        maker_fee = ledger.get_balance("maker", "USDC")
        assert taker_fee > 0
        assert maker_fee > 0
        assert order.xt_reserve == X - (out + taker_fee + maker_fee)
        assert debt_conserved(fee_market)


# ============================================================================
# FLASH SWAPS AND HOOKS
# ============================================================================

class TestFlashSwap:

    def test_paying_callback(self, ledger, market, order):
        callback = PayingCallback(ledger, order.id, "alice")

        out = order.swap("carol", "USDC", market.ft, "bob", Decimal("100"), Decimal("0"),
                         callback=callback, callback_data="ctx")

        assert out == Decimal("104.975124")
        assert callback.calls == [("USDC", market.ft, Decimal("100"), Decimal("104.975124"), "ctx")]
        assert ledger.get_balance("bob", market.ft) == out
        assert ledger.get_balance("alice", "USDC") == Decimal("99900")
        assert ledger.get_balance("carol", "USDC") == Decimal("100000")
        assert debt_conserved(market)

    def test_paying_callback_sell_side(self, ledger, market, order):
        market.mint("alice", "alice", Decimal("100"))
        callback = PayingCallback(ledger, order.id, "alice")

        out = order.swap("alice", market.ft, "USDC", "bob", Decimal("100"), Decimal("0"), callback=callback)

        assert ledger.get_balance("bob", "USDC") == Decimal("100000") + out
        assert ledger.get_balance("alice", market.ft) == 0

    def test_flash_buy_beyond_reserve_matches_plain_swap(self):
        amount = Decimal("12000")
        results = []
        for flash in (False, True):
            ledger, market, _ = new_venue()
            order = make_order(market)
            assert order.ft_reserve < amount
            callback = PayingCallback(ledger, order.id, "alice") if flash else None

            out = order.swap("alice", "USDC", market.ft, "bob", amount, Decimal("0"), callback=callback)

            assert debt_conserved(market)
            results.append((out, order.ft_reserve, order.xt_reserve,
                            ledger.get_balance("bob", market.ft), ledger.get_balance("alice", "USDC")))

        assert results[0] == results[1]

    def test_non_paying_callback_rolls_back(self, ledger, market, order):
        before = snapshot(ledger)
        with pytest.raises(CallbackDidNotPay) as exc:
            order.swap("alice", "USDC", market.ft, "bob", Decimal("100"), Decimal("0"),
                       callback=NonPayingCallback())
        assert exc.value.expected == Decimal("100")
        assert snapshot(ledger) == before


class TestMakerHook:

    def test_hook_receives_reserve_changes(self, market):
        hook = RecordingHook()
        order = make_order(market, swap_callback=hook)

        order.swap("alice", "USDC", market.ft, "alice", Decimal("100"), Decimal("0"))

        assert hook.changes == [(Decimal("-4.975124"), Decimal("100"))]

    def test_set_swap_callback(self, market, order):
        hook = RecordingHook()
        order.set_swap_callback("maker", hook)
        order.swap("alice", "USDC", market.ft, "alice", Decimal("100"), Decimal("0"))
        assert len(hook.changes) == 1

    def test_set_swap_callback_maker_only(self, order):
        with pytest.raises(CallerIsNotMaker):
            order.set_swap_callback("alice", RecordingHook())


# ============================================================================
# MAKER MANAGEMENT
# ============================================================================

class TestMaker:

    def test_deposit_tokens(self, ledger, market, order):
        market.mint("alice", "alice", Decimal("100"))
        order.deposit("alice", ft_amount=Decimal("100"), xt_amount=Decimal("50"))

        assert order.ft_reserve == Decimal("10100")
        assert order.xt_reserve == Decimal("10050")
        assert ledger.get_balance("alice", market.xt) == Decimal("50")

    def test_deposit_negative(self, order):
        with pytest.raises(ValueError):
            order.deposit("maker", debt_amount=Decimal("-1"))

    def test_withdraw(self, ledger, market, order):
        order.withdraw_assets("maker", market.xt, "carol", Decimal("500"))
        assert ledger.get_balance("carol", market.xt) == Decimal("500")
        assert order.xt_reserve == Decimal("9500")

    def test_withdraw_maker_only(self, market, order):
        with pytest.raises(CallerIsNotMaker):
            order.withdraw_assets("alice", market.ft, "alice", Decimal("1"))

    def test_withdraw_too_much(self, market, order):
        with pytest.raises(InsufficientReserve):
            order.withdraw_assets("maker", market.ft, "maker", Decimal("10000.000001"))

    def test_update_order(self, ledger, market, order):
        cuts = (CurveCut(0, 40_000_000, 10_000),)
        order.update_order("maker", curve_cuts=cuts, max_xt_reserve=Decimal("20000"))

        assert order.config.curve_cuts == cuts
        assert order.config.max_xt_reserve == Decimal("20000")
        assert ledger.get_events("UpdateOrder", source=order.id)

    def test_update_order_invalid(self, order):
        with pytest.raises(InvalidCurveCuts):
            order.update_order("maker", curve_cuts=[])
        assert order.config.curve_cuts == CURVE

    def test_update_order_maker_only(self, order):
        with pytest.raises(CallerIsNotMaker):
            order.update_order("alice", max_xt_reserve=Decimal("1"))

    def test_transfer_maker(self, market, order):
        order.transfer_maker("maker", "carol")

        assert order.maker == "carol"
        with pytest.raises(CallerIsNotMaker):
            order.withdraw_assets("maker", market.ft, "maker", Decimal("1"))
        order.withdraw_assets("carol", market.ft, "carol", Decimal("1"))
