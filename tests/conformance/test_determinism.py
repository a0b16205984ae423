"""
Determinism Conformance Tests

INVARIANT: Given identical inputs, the venue produces identical outputs.

    ∀ operation sequences S:
        run(S) on venue1 = run(S) on venue2

This guarantees:
- Swap pricing is a pure function of the curve, reserves and amount
- Two venues fed the same operations reach the same balances, states and log
- A cloned ledger evolves exactly like the original

Pricing is also monotone: paying more never buys less.
"""

from hypothesis import given, settings, assume
from hypothesis import strategies as st
from decimal import Decimal

from termledger.protocol import (
    BUY_FT, BUY_XT, SELL_FT, SELL_XT, InsufficientLiquidity, calculate_swap, ft_price, marginal_rate,
)
from tests.venue import CURVE, make_order, new_venue, snapshot


reserves = st.decimals(
    min_value=Decimal("100"), max_value=Decimal("40000"),
    places=6, allow_nan=False, allow_infinity=False,
)

trade_sizes = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("500"),
    places=6, allow_nan=False, allow_infinity=False,
)

fee_ratios = st.integers(min_value=0, max_value=1_000_000)

# Deep enough that selling 500 FT never drains the XT side
deep_reserves = st.decimals(
    min_value=Decimal("5000"), max_value=Decimal("40000"),
    places=6, allow_nan=False, allow_infinity=False,
)


def _plan(side, xt_reserve, amount, taker, maker):
    try:
        return calculate_swap(side, CURVE, xt_reserve, amount, True, taker, maker, 6)
    except InsufficientLiquidity as e:
        return (type(e), str(e))


# =============================================================================
# PRICING
# =============================================================================

class TestPricingDeterminism:

    @given(st.sampled_from([BUY_FT, BUY_XT, SELL_FT, SELL_XT]), reserves, trade_sizes, fee_ratios, fee_ratios)
    @settings(max_examples=100, deadline=None)
    def test_calculate_swap_is_pure(self, side, xt_reserve, amount, taker, maker):
        assert _plan(side, xt_reserve, amount, taker, maker) == _plan(side, xt_reserve, amount, taker, maker)

    @given(reserves, trade_sizes, trade_sizes)
    @settings(max_examples=100, deadline=None)
    def test_buy_ft_is_monotone_in_amount(self, xt_reserve, a, b):
        assume(a != b)
        small, large = min(a, b), max(a, b)
        out_small = calculate_swap(BUY_FT, CURVE, xt_reserve, small, True, 0, 0, 6).amount_out
        out_large = calculate_swap(BUY_FT, CURVE, xt_reserve, large, True, 0, 0, 6).amount_out
        assert out_small <= out_large

    @given(reserves, trade_sizes)
    @settings(max_examples=100, deadline=None)
    def test_fees_never_improve_the_trade(self, xt_reserve, amount):
        free = calculate_swap(BUY_FT, CURVE, xt_reserve, amount, True, 0, 0, 6)
        charged = calculate_swap(BUY_FT, CURVE, xt_reserve, amount, True, 300_000, 200_000, 6)
        assert charged.amount_out <= free.amount_out
        assert charged.fee >= 0

    @given(reserves, reserves)
    @settings(max_examples=100, deadline=None)
    def test_rate_falls_as_xt_reserve_grows(self, a, b):
        assume(a != b)
        low, high = min(a, b), max(a, b)
        assert marginal_rate(CURVE, high) < marginal_rate(CURVE, low)
        assert ft_price(CURVE, low) < ft_price(CURVE, high) < 1

    @given(deep_reserves, trade_sizes)
    @settings(max_examples=100, deadline=None)
    def test_exact_in_pays_at_most_the_amount(self, xt_reserve, amount):
        plan = calculate_swap(BUY_XT, CURVE, xt_reserve, amount, True, 0, 0, 6)
        assert plan.amount_in == amount
        assert plan.amount_out >= plan.pairs


# =============================================================================
# STATE
# =============================================================================

def _run(ops):
    ledger, market, _ = new_venue()
    order = make_order(market)
    results = []
    for user, amount, buy_ft in ops:
        token_out = market.ft if buy_ft else market.xt
        results.append(order.swap(user, "USDC", token_out, user, amount, Decimal("0")))
    return ledger, results


class TestStateDeterminism:

    @given(st.lists(
        st.tuples(st.sampled_from(["alice", "bob", "carol"]), trade_sizes, st.booleans()),
        min_size=1, max_size=8,
    ))
    @settings(max_examples=25, deadline=None)
    def test_identical_sequences_identical_state(self, ops):
        ledger1, results1 = _run(ops)
        ledger2, results2 = _run(ops)

        assert results1 == results2
        assert snapshot(ledger1) == snapshot(ledger2)
        assert [tx.intent_id for tx in ledger1.transaction_log] == [tx.intent_id for tx in ledger2.transaction_log]

    def test_clone_evolves_like_original(self):
        ledger, market, _ = new_venue()
        market.mint("alice", "alice", Decimal("100"))
        cloned = ledger.clone()

        market.mint("alice", "alice", Decimal("50"))
        assert ledger.get_balance("alice", market.ft) == Decimal("150")
        assert cloned.get_balance("alice", market.ft) == Decimal("100")
        assert cloned.get_unit_state(market.id) == ledger.get_unit_state(market.id)
