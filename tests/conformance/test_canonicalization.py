"""
Canonicalization Conformance Tests

INVARIANT: Semantically equivalent transactions share one identity.

    ∀ v1, v2: v1 == v2 ⟹ canonicalize(v1) == canonicalize(v2)

intent_id is a hash of the canonical form of a transaction's moves, state
changes, created units and origin. It must not depend on:
- Decimal representation (100.0 vs 100.00)
- Move order or state-dict insertion order
- The timestamp the transaction was built at

and it must depend on the origin's event_type, which components use to
tell apart repeated identical operations.
"""

from hypothesis import given, settings, assume
from hypothesis import strategies as st
from decimal import Decimal
from datetime import datetime, timedelta

from termledger import (
    Ledger, Move, TransactionOrigin, OriginType, UnitStateChange,
    build_transaction, token, position_unit,
)
from termledger.core import _canonicalize, _normalize_decimal


# =============================================================================
# STRATEGIES
# =============================================================================

@st.composite
def equivalent_decimals(draw):
    """Pairs of equal Decimals with different exponents."""
    base = draw(st.decimals(
        min_value=Decimal("-1000000"), max_value=Decimal("1000000"),
        places=6, allow_nan=False, allow_infinity=False,
    ))
    return base, base.quantize(Decimal("0.000000000000000001"))


@st.composite
def position_states(draw):
    """A position state dict and the same dict built in reverse key order."""
    state = {
        'gt_id': draw(st.integers(min_value=1, max_value=1000)),
        'debt_amount': draw(st.decimals(min_value=Decimal("0"), max_value=Decimal("1e9"), places=6)),
        'collateral_data': draw(st.decimals(min_value=Decimal("0"), max_value=Decimal("1e4"), places=18)),
        'status': draw(st.sampled_from(["OPEN", "CLOSED", "LIQUIDATED"])),
        'approved': draw(st.one_of(st.none(), st.sampled_from(["router", "bob"]))),
    }
    return state, dict(reversed(list(state.items())))


def _ledger(when=datetime(2025, 1, 1)) -> Ledger:
    ledger = Ledger("test", when, verbose=False)
    ledger.register_unit(token("USDC", "USD Coin", 6))
    for wallet in ("alice", "bob", "carol"):
        ledger.register_wallet(wallet)
    return ledger


def _origin(event_type: str = "") -> TransactionOrigin:
    return TransactionOrigin(OriginType.CONTRACT, "USDC-APR", event_type=event_type)


# =============================================================================
# DECIMAL NORMALIZATION
# =============================================================================

class TestDecimalNormalization:

    @given(equivalent_decimals())
    @settings(max_examples=200)
    def test_equal_decimals_normalize_identically(self, decimals):
        d1, d2 = decimals
        assume(d1 == d2)
        assert _normalize_decimal(d1) == _normalize_decimal(d2)

    def test_trailing_zeros_normalized(self):
        assert _normalize_decimal(Decimal("1.0")) == _normalize_decimal(Decimal("1.000000"))
        assert _normalize_decimal(Decimal("-50")) == _normalize_decimal(Decimal("-50.00"))
        assert _normalize_decimal(Decimal("0")) == _normalize_decimal(Decimal("0E-18"))

    def test_scientific_notation_avoided(self):
        result = _normalize_decimal(Decimal("0.000000000000000001"))
        assert result == "0.000000000000000001"


# =============================================================================
# CANONICALIZE
# =============================================================================

class TestCanonicalize:

    @given(position_states())
    @settings(max_examples=100)
    def test_state_dicts_key_order_independent(self, states):
        first, second = states
        assert _canonicalize(first) == _canonicalize(second)

    def test_decimal_in_state_normalized(self):
        assert _canonicalize({'debt_amount': Decimal("1000.0")}) == _canonicalize({'debt_amount': Decimal("1000.000000")})

    def test_sequence_order_preserved(self):
        assert _canonicalize(("order-1", "order-2")) != _canonicalize(("order-2", "order-1"))

    def test_type_distinctions_preserved(self):
        assert _canonicalize(1) != _canonicalize("1")
        assert _canonicalize(True) != _canonicalize(1)
        assert _canonicalize(None) != _canonicalize("None")
        assert _canonicalize(Decimal("1")) != _canonicalize(1)


# =============================================================================
# INTENT ID
# =============================================================================

class TestIntentId:

    def test_timestamp_excluded(self):
        move = Move(Decimal("100"), "USDC", "alice", "bob", "pay")
        early = build_transaction(_ledger(datetime(2025, 1, 1)), [move], origin=_origin())
        late = build_transaction(_ledger(datetime(2025, 3, 1)), [move], origin=_origin())
        assert early.intent_id == late.intent_id

    def test_move_order_independent(self):
        ledger = _ledger()
        a = Move(Decimal("50"), "USDC", "alice", "bob", "p1")
        b = Move(Decimal("50"), "USDC", "alice", "carol", "p2")
        assert build_transaction(ledger, [a, b]).intent_id == build_transaction(ledger, [b, a]).intent_id

    def test_decimal_representation_independent(self):
        ledger = _ledger()
        first = build_transaction(ledger, [Move(Decimal("100.0"), "USDC", "alice", "bob", "pay")])
        second = build_transaction(ledger, [Move(Decimal("100.000000"), "USDC", "alice", "bob", "pay")])
        assert first.intent_id == second.intent_id

    def test_event_type_distinguishes(self):
        ledger = _ledger()
        move = Move(Decimal("150"), "USDC", "alice", "USDC-APR", "USDC-APR")
        first = build_transaction(ledger, [move], origin=_origin("MINT#3"))
        second = build_transaction(ledger, [move], origin=_origin("MINT#7"))
        assert first.intent_id != second.intent_id

    @given(position_states())
    @settings(max_examples=50)
    def test_state_change_order_independent(self, states):
        first, second = states
        ledger = _ledger()
        new_first = {**first, 'status': "CLOSED"}
        new_second = dict(reversed(list(new_first.items())))
        tx1 = build_transaction(ledger, [], [UnitStateChange("GT#1", first, new_first)], origin=_origin())
        tx2 = build_transaction(ledger, [], [UnitStateChange("GT#1", second, new_second)], origin=_origin())
        assert tx1.intent_id == tx2.intent_id

    def test_created_units_part_of_identity(self):
        ledger = _ledger()
        move = Move(Decimal("1"), "USDC", "alice", "bob", "x")
        unit = position_unit("GT#1", "position 1", {'gt_id': 1})
        plain = build_transaction(ledger, [move], origin=_origin())
        creating = build_transaction(ledger, [move], origin=_origin(), units_to_create=(unit,))
        assert plain.intent_id != creating.intent_id

    @given(st.lists(
        st.tuples(
            st.decimals(min_value=Decimal("0.000001"), max_value=Decimal("100"), places=6),
            st.sampled_from(["alice", "bob", "carol"]),
            st.sampled_from(["alice", "bob", "carol"]),
        ),
        min_size=1, max_size=5,
    ))
    @settings(max_examples=50)
    def test_deterministic_for_any_moves(self, specs):
        specs = [(qty, src, dst) for qty, src, dst in specs if src != dst]
        assume(specs)
        moves = [Move(qty, "USDC", src, dst, f"m_{i}") for i, (qty, src, dst) in enumerate(specs)]
        first = build_transaction(_ledger(), moves)
        second = build_transaction(_ledger(datetime(2025, 2, 1) + timedelta(hours=3)), list(reversed(moves)))
        assert first.intent_id == second.intent_id
