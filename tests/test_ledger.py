"""
test_ledger.py - Unit tests for ledger.py

Tests:
- Ledger creation, wallet and unit registration
- Balance queries, total and issued supply
- Transaction execution (validation, precision, idempotency, rejection)
- State changes and units created by a transaction
- Atomic scopes: rollback, nesting, events
- set_balance() test-mode guard and clone()
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from termledger import (
    Ledger, Move, ExecuteResult, ProtocolEvent, TransactionOrigin, OriginType,
    SYSTEM_WALLET, UnitStateChange, build_transaction, token, record_unit,
    LedgerError, UnitNotRegistered, WalletNotRegistered,
)


START = datetime(2025, 1, 1)


def _ledger(**kwargs) -> Ledger:
    ledger = Ledger("test", START, verbose=False, **kwargs)
    ledger.register_unit(token("USDC", "USD Coin", 6))
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    return ledger


def _issue(ledger: Ledger, wallet: str, amount: str, event_type: str = "issue") -> ExecuteResult:
    origin = TransactionOrigin(OriginType.SYSTEM, "faucet", event_type=event_type)
    return ledger.execute(build_transaction(
        ledger, [Move(Decimal(amount), "USDC", SYSTEM_WALLET, wallet, "faucet")], origin=origin,
    ))


def _pay(ledger: Ledger, source: str, dest: str, amount: str, event_type: str = "pay") -> ExecuteResult:
    origin = TransactionOrigin(OriginType.USER_ACTION, source, event_type=event_type)
    return ledger.execute(build_transaction(
        ledger, [Move(Decimal(amount), "USDC", source, dest, "pay")], origin=origin,
    ))


class TestLedgerCreation:

    def test_create_ledger(self):
        ledger = Ledger("main", verbose=False)
        assert ledger.name == "main"
        assert ledger.current_time == datetime(1970, 1, 1)
        assert ledger.is_registered(SYSTEM_WALLET)

    def test_create_with_initial_time(self):
        assert Ledger("main", START, verbose=False).current_time == START


class TestRegistration:

    def test_register_duplicate_wallet_raises(self):
        ledger = _ledger()
        with pytest.raises(ValueError):
            ledger.register_wallet("alice")

    def test_ensure_wallet_is_idempotent(self):
        ledger = _ledger()
        ledger.ensure_wallet("alice")
        ledger.ensure_wallet("carol")
        assert ledger.is_registered("carol")

    def test_register_duplicate_unit_raises(self):
        ledger = _ledger()
        with pytest.raises(ValueError):
            ledger.register_unit(token("USDC", "USD Coin", 6))

    def test_get_unit_state_unregistered_raises(self):
        with pytest.raises(UnitNotRegistered):
            _ledger().get_unit_state("NOPE")

    def test_get_unit_state_is_deep_copy(self):
        ledger = _ledger()
        ledger.register_unit(record_unit("MKT", "Market", "MARKET", {"orders": ["a"]}))
        state = ledger.get_unit_state("MKT")
        state["orders"].append("b")
        assert ledger.get_unit_state("MKT") == {"orders": ["a"]}


class TestBalances:

    def test_get_balance_default_zero(self):
        assert _ledger().get_balance("alice", "USDC") == Decimal("0")

    def test_get_balance_unregistered_wallet_raises(self):
        with pytest.raises(WalletNotRegistered):
            _ledger().get_balance("nobody", "USDC")

    def test_supplies(self):
        ledger = _ledger()
        _issue(ledger, "alice", "100")
        _pay(ledger, "alice", "bob", "30")

        assert ledger.get_positions("USDC") == {
            SYSTEM_WALLET: Decimal("-100"), "alice": Decimal("70"), "bob": Decimal("30"),
        }
        assert ledger.total_supply("USDC") == 0
        assert ledger.issued_supply("USDC") == Decimal("100")
        assert ledger.verify_double_entry({"USDC": Decimal("0")})['valid']

    def test_advance_time_backwards_raises(self):
        ledger = _ledger()
        ledger.advance_time(START + timedelta(days=1))
        with pytest.raises(ValueError):
            ledger.advance_time(START)


class TestTransactionExecution:

    def test_execute_simple_transaction(self):
        ledger = _ledger()
        assert _issue(ledger, "alice", "100") == ExecuteResult.APPLIED
        assert ledger.get_balance("alice", "USDC") == Decimal("100")
        assert len(ledger.transaction_log) == 1
        assert ledger.sequence == 1

    def test_idempotency(self):
        ledger = _ledger()
        assert _issue(ledger, "alice", "100") == ExecuteResult.APPLIED
        assert _issue(ledger, "alice", "100") == ExecuteResult.ALREADY_APPLIED
        assert ledger.get_balance("alice", "USDC") == Decimal("100")
        assert len(ledger.transaction_log) == 1

    def test_distinct_event_types_both_apply(self):
        ledger = _ledger()
        _issue(ledger, "alice", "100", "issue#1")
        _issue(ledger, "alice", "100", "issue#2")
        assert ledger.get_balance("alice", "USDC") == Decimal("200")

    def test_reject_insufficient_funds(self):
        ledger = _ledger()
        _issue(ledger, "alice", "10")
        assert _pay(ledger, "alice", "bob", "10.000001") == ExecuteResult.REJECTED
        assert "alice USDC" in ledger.last_rejection
        assert ledger.get_balance("alice", "USDC") == Decimal("10")

    def test_reject_unregistered_wallet(self):
        ledger = _ledger()
        _issue(ledger, "alice", "10")
        assert _pay(ledger, "alice", "carol", "1") == ExecuteResult.REJECTED
        assert "wallet not registered" in ledger.last_rejection

    def test_reject_future_timestamp(self):
        ledger = _ledger()
        pending = build_transaction(ledger, [Move(Decimal("1"), "USDC", SYSTEM_WALLET, "alice", "x")])
        ledger._current_time = START - timedelta(days=1)
        assert ledger.execute(pending) == ExecuteResult.REJECTED

    def test_reject_quantity_finer_than_unit_precision(self):
        ledger = _ledger()
        _issue(ledger, "alice", "10")
        assert _pay(ledger, "alice", "bob", "0.0000015") == ExecuteResult.REJECTED
        assert "finer than 6 decimal places" in ledger.last_rejection
        assert ledger.get_balance("alice", "USDC") == Decimal("10")
        assert ledger.get_balance("bob", "USDC") == Decimal("0")

    def test_system_wallet_may_go_negative(self):
        ledger = _ledger()
        _issue(ledger, "alice", "1000000")
        assert ledger.get_balance(SYSTEM_WALLET, "USDC") == Decimal("-1000000")

    def test_state_changes_and_created_units(self):
        ledger = _ledger()
        unit = record_unit("MKT", "Market", "MARKET", {"paused": False})
        ledger.execute(build_transaction(ledger, [], units_to_create=(unit,)))
        change = UnitStateChange("MKT", {"paused": False}, {"paused": True})

        assert ledger.execute(build_transaction(ledger, [], [change])) == ExecuteResult.APPLIED
        assert ledger.get_unit_state("MKT") == {"paused": True}

    def test_rejected_transaction_unregisters_created_units(self):
        ledger = _ledger()
        unit = record_unit("MKT", "Market", "MARKET", {})
        pending = build_transaction(
            ledger, [Move(Decimal("1"), "USDC", "alice", "bob", "x")], units_to_create=(unit,),
        )
        assert ledger.execute(pending) == ExecuteResult.REJECTED
        assert "MKT" not in ledger.units


class TestAtomicScopes:

    def test_rollback_on_exception(self):
        ledger = _ledger()
        _issue(ledger, "alice", "100")

        with pytest.raises(RuntimeError):
            with ledger.atomic():
                _pay(ledger, "alice", "bob", "60")
                ledger.register_wallet("carol")
                ledger.emit(ProtocolEvent("Paid", "test", ledger.current_time, {}))
                raise RuntimeError("abort")

        assert ledger.get_balance("alice", "USDC") == Decimal("100")
        assert ledger.get_balance("bob", "USDC") == 0
        assert not ledger.is_registered("carol")
        assert ledger.events == []
        assert len(ledger.transaction_log) == 1
        assert ledger.sequence == 1

    def test_rolled_back_intent_can_be_retried(self):
        ledger = _ledger()
        _issue(ledger, "alice", "100")
        with pytest.raises(RuntimeError):
            with ledger.atomic():
                _pay(ledger, "alice", "bob", "60")
                raise RuntimeError("abort")

        assert _pay(ledger, "alice", "bob", "60") == ExecuteResult.APPLIED

    def test_inner_scope_failure_caught_by_outer(self):
        ledger = _ledger()
        _issue(ledger, "alice", "100")

        with ledger.atomic():
            _pay(ledger, "alice", "bob", "10", "first")
            try:
                with ledger.atomic():
                    _pay(ledger, "alice", "bob", "20", "second")
                    raise RuntimeError("inner")
            except RuntimeError:
                pass
            assert ledger.in_atomic_scope

        assert not ledger.in_atomic_scope
        assert ledger.get_balance("bob", "USDC") == Decimal("10")

    def test_events_filtered(self):
        ledger = _ledger()
        ledger.emit(ProtocolEvent("Mint", "m1", START, {"amount": 1}))
        ledger.emit(ProtocolEvent("Burn", "m1", START, {}))
        ledger.emit(ProtocolEvent("Mint", "m2", START, {}))

        assert len(ledger.get_events("Mint")) == 2
        assert len(ledger.get_events(source="m1")) == 2
        assert ledger.get_events("Mint", "m1")[0].data == {"amount": 1}


class TestTestMode:

    def test_set_balance_disabled_in_production(self):
        with pytest.raises(LedgerError):
            _ledger().set_balance("alice", "USDC", Decimal("5"))

    def test_set_balance_in_test_mode(self):
        ledger = _ledger(test_mode=True)
        ledger.set_balance("alice", "USDC", Decimal("5"))
        assert ledger.get_balance("alice", "USDC") == Decimal("5")
        assert ledger.get_positions("USDC") == {"alice": Decimal("5")}


class TestClone:

    def test_clone_is_independent(self):
        ledger = _ledger()
        _issue(ledger, "alice", "100")
        cloned = ledger.clone()

        _pay(cloned, "alice", "bob", "40")

        assert cloned.get_balance("bob", "USDC") == Decimal("40")
        assert ledger.get_balance("bob", "USDC") == 0
        assert len(ledger.transaction_log) == 1
