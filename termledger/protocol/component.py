"""
component.py - Shared plumbing for stateful protocol components

Market, Order, GearingToken and Router each own:
    - a wallet (their id) holding the tokens they custody
    - a record unit (same id) whose state carries their configuration
    - a CallGuard rejecting re-entrant calls

Every public state-changing method is wrapped by @entry_point, which holds the
guard and runs the method inside Ledger.atomic(), so a failure anywhere in a
multi-step operation leaves no trace.
"""

from __future__ import annotations
import functools
from decimal import Decimal
from typing import Any, Callable, Iterable, List, Optional, TypeVar

from ..core import (
    ExecuteResult, Move, OriginType, ProtocolEvent, TransactionOrigin, Unit,
    UnitState, UnitStateChange, build_transaction, record_unit,
)
from ..ledger import Ledger
from .errors import ReentrantCall, TransactionRejected

F = TypeVar('F', bound=Callable[..., Any])


class CallGuard:
    """
    Two-phase non-reentrancy guard.

    begin_call() marks the component busy and complete_call() releases it.
    Entering while busy raises ReentrantCall.
    """

    def __init__(self, name: str):
        self.name = name
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def begin_call(self) -> None:
        if self._active:
            raise ReentrantCall(self.name)
        self._active = True

    def complete_call(self) -> None:
        self._active = False

    def __enter__(self) -> 'CallGuard':
        self.begin_call()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.complete_call()
        return False


def entry_point(method: F) -> F:
    """Run a component method under its guard inside one atomic ledger scope."""
    @functools.wraps(method)
    def wrapper(self: 'Component', *args, **kwargs):
        with self._guard, self.ledger.atomic():
            return method(self, *args, **kwargs)
    return wrapper  # type: ignore[return-value]


def transfer(unit: str, source: str, dest: str, quantity: Decimal, contract_id: str) -> Optional[Move]:
    """Build a Move, or None when there is nothing to move."""
    if quantity <= 0:
        return None
    return Move(quantity, unit, source, dest, contract_id)


class Component:
    """Base class for ledger-backed protocol components."""

    unit_type: str = ""

    def __init__(self, ledger: Ledger, component_id: str, name: str, state: UnitState):
        self.ledger = ledger
        self.id = component_id
        self._guard = CallGuard(component_id)
        ledger.ensure_wallet(component_id)
        ledger.register_unit(record_unit(component_id, name, self.unit_type, state))

    @property
    def state(self) -> UnitState:
        return self.ledger.get_unit_state(self.id)

    def balance_of(self, wallet: str, unit: str) -> Decimal:
        return self.ledger.get_balance(wallet, unit)

    def _require_on_grid(self, unit: str, amount: Decimal) -> None:
        """Raise ValueError when amount is finer than the unit's precision."""
        if self.ledger.get_unit(unit).round(amount) != amount:
            raise ValueError(f"{amount} is finer than the precision of {unit}")

    def _require_amount(self, unit: str, name: str, amount: Decimal) -> None:
        if amount <= 0:
            raise ValueError(f"{name} must be positive, got {amount}")
        self._require_on_grid(unit, amount)

    def _move(self, unit: str, source: str, dest: str, quantity: Decimal) -> Optional[Move]:
        return transfer(unit, source, dest, quantity, self.id)

    def _submit(
        self,
        operation: str,
        moves: Iterable[Optional[Move]],
        new_state: Optional[UnitState] = None,
        state_changes: Optional[List[UnitStateChange]] = None,
        units_to_create: Iterable[Unit] = (),
    ) -> None:
        """
        Execute one ledger transaction on behalf of this component.

        Raises:
            TransactionRejected: if the ledger refuses the transaction
        """
        changes = list(state_changes or [])
        if new_state is not None:
            changes.append(UnitStateChange(unit=self.id, old_state=self.state, new_state=new_state))
        origin = TransactionOrigin(
            origin_type=OriginType.CONTRACT,
            source_id=self.id,
            event_type=f"{operation}#{self.ledger.sequence}",
        )
        pending = build_transaction(
            self.ledger,
            [m for m in moves if m is not None],
            changes,
            origin=origin,
            units_to_create=tuple(units_to_create),
        )
        if pending.is_empty():
            return
        result = self.ledger.execute(pending)
        if result != ExecuteResult.APPLIED:
            raise TransactionRejected(self.id, operation, self.ledger.last_rejection or result.value)

    def _emit(self, name: str, **data: Any) -> None:
        self.ledger.emit(ProtocolEvent(name, self.id, self.ledger.current_time, data))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id})"
