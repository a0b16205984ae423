"""
gearing_token.py - Collateralized debt positions (Gearing Tokens)

Each position is a non-fungible ownership unit "<gt>#<id>" created with the
loan; whoever holds it owns the loan. The loan itself (debt amount, pledged
collateral, status, approved operator) lives in that unit's state, and the
pledged collateral sits in the Gearing Token's wallet.

ARCHITECTURE:
=============

1. PURE CALCULATION FUNCTIONS (calculate_*):
   - LTV, the maximum repayable amount, and the liquidation collateral split
   - All inputs explicit, no ledger access

2. GearingToken:
   - Position registry and lifecycle: mint, augment_debt, repay, add/remove
     collateral, liquidate, flash_repay, merge, approve, transfer_from, delivery
   - Collateral interpretation is delegated to subclass hooks

3. FungibleCollateralGearingToken:
   - Collateral data is an amount of one fungible token

Timeline:
    now < maturity                  open term: borrow, remove collateral, liquidate if ltv >= liquidation_ltv
    maturity <= now < deadline      every open position may be repaid or fully liquidated
    deadline <= now                 nothing moves; remaining collateral is delivered to FT redeemers

    deadline = maturity + LIQUIDATION_WINDOW
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional, Sequence, Tuple

from ..core import (
    Move, SYSTEM_WALLET, UNIT_TYPE_GEARING_TOKEN, UnitState, UnitStateChange,
    position_unit, quantize_down,
)
from ..ledger import Ledger
from .component import Component, entry_point, transfer
from .config import GtConfig, LoanConfig, validate_loan_config
from .constants import (
    DECIMAL_BASE, HALF_LIQUIDATION_THRESHOLD, LIQUIDATION_WINDOW,
    POSITION_CLOSED, POSITION_LIQUIDATED, POSITION_OPEN,
    REWARD_TO_LIQUIDATOR, REWARD_TO_PROTOCOL,
)
from .errors import (
    CallerIsNotAuthorized, CallerIsNotOwner, CallerIsNotTheMarket,
    GtDoesNotExist, GtIsNotHealthy, GtIsSafe, InsufficientReserve,
    LiquidationPeriodEnded, RepayAmountTooLarge, TermIsNotOpen,
)
from .fixed_point import ltv_of, pro_rata
from .interfaces import FlashRepayCallback, PriceOracle


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass(frozen=True, slots=True)
class LoanInfo:
    owner: str
    debt_amount: Decimal
    collateral_data: Any
    ltv: int
    liquidatable: bool
    max_repay: Decimal


@dataclass(frozen=True, slots=True)
class LiquidationInfo:
    liquidatable: bool
    ltv: int
    max_repay: Decimal


@dataclass(frozen=True, slots=True)
class LiquidationSplit:
    """Collateral leaving a position during liquidation."""
    to_liquidator: Decimal
    to_treasurer: Decimal
    remaining: Decimal


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_ltv(
    debt_amount: Decimal,
    debt_price: Decimal,
    collateral_value: Decimal,
) -> int:
    """LTV scaled by DECIMAL_BASE: floor(debt_amount * debt_price * BASE / collateral_value)."""
    return ltv_of(debt_amount * debt_price, collateral_value)


def calculate_max_repay(
    debt_amount: Decimal,
    debt_value: Decimal,
    after_maturity: bool,
    places: Optional[int],
) -> Decimal:
    """
    Largest repayment a single liquidation may make.

    After maturity, or for debts worth less than HALF_LIQUIDATION_THRESHOLD,
    the whole debt; otherwise half of it.
    """
    if after_maturity or debt_value < HALF_LIQUIDATION_THRESHOLD:
        return debt_amount
    return quantize_down(debt_amount / 2, places)


def calculate_liquidation_split(
    collateral_amount: Decimal,
    debt_amount: Decimal,
    repay_amount: Decimal,
    debt_price: Decimal,
    collateral_price: Decimal,
    places: Optional[int],
) -> LiquidationSplit:
    """
    Split pledged collateral for a liquidation repaying repay_amount.

    PURE FUNCTION - All inputs explicit, no hidden state.

        equal      = repay * debt_price / collateral_price
        liquidator = equal * (1 + REWARD_TO_LIQUIDATOR / BASE)
        treasurer  = equal * REWARD_TO_PROTOCOL / BASE
        removed    = min(liquidator + treasurer, collateral * repay / debt)

    The liquidator is paid first from `removed`; the treasurer gets the rest.
    """
    equal = repay_amount * debt_price / collateral_price
    to_liquidator = quantize_down(equal * (DECIMAL_BASE + REWARD_TO_LIQUIDATOR) / DECIMAL_BASE, places)
    to_treasurer = quantize_down(equal * REWARD_TO_PROTOCOL / DECIMAL_BASE, places)
    cap = pro_rata(collateral_amount, repay_amount, debt_amount, places)
    removed = min(to_liquidator + to_treasurer, cap)
    to_liquidator = min(to_liquidator, removed)
    return LiquidationSplit(
        to_liquidator=to_liquidator,
        to_treasurer=removed - to_liquidator,
        remaining=collateral_amount - removed,
    )


# ============================================================================
# GEARING TOKEN
# ============================================================================

class GearingToken(Component):
    """
    Registry of collateralized debt positions for one market.

    Subclasses define what collateral data means by overriding the
    _collateral_* hooks.
    """

    unit_type = UNIT_TYPE_GEARING_TOKEN

    def __init__(
        self,
        ledger: Ledger,
        gt_id: str,
        market_id: str,
        owner: str,
        config: GtConfig,
        oracle: PriceOracle,
    ):
        validate_loan_config(config.loan_config)
        self.market_id = market_id
        self.oracle = oracle
        super().__init__(ledger, gt_id, f"Gearing Token {gt_id}", {
            'market': market_id,
            'owner': owner,
            'config': config,
            'next_id': 1,
        })
        ledger.ensure_wallet(config.treasurer)

    # ------------------------------------------------------------------
    # Collateral hooks
    # ------------------------------------------------------------------

    def _normalize_collateral(self, collateral_data: Any) -> Any:
        return collateral_data

    def _collateral_value(self, collateral_data: Any) -> Decimal:
        raise NotImplementedError

    def _collateral_moves(self, source: str, dest: str, collateral_data: Any) -> List[Optional[Move]]:
        raise NotImplementedError

    def _merge_collateral(self, first: Any, second: Any) -> Any:
        raise NotImplementedError

    def _reduce_collateral(self, collateral_data: Any, removed: Any) -> Any:
        raise NotImplementedError

    def _liquidation_split(
        self, collateral_data: Any, debt_amount: Decimal, repay_amount: Decimal,
    ) -> Tuple[Any, Any, Any]:
        """Return (to_liquidator, to_treasurer, remaining) collateral data."""
        raise NotImplementedError

    def _delivery_share(self, ft_amount: Decimal, ft_supply: Decimal) -> Any:
        raise NotImplementedError

    def _empty_collateral(self) -> Any:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def config(self) -> GtConfig:
        return self.state['config']

    def get_gt_config(self) -> GtConfig:
        return self.config

    @property
    def owner(self) -> str:
        return self.state['owner']

    @property
    def maturity(self) -> datetime:
        return self.config.maturity

    @property
    def final_liquidation_deadline(self) -> datetime:
        return self.config.maturity + LIQUIDATION_WINDOW

    @property
    def debt_places(self) -> Optional[int]:
        return self.ledger.get_unit(self.config.debt_token).decimal_places

    def position_symbol(self, gt_id: int) -> str:
        return f"{self.id}#{gt_id}"

    def _position(self, gt_id: int) -> UnitState:
        """State of an open position, or raise GtDoesNotExist."""
        symbol = self.position_symbol(gt_id)
        if symbol not in self.ledger.units:
            raise GtDoesNotExist(gt_id)
        state = self.ledger.get_unit_state(symbol)
        if state.get('status') != POSITION_OPEN:
            raise GtDoesNotExist(gt_id)
        return state

    def exists(self, gt_id: int) -> bool:
        symbol = self.position_symbol(gt_id)
        return symbol in self.ledger.units and self.ledger.get_unit_state(symbol).get('status') == POSITION_OPEN

    def status_of(self, gt_id: int) -> str:
        symbol = self.position_symbol(gt_id)
        if symbol not in self.ledger.units:
            raise GtDoesNotExist(gt_id)
        return self.ledger.get_unit_state(symbol)['status']

    def owner_of(self, gt_id: int) -> str:
        self._position(gt_id)
        for wallet, qty in self.ledger.get_positions(self.position_symbol(gt_id)).items():
            if wallet != SYSTEM_WALLET and qty > 0:
                return wallet
        raise GtDoesNotExist(gt_id)

    def get_approved(self, gt_id: int) -> Optional[str]:
        return self._position(gt_id).get('approved')

    def open_positions(self) -> List[int]:
        return [i for i in range(1, self.state['next_id']) if self.exists(i)]

    def total_debt(self) -> Decimal:
        """Outstanding debt across every open position."""
        return sum((self._position(i)['debt_amount'] for i in self.open_positions()), Decimal("0"))

    def _debt_price(self) -> Decimal:
        return self.oracle.get_price(self.config.debt_token)

    def _ltv(self, debt_amount: Decimal, collateral_data: Any) -> int:
        return calculate_ltv(debt_amount, self._debt_price(), self._collateral_value(collateral_data))

    def get_liquidation_info(self, gt_id: int) -> LiquidationInfo:
        """
        Whether a position may be liquidated now, its LTV, and the largest
        single repayment a liquidator may make.
        """
        position = self._position(gt_id)
        debt = position['debt_amount']
        now = self.ledger.current_time
        if now >= self.final_liquidation_deadline:
            return LiquidationInfo(False, 0, Decimal("0"))
        debt_price = self._debt_price()
        ltv = calculate_ltv(debt, debt_price, self._collateral_value(position['collateral_data']))
        if now >= self.maturity:
            return LiquidationInfo(True, ltv, debt)
        loan_config = self.config.loan_config
        liquidatable = loan_config.liquidatable and ltv >= loan_config.liquidation_ltv
        max_repay = Decimal("0")
        if liquidatable:
            max_repay = calculate_max_repay(debt, debt * debt_price, False, self.debt_places)
        return LiquidationInfo(liquidatable, ltv, max_repay)

    def loan_info(self, gt_id: int) -> LoanInfo:
        position = self._position(gt_id)
        info = self.get_liquidation_info(gt_id)
        ltv = info.ltv or self._ltv(position['debt_amount'], position['collateral_data'])
        return LoanInfo(
            owner=self.owner_of(gt_id),
            debt_amount=position['debt_amount'],
            collateral_data=position['collateral_data'],
            ltv=ltv,
            liquidatable=info.liquidatable,
            max_repay=info.max_repay,
        )

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _only_market(self, caller: str) -> None:
        if caller != self.market_id:
            raise CallerIsNotTheMarket(caller, self.market_id)

    def _authorize(self, caller: str, gt_id: int) -> str:
        """Return the owner if caller owns or is approved for the position."""
        owner = self.owner_of(gt_id)
        if caller != owner and caller != self._position(gt_id).get('approved'):
            raise CallerIsNotAuthorized(caller, gt_id)
        return owner

    def _require_term_open(self) -> None:
        now = self.ledger.current_time
        if now >= self.maturity:
            raise TermIsNotOpen(now, self.maturity)

    def _require_before_deadline(self) -> None:
        if self.ledger.current_time >= self.final_liquidation_deadline:
            raise LiquidationPeriodEnded(self.final_liquidation_deadline)

    def _check_healthy(self, debt_amount: Decimal, collateral_data: Any) -> int:
        ltv = self._ltv(debt_amount, collateral_data)
        max_ltv = self.config.loan_config.max_ltv
        if ltv > max_ltv:
            raise GtIsNotHealthy(ltv, max_ltv)
        return ltv

    # ------------------------------------------------------------------
    # Transaction pieces
    # ------------------------------------------------------------------

    def _position_change(self, gt_id: int, old: UnitState, **updates: Any) -> UnitStateChange:
        return UnitStateChange(self.position_symbol(gt_id), old, {**old, **updates})

    def _burn_position(self, gt_id: int, owner: str) -> Move:
        return Move(Decimal("1"), self.position_symbol(gt_id), owner, SYSTEM_WALLET, self.id)

    def _repay_moves(self, payer: str, amount: Decimal, by_debt_token: bool) -> List[Optional[Move]]:
        """Debt tokens go to the market; FT are burned."""
        config = self.config
        if by_debt_token:
            return [transfer(config.debt_token, payer, self.market_id, amount, self.id)]
        return [transfer(config.ft, payer, SYSTEM_WALLET, amount, self.id)]

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @entry_point
    def mint(
        self,
        caller: str,
        collateral_provider: str,
        to: str,
        debt_amount: Decimal,
        collateral_data: Any,
    ) -> int:
        """Open a position for `to`, pulling collateral from collateral_provider. Market only."""
        self._only_market(caller)
        if debt_amount <= 0:
            raise ValueError(f"debt_amount must be positive, got {debt_amount}")
        collateral_data = self._normalize_collateral(collateral_data)
        self._check_healthy(debt_amount, collateral_data)

        state = self.state
        gt_id = state['next_id']
        symbol = self.position_symbol(gt_id)
        unit = position_unit(symbol, f"{self.id} position {gt_id}", {
            'gt_id': gt_id,
            'debt_amount': debt_amount,
            'collateral_data': collateral_data,
            'status': POSITION_OPEN,
            'approved': None,
        })
        moves = self._collateral_moves(collateral_provider, self.id, collateral_data)
        moves.append(Move(Decimal("1"), symbol, SYSTEM_WALLET, to, self.id))
        self._submit('MINT', moves, new_state={**state, 'next_id': gt_id + 1}, units_to_create=[unit])
        self._emit('MintGt', gt_id=gt_id, owner=to, debt_amount=debt_amount, collateral_data=collateral_data)
        return gt_id

    @entry_point
    def augment_debt(self, caller: str, operator: str, gt_id: int, amount: Decimal) -> None:
        """Increase a position's debt on behalf of its owner or approved operator. Market only."""
        self._only_market(caller)
        self._require_term_open()
        if amount <= 0:
            raise ValueError(f"amount must be positive, got {amount}")
        self._authorize(operator, gt_id)
        position = self._position(gt_id)
        new_debt = position['debt_amount'] + amount
        self._check_healthy(new_debt, position['collateral_data'])
        self._submit('AUGMENT_DEBT', [], state_changes=[
            self._position_change(gt_id, position, debt_amount=new_debt),
        ])
        self._emit('AugmentDebt', gt_id=gt_id, amount=amount, debt_amount=new_debt)

    @entry_point
    def repay(self, caller: str, gt_id: int, amount: Decimal, by_debt_token: bool = True) -> bool:
        """
        Repay part or all of a position's debt. Anyone may repay.

        Full repayment returns the collateral to the owner and closes the
        position. Returns True if the position was closed.
        """
        self._require_before_deadline()
        if amount <= 0:
            raise ValueError(f"amount must be positive, got {amount}")
        position = self._position(gt_id)
        debt = position['debt_amount']
        if amount > debt:
            raise RepayAmountTooLarge(debt, amount)
        owner = self.owner_of(gt_id)
        moves = self._repay_moves(caller, amount, by_debt_token)
        closed = amount == debt
        if closed:
            moves += self._collateral_moves(self.id, owner, position['collateral_data'])
            moves.append(self._burn_position(gt_id, owner))
            change = self._position_change(
                gt_id, position, debt_amount=Decimal("0"),
                collateral_data=self._empty_collateral(), status=POSITION_CLOSED, approved=None,
            )
        else:
            change = self._position_change(gt_id, position, debt_amount=debt - amount)
        self._submit('REPAY', moves, state_changes=[change])
        self._emit('Repay', gt_id=gt_id, amount=amount, by_debt_token=by_debt_token, closed=closed)
        return closed

    @entry_point
    def add_collateral(self, caller: str, gt_id: int, collateral_data: Any) -> None:
        self._require_before_deadline()
        collateral_data = self._normalize_collateral(collateral_data)
        position = self._position(gt_id)
        new_collateral = self._merge_collateral(position['collateral_data'], collateral_data)
        self._submit(
            'ADD_COLLATERAL',
            self._collateral_moves(caller, self.id, collateral_data),
            state_changes=[self._position_change(gt_id, position, collateral_data=new_collateral)],
        )
        self._emit('AddCollateral', gt_id=gt_id, collateral_data=collateral_data)

    @entry_point
    def remove_collateral(self, caller: str, gt_id: int, collateral_data: Any) -> None:
        """Withdraw collateral to the caller; the position must stay within max_ltv."""
        self._require_term_open()
        self._authorize(caller, gt_id)
        collateral_data = self._normalize_collateral(collateral_data)
        position = self._position(gt_id)
        remaining = self._reduce_collateral(position['collateral_data'], collateral_data)
        self._check_healthy(position['debt_amount'], remaining)
        self._submit(
            'REMOVE_COLLATERAL',
            self._collateral_moves(self.id, caller, collateral_data),
            state_changes=[self._position_change(gt_id, position, collateral_data=remaining)],
        )
        self._emit('RemoveCollateral', gt_id=gt_id, collateral_data=collateral_data)

    @entry_point
    def liquidate(self, caller: str, gt_id: int, repay_amount: Decimal, by_debt_token: bool = True) -> LiquidationSplit:
        """
        Repay part of an unhealthy position in exchange for its collateral plus rewards.

        Raises:
            LiquidationPeriodEnded: at or after the final liquidation deadline
            GtIsSafe: if the position is not liquidatable
            RepayAmountTooLarge: above the allowed repayment
        """
        self._require_before_deadline()
        if repay_amount <= 0:
            raise ValueError(f"repay_amount must be positive, got {repay_amount}")
        info = self.get_liquidation_info(gt_id)
        if not info.liquidatable:
            raise GtIsSafe(gt_id, info.ltv)
        if repay_amount > info.max_repay:
            raise RepayAmountTooLarge(info.max_repay, repay_amount)

        position = self._position(gt_id)
        owner = self.owner_of(gt_id)
        debt = position['debt_amount']
        to_liquidator, to_treasurer, remaining = self._liquidation_split(
            position['collateral_data'], debt, repay_amount,
        )
        moves = self._repay_moves(caller, repay_amount, by_debt_token)
        moves += self._collateral_moves(self.id, caller, to_liquidator)
        moves += self._collateral_moves(self.id, self.config.treasurer, to_treasurer)
        fully_repaid = repay_amount == debt
        if fully_repaid:
            moves += self._collateral_moves(self.id, owner, remaining)
            moves.append(self._burn_position(gt_id, owner))
            change = self._position_change(
                gt_id, position, debt_amount=Decimal("0"),
                collateral_data=self._empty_collateral(), status=POSITION_LIQUIDATED, approved=None,
            )
        else:
            change = self._position_change(
                gt_id, position, debt_amount=debt - repay_amount, collateral_data=remaining,
            )
        self._submit('LIQUIDATE', moves, state_changes=[change])
        self._emit(
            'Liquidate', gt_id=gt_id, liquidator=caller, repay_amount=repay_amount,
            to_liquidator=to_liquidator, to_treasurer=to_treasurer, closed=fully_repaid,
        )
        return LiquidationSplit(to_liquidator, to_treasurer, remaining)

    @entry_point
    def flash_repay(
        self,
        caller: str,
        gt_id: int,
        by_debt_token: bool,
        callback: FlashRepayCallback,
        callback_data: Any = None,
    ) -> Decimal:
        """
        Release all collateral to the caller, let the callback source the
        repayment, then collect the full debt from the caller.

        Returns the debt repaid.
        """
        self._require_before_deadline()
        owner = self._authorize(caller, gt_id)
        position = self._position(gt_id)
        debt = position['debt_amount']
        collateral_data = position['collateral_data']
        config = self.config

        moves = self._collateral_moves(self.id, caller, collateral_data)
        moves.append(self._burn_position(gt_id, owner))
        self._submit('FLASH_RELEASE', moves, state_changes=[self._position_change(
            gt_id, position, debt_amount=Decimal("0"),
            collateral_data=self._empty_collateral(), status=POSITION_CLOSED, approved=None,
        )])

        repay_token = config.debt_token if by_debt_token else config.ft
        callback.execute_flash_repay(repay_token, debt, config.collateral, collateral_data, callback_data)

        self._submit('FLASH_REPAY', self._repay_moves(caller, debt, by_debt_token))
        self._emit('FlashRepay', gt_id=gt_id, owner=owner, debt_amount=debt, by_debt_token=by_debt_token)
        return debt

    @entry_point
    def merge(self, caller: str, gt_ids: Sequence[int]) -> int:
        """Fold positions owned by caller into the first one; returns its id."""
        self._require_before_deadline()
        if not gt_ids or len(set(gt_ids)) != len(gt_ids):
            raise ValueError(f"merge needs distinct position ids, got {list(gt_ids)}")
        for gt_id in gt_ids:
            if self.owner_of(gt_id) != caller:
                raise CallerIsNotAuthorized(caller, gt_id)

        first_id = gt_ids[0]
        first = self._position(first_id)
        debt = first['debt_amount']
        collateral = first['collateral_data']
        moves: List[Optional[Move]] = []
        changes = []
        for gt_id in gt_ids[1:]:
            position = self._position(gt_id)
            debt += position['debt_amount']
            collateral = self._merge_collateral(collateral, position['collateral_data'])
            moves.append(self._burn_position(gt_id, caller))
            changes.append(self._position_change(
                gt_id, position, debt_amount=Decimal("0"),
                collateral_data=self._empty_collateral(), status=POSITION_CLOSED, approved=None,
            ))
        changes.append(self._position_change(first_id, first, debt_amount=debt, collateral_data=collateral))
        self._submit('MERGE', moves, state_changes=changes)
        self._emit('MergeGts', owner=caller, gt_ids=tuple(gt_ids), into=first_id)
        return first_id

    @entry_point
    def approve(self, caller: str, gt_id: int, operator: Optional[str]) -> None:
        owner = self.owner_of(gt_id)
        if caller != owner:
            raise CallerIsNotOwner(caller, owner)
        position = self._position(gt_id)
        self._submit('APPROVE', [], state_changes=[self._position_change(gt_id, position, approved=operator)])
        self._emit('Approval', gt_id=gt_id, owner=owner, operator=operator)

    @entry_point
    def transfer_from(self, caller: str, from_wallet: str, to: str, gt_id: int) -> None:
        owner = self._authorize(caller, gt_id)
        if owner != from_wallet:
            raise CallerIsNotAuthorized(from_wallet, gt_id)
        position = self._position(gt_id)
        self._submit(
            'TRANSFER',
            [Move(Decimal("1"), self.position_symbol(gt_id), from_wallet, to, self.id)],
            state_changes=[self._position_change(gt_id, position, approved=None)],
        )
        self._emit('Transfer', gt_id=gt_id, source=from_wallet, dest=to)

    @entry_point
    def delivery(self, caller: str, ft_amount: Decimal, ft_supply: Decimal, to: str) -> Any:
        """Send `to` its pro-rata share of the collateral left in custody. Market only."""
        self._only_market(caller)
        share = self._delivery_share(ft_amount, ft_supply)
        self._submit('DELIVERY', self._collateral_moves(self.id, to, share))
        return share

    @entry_point
    def update_config(
        self,
        caller: str,
        treasurer: Optional[str] = None,
        loan_config: Optional[LoanConfig] = None,
    ) -> None:
        """Change the treasurer and/or loan config. Market or owner only."""
        state = self.state
        if caller not in (self.market_id, state['owner']):
            raise CallerIsNotOwner(caller, state['owner'])
        config: GtConfig = state['config']
        if loan_config is not None:
            validate_loan_config(loan_config)
        if treasurer is not None:
            self.ledger.ensure_wallet(treasurer)
        new_config = GtConfig(
            collateral=config.collateral,
            debt_token=config.debt_token,
            ft=config.ft,
            treasurer=treasurer if treasurer is not None else config.treasurer,
            maturity=config.maturity,
            loan_config=loan_config if loan_config is not None else config.loan_config,
        )
        self._submit('UPDATE_CONFIG', [], new_state={**state, 'config': new_config})
        self._emit('UpdateGtConfig', treasurer=new_config.treasurer, loan_config=new_config.loan_config)


class FungibleCollateralGearingToken(GearingToken):
    """Gearing Token whose collateral data is an amount of one fungible token."""

    @property
    def collateral_places(self) -> Optional[int]:
        return self.ledger.get_unit(self.config.collateral).decimal_places

    def _normalize_collateral(self, collateral_data: Any) -> Decimal:
        amount = collateral_data if isinstance(collateral_data, Decimal) else Decimal(str(collateral_data))
        if amount < 0:
            raise ValueError(f"collateral amount must be non-negative, got {amount}")
        self._require_on_grid(self.config.collateral, amount)
        return amount

    def _collateral_value(self, collateral_data: Decimal) -> Decimal:
        if collateral_data == 0:
            return Decimal("0")
        return collateral_data * self.oracle.get_price(self.config.collateral)

    def _collateral_moves(self, source: str, dest: str, collateral_data: Decimal) -> List[Optional[Move]]:
        return [transfer(self.config.collateral, source, dest, collateral_data, self.id)]

    def _merge_collateral(self, first: Decimal, second: Decimal) -> Decimal:
        return first + second

    def _reduce_collateral(self, collateral_data: Decimal, removed: Decimal) -> Decimal:
        if removed > collateral_data:
            raise InsufficientReserve(self.config.collateral, removed, collateral_data)
        return collateral_data - removed

    def _liquidation_split(
        self, collateral_data: Decimal, debt_amount: Decimal, repay_amount: Decimal,
    ) -> Tuple[Decimal, Decimal, Decimal]:
        split = calculate_liquidation_split(
            collateral_data, debt_amount, repay_amount,
            self._debt_price(), self.oracle.get_price(self.config.collateral),
            self.collateral_places,
        )
        return split.to_liquidator, split.to_treasurer, split.remaining

    def _delivery_share(self, ft_amount: Decimal, ft_supply: Decimal) -> Decimal:
        held = self.ledger.get_balance(self.id, self.config.collateral)
        return pro_rata(held, ft_amount, ft_supply, self.collateral_places)

    def _empty_collateral(self) -> Decimal:
        return Decimal("0")
