"""
market.py - Fixed-maturity market: FT/XT issuance, redemption and order factory

A Market splits its debt token into two claims that mature together:

    FT (fixed-rate claim)  - redeemable after the final liquidation deadline
                             for a pro-rata share of the market's debt tokens
                             and of any collateral left in custody
    XT (discount claim)    - burned with FT to recover debt tokens before
                             maturity, or burned alone to open a leveraged
                             position (leverage_by_xt)

Conservation (before the final liquidation deadline):
    debt tokens held by the market + open position debt == FT supply

Every public method runs atomically under the market's call guard and emits
a ProtocolEvent.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from ..core import SYSTEM_WALLET, UNIT_TYPE_MARKET, Unit, UNIT_TYPE_TOKEN
from ..ledger import Ledger
from .component import Component, entry_point, transfer
from .config import (
    CurveCut, GtConfig, LoanConfig, MarketConfig, OrderConfig,
    validate_fee_config, validate_order_config,
)
from .constants import LIQUIDATION_WINDOW
from .errors import (
    CallerIsNotOwner, CanNotRedeemBeforeFinalLiquidationDeadline,
    InvalidMarketConfig, TermIsNotOpen,
)
from .fixed_point import fee_on, pro_rata
from .gearing_token import FungibleCollateralGearingToken, GearingToken
from .interfaces import LeverageCallback, MakerHook, PriceOracle
from .order import Order


class Market(Component):
    """
    One debt token, one collateral token, one maturity.

    Example:
        market = Market(
            ledger, "USDC-0601", owner="admin",
            debt_token="USDC", collateral="WETH",
            config=MarketConfig(treasurer="treasury", maturity=datetime(2025, 6, 1)),
            loan_config=LoanConfig(max_ltv=80_000_000, liquidation_ltv=90_000_000),
            oracle=oracle,
        )
        market.mint("alice", "alice", Decimal("150"))
    """

    unit_type = UNIT_TYPE_MARKET

    def __init__(
        self,
        ledger: Ledger,
        market_id: str,
        owner: str,
        debt_token: str,
        collateral: str,
        config: MarketConfig,
        loan_config: LoanConfig,
        oracle: PriceOracle,
        gt_class: Type[GearingToken] = FungibleCollateralGearingToken,
    ):
        validate_fee_config(config.fee_config)
        if config.maturity <= ledger.current_time:
            raise InvalidMarketConfig(
                f"maturity {config.maturity.isoformat()} is not after {ledger.current_time.isoformat()}"
            )
        debt_unit = ledger.get_unit(debt_token)
        ledger.get_unit(collateral)

        ft = f"FT-{market_id}"
        xt = f"XT-{market_id}"
        for symbol, label in ((ft, "fixed-rate claim"), (xt, "discount claim")):
            ledger.register_unit(Unit(
                symbol=symbol,
                name=f"{market_id} {label}",
                unit_type=UNIT_TYPE_TOKEN,
                decimal_places=debt_unit.decimal_places,
            ))

        gt_id = f"GT-{market_id}"
        super().__init__(ledger, market_id, f"Market {market_id}", {
            'owner': owner,
            'config': config,
            'debt_token': debt_token,
            'collateral': collateral,
            'ft': ft,
            'xt': xt,
            'gt': gt_id,
            'orders': (),
        })
        ledger.ensure_wallet(owner)
        ledger.ensure_wallet(config.treasurer)
        self.gt: GearingToken = gt_class(
            ledger, gt_id, market_id, owner,
            GtConfig(
                collateral=collateral,
                debt_token=debt_token,
                ft=ft,
                treasurer=config.treasurer,
                maturity=config.maturity,
                loan_config=loan_config,
            ),
            oracle,
        )
        self._orders: Dict[str, Order] = {}
        self._emit('CreateMarket', debt_token=debt_token, collateral=collateral,
                   maturity=config.maturity, ft=ft, xt=xt, gt=gt_id)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def config(self) -> MarketConfig:
        return self.state['config']

    @property
    def owner(self) -> str:
        return self.state['owner']

    @property
    def ft(self) -> str:
        return self.state['ft']

    @property
    def xt(self) -> str:
        return self.state['xt']

    @property
    def debt_token(self) -> str:
        return self.state['debt_token']

    @property
    def collateral(self) -> str:
        return self.state['collateral']

    @property
    def places(self) -> Optional[int]:
        return self.ledger.get_unit(self.debt_token).decimal_places

    @property
    def maturity(self) -> datetime:
        return self.config.maturity

    @property
    def final_liquidation_deadline(self) -> datetime:
        return self.config.maturity + LIQUIDATION_WINDOW

    def is_term_open(self) -> bool:
        return self.ledger.current_time < self.maturity

    def ft_supply(self) -> Decimal:
        return self.ledger.issued_supply(self.ft)

    def xt_supply(self) -> Decimal:
        return self.ledger.issued_supply(self.xt)

    def debt_balance(self) -> Decimal:
        """Debt tokens held by the market."""
        return self.ledger.get_balance(self.id, self.debt_token)

    def orders(self) -> List[Order]:
        return [self._orders[order_id] for order_id in self.state['orders'] if order_id in self._orders]

    def get_order(self, order_id: str) -> Order:
        if order_id not in self.state['orders']:
            raise KeyError(f"order {order_id} not in market {self.id}")
        return self._orders[order_id]

    def _require_term_open(self) -> None:
        now = self.ledger.current_time
        if now >= self.maturity:
            raise TermIsNotOpen(now, self.maturity)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @entry_point
    def mint(self, caller: str, recipient: str, amount: Decimal) -> None:
        """Lock `amount` debt tokens; credit recipient with `amount` FT and `amount` XT."""
        self._require_term_open()
        self._require_amount(self.debt_token, 'amount', amount)
        self._submit('MINT', [
            transfer(self.debt_token, caller, self.id, amount, self.id),
            transfer(self.ft, SYSTEM_WALLET, recipient, amount, self.id),
            transfer(self.xt, SYSTEM_WALLET, recipient, amount, self.id),
        ])
        self._emit('Mint', caller=caller, recipient=recipient, amount=amount)

    @entry_point
    def burn(self, caller: str, recipient: str, amount: Decimal) -> None:
        """Burn `amount` FT and `amount` XT from caller; release `amount` debt tokens to recipient."""
        self._require_term_open()
        self._require_amount(self.ft, 'amount', amount)
        self._submit('BURN', [
            transfer(self.ft, caller, SYSTEM_WALLET, amount, self.id),
            transfer(self.xt, caller, SYSTEM_WALLET, amount, self.id),
            transfer(self.debt_token, self.id, recipient, amount, self.id),
        ])
        self._emit('Burn', caller=caller, recipient=recipient, amount=amount)

    def _issue_ft_moves(self, recipient: str, debt_amount: Decimal) -> Tuple[Decimal, Decimal, list]:
        config = self.config
        fee = fee_on(debt_amount, config.fee_config.issue_ft_fee_ratio, self.places)
        ft_out = debt_amount - fee
        return ft_out, fee, [
            transfer(self.ft, SYSTEM_WALLET, recipient, ft_out, self.id),
            transfer(self.ft, SYSTEM_WALLET, config.treasurer, fee, self.id),
        ]

    @entry_point
    def issue_ft(self, caller: str, recipient: str, debt_amount: Decimal, collateral_data: Any) -> Tuple[int, Decimal]:
        """
        Borrow against new collateral.

        Opens a position owned by caller holding debt_amount of debt and the
        collateral pulled from caller, and mints debt_amount FT: the issuance
        fee to the treasurer, the rest to recipient.

        Returns:
            (gt_id, ft_out)
        """
        self._require_term_open()
        self._require_amount(self.debt_token, 'debt_amount', debt_amount)
        gt_id = self.gt.mint(self.id, caller, caller, debt_amount, collateral_data)
        ft_out, fee, moves = self._issue_ft_moves(recipient, debt_amount)
        self._submit('ISSUE_FT', moves)
        self._emit('IssueFt', caller=caller, recipient=recipient, gt_id=gt_id,
                   debt_amount=debt_amount, ft_out=ft_out, fee=fee)
        return gt_id, ft_out

    @entry_point
    def issue_ft_by_existed_gt(self, caller: str, recipient: str, debt_amount: Decimal, gt_id: int) -> Decimal:
        """Borrow more against an existing position; caller must own it or be approved."""
        self._require_term_open()
        self._require_amount(self.debt_token, 'debt_amount', debt_amount)
        self.gt.augment_debt(self.id, caller, gt_id, debt_amount)
        ft_out, fee, moves = self._issue_ft_moves(recipient, debt_amount)
        self._submit('ISSUE_FT_BY_EXISTED_GT', moves)
        self._emit('IssueFtByExistedGt', caller=caller, recipient=recipient, gt_id=gt_id,
                   debt_amount=debt_amount, ft_out=ft_out, fee=fee)
        return ft_out

    @entry_point
    def leverage_by_xt(
        self,
        caller: str,
        recipient: str,
        xt_amount: Decimal,
        callback: LeverageCallback,
        callback_data: Any = None,
    ) -> int:
        """
        Flash leverage: burn caller's XT, advance the matching debt tokens,
        let the callback turn them into collateral, then open a position of
        xt_amount debt for recipient with collateral pulled from caller.
        """
        self._require_term_open()
        self._require_amount(self.xt, 'xt_amount', xt_amount)
        config = self.config
        fee = fee_on(xt_amount, config.fee_config.issue_ft_fee_ratio, self.places)
        advanced = xt_amount - fee
        self._submit('LEVERAGE_BY_XT', [
            transfer(self.xt, caller, SYSTEM_WALLET, xt_amount, self.id),
            transfer(self.debt_token, self.id, caller, advanced, self.id),
            transfer(self.debt_token, self.id, config.treasurer, fee, self.id),
        ])
        collateral_data = callback.execute_operation(recipient, self.debt_token, advanced, callback_data)
        gt_id = self.gt.mint(self.id, caller, recipient, xt_amount, collateral_data)
        self._emit('LeverageByXt', caller=caller, recipient=recipient, gt_id=gt_id,
                   xt_amount=xt_amount, fee=fee, collateral_data=collateral_data)
        return gt_id

    @entry_point
    def redeem(self, caller: str, ft_amount: Decimal, recipient: str) -> Tuple[Decimal, Any]:
        """
        Exchange FT for a pro-rata share of the market's debt tokens (less the
        redeem fee) and of the collateral still in custody.

        Returns:
            (debt_token_out, collateral_out)
        """
        deadline = self.final_liquidation_deadline
        if self.ledger.current_time < deadline:
            raise CanNotRedeemBeforeFinalLiquidationDeadline(deadline)
        self._require_amount(self.ft, 'ft_amount', ft_amount)
        config = self.config
        ft_supply = self.ft_supply()
        gross = pro_rata(self.debt_balance(), ft_amount, ft_supply, self.places)
        fee = fee_on(gross, config.fee_config.redeem_fee_ratio, self.places)
        debt_out = gross - fee
        collateral_out = self.gt.delivery(self.id, ft_amount, ft_supply, recipient)
        self._submit('REDEEM', [
            transfer(self.ft, caller, SYSTEM_WALLET, ft_amount, self.id),
            transfer(self.debt_token, self.id, recipient, debt_out, self.id),
            transfer(self.debt_token, self.id, config.treasurer, fee, self.id),
        ])
        self._emit('Redeem', caller=caller, recipient=recipient, ft_amount=ft_amount,
                   debt_out=debt_out, fee=fee, collateral_out=collateral_out)
        return debt_out, collateral_out

    @entry_point
    def update_market_config(self, caller: str, new_config: MarketConfig) -> None:
        """Replace treasurer and fees. Owner only; the maturity cannot change."""
        state = self.state
        if caller != state['owner']:
            raise CallerIsNotOwner(caller, state['owner'])
        validate_fee_config(new_config.fee_config)
        if new_config.maturity != state['config'].maturity:
            raise InvalidMarketConfig("maturity cannot be changed")
        self.ledger.ensure_wallet(new_config.treasurer)
        self._submit('UPDATE_MARKET_CONFIG', [], new_state={**state, 'config': new_config})
        self.gt.update_config(self.id, treasurer=new_config.treasurer)
        self._emit('UpdateMarketConfig', treasurer=new_config.treasurer, fee_config=new_config.fee_config)

    @entry_point
    def create_order(
        self,
        caller: str,
        maker: str,
        max_xt_reserve: Decimal,
        swap_callback: Optional[MakerHook],
        curve_cuts: Sequence[CurveCut],
    ) -> Order:
        """Deploy an order on this market controlled by `maker`. Permissionless."""
        self._require_term_open()
        config = OrderConfig(max_xt_reserve=max_xt_reserve, curve_cuts=tuple(curve_cuts))
        validate_order_config(config)
        state = self.state
        order_id = f"{self.id}:order-{len(state['orders']) + 1}"
        self.ledger.ensure_wallet(maker)
        order = Order(self.ledger, order_id, self, maker, config, swap_callback)
        self._submit('CREATE_ORDER', [], new_state={**state, 'orders': state['orders'] + (order_id,)})
        self._orders[order_id] = order
        self._emit('CreateOrder', caller=caller, maker=maker, order=order_id, max_xt_reserve=config.max_xt_reserve)
        return order
