"""
termledger - Fixed-maturity lending venue on a double-entry ledger

Usage:
    from datetime import datetime
    from decimal import Decimal
    from termledger import (
        Ledger, Oracle, StaticPriceFeed, Market, MarketConfig, LoanConfig,
        token, Move, build_transaction, SYSTEM_WALLET,
    )

    ledger = Ledger("main", datetime(2025, 1, 1))
    ledger.register_unit(token("USDC", "USD Coin", 6))
    ledger.register_unit(token("WETH", "Wrapped Ether", 18))
    ledger.register_wallet("alice")

    oracle = Oracle(lambda: ledger.current_time)
    oracle.set_feed("USDC", StaticPriceFeed(Decimal("1"), lambda: ledger.current_time))
    oracle.set_feed("WETH", StaticPriceFeed(Decimal("2000"), lambda: ledger.current_time))

    market = Market(
        ledger, "USDC-JUN", owner="admin", debt_token="USDC", collateral="WETH",
        config=MarketConfig(treasurer="treasury", maturity=datetime(2025, 6, 1)),
        loan_config=LoanConfig(max_ltv=80_000_000, liquidation_ltv=90_000_000),
        oracle=oracle,
    )

    # Fund alice via SYSTEM_WALLET, then split 150 USDC into 150 FT + 150 XT
    ledger.execute(build_transaction(ledger, [
        Move(Decimal("150"), "USDC", SYSTEM_WALLET, "alice", "funding")
    ]))
    market.mint("alice", "alice", Decimal("150"))
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    ProtocolEvent,
    build_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    LedgerError,
    InsufficientFunds,
    BalanceConstraintViolation,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    quantize_down,
    quantize_up,
    token,
    record_unit,
    position_unit,
    SYSTEM_WALLET,
    UNIT_TYPE_TOKEN,
    UNIT_TYPE_MARKET,
    UNIT_TYPE_ORDER,
    UNIT_TYPE_GEARING_TOKEN,
    UNIT_TYPE_GEARING_POSITION,
    UNIT_TYPE_ROUTER,
)

# Ledger
from .ledger import Ledger

# Price feeds
from .oracle import RoundData, PriceFeed, StaticPriceFeed, TimeSeriesPriceFeed, Oracle

# Protocol components
from .protocol import (
    DECIMAL_BASE,
    MAX_FEE_RATIO,
    LIQUIDATION_WINDOW,
    FeeConfig,
    MarketConfig,
    CurveCut,
    OrderConfig,
    LoanConfig,
    GtConfig,
    SwapUnit,
    Market,
    Order,
    GearingToken,
    FungibleCollateralGearingToken,
    Router,
    ProtocolError,
)

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction', 'TransactionOrigin',
    'OriginType', 'ProtocolEvent', 'build_transaction', 'Unit', 'UnitStateChange',
    'ExecuteResult', 'LedgerError', 'InsufficientFunds', 'BalanceConstraintViolation',
    'TransferRuleViolation', 'UnitNotRegistered', 'WalletNotRegistered',
    'quantize_down', 'quantize_up', 'token', 'record_unit', 'position_unit',
    'SYSTEM_WALLET', 'UNIT_TYPE_TOKEN', 'UNIT_TYPE_MARKET', 'UNIT_TYPE_ORDER',
    'UNIT_TYPE_GEARING_TOKEN', 'UNIT_TYPE_GEARING_POSITION', 'UNIT_TYPE_ROUTER',
    # Ledger
    'Ledger',
    # Price feeds
    'RoundData', 'PriceFeed', 'StaticPriceFeed', 'TimeSeriesPriceFeed', 'Oracle',
    # Protocol
    'DECIMAL_BASE', 'MAX_FEE_RATIO', 'LIQUIDATION_WINDOW',
    'FeeConfig', 'MarketConfig', 'CurveCut', 'OrderConfig', 'LoanConfig', 'GtConfig',
    'SwapUnit', 'Market', 'Order', 'GearingToken', 'FungibleCollateralGearingToken',
    'Router', 'ProtocolError',
]

__version__ = '1.0.0'
