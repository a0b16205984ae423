"""
protocol - Fixed-maturity lending venue built on the ledger

Market (FT/XT split and redemption), Order (curve-priced FT/XT matching),
GearingToken (collateralized debt positions) and Router (aggregation and
flash orchestration).
"""

from .constants import (
    DECIMAL_BASE,
    MAX_FEE_RATIO,
    LIQUIDATION_WINDOW,
    REWARD_TO_LIQUIDATOR,
    REWARD_TO_PROTOCOL,
    HALF_LIQUIDATION_THRESHOLD,
    INFINITE_LTV,
    POSITION_OPEN,
    POSITION_CLOSED,
    POSITION_LIQUIDATED,
)
from .errors import (
    ProtocolError,
    ConfigurationError,
    TemporalError,
    AuthorizationError,
    EconomicBoundError,
    ExistenceError,
    FeeTooHigh,
    InvalidCurveCuts,
    InvalidMarketConfig,
    InvalidLoanConfig,
    TermIsNotOpen,
    CanNotRedeemBeforeFinalLiquidationDeadline,
    LiquidationPeriodEnded,
    CallerIsNotOwner,
    CallerIsNotMaker,
    CallerIsNotTheMarket,
    CallerIsNotAuthorized,
    InsufficientTokenOut,
    ExcessiveTokenIn,
    LtvBiggerThanExpected,
    GtIsNotHealthy,
    GtIsSafe,
    RepayAmountTooLarge,
    InsufficientRepayProceeds,
    XtReserveTooHigh,
    InsufficientReserve,
    InsufficientLiquidity,
    CallbackDidNotPay,
    OracleIsNotWorking,
    GtDoesNotExist,
    MarketNotWhitelisted,
    AdapterNotWhitelisted,
    OrderNotInMarket,
    RouterIsPaused,
    ReentrantCall,
    TransactionRejected,
)
from .config import (
    FeeConfig,
    MarketConfig,
    CurveCut,
    OrderConfig,
    LoanConfig,
    GtConfig,
    validate_fee_config,
    validate_curve_cuts,
    validate_order_config,
    validate_loan_config,
)
from .fixed_point import fee_on, gross_for_net, split_fee, ltv_of, pro_rata
from .curve import (
    marginal_rate,
    ft_price,
    ft_out_for_xt_in,
    xt_in_for_ft_out,
    xt_out_for_ft_in,
    ft_in_for_xt_out,
    split_up,
    split_down,
)
from .interfaces import (
    MakerHook,
    PriceOracle,
    SwapUnit,
    SwapAdapter,
    SwapCallback,
    LeverageCallback,
    FlashRepayCallback,
)
from .component import CallGuard, Component, entry_point
from .gearing_token import (
    LoanInfo,
    LiquidationInfo,
    LiquidationSplit,
    calculate_ltv,
    calculate_max_repay,
    calculate_liquidation_split,
    GearingToken,
    FungibleCollateralGearingToken,
)
from .order import BUY_FT, SELL_FT, BUY_XT, SELL_XT, SwapPlan, calculate_swap, Order
from .market import Market
from .router import Router
