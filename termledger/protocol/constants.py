"""Protocol-wide constants. Ratios are integers scaled by DECIMAL_BASE."""

from datetime import timedelta
from decimal import Decimal

DECIMAL_BASE = 10**8

# Every fee ratio is capped at 10%
MAX_FEE_RATIO = 10**7

# Positions may still be repaid or liquidated for this long after maturity
LIQUIDATION_WINDOW = timedelta(days=1)

REWARD_TO_LIQUIDATOR = 5 * 10**6
REWARD_TO_PROTOCOL = 5 * 10**6

# Debt worth less than this (in the oracle's base currency) can be liquidated in full
HALF_LIQUIDATION_THRESHOLD = Decimal("10000")

# Reported LTV of a position whose collateral is worth nothing
INFINITE_LTV = 2**256 - 1

POSITION_OPEN = "OPEN"
POSITION_CLOSED = "CLOSED"
POSITION_LIQUIDATED = "LIQUIDATED"
