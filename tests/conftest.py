"""
conftest.py - Shared pytest fixtures for venue tests

Provides common fixtures used across unit, functional and conformance tests:
- A ledger with USDC (debt token) and WETH (collateral) and funded users
- Static price feeds and an oracle reading the ledger clock
- A fee-free market, a market with fees, a funded order and a router
"""

import pytest
from decimal import Decimal

from termledger import Oracle, StaticPriceFeed
from termledger.protocol import Router, SwapUnit

from tests.venue import FEES, HEARTBEAT, FixedRateAdapter, make_market, make_order, new_ledger


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def ledger():
    """Ledger with USDC (6 dp) and WETH (18 dp); alice, bob and carol hold 100,000 USDC and 10 WETH."""
    return new_ledger()


@pytest.fixture
def price_feeds(ledger):
    clock = lambda: ledger.current_time
    return {
        "USDC": StaticPriceFeed(Decimal("1"), clock),
        "WETH": StaticPriceFeed(Decimal("2000"), clock),
    }


@pytest.fixture
def oracle(ledger, price_feeds):
    oracle = Oracle(lambda: ledger.current_time)
    for asset, feed in price_feeds.items():
        oracle.set_feed(asset, feed, heartbeat=HEARTBEAT)
    return oracle


# =============================================================================
# VENUE FIXTURES
# =============================================================================

@pytest.fixture
def market(ledger, oracle):
    """Fee-free market maturing 2025-04-01."""
    return make_market(ledger, oracle)


@pytest.fixture
def fee_market(ledger, oracle):
    """Market charging FEES."""
    return make_market(ledger, oracle, market_id="USDC-APR-FEES", fee_config=FEES)


@pytest.fixture
def order(market):
    """Order holding 10,000 FT and 10,000 XT on the fee-free market."""
    return make_order(market)


@pytest.fixture
def dex():
    """USDC <-> WETH at 2000."""
    return FixedRateAdapter({
        ("USDC", "WETH"): Decimal("0.0005"),
        ("WETH", "USDC"): Decimal("2000"),
    })


@pytest.fixture
def router(ledger, market, dex):
    router = Router(ledger, "router", owner="admin")
    router.set_market_whitelist("admin", market, True)
    router.set_adapter_whitelist("admin", "dex", dex, True)
    return router


@pytest.fixture
def to_weth():
    return [SwapUnit("dex", "USDC", "WETH")]


@pytest.fixture
def to_usdc():
    return [SwapUnit("dex", "WETH", "USDC")]
