"""
oracle.py - Price feeds and the staleness-checked oracle

Provides the prices the Gearing Token needs to value debt and collateral.

Classes:
- RoundData: One price observation (price and the time it was published)
- PriceFeed: Protocol defining the feed interface (latest_round_data)
- StaticPriceFeed: A single price that can be pushed by hand
- TimeSeriesPriceFeed: Historical observations read at the ledger's current time
- Oracle: Maps assets to feeds with a heartbeat; rejects stale or non-positive prices

All prices are quoted in a common base currency (typically USD).
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple, Protocol, runtime_checkable
from bisect import bisect_right

from .protocol.errors import OracleIsNotWorking


Clock = Callable[[], datetime]


@dataclass(frozen=True, slots=True)
class RoundData:
    """A price observation: value in base currency and publication time."""
    price: Decimal
    updated_at: datetime


@runtime_checkable
class PriceFeed(Protocol):
    """Protocol for price feeds."""

    def latest_round_data(self) -> RoundData:
        """Return the most recent observation."""
        ...


class StaticPriceFeed:
    """
    Feed with a single price, republished by update_price().

    The publication time is read from the clock when the price is set, so a
    feed that is never updated goes stale once its heartbeat passes.
    """

    def __init__(self, price: Decimal, clock: Clock):
        self._clock = clock
        self._round = RoundData(Decimal(str(price)), clock())

    def latest_round_data(self) -> RoundData:
        return self._round

    def update_price(self, price: Decimal, updated_at: Optional[datetime] = None) -> None:
        """Publish a new price (at the clock's current time unless given)."""
        self._round = RoundData(Decimal(str(price)), updated_at or self._clock())

    def __repr__(self):
        return f"StaticPriceFeed({self._round.price} @ {self._round.updated_at.isoformat()})"


class TimeSeriesPriceFeed:
    """
    Feed backed by a price path.

    latest_round_data() returns the most recent observation at or before the
    clock's current time.

    Example:
        feed = TimeSeriesPriceFeed(lambda: ledger.current_time, [
            (t0, Decimal("2000")), (t1, Decimal("1800")),
        ])
    """

    def __init__(self, clock: Clock, path: Optional[List[Tuple[datetime, Decimal]]] = None):
        self._clock = clock
        self.history: List[Tuple[datetime, Decimal]] = sorted(path or [], key=lambda x: x[0])

    def add_price(self, timestamp: datetime, price: Decimal) -> None:
        """Add a price observation, keeping the history in time order."""
        self.history.append((timestamp, Decimal(str(price))))
        self.history.sort(key=lambda x: x[0])

    def latest_round_data(self) -> RoundData:
        now = self._clock()
        timestamps = [ts for ts, _ in self.history]
        idx = bisect_right(timestamps, now)
        if idx == 0:
            # Nothing published yet: report an unusable round
            return RoundData(Decimal("0"), datetime.min)
        ts, price = self.history[idx - 1]
        return RoundData(price, ts)

    def __repr__(self):
        return f"TimeSeriesPriceFeed({len(self.history)} observations)"


class Oracle:
    """
    Asset -> (feed, heartbeat) registry.

    get_price() raises OracleIsNotWorking when the asset has no feed, when
    the latest price is not positive, or when it is older than the heartbeat.
    """

    def __init__(self, clock: Clock):
        self._clock = clock
        self._feeds: Dict[str, Tuple[PriceFeed, timedelta]] = {}

    def set_feed(self, asset: str, feed: PriceFeed, heartbeat: timedelta = timedelta(days=1)) -> None:
        self._feeds[asset] = (feed, heartbeat)

    def remove_feed(self, asset: str) -> None:
        self._feeds.pop(asset, None)

    def get_price(self, asset: str) -> Decimal:
        if asset not in self._feeds:
            raise OracleIsNotWorking(asset, "no feed")
        feed, heartbeat = self._feeds[asset]
        data = feed.latest_round_data()
        if data.price <= 0:
            raise OracleIsNotWorking(asset, f"non-positive price {data.price}")
        if self._clock() - data.updated_at > heartbeat:
            raise OracleIsNotWorking(asset, f"stale since {data.updated_at.isoformat()}")
        return data.price

    def __repr__(self):
        return f"Oracle({sorted(self._feeds)})"
