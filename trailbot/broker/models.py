"""Broker data models — typed representations of exchange API objects."""

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class Candle:
    """A single candlestick bar. ``timestamp`` is the open time in epoch ms."""

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class Balance:
    """Margin balance for one currency."""

    currency: str
    free: float
    used: float
    total: float


@dataclass(frozen=True)
class Ticker:
    """Latest traded price for a symbol."""

    symbol: str
    last: float


@dataclass(frozen=True)
class Position:
    """An open futures position (read-only snapshot).

    ``contracts`` is signed: positive for long, negative for short.
    """

    symbol: str
    side: Literal["long", "short"]
    entry_price: float
    mark_price: float
    contracts: float
    unrealized_pnl_pct: float = 0.0

    @property
    def size(self) -> float:
        """Absolute position size in contracts."""
        return abs(self.contracts)

    @property
    def profit_ratio(self) -> float:
        """Unrealised move from entry as a fraction (0.12 = +12 %)."""
        if self.entry_price == 0:
            return 0.0
        if self.side == "long":
            return (self.mark_price - self.entry_price) / self.entry_price
        return (self.entry_price - self.mark_price) / self.entry_price

    @property
    def close_side(self) -> Literal["buy", "sell"]:
        """Order side that flattens this position."""
        return "sell" if self.side == "long" else "buy"


@dataclass(frozen=True)
class MarketInfo:
    """Lot-size metadata for one symbol."""

    symbol: str
    step_size: float
    min_qty: float


@dataclass(frozen=True)
class OrderResponse:
    """Acknowledgement of a submitted market order."""

    order_id: str
    symbol: str
    side: str
    quantity: float
    status: str
