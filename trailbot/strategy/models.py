"""Strategy data models — typed representations for strategy outputs."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Direction(str, Enum):
    """Directional trading signal."""

    LONG = "LONG"
    SHORT = "SHORT"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class MACDValues:
    """Latest MACD line and signal line values."""

    macd: float
    signal: float


@dataclass(frozen=True)
class StrategyParams:
    """Tunable knobs of the EMA/RSI strategy."""

    ema_fast: int = 9
    ema_slow: int = 21
    rsi_period: int = 14
    rsi_threshold: float = 50.0
    require_macd: bool = False
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9

    @property
    def min_closes(self) -> int:
        """Smallest window that yields every required indicator."""
        return max(self.ema_slow, self.rsi_period + 1)


@dataclass(frozen=True)
class Signal:
    """A directional signal for one symbol plus the values behind it."""

    symbol: str
    direction: Direction
    fast_ema: float
    slow_ema: float
    rsi: float
    macd: Optional[MACDValues] = None

    @property
    def is_actionable(self) -> bool:
        return self.direction is not Direction.NEUTRAL
