"""EMA crossover + RSI momentum strategy.

Implements ``StrategyProtocol``.  All variants (with or without MACD
confirmation, different EMA periods or RSI threshold) are expressed through
``StrategyParams`` rather than separate classes.
"""

from typing import Optional

from trailbot.strategy.models import Signal, StrategyParams
from trailbot.strategy.signals import generate_signal


class EmaRsiStrategy:
    """Directional strategy over a window of closing prices.

    Flow:
        1. Fetch *limit* candles at *timeframe* for the symbol.
        2. Extract closes (oldest-first).
        3. Run ``generate_signal`` and record the outcome in
           ``last_insight`` for the status API.

    Args:
        params: Strategy knobs. Defaults to ``StrategyParams()``.
    """

    def __init__(self, params: Optional[StrategyParams] = None) -> None:
        self.params = params or StrategyParams()
        self.last_insight: dict[str, dict] = {}

    async def evaluate(
        self, broker, symbol: str, timeframe: str = "15m", limit: int = 100,
    ) -> Signal:
        candles = await broker.fetch_ohlcv(symbol, timeframe, limit)
        closes = [c.close for c in candles]

        self.last_insight[symbol] = {
            "candles": len(closes),
            "required": self.params.min_closes,
            "result": "insufficient_data",
        }

        signal = generate_signal(symbol, closes, self.params)

        self.last_insight[symbol] = {
            "candles": len(closes),
            "required": self.params.min_closes,
            "fast_ema": round(signal.fast_ema, 6),
            "slow_ema": round(signal.slow_ema, 6),
            "rsi": round(signal.rsi, 2),
            "macd": (
                {"macd": signal.macd.macd, "signal": signal.macd.signal}
                if signal.macd else None
            ),
            "result": signal.direction.value,
        }
        return signal
