"""Signal generation — pure functions, no I/O.

Combines a fast/slow EMA crossover with an RSI momentum filter and an
optional MACD confirmation into a single directional signal.
"""

from typing import Optional

from trailbot.errors import InsufficientDataError
from trailbot.strategy.indicators import calculate_ema, calculate_macd, calculate_rsi
from trailbot.strategy.models import Direction, MACDValues, Signal, StrategyParams


def generate_signal(
    symbol: str,
    closes: list[float],
    params: Optional[StrategyParams] = None,
) -> Signal:
    """Evaluate a window of closing prices for one symbol.

    Rules (evaluated in order):
        - **LONG**: EMA(fast) > EMA(slow) AND RSI > threshold
          [AND MACD > signal when ``require_macd``].
        - **SHORT**: EMA(fast) < EMA(slow) AND RSI < threshold
          [AND MACD < signal when ``require_macd``].
        - **NEUTRAL**: everything else.

    Args:
        symbol: Symbol the closes belong to.
        closes: Closing prices, oldest-first.
        params: Strategy knobs. Defaults to ``StrategyParams()``.

    Returns:
        ``Signal`` — identical *closes* always produce an identical signal.

    Raises:
        InsufficientDataError: If *closes* is shorter than
            ``params.min_closes``.
    """
    if params is None:
        params = StrategyParams()

    if len(closes) < params.min_closes:
        raise InsufficientDataError(
            f"{symbol}: need at least {params.min_closes} closes, "
            f"got {len(closes)}"
        )

    fast = calculate_ema(closes, params.ema_fast)[-1]
    slow = calculate_ema(closes, params.ema_slow)[-1]
    rsi = calculate_rsi(closes, params.rsi_period)

    macd: Optional[MACDValues] = None
    if params.require_macd:
        macd = calculate_macd(
            closes, params.macd_fast, params.macd_slow, params.macd_signal,
        )

    if fast > slow and rsi > params.rsi_threshold and (
        macd is None or macd.macd > macd.signal
    ):
        direction = Direction.LONG
    elif fast < slow and rsi < params.rsi_threshold and (
        macd is None or macd.macd < macd.signal
    ):
        direction = Direction.SHORT
    else:
        direction = Direction.NEUTRAL

    return Signal(
        symbol=symbol,
        direction=direction,
        fast_ema=fast,
        slow_ema=slow,
        rsi=rsi,
        macd=macd,
    )
