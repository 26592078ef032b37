"""Technical indicators — EMA, RSI, MACD. Pure functions, no I/O.

All functions take a price series ordered oldest-first (index 0 is the
oldest close).
"""

from trailbot.errors import InsufficientDataError
from trailbot.strategy.models import MACDValues


def calculate_ema(values: list[float], period: int) -> list[float]:
    """Calculate an Exponential Moving Average series.

    Uses the standard EMA formula:
        ``EMA_today = value × k + EMA_yesterday × (1 - k)``
    where ``k = 2 / (period + 1)``.

    The series is seeded with the first raw value (no SMA warm-up), so the
    result has the same length as *values* and ``result[0] == values[0]``.

    Returns ``[]`` for an empty input.

    Raises ``ValueError`` if *period* is less than 1.
    """
    if period < 1:
        raise ValueError(f"EMA period must be >= 1, got {period}")
    if not values:
        return []

    k = 2.0 / (period + 1)
    ema: list[float] = [values[0]]
    for i in range(1, len(values)):
        ema.append(values[i] * k + ema[i - 1] * (1 - k))
    return ema


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(values: list[float], period: int = 14) -> float:
    """Calculate the Relative Strength Index of the latest *period* moves.

    Algorithm (simple sums, no Wilder smoothing):
        1. delta = value[i] - value[i-1] for the last *period* deltas.
        2. gain = sum of non-negative deltas, loss = sum of |negative deltas|.
        3. loss == 0 → RSI is exactly 100.
        4. RSI = 100 - 100 / (1 + gain / loss)

    Requires at least ``period + 1`` values.

    Raises ``InsufficientDataError`` if there is not enough data.
    """
    if period < 1:
        raise ValueError(f"RSI period must be >= 1, got {period}")
    if len(values) < period + 1:
        raise InsufficientDataError(
            f"Need at least {period + 1} values for RSI({period}), "
            f"got {len(values)}"
        )

    gain = 0.0
    loss = 0.0
    for i in range(len(values) - period, len(values)):
        delta = values[i] - values[i - 1]
        if delta >= 0:
            gain += delta
        else:
            loss += -delta

    if loss == 0:
        return 100.0
    rs = gain / loss
    return 100.0 - 100.0 / (1.0 + rs)


# ── MACD ─────────────────────────────────────────────────────────────────


def calculate_macd(
    values: list[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MACDValues:
    """Calculate the latest MACD and signal-line values.

    MACD line = EMA(*fast*) − EMA(*slow*) over the overlapping suffix of
    the two series; signal line = EMA(MACD line, *signal*).

    Raises ``InsufficientDataError`` for an empty series.
    """
    if not values:
        raise InsufficientDataError("Need at least 1 value for MACD, got 0")

    fast_ema = calculate_ema(values, fast)
    slow_ema = calculate_ema(values, slow)
    overlap = min(len(fast_ema), len(slow_ema))
    macd_line = [
        f - s for f, s in zip(fast_ema[-overlap:], slow_ema[-overlap:])
    ]
    signal_line = calculate_ema(macd_line, signal)

    return MACDValues(macd=macd_line[-1], signal=signal_line[-1])
