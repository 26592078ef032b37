"""Fixed stop-loss / take-profit check — pure function, no I/O.

Independent of the trailing stop: it reads only the position snapshot and
never touches ``TrailingState``.
"""

from typing import Optional

from trailbot.broker.models import Position


def check_fixed_exit(
    position: Position,
    stop_loss_pct: Optional[float] = None,
    take_profit_pct: Optional[float] = None,
) -> Optional[str]:
    """Return ``"stop_loss"`` or ``"take_profit"`` if a fixed bound is hit.

    Args:
        position: Current position snapshot.
        stop_loss_pct: Loss ratio that triggers a stop (0.05 = −5 %).
            ``None`` disables the check.
        take_profit_pct: Profit ratio that triggers a take-profit.
            ``None`` disables the check.
    """
    profit = position.profit_ratio
    if stop_loss_pct is not None and profit <= -stop_loss_pct:
        return "stop_loss"
    if take_profit_pct is not None and profit >= take_profit_pct:
        return "take_profit"
    return None
