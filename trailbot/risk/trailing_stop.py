"""Trailing stop — per-symbol profit lock for open positions.

Rules:
  - Track the most favourable mark price seen (max for long, min for short)
    from the first cycle the position is observed.
  - At +12 % unrealised profit the stop becomes active.
  - Once active, close when price retraces 3 % from the best-seen price.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from trailbot.broker.models import Position

logger = logging.getLogger("trailbot.trailing")


@dataclass
class TrailingState:
    """Mutable trailing state for one symbol."""

    symbol: str
    side: str
    peak_price: float
    active: bool = False


class TrailingStopTracker:
    """Owns the ``TrailingState`` map and decides when to close.

    Only the tracker mutates its states.  Positions themselves are never
    touched; a ``True`` from :meth:`evaluate` tells the caller to submit a
    closing order and then :meth:`discard` the symbol.

    Args:
        activation_pct: Profit ratio that arms the stop (0.12 = 12 %).
        retracement_pct: Pullback from the peak that triggers a close.
    """

    def __init__(
        self,
        activation_pct: float = 0.12,
        retracement_pct: float = 0.03,
    ) -> None:
        if activation_pct <= 0:
            raise ValueError(f"activation_pct must be positive, got {activation_pct}")
        if not 0 < retracement_pct < 1:
            raise ValueError(
                f"retracement_pct must be in (0, 1), got {retracement_pct}"
            )
        self.activation_pct = activation_pct
        self.retracement_pct = retracement_pct
        self._states: dict[str, TrailingState] = {}

    # ── Queries ──────────────────────────────────────────────────────────

    def get(self, symbol: str) -> Optional[TrailingState]:
        return self._states.get(symbol)

    @property
    def states(self) -> dict[str, TrailingState]:
        """Copy of the current state map."""
        return dict(self._states)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._states

    def __len__(self) -> int:
        return len(self._states)

    # ── Mutation ─────────────────────────────────────────────────────────

    def evaluate(self, position: Position) -> bool:
        """Update the symbol's state with *position* and decide whether to close.

        Returns:
            ``True`` if the stop is active and price has retraced at least
            ``retracement_pct`` from the peak.
        """
        mark = position.mark_price
        state = self._states.get(position.symbol)

        if state is None or state.side != position.side:
            state = TrailingState(
                symbol=position.symbol,
                side=position.side,
                peak_price=mark,
            )
            self._states[position.symbol] = state

        if position.side == "long":
            if mark > state.peak_price:
                state.peak_price = mark
        elif mark < state.peak_price:
            state.peak_price = mark

        if not state.active and position.profit_ratio >= self.activation_pct:
            state.active = True
            logger.info(
                "Trailing stop armed for %s %s (profit %.2f%%, peak %.6f)",
                position.side, position.symbol,
                position.profit_ratio * 100, state.peak_price,
            )

        if not state.active:
            return False

        if position.side == "long":
            return mark <= state.peak_price * (1 - self.retracement_pct)
        return mark >= state.peak_price * (1 + self.retracement_pct)

    def discard(self, symbol: str) -> None:
        """Forget *symbol* after its position has been closed."""
        self._states.pop(symbol, None)

    def prune(self, open_symbols: Iterable[str]) -> list[str]:
        """Drop states for positions that no longer exist.

        Returns:
            Symbols whose state was removed.
        """
        keep = set(open_symbols)
        stale = [s for s in self._states if s not in keep]
        for symbol in stale:
            del self._states[symbol]
        if stale:
            logger.info("Dropped trailing state for closed positions: %s", stale)
        return stale
