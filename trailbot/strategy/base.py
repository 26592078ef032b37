"""Strategy protocol.

Defines the interface the trading engine expects from a strategy.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from trailbot.strategy.models import Signal


@runtime_checkable
class StrategyProtocol(Protocol):
    """Interface that all trading strategies must satisfy."""

    async def evaluate(
        self, broker, symbol: str, timeframe: str, limit: int,
    ) -> Signal:
        """Fetch market data for *symbol* and return a directional signal.

        Raises ``InsufficientDataError`` when the candle history is too
        short, and lets ``GatewayError`` propagate.
        """
        ...
