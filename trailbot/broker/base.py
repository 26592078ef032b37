"""Exchange gateway protocol.

The engine and strategies only depend on this interface, so any async
client (or test double) exposing these coroutines can drive a cycle.
"""

from typing import Protocol, runtime_checkable

from trailbot.broker.models import Balance, Candle, OrderResponse, Position, Ticker


@runtime_checkable
class ExchangeGateway(Protocol):
    """Narrow capability the trading engine consumes.

    Every method raises ``GatewayError`` on transport, auth, or rate-limit
    failures.
    """

    async def load_markets(self) -> None:
        ...

    async def fetch_balance(self) -> dict[str, Balance]:
        ...

    async def fetch_positions(self) -> list[Position]:
        ...

    async def fetch_ohlcv(
        self, symbol: str, timeframe: str, limit: int,
    ) -> list[Candle]:
        ...

    async def fetch_ticker(self, symbol: str) -> Ticker:
        ...

    async def set_leverage(self, leverage: int, symbol: str) -> None:
        ...

    async def create_market_order(
        self,
        symbol: str,
        side: str,
        quantity: float,
        reduce_only: bool = False,
    ) -> OrderResponse:
        ...
