"""Binance USDⓈ-M futures REST async client.

Implements ``ExchangeGateway``: market metadata, balances, positions,
klines, tickers, leverage, and market orders.  Signed endpoints use
HMAC-SHA256 over the url-encoded query string.
"""

import asyncio
import hashlib
import hmac
import logging
import time
from decimal import ROUND_DOWN, Decimal
from typing import Optional
from urllib.parse import urlencode

import httpx

from trailbot.broker.models import (
    Balance,
    Candle,
    MarketInfo,
    OrderResponse,
    Position,
    Ticker,
)
from trailbot.config import Config
from trailbot.errors import GatewayError

logger = logging.getLogger("trailbot.broker")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}
_RECV_WINDOW = 60000


def _step_decimals(step: Decimal) -> int:
    return max(0, -step.normalize().as_tuple().exponent)


class BinanceFuturesClient:
    """Async client wrapping the Binance USDⓈ-M futures REST API."""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._base_url = config.base_url
        self._api_secret = config.api_secret.encode()
        self._headers = {"X-MBX-APIKEY": config.api_key}
        self._markets: dict[str, MarketInfo] = {}

    # ── Signing ──────────────────────────────────────────────────────────

    def _sign(self, params: list[tuple[str, str]]) -> list[tuple[str, str]]:
        """Append ``timestamp``, ``recvWindow`` and ``signature`` to *params*."""
        query = list(params) + [
            ("timestamp", str(int(time.time() * 1000))),
            ("recvWindow", str(_RECV_WINDOW)),
        ]
        signature = hmac.new(
            self._api_secret, urlencode(query).encode(), hashlib.sha256,
        ).hexdigest()
        return query + [("signature", signature)]

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        signed: bool = False,
    ):
        """Execute an HTTP request with exponential-backoff retry.

        Retries on transient server errors (502, 503, 504) and rate-limits
        (429).  Signed requests are re-signed on every attempt so the
        timestamp stays inside ``recvWindow``.

        Returns the decoded JSON body.

        Raises:
            GatewayError: On a non-retryable HTTP error or once all retries
                are exhausted.
        """
        url = f"{self._base_url}{path}"
        base_params = [(k, str(v)) for k, v in (params or {}).items()]
        last_exc: Optional[GatewayError] = None

        for attempt in range(_MAX_RETRIES):
            query = self._sign(base_params) if signed else base_params
            try:
                async with httpx.AsyncClient() as client:
                    resp = await getattr(client, method)(
                        url,
                        headers=self._headers,
                        params=query,
                        timeout=30.0,
                    )
            except httpx.TransportError as exc:
                delay = _RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    "Binance %s %s transport error (%s) — retry %d/%d in %.1fs",
                    method.upper(), path, exc,
                    attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = GatewayError(f"Transport error on {path}: {exc}")
                await asyncio.sleep(delay)
                continue

            if resp.status_code in _RETRYABLE_STATUS_CODES:
                delay = _RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    "Binance %s %s returned %d — retry %d/%d in %.1fs",
                    method.upper(), path, resp.status_code,
                    attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = GatewayError(
                    f"Server error '{resp.status_code}' on {path}",
                    status_code=resp.status_code,
                )
                await asyncio.sleep(delay)
                continue

            if resp.status_code >= 400:
                try:
                    detail = resp.json().get("msg", resp.text)
                except ValueError:
                    detail = resp.text
                raise GatewayError(
                    f"Binance {method.upper()} {path} failed "
                    f"({resp.status_code}): {detail}",
                    status_code=resp.status_code,
                )

            return resp.json()

        # All retries exhausted — raise the last error
        raise last_exc  # type: ignore[misc]

    # ── Markets ──────────────────────────────────────────────────────────

    async def load_markets(self) -> None:
        """Cache lot-size metadata for every listed symbol."""
        data = await self._request_with_retry("get", "/fapi/v1/exchangeInfo")

        markets: dict[str, MarketInfo] = {}
        for s in data.get("symbols", []):
            filters = {f["filterType"]: f for f in s.get("filters", [])}
            lot = filters.get("MARKET_LOT_SIZE") or filters.get("LOT_SIZE")
            if lot is None:
                continue
            markets[s["symbol"]] = MarketInfo(
                symbol=s["symbol"],
                step_size=float(lot["stepSize"]),
                min_qty=float(lot["minQty"]),
            )
        self._markets = markets
        logger.info("Loaded %d futures markets", len(markets))

    def market(self, symbol: str) -> MarketInfo:
        """Return cached metadata for *symbol*.

        Raises ``GatewayError`` if the symbol is unknown.
        """
        info = self._markets.get(symbol)
        if info is None:
            raise GatewayError(f"Unknown symbol '{symbol}' (markets loaded: {len(self._markets)})")
        return info

    def amount_to_precision(self, symbol: str, quantity: float) -> str:
        """Floor *quantity* to the symbol's step size and format it."""
        info = self.market(symbol)
        step = Decimal(str(info.step_size))
        qty = Decimal(str(quantity))
        floored = (qty / step).to_integral_value(rounding=ROUND_DOWN) * step
        return f"{floored:.{_step_decimals(step)}f}"

    # ── Account ──────────────────────────────────────────────────────────

    async def fetch_balance(self) -> dict[str, Balance]:
        """Query futures wallet balances, keyed by asset."""
        data = await self._request_with_retry("get", "/fapi/v2/balance", signed=True)

        balances: dict[str, Balance] = {}
        for b in data:
            total = float(b.get("balance", "0"))
            free = float(b.get("availableBalance", "0"))
            balances[b["asset"]] = Balance(
                currency=b["asset"],
                free=free,
                used=max(total - free, 0.0),
                total=total,
            )
        return balances

    async def fetch_positions(self) -> list[Position]:
        """Return all positions with a nonzero amount."""
        data = await self._request_with_retry(
            "get", "/fapi/v2/positionRisk", signed=True,
        )

        positions: list[Position] = []
        for p in data:
            amount = float(p.get("positionAmt", "0"))
            if amount == 0:
                continue
            entry = float(p.get("entryPrice", "0"))
            pnl = float(p.get("unRealizedProfit", "0"))
            leverage = float(p.get("leverage", "1")) or 1.0
            margin = abs(amount) * entry / leverage
            positions.append(
                Position(
                    symbol=p["symbol"],
                    side="long" if amount > 0 else "short",
                    entry_price=entry,
                    mark_price=float(p.get("markPrice", "0")),
                    contracts=amount,
                    unrealized_pnl_pct=(pnl / margin * 100.0) if margin else 0.0,
                )
            )
        return positions

    # ── Market data ──────────────────────────────────────────────────────

    async def fetch_ohlcv(
        self,
        symbol: str,
        timeframe: str = "15m",
        limit: int = 100,
    ) -> list[Candle]:
        """Fetch klines for *symbol*.

        Args:
            symbol: e.g. ``"BTCUSDC"``
            timeframe: Binance interval, e.g. ``"15m"``, ``"1h"``
            limit: number of candles to request (max 1500)

        Returns:
            List of ``Candle`` objects ordered oldest-first.  May be shorter
            than *limit* for newly listed symbols.
        """
        data = await self._request_with_retry(
            "get",
            "/fapi/v1/klines",
            params={"symbol": symbol, "interval": timeframe, "limit": limit},
        )
        return [
            Candle(
                timestamp=int(k[0]),
                open=float(k[1]),
                high=float(k[2]),
                low=float(k[3]),
                close=float(k[4]),
                volume=float(k[5]),
            )
            for k in data
        ]

    async def fetch_ticker(self, symbol: str) -> Ticker:
        """Return the latest traded price for *symbol*."""
        data = await self._request_with_retry(
            "get", "/fapi/v1/ticker/price", params={"symbol": symbol},
        )
        return Ticker(symbol=data["symbol"], last=float(data["price"]))

    # ── Orders ───────────────────────────────────────────────────────────

    async def set_leverage(self, leverage: int, symbol: str) -> None:
        """Set initial leverage for *symbol* (idempotent)."""
        await self._request_with_retry(
            "post",
            "/fapi/v1/leverage",
            params={"symbol": symbol, "leverage": leverage},
            signed=True,
        )

    async def create_market_order(
        self,
        symbol: str,
        side: str,
        quantity: float,
        reduce_only: bool = False,
    ) -> OrderResponse:
        """Submit a market order.

        The quantity is floored to the symbol's lot step before submission.

        Args:
            symbol: e.g. ``"BTCUSDC"``
            side: ``"buy"`` or ``"sell"``
            quantity: Base-asset quantity (positive).
            reduce_only: ``True`` for closing orders.

        Raises:
            GatewayError: If the floored quantity is below the symbol
                minimum, or the exchange rejects the order.
        """
        if side not in ("buy", "sell"):
            raise ValueError(f"side must be 'buy' or 'sell', got {side!r}")
        if not self._markets:
            await self.load_markets()

        info = self.market(symbol)
        amount = self.amount_to_precision(symbol, quantity)
        if float(amount) < info.min_qty or float(amount) <= 0:
            raise GatewayError(
                f"{symbol}: quantity {quantity} below minimum lot {info.min_qty}"
            )

        params = {
            "symbol": symbol,
            "side": side.upper(),
            "type": "MARKET",
            "quantity": amount,
        }
        if reduce_only:
            params["reduceOnly"] = "true"

        data = await self._request_with_retry(
            "post", "/fapi/v1/order", params=params, signed=True,
        )
        return OrderResponse(
            order_id=str(data["orderId"]),
            symbol=data.get("symbol", symbol),
            side=side,
            quantity=float(data.get("origQty", amount)),
            status=data.get("status", ""),
        )
