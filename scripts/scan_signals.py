"""Read-only signal scan over the watchlist — places no orders.

Usage (from the repo root):
    python -m scripts.scan_signals --timeframe 15m --limit 100
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from trailbot.broker.binance_client import BinanceFuturesClient
from trailbot.config import load_config
from trailbot.errors import GatewayError, InsufficientDataError
from trailbot.strategy.ema_rsi import EmaRsiStrategy

logger = logging.getLogger(__name__)


async def scan(broker, symbols, strategy: EmaRsiStrategy, timeframe: str, limit: int) -> dict[str, str]:
    """Return ``{symbol: direction}``; failures are reported as ``"ERROR"`` / ``"INSUFFICIENT_DATA"``."""
    results: dict[str, str] = {}
    for symbol in symbols:
        try:
            signal = await strategy.evaluate(broker, symbol, timeframe, limit)
        except InsufficientDataError as exc:
            logger.info("%s: %s", symbol, exc)
            results[symbol] = "INSUFFICIENT_DATA"
            continue
        except GatewayError as exc:
            logger.error("%s: %s", symbol, exc)
            results[symbol] = "ERROR"
            continue
        logger.info(
            "%-10s %-7s ema %.4f/%.4f rsi %.1f",
            symbol, signal.direction.value, signal.fast_ema, signal.slow_ema, signal.rsi,
        )
        results[symbol] = signal.direction.value
    return results


async def _main(timeframe: str | None, limit: int | None) -> None:
    config = load_config()
    broker = BinanceFuturesClient(config)
    await scan(
        broker,
        config.watchlist,
        EmaRsiStrategy(config.strategy),
        timeframe or config.timeframe,
        limit or config.candle_limit,
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Print current signals for the watchlist")
    parser.add_argument("--timeframe", default=None)
    parser.add_argument("--limit", type=int, default=None)
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    asyncio.run(_main(args.timeframe, args.limit))
