"""TrailBot — Trading engine (reconciliation loop).

Connects strategy, risk management, and the exchange gateway into a single
fixed-period loop.  Each cycle first manages exits for open positions, then
looks for new entries on the watchlist.
"""

import asyncio
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional

from trailbot.api.routers import (
    update_bot_status,
    update_strategy_insight,
    update_trailing_states,
)
from trailbot.broker.base import ExchangeGateway
from trailbot.broker.models import Position
from trailbot.config import Config
from trailbot.errors import GatewayError, InsufficientDataError
from trailbot.risk.fixed_exit import check_fixed_exit
from trailbot.risk.position_sizer import calculate_size
from trailbot.risk.trailing_stop import TrailingStopTracker
from trailbot.strategy.base import StrategyProtocol
from trailbot.strategy.ema_rsi import EmaRsiStrategy
from trailbot.strategy.models import Direction

logger = logging.getLogger("trailbot")


class TradingEngine:
    """Runs reconciliation cycles against one exchange account.

    Only one cycle is ever in flight: :meth:`tick` holds a lock for the
    duration of :meth:`run_once` and skips if the lock is taken.

    Args:
        config: Application configuration.
        broker: An ``ExchangeGateway`` (``BinanceFuturesClient`` or a mock).
        strategy: Signal strategy. Defaults to ``EmaRsiStrategy`` built from
            ``config.strategy``.
        tracker: Trailing-stop state store. Defaults to a fresh tracker
            built from the config thresholds.
    """

    def __init__(
        self,
        config: Config,
        broker: ExchangeGateway,
        strategy: Optional[StrategyProtocol] = None,
        tracker: Optional[TrailingStopTracker] = None,
    ) -> None:
        self._config = config
        self._broker = broker
        self._strategy = strategy or EmaRsiStrategy(config.strategy)
        if tracker is None:
            tracker = TrailingStopTracker(
                activation_pct=config.trailing_activation_pct,
                retracement_pct=config.trailing_retracement_pct,
            )
        self._tracker = tracker
        self._running: bool = False
        self._cycle_count: int = 0
        self._cycle_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()

    @property
    def tracker(self) -> TrailingStopTracker:
        return self._tracker

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def initialize(self) -> bool:
        """Load markets and check the account is funded.

        Returns:
            ``True`` when the engine is ready to trade; ``False`` if the
            exchange is unreachable or the base-currency balance is below
            ``config.min_balance``.
        """
        base = self._config.base_currency
        try:
            await self._broker.load_markets()
            balances = await self._broker.fetch_balance()
        except GatewayError as exc:
            logger.error("Failed to initialise (exchange unreachable?): %s", exc)
            return False

        for currency, bal in balances.items():
            if bal.total > 0:
                logger.info("  %s: total=%.4f free=%.4f", currency, bal.total, bal.free)

        total = balances[base].total if base in balances else 0.0
        if total < self._config.min_balance:
            logger.warning(
                "Capital too low: %.2f %s (need at least %.2f).",
                total, base, self._config.min_balance,
            )
            return False

        self._running = True
        update_bot_status(
            running=True,
            started_at=datetime.now(timezone.utc).isoformat(),
            free_balance=balances[base].free if base in balances else 0.0,
        )
        logger.info(
            "Engine ready: %d symbol(s), %dx leverage, %.1f%% risk, every %d min",
            len(self._config.watchlist),
            self._config.leverage,
            self._config.risk_per_trade * 100,
            self._config.cycle_interval_minutes,
        )
        return True

    def stop(self) -> None:
        """Signal the engine to stop after the current cycle."""
        self._running = False
        self._stop_event.set()

    async def _sleep(self, delay: float) -> bool:
        """Wait up to *delay* seconds. Returns ``True`` if stopped meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=max(delay, 0.0))
            return True
        except asyncio.TimeoutError:
            return False

    # ── Scheduling ───────────────────────────────────────────────────────

    async def start(
        self,
        poll_interval: Optional[float] = None,
        max_cycles: int = 0,
    ) -> list[dict]:
        """Initialise (retrying every interval until funded) then :meth:`run`."""
        interval = (
            self._config.cycle_interval_seconds
            if poll_interval is None else poll_interval
        )
        while not await self.initialize():
            logger.info("Bot paused. Retrying in %.0f seconds...", interval)
            if await self._sleep(interval):
                return []
        return await self.run(poll_interval=interval, max_cycles=max_cycles)

    async def run(
        self,
        poll_interval: Optional[float] = None,
        max_cycles: int = 0,
    ) -> list[dict]:
        """Run cycles on a fixed period until stopped.

        Ticks that fall due while a cycle is still running are dropped, not
        queued, so a slow cycle never causes a burst of catch-up cycles.

        Args:
            poll_interval: Seconds between cycle starts. Defaults to
                ``config.cycle_interval_minutes``.
            max_cycles: Stop after this many cycles (0 = unlimited).

        Returns:
            List of per-cycle result dicts.
        """
        interval = (
            self._config.cycle_interval_seconds
            if poll_interval is None else poll_interval
        )
        loop = asyncio.get_running_loop()
        results: list[dict] = []
        next_tick = loop.time()
        self._running = not self._stop_event.is_set()

        while self._running:
            result = await self.tick()
            results.append(result)
            logger.info("Cycle %d: %s", self._cycle_count, result.get("action", "unknown"))

            if max_cycles > 0 and len(results) >= max_cycles:
                break

            now = loop.time()
            if interval > 0:
                next_tick += interval
                if now > next_tick:
                    missed = int((now - next_tick) // interval) + 1
                    logger.warning(
                        "Cycle overran the %.0fs interval — dropping %d tick(s)",
                        interval, missed,
                    )
                    next_tick += missed * interval
            else:
                next_tick = now

            if await self._sleep(next_tick - now):
                break

        self._running = False
        update_bot_status(running=False)
        return results

    async def tick(self) -> dict:
        """Run one cycle unless another one is still in flight."""
        if self._cycle_lock.locked():
            logger.warning("Previous cycle still running — skipping this tick.")
            return {"action": "skipped", "reason": "cycle_in_flight"}

        async with self._cycle_lock:
            self._cycle_count += 1
            try:
                result = await self.run_once()
            except Exception as exc:
                logger.error("Cycle %d error: %s", self._cycle_count, exc)
                result = {"action": "error", "reason": str(exc)}

            update_bot_status(
                cycle_count=self._cycle_count,
                last_cycle_at=datetime.now(timezone.utc).isoformat(),
                last_result=result,
            )
            return result

    # ── Single cycle ─────────────────────────────────────────────────────

    async def run_once(self) -> dict:
        """Execute one reconciliation cycle.

        Returns a dict describing what happened::

            {
                "action": "cycle_complete" | "max_positions",
                "closed": [...], "opened": [...],
                "skipped": {symbol: reason}, "errors": {symbol: message},
                "open_positions": int,
            }

        A ``GatewayError`` while reading balance or positions aborts the
        cycle; errors for an individual symbol are recorded and the cycle
        moves on to the next symbol.
        """
        cfg = self._config
        result: dict = {
            "action": "cycle_complete",
            "closed": [],
            "opened": [],
            "skipped": {},
            "errors": {},
        }

        # 1 ── Account state
        balances = await self._broker.fetch_balance()
        base_balance = balances.get(cfg.base_currency)
        free = base_balance.free if base_balance else 0.0
        positions = await self._broker.fetch_positions()
        logger.debug("Free %s: %.2f, %d position(s)", cfg.base_currency, free, len(positions))

        # 2 ── Exits
        for position in positions:
            if position.size == 0:
                continue
            try:
                await self._manage_position(position, result)
            except GatewayError as exc:
                logger.error("Failed to manage %s: %s", position.symbol, exc)
                result["errors"][position.symbol] = str(exc)
            except Exception as exc:
                logger.exception("Unexpected error managing %s", position.symbol)
                result["errors"][position.symbol] = str(exc)

        # 3 ── Post-close snapshot + concurrency cap
        open_positions = [
            p for p in await self._broker.fetch_positions() if p.size > 0
        ]
        self._tracker.prune(p.symbol for p in open_positions)
        self._publish_state(free, open_positions)
        result["open_positions"] = len(open_positions)

        slots = cfg.max_concurrent_positions - len(open_positions)
        if slots <= 0:
            logger.info(
                "%d open position(s) — max %d reached, no new entries.",
                len(open_positions), cfg.max_concurrent_positions,
            )
            result["action"] = "max_positions"
            return result

        # 4 ── Entries
        held = {p.symbol for p in open_positions}
        for symbol in cfg.watchlist:
            if symbol in held:
                result["skipped"][symbol] = "in_position"
                continue
            if slots <= 0:
                result["skipped"][symbol] = "max_positions"
                continue
            try:
                order = await self._evaluate_entry(symbol, free)
            except InsufficientDataError as exc:
                logger.info("Skipping %s: %s", symbol, exc)
                result["skipped"][symbol] = "insufficient_data"
                continue
            except (GatewayError, ValueError) as exc:
                logger.error("Entry failed for %s: %s", symbol, exc)
                result["errors"][symbol] = str(exc)
                continue
            except Exception as exc:
                logger.exception("Unexpected error evaluating %s", symbol)
                result["errors"][symbol] = str(exc)
                continue

            if order is None:
                result["skipped"][symbol] = "neutral"
                continue
            result["opened"].append(order)
            slots -= 1

        insight = getattr(self._strategy, "last_insight", None)
        if isinstance(insight, dict):
            update_strategy_insight(insight)

        return result

    async def _manage_position(self, position: Position, result: dict) -> None:
        """Apply the fixed-exit check, then the trailing stop, to one position."""
        cfg = self._config
        if cfg.stop_loss_pct is not None or cfg.take_profit_pct is not None:
            hit = check_fixed_exit(position, cfg.stop_loss_pct, cfg.take_profit_pct)
            if hit:
                logger.warning(
                    "%s %s hit fixed %s (profit %.2f%%)",
                    position.side, position.symbol, hit, position.profit_ratio * 100,
                )
                if cfg.fixed_exit_action == "close":
                    await self._close(position, hit, result)
                    return

        if self._tracker.evaluate(position):
            await self._close(position, "trailing_stop", result)
            self._tracker.discard(position.symbol)

    async def _close(self, position: Position, reason: str, result: dict) -> None:
        logger.info(
            "Closing %s %s (%s): %s %.6f @ mark %.6f",
            position.side, position.symbol, reason,
            position.close_side, position.size, position.mark_price,
        )
        order = await self._broker.create_market_order(
            position.symbol,
            position.close_side,
            position.size,
            reduce_only=True,
        )
        result["closed"].append({
            "symbol": position.symbol,
            "side": position.close_side,
            "quantity": position.size,
            "reason": reason,
            "order_id": order.order_id,
        })

    async def _evaluate_entry(self, symbol: str, free: float) -> Optional[dict]:
        """Evaluate *symbol* and open a position on a directional signal.

        Returns the order summary, or ``None`` for a neutral signal.
        """
        cfg = self._config
        signal = await self._strategy.evaluate(
            self._broker, symbol, cfg.timeframe, cfg.candle_limit,
        )
        if signal.direction is Direction.NEUTRAL:
            return None

        ticker = await self._broker.fetch_ticker(symbol)
        quantity = calculate_size(free, ticker.last, cfg.risk_per_trade, cfg.leverage)
        if quantity <= 0:
            raise ValueError(f"no free {cfg.base_currency} balance to size {symbol}")

        side = "buy" if signal.direction is Direction.LONG else "sell"
        await self._broker.set_leverage(cfg.leverage, symbol)

        logger.info(
            "Opening %s %s: qty=%.6f @ %.6f (ema %.4f/%.4f, rsi %.1f)",
            signal.direction.value, symbol, quantity, ticker.last,
            signal.fast_ema, signal.slow_ema, signal.rsi,
        )
        order = await self._broker.create_market_order(symbol, side, quantity)
        update_bot_status(last_order_time=datetime.now(timezone.utc).isoformat())

        return {
            "symbol": symbol,
            "direction": signal.direction.value,
            "side": side,
            "quantity": quantity,
            "price": ticker.last,
            "order_id": order.order_id,
        }

    def _publish_state(self, free: float, open_positions: list[Position]) -> None:
        update_bot_status(
            free_balance=free,
            open_positions=[
                {
                    "symbol": p.symbol,
                    "side": p.side,
                    "contracts": p.contracts,
                    "entry_price": p.entry_price,
                    "mark_price": p.mark_price,
                    "unrealized_pnl_pct": round(p.unrealized_pnl_pct, 2),
                }
                for p in open_positions
            ],
        )
        update_trailing_states(
            {symbol: asdict(state) for symbol, state in self._tracker.states.items()}
        )
