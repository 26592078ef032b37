"""TrailBot — application entry point.

Boots the FastAPI health/status server and provides the CLI entry point for
testnet and live modes.
"""

import logging

from fastapi import FastAPI

from trailbot.api.routers import router

app = FastAPI(title="TrailBot Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("trailbot")


@app.get("/")
async def root():
    """Plain banner for load balancers that probe ``/``."""
    return {"service": "TrailBot", "health": "/health"}


def warn_if_live(mode: str) -> bool:
    """Log a prominent warning when running in live mode.

    Returns ``True`` if *mode* is ``"live"``.
    """
    if mode == "live":
        logger.warning(
            "LIVE TRADING MODE — Real money at risk! Starting in 5 seconds..."
        )
        return True
    return False


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and start the engine (and API server)."""
    import argparse
    import asyncio
    import dataclasses
    import sys
    import time

    from trailbot.api.routers import configure_routers
    from trailbot.broker.binance_client import BinanceFuturesClient
    from trailbot.config import load_config
    from trailbot.engine import TradingEngine
    from trailbot.errors import ConfigurationError

    parser = argparse.ArgumentParser(description="TrailBot futures trading bot")
    parser.add_argument(
        "--mode",
        choices=["testnet", "live"],
        default=None,
        help="Exchange environment (default: BINANCE_ENVIRONMENT or testnet)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single reconciliation cycle and exit",
    )
    parser.add_argument(
        "--engine-only",
        action="store_true",
        help="Run the trading engine without the API server",
    )
    parser.add_argument("--env-file", default=None, help="Path to a .env file")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        config = load_config(args.env_file)
        if args.mode:
            config = dataclasses.replace(config, environment=args.mode)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        sys.exit(1)

    logging.getLogger().setLevel(config.log_level.upper())

    if warn_if_live(config.environment):
        time.sleep(5)

    broker = BinanceFuturesClient(config)
    engine = TradingEngine(config=config, broker=broker)
    configure_routers(config=config, mode=config.environment)

    if args.once:
        asyncio.run(_run_single_cycle(engine))
    elif args.engine_only:
        asyncio.run(_run_engine_only(engine))
    else:
        asyncio.run(_run_with_server(engine, config.health_port))


def install_signal_handlers(engine) -> None:
    """Stop *engine* on SIGINT/SIGTERM from inside the running event loop.

    Handlers registered with the loop wake it immediately, so a pending
    inter-cycle sleep is cancelled instead of running to its timeout.
    """
    import asyncio
    import signal

    loop = asyncio.get_running_loop()

    def _shutdown(signame: str) -> None:
        logger.info("%s received — stopping gracefully.", signame)
        engine.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _shutdown, sig.name)


async def _run_single_cycle(engine) -> None:
    """Initialise and run exactly one cycle (useful for cron or smoke tests)."""
    install_signal_handlers(engine)
    if not await engine.initialize():
        logger.error("Engine not ready — no cycle run.")
        return
    result = await engine.tick()
    logger.info("Cycle result: %s", result)


async def _run_engine_only(engine) -> None:
    """Run the trading engine without starting the API server."""
    install_signal_handlers(engine)
    logger.info("Starting TrailBot engine (no API).")
    await engine.start()
    logger.info("TrailBot engine stopped.")


async def _run_with_server(engine, port: int = 8080) -> None:
    """Start the API server and the trading engine concurrently."""
    import asyncio

    import uvicorn

    uvi_config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(uvi_config)

    # uvicorn installs its own signal handlers; stop the engine when it exits.
    async def _run_server():
        try:
            await server.serve()
        finally:
            engine.stop()

    async def _run_engine():
        try:
            return await engine.start()
        finally:
            server.should_exit = True

    logger.info("Health endpoint available at http://localhost:%d/health", port)
    results = await asyncio.gather(
        _run_server(),
        _run_engine(),
        return_exceptions=True,
    )
    logger.info("TrailBot stopped. Results: %s", results)


if __name__ == "__main__":
    _run_cli()
