"""Internal API routers — /health, /status, /trailing endpoints.

Purely observational. The engine pushes its state here after each cycle;
nothing in this module influences trading decisions.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter

logger = logging.getLogger("trailbot.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_DEFAULT_STATUS: dict = {
    "mode": "idle",
    "running": False,
    "started_at": None,
    "cycle_count": 0,
    "last_cycle_at": None,
    "last_result": None,
    "free_balance": None,
    "open_positions": [],
    "last_order_time": None,
}

_status: dict = {**_DEFAULT_STATUS}
_trailing: dict[str, dict] = {}
_insights: dict[str, dict] = {}
_run_config: dict = {"leverage": None, "base_currency": None}


def configure_routers(config=None, mode: Optional[str] = None) -> None:
    """Inject run configuration from the application startup.

    Args:
        config: The process ``Config`` (only leverage, base currency, and
            watchlist are exposed).
        mode: ``"testnet"`` or ``"live"``.
    """
    if config is not None:
        _run_config.update({
            "leverage": config.leverage,
            "base_currency": config.base_currency,
            "risk_per_trade": config.risk_per_trade,
            "watchlist": list(config.watchlist),
            "cycle_interval_minutes": config.cycle_interval_minutes,
        })
    if mode is not None:
        _status["mode"] = mode


def reset_state() -> None:
    """Restore the default status (used between engine restarts and tests)."""
    _status.clear()
    _status.update(_DEFAULT_STATUS)
    _trailing.clear()
    _insights.clear()
    _run_config.clear()
    _run_config.update({"leverage": None, "base_currency": None})


def update_bot_status(**fields) -> None:
    """Update individual fields of the status dict."""
    _status.update(fields)


def update_trailing_states(states: dict[str, dict]) -> None:
    """Replace the trailing-state snapshot."""
    _trailing.clear()
    _trailing.update(states)


def update_strategy_insight(insights: dict[str, dict]) -> None:
    """Store the latest per-symbol strategy analysis."""
    _insights.update(insights)


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get("/health")
async def health():
    """Liveness probe with run configuration."""
    return {
        "status": "ok",
        "running": _status["running"],
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "leverage": _run_config.get("leverage"),
        "base_currency": _run_config.get("base_currency"),
    }


@router.get("/status")
async def get_status():
    """Return engine counters, the last cycle result, and run configuration."""
    return {**_status, "config": dict(_run_config)}


@router.get("/trailing")
async def get_trailing():
    """Return trailing-stop state per symbol."""
    return {"trailing": dict(_trailing)}


@router.get("/signals")
async def get_signals():
    """Return the latest strategy analysis per watchlist symbol."""
    return {"signals": dict(_insights)}
