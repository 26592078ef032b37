"""Tests for the internal API — /health, /status, /trailing, /signals."""

import pytest
from fastapi.testclient import TestClient

from trailbot.api.routers import (
    configure_routers,
    reset_state,
    update_bot_status,
    update_strategy_insight,
    update_trailing_states,
)
from trailbot.config import Config
from trailbot.main import app, warn_if_live

client = TestClient(app)


@pytest.fixture(autouse=True)
def _reset():
    reset_state()
    yield
    reset_state()


def _make_config(**overrides) -> Config:
    defaults = dict(api_key="k", api_secret="s", leverage=7, base_currency="USDT",
                    watchlist=("BTCUSDT", "ETHUSDT"))
    defaults.update(overrides)
    return Config(**defaults)


class TestHealthEndpoint:
    def test_health_returns_200(self):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["running"] is False
        assert "timestamp" in data

    def test_health_reports_run_config(self):
        configure_routers(config=_make_config(), mode="testnet")
        data = client.get("/health").json()
        assert data["leverage"] == 7
        assert data["base_currency"] == "USDT"

    def test_health_tracks_running_flag(self):
        update_bot_status(running=True)
        assert client.get("/health").json()["running"] is True
        update_bot_status(running=False)
        assert client.get("/health").json()["running"] is False


class TestStatusEndpoint:
    def test_status_defaults(self):
        data = client.get("/status").json()
        assert data["mode"] == "idle"
        assert data["cycle_count"] == 0
        assert data["open_positions"] == []

    def test_status_reflects_engine_updates(self):
        configure_routers(config=_make_config(), mode="live")
        update_bot_status(
            cycle_count=4,
            last_result={"action": "cycle_complete", "opened": [], "closed": []},
            free_balance=812.5,
        )
        data = client.get("/status").json()
        assert data["mode"] == "live"
        assert data["cycle_count"] == 4
        assert data["last_result"]["action"] == "cycle_complete"
        assert data["free_balance"] == 812.5
        assert data["config"]["watchlist"] == ["BTCUSDT", "ETHUSDT"]
        assert data["config"]["risk_per_trade"] == 0.05


class TestTrailingAndSignals:
    def test_trailing_empty(self):
        assert client.get("/trailing").json() == {"trailing": {}}

    def test_trailing_snapshot(self):
        update_trailing_states({
            "BTCUSDC": {"symbol": "BTCUSDC", "side": "long", "peak_price": 115.0, "active": True},
        })
        data = client.get("/trailing").json()["trailing"]
        assert data["BTCUSDC"]["active"] is True
        assert data["BTCUSDC"]["peak_price"] == 115.0

    def test_trailing_snapshot_replaced(self):
        update_trailing_states({"BTCUSDC": {"active": False}})
        update_trailing_states({})
        assert client.get("/trailing").json()["trailing"] == {}

    def test_signals(self):
        update_strategy_insight({"ETHUSDC": {"result": "SHORT", "rsi": 31.2}})
        data = client.get("/signals").json()["signals"]
        assert data["ETHUSDC"]["result"] == "SHORT"


class TestRoot:
    def test_banner(self):
        assert client.get("/").json()["health"] == "/health"

    def test_warn_if_live(self):
        assert warn_if_live("live") is True
        assert warn_if_live("testnet") is False
