"""Tests for trailbot.config — environment variable loading and validation."""

import os

import pytest

from trailbot.config import Config, load_config
from trailbot.errors import ConfigurationError
from trailbot.strategy.models import StrategyParams

_ALL_VARS = [
    "BINANCE_API_KEY",
    "BINANCE_API_SECRET",
    "BINANCE_ENVIRONMENT",
    "LEVERAGE",
    "RISK_PER_TRADE",
    "CHECK_INTERVAL",
    "BASE_CURRENCY",
    "MAX_CONCURRENT_POSITIONS",
    "WATCHLIST",
    "TIMEFRAME",
    "CANDLE_LIMIT",
    "MIN_BALANCE",
    "EMA_FAST",
    "EMA_SLOW",
    "RSI_PERIOD",
    "RSI_THRESHOLD",
    "REQUIRE_MACD",
    "TRAILING_ACTIVATION_PCT",
    "TRAILING_RETRACEMENT_PCT",
    "STOP_LOSS_PCT",
    "TAKE_PROFIT_PCT",
    "FIXED_EXIT_ACTION",
    "HEALTH_PORT",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Ensure bot env vars are cleared between tests."""
    for var in _ALL_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def env_path(tmp_path):
    # Non-existent path so load_dotenv doesn't re-populate from a real .env
    return str(tmp_path / "missing.env")


def _set_required(monkeypatch):
    """Set the minimum required environment variables."""
    monkeypatch.setenv("BINANCE_API_KEY", "test-key")
    monkeypatch.setenv("BINANCE_API_SECRET", "test-secret")


class TestLoadConfig:
    def test_loads_required_vars(self, monkeypatch, env_path):
        _set_required(monkeypatch)
        cfg = load_config(env_path)
        assert cfg.api_key == "test-key"
        assert cfg.api_secret == "test-secret"

    def test_defaults(self, monkeypatch, env_path):
        _set_required(monkeypatch)
        cfg = load_config(env_path)
        assert cfg.environment == "testnet"
        assert cfg.leverage == 5
        assert cfg.risk_per_trade == 0.05
        assert cfg.cycle_interval_minutes == 5
        assert cfg.cycle_interval_seconds == 300
        assert cfg.base_currency == "USDC"
        assert cfg.max_concurrent_positions == 3
        assert cfg.watchlist == ("BTCUSDC", "ETHUSDC", "SOLUSDC")
        assert cfg.timeframe == "15m"
        assert cfg.candle_limit == 100
        assert cfg.min_balance == 100.0
        assert cfg.strategy == StrategyParams()
        assert cfg.trailing_activation_pct == 0.12
        assert cfg.trailing_retracement_pct == 0.03
        assert cfg.stop_loss_pct is None
        assert cfg.take_profit_pct is None
        assert cfg.fixed_exit_action == "log"
        assert cfg.health_port == 8080
        assert cfg.log_level == "INFO"

    def test_overrides(self, monkeypatch, env_path):
        _set_required(monkeypatch)
        monkeypatch.setenv("BINANCE_ENVIRONMENT", "live")
        monkeypatch.setenv("LEVERAGE", "10")
        monkeypatch.setenv("RISK_PER_TRADE", "0.02")
        monkeypatch.setenv("CHECK_INTERVAL", "15")
        monkeypatch.setenv("EMA_FAST", "5")
        monkeypatch.setenv("EMA_SLOW", "30")
        monkeypatch.setenv("REQUIRE_MACD", "yes")
        monkeypatch.setenv("STOP_LOSS_PCT", "0.08")
        monkeypatch.setenv("FIXED_EXIT_ACTION", "close")

        cfg = load_config(env_path)

        assert cfg.environment == "live"
        assert cfg.base_url == "https://fapi.binance.com"
        assert cfg.leverage == 10
        assert cfg.risk_per_trade == 0.02
        assert cfg.cycle_interval_seconds == 900
        assert cfg.strategy.ema_fast == 5
        assert cfg.strategy.ema_slow == 30
        assert cfg.strategy.require_macd is True
        assert cfg.stop_loss_pct == 0.08
        assert cfg.take_profit_pct is None
        assert cfg.fixed_exit_action == "close"

    def test_watchlist_parsing(self, monkeypatch, env_path):
        _set_required(monkeypatch)
        monkeypatch.setenv("WATCHLIST", " btcusdt, ETHUSDT,,btcusdt ,dogeusdt")
        cfg = load_config(env_path)
        assert cfg.watchlist == ("BTCUSDT", "ETHUSDT", "DOGEUSDT")

    def test_default_watchlist_follows_base_currency(self, monkeypatch, env_path):
        _set_required(monkeypatch)
        monkeypatch.setenv("BASE_CURRENCY", "usdt")
        cfg = load_config(env_path)
        assert cfg.base_currency == "USDT"
        assert cfg.watchlist == ("BTCUSDT", "ETHUSDT", "SOLUSDT")

    def test_config_missing_var(self, monkeypatch, env_path):
        monkeypatch.setenv("BINANCE_API_KEY", "test-key")
        with pytest.raises(ValueError, match="BINANCE_API_SECRET"):
            load_config(env_path)

    def test_missing_both_credentials(self, env_path):
        with pytest.raises(ConfigurationError, match="BINANCE_API_KEY, BINANCE_API_SECRET"):
            load_config(env_path)

    def test_unrecognised_boolean(self, monkeypatch, env_path):
        _set_required(monkeypatch)
        monkeypatch.setenv("REQUIRE_MACD", "ture")
        with pytest.raises(ConfigurationError, match="Invalid value for REQUIRE_MACD"):
            load_config(env_path)

    @pytest.mark.parametrize("raw", ["0", "false", "No", " off ", ""])
    def test_false_booleans(self, monkeypatch, env_path, raw):
        _set_required(monkeypatch)
        monkeypatch.setenv("REQUIRE_MACD", raw)
        assert load_config(env_path).strategy.require_macd is False

    def test_non_numeric_value(self, monkeypatch, env_path):
        _set_required(monkeypatch)
        monkeypatch.setenv("LEVERAGE", "five")
        with pytest.raises(ConfigurationError, match="Invalid value for LEVERAGE"):
            load_config(env_path)

    def test_invalid_environment(self, monkeypatch, env_path):
        _set_required(monkeypatch)
        monkeypatch.setenv("BINANCE_ENVIRONMENT", "paper")
        with pytest.raises(ConfigurationError, match="environment"):
            load_config(env_path)

    def test_reads_dotenv_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "BINANCE_API_KEY=file-key\nBINANCE_API_SECRET=file-secret\nLEVERAGE=3\n"
        )
        try:
            cfg = load_config(str(env_file))
        finally:
            for var in ("BINANCE_API_KEY", "BINANCE_API_SECRET", "LEVERAGE"):
                os.environ.pop(var, None)
        assert cfg.api_key == "file-key"
        assert cfg.leverage == 3


class TestConfigValidation:
    def _config(self, **overrides) -> Config:
        return Config(api_key="k", api_secret="s", **overrides)

    def test_valid_defaults(self):
        cfg = self._config()
        assert cfg.base_url == "https://testnet.binancefuture.com"

    def test_frozen(self):
        cfg = self._config()
        with pytest.raises(AttributeError):
            cfg.leverage = 20

    @pytest.mark.parametrize(
        "overrides, match",
        [
            ({"leverage": 0}, "leverage"),
            ({"risk_per_trade": 0.0}, "risk_per_trade"),
            ({"risk_per_trade": 1.5}, "risk_per_trade"),
            ({"cycle_interval_minutes": 0}, "cycle_interval_minutes"),
            ({"max_concurrent_positions": 0}, "max_concurrent_positions"),
            ({"watchlist": ()}, "watchlist"),
            ({"candle_limit": 10}, "candle_limit"),
            ({"trailing_activation_pct": 0.0}, "trailing_activation_pct"),
            ({"trailing_retracement_pct": 1.0}, "trailing_retracement_pct"),
            ({"fixed_exit_action": "panic"}, "fixed_exit_action"),
        ],
    )
    def test_rejects_invalid_settings(self, overrides, match):
        with pytest.raises(ConfigurationError, match=match):
            self._config(**overrides)

    def test_candle_limit_tracks_strategy_window(self):
        params = StrategyParams(ema_slow=50)
        with pytest.raises(ConfigurationError, match="50 closes"):
            self._config(strategy=params, candle_limit=40)
        assert self._config(strategy=params, candle_limit=50).candle_limit == 50
