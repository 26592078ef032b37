"""TrailBot — application configuration.

Loads .env variables into a typed, immutable config object.
Validates credentials and risk settings on startup.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from trailbot.errors import ConfigurationError
from trailbot.strategy.models import StrategyParams


_REQUIRED_VARS = [
    "BINANCE_API_KEY",
    "BINANCE_API_SECRET",
]

_DEFAULT_WATCHLIST_ASSETS = ("BTC", "ETH", "SOL")


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    api_key: str
    api_secret: str
    environment: str = "testnet"  # "testnet" or "live"
    leverage: int = 5
    risk_per_trade: float = 0.05
    cycle_interval_minutes: int = 5
    base_currency: str = "USDC"
    max_concurrent_positions: int = 3
    watchlist: tuple[str, ...] = ("BTCUSDC", "ETHUSDC", "SOLUSDC")
    timeframe: str = "15m"
    candle_limit: int = 100
    min_balance: float = 100.0
    strategy: StrategyParams = field(default_factory=StrategyParams)
    trailing_activation_pct: float = 0.12
    trailing_retracement_pct: float = 0.03
    stop_loss_pct: Optional[float] = None
    take_profit_pct: Optional[float] = None
    fixed_exit_action: str = "log"  # "log" or "close"
    health_port: int = 8080
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.environment not in ("testnet", "live"):
            raise ConfigurationError(
                f"environment must be 'testnet' or 'live', got {self.environment!r}"
            )
        if self.leverage <= 0:
            raise ConfigurationError(f"leverage must be positive, got {self.leverage}")
        if not 0 < self.risk_per_trade <= 1:
            raise ConfigurationError(
                f"risk_per_trade must be in (0, 1], got {self.risk_per_trade}"
            )
        if self.cycle_interval_minutes <= 0:
            raise ConfigurationError(
                f"cycle_interval_minutes must be positive, got {self.cycle_interval_minutes}"
            )
        if self.max_concurrent_positions <= 0:
            raise ConfigurationError(
                "max_concurrent_positions must be positive, "
                f"got {self.max_concurrent_positions}"
            )
        if not self.watchlist:
            raise ConfigurationError("watchlist must contain at least one symbol")
        if self.candle_limit < self.strategy.min_closes:
            raise ConfigurationError(
                f"candle_limit ({self.candle_limit}) is below the "
                f"{self.strategy.min_closes} closes the strategy needs"
            )
        if self.trailing_activation_pct <= 0:
            raise ConfigurationError(
                f"trailing_activation_pct must be positive, got {self.trailing_activation_pct}"
            )
        if not 0 < self.trailing_retracement_pct < 1:
            raise ConfigurationError(
                "trailing_retracement_pct must be in (0, 1), "
                f"got {self.trailing_retracement_pct}"
            )
        if self.fixed_exit_action not in ("log", "close"):
            raise ConfigurationError(
                f"fixed_exit_action must be 'log' or 'close', got {self.fixed_exit_action!r}"
            )

    @property
    def base_url(self) -> str:
        """Return the Binance USDⓈ-M futures REST base URL."""
        if self.environment == "live":
            return "https://fapi.binance.com"
        return "https://testnet.binancefuture.com"

    @property
    def cycle_interval_seconds(self) -> int:
        return self.cycle_interval_minutes * 60


def _parse(name: str, default: str, cast):
    raw = os.environ.get(name, default)
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from exc


def _optional_float(name: str) -> Optional[float]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    return _parse(name, raw, float)


_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("", "0", "false", "no", "off")


def _parse_bool(name: str, default: str) -> bool:
    raw = os.environ.get(name, default)
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid value for {name}: {raw!r}")


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ConfigurationError`` with a message naming the missing variable
    when a credential is absent, or describing the invalid value otherwise.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [v for v in _REQUIRED_VARS if not os.environ.get(v)]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variable(s): {', '.join(missing)}"
        )

    base = os.environ.get("BASE_CURRENCY", "USDC").upper()
    raw_watchlist = os.environ.get("WATCHLIST", "")
    if raw_watchlist.strip():
        watchlist = tuple(
            dict.fromkeys(s.strip().upper() for s in raw_watchlist.split(",") if s.strip())
        )
    else:
        watchlist = tuple(f"{asset}{base}" for asset in _DEFAULT_WATCHLIST_ASSETS)

    strategy = StrategyParams(
        ema_fast=_parse("EMA_FAST", "9", int),
        ema_slow=_parse("EMA_SLOW", "21", int),
        rsi_period=_parse("RSI_PERIOD", "14", int),
        rsi_threshold=_parse("RSI_THRESHOLD", "50", float),
        require_macd=_parse_bool("REQUIRE_MACD", "false"),
    )

    return Config(
        api_key=os.environ["BINANCE_API_KEY"],
        api_secret=os.environ["BINANCE_API_SECRET"],
        environment=os.environ.get("BINANCE_ENVIRONMENT", "testnet"),
        leverage=_parse("LEVERAGE", "5", int),
        risk_per_trade=_parse("RISK_PER_TRADE", "0.05", float),
        cycle_interval_minutes=_parse("CHECK_INTERVAL", "5", int),
        base_currency=base,
        max_concurrent_positions=_parse("MAX_CONCURRENT_POSITIONS", "3", int),
        watchlist=watchlist,
        timeframe=os.environ.get("TIMEFRAME", "15m"),
        candle_limit=_parse("CANDLE_LIMIT", "100", int),
        min_balance=_parse("MIN_BALANCE", "100", float),
        strategy=strategy,
        trailing_activation_pct=_parse("TRAILING_ACTIVATION_PCT", "0.12", float),
        trailing_retracement_pct=_parse("TRAILING_RETRACEMENT_PCT", "0.03", float),
        stop_loss_pct=_optional_float("STOP_LOSS_PCT"),
        take_profit_pct=_optional_float("TAKE_PROFIT_PCT"),
        fixed_exit_action=os.environ.get("FIXED_EXIT_ACTION", "log"),
        health_port=_parse("HEALTH_PORT", "8080", int),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )
