# dashboard/config.py
import os
from dataclasses import dataclass
from dotenv import load_dotenv

from dashboard.models.market import interval_ms

# Loads variables from a local .env file into environment variables (dev only).
load_dotenv()

RESYNC_POLICIES = ("always", "on_gap")


@dataclass(frozen=True)
class Settings:
    # App config
    app_env: str = "local"
    log_level: str = "INFO"
    provider: str = "BINANCE"

    # Provider config (Binance public REST)
    binance_base_url: str = "https://api.binance.com"
    http_timeout_seconds: float = 10.0

    # Instrument + series shape
    symbol: str = "BTCUSDT"
    candle_interval: str = "5m"
    candle_limit: int = 200
    ma_fast: int = 9
    ma_slow: int = 21
    book_depth: int = 20
    book_top_n: int = 10
    trade_limit: int = 30

    # Task cadences (seconds)
    ticker_seconds: float = 2.0
    book_seconds: float = 3.0
    trades_seconds: float = 3.0
    candle_tail_seconds: float = 5.0
    full_resync_seconds: float = 60.0

    resync_policy: str = "always"

    @property
    def ma_windows(self) -> tuple[int, int]:
        return (self.ma_fast, self.ma_slow)

    def cadences(self) -> dict[str, float]:
        """Task name -> cadence in seconds."""
        return {
            "ticker": self.ticker_seconds,
            "order_book": self.book_seconds,
            "trades": self.trades_seconds,
            "candle_tail": self.candle_tail_seconds,
            "full_resync": self.full_resync_seconds,
        }


def _int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise RuntimeError(f"{name} must be > 0, got {value}")
    return value


def _seconds(name: str, default: float) -> float:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number of seconds, got {raw!r}")
    if value <= 0:
        raise RuntimeError(f"{name} must be > 0, got {value}")
    return value


def get_settings() -> Settings:
    """
    Reads env vars and returns a Settings object.
    """
    candle_limit = _int("CANDLE_LIMIT", 200)
    ma_fast = _int("MA_FAST", 9)
    ma_slow = _int("MA_SLOW", 21)
    if ma_fast == ma_slow:
        raise RuntimeError(f"MA_FAST and MA_SLOW must differ, both are {ma_fast}")
    if max(ma_fast, ma_slow) > candle_limit:
        raise RuntimeError(
            f"MA windows ({ma_fast}, {ma_slow}) must fit in CANDLE_LIMIT={candle_limit}"
        )

    candle_interval = os.getenv("CANDLE_INTERVAL", "5m").strip()
    try:
        interval_ms(candle_interval)
    except ValueError as e:
        raise RuntimeError(f"CANDLE_INTERVAL: {e}")

    book_depth = _int("BOOK_DEPTH", 20)
    book_top_n = _int("BOOK_TOP_N", 10)
    if book_top_n > book_depth:
        raise RuntimeError(f"BOOK_TOP_N={book_top_n} cannot exceed BOOK_DEPTH={book_depth}")

    policy = os.getenv("RESYNC_POLICY", "always").strip().lower()
    if policy not in RESYNC_POLICIES:
        raise RuntimeError(f"Unknown RESYNC_POLICY='{policy}'. Expected one of {RESYNC_POLICIES}")

    return Settings(
        app_env=os.getenv("APP_ENV", "local"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        provider=os.getenv("PROVIDER", "BINANCE"),
        binance_base_url=os.getenv("BINANCE_BASE_URL", "https://api.binance.com").rstrip("/"),
        http_timeout_seconds=_seconds("HTTP_TIMEOUT_SECONDS", 10.0),
        symbol=os.getenv("SYMBOL", "BTCUSDT").strip().upper(),
        candle_interval=candle_interval,
        candle_limit=candle_limit,
        ma_fast=ma_fast,
        ma_slow=ma_slow,
        book_depth=book_depth,
        book_top_n=book_top_n,
        trade_limit=_int("TRADE_LIMIT", 30),
        ticker_seconds=_seconds("TICKER_SECONDS", 2.0),
        book_seconds=_seconds("BOOK_SECONDS", 3.0),
        trades_seconds=_seconds("TRADES_SECONDS", 3.0),
        candle_tail_seconds=_seconds("CANDLE_TAIL_SECONDS", 5.0),
        full_resync_seconds=_seconds("FULL_RESYNC_SECONDS", 60.0),
        resync_policy=policy,
    )
