from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from dashboard.errors import OutOfOrderSample
from dashboard.indicators.engine import MovingAverageLine
from dashboard.models.market import (
    Candle,
    MovingAveragePoint,
    OrderBook,
    Ticker,
    Trade,
    VolumeBar,
)

APPENDED = "appended"
REPLACED = "replaced"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CandleUpdate:
    """What apply_latest_candle changed, for tail redraws."""
    kind: str
    candle: Candle
    volume: VolumeBar
    moving_averages: Dict[int, Optional[MovingAveragePoint]]


class SeriesStore:
    """
    Authoritative in-memory state for one instrument.

    candles / volumes / MA lines -> mutated in place by tail updates,
                                    replaced wholesale by initialize()
    order_book / trades / ticker  -> immutable snapshots, swapped in one assignment
    last_updated[view]            -> when we last touched data for that view
    """

    def __init__(self, windows: Iterable[int] = (9, 21), max_candles: int = 500) -> None:
        windows = tuple(windows)
        if not windows:
            raise ValueError("at least one moving-average window is required")
        if max_candles < max(windows):
            raise ValueError(
                f"max_candles={max_candles} cannot hold a {max(windows)}-candle window"
            )
        self.max_candles = max_candles
        self._candles: List[Candle] = []
        self._volumes: List[VolumeBar] = []
        self._lines: Dict[int, MovingAverageLine] = {w: MovingAverageLine(w) for w in windows}
        self._order_book = OrderBook()
        self._trades: Tuple[Trade, ...] = ()
        self._ticker: Optional[Ticker] = None
        self.last_updated: Dict[str, datetime] = {}

    # -------------------------
    # Freshness
    # -------------------------
    def touch(self, view: str) -> None:
        """Mark this view as updated right now."""
        self.last_updated[view] = utcnow()

    def get_last_updated(self, view: str) -> Optional[datetime]:
        return self.last_updated.get(view)

    def is_fresh(self, view: str, max_age_seconds: float) -> bool:
        last = self.get_last_updated(view)
        if last is None:
            return False
        return (utcnow() - last) <= timedelta(seconds=max_age_seconds)

    # -------------------------
    # Candle series
    # -------------------------
    def initialize(self, candles: Sequence[Candle]) -> None:
        """
        Replace the whole series in one shot and recompute every MA line.
        Used at start-up and on full resync.
        """
        by_bucket: Dict[int, Candle] = {}
        for c in candles:
            by_bucket[c.bucket_start] = c
        ordered = [by_bucket[k] for k in sorted(by_bucket)][-self.max_candles:]

        lines = {w: MovingAverageLine(w) for w in self._lines}
        for line in lines.values():
            line.reset(ordered)

        self._candles = ordered
        self._volumes = [VolumeBar.from_candle(c) for c in ordered]
        self._lines = lines
        self.touch("candles")

    def apply_latest_candle(self, candle: Candle) -> CandleUpdate:
        """
        Same bucket as the last candle -> replace it in place.
        Newer bucket -> append.
        Older bucket -> OutOfOrderSample, nothing changes.
        """
        volume = VolumeBar.from_candle(candle)
        replaced_close = None

        if self._candles:
            last = self._candles[-1]
            if candle.bucket_start < last.bucket_start:
                raise OutOfOrderSample(candle.bucket_start, last.bucket_start)
            if candle.bucket_start == last.bucket_start:
                replaced_close = last.close

        if replaced_close is not None:
            self._candles[-1] = candle
            self._volumes[-1] = volume
            kind = REPLACED
        else:
            self._candles.append(candle)
            self._volumes.append(volume)
            kind = APPENDED

        points = {w: line.advance(self._candles, replaced_close) for w, line in self._lines.items()}

        if len(self._candles) > self.max_candles:
            del self._candles[: -self.max_candles]
            del self._volumes[: -self.max_candles]
            for line in self._lines.values():
                line.trim(len(self._candles))

        self.touch("candles")
        return CandleUpdate(kind=kind, candle=candle, volume=volume, moving_averages=points)

    def candles(self) -> Tuple[Candle, ...]:
        return tuple(self._candles)

    def volumes(self) -> Tuple[VolumeBar, ...]:
        return tuple(self._volumes)

    def moving_average(self, window: int) -> Tuple[MovingAveragePoint, ...]:
        return tuple(self._lines[window].points)

    def moving_averages(self) -> Dict[int, Tuple[MovingAveragePoint, ...]]:
        return {w: tuple(line.points) for w, line in self._lines.items()}

    def last_bucket(self) -> Optional[int]:
        return self._candles[-1].bucket_start if self._candles else None

    def has_candles(self) -> bool:
        return bool(self._candles)

    # -------------------------
    # Snapshots
    # -------------------------
    def replace_order_book(self, book: OrderBook) -> None:
        self._order_book = book
        self.touch("order_book")

    def order_book(self) -> OrderBook:
        return self._order_book

    def replace_trades(self, trades: Sequence[Trade]) -> None:
        self._trades = tuple(trades)
        self.touch("trades")

    def trades(self) -> Tuple[Trade, ...]:
        return self._trades

    def replace_ticker(self, ticker: Ticker) -> None:
        self._ticker = ticker
        self.touch("ticker")

    def ticker(self) -> Optional[Ticker]:
        return self._ticker
