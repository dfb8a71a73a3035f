from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

_INTERVAL_UNITS_MS = {
    "s": 1_000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
    "w": 604_800_000,
}


def interval_ms(interval: str) -> Optional[int]:
    """
    Bucket length in milliseconds for an interval code like "1m", "5m", "4h", "1d".

    Returns None for calendar intervals ("1M") whose length varies.
    """
    s = (interval or "").strip()
    if len(s) < 2 or not s[:-1].isdigit():
        raise ValueError(f"Unsupported candle interval '{interval}'")
    unit = s[-1]
    if unit == "M":
        return None
    if unit not in _INTERVAL_UNITS_MS:
        raise ValueError(f"Unsupported candle interval '{interval}'")
    return int(s[:-1]) * _INTERVAL_UNITS_MS[unit]


@dataclass(frozen=True)
class Candle:
    """
    Candle (OHLCV) for one interval bucket.

    bucket_start: bucket open time, epoch milliseconds, aligned to the interval
    open/high/low/close: prices during the bucket
    volume: base-asset volume traded during the bucket
    """
    bucket_start: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal


@dataclass(frozen=True)
class VolumeBar:
    bucket_start: int
    volume: Decimal
    direction_up: bool

    @classmethod
    def from_candle(cls, candle: Candle) -> "VolumeBar":
        return cls(
            bucket_start=candle.bucket_start,
            volume=candle.volume,
            direction_up=candle.close >= candle.open,
        )


@dataclass(frozen=True)
class MovingAveragePoint:
    bucket_start: int
    value: Decimal


@dataclass(frozen=True)
class OrderBookLevel:
    price: Decimal
    quantity: Decimal


@dataclass(frozen=True)
class OrderBook:
    """
    One order-book snapshot. Levels are kept in source order;
    the top_* views sort them (bids high->low, asks low->high).
    """
    bids: tuple[OrderBookLevel, ...] = ()
    asks: tuple[OrderBookLevel, ...] = ()

    @classmethod
    def from_levels(
        cls,
        bids: Sequence[OrderBookLevel],
        asks: Sequence[OrderBookLevel],
    ) -> "OrderBook":
        return cls(bids=tuple(bids), asks=tuple(asks))

    def top_bids(self, n: int) -> tuple[OrderBookLevel, ...]:
        return tuple(sorted(self.bids, key=lambda lvl: lvl.price, reverse=True)[:n])

    def top_asks(self, n: int) -> tuple[OrderBookLevel, ...]:
        return tuple(sorted(self.asks, key=lambda lvl: lvl.price)[:n])


@dataclass(frozen=True)
class Trade:
    """
    Trade = one executed trade from the tape.

    taker_is_seller: True when the aggressor sold into a resting bid
    (Binance reports this as isBuyerMaker).
    """
    trade_id: int
    timestamp: int
    price: Decimal
    quantity: Decimal
    taker_is_seller: bool

    @property
    def side(self) -> str:
        return "sell" if self.taker_is_seller else "buy"


@dataclass(frozen=True)
class Ticker:
    last_price: Decimal
    percent_change_24h: Decimal

    @property
    def is_up(self) -> bool:
        return self.percent_change_24h >= 0
