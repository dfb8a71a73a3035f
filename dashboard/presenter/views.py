from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from dashboard.models.market import (
    Candle,
    MovingAveragePoint,
    OrderBook,
    OrderBookLevel,
    Ticker,
    Trade,
    VolumeBar,
)
from dashboard.presenter.format import (
    DOWN_COLOR,
    UP_COLOR,
    book_row,
    price_box,
    trade_row,
    volume_color,
)
from dashboard.series.store import CandleUpdate, SeriesStore


class CandleView(BaseModel):
    """
    Chart-ready candle. `time` is the bucket start in epoch seconds,
    which is what charting widgets expect.
    """

    time: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal

    @classmethod
    def of(cls, c: Candle) -> "CandleView":
        return cls(time=c.bucket_start // 1000, open=c.open, high=c.high, low=c.low, close=c.close)


class VolumeView(BaseModel):
    time: int
    value: Decimal
    up: bool
    color: str

    @classmethod
    def of(cls, v: VolumeBar) -> "VolumeView":
        return cls(time=v.bucket_start // 1000, value=v.volume, up=v.direction_up, color=volume_color(v))


class LinePointView(BaseModel):
    time: int
    value: Decimal

    @classmethod
    def of(cls, p: MovingAveragePoint) -> "LinePointView":
        return cls(time=p.bucket_start // 1000, value=p.value)


class BookLevelView(BaseModel):
    price: Decimal
    quantity: Decimal
    price_text: str
    qty_text: str
    color: str

    @classmethod
    def of(cls, lvl: OrderBookLevel, color: str) -> "BookLevelView":
        row = book_row(lvl, color)
        return cls(
            price=lvl.price,
            quantity=lvl.quantity,
            price_text=row["price"],
            qty_text=row["qty"],
            color=row["color"],
        )


class OrderBookView(BaseModel):
    """Bids best-first in green, asks best-first in red."""

    bids: List[BookLevelView]
    asks: List[BookLevelView]

    @classmethod
    def of(cls, book: OrderBook, top_n: int) -> "OrderBookView":
        return cls(
            bids=[BookLevelView.of(lvl, UP_COLOR) for lvl in book.top_bids(top_n)],
            asks=[BookLevelView.of(lvl, DOWN_COLOR) for lvl in book.top_asks(top_n)],
        )


class TradeView(BaseModel):
    id: int
    time: int
    price: Decimal
    quantity: Decimal
    side: str
    direction: str
    color: str
    time_text: str
    price_text: str
    qty_text: str

    @classmethod
    def of(cls, t: Trade) -> "TradeView":
        row = trade_row(t)
        return cls(
            id=t.trade_id,
            time=t.timestamp,
            price=t.price,
            quantity=t.quantity,
            side=t.side,
            direction=row["direction"],
            color=row["color"],
            time_text=row["time"],
            price_text=row["price"],
            qty_text=row["qty"],
        )


class TickerView(BaseModel):
    last_price: Decimal
    percent_change_24h: Decimal
    up: bool
    price_text: str
    change_text: str
    color: str

    @classmethod
    def of(cls, t: Ticker) -> "TickerView":
        box = price_box(t)
        return cls(
            last_price=t.last_price,
            percent_change_24h=t.percent_change_24h,
            up=t.is_up,
            price_text=box["price"],
            change_text=box["change"],
            color=box["color"],
        )


class ViewUpdate(BaseModel):
    """
    One redraw signal for the presenter.

    mode:
      - "tail": data holds the single changed candle / volume bar / MA points
      - "full": data holds the whole replacement view
    """

    view: str
    mode: str
    data: Any


def series_views(store: SeriesStore) -> Dict[str, Any]:
    return {
        "candles": [CandleView.of(c) for c in store.candles()],
        "volumes": [VolumeView.of(v) for v in store.volumes()],
        "moving_averages": {
            f"ma{w}": [LinePointView.of(p) for p in points]
            for w, points in store.moving_averages().items()
        },
    }


def series_update(store: SeriesStore, update: Optional[CandleUpdate] = None) -> ViewUpdate:
    """Tail update when a single candle changed, full replacement otherwise."""
    if update is None:
        return ViewUpdate(view="series", mode="full", data=series_views(store))
    return ViewUpdate(
        view="series",
        mode="tail",
        data={
            "kind": update.kind,
            "candle": CandleView.of(update.candle),
            "volume": VolumeView.of(update.volume),
            "moving_averages": {
                f"ma{w}": LinePointView.of(p)
                for w, p in update.moving_averages.items()
                if p is not None
            },
        },
    )


def order_book_update(store: SeriesStore, top_n: int) -> ViewUpdate:
    return ViewUpdate(view="order_book", mode="full", data=OrderBookView.of(store.order_book(), top_n))


def trades_update(store: SeriesStore) -> ViewUpdate:
    return ViewUpdate(view="trades", mode="full", data=[TradeView.of(t) for t in store.trades()])


def ticker_update(store: SeriesStore) -> Optional[ViewUpdate]:
    ticker = store.ticker()
    if ticker is None:
        return None
    return ViewUpdate(view="ticker", mode="full", data=TickerView.of(ticker))
