from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from dashboard.models.market import OrderBook, OrderBookLevel, Ticker, Trade, VolumeBar

UP_COLOR = "#4bffb5"
DOWN_COLOR = "#ff4976"


def direction_color(up: bool) -> str:
    return UP_COLOR if up else DOWN_COLOR


def format_price(value: Decimal) -> str:
    """67012.1 -> '67,012.10'"""
    return f"{value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,.2f}"


def format_qty(value: Decimal) -> str:
    """Up to 6 decimals, trailing zeros dropped: 0.01200000 -> '0.012'"""
    q = value.quantize(Decimal("0.000001"), rounding=ROUND_HALF_UP)
    text = f"{q:,.6f}".rstrip("0").rstrip(".")
    return text or "0"


def format_time(ts_ms: int, tz: Optional[tzinfo] = timezone.utc) -> str:
    return datetime.fromtimestamp(ts_ms / 1000.0, tz=tz).strftime("%H:%M:%S")


def format_percent(value: Decimal) -> str:
    return f"{value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)}%"


def trade_direction(trade: Trade) -> str:
    # Taker sold into the bid -> down tick.
    return "down" if trade.taker_is_seller else "up"


def trade_row(trade: Trade, tz: Optional[tzinfo] = timezone.utc) -> Dict[str, str]:
    direction = trade_direction(trade)
    return {
        "time": format_time(trade.timestamp, tz),
        "price": format_price(trade.price),
        "qty": format_qty(trade.quantity),
        "direction": direction,
        "color": direction_color(direction == "up"),
    }


def trade_rows(trades: List[Trade], tz: Optional[tzinfo] = timezone.utc) -> List[Dict[str, str]]:
    """Trade tape rows, in the snapshot's own order."""
    return [trade_row(t, tz) for t in trades]


def book_row(level: OrderBookLevel, color: str) -> Dict[str, str]:
    return {"price": format_price(level.price), "qty": format_qty(level.quantity), "color": color}


def order_book_rows(book: OrderBook, top_n: int) -> Dict[str, List[Dict[str, str]]]:
    """Bids are green, asks are red."""
    return {
        "bids": [book_row(lvl, UP_COLOR) for lvl in book.top_bids(top_n)],
        "asks": [book_row(lvl, DOWN_COLOR) for lvl in book.top_asks(top_n)],
    }


def price_box(ticker: Ticker, quote: str = "USD") -> Dict[str, str]:
    return {
        "price": f"{format_price(ticker.last_price)} {quote}",
        "change": format_percent(ticker.percent_change_24h),
        "color": direction_color(ticker.is_up),
    }


def volume_color(bar: VolumeBar) -> str:
    return direction_color(bar.direction_up)
