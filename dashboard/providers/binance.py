from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from dashboard.errors import DataUnavailable, MalformedResponse
from dashboard.models.market import Candle, OrderBook, OrderBookLevel, Ticker, Trade
from dashboard.providers.base import MarketDataClient

log = logging.getLogger("binance_client")


def to_decimal(value: Any, field: str) -> Decimal:
    """Provider numbers arrive as JSON strings ("67012.10000000"); parse them exactly."""
    if isinstance(value, bool) or value is None:
        raise MalformedResponse(f"{field}: expected a number, got {value!r}")
    try:
        out = Decimal(str(value))
    except InvalidOperation:
        raise MalformedResponse(f"{field}: not a number {value!r}")
    if not out.is_finite():
        raise MalformedResponse(f"{field}: not a finite number {value!r}")
    return out


def to_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise MalformedResponse(f"{field}: expected an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise MalformedResponse(f"{field}: expected an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise MalformedResponse(f"{field}: expected an integer, got {value!r}")


class BinanceClient(MarketDataClient):
    """
    Binance public REST (no API key needed).

    GET /api/v3/klines       -> candles
    GET /api/v3/ticker/24hr  -> ticker
    GET /api/v3/depth        -> order book snapshot
    GET /api/v3/trades       -> recent trades
    """

    def __init__(
        self,
        symbol: str,
        base_url: str = "https://api.binance.com",
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.symbol = symbol.upper()
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_s,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # -------------------------
    # Public interface used by the app
    # -------------------------
    async def fetch_candles(self, interval: str, limit: int) -> list[Candle]:
        """
        Kline rows are positional:
          [open_time, open, high, low, close, volume, close_time, ...]
        Returned oldest first.
        """
        data = await self._get(
            "/api/v3/klines",
            {"symbol": self.symbol, "interval": interval, "limit": limit},
        )
        if not isinstance(data, list):
            raise MalformedResponse(f"klines: expected a list, got {type(data).__name__}")

        out: list[Candle] = []
        for i, row in enumerate(data):
            if not isinstance(row, list) or len(row) < 6:
                raise MalformedResponse(f"klines[{i}]: expected >= 6 fields, got {row!r}")
            candle = Candle(
                bucket_start=to_int(row[0], f"klines[{i}].open_time"),
                open=to_decimal(row[1], f"klines[{i}].open"),
                high=to_decimal(row[2], f"klines[{i}].high"),
                low=to_decimal(row[3], f"klines[{i}].low"),
                close=to_decimal(row[4], f"klines[{i}].close"),
                volume=to_decimal(row[5], f"klines[{i}].volume"),
            )
            if out and candle.bucket_start <= out[-1].bucket_start:
                raise MalformedResponse(
                    f"klines[{i}]: bucket {candle.bucket_start} not after {out[-1].bucket_start}"
                )
            out.append(candle)
        return out

    async def fetch_ticker(self) -> Ticker:
        data = await self._get("/api/v3/ticker/24hr", {"symbol": self.symbol})
        if not isinstance(data, dict):
            raise MalformedResponse(f"ticker: expected an object, got {type(data).__name__}")
        return Ticker(
            last_price=to_decimal(data.get("lastPrice"), "ticker.lastPrice"),
            percent_change_24h=to_decimal(data.get("priceChangePercent"), "ticker.priceChangePercent"),
        )

    async def fetch_order_book(self, depth: int) -> OrderBook:
        data = await self._get("/api/v3/depth", {"symbol": self.symbol, "limit": depth})
        if not isinstance(data, dict):
            raise MalformedResponse(f"depth: expected an object, got {type(data).__name__}")
        return OrderBook.from_levels(
            bids=self._parse_levels(data.get("bids"), "depth.bids"),
            asks=self._parse_levels(data.get("asks"), "depth.asks"),
        )

    async def fetch_recent_trades(self, limit: int) -> list[Trade]:
        data = await self._get("/api/v3/trades", {"symbol": self.symbol, "limit": limit})
        if not isinstance(data, list):
            raise MalformedResponse(f"trades: expected a list, got {type(data).__name__}")

        out: list[Trade] = []
        for i, row in enumerate(data):
            if not isinstance(row, dict):
                raise MalformedResponse(f"trades[{i}]: expected an object, got {row!r}")
            is_buyer_maker = row.get("isBuyerMaker")
            if not isinstance(is_buyer_maker, bool):
                raise MalformedResponse(f"trades[{i}].isBuyerMaker: expected a bool")
            out.append(
                Trade(
                    trade_id=to_int(row.get("id"), f"trades[{i}].id"),
                    timestamp=to_int(row.get("time"), f"trades[{i}].time"),
                    price=to_decimal(row.get("price"), f"trades[{i}].price"),
                    quantity=to_decimal(row.get("qty"), f"trades[{i}].qty"),
                    # buyer was the resting (maker) side -> the taker sold
                    taker_is_seller=is_buyer_maker,
                )
            )
        return out

    # -------------------------
    # Transport + parsing helpers
    # -------------------------
    async def _get(self, path: str, params: dict) -> Any:
        try:
            resp = await self._client.get(path, params=params)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.debug("GET %s params=%s body=%s", path, params, e.response.text[:200])
            raise DataUnavailable(
                f"GET {path} -> HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise DataUnavailable(f"GET {path} failed: {e!r}") from e

        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponse(f"GET {path}: body is not JSON") from e

    def _parse_levels(self, rows: Any, field: str) -> list[OrderBookLevel]:
        if not isinstance(rows, list):
            raise MalformedResponse(f"{field}: expected a list, got {rows!r}")
        levels: list[OrderBookLevel] = []
        for i, row in enumerate(rows):
            if not isinstance(row, list) or len(row) < 2:
                raise MalformedResponse(f"{field}[{i}]: expected [price, qty], got {row!r}")
            levels.append(
                OrderBookLevel(
                    price=to_decimal(row[0], f"{field}[{i}].price"),
                    quantity=to_decimal(row[1], f"{field}[{i}].qty"),
                )
            )
        return levels
