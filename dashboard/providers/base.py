from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from dashboard.models.market import Candle, OrderBook, Ticker, Trade


class MarketDataClient(ABC):
    """
    Provider contract (interface).

    Any provider must implement four read-only calls, one round trip each,
    returning parsed domain objects:
    - fetch_candles(): latest `limit` candles, oldest first
    - fetch_ticker(): last price + 24h change
    - fetch_order_book(): one full depth snapshot
    - fetch_recent_trades(): most recent trades in the provider's order

    Failures raise DataUnavailable (MalformedResponse for schema problems).
    No retries: the caller decides when to ask again.
    """

    @abstractmethod
    async def fetch_candles(self, interval: str, limit: int) -> List[Candle]:
        raise NotImplementedError

    @abstractmethod
    async def fetch_ticker(self) -> Ticker:
        raise NotImplementedError

    @abstractmethod
    async def fetch_order_book(self, depth: int) -> OrderBook:
        raise NotImplementedError

    @abstractmethod
    async def fetch_recent_trades(self, limit: int) -> List[Trade]:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
