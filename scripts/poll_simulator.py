from __future__ import annotations

import asyncio
import random
import time
from decimal import Decimal

from dashboard.config import Settings
from dashboard.errors import DataUnavailable
from dashboard.models.market import Candle, OrderBook, OrderBookLevel, Ticker, Trade, interval_ms
from dashboard.providers.base import MarketDataClient
from dashboard.state import build_state

CENT = Decimal("0.01")


class RandomWalkClient(MarketDataClient):
    """
    Offline stand-in for the exchange.

    - price does a random walk; every call moves it a bit
    - the candle bucket rolls over every `bucket_ms` of wall time
    - roughly one call in `fail_every` fails, to exercise the skip path
    """

    def __init__(self, interval: str = "1s", fail_every: int = 7) -> None:
        self.bucket_ms = interval_ms(interval)
        self.fail_every = fail_every
        self.price = Decimal("100.00")
        self.calls = 0
        self.history: dict[int, Candle] = {}

    def _step(self) -> None:
        self.calls += 1
        if self.fail_every and self.calls % self.fail_every == 0:
            raise DataUnavailable("simulated timeout")
        move = Decimal(str(round(random.uniform(-0.2, 0.2), 2)))
        self.price = (self.price + move).quantize(CENT)
        bucket = int(time.time() * 1000) // self.bucket_ms * self.bucket_ms
        prev = self.history.get(bucket)
        if prev is None:
            self.history[bucket] = Candle(bucket, self.price, self.price, self.price, self.price, Decimal(1))
        else:
            self.history[bucket] = Candle(
                bucket,
                prev.open,
                max(prev.high, self.price),
                min(prev.low, self.price),
                self.price,
                prev.volume + 1,
            )

    async def fetch_candles(self, interval: str, limit: int) -> list[Candle]:
        await asyncio.sleep(random.uniform(0.0, 0.3))
        self._step()
        return [self.history[k] for k in sorted(self.history)][-limit:]

    async def fetch_ticker(self) -> Ticker:
        self._step()
        return Ticker(last_price=self.price, percent_change_24h=Decimal("0.42"))

    async def fetch_order_book(self, depth: int) -> OrderBook:
        self._step()
        bids = [OrderBookLevel(self.price - CENT * (i + 1), Decimal(i + 1)) for i in range(depth)]
        asks = [OrderBookLevel(self.price + CENT * (i + 1), Decimal(i + 1)) for i in range(depth)]
        return OrderBook.from_levels(bids, asks)

    async def fetch_recent_trades(self, limit: int) -> list[Trade]:
        self._step()
        now = int(time.time() * 1000)
        return [
            Trade(self.calls * 100 + i, now, self.price, Decimal(1), random.random() < 0.5)
            for i in range(limit)
        ]


async def run(seconds: float = 10.0) -> None:
    """
    Runs the real scheduler against RandomWalkClient for `seconds` seconds and
    prints every view update, then the final task counters.
    """
    settings = Settings(
        candle_interval="1s",
        candle_limit=30,
        ma_fast=3,
        ma_slow=5,
        book_depth=5,
        book_top_n=3,
        trade_limit=5,
        ticker_seconds=0.5,
        book_seconds=0.7,
        trades_seconds=0.7,
        candle_tail_seconds=0.25,
        full_resync_seconds=3.0,
    )
    state = build_state(settings, client=RandomWalkClient(settings.candle_interval))

    await state.reconciler.bootstrap()
    queue = state.feed.subscribe()
    state.scheduler.start()

    print(f"Simulating polling for {seconds} seconds...\n")
    loop = asyncio.get_running_loop()
    deadline = loop.time() + seconds
    while True:
        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        try:
            update = await asyncio.wait_for(queue.get(), timeout=remaining)
        except asyncio.TimeoutError:
            break
        if update.view == "series" and update.mode == "tail":
            candle = update.data["candle"]
            print(f"[series tail {update.data['kind']}] t={candle.time} close={candle.close}")
        else:
            print(f"[{update.view} {update.mode}]")

    await state.scheduler.stop()

    print("\nDone.")
    print(f"Candles stored: {len(state.store.candles())}")
    for w, points in state.store.moving_averages().items():
        print(f"MA{w} points: {len(points)}")
    for name, stats in state.scheduler.stats().items():
        print(f"{name}: {vars(stats)}")


if __name__ == "__main__":
    asyncio.run(run())
