import unittest
from decimal import Decimal

from dashboard.config import Settings
from dashboard.errors import DataUnavailable
from dashboard.jobs.scheduler import TaskStatus
from dashboard.models.market import Candle, OrderBook, OrderBookLevel, Ticker, Trade
from dashboard.providers.base import MarketDataClient
from dashboard.state import build_state

MINUTE_MS = 60_000


def make_candle(i: int, close) -> Candle:
    close = Decimal(str(close))
    return Candle(i * MINUTE_MS, close, close, close, close, Decimal("2"))


class FakeClient(MarketDataClient):
    def __init__(self):
        self.candles = [make_candle(i, 100 + i) for i in range(30)]
        self.ticker_fails = False
        self.closed = False

    async def fetch_candles(self, interval, limit):
        return self.candles[-limit:]

    async def fetch_ticker(self):
        if self.ticker_fails:
            raise DataUnavailable("HTTP 429")
        return Ticker(Decimal("67000.5"), Decimal("-1.25"))

    async def fetch_order_book(self, depth):
        return OrderBook.from_levels(
            bids=[OrderBookLevel(Decimal(p), Decimal(1)) for p in ("100", "99", "101")],
            asks=[OrderBookLevel(Decimal(p), Decimal(1)) for p in ("102", "103")],
        )

    async def fetch_recent_trades(self, limit):
        return [Trade(1, 1000, Decimal("100"), Decimal("0.5"), True)]

    async def aclose(self):
        self.closed = True


class TestBuildTasks(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.client = FakeClient()
        settings = Settings(candle_interval="1m", candle_limit=30, ma_fast=3, ma_slow=5, book_top_n=2)
        self.state = build_state(settings, client=self.client)
        self.queue = self.state.feed.subscribe()
        for task in self.state.scheduler.tasks.values():
            task.sink = lambda result: None

    def drain(self):
        out = []
        while not self.queue.empty():
            out.append(self.queue.get_nowait())
        return out

    async def test_task_names_and_cadences(self):
        tasks = self.state.scheduler.tasks
        self.assertEqual(
            {name: t.interval_seconds for name, t in tasks.items()},
            self.state.settings.cadences(),
        )
        self.assertFalse(tasks["full_resync"].fire_immediately)

    async def test_each_task_publishes_only_its_view(self):
        await self.state.reconciler.bootstrap()
        tasks = self.state.scheduler.tasks

        await tasks["order_book"].run_once()
        updates = self.drain()
        self.assertEqual([u.view for u in updates], ["order_book"])
        self.assertEqual([lvl.price for lvl in updates[0].data.bids], [Decimal(101), Decimal(100)])

        await tasks["trades"].run_once()
        self.assertEqual([u.view for u in self.drain()], ["trades"])

        await tasks["ticker"].run_once()
        self.assertEqual([u.view for u in self.drain()], ["ticker"])

    async def test_candle_tail_publishes_tail_update(self):
        await self.state.reconciler.bootstrap()
        self.client.candles.append(make_candle(30, 500))

        result = await self.state.scheduler.tasks["candle_tail"].run_once()

        self.assertEqual(result.status, TaskStatus.APPLIED)
        (update,) = self.drain()
        self.assertEqual((update.view, update.mode), ("series", "tail"))
        self.assertEqual(update.data["kind"], "appended")
        self.assertEqual(update.data["candle"].close, Decimal(500))
        self.assertIn("ma3", update.data["moving_averages"])

    async def test_stale_tail_is_noop_without_signal(self):
        await self.state.reconciler.bootstrap()
        self.client.candles = [make_candle(5, 1)]

        result = await self.state.scheduler.tasks["candle_tail"].run_once()

        self.assertEqual(result.status, TaskStatus.NOOP)
        self.assertEqual(self.drain(), [])

    async def test_full_resync_publishes_full_series(self):
        result = await self.state.scheduler.tasks["full_resync"].run_once()

        self.assertEqual(result.status, TaskStatus.APPLIED)
        (update,) = self.drain()
        self.assertEqual((update.view, update.mode), ("series", "full"))
        self.assertEqual(len(update.data["candles"]), 30)
        self.assertEqual(len(update.data["moving_averages"]["ma5"]), 26)

    async def test_failing_task_leaves_other_views_alone(self):
        self.client.ticker_fails = True
        tasks = self.state.scheduler.tasks

        failed = await tasks["ticker"].run_once()
        ok = await tasks["trades"].run_once()

        self.assertEqual(failed.status, TaskStatus.FAILED)
        self.assertEqual(ok.status, TaskStatus.APPLIED)
        self.assertIsNone(self.state.store.ticker())
        self.assertEqual(len(self.state.store.trades()), 1)
        self.assertEqual([u.view for u in self.drain()], ["trades"])


if __name__ == "__main__":
    unittest.main()
