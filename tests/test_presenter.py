import asyncio
import unittest
from decimal import Decimal

from dashboard.models.market import Candle, OrderBook, OrderBookLevel, Ticker, Trade, VolumeBar
from dashboard.presenter.feed import ViewFeed
from dashboard.presenter.format import (
    DOWN_COLOR,
    UP_COLOR,
    format_price,
    format_qty,
    format_time,
    order_book_rows,
    price_box,
    trade_direction,
    trade_rows,
    volume_color,
)
from dashboard.presenter.views import CandleView, ViewUpdate, series_update
from dashboard.series.store import SeriesStore


def level(price, qty) -> OrderBookLevel:
    return OrderBookLevel(Decimal(str(price)), Decimal(str(qty)))


class TestFormatting(unittest.TestCase):
    def test_price_and_qty(self):
        self.assertEqual(format_price(Decimal("67012.1")), "67,012.10")
        self.assertEqual(format_price(Decimal("0.005")), "0.01")
        self.assertEqual(format_qty(Decimal("0.01200000")), "0.012")
        self.assertEqual(format_qty(Decimal("2.00000000")), "2")
        self.assertEqual(format_qty(Decimal("0.0000001")), "0")

    def test_time_is_hh_mm_ss(self):
        # 2023-11-14 22:13:20 UTC
        self.assertEqual(format_time(1700000000000), "22:13:20")

    def test_trade_classification(self):
        seller = Trade(1, 1700000000000, Decimal("100"), Decimal("1"), taker_is_seller=True)
        buyer = Trade(2, 1700000000000, Decimal("100"), Decimal("1"), taker_is_seller=False)

        self.assertEqual(trade_direction(seller), "down")
        self.assertEqual(trade_direction(buyer), "up")

        rows = trade_rows([seller, buyer])
        self.assertEqual([r["color"] for r in rows], [DOWN_COLOR, UP_COLOR])
        self.assertEqual([r["direction"] for r in rows], ["down", "up"])

    def test_order_book_rows(self):
        book = OrderBook.from_levels(
            bids=[level(100, 2), level(99, 5), level(101, 1)],
            asks=[level(102, 3), level(103, 1)],
        )

        rows = order_book_rows(book, 2)

        self.assertEqual([(r["price"], r["qty"]) for r in rows["bids"]], [("101.00", "1"), ("100.00", "2")])
        self.assertEqual([(r["price"], r["qty"]) for r in rows["asks"]], [("102.00", "3"), ("103.00", "1")])

    def test_price_box_color_follows_change(self):
        up = price_box(Ticker(Decimal("67000"), Decimal("0")))
        down = price_box(Ticker(Decimal("67000"), Decimal("-0.256")))

        self.assertEqual(up, {"price": "67,000.00 USD", "change": "0.00%", "color": UP_COLOR})
        self.assertEqual(down["change"], "-0.26%")
        self.assertEqual(down["color"], DOWN_COLOR)

    def test_volume_color(self):
        self.assertEqual(volume_color(VolumeBar(0, Decimal(1), True)), UP_COLOR)
        self.assertEqual(volume_color(VolumeBar(0, Decimal(1), False)), DOWN_COLOR)


class TestViews(unittest.TestCase):
    def test_candle_time_in_seconds(self):
        c = Candle(1700000000000, Decimal("1"), Decimal("2"), Decimal("0.5"), Decimal("1.5"), Decimal("3"))
        view = CandleView.of(c)
        self.assertEqual(view.time, 1700000000)
        self.assertEqual(view.model_dump(mode="json")["close"], "1.5")

    def test_tail_update_serializes(self):
        store = SeriesStore(windows=(1,), max_candles=5)
        c = Candle(60_000, Decimal("1"), Decimal("2"), Decimal("1"), Decimal("2"), Decimal("3"))
        update = series_update(store, store.apply_latest_candle(c))

        payload = update.model_dump(mode="json")

        self.assertEqual(payload["mode"], "tail")
        self.assertEqual(payload["data"]["candle"]["time"], 60)
        self.assertEqual(payload["data"]["volume"]["up"], True)
        self.assertEqual(payload["data"]["moving_averages"]["ma1"]["value"], "2")


class TestViewFeed(unittest.IsolatedAsyncioTestCase):
    async def test_publish_fans_out(self):
        feed = ViewFeed()
        a, b = feed.subscribe(), feed.subscribe()
        update = ViewUpdate(view="trades", mode="full", data=[])

        feed.publish(update)

        self.assertIs(await asyncio.wait_for(a.get(), 1), update)
        self.assertIs(await asyncio.wait_for(b.get(), 1), update)
        self.assertIs(feed.last["trades"], update)

    async def test_slow_subscriber_drops_oldest(self):
        feed = ViewFeed(max_pending=2)
        q = feed.subscribe()
        for i in range(3):
            feed.publish(ViewUpdate(view="ticker", mode="full", data=i))

        self.assertEqual([q.get_nowait().data, q.get_nowait().data], [1, 2])

    async def test_unsubscribe_and_none(self):
        feed = ViewFeed()
        q = feed.subscribe()
        feed.unsubscribe(q)
        feed.publish(None)
        feed.publish(ViewUpdate(view="ticker", mode="full", data=1))
        self.assertEqual(feed.subscriber_count, 0)
        self.assertTrue(q.empty())


if __name__ == "__main__":
    unittest.main()
