import unittest
from decimal import Decimal

import httpx

from dashboard.errors import DataUnavailable, MalformedResponse
from dashboard.providers.binance import BinanceClient

KLINES = [
    [1700000000000, "100.10", "101.00", "99.50", "100.90", "12.5", 1700000299999, "0", 10, "0", "0", "0"],
    [1700000300000, "100.90", "102.00", "100.00", "100.20", "8", 1700000599999, "0", 7, "0", "0", "0"],
]


def route(responses):
    """MockTransport handler answering by URL path; records each request."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        answer = responses[request.url.path]
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, httpx.Response):
            return answer
        return httpx.Response(200, json=answer)

    return handler, seen


class TestBinanceClient(unittest.IsolatedAsyncioTestCase):
    async def asyncTearDown(self):
        await self.client.aclose()

    def make_client(self, responses):
        handler, self.seen = route(responses)
        self.client = BinanceClient("btcusdt", transport=httpx.MockTransport(handler))
        return self.client

    async def test_fetch_candles_parses_decimals_in_field_order(self):
        client = self.make_client({"/api/v3/klines": KLINES})

        candles = await client.fetch_candles("5m", 2)

        params = self.seen[0].url.params
        self.assertEqual((params["symbol"], params["interval"], params["limit"]), ("BTCUSDT", "5m", "2"))
        first = candles[0]
        self.assertEqual(first.bucket_start, 1700000000000)
        self.assertEqual(
            (first.open, first.high, first.low, first.close, first.volume),
            (Decimal("100.10"), Decimal("101.00"), Decimal("99.50"), Decimal("100.90"), Decimal("12.5")),
        )
        self.assertIsInstance(first.close, Decimal)

    async def test_non_increasing_klines_are_malformed(self):
        client = self.make_client({"/api/v3/klines": [KLINES[1], KLINES[0]]})
        with self.assertRaises(MalformedResponse):
            await client.fetch_candles("5m", 2)

    async def test_short_kline_row_is_malformed(self):
        client = self.make_client({"/api/v3/klines": [[1700000000000, "1", "2"]]})
        with self.assertRaises(MalformedResponse):
            await client.fetch_candles("5m", 1)

    async def test_non_numeric_field_is_malformed(self):
        row = list(KLINES[0])
        row[4] = "n/a"
        client = self.make_client({"/api/v3/klines": [row]})
        with self.assertRaises(MalformedResponse):
            await client.fetch_candles("5m", 1)

    async def test_fractional_open_time_is_malformed(self):
        row = list(KLINES[0])
        row[0] = 1700000000000.5
        client = self.make_client({"/api/v3/klines": [row]})
        with self.assertRaises(MalformedResponse):
            await client.fetch_candles("5m", 1)

    async def test_fractional_trade_id_is_malformed(self):
        trade = {"id": 1.5, "price": "1", "qty": "1", "time": 1700000000000, "isBuyerMaker": True}
        client = self.make_client({"/api/v3/trades": [trade]})
        with self.assertRaises(MalformedResponse):
            await client.fetch_recent_trades(1)

    async def test_fetch_ticker(self):
        client = self.make_client(
            {"/api/v3/ticker/24hr": {"symbol": "BTCUSDT", "lastPrice": "67012.10", "priceChangePercent": "-0.512"}}
        )

        ticker = await client.fetch_ticker()

        self.assertEqual(ticker.last_price, Decimal("67012.10"))
        self.assertEqual(ticker.percent_change_24h, Decimal("-0.512"))
        self.assertFalse(ticker.is_up)

    async def test_ticker_missing_field_is_malformed(self):
        client = self.make_client({"/api/v3/ticker/24hr": {"lastPrice": "1"}})
        with self.assertRaises(MalformedResponse):
            await client.fetch_ticker()

    async def test_fetch_order_book_keeps_source_order(self):
        client = self.make_client(
            {
                "/api/v3/depth": {
                    "lastUpdateId": 1,
                    "bids": [["100", "2"], ["99", "5"], ["101", "1"]],
                    "asks": [["102", "3"], ["103", "1"]],
                }
            }
        )

        book = await client.fetch_order_book(20)

        self.assertEqual(self.seen[0].url.params["limit"], "20")
        self.assertEqual([lvl.price for lvl in book.bids], [Decimal(100), Decimal(99), Decimal(101)])
        self.assertEqual(book.asks[0].quantity, Decimal(3))

    async def test_fetch_recent_trades_maps_taker_side(self):
        client = self.make_client(
            {
                "/api/v3/trades": [
                    {"id": 7, "price": "100.5", "qty": "0.01", "time": 1700000000123, "isBuyerMaker": True},
                    {"id": 8, "price": "100.6", "qty": "0.02", "time": 1700000000456, "isBuyerMaker": False},
                ]
            }
        )

        trades = await client.fetch_recent_trades(30)

        self.assertEqual([t.trade_id for t in trades], [7, 8])
        self.assertTrue(trades[0].taker_is_seller)
        self.assertEqual(trades[0].side, "sell")
        self.assertEqual(trades[1].side, "buy")
        self.assertEqual(trades[1].quantity, Decimal("0.02"))

    async def test_http_error_is_data_unavailable(self):
        client = self.make_client({"/api/v3/ticker/24hr": httpx.Response(502, text="bad gateway")})
        with self.assertRaises(DataUnavailable) as ctx:
            await client.fetch_ticker()
        self.assertNotIsInstance(ctx.exception, MalformedResponse)

    async def test_transport_error_is_data_unavailable(self):
        client = self.make_client({"/api/v3/depth": httpx.ConnectError("connection refused")})
        with self.assertRaises(DataUnavailable):
            await client.fetch_order_book(20)

    async def test_invalid_json_is_malformed(self):
        client = self.make_client({"/api/v3/trades": httpx.Response(200, text="<html>")})
        with self.assertRaises(MalformedResponse):
            await client.fetch_recent_trades(30)


if __name__ == "__main__":
    unittest.main()
