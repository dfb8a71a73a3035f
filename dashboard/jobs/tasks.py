from __future__ import annotations

from typing import TYPE_CHECKING, List

from dashboard.jobs.scheduler import PeriodicTask
from dashboard.presenter.views import (
    order_book_update,
    series_update,
    ticker_update,
    trades_update,
)

if TYPE_CHECKING:
    from dashboard.state import DashboardState


def build_tasks(state: "DashboardState") -> List[PeriodicTask]:
    """
    One periodic task per data domain:
    - ticker        (last price + 24h change)
    - order_book    (depth snapshot)
    - trades        (recent trade tape)
    - candle_tail   (newest bucket, incremental MA)
    - full_resync   (whole window, full MA recompute)

    Each apply touches only its own view and publishes only that view.
    """
    settings = state.settings
    client = state.client
    store = state.store
    reconciler = state.reconciler
    feed = state.feed
    cadence = settings.cadences()

    def apply_ticker(ticker):
        store.replace_ticker(ticker)
        return ticker

    def apply_book(book):
        store.replace_order_book(book)
        return book

    def apply_trades(trades):
        store.replace_trades(trades)
        return trades

    return [
        PeriodicTask(
            "ticker",
            cadence["ticker"],
            fetch=client.fetch_ticker,
            apply=apply_ticker,
            on_applied=lambda _: feed.publish(ticker_update(store)),
        ),
        PeriodicTask(
            "order_book",
            cadence["order_book"],
            fetch=lambda: client.fetch_order_book(settings.book_depth),
            apply=apply_book,
            on_applied=lambda _: feed.publish(order_book_update(store, settings.book_top_n)),
        ),
        PeriodicTask(
            "trades",
            cadence["trades"],
            fetch=lambda: client.fetch_recent_trades(settings.trade_limit),
            apply=apply_trades,
            on_applied=lambda _: feed.publish(trades_update(store)),
        ),
        PeriodicTask(
            "candle_tail",
            cadence["candle_tail"],
            fetch=reconciler.fetch_tail,
            apply=reconciler.apply_tail,
            on_applied=lambda update: feed.publish(series_update(store, update)),
        ),
        PeriodicTask(
            "full_resync",
            cadence["full_resync"],
            fetch=reconciler.fetch_full,
            apply=reconciler.apply_full,
            on_applied=lambda _: feed.publish(series_update(store)),
            # start-up already did the full fetch
            fire_immediately=False,
        ),
    ]
