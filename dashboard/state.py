from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from dashboard.config import Settings
from dashboard.jobs.scheduler import PollScheduler
from dashboard.jobs.tasks import build_tasks
from dashboard.presenter.feed import ViewFeed
from dashboard.providers.base import MarketDataClient
from dashboard.providers.loader import get_provider
from dashboard.series.reconciler import Reconciler
from dashboard.series.store import SeriesStore


@dataclass
class DashboardState:
    """
    Everything the running dashboard owns. Built once by build_state() and
    handed to each component; no module-level globals.
    """
    settings: Settings
    client: MarketDataClient
    store: SeriesStore
    reconciler: Reconciler
    feed: ViewFeed = field(default_factory=ViewFeed)
    scheduler: Optional[PollScheduler] = None


def build_state(settings: Settings, client: Optional[MarketDataClient] = None) -> DashboardState:
    if client is None:
        client = get_provider(settings)
    store = SeriesStore(windows=settings.ma_windows, max_candles=settings.candle_limit)
    reconciler = Reconciler(
        client=client,
        store=store,
        interval=settings.candle_interval,
        candle_limit=settings.candle_limit,
        resync_policy=settings.resync_policy,
    )
    state = DashboardState(settings=settings, client=client, store=store, reconciler=reconciler)
    state.scheduler = PollScheduler(build_tasks(state))
    return state
