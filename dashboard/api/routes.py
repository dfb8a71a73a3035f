from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from starlette.requests import HTTPConnection

from dashboard.presenter.views import (
    OrderBookView,
    TickerView,
    TradeView,
    series_update,
    series_views,
)
from dashboard.state import DashboardState

router = APIRouter()
log = logging.getLogger("api")

# A view counts as fresh while it is younger than this many of its task cadences.
FRESHNESS_CADENCES = 3

VIEW_TASKS = {
    "ticker": "ticker",
    "order_book": "order_book",
    "trades": "trades",
    "candles": "candle_tail",
}


def iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _state(conn: HTTPConnection) -> DashboardState:
    return conn.app.state.dashboard


@router.get("/health")
def health(request: Request):
    state = _state(request)
    return {
        "status": "ok",
        "app_env": state.settings.app_env,
        "provider_config": state.settings.provider,
        "provider_loaded": state.client.__class__.__name__,
        "symbol": state.settings.symbol,
        "interval": state.settings.candle_interval,
    }


@router.get("/snapshot")
def snapshot(request: Request):
    """Every view at once, e.g. for the presenter's first paint."""
    state = _state(request)
    store = state.store
    ticker = store.ticker()
    return {
        "symbol": state.settings.symbol,
        "interval": state.settings.candle_interval,
        **series_views(store),
        "order_book": OrderBookView.of(store.order_book(), state.settings.book_top_n),
        "trades": [TradeView.of(t) for t in store.trades()],
        "ticker": TickerView.of(ticker) if ticker else None,
    }


@router.get("/candles")
def candles(request: Request):
    return series_views(_state(request).store)["candles"]


@router.get("/volumes")
def volumes(request: Request):
    return series_views(_state(request).store)["volumes"]


@router.get("/moving-averages")
def moving_averages(request: Request):
    return series_views(_state(request).store)["moving_averages"]


@router.get("/order-book")
def order_book(
    request: Request,
    top: Optional[int] = Query(None, ge=1, description="Levels per side (defaults to BOOK_TOP_N)"),
):
    state = _state(request)
    return OrderBookView.of(state.store.order_book(), top or state.settings.book_top_n)


@router.get("/trades")
def trades(request: Request):
    return [TradeView.of(t) for t in _state(request).store.trades()]


@router.get("/ticker")
def ticker(request: Request):
    t = _state(request).store.ticker()
    if t is None:
        raise HTTPException(status_code=503, detail="ticker not loaded yet")
    return TickerView.of(t)


@router.get("/status")
def status(request: Request):
    """
    Status v1:
    - last result + counters per polling task
    - per-view last_updated and freshness (stale views degrade silently otherwise)
    - reconciler drift bookkeeping
    """
    state = _state(request)
    store = state.store
    cadences = state.settings.cadences()
    scheduler = state.scheduler

    tasks = {}
    if scheduler is not None:
        stats = scheduler.stats()
        for name, result in scheduler.results().items():
            tasks[name] = {
                "state": scheduler.tasks[name].state.value,
                "in_flight": scheduler.tasks[name].in_flight,
                "last_status": result.status.value if result else None,
                "last_error_kind": result.error_kind if result else None,
                "last_error": result.error if result else None,
                "last_finished": iso(result.finished_at) if result else None,
                "stats": vars(stats[name]),
            }

    views = {}
    for view, task_name in VIEW_TASKS.items():
        max_age = cadences[task_name] * FRESHNESS_CADENCES
        views[view] = {
            "last_updated": iso(store.get_last_updated(view)),
            "fresh": store.is_fresh(view, max_age),
            "max_age_seconds": max_age,
        }

    reconciler = state.reconciler
    return {
        "symbol": state.settings.symbol,
        "running": scheduler.running if scheduler is not None else False,
        "tasks": tasks,
        "views": views,
        "reconciler": {
            "resync_policy": reconciler.resync_policy,
            "drift_events": reconciler.drift_events,
            "last_drift": reconciler.last_drift,
            "rejected_samples": reconciler.rejected_samples,
        },
    }


@router.websocket("/ws")
async def view_updates(websocket: WebSocket):
    """
    Presenter push channel: one full series frame on connect, then every
    ViewUpdate as tasks apply them.
    """
    state = _state(websocket)
    await websocket.accept()
    queue = state.feed.subscribe()
    try:
        await websocket.send_json(series_update(state.store).model_dump(mode="json"))
        for update in list(state.feed.last.values()):
            if update.view != "series":
                await websocket.send_json(update.model_dump(mode="json"))
        while True:
            update = await queue.get()
            await websocket.send_json(update.model_dump(mode="json"))
    except WebSocketDisconnect:
        log.debug("presenter disconnected")
    finally:
        state.feed.unsubscribe(queue)
