import logging
from typing import Optional

from fastapi import FastAPI

from dashboard.api.routes import router as api_router
from dashboard.config import get_settings
from dashboard.errors import DataUnavailable
from dashboard.logger import setup_logging
from dashboard.presenter.views import series_update
from dashboard.state import DashboardState, build_state

log = logging.getLogger("main")


def create_app(state: Optional[DashboardState] = None) -> FastAPI:
    if state is None:
        settings = get_settings()
        setup_logging(settings.log_level)
        state = build_state(settings)

    app = FastAPI(title="Market Dashboard API", version="0.1.0")
    app.state.dashboard = state
    app.include_router(api_router)

    @app.on_event("startup")
    async def _startup():
        # Initial full candle fetch; if it fails the full_resync task fills the
        # store on its first tick (an empty store always resyncs).
        try:
            await state.reconciler.bootstrap()
            state.feed.publish(series_update(state.store))
        except DataUnavailable as e:
            log.error("Initial candle fetch failed: %r", e)

        # Ticker / book / trades / candle tail fire right away, resync waits one cadence.
        state.scheduler.start()

    @app.on_event("shutdown")
    async def _shutdown():
        await state.scheduler.stop()
        await state.client.aclose()

    return app


app = create_app()
