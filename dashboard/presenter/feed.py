from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from dashboard.presenter.views import ViewUpdate

log = logging.getLogger("view_feed")


class ViewFeed:
    """
    Fan-out of redraw signals to connected presenters.

    Each subscriber gets its own bounded queue; a slow subscriber loses its
    oldest pending updates instead of holding up the pollers.
    """

    def __init__(self, max_pending: int = 100) -> None:
        self.max_pending = max_pending
        self._subscribers: List[asyncio.Queue] = []
        self.last: dict[str, ViewUpdate] = {}

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=self.max_pending)
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        if q in self._subscribers:
            self._subscribers.remove(q)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, update: Optional[ViewUpdate]) -> None:
        if update is None:
            return
        self.last[update.view] = update
        for q in self._subscribers:
            if q.full():
                dropped = q.get_nowait()
                log.debug("subscriber lagging, dropped view=%s", dropped.view)
            q.put_nowait(update)
