from __future__ import annotations

import logging
from typing import List, Optional

from dashboard.errors import DataUnavailable, OutOfOrderSample
from dashboard.models.market import Candle, interval_ms
from dashboard.providers.base import MarketDataClient
from dashboard.series.store import APPENDED, CandleUpdate, SeriesStore

log = logging.getLogger("reconciler")


class Reconciler:
    """
    Decides which path updates the candle series.

    - tail path (short cadence): fetch only the newest bucket, apply_latest_candle
    - full path (long cadence): fetch the whole window, initialize

    resync_policy:
      "always" -> every full-path tick refetches and rebuilds
      "on_gap" -> full path only runs after drift was seen since the last rebuild
                  (rejected sample, failed tail fetch, skipped bucket) or while
                  the store is still empty
    """

    def __init__(
        self,
        client: MarketDataClient,
        store: SeriesStore,
        interval: str,
        candle_limit: int,
        resync_policy: str = "always",
    ) -> None:
        if resync_policy not in ("always", "on_gap"):
            raise ValueError(f"Unknown resync_policy='{resync_policy}'")
        self.client = client
        self.store = store
        self.interval = interval
        self.candle_limit = candle_limit
        self.resync_policy = resync_policy
        self._bucket_ms = interval_ms(interval)
        self.drift_events = 0
        self.last_drift: Optional[str] = None
        self.rejected_samples = 0
        # Bumped on every tail apply; a full fetch remembers the value it was sent at.
        self._tail_seq = 0
        self._full_sent_seq: Optional[int] = None

    @property
    def drift_detected(self) -> bool:
        return self.drift_events > 0

    def note_drift(self, reason: str) -> None:
        log.debug("drift noted: %s", reason)
        self.drift_events += 1
        self.last_drift = reason

    # -------------------------
    # Start-up
    # -------------------------
    async def bootstrap(self) -> int:
        """Initial full fetch. Returns how many candles were stored."""
        self._full_sent_seq = self._tail_seq
        candles = await self.client.fetch_candles(self.interval, self.candle_limit)
        self.apply_full(candles)
        log.info("Bootstrapped interval=%s candles=%d", self.interval, len(candles))
        return len(candles)

    # -------------------------
    # Tail path
    # -------------------------
    async def fetch_tail(self) -> List[Candle]:
        try:
            return await self.client.fetch_candles(self.interval, 1)
        except DataUnavailable as e:
            self.note_drift(f"tail fetch failed: {e}")
            raise

    def apply_tail(self, candles: List[Candle]) -> Optional[CandleUpdate]:
        """
        Apply the newest sample. Returns None when there was nothing to apply
        or the sample would rewind history (it is discarded).
        """
        if not candles:
            return None
        candle = candles[-1]
        previous = self.store.last_bucket()

        try:
            update = self.store.apply_latest_candle(candle)
        except OutOfOrderSample as e:
            self.rejected_samples += 1
            self.note_drift(f"out-of-order sample: {e}")
            log.debug("Discarded stale candle bucket=%s", e.bucket_start)
            return None

        self._tail_seq += 1
        if (
            update.kind == APPENDED
            and previous is not None
            and self._bucket_ms is not None
            and candle.bucket_start - previous > self._bucket_ms
        ):
            self.note_drift(f"skipped bucket(s) between {previous} and {candle.bucket_start}")
        return update

    # -------------------------
    # Full path
    # -------------------------
    def needs_resync(self) -> bool:
        if self.resync_policy == "always":
            return True
        return self.drift_detected or not self.store.has_candles()

    async def fetch_full(self) -> Optional[List[Candle]]:
        """None means the policy decided no resync is needed this tick."""
        if not self.needs_resync():
            return None
        self._full_sent_seq = self._tail_seq
        return await self.client.fetch_candles(self.interval, self.candle_limit)

    def apply_full(self, candles: Optional[List[Candle]]) -> bool:
        """
        Rebuild the series from a full window.

        Stored candles newer than the window are always kept. When a tail
        apply landed after the full fetch was sent, the stored candle for the
        window's last bucket is also fresher than the window's and wins.
        """
        if candles is None:
            return False
        if self.drift_events:
            log.info("Full resync after %d drift event(s), last: %s", self.drift_events, self.last_drift)

        tail_landed = self._full_sent_seq is not None and self._tail_seq != self._full_sent_seq
        self._full_sent_seq = None

        newest = candles[-1].bucket_start if candles else None
        if newest is None:
            kept = list(self.store.candles())
        elif tail_landed:
            kept = [c for c in self.store.candles() if c.bucket_start >= newest]
        else:
            kept = [c for c in self.store.candles() if c.bucket_start > newest]
        # initialize() keeps the last candle per bucket, so kept ones win over the window's.
        self.store.initialize(list(candles) + kept)
        self.drift_events = 0
        self.last_drift = None
        return True
