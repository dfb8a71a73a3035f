from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from dashboard.models.market import Candle, MovingAveragePoint

ZERO = Decimal(0)


# -------------------------
# SMA (full)
# -------------------------
def compute_full(candles: Sequence[Candle], window: int) -> List[MovingAveragePoint]:
    """
    Simple moving average of closes.

    One point per candle starting at the window-th candle, stamped with the
    bucket of the candle at the window's right edge.
    """
    if window <= 0:
        raise ValueError(f"window must be > 0, got {window}")

    out: List[MovingAveragePoint] = []
    window_sum = ZERO
    for i, candle in enumerate(candles):
        window_sum += candle.close
        if i >= window:
            window_sum -= candles[i - window].close
        if i >= window - 1:
            out.append(MovingAveragePoint(candle.bucket_start, window_sum / window))
    return out


# -------------------------
# SMA (incremental tail)
# -------------------------
def compute_incremental_tail(
    candles: Sequence[Candle],
    window: int,
    previous_sum: Decimal,
    replaced_close: Optional[Decimal] = None,
) -> Tuple[Optional[MovingAveragePoint], Decimal]:
    """
    O(1) update of the last SMA point after the candle series changed at its tail.

    candles: the series AFTER the change
    previous_sum: sum of the last `window` closes BEFORE the change
      (sum of all closes while fewer than `window` candles exist)
    replaced_close: close of the candle that was overwritten in place, or None
      when the newest candle was appended

    Returns (point or None while fewer than `window` candles, new running sum).
    """
    if not candles:
        return None, ZERO

    newest = candles[-1].close
    if replaced_close is not None:
        window_sum = previous_sum - replaced_close + newest
    else:
        window_sum = previous_sum + newest
        if len(candles) > window:
            window_sum -= candles[-window - 1].close

    if len(candles) < window:
        return None, window_sum
    return MovingAveragePoint(candles[-1].bucket_start, window_sum / window), window_sum


@dataclass
class MovingAverageLine:
    """
    One SMA overlay: its points plus the running sum used by incremental updates.
    """
    window: int
    points: List[MovingAveragePoint] = field(default_factory=list)
    window_sum: Decimal = ZERO

    def reset(self, candles: Sequence[Candle]) -> None:
        """Full recompute."""
        self.points = compute_full(candles, self.window)
        self.window_sum = sum((c.close for c in candles[-self.window:]), ZERO)

    def advance(
        self,
        candles: Sequence[Candle],
        replaced_close: Optional[Decimal] = None,
    ) -> Optional[MovingAveragePoint]:
        point, self.window_sum = compute_incremental_tail(
            candles, self.window, self.window_sum, replaced_close
        )
        if point is None:
            return None

        if self.points and self.points[-1].bucket_start == point.bucket_start:
            self.points[-1] = point
        else:
            self.points.append(point)
        return point

    def trim(self, candle_count: int) -> None:
        """Drop leading points so len(points) == candle_count - window + 1."""
        keep = max(candle_count - self.window + 1, 0)
        extra = len(self.points) - keep
        if extra > 0:
            del self.points[:extra]
