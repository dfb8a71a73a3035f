from __future__ import annotations


class DashboardError(Exception):
    """Base class for errors raised by the dashboard core."""


class DataUnavailable(DashboardError):
    """Transport or decoding failure while talking to the market-data provider."""


class MalformedResponse(DataUnavailable):
    """The provider answered, but the payload does not match the expected schema."""


class OutOfOrderSample(DashboardError):
    """
    A candle sample whose bucket would rewind history.

    Raised by SeriesStore.apply_latest_candle; the Reconciler discards the sample.
    """

    def __init__(self, bucket_start: int, last_bucket: int) -> None:
        super().__init__(
            f"candle bucket {bucket_start} is older than last stored bucket {last_bucket}"
        )
        self.bucket_start = bucket_start
        self.last_bucket = last_bucket
