from dashboard.config import Settings
from dashboard.providers.base import MarketDataClient
from dashboard.providers.binance import BinanceClient


def get_provider(settings: Settings) -> MarketDataClient:
    """Build the MarketDataClient named by settings.provider, bound to settings.symbol."""
    provider_name = settings.provider.strip().upper()

    if provider_name == "BINANCE":
        return BinanceClient(
            symbol=settings.symbol,
            base_url=settings.binance_base_url,
            timeout_s=settings.http_timeout_seconds,
        )

    raise ValueError(f"Unknown PROVIDER='{settings.provider}'. Expected: BINANCE")
