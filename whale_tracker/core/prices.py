"""
Native Asset Price Oracles
==========================
The USD value of SOL-denominated swaps is an estimate. The static oracle
returns a configured constant; the Jupiter oracle asks the Jupiter price API
and falls back to that constant when the API is unavailable.
"""
import time
from abc import ABC, abstractmethod
from decimal import Decimal

import httpx

from whale_tracker.core.constants import JUPITER_PRICE_API, WRAPPED_SOL
from whale_tracker.core.logger import get_logger
from whale_tracker.ingestion.models import safe_decimal

logger = get_logger("whale_tracker.prices")


class PriceOracle(ABC):

    @abstractmethod
    async def native_asset_usd_price(self, at: int) -> Decimal:
        """USD price of one SOL at unix timestamp `at`."""
        pass


class StaticPriceOracle(PriceOracle):

    def __init__(self, price_usd: Decimal):
        self.price_usd = Decimal(price_usd)

    async def native_asset_usd_price(self, at: int) -> Decimal:
        return self.price_usd


class JupiterPriceOracle(PriceOracle):
    """
    Current SOL price from Jupiter, cached for `ttl` seconds. Jupiter only
    serves spot prices, so `at` is ignored.
    """

    def __init__(self, fallback_usd: Decimal, ttl: float = 60.0,
                 client: httpx.AsyncClient = None, api_url: str = JUPITER_PRICE_API):
        self.fallback_usd = Decimal(fallback_usd)
        self.ttl = ttl
        self.api_url = api_url
        self.client = client or httpx.AsyncClient(timeout=15)
        self._cached: Decimal = None
        self._cached_at = 0.0

    async def aclose(self):
        await self.client.aclose()

    async def _fetch(self) -> Decimal:
        resp = await self.client.get(self.api_url, params={"ids": WRAPPED_SOL})
        resp.raise_for_status()
        data = resp.json()
        return safe_decimal(data.get("data", {}).get(WRAPPED_SOL, {}).get("price"))

    async def native_asset_usd_price(self, at: int) -> Decimal:
        if self._cached is not None and time.monotonic() - self._cached_at < self.ttl:
            return self._cached

        try:
            price = await self._fetch()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Jupiter price fetch error: {e}")
            price = Decimal(0)

        if price <= 0:
            logger.warning(f"SOL price unavailable, using estimate ${self.fallback_usd}")
            return self.fallback_usd

        self._cached = price
        self._cached_at = time.monotonic()
        return price


def build_price_oracle(source: str, estimate_usd: Decimal) -> PriceOracle:
    if source == "jupiter":
        return JupiterPriceOracle(fallback_usd=estimate_usd)
    if source != "static":
        logger.warning(f"Unknown PRICE_SOURCE '{source}', using static estimate")
    return StaticPriceOracle(estimate_usd)
