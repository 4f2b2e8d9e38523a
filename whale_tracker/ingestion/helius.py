"""
Helius Transaction Source
=========================
Wallet history via the Helius enhanced-transactions REST API, token metadata
via the DAS `getAsset` RPC method.
"""
import time
from typing import Dict, List, Optional

import httpx

from whale_tracker.core.config import HELIUS_API_KEY, HELIUS_API_URL, HELIUS_RPC_URL
from whale_tracker.core.errors import FetchFailure
from whale_tracker.core.logger import get_logger
from .base import TransactionSource
from .models import RawTransaction

logger = get_logger("whale_tracker.helius")

METADATA_CACHE_TTL = 3600  # 1 hour

# Any wallet with history works as a connectivity probe
PROBE_ADDRESS = "6FNy8RFVYoWUZU4TcsjwYp9dSCxe9GUxELg5qy4oekbS"


class HeliusSource(TransactionSource):

    def __init__(self, api_key: str = None, api_url: str = None, rpc_url: str = None,
                 client: httpx.AsyncClient = None):
        self.api_key = api_key if api_key is not None else HELIUS_API_KEY
        self.api_url = (api_url or HELIUS_API_URL).rstrip("/")
        self.rpc_url = (rpc_url or HELIUS_RPC_URL).rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=30)
        # mint -> {data, ts}. Stale entries are refreshed, never evicted; size is bounded
        # by the distinct mints the tracked wallets trade
        self._metadata_cache: Dict[str, Dict] = {}

    async def aclose(self):
        await self.client.aclose()

    async def _get_transactions(self, address: str, params: Dict) -> list:
        url = f"{self.api_url}/addresses/{address}/transactions"
        params = {"api-key": self.api_key, **params}
        try:
            response = await self.client.get(url, params=params)
        except httpx.HTTPError as e:
            raise FetchFailure(address, f"network error: {e}") from e

        if response.status_code == 429:
            logger.warning("Rate limit exceeded. Consider reducing poll frequency or upgrading Helius plan.")
            raise FetchFailure(address, "rate limited", status_code=429)

        if response.status_code != 200:
            raise FetchFailure(address, f"HTTP {response.status_code}: {response.text[:200]}",
                               status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise FetchFailure(address, "invalid JSON") from e

        if not isinstance(data, list):
            raise FetchFailure(address, "response is not a list")
        return data

    async def fetch(self, address: str, limit: int = 10) -> List[RawTransaction]:
        data = await self._get_transactions(address, {"limit": limit})
        transactions = []
        for raw in data:
            if not raw.get("signature"):
                logger.debug(f"Skipping transaction without signature for {address}")
                continue
            transactions.append(RawTransaction.from_helius(raw))
        return transactions

    async def get_token_creation_time(self, mint: str) -> Optional[int]:
        """
        Creation time of a mint, taken as the timestamp of the last item of a
        one-item history page. This assumes the page ordering places the
        genesis transaction last, which Helius does not document.
        """
        try:
            data = await self._get_transactions(mint, {"limit": 1, "type": "any"})
        except FetchFailure as e:
            logger.error(f"Error fetching token creation time for {mint}: {e}")
            return None

        if not data:
            return None
        timestamp = data[-1].get("timestamp")
        return int(timestamp) if timestamp else None

    async def get_token_metadata(self, mint: str) -> Dict[str, str]:
        """
        Fetches token metadata (name, symbol) from Helius DAS API.
        Uses caching to avoid rate limits.
        """
        if mint in self._metadata_cache:
            item = self._metadata_cache[mint]
            if time.time() - item["ts"] < METADATA_CACHE_TTL:
                return item["data"]

        default_data = await super().get_token_metadata(mint)

        if not self.api_key:
            logger.warning("No HELIUS_API_KEY set. Cannot fetch metadata.")
            return default_data

        payload = {
            "jsonrpc": "2.0",
            "id": "whale-tracker",
            "method": "getAsset",
            "params": {"id": mint},
        }

        try:
            response = await self.client.post(f"{self.rpc_url}/?api-key={self.api_key}", json=payload)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to fetch metadata for {mint}: {e}")
            return default_data

        if not data.get("result"):
            logger.error(f"Helius RPC Error for {mint}: {data.get('error')}")
            return default_data

        metadata = (data["result"].get("content") or {}).get("metadata") or {}
        symbol = metadata.get("symbol") or default_data["symbol"]
        name = metadata.get("name") or default_data["name"]

        result = {"name": name, "symbol": symbol}
        self._metadata_cache[mint] = {"data": result, "ts": time.time()}
        return result

    async def test_connection(self) -> bool:
        try:
            await self.fetch(PROBE_ADDRESS, 1)
            logger.info("Helius API connection successful")
            return True
        except FetchFailure as e:
            logger.error(f"Helius API connection failed: {e}")
            return False
