"""
Polymarket Data API Client

Read-only access to wallet positions on the public data API.
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp
from loguru import logger
from ratelimit import limits, sleep_and_retry

from .backoff import BackoffPolicy, resilient_call
from .config import APIEndpoints, Settings, get_settings
from .models import PositionSnapshot


@sleep_and_retry
@limits(calls=10, period=1)  # Rate limit: 10 calls per second
def _acquire_request_slot():
    """Blocks the calling thread until a data API request may go out"""


class PolymarketDataClient:
    """
    Client for the Polymarket data API

    Requests are rate limited and retried on timeouts and 5xx responses.
    """

    def __init__(self, settings: Optional[Settings] = None, policy: Optional[BackoffPolicy] = None):
        self.settings = settings or get_settings()
        self.data_host = self.settings.data_api_host
        self.policy = policy or BackoffPolicy.from_settings(self.settings)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=10),
                headers={"Content-Type": "application/json"}
            )
        return self._session

    async def close(self):
        """Close the HTTP session"""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _request(self, method: str, url: str, params: Optional[Dict] = None) -> Any:
        """Make HTTP request with rate limiting"""
        await asyncio.get_running_loop().run_in_executor(None, _acquire_request_slot)
        session = await self._get_session()

        async with session.request(method, url, params=params) as response:
            response.raise_for_status()
            return await response.json()

    async def fetch(self, path: str, params: Optional[Dict] = None) -> Any:
        url = f"{self.data_host}{path}"
        try:
            return await resilient_call(self._request, "GET", url, params, policy=self.policy, label=url)
        except aiohttp.ClientError as e:
            logger.error(f"[FETCH ERROR] Failed to fetch {url}: {e}")
            raise

    async def get_positions(self, address: str) -> List[PositionSnapshot]:
        """
        Get current positions for a wallet

        Args:
            address: Wallet (or proxy wallet) address

        Returns:
            List of PositionSnapshot objects
        """
        data = await self.fetch(APIEndpoints.POSITIONS, {"user": address})
        if not isinstance(data, list):
            return []
        return [PositionSnapshot.from_dict(p) for p in data]

    @staticmethod
    def find_position(
        positions: List[PositionSnapshot],
        condition_id: str,
        token_id: Optional[str] = None,
    ) -> Optional[PositionSnapshot]:
        """Position held in the given market, preferring the given outcome token"""
        in_market = [p for p in positions if p.condition_id == condition_id and p.size > 0]
        for position in in_market:
            if position.token_id == token_id:
                return position
        return in_market[0] if in_market else None
