"""
Exchange Order Gateway

Thin async wrapper around py-clob-client. The client is synchronous, so
every call runs in the default executor, paced by one shared rate limiter
to respect the exchange's limits.
"""

import asyncio
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from loguru import logger
from py_clob_client.client import ClobClient
from py_clob_client.clob_types import OrderArgs, OrderType
from ratelimit import limits, sleep_and_retry

from .config import Settings
from .errors import MarketNotFoundError, status_code_of


class OrderMode(Enum):
    """How an order interacts with the book"""
    MAKER = "MAKER"  # resting GTC limit order
    TAKER = "TAKER"  # fill-and-kill against resting liquidity

    @property
    def order_type(self) -> str:
        return OrderType.GTC if self is OrderMode.MAKER else OrderType.FAK


def _levels(raw: Any) -> List[Dict[str, Any]]:
    """Normalize book levels from OrderSummary objects or dicts"""
    levels = []
    for level in raw or []:
        if isinstance(level, dict):
            levels.append({"price": level.get("price"), "size": level.get("size")})
        else:
            levels.append({"price": getattr(level, "price", None), "size": getattr(level, "size", None)})
    return levels


def paced_caller(min_interval: float) -> Callable[..., Any]:
    """Invoke a blocking client call at most once per min_interval seconds"""

    @sleep_and_retry
    @limits(calls=1, period=min_interval)
    def invoke(fn, *args, **kwargs):
        return fn(*args, **kwargs)

    return invoke


class ClobGateway:
    """
    Executes exchange calls for the mirroring engine

    Methods raise on failure; retry and fallback policy lives in the
    callers (resolver, analyzer, submitter).
    """

    def __init__(self, settings: Settings, pacer: Optional[Callable[..., Any]] = None):
        self.settings = settings
        self._paced = pacer or paced_caller(settings.min_call_interval)
        self._client: Optional[ClobClient] = None

    def initialize(self):
        """Create the CLOB client and derive API credentials"""
        if self._client is not None:
            return

        if not self.settings.private_key:
            raise ValueError("PRIVATE_KEY is required for live trading")

        client = ClobClient(
            host=self.settings.polymarket_host,
            key=self.settings.private_key,
            chain_id=self.settings.chain_id,
            signature_type=self.settings.signature_type,
            funder=self.settings.follower_address or None,
        )
        creds = client.create_or_derive_api_creds()
        client.set_api_creds(creds)
        self._client = client
        logger.info(f"CLOB gateway initialized against {self.settings.polymarket_host}")

    @property
    def client(self) -> ClobClient:
        if self._client is None:
            self.initialize()
        return self._client

    async def _call(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(self._paced, fn, *args, **kwargs))

    async def resolve_market(self, market_id: str) -> Dict[str, Any]:
        """Market record including fee rates and minimum order size"""
        return await self._call(self.client.get_market, market_id)

    async def fetch_order_book(self, token_id: str) -> Dict[str, List[Dict[str, Any]]]:
        """Raw bids/asks for a token; raises MarketNotFoundError when absent"""
        try:
            book = await self._call(self.client.get_order_book, token_id)
        except Exception as e:
            if status_code_of(e) == 404:
                raise MarketNotFoundError(f"No order book for {token_id}") from e
            raise

        if book is None:
            raise MarketNotFoundError(f"No order book for {token_id}")

        if isinstance(book, dict):
            return {"bids": _levels(book.get("bids")), "asks": _levels(book.get("asks"))}
        return {"bids": _levels(getattr(book, "bids", None)), "asks": _levels(getattr(book, "asks", None))}

    async def build_order(self, side: str, token_id: str, size: float, price: float) -> Any:
        """Create and sign a limit order"""
        order_args = OrderArgs(token_id=token_id, price=price, size=size, side=side)
        return await self._call(self.client.create_order, order_args)

    async def submit_order(self, signed_order: Any, mode: OrderMode) -> Dict[str, Any]:
        """Post a signed order; returns the exchange response"""
        response = await self._call(self.client.post_order, signed_order, mode.order_type)
        return response or {}

    async def cancel_order(self, order_id: str) -> Dict[str, Any]:
        return await self._call(self.client.cancel, order_id)


class DryRunGateway(ClobGateway):
    """
    Gateway that reads live market data but never places orders

    Maker orders rest unfilled and taker orders fill completely, which
    exercises the maker-then-taker path end to end.
    """

    def __init__(self, settings: Settings, pacer: Optional[Callable[..., Any]] = None):
        super().__init__(settings, pacer)
        self._order_history: List[Dict] = []

    def initialize(self):
        """Read-only client, no credentials needed"""
        if self._client is None:
            self._client = ClobClient(host=self.settings.polymarket_host, chain_id=self.settings.chain_id)
            logger.info("Dry run gateway initialized (simulation mode)")

    async def build_order(self, side: str, token_id: str, size: float, price: float) -> Any:
        return {"side": side, "token_id": token_id, "size": size, "price": price}

    async def submit_order(self, signed_order: Any, mode: OrderMode) -> Dict[str, Any]:
        order_id = f"SIM-{datetime.utcnow().timestamp()}"
        status = "live" if mode is OrderMode.MAKER else "matched"

        logger.info(
            f"[SIMULATION] {mode.value} {signed_order['side']} "
            f"{signed_order['size']:.4f} @ ${signed_order['price']:.2f} -> {status}"
        )

        self._order_history.append({
            "timestamp": datetime.utcnow().isoformat(),
            "order_id": order_id,
            "mode": mode.value,
            "status": status,
            **signed_order,
        })
        return {"success": True, "orderID": order_id, "status": status}

    async def cancel_order(self, order_id: str) -> Dict[str, Any]:
        logger.info(f"[SIMULATION] Cancelled {order_id}")
        return {"canceled": [order_id]}

    def get_order_history(self) -> List[Dict]:
        """Get history of simulated orders"""
        return self._order_history.copy()
