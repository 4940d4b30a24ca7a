"""
Order Book Analyzer

Fetches a fresh book on every call and picks the best level on the side
we would trade against.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger

from .backoff import BackoffPolicy, resilient_call
from .errors import ErrorKind, classify_error
from .models import TradeSide


@dataclass(frozen=True)
class BookLevel:
    """One price level"""
    price: float
    size: float


@dataclass
class OrderBookSnapshot:
    """Validated bids and asks for a token"""
    token_id: str
    bids: List[BookLevel] = field(default_factory=list)
    asks: List[BookLevel] = field(default_factory=list)

    @property
    def best_bid(self) -> Optional[BookLevel]:
        return max(self.bids, key=lambda level: level.price) if self.bids else None

    @property
    def best_ask(self) -> Optional[BookLevel]:
        return min(self.asks, key=lambda level: level.price) if self.asks else None

    @property
    def spread(self) -> Optional[float]:
        if not self.bids or not self.asks:
            return None
        return self.best_ask.price - self.best_bid.price

    @classmethod
    def from_dict(cls, data: Dict[str, Any], token_id: str) -> "OrderBookSnapshot":
        """Create OrderBookSnapshot from raw levels, dropping malformed ones"""
        return cls(
            token_id=token_id,
            bids=_parse_levels(data.get("bids")),
            asks=_parse_levels(data.get("asks")),
        )


def _positive_finite(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def _parse_levels(raw: Any) -> List[BookLevel]:
    levels = []
    for entry in raw or []:
        if not isinstance(entry, dict):
            continue
        price = _positive_finite(entry.get("price"))
        size = _positive_finite(entry.get("size"))
        if price is None or size is None:
            continue
        levels.append(BookLevel(price=price, size=size))
    return levels


class OrderBookAnalyzer:
    """Reads the live book for the mirroring loop"""

    def __init__(self, gateway, policy: Optional[BackoffPolicy] = None):
        self.gateway = gateway
        self.policy = policy or BackoffPolicy()

    async def snapshot(self, token_id: str) -> Optional[OrderBookSnapshot]:
        """
        Fetch and validate the book

        Returns None when the book is absent or cannot be fetched; callers
        treat that as terminal for the current trade.
        """
        try:
            raw = await resilient_call(
                self.gateway.fetch_order_book, token_id,
                policy=self.policy, label=f"get_order_book {token_id[:12]}"
            )
        except Exception as e:
            if classify_error(e) == ErrorKind.NOT_FOUND:
                logger.info(f"[BOOK] No order book for {token_id[:12]}...")
            else:
                logger.error(f"[BOOK] Failed to fetch order book for {token_id[:12]}...: {e}")
            return None

        return OrderBookSnapshot.from_dict(raw or {}, token_id)

    async def best_opposing(self, token_id: str, side: TradeSide) -> Optional[BookLevel]:
        """Lowest ask when buying, highest bid when selling"""
        book = await self.snapshot(token_id)
        if book is None:
            return None

        level = book.best_ask if side == TradeSide.BUY else book.best_bid
        if level is None:
            logger.info(f"[BOOK] No {'asks' if side == TradeSide.BUY else 'bids'} for {token_id[:12]}...")
        return level
