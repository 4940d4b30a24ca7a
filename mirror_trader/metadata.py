"""
Market Metadata Resolver
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from loguru import logger

from .backoff import BackoffPolicy, resilient_call
from .config import TradingConstants
from .formatting import fee_multiplier


@dataclass(frozen=True)
class MarketMetadata:
    """Fee schedule and order size floor for one market"""
    maker_fee_bps: float = 0.0
    taker_fee_bps: float = 0.0
    min_order_size: float = TradingConstants.DEFAULT_MIN_ORDER_SIZE

    @property
    def fee_multiplier(self) -> float:
        # Orders may cross as takers, so size against the taker fee
        return fee_multiplier(self.taker_fee_bps)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MarketMetadata":
        """Create MarketMetadata from a CLOB market record"""
        data = data or {}
        min_size = _as_float(data.get("minimum_order_size", data.get("min_order_size")))
        return cls(
            maker_fee_bps=_as_float(data.get("maker_base_fee")),
            taker_fee_bps=_as_float(data.get("taker_base_fee")),
            min_order_size=min_size if min_size > 0 else TradingConstants.DEFAULT_MIN_ORDER_SIZE,
        )


FALLBACK_METADATA = MarketMetadata()


def _as_float(value: Any) -> float:
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


class MarketMetadataResolver:
    """Looks up fees and minimum order size, never failing the caller"""

    def __init__(self, gateway, policy: Optional[BackoffPolicy] = None):
        self.gateway = gateway
        self.policy = policy or BackoffPolicy()

    async def resolve(self, market_id: str) -> MarketMetadata:
        try:
            market = await resilient_call(
                self.gateway.resolve_market, market_id,
                policy=self.policy, label=f"get_market {market_id[:12]}"
            )
        except Exception as e:
            logger.warning(f"[CLOB] Could not fetch fees/min size for {market_id}, using fallback: {e}")
            return FALLBACK_METADATA

        metadata = MarketMetadata.from_dict(market)
        logger.info(
            f"[CLOB] Market {market_id[:12]}... maker fee {metadata.maker_fee_bps:g}bps, "
            f"taker fee {metadata.taker_fee_bps:g}bps, min size {metadata.min_order_size:g}"
        )
        return metadata
