"""
Data models for the Polymarket Mirror Trader

Plain dataclasses for the values the engine passes around, and the
SQLAlchemy table backing the trade ledger.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import (
    Column, String, Float, Integer, Boolean, DateTime, Enum as SQLEnum
)
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base

from .config import get_settings

Base = declarative_base()


class TradeSide(enum.Enum):
    """Side of the target's trade"""
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class TradeEvent:
    """A detected trade by the target trader, as stored in the ledger"""
    id: int
    market_id: str      # condition id
    token_id: str       # outcome token (asset) id
    side: TradeSide
    size: float
    price: float
    usdc_size: float
    detected_at: datetime
    retry_count: int = 0
    transaction_hash: str = ""

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "market_id": self.market_id,
            "token_id": self.token_id,
            "side": self.side.value,
            "size": self.size,
            "price": self.price,
            "usdc_size": self.usdc_size,
            "detected_at": self.detected_at.isoformat(),
            "retry_count": self.retry_count,
            "tx_hash": self.transaction_hash,
        }


@dataclass(frozen=True)
class PositionSnapshot:
    """A holder's position in one outcome token at a point in time"""
    token_id: str
    size: float
    condition_id: str = ""
    current_price: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict) -> "PositionSnapshot":
        """Create PositionSnapshot from a data API position"""
        return cls(
            token_id=str(data.get("asset", "")),
            size=float(data.get("size", 0) or 0),
            condition_id=str(data.get("conditionId", "")),
            current_price=float(data.get("curPrice", 0) or 0),
        )


class TradeActivity(Base):
    """
    Trade ledger row - one detected trade of the target trader
    """
    __tablename__ = "trade_activity"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_hash = Column(String(66), unique=True, nullable=False)

    market_id = Column(String(100), nullable=False, index=True)
    token_id = Column(String(100), nullable=False)
    side = Column(SQLEnum(TradeSide), nullable=False)
    size = Column(Float, nullable=False)
    price = Column(Float, nullable=False)
    usdc_size = Column(Float, nullable=False)

    # Execution bookkeeping
    processed = Column(Boolean, default=False, index=True)
    retry_count = Column(Integer, default=0)

    detected_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_event(self) -> TradeEvent:
        return TradeEvent(
            id=self.id,
            market_id=self.market_id,
            token_id=self.token_id,
            side=self.side,
            size=self.size,
            price=self.price,
            usdc_size=self.usdc_size,
            detected_at=self.detected_at,
            retry_count=self.retry_count or 0,
            transaction_hash=self.transaction_hash,
        )

    def __repr__(self):
        return (
            f"<TradeActivity({self.side.value} {self.size}@{self.price}, "
            f"processed={self.processed}, retries={self.retry_count})>"
        )


# Database initialization
async def init_db(database_url: Optional[str] = None):
    """Initialize database and create tables"""
    url = database_url or get_settings().database_url

    engine = create_async_engine(url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return engine
