"""
Trade Ledger

Persistent record of the target's detected trades and how far we got
mirroring each of them.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from .models import TradeActivity, TradeEvent, TradeSide, init_db


class TradeLedger:
    """SQLAlchemy-backed store of trade events"""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._sessionmaker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    @classmethod
    async def open(cls, database_url: Optional[str] = None) -> "TradeLedger":
        engine = await init_db(database_url)
        return cls(engine)

    @asynccontextmanager
    async def session(self):
        """Get async database session as context manager"""
        session = self._sessionmaker()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def add(
        self,
        transaction_hash: str,
        market_id: str,
        token_id: str,
        side: TradeSide,
        size: float,
        price: float,
        usdc_size: float,
        detected_at: Optional[datetime] = None,
    ) -> TradeEvent:
        """Record a newly detected trade"""
        async with self.session() as session:
            row = TradeActivity(
                transaction_hash=transaction_hash,
                market_id=market_id,
                token_id=token_id,
                side=side,
                size=size,
                price=price,
                usdc_size=usdc_size,
                detected_at=detected_at or datetime.utcnow(),
                processed=False,
                retry_count=0,
            )
            session.add(row)
            await session.flush()
            return row.to_event()

    async def pending(self, retry_limit: int) -> List[TradeEvent]:
        """Unprocessed trades still under the retry limit, oldest first"""
        async with self.session() as session:
            result = await session.execute(
                select(TradeActivity)
                .where(TradeActivity.processed.is_(False))
                .where(TradeActivity.retry_count < retry_limit)
                .order_by(TradeActivity.detected_at, TradeActivity.id)
            )
            return [row.to_event() for row in result.scalars().all()]

    async def get(self, event_id: int) -> Optional[TradeEvent]:
        async with self.session() as session:
            row = await session.get(TradeActivity, event_id)
            return row.to_event() if row else None

    async def update_one(
        self,
        event_id: int,
        processed: Optional[bool] = None,
        retry_count: Optional[int] = None,
    ):
        values = {}
        if processed is not None:
            values["processed"] = processed
        if retry_count is not None:
            values["retry_count"] = retry_count
        if not values:
            return

        async with self.session() as session:
            await session.execute(
                update(TradeActivity)
                .where(TradeActivity.id == event_id)
                .values(**values)
            )

    async def mark_processed(self, event: TradeEvent):
        """End the event's retry lifecycle, whatever was filled"""
        await self.update_one(event.id, processed=True, retry_count=event.retry_count + 1)
        logger.debug(f"Trade {event.id} marked processed")

    async def record_failure(self, event: TradeEvent):
        """Count a failed pass without closing the event"""
        await self.update_one(event.id, retry_count=event.retry_count + 1)
        logger.debug(f"Trade {event.id} retry count -> {event.retry_count + 1}")

    async def close(self):
        await self._engine.dispose()
