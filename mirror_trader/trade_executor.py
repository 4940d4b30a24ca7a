"""
Trade Execution Loop

Drains the trade ledger serially and hands each pending trade to the
mirroring strategy together with fresh positions and balances.
"""

import asyncio
from typing import Optional, Tuple

from loguru import logger

from .api_client import PolymarketDataClient
from .balance import UsdcBalanceOracle
from .config import Settings, get_settings
from .models import PositionSnapshot, TradeEvent, TradeSide
from .strategy import PositionMirroringStrategy, TradeCondition
from .trade_ledger import TradeLedger


def classify_condition(
    event: TradeEvent,
    follower_position: Optional[PositionSnapshot],
    target_position: Optional[PositionSnapshot],
) -> TradeCondition:
    """
    Decide how to mirror a trade

    A buy of one outcome while we hold the other outcome of the same market
    means the target switched sides, so we exit ours.
    """
    if event.side == TradeSide.SELL:
        return TradeCondition.SELL
    if (
        target_position is not None
        and follower_position is not None
        and follower_position.token_id != event.token_id
    ):
        return TradeCondition.MERGE
    return TradeCondition.BUY


class MirrorExecutor:
    """
    Polls the ledger and mirrors pending trades one at a time
    """

    def __init__(
        self,
        strategy: PositionMirroringStrategy,
        ledger: TradeLedger,
        data_client: PolymarketDataClient,
        balance_oracle: UsdcBalanceOracle,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.strategy = strategy
        self.ledger = ledger
        self.data_client = data_client
        self.balance_oracle = balance_oracle
        self._running = False

    async def _gather_context(
        self, event: TradeEvent
    ) -> Tuple[Optional[PositionSnapshot], Optional[PositionSnapshot], float, float]:
        target_positions = await self.data_client.get_positions(self.settings.target_address)
        follower_positions = await self.data_client.get_positions(self.settings.follower_address)

        target_position = self.data_client.find_position(target_positions, event.market_id, event.token_id)
        follower_position = self.data_client.find_position(follower_positions, event.market_id, event.token_id)

        follower_balance = await self.balance_oracle.get_balance(self.settings.follower_address)
        target_balance = await self.balance_oracle.get_balance(self.settings.target_address)
        return follower_position, target_position, follower_balance, target_balance

    async def process(self, event: TradeEvent) -> bool:
        """Mirror one trade; returns False when it must be retried on a later pass"""
        try:
            follower_position, target_position, follower_balance, target_balance = (
                await self._gather_context(event)
            )
            condition = classify_condition(event, follower_position, target_position)
            await self.strategy.execute(
                condition, follower_position, target_position, event,
                follower_balance, target_balance,
            )
            return True
        except Exception as e:
            logger.error(f"Mirroring trade {event.id} failed, will retry: {e}")
            await self.ledger.record_failure(event)
            return False

    async def run_once(self) -> int:
        """Process every pending trade, oldest first; returns how many were seen"""
        pending = await self.ledger.pending(self.settings.retry_limit)
        for event in pending:
            await self.process(event)
        return len(pending)

    async def run(self):
        """Poll the ledger until stopped"""
        self._running = True
        logger.info("Waiting for new trades...")

        while self._running:
            count = await self.run_once()
            if count:
                logger.info(f"Processed {count} pending trade(s), waiting for new trades...")
            await asyncio.sleep(self.settings.poll_interval)

    def stop(self):
        self._running = False

    async def close(self):
        """Cleanup resources"""
        await self.data_client.close()
        await self.ledger.close()
