"""
Smart Order Router

Tries a resting maker order one tick inside the spread for the lower fee,
then falls back to a single taker order at the best opposing price.
"""

import asyncio
from typing import Optional

from loguru import logger

from .backoff import BackoffPolicy, resilient_call
from .gateway import OrderMode
from .models import TradeSide
from .order_submitter import OrderOutcome, OrderResult, OrderSubmitter


class SmartOrderRouter:
    """Maker-then-taker execution on top of the OrderSubmitter"""

    def __init__(
        self,
        submitter: OrderSubmitter,
        price_tick: float = 0.01,
        maker_wait_seconds: float = 0.2,
        policy: Optional[BackoffPolicy] = None,
    ):
        self.submitter = submitter
        self.price_tick = price_tick
        self.maker_wait_seconds = maker_wait_seconds
        self.policy = policy or submitter.policy

    def maker_price(self, side: TradeSide, best_price: float) -> float:
        """One tick better than the best opposing level"""
        if side == TradeSide.BUY:
            return best_price - self.price_tick
        return best_price + self.price_tick

    async def route(
        self,
        side: TradeSide,
        token_id: str,
        shares: float,
        best_price: float,
        fee_bps: float,
        min_size: float,
        fee_multiplier: float,
        available_balance: Optional[float] = None,
    ) -> float:
        """Returns the shares filled this round (0 when neither order filled)"""
        maker_price = self.maker_price(side, best_price)
        logger.info(f"[SMART] Trying MAKER limit first at ${maker_price:.2f}")

        maker = await self.submitter.place(
            side, token_id, shares, maker_price, fee_bps, OrderMode.MAKER,
            min_size=min_size, available_balance=available_balance,
        )
        if maker.filled:
            logger.info(f"[SMART] Maker order filled {maker.filled_shares:.4f}")
            return maker.filled_shares

        if maker.outcome == OrderOutcome.RESTING and not await self._cancel_resting(maker):
            logger.warning("[SMART] Resting maker order may still fill, skipping taker this round")
            return 0.0

        await asyncio.sleep(self.maker_wait_seconds)

        logger.info(
            f"[SMART] Maker didn't fill ({maker.outcome.value}), switching to FAK taker "
            f"at ${best_price:.2f} (fee x{fee_multiplier:.4f})"
        )
        taker = await self.submitter.place(
            side, token_id, shares, best_price, fee_bps, OrderMode.TAKER,
            min_size=min_size, available_balance=available_balance,
        )
        if taker.filled:
            logger.info(f"[SMART] Taker order filled {taker.filled_shares:.4f}")
        return taker.filled_shares

    async def _cancel_resting(self, result: OrderResult) -> bool:
        """Pull an unfilled maker order; False when it may still be on the book"""
        if not result.order_id:
            return False
        try:
            await resilient_call(
                self.submitter.gateway.cancel_order, result.order_id,
                policy=self.policy, label="cancel"
            )
            logger.info(f"[SMART] Cancelled resting maker order {result.order_id}")
            return True
        except Exception as e:
            logger.error(f"[SMART] Failed to cancel resting order {result.order_id}: {e}")
            return False
