"""
Position Mirroring Strategy

Decides how much of a detected trade to mirror and drives the execution
loop until the size is met, liquidity runs out, the retry budget is spent
or the price moves too far from the target's fill.

State machine per event:
    IDLE -> SIZING -> EXECUTING -> (RETRY -> EXECUTING)* -> DONE
"""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

from loguru import logger

from .backoff import BackoffPolicy
from .config import Settings, TradingConstants
from .exposure import ExposureLedger
from .formatting import floor_shares, round_cost_up
from .metadata import MarketMetadata, MarketMetadataResolver
from .models import PositionSnapshot, TradeEvent, TradeSide
from .order_book import OrderBookAnalyzer
from .order_submitter import OrderSubmitter
from .sizing import PositionSizer, affordable_shares, enforce_minimum
from .smart_router import SmartOrderRouter


class TradeCondition(Enum):
    """What mirroring a trade event means for us"""
    BUY = "buy"
    SELL = "sell"
    MERGE = "merge"  # target bought the other outcome of a market we hold


class MirrorState(Enum):
    IDLE = "IDLE"
    SIZING = "SIZING"
    EXECUTING = "EXECUTING"
    RETRY = "RETRY"
    DONE = "DONE"


class ExitReason(Enum):
    """Why the execution loop stopped"""
    COMPLETED = "COMPLETED"
    NOTHING_TO_DO = "NOTHING_TO_DO"
    NO_LIQUIDITY = "NO_LIQUIDITY"
    PRICE_DRIFT = "PRICE_DRIFT"
    BELOW_MINIMUM = "BELOW_MINIMUM"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"


@dataclass
class MirrorOutcome:
    """Summary of one mirrored trade event"""
    condition: TradeCondition
    token_id: str
    requested: float           # USDC for buys, shares for sells/merges
    filled_shares: float = 0.0
    attempts: int = 0
    exit_reason: ExitReason = ExitReason.NOTHING_TO_DO

    def to_dict(self) -> Dict:
        return {
            "condition": self.condition.value,
            "token_id": self.token_id,
            "requested": self.requested,
            "filled": self.filled_shares,
            "attempts": self.attempts,
            "exit": self.exit_reason.value,
        }


Handler = Callable[..., Awaitable[MirrorOutcome]]


def _on_token(position: Optional[PositionSnapshot], token_id: str) -> Optional[PositionSnapshot]:
    if position is None or position.token_id != token_id:
        return None
    return position


class PositionMirroringStrategy:
    """
    Mirrors one trade event at a time

    Attempts for an event are strictly sequential and events are expected to
    be fed serially; the exposure ledger relies on that.
    """

    def __init__(
        self,
        resolver: MarketMetadataResolver,
        analyzer: OrderBookAnalyzer,
        router: SmartOrderRouter,
        sizer: PositionSizer,
        exposure: ExposureLedger,
        ledger,
        policy: Optional[BackoffPolicy] = None,
        retry_limit: int = 3,
        slippage_tolerance: float = 0.05,
    ):
        self.resolver = resolver
        self.analyzer = analyzer
        self.router = router
        self.sizer = sizer
        self.exposure = exposure
        self.ledger = ledger
        self.policy = policy or BackoffPolicy()
        self.retry_limit = retry_limit
        self.slippage_tolerance = slippage_tolerance
        self.state = MirrorState.IDLE

        self._handlers: Dict[TradeCondition, Handler] = {
            TradeCondition.BUY: self._mirror_buy,
            TradeCondition.SELL: self._mirror_sell,
            TradeCondition.MERGE: self._mirror_merge,
        }

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        gateway,
        ledger,
        exposure: Optional[ExposureLedger] = None,
    ) -> "PositionMirroringStrategy":
        """Wire up the full engine around one gateway"""
        policy = BackoffPolicy.from_settings(settings)
        exposure = exposure if exposure is not None else ExposureLedger()
        submitter = OrderSubmitter(gateway, exposure, policy)
        return cls(
            resolver=MarketMetadataResolver(gateway, policy),
            analyzer=OrderBookAnalyzer(gateway, policy),
            router=SmartOrderRouter(
                submitter,
                price_tick=settings.price_tick,
                maker_wait_seconds=settings.maker_wait_seconds,
                policy=policy,
            ),
            sizer=PositionSizer(settings.amplification, settings.mirror_sell_fraction),
            exposure=exposure,
            ledger=ledger,
            policy=policy,
            retry_limit=settings.retry_limit,
            slippage_tolerance=settings.slippage_tolerance,
        )

    async def execute(
        self,
        condition: TradeCondition,
        follower_position: Optional[PositionSnapshot],
        target_position: Optional[PositionSnapshot],
        event: TradeEvent,
        follower_balance: float,
        target_balance: float,
    ) -> None:
        """
        Mirror a trade event, then mark it processed

        The event is closed however much was filled; partial and zero fills
        are not requeued.
        """
        outcome = await self.mirror(
            condition, follower_position, target_position, event, follower_balance, target_balance
        )
        await self.ledger.mark_processed(event)
        logger.info(
            f"[DONE] Trade {event.id} {condition.value}: filled {outcome.filled_shares:.4f} shares "
            f"in {outcome.attempts} attempts ({outcome.exit_reason.value})"
        )

    async def mirror(
        self,
        condition: TradeCondition,
        follower_position: Optional[PositionSnapshot],
        target_position: Optional[PositionSnapshot],
        event: TradeEvent,
        follower_balance: float,
        target_balance: float,
    ) -> MirrorOutcome:
        logger.info(
            f"Incoming trade {event.id}: {event.side.value} {event.size:.4f} @ {event.price:.4f} "
            f"(${event.usdc_size:.2f}) token {event.token_id[:12]}..."
        )
        logger.info(f"[Balance] Follower ${follower_balance:.2f}, target ${target_balance:.2f}")

        self._transition(MirrorState.SIZING)
        metadata = await self.resolver.resolve(event.market_id)

        outcome = await self._handlers[condition](
            event, metadata, follower_position, target_position, follower_balance, target_balance
        )
        self._transition(MirrorState.DONE)
        return outcome

    async def _mirror_buy(
        self,
        event: TradeEvent,
        metadata: MarketMetadata,
        follower_position: Optional[PositionSnapshot],
        target_position: Optional[PositionSnapshot],
        follower_balance: float,
        target_balance: float,
    ) -> MirrorOutcome:
        token_id = event.token_id
        fee_mult = metadata.fee_multiplier
        sizing = self.sizer.buy_budget(
            event, follower_position, target_position, follower_balance, target_balance,
            current_exposure_value=self.exposure.value(token_id, event.price),
        )
        outcome = MirrorOutcome(TradeCondition.BUY, token_id, requested=sizing.remaining_usdc)

        remaining = sizing.remaining_usdc
        available = follower_balance
        retry = 0

        while True:
            if remaining < TradingConstants.DUST:
                outcome.exit_reason = ExitReason.COMPLETED if outcome.attempts else ExitReason.NOTHING_TO_DO
                break
            if retry >= self.retry_limit:
                outcome.exit_reason = ExitReason.RETRY_EXHAUSTED
                break

            self._transition(MirrorState.RETRY if retry else MirrorState.EXECUTING)
            if self.policy.should_delay(retry):
                await self.policy.sleep_adaptive(remaining)

            ask = await self.analyzer.best_opposing(token_id, TradeSide.BUY)
            if ask is None:
                outcome.exit_reason = ExitReason.NO_LIQUIDITY
                break
            if self._price_drifted(event.price, ask.price):
                outcome.exit_reason = ExitReason.PRICE_DRIFT
                break

            est_shares = min(affordable_shares(min(remaining, available), ask.price, fee_mult), ask.size)
            shares = enforce_minimum(est_shares, metadata.min_order_size, remaining, ask.price, fee_mult)
            if shares <= 0:
                logger.info(
                    f"[SKIP ORDER] ${remaining:.6f} left cannot cover the minimum of "
                    f"{metadata.min_order_size:g} shares at ${ask.price:.2f}"
                )
                outcome.exit_reason = ExitReason.BELOW_MINIMUM
                break
            if shares > est_shares:
                logger.info(f"[MIN ORDER ENFORCED] {est_shares:.6f} -> {shares:g} shares")

            shares = floor_shares(shares)
            logger.info(
                f"[BUY] Attempting {shares} shares at ${ask.price:.2f}, "
                f"${remaining:.6f} left to spend"
            )

            outcome.attempts += 1
            filled = await self.router.route(
                TradeSide.BUY, token_id, shares, ask.price,
                metadata.taker_fee_bps, metadata.min_order_size, fee_mult,
                available_balance=available,
            )
            if filled > 0:
                spent = round_cost_up(filled * ask.price) * fee_mult
                remaining -= spent
                available -= spent
                outcome.filled_shares += filled
                retry = 0
                logger.info(f"[BUY FILLED] {filled} shares (cost ${spent:.6f}), ${remaining:.6f} left")
            else:
                retry += 1
                logger.warning(f"[BUY] Attempt returned no fill ({retry}/{self.retry_limit})")

        return outcome

    async def _mirror_sell(
        self,
        event: TradeEvent,
        metadata: MarketMetadata,
        follower_position: Optional[PositionSnapshot],
        target_position: Optional[PositionSnapshot],
        follower_balance: float,
        target_balance: float,
    ) -> MirrorOutcome:
        # Positions on the other outcome of the market say nothing about this token
        follower_position = _on_token(follower_position, event.token_id)
        target_position = _on_token(target_position, event.token_id)
        quantity = self.sizer.sell_quantity(event, follower_position, target_position)
        return await self._liquidate(
            TradeCondition.SELL, event, metadata, event.token_id, quantity, check_drift=True
        )

    async def _mirror_merge(
        self,
        event: TradeEvent,
        metadata: MarketMetadata,
        follower_position: Optional[PositionSnapshot],
        target_position: Optional[PositionSnapshot],
        follower_balance: float,
        target_balance: float,
    ) -> MirrorOutcome:
        if follower_position is None or follower_position.size <= 0:
            logger.info("No position to merge")
            return MirrorOutcome(TradeCondition.MERGE, event.token_id, requested=0.0)

        # We hold the opposite outcome; the event price belongs to the other token
        return await self._liquidate(
            TradeCondition.MERGE, event, metadata, follower_position.token_id,
            follower_position.size, check_drift=False,
        )

    async def _liquidate(
        self,
        condition: TradeCondition,
        event: TradeEvent,
        metadata: MarketMetadata,
        token_id: str,
        quantity: float,
        check_drift: bool,
    ) -> MirrorOutcome:
        outcome = MirrorOutcome(condition, token_id, requested=quantity)
        if quantity <= 0:
            logger.info(f"No position to {condition.value}")
            return outcome

        logger.info(f"[{condition.name}] Selling {quantity:.4f} shares of {token_id[:12]}...")
        remaining = quantity
        retry = 0

        while True:
            if remaining < TradingConstants.DUST:
                outcome.exit_reason = ExitReason.COMPLETED
                break
            if retry >= self.retry_limit:
                outcome.exit_reason = ExitReason.RETRY_EXHAUSTED
                break

            self._transition(MirrorState.RETRY if retry else MirrorState.EXECUTING)
            if self.policy.should_delay(retry):
                await self.policy.sleep_adaptive(remaining)

            bid = await self.analyzer.best_opposing(token_id, TradeSide.SELL)
            if bid is None:
                outcome.exit_reason = ExitReason.NO_LIQUIDITY
                break
            if check_drift and self._price_drifted(event.price, bid.price):
                outcome.exit_reason = ExitReason.PRICE_DRIFT
                break

            # Sells need shares, not cash: the budget is what we still hold
            est_shares = min(remaining, bid.size)
            shares = floor_shares(enforce_minimum(
                est_shares, metadata.min_order_size, remaining * bid.price, bid.price, 1.0
            ))
            if shares <= 0:
                logger.info(
                    f"[SKIP ORDER] {remaining:.4f} shares left is below the minimum of "
                    f"{metadata.min_order_size:g}"
                )
                outcome.exit_reason = ExitReason.BELOW_MINIMUM
                break

            outcome.attempts += 1
            filled = await self.router.route(
                TradeSide.SELL, token_id, shares, bid.price,
                metadata.taker_fee_bps, metadata.min_order_size, metadata.fee_multiplier,
            )
            if filled > 0:
                remaining -= filled
                outcome.filled_shares += filled
                retry = 0
                logger.info(f"[{condition.name} FILLED] {filled} shares at ${bid.price:.2f}, {remaining:.4f} left")
            else:
                retry += 1
                logger.warning(f"[{condition.name}] Attempt returned no fill ({retry}/{self.retry_limit})")

        return outcome

    def _price_drifted(self, event_price: float, book_price: float) -> bool:
        drift = abs(book_price - event_price)
        # A drift equal to the tolerance is accepted
        if drift > self.slippage_tolerance + 1e-9:
            logger.info(
                f"[SLIPPAGE] Book ${book_price:.2f} is {drift:.4f} away from the target's "
                f"${event_price:.2f}, abandoning"
            )
            return True
        return False

    def _transition(self, state: MirrorState):
        if state != self.state:
            logger.debug(f"[STATE] {self.state.value} -> {state.value}")
            self.state = state
