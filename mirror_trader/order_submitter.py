"""
Order Formatter & Submitter

Turns a raw share amount and price into an exchange-legal order, submits
it, and reports how many shares filled. Nothing raised by the gateway gets
past this layer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from loguru import logger

from .backoff import BackoffPolicy, resilient_call
from .exposure import ExposureLedger
from .formatting import fee_multiplier, floor_shares, format_price, round_cost_up
from .gateway import OrderMode
from .models import TradeSide


class OrderOutcome(Enum):
    """Result of one order attempt"""
    FILLED = "FILLED"
    RESTING = "RESTING"      # accepted onto the book, not (yet) matched
    UNFILLED = "UNFILLED"    # taker order found nothing to match
    REJECTED = "REJECTED"    # exchange refused the order
    FAILED = "FAILED"        # signing or network failure
    SKIPPED = "SKIPPED"      # never submitted (dust or insufficient balance)


# Exchange statuses for orders that did not match on submission
_RESTING_STATUSES = {"live", "delayed"}
_UNFILLED_STATUSES = {"unmatched"}


@dataclass(frozen=True)
class OrderRequest:
    """One formatted order; never reused after submission"""
    side: TradeSide
    token_id: str
    shares: float
    price: float
    mode: OrderMode
    fee_bps: float = 0.0

    @property
    def cost(self) -> float:
        """USDC notional, rounded up to the cent"""
        return round_cost_up(self.shares * self.price)

    @property
    def cost_with_fees(self) -> float:
        return self.cost * fee_multiplier(self.fee_bps)


@dataclass
class OrderResult:
    """Outcome of an order attempt"""
    outcome: OrderOutcome
    request: Optional[OrderRequest] = None
    order_id: Optional[str] = None
    filled_shares: float = 0.0
    error_message: Optional[str] = None

    @property
    def filled(self) -> bool:
        return self.outcome == OrderOutcome.FILLED and self.filled_shares > 0

    def to_dict(self) -> Dict:
        return {
            "result": self.outcome.value,
            "order_id": self.order_id,
            "side": self.request.side.value if self.request else None,
            "price": self.request.price if self.request else None,
            "size": self.request.shares if self.request else None,
            "filled": self.filled_shares,
            "error": self.error_message,
        }


class OrderSubmitter:
    """Formats, checks, signs and posts single orders"""

    def __init__(self, gateway, exposure: ExposureLedger, policy: Optional[BackoffPolicy] = None):
        self.gateway = gateway
        self.exposure = exposure
        self.policy = policy or BackoffPolicy()

    def format_request(
        self,
        side: TradeSide,
        token_id: str,
        raw_shares: float,
        raw_price: float,
        fee_bps: float,
        mode: OrderMode,
        min_size: float = 0.0,
    ) -> OrderRequest:
        # Resting orders must meet the market minimum; taker orders may fill partially
        shares = raw_shares if mode is OrderMode.TAKER else max(raw_shares, min_size)
        return OrderRequest(
            side=side,
            token_id=token_id,
            shares=floor_shares(shares),
            price=format_price(raw_price),
            mode=mode,
            fee_bps=fee_bps,
        )

    async def place(
        self,
        side: TradeSide,
        token_id: str,
        raw_shares: float,
        raw_price: float,
        fee_bps: float,
        mode: OrderMode,
        min_size: float = 0.0,
        available_balance: Optional[float] = None,
    ) -> OrderResult:
        request = self.format_request(side, token_id, raw_shares, raw_price, fee_bps, mode, min_size)

        if request.shares <= 0:
            return OrderResult(OrderOutcome.SKIPPED, request, error_message="Order size rounds to zero")

        if available_balance is not None and request.cost_with_fees > available_balance:
            logger.info(
                f"[SKIP ORDER] Not enough balance: need ${request.cost_with_fees:.4f}, "
                f"have ${available_balance:.4f}"
            )
            return OrderResult(OrderOutcome.SKIPPED, request, error_message="Insufficient balance")

        logger.debug(
            f"[ORDER] {mode.value} {side.value} {request.shares:.4f} @ ${request.price:.2f} "
            f"(cost ${request.cost:.2f}, fee {fee_bps:g}bps)"
        )

        try:
            signed_order = await resilient_call(
                self.gateway.build_order, side.value, token_id, request.shares, request.price,
                policy=self.policy, label="create_order", delay=self.policy.order_build_delay
            )
            if not signed_order:
                return OrderResult(OrderOutcome.FAILED, request, error_message="Order signing returned nothing")

            response = await resilient_call(
                self.gateway.submit_order, signed_order, mode,
                policy=self.policy, label="post_order"
            )
        except Exception as e:
            logger.error(f"[ORDER] {mode.value} {side.value} order failed: {e}")
            return OrderResult(OrderOutcome.FAILED, request, error_message=str(e))

        result = self._interpret(request, response or {})
        if result.filled:
            self.exposure.record_fill(token_id, side, result.filled_shares)
        return result

    async def submit(
        self,
        side: TradeSide,
        token_id: str,
        raw_shares: float,
        raw_price: float,
        fee_bps: float,
        mode: OrderMode = OrderMode.TAKER,
        min_size: float = 0.0,
        available_balance: Optional[float] = None,
    ) -> float:
        """Place an order and return the shares filled (0 on any failure)"""
        result = await self.place(
            side, token_id, raw_shares, raw_price, fee_bps, mode, min_size, available_balance
        )
        return result.filled_shares

    def _interpret(self, request: OrderRequest, response: Dict[str, Any]) -> OrderResult:
        order_id = response.get("orderID") or response.get("orderId")

        if not response.get("success"):
            error = response.get("errorMsg") or response.get("error") or "Order submission failed"
            logger.warning(f"[ORDER] Rejected: {error}")
            return OrderResult(OrderOutcome.REJECTED, request, order_id=order_id, error_message=str(error))

        status = str(response.get("status") or "matched").lower()
        if status in _RESTING_STATUSES:
            return OrderResult(OrderOutcome.RESTING, request, order_id=order_id)
        if status in _UNFILLED_STATUSES:
            return OrderResult(OrderOutcome.UNFILLED, request, order_id=order_id)

        return OrderResult(OrderOutcome.FILLED, request, order_id=order_id, filled_shares=request.shares)
