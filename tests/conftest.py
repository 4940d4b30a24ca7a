"""Pytest configuration and shared fakes for the mirror trader tests."""

import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
import pytest_asyncio

PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from mirror_trader.backoff import BackoffPolicy
from mirror_trader.exposure import ExposureLedger
from mirror_trader.gateway import OrderMode
from mirror_trader.metadata import MarketMetadataResolver
from mirror_trader.models import TradeEvent, TradeSide
from mirror_trader.order_book import OrderBookAnalyzer
from mirror_trader.order_submitter import OrderSubmitter
from mirror_trader.sizing import PositionSizer
from mirror_trader.smart_router import SmartOrderRouter
from mirror_trader.strategy import PositionMirroringStrategy
from mirror_trader.trade_ledger import TradeLedger


def resting_maker_filled_taker(signed_order: Dict, mode: OrderMode) -> Dict:
    """Default exchange behaviour: maker orders rest, taker orders fill"""
    if mode is OrderMode.MAKER:
        return {"success": True, "status": "live", "orderID": f"maker-{signed_order['price']}"}
    return {"success": True, "status": "matched", "orderID": "taker"}


class FakeGateway:
    """In-memory stand-in for ClobGateway that records every call"""

    def __init__(
        self,
        market: Any = None,
        books: Optional[Dict[str, Any]] = None,
        responder: Callable[[Dict, OrderMode], Dict] = resting_maker_filled_taker,
    ):
        self.market = market if market is not None else {
            "maker_base_fee": 0, "taker_base_fee": 0, "minimum_order_size": 1,
        }
        self.books = books or {}
        self.responder = responder
        self.book_requests: List[str] = []
        self.built: List[Dict] = []
        self.submitted: List[tuple] = []
        self.cancelled: List[str] = []

    async def resolve_market(self, market_id: str):
        if isinstance(self.market, Exception):
            raise self.market
        return self.market

    async def fetch_order_book(self, token_id: str):
        self.book_requests.append(token_id)
        book = self.books.get(token_id)
        if isinstance(book, Exception):
            raise book
        if book is None:
            return {"bids": [], "asks": []}
        return book

    async def build_order(self, side: str, token_id: str, size: float, price: float):
        order = {"side": side, "token_id": token_id, "size": size, "price": price}
        self.built.append(order)
        return order

    async def submit_order(self, signed_order, mode: OrderMode):
        self.submitted.append((signed_order, mode))
        return self.responder(signed_order, mode)

    async def cancel_order(self, order_id: str):
        self.cancelled.append(order_id)
        return {"canceled": [order_id]}

    @property
    def modes(self) -> List[OrderMode]:
        return [mode for _, mode in self.submitted]


@pytest.fixture
def zero_policy():
    """Backoff policy with every delay set to zero"""
    return BackoffPolicy(
        max_attempts=3,
        base_delay=0.0,
        order_build_delay=0.0,
        orderbook_delay=0.0,
        jitter_fraction=0.0,
        max_delay=0.0,
        fast_attempts=2,
    )


@pytest.fixture
def make_event():
    def _make(
        side: TradeSide = TradeSide.BUY,
        size: float = 200.0,
        price: float = 0.50,
        usdc_size: float = 100.0,
        token_id: str = "token-yes",
        market_id: str = "0xmarket",
        event_id: int = 1,
        retry_count: int = 0,
    ) -> TradeEvent:
        return TradeEvent(
            id=event_id,
            market_id=market_id,
            token_id=token_id,
            side=side,
            size=size,
            price=price,
            usdc_size=usdc_size,
            detected_at=datetime(2026, 1, 1, 12, 0, 0),
            retry_count=retry_count,
        )
    return _make


class RecordingLedger:
    """Trade ledger double that records lifecycle updates"""

    def __init__(self):
        self.processed: List[int] = []
        self.failures: List[int] = []

    async def mark_processed(self, event: TradeEvent):
        self.processed.append(event.id)

    async def record_failure(self, event: TradeEvent):
        self.failures.append(event.id)


@pytest.fixture
def recording_ledger():
    return RecordingLedger()


@pytest.fixture
def build_strategy(zero_policy, recording_ledger):
    def _build(
        gateway: FakeGateway,
        exposure: Optional[ExposureLedger] = None,
        amplification: float = 1.0,
        mirror_sell_fraction: bool = True,
        retry_limit: int = 3,
        slippage_tolerance: float = 0.05,
    ) -> PositionMirroringStrategy:
        exposure = exposure if exposure is not None else ExposureLedger()
        submitter = OrderSubmitter(gateway, exposure, zero_policy)
        return PositionMirroringStrategy(
            resolver=MarketMetadataResolver(gateway, zero_policy),
            analyzer=OrderBookAnalyzer(gateway, zero_policy),
            router=SmartOrderRouter(submitter, price_tick=0.01, maker_wait_seconds=0, policy=zero_policy),
            sizer=PositionSizer(amplification, mirror_sell_fraction),
            exposure=exposure,
            ledger=recording_ledger,
            policy=zero_policy,
            retry_limit=retry_limit,
            slippage_tolerance=slippage_tolerance,
        )
    return _build


@pytest_asyncio.fixture
async def trade_ledger(tmp_path):
    ledger = await TradeLedger.open(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    yield ledger
    await ledger.close()


@pytest.fixture
def make_gateway():
    return FakeGateway
