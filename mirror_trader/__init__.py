"""
Polymarket Mirror Trader

Mirrors a target trader's Polymarket activity with proportionally sized
orders from the follower's own funds.

Modules:
- config: Configuration management
- formatting: Exchange price/size/cost rounding
- backoff: Retry policy, call spacing and the resilient call wrapper
- gateway: py-clob-client order gateway
- metadata: Market fee / minimum size resolver
- order_book: Order book analyzer
- exposure: Session exposure ledger
- sizing: Position sizing and minimum order enforcement
- order_submitter: Order formatting and submission
- smart_router: Maker-then-taker routing
- strategy: Position mirroring strategy
- trade_ledger: Persistent trade ledger
- trade_executor: Ledger polling loop
- main: CLI entry point
"""

__version__ = "0.1.0"

from .config import get_settings, Settings
from .backoff import BackoffPolicy, resilient_call
from .exposure import ExposureLedger
from .gateway import ClobGateway, DryRunGateway, OrderMode
from .metadata import MarketMetadata, MarketMetadataResolver
from .models import PositionSnapshot, TradeEvent, TradeSide
from .order_book import BookLevel, OrderBookAnalyzer, OrderBookSnapshot
from .order_submitter import OrderOutcome, OrderResult, OrderSubmitter
from .sizing import PositionSizer, enforce_minimum
from .smart_router import SmartOrderRouter
from .strategy import PositionMirroringStrategy, TradeCondition, MirrorOutcome
from .trade_ledger import TradeLedger
from .trade_executor import MirrorExecutor

__all__ = [
    # Config
    "get_settings",
    "Settings",
    # Infrastructure
    "BackoffPolicy",
    "resilient_call",
    "ClobGateway",
    "DryRunGateway",
    "OrderMode",
    # Engine
    "ExposureLedger",
    "MarketMetadata",
    "MarketMetadataResolver",
    "BookLevel",
    "OrderBookAnalyzer",
    "OrderBookSnapshot",
    "OrderOutcome",
    "OrderResult",
    "OrderSubmitter",
    "PositionSizer",
    "enforce_minimum",
    "SmartOrderRouter",
    "PositionMirroringStrategy",
    "TradeCondition",
    "MirrorOutcome",
    # Models
    "PositionSnapshot",
    "TradeEvent",
    "TradeSide",
    # Persistence / loop
    "TradeLedger",
    "MirrorExecutor",
]
