"""
Exposure Ledger

Net shares filled per token during this run. An approximation of what has
already been mirrored, not the source of truth for real holdings.
"""

from typing import Dict, Optional

from loguru import logger

from .models import TradeSide


class ExposureLedger:
    """
    token_id -> cumulative net filled shares

    Not synchronized: the engine runs on a single event loop. Deployments
    with several workers must shard tokens between them.
    """

    def __init__(self, initial: Optional[Dict[str, float]] = None):
        self._shares: Dict[str, float] = {}
        for token_id, shares in (initial or {}).items():
            self._shares[token_id] = max(0.0, shares)

    def shares(self, token_id: str) -> float:
        return self._shares.get(token_id, 0.0)

    def value(self, token_id: str, price: float) -> float:
        """USD value of the mirrored shares at the given price"""
        return self.shares(token_id) * price

    def record_fill(self, token_id: str, side: TradeSide, filled: float) -> float:
        """Apply a fill; buys add, sells subtract, never below zero"""
        delta = filled if side == TradeSide.BUY else -filled
        updated = max(0.0, self.shares(token_id) + delta)
        self._shares[token_id] = updated
        logger.info(f"[Exposure] Token {token_id[:12]}...: {updated:.4f} shares")
        return updated

    def snapshot(self) -> Dict[str, float]:
        return dict(self._shares)

    def __len__(self):
        return len(self._shares)
