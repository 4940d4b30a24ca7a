"""
Position sizing

How much to mirror for a trade event, and the exchange-minimum rule applied
to every order slice.
"""

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from .formatting import floor_cost, floor_shares
from .models import PositionSnapshot, TradeEvent


def enforce_minimum(
    est_shares: float,
    min_size: float,
    remaining_budget: float,
    price: float,
    fee_multiplier: float,
) -> float:
    """
    Lift an undersized slice to the market minimum, or give up on it

    Returns est_shares unchanged when it already meets the minimum, min_size
    when the remaining budget covers a minimum order, and 0 otherwise.
    """
    if est_shares >= min_size:
        return est_shares

    min_cost = min_size * price * fee_multiplier
    if remaining_budget < min_cost:
        return 0.0
    return min_size


def affordable_shares(budget: float, price: float, fee_multiplier: float) -> float:
    """
    Most shares whose cent-rounded cost plus fees stays within budget

    The order cost is rounded up to the cent, so the spendable amount is
    rounded down to the cent before converting to shares.
    """
    if budget <= 0 or price <= 0:
        return 0.0
    return floor_shares(floor_cost(budget / fee_multiplier) / price)


@dataclass(frozen=True)
class BuySizing:
    """Breakdown of a mirrored buy"""
    target_exposure_pct: float
    target_exposure_value: float
    current_exposure_value: float
    remaining_usdc: float


def portfolio_value(balance: float, position: Optional[PositionSnapshot], price: float) -> float:
    """Cash plus the position in the traded token, marked at the trade price"""
    return balance + (position.size if position else 0.0) * price


class PositionSizer:
    """
    Converts the target's trade into our order size

    Buys mirror the share of portfolio the target committed; sells mirror
    the fraction of the position the target let go.
    """

    def __init__(self, amplification: float = 1.0, mirror_sell_fraction: bool = True):
        self.amplification = amplification
        self.mirror_sell_fraction = mirror_sell_fraction

    def buy_budget(
        self,
        event: TradeEvent,
        follower_position: Optional[PositionSnapshot],
        target_position: Optional[PositionSnapshot],
        follower_balance: float,
        target_balance: float,
        current_exposure_value: float,
    ) -> BuySizing:
        target_portfolio = portfolio_value(target_balance, target_position, event.price)
        exposure_pct = event.usdc_size / max(target_portfolio, 1.0)

        follower_portfolio = portfolio_value(follower_balance, follower_position, event.price)
        target_value = exposure_pct * follower_portfolio * self.amplification

        remaining = max(0.0, target_value - current_exposure_value)
        remaining = min(remaining, max(0.0, follower_balance))

        logger.info(
            f"[BUY] Mirroring target exposure {exposure_pct:.2%}: "
            f"target ${target_value:.2f}, current ${current_exposure_value:.2f}, "
            f"to spend ${remaining:.6f}"
        )
        return BuySizing(
            target_exposure_pct=exposure_pct,
            target_exposure_value=target_value,
            current_exposure_value=current_exposure_value,
            remaining_usdc=remaining,
        )

    def sell_quantity(
        self,
        event: TradeEvent,
        follower_position: Optional[PositionSnapshot],
        target_position: Optional[PositionSnapshot],
    ) -> float:
        """
        Shares to sell after the target sold event.size

        target_position is the target's holding after the sale, so
        target.size + event.size is what they held before it.
        """
        if follower_position is None or follower_position.size <= 0:
            return 0.0

        quantity = follower_position.size
        if not self.mirror_sell_fraction or target_position is None:
            return quantity

        held_before = target_position.size + event.size
        if held_before <= 0:
            logger.warning(
                f"[SELL] Target held nothing before trade {event.id}, nothing to mirror"
            )
            return 0.0

        ratio = event.size / held_before
        logger.info(f"[SELL] Target sold {ratio:.2%} of their position")
        return quantity * ratio
