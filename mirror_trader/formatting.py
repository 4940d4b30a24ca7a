"""
Exchange format helpers

Prices, share amounts and USDC costs have to match what the CLOB accepts,
and the sizing loop has to reproduce exactly the numbers an order will use.
"""

import math

from .config import TradingConstants

# Smallest and largest prices representable with PRICE_DECIMALS inside the bounds
_PRICE_STEP = 10 ** -TradingConstants.PRICE_DECIMALS
_LOWEST_PRICE = math.ceil(TradingConstants.MIN_PRICE / _PRICE_STEP) * _PRICE_STEP
_HIGHEST_PRICE = math.floor(TradingConstants.MAX_PRICE / _PRICE_STEP) * _PRICE_STEP


def clamp_price(price: float) -> float:
    """Clamp a raw price into the exchange's open price range"""
    return min(TradingConstants.MAX_PRICE, max(TradingConstants.MIN_PRICE, price))


def format_price(price: float) -> float:
    """Clamp and round a price to 2 decimals, staying inside the price range"""
    rounded = round(clamp_price(price), TradingConstants.PRICE_DECIMALS)
    return round(min(_HIGHEST_PRICE, max(_LOWEST_PRICE, rounded)), TradingConstants.PRICE_DECIMALS)


def floor_shares(amount: float) -> float:
    """Floor a share amount to 4 decimals (never rounds up)"""
    scale = 10 ** TradingConstants.SIZE_DECIMALS
    # The inner round() absorbs float noise such as 0.3 * 10000 == 2999.9999999999995
    return math.floor(round(amount * scale, 6)) / scale


def round_cost_up(cost: float) -> float:
    """Round a USDC cost up to the cent"""
    return math.ceil(round(cost * 100, 6)) / 100


def floor_cost(cost: float) -> float:
    """Round a USDC amount down to the cent"""
    return math.floor(round(cost * 100, 6)) / 100


def fee_multiplier(fee_bps: float) -> float:
    """Convert a fee rate in basis points to a cost multiplier"""
    return 1 + fee_bps / 10000
