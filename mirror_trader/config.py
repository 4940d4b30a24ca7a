"""
Configuration module for the Polymarket Mirror Trader
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Accounts
    target_address: str = Field(default="", description="Address of the trader being mirrored")
    follower_address: str = Field(default="", description="Our proxy wallet address")
    private_key: str = Field(default="", description="Polygon wallet private key")
    signature_type: int = Field(default=2, description="0=EOA, 1=Magic, 2=browser proxy")

    # Polymarket API
    polymarket_host: str = Field(default="https://clob.polymarket.com")
    data_api_host: str = Field(default="https://data-api.polymarket.com")
    chain_id: int = Field(default=137)

    # Polygon RPC (tried in order)
    polygon_rpc_urls: List[str] = Field(
        default=["https://polygon-rpc.com", "https://polygon-bor-rpc.publicnode.com"]
    )
    usdc_address: str = Field(default="0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174")

    # Mirroring
    amplification: float = Field(default=1.0, description="Multiplier on mirrored buy exposure")
    mirror_sell_fraction: bool = Field(
        default=True, description="Sell the same fraction of our position the target sold"
    )
    slippage_tolerance: float = Field(default=0.05, description="Max price drift from the target's fill")
    price_tick: float = Field(default=0.01, description="Maker price improvement")
    maker_wait_seconds: float = Field(default=0.2, description="Pause before taker fallback")

    # Retries and pacing
    retry_limit: int = Field(default=3, description="Failed attempts allowed per trade event")
    fast_attempts: int = Field(default=2, description="Undelayed attempts before backing off")
    network_retries: int = Field(default=3)
    network_delay: float = Field(default=0.6)
    order_build_delay: float = Field(default=0.4)
    orderbook_delay: float = Field(default=0.35)
    jitter_fraction: float = Field(default=0.1)
    max_delay: float = Field(default=30.0)
    min_call_interval: float = Field(default=0.1, description="Global spacing between gateway calls")

    # Monitoring
    poll_interval: int = Field(default=1, description="Ledger polling interval in seconds")
    dry_run: bool = Field(default=False)

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./mirror_trader.db")

    # Logging
    log_level: str = Field(default="INFO")
    log_file: str = Field(default="logs/mirror_trader.log")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


def get_settings() -> Settings:
    """Get application settings"""
    return Settings()


# API Endpoints
class APIEndpoints:
    """Polymarket API endpoints"""

    # Data API
    POSITIONS = "/positions"


# Trading Constants
class TradingConstants:
    """Trading-related constants"""

    # Price bounds accepted by the exchange
    MIN_PRICE = 0.001
    MAX_PRICE = 0.999

    PRICE_DECIMALS = 2
    SIZE_DECIMALS = 4

    # Fallback metadata when a market lookup fails
    DEFAULT_MIN_ORDER_SIZE = 1.0

    # Remaining amounts below this are treated as done
    DUST = 0.0001

    USDC_DECIMALS = 6
