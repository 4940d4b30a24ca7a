"""
USDC Balance Oracle

Reads USDC balances straight from Polygon, falling back across RPC nodes.
"""

from typing import Dict, List, Optional

from loguru import logger
from web3 import AsyncWeb3

from .backoff import BackoffPolicy, resilient_call
from .config import Settings, TradingConstants, get_settings
from .errors import MirrorTradingError

# Minimal ERC20 ABI for balance reads
USDC_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    }
]


class BalanceUnavailableError(MirrorTradingError):
    """Every RPC endpoint failed to return a balance"""


class UsdcBalanceOracle:
    """USDC balance lookups with RPC fallback"""

    def __init__(self, settings: Optional[Settings] = None, policy: Optional[BackoffPolicy] = None):
        self.settings = settings or get_settings()
        self.rpc_urls: List[str] = list(self.settings.polygon_rpc_urls)
        self.policy = policy or BackoffPolicy.from_settings(self.settings)
        self._providers: Dict[str, AsyncWeb3] = {}

    def _web3(self, rpc_url: str) -> AsyncWeb3:
        if rpc_url not in self._providers:
            self._providers[rpc_url] = AsyncWeb3(
                AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": 10})
            )
        return self._providers[rpc_url]

    async def _balance_from(self, rpc_url: str, address: str) -> float:
        w3 = self._web3(rpc_url)
        contract = w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(self.settings.usdc_address),
            abi=USDC_ABI,
        )
        raw = await contract.functions.balanceOf(AsyncWeb3.to_checksum_address(address)).call()
        return raw / 10 ** TradingConstants.USDC_DECIMALS

    async def get_balance(self, address: str) -> float:
        """USDC balance of address in dollars"""
        last_error: Optional[Exception] = None
        for rpc_url in self.rpc_urls:
            try:
                return await resilient_call(
                    self._balance_from, rpc_url, address,
                    policy=self.policy, label=f"balanceOf via {rpc_url}"
                )
            except Exception as e:
                logger.warning(f"RPC {rpc_url} failed to read balance of {address[:10]}...: {e}")
                last_error = e

        raise BalanceUnavailableError(f"No RPC endpoint returned a balance for {address}") from last_error
