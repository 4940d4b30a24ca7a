"""
Error taxonomy for gateway, RPC and data API failures
"""

import asyncio
from enum import Enum
from typing import Optional

import aiohttp


class ErrorKind(Enum):
    """How a failed call should be handled"""
    TRANSIENT = "TRANSIENT"    # timeouts, dropped connections, RPC/signing glitches
    THROTTLED = "THROTTLED"    # HTTP 429 and 5xx
    NOT_FOUND = "NOT_FOUND"    # market or book absent
    REJECTED = "REJECTED"      # anything the exchange refused outright


class MirrorTradingError(Exception):
    """Base class for errors raised by the mirror trader"""


class GatewayError(MirrorTradingError):
    """Exchange gateway call failed"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MarketNotFoundError(GatewayError):
    """Market or order book does not exist"""

    def __init__(self, message: str):
        super().__init__(message, status_code=404)


# Substrings of messages raised by the signing stack / RPC nodes on flaky calls
TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "header not found",
    "missing revert data",
    "call_exception",
    "server_error",
    "connection reset",
)


def status_code_of(exc: BaseException) -> Optional[int]:
    """Extract an HTTP status code from the exception types we talk to"""
    if isinstance(exc, aiohttp.ClientResponseError):
        return exc.status
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception onto the retry taxonomy"""
    status = status_code_of(exc)
    if status is not None:
        if status == 404:
            return ErrorKind.NOT_FOUND
        if status == 429 or status >= 500:
            return ErrorKind.THROTTLED

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError,
                        aiohttp.ClientConnectionError)):
        return ErrorKind.TRANSIENT

    message = f"{getattr(exc, 'code', '')} {exc}".lower()
    if any(marker in message for marker in TRANSIENT_MARKERS):
        return ErrorKind.TRANSIENT

    return ErrorKind.REJECTED


def is_retryable(exc: BaseException) -> bool:
    return classify_error(exc) in (ErrorKind.TRANSIENT, ErrorKind.THROTTLED)
