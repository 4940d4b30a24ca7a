import pytest
from unittest.mock import AsyncMock

from mirror_trader.exposure import ExposureLedger
from mirror_trader.gateway import OrderMode
from mirror_trader.models import TradeSide
from mirror_trader.order_submitter import OrderSubmitter
from mirror_trader.smart_router import SmartOrderRouter


def maker_fills(signed_order, mode):
    return {"success": True, "status": "matched", "orderID": f"{mode.value}-1"}


def maker_rejected(signed_order, mode):
    if mode is OrderMode.MAKER:
        return {"success": False, "errorMsg": "order crosses book"}
    return {"success": True, "status": "matched", "orderID": "taker"}


def build_router(gateway, policy, exposure=None):
    submitter = OrderSubmitter(gateway, exposure if exposure is not None else ExposureLedger(), policy)
    return SmartOrderRouter(submitter, price_tick=0.01, maker_wait_seconds=0, policy=policy)


def test_maker_price_is_one_tick_inside(make_gateway, zero_policy):
    router = build_router(make_gateway(), zero_policy)

    assert router.maker_price(TradeSide.BUY, 0.50) == pytest.approx(0.49)
    assert router.maker_price(TradeSide.SELL, 0.50) == pytest.approx(0.51)


@pytest.mark.asyncio
async def test_filled_maker_skips_taker(make_gateway, zero_policy):
    gateway = make_gateway(responder=maker_fills)
    router = build_router(gateway, zero_policy)

    filled = await router.route(TradeSide.BUY, "token-yes", 25.0, 0.50, 0, 1, 1.0, available_balance=100.0)

    assert filled == pytest.approx(25.0)
    assert gateway.modes == [OrderMode.MAKER]
    assert gateway.cancelled == []


@pytest.mark.asyncio
async def test_resting_maker_is_cancelled_before_single_taker(make_gateway, zero_policy):
    gateway = make_gateway()
    exposure = ExposureLedger()
    router = build_router(gateway, zero_policy, exposure)

    filled = await router.route(TradeSide.BUY, "token-yes", 25.0, 0.50, 0, 1, 1.0, available_balance=100.0)

    assert filled == pytest.approx(25.0)
    assert gateway.modes == [OrderMode.MAKER, OrderMode.TAKER]
    assert gateway.cancelled == ["maker-0.49"]
    # Only the taker fill is counted
    assert exposure.shares("token-yes") == pytest.approx(25.0)


@pytest.mark.asyncio
async def test_rejected_maker_needs_no_cancel(make_gateway, zero_policy):
    gateway = make_gateway(responder=maker_rejected)
    router = build_router(gateway, zero_policy)

    filled = await router.route(TradeSide.SELL, "token-yes", 10.0, 0.50, 0, 1, 1.0)

    assert filled == pytest.approx(10.0)
    assert gateway.modes == [OrderMode.MAKER, OrderMode.TAKER]
    assert gateway.cancelled == []


@pytest.mark.asyncio
async def test_failed_cancel_skips_taker(make_gateway, zero_policy):
    gateway = make_gateway()
    gateway.cancel_order = AsyncMock(side_effect=RuntimeError("cancel refused"))
    router = build_router(gateway, zero_policy)

    filled = await router.route(TradeSide.BUY, "token-yes", 10.0, 0.50, 0, 1, 1.0)

    # The maker may still fill, so a taker now could double the position
    assert filled == 0
    assert gateway.modes == [OrderMode.MAKER]
    gateway.cancel_order.assert_awaited_once_with("maker-0.49")


@pytest.mark.asyncio
async def test_unfilled_taker_returns_zero(make_gateway, zero_policy):
    def nothing_matches(signed_order, mode):
        status = "live" if mode is OrderMode.MAKER else "unmatched"
        return {"success": True, "status": status, "orderID": mode.value}

    gateway = make_gateway(responder=nothing_matches)
    router = build_router(gateway, zero_policy)

    filled = await router.route(TradeSide.BUY, "token-yes", 10.0, 0.50, 0, 1, 1.0)

    assert filled == 0
    assert len(gateway.submitted) == 2
