import pytest

from mirror_trader.exposure import ExposureLedger
from mirror_trader.gateway import OrderMode
from mirror_trader.models import PositionSnapshot, TradeSide
from mirror_trader.strategy import ExitReason, TradeCondition


def deep_book(price: float, size: float = 1000.0):
    return {"bids": [{"price": str(price), "size": str(size)}],
            "asks": [{"price": str(price), "size": str(size)}]}


def never_fills(signed_order, mode):
    if mode is OrderMode.MAKER:
        return {"success": True, "status": "live", "orderID": "maker"}
    return {"success": True, "status": "unmatched", "orderID": "taker"}


@pytest.mark.asyncio
async def test_buy_mirrors_target_exposure_and_marks_processed(make_gateway, build_strategy, make_event, recording_ledger):
    gateway = make_gateway(books={"token-yes": deep_book(0.50)})
    exposure = ExposureLedger()
    strategy = build_strategy(gateway, exposure=exposure)
    event = make_event(side=TradeSide.BUY, price=0.50, usdc_size=100.0)

    # Target committed 10% of a $1000 portfolio; 10% of our $500 is $50
    await strategy.execute(TradeCondition.BUY, None, None, event, 500.0, 1000.0)

    assert gateway.modes == [OrderMode.MAKER, OrderMode.TAKER]
    assert gateway.cancelled == ["maker-0.49"]
    assert gateway.built[0]["price"] == pytest.approx(0.49)
    assert gateway.built[1]["price"] == pytest.approx(0.50)
    assert gateway.built[1]["size"] == pytest.approx(100.0)
    assert exposure.shares("token-yes") == pytest.approx(100.0)
    assert recording_ledger.processed == [event.id]


@pytest.mark.asyncio
async def test_buy_outcome_reports_completion(make_gateway, build_strategy, make_event):
    gateway = make_gateway(books={"token-yes": deep_book(0.50)})
    strategy = build_strategy(gateway)

    outcome = await strategy.mirror(TradeCondition.BUY, None, None, make_event(), 500.0, 1000.0)

    assert outcome.exit_reason == ExitReason.COMPLETED
    assert outcome.requested == pytest.approx(50.0)
    assert outcome.filled_shares == pytest.approx(100.0)
    assert outcome.attempts == 1


@pytest.mark.asyncio
async def test_buy_abandons_when_price_drifted(make_gateway, build_strategy, make_event, recording_ledger):
    gateway = make_gateway(books={"token-yes": deep_book(0.58)})
    strategy = build_strategy(gateway)
    event = make_event(price=0.50)

    outcome = await strategy.mirror(TradeCondition.BUY, None, None, event, 500.0, 1000.0)

    assert outcome.exit_reason == ExitReason.PRICE_DRIFT
    assert gateway.submitted == []

    await strategy.execute(TradeCondition.BUY, None, None, event, 500.0, 1000.0)
    assert recording_ledger.processed == [event.id]


@pytest.mark.asyncio
async def test_buy_accepts_drift_equal_to_tolerance(make_gateway, build_strategy, make_event):
    gateway = make_gateway(books={"token-yes": deep_book(0.55)})
    strategy = build_strategy(gateway)

    outcome = await strategy.mirror(TradeCondition.BUY, None, None, make_event(price=0.50), 500.0, 1000.0)

    assert outcome.exit_reason != ExitReason.PRICE_DRIFT
    assert gateway.submitted


@pytest.mark.asyncio
async def test_buy_without_asks_exits_without_orders(make_gateway, build_strategy, make_event):
    gateway = make_gateway()
    strategy = build_strategy(gateway)

    outcome = await strategy.mirror(TradeCondition.BUY, None, None, make_event(), 500.0, 1000.0)

    assert outcome.exit_reason == ExitReason.NO_LIQUIDITY
    assert gateway.submitted == []


@pytest.mark.asyncio
async def test_buy_stops_after_retry_limit(make_gateway, build_strategy, make_event, recording_ledger):
    gateway = make_gateway(books={"token-yes": deep_book(0.50)}, responder=never_fills)
    strategy = build_strategy(gateway, retry_limit=3)
    event = make_event()

    outcome = await strategy.mirror(TradeCondition.BUY, None, None, event, 500.0, 1000.0)

    assert outcome.exit_reason == ExitReason.RETRY_EXHAUSTED
    assert outcome.attempts == 3
    assert outcome.filled_shares == 0
    # Each attempt is one maker plus exactly one taker
    assert gateway.modes == [OrderMode.MAKER, OrderMode.TAKER] * 3
    assert len(gateway.cancelled) == 3


@pytest.mark.asyncio
async def test_buy_skips_when_budget_cannot_cover_minimum(make_gateway, build_strategy, make_event):
    gateway = make_gateway(
        market={"maker_base_fee": 0, "taker_base_fee": 500, "minimum_order_size": 1},
        books={"token-yes": deep_book(0.50)},
    )
    strategy = build_strategy(gateway)
    # $0.40 to spend cannot buy one share at 0.50 with a 5% fee
    event = make_event(usdc_size=0.4)

    outcome = await strategy.mirror(TradeCondition.BUY, None, None, event, 100.0, 100.0)

    assert outcome.exit_reason == ExitReason.BELOW_MINIMUM
    assert gateway.submitted == []


@pytest.mark.asyncio
async def test_buy_subtracts_existing_exposure(make_gateway, build_strategy, make_event):
    gateway = make_gateway(books={"token-yes": deep_book(0.50)})
    exposure = ExposureLedger({"token-yes": 60.0})
    strategy = build_strategy(gateway, exposure=exposure)

    # $50 target minus $30 already mirrored
    outcome = await strategy.mirror(TradeCondition.BUY, None, None, make_event(), 500.0, 1000.0)

    assert outcome.requested == pytest.approx(20.0)
    assert outcome.filled_shares == pytest.approx(40.0)
    assert exposure.shares("token-yes") == pytest.approx(100.0)


@pytest.mark.asyncio
async def test_buy_uses_fallback_metadata_when_market_lookup_fails(make_gateway, build_strategy, make_event):
    gateway = make_gateway(market=RuntimeError("market lookup refused"), books={"token-yes": deep_book(0.50)})
    strategy = build_strategy(gateway)

    outcome = await strategy.mirror(TradeCondition.BUY, None, None, make_event(), 500.0, 1000.0)

    assert outcome.exit_reason == ExitReason.COMPLETED
    assert outcome.filled_shares == pytest.approx(100.0)


@pytest.mark.asyncio
async def test_buy_spending_all_cash_still_reaches_taker_with_fees(make_gateway, build_strategy, make_event):
    gateway = make_gateway(
        market={"maker_base_fee": 0, "taker_base_fee": 200, "minimum_order_size": 1},
        books={"token-yes": deep_book(0.33)},
    )
    strategy = build_strategy(gateway)
    # Target went all in, so the budget is clamped to our whole $50
    event = make_event(price=0.33, size=3030.0, usdc_size=1000.0)

    outcome = await strategy.mirror(TradeCondition.BUY, None, None, event, 50.0, 1000.0)

    assert OrderMode.TAKER in gateway.modes
    assert outcome.filled_shares == pytest.approx(148.5151)
    taker_order = gateway.submitted[-1][0]
    assert round(taker_order["size"] * taker_order["price"], 2) * 1.02 <= 50.0


@pytest.mark.asyncio
async def test_sell_mirrors_fraction_of_position(make_gateway, build_strategy, make_event):
    gateway = make_gateway(books={"token-yes": deep_book(0.50)})
    exposure = ExposureLedger({"token-yes": 100.0})
    strategy = build_strategy(gateway, exposure=exposure)
    follower = PositionSnapshot(token_id="token-yes", size=100.0)
    # Target sold 10 of the 50 shares they held
    target = PositionSnapshot(token_id="token-yes", size=40.0)
    event = make_event(side=TradeSide.SELL, size=10.0, price=0.50, usdc_size=5.0)

    outcome = await strategy.mirror(TradeCondition.SELL, follower, target, event, 500.0, 1000.0)

    assert outcome.exit_reason == ExitReason.COMPLETED
    assert outcome.requested == pytest.approx(20.0)
    assert outcome.filled_shares == pytest.approx(20.0)
    assert gateway.built[0]["side"] == "SELL"
    assert gateway.built[0]["price"] == pytest.approx(0.51)
    assert gateway.built[1]["price"] == pytest.approx(0.50)
    assert exposure.shares("token-yes") == pytest.approx(80.0)


@pytest.mark.asyncio
async def test_sell_with_zero_prior_holding_is_a_noop(make_gateway, build_strategy, make_event, recording_ledger):
    gateway = make_gateway(books={"token-yes": deep_book(0.50)})
    strategy = build_strategy(gateway)
    follower = PositionSnapshot(token_id="token-yes", size=100.0)
    target = PositionSnapshot(token_id="token-yes", size=0.0)
    event = make_event(side=TradeSide.SELL, size=0.0)

    await strategy.execute(TradeCondition.SELL, follower, target, event, 500.0, 1000.0)

    assert gateway.submitted == []
    assert recording_ledger.processed == [event.id]


@pytest.mark.asyncio
async def test_sell_without_follower_position_places_nothing(make_gateway, build_strategy, make_event):
    gateway = make_gateway(books={"token-yes": deep_book(0.50)})
    strategy = build_strategy(gateway)
    event = make_event(side=TradeSide.SELL, size=10.0)

    outcome = await strategy.mirror(TradeCondition.SELL, None, None, event, 500.0, 1000.0)

    assert outcome.exit_reason == ExitReason.NOTHING_TO_DO
    assert gateway.submitted == []


@pytest.mark.asyncio
async def test_merge_liquidates_the_opposite_outcome(make_gateway, build_strategy, make_event):
    # Bid on the held outcome is far from the event price; no drift check applies
    gateway = make_gateway(books={"token-yes": deep_book(0.40)})
    strategy = build_strategy(gateway)
    follower = PositionSnapshot(token_id="token-yes", size=30.0)
    target = PositionSnapshot(token_id="token-no", size=50.0)
    event = make_event(side=TradeSide.BUY, token_id="token-no", price=0.60)

    outcome = await strategy.mirror(TradeCondition.MERGE, follower, target, event, 500.0, 1000.0)

    assert outcome.condition == TradeCondition.MERGE
    assert outcome.token_id == "token-yes"
    assert outcome.filled_shares == pytest.approx(30.0)
    assert {order["token_id"] for order in gateway.built} == {"token-yes"}
    assert {order["side"] for order in gateway.built} == {"SELL"}


@pytest.mark.asyncio
async def test_merge_without_position_does_nothing(make_gateway, build_strategy, make_event):
    gateway = make_gateway(books={"token-yes": deep_book(0.40)})
    strategy = build_strategy(gateway)

    outcome = await strategy.mirror(TradeCondition.MERGE, None, None, make_event(), 500.0, 1000.0)

    assert outcome.exit_reason == ExitReason.NOTHING_TO_DO
    assert gateway.submitted == []


@pytest.mark.asyncio
async def test_sell_ignores_follower_position_on_other_outcome(make_gateway, build_strategy, make_event):
    gateway = make_gateway(books={"token-yes": deep_book(0.50), "token-no": deep_book(0.50)})
    strategy = build_strategy(gateway)
    follower = PositionSnapshot(token_id="token-no", size=100.0, condition_id="0xmarket")
    target = PositionSnapshot(token_id="token-yes", size=40.0, condition_id="0xmarket")
    event = make_event(side=TradeSide.SELL, token_id="token-yes", size=10.0)

    outcome = await strategy.mirror(TradeCondition.SELL, follower, target, event, 500.0, 1000.0)

    assert outcome.exit_reason == ExitReason.NOTHING_TO_DO
    assert gateway.submitted == []


@pytest.mark.asyncio
async def test_sell_exits_fully_when_target_only_holds_other_outcome(make_gateway, build_strategy, make_event):
    gateway = make_gateway(books={"token-yes": deep_book(0.50)})
    strategy = build_strategy(gateway)
    follower = PositionSnapshot(token_id="token-yes", size=100.0, condition_id="0xmarket")
    target = PositionSnapshot(token_id="token-no", size=40.0, condition_id="0xmarket")
    event = make_event(side=TradeSide.SELL, token_id="token-yes", size=10.0)

    outcome = await strategy.mirror(TradeCondition.SELL, follower, target, event, 500.0, 1000.0)

    assert outcome.requested == pytest.approx(100.0)
    assert outcome.filled_shares == pytest.approx(100.0)
    assert {order["token_id"] for order in gateway.built} == {"token-yes"}
