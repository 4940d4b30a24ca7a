import pytest

from mirror_trader.exposure import ExposureLedger
from mirror_trader.models import TradeSide


def test_unknown_token_has_no_exposure():
    ledger = ExposureLedger()

    assert ledger.shares("token-yes") == 0
    assert ledger.value("token-yes", 0.5) == 0
    assert len(ledger) == 0


def test_buys_add_and_sells_subtract():
    ledger = ExposureLedger()

    ledger.record_fill("token-yes", TradeSide.BUY, 100)
    ledger.record_fill("token-yes", TradeSide.SELL, 30)

    assert ledger.shares("token-yes") == pytest.approx(70)
    assert ledger.value("token-yes", 0.5) == pytest.approx(35)


def test_never_goes_negative():
    ledger = ExposureLedger({"token-yes": 10})

    assert ledger.record_fill("token-yes", TradeSide.SELL, 25) == 0
    assert ledger.shares("token-yes") == 0


def test_tokens_are_independent():
    ledger = ExposureLedger({"token-yes": 5, "token-no": -3})

    ledger.record_fill("token-no", TradeSide.BUY, 2)

    assert ledger.snapshot() == {"token-yes": 5, "token-no": 2}
