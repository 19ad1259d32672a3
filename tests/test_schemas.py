"""Tests for swap_trader/schemas/trading.py"""

import pytest
from pydantic import ValidationError

from swap_trader.schemas import CancelReport, ContingentOrderSpec, Position


class TestPosition:
    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            Position(symbol="BTCUSDT", side="long", amount=-1)

    def test_unknown_side_rejected(self):
        with pytest.raises(ValidationError):
            Position(symbol="BTCUSDT", side="net", amount=1)


class TestContingentOrderSpec:
    def test_close_side_is_inverse_of_position(self):
        long_spec = ContingentOrderSpec(
            inst_id="BTC-USDT-SWAP", pos_side="long", kind="stop_loss", trigger_price="1", quantity="1"
        )
        short_spec = long_spec.model_copy(update={"pos_side": "short"})

        assert long_spec.close_side == "sell"
        assert short_spec.close_side == "buy"

    def test_take_profit_request(self):
        spec = ContingentOrderSpec(
            inst_id="ETH-USDT-SWAP", pos_side="short", kind="take_profit", trigger_price="2500.5", quantity="0.1"
        )
        assert spec.to_request() == {
            "instId": "ETH-USDT-SWAP",
            "tdMode": "isolated",
            "side": "buy",
            "posSide": "short",
            "ordType": "conditional",
            "sz": "0.1",
            "tpTriggerPx": "2500.5",
            "tpOrdPx": "-1",
        }


class TestCancelReport:
    def test_ok_without_errors(self):
        report = CancelReport(symbol="BTCUSDT", cancelled=["a"])
        assert report.ok

    def test_not_ok_with_errors(self):
        report = CancelReport(symbol="BTCUSDT", errors=["list stop_loss: timeout"])
        assert not report.ok
