"""
test_pnl.py — Tests for the tradelytics P&L calculator.

Covers: futures/stock/crypto/forex formulas, direction symmetry,
breakeven, fail-soft invalid inputs, risk amount, trade helpers.
Run: pytest tests/test_pnl.py -v
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from tradelytics.currency import CurrencyCode, ExchangeRates
from tradelytics.instruments import custom_instrument, default_registry
from tradelytics.models import Direction, Trade, TradeOutcome
from tradelytics.pnl import (
    calculate_instrument_pnl,
    calculate_risk_amount,
    calculate_trade_pnl,
    calculate_trade_risk,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_trade(
    instrument: str = "MNQ",
    direction: Direction = Direction.LONG,
    entry: str = "18000",
    exit_: str = "18020",
    size: str = "3",
    stop_loss: str | None = None,
) -> Trade:
    return Trade(
        trade_id="t-1",
        date=date(2025, 1, 15),
        instrument=instrument,
        direction=direction,
        entry_price=Decimal(entry),
        exit_price=Decimal(exit_),
        size=Decimal(size),
        outcome=TradeOutcome.WIN,
        pnl=Decimal("0"),
        stop_loss=Decimal(stop_loss) if stop_loss else None,
    )


def _make_rates(**overrides: str) -> ExchangeRates:
    rates = {
        CurrencyCode.USD: Decimal("1"),
        CurrencyCode.EUR: Decimal("0.90"),
        CurrencyCode.GBP: Decimal("0.80"),
        CurrencyCode.JPY: Decimal("150"),
        CurrencyCode.CAD: Decimal("1.35"),
        CurrencyCode.AUD: Decimal("1.50"),
        CurrencyCode.CHF: Decimal("0.90"),
    }
    for code, value in overrides.items():
        rates[CurrencyCode(code)] = Decimal(value)
    return ExchangeRates(rates=rates, last_updated=datetime(2025, 1, 15, tzinfo=timezone.utc))


# ===========================================================================
# Futures / stock / other
# ===========================================================================

class TestPointBasedInstruments:

    def test_mnq_long(self):
        result = calculate_instrument_pnl("MNQ", "long", "18000", "18020", "3")
        assert result.is_valid
        assert result.points == Decimal("20")
        assert result.pips == Decimal("20")
        assert result.raw_pnl == Decimal("60")
        assert result.adjusted_pnl == Decimal("120")
        assert result.outcome == TradeOutcome.WIN

    def test_es_short_loss(self):
        result = calculate_instrument_pnl("ES", Direction.SHORT, "5000", "5010.25", "2")
        assert result.points == Decimal("-10.25")
        assert result.adjusted_pnl == Decimal("-1025")
        assert result.outcome == TradeOutcome.LOSS

    def test_stock_multiplier_one(self):
        result = calculate_instrument_pnl("AAPL", "long", "180.50", "182.25", "100")
        assert result.adjusted_pnl == Decimal("175")

    def test_option_multiplier(self):
        result = calculate_instrument_pnl("SPY", "long", "2.10", "2.60", "3")
        assert result.adjusted_pnl == Decimal("150")

    def test_percentage(self):
        result = calculate_instrument_pnl("AAPL", "long", "200", "210", "1")
        assert result.percentage == Decimal("5")

    def test_unknown_symbol_uses_multiplier_one(self):
        misses: set[str] = set()
        result = calculate_instrument_pnl("ZZZZ", "long", "10", "12", "5", unresolved=misses)
        assert result.is_valid
        assert result.adjusted_pnl == Decimal("10")
        assert misses == {"ZZZZ"}

    def test_unknown_symbol_does_not_touch_default_registry(self):
        before = {k: dict(v) if isinstance(v, dict) else v for k, v in vars(default_registry).items()}
        calculate_instrument_pnl("QQQZZZ9", "long", "1", "2", "1")
        after = {k: dict(v) if isinstance(v, dict) else v for k, v in vars(default_registry).items()}
        assert after == before

    def test_custom_instrument(self):
        custom = custom_instrument("MYIDX", "Mine", "futures", "10", "0.5")
        result = calculate_instrument_pnl(
            "myidx", "long", "100", "101", "2", custom_instruments=[custom],
        )
        assert result.adjusted_pnl == Decimal("20")


# ===========================================================================
# Crypto
# ===========================================================================

class TestCrypto:

    def test_points_times_size(self):
        result = calculate_instrument_pnl("BTCUSD", "long", "60000", "61000", "0.5")
        assert result.adjusted_pnl == Decimal("500")

    def test_inferred_crypto_pair(self):
        result = calculate_instrument_pnl("SOLUSDT", "short", "150", "140", "10")
        assert result.adjusted_pnl == Decimal("100")


# ===========================================================================
# Forex
# ===========================================================================

class TestForex:

    def test_eurusd_short_mini_lot(self):
        result = calculate_instrument_pnl("EURUSD", "short", "1.0850", "1.0820", "10000")
        assert result.points == Decimal("0.0030")
        assert result.pips == Decimal("30")
        assert result.adjusted_pnl > Decimal("0")
        assert result.adjusted_pnl == Decimal("30")

    def test_usd_base_pair_uses_exit_price(self):
        result = calculate_instrument_pnl("USDJPY", "long", "150.00", "151.00", "100000")
        assert result.pips == Decimal("100")
        # 100 pips x (0.01 / 151) x 100000
        assert result.adjusted_pnl.quantize(Decimal("0.01")) == Decimal("662.25")

    def test_cross_pair_uses_rates_snapshot(self):
        rates = _make_rates(JPY="150")
        result = calculate_instrument_pnl(
            "EURJPY", "long", "160.00", "160.50", "10000", exchange_rates=rates,
        )
        assert result.pips == Decimal("50")
        # 50 pips x (0.01 / 150) x 10000
        assert result.adjusted_pnl.quantize(Decimal("0.01")) == Decimal("33.33")

    def test_cross_pair_static_rates_when_no_snapshot(self):
        result = calculate_instrument_pnl("EURGBP", "long", "0.8500", "0.8510", "10000")
        # 10 pips x (0.0001 / 0.79) x 10000
        assert result.adjusted_pnl.quantize(Decimal("0.01")) == Decimal("12.66")

    def test_unknown_quote_currency_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="tradelytics.pnl"):
            result = calculate_instrument_pnl("EURNZD", "long", "1.8000", "1.8010", "10000")
        assert result.is_valid
        # pip value left in NZD: 10 pips x 0.0001 x 10000
        assert result.adjusted_pnl == Decimal("10")
        assert "NZD" in caplog.text

    def test_direction_symmetry(self):
        long_ = calculate_instrument_pnl("GBPUSD", "long", "1.2700", "1.2750", "20000")
        short = calculate_instrument_pnl("GBPUSD", "short", "1.2700", "1.2750", "20000")
        assert long_.adjusted_pnl == -short.adjusted_pnl
        assert long_.pips == Decimal("50")


# ===========================================================================
# Breakeven and invalid inputs
# ===========================================================================

class TestEdgeCases:

    def test_breakeven(self):
        result = calculate_instrument_pnl("MNQ", "long", "18000", "18000", "3")
        assert result.is_valid
        assert result.points == Decimal("0")
        assert result.adjusted_pnl == Decimal("0")
        assert result.outcome == TradeOutcome.BREAKEVEN

    @pytest.mark.parametrize("entry,exit_,size", [
        ("0", "100", "1"),
        ("100", "-5", "1"),
        ("100", "101", "0"),
        ("NaN", "101", "1"),
        ("Infinity", "101", "1"),
        ("abc", "101", "1"),
        (None, "101", "1"),
    ])
    def test_invalid_numbers_zeroed(self, entry, exit_, size, caplog):
        with caplog.at_level(logging.DEBUG, logger="tradelytics.pnl"):
            result = calculate_instrument_pnl("MNQ", "long", entry, exit_, size)
        assert result.is_valid is False
        assert result.adjusted_pnl == Decimal("0")
        assert result.points == Decimal("0")
        assert "Rejected" in caplog.text

    def test_invalid_direction_zeroed(self):
        result = calculate_instrument_pnl("MNQ", "sideways", "1", "2", "1")
        assert result.is_valid is False


# ===========================================================================
# Risk amount and trade helpers
# ===========================================================================

class TestRiskAmount:

    def test_long_stop(self):
        risk = calculate_risk_amount("MNQ", "long", "18000", "17990", "3")
        assert risk == Decimal("60")

    def test_short_stop_is_positive(self):
        risk = calculate_risk_amount("ES", "short", "5000", "5004", "1")
        assert risk == Decimal("200")

    def test_no_stop(self):
        assert calculate_risk_amount("MNQ", "long", "18000", None, "3") is None

    def test_invalid_inputs(self):
        assert calculate_risk_amount("MNQ", "long", "18000", "0", "3") is None


class TestTradeHelpers:

    def test_calculate_trade_pnl(self):
        result = calculate_trade_pnl(_make_trade())
        assert result.adjusted_pnl == Decimal("120")

    def test_calculate_trade_risk(self):
        assert calculate_trade_risk(_make_trade(stop_loss="17995")) == Decimal("30")
        assert calculate_trade_risk(_make_trade()) is None

    def test_stored_negative_size_degrades(self):
        result = calculate_trade_pnl(_make_trade(size="-3"))
        assert result.is_valid is False
