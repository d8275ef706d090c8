"""
test_formatting.py — Tests for the tradelytics P&L display formatter.

Covers: every display format, sign and rounding rules, degraded ticks,
R-multiple N/A, currency conversion in dollars mode, unknown format,
rendered values parsing back to the computed figure.
Run: pytest tests/test_formatting.py -v
"""

from __future__ import annotations

import re
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from tradelytics.currency import CurrencyCode, ExchangeRates
from tradelytics.formatting import format_pnl_display
from tradelytics.instruments import custom_instrument, resolve_instrument
from tradelytics.models import DisplayFormat, InstrumentCategory, PnLCalculationResult
from tradelytics.pnl import calculate_instrument_pnl


def _make_result(
    adjusted: str,
    points: str = "0",
    pips: str | None = None,
    percentage: str = "0",
) -> PnLCalculationResult:
    return PnLCalculationResult(
        points=Decimal(points),
        pips=Decimal(pips if pips is not None else points),
        raw_pnl=Decimal(points),
        adjusted_pnl=Decimal(adjusted),
        percentage=Decimal(percentage),
    )


@pytest.fixture
def mnq_win() -> PnLCalculationResult:
    return calculate_instrument_pnl("MNQ", "long", "18000", "18020", "3")


@pytest.fixture
def eurusd_win() -> PnLCalculationResult:
    return calculate_instrument_pnl("EURUSD", "short", "1.0850", "1.0820", "10000")


# ===========================================================================
# Numeric formats
# ===========================================================================

class TestNumericFormats:

    def test_dollars(self, mnq_win):
        assert format_pnl_display(mnq_win, "dollars", "MNQ") == "+$120.00"

    def test_points(self, mnq_win):
        assert format_pnl_display(mnq_win, DisplayFormat.POINTS, "MNQ") == "+20.00 pts"

    def test_points_use_display_decimals(self):
        result = calculate_instrument_pnl("YM", "short", "39000", "39012", "1")
        assert format_pnl_display(result, "points", "YM") == "-12 pts"

    def test_pips_forex(self, eurusd_win):
        assert format_pnl_display(eurusd_win, "pips", "EURUSD") == "+30.0 pips"

    def test_pips_non_forex_shows_points(self, mnq_win):
        assert format_pnl_display(mnq_win, "pips", "MNQ") == "+20.00 pts"

    def test_ticks(self, mnq_win):
        assert format_pnl_display(mnq_win, "ticks", "MNQ") == "+80.0 ticks"

    def test_ticks_without_tick_size_shows_points(self):
        no_ticks = custom_instrument("NOTICK", "No tick", "other", "1", "0.01")
        no_ticks = replace(no_ticks, tick_size=None, tick_value=None)
        result = _make_result("5", points="5")
        text = format_pnl_display(result, "ticks", "NOTICK", custom_instruments=[no_ticks])
        assert text == "+5.00 ticks"

    def test_percentage(self, mnq_win):
        assert format_pnl_display(mnq_win, "percentage", "MNQ") == "+0.11%"

    def test_negative_percentage(self):
        result = _make_result("-10", points="-1", percentage="-2.345")
        assert format_pnl_display(result, "percentage", "AAPL") == "-2.35%"


# ===========================================================================
# R-multiple
# ===========================================================================

class TestRMultiple:

    def test_with_risk(self, mnq_win):
        assert format_pnl_display(mnq_win, "r-multiple", "MNQ", risk_amount=Decimal("60")) == "+2.00R"

    def test_loss(self):
        result = _make_result("-30")
        assert format_pnl_display(result, "r-multiple", "MNQ", risk_amount="60") == "-0.50R"

    @pytest.mark.parametrize("risk", [None, "0", Decimal("0"), "abc", "", Decimal("NaN"), object()])
    def test_missing_zero_or_unparseable_risk(self, mnq_win, risk):
        assert format_pnl_display(mnq_win, "r-multiple", "MNQ", risk_amount=risk) == "N/A"


# ===========================================================================
# Privacy
# ===========================================================================

class TestPrivacy:

    @pytest.mark.parametrize("adjusted,expected", [
        ("120", "+•••"),
        ("-5", "-•••"),
        ("0", "•••"),
    ])
    def test_masks(self, adjusted, expected):
        assert format_pnl_display(_make_result(adjusted), "privacy", "MNQ") == expected


# ===========================================================================
# Sign and rounding
# ===========================================================================

class TestSignAndRounding:

    def test_breakeven_has_no_sign(self):
        result = calculate_instrument_pnl("MNQ", "long", "18000", "18000", "1")
        assert format_pnl_display(result, "dollars", "MNQ") == "$0.00"
        assert format_pnl_display(result, "points", "MNQ") == "0.00 pts"
        assert format_pnl_display(result, "percentage", "MNQ") == "0.00%"

    def test_rounds_to_zero_has_no_sign(self):
        result = _make_result("-0.004", points="-0.001")
        assert format_pnl_display(result, "dollars", "MNQ") == "$0.00"
        assert format_pnl_display(result, "points", "MNQ") == "0.00 pts"

    def test_half_up(self):
        result = _make_result("0.125", points="0.125")
        assert format_pnl_display(result, "dollars", "MNQ") == "+$0.13"
        assert format_pnl_display(result, "points", "MNQ") == "+0.13 pts"

    def test_invalid_result_renders_neutral(self):
        result = calculate_instrument_pnl("MNQ", "long", "0", "1", "1")
        assert format_pnl_display(result, "dollars", "MNQ") == "$0.00"


# ===========================================================================
# Currency
# ===========================================================================

class TestCurrencyConversion:

    def test_static_rates(self, mnq_win):
        assert format_pnl_display(mnq_win, "dollars", "MNQ", currency="EUR") == "+€110.40"

    def test_snapshot_rates(self, mnq_win):
        snapshot = ExchangeRates(
            rates={CurrencyCode.USD: Decimal("1"), CurrencyCode.JPY: Decimal("150")},
            last_updated=datetime(2025, 1, 15, tzinfo=timezone.utc),
        )
        text = format_pnl_display(
            mnq_win, "dollars", "MNQ", currency=CurrencyCode.JPY, exchange_rates=snapshot,
        )
        assert text == "+¥18,000"

    def test_points_ignore_currency(self, mnq_win):
        assert format_pnl_display(mnq_win, "points", "MNQ", currency="GBP") == "+20.00 pts"

    def test_unknown_currency_raises(self, mnq_win):
        with pytest.raises(ValueError):
            format_pnl_display(mnq_win, "dollars", "MNQ", currency="XYZ")


def test_unknown_format_raises(mnq_win):
    with pytest.raises(ValueError):
        format_pnl_display(mnq_win, "bitcoins", "MNQ")


@pytest.mark.parametrize("fmt", [f.value for f in DisplayFormat])
def test_every_format_renders(mnq_win, fmt):
    text = format_pnl_display(mnq_win, fmt, "MNQ", risk_amount=Decimal("60"))
    assert isinstance(text, str) and text


# ===========================================================================
# Round trip: rendered number recovers the value within display precision
# ===========================================================================

_NUMBER = re.compile(r"([+-]?)[^\d]*([\d,]+(?:\.\d+)?)")

_POSITIONS = [
    ("MNQ", "18000", "18020.75", "3"),
    ("ES", "5000.25", "4987.5", "2"),
    ("EURUSD", "1.08503", "1.08217", "10000"),
    ("USDJPY", "151.234", "150.871", "5000"),
    ("AAPL", "180.37", "182.11", "100"),
    ("BTCUSD", "64000.5", "63120.25", "0.5"),
]


def _parse_number(text: str) -> Decimal:
    match = _NUMBER.match(text)
    assert match, text
    value = Decimal(match.group(2).replace(",", ""))
    return -value if match.group(1) == "-" else value


def _expected(result: PnLCalculationResult, fmt: str, symbol: str) -> tuple[Decimal, int]:
    config = resolve_instrument(symbol)
    if fmt == "dollars":
        return result.adjusted_pnl, 2
    if fmt == "percentage":
        return result.percentage, 2
    if fmt == "pips" and config.category == InstrumentCategory.FOREX:
        return result.pips, 1
    if fmt == "ticks":
        return result.points / config.tick_size, 1
    return result.points, config.display_decimals


@pytest.mark.parametrize("symbol,entry,exit_,size", _POSITIONS)
@pytest.mark.parametrize("direction", ["long", "short"])
@pytest.mark.parametrize("fmt", ["dollars", "points", "pips", "ticks", "percentage"])
def test_rendered_value_round_trips(symbol, entry, exit_, size, direction, fmt):
    result = calculate_instrument_pnl(symbol, direction, entry, exit_, size)
    assert result.is_valid

    text = format_pnl_display(result, fmt, symbol)
    parsed = _parse_number(text)
    expected, decimals = _expected(result, fmt, symbol)

    half_unit = Decimal(1).scaleb(-decimals) / 2
    assert abs(parsed - expected) <= half_unit
    if parsed != Decimal("0"):
        assert (parsed > 0) == (expected > 0)
