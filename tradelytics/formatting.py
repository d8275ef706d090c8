"""
formatting.py — P&L display formatter for tradelytics.

Renders a PnLCalculationResult in the user's chosen display mode:

    dollars     +$120.00 / -€27.60 / +1,200.00 CHF
    points      +20.00 pts
    pips        +30.0 pips (forex), points otherwise
    ticks       +80.0 ticks
    percentage  +0.11%
    r-multiple  +2.00R, "N/A" without a risk amount
    privacy     +••• / -••• / •••

Rounding is half-up. A value that rounds to zero carries no sign.
No network or cache access: conversion uses the snapshot passed in.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

from tradelytics.currency import (
    CurrencyCode,
    ExchangeRates,
    convert_currency,
    format_currency_value,
)
from tradelytics.instruments import InstrumentRegistry, default_registry
from tradelytics.models import (
    DisplayFormat,
    InstrumentCategory,
    InstrumentConfig,
    PnLCalculationResult,
    coerce_enum,
    to_decimal,
)

PRIVACY_MASK = "•••"
NOT_AVAILABLE = "N/A"


def _signed(value: Decimal, decimals: int, suffix: str = "") -> str:
    """Half-up rounded value with an explicit sign for non-zero results."""
    rounded = value.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)
    if rounded == Decimal("0"):
        return f"{abs(rounded):.{decimals}f}{suffix}"
    sign = "+" if rounded > Decimal("0") else "-"
    return f"{sign}{abs(rounded):.{decimals}f}{suffix}"


def format_pnl_display(
    result: PnLCalculationResult,
    display_format: DisplayFormat | str,
    symbol: str,
    *,
    currency: CurrencyCode | str = CurrencyCode.USD,
    exchange_rates: Optional[ExchangeRates | Mapping[Any, Any]] = None,
    risk_amount: Any = None,
    custom_instruments: Optional[Iterable[InstrumentConfig]] = None,
    registry: Optional[InstrumentRegistry] = None,
) -> str:
    """Render ``result`` for display.

    Raises
    ------
    ValueError
        If ``display_format`` or ``currency`` is not a known value.
    """
    fmt = coerce_enum(DisplayFormat, display_format)

    if fmt == DisplayFormat.PRIVACY:
        if result.adjusted_pnl > Decimal("0"):
            return f"+{PRIVACY_MASK}"
        if result.adjusted_pnl < Decimal("0"):
            return f"-{PRIVACY_MASK}"
        return PRIVACY_MASK

    if fmt == DisplayFormat.DOLLARS:
        converted = convert_currency(result.adjusted_pnl, currency, exchange_rates)
        return format_currency_value(converted, currency, show_sign=True)

    if fmt == DisplayFormat.PERCENTAGE:
        return _signed(result.percentage, 2, "%")

    if fmt == DisplayFormat.R_MULTIPLE:
        if risk_amount is None:
            return NOT_AVAILABLE
        try:
            risk = abs(to_decimal(risk_amount))
        except (InvalidOperation, ValueError, TypeError):
            return NOT_AVAILABLE
        if not risk.is_finite() or risk == Decimal("0"):
            return NOT_AVAILABLE
        return _signed(result.adjusted_pnl / risk, 2, "R")

    config = (registry or default_registry).resolve(symbol, custom_instruments)

    if fmt == DisplayFormat.POINTS:
        return _signed(result.points, config.display_decimals, " pts")

    if fmt == DisplayFormat.PIPS:
        if config.category == InstrumentCategory.FOREX:
            return _signed(result.pips, 1, " pips")
        return _signed(result.points, config.display_decimals, " pts")

    # DisplayFormat.TICKS
    if config.tick_size is None or config.tick_size <= Decimal("0"):
        return _signed(result.points, config.display_decimals, " ticks")
    return _signed(result.points / config.tick_size, 1, " ticks")
