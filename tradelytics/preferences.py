"""
preferences.py — Persisted display preferences for tradelytics.

A user's currency and display-format choice survive between sessions in a
flat string key/value store (browser local storage, a settings table, a
JSON file). This module maps that store to a typed, immutable value.

Stored values that are no longer valid fall back to defaults with a
warning instead of failing the page that reads them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping, Optional

from tradelytics.currency import CurrencyCode, ExchangeRates, coerce_currency
from tradelytics.formatting import format_pnl_display
from tradelytics.models import (
    DisplayFormat,
    InstrumentConfig,
    PnLCalculationResult,
    coerce_enum,
)

logger = logging.getLogger(__name__)

CURRENCY_KEY = "dashboard-selected-currency"
DISPLAY_FORMAT_KEY = "dashboard-display-format"
LEGACY_DISPLAY_FORMAT_KEY = "pnl-display-format"


@dataclass(frozen=True)
class DisplayPreferences:
    currency: CurrencyCode = CurrencyCode.USD
    display_format: DisplayFormat = DisplayFormat.DOLLARS

    @classmethod
    def from_storage(cls, storage: Optional[Mapping[str, Any]]) -> DisplayPreferences:
        """Read preferences from a key/value store.

        ``dashboard-display-format`` wins over the legacy
        ``pnl-display-format`` key when both are present.
        """
        storage = storage or {}
        currency = CurrencyCode.USD
        display_format = DisplayFormat.DOLLARS

        raw_currency = storage.get(CURRENCY_KEY)
        if raw_currency:
            try:
                currency = coerce_currency(raw_currency)
            except ValueError:
                logger.warning(
                    "Ignoring stored currency %r, using %s", raw_currency, currency.value,
                )

        raw_format = storage.get(DISPLAY_FORMAT_KEY) or storage.get(LEGACY_DISPLAY_FORMAT_KEY)
        if raw_format:
            try:
                display_format = coerce_enum(DisplayFormat, raw_format)
            except ValueError:
                logger.warning(
                    "Ignoring stored display format %r, using %s",
                    raw_format, display_format.value,
                )

        return cls(currency=currency, display_format=display_format)

    def to_storage(self) -> dict[str, str]:
        return {
            CURRENCY_KEY: self.currency.value,
            DISPLAY_FORMAT_KEY: self.display_format.value,
        }

    def with_currency(self, currency: CurrencyCode | str) -> DisplayPreferences:
        return replace(self, currency=coerce_currency(currency))

    def with_display_format(self, display_format: DisplayFormat | str) -> DisplayPreferences:
        return replace(self, display_format=coerce_enum(DisplayFormat, display_format))

    def render(
        self,
        result: PnLCalculationResult,
        symbol: str,
        *,
        exchange_rates: Optional[ExchangeRates | Mapping[Any, Any]] = None,
        risk_amount: Any = None,
        custom_instruments: Optional[Iterable[InstrumentConfig]] = None,
    ) -> str:
        """Format ``result`` with these preferences."""
        return format_pnl_display(
            result,
            self.display_format,
            symbol,
            currency=self.currency,
            exchange_rates=exchange_rates,
            risk_amount=risk_amount,
            custom_instruments=custom_instruments,
        )
