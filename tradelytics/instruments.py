"""
instruments.py — Instrument registry for tradelytics.

Provides:
- INSTRUMENT_CONFIGS: static symbol -> InstrumentConfig table
- normalize_symbol: broker symbol cleanup (exchange prefix, contract month)
- custom_instrument: validated user-defined instrument
- InstrumentRegistry: fail-soft resolution (custom -> static -> inferred -> fallback)
- instrument_config_table: configuration payload shared by every P&L consumer

Resolution never raises. Unresolved symbols get a generic config with
multiplier 1 and are logged as data-quality misses. Callers that want the
misses pass their own set to InstrumentRegistry.resolve; the registry
holds no mutable state.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from tradelytics.models import InstrumentCategory, InstrumentConfig, coerce_enum

logger = logging.getLogger(__name__)


class InstrumentConfigError(ValueError):
    """Raised when a custom instrument definition is invalid."""
    pass


# ---------------------------------------------------------------------------
# Static registry
# ---------------------------------------------------------------------------

def _cfg(
    symbol: str,
    name: str,
    category: InstrumentCategory,
    multiplier: str,
    tick_size: str,
    tick_value: str,
    display_decimals: int,
    pip_size: Optional[str] = None,
    currency: str = "USD",
) -> InstrumentConfig:
    return InstrumentConfig(
        symbol=symbol,
        name=name,
        category=category,
        multiplier=Decimal(multiplier),
        tick_size=Decimal(tick_size),
        tick_value=Decimal(tick_value),
        pip_size=Decimal(pip_size) if pip_size is not None else None,
        display_decimals=display_decimals,
        currency=currency,
    )


_FUT = InstrumentCategory.FUTURES
_FX = InstrumentCategory.FOREX
_STK = InstrumentCategory.STOCK
_CRY = InstrumentCategory.CRYPTO
_OTH = InstrumentCategory.OTHER

_STATIC_CONFIGS: list[InstrumentConfig] = [
    # Futures - Index
    _cfg("NQ", "E-mini NASDAQ-100", _FUT, "20", "0.25", "5", 2),
    _cfg("MNQ", "Micro E-mini NASDAQ-100", _FUT, "2", "0.25", "0.5", 2),
    _cfg("ES", "E-mini S&P 500", _FUT, "50", "0.25", "12.5", 2),
    _cfg("MES", "Micro E-mini S&P 500", _FUT, "5", "0.25", "1.25", 2),
    _cfg("YM", "E-mini Dow Jones", _FUT, "5", "1", "5", 0),
    _cfg("MYM", "Micro E-mini Dow Jones", _FUT, "0.5", "1", "0.5", 0),
    _cfg("RTY", "E-mini Russell 2000", _FUT, "50", "0.1", "5", 1),
    _cfg("M2K", "Micro E-mini Russell 2000", _FUT, "5", "0.1", "0.5", 1),
    # Futures - Energy
    _cfg("CL", "Crude Oil", _FUT, "1000", "0.01", "10", 2),
    _cfg("MCL", "Micro Crude Oil", _FUT, "100", "0.01", "1", 2),
    _cfg("NG", "Natural Gas", _FUT, "10000", "0.001", "10", 3),
    # Futures - Metals
    _cfg("GC", "Gold", _FUT, "100", "0.1", "10", 1),
    _cfg("MGC", "Micro Gold", _FUT, "10", "0.1", "1", 1),
    _cfg("SI", "Silver", _FUT, "5000", "0.005", "25", 3),
    # Forex - Major (size in base-currency units)
    _cfg("EURUSD", "Euro/US Dollar", _FX, "1", "0.00001", "0.00001", 5, "0.0001", "USD"),
    _cfg("GBPUSD", "British Pound/US Dollar", _FX, "1", "0.00001", "0.00001", 5, "0.0001", "USD"),
    _cfg("USDJPY", "US Dollar/Japanese Yen", _FX, "1", "0.001", "0.001", 3, "0.01", "JPY"),
    _cfg("USDCHF", "US Dollar/Swiss Franc", _FX, "1", "0.00001", "0.00001", 5, "0.0001", "CHF"),
    _cfg("AUDUSD", "Australian Dollar/US Dollar", _FX, "1", "0.00001", "0.00001", 5, "0.0001", "USD"),
    _cfg("USDCAD", "US Dollar/Canadian Dollar", _FX, "1", "0.00001", "0.00001", 5, "0.0001", "CAD"),
    _cfg("NZDUSD", "New Zealand Dollar/US Dollar", _FX, "1", "0.00001", "0.00001", 5, "0.0001", "USD"),
    # Forex - Cross
    _cfg("EURJPY", "Euro/Japanese Yen", _FX, "1", "0.001", "0.001", 3, "0.01", "JPY"),
    _cfg("GBPJPY", "British Pound/Japanese Yen", _FX, "1", "0.001", "0.001", 3, "0.01", "JPY"),
    _cfg("EURGBP", "Euro/British Pound", _FX, "1", "0.00001", "0.00001", 5, "0.0001", "GBP"),
    # Stocks
    _cfg("AAPL", "Apple Inc.", _STK, "1", "0.01", "0.01", 2),
    _cfg("MSFT", "Microsoft Corp.", _STK, "1", "0.01", "0.01", 2),
    _cfg("GOOGL", "Alphabet Inc.", _STK, "1", "0.01", "0.01", 2),
    _cfg("AMZN", "Amazon.com Inc.", _STK, "1", "0.01", "0.01", 2),
    _cfg("NVDA", "NVIDIA Corp.", _STK, "1", "0.01", "0.01", 2),
    _cfg("TSLA", "Tesla Inc.", _STK, "1", "0.01", "0.01", 2),
    _cfg("JPM", "JPMorgan Chase & Co.", _STK, "1", "0.01", "0.01", 2),
    _cfg("BAC", "Bank of America Corp.", _STK, "1", "0.01", "0.01", 2),
    # Crypto
    _cfg("BTCUSD", "Bitcoin/US Dollar", _CRY, "1", "0.01", "0.01", 2),
    _cfg("ETHUSD", "Ethereum/US Dollar", _CRY, "1", "0.01", "0.01", 2),
    _cfg("ADAUSD", "Cardano/US Dollar", _CRY, "1", "0.0001", "0.0001", 4),
    _cfg("SOLUSD", "Solana/US Dollar", _CRY, "1", "0.01", "0.01", 2),
    # Spot metals
    _cfg("GOLD", "Gold Spot", _OTH, "1", "0.01", "0.01", 2),
    _cfg("SILVER", "Silver Spot", _OTH, "1", "0.001", "0.001", 3),
    # ETF options (100 shares per contract)
    _cfg("SPY", "SPDR S&P 500 ETF Options", _OTH, "100", "0.01", "1", 2),
    _cfg("QQQ", "Invesco QQQ ETF Options", _OTH, "100", "0.01", "1", 2),
]

INSTRUMENT_CONFIGS: dict[str, InstrumentConfig] = {
    cfg.symbol: cfg for cfg in _STATIC_CONFIGS
}


# ---------------------------------------------------------------------------
# Symbol normalization
# ---------------------------------------------------------------------------

_FUTURES_MONTH_CODES = frozenset("FGHJKMNQUVXZ")

# Longest-first so "MNQ" matches before "NQ"
_FUTURES_ROOTS = sorted(
    [
        "MNQ", "MES", "MYM", "M2K", "MGC", "MSI", "MCL", "MBT", "MET",
        "NQ", "ES", "YM", "RTY", "GC", "SI", "CL", "NG", "ZB", "ZN", "ZF",
        "ZT", "ZS", "ZC", "ZW", "HG", "PL", "PA", "HE", "LE",
        "6E", "6J", "6B", "6A", "6C", "6S",
    ],
    key=len,
    reverse=True,
)

_CONTRACT_SUFFIX = re.compile(r"^([FGHJKMNQUVXZ])(\d{1,4})$")
_CONTINUOUS_SUFFIX = re.compile(r"[0-9]?!$")
_PAIR_SEPARATORS = re.compile(r"[/_\-]")


def normalize_symbol(raw_symbol: str) -> str:
    """Normalize a broker symbol to its canonical registry key.

    Examples::

        CME_MINI:MNQH2026 -> MNQ
        /ESM6             -> ES
        NQ1!              -> NQ
        eur/usd           -> EURUSD
        MNQZ24            -> MNQ
    """
    if not raw_symbol:
        return ""

    symbol = raw_symbol.strip().upper()

    # Exchange prefix ("CME_MINI:", "OANDA:", ...)
    colon = symbol.find(":")
    if 0 < colon < len(symbol) - 1:
        symbol = symbol[colon + 1:]

    symbol = symbol.lstrip("/")
    symbol = _CONTINUOUS_SUFFIX.sub("", symbol)
    symbol = _PAIR_SEPARATORS.sub("", symbol)

    if symbol in INSTRUMENT_CONFIGS:
        return symbol

    for root in _FUTURES_ROOTS:
        if symbol.startswith(root) and _CONTRACT_SUFFIX.match(symbol[len(root):]):
            return root

    return symbol


# ---------------------------------------------------------------------------
# Custom instruments
# ---------------------------------------------------------------------------

def _numeric_field(label: str, value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise InstrumentConfigError(f"{label} must be a number, got {value!r}") from exc


def custom_instrument(
    symbol: str,
    name: str,
    category: InstrumentCategory | str,
    multiplier: Decimal | str | int | float,
    tick_size: Decimal | str | int | float,
    currency: str = "USD",
    display_decimals: int = 2,
    pip_size: Optional[Decimal | str] = None,
    tick_value: Optional[Decimal | str] = None,
) -> InstrumentConfig:
    """Build a user-defined InstrumentConfig.

    Raises
    ------
    InstrumentConfigError
        If the symbol or name is empty, the symbol is longer than 10
        characters, a numeric field is not a number, multiplier or tick
        size is not positive, or display_decimals is outside 0-8.
    """
    symbol = (symbol or "").strip().upper()
    if not symbol:
        raise InstrumentConfigError("Symbol is required")
    if len(symbol) > 10:
        raise InstrumentConfigError("Symbol must be 10 characters or less")
    if not (name or "").strip():
        raise InstrumentConfigError("Name is required")

    try:
        category = coerce_enum(InstrumentCategory, category)
    except ValueError as exc:
        raise InstrumentConfigError(f"Unknown category: {category!r}") from exc

    if pip_size is None and category == InstrumentCategory.FOREX:
        pip_size = "0.01" if "JPY" in symbol else "0.0001"

    multiplier_d = _numeric_field("Multiplier", multiplier)
    tick_size_d = _numeric_field("Tick size", tick_size)
    tick_value_d = _numeric_field("Tick value", tick_value)
    pip_size_d = _numeric_field("Pip size", pip_size)
    if multiplier_d is None or not multiplier_d.is_finite() or multiplier_d <= Decimal("0"):
        raise InstrumentConfigError("Multiplier must be greater than 0")
    if tick_size_d is None or not tick_size_d.is_finite() or tick_size_d <= Decimal("0"):
        raise InstrumentConfigError("Tick size must be greater than 0")
    if display_decimals < 0 or display_decimals > 8:
        raise InstrumentConfigError("Display decimals must be between 0 and 8")

    return InstrumentConfig(
        symbol=symbol,
        name=name.strip(),
        category=category,
        multiplier=multiplier_d,
        tick_size=tick_size_d,
        tick_value=tick_value_d,
        pip_size=pip_size_d,
        display_decimals=display_decimals,
        currency=currency.upper(),
        is_custom=True,
    )


# ---------------------------------------------------------------------------
# Category inference
# ---------------------------------------------------------------------------

_ISO_CURRENCIES = frozenset({
    "USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "NZD",
    "SEK", "NOK", "DKK", "SGD", "HKD", "MXN", "ZAR", "TRY", "PLN", "CNH",
})

_CRYPTO_BASES = frozenset({
    "BTC", "ETH", "SOL", "ADA", "XRP", "DOGE", "LTC", "BNB", "DOT", "AVAX",
    "LINK", "MATIC", "XLM", "BCH",
})

_CRYPTO_QUOTES = ("USDT", "USDC", "USD")


def _infer_config(symbol: str) -> Optional[InstrumentConfig]:
    """Generic config for symbols whose shape reveals the category."""
    if len(symbol) == 6 and symbol.isalpha():
        base, quote = symbol[:3], symbol[3:]
        if base in _ISO_CURRENCIES and quote in _ISO_CURRENCIES and base != quote:
            jpy = "JPY" in (base, quote)
            return InstrumentConfig(
                symbol=symbol,
                name=f"{base}/{quote}",
                category=InstrumentCategory.FOREX,
                multiplier=Decimal("1"),
                tick_size=Decimal("0.001") if jpy else Decimal("0.00001"),
                pip_size=Decimal("0.01") if jpy else Decimal("0.0001"),
                display_decimals=3 if jpy else 5,
                currency=quote,
            )

    for quote in _CRYPTO_QUOTES:
        if symbol.endswith(quote) and len(symbol) > len(quote):
            base = symbol[: -len(quote)]
            if quote != "USD" or base in _CRYPTO_BASES:
                return InstrumentConfig(
                    symbol=symbol,
                    name=f"{base}/{quote}",
                    category=InstrumentCategory.CRYPTO,
                    multiplier=Decimal("1"),
                    tick_size=Decimal("0.01"),
                    display_decimals=2,
                    currency="USD",
                )
    return None


def fallback_config(symbol: str) -> InstrumentConfig:
    """Generic config for a symbol nothing else could resolve."""
    return InstrumentConfig(
        symbol=symbol,
        name="Unknown Instrument",
        category=InstrumentCategory.OTHER,
        multiplier=Decimal("1"),
        tick_size=Decimal("0.01"),
        display_decimals=2,
        currency="USD",
    )


# ---------------------------------------------------------------------------
# InstrumentRegistry
# ---------------------------------------------------------------------------

class InstrumentRegistry:
    """Resolves instrument symbols to contract parameters.

    Parameters
    ----------
    configs : dict[str, InstrumentConfig], optional
        Static table keyed by uppercase symbol. Defaults to INSTRUMENT_CONFIGS.
    """

    def __init__(
        self,
        configs: Optional[dict[str, InstrumentConfig]] = None,
    ) -> None:
        self._configs = dict(configs) if configs is not None else dict(INSTRUMENT_CONFIGS)

    def get(self, symbol: str) -> Optional[InstrumentConfig]:
        """Exact static-table lookup, no inference or fallback."""
        return self._configs.get(normalize_symbol(symbol))

    def resolve(
        self,
        symbol: str,
        custom_instruments: Optional[Iterable[InstrumentConfig]] = None,
        unresolved: Optional[set[str]] = None,
    ) -> InstrumentConfig:
        """Resolve a symbol to exactly one InstrumentConfig. Never raises.

        Parameters
        ----------
        symbol : str
            Raw broker symbol.
        custom_instruments : iterable of InstrumentConfig, optional
            User-defined configs, checked before the static table.
        unresolved : set[str], optional
            Caller-owned collector. Normalized symbols that fall through to
            the generic fallback are added to it, and each is logged once
            per collector. Without a collector every miss is logged.
        """
        raw = (symbol or "").strip().upper()
        key = normalize_symbol(symbol or "")

        if custom_instruments:
            for custom in custom_instruments:
                if custom.symbol.upper() in (raw, key):
                    return custom

        config = self._configs.get(key)
        if config is not None:
            return config

        inferred = _infer_config(key)
        if inferred is not None:
            return inferred

        if unresolved is None or key not in unresolved:
            logger.warning(
                "Unresolved instrument symbol %r, using generic fallback config",
                symbol,
            )
        if unresolved is not None:
            unresolved.add(key)
        return fallback_config(key or "UNKNOWN")

    def available_instruments(
        self,
        custom_instruments: Optional[Iterable[InstrumentConfig]] = None,
    ) -> list[dict]:
        """List standard and custom instruments for pickers."""
        result = [
            {
                "symbol": cfg.symbol,
                "name": cfg.name,
                "category": cfg.category.value,
                "is_custom": False,
            }
            for cfg in self._configs.values()
        ]
        for cfg in custom_instruments or []:
            result.append({
                "symbol": cfg.symbol,
                "name": cfg.name,
                "category": cfg.category.value,
                "is_custom": True,
            })
        return result

    def config_table(self) -> list[dict]:
        """Return the canonical config payload for every static instrument.

        P&L formula: points x size x multiplier = dollar P&L.
        Example: MNQ 20 points, 3 contracts -> 20 x 3 x 2 = $120.
        """
        return [
            {
                "symbol": cfg.symbol,
                "name": cfg.name,
                "category": cfg.category.value,
                "multiplier": cfg.multiplier,
                "tick_size": cfg.tick_size,
                "tick_value": cfg.tick_value,
                "currency": cfg.currency,
                "display_decimals": cfg.display_decimals,
            }
            for cfg in self._configs.values()
        ]


default_registry = InstrumentRegistry()


def resolve_instrument(
    symbol: str,
    custom_instruments: Optional[Iterable[InstrumentConfig]] = None,
) -> InstrumentConfig:
    """Resolve through the default registry."""
    return default_registry.resolve(symbol, custom_instruments)


def instrument_config_table() -> list[dict]:
    """Configuration payload of the default registry."""
    return default_registry.config_table()
