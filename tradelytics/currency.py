"""
currency.py — Currency conversion for tradelytics.

Provides:
- CURRENCIES: closed set of supported display currencies
- STATIC_EXCHANGE_RATES: bundled fallback rates (units per 1 USD)
- ExchangeRates: immutable rate snapshot with source and staleness flag
- ExchangeRateService: owns the rate cache; live -> cache -> static fallback
- convert_currency / format_currency_value: pure helpers, no I/O

Live rates come from Yahoo Finance via yfinance ("EUR=X" quotes EUR per USD).
The service never schedules itself; callers refresh on their own cadence
(hourly by default) and read the last snapshot while a refresh is in flight.
The snapshot is replaced whole on refresh, never mutated in place.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

import pandas as pd
import yfinance as yf

from tradelytics.models import coerce_enum, to_decimal

logger = logging.getLogger(__name__)


class ExchangeRateFetchError(Exception):
    """Raised when the live rate source returns no usable data."""
    pass


# ---------------------------------------------------------------------------
# Currencies
# ---------------------------------------------------------------------------

class CurrencyCode(str, Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    CAD = "CAD"
    AUD = "AUD"
    CHF = "CHF"


@dataclass(frozen=True)
class CurrencyInfo:
    code: CurrencyCode
    symbol: str
    name: str
    decimals: int
    symbol_position: str  # "before" or "after"


CURRENCIES: dict[CurrencyCode, CurrencyInfo] = {
    CurrencyCode.USD: CurrencyInfo(CurrencyCode.USD, "$", "US Dollar", 2, "before"),
    CurrencyCode.EUR: CurrencyInfo(CurrencyCode.EUR, "€", "Euro", 2, "before"),
    CurrencyCode.GBP: CurrencyInfo(CurrencyCode.GBP, "£", "British Pound", 2, "before"),
    CurrencyCode.JPY: CurrencyInfo(CurrencyCode.JPY, "¥", "Japanese Yen", 0, "before"),
    CurrencyCode.CAD: CurrencyInfo(CurrencyCode.CAD, "CA$", "Canadian Dollar", 2, "before"),
    CurrencyCode.AUD: CurrencyInfo(CurrencyCode.AUD, "A$", "Australian Dollar", 2, "before"),
    CurrencyCode.CHF: CurrencyInfo(CurrencyCode.CHF, "CHF", "Swiss Franc", 2, "after"),
}

# Base currency USD: 1 USD = <rate> units of the target currency
STATIC_EXCHANGE_RATES: Mapping[CurrencyCode, Decimal] = MappingProxyType({
    CurrencyCode.USD: Decimal("1"),
    CurrencyCode.EUR: Decimal("0.92"),
    CurrencyCode.GBP: Decimal("0.79"),
    CurrencyCode.JPY: Decimal("149.5"),
    CurrencyCode.CAD: Decimal("1.35"),
    CurrencyCode.AUD: Decimal("1.53"),
    CurrencyCode.CHF: Decimal("0.88"),
})

DEFAULT_REFRESH_INTERVAL = timedelta(hours=1)
DEFAULT_FETCH_TIMEOUT = 10.0


def coerce_currency(value: CurrencyCode | str) -> CurrencyCode:
    """Return a CurrencyCode; ValueError outside the supported set."""
    return coerce_enum(CurrencyCode, value)


# ---------------------------------------------------------------------------
# ExchangeRates snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExchangeRates:
    """Immutable exchange-rate table.

    ``source`` is "live", "cache" or "static". ``is_stale`` is True
    whenever the snapshot was served as a fallback for a failed fetch.
    """
    rates: Mapping[CurrencyCode, Decimal]
    last_updated: datetime
    source: str = "live"
    is_stale: bool = False
    base: CurrencyCode = CurrencyCode.USD

    def __post_init__(self) -> None:
        object.__setattr__(self, "rates", MappingProxyType(dict(self.rates)))

    def rate_for(self, currency: CurrencyCode | str) -> Optional[Decimal]:
        return self.rates.get(coerce_currency(currency))


def static_exchange_rates(now: Optional[datetime] = None) -> ExchangeRates:
    """Bundled fallback rates, always flagged stale."""
    return ExchangeRates(
        rates=STATIC_EXCHANGE_RATES,
        last_updated=now or datetime.now(timezone.utc),
        source="static",
        is_stale=True,
    )


# ---------------------------------------------------------------------------
# Live source (yfinance)
# ---------------------------------------------------------------------------

def _yahoo_ticker(code: CurrencyCode) -> str:
    return f"{code.value}=X"


def fetch_yfinance_rates(timeout: float = DEFAULT_FETCH_TIMEOUT) -> dict[CurrencyCode, Decimal]:
    """Fetch the latest USD-based rates from Yahoo Finance.

    A currency whose ticker returns nothing keeps its static rate.

    Raises
    ------
    ExchangeRateFetchError
        If no ticker returned a usable close.
    """
    codes = [c for c in CurrencyCode if c != CurrencyCode.USD]
    tickers = [_yahoo_ticker(c) for c in codes]
    df = yf.download(
        tickers=tickers,
        period="5d",
        interval="1d",
        progress=False,
        auto_adjust=False,
        timeout=timeout,
    )
    if df is None or df.empty or "Close" not in df.columns.get_level_values(0):
        raise ExchangeRateFetchError("No exchange-rate data returned")

    closes = df["Close"]
    if isinstance(closes, pd.Series):
        closes = closes.to_frame(name=tickers[0])

    rates: dict[CurrencyCode, Decimal] = {CurrencyCode.USD: Decimal("1")}
    fetched = 0
    for code, ticker in zip(codes, tickers):
        if ticker not in closes.columns:
            rates[code] = STATIC_EXCHANGE_RATES[code]
            continue
        series = closes[ticker].dropna()
        value = float(series.iloc[-1]) if not series.empty else 0.0
        if value <= 0:
            rates[code] = STATIC_EXCHANGE_RATES[code]
            continue
        rates[code] = Decimal(str(value))
        fetched += 1

    if fetched == 0:
        raise ExchangeRateFetchError("Exchange-rate tickers returned no closes")
    return rates


# ---------------------------------------------------------------------------
# ExchangeRateService
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExchangeRateService:
    """Owner of the exchange-rate cache.

    Parameters
    ----------
    fetcher : callable, optional
        Zero-argument callable returning {currency: rate}. Defaults to
        Yahoo Finance via :func:`fetch_yfinance_rates`.
    refresh_interval : timedelta
        Age after which :meth:`needs_refresh` reports True (default 1 hour).
    timeout : float
        Seconds allowed for one live fetch (default 10).
    clock : callable, optional
        Returns the current aware datetime; injectable for tests.
    """

    def __init__(
        self,
        fetcher: Optional[Callable[[], Mapping[Any, Any]]] = None,
        refresh_interval: timedelta = DEFAULT_REFRESH_INTERVAL,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._fetcher = fetcher
        self._refresh_interval = refresh_interval
        self._timeout = timeout
        self._clock = clock or _utcnow
        self._cache: Optional[ExchangeRates] = None

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    @property
    def rates(self) -> ExchangeRates:
        """Current snapshot: last live rates, else static. Never blocks."""
        cached = self._cache
        if cached is not None:
            return cached
        return static_exchange_rates(self._clock())

    @property
    def last_updated(self) -> Optional[datetime]:
        """Time of the last successful live fetch, or None."""
        cached = self._cache
        return cached.last_updated if cached is not None else None

    def needs_refresh(self, now: Optional[datetime] = None) -> bool:
        """True when there are no live rates or they are older than the interval."""
        last = self.last_updated
        if last is None:
            return True
        now = now or self._clock()
        return now - last >= self._refresh_interval

    def convert(self, amount_usd: Any, target_currency: CurrencyCode | str) -> Any:
        """Convert with the current snapshot."""
        return convert_currency(amount_usd, target_currency, self.rates)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def fetch_exchange_rates(self) -> ExchangeRates:
        """Fetch live rates; on failure serve the cache, else static rates.

        Never raises for a failed fetch. The returned snapshot's
        ``is_stale`` flag tells the caller whether the live call failed.
        """
        try:
            live = self._fetch_live()
        except Exception as exc:
            logger.warning("Live exchange-rate fetch failed: %s", exc)
            return self._fallback()
        self._cache = live
        return live

    async def refresh_async(self, timeout: Optional[float] = None) -> ExchangeRates:
        """Run :meth:`fetch_exchange_rates` off the event loop, bounded by timeout.

        Cancellation propagates to the caller; the cache is left untouched.
        """
        timeout = self._timeout if timeout is None else timeout
        try:
            live = await asyncio.wait_for(asyncio.to_thread(self._fetch_live), timeout)
        except asyncio.TimeoutError:
            logger.warning("Exchange-rate refresh timed out after %.1fs", timeout)
            return self._fallback()
        except Exception as exc:
            logger.warning("Live exchange-rate fetch failed: %s", exc)
            return self._fallback()
        self._cache = live
        return live

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _fetch_live(self) -> ExchangeRates:
        if self._fetcher is not None:
            raw = self._fetcher()
        else:
            raw = fetch_yfinance_rates(self._timeout)
        if not raw:
            raise ExchangeRateFetchError("Rate source returned an empty table")

        rates: dict[CurrencyCode, Decimal] = dict(STATIC_EXCHANGE_RATES)
        accepted = 0
        for key, value in raw.items():
            try:
                code = coerce_currency(key)
                rate = to_decimal(value)
            except (ValueError, InvalidOperation):
                continue  # outside the supported set, or not a number
            if code != CurrencyCode.USD and rate.is_finite() and rate > Decimal("0"):
                rates[code] = rate
                accepted += 1
        if not accepted:
            raise ExchangeRateFetchError("Rate source returned no usable supported rate")
        rates[CurrencyCode.USD] = Decimal("1")

        snapshot = ExchangeRates(
            rates=rates,
            last_updated=self._clock(),
            source="live",
            is_stale=False,
        )
        logger.debug("Exchange rates refreshed at %s", snapshot.last_updated.isoformat())
        return snapshot

    def _fallback(self) -> ExchangeRates:
        cached = self._cache
        if cached is not None:
            return replace(cached, source="cache", is_stale=True)
        return static_exchange_rates(self._clock())


default_service = ExchangeRateService()


def fetch_exchange_rates() -> ExchangeRates:
    """Fetch through the default service (live -> cache -> static)."""
    return default_service.fetch_exchange_rates()


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def convert_currency(
    amount_usd: Any,
    target_currency: CurrencyCode | str,
    rates: Optional[ExchangeRates | Mapping[Any, Any]] = None,
) -> Any:
    """Convert a USD amount into ``target_currency``.

    USD returns ``amount_usd`` itself, untouched. Other targets return a
    Decimal. A missing rate logs a warning and returns the USD amount.

    Raises
    ------
    ValueError
        If ``target_currency`` is not a supported currency code.
    """
    target = coerce_currency(target_currency)
    if target == CurrencyCode.USD:
        return amount_usd

    if isinstance(rates, ExchangeRates):
        table: Mapping[Any, Any] = rates.rates
    elif rates:
        table = rates
    else:
        table = STATIC_EXCHANGE_RATES

    rate = table.get(target)
    if rate is None:
        rate = table.get(target.value)
    if not rate:
        logger.warning("Exchange rate not found for %s, using USD", target.value)
        return amount_usd

    return to_decimal(amount_usd) * to_decimal(rate)


def _quantize(value: Decimal, decimals: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)


def format_currency_value(
    value: Any,
    currency: CurrencyCode | str = CurrencyCode.USD,
    show_sign: bool = True,
    compact: bool = False,
) -> str:
    """Format an amount with the currency's symbol, decimals and position.

    Examples: ``+$1,234.56``, ``-¥1,235``, ``+12.50 CHF``, ``+$1.2M`` (compact).
    A value that rounds to zero never carries a sign.
    """
    info = CURRENCIES[coerce_currency(currency)]
    amount = to_decimal(value)
    rounded = _quantize(amount, info.decimals)
    abs_value = abs(amount)

    if compact and abs_value >= Decimal("1000000"):
        number = f"{_quantize(abs_value / Decimal('1000000'), 1)}M"
    elif compact and abs_value >= Decimal("1000"):
        number = f"{_quantize(abs_value / Decimal('1000'), 1)}K"
    else:
        number = f"{abs(rounded):,.{info.decimals}f}"

    if rounded == Decimal("0"):
        sign = ""
    elif rounded < Decimal("0"):
        sign = "-"
    else:
        sign = "+" if show_sign else ""

    if info.symbol_position == "before":
        return f"{sign}{info.symbol}{number}"
    return f"{sign}{number} {info.symbol}"
