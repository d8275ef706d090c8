"""
pnl.py — Instrument-aware P&L calculator for tradelytics.

Turns entry/exit/size into points, pips, dollar P&L and percentage move.
Contract semantics come from the instrument registry:

    futures / stock / other : points x size x multiplier
    forex                   : pips x pip value per unit x size
    crypto                  : points x size

Invalid inputs never raise. They produce a zeroed result with
is_valid=False so a single bad record cannot break a report.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

from tradelytics.currency import (
    STATIC_EXCHANGE_RATES,
    ExchangeRates,
    coerce_currency,
)
from tradelytics.instruments import InstrumentRegistry, default_registry
from tradelytics.models import (
    Direction,
    InstrumentCategory,
    InstrumentConfig,
    PnLCalculationResult,
    Trade,
    coerce_enum,
    to_decimal,
)

logger = logging.getLogger(__name__)

_HUNDRED = Decimal("100")


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

def _positive_decimal(value: Any) -> Optional[Decimal]:
    """Decimal for a positive finite number, None otherwise."""
    if value is None or isinstance(value, bool):
        return None
    try:
        d = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not d.is_finite() or d <= Decimal("0"):
        return None
    return d


def _parse_direction(value: Any) -> Optional[Direction]:
    try:
        return coerce_enum(Direction, value)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Forex pip value
# ---------------------------------------------------------------------------

def _quote_rate(
    config: InstrumentConfig,
    exit_price: Decimal,
    exchange_rates: Optional[ExchangeRates | Mapping[Any, Any]],
) -> Decimal:
    """Units of the quote currency per 1 USD."""
    quote = (config.currency or "USD").upper()
    if quote == "USD":
        return Decimal("1")
    if config.symbol.upper().startswith("USD"):
        # USD is the base: the pair price itself is the USD->quote rate
        return exit_price

    try:
        code = coerce_currency(quote)
    except ValueError:
        logger.warning(
            "No exchange rate for quote currency %s of %s, pip value left unconverted",
            quote, config.symbol,
        )
        return Decimal("1")

    if isinstance(exchange_rates, ExchangeRates):
        table: Mapping[Any, Any] = exchange_rates.rates
    elif exchange_rates:
        table = exchange_rates
    else:
        table = STATIC_EXCHANGE_RATES

    rate = table.get(code)
    if rate is None:
        rate = table.get(code.value, STATIC_EXCHANGE_RATES.get(code))
    rate = to_decimal(rate)
    if not rate.is_finite() or rate <= Decimal("0"):
        return STATIC_EXCHANGE_RATES[code]
    return rate


def pip_value_per_unit(
    config: InstrumentConfig,
    exit_price: Decimal,
    exchange_rates: Optional[ExchangeRates | Mapping[Any, Any]] = None,
) -> Decimal:
    """USD value of one pip for one unit of trade size."""
    pip_size = config.pip_size or Decimal("0.0001")
    return pip_size * config.multiplier / _quote_rate(config, exit_price, exchange_rates)


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------

def calculate_instrument_pnl(
    symbol: str,
    direction: Direction | str,
    entry_price: Any,
    exit_price: Any,
    size: Any,
    *,
    custom_instruments: Optional[Iterable[InstrumentConfig]] = None,
    exchange_rates: Optional[ExchangeRates | Mapping[Any, Any]] = None,
    registry: Optional[InstrumentRegistry] = None,
    unresolved: Optional[set[str]] = None,
) -> PnLCalculationResult:
    """Calculate P&L for one closed position.

    Parameters
    ----------
    symbol : str
        Instrument symbol; resolved through ``registry`` (default registry).
    direction : Direction or str
        "long" or "short".
    entry_price, exit_price, size : Decimal-like
        Must be positive and finite.
    custom_instruments : iterable of InstrumentConfig, optional
        User overrides, checked before the static table.
    exchange_rates : ExchangeRates, optional
        Snapshot used to value cross-pair pips in USD. Static rates if None.
    unresolved : set[str], optional
        Collector for symbols that fell back to the generic config.

    Returns
    -------
    PnLCalculationResult
        Zeroed with is_valid=False when any precondition fails.
    """
    entry = _positive_decimal(entry_price)
    exit_ = _positive_decimal(exit_price)
    qty = _positive_decimal(size)
    side = _parse_direction(direction)
    if entry is None or exit_ is None or qty is None or side is None:
        logger.debug(
            "Rejected P&L inputs for %r: direction=%r entry=%r exit=%r size=%r",
            symbol, direction, entry_price, exit_price, size,
        )
        return PnLCalculationResult.zero()

    config = (registry or default_registry).resolve(symbol, custom_instruments, unresolved)

    raw_delta = exit_ - entry
    points = raw_delta if side == Direction.LONG else -raw_delta
    raw_pnl = points * qty

    if config.category == InstrumentCategory.FOREX:
        pip_size = config.pip_size or Decimal("0.0001")
        pips = points / pip_size
        adjusted = pips * pip_value_per_unit(config, exit_, exchange_rates) * qty
    elif config.category == InstrumentCategory.CRYPTO:
        pips = points
        adjusted = raw_pnl
    else:
        pips = points
        adjusted = raw_pnl * config.multiplier

    return PnLCalculationResult(
        points=points,
        pips=pips,
        raw_pnl=raw_pnl,
        adjusted_pnl=adjusted,
        percentage=points / entry * _HUNDRED,
        is_valid=True,
    )


def calculate_risk_amount(
    symbol: str,
    direction: Direction | str,
    entry_price: Any,
    stop_loss: Any,
    size: Any,
    *,
    custom_instruments: Optional[Iterable[InstrumentConfig]] = None,
    exchange_rates: Optional[ExchangeRates | Mapping[Any, Any]] = None,
    registry: Optional[InstrumentRegistry] = None,
    unresolved: Optional[set[str]] = None,
) -> Optional[Decimal]:
    """Dollar amount at risk between entry and stop, or None without a stop."""
    if stop_loss is None:
        return None
    result = calculate_instrument_pnl(
        symbol, direction, entry_price, stop_loss, size,
        custom_instruments=custom_instruments,
        exchange_rates=exchange_rates,
        registry=registry,
        unresolved=unresolved,
    )
    if not result.is_valid:
        return None
    return abs(result.adjusted_pnl)


def calculate_trade_pnl(
    trade: Trade,
    *,
    custom_instruments: Optional[Iterable[InstrumentConfig]] = None,
    exchange_rates: Optional[ExchangeRates | Mapping[Any, Any]] = None,
    registry: Optional[InstrumentRegistry] = None,
    unresolved: Optional[set[str]] = None,
) -> PnLCalculationResult:
    """Recompute P&L for a stored trade."""
    return calculate_instrument_pnl(
        trade.instrument,
        trade.direction,
        trade.entry_price,
        trade.exit_price,
        trade.size,
        custom_instruments=custom_instruments,
        exchange_rates=exchange_rates,
        registry=registry,
        unresolved=unresolved,
    )


def calculate_trade_risk(
    trade: Trade,
    *,
    custom_instruments: Optional[Iterable[InstrumentConfig]] = None,
    exchange_rates: Optional[ExchangeRates | Mapping[Any, Any]] = None,
    registry: Optional[InstrumentRegistry] = None,
    unresolved: Optional[set[str]] = None,
) -> Optional[Decimal]:
    """Risk amount of a stored trade from its stop loss."""
    return calculate_risk_amount(
        trade.instrument,
        trade.direction,
        trade.entry_price,
        trade.stop_loss,
        trade.size,
        custom_instruments=custom_instruments,
        exchange_rates=exchange_rates,
        registry=registry,
        unresolved=unresolved,
    )
