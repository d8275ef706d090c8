"""
export.py — Batch P&L export for tradelytics.

Recomputes every trade through the same instrument table and calculator
the display path uses, so exported figures match what the user sees.

Provides:
- trades_to_frame: one row per trade (pandas DataFrame, Decimal values)
- export_trades: write to .csv or .parquet
- instrument_table_frame: the instrument configuration table

Money columns stay Decimal inside the frame. Parquet output stores them
as strings so values round-trip without float error.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

import pandas as pd

from tradelytics.currency import CurrencyCode, ExchangeRates, coerce_currency, convert_currency
from tradelytics.instruments import InstrumentRegistry, default_registry
from tradelytics.models import InstrumentConfig, Trade, to_decimal, trade_from_dict
from tradelytics.pnl import calculate_risk_amount, calculate_trade_pnl

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "trade_id",
    "date",
    "instrument",
    "symbol",
    "category",
    "direction",
    "entry_price",
    "exit_price",
    "size",
    "multiplier",
    "points",
    "pips",
    "ticks",
    "adjusted_pnl",
    "currency",
    "converted_pnl",
    "percentage",
    "risk_amount",
    "r_multiple",
    "outcome",
    "recorded_pnl",
    "recorded_outcome",
    "is_valid",
]

_DECIMAL_COLUMNS = [
    "entry_price", "exit_price", "size", "multiplier", "points", "pips",
    "ticks", "adjusted_pnl", "converted_pnl", "percentage", "risk_amount",
    "r_multiple", "recorded_pnl",
]


def _as_trade(record: Trade | dict[str, Any]) -> Trade:
    return record if isinstance(record, Trade) else trade_from_dict(record)


def trades_to_frame(
    trades: Iterable[Trade | dict[str, Any]],
    *,
    currency: CurrencyCode | str = CurrencyCode.USD,
    exchange_rates: Optional[ExchangeRates | Mapping[Any, Any]] = None,
    custom_instruments: Optional[Iterable[InstrumentConfig]] = None,
    registry: Optional[InstrumentRegistry] = None,
) -> pd.DataFrame:
    """Recompute P&L for every trade and return one row per trade.

    Parameters
    ----------
    trades : iterable of Trade or dict
        Dicts go through trade_from_dict and may raise TradeValidationError.
    currency : CurrencyCode or str
        Target of the ``converted_pnl`` column (USD by default).
    exchange_rates : ExchangeRates, optional
        Snapshot for conversion and cross-pair pip values.

    Returns
    -------
    pd.DataFrame
        Columns EXPORT_COLUMNS, in input order. Empty frame for no trades.
    """
    registry = registry or default_registry
    target = coerce_currency(currency)
    customs = list(custom_instruments or [])
    unresolved: set[str] = set()

    rows: list[dict[str, Any]] = []
    for record in trades:
        trade = _as_trade(record)
        config = registry.resolve(trade.instrument, customs, unresolved)
        result = calculate_trade_pnl(
            trade,
            custom_instruments=customs,
            exchange_rates=exchange_rates,
            registry=registry,
            unresolved=unresolved,
        )
        risk = calculate_risk_amount(
            trade.instrument,
            trade.direction,
            trade.entry_price,
            trade.stop_loss,
            trade.size,
            custom_instruments=customs,
            exchange_rates=exchange_rates,
            registry=registry,
            unresolved=unresolved,
        )

        ticks = None
        if result.is_valid and config.tick_size:
            ticks = result.points / config.tick_size
        r_multiple = None
        if result.is_valid and risk:
            r_multiple = result.adjusted_pnl / risk

        rows.append({
            "trade_id": trade.trade_id,
            "date": trade.date,
            "instrument": trade.instrument,
            "symbol": config.symbol,
            "category": config.category.value,
            "direction": trade.direction.value,
            "entry_price": trade.entry_price,
            "exit_price": trade.exit_price,
            "size": trade.size,
            "multiplier": config.multiplier,
            "points": result.points,
            "pips": result.pips,
            "ticks": ticks,
            "adjusted_pnl": result.adjusted_pnl,
            "currency": target.value,
            "converted_pnl": to_decimal(
                convert_currency(result.adjusted_pnl, target, exchange_rates)
            ),
            "percentage": result.percentage,
            "risk_amount": risk,
            "r_multiple": r_multiple,
            "outcome": result.outcome.value,
            "recorded_pnl": trade.pnl,
            "recorded_outcome": trade.outcome.value,
            "is_valid": result.is_valid,
        })

    invalid = sum(1 for r in rows if not r["is_valid"])
    if invalid:
        logger.warning("%d of %d exported trades had invalid P&L inputs", invalid, len(rows))

    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def export_trades(
    trades: Iterable[Trade | dict[str, Any]],
    path: str | Path,
    **kwargs: Any,
) -> Path:
    """Write the export frame to ``path``; the suffix picks CSV or Parquet.

    Keyword arguments are passed to :func:`trades_to_frame`.

    Raises
    ------
    ValueError
        If the suffix is neither ``.csv`` nor ``.parquet``.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in (".csv", ".parquet"):
        raise ValueError(f"Unsupported export format: {path.suffix!r}")

    df = trades_to_frame(trades, **kwargs)
    path.parent.mkdir(parents=True, exist_ok=True)

    if suffix == ".csv":
        df.to_csv(path, index=False)
    else:
        df = df.copy()
        for col in _DECIMAL_COLUMNS:
            df[col] = df[col].map(lambda v: str(v) if isinstance(v, Decimal) else None)
        df["date"] = df["date"].map(lambda v: v.isoformat() if v is not None else None)
        df.to_parquet(path, index=False)

    logger.info("Exported %d trades to %s", len(df), path)
    return path


def export_trades_csv(
    trades: Iterable[Trade | dict[str, Any]],
    path: str | Path,
    **kwargs: Any,
) -> Path:
    """CSV export; ``.csv`` is appended when ``path`` has another suffix."""
    path = Path(path)
    if path.suffix.lower() != ".csv":
        path = path.with_name(path.name + ".csv")
    return export_trades(trades, path, **kwargs)


def instrument_table_frame(registry: Optional[InstrumentRegistry] = None) -> pd.DataFrame:
    """The instrument configuration table as a DataFrame, indexed by symbol."""
    table = (registry or default_registry).config_table()
    return pd.DataFrame(table).set_index("symbol")
