"""
models.py — Core data models for tradelytics.

Enums for direction, outcome, instrument category, display format and
strategy phase. Frozen dataclasses for trades, instrument configs and
calculation results. Serialization helpers for records crossing the
boundary from the trade store.

All financial fields use decimal.Decimal with string constructor:
    Decimal('123.45')  # correct
    Decimal(123.45)    # wrong, carries binary float error
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional


class TradeValidationError(ValueError):
    """Raised when an external trade record cannot be typed."""
    pass


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Direction(str, Enum):
    """Trade direction."""
    LONG = "long"
    SHORT = "short"


class TradeOutcome(str, Enum):
    """Recorded outcome of a closed trade."""
    WIN = "win"
    LOSS = "loss"
    BREAKEVEN = "breakeven"


class InstrumentCategory(str, Enum):
    """Contract class that decides how points become dollars."""
    FUTURES = "futures"
    FOREX = "forex"
    CRYPTO = "crypto"
    STOCK = "stock"
    OTHER = "other"


class DisplayFormat(str, Enum):
    """How a P&L figure is rendered for the user."""
    DOLLARS = "dollars"
    POINTS = "points"
    PIPS = "pips"
    TICKS = "ticks"
    PERCENTAGE = "percentage"
    R_MULTIPLE = "r-multiple"
    PRIVACY = "privacy"


class StrategyPhase(str, Enum):
    """Phase of a playbook rule."""
    SETUP = "setup"
    CONFIRMATION = "confirmation"
    EXECUTION = "execution"
    MANAGEMENT = "management"


# ---------------------------------------------------------------------------
# InstrumentConfig
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InstrumentConfig:
    """Contract semantics for one instrument symbol.

    ``multiplier`` is the dollar value of one full point per unit of size.
    For forex it is the number of base-currency units per unit of size
    (1 when size is entered in units, 100000 when entered in standard lots).
    """
    symbol: str
    name: str
    category: InstrumentCategory
    multiplier: Decimal
    tick_size: Optional[Decimal] = None
    tick_value: Optional[Decimal] = None
    pip_size: Optional[Decimal] = None
    display_decimals: int = 2
    currency: str = "USD"
    is_custom: bool = False

    def __post_init__(self) -> None:
        # tick_value is derivable for linear contracts
        if self.tick_value is None and self.tick_size is not None:
            object.__setattr__(self, "tick_value", self.tick_size * self.multiplier)


# ---------------------------------------------------------------------------
# Trade
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Trade:
    """A closed trade as stored by the journal. Read-only to the core."""

    # --- Identity ---
    trade_id: str
    date: date
    instrument: str

    # --- Execution ---
    direction: Direction
    entry_price: Decimal
    exit_price: Decimal
    size: Decimal
    outcome: TradeOutcome
    pnl: Decimal                          # persisted dollar result
    stop_loss: Optional[Decimal] = None
    take_profit: Optional[Decimal] = None
    entry_time: Optional[str | datetime | time] = None   # "09:30", ISO string or time
    session: Optional[str] = None                        # trader-entered session label

    # --- Annotation ---
    psychology_factors: list[str] = field(default_factory=list)
    good_habits: list[str] = field(default_factory=list)
    setup_name: Optional[str] = None
    playbook_strategy_id: Optional[str] = None
    executed_rules: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# PnLCalculationResult
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PnLCalculationResult:
    """Derived P&L figures for one trade. Recomputed on demand."""
    points: Decimal
    pips: Decimal
    raw_pnl: Decimal
    adjusted_pnl: Decimal
    percentage: Decimal
    is_valid: bool = True

    @property
    def outcome(self) -> TradeOutcome:
        if self.adjusted_pnl > Decimal("0"):
            return TradeOutcome.WIN
        if self.adjusted_pnl < Decimal("0"):
            return TradeOutcome.LOSS
        return TradeOutcome.BREAKEVEN

    @classmethod
    def zero(cls, is_valid: bool = False) -> PnLCalculationResult:
        """Neutral result used when inputs cannot be calculated."""
        return cls(
            points=Decimal("0"),
            pips=Decimal("0"),
            raw_pnl=Decimal("0"),
            adjusted_pnl=Decimal("0"),
            percentage=Decimal("0"),
            is_valid=is_valid,
        )


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

_DECIMAL_FIELDS = {"entry_price", "exit_price", "size", "pnl"}
_OPTIONAL_DECIMAL_FIELDS = {"stop_loss", "take_profit"}
_LIST_FIELDS = {"psychology_factors", "good_habits", "executed_rules"}
_FIELD_ALIASES = {
    "id": "trade_id",
    "trade_start_time": "entry_time",
    "trade_session": "session",
}


def to_decimal(value: Any) -> Decimal:
    """Convert a number or numeric string to Decimal via its string form."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def coerce_enum(enum_cls: type[Enum], value: Any) -> Any:
    """Return ``value`` as a member of ``enum_cls`` (case-insensitive).

    Raises ValueError for values outside the enumeration.
    """
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip()
    for candidate in (text, text.lower(), text.upper()):
        try:
            return enum_cls(candidate)
        except ValueError:
            continue
    raise ValueError(f"{value!r} is not a valid {enum_cls.__name__}")


def trade_to_dict(trade: Trade) -> dict[str, Any]:
    """Convert a Trade to a JSON-serializable dict.

    Decimal values are converted to str to preserve precision.
    date values are converted to ISO 8601 format strings.
    """
    result: dict[str, Any] = {}
    for f in fields(trade):
        value = getattr(trade, f.name)
        if isinstance(value, Enum):
            result[f.name] = value.value
        elif isinstance(value, Decimal):
            result[f.name] = str(value)
        elif isinstance(value, (date, datetime, time)):
            result[f.name] = value.isoformat()
        elif isinstance(value, list):
            result[f.name] = list(value)  # shallow copy
        else:
            result[f.name] = value
    return result


def trade_from_dict(d: dict[str, Any]) -> Trade:
    """Build a Trade from an external record.

    Accepts ``id`` as an alias of ``trade_id``, ``trade_start_time`` of
    ``entry_time`` and ``trade_session`` of ``session``. Enum fields
    outside their enumeration raise TradeValidationError. Numeric fields
    are converted but not range checked; the calculator degrades on bad
    numbers instead.
    ``outcome`` defaults to breakeven and ``pnl`` to zero when absent.
    """
    known = {f.name for f in fields(Trade)}
    record = dict(d)
    for alias, name in _FIELD_ALIASES.items():
        if name not in record and alias in record:
            record[name] = record.pop(alias)

    kwargs: dict[str, Any] = {}
    for key, value in record.items():
        if key not in known:
            continue
        try:
            if key == "direction":
                kwargs[key] = coerce_enum(Direction, value)
            elif key == "outcome":
                kwargs[key] = coerce_enum(TradeOutcome, value)
            elif key in _DECIMAL_FIELDS:
                kwargs[key] = to_decimal(value if value is not None else "0")
            elif key in _OPTIONAL_DECIMAL_FIELDS:
                kwargs[key] = to_decimal(value) if value not in (None, "") else None
            elif key == "date" and isinstance(value, str):
                kwargs[key] = _parse_date(value)
            elif key in _LIST_FIELDS:
                kwargs[key] = _as_tag_list(value)
            else:
                kwargs[key] = value
        except (ValueError, TypeError, InvalidOperation) as exc:
            raise TradeValidationError(
                f"Invalid value for '{key}': {value!r}"
            ) from exc

    for required in ("trade_id", "date", "instrument", "direction",
                     "entry_price", "exit_price", "size"):
        if required not in kwargs:
            raise TradeValidationError(f"Missing required field '{required}'")

    kwargs.setdefault("outcome", TradeOutcome.BREAKEVEN)
    kwargs.setdefault("pnl", Decimal("0"))
    return Trade(**kwargs)


def _as_tag_list(value: Any) -> list[str]:
    """A single tag string becomes a one-element list."""
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def _parse_date(value: str) -> date:
    """Parse an ISO date or datetime string; datetimes keep their time."""
    if "T" in value or " " in value.strip():
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return date.fromisoformat(value)
