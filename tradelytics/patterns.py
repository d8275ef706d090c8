"""
patterns.py — Trade pattern recognition for tradelytics.

Breaks a trade collection down by instrument, direction, entry hour,
day of week, session and setup, then ranks the resulting patterns.

Provides:
- analyze_patterns: grouped stats, top winning/losing patterns, coaching
  recommendations, streaks and a day x hour win-rate heatmap
- extract_hour / format_hour: entry-time helpers

A trade wins when its recorded pnl is above zero. Everything else,
breakeven included, counts as a loss here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from tradelytics.currency import format_currency_value
from tradelytics.models import Direction, Trade

MIN_PATTERN_TRADES = 2
TOP_PATTERN_COUNT = 5
AVOID_WIN_RATE = Decimal("0.35")
DIRECTION_BIAS_GAP = Decimal("0.15")
SMALL_SAMPLE_TRADES = 20
RELIABLE_SAMPLE_TRADES = 30

DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

_ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class RecommendationType(str, Enum):
    STRENGTH = "strength"
    WARNING = "warning"
    TIP = "tip"


@dataclass(frozen=True)
class PatternStat:
    label: str
    total_trades: int
    wins: int
    losses: int
    win_rate: Decimal
    avg_pnl: Decimal
    total_pnl: Decimal


@dataclass(frozen=True)
class PatternGroup:
    category: str       # "Instrument", "Direction", "Entry Hour", ...
    patterns: list[PatternStat]


@dataclass(frozen=True)
class Recommendation:
    type: RecommendationType
    title: str
    body: str


@dataclass(frozen=True)
class PatternStreaks:
    current_streak: int = 0      # positive = wins, negative = losses
    best_win_streak: int = 0
    worst_loss_streak: int = 0


@dataclass(frozen=True)
class HeatmapCell:
    day: str
    hour: int
    win_rate: Decimal
    count: int


@dataclass(frozen=True)
class PatternRecognitionResult:
    groups: list[PatternGroup] = field(default_factory=list)
    top_winning_patterns: list[PatternStat] = field(default_factory=list)
    top_losing_patterns: list[PatternStat] = field(default_factory=list)
    recommendations: list[Recommendation] = field(default_factory=list)
    streaks: PatternStreaks = field(default_factory=PatternStreaks)
    weekly_heatmap: list[HeatmapCell] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _is_win(trade: Trade) -> bool:
    return (trade.pnl or _ZERO) > _ZERO


def _build_stats(label: str, trades: list[Trade]) -> PatternStat:
    count = len(trades)
    wins = sum(1 for t in trades if _is_win(t))
    total_pnl = sum((t.pnl or _ZERO for t in trades), _ZERO)
    return PatternStat(
        label=label,
        total_trades=count,
        wins=wins,
        losses=count - wins,
        win_rate=Decimal(wins) / Decimal(count) if count else _ZERO,
        avg_pnl=total_pnl / Decimal(count) if count else _ZERO,
        total_pnl=total_pnl,
    )


def _group_by(
    trades: list[Trade],
    key_fn: Callable[[Trade], Optional[Any]],
) -> dict[Any, list[Trade]]:
    """Map key -> trades in first-seen key order. None keys are skipped."""
    groups: dict[Any, list[Trade]] = {}
    for trade in trades:
        key = key_fn(trade)
        if key is None:
            continue
        groups.setdefault(key, []).append(trade)
    return groups


def extract_hour(value: Any) -> Optional[int]:
    """Hour 0-23 of an entry time, or None when it cannot be read.

    Accepts datetime/time objects, ISO datetime strings and "HH:MM" text.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (datetime, time)):
        return value.hour
    text = str(value).strip()
    if "T" in text or " " in text:
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).hour
        except ValueError:
            pass
    if ":" in text:
        head = text.split(":", 1)[0].strip()
        if head.isdigit() and 0 <= int(head) <= 23:
            return int(head)
    return None


def _entry_hour(trade: Trade) -> Optional[int]:
    hour = extract_hour(trade.entry_time)
    if hour is None and isinstance(trade.date, datetime):
        hour = trade.date.hour
    return hour


def format_hour(hour: int) -> str:
    """12-hour clock label: 0 -> "12:00 AM", 13 -> "1:00 PM"."""
    suffix = "PM" if hour >= 12 else "AM"
    display = 12 if hour % 12 == 0 else hour % 12
    return f"{display}:00 {suffix}"


def _day_of_week(trade: Trade) -> Optional[str]:
    if not isinstance(trade.date, date):
        return None
    return DAY_NAMES[trade.date.weekday()]


def _day_key(trade: Trade) -> date:
    d = trade.date
    return d.date() if isinstance(d, datetime) else d


def _pct(rate: Decimal) -> str:
    return str((rate * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------

def _build_groups(trades: list[Trade]) -> list[PatternGroup]:
    groups: list[PatternGroup] = []

    def add(category: str, patterns: list[PatternStat]) -> None:
        if patterns:
            groups.append(PatternGroup(category=category, patterns=patterns))

    by_instrument = _group_by(trades, lambda t: (t.instrument or "").strip() or None)
    add("Instrument", sorted(
        (_build_stats(k, v) for k, v in by_instrument.items()),
        key=lambda p: p.total_trades,
        reverse=True,
    ))

    by_direction = _group_by(
        trades,
        lambda t: "Long" if t.direction == Direction.LONG else "Short",
    )
    add("Direction", [_build_stats(k, v) for k, v in by_direction.items()])

    by_hour = _group_by(trades, _entry_hour)
    add("Entry Hour", [
        _build_stats(format_hour(h), by_hour[h]) for h in sorted(by_hour)
    ])

    by_day = _group_by(trades, _day_of_week)
    add("Day of Week", [
        _build_stats(day, by_day[day]) for day in DAY_NAMES if day in by_day
    ])

    by_session = _group_by(trades, lambda t: (t.session or "").strip() or None)
    add("Session", [_build_stats(k, v) for k, v in by_session.items()])

    by_setup = _group_by(trades, lambda t: (t.setup_name or "").strip() or None)
    add("Setup", sorted(
        (_build_stats(k, v) for k, v in by_setup.items()),
        key=lambda p: p.total_trades,
        reverse=True,
    ))

    return groups


def _streaks(trades: list[Trade]) -> PatternStreaks:
    """Win/loss runs in date order. A non-winning trade extends the loss run."""
    ordered = sorted(trades, key=_day_key)
    best_win = worst_loss = win_run = loss_run = 0
    for trade in ordered:
        if _is_win(trade):
            win_run += 1
            loss_run = 0
            best_win = max(best_win, win_run)
        else:
            loss_run += 1
            win_run = 0
            worst_loss = max(worst_loss, loss_run)

    current = 0
    if ordered:
        current = win_run if _is_win(ordered[-1]) else -loss_run
    return PatternStreaks(
        current_streak=current,
        best_win_streak=best_win,
        worst_loss_streak=worst_loss,
    )


def _heatmap(trades: list[Trade]) -> list[HeatmapCell]:
    """Win rate per (weekday, entry hour), Monday first, then by hour."""
    cells: dict[tuple[int, int], list[int]] = {}
    for trade in trades:
        hour = _entry_hour(trade)
        if hour is None or not isinstance(trade.date, date):
            continue
        wins_total = cells.setdefault((trade.date.weekday(), hour), [0, 0])
        wins_total[1] += 1
        if _is_win(trade):
            wins_total[0] += 1

    return [
        HeatmapCell(
            day=DAY_NAMES[weekday],
            hour=hour,
            win_rate=Decimal(wins) / Decimal(total),
            count=total,
        )
        for (weekday, hour), (wins, total) in sorted(cells.items())
    ]


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

def _recommendations(
    groups: list[PatternGroup],
    top_winning: list[PatternStat],
    top_losing: list[PatternStat],
    trade_count: int,
) -> list[Recommendation]:
    recs: list[Recommendation] = []

    if top_winning:
        best = top_winning[0]
        recs.append(Recommendation(
            RecommendationType.STRENGTH,
            f"{best.label} is your edge",
            f"{_pct(best.win_rate)}% win rate across {best.total_trades} trades with "
            f"{format_currency_value(best.total_pnl, show_sign=False)} total P&L. "
            "Double down on this pattern.",
        ))

    if top_losing and top_losing[0].win_rate < AVOID_WIN_RATE:
        worst = top_losing[0]
        recs.append(Recommendation(
            RecommendationType.WARNING,
            f"Avoid {worst.label}",
            f"Only {_pct(worst.win_rate)}% win rate across {worst.total_trades} trades. "
            "Consider removing this from your playbook or refining the setup criteria.",
        ))

    by_category = {g.category: g for g in groups}

    direction = by_category.get("Direction")
    if direction is not None:
        sides = {p.label: p for p in direction.patterns}
        long_p, short_p = sides.get("Long"), sides.get("Short")
        if long_p and short_p and abs(long_p.win_rate - short_p.win_rate) > DIRECTION_BIAS_GAP:
            better, worse = (
                (long_p, short_p) if long_p.win_rate > short_p.win_rate else (short_p, long_p)
            )
            recs.append(Recommendation(
                RecommendationType.TIP,
                f"{better.label} bias detected",
                f"Your {better.label} trades win {_pct(better.win_rate)}% vs "
                f"{_pct(worse.win_rate)}% for {worse.label}. "
                f"Consider sizing down on {worse.label} entries.",
            ))

    hours = by_category.get("Entry Hour")
    if hours is not None:
        qualified = [p for p in hours.patterns if p.total_trades >= MIN_PATTERN_TRADES]
        if qualified:
            best_hour = sorted(qualified, key=lambda p: p.win_rate, reverse=True)[0]
            worst_hour = sorted(qualified, key=lambda p: p.win_rate)[0]
            if best_hour.label != worst_hour.label:
                recs.append(Recommendation(
                    RecommendationType.TIP,
                    f"Best window: {best_hour.label}",
                    f"Your entries at {best_hour.label} win {_pct(best_hour.win_rate)}% "
                    f"of the time. Entries at {worst_hour.label} only win "
                    f"{_pct(worst_hour.win_rate)}%. "
                    "Consider restricting trading to your peak hours.",
                ))

    if trade_count < SMALL_SAMPLE_TRADES:
        recs.append(Recommendation(
            RecommendationType.WARNING,
            "Small sample size",
            f"You have {trade_count} trades logged. Patterns become more reliable "
            f"after {RELIABLE_SAMPLE_TRADES}+ trades. Keep logging consistently.",
        ))

    return recs


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def analyze_patterns(trades: Iterable[Trade]) -> PatternRecognitionResult:
    """Group, rank and summarize trading patterns.

    Patterns need at least MIN_PATTERN_TRADES trades to be ranked. Ranked
    labels are prefixed with their category ("Direction: Long"). Winning
    patterns sort by win rate then total P&L, descending; losing patterns
    the reverse. Ties keep grouping order.

    Empty input returns an all-empty result.
    """
    trades = list(trades)
    if not trades:
        return PatternRecognitionResult()

    groups = _build_groups(trades)

    ranked = [
        PatternStat(
            label=f"{g.category}: {p.label}",
            total_trades=p.total_trades,
            wins=p.wins,
            losses=p.losses,
            win_rate=p.win_rate,
            avg_pnl=p.avg_pnl,
            total_pnl=p.total_pnl,
        )
        for g in groups
        for p in g.patterns
        if p.total_trades >= MIN_PATTERN_TRADES
    ]
    top_winning = sorted(
        ranked, key=lambda p: (p.win_rate, p.total_pnl), reverse=True,
    )[:TOP_PATTERN_COUNT]
    top_losing = sorted(
        ranked, key=lambda p: (p.win_rate, p.total_pnl),
    )[:TOP_PATTERN_COUNT]

    return PatternRecognitionResult(
        groups=groups,
        top_winning_patterns=top_winning,
        top_losing_patterns=top_losing,
        recommendations=_recommendations(groups, top_winning, top_losing, len(trades)),
        streaks=_streaks(trades),
        weekly_heatmap=_heatmap(trades),
    )
