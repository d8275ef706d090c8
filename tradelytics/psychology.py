"""
psychology.py — Behavioral pattern analysis for tradelytics.

Aggregates a trade collection by the tags traders log on each trade:
- psychology_factors: bad habits ("FOMO", "Revenge Trading", ...)
- good_habits: positive behaviors ("Waited for confirmation", ...)

For every tag: trade/win/loss/breakeven counts, win rate, total and
average P&L, and impact = deviation of the tag's win rate from the
baseline win rate of the whole collection, in percentage points.

Pure post-processing. Win rates and P&L aggregates are Decimal.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from tradelytics.models import Trade, TradeOutcome

STREAK_CALLOUT_THRESHOLD = 3
TOP_FACTOR_COUNT = 3

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PsychologyFactor:
    factor: str
    trade_count: int
    win_count: int
    loss_count: int
    breakeven_count: int
    win_rate: Decimal
    avg_pnl: Decimal
    total_pnl: Decimal
    impact: Decimal        # percentage points vs. baseline win rate
    habit_type: str = "bad"


@dataclass(frozen=True)
class StreakSummary:
    max_win_streak: int = 0
    max_loss_streak: int = 0


@dataclass(frozen=True)
class PsychologyAnalysisResult:
    all_factors: list[PsychologyFactor] = field(default_factory=list)
    positive_factors: list[PsychologyFactor] = field(default_factory=list)
    negative_factors: list[PsychologyFactor] = field(default_factory=list)
    top_enablers: list[PsychologyFactor] = field(default_factory=list)
    top_killers: list[PsychologyFactor] = field(default_factory=list)
    good_habits: list[PsychologyFactor] = field(default_factory=list)
    bad_habits: list[PsychologyFactor] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    streaks: StreakSummary = field(default_factory=StreakSummary)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def baseline_win_rate(trades: list[Trade]) -> Decimal:
    """Unconditional win rate over the whole collection."""
    if not trades:
        return _ZERO
    wins = sum(1 for t in trades if t.outcome == TradeOutcome.WIN)
    return Decimal(wins) / Decimal(len(trades))


def _group_by_tag(trades: list[Trade], attr: str) -> dict[str, list[Trade]]:
    """Map tag -> trades carrying it, in first-seen tag order.

    A tag repeated on one trade counts that trade once.
    """
    groups: dict[str, list[Trade]] = {}
    for trade in trades:
        for tag in dict.fromkeys(getattr(trade, attr) or []):
            groups.setdefault(tag, []).append(trade)
    return groups


def _aggregate(
    tag: str,
    tagged: list[Trade],
    baseline: Decimal,
    habit_type: str,
) -> PsychologyFactor:
    count = len(tagged)
    wins = sum(1 for t in tagged if t.outcome == TradeOutcome.WIN)
    losses = sum(1 for t in tagged if t.outcome == TradeOutcome.LOSS)
    breakeven = sum(1 for t in tagged if t.outcome == TradeOutcome.BREAKEVEN)
    total_pnl = sum((t.pnl or _ZERO for t in tagged), _ZERO)

    win_rate = Decimal(wins) / Decimal(count) if count else _ZERO
    avg_pnl = total_pnl / Decimal(count) if count else _ZERO

    return PsychologyFactor(
        factor=tag,
        trade_count=count,
        win_count=wins,
        loss_count=losses,
        breakeven_count=breakeven,
        win_rate=win_rate,
        avg_pnl=avg_pnl,
        total_pnl=total_pnl,
        impact=(win_rate - baseline) * _HUNDRED,
        habit_type=habit_type,
    )


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------

def detect_streaks(trades: Iterable[Trade]) -> StreakSummary:
    """Longest consecutive win and loss runs, in the order given.

    Breakeven trades break a run and never count toward one. A run still
    open at the end of the collection is included.
    """
    max_win = 0
    max_loss = 0
    current = 0
    last: Optional[TradeOutcome] = None

    for trade in trades:
        if trade.outcome == last:
            current += 1
            continue
        if last == TradeOutcome.WIN:
            max_win = max(max_win, current)
        elif last == TradeOutcome.LOSS:
            max_loss = max(max_loss, current)
        current = 1
        last = trade.outcome

    if last == TradeOutcome.WIN:
        max_win = max(max_win, current)
    elif last == TradeOutcome.LOSS:
        max_loss = max(max_loss, current)

    return StreakSummary(max_win_streak=max_win, max_loss_streak=max_loss)


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------

def _one_decimal(value: Decimal) -> str:
    return str(value.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def generate_insights(
    all_factors: list[PsychologyFactor],
    good_habits: list[PsychologyFactor],
    top_enablers: list[PsychologyFactor],
    top_killers: list[PsychologyFactor],
    streaks: StreakSummary,
) -> list[str]:
    """Templated coaching sentences for the analysis result."""
    insights: list[str] = []

    if good_habits and good_habits[0].impact > _ZERO:
        best = good_habits[0]
        insights.append(
            f'Your strongest good habit is "{best.factor}" with '
            f"+{_one_decimal(best.impact)}% win rate improvement. Keep it up!"
        )

    if top_enablers:
        enabler = top_enablers[0]
        insights.append(
            f'Your top edge-enabler is "{enabler.factor}" with '
            f"+{_one_decimal(enabler.impact)}% win rate improvement."
        )

    if top_killers:
        killer = top_killers[0]
        insights.append(
            f'Your biggest edge-killer is "{killer.factor}" with '
            f"{_one_decimal(killer.impact)}% win rate reduction."
        )

    good_count = sum(h.trade_count for h in good_habits)
    bad_count = sum(f.trade_count for f in all_factors)
    if good_count > bad_count * 2:
        insights.append(
            "Excellent! You're logging more good habits than bad. "
            "Your discipline is showing."
        )
    elif bad_count > good_count * 2:
        insights.append(
            "Focus on reinforcing good habits. "
            "Try to identify what you do right in winning trades."
        )

    if not all_factors and not good_habits:
        insights.append(
            "No psychology factors recorded yet. "
            "Start logging both good and bad habits with your trades."
        )

    if streaks.max_loss_streak >= STREAK_CALLOUT_THRESHOLD:
        insights.append(
            f"Longest losing streak: {streaks.max_loss_streak} trades. "
            "This is statistically normal, don't abandon strategy."
        )
    if streaks.max_win_streak >= STREAK_CALLOUT_THRESHOLD:
        insights.append(
            f"Longest winning streak: {streaks.max_win_streak} trades. "
            "Maintain consistency during hot periods."
        )

    return insights


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def analyze_psychology_patterns(trades: Iterable[Trade]) -> PsychologyAnalysisResult:
    """Analyze psychology factors and good habits across a trade collection.

    Empty input returns an all-empty result with no insights.
    """
    trades = list(trades)
    if not trades:
        return PsychologyAnalysisResult()

    baseline = baseline_win_rate(trades)

    all_factors = [
        _aggregate(tag, tagged, baseline, "bad")
        for tag, tagged in _group_by_tag(trades, "psychology_factors").items()
    ]
    good_habits = sorted(
        (
            _aggregate(tag, tagged, baseline, "good")
            for tag, tagged in _group_by_tag(trades, "good_habits").items()
        ),
        key=lambda f: f.impact,
        reverse=True,
    )
    bad_habits = [replace(f, habit_type="bad") for f in all_factors]

    positive = sorted(
        (f for f in all_factors if f.impact > _ZERO),
        key=lambda f: f.impact,
        reverse=True,
    )
    negative = sorted(
        (f for f in all_factors if f.impact < _ZERO),
        key=lambda f: f.impact,
    )
    top_enablers = positive[:TOP_FACTOR_COUNT]
    top_killers = negative[:TOP_FACTOR_COUNT]

    streaks = detect_streaks(trades)
    insights = generate_insights(all_factors, good_habits, top_enablers, top_killers, streaks)

    return PsychologyAnalysisResult(
        all_factors=all_factors,
        positive_factors=positive,
        negative_factors=negative,
        top_enablers=top_enablers,
        top_killers=top_killers,
        good_habits=good_habits,
        bad_habits=bad_habits,
        insights=insights,
        streaks=streaks,
    )
