"""
setups.py — Setup performance analysis for tradelytics.

Groups trades by setup_name ("Unnamed Setup" when missing) and computes
per-setup win rate, P&L aggregates, profit factor, risk-reward ratio,
an optimal risk-reward target and a consistency score. The best setup
by win rate (then profit factor) is reported as the personal edge.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from tradelytics.models import Trade, TradeOutcome

UNNAMED_SETUP = "Unnamed Setup"
MIN_SETUP_TRADES = 3
LOW_WIN_RATE = Decimal("0.4")
RANKED_SETUP_COUNT = 3

_ZERO = Decimal("0")
_ONE = Decimal("1")
_HUNDRED = Decimal("100")
_INFINITY = Decimal("Infinity")


@dataclass(frozen=True)
class SetupPerformance:
    setup_name: str
    total_trades: int
    wins: int
    losses: int
    breakeven: int
    win_rate: Decimal
    avg_pnl: Decimal
    total_pnl: Decimal
    avg_win: Decimal
    avg_loss: Decimal            # absolute value
    profit_factor: Decimal       # Infinity when there are wins and no losses
    risk_reward_ratio: Decimal
    optimal_rrr: Decimal
    consistency: Decimal         # 0-100


@dataclass(frozen=True)
class SetupAnalysisResult:
    all_setups: list[SetupPerformance] = field(default_factory=list)
    top_setups: list[SetupPerformance] = field(default_factory=list)
    bottom_setups: list[SetupPerformance] = field(default_factory=list)
    personal_edge: Optional[SetupPerformance] = None
    recommendations: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _mean(values: list[Decimal]) -> Decimal:
    return sum(values, _ZERO) / Decimal(len(values)) if values else _ZERO


def _fixed(value: Decimal, places: int) -> str:
    """Half-up fixed-point text; infinite values render as 'Infinity'."""
    if not value.is_finite():
        return "Infinity"
    return str(value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP))


def optimal_risk_reward(win_rate: Decimal, avg_win: Decimal, avg_loss: Decimal) -> Decimal:
    """Break-even-adjusted reward target, rounded to 0.1 and clamped to [1, 10].

    Returns 2 when there are no losses or no wins to measure against.
    """
    if avg_loss == _ZERO or win_rate == _ZERO:
        return Decimal("2")
    raw = (win_rate * avg_win) / ((_ONE - win_rate) * avg_loss)
    rounded = raw.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return max(_ONE, min(Decimal("10"), rounded))


def consistency_score(pnls: list[Decimal]) -> Decimal:
    """100 minus the coefficient of variation of trade P&L, floored at 0.

    Population standard deviation. Fewer than two trades score 0. A zero
    mean scores 100 when every trade is identical, else 0.
    """
    if len(pnls) < 2:
        return _ZERO
    mean = _mean(pnls)
    variance = sum(((p - mean) ** 2 for p in pnls), _ZERO) / Decimal(len(pnls))
    std_dev = variance.sqrt()
    if mean == _ZERO:
        return _HUNDRED if std_dev == _ZERO else _ZERO
    cv = std_dev / abs(mean) * _HUNDRED
    return max(_ZERO, _HUNDRED - cv)


def _performance(setup_name: str, trades: list[Trade]) -> SetupPerformance:
    pnls = [t.pnl or _ZERO for t in trades]
    win_pnls = [t.pnl or _ZERO for t in trades if t.outcome == TradeOutcome.WIN]
    loss_pnls = [t.pnl or _ZERO for t in trades if t.outcome == TradeOutcome.LOSS]
    breakeven = sum(1 for t in trades if t.outcome == TradeOutcome.BREAKEVEN)

    total = len(trades)
    win_rate = Decimal(len(win_pnls)) / Decimal(total) if total else _ZERO
    total_pnl = sum(pnls, _ZERO)
    avg_win = _mean(win_pnls)
    avg_loss = abs(_mean(loss_pnls))

    if avg_loss != _ZERO:
        profit_factor = avg_win / avg_loss
        risk_reward = avg_win / avg_loss
    else:
        profit_factor = _INFINITY if avg_win > _ZERO else _ONE
        risk_reward = _ONE

    return SetupPerformance(
        setup_name=setup_name,
        total_trades=total,
        wins=len(win_pnls),
        losses=len(loss_pnls),
        breakeven=breakeven,
        win_rate=win_rate,
        avg_pnl=total_pnl / Decimal(total) if total else _ZERO,
        total_pnl=total_pnl,
        avg_win=avg_win,
        avg_loss=avg_loss,
        profit_factor=profit_factor,
        risk_reward_ratio=risk_reward,
        optimal_rrr=optimal_risk_reward(win_rate, avg_win, avg_loss),
        consistency=consistency_score(pnls),
    )


def _recommendations(
    all_setups: list[SetupPerformance],
    edge: Optional[SetupPerformance],
) -> list[str]:
    recs: list[str] = []

    if edge is not None:
        recs.append(
            f'Your strongest setup is "{edge.setup_name}" with '
            f"{_fixed(edge.win_rate * _HUNDRED, 1)}% win rate and "
            f"{_fixed(edge.profit_factor, 2)}x profit factor."
        )
        recs.append(
            f"Focus on optimal risk-reward of 1:{_fixed(edge.optimal_rrr, 1)} "
            f'for "{edge.setup_name}" trades.'
        )

    weak = [s for s in all_setups if s.total_trades >= MIN_SETUP_TRADES and s.win_rate < LOW_WIN_RATE]
    if weak:
        listed = ", ".join(
            f'"{s.setup_name}" ({_fixed(s.win_rate * _HUNDRED, 0)}%)' for s in weak
        )
        recs.append(f"Consider avoiding or refining: {listed}")

    untested = [s for s in all_setups if s.total_trades < MIN_SETUP_TRADES]
    if untested:
        listed = ", ".join(f'"{s.setup_name}" ({s.total_trades} trades)' for s in untested)
        recs.append(f"Collect more data on: {listed}")

    return recs


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def analyze_setup_patterns(trades: Iterable[Trade]) -> SetupAnalysisResult:
    """Rank setups and derive recommendations. Empty input -> empty result."""
    trades = list(trades)
    if not trades:
        return SetupAnalysisResult()

    groups: dict[str, list[Trade]] = {}
    for trade in trades:
        groups.setdefault(trade.setup_name or UNNAMED_SETUP, []).append(trade)

    all_setups = [_performance(name, grouped) for name, grouped in groups.items()]

    top = sorted(all_setups, key=lambda s: (s.win_rate, s.profit_factor), reverse=True)
    bottom = sorted(all_setups, key=lambda s: (s.win_rate, s.profit_factor))
    edge = top[0] if top else None

    return SetupAnalysisResult(
        all_setups=all_setups,
        top_setups=top[:RANKED_SETUP_COUNT],
        bottom_setups=bottom[:RANKED_SETUP_COUNT],
        personal_edge=edge,
        recommendations=_recommendations(all_setups, edge),
    )
