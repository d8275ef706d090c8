"""
risk.py — Risk and position-sizing analysis for tradelytics.

Provides:
- analyze_and_calculate_risk: win rate, average win/loss, profit factor,
  expectancy, drawdown on the cumulative P&L curve, Kelly sizing and
  coaching recommendations
- calculate_kelly_criterion: Kelly fraction, half-Kelly and a risk table
  for common account sizes

Kelly: K = (W x R - (1 - W)) / R with W = win rate and R = avg win / avg loss.
The usable fraction is capped at 25%, halved, and clamped to 0.5%-5% risk.

Wins and losses follow the recorded ``outcome`` tag. Pure post-processing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from tradelytics.models import Trade, TradeOutcome

KELLY_CAP = Decimal("0.25")
MIN_RISK_PERCENT = Decimal("0.5")
MAX_RISK_PERCENT = Decimal("5")
DEFAULT_ACCOUNT_SIZES: tuple[Decimal, ...] = tuple(
    Decimal(s) for s in ("1000", "5000", "10000", "25000", "50000", "100000")
)

LOW_WIN_RATE = Decimal("0.4")
HIGH_WIN_RATE = Decimal("0.6")
LOW_PROFIT_FACTOR = Decimal("1.5")
HIGH_PROFIT_FACTOR = Decimal("3")
DRAWDOWN_ALERT_RATIO = Decimal("0.8")
LONG_RECOVERY_TRADES = 20

INSUFFICIENT_DATA_ADVICE = (
    "Insufficient data for Kelly Criterion calculation. Use 1-2% risk per trade."
)

_ZERO = Decimal("0")
_ONE = Decimal("1")
_HUNDRED = Decimal("100")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PositionSizeRow:
    risk_percent: Decimal
    account_size: Decimal
    risk_amount: Decimal
    suggested_position_size: Decimal   # risk amount scaled by avg win / avg loss


@dataclass(frozen=True)
class KellyCriterionResult:
    kelly_percent: Decimal              # raw Kelly, in percent, 1 decimal
    recommended_risk_percent: Decimal   # clamped half-Kelly, in percent, 1 decimal
    half_kelly_percent: Decimal         # capped half-Kelly, in percent, 1 decimal
    position_size_guide: list[PositionSizeRow] = field(default_factory=list)
    advice: str = INSUFFICIENT_DATA_ADVICE


@dataclass(frozen=True)
class DrawdownMetrics:
    max_drawdown: Decimal = _ZERO       # percent of peak cumulative P&L
    current_drawdown: Decimal = _ZERO
    recovery_trades: int = 0


@dataclass(frozen=True)
class RiskAnalysis:
    current_win_rate: Decimal
    avg_win: Decimal
    avg_loss: Decimal
    profit_factor: Decimal
    current_avg_risk_percent: Decimal
    current_avg_risk_reward: Decimal
    expectancy: Decimal
    kelly_criterion: KellyCriterionResult
    drawdown_metrics: DrawdownMetrics
    recommendations: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _one_decimal(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(value, high))


def _mean(values: Sequence[Decimal]) -> Decimal:
    return sum(values, _ZERO) / Decimal(len(values)) if values else _ZERO


# ---------------------------------------------------------------------------
# Kelly Criterion
# ---------------------------------------------------------------------------

def calculate_kelly_criterion(
    win_rate: Decimal,
    avg_win: Decimal,
    avg_loss: Decimal,
    account_sizes: Iterable[Decimal] = DEFAULT_ACCOUNT_SIZES,
) -> KellyCriterionResult:
    """Kelly sizing from win rate and average win/loss magnitudes.

    Parameters
    ----------
    win_rate : Decimal
        Fraction of winning trades, 0-1.
    avg_win, avg_loss : Decimal
        Average winning and losing P&L, both as positive magnitudes.
    account_sizes : iterable of Decimal
        Rows of the position size guide.

    Returns
    -------
    KellyCriterionResult
        1% recommended risk and no guide when any input is zero.
    """
    if avg_win == _ZERO or avg_loss == _ZERO or win_rate == _ZERO:
        return KellyCriterionResult(
            kelly_percent=_ZERO,
            recommended_risk_percent=_ONE,
            half_kelly_percent=Decimal("0.5"),
        )

    win_loss_ratio = avg_win / avg_loss
    kelly = (win_rate * win_loss_ratio - (_ONE - win_rate)) / win_loss_ratio
    half_kelly = _clamp(kelly, _ZERO, KELLY_CAP) / 2
    recommended = _clamp(half_kelly * _HUNDRED, MIN_RISK_PERCENT, MAX_RISK_PERCENT)

    guide = []
    for account_size in account_sizes:
        risk_amount = account_size * recommended / _HUNDRED
        guide.append(PositionSizeRow(
            risk_percent=recommended,
            account_size=account_size,
            risk_amount=risk_amount,
            suggested_position_size=risk_amount / avg_loss * avg_win,
        ))

    return KellyCriterionResult(
        kelly_percent=_one_decimal(kelly * _HUNDRED),
        recommended_risk_percent=_one_decimal(recommended),
        half_kelly_percent=_one_decimal(half_kelly * _HUNDRED),
        position_size_guide=guide,
        advice=_kelly_advice(kelly, recommended, win_rate, win_loss_ratio),
    )


def _kelly_advice(
    kelly: Decimal,
    recommended: Decimal,
    win_rate: Decimal,
    win_loss_ratio: Decimal,
) -> str:
    win_pct = _one_decimal(win_rate * _HUNDRED)
    if win_rate < LOW_WIN_RATE:
        return (
            f"With a {win_pct}% win rate, use conservative 1% risk per trade "
            "until consistency improves."
        )
    if kelly > Decimal("0.5"):
        return (
            f"Your Kelly Criterion is {_one_decimal(kelly * _HUNDRED)}%, but use "
            f"{_one_decimal(recommended)}% (half-Kelly) for safety."
        )
    return (
        f"Risk {_one_decimal(recommended)}% per trade based on your {win_pct}% win rate "
        f"and {_one_decimal(win_loss_ratio)}x risk-reward ratio."
    )


# ---------------------------------------------------------------------------
# Trade-level statistics
# ---------------------------------------------------------------------------

def average_risk_percent(trades: Iterable[Trade]) -> Decimal:
    """Mean stop distance as a percentage of the realized move.

    Trades without a stop loss or with no realized move are left out.
    """
    ratios = []
    for trade in trades:
        if trade.stop_loss is None:
            continue
        risk = abs(trade.entry_price - trade.stop_loss) * trade.size
        reward = abs(trade.exit_price - trade.entry_price) * trade.size
        if reward == _ZERO or risk == _ZERO:
            continue
        ratios.append(risk / reward * _HUNDRED)
    return _mean(ratios)


def calculate_drawdown_metrics(trades: Iterable[Trade]) -> DrawdownMetrics:
    """Drawdown of the cumulative P&L curve, in trade order.

    Drawdown is measured against the running peak (floored at 1 so a curve
    that never went positive still reports a percentage). ``recovery_trades``
    counts the trades since the most recent drawdown began.
    """
    running = _ZERO
    peak = _ZERO
    max_dd = _ZERO
    current_dd = _ZERO
    recovery = 0
    in_recovery = False

    for trade in trades:
        running += trade.pnl or _ZERO
        if running > peak:
            peak = running
            in_recovery = False

        current_dd = (peak - running) / max(_ONE, peak) * _HUNDRED
        max_dd = max(max_dd, current_dd)

        if current_dd > _ZERO and not in_recovery:
            in_recovery = True
            recovery = 0
        if in_recovery:
            recovery += 1

    return DrawdownMetrics(
        max_drawdown=_one_decimal(max_dd),
        current_drawdown=_one_decimal(current_dd),
        recovery_trades=recovery,
    )


def _risk_recommendations(
    win_rate: Decimal,
    profit_factor: Decimal,
    drawdown: DrawdownMetrics,
) -> list[str]:
    recs: list[str] = []

    if win_rate < LOW_WIN_RATE:
        recs.append(
            "Your win rate is below 40%. Focus on improving setup selection "
            "before increasing position size."
        )
    elif win_rate > HIGH_WIN_RATE:
        recs.append(
            "Your win rate exceeds 60%. You can safely use the recommended "
            "Kelly Criterion position sizing."
        )

    if profit_factor < LOW_PROFIT_FACTOR:
        recs.append(
            "Your profit factor is low. Consider tightening stop losses or "
            "improving entry accuracy."
        )
    elif profit_factor > HIGH_PROFIT_FACTOR:
        recs.append(
            "Exceptional profit factor. Maintain current risk management and "
            "avoid over-leveraging."
        )

    if drawdown.current_drawdown > drawdown.max_drawdown * DRAWDOWN_ALERT_RATIO:
        recs.append(
            f"You're in a significant drawdown ({drawdown.current_drawdown}%). "
            "Consider reducing position size temporarily."
        )

    if drawdown.recovery_trades > LONG_RECOVERY_TRADES:
        recs.append(
            f"Recovery is taking {drawdown.recovery_trades} trades. This is normal, "
            "maintain discipline and avoid revenge trading."
        )

    return recs


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def analyze_and_calculate_risk(trades: Iterable[Trade]) -> RiskAnalysis:
    """Risk profile and sizing guidance for a trade collection.

    Profit factor and risk-reward are avg win / avg loss. Without losses
    the profit factor is Infinity when there are wins, else 1.
    Expectancy = W x avg win - (1 - W) x avg loss.
    """
    trades = list(trades)
    if not trades:
        return RiskAnalysis(
            current_win_rate=_ZERO,
            avg_win=_ZERO,
            avg_loss=_ZERO,
            profit_factor=_ONE,
            current_avg_risk_percent=_ZERO,
            current_avg_risk_reward=_ONE,
            expectancy=_ZERO,
            kelly_criterion=calculate_kelly_criterion(_ZERO, _ZERO, _ZERO),
            drawdown_metrics=DrawdownMetrics(),
        )

    win_pnls = [t.pnl or _ZERO for t in trades if t.outcome == TradeOutcome.WIN]
    loss_pnls = [abs(t.pnl or _ZERO) for t in trades if t.outcome == TradeOutcome.LOSS]

    win_rate = Decimal(len(win_pnls)) / Decimal(len(trades))
    avg_win = _mean(win_pnls)
    avg_loss = _mean(loss_pnls)

    if avg_loss != _ZERO:
        profit_factor = avg_win / avg_loss
        risk_reward = profit_factor
    else:
        profit_factor = Decimal("Infinity") if avg_win > _ZERO else _ONE
        risk_reward = _ONE

    drawdown = calculate_drawdown_metrics(trades)

    return RiskAnalysis(
        current_win_rate=win_rate,
        avg_win=avg_win,
        avg_loss=avg_loss,
        profit_factor=profit_factor,
        current_avg_risk_percent=average_risk_percent(trades),
        current_avg_risk_reward=risk_reward,
        expectancy=win_rate * avg_win - (_ONE - win_rate) * avg_loss,
        kelly_criterion=calculate_kelly_criterion(win_rate, avg_win, avg_loss),
        drawdown_metrics=drawdown,
        recommendations=_risk_recommendations(win_rate, profit_factor, drawdown),
    )
