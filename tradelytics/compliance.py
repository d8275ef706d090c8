"""
compliance.py — Playbook rule-compliance scoring for tradelytics.

Joins trades against playbook strategies. Each trade linked to a known
strategy (playbook_strategy_id) is scored by how many of the strategy's
required rules appear in its executed_rules:

    score = followed_required / total_required   (1 when nothing is required)

Across all scored trades the aggregator reports the mean score, rules
followed vs. skipped, outcomes of high- vs. low-compliance trades
(HIGH_COMPLIANCE_THRESHOLD), the most frequently missed rules and a
recommendation sentence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional

from tradelytics.models import StrategyPhase, Trade, TradeOutcome, coerce_enum

HIGH_COMPLIANCE_THRESHOLD = Decimal("0.7")
MOST_MISSED_LIMIT = 5
MIN_SCORED_TRADES = 10

_ZERO = Decimal("0")
_ONE = Decimal("1")

EMPTY_RECOMMENDATION = (
    "Link trades to playbook strategies and check off rules during "
    "execution for compliance tracking."
)


# ---------------------------------------------------------------------------
# Playbook types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StrategyRule:
    id: str
    text: str
    phase: StrategyPhase
    required: bool = True
    category: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "phase", coerce_enum(StrategyPhase, self.phase))


@dataclass(frozen=True)
class PlaybookStrategy:
    id: str
    name: str
    rules: tuple[StrategyRule, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", tuple(self.rules))

    @property
    def required_rules(self) -> tuple[StrategyRule, ...]:
        return tuple(r for r in self.rules if r.required)

    def rules_for_phase(self, phase: StrategyPhase | str) -> tuple[StrategyRule, ...]:
        phase = coerce_enum(StrategyPhase, phase)
        return tuple(r for r in self.rules if r.phase == phase)


def strategy_from_dict(d: dict[str, Any]) -> PlaybookStrategy:
    """Build a PlaybookStrategy from a stored record with nested rules."""
    rules = [
        StrategyRule(
            id=str(r["id"]),
            text=r["text"],
            phase=r.get("phase", StrategyPhase.EXECUTION),
            required=bool(r.get("required", True)),
            category=r.get("category"),
        )
        for r in d.get("rules") or []
    ]
    return PlaybookStrategy(id=str(d["id"]), name=d["name"], rules=tuple(rules))


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TradeComplianceScore:
    trade_id: str
    strategy_id: str
    strategy_name: str
    executed_rule_ids: list[str]
    total_rules: int
    followed_rules: int
    skipped_rules: int
    total_required: int
    followed_required: int
    score: Decimal                    # 0-1 over required rules
    missed_rules: list[str]           # texts, in rule order
    missed_required_rules: list[str]
    pnl: Decimal
    outcome: TradeOutcome


@dataclass(frozen=True)
class ComplianceBucket:
    trades: int = 0
    win_rate: Decimal = _ZERO
    avg_pnl: Decimal = _ZERO


@dataclass(frozen=True)
class MissedRule:
    rule_id: str
    rule_text: str
    miss_count: int
    total_trades: int

    @property
    def miss_ratio(self) -> Decimal:
        if not self.total_trades:
            return _ZERO
        return Decimal(self.miss_count) / Decimal(self.total_trades)


@dataclass(frozen=True)
class ComplianceAnalysis:
    overall_score: Decimal = _ZERO
    trade_scores: list[TradeComplianceScore] = field(default_factory=list)
    rules_followed: int = 0
    rules_skipped: int = 0
    high_compliance: ComplianceBucket = field(default_factory=ComplianceBucket)
    low_compliance: ComplianceBucket = field(default_factory=ComplianceBucket)
    most_missed_rules: list[MissedRule] = field(default_factory=list)
    recommendation: str = EMPTY_RECOMMENDATION


# ---------------------------------------------------------------------------
# Per-trade scoring
# ---------------------------------------------------------------------------

def score_trade_compliance(trade: Trade, strategy: PlaybookStrategy) -> TradeComplianceScore:
    """Score one trade against one strategy.

    A strategy without required rules scores 1.
    """
    executed = set(trade.executed_rules or [])
    followed = [r for r in strategy.rules if r.id in executed]
    missed = [r for r in strategy.rules if r.id not in executed]
    required = strategy.required_rules
    followed_required = sum(1 for r in required if r.id in executed)

    if required:
        score = Decimal(followed_required) / Decimal(len(required))
    else:
        score = _ONE

    return TradeComplianceScore(
        trade_id=trade.trade_id,
        strategy_id=strategy.id,
        strategy_name=strategy.name,
        executed_rule_ids=list(trade.executed_rules or []),
        total_rules=len(strategy.rules),
        followed_rules=len(followed),
        skipped_rules=len(missed),
        total_required=len(required),
        followed_required=followed_required,
        score=score,
        missed_rules=[r.text for r in missed],
        missed_required_rules=[r.text for r in missed if r.required],
        pnl=trade.pnl or _ZERO,
        outcome=trade.outcome,
    )


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def _bucket(scores: list[TradeComplianceScore]) -> ComplianceBucket:
    if not scores:
        return ComplianceBucket()
    count = Decimal(len(scores))
    wins = sum(1 for s in scores if s.pnl > _ZERO)
    total_pnl = sum((s.pnl for s in scores), _ZERO)
    return ComplianceBucket(
        trades=len(scores),
        win_rate=Decimal(wins) / count,
        avg_pnl=total_pnl / count,
    )


def _whole_percent(ratio: Decimal) -> str:
    return str((ratio * Decimal("100")).quantize(_ONE, rounding=ROUND_HALF_UP))


def _recommend(
    high: ComplianceBucket,
    low: ComplianceBucket,
    scored: int,
) -> str:
    if high.trades and low.trades:
        if high.win_rate > low.win_rate:
            return (
                f"When you follow {_whole_percent(HIGH_COMPLIANCE_THRESHOLD)}%+ of your "
                f"rules, you win {_whole_percent(high.win_rate)}% of trades vs "
                f"{_whole_percent(low.win_rate)}% when you don't. Discipline pays."
            )
        return (
            "Your compliance score doesn't yet correlate with better outcomes. "
            "Review whether your rules accurately reflect your edge, or collect more data."
        )
    if scored < MIN_SCORED_TRADES:
        return (
            f"You have {scored} scored trades. Log at least {MIN_SCORED_TRADES} "
            "linked trades for reliable compliance analysis."
        )
    return (
        "Link more trades to strategies and check off executed rules for "
        "deeper compliance insights."
    )


def analyze_rule_compliance(
    trades: Iterable[Trade],
    strategies: Iterable[PlaybookStrategy],
) -> ComplianceAnalysis:
    """Score every linked trade and aggregate the results.

    Trades without a strategy link, or linked to an unknown strategy, are
    skipped. With nothing scored the result is empty apart from the
    recommendation.
    """
    by_id = {s.id: s for s in strategies}
    if not by_id:
        return ComplianceAnalysis()

    scores: list[TradeComplianceScore] = []
    missed_counts: dict[str, list] = {}   # rule_id -> [text, misses, total]

    for trade in trades:
        if not trade.playbook_strategy_id:
            continue
        strategy = by_id.get(trade.playbook_strategy_id)
        if strategy is None:
            continue

        executed = set(trade.executed_rules or [])
        for rule in strategy.rules:
            entry = missed_counts.setdefault(rule.id, [rule.text, 0, 0])
            entry[2] += 1
            if rule.id not in executed:
                entry[1] += 1

        scores.append(score_trade_compliance(trade, strategy))

    if not scores:
        return ComplianceAnalysis()

    overall = sum((s.score for s in scores), _ZERO) / Decimal(len(scores))
    high = _bucket([s for s in scores if s.score >= HIGH_COMPLIANCE_THRESHOLD])
    low = _bucket([s for s in scores if s.score < HIGH_COMPLIANCE_THRESHOLD])

    most_missed = sorted(
        (
            MissedRule(rule_id=rule_id, rule_text=text, miss_count=misses, total_trades=total)
            for rule_id, (text, misses, total) in missed_counts.items()
        ),
        key=lambda m: m.miss_ratio,
        reverse=True,
    )[:MOST_MISSED_LIMIT]

    return ComplianceAnalysis(
        overall_score=overall,
        trade_scores=scores,
        rules_followed=sum(s.followed_rules for s in scores),
        rules_skipped=sum(s.skipped_rules for s in scores),
        high_compliance=high,
        low_compliance=low,
        most_missed_rules=most_missed,
        recommendation=_recommend(high, low, len(scores)),
    )
