"""
Merge per-strategy signals into one weighted decision per symbol.
"""

from __future__ import annotations
import logging
from typing import Dict, Iterable, List, Optional

from quant_research.core.events import EventSink, LoggingEventSink
from quant_research.core.types import (
    AggregatedSignal,
    AggregationReasoning,
    SignalAction,
    StrategySignal,
    StrategyWeights,
)

STRATEGY_LABELS = {
    "momentum": "Momentum",
    "mean_reversion": "Mean Reversion",
    "breakout": "Breakout",
}

CONFLICT_NOTE = "[Note: Conflicting signals detected, proceeding with weighted majority]"


def aggregate(
    momentum: Iterable[StrategySignal],
    mean_reversion: Iterable[StrategySignal],
    breakout: Iterable[StrategySignal],
    weights: Optional[StrategyWeights] = None,
    min_confidence: float = 0.5,
    events: Optional[EventSink] = None,
) -> List[AggregatedSignal]:
    """
    Group signals by symbol and weigh buy against sell confidence.
    Only decisions with confidence >= min_confidence are returned, highest confidence first.
    """
    weights = weights or StrategyWeights()
    events = events or LoggingEventSink(logging.getLogger("quant_research.signals"))

    by_symbol: Dict[str, Dict[str, StrategySignal]] = {}
    for source, signals in (
        ("momentum", momentum),
        ("mean_reversion", mean_reversion),
        ("breakout", breakout),
    ):
        for signal in signals or ():
            by_symbol.setdefault(signal.symbol, {})[source] = signal

    out: List[AggregatedSignal] = []
    for symbol, signals in by_symbol.items():
        result = _aggregate_symbol(symbol, signals, weights)
        if result.confidence >= min_confidence:
            out.append(result)
        else:
            events.emit(
                "aggregate_below_threshold", level="debug",
                symbol=symbol, action=result.action.value, confidence=result.confidence,
            )
    out.sort(key=lambda s: s.confidence, reverse=True)
    return out


def _aggregate_symbol(
    symbol: str,
    signals: Dict[str, StrategySignal],
    weights: StrategyWeights,
) -> AggregatedSignal:
    def weighted(action: SignalAction) -> float:
        return sum(
            s.confidence * getattr(weights, source)
            for source, s in signals.items()
            if s.action == action
        )

    buy_confidence = weighted(SignalAction.BUY)
    sell_confidence = weighted(SignalAction.SELL)
    actions = {s.action for s in signals.values()}
    has_conflict = SignalAction.BUY in actions and SignalAction.SELL in actions

    if buy_confidence > sell_confidence:
        action, confidence = SignalAction.BUY, buy_confidence
    elif sell_confidence > buy_confidence:
        action, confidence = SignalAction.SELL, sell_confidence
    else:
        action, confidence = SignalAction.HOLD, 0.0

    if action == SignalAction.HOLD:
        decision = "No clear signal consensus"
        quantity = 0
    else:
        contributors = [
            f"{STRATEGY_LABELS[source]} ({getattr(weights, source) * 100:.0f}%): {s.reason}"
            for source, s in _ordered(signals)
            if s.action == action
        ]
        decision = " | ".join(contributors)
        if has_conflict:
            decision += " " + CONFLICT_NOTE
        quantity = max(s.quantity for s in signals.values() if s.action == action)

    return AggregatedSignal(
        action=action,
        symbol=symbol,
        quantity=quantity,
        confidence=round(min(confidence, 1.0), 6),
        reasoning=AggregationReasoning(
            final_decision=decision,
            momentum=signals.get("momentum"),
            mean_reversion=signals.get("mean_reversion"),
            breakout=signals.get("breakout"),
        ),
    )


def _ordered(signals: Dict[str, StrategySignal]):
    for source in STRATEGY_LABELS:
        if source in signals:
            yield source, signals[source]


def detect_market_regime(
    volatility_index: float = 20.0,
    trend_strength_index: float = 25.0,
) -> StrategyWeights:
    """
    Pick strategy weights from the market regime.
    High volatility favours mean reversion; a strong trend favours momentum;
    a weak trend favours mean reversion; otherwise the balanced default.
    """
    if volatility_index > 25:
        return StrategyWeights(momentum=0.20, mean_reversion=0.50, breakout=0.30)
    if trend_strength_index > 30:
        return StrategyWeights(momentum=0.60, mean_reversion=0.20, breakout=0.20)
    if trend_strength_index < 20:
        return StrategyWeights(momentum=0.20, mean_reversion=0.60, breakout=0.20)
    return StrategyWeights()
