"""
Strength Aggregator
===================
Combines matched signal strengths into one total through five stages:

    base -> correlation -> regime context -> quality -> synergy/diversity

Each stage works on the scalar result of the previous one.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
import logging

from .signals import SIGNAL_WEIGHTS
from .correlation import SignalCorrelationDetector, CorrelationReport
from .regime_weighting import RegimeContextWeighting

logger = logging.getLogger(__name__)

SYNERGY_PAIRS = [
    ('macd', 'ema'),
    ('rsi', 'stochastic'),
    ('volume', 'bollinger'),
    ('supportresistance', 'rsi'),
    ('fibonacci', 'rsi'),
    ('macd', 'volume'),
]


def quality_tier(strength: float) -> float:
    """Per-signal quality from its strength."""
    if strength >= 90:
        return 1.0
    if strength >= 75:
        return 0.95
    if strength >= 60:
        return 0.85
    if strength >= 40:
        return 0.70
    return 0.50


@dataclass
class StrengthBreakdown:
    """Per-stage deltas of the aggregated strength."""
    total_strength: float = 0.0
    base: float = 0.0
    correlation_adjustment: float = 0.0
    regime_adjustment: float = 0.0
    quality_adjustment: float = 0.0
    synergy_bonus: float = 0.0
    learning_adjustment: float = 0.0
    quality_score: float = 0.0
    signal_count: int = 0
    correlation: CorrelationReport = field(default_factory=CorrelationReport)
    regime: Optional[Dict] = None

    def to_dict(self) -> dict:
        return {
            'total_strength': self.total_strength,
            'base': self.base,
            'correlation_adjustment': self.correlation_adjustment,
            'regime_adjustment': self.regime_adjustment,
            'quality_adjustment': self.quality_adjustment,
            'synergy_bonus': self.synergy_bonus,
            'learning_adjustment': self.learning_adjustment,
            'quality_score': self.quality_score,
            'signal_count': self.signal_count,
            'correlation': self.correlation.to_dict(),
            'regime': self.regime
        }


class StrengthAggregator:
    """
    Stateless combiner of matched signals.

    Usage:
        aggregator = StrengthAggregator()
        breakdown = aggregator.aggregate(evaluation.found_signals, regime_state)
    """

    def __init__(self, config=None, correlation_detector: Optional[SignalCorrelationDetector] = None,
                 regime_weighting: Optional[RegimeContextWeighting] = None,
                 logger_: Optional[logging.Logger] = None, verbose: bool = False):
        from ..config import StrengthConfig
        self.config = config or StrengthConfig()
        self.logger = logger_ or logger
        self.verbose = verbose
        self.correlation_detector = correlation_detector or SignalCorrelationDetector(
            self.config, logger_=self.logger, verbose=verbose)
        self.regime_weighting = regime_weighting or RegimeContextWeighting(logger_=self.logger, verbose=verbose)
        self.weights = dict(SIGNAL_WEIGHTS)
        self.weights.update(self.config.weight_overrides)

    def weight(self, signal_type: str) -> float:
        return self.weights.get((signal_type or '').lower(), 1.0)

    def aggregate(self, signals: Sequence, regime=None) -> StrengthBreakdown:
        """
        Aggregate matched signals.

        Args:
            signals: Objects with ``type`` and ``strength`` (MatchedSignal, Signal or dicts)
            regime: Optional RegimeState

        Returns:
            StrengthBreakdown with total_strength >= 0
        """
        items = [_as_pair(s) for s in signals or []]
        items = [(t, s) for t, s in items if t]
        if not items:
            return StrengthBreakdown()

        types = [t for t, _ in items]

        # Stage 1: weighted base
        base = sum(strength * self.weight(t) for t, strength in items)

        # Stage 2: correlation
        report = self.correlation_detector.report(types)
        corr_adjusted = base * report.multiplier

        # Stage 3: regime context
        regime_name, confidence = _regime_of(regime)
        regime_result = self.regime_weighting.evaluate(types, regime_name, confidence)
        regime_adjusted = corr_adjusted * regime_result.multiplier

        # Stage 4: quality
        quality_avg = sum(quality_tier(strength) for _, strength in items) / len(items)
        quality_adjusted = regime_adjusted * (0.5 + quality_avg * 0.5)

        # Stage 5: synergy and diversity
        present = set(types)
        synergy = min(self.config.synergy_cap,
                      sum(self.config.synergy_per_pair for a, b in SYNERGY_PAIRS if a in present and b in present))
        diversity = min(self.config.diversity_cap, len(present) * self.config.diversity_per_type)
        final = quality_adjusted * (1 + synergy + diversity)

        breakdown = StrengthBreakdown(
            total_strength=max(0.0, final),
            base=base,
            correlation_adjustment=corr_adjusted - base,
            regime_adjustment=regime_adjusted - corr_adjusted,
            quality_adjustment=quality_adjusted - regime_adjusted,
            synergy_bonus=final - quality_adjusted,
            learning_adjustment=0.0,
            quality_score=quality_avg * 100,
            signal_count=len(items),
            correlation=report,
            regime=regime_result.to_dict()
        )

        if self.verbose:
            self.logger.debug(
                f"Strength {breakdown.total_strength:.1f} from {len(items)} signals "
                f"(base {base:.1f}, corr {breakdown.correlation_adjustment:+.1f}, "
                f"regime {breakdown.regime_adjustment:+.1f}, quality {breakdown.quality_adjustment:+.1f}, "
                f"synergy {breakdown.synergy_bonus:+.1f})"
            )
        return breakdown

    def is_confirming(self, signals: Sequence, candidate, regime=None) -> bool:
        """
        Whether adding ``candidate`` to ``signals`` can only raise the total.

        A confirming signal has positive strength and a type not yet matched,
        is not correlated with any matched type, has a quality tier at or
        above the current average, and is at least as effective in the
        current regime as the matched types on average. Every stage
        multiplier is then non-decreasing while the base grows.
        """
        candidate_type, candidate_strength = _as_pair(candidate)
        if not candidate_type or candidate_strength <= 0:
            return False

        items = [(t, s) for t, s in (_as_pair(s) for s in signals or []) if t]
        if not items:
            return True

        types = [t for t, _ in items]
        if candidate_type in types:
            return False

        threshold = self.correlation_detector.threshold
        if any(abs(self.correlation_detector.calculate_correlation(candidate_type, t)) >= threshold
               for t in types):
            return False

        quality_avg = sum(quality_tier(s) for _, s in items) / len(items)
        if quality_tier(candidate_strength) < quality_avg:
            return False

        regime_name, _ = _regime_of(regime)
        regime_name = getattr(regime_name, 'value', regime_name)
        if regime_name in ('uptrend', 'downtrend', 'ranging'):
            effectiveness = self.regime_weighting.effectiveness
            average = sum(effectiveness(t, regime_name) for t in types) / len(types)
            if effectiveness(candidate_type, regime_name) < average:
                return False

        return True


def _as_pair(signal):
    if isinstance(signal, dict):
        signal_type, strength = signal.get('type'), signal.get('strength', 0)
    else:
        signal_type, strength = getattr(signal, 'type', None), getattr(signal, 'strength', 0)
    signal_type = getattr(signal_type, 'value', signal_type)
    try:
        strength = float(strength)
    except (TypeError, ValueError):
        strength = 0.0
    if strength != strength:  # NaN
        strength = 0.0
    return (str(signal_type).lower() if signal_type else None), strength


def _regime_of(regime):
    if regime is None:
        return 'unknown', 0.0
    if isinstance(regime, dict):
        return regime.get('regime', 'unknown'), regime.get('confidence', 0.0)
    name = getattr(regime, 'regime', regime)
    return getattr(name, 'value', name), getattr(regime, 'confidence', 0.0)
