"""
Signal Module
=============
"""
from .signals import (
    Signal,
    SignalFamily,
    SignalCategory,
    MatchedSignal,
    MatchKind,
    EvaluationContext,
    SIGNAL_WEIGHTS,
    DEFAULT_SIGNAL_SETTINGS
)
from .signal_evaluator import (
    EVALUATORS,
    SignalEvaluator,
    Strategy,
    StrategySignal,
    StrategyEvaluation
)
from .correlation import SignalCorrelationDetector, CorrelationReport
from .regime_weighting import RegimeContextWeighting, RegimeWeightingResult
from .strength_aggregator import StrengthAggregator, StrengthBreakdown

__all__ = [
    'Signal',
    'SignalFamily',
    'SignalCategory',
    'MatchedSignal',
    'MatchKind',
    'EvaluationContext',
    'SIGNAL_WEIGHTS',
    'DEFAULT_SIGNAL_SETTINGS',
    'EVALUATORS',
    'SignalEvaluator',
    'Strategy',
    'StrategySignal',
    'StrategyEvaluation',
    'SignalCorrelationDetector',
    'CorrelationReport',
    'RegimeContextWeighting',
    'RegimeWeightingResult',
    'StrengthAggregator',
    'StrengthBreakdown'
]
