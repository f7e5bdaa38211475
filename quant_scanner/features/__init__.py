"""
Feature Engineering Module
==========================
"""
from .indicators import (
    compute_atr,
    TrendIndicators,
    MomentumIndicators,
    VolatilityIndicators,
    VolumeIndicators,
    SupportResistanceIndicators,
    PatternIndicators
)
from .indicator_engine import (
    IndicatorEngine,
    IndicatorSet,
    IndicatorSpec,
    SIGNAL_INDICATORS,
    REGIME_INDICATORS
)

__all__ = [
    'compute_atr',
    'TrendIndicators',
    'MomentumIndicators',
    'VolatilityIndicators',
    'VolumeIndicators',
    'SupportResistanceIndicators',
    'PatternIndicators',
    'IndicatorEngine',
    'IndicatorSet',
    'IndicatorSpec',
    'SIGNAL_INDICATORS',
    'REGIME_INDICATORS'
]
