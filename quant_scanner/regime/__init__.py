"""
Market Regime Module
====================
"""
from .regime_detector import (
    RegimeDetector,
    RegimeDetectorRegistry,
    RegimeState,
    RegimeSnapshot,
    MarketRegime
)

__all__ = [
    'RegimeDetector',
    'RegimeDetectorRegistry',
    'RegimeState',
    'RegimeSnapshot',
    'MarketRegime'
]
