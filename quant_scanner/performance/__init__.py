"""
Performance Momentum Module
===========================
"""
from .momentum_scorer import (
    MomentumScorer,
    MomentumBreakdown,
    ComponentScore
)
from .sentiment import SentimentClient, SentimentReading

__all__ = [
    'MomentumScorer',
    'MomentumBreakdown',
    'ComponentScore',
    'SentimentClient',
    'SentimentReading'
]
