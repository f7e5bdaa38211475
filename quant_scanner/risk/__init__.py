"""
Risk Module
===========
"""
from .position_sizer import (
    PositionSizer,
    PositionSizingResult,
    ExchangeFilters,
    SizingError,
    open_position_risk
)

__all__ = [
    'PositionSizer',
    'PositionSizingResult',
    'ExchangeFilters',
    'SizingError',
    'open_position_risk'
]
