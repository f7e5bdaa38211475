"""
Data Module
===========
"""
from .candles import Candle, candles_to_frame, load_candles_csv, synthetic_candles, CANDLE_COLUMNS

__all__ = ['Candle', 'candles_to_frame', 'load_candles_csv', 'synthetic_candles', 'CANDLE_COLUMNS']
