"""
Candle Data
===========
Candle records and conversion into the aligned frame every stage consumes.
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Union
import logging

logger = logging.getLogger(__name__)

CANDLE_COLUMNS = ['timestamp', 'open', 'high', 'low', 'close', 'volume']


@dataclass(frozen=True)
class Candle:
    """Single OHLCV candle."""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    def to_dict(self) -> dict:
        return {
            'timestamp': self.timestamp,
            'open': self.open,
            'high': self.high,
            'low': self.low,
            'close': self.close,
            'volume': self.volume
        }


CandleInput = Union[pd.DataFrame, Sequence[Candle], Sequence[Dict], Sequence[Sequence]]


def candles_to_frame(candles: CandleInput) -> pd.DataFrame:
    """
    Normalize candles into an ascending OHLCV frame with a RangeIndex.

    Accepts a DataFrame, a list of ``Candle`` records, a list of dicts, or raw
    exchange kline arrays ``[open_time, open, high, low, close, volume, ...]``.
    """
    if isinstance(candles, pd.DataFrame):
        df = candles.copy()
        df.columns = [str(c).lower() for c in df.columns]
        if 'timestamp' not in df.columns:
            if isinstance(df.index, pd.DatetimeIndex):
                df['timestamp'] = df.index
            else:
                df['timestamp'] = pd.NaT
    else:
        rows = list(candles)
        if not rows:
            return pd.DataFrame(columns=CANDLE_COLUMNS)

        first = rows[0]
        if isinstance(first, Candle):
            df = pd.DataFrame([c.to_dict() for c in rows])
        elif isinstance(first, dict):
            df = pd.DataFrame(rows)
            df.columns = [str(c).lower() for c in df.columns]
        else:
            df = pd.DataFrame([list(r)[:6] for r in rows], columns=CANDLE_COLUMNS)
            df['timestamp'] = pd.to_datetime(df['timestamp'], unit='ms', errors='coerce')

    missing = [c for c in ['open', 'high', 'low', 'close'] if c not in df.columns]
    if missing:
        raise ValueError(f"Candle data missing columns: {missing}")
    if 'volume' not in df.columns:
        df['volume'] = 0.0
    if 'timestamp' not in df.columns:
        df['timestamp'] = pd.NaT

    for col in ['open', 'high', 'low', 'close', 'volume']:
        df[col] = pd.to_numeric(df[col], errors='coerce')

    if df['timestamp'].notna().any():
        df = df.sort_values('timestamp', kind='stable')

    return df[CANDLE_COLUMNS].reset_index(drop=True)


def load_candles_csv(filepath: str) -> pd.DataFrame:
    """Load candles from a CSV file with OHLCV columns."""
    df = pd.read_csv(filepath)
    if 'timestamp' in [str(c).lower() for c in df.columns]:
        df.columns = [str(c).lower() for c in df.columns]
        df['timestamp'] = pd.to_datetime(df['timestamp'], errors='coerce')
    return candles_to_frame(df)


def has_enough_candles(df: pd.DataFrame, lookback: int) -> bool:
    """Whether the frame covers a lookback period."""
    return df is not None and len(df) >= lookback


def synthetic_candles(n: int = 250, start_price: float = 100.0, drift: float = 0.0,
                      volatility: float = 0.01, seed: Optional[int] = None,
                      freq: str = 'h') -> pd.DataFrame:
    """Generate a random-walk candle frame for demos and tests."""
    rng = np.random.default_rng(seed)
    returns = rng.normal(drift, volatility, n)
    closes = start_price * np.cumprod(1 + returns)

    opens = np.concatenate([[start_price], closes[:-1]])
    spread = np.abs(rng.normal(0, volatility, n)) * closes
    highs = np.maximum(opens, closes) + spread
    lows = np.minimum(opens, closes) - spread
    volumes = np.maximum(rng.normal(1000, 200, n), 100)

    return pd.DataFrame({
        'timestamp': pd.date_range('2024-01-01', periods=n, freq=freq),
        'open': opens,
        'high': highs,
        'low': lows,
        'close': closes,
        'volume': volumes
    })
