import numpy as np
import pandas as pd
import pytest

from quant_scanner.data import synthetic_candles


class FakeClock:
    """Manually advanced clock for cooldown tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def random_candles():
    return synthetic_candles(n=300, start_price=100.0, drift=0.0, volatility=0.01, seed=42)


@pytest.fixture
def uptrend_candles():
    return synthetic_candles(n=300, start_price=100.0, drift=0.004, volatility=0.008, seed=7)


@pytest.fixture
def downtrend_candles():
    return synthetic_candles(n=300, start_price=100.0, drift=-0.004, volatility=0.008, seed=11)


@pytest.fixture
def flat_candles():
    n = 20
    return pd.DataFrame({
        'timestamp': pd.date_range('2024-01-01', periods=n, freq='h'),
        'open': np.full(n, 100.0),
        'high': np.full(n, 100.0),
        'low': np.full(n, 100.0),
        'close': np.full(n, 100.0),
        'volume': np.full(n, 1000.0),
    })
