import numpy as np
import pandas as pd
import pytest

from quant_scanner.features import compute_atr, TrendIndicators, MomentumIndicators, VolatilityIndicators


class TestATR:

    def test_length_and_warmup(self, random_candles):
        atr = compute_atr(random_candles, period=14)
        assert len(atr) == len(random_candles)
        assert atr.iloc[:13].isna().all()
        assert atr.iloc[13:].notna().all()

    def test_bounded_by_close_fraction(self, random_candles):
        atr = compute_atr(random_candles, period=14)
        valid = atr.iloc[13:]
        closes = random_candles['close'].iloc[13:]
        assert (valid >= 0).all()
        assert (valid <= closes * 0.1 + 1e-12).all()

    def test_flat_series_is_zero_after_warmup(self, flat_candles):
        atr = compute_atr(flat_candles, period=14)
        assert len(atr) == 20
        assert atr.iloc[:13].isna().all()
        assert (atr.iloc[13:] == 0).all()

    def test_shorter_than_period_is_all_null(self, flat_candles):
        atr = compute_atr(flat_candles.iloc[:10], period=14)
        assert len(atr) == 10
        assert atr.isna().all()

    def test_corrupted_candle_does_not_spike(self, random_candles):
        candles = random_candles.copy()
        clean = compute_atr(candles, period=14)
        candles.loc[150, 'high'] = candles['high'].max() * 50
        dirty = compute_atr(candles, period=14)
        assert dirty.iloc[150] <= candles['close'].iloc[150] * 0.1
        assert dirty.iloc[150] == pytest.approx(clean.iloc[150], rel=0.2)

    def test_invalid_period_raises(self, random_candles):
        with pytest.raises(ValueError):
            compute_atr(random_candles, period=0)


class TestIndicatorFamilies:

    def test_outputs_are_aligned(self, random_candles):
        close = random_candles['close']
        assert len(TrendIndicators.ema(close, 20)) == len(close)
        assert len(TrendIndicators.hma(close, 21)) == len(close)
        assert len(MomentumIndicators.rsi(close, 14)) == len(close)
        bands = VolatilityIndicators.bollinger_bands(close, 20, 2.0)
        assert list(bands.columns) == ['upper', 'middle', 'lower']
        assert len(bands) == len(close)

    def test_rsi_range(self, random_candles):
        rsi = MomentumIndicators.rsi(random_candles['close'], 14).dropna()
        assert ((rsi >= 0) & (rsi <= 100)).all()

    def test_bollinger_ordering(self, random_candles):
        bands = VolatilityIndicators.bollinger_bands(random_candles['close'], 20, 2.0).dropna()
        assert (bands['upper'] >= bands['middle']).all()
        assert (bands['middle'] >= bands['lower']).all()
