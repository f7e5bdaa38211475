from datetime import datetime

import pandas as pd
import pytest

from quant_scanner.data import Candle, candles_to_frame, load_candles_csv, CANDLE_COLUMNS


def test_records_are_sorted_ascending():
    candles = [
        Candle(datetime(2024, 1, 1, 2), 102, 103, 101, 102.5, 10),
        Candle(datetime(2024, 1, 1, 1), 101, 102, 100, 101.5, 12),
    ]
    frame = candles_to_frame(candles)
    assert list(frame.columns) == CANDLE_COLUMNS
    assert frame['close'].tolist() == [101.5, 102.5]
    assert list(frame.index) == [0, 1]


def test_kline_arrays():
    klines = [
        [1704067200000, '100', '101', '99', '100.5', '5', 1704070799999],
        [1704070800000, '100.5', '102', '100', '101.5', '7', 1704074399999],
    ]
    frame = candles_to_frame(klines)
    assert frame['timestamp'].iloc[0] == pd.Timestamp('2024-01-01 00:00:00')
    assert frame['high'].dtype.kind == 'f'


def test_missing_columns_raise():
    with pytest.raises(ValueError):
        candles_to_frame(pd.DataFrame({'close': [1.0, 2.0]}))


def test_missing_volume_defaults_to_zero():
    frame = candles_to_frame([{'Open': 1, 'High': 2, 'Low': 0.5, 'Close': 1.5}])
    assert frame['volume'].iloc[0] == 0


def test_load_csv(tmp_path, random_candles):
    path = tmp_path / 'candles.csv'
    random_candles.rename(columns=str.capitalize).to_csv(path, index=False)
    frame = load_candles_csv(str(path))
    assert len(frame) == len(random_candles)
    assert frame['close'].iloc[-1] == pytest.approx(random_candles['close'].iloc[-1])
