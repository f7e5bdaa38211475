import pandas as pd
import pytest

from quant_scanner.config import RegimeConfig
from quant_scanner.features import IndicatorEngine
from quant_scanner.regime import (
    RegimeDetector, RegimeDetectorRegistry, RegimeSnapshot, MarketRegime
)


UPTREND = RegimeSnapshot(close=110, ema=100, sma=95, macd=0.02, macd_signal=0.01, rsi=65, adx=35, bbw=0.06)
DOWNTREND = RegimeSnapshot(close=90, ema=100, sma=105, macd=0.01, macd_signal=0.02, rsi=35, adx=35, bbw=0.06)
RANGING = RegimeSnapshot(close=100, ema=100, sma=100, rsi=50, adx=15, bbw=0.02)


class TestScoring:

    def test_classification(self):
        assert RegimeDetector.classify(RegimeDetector.score(UPTREND)) == MarketRegime.UPTREND
        assert RegimeDetector.classify(RegimeDetector.score(DOWNTREND)) == MarketRegime.DOWNTREND
        assert RegimeDetector.classify(RegimeDetector.score(RANGING)) == MarketRegime.RANGING

    def test_tie_is_neutral(self):
        assert RegimeDetector.classify(RegimeDetector.score(RegimeSnapshot())) == MarketRegime.NEUTRAL

    def test_confidence_bounds(self):
        for snapshot in (UPTREND, DOWNTREND, RANGING, RegimeSnapshot()):
            regime = RegimeDetector.classify(RegimeDetector.score(snapshot))
            confidence = RegimeDetector.calculate_confidence(regime, snapshot)
            assert 0.1 <= confidence <= 1.0

    def test_uptrend_confidence(self):
        assert RegimeDetector.calculate_confidence(MarketRegime.UPTREND, UPTREND) == pytest.approx(0.83)


class TestConfirmation:

    def test_confirmed_after_window(self):
        detector = RegimeDetector()
        states = [detector.update(UPTREND, index=i) for i in range(5)]

        assert not any(s.is_confirmed for s in states[:4])
        assert states[-1].is_confirmed
        assert states[-1].regime == MarketRegime.UPTREND
        assert states[-1].consecutive_periods == 5
        assert states[-1].confidence == pytest.approx(0.93)

    def test_discordant_snapshot_resets_streak(self):
        detector = RegimeDetector()
        for i in range(6):
            detector.update(UPTREND, index=i)
        state = detector.update(DOWNTREND, index=6)

        assert state.consecutive_periods == 1
        assert not state.is_confirmed
        assert state.regime == MarketRegime.DOWNTREND

    def test_window_has_a_floor(self):
        detector = RegimeDetector(RegimeConfig(confirmation_threshold=2))
        assert detector.confirmation_threshold == 5
        states = [detector.update(UPTREND, index=i) for i in range(3)]
        assert not states[-1].is_confirmed

    def test_history_is_trimmed_in_state(self):
        detector = RegimeDetector()
        for i in range(8):
            state = detector.update(RANGING, index=i)
        assert len(state.history) == 5
        assert state.to_dict()['history'][0]['regime'] == 'ranging'

    def test_history_never_exceeds_ten_entries(self):
        detector = RegimeDetector(RegimeConfig(history_size=50))
        for i in range(20):
            detector.update(RANGING, index=i)
        assert len(detector.history) == 10
        assert detector.history[-1]['index'] == 19


class TestDetect:

    def test_detect_on_candles(self, uptrend_candles):
        indicators = IndicatorEngine().compute(uptrend_candles, families=[], include_regime=True)
        detector = RegimeDetector(symbol='BTCUSDT', timeframe='1h')
        state = detector.detect(uptrend_candles, indicators)
        assert state.raw_regime in list(MarketRegime)
        assert detector.history[-1]['index'] == len(uptrend_candles) - 2

    def test_bad_input_is_neutral(self):
        detector = RegimeDetector()
        state = detector.detect(pd.DataFrame(columns=['close']), None)
        assert state.regime == MarketRegime.NEUTRAL
        assert state.confidence == 0.5
        assert not state.is_confirmed

    def test_missing_indicators_is_neutral(self, random_candles):
        state = RegimeDetector().detect(random_candles, None)
        assert state.regime == MarketRegime.NEUTRAL

    def test_volatility_defaults(self):
        data = RegimeDetector().get_volatility_data(None, 10)
        assert data == {'adx': 25.0, 'bbw': 0.1}


class TestState:

    def test_export_and_restore(self):
        detector = RegimeDetector()
        for i in range(5):
            detector.update(UPTREND, index=i)
        exported = detector.export_state()

        restored = RegimeDetector()
        restored.restore_state(**exported)
        assert restored.consecutive_periods == 5
        assert restored.last_regime == MarketRegime.UPTREND

        state = restored.update(UPTREND, index=5)
        assert state.is_confirmed
        assert state.consecutive_periods == 6

    def test_restore_garbage_resets(self):
        detector = RegimeDetector()
        detector.update(UPTREND)
        detector.restore_state(history=[{'regime': 'sideways'}], consecutive_periods=3)
        assert len(detector.history) == 0
        assert detector.consecutive_periods == 0
        assert detector.last_regime is None


class TestRegistry:

    def test_one_detector_per_key(self):
        registry = RegimeDetectorRegistry()
        a = registry.get('BTCUSDT', '1h')
        assert registry.get('BTCUSDT', '1h') is a
        assert registry.get('BTCUSDT', '4h') is not a
        assert len(registry) == 2
        assert ('BTCUSDT', '1h') in registry

        registry.remove('BTCUSDT', '1h')
        assert ('BTCUSDT', '1h') not in registry
