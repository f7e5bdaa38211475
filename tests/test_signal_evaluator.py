import numpy as np
import pandas as pd
import pytest

from quant_scanner.alpha import (
    EVALUATORS, SignalEvaluator, SignalFamily, Signal, MatchKind, Strategy, SignalCategory
)
from quant_scanner.config import SignalConfig
from quant_scanner.features import IndicatorEngine, IndicatorSet
from quant_scanner.regime import RegimeState, MarketRegime


def _candles(n=10):
    return pd.DataFrame({
        'timestamp': pd.date_range('2024-01-01', periods=n, freq='h'),
        'open': np.full(n, 100.0),
        'high': np.full(n, 101.0),
        'low': np.full(n, 99.0),
        'close': np.full(n, 100.0),
        'volume': np.full(n, 1000.0),
    })


def _rsi_indicators(n=10):
    rsi = np.full(n, 45.0)
    rsi[n - 3] = 35.0
    rsi[n - 2] = 25.0
    return IndicatorSet(values={'rsi': pd.Series(rsi)}, length=n)


def _macd_cross_indicators(n=10):
    macd = pd.DataFrame({
        'macd': np.full(n, 0.1),
        'signal': np.full(n, 0.2),
        'histogram': np.full(n, -0.1),
    })
    macd.loc[n - 2, ['macd', 'signal', 'histogram']] = [0.3, 0.2, 0.1]
    return IndicatorSet(values={'macd': macd}, length=n)


def _strategy(*signals, **kwargs):
    return Strategy.from_dict({
        'name': 'test',
        'signals': [{'type': t, 'value': v} for t, v in signals],
        **kwargs
    })


class TestRegistry:

    def test_every_family_has_an_evaluator(self):
        assert set(EVALUATORS) == set(SignalFamily)
        assert len(EVALUATORS) == 34

    def test_all_evaluators_on_real_indicators(self, random_candles):
        indicators = IndicatorEngine().compute_all(random_candles)
        evaluator = SignalEvaluator()
        index = len(random_candles) - 2
        for family in SignalFamily:
            candidates = evaluator.evaluate_family(family, random_candles, indicators, index)
            for candidate in candidates:
                assert isinstance(candidate, Signal)
                assert candidate.type == family
                assert 0 <= candidate.strength <= 100

    def test_evaluator_failure_yields_nothing(self, random_candles):
        evaluator = SignalEvaluator()
        assert evaluator.evaluate_family(SignalFamily.RSI, random_candles, None, 10) == []

    def test_family_parsing(self):
        assert SignalFamily.parse('RSI') == SignalFamily.RSI
        assert SignalFamily.parse('Williams_R') == SignalFamily.WILLIAMS_R
        assert SignalFamily.parse('TTM Squeeze') == SignalFamily.TTM_SQUEEZE
        assert SignalFamily.parse('nonsense') is None
        assert SignalFamily.OBV.category == SignalCategory.VOLUME


class TestMatching:

    def test_oscillator_candidates(self):
        evaluator = SignalEvaluator()
        candidates = evaluator.evaluate_family(SignalFamily.RSI, _candles(), _rsi_indicators(), 8)
        labels = {c.value: c for c in candidates}

        assert labels['Oversold'].strength == pytest.approx(72.5)
        assert labels['Oversold Entry'].is_event
        assert labels['Oversold Entry'].strength == 75
        assert labels['RSI Below 50'].strength == 70

    def test_exact_match_is_case_insensitive(self):
        result = SignalEvaluator().evaluate_strategy(
            _strategy(('rsi', 'oversold entry')), _candles(), _rsi_indicators())

        assert result.is_match
        assert result.index == 8
        assert result.price_at_match == 100.0
        matched = result.matched_signals[0]
        assert matched.match_kind == MatchKind.EXACT
        assert matched.value == 'Oversold Entry'
        assert matched.strength == 75
        assert result.all_matched_exactly
        assert result.log[0]['type'] == 'signal_event_match'

    def test_fallback_takes_strongest_candidate(self):
        result = SignalEvaluator().evaluate_strategy(
            _strategy(('rsi', 'Overbought')), _candles(), _rsi_indicators())

        matched = result.matched_signals[0]
        assert matched.match_kind == MatchKind.FALLBACK
        assert matched.value == 'Oversold Entry'
        assert matched.strength == 75
        assert matched.expected_value == 'Overbought'
        assert not result.all_matched_exactly
        assert result.log[0]['type'] == 'signal_mismatch'

    def test_missing_indicator_is_not_found(self):
        result = SignalEvaluator().evaluate_strategy(
            _strategy(('rsi', 'Oversold'), ('macd', 'Bullish Cross')), _candles(), _rsi_indicators())

        macd = result.matched_signals[1]
        assert macd.match_kind == MatchKind.NOT_FOUND
        assert macd.strength == 0
        assert result.found_count == 1
        assert result.log[-1]['type'] == 'signal_not_found'

    def test_unknown_type_is_not_found(self):
        result = SignalEvaluator().evaluate_strategy(
            _strategy(('tarot', 'Bullish')), _candles(), _rsi_indicators())
        assert result.is_match
        assert result.matched_signals[0].match_kind == MatchKind.NOT_FOUND

    def test_macd_cross_event(self):
        result = SignalEvaluator().evaluate_strategy(
            _strategy(('macd', 'Bullish Cross'), ('macd', 'MACD Above Signal')),
            _candles(), _macd_cross_indicators())

        cross, above = result.matched_signals
        assert cross.is_exact and cross.is_event
        assert cross.strength == 80
        assert above.is_exact
        assert result.all_matched_exactly

    def test_regime_adjusts_strength(self):
        uptrend = RegimeState(regime=MarketRegime.UPTREND, confidence=0.8, is_confirmed=True,
                              consecutive_periods=5, confirmation_threshold=5)
        ranging = RegimeState(regime=MarketRegime.RANGING, confidence=0.8, is_confirmed=True,
                              consecutive_periods=5, confirmation_threshold=5)
        evaluator = SignalEvaluator()
        strategy = _strategy(('rsi', 'Oversold'))

        plain = evaluator.evaluate_strategy(strategy, _candles(), _rsi_indicators())
        up = evaluator.evaluate_strategy(strategy, _candles(), _rsi_indicators(), regime=uptrend)
        flat = evaluator.evaluate_strategy(strategy, _candles(), _rsi_indicators(), regime=ranging)

        assert plain.matched_signals[0].strength == pytest.approx(72.5)
        assert up.matched_signals[0].strength == pytest.approx(87.0)
        assert flat.matched_signals[0].strength == pytest.approx(83.375, abs=0.01)


class TestStructuralFailures:

    def test_too_few_candles(self):
        result = SignalEvaluator().evaluate_strategy(
            _strategy(('rsi', 'Oversold')), _candles(1), _rsi_indicators())
        assert not result.is_match
        assert result.error == 'insufficient_candles'

    def test_missing_indicators(self):
        result = SignalEvaluator().evaluate_strategy(_strategy(('rsi', 'Oversold')), _candles(), None)
        assert not result.is_match
        assert result.error == 'missing_indicators'


class TestStrategyDefinition:

    def test_from_dict_aliases(self):
        strategy = Strategy.from_dict({
            'combinationName': 'Trend Rider',
            'signals': [{'type': 'MACD', 'value': 'Bullish Cross'}, {'type': 'rsi', 'value': 'Oversold'}],
            'minSignals': 1,
            'convictionScore': 70,
        })
        assert strategy.name == 'Trend Rider'
        assert strategy.min_signals == 1
        assert strategy.conviction_score == 70
        assert strategy.families == [SignalFamily.MACD, SignalFamily.RSI]

    def test_min_signals_defaults_to_declared_count(self):
        strategy = _strategy(('rsi', 'Oversold'), ('macd', 'Bullish Cross'))
        assert strategy.min_signals == 2

    def test_signals_required(self):
        with pytest.raises(ValueError):
            Strategy.from_dict({'name': 'empty'})

    def test_settings_precedence(self):
        evaluator = SignalEvaluator(SignalConfig(signal_overrides={'rsi': {'oversold': 25, 'period': 10}}))
        settings = evaluator.settings_for(SignalFamily.RSI, {'period': 7})
        assert settings == {'period': 7, 'overbought': 70, 'oversold': 25}

    def test_indicator_settings_by_family(self):
        strategy = Strategy.from_dict({'signals': [
            {'type': 'rsi', 'value': 'Oversold', 'parameters': {'period': 9}}
        ]})
        settings = SignalEvaluator().indicator_settings(strategy)
        assert settings['rsi']['period'] == 9
