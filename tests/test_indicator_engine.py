import pandas as pd
import pytest

from quant_scanner.features import IndicatorEngine, IndicatorSpec, IndicatorSet
from quant_scanner.monitoring import EventLog, EventLevel


def _close(df, deps, settings):
    return df['close']


class TestDependencyOrdering:

    def test_macd_pulls_in_its_moving_averages(self):
        engine = IndicatorEngine()
        assert engine.required_indicators(['macd']) == ['ema_fast', 'ema_slow', 'macd']

    def test_bandwidth_follows_bollinger(self):
        engine = IndicatorEngine()
        names = engine.required_indicators(['bbw'])
        assert names.index('bollinger') < names.index('bbw')

    def test_regime_inputs_are_added(self):
        engine = IndicatorEngine()
        names = engine.required_indicators(['rsi'], include_regime=True)
        for name in ('ema50', 'ma200', 'macd', 'adx', 'bbw', 'rsi'):
            assert name in names

    def test_cycle_is_rejected(self):
        registry = {
            'a': IndicatorSpec('a', _close, depends_on=['b']),
            'b': IndicatorSpec('b', _close, depends_on=['a']),
        }
        with pytest.raises(ValueError, match='cycle'):
            IndicatorEngine(registry=registry)

    def test_unknown_dependency_is_rejected(self):
        registry = {'a': IndicatorSpec('a', _close, depends_on=['missing'])}
        with pytest.raises(ValueError, match='Unknown'):
            IndicatorEngine(registry=registry)


class TestCompute:

    def test_all_outputs_are_aligned(self, random_candles):
        indicators = IndicatorEngine().compute_all(random_candles)
        assert isinstance(indicators, IndicatorSet)
        for name, value in indicators.values.items():
            if value is not None:
                assert len(value) == len(random_candles), name

    def test_failing_indicator_is_isolated(self, random_candles):
        def boom(df, deps, settings):
            raise RuntimeError("bad input")

        registry = {
            'good': IndicatorSpec('good', _close),
            'bad': IndicatorSpec('bad', boom),
            'child': IndicatorSpec('child', lambda df, d, s: d['bad'] * 2, depends_on=['bad']),
        }
        event_log = EventLog()
        engine = IndicatorEngine(registry=registry, event_log=event_log)
        indicators = engine.compute(random_candles)

        assert indicators.get('good') is not None
        assert indicators.get('bad') is None
        assert indicators.get('child') is None
        assert 'RuntimeError' in indicators.errors['bad']

        warnings = event_log.recent(level=EventLevel.WARNING)
        assert any(e.context.get('indicator') == 'bad' for e in warnings)
        assert warnings[-1].context['category'] == 'fatal_calculation_error'

    def test_length_mismatch_is_nulled(self, random_candles):
        registry = {'short': IndicatorSpec('short', lambda df, d, s: df['close'].iloc[:10])}
        indicators = IndicatorEngine(registry=registry).compute(random_candles)
        assert indicators.get('short') is None
        assert 'length mismatch' in indicators.errors['short']

    def test_long_lookback_is_null_on_short_data(self):
        from quant_scanner.data import synthetic_candles
        candles = synthetic_candles(n=60, seed=3)
        indicators = IndicatorEngine().compute(candles, families=['ma200', 'rsi'])
        assert indicators.get('ma200') is None
        assert 'ma200' not in indicators
        assert indicators.get('rsi') is not None

    def test_parameter_overrides(self, random_candles):
        engine = IndicatorEngine()
        default = engine.compute(random_candles, families=['rsi'], include_regime=False)
        custom = engine.compute(random_candles, families=['rsi'], include_regime=False,
                                settings={'rsi': {'period': 7}})
        index = len(random_candles) - 2
        assert default.value_at('rsi', index) != custom.value_at('rsi', index)

    def test_value_at_bounds(self, random_candles):
        indicators = IndicatorEngine().compute(random_candles, families=['bollinger'], include_regime=False)
        assert indicators.value_at('bollinger', 0, 'upper') is None
        assert indicators.value_at('bollinger', 10_000, 'upper') is None
        assert indicators.value_at('bollinger', 100) is None
        assert indicators.value_at('bollinger', 100, 'upper') is not None
        assert indicators.value_at('not_computed', 100) is None
