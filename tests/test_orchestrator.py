import json
import sys

import pytest

from quant_scanner import ScanPipeline, ScanContext, SystemConfig, main
from quant_scanner.monitoring import EventLevel
from quant_scanner.regime import MarketRegime


def _strategy(**kwargs):
    data = {
        'name': 'rsi_macd',
        'signals': [
            {'type': 'rsi', 'value': 'RSI Above 50'},
            {'type': 'macd', 'value': 'MACD Above Signal'},
        ],
        'min_strength': 0,
    }
    data.update(kwargs)
    return data


@pytest.fixture
def permissive_config():
    config = SystemConfig()
    config.regime.minimum_regime_confidence = 0
    return config


class TestEvaluate:

    def test_approved_decision(self, uptrend_candles, permissive_config):
        pipeline = ScanPipeline(permissive_config)
        decision = pipeline.evaluate('BTCUSDT', '1h', uptrend_candles, _strategy(),
                                     ScanContext(available_balance=1000))

        assert decision.approved, decision.blocked_reason
        assert decision.blocked_stage is None
        assert decision.evaluation.found_count == 2
        assert decision.strength.total_strength > 0
        assert 0 <= decision.momentum.score <= 100
        assert decision.sizing.quantity > 0
        assert decision.sizing.value_usdt <= 1000
        assert decision.to_dict()['sizing']['is_valid']

    def test_strength_gate(self, uptrend_candles, permissive_config):
        pipeline = ScanPipeline(permissive_config)
        decision = pipeline.evaluate('BTCUSDT', '1h', uptrend_candles, _strategy(min_strength=1e9),
                                     ScanContext(available_balance=1000))

        assert not decision.approved
        assert decision.blocked_stage == 'strength'
        assert decision.momentum is None
        assert decision.sizing is None
        events = pipeline.event_log.recent(level=EventLevel.INFO)
        assert events[-1].context['category'] == 'business_rule_rejection'

    def test_too_few_candles(self, uptrend_candles, permissive_config):
        decision = ScanPipeline(permissive_config).evaluate(
            'BTCUSDT', '1h', uptrend_candles.iloc[:1], _strategy(), ScanContext(available_balance=1000))
        assert decision.blocked_stage == 'data'
        assert decision.regime is None

    def test_conviction_gate(self, uptrend_candles, permissive_config):
        decision = ScanPipeline(permissive_config).evaluate(
            'BTCUSDT', '1h', uptrend_candles, _strategy(),
            ScanContext(available_balance=1000, conviction_score=10))
        assert decision.blocked_stage == 'conviction'

    def test_missing_signals_gate(self, uptrend_candles, permissive_config):
        strategy = _strategy(signals=[{'type': 'tarot', 'value': 'Bullish'}])
        decision = ScanPipeline(permissive_config).evaluate(
            'BTCUSDT', '1h', uptrend_candles, strategy, ScanContext(available_balance=1000))
        assert decision.blocked_stage == 'signals'

    def test_sizing_rejection(self, uptrend_candles, permissive_config):
        decision = ScanPipeline(permissive_config).evaluate(
            'BTCUSDT', '1h', uptrend_candles, _strategy(), ScanContext(available_balance=0))
        assert decision.blocked_stage == 'sizing'
        assert decision.blocked_reason == 'invalid_input'

    def test_confirmed_downtrend_is_blocked(self, downtrend_candles, permissive_config):
        permissive_config.regime.block_trading_in_downtrend = True
        pipeline = ScanPipeline(permissive_config)
        strategy = _strategy(signals=[{'type': 'rsi', 'value': 'RSI Below 50'}])

        decisions = [
            pipeline.evaluate('ETHUSDT', '1h', downtrend_candles, strategy, ScanContext(available_balance=1000))
            for _ in range(5)
        ]

        last = decisions[-1]
        assert last.regime.regime == MarketRegime.DOWNTREND
        assert last.regime.is_confirmed
        assert last.blocked_stage == 'regime'
        assert all(d.blocked_stage != 'regime' for d in decisions[:4])

    def test_losing_trade_history_lowers_momentum(self, uptrend_candles, permissive_config, clock):
        losing = [
            {'pnl_usdt': -5.0, 'entry_value_usdt': 100.0, 'exit_timestamp': clock() - 3600}
            for _ in range(6)
        ]
        baseline = ScanPipeline(permissive_config, clock=clock).evaluate(
            'BTCUSDT', '1h', uptrend_candles, _strategy(), ScanContext(available_balance=1000))
        pipeline = ScanPipeline(permissive_config, clock=clock)
        decision = pipeline.evaluate('BTCUSDT', '1h', uptrend_candles, _strategy(),
                                     ScanContext(available_balance=1000, closed_trades=losing))

        assert len(pipeline.momentum_scorer.trades) == 6
        assert decision.momentum.components['realized_pnl'].score < 50
        assert decision.momentum.score < baseline.momentum.score

    def test_open_positions_are_priced_from_the_scan(self, uptrend_candles, permissive_config):
        position = {'symbol': 'BTCUSDT', 'direction': 'long', 'entry_price': 1.0,
                    'quantity': 1.0, 'entry_value_usdt': 1.0, 'status': 'open'}
        decision = ScanPipeline(permissive_config).evaluate(
            'BTCUSDT', '1h', uptrend_candles, _strategy(),
            ScanContext(available_balance=1000, open_positions=[position]))

        unrealized = decision.momentum.components['unrealized_pnl']
        assert unrealized.details.endswith('across 1 positions')
        assert unrealized.score > 50

    def test_regime_state_is_per_symbol(self, uptrend_candles, permissive_config):
        pipeline = ScanPipeline(permissive_config)
        for _ in range(3):
            pipeline.evaluate('BTCUSDT', '1h', uptrend_candles, _strategy(), ScanContext(available_balance=1000))
        pipeline.evaluate('ETHUSDT', '1h', uptrend_candles, _strategy(), ScanContext(available_balance=1000))

        assert pipeline.regime_detectors.get('BTCUSDT', '1h').consecutive_periods == 3
        assert pipeline.regime_detectors.get('ETHUSDT', '1h').consecutive_periods == 1


class TestScan:

    def test_scan_records_opportunities(self, uptrend_candles, permissive_config):
        pipeline = ScanPipeline(permissive_config)
        decisions = pipeline.scan('BTCUSDT', '1h', uptrend_candles, [
            _strategy(),
            _strategy(name='nothing', signals=[{'type': 'tarot', 'value': 'Bullish'}]),
        ], ScanContext(available_balance=1000))

        assert [d.strategy for d in decisions] == ['rsi_macd', 'nothing']
        assert list(pipeline.momentum_scorer.opportunity_history) == [1]


class TestCommandLine:

    def test_main_prints_decision(self, uptrend_candles, tmp_path, monkeypatch, capsys):
        candles_path = tmp_path / 'candles.csv'
        uptrend_candles.to_csv(candles_path, index=False)

        strategy_path = tmp_path / 'strategy.json'
        strategy_path.write_text(json.dumps(_strategy()))

        config = SystemConfig()
        config.regime.minimum_regime_confidence = 0
        config_path = tmp_path / 'config.json'
        config.save(str(config_path))

        monkeypatch.setattr(sys, 'argv', [
            'quant-scanner',
            '--candles', str(candles_path),
            '--strategy', str(strategy_path),
            '--config', str(config_path),
            '--symbol', 'BTCUSDT',
            '--balance', '1000',
            '--log-level', 'WARNING',
        ])
        main()

        output = json.loads(capsys.readouterr().out)
        assert output['symbol'] == 'BTCUSDT'
        assert output['strategy'] == 'rsi_macd'
        assert output['approved'] is True
        assert output['sizing']['quantity'] > 0
