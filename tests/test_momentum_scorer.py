import pytest

from quant_scanner.config import MomentumConfig, TradingMode
from quant_scanner.performance import MomentumScorer


NEUTRAL_VOLATILITY = {'adx': 25.0, 'bbw': 0.1}


class BrokenSentiment:

    def value(self):
        raise RuntimeError("feed exploded")


def _trade(clock, pnl=5.0, hours_ago=1.0, **extra):
    return {
        'pnl_usdt': pnl,
        'entry_value_usdt': 100.0,
        'exit_timestamp': clock() - hours_ago * 3600,
        **extra
    }


class TestScore:

    def test_neutral_scenario(self, clock):
        scorer = MomentumScorer(clock=clock)
        breakdown = scorer.calculate(volatility=NEUTRAL_VOLATILITY, sentiment=50)

        assert 40 <= breakdown.score < 60
        assert 20 <= breakdown.adjusted_balance_risk_factor <= 60
        assert not breakdown.is_fallback
        assert set(breakdown.components) == {
            'unrealized_pnl', 'realized_pnl', 'regime', 'volatility',
            'opportunity_rate', 'fear_greed', 'signal_quality'
        }

    def test_garbage_inputs_stay_in_range(self, clock):
        scorer = MomentumScorer(clock=clock)
        scorer.set_trades([{'pnl_usdt': float('nan'), 'entry_value_usdt': 0, 'exit_timestamp': 'never'}] * 6)
        breakdown = scorer.calculate(
            open_positions=[{'entry_price': float('nan'), 'quantity': 1, 'current_price': 10}],
            volatility={'adx': float('inf'), 'bbw': None},
            sentiment=float('nan'),
            average_signal_strength=float('nan')
        )
        assert 0 <= breakdown.score <= 100
        for component in breakdown.components.values():
            assert 0 <= component.score <= 100

    def test_winning_streak_raises_score(self, clock):
        scorer = MomentumScorer(clock=clock)
        for _ in range(5):
            scorer.add_trade(_trade(clock))
        score, _ = scorer.realized_component(scorer.trades, clock())
        assert score > 60

    def test_other_trading_modes_are_ignored(self, clock):
        scorer = MomentumScorer(MomentumConfig(trading_mode=TradingMode.TESTNET), clock=clock)
        trades = [_trade(clock, trading_mode='live') for _ in range(6)]
        score, details = scorer.realized_component(trades, clock())
        assert score == 50
        assert details.startswith('0 qualifying')

    def test_millisecond_timestamps(self, clock):
        scorer = MomentumScorer(clock=clock)
        trades = [_trade(clock, pnl=-2.0) for _ in range(5)]
        for trade in trades:
            trade['exit_timestamp'] = trade['exit_timestamp'] * 1000
        score, _ = scorer.realized_component(trades, clock())
        assert score < 50

    def test_unrealized_gain_and_loss(self):
        scorer = MomentumScorer()
        gain, _ = scorer.unrealized_component([{'entry_price': 100, 'quantity': 1, 'current_price': 110}])
        loss, _ = scorer.unrealized_component([{'entry_price': 100, 'quantity': 1, 'current_price': 90}])
        assert gain == pytest.approx(54.0, abs=0.01)
        assert loss == pytest.approx(25.0)

    def test_short_positions_profit_from_falling_prices(self):
        scorer = MomentumScorer()
        winning, _ = scorer.unrealized_component(
            [{'direction': 'short', 'entry_price': 100, 'quantity': 1, 'current_price': 90}])
        losing, _ = scorer.unrealized_component(
            [{'direction': 'short', 'entry_price': 100, 'quantity': 1, 'current_price': 110}])
        assert winning > 50
        assert winning == pytest.approx(54.0, abs=0.01)
        assert losing == pytest.approx(25.0)

    def test_unrealized_uses_entry_value_and_price_map(self):
        scorer = MomentumScorer()
        position = {'symbol': 'BTC/USDT', 'direction': 'long', 'entry_price': 100, 'quantity': 1,
                    'entry_value_usdt': 200}
        score, details = scorer.unrealized_component([position], {'BTCUSDT': 110})
        assert score == pytest.approx(52.99, abs=0.01)
        assert details.startswith('+5.00%')
        assert scorer.unrealized_component([position])[0] == 50

    def test_enum_tagged_trades_are_counted(self, clock):
        scorer = MomentumScorer(MomentumConfig(trading_mode=TradingMode.TESTNET), clock=clock)
        trades = [_trade(clock, trading_mode=TradingMode.TESTNET) for _ in range(6)]
        score, details = scorer.realized_component(trades, clock())
        assert details.startswith('6 trades')
        assert score > 50

    def test_untagged_trades_count_as_testnet(self, clock):
        trades = [_trade(clock) for _ in range(6)]
        live = MomentumScorer(MomentumConfig(trading_mode=TradingMode.LIVE), clock=clock)
        testnet = MomentumScorer(MomentumConfig(trading_mode=TradingMode.TESTNET), clock=clock)
        assert live.realized_component(trades, clock())[1].startswith('0 qualifying')
        assert testnet.realized_component(trades, clock())[1].startswith('6 trades')

    def test_regime_component(self):
        score, _ = MomentumScorer.regime_component({'regime': 'uptrend', 'confidence': 0.8, 'is_confirmed': True})
        assert score == pytest.approx(70.0)
        score, _ = MomentumScorer.regime_component({'regime': 'ranging', 'confidence': 0.4})
        assert score == pytest.approx(46.0)
        assert MomentumScorer.regime_component(None)[0] == 50

    def test_sentiment_is_contrarian(self):
        assert MomentumScorer.sentiment_component(20)[0] == 80
        assert MomentumScorer.sentiment_component(None)[0] == 50

    def test_opportunity_rate(self):
        scorer = MomentumScorer()
        assert scorer.opportunity_component()[0] == 50
        for count in (2, 4, 6):
            scorer.record_opportunities(count)
        assert scorer.opportunity_component()[0] == pytest.approx(20.0)


class TestRiskFactor:

    @pytest.mark.parametrize('score, expected', [
        (80, 100.0),
        (75, 100.0),
        (67.5, 80.0),
        (60, 60.0),
        (40, 20.0),
        (10, 10.0),
        (0, 10.0),
    ])
    def test_tiers(self, score, expected):
        assert MomentumScorer().risk_factor(score) == pytest.approx(expected)

    def test_scaled_maximum(self):
        scorer = MomentumScorer(MomentumConfig(max_balance_percent_risk=50))
        assert scorer.risk_factor(90) == 50
        assert scorer.risk_factor(60) == 30


class TestCaching:

    def test_cooldown(self, clock):
        scorer = MomentumScorer(clock=clock)
        first = scorer.calculate(sentiment=50)

        clock.advance(10)
        assert scorer.calculate(sentiment=10) is first

        assert scorer.calculate(sentiment=10, force=True) is not first

        clock.advance(31)
        assert scorer.calculate(sentiment=50).calculated_at == clock()

    def test_failure_falls_back_to_half_risk(self, clock):
        scorer = MomentumScorer(sentiment_client=BrokenSentiment(), clock=clock)
        breakdown = scorer.calculate()
        assert breakdown.is_fallback
        assert breakdown.score == 50
        assert breakdown.adjusted_balance_risk_factor == 50


class TestTradeWindow:

    def test_bounded_newest_first(self, clock):
        scorer = MomentumScorer(clock=clock)
        for i in range(120):
            scorer.add_trade({'id': i})
        assert len(scorer.trades) == 100
        assert scorer.trades[0]['id'] == 119
        assert scorer.trades[-1]['id'] == 20

    def test_reset(self, clock):
        scorer = MomentumScorer(clock=clock)
        scorer.add_trade({'id': 1})
        scorer.record_opportunities(3)
        scorer.calculate()
        scorer.reset()
        assert scorer.trades == []
        assert scorer.last_breakdown is None
