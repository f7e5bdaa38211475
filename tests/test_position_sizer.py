import pytest

from quant_scanner.config import SizingConfig, SizingMode
from quant_scanner.risk import (
    PositionSizer, ExchangeFilters, SizingError, open_position_risk
)
from quant_scanner.risk.position_sizer import momentum_multiplier, conviction_multiplier


def _fixed(default_size, **kwargs):
    return PositionSizer(SizingConfig(mode=SizingMode.FIXED, default_position_size=default_size, **kwargs))


class TestVolatilityAdjusted:

    def test_capped_by_balance(self):
        result = PositionSizer().calculate(
            price=100.0, atr=2.0, momentum_score=70, risk_factor=100, available_balance=1000,
            equity=1000, conviction_score=80, filters=ExchangeFilters(0.001, 0.001, 5.0))

        assert result.is_valid
        assert result.quantity == pytest.approx(10.0)
        assert result.stop_loss_price == pytest.approx(95.0)
        assert result.risk_amount == pytest.approx(50.0)
        assert result.momentum_multiplier == pytest.approx(1.2)
        assert result.conviction_multiplier == pytest.approx(0.8)
        assert 'capped_by_balance' in result.applied_filters

    def test_deterministic(self):
        kwargs = dict(price=123.45, atr=1.7, momentum_score=63, risk_factor=72, available_balance=850,
                      equity=2000, conviction_score=66, open_risk=40,
                      filters=ExchangeFilters(0.01, 0.01, 10.0))
        sizer = PositionSizer()
        assert sizer.calculate(**kwargs).to_dict() == sizer.calculate(**kwargs).to_dict()

    def test_risk_per_trade_without_base_size(self):
        sizer = PositionSizer(SizingConfig(base_position_size=None, risk_per_trade=1.0))
        result = sizer.calculate(price=100.0, atr=2.0, momentum_score=50, risk_factor=100,
                                 available_balance=10000, equity=2000)

        assert result.is_valid
        assert result.quantity == pytest.approx(4.0)
        assert result.risk_amount == pytest.approx(20.0)

    def test_missing_atr(self):
        result = PositionSizer().calculate(price=100.0, atr=None, available_balance=1000)
        assert result.error == SizingError.MISSING_ATR
        assert result.quantity == 0
        assert not result.is_valid

    def test_fixed_mode_ignores_atr(self):
        result = _fixed(100).calculate(price=50.0, atr=None, momentum_score=50, available_balance=1000)
        assert result.is_valid
        assert result.quantity == pytest.approx(2.0)
        assert result.method == 'fixed'


class TestPortfolioHeat:

    def test_heat_exceeded(self):
        result = PositionSizer().calculate(price=100.0, atr=2.0, available_balance=1000,
                                           equity=1000, open_risk=250)
        assert result.error == SizingError.PORTFOLIO_HEAT_EXCEEDED
        assert result.quantity == 0

    def test_scaled_to_headroom(self):
        result = PositionSizer().calculate(price=100.0, atr=2.0, momentum_score=50, available_balance=10000,
                                           equity=1000, open_risk=150)
        assert result.is_valid
        assert result.quantity == pytest.approx(10.0)
        assert result.risk_amount <= 50.0 + 1e-9
        assert 'scaled_to_heat_headroom' in result.applied_filters

    def test_open_position_risk(self):
        positions = [
            {'risk_usdt': 10},
            {'entry_price': 100, 'quantity': 2, 'stop_loss_price': 95},
            {'entry_price': 10, 'quantity': 3},
            {'symbol': 'incomplete'},
        ]
        assert open_position_risk(positions) == pytest.approx(50.0)
        assert open_position_risk(None) == 0


class TestExchangeMinimums:

    def test_would_create_dust(self):
        result = _fixed(100).calculate(price=10.0, available_balance=10.5, equity=1000,
                                       filters=ExchangeFilters(0.0, 1.0, 10.0))
        assert result.error == SizingError.WOULD_CREATE_DUST

    def test_safety_buffer_clears_dust_line(self):
        result = _fixed(5.2, minimum_trade_value=1.0).calculate(
            price=10.0, available_balance=1000, filters=ExchangeFilters(0.0, 0.1, 5.0))
        assert result.is_valid
        assert result.quantity == pytest.approx(0.6)
        assert 'floored_to_step' in result.applied_filters
        assert 'safety_buffer' in result.applied_filters

    def test_raised_to_min_qty(self):
        result = _fixed(20).calculate(price=100.0, available_balance=1000,
                                      filters=ExchangeFilters(0.5, 0.1, 0.0))
        assert result.is_valid
        assert result.quantity == pytest.approx(0.5)
        assert 'raised_to_min_qty' in result.applied_filters

    def test_min_qty_unaffordable(self):
        result = _fixed(20).calculate(price=100.0, available_balance=30,
                                      filters=ExchangeFilters(0.5, 0.1, 0.0))
        assert result.error == SizingError.INSUFFICIENT_BALANCE_FOR_MIN_QTY

    def test_raised_to_min_notional(self):
        result = _fixed(8, minimum_trade_value=1.0).calculate(
            price=2.0, available_balance=1000, filters=ExchangeFilters(0.0, 1.0, 10.0))
        assert result.is_valid
        assert 'raised_to_min_notional' in result.applied_filters
        assert result.value_usdt >= 11.0

    def test_below_minimum(self):
        result = _fixed(5).calculate(price=10.0, available_balance=1000)
        assert result.error == SizingError.BELOW_MINIMUM


class TestInvalidInput:

    @pytest.mark.parametrize('price, balance', [
        (float('nan'), 1000),
        (0, 1000),
        (100, 0),
        (100, None),
    ])
    def test_rejected(self, price, balance):
        result = PositionSizer().calculate(price=price, atr=2.0, available_balance=balance)
        assert result.error == SizingError.INVALID_INPUT
        assert result.quantity == 0

    def test_zero_risk_factor(self):
        result = PositionSizer().calculate(price=100, atr=2.0, risk_factor=0, available_balance=1000)
        assert result.error == SizingError.INSUFFICIENT_BALANCE


class TestHelpers:

    def test_multiplier_clamps(self):
        assert momentum_multiplier(0) == 0.5
        assert momentum_multiplier(50) == 1.0
        assert momentum_multiplier(200) == 1.5
        assert conviction_multiplier(10) == 0.5
        assert conviction_multiplier(80) == 0.8
        assert conviction_multiplier(200) == 1.5

    def test_filters_from_dict(self):
        filters = ExchangeFilters.from_exchange_info({
            'LOT_SIZE': {'minQty': '0.01', 'stepSize': '0.01'},
            'MIN_NOTIONAL': {'minNotional': '10'},
        })
        assert filters == ExchangeFilters(0.01, 0.01, 10.0)

    def test_filters_from_list(self):
        filters = ExchangeFilters.from_exchange_info({'filters': [
            {'filterType': 'PRICE_FILTER', 'tickSize': '0.01'},
            {'filterType': 'LOT_SIZE', 'minQty': '0.001', 'stepSize': '0.001'},
            {'filterType': 'NOTIONAL', 'minNotional': '5'},
        ]})
        assert filters == ExchangeFilters(0.001, 0.001, 5.0)
        assert filters.precision == 3

    def test_empty_filters(self):
        assert ExchangeFilters.from_exchange_info(None) == ExchangeFilters()

    def test_step_rounding(self):
        filters = ExchangeFilters(0.0, 0.001, 0.0)
        assert filters.floor_to_step(1.23456) == pytest.approx(1.234)
        assert filters.ceil_to_step(1.23456) == pytest.approx(1.235)
        assert filters.floor_to_step(0.3) == pytest.approx(0.3)
