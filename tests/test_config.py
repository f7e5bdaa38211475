import json

from quant_scanner.config import SystemConfig, TradingMode, SizingMode, merge_settings


def test_save_and_load(tmp_path):
    config = SystemConfig()
    config.momentum.trading_mode = TradingMode.LIVE
    config.momentum.weights['fear_greed'] = 0.2
    config.sizing.mode = SizingMode.FIXED
    config.regime.block_trading_in_downtrend = True
    config.signals.signal_overrides = {'rsi': {'oversold': 25}}

    path = tmp_path / 'nested' / 'config.json'
    config.save(str(path))

    raw = json.loads(path.read_text())
    assert raw['momentum']['trading_mode'] == 'live'
    assert raw['sizing']['mode'] == 'fixed'

    loaded = SystemConfig.load(str(path))
    assert loaded.momentum.trading_mode == TradingMode.LIVE
    assert loaded.momentum.weights['fear_greed'] == 0.2
    assert loaded.sizing.mode == SizingMode.FIXED
    assert loaded.regime.block_trading_in_downtrend
    assert loaded.signals.signal_overrides == {'rsi': {'oversold': 25}}


def test_partial_file_keeps_defaults(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({'sizing': {'portfolio_heat_max': 10, 'unknown_key': 1}}))

    loaded = SystemConfig.load(str(path))
    assert loaded.sizing.portfolio_heat_max == 10
    assert loaded.sizing.mode == SizingMode.VOLATILITY_ADJUSTED
    assert loaded.regime.confirmation_threshold == SystemConfig().regime.confirmation_threshold


def test_merge_settings():
    defaults = {'period': 14, 'oversold': 30}
    assert merge_settings(defaults, {'period': 7}) == {'period': 7, 'oversold': 30}
    assert merge_settings(defaults, None) == defaults
    assert defaults == {'period': 14, 'oversold': 30}
