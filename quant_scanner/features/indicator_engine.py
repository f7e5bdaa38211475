"""
Indicator Engine
================
Computes only the indicators a set of signal families needs, in dependency
order, isolating failures to the indicator that raised.
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
import logging

from .indicators import (
    compute_atr,
    TrendIndicators,
    MomentumIndicators,
    VolatilityIndicators,
    VolumeIndicators,
    SupportResistanceIndicators,
    PatternIndicators,
)

logger = logging.getLogger(__name__)

IndicatorOutput = Union[pd.Series, pd.DataFrame]
Settings = Dict[str, Dict[str, Any]]


@dataclass
class IndicatorSpec:
    """Registry entry: how to build one named indicator."""
    name: str
    func: Callable[[pd.DataFrame, Dict[str, IndicatorOutput], Settings], IndicatorOutput]
    depends_on: List[str] = field(default_factory=list)


@dataclass
class IndicatorSet:
    """Computed indicators, index-aligned to the candle frame."""
    values: Dict[str, Optional[IndicatorOutput]]
    length: int
    errors: Dict[str, str] = field(default_factory=dict)

    def __contains__(self, name: str) -> bool:
        return self.available(name)

    def get(self, name: str) -> Optional[IndicatorOutput]:
        return self.values.get(name)

    def available(self, name: str) -> bool:
        return self.values.get(name) is not None

    def value_at(self, name: str, index: int, column: Optional[str] = None) -> Optional[float]:
        """Numeric value at ``index`` or None when missing/NaN/out of range."""
        data = self.values.get(name)
        if data is None or index < 0 or index >= len(data):
            return None
        if isinstance(data, pd.DataFrame):
            if column is None or column not in data.columns:
                return None
            value = data[column].iloc[index]
        else:
            value = data.iloc[index]
        try:
            value = float(value)
        except (TypeError, ValueError):
            return None
        return value if np.isfinite(value) else None

    def label_at(self, name: str, index: int) -> Optional[str]:
        """Categorical (string) value at ``index``."""
        data = self.values.get(name)
        if data is None or isinstance(data, pd.DataFrame) or index < 0 or index >= len(data):
            return None
        value = data.iloc[index]
        return value if isinstance(value, str) else None


def _param(settings: Settings, family: str, key: str, default: Any) -> Any:
    return settings.get(family, {}).get(key, default)


# Indicators required by each signal family
SIGNAL_INDICATORS: Dict[str, List[str]] = {
    'macd': ['macd'],
    'ema': ['ema'],
    'ma200': ['ma200', 'ema50'],
    'ichimoku': ['ichimoku'],
    'adx': ['adx'],
    'psar': ['psar', 'adx'],
    'tema': ['tema'],
    'dema': ['dema'],
    'hma': ['hma'],
    'wma': ['wma'],
    'maribbon': ['maribbon'],
    'rsi': ['rsi'],
    'stochastic': ['stochastic'],
    'williamsr': ['williamsr'],
    'cci': ['cci'],
    'roc': ['roc'],
    'awesomeoscillator': ['awesomeoscillator'],
    'cmo': ['cmo'],
    'mfi': ['mfi'],
    'bollinger': ['bollinger'],
    'bbw': ['bbw'],
    'atr': ['atr'],
    'donchian': ['donchian'],
    'keltner': ['keltner'],
    'ttm_squeeze': ['ttm_squeeze'],
    'volume': ['volume_sma', 'volume_roc'],
    'obv': ['obv', 'obv_sma'],
    'cmf': ['cmf'],
    'adline': ['adline'],
    'supportresistance': ['supportresistance'],
    'fibonacci': ['fibonacci'],
    'pivot': ['pivot'],
    'candlestick': ['candlestick'],
    'chartpattern': ['chartpattern'],
}

# Snapshot inputs for the regime detector
REGIME_INDICATORS = ['ema50', 'ma200', 'macd', 'rsi', 'adx', 'bbw']


class IndicatorEngine:
    """
    Dependency-aware indicator orchestrator.

    Usage:
        engine = IndicatorEngine()
        indicators = engine.compute(candles, families=['macd', 'rsi'])
        indicators.value_at('rsi', len(candles) - 2)
    """

    def __init__(self, config=None, event_log=None, logger_: Optional[logging.Logger] = None,
                 verbose: bool = False, registry: Optional[Dict[str, IndicatorSpec]] = None):
        from ..config import IndicatorConfig
        self.config = config or IndicatorConfig()
        self.event_log = event_log
        self.logger = logger_ or logger
        self.verbose = verbose

        self.registry: Dict[str, IndicatorSpec] = registry or self._build_registry()
        self._order = self._topological_order(self.registry)

    # =========================================================================
    # REGISTRY
    # =========================================================================

    def _build_registry(self) -> Dict[str, IndicatorSpec]:
        cfg = self.config

        def close(df):
            return df['close']

        specs = [
            # Trend
            IndicatorSpec('ema', lambda df, d, s: TrendIndicators.ema(close(df), _param(s, 'ema', 'period', 20))),
            IndicatorSpec('ema_fast', lambda df, d, s: TrendIndicators.ema(
                close(df), _param(s, 'macd', 'fast_period', cfg.macd_fast))),
            IndicatorSpec('ema_slow', lambda df, d, s: TrendIndicators.ema(
                close(df), _param(s, 'macd', 'slow_period', cfg.macd_slow))),
            IndicatorSpec('macd', lambda df, d, s: TrendIndicators.macd(
                d['ema_fast'], d['ema_slow'], _param(s, 'macd', 'signal_period', cfg.macd_signal)),
                depends_on=['ema_fast', 'ema_slow']),
            IndicatorSpec('ema50', lambda df, d, s: TrendIndicators.ema(close(df), cfg.regime_ema_period)),
            IndicatorSpec('ma200', lambda df, d, s: TrendIndicators.sma(
                close(df), _param(s, 'ma200', 'period', cfg.regime_sma_period))),
            IndicatorSpec('wma', lambda df, d, s: TrendIndicators.wma(close(df), _param(s, 'wma', 'period', 20))),
            IndicatorSpec('dema', lambda df, d, s: TrendIndicators.dema(close(df), _param(s, 'dema', 'period', 21))),
            IndicatorSpec('tema', lambda df, d, s: TrendIndicators.tema(close(df), _param(s, 'tema', 'period', 21))),
            IndicatorSpec('hma', lambda df, d, s: TrendIndicators.hma(close(df), _param(s, 'hma', 'period', 21))),
            IndicatorSpec('maribbon', lambda df, d, s: TrendIndicators.ma_ribbon(
                close(df), _param(s, 'maribbon', 'periods', [8, 13, 21, 34, 55]))),
            IndicatorSpec('adx', lambda df, d, s: TrendIndicators.adx(
                df['high'], df['low'], close(df), _param(s, 'adx', 'period', cfg.adx_period))),
            IndicatorSpec('psar', lambda df, d, s: TrendIndicators.psar(
                df['high'], df['low'], _param(s, 'psar', 'step', 0.02), _param(s, 'psar', 'max_step', 0.2))),
            IndicatorSpec('ichimoku', lambda df, d, s: TrendIndicators.ichimoku(
                df['high'], df['low'],
                _param(s, 'ichimoku', 'tenkan_period', 9),
                _param(s, 'ichimoku', 'kijun_period', 26),
                _param(s, 'ichimoku', 'senkou_period', 52),
                _param(s, 'ichimoku', 'displacement', 26))),

            # Momentum
            IndicatorSpec('rsi', lambda df, d, s: MomentumIndicators.rsi(
                close(df), _param(s, 'rsi', 'period', cfg.rsi_period))),
            IndicatorSpec('stochastic', lambda df, d, s: MomentumIndicators.stochastic(
                df['high'], df['low'], close(df),
                _param(s, 'stochastic', 'k_period', 14), _param(s, 'stochastic', 'd_period', 3))),
            IndicatorSpec('williamsr', lambda df, d, s: MomentumIndicators.williams_r(
                df['high'], df['low'], close(df), _param(s, 'williamsr', 'period', 14))),
            IndicatorSpec('cci', lambda df, d, s: MomentumIndicators.cci(
                df['high'], df['low'], close(df),
                _param(s, 'cci', 'period', 20), _param(s, 'cci', 'constant', 0.015))),
            IndicatorSpec('roc', lambda df, d, s: MomentumIndicators.roc(close(df), _param(s, 'roc', 'period', 12))),
            IndicatorSpec('awesomeoscillator', lambda df, d, s: MomentumIndicators.awesome_oscillator(
                df['high'], df['low'],
                _param(s, 'awesomeoscillator', 'fast_period', 5),
                _param(s, 'awesomeoscillator', 'slow_period', 34))),
            IndicatorSpec('cmo', lambda df, d, s: MomentumIndicators.cmo(close(df), _param(s, 'cmo', 'period', 14))),
            IndicatorSpec('mfi', lambda df, d, s: MomentumIndicators.mfi(
                df['high'], df['low'], close(df), df['volume'], _param(s, 'mfi', 'period', 14))),

            # Volatility
            IndicatorSpec('atr', lambda df, d, s: self.compute_atr(df, _param(s, 'atr', 'period', cfg.atr_period))),
            IndicatorSpec('bollinger', lambda df, d, s: VolatilityIndicators.bollinger_bands(
                close(df),
                _param(s, 'bollinger', 'period', cfg.bollinger_period),
                _param(s, 'bollinger', 'std_dev', cfg.bollinger_std))),
            IndicatorSpec('bbw', lambda df, d, s: VolatilityIndicators.bandwidth(d['bollinger']),
                          depends_on=['bollinger']),
            IndicatorSpec('keltner', lambda df, d, s: VolatilityIndicators.keltner_channels(
                df,
                _param(s, 'keltner', 'period', 20),
                _param(s, 'keltner', 'atr_period', 20),
                _param(s, 'keltner', 'multiplier', 2.0))),
            IndicatorSpec('donchian', lambda df, d, s: VolatilityIndicators.donchian_channels(
                df['high'], df['low'], _param(s, 'donchian', 'period', 20))),
            IndicatorSpec('ttm_squeeze', lambda df, d, s: VolatilityIndicators.ttm_squeeze(
                close(df), df['high'], df['low'], d['bollinger'], d['keltner'],
                _param(s, 'ttm_squeeze', 'period', 20),
                _param(s, 'ttm_squeeze', 'momentum_period', 5)),
                depends_on=['bollinger', 'keltner']),

            # Volume
            IndicatorSpec('volume_sma', lambda df, d, s: VolumeIndicators.volume_sma(
                df['volume'], _param(s, 'volume', 'period', cfg.volume_sma_period))),
            IndicatorSpec('volume_roc', lambda df, d, s: VolumeIndicators.volume_roc(
                df['volume'], _param(s, 'volume', 'roc_period', cfg.volume_roc_period))),
            IndicatorSpec('obv', lambda df, d, s: VolumeIndicators.obv(close(df), df['volume'])),
            IndicatorSpec('obv_sma', lambda df, d, s: TrendIndicators.sma(d['obv'], _param(s, 'obv', 'sma_period', 20)),
                          depends_on=['obv']),
            IndicatorSpec('cmf', lambda df, d, s: VolumeIndicators.cmf(
                df['high'], df['low'], close(df), df['volume'], _param(s, 'cmf', 'period', 20))),
            IndicatorSpec('adline', lambda df, d, s: VolumeIndicators.ad_line(
                df['high'], df['low'], close(df), df['volume'])),

            # Support & resistance
            IndicatorSpec('pivot', lambda df, d, s: SupportResistanceIndicators.pivot_points(
                df['high'], df['low'], close(df))),
            IndicatorSpec('fibonacci', lambda df, d, s: SupportResistanceIndicators.fibonacci_levels(
                df['high'], df['low'], _param(s, 'fibonacci', 'lookback', 50))),
            IndicatorSpec('supportresistance', lambda df, d, s: SupportResistanceIndicators.support_resistance(
                df['high'], df['low'], close(df),
                _param(s, 'supportresistance', 'window', 5),
                _param(s, 'supportresistance', 'lookback', 100))),

            # Patterns
            IndicatorSpec('candlestick', lambda df, d, s: PatternIndicators.candlestick(
                df['open'], df['high'], df['low'], close(df))),
            IndicatorSpec('chartpattern', lambda df, d, s: PatternIndicators.chart_patterns(
                df['high'], df['low'], _param(s, 'chartpattern', 'window', 30))),
        ]
        return {spec.name: spec for spec in specs}

    @staticmethod
    def _topological_order(registry: Dict[str, IndicatorSpec]) -> List[str]:
        """Order every registered indicator after its dependencies."""
        order: List[str] = []
        state: Dict[str, str] = {}

        def visit(name: str, path: List[str]):
            if state.get(name) == 'done':
                return
            if state.get(name) == 'visiting':
                raise ValueError(f"Indicator dependency cycle: {' -> '.join(path + [name])}")
            if name not in registry:
                raise ValueError(f"Unknown indicator dependency '{name}' (required by {path[-1] if path else '?'})")
            state[name] = 'visiting'
            for dep in registry[name].depends_on:
                visit(dep, path + [name])
            state[name] = 'done'
            order.append(name)

        for name in registry:
            visit(name, [])
        return order

    # =========================================================================
    # COMPUTATION
    # =========================================================================

    def required_indicators(self, families: Iterable, include_regime: bool = False) -> List[str]:
        """Indicators (with transitive dependencies) for the given signal families, in compute order."""
        wanted = set()
        for family in families:
            key = getattr(family, 'value', family)
            key = str(key).lower()
            names = SIGNAL_INDICATORS.get(key)
            if names is None:
                self.logger.warning(f"No indicators registered for signal family '{key}'")
                continue
            wanted.update(names)
        if include_regime:
            wanted.update(REGIME_INDICATORS)

        closure = set()
        stack = list(wanted)
        while stack:
            name = stack.pop()
            if name in closure:
                continue
            closure.add(name)
            stack.extend(self.registry[name].depends_on)

        return [name for name in self._order if name in closure]

    def compute(self, candles: pd.DataFrame, families: Optional[Iterable] = None,
                settings: Optional[Settings] = None, include_regime: bool = True) -> IndicatorSet:
        """
        Compute indicators for the requested signal families.

        Args:
            candles: Ascending OHLCV frame
            families: Signal families (enum members or keys); None computes everything
            settings: Per-family parameter overrides
            include_regime: Also compute the regime detector's inputs

        Returns:
            IndicatorSet where failed or data-starved indicators are None
        """
        settings = settings or {}
        if families is None:
            names = list(self._order)
        else:
            names = self.required_indicators(families, include_regime=include_regime)

        values: Dict[str, Optional[IndicatorOutput]] = {}
        errors: Dict[str, str] = {}

        for name in names:
            spec = self.registry[name]
            missing = [dep for dep in spec.depends_on if values.get(dep) is None]
            if missing:
                values[name] = None
                errors[name] = f"skipped: missing dependencies {missing}"
                self._report(name, errors[name], 'data_insufficient', warn=False)
                continue

            try:
                deps = {dep: values[dep] for dep in spec.depends_on}
                output = spec.func(candles, deps, settings)
            except Exception as e:
                values[name] = None
                errors[name] = f"{type(e).__name__}: {e}"
                self._report(name, errors[name], 'fatal_calculation_error', warn=True)
                continue

            if len(output) != len(candles):
                values[name] = None
                errors[name] = f"length mismatch ({len(output)} != {len(candles)})"
                self._report(name, errors[name], 'fatal_calculation_error', warn=True)
                continue

            if self._all_missing(output):
                values[name] = None
                errors[name] = f"insufficient data ({len(candles)} candles)"
                self._report(name, errors[name], 'data_insufficient', warn=False)
                continue

            values[name] = output
            if self.verbose:
                self.logger.debug(f"Computed indicator {name}")

        return IndicatorSet(values=values, length=len(candles), errors=errors)

    def compute_all(self, candles: pd.DataFrame, settings: Optional[Settings] = None) -> IndicatorSet:
        """Compute every registered indicator."""
        return self.compute(candles, families=None, settings=settings)

    def compute_atr(self, candles: pd.DataFrame, period: Optional[int] = None,
                    validate: Optional[bool] = None) -> pd.Series:
        """ATR using the configured outlier thresholds."""
        cfg = self.config
        return compute_atr(
            candles,
            period=period or cfg.atr_period,
            validate=cfg.atr_validate if validate is None else validate,
            price_outlier_multiplier=cfg.price_outlier_multiplier,
            gap_outlier_fraction=cfg.gap_outlier_fraction,
            true_range_cap_fraction=cfg.true_range_cap_fraction,
            atr_close_cap_fraction=cfg.atr_close_cap_fraction
        )

    @staticmethod
    def _all_missing(output: IndicatorOutput) -> bool:
        if len(output) == 0:
            return False
        if isinstance(output, pd.DataFrame):
            return bool(output.isna().all().all())
        return bool(output.isna().all())

    def _report(self, name: str, message: str, category: str, warn: bool):
        if warn:
            self.logger.warning(f"Indicator {name} failed: {message}")
        else:
            self.logger.debug(f"Indicator {name} unavailable: {message}")

        if self.event_log is not None:
            from ..monitoring import EventLevel, ErrorCategory
            self.event_log.emit(
                EventLevel.WARNING if warn else EventLevel.DEBUG,
                f"Indicator {name} nulled: {message}",
                source='IndicatorEngine',
                category=ErrorCategory(category),
                indicator=name
            )
