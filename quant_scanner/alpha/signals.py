"""
Signal Model
============
Signal families, candidate and matched signals, per-family weights and
default settings.
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class SignalCategory(Enum):
    """Indicator family groups."""
    TREND = "trend"
    MOMENTUM = "momentum"
    VOLATILITY = "volatility"
    VOLUME = "volume"
    SUPPORT_RESISTANCE = "support_resistance"
    PATTERN = "pattern"


class SignalFamily(Enum):
    """Every signal type a strategy may declare."""
    # Trend
    MACD = "macd"
    EMA = "ema"
    MA200 = "ma200"
    ICHIMOKU = "ichimoku"
    ADX = "adx"
    PSAR = "psar"
    TEMA = "tema"
    DEMA = "dema"
    HMA = "hma"
    WMA = "wma"
    MA_RIBBON = "maribbon"
    # Momentum
    RSI = "rsi"
    STOCHASTIC = "stochastic"
    WILLIAMS_R = "williamsr"
    CCI = "cci"
    ROC = "roc"
    AWESOME_OSCILLATOR = "awesomeoscillator"
    CMO = "cmo"
    MFI = "mfi"
    # Volatility
    BOLLINGER = "bollinger"
    BBW = "bbw"
    ATR = "atr"
    DONCHIAN = "donchian"
    KELTNER = "keltner"
    TTM_SQUEEZE = "ttm_squeeze"
    # Volume
    VOLUME = "volume"
    OBV = "obv"
    CMF = "cmf"
    AD_LINE = "adline"
    # Support & resistance
    SUPPORT_RESISTANCE = "supportresistance"
    FIBONACCI = "fibonacci"
    PIVOT = "pivot"
    # Patterns
    CANDLESTICK = "candlestick"
    CHART_PATTERN = "chartpattern"

    @property
    def category(self) -> SignalCategory:
        return FAMILY_CATEGORIES[self]

    @classmethod
    def parse(cls, value: Any) -> Optional['SignalFamily']:
        """Resolve a declared type string (case/spacing insensitive) to a family."""
        if isinstance(value, cls):
            return value
        if value is None:
            return None
        key = normalize_label(value).replace(' ', '').replace('-', '')
        key = FAMILY_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return None


FAMILY_CATEGORIES: Dict[SignalFamily, SignalCategory] = {
    SignalFamily.MACD: SignalCategory.TREND,
    SignalFamily.EMA: SignalCategory.TREND,
    SignalFamily.MA200: SignalCategory.TREND,
    SignalFamily.ICHIMOKU: SignalCategory.TREND,
    SignalFamily.ADX: SignalCategory.TREND,
    SignalFamily.PSAR: SignalCategory.TREND,
    SignalFamily.TEMA: SignalCategory.TREND,
    SignalFamily.DEMA: SignalCategory.TREND,
    SignalFamily.HMA: SignalCategory.TREND,
    SignalFamily.WMA: SignalCategory.TREND,
    SignalFamily.MA_RIBBON: SignalCategory.TREND,
    SignalFamily.RSI: SignalCategory.MOMENTUM,
    SignalFamily.STOCHASTIC: SignalCategory.MOMENTUM,
    SignalFamily.WILLIAMS_R: SignalCategory.MOMENTUM,
    SignalFamily.CCI: SignalCategory.MOMENTUM,
    SignalFamily.ROC: SignalCategory.MOMENTUM,
    SignalFamily.AWESOME_OSCILLATOR: SignalCategory.MOMENTUM,
    SignalFamily.CMO: SignalCategory.MOMENTUM,
    SignalFamily.MFI: SignalCategory.MOMENTUM,
    SignalFamily.BOLLINGER: SignalCategory.VOLATILITY,
    SignalFamily.BBW: SignalCategory.VOLATILITY,
    SignalFamily.ATR: SignalCategory.VOLATILITY,
    SignalFamily.DONCHIAN: SignalCategory.VOLATILITY,
    SignalFamily.KELTNER: SignalCategory.VOLATILITY,
    SignalFamily.TTM_SQUEEZE: SignalCategory.VOLATILITY,
    SignalFamily.VOLUME: SignalCategory.VOLUME,
    SignalFamily.OBV: SignalCategory.VOLUME,
    SignalFamily.CMF: SignalCategory.VOLUME,
    SignalFamily.AD_LINE: SignalCategory.VOLUME,
    SignalFamily.SUPPORT_RESISTANCE: SignalCategory.SUPPORT_RESISTANCE,
    SignalFamily.FIBONACCI: SignalCategory.SUPPORT_RESISTANCE,
    SignalFamily.PIVOT: SignalCategory.SUPPORT_RESISTANCE,
    SignalFamily.CANDLESTICK: SignalCategory.PATTERN,
    SignalFamily.CHART_PATTERN: SignalCategory.PATTERN,
}

FAMILY_ALIASES = {
    'williams_r': 'williamsr',
    'ttmsqueeze': 'ttm_squeeze',
    'ttm': 'ttm_squeeze',
    'ad': 'adline',
    'adl': 'adline',
    'ao': 'awesomeoscillator',
    'sma200': 'ma200',
    'bbands': 'bollinger',
    'sr': 'supportresistance',
    'support_resistance': 'supportresistance',
    'chart_pattern': 'chartpattern',
    'ma_ribbon': 'maribbon',
}

# Stage-1 weights of the strength aggregator
SIGNAL_WEIGHTS: Dict[str, float] = {
    'macd': 1.8, 'rsi': 1.8,
    'ichimoku': 1.7, 'stochastic': 1.7,
    'ema': 1.6, 'bollinger': 1.6,
    'ma200': 1.5, 'atr': 1.5,
    'williamsr': 1.3,
    'psar': 1.2, 'mfi': 1.2, 'adx': 1.2, 'cci': 1.2, 'roc': 1.2,
    'awesomeoscillator': 1.2, 'cmo': 1.2, 'obv': 1.2, 'cmf': 1.2, 'adline': 1.2,
    'bbw': 1.1, 'ttm_squeeze': 1.1, 'candlestick': 1.1,
    'keltner': 1.0, 'donchian': 1.0, 'chartpattern': 1.0, 'pivot': 1.0,
    'fibonacci': 1.0, 'supportresistance': 1.0, 'maribbon': 1.0,
    'tema': 1.0, 'dema': 1.0, 'hma': 1.0, 'wma': 1.0,
    'volume': 0.9,
}

CORE_SIGNAL_TYPES = [t for t, w in SIGNAL_WEIGHTS.items() if w >= 1.5]

DEFAULT_SIGNAL_SETTINGS: Dict[str, Dict[str, Any]] = {
    'macd': {'fast_period': 12, 'slow_period': 26, 'signal_period': 9},
    'ema': {'period': 20, 'fast_period': 9},
    'ma200': {'period': 200, 'fast_period': 50},
    'ichimoku': {'tenkan_period': 9, 'kijun_period': 26, 'senkou_period': 52, 'displacement': 26},
    'adx': {'period': 14, 'strong_threshold': 25, 'weak_threshold': 20},
    'psar': {'step': 0.02, 'max_step': 0.2, 'adx_threshold': 20},
    'tema': {'period': 21},
    'dema': {'period': 21},
    'hma': {'period': 21},
    'wma': {'period': 20},
    'maribbon': {'periods': [8, 13, 21, 34, 55]},
    'rsi': {'period': 14, 'overbought': 70, 'oversold': 30},
    'stochastic': {'k_period': 14, 'd_period': 3, 'overbought': 80, 'oversold': 20},
    'williamsr': {'period': 14, 'overbought': -20, 'oversold': -80},
    'cci': {'period': 20, 'constant': 0.015, 'overbought': 100, 'oversold': -100},
    'roc': {'period': 12, 'strong_threshold': 5},
    'awesomeoscillator': {'fast_period': 5, 'slow_period': 34},
    'cmo': {'period': 14, 'overbought': 50, 'oversold': -50},
    'mfi': {'period': 14, 'overbought': 80, 'oversold': 20},
    'bollinger': {'period': 20, 'std_dev': 2.0},
    'bbw': {'period': 20, 'std_dev': 2.0, 'squeeze_threshold': 0.04, 'expansion_threshold': 0.10},
    'atr': {'period': 14, 'lookback': 20, 'expansion_ratio': 1.3, 'contraction_ratio': 0.8},
    'donchian': {'period': 20},
    'keltner': {'period': 20, 'atr_period': 20, 'multiplier': 2.0},
    'ttm_squeeze': {'period': 20, 'momentum_period': 5},
    'volume': {'period': 20, 'roc_period': 14, 'high_multiplier': 1.5, 'spike_multiplier': 2.5},
    'obv': {'sma_period': 20, 'slope_period': 5},
    'cmf': {'period': 20, 'strong_threshold': 0.2},
    'adline': {'slope_period': 5},
    'supportresistance': {'window': 5, 'lookback': 100, 'proximity': 0.01},
    'fibonacci': {'lookback': 50, 'tolerance': 0.005},
    'pivot': {'proximity': 0.002},
    'candlestick': {},
    'chartpattern': {'window': 30},
}


def normalize_label(value: Any) -> str:
    """Lower-case, trim and collapse internal whitespace."""
    return ' '.join(str(value).strip().lower().split())


def clamp_strength(value: float) -> float:
    if value is None or not np.isfinite(value):
        return 0.0
    return float(min(100.0, max(0.0, value)))


@dataclass
class Signal:
    """Candidate signal emitted by an evaluator."""
    type: SignalFamily
    value: str
    strength: float  # 0 to 100
    is_event: bool = False
    details: str = ""

    @property
    def category(self) -> SignalCategory:
        return self.type.category

    def to_dict(self) -> dict:
        return {
            'type': self.type.value,
            'value': self.value,
            'strength': self.strength,
            'is_event': self.is_event,
            'category': self.category.value,
            'details': self.details
        }


class MatchKind(Enum):
    """How a declared signal was resolved against the candidates."""
    EXACT = "exact"
    FALLBACK = "fallback"
    NOT_FOUND = "not_found"


@dataclass
class MatchedSignal:
    """A declared strategy signal with the candidate it resolved to."""
    type: str
    value: Optional[str]
    expected_value: str
    strength: float
    match_kind: MatchKind
    is_event: bool = False
    category: Optional[SignalCategory] = None
    details: str = ""
    message: str = ""

    @property
    def is_exact(self) -> bool:
        return self.match_kind == MatchKind.EXACT

    @property
    def is_found(self) -> bool:
        return self.match_kind != MatchKind.NOT_FOUND

    def to_dict(self) -> dict:
        return {
            'type': self.type,
            'value': self.value,
            'expected_value': self.expected_value,
            'strength': self.strength,
            'match_kind': self.match_kind.value,
            'is_event': self.is_event,
            'category': self.category.value if self.category else None,
            'details': self.details,
            'message': self.message
        }


REGIME_DIRECTION_MULTIPLIERS = {
    ('uptrend', 'bullish'): 1.2,
    ('uptrend', 'bearish'): 0.8,
    ('downtrend', 'bullish'): 0.8,
    ('downtrend', 'bearish'): 1.2,
}

RANGING_FAMILY_MULTIPLIERS = {
    SignalFamily.RSI: 1.15,
    SignalFamily.STOCHASTIC: 1.15,
    SignalFamily.BOLLINGER: 1.15,
    SignalFamily.MACD: 0.85,
    SignalFamily.EMA: 0.85,
}


@dataclass
class EvaluationContext:
    """Everything one evaluator sees for one family at one index."""
    candles: pd.DataFrame
    indicators: Any  # IndicatorSet
    index: int
    settings: Dict[str, Any] = field(default_factory=dict)
    regime: Any = None  # RegimeState

    def value(self, name: str, column: Optional[str] = None, offset: int = 0) -> Optional[float]:
        """Indicator value ``offset`` candles before the evaluation index."""
        return self.indicators.value_at(name, self.index - offset, column)

    def label(self, name: str, offset: int = 0) -> Optional[str]:
        return self.indicators.label_at(name, self.index - offset)

    def series(self, name: str, column: Optional[str] = None, lookback: Optional[int] = None) -> Optional[pd.Series]:
        """Indicator history up to and including the evaluation index."""
        data = self.indicators.get(name)
        if data is None:
            return None
        if isinstance(data, pd.DataFrame):
            if column is None or column not in data.columns:
                return None
            data = data[column]
        start = 0 if lookback is None else max(0, self.index - lookback + 1)
        return data.iloc[start:self.index + 1]

    def price(self, column: str = 'close', offset: int = 0) -> Optional[float]:
        i = self.index - offset
        if i < 0 or i >= len(self.candles):
            return None
        value = self.candles[column].iloc[i]
        return float(value) if pd.notna(value) else None

    def setting(self, key: str, default: Any = None) -> Any:
        return self.settings.get(key, default)

    def regime_multiplier(self, family: SignalFamily, direction: Optional[str]) -> float:
        if self.regime is None:
            return 1.0
        regime = getattr(self.regime, 'regime', self.regime)
        regime = getattr(regime, 'value', regime)
        if regime == 'ranging':
            return RANGING_FAMILY_MULTIPLIERS.get(family, 1.0)
        if direction is None:
            return 1.0
        return REGIME_DIRECTION_MULTIPLIERS.get((regime, direction), 1.0)

    def signal(self, family: SignalFamily, value: str, strength: float, is_event: bool = False,
               details: str = "", direction: Optional[str] = None) -> Signal:
        """Build a candidate, regime-adjusting and clamping its strength."""
        adjusted = strength * self.regime_multiplier(family, direction)
        return Signal(
            type=family,
            value=value,
            strength=clamp_strength(round(adjusted, 2)),
            is_event=is_event,
            details=details
        )


def unique_signals(signals: List[Signal]) -> List[Signal]:
    """Drop later candidates that repeat an earlier label."""
    seen = set()
    result = []
    for signal in signals:
        key = normalize_label(signal.value)
        if key in seen:
            continue
        seen.add(key)
        result.append(signal)
    return result
