"""
Signal Evaluator
================
Matches a strategy's declared signals against the candidates produced by
the per-family evaluators at the last closed candle.
"""

import pandas as pd
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import logging

from .signals import (
    SignalFamily,
    Signal,
    MatchedSignal,
    MatchKind,
    EvaluationContext,
    DEFAULT_SIGNAL_SETTINGS,
    normalize_label,
)
from . import trend_signals as trend
from . import momentum_signals as momentum
from . import volatility_signals as volatility
from . import volume_signals as volume
from . import level_signals as levels

logger = logging.getLogger(__name__)

Evaluator = Callable[[EvaluationContext], List[Signal]]

EVALUATORS: Dict[SignalFamily, Evaluator] = {
    SignalFamily.MACD: trend.evaluate_macd,
    SignalFamily.EMA: trend.evaluate_ema,
    SignalFamily.MA200: trend.evaluate_ma200,
    SignalFamily.ICHIMOKU: trend.evaluate_ichimoku,
    SignalFamily.ADX: trend.evaluate_adx,
    SignalFamily.PSAR: trend.evaluate_psar,
    SignalFamily.TEMA: trend.evaluate_tema,
    SignalFamily.DEMA: trend.evaluate_dema,
    SignalFamily.HMA: trend.evaluate_hma,
    SignalFamily.WMA: trend.evaluate_wma,
    SignalFamily.MA_RIBBON: trend.evaluate_maribbon,
    SignalFamily.RSI: momentum.evaluate_rsi,
    SignalFamily.STOCHASTIC: momentum.evaluate_stochastic,
    SignalFamily.WILLIAMS_R: momentum.evaluate_williamsr,
    SignalFamily.CCI: momentum.evaluate_cci,
    SignalFamily.ROC: momentum.evaluate_roc,
    SignalFamily.AWESOME_OSCILLATOR: momentum.evaluate_awesomeoscillator,
    SignalFamily.CMO: momentum.evaluate_cmo,
    SignalFamily.MFI: momentum.evaluate_mfi,
    SignalFamily.BOLLINGER: volatility.evaluate_bollinger,
    SignalFamily.BBW: volatility.evaluate_bbw,
    SignalFamily.ATR: volatility.evaluate_atr,
    SignalFamily.DONCHIAN: volatility.evaluate_donchian,
    SignalFamily.KELTNER: volatility.evaluate_keltner,
    SignalFamily.TTM_SQUEEZE: volatility.evaluate_ttm_squeeze,
    SignalFamily.VOLUME: volume.evaluate_volume,
    SignalFamily.OBV: volume.evaluate_obv,
    SignalFamily.CMF: volume.evaluate_cmf,
    SignalFamily.AD_LINE: volume.evaluate_adline,
    SignalFamily.SUPPORT_RESISTANCE: levels.evaluate_supportresistance,
    SignalFamily.FIBONACCI: levels.evaluate_fibonacci,
    SignalFamily.PIVOT: levels.evaluate_pivot,
    SignalFamily.CANDLESTICK: levels.evaluate_candlestick,
    SignalFamily.CHART_PATTERN: levels.evaluate_chartpattern,
}

_missing = [family.value for family in SignalFamily if family not in EVALUATORS]
if _missing:
    raise ValueError(f"No evaluator registered for signal families: {_missing}")


@dataclass
class StrategySignal:
    """One declared signal of a strategy."""
    type: str
    value: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def family(self) -> Optional[SignalFamily]:
        return SignalFamily.parse(self.type)


@dataclass
class Strategy:
    """Strategy definition supplied by the caller."""
    name: str
    signals: List[StrategySignal]
    min_signals: int = 1
    min_strength: Optional[float] = None
    conviction_score: Optional[float] = None

    @property
    def families(self) -> List[SignalFamily]:
        return [s.family for s in self.signals if s.family is not None]

    @classmethod
    def from_dict(cls, data: Dict) -> 'Strategy':
        if 'signals' not in data:
            raise ValueError("Strategy definition requires 'signals'")
        signals = [
            StrategySignal(
                type=str(s['type']),
                value=str(s.get('value', '')),
                parameters=dict(s.get('parameters') or {})
            )
            for s in data['signals']
        ]
        return cls(
            name=data.get('name', data.get('combinationName', 'strategy')),
            signals=signals,
            min_signals=int(data.get('min_signals', data.get('minSignals', len(signals) or 1))),
            min_strength=data.get('min_strength', data.get('minStrength')),
            conviction_score=data.get('conviction_score', data.get('convictionScore'))
        )


@dataclass
class StrategyEvaluation:
    """Outcome of matching one strategy at one index."""
    is_match: bool
    matched_signals: List[MatchedSignal] = field(default_factory=list)
    all_matched_exactly: bool = False
    price_at_match: Optional[float] = None
    index: Optional[int] = None
    log: List[Dict] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def found_signals(self) -> List[MatchedSignal]:
        return [s for s in self.matched_signals if s.is_found]

    @property
    def found_count(self) -> int:
        return len(self.found_signals)

    def to_dict(self) -> dict:
        return {
            'is_match': self.is_match,
            'matched_signals': [s.to_dict() for s in self.matched_signals],
            'all_matched_exactly': self.all_matched_exactly,
            'price_at_match': self.price_at_match,
            'index': self.index,
            'log': self.log,
            'error': self.error
        }


class SignalEvaluator:
    """
    Stateless dispatcher over EVALUATORS.

    Usage:
        evaluator = SignalEvaluator()
        result = evaluator.evaluate_strategy(strategy, candles, indicators, regime)
    """

    def __init__(self, config=None, logger_: Optional[logging.Logger] = None, verbose: bool = False):
        from ..config import SignalConfig
        self.config = config or SignalConfig()
        self.logger = logger_ or logger
        self.verbose = verbose

    def settings_for(self, family: SignalFamily, parameters: Optional[Dict] = None) -> Dict[str, Any]:
        """Defaults, then configured overrides, then the strategy's parameters."""
        from ..config import merge_settings
        settings = merge_settings(DEFAULT_SIGNAL_SETTINGS.get(family.value, {}),
                                  self.config.signal_overrides.get(family.value))
        return merge_settings(settings, parameters)

    def indicator_settings(self, strategy: Strategy) -> Dict[str, Dict[str, Any]]:
        """Per-family settings the indicator engine should compute with."""
        settings = {}
        for declared in strategy.signals:
            family = declared.family
            if family is not None:
                settings[family.value] = self.settings_for(family, declared.parameters)
        return settings

    def evaluate_family(self, family: SignalFamily, candles: pd.DataFrame, indicators, index: int,
                        settings: Optional[Dict] = None, regime=None) -> List[Signal]:
        """Run one evaluator; an exception yields no candidates."""
        ctx = EvaluationContext(
            candles=candles,
            indicators=indicators,
            index=index,
            settings=settings if settings is not None else self.settings_for(family),
            regime=regime
        )
        try:
            return EVALUATORS[family](ctx)
        except Exception as e:
            self.logger.warning(f"Evaluator {family.value} failed at index {index}: {e}")
            return []

    def evaluate_strategy(self, strategy, candles: pd.DataFrame, indicators, regime=None) -> StrategyEvaluation:
        """
        Match every declared signal at the last closed candle.

        Args:
            strategy: Strategy or its dict form
            candles: Ascending OHLCV frame
            indicators: IndicatorSet computed for the strategy's families
            regime: Optional RegimeState

        Returns:
            StrategyEvaluation (is_match False only on structural failure)
        """
        if isinstance(strategy, dict):
            strategy = Strategy.from_dict(strategy)

        if candles is None or len(candles) < 2:
            return StrategyEvaluation(
                is_match=False,
                log=[{'type': 'error', 'message': 'Not enough candle data to evaluate'}],
                error='insufficient_candles'
            )
        if indicators is None:
            return StrategyEvaluation(
                is_match=False,
                log=[{'type': 'error', 'message': 'Indicators not provided'}],
                error='missing_indicators'
            )

        index = len(candles) - 2
        close = candles['close'].iloc[index]
        log: List[Dict] = []
        matched: List[MatchedSignal] = []

        for declared in strategy.signals:
            matched.append(self._match(declared, candles, indicators, index, regime, log))

        return StrategyEvaluation(
            is_match=True,
            matched_signals=matched,
            all_matched_exactly=bool(matched) and all(m.is_exact for m in matched),
            price_at_match=float(close) if pd.notna(close) else None,
            index=index,
            log=log
        )

    def _match(self, declared: StrategySignal, candles: pd.DataFrame, indicators, index: int,
               regime, log: List[Dict]) -> MatchedSignal:
        family = declared.family
        if family is None:
            message = f"Unknown signal type '{declared.type}'"
            self.logger.warning(message)
            log.append({'type': 'signal_not_found', 'message': message})
            return MatchedSignal(
                type=declared.type, value=None, expected_value=declared.value,
                strength=0.0, match_kind=MatchKind.NOT_FOUND, message=message
            )

        settings = self.settings_for(family, declared.parameters)
        candidates = self.evaluate_family(family, candles, indicators, index, settings, regime)
        expected = normalize_label(declared.value)

        exact = next((c for c in candidates if normalize_label(c.value) == expected), None)
        if exact is not None:
            kind = MatchKind.EXACT
            chosen = exact
            log_type = 'signal_event_match' if exact.is_event else 'signal_match'
        elif candidates:
            kind = MatchKind.FALLBACK
            chosen = max(candidates, key=lambda c: c.strength)
            log_type = 'signal_mismatch'
        else:
            message = f"{family.value}: expected \"{declared.value}\" -> not found (strength 0)"
            log.append({'type': 'signal_not_found', 'message': message})
            if self.verbose:
                self.logger.debug(message)
            return MatchedSignal(
                type=family.value, value=None, expected_value=declared.value,
                strength=0.0, match_kind=MatchKind.NOT_FOUND,
                category=family.category, message=message
            )

        message = (f"{family.value}: expected \"{declared.value}\" -> got \"{chosen.value}\" "
                   f"(strength {chosen.strength:.1f})")
        log.append({'type': log_type, 'message': message})
        if self.verbose:
            self.logger.debug(message)

        return MatchedSignal(
            type=family.value,
            value=chosen.value,
            expected_value=declared.value,
            strength=chosen.strength,
            match_kind=kind,
            is_event=chosen.is_event,
            category=family.category,
            details=chosen.details,
            message=message
        )
