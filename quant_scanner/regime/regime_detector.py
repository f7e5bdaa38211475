"""
Market Regime Detector
======================
Classifies the market as uptrend, downtrend, ranging or neutral from an
indicator snapshot, and confirms the classification over a rolling window.

Each detector owns the history for exactly one (symbol, timeframe) pair.
Calls into one detector must be serialized by its owner; there is no
internal locking.
"""

import pandas as pd
import numpy as np
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Tuple
from enum import Enum
import logging

logger = logging.getLogger(__name__)

MIN_CONFIRMATION_WINDOW = 5
MAX_HISTORY = 10
CONFIRMATION_BOOST = 0.1
DEFAULT_ADX = 25.0
DEFAULT_BBW = 0.1


class MarketRegime(Enum):
    """Market regime classifications."""
    UPTREND = "uptrend"
    DOWNTREND = "downtrend"
    RANGING = "ranging"
    NEUTRAL = "neutral"

    @property
    def is_trending(self) -> bool:
        return self in (MarketRegime.UPTREND, MarketRegime.DOWNTREND)


@dataclass
class RegimeSnapshot:
    """Indicator values read at the evaluation index."""
    close: Optional[float] = None
    ema: Optional[float] = None
    sma: Optional[float] = None
    macd: Optional[float] = None
    macd_signal: Optional[float] = None
    rsi: Optional[float] = None
    adx: Optional[float] = None
    bbw: Optional[float] = None


@dataclass
class RegimeState:
    """Detector output for one evaluation."""
    regime: MarketRegime
    confidence: float  # 0 to 1
    is_confirmed: bool
    consecutive_periods: int
    confirmation_threshold: int
    history: List[Dict] = field(default_factory=list)
    raw_regime: Optional[MarketRegime] = None
    raw_confidence: Optional[float] = None

    @property
    def confidence_pct(self) -> float:
        return self.confidence * 100

    def to_dict(self) -> dict:
        return {
            'regime': self.regime.value,
            'confidence': self.confidence,
            'confidence_pct': self.confidence_pct,
            'is_confirmed': self.is_confirmed,
            'consecutive_periods': self.consecutive_periods,
            'confirmation_threshold': self.confirmation_threshold,
            'history': [
                {**h, 'regime': h['regime'].value} for h in self.history
            ],
            'raw_regime': self.raw_regime.value if self.raw_regime else None,
            'raw_confidence': self.raw_confidence
        }

    @classmethod
    def neutral(cls, confirmation_threshold: int) -> 'RegimeState':
        return cls(
            regime=MarketRegime.NEUTRAL,
            confidence=0.5,
            is_confirmed=False,
            consecutive_periods=0,
            confirmation_threshold=confirmation_threshold
        )


class RegimeDetector:
    """
    Regime state machine.

    Usage:
        detector = RegimeDetector(symbol='BTCUSDT', timeframe='15m')
        state = detector.detect(candles, indicators)
        if state.is_confirmed and state.regime == MarketRegime.UPTREND:
            ...
    """

    def __init__(self, config=None, symbol: str = "", timeframe: str = "",
                 logger_: Optional[logging.Logger] = None, verbose: bool = False):
        from ..config import RegimeConfig
        self.config = config or RegimeConfig()
        self.symbol = symbol
        self.timeframe = timeframe
        self.logger = logger_ or logger
        self.verbose = verbose

        self.confirmation_threshold = max(MIN_CONFIRMATION_WINDOW, int(self.config.confirmation_threshold))
        self.history: Deque[Dict] = deque(maxlen=max(1, min(MAX_HISTORY, int(self.config.history_size))))
        self.consecutive_periods = 0
        self.last_regime: Optional[MarketRegime] = None

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def detect(self, candles: pd.DataFrame, indicators, index: Optional[int] = None) -> RegimeState:
        """
        Classify the regime at ``index`` (default: last closed candle).

        Args:
            candles: Ascending OHLCV frame
            indicators: IndicatorSet carrying ema50, ma200, macd, rsi, adx, bbw
            index: Evaluation index

        Returns:
            RegimeState; neutral/0.5 if anything goes wrong
        """
        try:
            if index is None:
                index = len(candles) - 2
            if index < 0 or index >= len(candles):
                raise IndexError(f"evaluation index {index} outside {len(candles)} candles")

            snapshot = self.snapshot(candles, indicators, index)
            timestamp = candles['timestamp'].iloc[index] if 'timestamp' in candles.columns else None
            return self.update(snapshot, index=index, timestamp=timestamp)

        except Exception as e:
            self.logger.error(f"Regime detection failed for {self.symbol or '?'}/{self.timeframe or '?'}: {e}")
            return RegimeState.neutral(self.confirmation_threshold)

    def update(self, snapshot: RegimeSnapshot, index: Optional[int] = None,
               timestamp=None) -> RegimeState:
        """Advance the state machine by one evaluation."""
        scores = self.score(snapshot)
        regime = self.classify(scores)
        confidence = self.calculate_confidence(regime, snapshot)

        if timestamp is None or pd.isna(timestamp):
            timestamp = pd.Timestamp.now()

        self.history.append({
            'index': index if index is not None else len(self.history),
            'regime': regime,
            'confidence': confidence,
            'timestamp': timestamp
        })

        if regime == self.last_regime:
            self.consecutive_periods += 1
        else:
            if self.verbose and self.last_regime is not None:
                self.logger.debug(
                    f"Regime change {self.last_regime.value} -> {regime.value} "
                    f"(streak was {self.consecutive_periods})"
                )
            self.consecutive_periods = 1
            self.last_regime = regime

        confirmed_regime, confirmed_confidence, is_confirmed = self._determine_confirmed_regime()

        if self.verbose:
            self.logger.debug(
                f"Regime raw={regime.value} conf={confidence:.2f} scores={scores} "
                f"-> {confirmed_regime.value} confirmed={is_confirmed}"
            )

        return RegimeState(
            regime=confirmed_regime,
            confidence=confirmed_confidence,
            is_confirmed=is_confirmed,
            consecutive_periods=self.consecutive_periods,
            confirmation_threshold=self.confirmation_threshold,
            history=list(self.history)[-5:],
            raw_regime=regime,
            raw_confidence=confidence
        )

    def snapshot(self, candles: pd.DataFrame, indicators, index: int) -> RegimeSnapshot:
        """Read regime inputs at ``index``."""
        close = candles['close'].iloc[index]
        return RegimeSnapshot(
            close=float(close) if pd.notna(close) else None,
            ema=indicators.value_at('ema50', index),
            sma=indicators.value_at('ma200', index),
            macd=indicators.value_at('macd', index, 'macd'),
            macd_signal=indicators.value_at('macd', index, 'signal'),
            rsi=indicators.value_at('rsi', index),
            adx=indicators.value_at('adx', index, 'adx'),
            bbw=indicators.value_at('bbw', index)
        )

    def get_volatility_data(self, indicators, index: int) -> Dict[str, float]:
        """ADX/BBW at ``index`` for the momentum scorer, with neutral defaults."""
        adx = indicators.value_at('adx', index, 'adx') if indicators is not None else None
        bbw = indicators.value_at('bbw', index) if indicators is not None else None
        return {
            'adx': adx if adx is not None else DEFAULT_ADX,
            'bbw': bbw if bbw is not None else DEFAULT_BBW
        }

    def restore_state(self, history: Optional[List[Dict]] = None, consecutive_periods: int = 0,
                      last_regime: Optional[str] = None):
        """Rehydrate streak and history persisted by the caller."""
        try:
            self.history.clear()
            for entry in (history or [])[-self.history.maxlen:]:
                regime = entry.get('regime')
                if not isinstance(regime, MarketRegime):
                    regime = MarketRegime(str(regime).lower())
                self.history.append({
                    'index': entry.get('index', len(self.history)),
                    'regime': regime,
                    'confidence': float(entry.get('confidence', 0.5)),
                    'timestamp': entry.get('timestamp')
                })
            self.consecutive_periods = max(0, int(consecutive_periods or 0))
            if last_regime is None:
                self.last_regime = None
            elif isinstance(last_regime, MarketRegime):
                self.last_regime = last_regime
            else:
                self.last_regime = MarketRegime(str(last_regime).lower())
        except (ValueError, TypeError, AttributeError) as e:
            self.logger.warning(f"Could not restore regime state for {self.symbol}/{self.timeframe}: {e}")
            self.reset()

    def export_state(self) -> Dict:
        """State in the form ``restore_state`` accepts."""
        return {
            'history': [{**h, 'regime': h['regime'].value} for h in self.history],
            'consecutive_periods': self.consecutive_periods,
            'last_regime': self.last_regime.value if self.last_regime else None
        }

    def reset(self):
        self.history.clear()
        self.consecutive_periods = 0
        self.last_regime = None

    # =========================================================================
    # SCORING
    # =========================================================================

    @staticmethod
    def score(snapshot: RegimeSnapshot) -> Dict[str, float]:
        """Directional and ranging scores from the snapshot."""
        up = 0.0
        down = 0.0
        ranging = 0.0
        s = snapshot

        if s.close is not None and s.ema is not None:
            if s.close > s.ema:
                up += 20
            elif s.close < s.ema:
                down += 20

        if s.close is not None and s.sma is not None:
            if s.close > s.sma:
                up += 15
            elif s.close < s.sma:
                down += 15

        if s.macd is not None and s.macd_signal is not None:
            pts = min(15.0, abs(s.macd - s.macd_signal) * 1000)
            if s.macd > s.macd_signal:
                up += pts
            else:
                down += pts

        if s.rsi is not None:
            if s.rsi > 60:
                up += min(10.0, (s.rsi - 60) * 0.25)
            elif s.rsi < 40:
                down += min(10.0, (40 - s.rsi) * 0.25)
            else:
                ranging += 5

        if s.adx is not None:
            if s.adx > 25:
                boost = min(20.0, (s.adx - 25) * 0.5)
                if up > down:
                    up += boost
                elif down > up:
                    down += boost
            else:
                ranging += min(15.0, (25 - s.adx) * 0.6)

        if s.bbw is not None:
            if s.bbw > 0.04:
                boost = min(8.0, s.bbw * 100)
                if up > down:
                    up += boost
                elif down > up:
                    down += boost
            else:
                ranging += min(12.0, (0.04 - s.bbw) * 200)

        return {'uptrend': up, 'downtrend': down, 'ranging': ranging}

    @staticmethod
    def classify(scores: Dict[str, float]) -> MarketRegime:
        """Strict argmax; ties are neutral."""
        best = max(scores.values())
        leaders = [name for name, value in scores.items() if value == best]
        if len(leaders) != 1:
            return MarketRegime.NEUTRAL
        return MarketRegime(leaders[0])

    @staticmethod
    def calculate_confidence(regime: MarketRegime, snapshot: RegimeSnapshot) -> float:
        confidence = 0.5
        s = snapshot

        if s.adx is not None:
            if s.adx > 25:
                confidence += min(0.3, (s.adx - 25) / 100)
            else:
                confidence -= min(0.2, (25 - s.adx) / 100)

        if s.macd is not None and s.macd_signal is not None:
            confidence += min(0.15, abs(s.macd - s.macd_signal) * 10)

        if s.rsi is not None:
            if (regime == MarketRegime.UPTREND and s.rsi > 60) or \
               (regime == MarketRegime.DOWNTREND and s.rsi < 40):
                confidence += min(0.1, abs(s.rsi - 50) / 500)

        if s.bbw is not None:
            if regime == MarketRegime.RANGING and s.bbw < 0.03:
                confidence += min(0.1, (0.03 - s.bbw) * 2)
            elif regime.is_trending and s.bbw > 0.04:
                confidence += min(0.1, s.bbw * 2)

        if not np.isfinite(confidence):
            return 0.5
        return float(min(1.0, max(0.1, confidence)))

    # =========================================================================
    # CONFIRMATION
    # =========================================================================

    def _determine_confirmed_regime(self) -> Tuple[MarketRegime, float, bool]:
        n = self.confirmation_threshold
        history = list(self.history)

        if not history:
            return MarketRegime.NEUTRAL, 0.5, False

        latest = history[-1]
        if len(history) < n:
            return latest['regime'], latest['confidence'], False

        window = history[-n:]
        first = window[0]['regime']
        if all(entry['regime'] == first for entry in window):
            average = float(np.mean([entry['confidence'] for entry in window]))
            return first, min(1.0, average + CONFIRMATION_BOOST), True

        return latest['regime'], latest['confidence'], False


class RegimeDetectorRegistry:
    """Owns one RegimeDetector per (symbol, timeframe)."""

    def __init__(self, config=None, logger_: Optional[logging.Logger] = None, verbose: bool = False):
        from ..config import RegimeConfig
        self.config = config or RegimeConfig()
        self.logger = logger_ or logger
        self.verbose = verbose
        self._detectors: Dict[Tuple[str, str], RegimeDetector] = {}

    def get(self, symbol: str, timeframe: str) -> RegimeDetector:
        key = (symbol, timeframe)
        if key not in self._detectors:
            self._detectors[key] = RegimeDetector(
                self.config, symbol=symbol, timeframe=timeframe,
                logger_=self.logger, verbose=self.verbose
            )
        return self._detectors[key]

    def remove(self, symbol: str, timeframe: str):
        self._detectors.pop((symbol, timeframe), None)

    def keys(self) -> List[Tuple[str, str]]:
        return list(self._detectors.keys())

    def __len__(self) -> int:
        return len(self._detectors)

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._detectors
