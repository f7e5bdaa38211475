"""
Regime Context Weighting
========================
Scales combined signal strength by how well the signals' strategy
families have historically worked in the current market regime.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

# Signal type -> strategy family whose regime effectiveness it inherits
STRATEGY_FAMILIES: Dict[str, str] = {
    'macd': 'MACD Cross',
    'awesomeoscillator': 'MACD Cross',
    'rsi': 'RSI Oversold',
    'williamsr': 'RSI Oversold',
    'cci': 'RSI Oversold',
    'cmo': 'RSI Oversold',
    'volume': 'Volume Breakout',
    'mfi': 'Volume Breakout',
    'obv': 'Volume Breakout',
    'cmf': 'Volume Breakout',
    'adline': 'Volume Breakout',
    'bollinger': 'Bollinger Bounce',
    'bbw': 'Bollinger Bounce',
    'keltner': 'Bollinger Bounce',
    'stochastic': 'Stochastic Oversold',
    'atr': 'ATR Breakout',
    'adx': 'ATR Breakout',
    'ttm_squeeze': 'ATR Breakout',
    'donchian': 'ATR Breakout',
    'ema': 'EMA Cross',
    'sma': 'EMA Cross',
    'ma200': 'EMA Cross',
    'ichimoku': 'EMA Cross',
    'tema': 'EMA Cross',
    'dema': 'EMA Cross',
    'hma': 'EMA Cross',
    'wma': 'EMA Cross',
    'maribbon': 'EMA Cross',
    'psar': 'EMA Cross',
    'supportresistance': 'Support Bounce',
    'fibonacci': 'Support Bounce',
    'pivot': 'Support Bounce',
    'chartpattern': 'Resistance Break',
    'candlestick': 'Momentum Divergence',
    'roc': 'Momentum Divergence',
}

REGIME_EFFECTIVENESS: Dict[str, Dict[str, float]] = {
    'MACD Cross': {'uptrend': 1.4, 'downtrend': 1.3, 'ranging': 0.9},
    'RSI Oversold': {'uptrend': 1.2, 'downtrend': 1.5, 'ranging': 1.4},
    'Volume Breakout': {'uptrend': 1.6, 'downtrend': 1.4, 'ranging': 1.2},
    'Bollinger Bounce': {'uptrend': 1.1, 'downtrend': 1.2, 'ranging': 1.6},
    'Stochastic Oversold': {'uptrend': 1.3, 'downtrend': 1.4, 'ranging': 1.5},
    'ATR Breakout': {'uptrend': 1.5, 'downtrend': 1.3, 'ranging': 1.1},
    'EMA Cross': {'uptrend': 1.4, 'downtrend': 1.2, 'ranging': 0.8},
    'Support Bounce': {'uptrend': 1.2, 'downtrend': 0.8, 'ranging': 1.7},
    'Resistance Break': {'uptrend': 1.7, 'downtrend': 1.1, 'ranging': 1.3},
    'Momentum Divergence': {'uptrend': 1.1, 'downtrend': 1.6, 'ranging': 1.2},
}

MIN_TRADES_FOR_HISTORY = 5


@dataclass
class RegimeWeightingResult:
    """Regime stage of the strength aggregator."""
    regime: str
    confidence: float
    average_effectiveness: float
    confidence_multiplier: float
    bonus: float

    @property
    def multiplier(self) -> float:
        return 1.0 + self.bonus

    def to_dict(self) -> dict:
        return {
            'regime': self.regime,
            'confidence': self.confidence,
            'average_effectiveness': self.average_effectiveness,
            'confidence_multiplier': self.confidence_multiplier,
            'bonus': self.bonus
        }


class RegimeContextWeighting:
    """
    Looks up per-regime effectiveness of strategy families.

    Historical performance, when loaded, nudges effectiveness up for
    families that have won often in a regime and down for those that have not.
    """

    def __init__(self, min_trades: int = MIN_TRADES_FOR_HISTORY, logger_: Optional[logging.Logger] = None,
                 verbose: bool = False):
        self.min_trades = min_trades
        self.logger = logger_ or logger
        self.verbose = verbose
        # (regime, strategy family or None for regime-wide) -> win rate
        self.historical_win_rates: Dict[Tuple[str, Optional[str]], float] = {}

    @staticmethod
    def strategy_family(signal_type: str) -> str:
        return STRATEGY_FAMILIES.get((signal_type or '').lower(), 'Unknown')

    @staticmethod
    def confidence_multiplier(confidence: float) -> float:
        if confidence >= 0.8:
            return 1.2
        if confidence >= 0.6:
            return 1.1
        if confidence >= 0.4:
            return 1.0
        return 0.9

    def effectiveness(self, signal_type: str, regime: str) -> float:
        family = self.strategy_family(signal_type)
        base = REGIME_EFFECTIVENESS.get(family, {}).get(regime, 1.0)

        win_rate = self.historical_win_rates.get((regime, family))
        if win_rate is None:
            win_rate = self.historical_win_rates.get((regime, None))
        if win_rate is not None:
            if win_rate > 0.6:
                base *= 1.1
            elif win_rate < 0.4:
                base *= 0.9
        return base

    def evaluate(self, signal_types: Iterable[str], regime: str, confidence: float) -> RegimeWeightingResult:
        """Compute the regime bonus for a set of signal types."""
        regime = getattr(regime, 'value', regime) or 'unknown'
        types = [t for t in signal_types if t]
        confidence = float(confidence or 0.0)
        conf_mult = self.confidence_multiplier(confidence)

        if not types or regime not in ('uptrend', 'downtrend', 'ranging'):
            return RegimeWeightingResult(regime, confidence, 1.0, conf_mult, 0.0)

        avg = sum(self.effectiveness(t, regime) for t in types) / len(types)
        bonus = max(0.0, (avg - 1.0) * 0.1 * conf_mult)
        if self.verbose:
            self.logger.debug(f"Regime {regime} avg effectiveness {avg:.3f} -> bonus {bonus:.4f}")
        return RegimeWeightingResult(regime, confidence, avg, conf_mult, bonus)

    def load_historical_performance(self, trades: List[Dict]) -> int:
        """
        Derive win rates per (regime, strategy family) from closed trades.

        Each trade needs ``market_regime`` and ``pnl_usdt``; ``signal_types``
        (or ``signals`` with a ``type`` each) attributes it to families.

        Returns:
            Number of trades used
        """
        per_family: Dict[Tuple[str, Optional[str]], List[bool]] = defaultdict(list)
        used = 0

        for trade in trades or []:
            regime = trade.get('market_regime')
            pnl = trade.get('pnl_usdt')
            if not regime or pnl is None:
                continue
            try:
                won = float(pnl) > 0
            except (TypeError, ValueError):
                self.logger.warning(f"Skipping trade with non-numeric pnl: {pnl!r}")
                continue

            used += 1
            per_family[(regime, None)].append(won)
            families = {self.strategy_family(t) for t in _trade_signal_types(trade)}
            for family in families:
                per_family[(regime, family)].append(won)

        self.historical_win_rates = {
            key: sum(outcomes) / len(outcomes)
            for key, outcomes in per_family.items()
            if len(outcomes) >= self.min_trades
        }
        self.logger.info(f"Loaded regime performance from {used} trades "
                         f"({len(self.historical_win_rates)} buckets)")
        return used


def _trade_signal_types(trade: Dict) -> List[str]:
    if 'signal_types' in trade:
        return [str(t) for t in trade['signal_types'] or []]
    return [str(s.get('type')) for s in trade.get('signals') or [] if isinstance(s, dict) and s.get('type')]
