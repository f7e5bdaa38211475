"""
Signal Correlation
==================
Pairwise correlation between signal families, used to penalize
redundant signal sets and reward diversified ones.
"""

from dataclasses import dataclass, field
from itertools import combinations
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from .signals import SignalFamily

logger = logging.getLogger(__name__)

CROSS_CATEGORY_CORRELATION = 0.20

# Symmetric family-level correlations; a pair is stored once.
FAMILY_CORRELATIONS: Dict[Tuple[str, str], float] = {
    # Trend
    ('macd', 'ema'): 0.70, ('macd', 'ma200'): 0.65, ('macd', 'ichimoku'): 0.75,
    ('macd', 'adx'): 0.60, ('macd', 'tema'): 0.50, ('macd', 'dema'): 0.55,
    ('macd', 'hma'): 0.50, ('macd', 'wma'): 0.50, ('macd', 'psar'): 0.50,
    ('macd', 'maribbon'): 0.45,
    ('ema', 'dema'): 0.85, ('ema', 'ma200'): 0.75, ('ema', 'psar'): 0.60,
    ('ema', 'tema'): 0.80, ('ema', 'hma'): 0.75, ('ema', 'wma'): 0.80,
    ('ema', 'ichimoku'): 0.65, ('ema', 'adx'): 0.55, ('ema', 'maribbon'): 0.60,
    ('ma200', 'dema'): 0.70, ('ma200', 'psar'): 0.65, ('ma200', 'ichimoku'): 0.70,
    ('ma200', 'adx'): 0.50, ('ma200', 'tema'): 0.65, ('ma200', 'hma'): 0.65,
    ('ma200', 'wma'): 0.70, ('ma200', 'maribbon'): 0.55,
    ('psar', 'dema'): 0.45, ('psar', 'adx'): 0.50, ('psar', 'ichimoku'): 0.45,
    ('psar', 'tema'): 0.40, ('psar', 'hma'): 0.40, ('psar', 'wma'): 0.40,
    ('psar', 'maribbon'): 0.35,
    ('adx', 'ichimoku'): 0.60, ('adx', 'tema'): 0.45, ('adx', 'dema'): 0.50,
    ('adx', 'hma'): 0.45, ('adx', 'wma'): 0.45, ('adx', 'maribbon'): 0.40,
    ('ichimoku', 'tema'): 0.55, ('ichimoku', 'dema'): 0.60, ('ichimoku', 'hma'): 0.55,
    ('ichimoku', 'wma'): 0.55, ('ichimoku', 'maribbon'): 0.50,
    ('tema', 'dema'): 0.75, ('tema', 'hma'): 0.70, ('tema', 'wma'): 0.70,
    ('tema', 'maribbon'): 0.55,
    ('dema', 'hma'): 0.75, ('dema', 'wma'): 0.75, ('dema', 'maribbon'): 0.60,
    ('hma', 'wma'): 0.80, ('hma', 'maribbon'): 0.65,
    ('wma', 'maribbon'): 0.65,
    # Momentum
    ('rsi', 'stochastic'): 0.80, ('rsi', 'williamsr'): 0.75, ('rsi', 'cci'): 0.70,
    ('rsi', 'roc'): 0.60, ('rsi', 'awesomeoscillator'): 0.55, ('rsi', 'cmo'): 0.55,
    ('rsi', 'mfi'): 0.65,
    ('stochastic', 'williamsr'): 0.85, ('stochastic', 'cci'): 0.70, ('stochastic', 'roc'): 0.55,
    ('stochastic', 'awesomeoscillator'): 0.50, ('stochastic', 'cmo'): 0.50,
    ('stochastic', 'mfi'): 0.60,
    ('williamsr', 'cci'): 0.65, ('williamsr', 'roc'): 0.70,
    ('williamsr', 'awesomeoscillator'): 0.65, ('williamsr', 'cmo'): 0.70,
    ('williamsr', 'mfi'): 0.60,
    ('cci', 'roc'): 0.60, ('cci', 'awesomeoscillator'): 0.55, ('cci', 'cmo'): 0.50,
    ('cci', 'mfi'): 0.55,
    ('roc', 'awesomeoscillator'): 0.70, ('roc', 'cmo'): 0.65, ('roc', 'mfi'): 0.60,
    ('awesomeoscillator', 'cmo'): 0.65, ('awesomeoscillator', 'mfi'): 0.55,
    ('cmo', 'mfi'): 0.60,
    # Volatility
    ('bollinger', 'atr'): 0.80, ('bollinger', 'bbw'): 0.85, ('bollinger', 'keltner'): 0.75,
    ('bollinger', 'donchian'): 0.70, ('bollinger', 'ttm_squeeze'): 0.80,
    ('atr', 'bbw'): 0.75, ('atr', 'keltner'): 0.70, ('atr', 'donchian'): 0.65,
    ('atr', 'ttm_squeeze'): 0.75,
    ('bbw', 'keltner'): 0.65, ('bbw', 'donchian'): 0.60, ('bbw', 'ttm_squeeze'): 0.75,
    ('keltner', 'donchian'): 0.60, ('keltner', 'ttm_squeeze'): 0.70,
    ('donchian', 'ttm_squeeze'): 0.55,
    # Volume
    ('volume', 'obv'): 0.60, ('volume', 'cmf'): 0.55, ('volume', 'adline'): 0.50,
    ('volume', 'mfi'): 0.45,
    ('obv', 'cmf'): 0.75, ('obv', 'adline'): 0.70, ('obv', 'mfi'): 0.60,
    ('cmf', 'adline'): 0.65, ('cmf', 'mfi'): 0.55,
    ('adline', 'mfi'): 0.50,
    # Support & resistance
    ('supportresistance', 'fibonacci'): 0.75, ('supportresistance', 'pivot'): 0.80,
    ('supportresistance', 'ema'): 0.50, ('supportresistance', 'ma200'): 0.55,
    ('supportresistance', 'macd'): 0.45, ('supportresistance', 'rsi'): 0.25,
    ('supportresistance', 'stochastic'): 0.25, ('supportresistance', 'williamsr'): 0.25,
    ('supportresistance', 'volume'): 0.30, ('supportresistance', 'bollinger'): 0.35,
    ('supportresistance', 'atr'): 0.30,
    ('fibonacci', 'pivot'): 0.70, ('fibonacci', 'ema'): 0.50, ('fibonacci', 'ma200'): 0.55,
    ('fibonacci', 'macd'): 0.45, ('fibonacci', 'rsi'): 0.25, ('fibonacci', 'stochastic'): 0.25,
    ('fibonacci', 'williamsr'): 0.25, ('fibonacci', 'volume'): 0.30,
    ('fibonacci', 'bollinger'): 0.30, ('fibonacci', 'atr'): 0.30,
    ('pivot', 'ema'): 0.50, ('pivot', 'ma200'): 0.55, ('pivot', 'macd'): 0.45,
    ('pivot', 'rsi'): 0.25, ('pivot', 'stochastic'): 0.25, ('pivot', 'williamsr'): 0.25,
    ('pivot', 'volume'): 0.30, ('pivot', 'bollinger'): 0.30, ('pivot', 'atr'): 0.30,
    # Patterns
    ('candlestick', 'supportresistance'): 0.55, ('candlestick', 'fibonacci'): 0.50,
    ('candlestick', 'pivot'): 0.45, ('candlestick', 'chartpattern'): 0.35,
    ('chartpattern', 'supportresistance'): 0.60, ('chartpattern', 'fibonacci'): 0.55,
    ('chartpattern', 'pivot'): 0.50, ('chartpattern', 'macd'): 0.50,
    ('chartpattern', 'ema'): 0.45,
}


@dataclass
class CorrelationReport:
    """Correlation analysis of one set of signal types."""
    correlated_pairs: List[Tuple[str, str, float]] = field(default_factory=list)
    penalty: float = 0.0
    bonus: float = 0.0
    diversity_score: float = 1.0
    average_correlation: float = 0.0

    @property
    def pair_count(self) -> int:
        return len(self.correlated_pairs)

    @property
    def multiplier(self) -> float:
        return 1.0 - self.penalty + self.bonus

    def to_dict(self) -> dict:
        return {
            'correlated_pairs': [
                {'type1': a, 'type2': b, 'correlation': c} for a, b, c in self.correlated_pairs
            ],
            'pair_count': self.pair_count,
            'penalty': self.penalty,
            'bonus': self.bonus,
            'diversity_score': self.diversity_score,
            'average_correlation': self.average_correlation
        }


class SignalCorrelationDetector:
    """
    Looks up correlations between signal types.

    Lookup is case-insensitive and symmetric. Pairs within a category that
    are not in the table count as uncorrelated; pairs across categories
    default to a weak positive correlation.
    """

    def __init__(self, config=None, extra_correlations: Optional[Dict[Tuple[str, str], float]] = None,
                 logger_: Optional[logging.Logger] = None, verbose: bool = False):
        from ..config import StrengthConfig
        self.config = config or StrengthConfig()
        self.threshold = self.config.correlation_threshold
        self.logger = logger_ or logger
        self.verbose = verbose

        self._table: Dict[frozenset, float] = {}
        for (a, b), value in FAMILY_CORRELATIONS.items():
            self._table[frozenset((a, b))] = value
        for (a, b), value in (extra_correlations or {}).items():
            self._table[frozenset((a.lower(), b.lower()))] = float(value)

    def calculate_correlation(self, type1: str, type2: str) -> float:
        """Correlation between two signal types; 0 for identical or empty types."""
        if not type1 or not type2:
            return 0.0
        a, b = type1.lower(), type2.lower()
        if a == b:
            return 0.0

        value = self._table.get(frozenset((a, b)))
        if value is not None:
            return value

        family_a = SignalFamily.parse(a)
        family_b = SignalFamily.parse(b)
        if family_a is None or family_b is None:
            return 0.0
        if family_a.value != a or family_b.value != b:
            return self.calculate_correlation(family_a.value, family_b.value)
        if family_a.category != family_b.category:
            return CROSS_CATEGORY_CORRELATION
        return 0.0

    def detect_correlations(self, types: Iterable[str]) -> List[Tuple[str, str, float]]:
        """Pairs whose absolute correlation reaches the threshold."""
        types = [t for t in types if t]
        pairs = []
        for a, b in combinations(types, 2):
            corr = self.calculate_correlation(a, b)
            if abs(corr) >= self.threshold:
                pairs.append((a, b, corr))
        return pairs

    def correlation_penalty(self, pairs: List[Tuple[str, str, float]]) -> float:
        if not pairs:
            return 0.0
        avg = sum(abs(c) for _, _, c in pairs) / len(pairs)
        return min(self.config.max_correlation_penalty, avg * 0.10)

    def complementary_bonus(self, types: Iterable[str]) -> float:
        """Bonus for negatively correlated (complementary) pairs."""
        total = 0.0
        for a, b in combinations([t for t in types if t], 2):
            corr = self.calculate_correlation(a, b)
            if corr < -0.5:
                total += abs(corr) * 0.2
        return min(self.config.max_correlation_bonus, total)

    def report(self, types: Iterable[str]) -> CorrelationReport:
        types = [t for t in types if t]
        if not types:
            return CorrelationReport()

        pairs = self.detect_correlations(types)
        penalty = self.correlation_penalty(pairs)
        bonus = self.complementary_bonus(types)

        categories = set()
        for t in types:
            family = SignalFamily.parse(t)
            categories.add(family.category if family is not None else t.lower())
        diversity = len(categories) / len(types) - penalty + bonus

        report = CorrelationReport(
            correlated_pairs=pairs,
            penalty=penalty,
            bonus=bonus,
            diversity_score=max(0.0, min(1.0, diversity)),
            average_correlation=(sum(abs(c) for _, _, c in pairs) / len(pairs)) if pairs else 0.0
        )
        if self.verbose and pairs:
            self.logger.debug(f"Correlated pairs: {pairs} (penalty {penalty:.3f}, bonus {bonus:.3f})")
        return report

    def filter_correlated_signals(self, signals: List, max_correlation: Optional[float] = None) -> List:
        """
        Keep the strongest signals, dropping any that correlate with an
        already kept one above ``max_correlation``.
        """
        limit = self.threshold if max_correlation is None else max_correlation
        ordered = sorted(signals, key=lambda s: getattr(s, 'strength', 0), reverse=True)
        kept = []
        for signal in ordered:
            signal_type = _type_of(signal)
            if all(abs(self.calculate_correlation(signal_type, _type_of(k))) <= limit for k in kept):
                kept.append(signal)
        return kept


def _type_of(signal) -> str:
    value = getattr(signal, 'type', signal)
    return getattr(value, 'value', value)
