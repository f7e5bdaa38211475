"""
Performance Momentum Scorer
===========================
Blends recent trading performance and market context into a 0-100
momentum score, and maps that score to the share of available balance
the sizer may put at risk.

Components (each normalized to 0-100):
- Unrealized P&L of open positions
- Realized P&L of recent closed trades (recency weighted)
- Market regime
- Market volatility (ADX/BBW)
- Opportunity rate (signals found per scan cycle)
- Fear & Greed sentiment (contrarian)
- Average signal quality
"""

import math
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional
import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50.0
MIN_REALIZED_TRADES = 5
OPPORTUNITY_WINDOW = 5
DEFAULT_TRADE_MODE = 'testnet'


@dataclass
class ComponentScore:
    """One weighted momentum component."""
    name: str
    score: float
    weight: float
    details: str = ""

    @property
    def weighted(self) -> float:
        return self.score * self.weight

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'score': self.score,
            'weight': self.weight,
            'weighted': self.weighted,
            'details': self.details
        }


@dataclass
class MomentumBreakdown:
    """Momentum score with its components and resulting risk factor."""
    score: int
    adjusted_balance_risk_factor: float
    components: Dict[str, ComponentScore] = field(default_factory=dict)
    calculated_at: float = 0.0
    is_fallback: bool = False

    def to_dict(self) -> dict:
        return {
            'score': self.score,
            'adjusted_balance_risk_factor': self.adjusted_balance_risk_factor,
            'components': {name: c.to_dict() for name, c in self.components.items()},
            'calculated_at': self.calculated_at,
            'is_fallback': self.is_fallback
        }


def _finite(value, default: float = NEUTRAL_SCORE) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    return value if np.isfinite(value) else default


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _get(item, key: str, default=None):
    if isinstance(item, dict):
        return item.get(key, default)
    return getattr(item, key, default)


def _to_epoch(value) -> Optional[float]:
    """Seconds since epoch from a number, datetime, Timestamp or ISO string."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        # Millisecond epochs are common in exchange payloads
        return value / 1000.0 if value > 1e11 else float(value)
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError):
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is None:
        ts = ts.tz_localize('UTC')
    return ts.timestamp()


class MomentumScorer:
    """
    Performance momentum scorer.

    Holds a bounded newest-first window of closed trades and the recent
    opportunity history. Results are cached for the calculation interval.

    Usage:
        scorer = MomentumScorer()
        scorer.add_trade({'pnl_usdt': 4.2, 'entry_value_usdt': 100, 'exit_timestamp': ...})
        breakdown = scorer.calculate(open_positions, regime_state, {'adx': 28, 'bbw': 0.06})
    """

    def __init__(self, config=None, sentiment_client=None, clock: Optional[Callable[[], float]] = None,
                 logger_: Optional[logging.Logger] = None, verbose: bool = False, event_log=None):
        from ..config import MomentumConfig
        self.config = config or MomentumConfig()
        self.sentiment_client = sentiment_client
        self.clock = clock or time.time
        self.logger = logger_ or logger
        self.verbose = verbose
        self.event_log = event_log

        self.weights = dict(self.config.weights)
        self.thresholds = dict(self.config.thresholds)

        self.trades: List[Dict] = []
        self.opportunity_history: Deque[int] = deque(maxlen=OPPORTUNITY_WINDOW)
        self.last_breakdown: Optional[MomentumBreakdown] = None
        self.last_calculated: Optional[float] = None

    # =========================================================================
    # STATE
    # =========================================================================

    def add_trade(self, trade: Dict):
        """Record a closed trade; the window is newest first."""
        self.trades.insert(0, trade)
        del self.trades[self.config.max_momentum_trades:]

    def set_trades(self, trades: List[Dict]):
        """Replace the window with ``trades`` (newest first)."""
        self.trades = list(trades or [])[:self.config.max_momentum_trades]

    def record_opportunities(self, signals_found: int):
        """Number of strategies that matched in one scan cycle."""
        self.opportunity_history.append(int(signals_found))

    def reset(self):
        self.trades = []
        self.opportunity_history.clear()
        self.last_breakdown = None
        self.last_calculated = None

    # =========================================================================
    # SCORE
    # =========================================================================

    def calculate(self, open_positions: Optional[List] = None, regime=None,
                  volatility: Optional[Dict[str, float]] = None, sentiment: Optional[float] = None,
                  average_signal_strength: Optional[float] = None, force: bool = False,
                  current_prices: Optional[Dict[str, float]] = None) -> MomentumBreakdown:
        """
        Compute the momentum breakdown.

        Args:
            open_positions: Positions with symbol, direction, entry_price, quantity
                and entry_value_usdt; current_price may be set per position
            regime: RegimeState (or dict with regime/confidence/is_confirmed)
            volatility: {'adx': ..., 'bbw': ...}
            sentiment: Fear & Greed value; fetched from the client when omitted
            average_signal_strength: Mean combined strength of recent matches
            force: Ignore the cooldown cache
            current_prices: Latest price per symbol for positions without current_price

        Returns:
            MomentumBreakdown; score 50 and half risk if calculation fails
        """
        now = self.clock()
        if (not force and self.last_breakdown is not None and self.last_calculated is not None
                and now - self.last_calculated < self.config.calculation_interval_seconds):
            return self.last_breakdown

        try:
            if sentiment is None and self.sentiment_client is not None:
                sentiment = self.sentiment_client.value()

            components = [
                self._component('unrealized_pnl',
                                *self.unrealized_component(open_positions or [], current_prices)),
                self._component('realized_pnl', *self.realized_component(self.trades, now)),
                self._component('regime', *self.regime_component(regime)),
                self._component('volatility', *self.volatility_component(volatility)),
                self._component('opportunity_rate', *self.opportunity_component()),
                self._component('fear_greed', *self.sentiment_component(sentiment)),
                self._component('signal_quality', *self.signal_quality_component(average_signal_strength)),
            ]

            total = sum(c.weighted for c in components)
            score = int(round(_clamp(_finite(total))))
            breakdown = MomentumBreakdown(
                score=score,
                adjusted_balance_risk_factor=self.risk_factor(score),
                components={c.name: c for c in components},
                calculated_at=now
            )
        except Exception as e:
            self.logger.error(f"Momentum calculation failed: {e}")
            if self.event_log is not None:
                from ..monitoring import ErrorCategory
                self.event_log.error("Momentum calculation failed", source="momentum",
                                     category=ErrorCategory.FATAL_CALCULATION_ERROR, error=str(e))
            breakdown = MomentumBreakdown(
                score=int(NEUTRAL_SCORE),
                adjusted_balance_risk_factor=round(self.config.max_balance_percent_risk * 0.5, 2),
                calculated_at=now,
                is_fallback=True
            )

        self.last_breakdown = breakdown
        self.last_calculated = now
        if self.verbose:
            self.logger.debug(
                f"Momentum {breakdown.score} -> risk factor {breakdown.adjusted_balance_risk_factor}% "
                + ", ".join(f"{n}={c.score:.1f}" for n, c in breakdown.components.items())
            )
        return breakdown

    def risk_factor(self, score: float) -> float:
        """Percent of available balance the sizer may invest at ``score``."""
        maximum = self.config.max_balance_percent_risk
        minimum = self.thresholds['minimum']
        excellent = self.thresholds['excellent']
        good = self.thresholds['good']
        poor = self.thresholds['poor']

        if score >= excellent:
            factor = maximum
        elif score >= good:
            factor = maximum * (0.6 + 0.4 * (score - good) / (excellent - good))
        elif score >= poor:
            factor = maximum * (0.2 + 0.4 * (score - poor) / (good - poor))
        else:
            factor = max(minimum, 0.1 * maximum)

        return _clamp(round(factor, 2), minimum, maximum)

    def _component(self, name: str, score: float, details: str = "") -> ComponentScore:
        return ComponentScore(
            name=name,
            score=_clamp(_finite(score)),
            weight=float(self.weights.get(name, 0.0)),
            details=details
        )

    # =========================================================================
    # COMPONENTS
    # =========================================================================

    def unrealized_component(self, positions: List, current_prices: Optional[Dict[str, float]] = None) -> tuple:
        prices = {str(k).replace('/', '').upper(): v for k, v in (current_prices or {}).items()}
        total_pnl = 0.0
        total_entry = 0.0
        priced = 0
        for position in positions:
            price = _finite(_get(position, 'current_price'), None)
            if price is None:
                symbol = str(_get(position, 'symbol') or '').replace('/', '').upper()
                price = _finite(prices.get(symbol), None)
            entry = _finite(_get(position, 'entry_price'), None)
            quantity = _finite(_get(position, 'quantity'), None)
            if price is None or entry is None or quantity is None or price <= 0 or entry <= 0 or quantity <= 0:
                continue

            direction = _get(position, 'direction')
            direction = str(getattr(direction, 'value', direction) or 'long')
            if direction.lower() == 'short':
                total_pnl += (entry - price) * quantity
            else:
                total_pnl += (price - entry) * quantity

            entry_value = _finite(_get(position, 'entry_value_usdt'), None)
            total_entry += entry_value if entry_value is not None and entry_value > 0 else entry * quantity
            priced += 1

        if priced == 0 or total_entry <= 0:
            return NEUTRAL_SCORE, "No priced open positions"

        pct = total_pnl / total_entry * 100
        scaled = math.log1p(pct) if pct > 0 else pct * self.config.loss_penalty
        score = 50 + scaled * 5 * min(1.0, priced / 3)
        return score, f"{pct:+.2f}% across {priced} positions"

    def realized_component(self, trades: List[Dict], now: float) -> tuple:
        mode = self.config.trading_mode.value
        usable = []
        for trade in trades:
            trade_mode = _get(trade, 'trading_mode')
            trade_mode = getattr(trade_mode, 'value', trade_mode) or DEFAULT_TRADE_MODE
            if str(trade_mode).lower() != mode:
                continue
            exit_ts = _to_epoch(_get(trade, 'exit_timestamp'))
            entry_value = _finite(_get(trade, 'entry_value_usdt'), None)
            pnl = _finite(_get(trade, 'pnl_usdt'), None)
            if exit_ts is None or entry_value is None or entry_value <= 0 or pnl is None:
                continue
            usable.append((pnl / entry_value * 100, exit_ts))

        n = len(usable)
        if n < MIN_REALIZED_TRADES:
            return NEUTRAL_SCORE, f"{n} qualifying trades (need {MIN_REALIZED_TRADES})"

        weighted = []
        wins = 0
        for pnl_pct, exit_ts in usable:
            age_hours = max(0.0, (now - exit_ts) / 3600.0)
            weight = math.exp(-age_hours / self.config.recency_half_life_hours)
            if pnl_pct > 0:
                wins += 1
                weighted.append(pnl_pct * weight)
            else:
                weighted.append(pnl_pct * weight * self.config.loss_penalty)

        avg_weighted = sum(weighted) / n
        win_rate = wins / n * 100
        score = 50 + avg_weighted * 4 * min(1.0, n / 20) + (win_rate - 50) * 0.2
        return score, f"{n} trades, win rate {win_rate:.0f}%"

    @staticmethod
    def regime_component(regime) -> tuple:
        if regime is None:
            return NEUTRAL_SCORE, "No regime"

        name = _get(regime, 'regime')
        name = str(getattr(name, 'value', name) or '').lower()
        confidence = _finite(_get(regime, 'confidence', 0.0), 0.0) * 100
        confirmed = bool(_get(regime, 'is_confirmed', False))

        base = 50.0
        if confidence > 0:
            high = confidence >= 70
            if name in ('uptrend', 'downtrend'):
                if high and confirmed:
                    base = 75.0
                elif confidence >= 60:
                    base = 65.0
                elif confidence >= 50:
                    base = 55.0
            elif name == 'ranging':
                if high and confirmed:
                    base = 50.0
                elif confidence >= 50:
                    base = 45.0
                else:
                    base = 40.0

        score = 50 + (base - 50) * confidence / 100
        return score, f"{name or 'unknown'} ({confidence:.0f}%{', confirmed' if confirmed else ''})"

    @staticmethod
    def volatility_component(volatility: Optional[Dict[str, float]]) -> tuple:
        if not volatility:
            return NEUTRAL_SCORE, "No volatility data"

        adx = _finite(volatility.get('adx'), None)
        bbw = _finite(volatility.get('bbw'), None)
        if adx is None or bbw is None:
            return NEUTRAL_SCORE, "Incomplete volatility data"

        if adx < 20:
            adx_score = adx / 20 * 50
        elif adx <= 40:
            adx_score = 50 + (adx - 20) / 20 * 50
        else:
            adx_score = 100 - (adx - 40) / 60 * 50
        adx_score = _clamp(adx_score)
        bbw_score = _clamp(min(100.0, bbw / 0.05 * 50))

        return adx_score * 0.4 + bbw_score * 0.6, f"ADX {adx:.1f}, BBW {bbw:.4f}"

    def opportunity_component(self) -> tuple:
        if not self.opportunity_history:
            return NEUTRAL_SCORE, "No scan history"
        recent = list(self.opportunity_history)
        avg = sum(recent) / len(recent)
        return min(100.0, avg * 5), f"{avg:.1f} signals per cycle"

    @staticmethod
    def sentiment_component(value: Optional[float]) -> tuple:
        value = _finite(value, None)
        if value is None:
            return NEUTRAL_SCORE, "No sentiment data"
        return 100 - value, f"Fear & Greed {value:.0f}"

    def signal_quality_component(self, average_strength: Optional[float]) -> tuple:
        avg = _finite(average_strength, 0.0)
        if avg <= 0:
            return NEUTRAL_SCORE, "No signal strength data"
        divisor = self.config.signal_strength_divisor or 1.0
        return min(100.0, avg / divisor), f"{avg:.1f} avg strength"
