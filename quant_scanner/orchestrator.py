"""
Scan Pipeline Orchestrator
==========================
Runs one strategy against one symbol/timeframe through every stage:
    INDICATORS → REGIME → SIGNALS → STRENGTH → MOMENTUM → SIZING

Each stage consumes only the output of earlier stages plus the context
supplied by the caller. Gates between stages block the decision with a
recorded reason instead of raising.
"""

import json
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Union
import logging

import pandas as pd

from .config import SystemConfig
from .data import candles_to_frame, load_candles_csv
from .data.candles import has_enough_candles
from .features import IndicatorEngine, IndicatorSet
from .regime import RegimeDetectorRegistry, RegimeState, MarketRegime
from .alpha import SignalEvaluator, Strategy, StrategyEvaluation, StrengthAggregator, StrengthBreakdown
from .performance import MomentumScorer, MomentumBreakdown, SentimentClient
from .risk import PositionSizer, PositionSizingResult, ExchangeFilters, open_position_risk
from .monitoring import EventLog, ErrorCategory

logger = logging.getLogger(__name__)

STRENGTH_HISTORY = 20


@dataclass
class ScanContext:
    """Account and market context supplied by the caller."""
    available_balance: float = 0.0
    equity: Optional[float] = None
    open_positions: List[Dict] = field(default_factory=list)
    closed_trades: Optional[List[Dict]] = None  # newest first; None keeps the scorer window
    current_prices: Dict[str, float] = field(default_factory=dict)
    exchange_filters: Optional[Union[ExchangeFilters, Dict, List]] = None
    conviction_score: Optional[float] = None
    sentiment: Optional[float] = None


@dataclass
class ScanDecision:
    """Outcome of every stage for one evaluation."""
    symbol: str
    timeframe: str
    strategy: str
    approved: bool = False
    blocked_reason: Optional[str] = None
    blocked_stage: Optional[str] = None
    regime: Optional[RegimeState] = None
    evaluation: Optional[StrategyEvaluation] = None
    strength: Optional[StrengthBreakdown] = None
    momentum: Optional[MomentumBreakdown] = None
    sizing: Optional[PositionSizingResult] = None
    timestamp: pd.Timestamp = field(default_factory=pd.Timestamp.now)

    def block(self, stage: str, reason: str) -> 'ScanDecision':
        self.approved = False
        self.blocked_stage = stage
        self.blocked_reason = reason
        return self

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'timeframe': self.timeframe,
            'strategy': self.strategy,
            'approved': self.approved,
            'blocked_stage': self.blocked_stage,
            'blocked_reason': self.blocked_reason,
            'regime': self.regime.to_dict() if self.regime else None,
            'evaluation': self.evaluation.to_dict() if self.evaluation else None,
            'strength': self.strength.to_dict() if self.strength else None,
            'momentum': self.momentum.to_dict() if self.momentum else None,
            'sizing': self.sizing.to_dict() if self.sizing else None,
            'timestamp': str(self.timestamp)
        }


class ScanPipeline:
    """
    Pipeline orchestrator.

    Owns one regime detector per (symbol, timeframe) and the momentum
    scorer's trade window; every other stage is stateless.

    Usage:
        pipeline = ScanPipeline()
        decision = pipeline.evaluate('BTCUSDT', '15m', candles, strategy,
                                     ScanContext(available_balance=1000, equity=1000))
    """

    def __init__(self, config: SystemConfig = None, event_log: Optional[EventLog] = None,
                 sentiment_client: Optional[SentimentClient] = None,
                 clock: Optional[Callable[[], float]] = None,
                 logger_: Optional[logging.Logger] = None, verbose: Optional[bool] = None):
        self.config = config or SystemConfig()
        self.logger = logger_ or logger
        self.verbose = self.config.monitoring.verbose if verbose is None else verbose
        self.event_log = event_log or EventLog(self.config.monitoring, logger_=self.logger)

        self.indicator_engine = IndicatorEngine(
            self.config.indicators, event_log=self.event_log, verbose=self.verbose)
        self.regime_detectors = RegimeDetectorRegistry(self.config.regime, verbose=self.verbose)
        self.signal_evaluator = SignalEvaluator(self.config.signals, verbose=self.verbose)
        self.strength_aggregator = StrengthAggregator(self.config.strength, verbose=self.verbose)
        self.momentum_scorer = MomentumScorer(
            self.config.momentum, sentiment_client=sentiment_client, clock=clock,
            verbose=self.verbose, event_log=self.event_log)
        self.position_sizer = PositionSizer(self.config.sizing, verbose=self.verbose)

        self.recent_strengths: Deque[float] = deque(maxlen=STRENGTH_HISTORY)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def evaluate(self, symbol: str, timeframe: str, candles, strategy,
                 context: Optional[ScanContext] = None) -> ScanDecision:
        """
        Evaluate one strategy on one symbol/timeframe.

        Args:
            symbol: Trading pair
            timeframe: Candle interval
            candles: Candle frame or records (ascending)
            strategy: Strategy or its dict form
            context: Balance, positions, filters, conviction and sentiment

        Returns:
            ScanDecision with every computed stage and any blocking reason
        """
        context = context or ScanContext()
        if isinstance(strategy, dict):
            strategy = Strategy.from_dict(strategy)
        decision = ScanDecision(symbol=symbol, timeframe=timeframe, strategy=strategy.name)

        try:
            return self._evaluate(decision, candles, strategy, context)
        except Exception as e:
            self.logger.error(f"Scan of {strategy.name} on {symbol}/{timeframe} failed: {e}")
            self.event_log.error("Pipeline evaluation failed", source="ScanPipeline",
                                 category=ErrorCategory.FATAL_CALCULATION_ERROR,
                                 symbol=symbol, strategy=strategy.name, error=str(e))
            return decision.block('pipeline', f"error: {e}")

    def scan(self, symbol: str, timeframe: str, candles, strategies: List,
             context: Optional[ScanContext] = None) -> List[ScanDecision]:
        """Evaluate several strategies as one scan cycle."""
        decisions = [self.evaluate(symbol, timeframe, candles, s, context) for s in strategies]
        found = sum(1 for d in decisions if d.evaluation is not None and d.blocked_stage != 'signals')
        self.momentum_scorer.record_opportunities(found)
        approved = sum(1 for d in decisions if d.approved)
        self.logger.info(f"Scan cycle {symbol}/{timeframe}: {len(decisions)} strategies, "
                         f"{found} matched, {approved} approved")
        return decisions

    # =========================================================================
    # STAGES
    # =========================================================================

    def _evaluate(self, decision: ScanDecision, candles, strategy: Strategy,
                  context: ScanContext) -> ScanDecision:
        frame = candles_to_frame(candles)
        if not has_enough_candles(frame, 2):
            return decision.block('data', f"insufficient candles ({len(frame)})")
        index = len(frame) - 2

        # 1. Indicators
        settings = self.signal_evaluator.indicator_settings(strategy)
        indicators = self.indicator_engine.compute(frame, strategy.families, settings, include_regime=True)

        # 2. Regime
        detector = self.regime_detectors.get(decision.symbol, decision.timeframe)
        regime = detector.detect(frame, indicators, index)
        decision.regime = regime

        # 3. Signals
        evaluation = self.signal_evaluator.evaluate_strategy(strategy, frame, indicators, regime)
        decision.evaluation = evaluation
        if not evaluation.is_match:
            return decision.block('signals', evaluation.error or 'evaluation failed')

        # 4. Strength
        strength = self.strength_aggregator.aggregate(evaluation.found_signals, regime)
        decision.strength = strength

        blocked = self._check_gates(strategy, evaluation, strength, regime, context)
        if blocked is not None:
            self.event_log.info(f"{strategy.name} blocked: {blocked[1]}", source="ScanPipeline",
                                category=ErrorCategory.BUSINESS_RULE_REJECTION,
                                symbol=decision.symbol, stage=blocked[0])
            return decision.block(*blocked)

        found = evaluation.found_signals
        self.recent_strengths.append(sum(s.strength for s in found) / len(found))

        # 5. Momentum
        if context.closed_trades is not None:
            self.momentum_scorer.set_trades(context.closed_trades)
        prices = dict(context.current_prices)
        prices.setdefault(decision.symbol, evaluation.price_at_match)
        momentum = self.momentum_scorer.calculate(
            open_positions=context.open_positions,
            current_prices=prices,
            regime=regime,
            volatility=detector.get_volatility_data(indicators, index),
            sentiment=context.sentiment,
            average_signal_strength=sum(self.recent_strengths) / len(self.recent_strengths)
        )
        decision.momentum = momentum

        # 6. Sizing
        sizing = self.position_sizer.calculate(
            price=evaluation.price_at_match,
            atr=self._atr_at(frame, indicators, index),
            momentum_score=momentum.score,
            risk_factor=momentum.adjusted_balance_risk_factor,
            available_balance=context.available_balance,
            equity=context.equity,
            conviction_score=self._conviction(strategy, context),
            open_risk=open_position_risk(context.open_positions),
            filters=self._filters(context.exchange_filters)
        )
        decision.sizing = sizing
        if not sizing.is_valid:
            reason = sizing.error.value if sizing.error else 'zero quantity'
            self.event_log.info(f"{strategy.name} sizing rejected: {reason}", source="ScanPipeline",
                                category=ErrorCategory.BUSINESS_RULE_REJECTION,
                                symbol=decision.symbol, message=sizing.message)
            return decision.block('sizing', reason)

        decision.approved = True
        self.logger.info(
            f"{decision.symbol}/{decision.timeframe} {strategy.name}: approved "
            f"qty {sizing.quantity} (${sizing.value_usdt:.2f}), strength {strength.total_strength:.1f}, "
            f"regime {regime.regime.value} {regime.confidence_pct:.0f}%, momentum {momentum.score}"
        )
        return decision

    def _check_gates(self, strategy: Strategy, evaluation: StrategyEvaluation,
                     strength: StrengthBreakdown, regime: RegimeState, context: ScanContext):
        """First failing gate as (stage, reason), or None."""
        cfg = self.config
        if evaluation.found_count < strategy.min_signals:
            return 'signals', f"matched {evaluation.found_count} of required {strategy.min_signals} signals"

        min_strength = strategy.min_strength
        if min_strength is None:
            min_strength = cfg.signals.minimum_combined_strength
        if strength.total_strength < min_strength:
            return 'strength', f"strength {strength.total_strength:.1f} below {min_strength}"

        if regime.confidence_pct < cfg.regime.minimum_regime_confidence:
            return 'regime', (f"regime confidence {regime.confidence_pct:.0f}% below "
                              f"{cfg.regime.minimum_regime_confidence:.0f}%")
        if cfg.regime.block_trading_in_downtrend and regime.is_confirmed \
                and regime.regime == MarketRegime.DOWNTREND:
            return 'regime', "confirmed downtrend"

        conviction = self._conviction(strategy, context)
        if conviction is not None and conviction < cfg.signals.minimum_conviction_score:
            return 'conviction', f"conviction {conviction:.0f} below {cfg.signals.minimum_conviction_score:.0f}"
        return None

    @staticmethod
    def _conviction(strategy: Strategy, context: ScanContext) -> Optional[float]:
        if context.conviction_score is not None:
            return context.conviction_score
        return strategy.conviction_score

    def _atr_at(self, frame: pd.DataFrame, indicators: IndicatorSet, index: int) -> Optional[float]:
        if 'atr' in indicators and indicators.get('atr') is not None:
            return indicators.value_at('atr', index)
        atr = self.indicator_engine.compute_atr(frame)
        value = atr.iloc[index]
        return float(value) if pd.notna(value) else None

    @staticmethod
    def _filters(filters) -> ExchangeFilters:
        if isinstance(filters, ExchangeFilters):
            return filters
        return ExchangeFilters.from_exchange_info(filters)


def main():
    """Main entry point: evaluate one strategy against a candle CSV."""
    import argparse

    parser = argparse.ArgumentParser(description='Signal Scanner Pipeline')
    parser.add_argument('--candles', type=str, required=True, help='Path to OHLCV CSV')
    parser.add_argument('--strategy', type=str, required=True, help='Path to strategy JSON')
    parser.add_argument('--symbol', type=str, default='UNKNOWN', help='Symbol label')
    parser.add_argument('--timeframe', type=str, default='1h', help='Timeframe label')
    parser.add_argument('--balance', type=float, default=1000.0, help='Available balance')
    parser.add_argument('--equity', type=float, help='Total equity (defaults to balance)')
    parser.add_argument('--trades', type=str, help='Path to closed trades JSON (newest first)')
    parser.add_argument('--config', type=str, help='Path to config file')
    parser.add_argument('--log-level', type=str, default=None,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Logging level')

    args = parser.parse_args()

    config = SystemConfig.load(args.config) if args.config else SystemConfig()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, args.log_level or config.monitoring.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    candles = load_candles_csv(args.candles)
    with open(args.strategy, 'r') as f:
        strategy = Strategy.from_dict(json.load(f))

    pipeline = ScanPipeline(config)
    closed_trades = None
    if args.trades:
        with open(args.trades, 'r') as f:
            closed_trades = json.load(f)

    context = ScanContext(available_balance=args.balance, equity=args.equity, closed_trades=closed_trades)
    decision = pipeline.evaluate(args.symbol, args.timeframe, candles, strategy, context)

    print(json.dumps(decision.to_dict(), indent=2, default=str))


if __name__ == "__main__":
    main()
