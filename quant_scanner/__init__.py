"""
Signal Scanner - Trading Decision Pipeline
==========================================

Turns raw OHLCV candles and a declarative strategy into a sized entry
decision:

- Technical indicators computed on demand with dependency ordering
- Market regime detection with multi-candle confirmation
- Per-family signal evaluation with exact/fallback matching
- Five-stage combined signal strength
- Performance momentum score and balance risk factor
- Exchange-aware position sizing with typed rejections

PIPELINE:
    ┌──────────────┐
    │  INDICATORS  │  ← candles → aligned series (ATR, MACD, RSI, ...)
    └────┬─────────┘
         ↓
    ┌──────────────┐
    │    REGIME    │  ← uptrend / downtrend / ranging, confirmed over 5 candles
    └────┬─────────┘
         ↓
    ┌──────────────┐
    │   SIGNALS    │  ← 34 evaluator families, matched to the strategy
    └────┬─────────┘
         ↓
    ┌──────────────┐
    │   STRENGTH   │  ← base → correlation → regime → quality → synergy
    └────┬─────────┘
         ↓
    ┌──────────────┐
    │   MOMENTUM   │  ← P&L, volatility, sentiment → risk factor
    └────┬─────────┘
         ↓
    ┌──────────────┐
    │    SIZING    │  ← heat, lot step, min notional, dust
    └──────────────┘

USAGE:
    # Command line
    python -m quant_scanner.orchestrator --candles btc_1h.csv --strategy macd_rsi.json --balance 1000

    # Programmatic usage
    from quant_scanner import ScanPipeline, ScanContext, SystemConfig

    pipeline = ScanPipeline(SystemConfig())
    decision = pipeline.evaluate('BTCUSDT', '1h', candles, strategy,
                                 ScanContext(available_balance=1000))

MODULES:
    - data: Candle records and frames
    - features: Indicator functions and the dependency-aware engine
    - regime: Regime detector state machine
    - alpha: Signal evaluators, matching, correlation and strength
    - performance: Momentum score and sentiment feed
    - risk: Position sizing
    - monitoring: Structured pipeline events
"""

from .config import SystemConfig, TradingMode, SizingMode
from .orchestrator import ScanPipeline, ScanContext, ScanDecision, main
from .data import Candle, candles_to_frame, synthetic_candles
from .features import IndicatorEngine, IndicatorSet, compute_atr
from .regime import RegimeDetector, RegimeDetectorRegistry, RegimeState, MarketRegime
from .alpha import (
    SignalEvaluator, SignalFamily, Signal, MatchedSignal, Strategy, StrategyEvaluation,
    StrengthAggregator, StrengthBreakdown
)
from .performance import MomentumScorer, MomentumBreakdown, SentimentClient
from .risk import PositionSizer, PositionSizingResult, ExchangeFilters, SizingError
from .monitoring import EventLog, PipelineEvent, ErrorCategory

__version__ = "1.0.0"
__all__ = [
    # Main
    'ScanPipeline',
    'ScanContext',
    'ScanDecision',
    'SystemConfig',
    'TradingMode',
    'SizingMode',
    'main',

    # Data
    'Candle',
    'candles_to_frame',
    'synthetic_candles',

    # Features
    'IndicatorEngine',
    'IndicatorSet',
    'compute_atr',

    # Regime
    'RegimeDetector',
    'RegimeDetectorRegistry',
    'RegimeState',
    'MarketRegime',

    # Signals
    'SignalEvaluator',
    'SignalFamily',
    'Signal',
    'MatchedSignal',
    'Strategy',
    'StrategyEvaluation',
    'StrengthAggregator',
    'StrengthBreakdown',

    # Performance
    'MomentumScorer',
    'MomentumBreakdown',
    'SentimentClient',

    # Risk
    'PositionSizer',
    'PositionSizingResult',
    'ExchangeFilters',
    'SizingError',

    # Monitoring
    'EventLog',
    'PipelineEvent',
    'ErrorCategory'
]
