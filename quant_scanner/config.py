"""
Configuration Management
========================
Central configuration for the scanning pipeline.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional
from enum import Enum
import json
import os


class TradingMode(Enum):
    """Trading operation modes."""
    TESTNET = "testnet"
    LIVE = "live"
    BACKTEST = "backtest"


class SizingMode(Enum):
    """Position sizing modes."""
    FIXED = "fixed"
    VOLATILITY_ADJUSTED = "volatility_adjusted"


@dataclass
class IndicatorConfig:
    """Indicator engine configuration."""
    atr_period: int = 14
    atr_validate: bool = True

    # Outlier heuristics for ATR (fractions of the series' max valid high)
    price_outlier_multiplier: float = 10.0
    gap_outlier_fraction: float = 0.5
    true_range_cap_fraction: float = 1.0
    atr_close_cap_fraction: float = 0.1

    # Inputs for the regime snapshot
    regime_ema_period: int = 50
    regime_sma_period: int = 200
    adx_period: int = 14
    rsi_period: int = 14
    bollinger_period: int = 20
    bollinger_std: float = 2.0
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    volume_sma_period: int = 20
    volume_roc_period: int = 14


@dataclass
class RegimeConfig:
    """Regime detector configuration."""
    confirmation_threshold: int = 3  # raised to a floor of 5 by the detector
    history_size: int = 10
    minimum_regime_confidence: float = 50.0  # percent
    block_trading_in_downtrend: bool = False


@dataclass
class SignalConfig:
    """Signal evaluation configuration."""
    # Per-family overrides merged over the built-in defaults
    signal_overrides: Dict[str, Dict] = field(default_factory=dict)
    minimum_combined_strength: float = 225.0
    minimum_conviction_score: float = 50.0


@dataclass
class StrengthConfig:
    """Strength aggregator configuration."""
    correlation_threshold: float = 0.70
    max_correlation_penalty: float = 0.25
    max_correlation_bonus: float = 0.3
    synergy_per_pair: float = 0.1
    synergy_cap: float = 0.3
    diversity_per_type: float = 0.05
    diversity_cap: float = 0.2
    # Overrides for the per-family base weights
    weight_overrides: Dict[str, float] = field(default_factory=dict)


@dataclass
class MomentumConfig:
    """Performance momentum configuration."""
    # Component weights (should sum to 1.0)
    weights: Dict[str, float] = field(default_factory=lambda: {
        "unrealized_pnl": 0.30,
        "realized_pnl": 0.40,
        "regime": 0.00,
        "volatility": 0.10,
        "opportunity_rate": 0.00,
        "fear_greed": 0.10,
        "signal_quality": 0.10
    })

    # Score thresholds for risk scaling
    thresholds: Dict[str, float] = field(default_factory=lambda: {
        "excellent": 75,
        "good": 60,
        "poor": 40,
        "minimum": 10
    })

    max_balance_percent_risk: float = 100.0
    calculation_interval_seconds: float = 30.0
    max_momentum_trades: int = 100
    loss_penalty: float = 1.5
    recency_half_life_hours: float = 24.0
    signal_strength_divisor: float = 1.0
    trading_mode: TradingMode = TradingMode.TESTNET

    # Sentiment feed
    sentiment_url: str = "https://api.alternative.me/fng/"
    sentiment_fetch_interval_seconds: float = 300.0
    sentiment_timeout_seconds: float = 10.0


@dataclass
class SizingConfig:
    """Position sizer configuration."""
    mode: SizingMode = SizingMode.VOLATILITY_ADJUSTED
    default_position_size: float = 100.0
    base_position_size: Optional[float] = 100.0
    # Percent of equity risked per trade when base_position_size is unset
    risk_per_trade: float = 2.0
    stop_loss_atr_multiplier: float = 2.5
    portfolio_heat_max: float = 20.0  # percent of equity
    minimum_trade_value: float = 10.0
    dust_margin: float = 1.10
    safety_buffer_pct: float = 0.05
    apply_safety_buffer: bool = True


@dataclass
class MonitoringConfig:
    """Logging and event configuration."""
    log_level: str = "INFO"
    verbose: bool = False
    max_events: int = 1000


@dataclass
class SystemConfig:
    """Master pipeline configuration."""
    indicators: IndicatorConfig = field(default_factory=IndicatorConfig)
    regime: RegimeConfig = field(default_factory=RegimeConfig)
    signals: SignalConfig = field(default_factory=SignalConfig)
    strength: StrengthConfig = field(default_factory=StrengthConfig)
    momentum: MomentumConfig = field(default_factory=MomentumConfig)
    sizing: SizingConfig = field(default_factory=SizingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    def save(self, filepath: str):
        """Save configuration to JSON file."""
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(filepath, 'w') as f:
            json.dump(self._to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: str) -> 'SystemConfig':
        """Load configuration from JSON file."""
        with open(filepath, 'r') as f:
            data = json.load(f)
        return cls._from_dict(data)

    def _to_dict(self) -> dict:
        """Convert to dictionary."""
        data = asdict(self)
        data['momentum']['trading_mode'] = self.momentum.trading_mode.value
        data['sizing']['mode'] = self.sizing.mode.value
        return data

    @classmethod
    def _from_dict(cls, data: dict) -> 'SystemConfig':
        """Create from dictionary."""
        config = cls()
        sections = {
            'indicators': IndicatorConfig,
            'regime': RegimeConfig,
            'signals': SignalConfig,
            'strength': StrengthConfig,
            'momentum': MomentumConfig,
            'sizing': SizingConfig,
            'monitoring': MonitoringConfig,
        }
        for name, section_cls in sections.items():
            values = dict(data.get(name, {}))
            if name == 'momentum' and 'trading_mode' in values:
                values['trading_mode'] = TradingMode(values['trading_mode'])
            if name == 'sizing' and 'mode' in values:
                values['mode'] = SizingMode(values['mode'])
            known = {k: v for k, v in values.items() if k in section_cls.__dataclass_fields__}
            setattr(config, name, section_cls(**known))
        return config


def merge_settings(defaults: Dict, overrides: Optional[Dict]) -> Dict:
    """Shallow merge of a settings bundle over its defaults."""
    merged = dict(defaults)
    if overrides:
        merged.update(overrides)
    return merged


# Default configuration instance
DEFAULT_CONFIG = SystemConfig()
