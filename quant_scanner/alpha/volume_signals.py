"""
Volume Signal Evaluators
========================
Relative volume, OBV, Chaikin Money Flow and the A/D line.
"""

from typing import List, Optional

import numpy as np

from .signals import EvaluationContext, Signal, SignalFamily
from .trend_signals import crossed_above, crossed_below


def _slope(ctx: EvaluationContext, name: str, period: int, column: Optional[str] = None) -> Optional[float]:
    """Change of an indicator over ``period`` candles."""
    current = ctx.value(name, column)
    past = ctx.value(name, column, offset=period)
    if current is None or past is None:
        return None
    return current - past


def evaluate_volume(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.VOLUME
    volume = ctx.price('volume')
    average = ctx.value('volume_sma')
    if volume is None or average is None or average <= 0:
        return []

    ratio = volume / average
    high = ctx.setting('high_multiplier', 1.5)
    spike = ctx.setting('spike_multiplier', 2.5)
    details = f"Volume {ratio:.2f}x average"
    signals = []

    if ratio >= spike:
        signals.append(ctx.signal(family, 'Volume Spike', 80, is_event=True, details=details))
    if ratio >= 2.0:
        signals.append(ctx.signal(family, 'Very High Volume', 70, details=details))
    if ratio >= high:
        signals.append(ctx.signal(family, 'High Volume', 60 + min(10, (ratio - high) * 10), details=details))
    if ratio > 1.0:
        signals.append(ctx.signal(family, 'Above Average Volume', 45, details=details))
    elif ratio < 0.5:
        signals.append(ctx.signal(family, 'Low Volume', 25, details=details))
    else:
        signals.append(ctx.signal(family, 'Below Average Volume', 30, details=details))

    roc = ctx.value('volume_roc')
    if roc is not None and roc > 50:
        signals.append(ctx.signal(family, 'Rising Volume', 45 + min(20, (roc - 50) / 10)))

    # Volume confirming the candle direction
    close = ctx.price()
    open_ = ctx.price('open')
    if ratio >= high and close is not None and open_ is not None:
        if close > open_:
            signals.append(ctx.signal(family, 'Strong Bullish Momentum', 70, direction='bullish'))
        elif close < open_:
            signals.append(ctx.signal(family, 'Strong Bearish Momentum', 70, direction='bearish'))

    return signals


def evaluate_obv(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.OBV
    obv = ctx.value('obv')
    if obv is None:
        return []

    signals = []
    obv_sma = ctx.value('obv_sma')
    if obv_sma is not None:
        if obv > obv_sma:
            signals.append(ctx.signal(family, 'OBV Above SMA', 55, direction='bullish'))
        elif obv < obv_sma:
            signals.append(ctx.signal(family, 'OBV Below SMA', 55, direction='bearish'))

        prev_obv = ctx.value('obv', offset=1)
        prev_sma = ctx.value('obv_sma', offset=1)
        if prev_obv is not None and prev_sma is not None:
            if crossed_above(obv, obv_sma, prev_obv, prev_sma):
                signals.append(ctx.signal(family, 'OBV Bullish Crossover', 75, is_event=True, direction='bullish'))
            elif crossed_below(obv, obv_sma, prev_obv, prev_sma):
                signals.append(ctx.signal(family, 'OBV Bearish Crossover', 75, is_event=True, direction='bearish'))

    slope = _slope(ctx, 'obv', ctx.setting('slope_period', 5))
    if slope is not None:
        if slope > 0:
            signals.append(ctx.signal(family, 'OBV Rising', 45, direction='bullish'))
        elif slope < 0:
            signals.append(ctx.signal(family, 'OBV Falling', 45, direction='bearish'))

    return signals


def evaluate_cmf(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.CMF
    cmf = ctx.value('cmf')
    if cmf is None:
        return []

    strong = ctx.setting('strong_threshold', 0.2)
    signals = []
    if cmf > 0:
        signals.append(ctx.signal(family, 'Positive CMF', 45 + min(25, cmf * 100), direction='bullish'))
        if cmf >= strong:
            signals.append(ctx.signal(family, 'Strong Positive CMF', 70, direction='bullish'))
    elif cmf < 0:
        signals.append(ctx.signal(family, 'Negative CMF', 45 + min(25, -cmf * 100), direction='bearish'))
        if cmf <= -strong:
            signals.append(ctx.signal(family, 'Strong Negative CMF', 70, direction='bearish'))
    else:
        signals.append(ctx.signal(family, 'Neutral CMF', 20))

    prev_cmf = ctx.value('cmf', offset=1)
    if prev_cmf is not None:
        if prev_cmf <= 0 < cmf:
            signals.append(ctx.signal(family, 'Bullish Zero Cross', 70, is_event=True, direction='bullish'))
        elif prev_cmf >= 0 > cmf:
            signals.append(ctx.signal(family, 'Bearish Zero Cross', 70, is_event=True, direction='bearish'))
        if cmf > prev_cmf:
            signals.append(ctx.signal(family, 'Rising CMF', 35, direction='bullish'))
        elif cmf < prev_cmf:
            signals.append(ctx.signal(family, 'Falling CMF', 35, direction='bearish'))

    return signals


def evaluate_adline(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.AD_LINE
    adl = ctx.value('adline')
    if adl is None:
        return []

    period = ctx.setting('slope_period', 5)
    signals = []

    slope = _slope(ctx, 'adline', period)
    if slope is not None:
        if slope > 0:
            signals.append(ctx.signal(family, 'ADL Rising', 50, direction='bullish'))
        elif slope < 0:
            signals.append(ctx.signal(family, 'ADL Falling', 50, direction='bearish'))

    history = ctx.series('adline', lookback=20)
    if history is not None and len(history.dropna()) >= 20:
        average = float(history.mean())
        if np.isfinite(average):
            if adl > average:
                signals.append(ctx.signal(family, 'ADL Above SMA', 45, direction='bullish'))
            elif adl < average:
                signals.append(ctx.signal(family, 'ADL Below SMA', 45, direction='bearish'))

    # Divergence: price and accumulation moving in opposite directions
    close = ctx.price()
    past_close = ctx.price(offset=period)
    if slope is not None and close is not None and past_close is not None:
        if close < past_close and slope > 0:
            signals.append(ctx.signal(family, 'Bullish Divergence', 70, direction='bullish'))
        elif close > past_close and slope < 0:
            signals.append(ctx.signal(family, 'Bearish Divergence', 70, direction='bearish'))

    return signals
