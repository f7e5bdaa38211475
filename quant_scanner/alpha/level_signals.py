"""
Level and Pattern Signal Evaluators
===================================
Support/resistance zones, Fibonacci retracements, pivot points,
candlestick and chart patterns.
"""

from typing import Dict, List, Optional, Tuple

from .signals import EvaluationContext, Signal, SignalFamily
from .trend_signals import crossed_above, crossed_below


def _near(price: float, level: Optional[float], tolerance: float) -> bool:
    return level is not None and level > 0 and abs(price - level) / level <= tolerance


def evaluate_supportresistance(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.SUPPORT_RESISTANCE
    close = ctx.price()
    support = ctx.value('supportresistance', 'support')
    resistance = ctx.value('supportresistance', 'resistance')
    if close is None or (support is None and resistance is None):
        return []

    proximity = ctx.setting('proximity', 0.01)
    touches = ctx.value('supportresistance', 'support_touches') or 0
    signals = []

    if support is not None:
        if _near(close, support, proximity):
            signals.append(ctx.signal(family, 'Near Support', 60 + min(20, touches * 5), direction='bullish',
                                      details=f"Support {support:.4f} touched {int(touches)}x"))
        else:
            signals.append(ctx.signal(family, 'Above Support', 35, direction='bullish'))

    if resistance is not None:
        if _near(close, resistance, proximity):
            signals.append(ctx.signal(family, 'Near Resistance', 60, direction='bearish',
                                      details=f"Resistance {resistance:.4f}"))
        else:
            signals.append(ctx.signal(family, 'Below Resistance', 35, direction='bearish'))

    prev_close = ctx.price(offset=1)
    prev_low = ctx.price('low', offset=1)
    prev_support = ctx.value('supportresistance', 'support', offset=1)
    prev_resistance = ctx.value('supportresistance', 'resistance', offset=1)
    if prev_close is None:
        return signals

    if prev_resistance is not None and crossed_above(close, prev_resistance, prev_close, prev_resistance):
        signals.append(ctx.signal(family, 'Resistance Breakout', 80, is_event=True, direction='bullish'))
    if prev_support is not None:
        if crossed_below(close, prev_support, prev_close, prev_support):
            signals.append(ctx.signal(family, 'Support Breakdown', 80, is_event=True, direction='bearish'))
        elif prev_low is not None and prev_low <= prev_support * (1 + proximity) \
                and close > prev_close and close > prev_support:
            signals.append(ctx.signal(family, 'Support Bounce', 75, is_event=True, direction='bullish'))

    return signals


FIB_LABELS: List[Tuple[str, str]] = [
    ('fib_236', 'At Fib 23.6'),
    ('fib_382', 'At Fib 38.2'),
    ('fib_500', 'At Fib 50.0'),
    ('fib_618', 'At Golden Ratio'),
    ('fib_786', 'At Fib 78.6'),
]


def evaluate_fibonacci(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.FIBONACCI
    close = ctx.price()
    if close is None:
        return []

    levels: Dict[str, Optional[float]] = {column: ctx.value('fibonacci', column) for column, _ in FIB_LABELS}
    if any(level is None for level in levels.values()):
        return []

    tolerance = ctx.setting('tolerance', 0.005)
    signals = []
    for column, label in FIB_LABELS:
        if _near(close, levels[column], tolerance):
            strength = 75 if column == 'fib_618' else 60
            signals.append(ctx.signal(family, label, strength, direction='bullish',
                                      details=f"Close at {column} ({levels[column]:.4f})"))

    if levels['fib_618'] <= close <= levels['fib_382']:
        signals.append(ctx.signal(family, 'Healthy Retracement Zone', 50, direction='bullish'))
    elif close > levels['fib_236']:
        signals.append(ctx.signal(family, 'Shallow Retracement', 35))
    elif close < levels['fib_786']:
        signals.append(ctx.signal(family, 'Deep Retracement', 35))

    return signals


def evaluate_pivot(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.PIVOT
    close = ctx.price()
    pp = ctx.value('pivot', 'pp')
    r1 = ctx.value('pivot', 'r1')
    s1 = ctx.value('pivot', 's1')
    if None in (close, pp, r1, s1):
        return []

    signals = []
    distance = abs(close - pp) / pp * 100 if pp else 0.0
    if close > pp:
        signals.append(ctx.signal(family, 'Above Pivot', 45 + min(20, distance * 10), direction='bullish'))
    elif close < pp:
        signals.append(ctx.signal(family, 'Below Pivot', 45 + min(20, distance * 10), direction='bearish'))

    if _near(close, pp, ctx.setting('proximity', 0.002)):
        signals.append(ctx.signal(family, 'At Pivot Point', 50))

    if close > r1:
        signals.append(ctx.signal(family, 'Upper Pivot Range', 55, direction='bullish'))
    elif close < s1:
        signals.append(ctx.signal(family, 'Lower Pivot Range', 55, direction='bearish'))
    else:
        signals.append(ctx.signal(family, 'Middle Pivot Range', 30))

    prev_close = ctx.price(offset=1)
    if prev_close is not None:
        if prev_close <= pp < close:
            signals.append(ctx.signal(family, 'Pivot Bullish Cross', 70, is_event=True, direction='bullish'))
        elif prev_close >= pp > close:
            signals.append(ctx.signal(family, 'Pivot Bearish Cross', 70, is_event=True, direction='bearish'))

    return signals


CANDLESTICK_STRENGTHS: Dict[str, Tuple[float, Optional[str]]] = {
    'Bullish Engulfing': (80, 'bullish'),
    'Bearish Engulfing': (80, 'bearish'),
    'Hammer': (70, 'bullish'),
    'Shooting Star': (70, 'bearish'),
    'Bullish Marubozu': (65, 'bullish'),
    'Bearish Marubozu': (65, 'bearish'),
    'Doji': (45, None),
}


def evaluate_candlestick(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.CANDLESTICK
    signals = []

    label = ctx.label('candlestick')
    if label in CANDLESTICK_STRENGTHS:
        strength, direction = CANDLESTICK_STRENGTHS[label]
        signals.append(ctx.signal(family, label, strength, is_event=True, direction=direction))

    # Bias of the last five candles' patterns
    bullish = bearish = 0
    for offset in range(5):
        recent = ctx.label('candlestick', offset)
        direction = CANDLESTICK_STRENGTHS.get(recent, (0, None))[1]
        if direction == 'bullish':
            bullish += 1
        elif direction == 'bearish':
            bearish += 1
    if bullish >= 2 and bullish > bearish:
        signals.append(ctx.signal(family, 'Bullish Pattern Bias', 45, direction='bullish'))
    elif bearish >= 2 and bearish > bullish:
        signals.append(ctx.signal(family, 'Bearish Pattern Bias', 45, direction='bearish'))

    return signals


CHART_PATTERN_STRENGTHS: Dict[str, Tuple[float, str]] = {
    'Head and Shoulders': (80, 'bearish'),
    'Double Bottom': (75, 'bullish'),
    'Double Top': (75, 'bearish'),
    'Ascending Triangle': (70, 'bullish'),
    'Descending Triangle': (70, 'bearish'),
}


def evaluate_chartpattern(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.CHART_PATTERN
    label = ctx.label('chartpattern')
    if label in CHART_PATTERN_STRENGTHS:
        strength, direction = CHART_PATTERN_STRENGTHS[label]
        return [ctx.signal(family, label, strength, direction=direction)]

    for offset in range(1, 6):
        recent = ctx.label('chartpattern', offset)
        if recent in CHART_PATTERN_STRENGTHS:
            return [ctx.signal(family, 'Pattern Developing', 40, details=f"{recent} seen {offset} candles ago")]
    return []
