"""
Volatility Signal Evaluators
============================
Bands, channels, ATR regimes and squeeze release.
"""

from typing import List

import numpy as np

from .signals import EvaluationContext, Signal, SignalFamily
from .trend_signals import crossed_above, crossed_below


def _channel_breakouts(ctx: EvaluationContext, family: SignalFamily, name: str,
                       strength: float = 80) -> List[Signal]:
    """Close crossing outside a band/channel on this candle."""
    close = ctx.price()
    prev_close = ctx.price(offset=1)
    upper = ctx.value(name, 'upper')
    lower = ctx.value(name, 'lower')
    prev_upper = ctx.value(name, 'upper', offset=1)
    prev_lower = ctx.value(name, 'lower', offset=1)
    if None in (close, prev_close, upper, lower, prev_upper, prev_lower):
        return []

    if crossed_above(close, upper, prev_close, prev_upper):
        return [ctx.signal(family, 'Upper Breakout', strength, is_event=True, direction='bullish')]
    if crossed_below(close, lower, prev_close, prev_lower):
        return [ctx.signal(family, 'Lower Breakdown', strength, is_event=True, direction='bearish')]
    return []


def evaluate_bollinger(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.BOLLINGER
    close = ctx.price()
    upper = ctx.value('bollinger', 'upper')
    middle = ctx.value('bollinger', 'middle')
    lower = ctx.value('bollinger', 'lower')
    if None in (close, upper, middle, lower):
        return []

    signals = _channel_breakouts(ctx, family, 'bollinger')

    if close > upper:
        signals.append(ctx.signal(family, 'Above Upper Band', 60, direction='bullish'))
    elif close < lower:
        signals.append(ctx.signal(family, 'Below Lower Band', 60, direction='bullish',
                                  details="Close below lower band, stretched to the downside"))
    elif close > middle:
        signals.append(ctx.signal(family, 'Above Middle Band', 40, direction='bullish'))
    else:
        signals.append(ctx.signal(family, 'Below Middle Band', 40, direction='bearish'))

    prev_close = ctx.price(offset=1)
    prev_middle = ctx.value('bollinger', 'middle', offset=1)
    if prev_close is not None and prev_middle is not None:
        if crossed_above(close, middle, prev_close, prev_middle):
            signals.append(ctx.signal(family, 'Bullish Middle Cross', 65, is_event=True, direction='bullish'))
        elif crossed_below(close, middle, prev_close, prev_middle):
            signals.append(ctx.signal(family, 'Bearish Middle Cross', 65, is_event=True, direction='bearish'))

    # Band walk: three closes in a row beyond the same band
    walk_up = walk_down = True
    for offset in range(3):
        c = ctx.price(offset=offset)
        u = ctx.value('bollinger', 'upper', offset)
        l = ctx.value('bollinger', 'lower', offset)
        if None in (c, u, l):
            walk_up = walk_down = False
            break
        walk_up = walk_up and c >= u
        walk_down = walk_down and c <= l
    if walk_up:
        signals.append(ctx.signal(family, 'Upper Band Walk', 70, direction='bullish'))
    elif walk_down:
        signals.append(ctx.signal(family, 'Lower Band Walk', 70, direction='bearish'))

    return signals


def evaluate_bbw(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.BBW
    bbw = ctx.value('bbw')
    if bbw is None:
        return []

    squeeze = ctx.setting('squeeze_threshold', 0.04)
    expansion = ctx.setting('expansion_threshold', 0.10)
    prev_bbw = ctx.value('bbw', offset=1)
    signals = []

    if bbw < squeeze:
        signals.append(ctx.signal(family, 'Low Volatility', 50 + min(30, (squeeze - bbw) * 1000),
                                  details=f"BBW {bbw:.4f} below squeeze threshold"))
    elif bbw > expansion:
        signals.append(ctx.signal(family, 'High Volatility', 55 + min(25, (bbw - expansion) * 200),
                                  details=f"BBW {bbw:.4f} above expansion threshold"))

    if prev_bbw is not None:
        if prev_bbw < squeeze <= bbw:
            close = ctx.price()
            middle = ctx.value('bollinger', 'middle')
            if close is not None and middle is not None and close >= middle:
                signals.append(ctx.signal(family, 'Squeeze Release Bullish', 80, is_event=True, direction='bullish'))
            else:
                signals.append(ctx.signal(family, 'Squeeze Release Bearish', 80, is_event=True, direction='bearish'))
        if bbw > prev_bbw:
            signals.append(ctx.signal(family, 'Expanding', 40))
        elif bbw < prev_bbw:
            signals.append(ctx.signal(family, 'Contracting', 35))

    return signals


def evaluate_atr(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.ATR
    atr = ctx.value('atr')
    history = ctx.series('atr', lookback=ctx.setting('lookback', 20))
    if atr is None or history is None:
        return []

    history = history.dropna()
    if len(history) < 2:
        return []

    baseline = float(history.iloc[:-1].mean())
    if not np.isfinite(baseline) or baseline <= 0:
        return []

    ratio = atr / baseline
    expansion = ctx.setting('expansion_ratio', 1.3)
    contraction = ctx.setting('contraction_ratio', 0.8)
    signals = []

    if ratio >= expansion:
        signals.append(ctx.signal(family, 'High Volatility', 60 + min(20, (ratio - expansion) * 50),
                                  details=f"ATR {ratio:.2f}x its {len(history) - 1}-candle mean"))
    elif ratio <= contraction:
        signals.append(ctx.signal(family, 'Low Volatility', 50 + min(20, (contraction - ratio) * 50),
                                  details=f"ATR {ratio:.2f}x its {len(history) - 1}-candle mean"))

    prev_atr = ctx.value('atr', offset=1)
    if prev_atr is not None:
        if prev_atr < baseline * expansion <= atr:
            signals.append(ctx.signal(family, 'ATR Expansion', 70, is_event=True))
        if atr > prev_atr:
            signals.append(ctx.signal(family, 'ATR Rising', 35))
        elif atr < prev_atr:
            signals.append(ctx.signal(family, 'ATR Falling', 35))

    return signals


def evaluate_donchian(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.DONCHIAN
    close = ctx.price()
    upper = ctx.value('donchian', 'upper')
    lower = ctx.value('donchian', 'lower')
    prev_upper = ctx.value('donchian', 'upper', offset=1)
    prev_lower = ctx.value('donchian', 'lower', offset=1)
    if None in (close, upper, lower):
        return []

    signals = []
    # The current channel includes this candle, so breakouts compare against the prior channel
    if prev_upper is not None and close > prev_upper:
        signals.append(ctx.signal(family, 'Upper Breakout', 80, is_event=True, direction='bullish'))
    elif prev_lower is not None and close < prev_lower:
        signals.append(ctx.signal(family, 'Lower Breakdown', 80, is_event=True, direction='bearish'))

    width = upper - lower
    if width > 0:
        position = (close - lower) / width
        if position >= 0.8:
            signals.append(ctx.signal(family, 'Upper Range', 55, direction='bullish'))
        elif position <= 0.2:
            signals.append(ctx.signal(family, 'Lower Range', 55, direction='bearish'))
        else:
            signals.append(ctx.signal(family, 'Middle Range', 25))

    return signals


def evaluate_keltner(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.KELTNER
    close = ctx.price()
    upper = ctx.value('keltner', 'upper')
    middle = ctx.value('keltner', 'middle')
    lower = ctx.value('keltner', 'lower')
    if None in (close, upper, middle, lower):
        return []

    signals = _channel_breakouts(ctx, family, 'keltner', strength=75)
    if close > upper:
        signals.append(ctx.signal(family, 'Above Upper Channel', 60, direction='bullish'))
    elif close < lower:
        signals.append(ctx.signal(family, 'Below Lower Channel', 60, direction='bearish'))
    elif close > middle:
        signals.append(ctx.signal(family, 'Above Middle', 40, direction='bullish'))
    else:
        signals.append(ctx.signal(family, 'Below Middle', 40, direction='bearish'))
    return signals


def evaluate_ttm_squeeze(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.TTM_SQUEEZE
    squeeze_on = ctx.value('ttm_squeeze', 'squeeze_on')
    momentum = ctx.value('ttm_squeeze', 'momentum')
    if squeeze_on is None:
        return []

    prev_on = ctx.value('ttm_squeeze', 'squeeze_on', offset=1)
    prev_momentum = ctx.value('ttm_squeeze', 'momentum', offset=1)
    signals = []

    if squeeze_on >= 1:
        signals.append(ctx.signal(family, 'in_squeeze', 55, details="Bollinger Bands inside Keltner Channels"))
    elif prev_on is not None and prev_on >= 1:
        if momentum is not None and momentum >= 0:
            signals.append(ctx.signal(family, 'Squeeze Release Bullish', 85, is_event=True, direction='bullish'))
        else:
            signals.append(ctx.signal(family, 'Squeeze Release Bearish', 85, is_event=True, direction='bearish'))

    if squeeze_on < 1 and momentum is not None and prev_momentum is not None:
        if momentum > 0 and momentum > prev_momentum:
            signals.append(ctx.signal(family, 'Bullish Momentum', 50, direction='bullish'))
        elif momentum < 0 and momentum < prev_momentum:
            signals.append(ctx.signal(family, 'Bearish Momentum', 50, direction='bearish'))

    return signals
