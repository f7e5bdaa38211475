"""
Momentum Signal Evaluators
==========================
Bounded oscillators (RSI, Stochastic, Williams %R, CMO, MFI, CCI) and
unbounded momentum (ROC, Awesome Oscillator).
"""

from typing import List, Optional

from .signals import EvaluationContext, Signal, SignalFamily
from .trend_signals import crossed_above, crossed_below


def _zone_signals(ctx: EvaluationContext, family: SignalFamily, current: float, previous: Optional[float],
                  overbought: float, oversold: float, prefix: str = '') -> List[Signal]:
    """Overbought/oversold states plus entry/exit events for a bounded oscillator."""
    signals = []
    span = max(abs(overbought - oversold), 1e-9)

    if current <= oversold:
        depth = (oversold - current) / span * 100
        signals.append(ctx.signal(family, f'{prefix}Oversold', 60 + min(20, depth), direction='bullish'))
    elif current >= overbought:
        depth = (current - overbought) / span * 100
        signals.append(ctx.signal(family, f'{prefix}Overbought', 60 + min(20, depth), direction='bearish'))

    if previous is None:
        return signals

    if previous > oversold >= current:
        signals.append(ctx.signal(family, f'{prefix}Oversold Entry', 75, is_event=True, direction='bullish'))
    elif previous <= oversold < current:
        signals.append(ctx.signal(family, f'{prefix}Oversold Exit', 70, is_event=True, direction='bullish'))

    if previous < overbought <= current:
        signals.append(ctx.signal(family, f'{prefix}Overbought Entry', 75, is_event=True, direction='bearish'))
    elif previous >= overbought > current:
        signals.append(ctx.signal(family, f'{prefix}Overbought Exit', 70, is_event=True, direction='bearish'))

    return signals


def _zero_cross_signals(ctx: EvaluationContext, family: SignalFamily, current: float,
                        previous: Optional[float], strength: float = 70) -> List[Signal]:
    if previous is None:
        return []
    if previous <= 0 < current:
        return [ctx.signal(family, 'Bullish Zero Cross', strength, is_event=True, direction='bullish')]
    if previous >= 0 > current:
        return [ctx.signal(family, 'Bearish Zero Cross', strength, is_event=True, direction='bearish')]
    return []


def _slope_signals(ctx: EvaluationContext, family: SignalFamily, current: float,
                   previous: Optional[float], label: str, strength: float = 40) -> List[Signal]:
    if previous is None or current == previous:
        return []
    if current > previous:
        return [ctx.signal(family, f'Rising {label}', strength, direction='bullish')]
    return [ctx.signal(family, f'Falling {label}', strength, direction='bearish')]


def evaluate_rsi(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.RSI
    rsi = ctx.value('rsi')
    prev_rsi = ctx.value('rsi', offset=1)
    if rsi is None:
        return []

    overbought = ctx.setting('overbought', 70)
    oversold = ctx.setting('oversold', 30)
    signals = _zone_signals(ctx, family, rsi, prev_rsi, overbought, oversold)

    if rsi > 50:
        signals.append(ctx.signal(family, 'RSI Above 50', min(70, 50 + (rsi - 50) * 0.8), direction='bullish'))
    elif rsi < 50:
        signals.append(ctx.signal(family, 'RSI Below 50', min(70, 50 + (50 - rsi) * 0.8), direction='bearish'))

    if oversold < rsi < 50:
        signals.append(ctx.signal(family, 'Bearish Zone', 35, direction='bearish'))
    elif 50 < rsi < overbought:
        signals.append(ctx.signal(family, 'Bullish Zone', 35, direction='bullish'))

    return signals


def evaluate_stochastic(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.STOCHASTIC
    k = ctx.value('stochastic', 'k')
    d = ctx.value('stochastic', 'd')
    if k is None or d is None:
        return []

    overbought = ctx.setting('overbought', 80)
    oversold = ctx.setting('oversold', 20)
    prev_k = ctx.value('stochastic', 'k', offset=1)
    prev_d = ctx.value('stochastic', 'd', offset=1)

    signals = _zone_signals(ctx, family, k, prev_k, overbought, oversold)

    if prev_k is not None and prev_d is not None:
        if crossed_above(k, d, prev_k, prev_d):
            strength = 80 if k <= oversold + 10 else 70
            signals.append(ctx.signal(family, 'Bullish Cross', strength, is_event=True, direction='bullish'))
        elif crossed_below(k, d, prev_k, prev_d):
            strength = 80 if k >= overbought - 10 else 70
            signals.append(ctx.signal(family, 'Bearish Cross', strength, is_event=True, direction='bearish'))

    return signals


def evaluate_williamsr(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.WILLIAMS_R
    wr = ctx.value('williamsr')
    if wr is None:
        return []

    overbought = ctx.setting('overbought', -20)
    oversold = ctx.setting('oversold', -80)
    signals = _zone_signals(ctx, family, wr, ctx.value('williamsr', offset=1), overbought, oversold)
    if oversold < wr < overbought:
        signals.append(ctx.signal(family, 'Neutral Zone', 25))
    return signals


def evaluate_cci(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.CCI
    cci = ctx.value('cci')
    if cci is None:
        return []

    prev_cci = ctx.value('cci', offset=1)
    signals = _zone_signals(ctx, family, cci, prev_cci,
                            ctx.setting('overbought', 100), ctx.setting('oversold', -100))
    signals.extend(_zero_cross_signals(ctx, family, cci, prev_cci))
    return signals


def evaluate_roc(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.ROC
    roc = ctx.value('roc')
    if roc is None:
        return []

    strong = ctx.setting('strong_threshold', 5)
    signals = []
    if roc > 0:
        signals.append(ctx.signal(family, 'Positive Momentum', 40 + min(25, roc * 5), direction='bullish'))
        if roc >= strong:
            signals.append(ctx.signal(family, 'Strong Upward Momentum', 70, direction='bullish'))
    elif roc < 0:
        signals.append(ctx.signal(family, 'Negative Momentum', 40 + min(25, -roc * 5), direction='bearish'))
        if roc <= -strong:
            signals.append(ctx.signal(family, 'Strong Downward Momentum', 70, direction='bearish'))
    else:
        signals.append(ctx.signal(family, 'Neutral Momentum', 20))

    signals.extend(_zero_cross_signals(ctx, family, roc, ctx.value('roc', offset=1)))
    return signals


def evaluate_awesomeoscillator(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.AWESOME_OSCILLATOR
    ao = ctx.value('awesomeoscillator')
    if ao is None:
        return []

    prev_ao = ctx.value('awesomeoscillator', offset=1)
    prev2_ao = ctx.value('awesomeoscillator', offset=2)

    signals = _zero_cross_signals(ctx, family, ao, prev_ao, strength=75)
    signals.extend(_slope_signals(ctx, family, ao, prev_ao, 'AO', strength=45))

    # Saucer: two bars against the trend of the zero side, then a turn back
    if prev_ao is not None and prev2_ao is not None:
        if ao > 0 and prev2_ao > prev_ao < ao:
            signals.append(ctx.signal(family, 'Bullish Saucer', 70, is_event=True, direction='bullish'))
        elif ao < 0 and prev2_ao < prev_ao > ao:
            signals.append(ctx.signal(family, 'Bearish Saucer', 70, is_event=True, direction='bearish'))

    return signals


def evaluate_cmo(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.CMO
    cmo = ctx.value('cmo')
    if cmo is None:
        return []

    prev_cmo = ctx.value('cmo', offset=1)
    signals = _zone_signals(ctx, family, cmo, prev_cmo,
                            ctx.setting('overbought', 50), ctx.setting('oversold', -50))
    signals.extend(_zero_cross_signals(ctx, family, cmo, prev_cmo))
    signals.extend(_slope_signals(ctx, family, cmo, prev_cmo, 'CMO'))
    return signals


def evaluate_mfi(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.MFI
    mfi = ctx.value('mfi')
    if mfi is None:
        return []

    prev_mfi = ctx.value('mfi', offset=1)
    signals = _zone_signals(ctx, family, mfi, prev_mfi,
                            ctx.setting('overbought', 80), ctx.setting('oversold', 20), prefix='MFI ')
    signals.extend(_slope_signals(ctx, family, mfi, prev_mfi, 'MFI'))
    return signals
