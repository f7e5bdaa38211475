"""
Trend Signal Evaluators
=======================
Moving averages, MACD, ADX, PSAR and Ichimoku.

State signals describe where price sits relative to an indicator and get
moderate strengths; event signals (crosses, flips) get higher strengths.
"""

from typing import List, Optional

from .signals import EvaluationContext, Signal, SignalFamily, unique_signals


def crossed_above(cur_a: float, cur_b: float, prev_a: float, prev_b: float) -> bool:
    return cur_a > cur_b and prev_a <= prev_b


def crossed_below(cur_a: float, cur_b: float, prev_a: float, prev_b: float) -> bool:
    return cur_a < cur_b and prev_a >= prev_b


def pct_distance(a: float, b: float) -> float:
    """Absolute distance of ``a`` from ``b`` in percent of ``b``."""
    if not b:
        return 0.0
    return abs(a - b) / abs(b) * 100


def evaluate_macd(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.MACD
    macd = ctx.value('macd', 'macd')
    signal = ctx.value('macd', 'signal')
    histogram = ctx.value('macd', 'histogram')
    prev_macd = ctx.value('macd', 'macd', offset=1)
    prev_signal = ctx.value('macd', 'signal', offset=1)
    if None in (macd, signal, histogram, prev_macd, prev_signal):
        return []

    signals = []
    diff_strength = 40 + min(30, abs(macd - signal) * 100)
    if macd > signal:
        signals.append(ctx.signal(family, 'MACD Above Signal', diff_strength, direction='bullish',
                                  details=f"MACD {macd:.4f} above signal {signal:.4f}"))
    else:
        signals.append(ctx.signal(family, 'MACD Below Signal', diff_strength, direction='bearish',
                                  details=f"MACD {macd:.4f} below signal {signal:.4f}"))

    zero_strength = 35 + min(25, abs(macd) * 1000)
    if macd > 0:
        signals.append(ctx.signal(family, 'MACD Above Zero', zero_strength, direction='bullish'))
    else:
        signals.append(ctx.signal(family, 'MACD Below Zero', zero_strength, direction='bearish'))

    hist_strength = 30 + min(20, abs(histogram) * 500)
    if histogram > 0:
        signals.append(ctx.signal(family, 'Positive Histogram', hist_strength, direction='bullish'))
    else:
        signals.append(ctx.signal(family, 'Negative Histogram', hist_strength, direction='bearish'))

    if crossed_above(macd, signal, prev_macd, prev_signal):
        signals.append(ctx.signal(family, 'Bullish Cross', 80, is_event=True, direction='bullish',
                                  details="MACD crossed above signal line"))
    elif crossed_below(macd, signal, prev_macd, prev_signal):
        signals.append(ctx.signal(family, 'Bearish Cross', 80, is_event=True, direction='bearish',
                                  details="MACD crossed below signal line"))

    return unique_signals(signals)


def _moving_average_signals(ctx: EvaluationContext, family: SignalFamily, name: str,
                            label: str) -> List[Signal]:
    """Price position, price crosses and slope against one moving average."""
    close = ctx.price()
    prev_close = ctx.price(offset=1)
    ma = ctx.value(name)
    prev_ma = ctx.value(name, offset=1)
    if None in (close, ma):
        return []

    signals = []
    distance = pct_distance(close, ma)
    state_strength = 45 + min(25, distance * 10)
    if close > ma:
        signals.append(ctx.signal(family, f'Price Above {label}', state_strength, direction='bullish',
                                  details=f"Close {distance:.2f}% above {label}"))
    elif close < ma:
        signals.append(ctx.signal(family, f'Price Below {label}', state_strength, direction='bearish',
                                  details=f"Close {distance:.2f}% below {label}"))

    if prev_close is not None and prev_ma is not None:
        if crossed_above(close, ma, prev_close, prev_ma):
            signals.append(ctx.signal(family, 'Price Cross Up', 75, is_event=True, direction='bullish'))
        elif crossed_below(close, ma, prev_close, prev_ma):
            signals.append(ctx.signal(family, 'Price Cross Down', 75, is_event=True, direction='bearish'))

        slope = pct_distance(ma, prev_ma)
        if ma > prev_ma:
            signals.append(ctx.signal(family, f'{label} Rising', 35 + min(15, slope * 20), direction='bullish'))
        elif ma < prev_ma:
            signals.append(ctx.signal(family, f'{label} Falling', 35 + min(15, slope * 20), direction='bearish'))

    return signals


def evaluate_ema(ctx: EvaluationContext) -> List[Signal]:
    signals = _moving_average_signals(ctx, SignalFamily.EMA, 'ema', 'EMA')
    # Price crosses double as the classic EMA cross labels
    for signal in list(signals):
        if signal.value == 'Price Cross Up':
            signals.append(ctx.signal(SignalFamily.EMA, 'Bullish Cross', 80, is_event=True, direction='bullish'))
        elif signal.value == 'Price Cross Down':
            signals.append(ctx.signal(SignalFamily.EMA, 'Bearish Cross', 80, is_event=True, direction='bearish'))
    return unique_signals(signals)


def evaluate_ma200(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.MA200
    signals = _moving_average_signals(ctx, family, 'ma200', 'MA200')
    if not signals:
        return []

    close = ctx.price()
    ma200 = ctx.value('ma200')
    fast = ctx.value('ema50')
    prev_fast = ctx.value('ema50', offset=1)
    prev_ma200 = ctx.value('ma200', offset=1)

    if fast is not None:
        if close > fast > ma200:
            signals.append(ctx.signal(family, 'Bullish MA Alignment', 65, direction='bullish'))
        elif close < fast < ma200:
            signals.append(ctx.signal(family, 'Bearish MA Alignment', 65, direction='bearish'))
        else:
            signals.append(ctx.signal(family, 'Mixed MA Alignment', 25))

        if prev_fast is not None and prev_ma200 is not None:
            if crossed_above(fast, ma200, prev_fast, prev_ma200):
                signals.append(ctx.signal(family, 'Golden Cross', 85, is_event=True, direction='bullish'))
            elif crossed_below(fast, ma200, prev_fast, prev_ma200):
                signals.append(ctx.signal(family, 'Death Cross', 85, is_event=True, direction='bearish'))

    return unique_signals(signals)


def evaluate_ichimoku(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.ICHIMOKU
    close = ctx.price()
    tenkan = ctx.value('ichimoku', 'tenkan')
    kijun = ctx.value('ichimoku', 'kijun')
    if None in (close, tenkan, kijun):
        return []

    signals = []
    tk_strength = 50 + min(20, pct_distance(tenkan, kijun) * 10)
    if tenkan > kijun:
        signals.append(ctx.signal(family, 'Tenkan Above Kijun', tk_strength, direction='bullish'))
    elif tenkan < kijun:
        signals.append(ctx.signal(family, 'Tenkan Below Kijun', tk_strength, direction='bearish'))

    prev_tenkan = ctx.value('ichimoku', 'tenkan', offset=1)
    prev_kijun = ctx.value('ichimoku', 'kijun', offset=1)
    if prev_tenkan is not None and prev_kijun is not None:
        if crossed_above(tenkan, kijun, prev_tenkan, prev_kijun):
            signals.append(ctx.signal(family, 'TK Bullish Cross', 75, is_event=True, direction='bullish'))
        elif crossed_below(tenkan, kijun, prev_tenkan, prev_kijun):
            signals.append(ctx.signal(family, 'TK Bearish Cross', 75, is_event=True, direction='bearish'))

    senkou_a = ctx.value('ichimoku', 'senkou_a')
    senkou_b = ctx.value('ichimoku', 'senkou_b')
    if senkou_a is not None and senkou_b is not None:
        kumo_top = max(senkou_a, senkou_b)
        kumo_bottom = min(senkou_a, senkou_b)
        if close > kumo_top:
            signals.append(ctx.signal(family, 'Price Above Kumo', 60, direction='bullish'))
            if tenkan > kijun and senkou_a > senkou_b:
                signals.append(ctx.signal(family, 'Bullish Ichimoku', 80, direction='bullish'))
        elif close < kumo_bottom:
            signals.append(ctx.signal(family, 'Price Below Kumo', 60, direction='bearish'))
            if tenkan < kijun and senkou_a < senkou_b:
                signals.append(ctx.signal(family, 'Bearish Ichimoku', 80, direction='bearish'))
        else:
            signals.append(ctx.signal(family, 'Price In Kumo', 30))

    return unique_signals(signals)


def evaluate_adx(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.ADX
    adx = ctx.value('adx', 'adx')
    plus_di = ctx.value('adx', 'plus_di')
    minus_di = ctx.value('adx', 'minus_di')
    if None in (adx, plus_di, minus_di):
        return []

    strong = ctx.setting('strong_threshold', 25)
    weak = ctx.setting('weak_threshold', 20)
    signals = []

    if adx >= strong:
        signals.append(ctx.signal(family, 'Strong Trend', 50 + min(30, adx - strong),
                                  details=f"ADX {adx:.1f}"))
    elif adx >= weak:
        signals.append(ctx.signal(family, 'Moderate Trend', 45, details=f"ADX {adx:.1f}"))
    else:
        signals.append(ctx.signal(family, 'Weak Trend', 30, details=f"ADX {adx:.1f}"))

    di_strength = 40 + min(25, abs(plus_di - minus_di))
    if plus_di > minus_di:
        signals.append(ctx.signal(family, 'Bullish Directional Movement', di_strength, direction='bullish'))
    elif minus_di > plus_di:
        signals.append(ctx.signal(family, 'Bearish Directional Movement', di_strength, direction='bearish'))
    else:
        signals.append(ctx.signal(family, 'Neutral Directional Movement', 20))

    prev_plus = ctx.value('adx', 'plus_di', offset=1)
    prev_minus = ctx.value('adx', 'minus_di', offset=1)
    if prev_plus is not None and prev_minus is not None:
        if crossed_above(plus_di, minus_di, prev_plus, prev_minus):
            signals.append(ctx.signal(family, 'Bullish DI Crossover', 75, is_event=True, direction='bullish'))
        elif crossed_below(plus_di, minus_di, prev_plus, prev_minus):
            signals.append(ctx.signal(family, 'Bearish DI Crossover', 75, is_event=True, direction='bearish'))

    return signals


def evaluate_psar(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.PSAR
    trend = ctx.value('psar', 'trend')
    prev_trend = ctx.value('psar', 'trend', offset=1)
    if trend is None:
        return []

    # Trending PSAR states are more reliable once ADX confirms a trend
    adx = ctx.value('adx', 'adx')
    confirmed = adx is not None and adx > ctx.setting('adx_threshold', 20)
    state_strength = 55 + (10 if confirmed else 0)

    signals = []
    if trend > 0:
        signals.append(ctx.signal(family, 'Uptrending', state_strength, direction='bullish'))
    else:
        signals.append(ctx.signal(family, 'Downtrending', state_strength, direction='bearish'))

    if prev_trend is not None and prev_trend != trend:
        if trend > 0:
            signals.append(ctx.signal(family, 'PSAR Flip Bullish', 80, is_event=True, direction='bullish'))
        else:
            signals.append(ctx.signal(family, 'PSAR Flip Bearish', 80, is_event=True, direction='bearish'))

    return signals


def evaluate_tema(ctx: EvaluationContext) -> List[Signal]:
    return _moving_average_signals(ctx, SignalFamily.TEMA, 'tema', 'TEMA')


def evaluate_dema(ctx: EvaluationContext) -> List[Signal]:
    return _moving_average_signals(ctx, SignalFamily.DEMA, 'dema', 'DEMA')


def evaluate_hma(ctx: EvaluationContext) -> List[Signal]:
    return _moving_average_signals(ctx, SignalFamily.HMA, 'hma', 'HMA')


def evaluate_wma(ctx: EvaluationContext) -> List[Signal]:
    return _moving_average_signals(ctx, SignalFamily.WMA, 'wma', 'WMA')


def _ribbon_values(ctx: EvaluationContext, offset: int = 0) -> Optional[List[float]]:
    ribbon = ctx.indicators.get('maribbon')
    if ribbon is None:
        return None
    values = [ctx.value('maribbon', column, offset) for column in ribbon.columns]
    if not values or any(v is None for v in values):
        return None
    return values


def evaluate_maribbon(ctx: EvaluationContext) -> List[Signal]:
    family = SignalFamily.MA_RIBBON
    values = _ribbon_values(ctx)
    if values is None or len(values) < 2:
        return []

    signals = []
    pairs = list(zip(values, values[1:]))
    if all(fast > slow for fast, slow in pairs):
        signals.append(ctx.signal(family, 'Bullish Alignment', 70, direction='bullish',
                                  details="All MAs in bullish order"))
    elif all(fast < slow for fast, slow in pairs):
        signals.append(ctx.signal(family, 'Bearish Alignment', 70, direction='bearish',
                                  details="All MAs in bearish order"))
    else:
        signals.append(ctx.signal(family, 'Mixed Alignment', 25, details="MAs tangled"))

    previous = _ribbon_values(ctx, offset=1)
    if previous is not None:
        spread = abs(values[0] - values[-1])
        prev_spread = abs(previous[0] - previous[-1])
        if spread > prev_spread:
            signals.append(ctx.signal(family, 'Expanding', 50))
        elif spread < prev_spread:
            signals.append(ctx.signal(family, 'Contracting', 40))

    return signals
