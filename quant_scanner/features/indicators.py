"""
Indicator Families
==================
Pure numeric transforms of a candle frame. Every function returns output
index-aligned to its input, NaN-padded during warm-up.
"""

import pandas as pd
import numpy as np
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


# Outlier heuristics for ATR. Fractions are relative to the highest valid
# high seen in the series.
PRICE_OUTLIER_MULTIPLIER = 10.0
GAP_OUTLIER_FRACTION = 0.5
TRUE_RANGE_CAP_FRACTION = 1.0
ATR_CLOSE_CAP_FRACTION = 0.1


def compute_atr(candles: pd.DataFrame, period: int = 14, validate: bool = True,
                price_outlier_multiplier: float = PRICE_OUTLIER_MULTIPLIER,
                gap_outlier_fraction: float = GAP_OUTLIER_FRACTION,
                true_range_cap_fraction: float = TRUE_RANGE_CAP_FRACTION,
                atr_close_cap_fraction: float = ATR_CLOSE_CAP_FRACTION) -> pd.Series:
    """
    Average True Range with corrupted-candle substitution and Wilder smoothing.

    The first ATR value (at ``period - 1``) is the mean of the first ``period``
    true ranges; later values use Wilder smoothing. Every value is capped at
    ``atr_close_cap_fraction`` of that candle's close.

    Args:
        candles: Frame with high, low and close columns
        period: Smoothing period
        validate: Replace true ranges of outlier candles with the previous one

    Returns:
        Series the same length as ``candles``
    """
    if period <= 0:
        raise ValueError(f"ATR period must be positive, got {period}")

    n = len(candles)
    atr = np.full(n, np.nan)
    if n < period:
        return pd.Series(atr, index=candles.index, name='atr')

    high = candles['high'].to_numpy(dtype=float)
    low = candles['low'].to_numpy(dtype=float)
    close = candles['close'].to_numpy(dtype=float)

    sane = np.isfinite(high) & np.isfinite(low) & (high > 0) & (low > 0)
    max_price = float(high[sane].max()) if sane.any() else 0.0

    price_threshold = max_price * price_outlier_multiplier
    max_gap = max_price * gap_outlier_fraction
    max_true_range = max_price * true_range_cap_fraction

    true_ranges = np.zeros(n)
    substituted = 0

    for i in range(n):
        prev_close = close[i - 1] if i > 0 else None
        previous_tr = true_ranges[i - 1] if i > 0 else 0.0

        if np.isnan(high[i]) or np.isnan(low[i]) or (prev_close is not None and np.isnan(prev_close)):
            true_ranges[i] = 0.0
            continue

        if validate:
            if high[i] > price_threshold or low[i] > price_threshold or high[i] <= 0 or low[i] <= 0:
                true_ranges[i] = previous_tr
                substituted += 1
                continue
            if prev_close is not None and (abs(high[i] - prev_close) > max_gap or
                                           abs(low[i] - prev_close) > max_gap):
                true_ranges[i] = previous_tr
                substituted += 1
                continue

        tr = high[i] - low[i]
        if prev_close is not None:
            tr = max(tr, abs(high[i] - prev_close), abs(low[i] - prev_close))

        if validate and tr > max_true_range:
            true_ranges[i] = previous_tr
            substituted += 1
            continue

        true_ranges[i] = tr

    if substituted:
        logger.debug(f"ATR: substituted {substituted} corrupted true range value(s)")

    def _cap(value: float, i: int) -> float:
        if np.isfinite(close[i]) and close[i] > 0:
            return min(value, close[i] * atr_close_cap_fraction)
        return value

    current = _cap(true_ranges[:period].mean(), period - 1)
    atr[period - 1] = current
    for i in range(period, n):
        current = _cap((current * (period - 1) + true_ranges[i]) / period, i)
        atr[i] = current

    return pd.Series(atr, index=candles.index, name='atr')


def wilder_smooth(series: pd.Series, period: int) -> pd.Series:
    """Wilder's smoothing (RMA)."""
    return series.ewm(alpha=1.0 / period, min_periods=period, adjust=False).mean()


def _safe_div(numerator: pd.Series, denominator: pd.Series, fill: float = 0.0) -> pd.Series:
    """Divide, substituting ``fill`` where the denominator is zero but keeping warm-up NaNs."""
    result = numerator / denominator.replace(0, np.nan)
    return result.mask(denominator == 0, fill)


# =============================================================================
# TREND
# =============================================================================

class TrendIndicators:
    """Moving averages and directional indicators."""

    @staticmethod
    def sma(prices: pd.Series, period: int) -> pd.Series:
        """Simple Moving Average."""
        return prices.rolling(window=period).mean()

    @staticmethod
    def ema(prices: pd.Series, period: int) -> pd.Series:
        """Exponential Moving Average."""
        return prices.ewm(span=period, adjust=False, min_periods=period).mean()

    @staticmethod
    def wma(prices: pd.Series, period: int) -> pd.Series:
        """Weighted Moving Average."""
        weights = np.arange(1, period + 1, dtype=float)
        return prices.rolling(window=period).apply(
            lambda x: np.dot(x, weights) / weights.sum(), raw=True
        )

    @staticmethod
    def dema(prices: pd.Series, period: int) -> pd.Series:
        """Double Exponential Moving Average."""
        ema1 = prices.ewm(span=period, adjust=False).mean()
        ema2 = ema1.ewm(span=period, adjust=False).mean()
        dema = 2 * ema1 - ema2
        dema.iloc[:max(period - 1, 0)] = np.nan
        return dema

    @staticmethod
    def tema(prices: pd.Series, period: int) -> pd.Series:
        """Triple Exponential Moving Average."""
        ema1 = prices.ewm(span=period, adjust=False).mean()
        ema2 = ema1.ewm(span=period, adjust=False).mean()
        ema3 = ema2.ewm(span=period, adjust=False).mean()
        tema = 3 * ema1 - 3 * ema2 + ema3
        tema.iloc[:max(period - 1, 0)] = np.nan
        return tema

    @staticmethod
    def hma(prices: pd.Series, period: int) -> pd.Series:
        """Hull Moving Average."""
        half = max(int(period / 2), 1)
        root = max(int(np.sqrt(period)), 1)
        raw = 2 * TrendIndicators.wma(prices, half) - TrendIndicators.wma(prices, period)
        return TrendIndicators.wma(raw, root)

    @staticmethod
    def ma_ribbon(prices: pd.Series, periods: List[int]) -> pd.DataFrame:
        """Stack of EMAs, shortest first."""
        return pd.DataFrame({
            f'ema_{p}': TrendIndicators.ema(prices, p) for p in periods
        }, index=prices.index)

    @staticmethod
    def macd(ema_fast: pd.Series, ema_slow: pd.Series, signal: int = 9) -> pd.DataFrame:
        """Moving Average Convergence Divergence from precomputed fast/slow EMAs."""
        macd_line = ema_fast - ema_slow
        signal_line = macd_line.ewm(span=signal, adjust=False, min_periods=signal).mean()
        histogram = macd_line - signal_line

        return pd.DataFrame({
            'macd': macd_line,
            'signal': signal_line,
            'histogram': histogram
        })

    @staticmethod
    def adx(high: pd.Series, low: pd.Series, close: pd.Series, period: int = 14) -> pd.DataFrame:
        """Average Directional Index with Wilder smoothing."""
        up_move = high.diff()
        down_move = -low.diff()

        plus_dm = up_move.where((up_move > down_move) & (up_move > 0), 0.0)
        minus_dm = down_move.where((down_move > up_move) & (down_move > 0), 0.0)

        prev_close = close.shift(1)
        true_range = pd.concat([
            high - low,
            (high - prev_close).abs(),
            (low - prev_close).abs()
        ], axis=1).max(axis=1)

        smoothed_tr = wilder_smooth(true_range, period)
        plus_di = 100 * _safe_div(wilder_smooth(plus_dm, period), smoothed_tr)
        minus_di = 100 * _safe_div(wilder_smooth(minus_dm, period), smoothed_tr)

        dx = 100 * _safe_div((plus_di - minus_di).abs(), plus_di + minus_di)
        adx = wilder_smooth(dx, period)

        return pd.DataFrame({
            'adx': adx,
            'plus_di': plus_di,
            'minus_di': minus_di
        })

    @staticmethod
    def psar(high: pd.Series, low: pd.Series, step: float = 0.02,
             max_step: float = 0.2) -> pd.DataFrame:
        """Parabolic SAR. ``trend`` is 1 for long, -1 for short."""
        h = high.to_numpy(dtype=float)
        l = low.to_numpy(dtype=float)
        n = len(h)
        sar = np.full(n, np.nan)
        trend = np.full(n, np.nan)
        if n < 2:
            return pd.DataFrame({'psar': sar, 'trend': trend}, index=high.index)

        rising = h[1] >= h[0]
        af = step
        extreme = h[0] if rising else l[0]
        current = l[0] if rising else h[0]

        for i in range(1, n):
            current = current + af * (extreme - current)
            if rising:
                current = min(current, l[i - 1], l[i - 2] if i >= 2 else l[i - 1])
                if l[i] < current:
                    rising = False
                    current = extreme
                    extreme = l[i]
                    af = step
                elif h[i] > extreme:
                    extreme = h[i]
                    af = min(af + step, max_step)
            else:
                current = max(current, h[i - 1], h[i - 2] if i >= 2 else h[i - 1])
                if h[i] > current:
                    rising = True
                    current = extreme
                    extreme = h[i]
                    af = step
                elif l[i] < extreme:
                    extreme = l[i]
                    af = min(af + step, max_step)
            sar[i] = current
            trend[i] = 1.0 if rising else -1.0

        return pd.DataFrame({'psar': sar, 'trend': trend}, index=high.index)

    @staticmethod
    def ichimoku(high: pd.Series, low: pd.Series, tenkan: int = 9, kijun: int = 26,
                 senkou: int = 52, displacement: int = 26) -> pd.DataFrame:
        """Ichimoku cloud lines, senkou spans displaced forward."""
        tenkan_sen = (high.rolling(tenkan).max() + low.rolling(tenkan).min()) / 2
        kijun_sen = (high.rolling(kijun).max() + low.rolling(kijun).min()) / 2
        senkou_a = ((tenkan_sen + kijun_sen) / 2).shift(displacement)
        senkou_b = ((high.rolling(senkou).max() + low.rolling(senkou).min()) / 2).shift(displacement)

        return pd.DataFrame({
            'tenkan': tenkan_sen,
            'kijun': kijun_sen,
            'senkou_a': senkou_a,
            'senkou_b': senkou_b
        })


# =============================================================================
# MOMENTUM
# =============================================================================

class MomentumIndicators:
    """Bounded and unbounded oscillators."""

    @staticmethod
    def rsi(prices: pd.Series, period: int = 14) -> pd.Series:
        """Relative Strength Index (Wilder)."""
        delta = prices.diff()
        avg_gain = wilder_smooth(delta.clip(lower=0), period)
        avg_loss = wilder_smooth(-delta.clip(upper=0), period)

        rs = avg_gain / avg_loss.replace(0, np.nan)
        rsi = 100 - (100 / (1 + rs))
        rsi = rsi.mask((avg_loss == 0) & (avg_gain > 0), 100.0)
        rsi = rsi.mask((avg_loss == 0) & (avg_gain == 0), 50.0)
        return rsi

    @staticmethod
    def stochastic(high: pd.Series, low: pd.Series, close: pd.Series,
                   k_period: int = 14, d_period: int = 3) -> pd.DataFrame:
        """Stochastic Oscillator."""
        lowest_low = low.rolling(window=k_period).min()
        highest_high = high.rolling(window=k_period).max()

        stoch_k = 100 * _safe_div(close - lowest_low, highest_high - lowest_low, fill=0.5)
        stoch_d = stoch_k.rolling(window=d_period).mean()

        return pd.DataFrame({'k': stoch_k, 'd': stoch_d})

    @staticmethod
    def williams_r(high: pd.Series, low: pd.Series, close: pd.Series, period: int = 14) -> pd.Series:
        """Williams %R, in [-100, 0]."""
        highest_high = high.rolling(window=period).max()
        lowest_low = low.rolling(window=period).min()
        wr = -100 * _safe_div(highest_high - close, highest_high - lowest_low)
        return wr.mask(highest_high == lowest_low, -50.0)

    @staticmethod
    def cci(high: pd.Series, low: pd.Series, close: pd.Series, period: int = 20,
            constant: float = 0.015) -> pd.Series:
        """Commodity Channel Index."""
        typical = (high + low + close) / 3
        sma = typical.rolling(window=period).mean()
        mean_dev = typical.rolling(window=period).apply(
            lambda x: np.mean(np.abs(x - x.mean())), raw=True
        )
        return _safe_div(typical - sma, constant * mean_dev)

    @staticmethod
    def roc(prices: pd.Series, period: int = 12) -> pd.Series:
        """Rate of Change in percent."""
        return prices.pct_change(periods=period) * 100

    @staticmethod
    def awesome_oscillator(high: pd.Series, low: pd.Series, fast: int = 5, slow: int = 34) -> pd.Series:
        """Awesome Oscillator."""
        median = (high + low) / 2
        return median.rolling(fast).mean() - median.rolling(slow).mean()

    @staticmethod
    def cmo(prices: pd.Series, period: int = 14) -> pd.Series:
        """Chande Momentum Oscillator, in [-100, 100]."""
        delta = prices.diff()
        up = delta.clip(lower=0).rolling(period).sum()
        down = (-delta.clip(upper=0)).rolling(period).sum()
        return 100 * _safe_div(up - down, up + down)

    @staticmethod
    def mfi(high: pd.Series, low: pd.Series, close: pd.Series, volume: pd.Series,
            period: int = 14) -> pd.Series:
        """Money Flow Index."""
        typical = (high + low + close) / 3
        raw_flow = typical * volume
        direction = typical.diff()

        positive = raw_flow.where(direction > 0, 0.0).rolling(period).sum()
        negative = raw_flow.where(direction < 0, 0.0).rolling(period).sum()

        ratio = positive / negative.replace(0, np.nan)
        mfi = 100 - (100 / (1 + ratio))
        mfi = mfi.mask((negative == 0) & (positive > 0), 100.0)
        return mfi.mask((negative == 0) & (positive == 0), 50.0)


# =============================================================================
# VOLATILITY
# =============================================================================

class VolatilityIndicators:
    """Bands, channels and squeeze detection."""

    @staticmethod
    def bollinger_bands(prices: pd.Series, period: int = 20, std_dev: float = 2.0) -> pd.DataFrame:
        """Bollinger Bands."""
        sma = prices.rolling(window=period).mean()
        std = prices.rolling(window=period).std()

        return pd.DataFrame({
            'upper': sma + (std * std_dev),
            'middle': sma,
            'lower': sma - (std * std_dev)
        })

    @staticmethod
    def bandwidth(bands: pd.DataFrame) -> pd.Series:
        """Bollinger Band Width: (upper - lower) / middle."""
        return _safe_div(bands['upper'] - bands['lower'], bands['middle'])

    @staticmethod
    def keltner_channels(candles: pd.DataFrame, period: int = 20, atr_period: int = 20,
                         multiplier: float = 2.0) -> pd.DataFrame:
        """Keltner Channels around an EMA."""
        middle = TrendIndicators.ema(candles['close'], period)
        atr = compute_atr(candles, atr_period)
        return pd.DataFrame({
            'upper': middle + multiplier * atr,
            'middle': middle,
            'lower': middle - multiplier * atr
        })

    @staticmethod
    def donchian_channels(high: pd.Series, low: pd.Series, period: int = 20) -> pd.DataFrame:
        """Donchian Channels."""
        upper = high.rolling(window=period).max()
        lower = low.rolling(window=period).min()
        return pd.DataFrame({
            'upper': upper,
            'middle': (upper + lower) / 2,
            'lower': lower
        })

    @staticmethod
    def ttm_squeeze(close: pd.Series, high: pd.Series, low: pd.Series, bollinger: pd.DataFrame,
                    keltner: pd.DataFrame, period: int = 20, momentum_period: int = 5) -> pd.DataFrame:
        """
        TTM Squeeze.

        ``squeeze_on`` is 1.0 while the Bollinger Bands sit inside the Keltner
        Channels. ``momentum`` is the smoothed distance of close from the
        midpoint of the Donchian midline and the SMA.
        """
        inside = (bollinger['lower'] > keltner['lower']) & (bollinger['upper'] < keltner['upper'])
        ready = bollinger['upper'].notna() & keltner['upper'].notna()
        squeeze_on = inside.astype(float).where(ready)

        midline = (high.rolling(period).max() + low.rolling(period).min()) / 2
        baseline = (midline + close.rolling(period).mean()) / 2
        momentum = (close - baseline).rolling(momentum_period).mean()

        return pd.DataFrame({'squeeze_on': squeeze_on, 'momentum': momentum})


# =============================================================================
# VOLUME
# =============================================================================

class VolumeIndicators:
    """Volume and money-flow indicators."""

    @staticmethod
    def volume_sma(volume: pd.Series, period: int = 20) -> pd.Series:
        return volume.rolling(window=period).mean()

    @staticmethod
    def volume_roc(volume: pd.Series, period: int = 14) -> pd.Series:
        return _safe_div(volume - volume.shift(period), volume.shift(period)) * 100

    @staticmethod
    def obv(close: pd.Series, volume: pd.Series) -> pd.Series:
        """On-Balance Volume."""
        direction = np.sign(close.diff()).fillna(0)
        return (direction * volume).cumsum()

    @staticmethod
    def money_flow_volume(high: pd.Series, low: pd.Series, close: pd.Series,
                          volume: pd.Series) -> pd.Series:
        multiplier = _safe_div((close - low) - (high - close), high - low)
        return multiplier * volume

    @staticmethod
    def cmf(high: pd.Series, low: pd.Series, close: pd.Series, volume: pd.Series,
            period: int = 20) -> pd.Series:
        """Chaikin Money Flow."""
        flow = VolumeIndicators.money_flow_volume(high, low, close, volume)
        return _safe_div(flow.rolling(period).sum(), volume.rolling(period).sum())

    @staticmethod
    def ad_line(high: pd.Series, low: pd.Series, close: pd.Series, volume: pd.Series) -> pd.Series:
        """Accumulation/Distribution line."""
        return VolumeIndicators.money_flow_volume(high, low, close, volume).fillna(0).cumsum()


# =============================================================================
# SUPPORT & RESISTANCE
# =============================================================================

FIBONACCI_RATIOS = [0.236, 0.382, 0.5, 0.618, 0.786]


class SupportResistanceIndicators:
    """Price levels derived from recent structure."""

    @staticmethod
    def pivot_points(high: pd.Series, low: pd.Series, close: pd.Series) -> pd.DataFrame:
        """Classic floor pivots from the previous candle."""
        h, l, c = high.shift(1), low.shift(1), close.shift(1)
        pp = (h + l + c) / 3
        return pd.DataFrame({
            'pp': pp,
            'r1': 2 * pp - l,
            's1': 2 * pp - h,
            'r2': pp + (h - l),
            's2': pp - (h - l),
            'r3': h + 2 * (pp - l),
            's3': l - 2 * (h - pp)
        })

    @staticmethod
    def fibonacci_levels(high: pd.Series, low: pd.Series, lookback: int = 50) -> pd.DataFrame:
        """Retracement levels measured down from the rolling swing high."""
        swing_high = high.rolling(lookback).max()
        swing_low = low.rolling(lookback).min()
        span = swing_high - swing_low

        levels = {'swing_high': swing_high, 'swing_low': swing_low}
        for ratio in FIBONACCI_RATIOS:
            levels[f'fib_{int(round(ratio * 1000))}'] = swing_high - span * ratio
        return pd.DataFrame(levels)

    @staticmethod
    def support_resistance(high: pd.Series, low: pd.Series, close: pd.Series,
                           window: int = 5, lookback: int = 100) -> pd.DataFrame:
        """
        Nearest confirmed swing low below and swing high above each close.

        A swing point at ``i`` is only known once ``window`` later candles
        exist, so each row uses swings confirmed by that row.
        """
        h = high.to_numpy(dtype=float)
        l = low.to_numpy(dtype=float)
        c = close.to_numpy(dtype=float)
        n = len(c)

        swing_lows = np.zeros(n, dtype=bool)
        swing_highs = np.zeros(n, dtype=bool)
        for i in range(window, n - window):
            segment_low = l[i - window:i + window + 1]
            segment_high = h[i - window:i + window + 1]
            swing_lows[i] = l[i] == np.nanmin(segment_low)
            swing_highs[i] = h[i] == np.nanmax(segment_high)

        support = np.full(n, np.nan)
        resistance = np.full(n, np.nan)
        touches = np.zeros(n)

        for t in range(n):
            confirmed = t - window
            start = max(0, t - lookback)
            if confirmed < start:
                continue

            lows = l[start:confirmed + 1][swing_lows[start:confirmed + 1]]
            highs = h[start:confirmed + 1][swing_highs[start:confirmed + 1]]

            below = lows[lows < c[t]]
            above = highs[highs > c[t]]
            if len(below):
                support[t] = below.max()
                touches[t] = np.sum(np.abs(lows - support[t]) < support[t] * 0.01)
            if len(above):
                resistance[t] = above.min()

        return pd.DataFrame({
            'support': support,
            'resistance': resistance,
            'support_touches': touches
        }, index=close.index)


# =============================================================================
# PATTERNS
# =============================================================================

class PatternIndicators:
    """Candlestick and chart pattern detection."""

    @staticmethod
    def candlestick(open_: pd.Series, high: pd.Series, low: pd.Series, close: pd.Series) -> pd.Series:
        """Label each candle with its dominant single/two-candle pattern (or None)."""
        body = close - open_
        abs_body = body.abs()
        candle_range = (high - low).replace(0, np.nan)
        upper_shadow = high - pd.concat([open_, close], axis=1).max(axis=1)
        lower_shadow = pd.concat([open_, close], axis=1).min(axis=1) - low

        prev_body = body.shift(1)
        prev_open = open_.shift(1)
        prev_close = close.shift(1)

        bullish_engulfing = (prev_body < 0) & (body > 0) & (open_ <= prev_close) & (close >= prev_open)
        bearish_engulfing = (prev_body > 0) & (body < 0) & (open_ >= prev_close) & (close <= prev_open)
        doji = (abs_body / candle_range) < 0.1
        hammer = (lower_shadow >= 2 * abs_body) & (upper_shadow <= abs_body) & ~doji
        shooting_star = (upper_shadow >= 2 * abs_body) & (lower_shadow <= abs_body) & ~doji
        marubozu = (abs_body / candle_range) > 0.9

        conditions = [
            bullish_engulfing.fillna(False).to_numpy(),
            bearish_engulfing.fillna(False).to_numpy(),
            doji.fillna(False).to_numpy(),
            hammer.fillna(False).to_numpy(),
            shooting_star.fillna(False).to_numpy(),
            (marubozu & (body > 0)).fillna(False).to_numpy(),
            (marubozu & (body < 0)).fillna(False).to_numpy(),
        ]
        choices = [
            'Bullish Engulfing', 'Bearish Engulfing', 'Doji', 'Hammer',
            'Shooting Star', 'Bullish Marubozu', 'Bearish Marubozu'
        ]
        labels = np.select(conditions, choices, default='')
        labels = pd.Series(labels, index=close.index, dtype=object)
        return labels.where(labels != '', None)

    @staticmethod
    def chart_patterns(high: pd.Series, low: pd.Series, window: int = 30) -> pd.Series:
        """Highest-confidence classic chart pattern ending at each candle (or None)."""
        h = high.to_numpy(dtype=float)
        l = low.to_numpy(dtype=float)
        labels: List[Optional[str]] = [None] * len(h)

        for t in range(window - 1, len(h)):
            highs = h[t - window + 1:t + 1]
            lows = l[t - window + 1:t + 1]
            if np.isnan(highs).any() or np.isnan(lows).any():
                continue

            found = []
            if PatternIndicators._is_head_shoulders(highs):
                found.append(('Head and Shoulders', 0.8))
            if PatternIndicators._is_double_bottom(lows):
                found.append(('Double Bottom', 0.7))
            if PatternIndicators._is_double_top(highs):
                found.append(('Double Top', 0.7))
            if PatternIndicators._is_ascending_triangle(highs[-20:], lows[-20:]):
                found.append(('Ascending Triangle', 0.65))
            if PatternIndicators._is_descending_triangle(highs[-20:], lows[-20:]):
                found.append(('Descending Triangle', 0.65))

            if found:
                labels[t] = max(found, key=lambda x: x[1])[0]

        return pd.Series(labels, index=high.index, dtype=object)

    @staticmethod
    def _is_double_bottom(lows: np.ndarray) -> bool:
        if len(lows) < 20:
            return False

        half = len(lows) // 2
        min_idx1 = int(np.argmin(lows[:half]))
        min_idx2 = int(np.argmin(lows[half:])) + half
        min1, min2 = lows[min_idx1], lows[min_idx2]

        if min1 > 0 and abs(min1 - min2) / min1 < 0.02:
            mid_section = lows[min_idx1:min_idx2]
            if len(mid_section) > 0 and max(mid_section) > min1 * 1.03:
                return True
        return False

    @staticmethod
    def _is_double_top(highs: np.ndarray) -> bool:
        if len(highs) < 20:
            return False

        half = len(highs) // 2
        max_idx1 = int(np.argmax(highs[:half]))
        max_idx2 = int(np.argmax(highs[half:])) + half
        max1, max2 = highs[max_idx1], highs[max_idx2]

        if max1 > 0 and abs(max1 - max2) / max1 < 0.02:
            mid_section = highs[max_idx1:max_idx2]
            if len(mid_section) > 0 and min(mid_section) < max1 * 0.97:
                return True
        return False

    @staticmethod
    def _is_head_shoulders(highs: np.ndarray) -> bool:
        if len(highs) < 20:
            return False

        third = len(highs) // 3
        left_max = max(highs[:third])
        head_max = max(highs[third:2 * third])
        right_max = max(highs[2 * third:])

        if head_max > left_max * 1.02 and head_max > right_max * 1.02:
            if left_max > 0 and abs(left_max - right_max) / left_max < 0.03:
                return True
        return False

    @staticmethod
    def _is_ascending_triangle(highs: np.ndarray, lows: np.ndarray) -> bool:
        if len(highs) < 15:
            return False

        x = np.arange(len(highs))
        high_flat = abs(np.polyfit(x, highs, 1)[0] / np.mean(highs)) < 0.001
        low_rising = np.polyfit(x, lows, 1)[0] / np.mean(lows) > 0.001
        return bool(high_flat and low_rising)

    @staticmethod
    def _is_descending_triangle(highs: np.ndarray, lows: np.ndarray) -> bool:
        if len(highs) < 15:
            return False

        x = np.arange(len(highs))
        low_flat = abs(np.polyfit(x, lows, 1)[0] / np.mean(lows)) < 0.001
        high_falling = np.polyfit(x, highs, 1)[0] / np.mean(highs) < -0.001
        return bool(low_flat and high_falling)
