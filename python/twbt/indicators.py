"""Indicator computation utilities.

All kernels take pandas Series/DataFrames indexed by date and return series of
the same length. A value is NaN until its lookback window has elapsed; no
value ever depends on a later bar.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

RSI_FALLBACK = 50.0


def _check_window(window: int, name: str = "window") -> None:
    if window <= 0:
        raise ValueError(f"{name} must be positive")


def ema(series: pd.Series, span: int) -> pd.Series:
    """Exponential moving average seeded with the first sample.

    Uses pandas ewm with adjust=False (recursive form, multiplier 2/(span+1)),
    so EMA(0) == series(0) and there is no warm-up NaN segment.
    """
    _check_window(span, "span")
    return series.ewm(span=span, adjust=False, min_periods=1).mean()


def sma(series: pd.Series, window: int) -> pd.Series:
    """Trailing simple moving average, defined once the window is full."""
    _check_window(window)
    return series.rolling(window=window, min_periods=window).mean()


def wilder_rsi(close: pd.Series, period: int) -> pd.DataFrame:
    """RSI with Wilder smoothing.

    Returns a frame with columns avgGain, avgLoss, rsi. At index == period the
    averages are seeded with the simple mean of gains/losses over bars
    1..period; afterwards avg = (1 - 1/period) * avg_prev + (1/period) * x.
    """
    _check_window(period, "period")
    close = close.astype(float)
    delta = close.diff()
    gain = delta.clip(lower=0.0)
    loss = (-delta).clip(lower=0.0)

    avg_gain = pd.Series(np.nan, index=close.index)
    avg_loss = pd.Series(np.nan, index=close.index)
    if len(close) > period:
        alpha = 1.0 / period
        g = gain.iloc[period:].copy()
        lo = loss.iloc[period:].copy()
        g.iloc[0] = gain.iloc[1 : period + 1].mean()
        lo.iloc[0] = loss.iloc[1 : period + 1].mean()
        avg_gain.iloc[period:] = g.ewm(alpha=alpha, adjust=False).mean().to_numpy()
        avg_loss.iloc[period:] = lo.ewm(alpha=alpha, adjust=False).mean().to_numpy()

    with np.errstate(divide="ignore", invalid="ignore"):
        rs = avg_gain / avg_loss
        rsi = 100.0 - 100.0 / (1.0 + rs)
    rsi = rsi.where(avg_loss != 0.0, 100.0)
    rsi = rsi.where(avg_loss.notna())

    rsi = sanitize_rsi(rsi, first_index=period)
    return pd.DataFrame({"avgGain": avg_gain, "avgLoss": avg_loss, "rsi": rsi}, index=close.index)


def sanitize_rsi(rsi: pd.Series, first_index: int) -> pd.Series:
    """Replace non-numeric or out-of-range RSI values.

    Fallback policy: use the previous bar's RSI, or RSI_FALLBACK (50) when no
    previous value exists. Values before `first_index` are left undefined.
    """
    values = rsi.to_numpy(dtype=float, copy=True)
    for i in range(max(0, first_index), len(values)):
        v = values[i]
        if np.isfinite(v) and 0.0 <= v <= 100.0:
            continue
        prev = values[i - 1] if i > 0 else np.nan
        replacement = prev if np.isfinite(prev) else RSI_FALLBACK
        logger.warning("RSI out of range (%s) at index %d, using %.2f", v, i, replacement)
        values[i] = replacement
    return pd.Series(values, index=rsi.index)


def macd(close: pd.Series, fast: int, slow: int, signal: int) -> pd.DataFrame:
    """MACD family.

    Both EMAs are seeded at index 0 with the first close. The MACD line is
    defined from index slow-1; the signal line is the MACD's own EMA seeded at
    that first defined index.
    """
    _check_window(fast, "fast")
    _check_window(slow, "slow")
    _check_window(signal, "signal")
    close = close.astype(float)
    ema_fast = ema(close, fast)
    ema_slow = ema(close, slow)

    line = ema_fast - ema_slow
    line.iloc[: slow - 1] = np.nan

    signal_line = pd.Series(np.nan, index=close.index)
    if len(close) >= slow:
        signal_line.iloc[slow - 1 :] = ema(line.iloc[slow - 1 :], signal).to_numpy()
    hist = line - signal_line

    return pd.DataFrame(
        {
            "emaFast": ema_fast,
            "emaSlow": ema_slow,
            "macd": line,
            "macdSignal": signal_line,
            "macdHist": hist,
        },
        index=close.index,
    )


def volume_ratio(volume: pd.Series, window: int = 20) -> pd.DataFrame:
    """Volume / trailing volume mean. A zero mean is replaced by 1."""
    vma = sma(volume.astype(float), window)
    ratio = volume.astype(float) / vma.replace(0.0, 1.0)
    return pd.DataFrame({"volumeMA20": vma, "volumeRatio": ratio}, index=volume.index)


def atr(df: pd.DataFrame, window: int) -> pd.Series:
    """Average True Range (simple trailing mean of TR).

    TR needs the previous close, so the first bar has none and ATR is first
    defined at index == window.
    """
    _check_window(window)
    high = df["High"].astype(float)
    low = df["Low"].astype(float)
    close = df["Close"].astype(float)
    prev_close = close.shift(1)
    tr = pd.concat(
        [
            (high - low).abs(),
            (high - prev_close).abs(),
            (low - prev_close).abs(),
        ],
        axis=1,
    ).max(axis=1, skipna=False)
    return tr.rolling(window=window, min_periods=window).mean()


def price_momentum(close: pd.Series, period: int) -> pd.Series:
    """(close_i - close_{i-N}) / close_{i-N}."""
    _check_window(period, "period")
    past = close.astype(float).shift(period)
    return (close.astype(float) - past) / past
