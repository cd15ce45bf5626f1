"""
Feature engineering: technical indicators.

Contains vectorized indicator calculations built on pandas.
Designed for extensibility and unit testing.
"""

import logging

import numpy as np
import pandas as pd

log = logging.getLogger(__name__)


def sma(series: pd.Series, period: int = 20, *, min_periods: int | None = None) -> pd.Series:
    """Simple moving average; NaN until ``min_periods`` (default: period) values exist."""
    return series.rolling(window=period, min_periods=min_periods or period).mean()


def ema(series: pd.Series, period: int = 20) -> pd.Series:
    """Exponential moving average."""
    return series.ewm(span=period, adjust=False).mean()


def true_range(df: pd.DataFrame) -> pd.Series:
    if not all(c in df.columns for c in ["high", "low", "close"]):
        raise ValueError("DataFrame must contain columns: high, low, close")
    prev_close = df["close"].shift()
    return pd.concat(
        [
            df["high"] - df["low"],
            (df["high"] - prev_close).abs(),
            (df["low"] - prev_close).abs(),
        ],
        axis=1,
    ).max(axis=1)


def atr(df: pd.DataFrame, period: int = 14) -> pd.Series:
    """
    Average True Range using OHLC data (Wilder smoothing).
    Requires columns: 'high', 'low', 'close'.
    """
    return true_range(df).ewm(alpha=1 / period, min_periods=period, adjust=False).mean()


def adx(df: pd.DataFrame, period: int = 14) -> pd.DataFrame:
    """
    Average Directional Index with the +DI / -DI lines.

    Returns a DataFrame with columns ``adx``, ``plus_di``, ``minus_di``;
    values are NaN until roughly ``2 * period`` bars are available.
    """
    if len(df) < 2 * period:
        log.debug("ADX input too short (len=%s < 2*period=%s)", len(df), 2 * period)
    up = df["high"].diff()
    down = -df["low"].diff()
    plus_dm = pd.Series(np.where((up > down) & (up > 0), up, 0.0), index=df.index)
    minus_dm = pd.Series(np.where((down > up) & (down > 0), down, 0.0), index=df.index)

    alpha = 1 / period
    tr_s = true_range(df).ewm(alpha=alpha, min_periods=period, adjust=False).mean()
    plus_di = 100 * plus_dm.ewm(alpha=alpha, min_periods=period, adjust=False).mean() / tr_s.replace(0, np.nan)
    minus_di = 100 * minus_dm.ewm(alpha=alpha, min_periods=period, adjust=False).mean() / tr_s.replace(0, np.nan)

    di_sum = (plus_di + minus_di).replace(0, np.nan)
    dx = 100 * (plus_di - minus_di).abs() / di_sum
    adx_val = dx.ewm(alpha=alpha, min_periods=period, adjust=False).mean()
    return pd.DataFrame({"adx": adx_val, "plus_di": plus_di, "minus_di": minus_di})


__all__ = ["sma", "ema", "true_range", "atr", "adx"]
