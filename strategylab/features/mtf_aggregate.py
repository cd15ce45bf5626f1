from __future__ import annotations

import pandas as pd

_AGG = {
    "open": "first",
    "high": "max",
    "low": "min",
    "close": "last",
    "volume": "sum",
}


def aggregate_ohlcv(
    df: pd.DataFrame,
    rule: str,
    *,
    label: str = "left",
    closed: str = "left",
) -> pd.DataFrame:
    """
    Aggregates OHLCV data to a higher timeframe.

    Args:
        df (pd.DataFrame): OHLCV frame indexed by DatetimeIndex.
        rule (str): The resampling rule, e.g. "1D" or "W".
        label (str): The label for the resampled bins.
        closed (str): The closed side for the resampled bins.

    Returns:
        pd.DataFrame: The aggregated frame; empty bins are dropped.
    """
    if not isinstance(df.index, pd.DatetimeIndex):
        raise TypeError("aggregate_ohlcv expects a DataFrame indexed by DatetimeIndex")
    available = {k: v for k, v in _AGG.items() if k in df.columns}
    res = df.resample(rule, label=label, closed=closed).agg(available)
    if "close" in res.columns:
        return res.dropna(subset=["close"])
    return res.dropna(how="all")


__all__ = ["aggregate_ohlcv"]
