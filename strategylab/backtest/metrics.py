# strategylab/backtest/metrics.py
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from strategylab.backtest.model import PerformanceMetrics
from strategylab.core.models import PortfolioSnapshot, Trade

#: Sentinel for ratios whose denominator is zero (no losses / no downside).
UNBOUNDED = float("inf")

CALENDAR_DAYS = 365
_SECONDS_PER_YEAR = CALENDAR_DAYS * 24 * 3600


# -------- Internals --------
def _to_returns(values: np.ndarray) -> np.ndarray:
    v = np.asarray(values, dtype=float)
    if v.size < 2:
        return np.empty(0, dtype=float)
    prev = v[:-1]
    mask = prev > 0
    return (v[1:][mask] - prev[mask]) / prev[mask]


def _equity_values(curve: Sequence[PortfolioSnapshot]) -> np.ndarray:
    return np.fromiter((s.total_value for s in curve), dtype=float, count=len(curve))


def infer_periods_per_year(timestamps: Sequence[datetime]) -> float:
    """Bars per calendar year implied by the median spacing of ``timestamps``."""
    if len(timestamps) < 2:
        return float(CALENDAR_DAYS)
    idx = pd.DatetimeIndex(timestamps)
    deltas = np.diff(idx.asi8) / 1e9
    deltas = deltas[deltas > 0]
    if deltas.size == 0:
        return float(CALENDAR_DAYS)
    return _SECONDS_PER_YEAR / float(np.median(deltas))


# -------- Public API --------
def max_drawdown(values: Sequence[float]) -> Tuple[float, float]:
    """Largest peak-to-trough decline as (absolute, percent of running peak)."""
    v = np.asarray(values, dtype=float)
    if v.size == 0:
        return 0.0, 0.0
    peaks = np.maximum.accumulate(v)
    dd = peaks - v
    with np.errstate(divide="ignore", invalid="ignore"):
        dd_pct = np.where(peaks > 0, dd / peaks * 100.0, 0.0)
    return float(dd.max()), float(min(100.0, dd_pct.max()))


def sharpe_ratio(values: Sequence[float], periods_per_year: float) -> float:
    rets = _to_returns(np.asarray(values, dtype=float))
    if rets.size == 0:
        return 0.0
    std = float(rets.std(ddof=0))
    if not std > 0 or not math.isfinite(std):
        return 0.0
    return float(rets.mean()) / std * math.sqrt(periods_per_year)


def sortino_ratio(values: Sequence[float], periods_per_year: float) -> float:
    rets = _to_returns(np.asarray(values, dtype=float))
    if rets.size == 0:
        return 0.0
    mean = float(rets.mean())
    downside = rets[rets < 0]
    if downside.size == 0:
        return UNBOUNDED if mean > 0 else 0.0
    down_dev = math.sqrt(float(np.mean(np.square(downside))))
    if down_dev <= 0:
        return 0.0
    return mean / down_dev * math.sqrt(periods_per_year)


def annualized_return(curve: Sequence[PortfolioSnapshot]) -> float:
    """Mean daily return compounded over 365 days, in percent."""
    if len(curve) < 2:
        return 0.0
    s = pd.Series(
        _equity_values(curve), index=pd.DatetimeIndex([p.timestamp for p in curve])
    )
    daily = s.resample("1D").last().dropna()
    rets = daily.pct_change().replace([np.inf, -np.inf], np.nan).dropna()
    if rets.empty:
        return 0.0
    mean = float(rets.mean())
    if mean <= -1.0:
        return -100.0
    return (float(np.power(1.0 + mean, CALENDAR_DAYS)) - 1.0) * 100.0


def profit_factor(gross_profit: float, gross_loss: float) -> float:
    """gross_profit / gross_loss with ``UNBOUNDED`` when nothing was lost."""
    if gross_loss > 0:
        return gross_profit / gross_loss
    return UNBOUNDED if gross_profit > 0 else 0.0


def calculate_metrics(
    trades: Sequence[Trade],
    equity_curve: Sequence[PortfolioSnapshot],
    initial_balance: float,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    *,
    periods_per_year: Optional[float] = None,
) -> PerformanceMetrics:
    """
    Compute statistics for a finished run.

    Only closed trades count toward trade statistics. The final balance is
    the last equity snapshot (initial balance when the curve is empty).
    """
    values = _equity_values(equity_curve)
    final_balance = float(values[-1]) if values.size else float(initial_balance)
    total_return = final_balance - initial_balance
    total_return_pct = total_return / initial_balance * 100.0 if initial_balance > 0 else 0.0

    if start is None and equity_curve:
        start = equity_curve[0].timestamp
    if end is None and equity_curve:
        end = equity_curve[-1].timestamp
    duration = (end - start) if (start is not None and end is not None) else timedelta(0)

    ppy = periods_per_year or infer_periods_per_year([s.timestamp for s in equity_curve])
    dd_abs, dd_pct = max_drawdown(values)
    sharpe = sharpe_ratio(values, ppy)
    sortino = sortino_ratio(values, ppy)
    ann = annualized_return(equity_curve)

    closed = [t for t in trades if t.is_closed]
    pnls = np.array([t.profit_loss for t in closed], dtype=float)
    wins = pnls[pnls > 0]
    losses = pnls[pnls <= 0]
    n = int(pnls.size)
    gross_profit = float(wins.sum()) if wins.size else 0.0
    gross_loss = float(abs(losses.sum())) if losses.size else 0.0
    holding_hours = [t.holding_period.total_seconds() / 3600.0 for t in closed]

    metrics = PerformanceMetrics(
        total_return=total_return,
        total_return_pct=total_return_pct,
        annualized_return_pct=ann,
        max_drawdown=dd_abs,
        max_drawdown_pct=dd_pct,
        sharpe_ratio=sharpe,
        sortino_ratio=sortino,
        total_trades=n,
        winning_trades=int(wins.size),
        losing_trades=int(losses.size),
        win_rate=float(wins.size) / n if n else 0.0,
        profit_factor=profit_factor(gross_profit, gross_loss),
        average_win=float(wins.mean()) if wins.size else 0.0,
        average_loss=float(abs(losses.mean())) if losses.size else 0.0,
        largest_win=float(wins.max()) if wins.size else 0.0,
        largest_loss=float(abs(losses.min())) if losses.size else 0.0,
        duration=duration,
        average_holding_hours=float(np.mean(holding_hours)) if holding_hours else 0.0,
    )

    logger.debug(
        "[metrics] n={} ret={:.2f}% ann={:.2f}% dd={:.2f}% sharpe={:.3f} sortino={:.3f} trades={} win={:.2f} pf={:.3f}",
        len(equity_curve),
        total_return_pct,
        ann,
        dd_pct,
        sharpe,
        sortino,
        n,
        metrics.win_rate,
        metrics.profit_factor,
    )
    return metrics


__all__ = [
    "UNBOUNDED",
    "annualized_return",
    "calculate_metrics",
    "infer_periods_per_year",
    "max_drawdown",
    "profit_factor",
    "sharpe_ratio",
    "sortino_ratio",
]
