from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Optional, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from strategylab.backtest.metrics import calculate_metrics
from strategylab.backtest.model import BacktestConfig, BacktestResult
from strategylab.backtest.portfolio import VirtualPortfolio
from strategylab.core.exceptions import BacktestError, DataValidationError
from strategylab.core.models import Candle, CandleHistory, TradeSignal, validate_candles
from strategylab.logging_utils import logging_context

if TYPE_CHECKING:
    from strategylab.strats.base import Strategy

_TIMEFRAME_LABELS = (
    (60, "1m"),
    (3 * 60, "3m"),
    (5 * 60, "5m"),
    (15 * 60, "15m"),
    (30 * 60, "30m"),
    (3600, "1h"),
    (2 * 3600, "2h"),
    (4 * 3600, "4h"),
    (6 * 3600, "6h"),
    (12 * 3600, "12h"),
    (86400, "1d"),
    (7 * 86400, "1w"),
)


def infer_timeframe(candles: Sequence[Candle]) -> str:
    """Label for the median candle spacing, e.g. "1h"; "" when unknown."""
    if len(candles) < 2:
        return ""
    idx = pd.DatetimeIndex([c.timestamp for c in candles])
    median = float(np.median(np.diff(idx.asi8))) / 1e9
    for seconds, label in _TIMEFRAME_LABELS:
        if abs(median - seconds) <= seconds * 0.05:
            return label
    if median >= 86400:
        return f"{median / 86400:g}d"
    return f"{median / 60:g}m"


def _hard_stop_hit(portfolio: VirtualPortfolio, candle: Candle, config: BacktestConfig) -> bool:
    pos = portfolio.position
    if pos is None or config.max_loss_per_trade_pct <= 0 or pos.entry_price <= 0:
        return False
    return (candle.close - pos.entry_price) / pos.entry_price < -config.max_loss_per_trade_pct


class BacktestEngine:
    """
    Sequential, single-threaded replay of a candle series through a strategy.

    The engine never calls ``strategy.initialize``; callers configure the
    strategy before handing it over.
    """

    def run(
        self,
        strategy: "Strategy",
        candles: Sequence[Candle],
        initial_balance: Optional[float] = None,
        config: Optional[BacktestConfig] = None,
    ) -> BacktestResult:
        config = config or BacktestConfig()
        balance = float(config.initial_balance if initial_balance is None else initial_balance)
        if balance <= 0:
            raise DataValidationError("initial balance must be positive")
        validate_candles(candles)

        symbol = candles[0].symbol
        portfolio = VirtualPortfolio(balance, symbol=symbol)
        warmup = min(max(0, int(getattr(strategy, "warmup_period", 0) or 0)), len(candles))
        stops = 0

        with logging_context(run_id=uuid.uuid4().hex[:8]):
            for i in range(warmup, len(candles)):
                candle = candles[i]
                portfolio.mark(candle)
                history = CandleHistory(candles, i + 1)
                signal = strategy.on_candle(candle, portfolio, history)
                if not isinstance(signal, TradeSignal):
                    raise BacktestError(
                        f"{strategy.name} returned {signal!r} at {candle.timestamp}, expected a TradeSignal"
                    )
                if _hard_stop_hit(portfolio, candle, config):
                    signal = TradeSignal.SELL
                    stops += 1
                portfolio.apply(signal, candle, config)
                portfolio.record_snapshot(candle)

            curve = portfolio.snapshots
            start = curve[0].timestamp if curve else candles[0].timestamp
            end = curve[-1].timestamp if curve else candles[-1].timestamp
            last_close = candles[-1].close
            final_balance = portfolio.total_value(last_close)

            metrics = calculate_metrics(
                portfolio.trades,
                curve,
                balance,
                start,
                end,
                periods_per_year=config.periods_per_year,
            )

            logger.info(
                "[backtest] strategy={} symbol={} candles={} warmup={} trades={} stops={} final={:.2f} ret={:.2f}%",
                strategy.name,
                symbol,
                len(candles),
                warmup,
                metrics.total_trades,
                stops,
                final_balance,
                metrics.total_return_pct,
            )

        return BacktestResult(
            strategy_name=strategy.name,
            symbol=symbol,
            timeframe=infer_timeframe(candles),
            start_date=start,
            end_date=end,
            initial_balance=balance,
            final_balance=final_balance,
            metrics=metrics,
            config=config,
            trades=list(portfolio.trades),
            equity_curve=list(curve),
            open_trade=portfolio.open_trade_snapshot(last_close),
        )


def run_backtest(
    strategy: "Strategy",
    candles: Sequence[Candle],
    initial_balance: Optional[float] = None,
    config: Optional[BacktestConfig] = None,
) -> BacktestResult:
    return BacktestEngine().run(strategy, candles, initial_balance, config)


__all__ = ["BacktestEngine", "infer_timeframe", "run_backtest"]
