from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from strategylab.backtest.engine import BacktestEngine
from strategylab.backtest.model import BacktestConfig, BacktestResult, OptimizationMetric
from strategylab.backtest.optimizer import DeepOptimizer, ParameterGrid, StrategyFactory, compute_fitness
from strategylab.core.exceptions import ConfigError
from strategylab.core.models import Candle, validate_candles


@dataclass
class WalkForwardWindow:
    in_sample_start: datetime
    in_sample_end: datetime
    out_of_sample_start: datetime
    out_of_sample_end: datetime
    parameters: Dict[str, Any]
    in_sample_result: BacktestResult
    out_of_sample_result: BacktestResult


@dataclass
class WalkForwardResult:
    """
    Rolling optimisation summary.

    ``degradation_pct`` is the average in-sample return minus the average
    out-of-sample return, in percentage points.
    """

    best_parameters: Dict[str, Any] = field(default_factory=dict)
    windows: List[WalkForwardWindow] = field(default_factory=list)
    average_in_sample_return_pct: float = 0.0
    average_out_of_sample_return_pct: float = 0.0
    degradation_pct: float = 0.0


def _slice(candles: Sequence[Candle], start: datetime, end: datetime) -> List[Candle]:
    return [c for c in candles if start <= c.timestamp < end]


class WalkForwardOptimizer:
    """
    Optimise on an in-sample window, validate on the following window, roll
    forward by the out-of-sample length and repeat.
    """

    def __init__(
        self,
        optimizer: Optional[DeepOptimizer] = None,
        engine: Optional[BacktestEngine] = None,
        *,
        min_in_sample_candles: int = 50,
        min_out_of_sample_candles: int = 10,
    ) -> None:
        self.engine = engine or BacktestEngine()
        self.optimizer = optimizer or DeepOptimizer(engine=self.engine)
        self.min_in_sample_candles = min_in_sample_candles
        self.min_out_of_sample_candles = min_out_of_sample_candles

    def optimize(
        self,
        strategy_factory: StrategyFactory,
        candles: Sequence[Candle],
        grid: ParameterGrid,
        config: Optional[BacktestConfig] = None,
        in_sample_days: int = 180,
        out_of_sample_days: int = 60,
        windows: int = 3,
        metric: OptimizationMetric = OptimizationMetric.SHARPE_RATIO,
    ) -> WalkForwardResult:
        validate_candles(candles)
        if in_sample_days <= 0 or out_of_sample_days <= 0 or windows <= 0:
            raise ConfigError("walk-forward window sizes and count must be positive")
        config = config or BacktestConfig()
        metric = OptimizationMetric(metric)

        first, last = candles[0].timestamp, candles[-1].timestamp
        is_len, oos_len = timedelta(days=in_sample_days), timedelta(days=out_of_sample_days)
        done: List[WalkForwardWindow] = []

        for step in range(windows):
            is_start = first + step * oos_len
            is_end = is_start + is_len
            oos_end = is_end + oos_len
            if oos_end > last:
                logger.info("[walk-forward] window {} exceeds available data; stopping", step + 1)
                break

            in_sample = _slice(candles, is_start, is_end)
            out_sample = _slice(candles, is_end, oos_end)
            if len(in_sample) < self.min_in_sample_candles or len(out_sample) < self.min_out_of_sample_candles:
                logger.warning(
                    "[walk-forward] window {} skipped: in_sample={} out_of_sample={} candles",
                    step + 1,
                    len(in_sample),
                    len(out_sample),
                )
                continue

            opt = self.optimizer.optimize(strategy_factory, in_sample, grid, config, metric)
            if opt.best_backtest_result is None:
                logger.warning("[walk-forward] window {} produced no in-sample result", step + 1)
                continue

            strategy = strategy_factory()
            strategy.initialize(opt.best_parameters)
            oos = self.engine.run(strategy, out_sample, config.initial_balance, config)
            logger.info(
                "[walk-forward] window {}/{} params={} is_ret={:+.2f}% oos_ret={:+.2f}%",
                step + 1,
                windows,
                opt.best_parameters,
                opt.best_backtest_result.metrics.total_return_pct,
                oos.metrics.total_return_pct,
            )
            done.append(
                WalkForwardWindow(
                    in_sample_start=is_start,
                    in_sample_end=is_end,
                    out_of_sample_start=is_end,
                    out_of_sample_end=oos_end,
                    parameters=opt.best_parameters,
                    in_sample_result=opt.best_backtest_result,
                    out_of_sample_result=oos,
                )
            )

        if not done:
            logger.warning("[walk-forward] no window could be completed")
            return WalkForwardResult()

        # max() keeps the earliest window on ties
        best = max(done, key=lambda w: compute_fitness(w.out_of_sample_result.metrics, metric))
        avg_is = sum(w.in_sample_result.metrics.total_return_pct for w in done) / len(done)
        avg_oos = sum(w.out_of_sample_result.metrics.total_return_pct for w in done) / len(done)
        return WalkForwardResult(
            best_parameters=dict(best.parameters),
            windows=done,
            average_in_sample_return_pct=avg_is,
            average_out_of_sample_return_pct=avg_oos,
            degradation_pct=avg_is - avg_oos,
        )


__all__ = ["WalkForwardOptimizer", "WalkForwardResult", "WalkForwardWindow"]
