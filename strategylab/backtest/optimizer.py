from __future__ import annotations

import itertools
import math
import os
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import timedelta
from time import perf_counter
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from loguru import logger

from strategylab.backtest.engine import BacktestEngine
from strategylab.backtest.model import (
    BacktestConfig,
    OptimizationMetric,
    OptimizationResult,
    ParameterTestResult,
    PerformanceMetrics,
)
from strategylab.core.exceptions import ConfigError, OptimizationError
from strategylab.core.models import Candle, validate_candles
from strategylab.logging_utils import logging_context

#: Caps applied to unbounded ratios before they enter a fitness score.
FITNESS_PROFIT_FACTOR_CAP = 10.0
METRIC_PROFIT_FACTOR_CAP = 999.0
WORST_FITNESS = float("-inf")


@dataclass(frozen=True)
class ParameterRange:
    """Inclusive numeric range ``min..max`` walked in ``step`` increments."""

    min: float
    max: float
    step: float

    def values(self) -> List[float]:
        if not self.step > 0:
            raise ConfigError(f"step must be positive, got {self.step}")
        if self.max < self.min:
            raise ConfigError(f"empty range {self.min}..{self.max}")
        # a partial last step is dropped; values never exceed max
        count = int(math.floor((self.max - self.min) / self.step + 1e-9)) + 1
        integral = all(float(v).is_integer() for v in (self.min, self.max, self.step))
        out: List[float] = []
        for k in range(count):
            v = round(self.min + k * self.step, 10)
            out.append(int(v) if integral else v)
        return out


ParameterGrid = Mapping[str, Union[ParameterRange, Iterable[Any], Any]]
StrategyFactory = Callable[[], Any]


def _grid_values(key: str, entry: Any) -> List[Any]:
    if isinstance(entry, ParameterRange):
        return entry.values()
    if isinstance(entry, (str, bytes)) or not isinstance(entry, Iterable):
        return [entry]
    values = list(entry)
    if not values:
        raise ConfigError(f"parameter {key!r} has no values")
    return values


def expand_param_grid(grid: ParameterGrid) -> List[Dict[str, Any]]:
    """Cartesian product of the grid, keys varying slowest-first in insertion order."""
    if not grid:
        return [{}]
    keys = list(grid.keys())
    value_lists = [_grid_values(k, grid[k]) for k in keys]
    return [dict(zip(keys, combo, strict=True)) for combo in itertools.product(*value_lists)]


def _finite_or(value: float, fallback: float) -> float:
    return value if math.isfinite(value) else fallback


def compute_fitness(metrics: PerformanceMetrics, metric: OptimizationMetric = OptimizationMetric.CUSTOM) -> float:
    """
    Score a run; higher is better.

    Runs without closed trades score ``WORST_FITNESS`` whatever the metric.
    CUSTOM is ``max(0, return%) * max(win_rate, 0.01) * min(pf, 10) / max(dd%, 1)``.
    """
    if metrics.total_trades == 0:
        return WORST_FITNESS

    if metric is OptimizationMetric.CUSTOM:
        ret = max(0.0, metrics.total_return_pct)
        win = max(metrics.win_rate, 0.01)
        pf = min(max(0.0, metrics.profit_factor), FITNESS_PROFIT_FACTOR_CAP)
        dd = max(metrics.max_drawdown_pct, 1.0)
        score = ret * win * pf / dd
    elif metric is OptimizationMetric.TOTAL_RETURN:
        score = metrics.total_return_pct
    elif metric is OptimizationMetric.SHARPE_RATIO:
        score = metrics.sharpe_ratio
    elif metric is OptimizationMetric.SORTINO_RATIO:
        score = _finite_or(metrics.sortino_ratio, METRIC_PROFIT_FACTOR_CAP)
    elif metric is OptimizationMetric.PROFIT_FACTOR:
        score = min(metrics.profit_factor, METRIC_PROFIT_FACTOR_CAP)
    elif metric is OptimizationMetric.WIN_RATE:
        score = metrics.win_rate
    else:
        raise ConfigError(f"unsupported optimization metric: {metric!r}")

    return score if not math.isnan(score) else WORST_FITNESS


class DeepOptimizer:
    """
    Exhaustive parallel grid search over strategy parameters.

    Each combination gets a fresh strategy from ``strategy_factory`` and its
    own engine run; candles and config are shared read-only. Failing
    combinations are logged and dropped.
    """

    def __init__(
        self,
        engine: Optional[BacktestEngine] = None,
        max_workers: Optional[int] = None,
        progress_step: Optional[float] = None,
    ) -> None:
        from strategylab.config import settings

        self.engine = engine or BacktestEngine()
        workers = max_workers if max_workers is not None else settings.optimizer_max_workers
        self.max_workers = int(workers) if workers else (os.cpu_count() or 1)
        self.progress_step = float(progress_step or settings.optimizer_progress_step or 5.0)

    def _evaluate(
        self,
        index: int,
        params: Dict[str, Any],
        strategy_factory: StrategyFactory,
        candles: Sequence[Candle],
        config: BacktestConfig,
        metric: OptimizationMetric,
        cancel_event: Optional[threading.Event],
    ) -> Optional[ParameterTestResult]:
        if cancel_event is not None and cancel_event.is_set():
            return None
        strategy = strategy_factory()
        strategy.initialize(params)
        result = self.engine.run(strategy, candles, config.initial_balance, config)
        m = result.metrics
        return ParameterTestResult(
            index=index,
            parameters=dict(params),
            metric_value=compute_fitness(m, metric),
            total_return_pct=m.total_return_pct,
            sharpe_ratio=m.sharpe_ratio,
            max_drawdown_pct=m.max_drawdown_pct,
            total_trades=m.total_trades,
            win_rate=m.win_rate,
            profit_factor=m.profit_factor,
        )

    def optimize(
        self,
        strategy_factory: StrategyFactory,
        candles: Sequence[Candle],
        parameter_grid: ParameterGrid,
        config: Optional[BacktestConfig] = None,
        metric: OptimizationMetric = OptimizationMetric.CUSTOM,
        cancel_event: Optional[threading.Event] = None,
    ) -> OptimizationResult:
        validate_candles(candles)
        config = config or BacktestConfig()
        metric = OptimizationMetric(metric)
        combos = expand_param_grid(parameter_grid)
        total = len(combos)
        workers = max(1, min(self.max_workers, total))
        started = perf_counter()

        results: List[ParameterTestResult] = []
        attempted = total
        failed = 0

        with logging_context(run_id=uuid.uuid4().hex[:8]):
            logger.info(
                "[optimizer] starting combinations={} workers={} metric={}",
                total,
                workers,
                metric.value,
            )
            next_report = self.progress_step
            completed = 0
            with ThreadPoolExecutor(max_workers=workers) as executor:
                future_map = {
                    executor.submit(
                        self._evaluate,
                        idx,
                        params,
                        strategy_factory,
                        candles,
                        config,
                        metric,
                        cancel_event,
                    ): (idx, params)
                    for idx, params in enumerate(combos)
                }
                for future in as_completed(future_map):
                    idx, params = future_map[future]
                    completed += 1
                    try:
                        payload = future.result()
                    except Exception as exc:
                        failed += 1
                        logger.warning(
                            "[optimizer] combination={} params={} failed: {}", idx, params, exc
                        )
                        payload = None
                    else:
                        if payload is None:
                            attempted -= 1
                    if payload is not None:
                        results.append(payload)

                    pct = completed * 100.0 / total
                    if pct >= next_report or completed == total:
                        logger.info("[optimizer] progress {:.0f}% ({}/{})", pct, completed, total)
                        next_report = (math.floor(pct / self.progress_step) + 1) * self.progress_step

            # grid order first so the stable fitness sort breaks ties deterministically
            results.sort(key=lambda r: r.index)
            results.sort(key=lambda r: r.metric_value, reverse=True)

            if cancel_event is not None and cancel_event.is_set():
                logger.info("[optimizer] cancelled after {} of {} combinations", attempted, total)

            if not results:
                logger.warning(
                    "[optimizer] no combination succeeded (attempted={} failed={})", attempted, failed
                )
                return OptimizationResult(
                    best_parameters={},
                    best_backtest_result=None,
                    best_metric_value=WORST_FITNESS,
                    optimized_for=metric,
                    all_results=[],
                    duration=timedelta(seconds=perf_counter() - started),
                    total_combinations_tested=0,
                    combinations_attempted=attempted,
                )

            best = results[0]
            try:
                strategy = strategy_factory()
                strategy.initialize(best.parameters)
                best_result = self.engine.run(strategy, candles, config.initial_balance, config)
            except Exception as exc:
                raise OptimizationError(f"re-run of best parameters {best.parameters} failed") from exc

            duration = timedelta(seconds=perf_counter() - started)
            logger.info(
                "[optimizer] completed tested={} failed={} best={} fitness={:.4f} in {:.2f}s",
                len(results),
                failed,
                best.parameters,
                best.metric_value,
                duration.total_seconds(),
            )

        return OptimizationResult(
            best_parameters=dict(best.parameters),
            best_backtest_result=best_result,
            best_metric_value=best.metric_value,
            optimized_for=metric,
            all_results=results,
            duration=duration,
            total_combinations_tested=len(results),
            combinations_attempted=attempted,
        )


def optimize(
    strategy_factory: StrategyFactory,
    candles: Sequence[Candle],
    parameter_grid: ParameterGrid,
    config: Optional[BacktestConfig] = None,
    metric: OptimizationMetric = OptimizationMetric.CUSTOM,
    cancel_event: Optional[threading.Event] = None,
) -> OptimizationResult:
    return DeepOptimizer().optimize(
        strategy_factory, candles, parameter_grid, config, metric, cancel_event
    )


__all__ = [
    "DeepOptimizer",
    "ParameterRange",
    "compute_fitness",
    "expand_param_grid",
    "optimize",
]
