from __future__ import annotations

import threading
from typing import Any, Dict, List

import pytest

from strategylab.backtest.model import (
    BacktestConfig,
    BacktestResult,
    OptimizationMetric,
    PerformanceMetrics,
)
from strategylab.backtest.optimizer import (
    METRIC_PROFIT_FACTOR_CAP,
    WORST_FITNESS,
    DeepOptimizer,
    ParameterRange,
    compute_fitness,
    expand_param_grid,
)
from strategylab.core.exceptions import ConfigError, OptimizationError
from strategylab.core.models import TradeSignal
from strategylab.strats import SmaCrossoverStrategy
from strategylab.strats.base import Strategy


class DummyStrategy(Strategy):
    name = "Dummy"

    def __init__(self) -> None:
        self.params: Dict[str, Any] = {}

    def initialize(self, parameters) -> None:
        self.params = dict(parameters)

    def on_candle(self, candle, portfolio, history):
        return TradeSignal.HOLD


class FakeEngine:
    """Scores a strategy from its parameters instead of replaying candles."""

    def __init__(self, score=None, fail_when=None, on_call=None, fail_after=None) -> None:
        self.score = score or (lambda p: float(p.get("a", 0) * p.get("b", 0)))
        self.fail_when = fail_when or (lambda p: False)
        self.on_call = on_call
        self.fail_after = fail_after
        self.calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def run(self, strategy, candles, initial_balance=None, config=None):
        with self._lock:
            self.calls.append(dict(strategy.params))
            n = len(self.calls)
        if self.on_call is not None:
            self.on_call(strategy.params)
        if self.fail_after is not None and n > self.fail_after:
            raise RuntimeError("engine exploded")
        if self.fail_when(strategy.params):
            raise ValueError("bad combination")
        score = self.score(strategy.params)
        ret = 0.0 if score is None else score
        metrics = PerformanceMetrics(
            total_return_pct=ret,
            total_trades=0 if score is None else 5,
            win_rate=0.5,
            profit_factor=1.5,
            max_drawdown_pct=2.0,
        )
        return BacktestResult(
            strategy_name=strategy.name,
            symbol="TEST",
            timeframe="1h",
            start_date=candles[0].timestamp,
            end_date=candles[-1].timestamp,
            initial_balance=1_000.0,
            final_balance=1_000.0 * (1 + ret / 100.0),
            metrics=metrics,
            config=config or BacktestConfig(),
        )


GRID = {"a": ParameterRange(1, 3, 1), "b": [10, 20, 30, 40]}


@pytest.fixture
def candles(make_candles):
    return make_candles([100.0 + i for i in range(10)])


def _run(engine, candles, grid=GRID, metric=OptimizationMetric.TOTAL_RETURN, **kwargs):
    opt = DeepOptimizer(engine=engine, max_workers=kwargs.pop("max_workers", 4))
    return opt.optimize(DummyStrategy, candles, grid, metric=metric, **kwargs)


def test_parameter_range_values():
    assert ParameterRange(1, 3, 1).values() == [1, 2, 3]
    assert ParameterRange(0, 10, 3).values() == [0, 3, 6, 9]
    assert ParameterRange(0.1, 0.3, 0.1).values() == [0.1, 0.2, 0.3]
    assert ParameterRange(1, 2, 0.5).values() == [1.0, 1.5, 2.0]
    assert ParameterRange(5, 5, 1).values() == [5]
    assert all(isinstance(v, int) for v in ParameterRange(2, 8, 2).values())


@pytest.mark.parametrize(
    "rng, expected",
    [
        (ParameterRange(0, 1, 0.4), [0.0, 0.4, 0.8]),
        (ParameterRange(0, 10, 4), [0, 4, 8]),
        (ParameterRange(1, 2, 0.3), [1.0, 1.3, 1.6, 1.9]),
    ],
)
def test_parameter_range_never_exceeds_max(rng, expected):
    vals = rng.values()
    assert vals == pytest.approx(expected)
    assert max(vals) <= rng.max


@pytest.mark.parametrize("bad", [ParameterRange(1, 3, 0), ParameterRange(1, 3, -1), ParameterRange(3, 1, 1)])
def test_parameter_range_rejects_empty_or_non_positive_step(bad):
    with pytest.raises(ConfigError):
        bad.values()


def test_expand_param_grid():
    combos = expand_param_grid(GRID)
    assert len(combos) == 12
    assert combos[0] == {"a": 1, "b": 10}
    assert combos[1] == {"a": 1, "b": 20}
    assert combos[-1] == {"a": 3, "b": 40}
    assert expand_param_grid({}) == [{}]
    assert expand_param_grid({"mode": "fast", "n": [1, 2]}) == [{"mode": "fast", "n": 1}, {"mode": "fast", "n": 2}]
    with pytest.raises(ConfigError):
        expand_param_grid({"n": []})


def test_compute_fitness_custom_example():
    m = PerformanceMetrics(total_return_pct=20.0, win_rate=0.6, profit_factor=2.0, max_drawdown_pct=5.0, total_trades=10)
    assert compute_fitness(m, OptimizationMetric.CUSTOM) == pytest.approx(4.8)


def test_compute_fitness_caps_and_floors():
    m = PerformanceMetrics(
        total_return_pct=-5.0,
        win_rate=0.0,
        profit_factor=float("inf"),
        sortino_ratio=float("inf"),
        max_drawdown_pct=0.2,
        total_trades=3,
    )
    assert compute_fitness(m, OptimizationMetric.CUSTOM) == 0.0
    assert compute_fitness(m, OptimizationMetric.PROFIT_FACTOR) == METRIC_PROFIT_FACTOR_CAP
    assert compute_fitness(m, OptimizationMetric.SORTINO_RATIO) == METRIC_PROFIT_FACTOR_CAP
    assert compute_fitness(m, OptimizationMetric.TOTAL_RETURN) == -5.0


@pytest.mark.parametrize("metric", list(OptimizationMetric))
def test_zero_trades_score_worst_for_every_metric(metric):
    m = PerformanceMetrics(total_return_pct=50.0, win_rate=1.0, profit_factor=3.0)
    assert compute_fitness(m, metric) == WORST_FITNESS


def test_full_grid_search(candles):
    engine = FakeEngine()
    result = _run(engine, candles)

    assert result.combinations_attempted == 12
    assert result.total_combinations_tested == 12
    assert len(engine.calls) == 13
    assert result.best_parameters == {"a": 3, "b": 40}
    assert result.best_metric_value == pytest.approx(120.0)
    assert result.best_backtest_result is not None
    assert result.best_backtest_result.metrics.total_return_pct == pytest.approx(120.0)
    assert result.optimized_for is OptimizationMetric.TOTAL_RETURN
    values = [r.metric_value for r in result.all_results]
    assert values == sorted(values, reverse=True)
    frame = result.results_frame()
    assert len(frame) == 12
    assert {"a", "b", "metric_value"} <= set(frame.columns)


def test_failed_combinations_are_excluded(candles):
    engine = FakeEngine(fail_when=lambda p: p["b"] == 40)
    result = _run(engine, candles)

    assert result.combinations_attempted == 12
    assert result.total_combinations_tested == 9
    assert all(r.parameters["b"] != 40 for r in result.all_results)
    assert result.best_parameters == {"a": 3, "b": 30}


def test_zero_trade_runs_rank_last(candles):
    engine = FakeEngine(score=lambda p: None if p["a"] == 3 else float(p["a"] * p["b"]))
    result = _run(engine, candles)

    tail = result.all_results[-4:]
    assert all(r.parameters["a"] == 3 for r in tail)
    assert all(r.metric_value == WORST_FITNESS for r in tail)
    assert result.best_parameters == {"a": 2, "b": 40}


def test_ties_keep_grid_order(candles):
    result = _run(FakeEngine(score=lambda p: 1.0), candles)
    assert [r.index for r in result.all_results] == list(range(12))
    assert result.best_parameters == {"a": 1, "b": 10}


def test_everything_failing_returns_empty_result(candles):
    result = _run(FakeEngine(fail_when=lambda p: True), candles)

    assert result.best_backtest_result is None
    assert result.best_parameters == {}
    assert result.best_metric_value == WORST_FITNESS
    assert result.total_combinations_tested == 0
    assert result.combinations_attempted == 12


def test_failing_rerun_raises(candles):
    engine = FakeEngine(fail_after=2)
    with pytest.raises(OptimizationError):
        _run(engine, candles, grid={"a": [1, 2], "b": [1]})


def test_cancel_before_start_skips_everything(candles):
    cancel = threading.Event()
    cancel.set()
    engine = FakeEngine()
    result = _run(engine, candles, cancel_event=cancel)

    assert engine.calls == []
    assert result.combinations_attempted == 0
    assert result.best_backtest_result is None


def test_cancel_midway_stops_remaining_combinations(candles):
    cancel = threading.Event()
    engine = FakeEngine(on_call=lambda p: cancel.set())
    result = _run(engine, candles, cancel_event=cancel, max_workers=1)

    assert result.combinations_attempted == 1
    assert result.total_combinations_tested == 1
    assert result.best_parameters == {"a": 1, "b": 10}


def test_sma_crossover_grid_on_real_engine(hourly_candles):
    grid = {"fast_period": [5, 10], "slow_period": ParameterRange(20, 30, 10)}
    result = DeepOptimizer(max_workers=2).optimize(
        SmaCrossoverStrategy,
        hourly_candles,
        grid,
        BacktestConfig(max_loss_per_trade_pct=0.0),
        OptimizationMetric.TOTAL_RETURN,
    )

    assert result.total_combinations_tested == 4
    assert result.best_parameters in expand_param_grid(grid)
    best = result.best_backtest_result
    assert best is not None and best.strategy_name == "SMA Crossover"
    assert best.metrics.total_return_pct == pytest.approx(result.all_results[0].total_return_pct)
