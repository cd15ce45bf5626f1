from datetime import timedelta

import numpy as np
import pytest

from strategylab.agent.selector import (
    StrategySelector,
    evaluate_strategies,
    regime_bonus,
    select_best_strategy,
    selection_config,
)
from strategylab.backtest.model import BacktestConfig, BacktestResult, PerformanceMetrics
from strategylab.features.regime import MarketRegime
from strategylab.strats import BuyAndHoldStrategy, MacroTrendStrategy, SmaCrossoverStrategy


def _result(sharpe):
    return BacktestResult(
        strategy_name="x",
        symbol="TEST",
        timeframe="1h",
        start_date=None,
        end_date=None,
        initial_balance=1_000.0,
        final_balance=1_000.0,
        metrics=PerformanceMetrics(sharpe_ratio=sharpe),
        config=BacktestConfig(),
    )


@pytest.mark.parametrize(
    "name,regime,bonus",
    [
        ("Macro MA Trend", MarketRegime.BULL, 0.3),
        ("Trend Rider", MarketRegime.BULL, 0.3),
        ("Buy and Hold", MarketRegime.BULL, 0.2),
        ("SMA Crossover", MarketRegime.BULL, 0.0),
        ("Macro MA Trend", MarketRegime.BEAR, 0.2),
        ("Buy and Hold", MarketRegime.BEAR, 0.0),
        ("Macro MA Trend", MarketRegime.SIDEWAYS, 0.0),
    ],
)
def test_regime_bonus(name, regime, bonus):
    assert regime_bonus(name, regime) == pytest.approx(bonus)


def test_select_adds_bonus_to_sharpe():
    results = {"SMA Crossover": _result(1.0), "Macro MA Trend": _result(0.8)}
    assert select_best_strategy(results, MarketRegime.BULL) == "Macro MA Trend"
    assert select_best_strategy(results, MarketRegime.SIDEWAYS) == "SMA Crossover"


def test_select_ties_keep_first_candidate():
    results = {"Alpha": _result(0.5), "Beta": _result(0.5)}
    assert select_best_strategy(results, MarketRegime.SIDEWAYS) == "Alpha"


def test_select_handles_empty_and_negative_scores():
    assert select_best_strategy({}, MarketRegime.BULL) is None
    results = {"A": _result(-3.0), "B": _result(-1.0)}
    assert select_best_strategy(results, MarketRegime.BEAR) == "B"


def test_selection_config():
    cfg = selection_config(5_000.0)
    assert cfg.initial_balance == 5_000.0
    assert cfg.taker_fee_rate == pytest.approx(0.0005)
    assert cfg.slippage_rate == pytest.approx(0.0001)
    assert cfg.position_size == pytest.approx(0.95)
    assert cfg.max_loss_per_trade_pct == 0.0


def test_evaluate_strategies_resets_parameters(hourly_candles):
    sma = SmaCrossoverStrategy({"fast_period": 3, "slow_period": 6})
    results = evaluate_strategies([BuyAndHoldStrategy(), sma], hourly_candles, 5_000.0)

    assert list(results) == ["Buy and Hold", "SMA Crossover"]
    assert sma.params == SmaCrossoverStrategy.params_cls()
    assert results["Buy and Hold"].initial_balance == 5_000.0
    assert results["Buy and Hold"].config.taker_fee_rate == pytest.approx(0.0005)


def test_evaluate_strategies_empty_inputs(hourly_candles):
    assert evaluate_strategies([], hourly_candles, 1_000.0) == {}
    assert evaluate_strategies([BuyAndHoldStrategy()], [], 1_000.0) == {}


def test_selector_end_to_end(make_candles):
    closes = 100.0 * np.cumprod(np.full(300, 1.004))
    candles = make_candles(closes, step=timedelta(days=1))
    selector = StrategySelector(lookback=90)

    best, regime, results = selector.select(
        [SmaCrossoverStrategy(), BuyAndHoldStrategy(), MacroTrendStrategy()], candles, 10_000.0
    )

    assert regime is MarketRegime.BULL
    assert set(results) == {"SMA Crossover", "Buy and Hold", "Macro MA Trend"}
    scores = {n: r.metrics.sharpe_ratio + regime_bonus(n, regime) for n, r in results.items()}
    assert best == max(scores, key=scores.get)


def test_selector_defaults_to_configured_lookback():
    from strategylab.config import settings

    assert StrategySelector().lookback == settings.regime_lookback
