import numpy as np
import pytest

from strategylab.backtest.engine import run_backtest
from strategylab.backtest.model import BacktestConfig
from strategylab.core.exceptions import ConfigError
from strategylab.strats import SmaCrossoverStrategy

NO_STOP = BacktestConfig(max_loss_per_trade_pct=0.0)


def test_one_round_trip_on_valley_then_peak(make_candles):
    closes = np.r_[np.linspace(120, 80, 40), np.linspace(81, 130, 50), np.linspace(129, 90, 40)]
    strat = SmaCrossoverStrategy({"fast_period": 5, "slow_period": 20})
    result = run_backtest(strat, make_candles(closes), 10_000.0, NO_STOP)

    assert len(result.trades) == 1
    assert result.open_trade is None
    trade = result.trades[0]
    assert trade.entry_price < trade.exit_price


def test_monotonic_series_never_trades(make_candles):
    result = run_backtest(SmaCrossoverStrategy(), make_candles(np.linspace(100, 200, 120)), 1_000.0, NO_STOP)
    assert result.trades == [] and result.open_trade is None


def test_warmup_is_slow_period(make_candles):
    strat = SmaCrossoverStrategy({"fast_period": 3, "slow_period": 12})
    assert strat.min_history == 13
    result = run_backtest(strat, make_candles([100.0] * 30), 1_000.0)
    assert len(result.equity_curve) == 30 - 12


@pytest.mark.parametrize("params", [{"fast_period": 20, "slow_period": 10}, {"fast_period": 10, "slow_period": 10}, {"fast_period": 0}])
def test_invalid_periods(params):
    with pytest.raises(ConfigError):
        SmaCrossoverStrategy(params)
