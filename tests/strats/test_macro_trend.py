from datetime import timedelta

import pytest

from strategylab.backtest.engine import run_backtest
from strategylab.backtest.model import BacktestConfig
from strategylab.core.models import CandleHistory
from strategylab.strats import MacroTrendStrategy
from strategylab.strats.macro_trend import BandLevels

NO_STOP = BacktestConfig(max_loss_per_trade_pct=0.0)
# previous daily close below the band, so any close at or above 100 reclaims it
BELOW = BandLevels(band_bottom=100.0, band_bottom_prev=100.0, prev_daily_close=95.0, trend_sma=None)
ABOVE = BandLevels(band_bottom=100.0, band_bottom_prev=100.0, prev_daily_close=105.0, trend_sma=None)


def _strategy(monkeypatch, levels, **params):
    strat = MacroTrendStrategy({"min_history": 1, **params})
    fn = levels if callable(levels) else (lambda candle, history: levels)
    monkeypatch.setattr(strat, "_band", fn)
    return strat


def test_take_profit_steps_then_reentry_on_band_flip(monkeypatch, make_candles):
    candles = make_candles([99.0, 101.0, 112.0, 122.0, 110.0])
    strat = _strategy(monkeypatch, BELOW, use_trailing=False, tp_step_pct=10.0, max_steps=2)

    result = run_backtest(strat, candles, 10_000.0, NO_STOP)

    assert len(result.trades) == 1
    assert result.trades[0].entry_time == candles[1].timestamp
    assert result.trades[0].exit_time == candles[3].timestamp
    assert result.open_trade is not None
    assert result.open_trade.entry_time == candles[4].timestamp


@pytest.mark.parametrize("scale_in, entries", [(True, [1, 5]), (False, [1])])
def test_scale_in_after_pullback_without_band_flip(monkeypatch, make_candles, scale_in, entries):
    # the band is only reclaimed on the first entry; afterwards price stays above it
    candles = make_candles([99.0, 101.0, 112.0, 123.0, 112.0, 118.0])
    levels = lambda candle, history: BELOW if len(history) <= 2 else ABOVE  # noqa: E731
    strat = _strategy(
        monkeypatch, levels, use_trailing=False, tp_step_pct=10.0, max_steps=2, use_scale_in=scale_in
    )

    result = run_backtest(strat, candles, 10_000.0, NO_STOP)

    assert result.trades[0].exit_time == candles[3].timestamp
    opened = [t.entry_time for t in result.trades]
    if result.open_trade is not None:
        opened.append(result.open_trade.entry_time)
    assert opened == [candles[i].timestamp for i in entries]


def test_trailing_stop_exit(monkeypatch, make_candles):
    candles = make_candles([99.0, 101.0, 105.0, 99.0])
    result = run_backtest(_strategy(monkeypatch, BELOW, trail_pct=5.0), candles, 10_000.0, NO_STOP)

    assert [t.exit_time for t in result.trades] == [candles[3].timestamp]


def test_exit_when_close_drops_below_band(monkeypatch, make_candles):
    candles = make_candles([99.0, 101.0, 103.0, 104.0, 98.0])
    levels = lambda candle, history: BELOW if len(history) <= 2 else ABOVE  # noqa: E731
    result = run_backtest(_strategy(monkeypatch, levels, use_trailing=False), candles, 10_000.0, NO_STOP)

    assert len(result.trades) == 1
    assert result.trades[0].entry_time == candles[1].timestamp
    assert result.trades[0].exit_time == candles[4].timestamp


def test_trend_filter_blocks_entries(monkeypatch, make_candles):
    levels = BELOW._replace(trend_sma=150.0)
    candles = make_candles([99.0, 101.0, 110.0, 120.0])
    result = run_backtest(_strategy(monkeypatch, levels, use_trend_filter=True), candles, 10_000.0, NO_STOP)
    assert result.trades == [] and result.open_trade is None


def test_levels_need_enough_band_history(daily_candles):
    strat = MacroTrendStrategy()
    levels = strat._compute_levels(daily_candles)
    assert levels is not None
    assert levels.band_bottom > 0 and levels.prev_daily_close == daily_candles[-2].close
    assert levels.trend_sma is None

    assert strat._compute_levels(daily_candles[:60]) is None
    filtered = MacroTrendStrategy({"use_trend_filter": True})
    assert filtered._compute_levels(daily_candles[:150]) is None
    assert filtered._compute_levels(daily_candles).trend_sma == pytest.approx(
        sum(c.close for c in daily_candles[-200:]) / 200
    )


def test_levels_are_cached_per_day(monkeypatch, make_candles):
    strat = MacroTrendStrategy()
    calls = []
    monkeypatch.setattr(strat, "_compute_levels", lambda history: calls.append(len(history)) or BELOW)
    candles = make_candles([100.0] * 48, step=timedelta(hours=1))

    for i in range(48):
        strat._band(candles[i], CandleHistory(candles, i + 1))

    assert calls == [1, 25]


def test_runs_on_daily_data(daily_candles):
    result = run_backtest(MacroTrendStrategy(), daily_candles, 10_000.0, NO_STOP)
    assert result.strategy_name == "Macro MA Trend"
    for snap in result.equity_curve:
        assert snap.cash >= 0.0
