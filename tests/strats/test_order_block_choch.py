import pytest

from strategylab.backtest.model import BacktestConfig
from strategylab.backtest.portfolio import VirtualPortfolio
from strategylab.core.models import CandleHistory, TradeSignal
from strategylab.features.order_blocks import OrderBlock
from strategylab.features.structure import StructureBreak, StructureEvent
from strategylab.strats import OrderBlockChochStrategy


@pytest.fixture
def candles(make_candles):
    return make_candles([101.0] * 40 + [98.0])


def _primed(candles, choch_index=30):
    strat = OrderBlockChochStrategy({"min_history": 40})
    ts = candles[0].timestamp
    strat.cache.structure = [
        StructureEvent(12, ts, StructureBreak.BEARISH_BOS, 95.0, 8),
        StructureEvent(choch_index, ts, StructureBreak.BULLISH_CHOCH, 110.0, 25),
    ]
    strat.cache.order_blocks = [
        OrderBlock(5, ts, top=90.0, bottom=85.0, bullish=True),
        OrderBlock(20, ts, top=102.0, bottom=99.0, bullish=True),
        OrderBlock(25, ts, top=120.0, bottom=118.0, bullish=False),
    ]
    strat.cache.computed_len = 40
    return strat


def test_entry_block_selection(candles):
    strat = _primed(candles)
    choch = strat.latest_choch()
    assert choch.kind is StructureBreak.BULLISH_CHOCH
    assert strat.entry_block(choch, 40).index == 20
    assert strat.entry_block(choch, 21) is None


def test_entry_and_stop_below_block(candles):
    strat = _primed(candles)
    pf = VirtualPortfolio(1_000.0)

    signal = strat.on_candle(candles[39], pf, CandleHistory(candles, 40))
    assert signal is TradeSignal.BUY
    assert strat._stop == 99.0
    pf.apply(signal, candles[39], BacktestConfig())

    assert strat.on_candle(candles[40], pf, CandleHistory(candles, 41)) is TradeSignal.SELL
    assert strat._stop is None


def test_bearish_choch_after_entry_closes(make_candles):
    candles = make_candles([101.0] * 42)
    strat = _primed(candles)
    pf = VirtualPortfolio(1_000.0)
    pf.apply(strat.on_candle(candles[39], pf, CandleHistory(candles, 40)), candles[39], BacktestConfig())
    assert strat.on_candle(candles[40], pf, CandleHistory(candles, 41)) is TradeSignal.HOLD

    strat.cache.structure.append(StructureEvent(40, candles[40].timestamp, StructureBreak.BEARISH_CHOCH, 100.0, 33))
    assert strat.on_candle(candles[41], pf, CandleHistory(candles, 42)) is TradeSignal.SELL


def test_no_entry_on_the_choch_candle(candles):
    strat = _primed(candles, choch_index=39)
    pf = VirtualPortfolio(1_000.0)
    assert strat.on_candle(candles[39], pf, CandleHistory(candles, 40)) is TradeSignal.HOLD


def test_no_entry_when_price_is_away_from_block(make_candles):
    candles = make_candles([108.0] * 40)
    strat = _primed(candles)
    assert strat.on_candle(candles[39], VirtualPortfolio(1_000.0), CandleHistory(candles, 40)) is TradeSignal.HOLD
