from __future__ import annotations

from typing import Sequence

from strategylab.backtest.portfolio import VirtualPortfolio
from strategylab.core.models import Candle, TradeSignal
from strategylab.strats.base import BaseStrategy
from strategylab.strats.params import BuyAndHoldParams


class BuyAndHoldStrategy(BaseStrategy):
    """
    Buy on the first processed candle and hold. Baseline for comparisons.

    The entry is retried while no fill has happened yet (a buy the portfolio
    could not afford); once a position has been opened and closed the
    strategy stays flat.
    """

    name = "Buy and Hold"
    description = "Buys once at the first candle and holds until the end of the run"
    params_cls = BuyAndHoldParams

    def evaluate(
        self, candle: Candle, portfolio: VirtualPortfolio, history: Sequence[Candle]
    ) -> TradeSignal:
        if portfolio.position is None and not portfolio.trades:
            return TradeSignal.BUY
        return TradeSignal.HOLD
