from __future__ import annotations

from typing import Optional, Sequence

from loguru import logger

from strategylab.backtest.portfolio import VirtualPortfolio
from strategylab.core.models import Candle, TradeSignal
from strategylab.features.cache import DetectorCache, DetectorSettings
from strategylab.features.order_blocks import OrderBlock
from strategylab.features.structure import StructureBreak, StructureEvent
from strategylab.strats.base import BaseStrategy
from strategylab.strats.params import OrderBlockChochParams


class OrderBlockChochStrategy(BaseStrategy):
    """
    Long on a retracement into the bullish order block that preceded a
    bullish change of character; exits on a later bearish CHOCH or when
    price closes below the block.
    """

    name = "Order Block CHOCH"
    description = "Order block retracement entries after a change of character"
    params_cls = OrderBlockChochParams

    def reset(self) -> None:
        p = self.params
        self.cache = DetectorCache(
            p.refresh_interval,
            DetectorSettings(
                fvgs=False,
                swings=True,
                order_blocks=True,
                structure=True,
                left_bars=p.swing_lookback,
                right_bars=p.swing_lookback,
                min_impulse_pct=p.min_impulse_pct,
                structure_confirm_bars=p.structure_confirm_bars,
            ),
        )
        self._stop: Optional[float] = None
        self._entry_index: Optional[int] = None

    def latest_choch(self) -> Optional[StructureEvent]:
        events = [e for e in self.cache.structure if e.kind.is_choch]
        return max(events, key=lambda e: e.index) if events else None

    def entry_block(self, choch: StructureEvent, history_len: int) -> Optional[OrderBlock]:
        """Most recent order block in the window before ``choch`` with the same direction."""
        p = self.params
        limit = history_len - p.confirm_bars
        blocks = [
            ob
            for ob in self.cache.order_blocks
            if ob.bullish == choch.kind.bullish
            and choch.index - p.ob_window < ob.index < choch.index
            and ob.index < limit
        ]
        return max(blocks, key=lambda ob: ob.index) if blocks else None

    def evaluate(
        self, candle: Candle, portfolio: VirtualPortfolio, history: Sequence[Candle]
    ) -> TradeSignal:
        self.cache.refresh(history)
        idx = len(history) - 1
        choch = self.latest_choch()

        if portfolio.position is None:
            if choch is None or choch.kind is not StructureBreak.BULLISH_CHOCH or choch.index >= idx:
                return TradeSignal.HOLD
            block = self.entry_block(choch, len(history))
            if block is None or not (candle.low <= block.top and candle.high >= block.bottom):
                return TradeSignal.HOLD
            self._stop = block.bottom
            self._entry_index = idx
            logger.debug(
                "[ob-choch] buy at {:.2f} block {:.2f}-{:.2f}", candle.close, block.bottom, block.top
            )
            return TradeSignal.BUY

        if self._stop is not None and candle.close < self._stop:
            return TradeSignal.SELL
        if (
            choch is not None
            and choch.kind is StructureBreak.BEARISH_CHOCH
            and (self._entry_index is None or choch.index > self._entry_index)
        ):
            return TradeSignal.SELL
        return TradeSignal.HOLD

    def on_exit(self) -> None:
        self._stop = None
        self._entry_index = None
