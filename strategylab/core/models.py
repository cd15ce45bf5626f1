from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterator, Optional, overload

import pandas as pd
from pydantic import BaseModel, Field, model_validator
from pydantic.fields import AliasChoices

from strategylab.core.exceptions import DataValidationError


class Candle(BaseModel):
    """
    A single OHLCV bar for one instrument.

    Attributes:
        timestamp (datetime): Open time of the bar.
        open (float): The open price.
        high (float): The high price.
        low (float): The low price.
        close (float): The close price.
        volume (float): Traded volume.
        symbol (str): Instrument symbol, e.g. "BTCUSDT".
        exchange (str): Venue the bar was sourced from.
    """

    timestamp: datetime = Field(validation_alias=AliasChoices("timestamp", "t"))
    open: float = Field(validation_alias=AliasChoices("open", "o"))
    high: float = Field(validation_alias=AliasChoices("high", "h"))
    low: float = Field(validation_alias=AliasChoices("low", "l", "lo"))
    close: float = Field(validation_alias=AliasChoices("close", "c"))
    volume: float = Field(0.0, validation_alias=AliasChoices("volume", "v"))
    symbol: str = ""
    exchange: str = ""

    model_config = {
        "frozen": True,
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _check_range(self) -> "Candle":
        if min(self.open, self.high, self.low, self.close) < 0:
            raise ValueError("prices must be non-negative")
        if self.high < max(self.open, self.close, self.low):
            raise ValueError("high must be >= open, close and low")
        if self.low > min(self.open, self.close):
            raise ValueError("low must be <= open and close")
        return self

    @property
    def body(self) -> float:
        """The absolute body size of the bar."""
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        """The high-low range of the bar."""
        return self.high - self.low

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    def __repr__(self) -> str:
        return (
            f"Candle({self.timestamp:%Y-%m-%d %H:%M} o={self.open:.2f} "
            f"h={self.high:.2f} l={self.low:.2f} c={self.close:.2f})"
        )


class TradeSignal(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class TradeDirection(str, Enum):
    LONG = "long"
    SHORT = "short"


@dataclass(slots=True)
class Position:
    """The single open position held by a portfolio."""

    trade_id: int
    symbol: str
    entry_time: datetime
    entry_price: float
    quantity: float
    entry_fee: float
    direction: TradeDirection = TradeDirection.LONG
    highest_price: float = 0.0

    def market_value(self, price: float) -> float:
        return self.quantity * price

    def unrealized_pnl(self, price: float) -> float:
        return (price - self.entry_price) * self.quantity


@dataclass(frozen=True, slots=True)
class Trade:
    """
    A round trip, closed or (when exit fields are None) still open.

    profit_loss is net of entry and exit fees; profit_loss_pct is relative
    to the entry notional, in percent.
    """

    id: int
    symbol: str
    direction: TradeDirection
    entry_time: datetime
    entry_price: float
    quantity: float
    fees: float
    exit_time: Optional[datetime] = None
    exit_price: Optional[float] = None
    profit_loss: float = 0.0
    profit_loss_pct: float = 0.0

    @property
    def is_closed(self) -> bool:
        return self.exit_time is not None

    @property
    def holding_period(self) -> Optional[timedelta]:
        if self.exit_time is None:
            return None
        return self.exit_time - self.entry_time


@dataclass(frozen=True, slots=True)
class PortfolioSnapshot:
    timestamp: datetime
    total_value: float
    cash: float
    position_value: float


class CandleHistory(Sequence):
    """
    Read-only prefix view over a candle list.

    Indexing and iteration stop at ``end``; the candles beyond it are
    unreachable through the view.
    """

    __slots__ = ("_candles", "_end")

    def __init__(self, candles: Sequence[Candle], end: int) -> None:
        if end < 0 or end > len(candles):
            raise IndexError(f"history end {end} outside 0..{len(candles)}")
        self._candles = candles
        self._end = end

    def __len__(self) -> int:
        return self._end

    @overload
    def __getitem__(self, idx: int) -> Candle: ...

    @overload
    def __getitem__(self, idx: slice) -> list[Candle]: ...

    def __getitem__(self, idx):
        if isinstance(idx, slice):
            start, stop, step = idx.indices(self._end)
            return [self._candles[i] for i in range(start, stop, step)]
        if idx < 0:
            idx += self._end
        if idx < 0 or idx >= self._end:
            raise IndexError("candle index out of history range")
        return self._candles[idx]

    def __iter__(self) -> Iterator[Candle]:
        for i in range(self._end):
            yield self._candles[i]

    @property
    def last(self) -> Candle:
        return self[-1]


def validate_candles(candles: Sequence[Candle]) -> None:
    """Raise DataValidationError for empty or non strictly increasing series."""
    if candles is None or len(candles) == 0:
        raise DataValidationError("candle sequence is empty")
    prev = candles[0].timestamp
    for i in range(1, len(candles)):
        ts = candles[i].timestamp
        if ts <= prev:
            raise DataValidationError(
                f"candle timestamps must be strictly increasing (index {i}: {ts} <= {prev})"
            )
        prev = ts


def candles_to_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    """OHLCV DataFrame indexed by candle timestamp."""
    if not candles:
        return pd.DataFrame(
            columns=["open", "high", "low", "close", "volume"], dtype=float
        )
    df = pd.DataFrame(
        {
            "open": [c.open for c in candles],
            "high": [c.high for c in candles],
            "low": [c.low for c in candles],
            "close": [c.close for c in candles],
            "volume": [c.volume for c in candles],
        },
        index=pd.DatetimeIndex([c.timestamp for c in candles], name="timestamp"),
    )
    return df


__all__ = [
    "Candle",
    "CandleHistory",
    "Position",
    "PortfolioSnapshot",
    "Trade",
    "TradeDirection",
    "TradeSignal",
    "candles_to_frame",
    "validate_candles",
]
