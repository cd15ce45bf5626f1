from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Sequence

import numpy as np
import pytest

from strategylab.core.models import Candle
from strategylab.logging_utils import setup_test_logging

os.environ.setdefault("ENV", "test")

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def build_candles(
    closes: Sequence[float],
    *,
    step: timedelta = timedelta(hours=1),
    spread: float = 0.002,
    start: datetime = T0,
    symbol: str = "BTCUSDT",
) -> list[Candle]:
    """Candles whose open is the previous close and whose wicks extend ``spread``."""
    out: list[Candle] = []
    prev = float(closes[0])
    for i, c in enumerate(closes):
        c = float(c)
        o = prev
        out.append(
            Candle(
                timestamp=start + i * step,
                open=o,
                high=max(o, c) * (1 + spread),
                low=min(o, c) * (1 - spread),
                close=c,
                volume=1.0,
                symbol=symbol,
            )
        )
        prev = c
    return out


def build_bars(
    highs: Sequence[float],
    lows: Sequence[float],
    *,
    step: timedelta = timedelta(hours=1),
    start: datetime = T0,
) -> list[Candle]:
    """Candles with explicit highs and lows; open and close sit at the midpoint."""
    out: list[Candle] = []
    for i, (h, lo) in enumerate(zip(highs, lows, strict=True)):
        mid = (h + lo) / 2.0
        out.append(Candle(timestamp=start + i * step, open=mid, high=h, low=lo, close=mid, symbol="TEST"))
    return out


def build_ohlc(
    rows: Sequence[tuple[float, float, float, float]],
    *,
    step: timedelta = timedelta(hours=1),
    start: datetime = T0,
) -> list[Candle]:
    """Candles from explicit (open, high, low, close) rows."""
    return [
        Candle(timestamp=start + i * step, open=o, high=h, low=lo, close=c, symbol="TEST")
        for i, (o, h, lo, c) in enumerate(rows)
    ]


def random_walk(n: int, *, seed: int = 7, vol: float = 0.01, drift: float = 0.0, step: timedelta = timedelta(hours=1)) -> list[Candle]:
    rng = np.random.default_rng(seed)
    rets = drift + rng.normal(0.0, vol, n)
    closes = 100.0 * np.cumprod(1 + np.clip(rets, -0.5, None))
    return build_candles(closes, step=step)


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    setup_test_logging("WARNING")
    yield


@pytest.fixture
def make_candles():
    return build_candles


@pytest.fixture
def make_bars():
    return build_bars


@pytest.fixture
def make_ohlc():
    return build_ohlc


@pytest.fixture
def walk_candles():
    return random_walk


@pytest.fixture(scope="module")
def hourly_candles() -> list[Candle]:
    return random_walk(400, seed=42)


@pytest.fixture(scope="module")
def daily_candles() -> list[Candle]:
    return random_walk(400, seed=11, vol=0.02, drift=0.001, step=timedelta(days=1))
