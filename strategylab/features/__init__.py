"""
Strategy Lab - pattern detection and feature engineering.

This package includes:
- `indicators`: core technical indicators (SMA, EMA, ATR, ADX)
- `mtf_aggregate`: higher-timeframe OHLCV aggregation
- `fvg`, `liquidity`, `order_blocks`, `structure`: smart-money structural detectors
- `regime`: Bull / Bear / Sideways market regime classification
- `cache`: recompute-on-interval cache used by strategies

All detectors are pure functions over a candle sequence (no I/O); only the
fill/sweep flags of previously detected features ever change, false -> true.
"""

from . import cache, fvg, indicators, liquidity, mtf_aggregate, order_blocks, regime, structure

__all__ = [
    "cache",
    "fvg",
    "indicators",
    "liquidity",
    "mtf_aggregate",
    "order_blocks",
    "regime",
    "structure",
]
