class StrategyLabError(Exception):
    """Base class for all strategylab exceptions."""


class ConfigError(StrategyLabError):
    """Raised for missing/malformed configuration."""


class DataValidationError(StrategyLabError):
    """Raised when candle data fails sanity or ordering validation."""


class BacktestError(StrategyLabError):
    """Raised when a simulation cannot be carried out."""


class OptimizationError(StrategyLabError):
    """Raised when a parameter search cannot produce any result."""


__all__ = [
    "StrategyLabError",
    "ConfigError",
    "DataValidationError",
    "BacktestError",
    "OptimizationError",
]
