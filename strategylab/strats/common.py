from __future__ import annotations

from dataclasses import fields, replace
from datetime import datetime
from typing import Any, Mapping, Sequence

import numpy as np

from strategylab.core.exceptions import ConfigError
from strategylab.core.models import Candle


# -------- Param helpers --------
def get_param(p: Any, key: str, default: Any) -> Any:
    """Read a parameter from either a dict or a dataclass; fallback to default."""
    if isinstance(p, Mapping):
        return p.get(key, default)
    return getattr(p, key, default)


def _coerce(value: Any, default: Any, key: str) -> Any:
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    try:
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"parameter {key}={value!r} is not numeric") from e
    return value


def resolve_params(defaults: Any, parameters: Mapping[str, Any] | None) -> Any:
    """
    Overlay ``parameters`` onto a frozen params dataclass.

    Values are coerced to the type of the default (optimizer grids produce
    floats for integer parameters). Unknown keys raise ConfigError.
    """
    if not parameters:
        return defaults
    names = {f.name for f in fields(defaults)}
    unknown = sorted(set(parameters) - names)
    if unknown:
        raise ConfigError(f"unknown parameters for {type(defaults).__name__}: {unknown}")
    updates = {
        key: _coerce(value, getattr(defaults, key), key) for key, value in parameters.items()
    }
    return replace(defaults, **updates)


# -------- Series helpers --------
def closes(history: Sequence[Candle], n: int | None = None) -> np.ndarray:
    """Last ``n`` closes (all when n is None) as a float array."""
    window = history if n is None else history[-n:]
    return np.fromiter((c.close for c in window), dtype=float, count=len(window))


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600.0


__all__ = ["closes", "get_param", "hours_between", "resolve_params"]
