"""Utility helpers shared across navgraph modules.

Purpose:
- Convert numpy values and arrays to JSON-safe payload types.
- Measure elapsed wall time in whole milliseconds.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

import numpy as np


def now() -> float:
    """Monotonic timestamp in seconds."""
    return time.perf_counter()


def elapsed_ms(start: float) -> float:
    """Milliseconds since ``start`` (a value from :func:`now`)."""
    return max(0.0, (time.perf_counter() - start) * 1000.0)


def to_serializable(value: Any) -> Any:
    """Recursively convert numpy and enum values into plain Python types."""
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_serializable(v) for v in value]
    return value
