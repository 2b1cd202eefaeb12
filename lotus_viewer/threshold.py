"""Visibility cutoff for the statistical overlay."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import math
from typing import Optional, Union

import numpy as np

from . import config
from .volume import Volume

LOGGER = logging.getLogger(__name__)


class ThresholdMode(str, Enum):
    VALUE = "value"
    PERCENTILE = "percentile"

    @classmethod
    def parse(cls, value) -> "ThresholdMode":
        if isinstance(value, ThresholdMode):
            return value
        text = str(value).lower()
        if text in ("pctl", "pct"):
            return cls.PERCENTILE
        return cls(text)


@dataclass(frozen=True)
class ThresholdSpec:
    """Rule deriving the overlay cutoff: a literal value or a percentile.

    ``parameter`` is kept as entered (text or number) so that in-progress
    input such as ``"1e"`` still forms a valid, hashable spec.
    """

    mode: ThresholdMode = ThresholdMode.PERCENTILE
    parameter: Union[float, str] = config.DEFAULT_PERCENTILE

    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", ThresholdMode.parse(self.mode))


def _to_float(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def sample_stride(length: int, limit: int = config.PERCENTILE_SAMPLE_LIMIT) -> int:
    return max(1, math.ceil(length / limit))


def percentile(values, p: float, stride: Optional[int] = None) -> float:
    """Order statistic at *p* percent of an evenly strided sample of *values*.

    With the default stride (``ceil(len / 200000)``) the result is exact for
    buffers up to 200 000 elements and an approximation above that.  The
    selected element is ``sorted_sample[floor(p / 100 * (n - 1))]``; no
    interpolation is performed.
    """

    flat = np.asarray(values).reshape(-1)
    if flat.size == 0:
        return 0.0
    if stride is None:
        stride = sample_stride(flat.size)
    sample = flat[::stride]
    k = int(math.floor((p / 100.0) * (sample.size - 1)))
    k = max(0, min(sample.size - 1, k))
    return float(np.partition(sample, k)[k])


def compute_cutoff(overlay: Optional[Volume], spec: ThresholdSpec) -> Optional[float]:
    """Cutoff for *overlay* under *spec*; ``None`` when there is no overlay."""

    if overlay is None:
        return None
    if spec.mode is ThresholdMode.VALUE:
        value = _to_float(spec.parameter)
        return 0.0 if value is None else value
    p = _to_float(spec.parameter)
    if p is None:
        p = config.DEFAULT_PERCENTILE
    p = max(0.0, min(100.0, p))
    return percentile(overlay.buffer, p)


class ThresholdCache:
    """Remember the last cutoff and recompute only when its inputs change."""

    def __init__(self) -> None:
        self._overlay: Optional[Volume] = None
        self._spec: Optional[ThresholdSpec] = None
        self._cutoff: Optional[float] = None
        self._valid = False
        self.computations = 0

    def cutoff(self, overlay: Optional[Volume], spec: ThresholdSpec) -> Optional[float]:
        if self._valid and overlay is self._overlay and spec == self._spec:
            return self._cutoff
        self._cutoff = compute_cutoff(overlay, spec)
        self._overlay = overlay
        self._spec = spec
        self._valid = True
        if overlay is not None:
            self.computations += 1
            LOGGER.debug("Overlay cutoff %s for %s", self._cutoff, spec)
        return self._cutoff

    def invalidate(self) -> None:
        self._valid = False
        self._overlay = None
