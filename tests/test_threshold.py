import math

import numpy as np

from lotus_viewer.threshold import (
    ThresholdCache,
    ThresholdMode,
    ThresholdSpec,
    compute_cutoff,
    percentile,
    sample_stride,
)
from lotus_viewer.volume import Volume


def _overlay(values) -> Volume:
    arr = np.asarray(values, dtype=np.float32)
    return Volume.from_array(arr.reshape(arr.size, 1, 1))


def test_value_mode_ignores_overlay_contents():
    spec = ThresholdSpec(ThresholdMode.VALUE, "12.5")
    assert compute_cutoff(_overlay([1, 2, 3]), spec) == 12.5
    assert compute_cutoff(_overlay([-100, 100]), spec) == 12.5


def test_value_mode_unparsable_parameter_is_zero():
    assert compute_cutoff(_overlay([1, 2]), ThresholdSpec("value", "abc")) == 0.0
    assert compute_cutoff(_overlay([1, 2]), ThresholdSpec("value", "")) == 0.0


def test_no_overlay_means_undefined_cutoff():
    assert compute_cutoff(None, ThresholdSpec("value", 3)) is None
    assert compute_cutoff(None, ThresholdSpec("percentile", 50)) is None


def test_percentile_is_monotonic():
    rng = np.random.default_rng(0)
    data = rng.normal(size=5000).astype(np.float32)
    assert percentile(data, 30) <= percentile(data, 70)


def test_percentile_picks_order_statistic_without_interpolation():
    data = np.arange(101, dtype=np.float32)[::-1]
    assert percentile(data, 50) == 50
    assert percentile(data, 0) == 0
    assert percentile(data, 100) == 100
    assert percentile(np.array([1.0, 2.0], dtype=np.float32), 50) == 1.0
    assert percentile(np.array([], dtype=np.float32), 50) == 0.0


def test_percentile_parameter_is_clamped():
    overlay = _overlay(np.arange(11))
    assert compute_cutoff(overlay, ThresholdSpec("percentile", 150)) == 10
    assert compute_cutoff(overlay, ThresholdSpec("percentile", -5)) == 0
    # unparsable percentile falls back to the 95th
    assert compute_cutoff(overlay, ThresholdSpec("pctl", "x")) == percentile(np.arange(11), 95)


def test_large_buffers_use_strided_sample():
    data = np.arange(400_001, dtype=np.float32)[::-1]
    stride = sample_stride(data.size)
    assert stride == math.ceil(400_001 / 200_000) == 3

    sample = np.sort(data[::stride])
    k = math.floor(0.5 * (sample.size - 1))
    assert percentile(data, 50) == sample[k]


def test_small_buffers_are_exact():
    assert sample_stride(200_000) == 1
    assert sample_stride(200_001) == 2


def test_cache_recomputes_only_on_identity_or_spec_change():
    cache = ThresholdCache()
    overlay = _overlay(np.arange(10))
    spec = ThresholdSpec("percentile", 50)

    first = cache.cutoff(overlay, spec)
    for _ in range(5):
        assert cache.cutoff(overlay, spec) == first
    assert cache.computations == 1

    cache.cutoff(overlay, ThresholdSpec("percentile", 90))
    assert cache.computations == 2

    # Same contents, different volume: recomputed.
    cache.cutoff(_overlay(np.arange(10)), ThresholdSpec("percentile", 90))
    assert cache.computations == 3
