from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike, NDArray


def frequency_error(estimate_hz: ArrayLike, truth_hz: ArrayLike) -> float:
    """
    Root-mean-square error between estimated and true frequency, elementwise.
    Both arrays must be 1-D and same length.
    """
    est = np.asarray(estimate_hz, dtype=float).ravel()
    tru = np.asarray(truth_hz, dtype=float).ravel()
    if est.size != tru.size:
        raise ValueError("estimate_hz and truth_hz must have the same length")
    diff = est - tru
    return float(np.sqrt(np.mean(diff * diff)))


def phase_error_rad(estimate_rad: ArrayLike, truth_rad: ArrayLike) -> NDArray[np.float64]:
    """Elementwise phase difference folded into (-pi, pi]."""
    est = np.asarray(estimate_rad, dtype=float).ravel()
    tru = np.asarray(truth_rad, dtype=float).ravel()
    if est.size != tru.size:
        raise ValueError("estimate_rad and truth_rad must have the same length")
    return np.angle(np.exp(1j * (est - tru)))


def steady_state_slice(trace: ArrayLike, fs: float, settle_s: float) -> NDArray[np.float64]:
    """Tail of `trace` after the first `settle_s` seconds."""
    if fs <= 0:
        raise ValueError("fs must be > 0")
    x = np.asarray(trace, dtype=float).ravel()
    start = int(round(settle_s * fs))
    if start >= x.size:
        raise ValueError("settle_s leaves no samples in the trace")
    return x[max(start, 0):]


def relative_error(estimate: float, truth: float) -> float:
    if truth == 0.0:
        raise ValueError("truth must be non-zero")
    return float(abs(estimate - truth) / abs(truth))
