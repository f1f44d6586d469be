"""Band-energy feature vector shared by enrollment and live matching."""
from __future__ import annotations

import numpy as np


def window_rms(samples: np.ndarray, n_windows: int) -> np.ndarray:
    """
    RMS of each of `n_windows` equal windows (len // n_windows samples each).
    Trailing samples that do not fill a window are ignored. Returns zeros when
    the buffer is shorter than n_windows.
    """
    samples = np.asarray(samples, dtype=np.float64).reshape(-1)
    size = len(samples) // n_windows
    if size == 0:
        return np.zeros(n_windows, dtype=np.float64)
    windows = samples[: size * n_windows].reshape(n_windows, size)
    return np.sqrt(np.mean(windows * windows, axis=1))


def extract_features(samples: np.ndarray, n_features: int = 128) -> np.ndarray:
    """RMS per window normalized by the loudest window (unchanged when all windows are silent)."""
    energies = window_rms(samples, n_features)
    peak = energies.max() if energies.size else 0.0
    if peak > 0:
        energies = energies / peak
    return energies.astype(np.float32)
