"""
Shared fixtures: synthetic voice-like test signals.
"""

import numpy as np
import librosa
import pytest

from autocorrelation_pitch import AudioFrame

SR = 44100
RMS_0_3_AMPLITUDE = 0.3 * np.sqrt(2)  # Sine peak giving an RMS of 0.3


def make_tone(
    frequency: float,
    n_samples: int = 4096,
    amplitude: float = RMS_0_3_AMPLITUDE,
    sr: int = SR,
    harmonics=(1.0,),
) -> np.ndarray:
    """Sine (optionally with harmonics) as float32, peak-scaled to `amplitude`."""
    y = np.zeros(n_samples)
    for k, weight in enumerate(harmonics, start=1):
        if weight and frequency * k < sr / 2:
            y += weight * librosa.tone(frequency * k, sr=sr, length=n_samples)
    peak = np.max(np.abs(y))
    if peak > 0:
        y = y / peak
    return (amplitude * y).astype(np.float32)


@pytest.fixture
def sr():
    return SR


@pytest.fixture
def tone():
    return make_tone


@pytest.fixture
def frame():
    def _frame(samples, timestamp=None, sample_rate=SR):
        return AudioFrame(samples=np.asarray(samples, dtype=np.float32),
                          sample_rate=sample_rate, timestamp=timestamp)
    return _frame
