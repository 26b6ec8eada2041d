#!/usr/bin/env python3
"""
Autocorrelation Pitch Estimation for Monophonic Voice

Estimates the fundamental frequency of a single short audio frame:
1. RMS gate - quiet frames are reported as silence without further work
2. Trim to the periodic region (drop low-amplitude edges)
3. Autocorrelation c[k] = sum(buf[j] * buf[j + k]) over all lags
4. Skip the initial descending run (the trivial lag-0 self match)
5. Peak search restricted to lags of a plausible voice range
6. Clarity from the energy-normalized correlation at the peak
7. Parabolic interpolation for sub-sample lag precision

Every failure degrades to a NoPitch result tagged with a RejectReason.
Nothing in here raises for bad audio; the caller is a real-time loop.

This module provides:
- AudioFrame: one block of samples as delivered by the frame source
- PitchDetected / NoPitch: the tagged per-frame estimate
- AutocorrelationPitchEstimator: the single-frame estimator
"""

import logging
import numpy as np
from scipy.signal import correlate
from dataclasses import dataclass
from typing import Optional, Union
from enum import Enum


logger = logging.getLogger(__name__)

# Lag search range (Hz) - covers bass through soprano fundamentals
VOICE_SEARCH_MIN_HZ = 80.0
VOICE_SEARCH_MAX_HZ = 1000.0

# Gating
SILENCE_RMS = 0.01            # ~-40 dBFS for float samples in [-1, 1]
TRIM_THRESHOLD = 0.2          # Amplitude that marks the periodic region
MIN_TRIMMED_LENGTH = 100      # Samples

# Clarity thresholds (periodicity is harder to see in low voices)
CLARITY_THRESHOLD = 0.85
LOW_FREQUENCY_CLARITY_THRESHOLD = 0.75
LOW_FREQUENCY_CUTOFF_HZ = 200.0


class RejectReason(Enum):
    """Why a frame produced no pitch."""
    SILENT_FRAME = "silent_frame"
    OUT_OF_RANGE = "out_of_range"
    LOW_CLARITY = "low_clarity"
    DEGENERATE_INPUT = "degenerate_input"


@dataclass(frozen=True, eq=False)
class AudioFrame:
    """A block of mono float samples from the frame source."""
    samples: np.ndarray               # Values in [-1, 1]
    sample_rate: int                  # Hz
    timestamp: Optional[float] = None  # Seconds on a monotonic clock

    @property
    def n_samples(self) -> int:
        return len(self.samples)

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return len(self.samples) / self.sample_rate


@dataclass(frozen=True)
class PitchDetected:
    """A frame with a usable pitch."""
    frequency: float  # Hz
    clarity: float    # 0-1


@dataclass(frozen=True)
class NoPitch:
    """
    The "no pitch" result.

    clarity is kept for diagnostics so callers can tell a weak signal
    (LOW_CLARITY with a non-zero clarity) from nothing at all.
    """
    clarity: float = 0.0
    reason: RejectReason = RejectReason.SILENT_FRAME


PitchEstimate = Union[PitchDetected, NoPitch]


def required_clarity(
    frequency: float,
    clarity_threshold: float = CLARITY_THRESHOLD,
    low_frequency_clarity_threshold: float = LOW_FREQUENCY_CLARITY_THRESHOLD,
    low_frequency_cutoff_hz: float = LOW_FREQUENCY_CUTOFF_HZ,
) -> float:
    """Clarity a pitch at `frequency` must reach to be accepted."""
    if frequency < low_frequency_cutoff_hz:
        return low_frequency_clarity_threshold
    return clarity_threshold


def frame_rms(samples: np.ndarray) -> float:
    """Root-mean-square level of a frame (0 for an empty frame)."""
    if len(samples) == 0:
        return 0.0
    x = np.asarray(samples, dtype=np.float64)
    return float(np.sqrt(np.mean(x * x)))


def trim_to_periodic_region(buf: np.ndarray, threshold: float = TRIM_THRESHOLD) -> np.ndarray:
    """
    Drop leading and trailing samples whose magnitude is below `threshold`.

    A frame that never reaches the threshold is quiet but may still be
    voiced; it is returned whole.
    """
    loud = np.flatnonzero(np.abs(buf) >= threshold)
    if loud.size == 0:
        return buf
    return buf[loud[0]:loud[-1] + 1]


def autocorrelation(buf: np.ndarray) -> np.ndarray:
    """
    Autocorrelation for lags 0..n-1.

    c[k] = sum_j buf[j] * buf[j + k]

    scipy picks direct or FFT evaluation depending on the size; both give
    the same sequence up to rounding.
    """
    n = len(buf)
    if n == 0:
        return np.zeros(0)
    return correlate(buf, buf, mode='full', method='auto')[n - 1:]


def normalized_autocorrelation(buf: np.ndarray, c: np.ndarray) -> np.ndarray:
    """
    Normalize c[k] by the energy of the two overlapping segments.

    r[k] = c[k] / sqrt(sum(buf[:n-k]**2) * sum(buf[k:]**2))

    r[0] == c[0] / c[0] == 1. Unlike c[k] / c[0], a pure tone stays near 1
    at its period no matter how much of the frame the lag consumes.
    Lags whose overlap has no energy get 0.
    """
    n = len(buf)
    r = np.zeros(n)
    if n == 0:
        return r
    energy = np.cumsum(buf * buf)
    total = energy[-1]
    if total <= 0:
        return r
    r[0] = 1.0
    if n == 1:
        return r

    lags = np.arange(1, n)
    head = energy[n - lags - 1]
    tail = total - energy[lags - 1]
    denom = np.sqrt(np.maximum(head * tail, 0.0))
    np.divide(c[1:], denom, out=r[1:], where=denom > 0)
    return r


def parabolic_interpolation(c: np.ndarray, t: int) -> float:
    """
    Refine an integer peak lag to sub-sample precision.

    Fits a parabola through c[t-1], c[t], c[t+1]:
        a = (c[t-1] + c[t+1] - 2*c[t]) / 2
        b = (c[t+1] - c[t-1]) / 2
        t -= b / (2a)    (if a != 0)

    The shift is clamped to one sample.
    """
    if t <= 0 or t >= len(c) - 1:
        return float(t)

    x1, x2, x3 = c[t - 1], c[t], c[t + 1]
    a = (x1 + x3 - 2 * x2) / 2
    b = (x3 - x1) / 2
    if a == 0:
        return float(t)

    shift = -b / (2 * a)
    shift = max(-1.0, min(1.0, float(shift)))
    return t + shift


class AutocorrelationPitchEstimator:
    """
    Single-frame pitch estimator based on time-domain autocorrelation.

    The peak lag is chosen on the raw correlation, which falls off with lag
    and therefore prefers the fundamental period over its multiples. The
    clarity and the sub-sample refinement use the normalized correlation,
    which does not carry that slope.
    """

    def __init__(
        self,
        search_min_hz: float = VOICE_SEARCH_MIN_HZ,
        search_max_hz: float = VOICE_SEARCH_MAX_HZ,
        rms_silence_threshold: float = SILENCE_RMS,
        trim_threshold: float = TRIM_THRESHOLD,
        min_trimmed_length: int = MIN_TRIMMED_LENGTH,
        clarity_threshold: float = CLARITY_THRESHOLD,
        low_frequency_clarity_threshold: float = LOW_FREQUENCY_CLARITY_THRESHOLD,
        low_frequency_cutoff_hz: float = LOW_FREQUENCY_CUTOFF_HZ,
    ):
        self.search_min_hz = search_min_hz
        self.search_max_hz = search_max_hz
        self.rms_silence_threshold = rms_silence_threshold
        self.trim_threshold = trim_threshold
        self.min_trimmed_length = max(3, min_trimmed_length)
        self.clarity_threshold = clarity_threshold
        self.low_frequency_clarity_threshold = low_frequency_clarity_threshold
        self.low_frequency_cutoff_hz = low_frequency_cutoff_hz

    def estimate_frame(self, frame: AudioFrame) -> PitchEstimate:
        return self.estimate(frame.samples, frame.sample_rate)

    def estimate(self, samples: np.ndarray, sample_rate: int) -> PitchEstimate:
        """
        Estimate pitch and clarity for one frame.

        Args:
            samples: Mono float samples in [-1, 1]
            sample_rate: Sample rate in Hz

        Returns:
            PitchDetected, or NoPitch with the reason and diagnostic clarity
        """
        buf = np.asarray(samples, dtype=np.float64).ravel()
        if buf.size == 0 or not sample_rate or sample_rate <= 0:
            return NoPitch(0.0, RejectReason.DEGENERATE_INPUT)
        if not np.all(np.isfinite(buf)):
            return NoPitch(0.0, RejectReason.DEGENERATE_INPUT)

        try:
            with np.errstate(divide='raise', invalid='raise', over='raise'):
                return self._estimate(buf, sample_rate)
        except (FloatingPointError, ValueError) as e:
            logger.warning("Pitch estimation failed, treating frame as degenerate: %s", e)
            return NoPitch(0.0, RejectReason.DEGENERATE_INPUT)

    def _estimate(self, buf: np.ndarray, sample_rate: int) -> PitchEstimate:
        rms = frame_rms(buf)
        if rms < self.rms_silence_threshold:
            return NoPitch(0.0, RejectReason.SILENT_FRAME)

        region = trim_to_periodic_region(buf, self.trim_threshold)
        n = len(region)
        if n < self.min_trimmed_length:
            logger.debug("Periodic region too short (%d samples)", n)
            return NoPitch(0.0, RejectReason.DEGENERATE_INPUT)

        c = autocorrelation(region)
        if c[0] <= 0:
            return NoPitch(0.0, RejectReason.DEGENERATE_INPUT)

        # Walk off the lag-0 lobe
        rising = np.flatnonzero(np.diff(c) >= 0)
        descent_end = int(rising[0]) if rising.size else n - 1

        lag_min = max(1, descent_end, int(np.floor(sample_rate / self.search_max_hz)))
        lag_max = min(n - 2, int(np.ceil(sample_rate / self.search_min_hz)))
        if lag_min > lag_max:
            return NoPitch(0.0, RejectReason.OUT_OF_RANGE)

        # Only genuine local maxima; a window edge on a slope is not a period
        inner = c[lag_min:lag_max + 1]
        is_peak = (inner >= c[lag_min - 1:lag_max]) & (inner >= c[lag_min + 1:lag_max + 2])
        if not np.any(is_peak):
            return NoPitch(0.0, RejectReason.LOW_CLARITY)

        t = lag_min + int(np.argmax(np.where(is_peak, inner, -np.inf)))
        if c[t] <= 0:
            return NoPitch(0.0, RejectReason.LOW_CLARITY)

        r = normalized_autocorrelation(region, c)

        # The raw peak sits slightly early because c[k] tapers with k;
        # settle on the normalized peak of the same lobe.
        while t + 1 <= n - 2 and r[t + 1] > r[t]:
            t += 1
        while t - 1 >= 1 and r[t - 1] > r[t]:
            t -= 1

        clarity = float(np.clip(r[t], 0.0, 1.0))
        coarse_frequency = sample_rate / t
        threshold = required_clarity(
            coarse_frequency,
            self.clarity_threshold,
            self.low_frequency_clarity_threshold,
            self.low_frequency_cutoff_hz,
        )
        if clarity < threshold:
            logger.debug("Low clarity %.3f at %.1f Hz (need %.2f)", clarity, coarse_frequency, threshold)
            return NoPitch(clarity, RejectReason.LOW_CLARITY)

        period = parabolic_interpolation(r, t)
        if not np.isfinite(period) or period <= 0:
            return NoPitch(clarity, RejectReason.DEGENERATE_INPUT)

        frequency = float(sample_rate / period)
        if not np.isfinite(frequency):
            return NoPitch(clarity, RejectReason.DEGENERATE_INPUT)

        return PitchDetected(frequency=frequency, clarity=clarity)
