#!/usr/bin/env python3
"""
Real-Time Frame-by-Frame Voice Pitch Tracker

Turns noisy, discontinuous short-time frames into a stable frequency stream
for a vocal-training display:
1. Estimate pitch + clarity per frame (autocorrelation)
2. Reject estimates outside the musical range or below the clarity bar
3. Fold octave errors back using recent history
4. Track over time: snap to clean frames, blend uncertain ones, and reset
   history after silence gaps

The key insight: a clean frame should be shown immediately, an uncertain
one should be pulled toward what was just sung, and a new phrase after a
pause should not be dragged toward the last phrase.

This module provides:
- PitchTrackerConfig: all tunable thresholds, with presets
- TemporalTracker: history, gap detection and smoothing (owns TrackerState)
- RealtimePitchTracker: the per-frame pipeline, process_frame(frame)
- PitchTrackingSession: start/stop lifecycle with a result sink
"""

import logging
import time
import numpy as np
import librosa
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Iterator, List, Optional, Tuple
from enum import Enum

from autocorrelation_pitch import (
    AudioFrame,
    AutocorrelationPitchEstimator,
    PitchDetected,
    PitchEstimate,
    frame_rms,
)
from octave_correction import OctaveCorrector
from pitch_filter import PitchRangeFilter


logger = logging.getLogger(__name__)


@dataclass
class PitchTrackerConfig:
    """Configuration for real-time pitch tracking."""
    # Frame
    sample_window_size: int = 4096          # Samples used for correlation

    # Musical range (filtering and octave folding)
    min_frequency_hz: float = 50.0
    max_frequency_hz: float = 2000.0

    # Estimator lag search range
    search_min_hz: float = 80.0
    search_max_hz: float = 1000.0

    # Estimator gating
    rms_silence_threshold: float = 0.01     # Below this the frame is silence
    trim_threshold: float = 0.2             # Amplitude marking the periodic region
    min_trimmed_length: int = 100           # Shortest region worth correlating

    # Clarity (adaptive below the cutoff)
    clarity_threshold: float = 0.85
    low_frequency_clarity_threshold: float = 0.75
    low_frequency_cutoff_hz: float = 200.0

    # Octave correction
    octave_tolerance: float = 0.025         # Relative band around 2, 1/2, 3, 1/3
    max_gradual_change_hz: float = 200.0    # Glides move less than this per frame

    # Temporal tracking
    history_size: int = 8                   # Smoothing window (H)
    gap_threshold_ms: float = 500.0         # Silence that starts a new phrase
    high_confidence_threshold: float = 0.9  # Clarity that bypasses smoothing
    min_interpolation_history: int = 3      # Entries needed before blending
    smoothing_factor: float = 0.7           # Weight of the previous output

    def __post_init__(self):
        if not 0 < self.min_frequency_hz < self.max_frequency_hz:
            raise ValueError(
                f"Invalid musical range {self.min_frequency_hz}-{self.max_frequency_hz} Hz"
            )
        if not 0 < self.search_min_hz < self.search_max_hz:
            raise ValueError(
                f"Invalid search range {self.search_min_hz}-{self.search_max_hz} Hz"
            )
        if not 1 <= self.history_size <= 64:
            raise ValueError(f"history_size must be in 1..64, got {self.history_size}")
        if self.sample_window_size < self.min_trimmed_length:
            raise ValueError(
                f"sample_window_size ({self.sample_window_size}) is shorter than "
                f"min_trimmed_length ({self.min_trimmed_length})"
            )
        if self.gap_threshold_ms < 0:
            raise ValueError(f"gap_threshold_ms must be >= 0, got {self.gap_threshold_ms}")
        if not 0.0 <= self.smoothing_factor < 1.0:
            raise ValueError(f"smoothing_factor must be in [0, 1), got {self.smoothing_factor}")
        for name in ('clarity_threshold', 'low_frequency_clarity_threshold',
                     'high_confidence_threshold'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")

    @classmethod
    def default(cls) -> 'PitchTrackerConfig':
        """Return default configuration."""
        return cls()

    @classmethod
    def low_voice(cls) -> 'PitchTrackerConfig':
        """Bass/baritone: search lower, relax clarity further up, longer phrases."""
        return cls(
            search_min_hz=60.0,
            search_max_hz=700.0,
            low_frequency_cutoff_hz=250.0,
            gap_threshold_ms=750.0,
        )

    @classmethod
    def responsive(cls) -> 'PitchTrackerConfig':
        """Shorter memory and lighter smoothing for fast melodic exercises."""
        return cls(
            history_size=5,
            smoothing_factor=0.5,
            high_confidence_threshold=0.85,
        )

    @classmethod
    def strict(cls) -> 'PitchTrackerConfig':
        """
        Conservative settings for noisy rooms.

        Fixed 0.9 clarity bar at all frequencies, louder silence gate,
        2048-sample frames and a one-second gap window.
        """
        return cls(
            sample_window_size=2048,
            rms_silence_threshold=0.02,
            clarity_threshold=0.9,
            low_frequency_clarity_threshold=0.9,
            history_size=5,
            gap_threshold_ms=1000.0,
        )


class TrackerPhase(Enum):
    """Lifecycle of a tracking session."""
    IDLE = "idle"          # No frame processed yet
    TRACKING = "tracking"  # Last frame had a valid pitch
    SILENT = "silent"      # No pitch; gap timer running


@dataclass
class TrackerState:
    """
    Persistent per-session smoothing state.

    Owned by exactly one TemporalTracker; mutated once per frame.
    """
    history_size: int = 8
    history: Deque[Tuple[float, float]] = field(init=False)  # (frequency, clarity)
    raw_history: Deque[float] = field(init=False)  # Uncorrected estimates, octave reference
    interpolated_frequency: float = 0.0
    last_confident_frequency: float = 0.0
    last_detection_time: Optional[float] = None  # Seconds
    gap_flag: bool = False
    phase: TrackerPhase = TrackerPhase.IDLE

    def __post_init__(self):
        self.history = deque(maxlen=self.history_size)
        self.raw_history = deque(maxlen=self.history_size)

    @property
    def frequencies(self) -> List[float]:
        return [f for f, _ in self.history]

    @property
    def clarities(self) -> List[float]:
        return [c for _, c in self.history]

    def clear_history(self):
        """Forget the previous phrase (silence gap)."""
        self.history.clear()
        self.raw_history.clear()
        self.interpolated_frequency = 0.0

    def reset(self):
        """Back to IDLE (explicit stop)."""
        self.clear_history()
        self.last_confident_frequency = 0.0
        self.last_detection_time = None
        self.gap_flag = False
        self.phase = TrackerPhase.IDLE


@dataclass(frozen=True)
class TrackedPitch:
    """Tracker output for one frame."""
    frequency: float      # Hz (0 if no pitch this frame)
    clarity: float        # 0-1, reported even when frequency is 0
    volume_rms: float     # Frame RMS
    is_after_gap: bool    # First detection after a silence gap

    @property
    def is_voiced(self) -> bool:
        return self.frequency > 0

    def to_dict(self) -> Dict:
        return {
            'frequency': self.frequency,
            'clarity': self.clarity,
            'volume_rms': self.volume_rms,
            'is_after_gap': self.is_after_gap,
        }


class TemporalTracker:
    """
    Temporal smoothing and gap handling over accepted estimates.

    Per valid estimate:
    - more than gap_threshold_ms since the last detection: clear history,
      flag the output as after-gap, do not smooth against the old phrase
    - fold octave errors against the median of recent uncorrected estimates
    - clarity >= high_confidence_threshold: snap to the estimate
    - otherwise blend: weights (i+1)/n * clarity^2 over history, then
      output = s * previous + (1 - s) * target

    Frames without a pitch leave history alone and report 0 Hz.
    """

    def __init__(
        self,
        config: Optional[PitchTrackerConfig] = None,
        corrector: Optional[OctaveCorrector] = None,
    ):
        self.config = config or PitchTrackerConfig.default()
        self.corrector = corrector or OctaveCorrector(
            tolerance=self.config.octave_tolerance,
            max_gradual_change_hz=self.config.max_gradual_change_hz,
            min_freq=self.config.min_frequency_hz,
            max_freq=self.config.max_frequency_hz,
        )
        self.state = TrackerState(history_size=self.config.history_size)

    def reset(self):
        self.state.reset()

    def update(self, estimate: PitchEstimate, volume_rms: float, now: float) -> TrackedPitch:
        """
        Advance the tracker by one frame.

        Args:
            estimate: Filtered estimate for this frame
            volume_rms: Frame RMS, passed through to the output
            now: Frame time in seconds (monotonic)

        Returns:
            TrackedPitch for this frame
        """
        if isinstance(estimate, PitchDetected):
            return self._track(estimate, volume_rms, now)

        state = self.state
        state.gap_flag = False
        state.phase = TrackerPhase.SILENT
        return TrackedPitch(
            frequency=0.0,
            clarity=estimate.clarity,
            volume_rms=volume_rms,
            is_after_gap=False,
        )

    def _track(self, estimate: PitchDetected, volume_rms: float, now: float) -> TrackedPitch:
        state = self.state

        is_after_gap = False
        if state.last_detection_time is not None:
            elapsed_ms = (now - state.last_detection_time) * 1000.0
            if elapsed_ms > self.config.gap_threshold_ms:
                logger.debug("Gap of %.0f ms, cleared pitch history", elapsed_ms)
                state.clear_history()
                is_after_gap = True
        state.gap_flag = is_after_gap

        correction = self.corrector.correct(estimate.frequency, state.raw_history)
        frequency = correction.corrected_freq

        # The reference follows what was sung, so a held octave jump
        # moves the median and stops being folded.
        state.raw_history.append(estimate.frequency)
        state.history.append((frequency, estimate.clarity))
        state.last_detection_time = now
        state.phase = TrackerPhase.TRACKING

        output = self._smooth(frequency, estimate.clarity)
        return TrackedPitch(
            frequency=output,
            clarity=estimate.clarity,
            volume_rms=volume_rms,
            is_after_gap=is_after_gap,
        )

    def _smooth(self, frequency: float, clarity: float) -> float:
        state = self.state

        # Clean frames get an immediate response
        if clarity >= self.config.high_confidence_threshold:
            state.last_confident_frequency = frequency
            state.interpolated_frequency = frequency
            return frequency

        if len(state.history) >= self.config.min_interpolation_history:
            return self._confidence_weighted_frequency()

        # Too little history to blend; this becomes the smoothing baseline
        state.interpolated_frequency = frequency
        return frequency

    def _confidence_weighted_frequency(self) -> float:
        state = self.state
        freqs = np.asarray(state.frequencies, dtype=np.float64)
        clarities = np.asarray(state.clarities, dtype=np.float64)
        n = len(freqs)

        recency = np.arange(1, n + 1) / n
        weights = recency * clarities ** 2
        total = float(np.sum(weights))
        if total <= 0:
            return state.last_confident_frequency or state.interpolated_frequency

        target = float(np.sum(freqs * weights) / total)
        if state.interpolated_frequency <= 0:
            state.interpolated_frequency = target
        else:
            s = self.config.smoothing_factor
            state.interpolated_frequency = s * state.interpolated_frequency + (1 - s) * target
        return state.interpolated_frequency


class RealtimePitchTracker:
    """
    Per-frame pipeline: estimator -> range filter -> octave corrector -> tracker.

    process_frame never raises for bad audio; every failure shows up as a
    0 Hz output for that frame.
    """

    def __init__(
        self,
        config: Optional[PitchTrackerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or PitchTrackerConfig.default()
        self.clock = clock

        cfg = self.config
        self.estimator = AutocorrelationPitchEstimator(
            search_min_hz=max(cfg.search_min_hz, cfg.min_frequency_hz),
            search_max_hz=min(cfg.search_max_hz, cfg.max_frequency_hz),
            rms_silence_threshold=cfg.rms_silence_threshold,
            trim_threshold=cfg.trim_threshold,
            min_trimmed_length=cfg.min_trimmed_length,
            clarity_threshold=cfg.clarity_threshold,
            low_frequency_clarity_threshold=cfg.low_frequency_clarity_threshold,
            low_frequency_cutoff_hz=cfg.low_frequency_cutoff_hz,
        )
        self.range_filter = PitchRangeFilter(
            min_frequency_hz=cfg.min_frequency_hz,
            max_frequency_hz=cfg.max_frequency_hz,
            clarity_threshold=cfg.clarity_threshold,
            low_frequency_clarity_threshold=cfg.low_frequency_clarity_threshold,
            low_frequency_cutoff_hz=cfg.low_frequency_cutoff_hz,
        )
        self.tracker = TemporalTracker(cfg)

    @property
    def state(self) -> TrackerState:
        return self.tracker.state

    def reset(self):
        self.tracker.reset()

    def _window(self, frame: AudioFrame) -> np.ndarray:
        try:
            samples = np.asarray(frame.samples, dtype=np.float64).ravel()
        except (TypeError, ValueError):
            logger.warning("Unreadable frame samples, treating frame as degenerate")
            return np.zeros(0)
        # Most recent samples when the source delivers more than a window
        return samples[-self.config.sample_window_size:]

    def process_frame(self, frame: AudioFrame, timestamp: Optional[float] = None) -> TrackedPitch:
        """
        Process one frame.

        Args:
            frame: Audio frame from the source
            timestamp: Frame time in seconds; falls back to frame.timestamp,
                then to the tracker clock

        Returns:
            TrackedPitch for this frame
        """
        if timestamp is not None:
            now = timestamp
        elif frame.timestamp is not None:
            now = frame.timestamp
        else:
            now = self.clock()

        samples = self._window(frame)
        volume = frame_rms(samples)
        if not np.isfinite(volume):
            volume = 0.0

        estimate = self.estimator.estimate(samples, frame.sample_rate)
        estimate = self.range_filter.apply(estimate)
        return self.tracker.update(estimate, volume, now)


class PitchTrackingSession:
    """
    One listening session: start, feed frames, stop.

    Results are returned and also handed to the sink, if one is set.
    stop() resets the tracker so the next start() begins IDLE.
    """

    def __init__(
        self,
        config: Optional[PitchTrackerConfig] = None,
        sink: Optional[Callable[[TrackedPitch], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.tracker = RealtimePitchTracker(config, clock=clock)
        self.sink = sink
        self._listening = False

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def state(self) -> TrackerState:
        return self.tracker.state

    def start(self, sink: Optional[Callable[[TrackedPitch], None]] = None):
        if sink is not None:
            self.sink = sink
        self.tracker.reset()
        self._listening = True
        logger.debug("Pitch tracking session started")

    def stop(self):
        self._listening = False
        self.tracker.reset()
        logger.debug("Pitch tracking session stopped")

    def process_frame(self, frame: AudioFrame, timestamp: Optional[float] = None) -> Optional[TrackedPitch]:
        """Track one frame; frames arriving while stopped are ignored."""
        if not self._listening:
            return None
        tracked = self.tracker.process_frame(frame, timestamp)
        if self.sink is not None:
            self.sink(tracked)
        return tracked

    def __enter__(self) -> 'PitchTrackingSession':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False


def frames_from_signal(
    y: np.ndarray,
    sr: int,
    frame_length: int = 4096,
    hop_length: int = 1024,
) -> Iterator[AudioFrame]:
    """
    Slice a recorded signal into frames as a live source would deliver them.

    Each frame is stamped with the time its last sample arrives.
    """
    y = np.asarray(y, dtype=np.float32)
    if len(y) < frame_length:
        y = librosa.util.fix_length(y, size=frame_length)

    frames = librosa.util.frame(y, frame_length=frame_length, hop_length=hop_length)
    for i in range(frames.shape[-1]):
        end_sample = i * hop_length + frame_length
        yield AudioFrame(
            samples=np.ascontiguousarray(frames[:, i]),
            sample_rate=sr,
            timestamp=float(librosa.samples_to_time(end_sample, sr=sr)),
        )


def track_signal(
    y: np.ndarray,
    sr: int,
    config: Optional[PitchTrackerConfig] = None,
    hop_length: int = 1024,
) -> List[TrackedPitch]:
    """
    Convenience function: run the real-time tracker over a whole signal.

    Args:
        y: Audio signal (mono)
        sr: Sample rate
        config: Tracker configuration
        hop_length: Samples between frames

    Returns:
        One TrackedPitch per frame
    """
    tracker = RealtimePitchTracker(config)
    return [
        tracker.process_frame(frame)
        for frame in frames_from_signal(y, sr, tracker.config.sample_window_size, hop_length)
    ]
