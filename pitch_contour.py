#!/usr/bin/env python3
"""
Rolling Pitch Contour

Keeps the recent voiced output of the tracker for a pitch graph:
- Only voiced frames are stored
- Spikes (large jumps within a few milliseconds) are dropped
- Redundant updates (tiny change, too soon) are dropped
- Points older than max_age_s are evicted
- Segments break at silence gaps so a graph does not bridge two phrases

In-memory only; nothing is persisted.
"""

import numpy as np
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional

from realtime_pitch_tracker import TrackedPitch


@dataclass(frozen=True)
class ContourPoint:
    """One stored point of the contour."""
    frequency: float    # Hz
    timestamp: float    # Seconds
    clarity: float
    is_after_gap: bool  # Starts a new segment


class PitchContour:
    """
    Time-bounded history of tracked pitch.
    """

    def __init__(
        self,
        max_age_s: float = 15.0,
        spike_jump_hz: float = 300.0,    # Jump this large...
        spike_window_ms: float = 50.0,   # ...this soon is a spike
        min_interval_ms: float = 16.0,   # ~60 fps
        min_change_hz: float = 5.0,      # Smaller moves within min_interval are skipped
    ):
        self.max_age_s = max_age_s
        self.spike_jump_hz = spike_jump_hz
        self.spike_window_ms = spike_window_ms
        self.min_interval_ms = min_interval_ms
        self.min_change_hz = min_change_hz
        self._points: Deque[ContourPoint] = deque()

    def __len__(self) -> int:
        return len(self._points)

    @property
    def points(self) -> List[ContourPoint]:
        return list(self._points)

    @property
    def last(self) -> Optional[ContourPoint]:
        return self._points[-1] if self._points else None

    def clear(self):
        self._points.clear()

    def evict(self, now: float):
        """Drop points older than max_age_s relative to `now`."""
        while self._points and now - self._points[0].timestamp >= self.max_age_s:
            self._points.popleft()

    def _should_store(self, frequency: float, timestamp: float, is_after_gap: bool) -> bool:
        last = self.last
        if last is None or is_after_gap:
            return True

        jump = abs(frequency - last.frequency)
        elapsed_ms = (timestamp - last.timestamp) * 1000.0

        if jump > self.spike_jump_hz and elapsed_ms < self.spike_window_ms:
            return False
        if elapsed_ms < self.min_interval_ms and jump < self.min_change_hz:
            return False
        return True

    def add(self, tracked: TrackedPitch, timestamp: float) -> bool:
        """
        Offer one tracker output.

        Returns:
            True if a point was stored
        """
        self.evict(timestamp)
        if not tracked.is_voiced:
            return False
        if not self._should_store(tracked.frequency, timestamp, tracked.is_after_gap):
            return False

        self._points.append(ContourPoint(
            frequency=tracked.frequency,
            timestamp=timestamp,
            clarity=tracked.clarity,
            is_after_gap=tracked.is_after_gap,
        ))
        return True

    def segments(self) -> List[List[ContourPoint]]:
        """Split the contour into runs, starting a new run at each gap."""
        segments: List[List[ContourPoint]] = []
        for point in self._points:
            if not segments or point.is_after_gap:
                segments.append([point])
            else:
                segments[-1].append(point)
        return segments

    def frequencies(self) -> np.ndarray:
        return np.array([p.frequency for p in self._points], dtype=np.float64)

    def times(self) -> np.ndarray:
        return np.array([p.timestamp for p in self._points], dtype=np.float64)
