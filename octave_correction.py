#!/usr/bin/env python3
"""
Octave Correction for Real-Time Voice Pitch Tracking

Common problem: autocorrelation locks onto a HARMONIC (2x, 3x) or a
SUBHARMONIC (1/2x, 1/3x) of the true pitch when overtone energy dominates
the fundamental for a frame or two.

This module folds such estimates back using recent history:
1. Reference pitch - median of the recent history (robust to outliers)
2. Transition shape - glides and vibrato move steadily in one direction
   and are never folded
3. Tight ratio bands - only ratios very close to 2, 1/2, 3, 1/3 are folded

A false correction (folding a genuine interval jump) is worse than a
missed one because it creates a discontinuity, so the bands are narrow.
"""

import logging
import numpy as np
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple
from enum import Enum

from pitch_filter import MUSICAL_MIN_HZ, MUSICAL_MAX_HZ


logger = logging.getLogger(__name__)

OCTAVE_TOLERANCE = 0.025           # Relative band around each ratio (2.5%)
MAX_GRADUAL_CHANGE_HZ = 200.0      # Per-frame bound for a glide
MIN_HISTORY = 3                    # Frames needed before correcting


class OctaveCorrection(Enum):
    """Type of octave correction applied."""
    NONE = "none"
    DOWN_OCTAVE = "down_octave"    # Estimate was 2x, divided by 2
    UP_OCTAVE = "up_octave"        # Estimate was 1/2x, multiplied by 2
    DOWN_TWELFTH = "down_twelfth"  # Estimate was 3x, divided by 3
    UP_TWELFTH = "up_twelfth"      # Estimate was 1/3x, multiplied by 3


# (ratio of estimate to reference, factor that restores the fundamental, label)
HARMONIC_FOLDS: Tuple[Tuple[float, float, OctaveCorrection], ...] = (
    (2.0, 1 / 2, OctaveCorrection.DOWN_OCTAVE),
    (1 / 2, 2.0, OctaveCorrection.UP_OCTAVE),
    (3.0, 1 / 3, OctaveCorrection.DOWN_TWELFTH),
    (1 / 3, 3.0, OctaveCorrection.UP_TWELFTH),
)


@dataclass
class OctaveCorrectionResult:
    """Result of octave correction for one estimate."""
    original_freq: float
    corrected_freq: float
    correction: OctaveCorrection
    reference_freq: Optional[float] = None  # Median of history, if any
    ratio: Optional[float] = None           # original / reference

    @property
    def was_corrected(self) -> bool:
        return self.correction != OctaveCorrection.NONE


class OctaveCorrector:
    """
    Folds harmonic and subharmonic misdetections back onto the fundamental.

    Stateless: the recent history is passed in by the tracker that owns it.
    """

    def __init__(
        self,
        tolerance: float = OCTAVE_TOLERANCE,
        max_gradual_change_hz: float = MAX_GRADUAL_CHANGE_HZ,
        min_history: int = MIN_HISTORY,
        min_freq: float = MUSICAL_MIN_HZ,
        max_freq: float = MUSICAL_MAX_HZ,
    ):
        self.tolerance = tolerance
        self.max_gradual_change_hz = max_gradual_change_hz
        self.min_history = max(1, min_history)
        self.min_freq = min_freq
        self.max_freq = max_freq

    def recent_stable_frequency(self, history: Sequence[float]) -> Optional[float]:
        """Median of the history, or None with too few entries."""
        if len(history) < self.min_history:
            return None
        return float(np.median(np.asarray(history, dtype=np.float64)))

    def is_gradual_transition(self, history: Sequence[float], frequency: float) -> bool:
        """
        True if the move to `frequency` continues a steady glide.

        Looks at the three deltas across the last three history entries and
        the incoming frequency: they must all be strictly positive or all
        strictly negative, and none may exceed max_gradual_change_hz.
        Without enough history there is nothing to fold against, which
        counts as gradual.
        """
        if len(history) < 3:
            return True

        points = list(history)[-3:] + [frequency]
        deltas = np.diff(np.asarray(points, dtype=np.float64))

        same_direction = bool(np.all(deltas > 0) or np.all(deltas < 0))
        max_change = float(np.max(np.abs(deltas)))
        return same_direction and max_change < self.max_gradual_change_hz

    def _match_fold(self, ratio: float) -> Optional[Tuple[float, OctaveCorrection]]:
        for target, factor, label in HARMONIC_FOLDS:
            if abs(ratio - target) <= target * self.tolerance:
                return factor, label
        return None

    def correct(self, frequency: float, history: Sequence[float]) -> OctaveCorrectionResult:
        """
        Correct a single estimate against recent history.

        Args:
            frequency: Incoming estimate in Hz
            history: Recent accepted frequencies, oldest first

        Returns:
            OctaveCorrectionResult (corrected_freq == original_freq if no fold)
        """
        reference = self.recent_stable_frequency(history)
        if reference is None or reference <= 0:
            return OctaveCorrectionResult(frequency, frequency, OctaveCorrection.NONE, reference)

        ratio = frequency / reference
        if self.is_gradual_transition(history, frequency):
            return OctaveCorrectionResult(frequency, frequency, OctaveCorrection.NONE, reference, ratio)

        fold = self._match_fold(ratio)
        if fold is None:
            return OctaveCorrectionResult(frequency, frequency, OctaveCorrection.NONE, reference, ratio)

        factor, label = fold
        corrected = frequency * factor
        if not (self.min_freq <= corrected <= self.max_freq):
            # Folding would leave the musical range; keep the estimate
            return OctaveCorrectionResult(frequency, frequency, OctaveCorrection.NONE, reference, ratio)

        logger.debug(
            "Octave fold %s: %.1f Hz -> %.1f Hz (reference %.1f Hz, ratio %.3f)",
            label.value, frequency, corrected, reference, ratio,
        )
        return OctaveCorrectionResult(frequency, corrected, label, reference, ratio)
