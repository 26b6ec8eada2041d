#!/usr/bin/env python3
"""
Confidence & Range Filter

Stateless gate between the estimator and the tracker. Rejects estimates
that fall outside the musical range (subsonic rumble, ultrasonic artifacts)
or below the adaptive clarity bar. Rejections become NoPitch results,
never exceptions. Applies to any estimator plugged into the pipeline,
not just the autocorrelation one.
"""

import logging
import math
from typing import Optional

from autocorrelation_pitch import (
    CLARITY_THRESHOLD,
    LOW_FREQUENCY_CLARITY_THRESHOLD,
    LOW_FREQUENCY_CUTOFF_HZ,
    NoPitch,
    PitchEstimate,
    RejectReason,
    required_clarity,
)


logger = logging.getLogger(__name__)

# Musical range for voice and melodic instruments
MUSICAL_MIN_HZ = 50.0
MUSICAL_MAX_HZ = 2000.0


class PitchRangeFilter:
    """Pure predicate over PitchEstimate: in range and clear enough."""

    def __init__(
        self,
        min_frequency_hz: float = MUSICAL_MIN_HZ,
        max_frequency_hz: float = MUSICAL_MAX_HZ,
        clarity_threshold: float = CLARITY_THRESHOLD,
        low_frequency_clarity_threshold: float = LOW_FREQUENCY_CLARITY_THRESHOLD,
        low_frequency_cutoff_hz: float = LOW_FREQUENCY_CUTOFF_HZ,
    ):
        self.min_frequency_hz = min_frequency_hz
        self.max_frequency_hz = max_frequency_hz
        self.clarity_threshold = clarity_threshold
        self.low_frequency_clarity_threshold = low_frequency_clarity_threshold
        self.low_frequency_cutoff_hz = low_frequency_cutoff_hz

    def in_range(self, frequency: float) -> bool:
        return (
            math.isfinite(frequency)
            and self.min_frequency_hz <= frequency <= self.max_frequency_hz
        )

    def rejection_reason(self, estimate: PitchEstimate) -> Optional[RejectReason]:
        """None if the estimate passes, else why it does not."""
        if isinstance(estimate, NoPitch):
            return estimate.reason
        if not self.in_range(estimate.frequency):
            return RejectReason.OUT_OF_RANGE
        threshold = required_clarity(
            estimate.frequency,
            self.clarity_threshold,
            self.low_frequency_clarity_threshold,
            self.low_frequency_cutoff_hz,
        )
        if not estimate.clarity >= threshold:
            return RejectReason.LOW_CLARITY
        return None

    def accepts(self, estimate: PitchEstimate) -> bool:
        return self.rejection_reason(estimate) is None

    def apply(self, estimate: PitchEstimate) -> PitchEstimate:
        """Return the estimate unchanged, or the NoPitch it degrades to."""
        if isinstance(estimate, NoPitch):
            return estimate

        reason = self.rejection_reason(estimate)
        if reason is None:
            return estimate

        logger.debug(
            "Rejected %.1f Hz (clarity %.3f): %s",
            estimate.frequency, estimate.clarity, reason.value,
        )
        clarity = estimate.clarity if math.isfinite(estimate.clarity) else 0.0
        return NoPitch(clarity, reason)
