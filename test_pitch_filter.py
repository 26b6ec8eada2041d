"""
Tests for the confidence & range filter.
"""

import pytest

from autocorrelation_pitch import NoPitch, PitchDetected, RejectReason
from pitch_filter import PitchRangeFilter


@pytest.fixture
def range_filter():
    return PitchRangeFilter()


def test_in_range_estimate_passes_unchanged(range_filter):
    estimate = PitchDetected(440.0, 0.97)
    assert range_filter.accepts(estimate)
    assert range_filter.apply(estimate) is estimate


@pytest.mark.parametrize("freq", [20.0, 49.9, 2000.1, 18000.0])
def test_out_of_range_becomes_no_pitch(range_filter, freq):
    result = range_filter.apply(PitchDetected(freq, 0.99))

    assert isinstance(result, NoPitch)
    assert result.reason == RejectReason.OUT_OF_RANGE
    assert result.clarity == 0.99


def test_range_bounds_are_inclusive(range_filter):
    assert range_filter.accepts(PitchDetected(50.0, 0.95))
    assert range_filter.accepts(PitchDetected(2000.0, 0.95))


def test_low_clarity_is_rejected_above_cutoff(range_filter):
    result = range_filter.apply(PitchDetected(440.0, 0.8))

    assert isinstance(result, NoPitch)
    assert result.reason == RejectReason.LOW_CLARITY
    assert result.clarity == 0.8


def test_clarity_bar_is_relaxed_for_low_pitch(range_filter):
    assert range_filter.accepts(PitchDetected(150.0, 0.8))
    assert not range_filter.accepts(PitchDetected(150.0, 0.7))


def test_no_pitch_passes_through(range_filter):
    silent = NoPitch(0.0, RejectReason.SILENT_FRAME)
    assert range_filter.apply(silent) is silent
    assert range_filter.rejection_reason(silent) == RejectReason.SILENT_FRAME


@pytest.mark.parametrize("freq", [float('nan'), float('inf'), -440.0])
def test_non_finite_or_negative_never_raises(range_filter, freq):
    result = range_filter.apply(PitchDetected(freq, 0.95))
    assert isinstance(result, NoPitch)
    assert result.reason == RejectReason.OUT_OF_RANGE


def test_nan_clarity_is_reported_as_zero(range_filter):
    result = range_filter.apply(PitchDetected(440.0, float('nan')))
    assert isinstance(result, NoPitch)
    assert result.reason == RejectReason.LOW_CLARITY
    assert result.clarity == 0.0


def test_custom_range():
    narrow = PitchRangeFilter(min_frequency_hz=100.0, max_frequency_hz=400.0)
    assert not narrow.accepts(PitchDetected(440.0, 0.99))
    assert narrow.accepts(PitchDetected(220.0, 0.99))
