"""
Tests for history-based octave error correction.
"""

import pytest

from octave_correction import OctaveCorrection, OctaveCorrector


@pytest.fixture
def corrector():
    return OctaveCorrector()


STABLE_A4 = [440.0] * 5


@pytest.mark.parametrize("estimate, expected, correction", [
    (880.0, 440.0, OctaveCorrection.DOWN_OCTAVE),
    (220.0, 440.0, OctaveCorrection.UP_OCTAVE),
    (1320.0, 440.0, OctaveCorrection.DOWN_TWELFTH),
    (440.0 / 3, 440.0, OctaveCorrection.UP_TWELFTH),
])
def test_abrupt_harmonic_jump_is_folded(corrector, estimate, expected, correction):
    result = corrector.correct(estimate, STABLE_A4)

    assert result.correction == correction
    assert result.was_corrected
    assert result.corrected_freq == pytest.approx(expected)
    assert result.original_freq == estimate
    assert result.reference_freq == pytest.approx(440.0)


def test_fold_tolerates_small_detuning(corrector):
    # 2% sharp of an exact octave is still inside the band
    result = corrector.correct(880.0 * 1.02, STABLE_A4)
    assert result.correction == OctaveCorrection.DOWN_OCTAVE
    assert result.corrected_freq == pytest.approx(448.8)


def test_ratio_outside_band_is_not_folded(corrector):
    result = corrector.correct(440.0 * 2.1, STABLE_A4)
    assert result.correction == OctaveCorrection.NONE
    assert result.corrected_freq == pytest.approx(924.0)


def test_genuine_interval_jump_passes_through(corrector):
    # Perfect fifth up is a real melodic move
    result = corrector.correct(660.0, STABLE_A4)
    assert not result.was_corrected
    assert result.corrected_freq == 660.0
    assert result.ratio == pytest.approx(1.5)


def test_gradual_glide_to_the_octave_is_not_folded(corrector):
    # Median is still 440, so 880 sits exactly on the octave ratio,
    # but the last moves are a steady climb
    history = [440.0] * 5 + [600.0, 750.0, 850.0]

    result = corrector.correct(880.0, history)
    assert result.correction == OctaveCorrection.NONE
    assert result.corrected_freq == 880.0
    assert result.ratio == pytest.approx(2.0)


def test_descending_glide_is_not_folded(corrector):
    history = [440.0] * 5 + [320.0, 260.0, 230.0]
    result = corrector.correct(220.0, history)
    assert result.correction == OctaveCorrection.NONE


def test_too_little_history_passes_through(corrector):
    result = corrector.correct(880.0, [440.0, 440.0])
    assert result.correction == OctaveCorrection.NONE
    assert result.reference_freq is None


def test_median_ignores_an_outlier(corrector):
    history = [440.0, 440.0, 1000.0, 440.0, 440.0]
    assert corrector.recent_stable_frequency(history) == 440.0

    result = corrector.correct(880.0, history)
    assert result.corrected_freq == pytest.approx(440.0)


def test_fold_that_would_leave_range_is_skipped():
    corrector = OctaveCorrector(min_freq=50.0, max_freq=800.0)
    result = corrector.correct(450.0, [900.0, 900.0, 900.0])
    assert result.correction == OctaveCorrection.NONE
    assert result.corrected_freq == 450.0


class TestGradualTransition:

    def test_steady_climb(self, corrector):
        assert corrector.is_gradual_transition([400.0, 420.0, 440.0], 460.0)

    def test_flat_history_is_not_a_glide(self, corrector):
        assert not corrector.is_gradual_transition([440.0, 440.0, 440.0], 880.0)

    def test_direction_change_is_not_a_glide(self, corrector):
        assert not corrector.is_gradual_transition([400.0, 420.0, 410.0], 430.0)

    def test_large_step_is_not_a_glide(self, corrector):
        assert not corrector.is_gradual_transition([400.0, 500.0, 600.0], 850.0)

    def test_step_bound_is_configurable(self):
        loose = OctaveCorrector(max_gradual_change_hz=300.0)
        assert loose.is_gradual_transition([400.0, 500.0, 600.0], 850.0)

    def test_short_history_counts_as_gradual(self, corrector):
        assert corrector.is_gradual_transition([440.0], 880.0)

    def test_accepts_deque(self, corrector):
        from collections import deque
        assert corrector.is_gradual_transition(deque([400.0, 420.0, 440.0], maxlen=8), 460.0)
