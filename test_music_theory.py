"""
Tests for note mapping.
"""

import pytest

from music_theory import (
    NoteTable,
    closest_note,
    cents_between,
    frequency_from_note_number,
    note_from_pitch,
    note_name,
)


@pytest.fixture(scope='module')
def table():
    return NoteTable()


def test_a4_exact(table):
    match = table.closest_note(440.0)
    assert match.name == 'A4'
    assert match.cents == 0
    assert match.reference_frequency == pytest.approx(440.0)


def test_sharp_spelling(table):
    assert table.closest_note(466.16).name == 'A#4'


def test_cents_deviation(table):
    match = table.closest_note(445.0)
    assert match.name == 'A4'
    assert match.cents == 20
    assert match.is_sharp and not match.is_flat


def test_flat_of_reference(table):
    match = table.closest_note(435.0)
    assert match.name == 'A4'
    assert match.cents < 0
    assert match.is_flat


@pytest.mark.parametrize("freq", [0.0, -100.0, float('nan'), float('inf')])
def test_no_note_for_invalid_frequency(table, freq):
    assert table.closest_note(freq) is None


def test_tie_goes_to_lower_note():
    table = NoteTable({'Y': 200.0, 'X': 100.0})
    match = table.closest_note(150.0)
    assert match.name == 'X'
    assert match.cents == 702


def test_extremes_map_to_table_ends(table):
    assert table.closest_note(1.0).name == 'C0'
    assert table.closest_note(20000.0).name == 'B8'


def test_table_covers_c0_to_b8(table):
    assert len(table) == 108
    assert table.frequency_of('C4') == pytest.approx(261.63, abs=0.01)


def test_empty_table_raises():
    with pytest.raises(ValueError):
        NoteTable({})


def test_module_level_lookup():
    assert closest_note(261.63).name == 'C4'
    assert closest_note(0.0) is None


def test_midi_helpers():
    assert note_from_pitch(440.0) == 69
    assert note_from_pitch(452.0) == 69
    assert frequency_from_note_number(60) == pytest.approx(261.63, abs=0.01)
    assert frequency_from_note_number(69, a4=442.0) == pytest.approx(442.0)
    assert note_name(60) == 'C4'
    assert note_name(61) == 'C#4'
    assert note_name(12) == 'C0'
    assert note_name(119) == 'B8'
    assert [note_name(m)[:-1] for m in range(60, 72)] == [
        'C', 'C#', 'D', 'D#', 'E', 'F', 'F#', 'G', 'G#', 'A', 'A#', 'B']


def test_cents_between_octave():
    assert cents_between(880.0, 440.0) == 1200
    assert cents_between(220.0, 440.0) == -1200
