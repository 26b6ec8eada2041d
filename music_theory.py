"""
Note Mapping for Tracked Pitch

Provides:
- A fixed table of equal-tempered named pitches (C0 to B8, A4 = 440 Hz)
- Nearest-note lookup with cents deviation
- MIDI note number helpers
"""

import math
import numpy as np
import librosa
from typing import Dict, Optional
from dataclasses import dataclass

# Table range (MIDI)
TABLE_MIN_MIDI = 12   # C0
TABLE_MAX_MIDI = 119  # B8

A4_FREQ = 440.0


@dataclass(frozen=True)
class NoteMatch:
    """Nearest named pitch for a frequency"""
    name: str                   # e.g. 'A4', 'C#5'
    cents: int                  # Deviation from the reference, rounded
    reference_frequency: float  # Hz of the named pitch

    @property
    def is_flat(self) -> bool:
        return self.cents < 0

    @property
    def is_sharp(self) -> bool:
        return self.cents > 0


def note_name(midi_note: int) -> str:
    """Note name with octave, e.g. 69 -> 'A4'"""
    return librosa.midi_to_note(int(midi_note), unicode=False)


def note_from_pitch(frequency: float) -> int:
    """Nearest MIDI note number for a frequency in Hz"""
    return int(round(float(librosa.hz_to_midi(frequency))))


def frequency_from_note_number(midi_note: float, a4: float = A4_FREQ) -> float:
    """Equal-tempered frequency of a MIDI note number"""
    return float(librosa.midi_to_hz(midi_note)) * (a4 / A4_FREQ)


def cents_between(frequency: float, reference_frequency: float) -> int:
    """round(1200 * log2(frequency / reference_frequency))"""
    return int(round(1200 * math.log2(frequency / reference_frequency)))


def cents_off_from_pitch(frequency: float, midi_note: int) -> int:
    """Cents between a frequency and a MIDI note's equal-tempered pitch"""
    return cents_between(frequency, frequency_from_note_number(midi_note))


def build_note_frequencies(
    min_midi: int = TABLE_MIN_MIDI,
    max_midi: int = TABLE_MAX_MIDI,
    a4: float = A4_FREQ,
) -> Dict[str, float]:
    """Name -> frequency table for a MIDI range, ascending"""
    midi_notes = np.arange(min_midi, max_midi + 1)
    freqs = librosa.midi_to_hz(midi_notes) * (a4 / A4_FREQ)
    return {note_name(m): float(f) for m, f in zip(midi_notes, freqs)}


class NoteTable:
    """
    Fixed table of named pitches with nearest-note lookup.

    Nearest is by absolute distance in Hz, so between two notes the
    boundary sits at the arithmetic mean of their frequencies. Ties go to
    the lower note.
    """

    def __init__(self, note_frequencies: Optional[Dict[str, float]] = None):
        if note_frequencies is None:
            note_frequencies = build_note_frequencies()
        if not note_frequencies:
            raise ValueError("Note table is empty")

        ordered = sorted(note_frequencies.items(), key=lambda item: item[1])
        self.names = [name for name, _ in ordered]
        self.frequencies = np.array([freq for _, freq in ordered], dtype=np.float64)

    def __len__(self) -> int:
        return len(self.names)

    def frequency_of(self, name: str) -> float:
        return float(self.frequencies[self.names.index(name)])

    def closest_note(self, frequency: float) -> Optional[NoteMatch]:
        """
        Nearest named pitch for a frequency.

        Returns:
            NoteMatch, or None for frequency <= 0 or non-finite
        """
        if not math.isfinite(frequency) or frequency <= 0:
            return None

        idx = int(np.argmin(np.abs(self.frequencies - frequency)))
        reference = float(self.frequencies[idx])
        return NoteMatch(
            name=self.names[idx],
            cents=cents_between(frequency, reference),
            reference_frequency=reference,
        )


_DEFAULT_TABLE: Optional[NoteTable] = None


def closest_note(frequency: float) -> Optional[NoteMatch]:
    """Nearest note in the default C0-B8 table"""
    global _DEFAULT_TABLE
    if _DEFAULT_TABLE is None:
        _DEFAULT_TABLE = NoteTable()
    return _DEFAULT_TABLE.closest_note(frequency)
