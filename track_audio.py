#!/usr/bin/env python3
"""
Offline Pitch Tracking Tool

Runs the real-time voice pitch tracker over a recording, frame by frame,
as if the audio were arriving from a microphone. Useful for tuning the
tracker thresholds against known takes.

Usage:
    python track_audio.py take.wav
    python track_audio.py take.wav --preset low_voice
    python track_audio.py take.wav --hop 512 -o pitch.json
"""

import argparse
import json
import sys
from dataclasses import replace
from typing import List, Optional

import numpy as np
import librosa

from music_theory import NoteTable
from pitch_contour import PitchContour
from realtime_pitch_tracker import (
    PitchTrackerConfig,
    RealtimePitchTracker,
    TrackedPitch,
    frames_from_signal,
)

PRESETS = {
    'default': PitchTrackerConfig.default,
    'low_voice': PitchTrackerConfig.low_voice,
    'responsive': PitchTrackerConfig.responsive,
    'strict': PitchTrackerConfig.strict,
}


def track_file(
    audio_path: str,
    config: Optional[PitchTrackerConfig] = None,
    sr: int = 44100,
    hop_length: int = 1024,
    verbose: bool = True,
) -> List[dict]:
    """
    Track pitch through an audio file.

    Args:
        audio_path: Path to audio file
        config: Tracker configuration
        sr: Sample rate to load at
        hop_length: Samples between frames
        verbose: Print per-frame output

    Returns:
        One dict per frame with time, pitch and nearest note
    """
    config = config or PitchTrackerConfig.default()

    if verbose:
        print(f"📂 Loading: {audio_path}")
    y, sr = librosa.load(audio_path, sr=sr, mono=True)
    if verbose:
        print(f"   Duration: {len(y) / sr:.2f}s, SR: {sr}")

    tracker = RealtimePitchTracker(config)
    contour = PitchContour()
    notes = NoteTable()

    rows = []
    for frame in frames_from_signal(y, sr, config.sample_window_size, hop_length):
        tracked: TrackedPitch = tracker.process_frame(frame)
        contour.add(tracked, frame.timestamp)

        row = {'time': frame.timestamp, **tracked.to_dict(), 'note': None, 'cents': None}
        match = notes.closest_note(tracked.frequency)
        if match is not None:
            row['note'] = match.name
            row['cents'] = match.cents
        rows.append(row)

        if verbose and tracked.is_voiced:
            gap = " (after gap)" if tracked.is_after_gap else ""
            print(f"  {frame.timestamp:7.3f}s  {tracked.frequency:7.1f} Hz  "
                  f"{row['note']:>4s} {row['cents']:+4d}c  "
                  f"clarity={tracked.clarity:.2f}{gap}")

    if verbose:
        n_voiced = sum(1 for r in rows if r['frequency'] > 0)
        print(f"\n🎤 {len(rows)} frames, {n_voiced} voiced "
              f"({100 * n_voiced / max(1, len(rows)):.1f}%), "
              f"{len(contour.segments())} phrases")
        voiced = contour.frequencies()
        if len(voiced):
            low = notes.closest_note(float(np.min(voiced)))
            high = notes.closest_note(float(np.max(voiced)))
            print(f"   Range: {low.name} - {high.name}")

    return rows


def main():
    parser = argparse.ArgumentParser(description="Offline run of the real-time voice pitch tracker")
    parser.add_argument("audio_path", help="Path to audio file")
    parser.add_argument("--preset", default="default", choices=sorted(PRESETS))
    parser.add_argument("--sr", type=int, default=44100, help="Sample rate to load at")
    parser.add_argument("--hop", type=int, default=1024, help="Hop length in samples")
    parser.add_argument("--gap-ms", type=float, help="Override gap threshold (ms)")
    parser.add_argument("--output", "-o", help="Output JSON file")
    parser.add_argument("--quiet", "-q", action="store_true", help="Less output")

    args = parser.parse_args()

    config = PRESETS[args.preset]()
    if args.gap_ms is not None:
        config = replace(config, gap_threshold_ms=args.gap_ms)

    try:
        rows = track_file(args.audio_path, config, sr=args.sr, hop_length=args.hop,
                          verbose=not args.quiet)
    except FileNotFoundError:
        print(f"Error: file not found: {args.audio_path}")
        sys.exit(1)

    if args.output:
        with open(args.output, 'w') as f:
            json.dump({"preset": args.preset, "frames": rows}, f, indent=2)
        print(f"\n💾 Saved to {args.output}")


if __name__ == "__main__":
    main()
