"""
Pitch operations.

Thin helpers over music21 for the pitch strings stored in the score
("C4", "F#5", "Bb3"). music21 spells flats with '-', so names are
translated on the way in and out.
"""

from __future__ import annotations

import re
from typing import List, Tuple

from music21 import pitch

from score_editor.core.durations import QUANT_BREAKDOWN

_PITCH_RE = re.compile(r"^([A-Ga-g])(##|#|bb|b|--|-|n)?(\d+)$")


def to_music21_name(pitch_name: str) -> str:
    """
    Convert a score pitch string to music21 spelling.

    Raises:
        ValueError: If the string is not a note name with an octave
    """
    match = _PITCH_RE.match(pitch_name.strip()) if pitch_name else None
    if not match:
        raise ValueError(f"Invalid pitch: {pitch_name!r}")

    step, accidental, octave = match.groups()
    accidental = (accidental or "").replace("b", "-").replace("n", "")
    return f"{step.upper()}{accidental}{octave}"


def from_music21_name(name_with_octave: str) -> str:
    """Convert music21 spelling ("B-3") back to a score pitch ("Bb3")."""
    return name_with_octave.replace("-", "b")


def is_valid_pitch(pitch_name: str) -> bool:
    try:
        to_music21_name(pitch_name)
    except ValueError:
        return False
    return True


def pitch_to_midi(pitch_name: str) -> int:
    """
    Convert pitch name to MIDI number.

    Args:
        pitch_name: Pitch like "C4", "F#5"

    Returns:
        MIDI note number (0-127)
    """
    return pitch.Pitch(to_music21_name(pitch_name)).midi


def midi_to_pitch(midi_number: int) -> str:
    """
    Convert MIDI number to pitch name.

    Args:
        midi_number: MIDI note number (0-127)

    Returns:
        Pitch name like "C4"
    """
    p = pitch.Pitch(midi=midi_number)
    return from_music21_name(p.nameWithOctave)


def pitch_frequency(pitch_name: str) -> float:
    """Frequency in Hz (A4 = 440)."""
    return pitch.Pitch(to_music21_name(pitch_name)).frequency


def transpose_pitch(pitch_name: str, semitones: int) -> str:
    """
    Transpose a pitch by a number of semitones.

    Args:
        pitch_name: Pitch like "C4"
        semitones: Positive = up, negative = down

    Returns:
        Transposed pitch name
    """
    p = pitch.Pitch(to_music21_name(pitch_name))
    return from_music21_name(p.transpose(semitones).nameWithOctave)


def get_duration_types() -> List[Tuple[str, int]]:
    """
    Get list of representable note durations.

    Returns:
        List of (duration_name, quants) tuples, longest first
    """
    return [
        (f"dotted {part.duration.value}" if part.dotted else part.duration.value, part.quants)
        for part in QUANT_BREAKDOWN
    ]
