"""
Chord symbol parsing and voicing.

Symbols are checked and spelled out with music21's harmony module. The
canonical spelling is letter-name with '#'/'b' accidentals and short
quality names ("Bbm7", "F#dim", "Cmaj7/E").
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from music21 import exceptions21, harmony

from score_editor.core.operations import from_music21_name

logger = logging.getLogger(__name__)

ROOT_PATTERN = re.compile(r"^([A-Ga-g])(#|b)?(.*)$")
NOTE_PATTERN = re.compile(r"^([A-Ga-g])(#|b)?$")
SUFFIX_PATTERN = re.compile(
    r"^(m|dim|aug|maj)?(\d{1,2})?((?:sus[24])?)((?:(?:add|b|#)\d{1,2})*)$"
)

# Longer spellings first
SUFFIX_ALIASES = [
    ("minor", "m"),
    ("major", "maj"),
    ("min", "m"),
    ("Δ7", "maj7"),
    ("Δ", "maj7"),
    ("M7", "maj7"),
    ("°7", "dim7"),
    ("°", "dim"),
    ("ø7", "m7b5"),
    ("ø", "m7b5"),
    ("+", "aug"),
    ("-", "m"),
]

# music21 chord kind -> (quality, extension)
CHORD_KINDS = {
    "major": ("", ""),
    "minor": ("m", ""),
    "diminished": ("dim", ""),
    "augmented": ("aug", ""),
    "dominant-seventh": ("", "7"),
    "major-seventh": ("", "maj7"),
    "minor-seventh": ("m", "7"),
    "diminished-seventh": ("dim", "7"),
    "half-diminished-seventh": ("m", "7"),
    "augmented-seventh": ("aug", "7"),
    "major-sixth": ("", "6"),
    "minor-sixth": ("m", "6"),
    "dominant-ninth": ("", "9"),
    "major-ninth": ("", "maj9"),
    "minor-ninth": ("m", "9"),
    "dominant-11th": ("", "11"),
    "dominant-13th": ("", "13"),
    "suspended-second": ("sus2", ""),
    "suspended-fourth": ("sus4", ""),
    "power": ("", "5"),
}

HIGH_ROOTS = {"G", "A", "B"}
MAX_VOICING_NOTES = 5


class ChordParseError(ValueError):
    """A chord symbol that cannot be read."""


@dataclass(frozen=True)
class ChordComponents:
    """The parts of a parsed chord symbol."""
    root: str
    quality: str = ""  # '', 'm', 'dim', 'aug', 'sus4', ...
    extension: str = ""  # '7', 'maj7', '9', ...
    alterations: Tuple[str, ...] = ()  # ('b5', '#9')
    bass: Optional[str] = None
    kind: str = ""  # music21 chordKind
    pitches: Tuple[str, ...] = ()  # pitch classes, root first


@dataclass(frozen=True)
class ParsedChord:
    symbol: str
    components: ChordComponents


def _note_name(text: str) -> Optional[str]:
    match = NOTE_PATTERN.match(text.strip())
    if not match:
        return None
    step, accidental = match.groups()
    return f"{step.upper()}{accidental or ''}"


def _clean_suffix(suffix: str) -> str:
    for alias, replacement in SUFFIX_ALIASES:
        suffix = suffix.replace(alias, replacement)
    if suffix == "maj":
        return ""
    return re.sub(r"sus(?![24])", "sus4", suffix)


def _realize(root: str, suffix: str) -> harmony.ChordSymbol:
    """music21 chord symbol in root position; music21 spells flats with '-'."""
    figure = f"{root[0]}{root[1:].replace('b', '-')}{suffix}"
    try:
        chord_symbol = harmony.ChordSymbol(figure)
    except (ValueError, exceptions21.Music21Exception) as e:
        raise ChordParseError(f"Unrecognized chord: {root}{suffix}") from e
    if not chord_symbol.pitches:
        raise ChordParseError(f"Unrecognized chord: {root}{suffix}")
    return chord_symbol


def parse_chord(text: str) -> ParsedChord:
    """
    Parse a chord symbol into its canonical spelling and components.

    Accepts the usual aliases ("Cmin7", "C-7", "CΔ", "C°", "Cø", "C+",
    "Csus") and an optional slash bass ("C/E").

    Args:
        text: Chord symbol as typed

    Returns:
        ParsedChord with the canonical symbol

    Raises:
        ChordParseError: If the symbol is empty or not a chord
    """
    trimmed = (text or "").strip()
    if not trimmed:
        raise ChordParseError("Enter a chord symbol")

    chord_part, bass = trimmed, None
    if "/" in trimmed:
        chord_part, bass_part = trimmed.split("/", 1)
        bass = _note_name(bass_part)
        if bass is None:
            raise ChordParseError(f"Invalid bass note: {bass_part!r}")

    match = ROOT_PATTERN.match(chord_part.strip())
    if not match:
        raise ChordParseError(f"Unrecognized chord root: {chord_part!r}")
    step, accidental, suffix = match.groups()
    root = f"{step.upper()}{accidental or ''}"
    suffix = _clean_suffix(suffix.strip())

    suffix_match = SUFFIX_PATTERN.match(suffix)
    if not suffix_match:
        raise ChordParseError(f"Unrecognized chord: {trimmed!r}")

    chord_symbol = _realize(root, suffix)
    kind = chord_symbol.chordKind or ""
    quality, extension = CHORD_KINDS.get(kind, (suffix_match.group(1) or "", suffix_match.group(2) or ""))
    alterations = tuple(re.findall(r"(?:b|#)\d{1,2}", suffix_match.group(4)))

    symbol = root + suffix + (f"/{bass}" if bass else "")
    components = ChordComponents(
        root=root,
        quality=quality,
        extension=extension,
        alterations=alterations,
        bass=bass,
        kind=kind,
        pitches=tuple(from_music21_name(p.name) for p in chord_symbol.pitches),
    )
    return ParsedChord(symbol=symbol, components=components)


def normalize_chord_symbol(text: str) -> str:
    """Canonical spelling of a chord symbol ("Dmin7" -> "Dm7")."""
    return parse_chord(text).symbol


def is_valid_chord(text: str) -> bool:
    try:
        parse_chord(text)
    except ChordParseError:
        return False
    return True


def get_chord_voicing(symbol: str) -> List[str]:
    """
    Spread a chord over a playable register for playback.

    The root sits in octave 2 for G, A and B roots and octave 3 otherwise,
    the third in octave 3, and the fifth and any extensions in octave 4.
    A slash bass is ignored. At most five notes are returned.

    Args:
        symbol: Chord symbol, e.g. "Cmaj7"

    Returns:
        Pitch strings such as ["C3", "E3", "G4", "B4"]; empty if the
        symbol is not a chord
    """
    try:
        parsed = parse_chord(symbol)
    except ChordParseError as e:
        logger.warning(f"No voicing for {symbol!r}: {e}")
        return []

    classes = parsed.components.pitches[:MAX_VOICING_NOTES]
    if not classes:
        return []

    root = classes[0]
    voicing = [f"{root}{2 if root[0] in HIGH_ROOTS else 3}"]
    if len(classes) > 1:
        voicing.append(f"{classes[1]}3")
    voicing.extend(f"{pc}4" for pc in classes[2:])
    return voicing
