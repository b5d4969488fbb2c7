"""
Duration arithmetic.

Converts symbolic note durations (whole through 64th, dotted, tuplet-scaled)
to integer quants and back. A quarter note is 16 quants, so a 4/4 measure
holds 64 quants and nothing is shorter than one quant.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from typing import Iterable, List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from score_editor.core.models import ScoreEvent, Tuplet


QUANTS_PER_QUARTER = 16
QUANTS_PER_WHOLE = QUANTS_PER_QUARTER * 4


class Duration(Enum):
    """Note duration types."""
    WHOLE = "whole"
    HALF = "half"
    QUARTER = "quarter"
    EIGHTH = "eighth"
    SIXTEENTH = "sixteenth"
    THIRTYSECOND = "thirtysecond"
    SIXTYFOURTH = "sixtyfourth"

    @property
    def quants(self) -> int:
        """Undotted length in quants."""
        return _BASE_QUANTS[self]

    @property
    def code(self) -> str:
        """Single-letter entry code (w, h, q, e, s, t, x)."""
        return _CODES[self]

    @classmethod
    def from_code(cls, code: str) -> Optional["Duration"]:
        """Get duration from code letter."""
        code = code.lower().rstrip(".")
        for d in cls:
            if d.code == code:
                return d
        return None

    @classmethod
    def parse(cls, value: "str | Duration") -> "Duration":
        """Accept a Duration, its name or its code letter."""
        if isinstance(value, Duration):
            return value
        try:
            return cls(value.lower())
        except (ValueError, AttributeError):
            pass
        found = cls.from_code(value) if isinstance(value, str) else None
        if found is None:
            raise ValueError(f"Unknown duration: {value!r}")
        return found

    def to_music21_type(self) -> str:
        """Convert to music21 duration type."""
        mapping = {
            Duration.WHOLE: "whole",
            Duration.HALF: "half",
            Duration.QUARTER: "quarter",
            Duration.EIGHTH: "eighth",
            Duration.SIXTEENTH: "16th",
            Duration.THIRTYSECOND: "32nd",
            Duration.SIXTYFOURTH: "64th",
        }
        return mapping[self]


_BASE_QUANTS = {
    Duration.WHOLE: 64,
    Duration.HALF: 32,
    Duration.QUARTER: 16,
    Duration.EIGHTH: 8,
    Duration.SIXTEENTH: 4,
    Duration.THIRTYSECOND: 2,
    Duration.SIXTYFOURTH: 1,
}

_CODES = {
    Duration.WHOLE: "w",
    Duration.HALF: "h",
    Duration.QUARTER: "q",
    Duration.EIGHTH: "e",
    Duration.SIXTEENTH: "s",
    Duration.THIRTYSECOND: "t",
    Duration.SIXTYFOURTH: "x",
}


@dataclass(frozen=True)
class DurationPart:
    """One representable duration produced by a quant breakdown."""
    duration: Duration
    dotted: bool
    quants: int


# Largest first; the greedy breakdown walks this list in order.
QUANT_BREAKDOWN: Tuple[DurationPart, ...] = (
    DurationPart(Duration.WHOLE, False, 64),
    DurationPart(Duration.HALF, True, 48),
    DurationPart(Duration.HALF, False, 32),
    DurationPart(Duration.QUARTER, True, 24),
    DurationPart(Duration.QUARTER, False, 16),
    DurationPart(Duration.EIGHTH, True, 12),
    DurationPart(Duration.EIGHTH, False, 8),
    DurationPart(Duration.SIXTEENTH, True, 6),
    DurationPart(Duration.SIXTEENTH, False, 4),
    DurationPart(Duration.THIRTYSECOND, True, 3),
    DurationPart(Duration.THIRTYSECOND, False, 2),
    DurationPart(Duration.SIXTYFOURTH, False, 1),
)


def duration_to_quants(
    duration: "str | Duration",
    dotted: bool = False,
    tuplet: Optional["Tuplet"] = None,
) -> int:
    """
    Calculate the length of a note in quants.

    Args:
        duration: Symbolic duration (name, code letter or Duration)
        dotted: Whether the note is dotted (x1.5, rounded down)
        tuplet: Optional tuplet metadata; scales by ratio[1] / ratio[0]

    Returns:
        Length in quants. Tuplet scaling truncates, so a triplet
        quarter is floor(16 * 2 / 3) = 10.
    """
    base = Duration.parse(duration).quants
    value = base * 3 // 2 if dotted else base

    if tuplet is not None:
        actual, normal = tuplet.ratio
        return value * normal // actual

    return value


def quants_to_duration_sequence(total_quants: int) -> List[DurationPart]:
    """
    Decompose a quant span into representable durations.

    Greedy: repeatedly takes the largest duration that still fits. The
    parts always sum to ``total_quants``.

    Args:
        total_quants: Span to decompose (>= 0)

    Returns:
        Ordered list of DurationPart, empty for 0
    """
    if total_quants < 0:
        raise ValueError(f"Cannot decompose a negative span: {total_quants}")

    remaining = total_quants
    parts: List[DurationPart] = []

    for option in QUANT_BREAKDOWN:
        while remaining >= option.quants:
            parts.append(option)
            remaining -= option.quants
        if remaining == 0:
            break

    return parts


def calculate_total_quants(events: Iterable["ScoreEvent"]) -> int:
    """Total length of a sequence of events in quants."""
    return sum(duration_to_quants(e.duration, e.dotted, e.tuplet) for e in events)


_TIME_SIGNATURE_RE = re.compile(r"^\s*(\d+)\s*/\s*(\d+)\s*$")


def parse_time_signature(time_signature: str) -> Tuple[int, int]:
    """Parse a time signature string like '4/4' or '6/8'."""
    match = _TIME_SIGNATURE_RE.match(time_signature or "")
    if not match:
        raise ValueError(f"Malformed time signature: {time_signature!r}")

    numerator, denominator = int(match.group(1)), int(match.group(2))
    if numerator <= 0:
        raise ValueError(f"Time signature needs at least one beat: {time_signature!r}")
    if denominator <= 0 or denominator > QUANTS_PER_WHOLE or denominator & (denominator - 1):
        raise ValueError(f"Unsupported beat unit in time signature: {time_signature!r}")

    return numerator, denominator


def quants_per_measure(time_signature: str) -> int:
    """
    Measure capacity for a time signature.

    4/4 -> 64, 3/4 -> 48, 6/8 -> 48, 2/2 -> 64.
    """
    numerator, denominator = parse_time_signature(time_signature)
    return numerator * (QUANTS_PER_WHOLE // denominator)


def to_quarter_length(
    duration: "str | Duration",
    dotted: bool = False,
    tuplet: Optional["Tuplet"] = None,
) -> Fraction:
    """
    Exact music21 quarterLength for a symbolic duration.

    Unlike the quant value this is not truncated, so exporters can hand it
    straight to music21.
    """
    base = Fraction(Duration.parse(duration).quants, QUANTS_PER_QUARTER)
    if dotted:
        base *= Fraction(3, 2)
    if tuplet is not None:
        actual, normal = tuplet.ratio
        base *= Fraction(normal, actual)
    return base
