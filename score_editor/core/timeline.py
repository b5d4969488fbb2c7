"""
Audio timeline.

Flattens a score into timed note entries for a playback engine. Read-only:
nothing here changes the score.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from score_editor.core.durations import QUANTS_PER_QUARTER
from score_editor.core.models import DEFAULT_BPM, Score, Staff
from score_editor.core.operations import pitch_frequency, pitch_to_midi

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimelineEntry:
    """One sounding note."""
    time: float  # seconds from the start of the score
    pitch: str
    frequency: float  # Hz
    midi: int
    duration: float  # seconds
    measure_index: int
    quant: int  # start position within the measure
    staff_index: int


def seconds_per_quant(bpm: float) -> float:
    """Length of one quant at ``bpm`` quarter notes per minute."""
    return 60.0 / (bpm or DEFAULT_BPM) / QUANTS_PER_QUARTER


def _staff_entries(staff: Staff, staff_index: int, quant_seconds: float) -> List[TimelineEntry]:
    entries: List[TimelineEntry] = []
    # pitch -> index of the entry a tie is still extending
    open_ties: Dict[str, int] = {}
    offset = 0

    for m_idx, measure in enumerate(staff.measures):
        local = 0
        for event in measure.events:
            length = event.quants
            continuing: Dict[str, int] = {}

            if not event.is_rest:
                for note in event.notes:
                    if note.pitch is None:
                        continue
                    if note.pitch in open_ties:
                        index = open_ties[note.pitch]
                        entry = entries[index]
                        entries[index] = replace(entry, duration=entry.duration + length * quant_seconds)
                    else:
                        index = len(entries)
                        entries.append(TimelineEntry(
                            time=(offset + local) * quant_seconds,
                            pitch=note.pitch,
                            frequency=pitch_frequency(note.pitch),
                            midi=pitch_to_midi(note.pitch),
                            duration=length * quant_seconds,
                            measure_index=m_idx,
                            quant=local,
                            staff_index=staff_index,
                        ))
                    if note.tied:
                        continuing[note.pitch] = index

            # A tie only carries into the directly following event.
            open_ties = continuing
            local += length
        offset += local

    return entries


def build_timeline(score: Score, staff_index: Optional[int] = None) -> List[TimelineEntry]:
    """
    Build the playback timeline of a score.

    Tied notes of the same pitch merge into a single entry. Rests produce
    no entries but still advance time.

    Args:
        score: Score to flatten
        staff_index: Only this staff, or every staff when None

    Returns:
        Entries sorted by start time, then staff
    """
    quant_seconds = seconds_per_quant(score.bpm)

    if staff_index is None:
        staves: List[Tuple[int, Staff]] = list(enumerate(score.staves))
    elif 0 <= staff_index < len(score.staves):
        staves = [(staff_index, score.staves[staff_index])]
    else:
        logger.warning(f"No staff {staff_index}; timeline is empty")
        return []

    entries: List[TimelineEntry] = []
    for s_idx, staff in staves:
        entries.extend(_staff_entries(staff, s_idx, quant_seconds))

    entries.sort(key=lambda e: (e.time, e.staff_index))
    return entries


def total_duration(score: Score) -> float:
    """Length of the longest staff in seconds."""
    quant_seconds = seconds_per_quant(score.bpm)
    longest = max(
        (sum(m.total_quants for m in staff.measures) for staff in score.staves),
        default=0,
    )
    return longest * quant_seconds
