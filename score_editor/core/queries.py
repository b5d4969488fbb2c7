"""
Read-only queries over a Score.

Shared by the command engine and by layout/export consumers. Nothing here
mutates or raises for a missing target; lookups return None, -1 or an
empty result instead.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Set, Tuple

from score_editor.core.models import ChordSymbol, Measure, Note, Score, ScoreEvent, Staff


def get_staff(score: Score, staff_index: int) -> Optional[Staff]:
    if 0 <= staff_index < len(score.staves):
        return score.staves[staff_index]
    return None


def get_measure(score: Score, staff_index: int, measure_index: int) -> Optional[Measure]:
    staff = get_staff(score, staff_index)
    if staff is None or not 0 <= measure_index < len(staff.measures):
        return None
    return staff.measures[measure_index]


def find_event_index(measure: Measure, event_id: str) -> int:
    for index, event in enumerate(measure.events):
        if event.id == event_id:
            return index
    return -1


def find_event(measure: Measure, event_id: str) -> Optional[ScoreEvent]:
    index = find_event_index(measure, event_id)
    return measure.events[index] if index != -1 else None


def find_note_index(event: ScoreEvent, note_id: str) -> int:
    for index, note in enumerate(event.notes):
        if note.id == note_id:
            return index
    return -1


def find_note(event: ScoreEvent, note_id: str) -> Optional[Note]:
    index = find_note_index(event, note_id)
    return event.notes[index] if index != -1 else None


def event_start_quant(measure: Measure, event_id: str) -> Optional[int]:
    """Start of an event within its measure, or None if absent."""
    quant = 0
    for event in measure.events:
        if event.id == event_id:
            return quant
        quant += event.quants
    return None


def measure_quants(measure: Measure) -> int:
    return measure.total_quants


def remaining_capacity(measure: Measure, from_quant: int, max_quants: int = 64) -> int:
    """
    Room left in ``measure`` after ``from_quant``.

    Measured against the capacity rather than the current content, so a
    measure of ``max_quants`` always has ``max_quants - from_quant`` left.
    """
    return max(0, max_quants - from_quant)


def event_at_quant(measure: Measure, quant: int) -> Optional[ScoreEvent]:
    """The event whose half-open span [start, end) contains ``quant``."""
    start = 0
    for event in measure.events:
        end = start + event.quants
        if start <= quant < end:
            return event
        start = end
    return None


def tuplet_group_indices(measure: Measure, event_index: int) -> List[int]:
    """
    Indices of every event in the same tuplet group as ``event_index``.

    The expected window is derived from the member's position and the
    group size; members that drifted outside it after earlier edits are
    still matched by tuplet id.
    """
    if not 0 <= event_index < len(measure.events):
        return []
    tuplet = measure.events[event_index].tuplet
    if tuplet is None:
        return []

    start = event_index - tuplet.position
    window = range(max(0, start), min(len(measure.events), start + tuplet.group_size))
    indices = [
        i for i in window
        if measure.events[i].tuplet is not None and measure.events[i].tuplet.id == tuplet.id
    ]
    for i, event in enumerate(measure.events):
        if i not in indices and event.tuplet is not None and event.tuplet.id == tuplet.id:
            indices.append(i)
    return sorted(indices)


# ---- Chord track ----

def find_chord_index(chord_track: Sequence[ChordSymbol], chord_id: str) -> int:
    for index, chord in enumerate(chord_track):
        if chord.id == chord_id:
            return index
    return -1


def find_chord_by_id(chord_track: Sequence[ChordSymbol], chord_id: str) -> Optional[ChordSymbol]:
    index = find_chord_index(chord_track, chord_id)
    return chord_track[index] if index != -1 else None


def find_chord_at(chord_track: Sequence[ChordSymbol], measure: int, quant: int) -> Optional[ChordSymbol]:
    for chord in chord_track:
        if chord.measure == measure and chord.quant == quant:
            return chord
    return None


def find_chords_in_measure(chord_track: Sequence[ChordSymbol], measure_index: int) -> List[ChordSymbol]:
    return [c for c in chord_track if c.measure == measure_index]


def valid_chord_positions(score: Score) -> Set[Tuple[int, int]]:
    """
    Positions (measure, quant) where a chord may be anchored.

    A position is valid when some staff has an event, note or rest,
    starting there.
    """
    positions: Set[Tuple[int, int]] = set()
    for staff in score.staves:
        for m_idx, measure in enumerate(staff.measures):
            quant = 0
            for event in measure.events:
                positions.add((m_idx, quant))
                quant += event.quants
    return positions


def find_orphaned_chords(before: Score, after: Score) -> List[str]:
    """Ids of chords in ``before`` that lost their anchor in ``after``."""
    valid = valid_chord_positions(after)
    return [c.id for c in before.chord_track if (c.measure, c.quant) not in valid]
