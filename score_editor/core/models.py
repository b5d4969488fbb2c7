"""
Score data model.

Staff -> Measure -> ScoreEvent -> Note, plus a flat chord track. Every
entity is a frozen dataclass holding tuples, so a Score is an immutable
snapshot: commands build new instances along the edited path with
``dataclasses.replace`` and share everything else by reference.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

from score_editor.core.durations import (
    Duration,
    calculate_total_quants,
    duration_to_quants,
    quants_per_measure,
    quants_to_duration_sequence,
)
from score_editor.core.ids import IdGenerator, event_id, measure_id, note_id, staff_id


MIN_BPM = 10
MAX_BPM = 500
DEFAULT_BPM = 120

CLEFS = ("treble", "bass", "alto", "tenor")


def clamp_bpm(bpm: float) -> int:
    """Clamp a tempo into the supported [10, 500] range."""
    return int(max(MIN_BPM, min(MAX_BPM, bpm)))


@dataclass(frozen=True)
class Note:
    """A single pitch inside an event. ``pitch`` is None for rests."""
    id: str
    pitch: Optional[str]  # e.g. "C4", "F#5"
    accidental: Optional[str] = None
    tied: bool = False


@dataclass(frozen=True)
class Tuplet:
    """Tuplet membership of one event."""
    id: str
    ratio: Tuple[int, int]  # (actual notes, normal notes), 3:2 for a triplet
    group_size: int
    position: int
    base_duration: Duration = Duration.QUARTER


@dataclass(frozen=True)
class ScoreEvent:
    """One rhythmic slot: a chord of simultaneous notes, or a rest."""
    id: str
    duration: Duration
    dotted: bool = False
    is_rest: bool = False
    notes: Tuple[Note, ...] = ()
    tuplet: Optional[Tuplet] = None

    @property
    def quants(self) -> int:
        """Effective length in quants."""
        return duration_to_quants(self.duration, self.dotted, self.tuplet)


@dataclass(frozen=True)
class Measure:
    """A fixed-capacity time container."""
    id: str
    events: Tuple[ScoreEvent, ...] = ()
    is_pickup: bool = False

    @property
    def total_quants(self) -> int:
        return calculate_total_quants(self.events)


@dataclass(frozen=True)
class Staff:
    """One instrumental line."""
    clef: str = "treble"
    measures: Tuple[Measure, ...] = ()
    id: str = field(default_factory=staff_id)


@dataclass(frozen=True)
class ChordSymbol:
    """Harmonic annotation at a measure-local position."""
    id: str
    measure: int
    quant: int
    symbol: str


@dataclass(frozen=True)
class Score:
    """Top-level document."""
    title: str = "Untitled"
    bpm: int = DEFAULT_BPM
    key_signature: str = "C"
    time_signature: str = "4/4"
    staves: Tuple[Staff, ...] = ()
    chord_track: Tuple[ChordSymbol, ...] = ()

    @property
    def quants_per_measure(self) -> int:
        return quants_per_measure(self.time_signature)

    @property
    def num_measures(self) -> int:
        """Measure count of the reference staff."""
        return len(self.staves[0].measures) if self.staves else 0

    def __str__(self) -> str:
        return (
            f"Score('{self.title}', {len(self.staves)} staves, "
            f"{self.num_measures} measures)"
        )


# ---- Builders ----

def make_note_event(
    pitches: "str | Sequence[str]",
    duration: "str | Duration" = Duration.QUARTER,
    dotted: bool = False,
    id: Optional[str] = None,
    tied: bool = False,
    tuplet: Optional[Tuplet] = None,
) -> ScoreEvent:
    """Build a note (or chord) event from one or more pitch strings."""
    if isinstance(pitches, str):
        pitches = [pitches]
    if not pitches:
        raise ValueError("A note event needs at least one pitch")

    return ScoreEvent(
        id=id or event_id(),
        duration=Duration.parse(duration),
        dotted=dotted,
        is_rest=False,
        notes=tuple(Note(id=note_id(), pitch=p, tied=tied) for p in pitches),
        tuplet=tuplet,
    )


def make_rest_event(
    duration: "str | Duration" = Duration.QUARTER,
    dotted: bool = False,
    id: Optional[str] = None,
) -> ScoreEvent:
    """Build a rest. The single pitchless note id is ``<event id>-rest``."""
    id = id or event_id()
    return ScoreEvent(
        id=id,
        duration=Duration.parse(duration),
        dotted=dotted,
        is_rest=True,
        notes=(Note(id=f"{id}-rest", pitch=None),),
    )


def create_measure(
    capacity: int = 64,
    id_generator: IdGenerator = event_id,
    id: Optional[str] = None,
) -> Measure:
    """A measure filled with rests up to ``capacity``."""
    events = tuple(
        make_rest_event(part.duration, part.dotted, id=id_generator())
        for part in quants_to_duration_sequence(capacity)
    )
    return Measure(id=id or measure_id(), events=events)


def create_default_score(
    title: str = "Untitled",
    num_measures: int = 2,
    num_staves: int = 1,
    time_signature: str = "4/4",
    key_signature: str = "C",
    bpm: int = DEFAULT_BPM,
    clef: str = "treble",
) -> Score:
    """A new score with rest-filled measures on every staff."""
    capacity = quants_per_measure(time_signature)
    staves = []
    for staff_index in range(num_staves):
        staff_clef = clef if staff_index == 0 else "bass"
        measures = tuple(create_measure(capacity) for _ in range(num_measures))
        staves.append(Staff(clef=staff_clef, measures=measures))

    return Score(
        title=title,
        bpm=clamp_bpm(bpm),
        key_signature=key_signature,
        time_signature=time_signature,
        staves=tuple(staves),
    )


def with_measure(score: Score, staff_index: int, measure_index: int, measure: Measure) -> Score:
    """Copy-on-write replacement of one measure."""
    staff = score.staves[staff_index]
    measures = list(staff.measures)
    measures[measure_index] = measure
    staves = list(score.staves)
    staves[staff_index] = replace(staff, measures=tuple(measures))
    return replace(score, staves=tuple(staves))


def with_events(
    score: Score,
    staff_index: int,
    measure_index: int,
    events: Sequence[ScoreEvent],
) -> Score:
    """Copy-on-write replacement of one measure's event list."""
    measure = score.staves[staff_index].measures[measure_index]
    return with_measure(score, staff_index, measure_index, replace(measure, events=tuple(events)))


# ---- Invariants ----

def validate_score(score: Score, check_capacity: bool = True) -> List[str]:
    """
    Report structural invariant violations.

    Returns:
        Human-readable problems; an empty list means the score is sound.
    """
    problems: List[str] = []

    if not MIN_BPM <= score.bpm <= MAX_BPM:
        problems.append(f"bpm {score.bpm} outside [{MIN_BPM}, {MAX_BPM}]")
    if not score.staves:
        problems.append("score has no staves")

    capacity = score.quants_per_measure

    for s_idx, staff in enumerate(score.staves):
        if staff.clef not in CLEFS:
            problems.append(f"staff {s_idx}: unknown clef {staff.clef!r}")

        for m_idx, measure in enumerate(staff.measures):
            where = f"staff {s_idx} measure {m_idx}"
            problems.extend(f"{where}: {p}" for p in _validate_events(measure.events))

            if check_capacity and not measure.is_pickup and measure.total_quants != capacity:
                problems.append(
                    f"{where}: holds {measure.total_quants} quants, expected {capacity}"
                )

    keys = [(c.measure, c.quant) for c in score.chord_track]
    if keys != sorted(keys):
        problems.append("chord track is not sorted")
    if len(set(keys)) != len(keys):
        problems.append("chord track has more than one chord at a position")

    return problems


def _validate_events(events: Sequence[ScoreEvent]) -> List[str]:
    problems = []

    event_ids = [e.id for e in events]
    if len(set(event_ids)) != len(event_ids):
        problems.append("duplicate event ids")

    groups = {}
    for event in events:
        if event.is_rest:
            if len(event.notes) != 1 or event.notes[0].pitch is not None:
                problems.append(f"rest {event.id} must hold exactly one pitchless note")
        elif not event.notes:
            problems.append(f"event {event.id} has no notes")

        note_ids = [n.id for n in event.notes]
        if len(set(note_ids)) != len(note_ids):
            problems.append(f"event {event.id} has duplicate note ids")

        if event.tuplet is not None:
            groups.setdefault(event.tuplet.id, []).append(event.tuplet)

    for group_id, members in groups.items():
        first = members[0]
        shape = (first.ratio, first.group_size, first.base_duration)
        if any((t.ratio, t.group_size, t.base_duration) != shape for t in members):
            problems.append(f"tuplet {group_id} members disagree on ratio/size/base")
        positions = sorted(t.position for t in members)
        if positions != list(range(first.group_size)):
            problems.append(f"tuplet {group_id} positions {positions} are not 0..{first.group_size - 1}")

    return problems
