"""
Insertion and overwrite planning.

Pure functions that work out what has to change in a measure before a new
event goes in: which events conflict and must go, where in the event list
the new event lands, which rests fill the gaps, and how much of a note
spills over the barline. Nothing here dispatches commands.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set, Tuple

from score_editor.core.durations import (
    Duration,
    DurationPart,
    duration_to_quants,
    quants_to_duration_sequence,
)
from score_editor.core.ids import IdGenerator, event_id
from score_editor.core.models import Measure, ScoreEvent, make_rest_event
from score_editor.core.queries import event_start_quant, remaining_capacity


@dataclass
class ModifyPlan:
    """A partially overlapped event to truncate. Reserved; never produced."""
    id: str
    new_duration: Duration
    new_dotted: bool
    start_quant: int


@dataclass
class OverwritePlan:
    """Events to clear before inserting over a quant range."""
    to_remove: List[str] = field(default_factory=list)
    to_modify: List[ModifyPlan] = field(default_factory=list)


@dataclass
class EventSpec:
    """Shape of an event to insert."""
    duration: Duration
    dotted: bool = False
    tied: bool = False

    @property
    def quants(self) -> int:
        return duration_to_quants(self.duration, self.dotted)


@dataclass
class CursorTarget:
    """Where the selection should go after an insertion."""
    staff_index: int
    measure_index: int
    event_id: Optional[str] = None
    note_id: Optional[str] = None


@dataclass
class InsertionPlan:
    """Everything needed to carry out one insertion in one measure."""
    events_to_insert: List[EventSpec]
    events_to_remove: List[str]
    gap_rests: List[DurationPart]
    insert_index: int
    cursor_target: CursorTarget
    overflow_quants: int = 0
    warnings: List[str] = field(default_factory=list)
    info: List[str] = field(default_factory=list)


@dataclass
class OverflowPlan:
    """Continuation of a note that did not fit in its measure."""
    next_measure_index: int
    needs_new_measure: bool
    event_spec: EventSpec
    info: List[str] = field(default_factory=list)


def calculate_insertion_quant(measure: Measure, target_event_id: Optional[str]) -> Optional[int]:
    """Start quant of ``target_event_id``, or None when absent or not given."""
    if not target_event_id:
        return None
    return event_start_quant(measure, target_event_id)


def get_overwrite_plan(measure: Measure, start_quant: int, duration_quants: int) -> OverwritePlan:
    """
    Find events that conflict with [start_quant, start_quant + duration_quants).

    Overlap is half-open: an event touching the range only at a boundary
    is left alone. Any overlap, partial or full, removes the event
    entirely.
    """
    end_quant = start_quant + duration_quants
    plan = OverwritePlan()

    current = 0
    for event in measure.events:
        event_end = current + event.quants
        if current < end_quant and event_end > start_quant:
            plan.to_remove.append(event.id)
        current = event_end

    return plan


def get_remaining_capacity(measure: Measure, start_quant: int, max_quants: int = 64) -> int:
    """How much new material fits after ``start_quant``."""
    return remaining_capacity(measure, start_quant, max_quants)


def create_rests_for_range(
    duration_quants: int,
    id_generator: IdGenerator = event_id,
) -> List[ScoreEvent]:
    """
    Rests spanning exactly ``duration_quants``.

    Each rest gets a fresh id from ``id_generator`` and a note id of
    ``<id>-rest``.
    """
    return [
        make_rest_event(part.duration, part.dotted, id=id_generator())
        for part in quants_to_duration_sequence(duration_quants)
    ]


def compute_start_quant(measure: Measure, selected_event_id: Optional[str]) -> int:
    """
    Insertion point for the current selection.

    With a selected event the new material starts where it starts;
    otherwise it goes after the last event.
    """
    if selected_event_id:
        return calculate_insertion_quant(measure, selected_event_id) or 0
    return measure.total_quants


def compute_insert_position(measure: Measure, target_quant: int) -> Tuple[int, List[DurationPart]]:
    """
    Event-list index for ``target_quant`` plus rests to reach it.

    Returns:
        (insert_index, gap_rests) where gap_rests is non-empty only when
        the measure's content ends before ``target_quant``.
    """
    insert_index = 0
    scanned = 0
    while insert_index < len(measure.events) and scanned < target_quant:
        scanned += measure.events[insert_index].quants
        insert_index += 1

    gap_rests: List[DurationPart] = []
    if scanned < target_quant:
        gap_rests = quants_to_duration_sequence(target_quant - scanned)

    return insert_index, gap_rests


def compute_cursor_target(
    measure: Measure,
    staff_index: int,
    measure_index: int,
    insert_index: int,
    deleted_ids: Set[str],
) -> CursorTarget:
    """First surviving event at or after ``insert_index``; none means append."""
    for event in measure.events[insert_index:]:
        if event.id not in deleted_ids:
            return CursorTarget(
                staff_index=staff_index,
                measure_index=measure_index,
                event_id=event.id,
                note_id=event.notes[0].id if event.notes else None,
            )
    return CursorTarget(staff_index=staff_index, measure_index=measure_index)


def plan_insertion(
    measure: Measure,
    spec: EventSpec,
    start_quant: int,
    staff_index: int = 0,
    measure_index: int = 0,
    max_quants: int = 64,
    overwrite: bool = True,
) -> InsertionPlan:
    """
    Plan a single insertion into ``measure``.

    A note longer than the room left is split: the head is broken into
    tied parts that fill the measure and the rest is reported as
    ``overflow_quants`` for the next measure.
    """
    note_quants = spec.quants
    capacity = get_remaining_capacity(measure, start_quant, max_quants)
    warnings: List[str] = []
    info: List[str] = []

    events_to_insert: List[EventSpec] = []
    overflow = 0

    if note_quants > capacity:
        for part in quants_to_duration_sequence(capacity):
            events_to_insert.append(EventSpec(part.duration, part.dotted, tied=True))
        if events_to_insert:
            info.append("Note split across measures")
        overflow = note_quants - capacity
    else:
        events_to_insert.append(spec)

    to_remove: List[str] = []
    if overwrite and events_to_insert:
        insert_quants = sum(e.quants for e in events_to_insert)
        to_remove = get_overwrite_plan(measure, start_quant, insert_quants).to_remove
        if to_remove:
            warnings.append(f"Overwrote {len(to_remove)} event(s)")

    insert_index, gap_rests = compute_insert_position(measure, start_quant)
    cursor = compute_cursor_target(
        measure, staff_index, measure_index, insert_index, set(to_remove)
    )

    return InsertionPlan(
        events_to_insert=events_to_insert,
        events_to_remove=to_remove,
        gap_rests=gap_rests,
        insert_index=insert_index,
        cursor_target=cursor,
        overflow_quants=overflow,
        warnings=warnings,
        info=info,
    )


def plan_overflow(
    measure_count: int,
    measure_index: int,
    overflow_quants: int,
) -> OverflowPlan:
    """Where the spilled part of a note continues."""
    next_index = measure_index + 1
    needs_new = next_index >= measure_count
    info = [f"Created measure {next_index + 1}"] if needs_new else []

    parts = quants_to_duration_sequence(overflow_quants)
    first = parts[0] if parts else DurationPart(Duration.QUARTER, False, 16)

    return OverflowPlan(
        next_measure_index=next_index,
        needs_new_measure=needs_new,
        event_spec=EventSpec(first.duration, first.dotted, tied=False),
        info=info,
    )


def fill_measure(
    events: Sequence[ScoreEvent],
    capacity: int,
    id_generator: IdGenerator = event_id,
) -> Tuple[ScoreEvent, ...]:
    """Pad ``events`` with trailing rests up to ``capacity``."""
    total = sum(e.quants for e in events)
    if total >= capacity:
        return tuple(events)
    return tuple(events) + tuple(create_rests_for_range(capacity - total, id_generator))
