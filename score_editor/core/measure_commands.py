"""
Measure-level commands: adding and deleting measures, and changing the
time signature (which reflows every staff across the new barlines).
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional, Sequence

from score_editor.core.chord_track import from_global_quant, global_quant, shift_chords, sort_chord_track
from score_editor.core.commands import (
    Command,
    CommandResult,
    CommandValidationError,
    InsertedItem,
    RemovedMeasures,
    ScoreSnapshot,
    UndoRecord,
    require_index,
)
from score_editor.core.durations import parse_time_signature, quants_per_measure, quants_to_duration_sequence
from score_editor.core.ids import IdGenerator, measure_id, sequential_ids
from score_editor.core.insertion import create_rests_for_range
from score_editor.core.models import Measure, Score, ScoreEvent, create_measure, make_rest_event

logger = logging.getLogger(__name__)


def _split_event(
    event: ScoreEvent,
    parts_quants: int,
    first_id: str,
    id_generator: IdGenerator,
    tie_last: bool,
) -> List[ScoreEvent]:
    """Pieces of ``event`` covering ``parts_quants``; all but the last are tied."""
    parts = quants_to_duration_sequence(parts_quants)
    pieces = []
    for i, part in enumerate(parts):
        piece_id = first_id if i == 0 else id_generator()
        tied = tie_last if i == len(parts) - 1 else True
        if event.is_rest:
            pieces.append(make_rest_event(part.duration, part.dotted, id=piece_id))
        else:
            pieces.append(replace(
                event,
                id=piece_id,
                duration=part.duration,
                dotted=part.dotted,
                notes=tuple(replace(n, tied=tied) for n in event.notes),
            ))
    return pieces


def reflow_measures(
    measures: Sequence[Measure],
    capacity: int,
    id_generator: IdGenerator,
) -> List[Measure]:
    """
    Redistribute events into measures of ``capacity`` quants.

    Events crossing a barline are split into tied pieces (rests are split
    untied). Tuplet members are never split; one that does not fit moves
    to the next measure and the gap is filled with rests. Every measure
    but a leading pickup ends up exactly at capacity. Existing measure ids
    are reused in order; extra measures draw theirs from ``id_generator``.
    """
    existing_ids = [m.id for m in measures]
    is_pickup = bool(measures) and measures[0].is_pickup
    pickup_limit = min(measures[0].total_quants, capacity) if is_pickup else capacity

    result: List[Measure] = []
    current: List[ScoreEvent] = []
    filled = 0

    def limit() -> int:
        return pickup_limit if is_pickup and not result else capacity

    def commit() -> None:
        nonlocal current, filled
        pickup = is_pickup and not result
        events = list(current)
        if not pickup:
            events += create_rests_for_range(max(0, capacity - filled), id_generator)
        index = len(result)
        mid = existing_ids[index] if index < len(existing_ids) else id_generator()
        result.append(Measure(id=mid, events=tuple(events), is_pickup=pickup))
        current, filled = [], 0

    for event in (e for m in measures for e in m.events):
        quants = event.quants

        if quants <= limit() - filled:
            current.append(event)
            filled += quants
            continue

        if event.tuplet is not None:
            if current:
                commit()
            current.append(event)
            filled += quants
            continue

        remaining = quants
        original_tie = any(n.tied for n in event.notes) and not event.is_rest
        piece_id = event.id
        while remaining > 0:
            available = limit() - filled
            if available <= 0:
                commit()
                continue
            chunk = min(remaining, available)
            remaining -= chunk
            pieces = _split_event(
                event, chunk, piece_id, id_generator,
                tie_last=original_tie if remaining == 0 else not event.is_rest,
            )
            current.extend(pieces)
            filled += chunk
            piece_id = id_generator()

    if current or not result:
        commit()

    return result


def _only_rests(measure: Measure) -> bool:
    return not measure.is_pickup and all(e.is_rest for e in measure.events)


class SetTimeSignatureCommand(Command):
    """
    Change the time signature and reflow every staff.

    Chord symbols keep their absolute position in the piece and are
    re-addressed to the new measures. Rest padding beyond the previous
    measure count is dropped, so repeated changes do not keep adding
    empty measures.
    """

    type = "SET_TIME_SIGNATURE"

    def __init__(self, time_signature: str):
        try:
            numerator, denominator = parse_time_signature(time_signature)
        except ValueError as e:
            raise CommandValidationError(str(e)) from e
        self.time_signature = f"{numerator}/{denominator}"
        self.reflow_key = f"reflow_{measure_id()}"

    @property
    def description(self) -> str:
        return f"Set time signature to {self.time_signature}"

    def execute(self, score: Score) -> CommandResult:
        if score.time_signature == self.time_signature:
            return CommandResult(score, None)

        old_capacity = score.quants_per_measure
        new_capacity = quants_per_measure(self.time_signature)

        chords = []
        for chord in score.chord_track:
            measure, quant = from_global_quant(global_quant(chord, old_capacity), new_capacity)
            chords.append(replace(chord, measure=measure, quant=quant))

        reflowed = [
            reflow_measures(staff.measures, new_capacity, sequential_ids(f"{self.reflow_key}-{s_idx}"))
            for s_idx, staff in enumerate(score.staves)
        ]
        keep = max([score.num_measures, 1] + [c.measure + 1 for c in chords])
        reflowed = self._even_out(reflowed, new_capacity, keep)
        staves = [replace(staff, measures=tuple(m)) for staff, m in zip(score.staves, reflowed)]

        new_score = replace(
            score,
            time_signature=self.time_signature,
            staves=tuple(staves),
            chord_track=sort_chord_track(chords),
        )
        logger.info(f"Reflowed {len(staves)} staves into {self.time_signature}")
        return CommandResult(new_score, ScoreSnapshot(score))

    def _even_out(self, staves: List[List[Measure]], capacity: int, keep: int) -> List[List[Measure]]:
        """Pad staves to a common length, then drop trailing all-rest measures past ``keep``."""
        count = max((len(measures) for measures in staves), default=0)
        for s_idx, measures in enumerate(staves):
            while len(measures) < count:
                key = f"{self.reflow_key}-{s_idx}-m{len(measures)}"
                measures.append(create_measure(capacity, sequential_ids(f"{key}-r"), id=key))

        while count > keep and all(_only_rests(measures[count - 1]) for measures in staves):
            count -= 1
        return [measures[:count] for measures in staves]

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, ScoreSnapshot):
            return score
        previous = record.score
        return replace(
            score,
            time_signature=previous.time_signature,
            staves=previous.staves,
            chord_track=previous.chord_track,
        )


class AddMeasureCommand(Command):
    """
    Insert a rest-filled measure on every staff.

    ``index`` None (or past the end) appends. Chords at or after the
    insertion point move one measure later.
    """

    type = "ADD_MEASURE"

    def __init__(self, index: Optional[int] = None):
        if index is not None:
            require_index("index", index)
        self.index = index
        self.measure_key = measure_id()

    @property
    def description(self) -> str:
        return "Add measure" if self.index is None else f"Insert measure {self.index + 1}"

    def execute(self, score: Score) -> CommandResult:
        if not score.staves:
            return self._noop(score, "score has no staves")

        count = score.num_measures
        index = count if self.index is None or self.index > count else self.index
        capacity = score.quants_per_measure

        staves = []
        for s_idx, staff in enumerate(score.staves):
            measure = create_measure(
                capacity,
                id_generator=sequential_ids(f"{self.measure_key}-{s_idx}-r"),
                id=f"{self.measure_key}-{s_idx}",
            )
            measures = list(staff.measures)
            measures.insert(min(index, len(measures)), measure)
            staves.append(replace(staff, measures=tuple(measures)))

        new_score = replace(
            score,
            staves=tuple(staves),
            chord_track=tuple(shift_chords(score.chord_track, index, 1)),
        )
        return CommandResult(new_score, InsertedItem(self.measure_key, index))

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, InsertedItem):
            return score

        staves = []
        for staff in score.staves:
            measures = [
                m for i, m in enumerate(staff.measures)
                if not (i == record.index and m.id.startswith(record.id))
            ]
            staves.append(replace(staff, measures=tuple(measures)))

        return replace(
            score,
            staves=tuple(staves),
            chord_track=tuple(shift_chords(score.chord_track, record.index + 1, -1)),
        )


class DeleteMeasureCommand(Command):
    """
    Delete a measure from every staff along with its chord symbols.

    The last remaining measure cannot be deleted.
    """

    type = "DELETE_MEASURE"

    def __init__(self, index: int):
        self.index = require_index("index", index)

    @property
    def description(self) -> str:
        return f"Delete measure {self.index + 1}"

    def execute(self, score: Score) -> CommandResult:
        if self.index >= score.num_measures:
            return self._noop(score, f"no measure {self.index}")
        if score.num_measures <= 1:
            return self._noop(score, "cannot delete the only measure")
        if any(len(staff.measures) <= self.index for staff in score.staves):
            return self._noop(score, f"measure {self.index} missing on some staff")

        removed = []
        staves = []
        for staff in score.staves:
            measures = list(staff.measures)
            removed.append(measures.pop(self.index))
            staves.append(replace(staff, measures=tuple(measures)))

        chords = [c for c in score.chord_track if c.measure != self.index]
        new_score = replace(
            score,
            staves=tuple(staves),
            chord_track=tuple(shift_chords(chords, self.index + 1, -1)),
        )
        return CommandResult(
            new_score, RemovedMeasures(tuple(removed), self.index, score.chord_track)
        )

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, RemovedMeasures) or len(record.measures) != len(score.staves):
            return score

        staves = []
        for staff, measure in zip(score.staves, record.measures):
            measures = list(staff.measures)
            measures.insert(min(record.index, len(measures)), measure)
            staves.append(replace(staff, measures=tuple(measures)))

        return replace(score, staves=tuple(staves), chord_track=record.chord_track)
