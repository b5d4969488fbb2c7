"""
Score commands.

Every mutation of a Score is a Command. ``execute`` returns the new score
together with an undo record, a plain value describing exactly what
changed; ``undo`` takes that record back and restores the prior score.
Commands keep no mutable state of their own, so the same instance can be
executed again on redo.

Arguments are validated when a command is built and bad ones raise
CommandValidationError. A target that has disappeared by the time the
command runs (staff, measure, event, note) is not an error: the score
comes back unchanged with no record, and undoing that is a no-op.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Optional, Sequence, Tuple, Union

from score_editor.core.durations import Duration
from score_editor.core.ids import event_id as new_event_id
from score_editor.core.ids import note_id as new_note_id
from score_editor.core.ids import sequential_ids
from score_editor.core.insertion import create_rests_for_range, get_overwrite_plan
from score_editor.core.models import (
    CLEFS,
    DEFAULT_BPM,
    Measure,
    Note,
    Score,
    ScoreEvent,
    Tuplet,
    clamp_bpm,
    with_events,
    with_measure,
)
from score_editor.core.operations import is_valid_pitch, transpose_pitch
from score_editor.core.queries import (
    find_event_index,
    find_note_index,
    get_measure,
    get_staff,
    tuplet_group_indices,
)

logger = logging.getLogger(__name__)


class CommandValidationError(ValueError):
    """Raised when a command is constructed with invalid arguments."""


# ---- Undo records ----

@dataclass(frozen=True)
class FieldChange:
    """A scalar field was overwritten; ``previous`` is its old value."""
    field: str
    previous: Any


@dataclass(frozen=True)
class InsertedItem:
    """An element with ``id`` was inserted at ``index``."""
    id: str
    index: int


@dataclass(frozen=True)
class RemovedItem:
    """``item`` was removed from ``index``."""
    item: Any
    index: int


@dataclass(frozen=True)
class ReplacedItem:
    """The element at ``index`` replaced ``previous``."""
    previous: Any
    index: int


@dataclass(frozen=True)
class TupletStates:
    """Tuplet metadata of each touched event, keyed by event id."""
    states: Tuple[Tuple[str, Optional[Tuplet]], ...]


@dataclass(frozen=True)
class MeasureSnapshot:
    """The whole measure as it was before the command."""
    measure: Measure


@dataclass(frozen=True)
class RemovedMeasures:
    """One measure per staff removed at ``index``, plus the old chord track."""
    measures: Tuple[Measure, ...]
    index: int
    chord_track: Tuple[Any, ...]


@dataclass(frozen=True)
class ScoreSnapshot:
    """The whole previous score, for wholesale replacements."""
    score: Score


@dataclass(frozen=True)
class CompositeRecord:
    """Records of each sub-command, in execution order."""
    records: Tuple[Optional["UndoRecord"], ...]


UndoRecord = Union[
    FieldChange,
    InsertedItem,
    RemovedItem,
    ReplacedItem,
    TupletStates,
    MeasureSnapshot,
    RemovedMeasures,
    ScoreSnapshot,
    CompositeRecord,
]


@dataclass(frozen=True)
class CommandResult:
    """Outcome of executing a command."""
    score: Score
    record: Optional[UndoRecord] = None

    @property
    def changed(self) -> bool:
        return self.record is not None


# ---- Base classes ----

class Command(ABC):
    """Base class for all score commands."""

    type: str = "COMMAND"

    # A command that replaces the whole document ends the undo history.
    resets_history: bool = False

    @property
    def description(self) -> str:
        """Human-readable description for history listings."""
        return self.type.replace("_", " ").capitalize()

    @abstractmethod
    def execute(self, score: Score) -> CommandResult:
        """Apply the command, returning the new score and its undo record."""

    @abstractmethod
    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        """Reverse a previous ``execute`` using the record it produced."""

    def _noop(self, score: Score, reason: str) -> CommandResult:
        logger.warning(f"{self.type}: {reason}; score left unchanged")
        return CommandResult(score, None)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.description!r}>"


def require_index(name: str, value: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise CommandValidationError(f"{name} must be a non-negative integer, got {value!r}")
    return value


def require_id(name: str, value: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise CommandValidationError(f"{name} cannot be empty")
    return value.strip()


def require_pitch(value: str) -> str:
    if not isinstance(value, str) or not is_valid_pitch(value):
        raise CommandValidationError(f"Invalid pitch: {value!r}")
    return value.strip()


class MeasureCommand(Command):
    """Base for commands addressing one measure of one staff."""

    def __init__(self, measure_index: int, staff_index: int = 0):
        self.measure_index = require_index("measure_index", measure_index)
        self.staff_index = require_index("staff_index", staff_index)

    def _measure(self, score: Score) -> Optional[Measure]:
        return get_measure(score, self.staff_index, self.measure_index)

    def _missing(self, score: Score) -> CommandResult:
        return self._noop(
            score, f"no measure {self.measure_index} on staff {self.staff_index}"
        )

    def _set_events(self, score: Score, events: Sequence[ScoreEvent]) -> Score:
        return with_events(score, self.staff_index, self.measure_index, events)

    def _restore_measure(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, MeasureSnapshot):
            return score
        if self._measure(score) is None:
            return score
        return with_measure(score, self.staff_index, self.measure_index, record.measure)


# ---- Score-level fields ----

class _SetScoreFieldCommand(Command):
    field_name = ""

    def __init__(self, value: Any):
        self.value = value

    def execute(self, score: Score) -> CommandResult:
        previous = getattr(score, self.field_name)
        new_score = replace(score, **{self.field_name: self.value})
        return CommandResult(new_score, FieldChange(self.field_name, previous))

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, FieldChange):
            return score
        return replace(score, **{record.field: record.previous})


class SetBpmCommand(_SetScoreFieldCommand):
    """
    Set the tempo. Out-of-range values are clamped to [10, 500] rather
    than rejected.
    """

    type = "SET_BPM"
    field_name = "bpm"

    def __init__(self, bpm: float):
        if isinstance(bpm, bool) or not isinstance(bpm, (int, float)):
            raise CommandValidationError(f"bpm must be a number, got {bpm!r}")
        super().__init__(clamp_bpm(bpm))
        self.requested_bpm = bpm

    @property
    def description(self) -> str:
        return f"Set tempo to {self.value} bpm"

    def execute(self, score: Score) -> CommandResult:
        previous = score.bpm or DEFAULT_BPM
        return CommandResult(replace(score, bpm=self.value), FieldChange("bpm", previous))


class SetTitleCommand(_SetScoreFieldCommand):
    type = "SET_TITLE"
    field_name = "title"

    def __init__(self, title: str):
        if not isinstance(title, str):
            raise CommandValidationError(f"title must be a string, got {title!r}")
        super().__init__(title.strip())

    @property
    def description(self) -> str:
        return f"Rename score to {self.value!r}"


class SetKeySignatureCommand(_SetScoreFieldCommand):
    type = "SET_KEY_SIGNATURE"
    field_name = "key_signature"

    def __init__(self, key_signature: str):
        super().__init__(require_id("key_signature", key_signature))

    @property
    def description(self) -> str:
        return f"Set key signature to {self.value}"


class SetClefCommand(Command):
    """Change the clef of one staff."""

    type = "SET_CLEF"

    def __init__(self, clef: str, staff_index: int = 0):
        clef = (clef or "").strip().lower()
        if clef not in CLEFS:
            raise CommandValidationError(f"Unknown clef {clef!r}; expected one of {CLEFS}")
        self.clef = clef
        self.staff_index = require_index("staff_index", staff_index)

    @property
    def description(self) -> str:
        return f"Set staff {self.staff_index + 1} clef to {self.clef}"

    def execute(self, score: Score) -> CommandResult:
        staff = get_staff(score, self.staff_index)
        if staff is None:
            return self._noop(score, f"no staff {self.staff_index}")
        return CommandResult(
            self._with_clef(score, self.clef), FieldChange("clef", staff.clef)
        )

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, FieldChange) or get_staff(score, self.staff_index) is None:
            return score
        return self._with_clef(score, record.previous)

    def _with_clef(self, score: Score, clef: str) -> Score:
        staves = list(score.staves)
        staves[self.staff_index] = replace(staves[self.staff_index], clef=clef)
        return replace(score, staves=tuple(staves))


class LoadScoreCommand(Command):
    """
    Replace the whole score (file load, new score).

    The engine treats this as a history boundary. The previous score is
    still kept in the record so the command can be reversed on its own.
    """

    type = "LOAD_SCORE"
    resets_history = True

    def __init__(self, score: Score):
        if not isinstance(score, Score):
            raise CommandValidationError(f"Expected a Score, got {type(score).__name__}")
        self.score = score

    @property
    def description(self) -> str:
        return f"Load {self.score.title!r}"

    def execute(self, score: Score) -> CommandResult:
        return CommandResult(self.score, ScoreSnapshot(score))

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, ScoreSnapshot):
            return score
        return record.score


class CompositeCommand(Command):
    """Several commands applied and undone as a single step."""

    type = "COMPOSITE"

    def __init__(self, commands: Sequence[Command], description: Optional[str] = None):
        if not commands:
            raise CommandValidationError("CompositeCommand needs at least one command")
        self.commands = tuple(commands)
        self._description = description

    @property
    def description(self) -> str:
        return self._description or ", ".join(c.description for c in self.commands)

    def execute(self, score: Score) -> CommandResult:
        records = []
        for command in self.commands:
            result = command.execute(score)
            score = result.score
            records.append(result.record)

        if all(r is None for r in records):
            return CommandResult(score, None)
        return CommandResult(score, CompositeRecord(tuple(records)))

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, CompositeRecord):
            return score
        for command, sub_record in reversed(list(zip(self.commands, record.records))):
            score = command.undo(score, sub_record)
        return score


# ---- Events ----

class InsertEventCommand(MeasureCommand):
    """
    Insert a complete event into a measure.

    ``insert_index`` outside [0, len(events)] (or None) appends. Undo
    removes the event by id, since other events may have shifted.
    """

    type = "INSERT_EVENT"

    def __init__(
        self,
        measure_index: int,
        event: ScoreEvent,
        insert_index: Optional[int] = None,
        staff_index: int = 0,
    ):
        super().__init__(measure_index, staff_index)
        if not isinstance(event, ScoreEvent):
            raise CommandValidationError(f"Expected a ScoreEvent, got {type(event).__name__}")
        require_id("event.id", event.id)
        self.event = event
        self.insert_index = insert_index

    @property
    def description(self) -> str:
        kind = "rest" if self.event.is_rest else "note"
        return f"Insert {self.event.duration.value} {kind} in measure {self.measure_index + 1}"

    def execute(self, score: Score) -> CommandResult:
        measure = self._measure(score)
        if measure is None:
            return self._missing(score)
        if find_event_index(measure, self.event.id) != -1:
            return self._noop(score, f"event {self.event.id} already exists")

        events = list(measure.events)
        index = self.insert_index
        if index is None or not 0 <= index <= len(events):
            index = len(events)
        events.insert(index, self.event)

        return CommandResult(self._set_events(score, events), InsertedItem(self.event.id, index))

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, InsertedItem):
            return score
        measure = self._measure(score)
        if measure is None:
            return score
        events = [e for e in measure.events if e.id != record.id]
        return self._set_events(score, events)


class AddNoteCommand(InsertEventCommand):
    """Build a single-note event from a pitch and insert it."""

    type = "ADD_NOTE"

    def __init__(
        self,
        measure_index: int,
        pitch: str,
        duration: "str | Duration" = Duration.QUARTER,
        dotted: bool = False,
        index: Optional[int] = None,
        event_id: Optional[str] = None,
        staff_index: int = 0,
        accidental: Optional[str] = None,
        tied: bool = False,
    ):
        try:
            parsed = Duration.parse(duration)
        except ValueError as e:
            raise CommandValidationError(str(e)) from e

        event_id = event_id or new_event_id()
        event = ScoreEvent(
            id=event_id,
            duration=parsed,
            dotted=dotted,
            notes=(Note(id=new_note_id(), pitch=require_pitch(pitch), accidental=accidental, tied=tied),),
        )
        super().__init__(measure_index, event, index, staff_index)

    @property
    def description(self) -> str:
        return f"Add {self.event.notes[0].pitch} {self.event.duration.value}"


class DeleteEventCommand(MeasureCommand):
    """Remove an event; undo puts it back at its original index."""

    type = "DELETE_EVENT"

    def __init__(self, measure_index: int, event_id: str, staff_index: int = 0):
        super().__init__(measure_index, staff_index)
        self.event_id = require_id("event_id", event_id)

    def execute(self, score: Score) -> CommandResult:
        measure = self._measure(score)
        if measure is None:
            return self._missing(score)
        index = find_event_index(measure, self.event_id)
        if index == -1:
            return self._noop(score, f"no event {self.event_id}")

        events = list(measure.events)
        removed = events.pop(index)
        return CommandResult(self._set_events(score, events), RemovedItem(removed, index))

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, RemovedItem):
            return score
        measure = self._measure(score)
        if measure is None:
            return score
        events = list(measure.events)
        events.insert(min(record.index, len(events)), record.item)
        return self._set_events(score, events)


class _EventEditCommand(MeasureCommand):
    """Base for commands editing one event located by id."""

    def __init__(self, measure_index: int, event_id: str, staff_index: int = 0):
        super().__init__(measure_index, staff_index)
        self.event_id = require_id("event_id", event_id)

    def _locate(self, score: Score) -> Tuple[Optional[Measure], int]:
        measure = self._measure(score)
        if measure is None:
            return None, -1
        return measure, find_event_index(measure, self.event_id)

    def _replace_event(self, score: Score, measure: Measure, index: int, event: ScoreEvent) -> Score:
        events = list(measure.events)
        events[index] = event
        return self._set_events(score, events)


class AddNoteToEventCommand(_EventEditCommand):
    """Stack another pitch onto an existing note event."""

    type = "ADD_NOTE_TO_EVENT"

    def __init__(self, measure_index: int, event_id: str, note: "Note | str", staff_index: int = 0):
        super().__init__(measure_index, event_id, staff_index)
        if isinstance(note, str):
            note = Note(id=new_note_id(), pitch=note)
        require_pitch(note.pitch)
        self.note = note

    @property
    def description(self) -> str:
        return f"Add {self.note.pitch} to chord"

    def execute(self, score: Score) -> CommandResult:
        measure, index = self._locate(score)
        if index == -1:
            return self._noop(score, f"no event {self.event_id}")

        event = measure.events[index]
        if event.is_rest:
            return self._noop(score, f"event {self.event_id} is a rest")
        if any(n.pitch == self.note.pitch for n in event.notes):
            return self._noop(score, f"{self.note.pitch} already in event {self.event_id}")

        new_event = replace(event, notes=event.notes + (self.note,))
        return CommandResult(
            self._replace_event(score, measure, index, new_event),
            InsertedItem(self.note.id, len(event.notes)),
        )

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, InsertedItem):
            return score
        measure, index = self._locate(score)
        if index == -1:
            return score
        event = measure.events[index]
        notes = tuple(n for n in event.notes if n.id != record.id)
        return self._replace_event(score, measure, index, replace(event, notes=notes))


class DeleteNoteCommand(_EventEditCommand):
    """
    Remove one note from an event. Removing the last note of an event
    removes the event itself.
    """

    type = "DELETE_NOTE"

    def __init__(self, measure_index: int, event_id: str, note_id: str, staff_index: int = 0):
        super().__init__(measure_index, event_id, staff_index)
        self.note_id = require_id("note_id", note_id)

    def execute(self, score: Score) -> CommandResult:
        measure, index = self._locate(score)
        if index == -1:
            return self._noop(score, f"no event {self.event_id}")

        event = measure.events[index]
        note_index = find_note_index(event, self.note_id)
        if note_index == -1:
            return self._noop(score, f"no note {self.note_id} in event {self.event_id}")

        if len(event.notes) == 1:
            events = list(measure.events)
            del events[index]
            return CommandResult(self._set_events(score, events), RemovedItem(event, index))

        notes = list(event.notes)
        removed = notes.pop(note_index)
        return CommandResult(
            self._replace_event(score, measure, index, replace(event, notes=tuple(notes))),
            RemovedItem(removed, note_index),
        )

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, RemovedItem):
            return score
        measure = self._measure(score)
        if measure is None:
            return score

        if isinstance(record.item, ScoreEvent):
            events = list(measure.events)
            events.insert(min(record.index, len(events)), record.item)
            return self._set_events(score, events)

        index = find_event_index(measure, self.event_id)
        if index == -1:
            return score
        event = measure.events[index]
        notes = list(event.notes)
        notes.insert(min(record.index, len(notes)), record.item)
        return self._replace_event(score, measure, index, replace(event, notes=tuple(notes)))


class _NoteEditCommand(_EventEditCommand):
    """Base for commands editing one note located by event and note id."""

    def __init__(self, measure_index: int, event_id: str, note_id: str, staff_index: int = 0):
        super().__init__(measure_index, event_id, staff_index)
        self.note_id = require_id("note_id", note_id)

    def _locate_note(self, score: Score):
        measure, index = self._locate(score)
        if index == -1:
            return None, -1, -1
        return measure, index, find_note_index(measure.events[index], self.note_id)

    def _replace_note(self, score: Score, measure: Measure, index: int, note_index: int, note: Note) -> Score:
        event = measure.events[index]
        notes = list(event.notes)
        notes[note_index] = note
        return self._replace_event(score, measure, index, replace(event, notes=tuple(notes)))


class ChangePitchCommand(_NoteEditCommand):
    """Change the pitch of one note; undo restores the single prior pitch."""

    type = "CHANGE_PITCH"

    def __init__(
        self,
        measure_index: int,
        event_id: str,
        note_id: str,
        new_pitch: str,
        staff_index: int = 0,
    ):
        super().__init__(measure_index, event_id, note_id, staff_index)
        self.new_pitch = require_pitch(new_pitch)

    @property
    def description(self) -> str:
        return f"Change pitch to {self.new_pitch}"

    def execute(self, score: Score) -> CommandResult:
        measure, index, note_index = self._locate_note(score)
        if note_index == -1:
            return self._noop(score, f"no note {self.note_id} in event {self.event_id}")
        if measure.events[index].is_rest:
            return self._noop(score, f"event {self.event_id} is a rest")

        note = measure.events[index].notes[note_index]
        new_score = self._replace_note(
            score, measure, index, note_index, replace(note, pitch=self.new_pitch)
        )
        return CommandResult(new_score, FieldChange("pitch", note.pitch))

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, FieldChange):
            return score
        measure, index, note_index = self._locate_note(score)
        if note_index == -1:
            return score
        note = measure.events[index].notes[note_index]
        return self._replace_note(score, measure, index, note_index, replace(note, pitch=record.previous))


class UpdateNoteCommand(_NoteEditCommand):
    """Update pitch, accidental and/or tie of one note."""

    type = "UPDATE_NOTE"

    _FIELDS = ("pitch", "accidental", "tied")

    def __init__(
        self,
        measure_index: int,
        event_id: str,
        note_id: str,
        staff_index: int = 0,
        **updates: Any,
    ):
        super().__init__(measure_index, event_id, note_id, staff_index)
        unknown = set(updates) - set(self._FIELDS)
        if unknown:
            raise CommandValidationError(f"Cannot update note fields: {sorted(unknown)}")
        if not updates:
            raise CommandValidationError("UpdateNoteCommand needs at least one field")
        if "pitch" in updates:
            updates["pitch"] = require_pitch(updates["pitch"])
        if "tied" in updates:
            updates["tied"] = bool(updates["tied"])
        self.updates = updates

    def execute(self, score: Score) -> CommandResult:
        measure, index, note_index = self._locate_note(score)
        if note_index == -1:
            return self._noop(score, f"no note {self.note_id} in event {self.event_id}")

        note = measure.events[index].notes[note_index]
        new_score = self._replace_note(score, measure, index, note_index, replace(note, **self.updates))
        return CommandResult(new_score, ReplacedItem(note, note_index))

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, ReplacedItem):
            return score
        measure, index, note_index = self._locate_note(score)
        if note_index == -1:
            return score
        return self._replace_note(score, measure, index, note_index, record.previous)


class TransposeCommand(MeasureCommand):
    """
    Transpose a note, an event, or a whole measure by semitones.

    Undo restores the measure snapshot instead of transposing back, so
    enharmonic spelling comes back exactly as it was.
    """

    type = "TRANSPOSE"

    def __init__(
        self,
        measure_index: int,
        semitones: int,
        event_id: Optional[str] = None,
        note_id: Optional[str] = None,
        staff_index: int = 0,
    ):
        super().__init__(measure_index, staff_index)
        if isinstance(semitones, bool) or not isinstance(semitones, int):
            raise CommandValidationError(f"semitones must be an integer, got {semitones!r}")
        if note_id is not None and event_id is None:
            raise CommandValidationError("note_id requires event_id")
        self.semitones = semitones
        self.event_id = event_id
        self.note_id = note_id

    @property
    def description(self) -> str:
        return f"Transpose by {self.semitones:+d} semitones"

    def execute(self, score: Score) -> CommandResult:
        measure = self._measure(score)
        if measure is None:
            return self._missing(score)
        if self.semitones == 0:
            return CommandResult(score, None)

        if self.event_id is None:
            targets = range(len(measure.events))
        else:
            index = find_event_index(measure, self.event_id)
            if index == -1:
                return self._noop(score, f"no event {self.event_id}")
            if self.note_id is not None and find_note_index(measure.events[index], self.note_id) == -1:
                return self._noop(score, f"no note {self.note_id} in event {self.event_id}")
            targets = [index]

        events = list(measure.events)
        for index in targets:
            event = events[index]
            if event.is_rest:
                continue
            notes = tuple(
                replace(n, pitch=transpose_pitch(n.pitch, self.semitones))
                if self.note_id is None or n.id == self.note_id else n
                for n in event.notes
            )
            events[index] = replace(event, notes=notes)

        return CommandResult(self._set_events(score, events), MeasureSnapshot(measure))

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        return self._restore_measure(score, record)


# ---- Tuplets ----

def _restore_tuplets(events: Sequence[ScoreEvent], record: TupletStates) -> list:
    previous = dict(record.states)
    return [
        replace(e, tuplet=previous[e.id]) if e.id in previous else e
        for e in events
    ]


class ApplyTupletCommand(_EventEditCommand):
    """Group ``group_size`` consecutive events, starting at ``event_id``, into a tuplet."""

    type = "APPLY_TUPLET"

    def __init__(
        self,
        measure_index: int,
        event_id: str,
        group_size: int = 3,
        ratio: Tuple[int, int] = (3, 2),
        staff_index: int = 0,
        tuplet_id: Optional[str] = None,
    ):
        super().__init__(measure_index, event_id, staff_index)
        if isinstance(group_size, bool) or not isinstance(group_size, int) or group_size < 2:
            raise CommandValidationError(f"group_size must be >= 2, got {group_size!r}")
        actual, normal = ratio
        if actual <= 0 or normal <= 0:
            raise CommandValidationError(f"ratio must be positive, got {ratio!r}")
        self.group_size = group_size
        self.ratio = (int(actual), int(normal))
        self.tuplet_id = tuplet_id or f"tuplet-{event_id}"

    @property
    def description(self) -> str:
        return f"Apply {self.ratio[0]}:{self.ratio[1]} tuplet"

    def execute(self, score: Score) -> CommandResult:
        measure, start = self._locate(score)
        if start == -1:
            return self._noop(score, f"no event {self.event_id}")

        members = measure.events[start:start + self.group_size]
        if len(members) < self.group_size:
            return self._noop(score, f"fewer than {self.group_size} events from {self.event_id}")
        if any(e.tuplet is not None for e in members):
            return self._noop(score, "events already belong to a tuplet")

        base = members[0].duration
        events = list(measure.events)
        for position, event in enumerate(members):
            events[start + position] = replace(
                event,
                tuplet=Tuplet(
                    id=self.tuplet_id,
                    ratio=self.ratio,
                    group_size=self.group_size,
                    position=position,
                    base_duration=base,
                ),
            )

        record = TupletStates(tuple((e.id, e.tuplet) for e in members))
        return CommandResult(self._set_events(score, events), record)

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, TupletStates):
            return score
        measure = self._measure(score)
        if measure is None:
            return score
        return self._set_events(score, _restore_tuplets(measure.events, record))


class RemoveTupletCommand(_EventEditCommand):
    """
    Strip tuplet metadata from every member of the group ``event_id``
    belongs to. Each member's metadata is captured individually so undo
    restores groups that had gaps.
    """

    type = "REMOVE_TUPLET"

    @property
    def description(self) -> str:
        return "Remove tuplet"

    def execute(self, score: Score) -> CommandResult:
        measure, index = self._locate(score)
        if index == -1:
            return self._noop(score, f"no event {self.event_id}")
        if measure.events[index].tuplet is None:
            return self._noop(score, f"event {self.event_id} is not in a tuplet")

        group = tuplet_group_indices(measure, index)
        events = list(measure.events)
        states = []
        for i in group:
            states.append((events[i].id, events[i].tuplet))
            events[i] = replace(events[i], tuplet=None)

        return CommandResult(self._set_events(score, events), TupletStates(tuple(states)))

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, TupletStates):
            return score
        measure = self._measure(score)
        if measure is None:
            return score
        return self._set_events(score, _restore_tuplets(measure.events, record))


# ---- Overwrite entry ----

class EnterEventCommand(MeasureCommand):
    """
    Enter an event at a quant position in overwrite mode.

    Every event overlapping the new event's span is removed in full, gaps
    on either side are filled with rests so untouched events keep their
    positions, and with ``fill`` the measure is padded with rests up to
    its capacity. A pickup measure is never padded: its length is its
    content, up to one full measure.
    """

    type = "ENTER_EVENT"

    def __init__(
        self,
        measure_index: int,
        event: ScoreEvent,
        start_quant: Optional[int] = None,
        staff_index: int = 0,
        fill: bool = True,
    ):
        super().__init__(measure_index, staff_index)
        if not isinstance(event, ScoreEvent):
            raise CommandValidationError(f"Expected a ScoreEvent, got {type(event).__name__}")
        require_id("event.id", event.id)
        if start_quant is not None:
            require_index("start_quant", start_quant)
        self.event = event
        self.start_quant = start_quant
        self.fill = fill

    @property
    def description(self) -> str:
        kind = "rest" if self.event.is_rest else "note"
        return f"Enter {self.event.duration.value} {kind} in measure {self.measure_index + 1}"

    def execute(self, score: Score) -> CommandResult:
        measure = self._measure(score)
        if measure is None:
            return self._missing(score)

        capacity = score.quants_per_measure
        start = measure.total_quants if self.start_quant is None else self.start_quant
        end = start + self.event.quants
        if end > capacity:
            return self._noop(
                score, f"{self.event.quants} quants at {start} exceed measure capacity {capacity}"
            )

        plan = get_overwrite_plan(measure, start, self.event.quants)
        if find_event_index(measure, self.event.id) != -1 and self.event.id not in plan.to_remove:
            return self._noop(score, f"event {self.event.id} already exists")
        if plan.to_remove:
            logger.info(f"Overwrote {len(plan.to_remove)} event(s) in measure {self.measure_index + 1}")

        removed = set(plan.to_remove)
        prefix, suffix = [], []
        suffix_start = None
        quant = 0
        for event in measure.events:
            if event.id not in removed:
                if quant < start:
                    prefix.append(event)
                else:
                    if suffix_start is None:
                        suffix_start = quant
                    suffix.append(event)
            quant += event.quants

        rest_ids = sequential_ids(f"{self.event.id}-fill")
        prefix_end = sum(e.quants for e in prefix)
        tail_gap = (suffix_start - end) if suffix_start is not None else 0

        events = (
            prefix
            + create_rests_for_range(start - prefix_end, rest_ids)
            + [self.event]
            + create_rests_for_range(tail_gap, rest_ids)
            + suffix
        )
        if self.fill and not measure.is_pickup:
            total = sum(e.quants for e in events)
            events += create_rests_for_range(max(0, capacity - total), rest_ids)

        return CommandResult(self._set_events(score, events), MeasureSnapshot(measure))

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        return self._restore_measure(score, record)
