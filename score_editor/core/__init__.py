"""
Core module for the score editor.

Contains the Score model, duration arithmetic and the command engine.
"""

from score_editor.core.durations import (
    Duration,
    duration_to_quants,
    quants_to_duration_sequence,
    quants_per_measure,
)
from score_editor.core.models import (
    Note,
    Tuplet,
    ScoreEvent,
    Measure,
    Staff,
    ChordSymbol,
    Score,
    create_default_score,
    make_note_event,
    make_rest_event,
    validate_score,
)
from score_editor.core.commands import (
    Command,
    CommandResult,
    CommandValidationError,
    CompositeCommand,
    InsertEventCommand,
    AddNoteCommand,
    ChangePitchCommand,
    RemoveTupletCommand,
    SetBpmCommand,
    LoadScoreCommand,
    EnterEventCommand,
)
from score_editor.core.chords import parse_chord, normalize_chord_symbol, get_chord_voicing
from score_editor.core.chord_track import (
    AddChordCommand,
    UpdateChordCommand,
    RemoveChordCommand,
)
from score_editor.core.measure_commands import (
    AddMeasureCommand,
    DeleteMeasureCommand,
    SetTimeSignatureCommand,
)
from score_editor.core.engine import ScoreEngine, EngineRegistry
from score_editor.core.insertion import get_overwrite_plan, create_rests_for_range
from score_editor.core.timeline import TimelineEntry, build_timeline
from score_editor.core.entry import EntryParser, build_entry_command

__all__ = [
    "Duration",
    "duration_to_quants",
    "quants_to_duration_sequence",
    "quants_per_measure",
    "Note",
    "Tuplet",
    "ScoreEvent",
    "Measure",
    "Staff",
    "ChordSymbol",
    "Score",
    "create_default_score",
    "make_note_event",
    "make_rest_event",
    "validate_score",
    "Command",
    "CommandResult",
    "CommandValidationError",
    "CompositeCommand",
    "InsertEventCommand",
    "AddNoteCommand",
    "ChangePitchCommand",
    "RemoveTupletCommand",
    "SetBpmCommand",
    "LoadScoreCommand",
    "EnterEventCommand",
    "parse_chord",
    "normalize_chord_symbol",
    "get_chord_voicing",
    "AddChordCommand",
    "UpdateChordCommand",
    "RemoveChordCommand",
    "AddMeasureCommand",
    "DeleteMeasureCommand",
    "SetTimeSignatureCommand",
    "ScoreEngine",
    "EngineRegistry",
    "get_overwrite_plan",
    "create_rests_for_range",
    "TimelineEntry",
    "build_timeline",
    "EntryParser",
    "build_entry_command",
]
