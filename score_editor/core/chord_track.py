"""
Chord track maintenance.

The chord track is a list of ChordSymbols kept sorted by (measure, quant)
with at most one chord per position. Symbols are stored in canonical
spelling (see chords.py). The track is only changed through the
commands below.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from score_editor.core.chords import ChordParseError, normalize_chord_symbol
from score_editor.core.commands import (
    Command,
    CommandResult,
    CommandValidationError,
    InsertedItem,
    RemovedItem,
    ReplacedItem,
    UndoRecord,
    require_id,
    require_index,
)
from score_editor.core.ids import chord_id as new_chord_id
from score_editor.core.models import ChordSymbol, Score
from score_editor.core.queries import find_chord_index

logger = logging.getLogger(__name__)


def compare_chord_positions(a: ChordSymbol, b: ChordSymbol) -> int:
    """Negative if ``a`` sorts first, positive if ``b`` does, 0 if equal."""
    if a.measure != b.measure:
        return a.measure - b.measure
    return a.quant - b.quant


def positions_equal(a: ChordSymbol, b: ChordSymbol) -> bool:
    return a.measure == b.measure and a.quant == b.quant


def chord_sort_key(chord: ChordSymbol) -> Tuple[int, int]:
    return (chord.measure, chord.quant)


def sort_chord_track(chord_track: Sequence[ChordSymbol]) -> Tuple[ChordSymbol, ...]:
    """Stable sort by position."""
    return tuple(sorted(chord_track, key=chord_sort_key))


def sorted_insert_index(chord_track: Sequence[ChordSymbol], chord: ChordSymbol) -> int:
    """First index whose chord does not sort before ``chord``."""
    for index, existing in enumerate(chord_track):
        if compare_chord_positions(existing, chord) >= 0:
            return index
    return len(chord_track)


def global_quant(chord: ChordSymbol, quants_per_measure: int) -> int:
    """Position of a chord on the flat, score-wide quant axis."""
    return chord.measure * quants_per_measure + chord.quant


def from_global_quant(quant: int, quants_per_measure: int) -> Tuple[int, int]:
    """Split a flat quant into (measure, quant-within-measure)."""
    return divmod(quant, quants_per_measure)


def _require_symbol(symbol: str) -> str:
    """Canonical spelling of ``symbol``, or CommandValidationError."""
    if not isinstance(symbol, str):
        raise CommandValidationError("Chord symbol must be a string")
    try:
        return normalize_chord_symbol(symbol)
    except ChordParseError as e:
        raise CommandValidationError(str(e)) from e


def _with_track(score: Score, chord_track: Sequence[ChordSymbol]) -> Score:
    return replace(score, chord_track=tuple(chord_track))


class AddChordCommand(Command):
    """
    Add a chord symbol at a measure-local position.

    A chord already at that exact position is replaced (and brought back
    on undo) rather than duplicated.
    """

    type = "ADD_CHORD"

    def __init__(self, measure: int, quant: int, symbol: str, id: Optional[str] = None):
        require_index("measure", measure)
        require_index("quant", quant)
        self.chord = ChordSymbol(
            id=id.strip() if id and id.strip() else new_chord_id(),
            measure=measure,
            quant=quant,
            symbol=_require_symbol(symbol),
        )

    @property
    def description(self) -> str:
        return f"Add chord {self.chord.symbol}"

    def execute(self, score: Score) -> CommandResult:
        track = list(score.chord_track)
        existing = find_chord_index(track, self.chord.id)
        if existing != -1 and not positions_equal(track[existing], self.chord):
            return self._noop(score, f"chord id {self.chord.id} is already in use")

        index = sorted_insert_index(track, self.chord)
        if index < len(track) and positions_equal(track[index], self.chord):
            replaced = track[index]
            track[index] = self.chord
            return CommandResult(_with_track(score, track), ReplacedItem(replaced, index))

        track.insert(index, self.chord)
        return CommandResult(_with_track(score, track), InsertedItem(self.chord.id, index))

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        track = list(score.chord_track)
        index = find_chord_index(track, self.chord.id)
        if index == -1:
            return score

        if isinstance(record, ReplacedItem):
            track[index] = record.previous
        elif isinstance(record, InsertedItem):
            del track[index]
        else:
            return score
        return _with_track(score, track)


class UpdateChordCommand(Command):
    """
    Change a chord's symbol and/or position.

    Moving a chord re-sorts the track. Undo puts the previous chord back
    at the index it had before, restoring the original order exactly.
    """

    type = "UPDATE_CHORD"

    def __init__(
        self,
        chord_id: str,
        symbol: Optional[str] = None,
        measure: Optional[int] = None,
        quant: Optional[int] = None,
    ):
        self.chord_id = require_id("chord_id", chord_id)
        updates = {}
        if symbol is not None:
            updates["symbol"] = _require_symbol(symbol)
        if measure is not None:
            updates["measure"] = require_index("measure", measure)
        if quant is not None:
            updates["quant"] = require_index("quant", quant)
        if not updates:
            raise CommandValidationError("UpdateChordCommand needs a symbol, measure or quant")
        self.updates = updates

    @property
    def moves(self) -> bool:
        return "measure" in self.updates or "quant" in self.updates

    def execute(self, score: Score) -> CommandResult:
        track = list(score.chord_track)
        index = find_chord_index(track, self.chord_id)
        if index == -1:
            return self._noop(score, f"no chord {self.chord_id}")

        previous = track[index]
        updated = replace(previous, **self.updates)

        if self.moves:
            del track[index]
            occupant = next((c for c in track if positions_equal(c, updated)), None)
            if occupant is not None:
                return self._noop(score, f"position already holds chord {occupant.id}")
            track.insert(sorted_insert_index(track, updated), updated)
        else:
            track[index] = updated

        return CommandResult(_with_track(score, track), ReplacedItem(previous, index))

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, ReplacedItem):
            return score
        track = list(score.chord_track)
        index = find_chord_index(track, self.chord_id)
        if index == -1:
            return score

        del track[index]
        track.insert(min(record.index, len(track)), record.previous)
        return _with_track(score, track)


class RemoveChordCommand(Command):
    """Remove a chord by id; undo splices it back at its original index."""

    type = "REMOVE_CHORD"

    def __init__(self, chord_id: str):
        self.chord_id = require_id("chord_id", chord_id)

    def execute(self, score: Score) -> CommandResult:
        track = list(score.chord_track)
        index = find_chord_index(track, self.chord_id)
        if index == -1:
            return self._noop(score, f"no chord {self.chord_id}")

        removed = track.pop(index)
        return CommandResult(_with_track(score, track), RemovedItem(removed, index))

    def undo(self, score: Score, record: Optional[UndoRecord]) -> Score:
        if not isinstance(record, RemovedItem):
            return score
        track = list(score.chord_track)
        track.insert(min(record.index, len(track)), record.item)
        return _with_track(score, track)


def shift_chords(
    chord_track: Sequence[ChordSymbol],
    from_measure: int,
    offset: int,
) -> List[ChordSymbol]:
    """Move every chord at or after ``from_measure`` by ``offset`` measures."""
    return [
        replace(c, measure=c.measure + offset) if c.measure >= from_measure else c
        for c in chord_track
    ]
