"""
Tests for score commands.
"""

from dataclasses import replace

import pytest

from score_editor.core.commands import (
    AddNoteCommand,
    AddNoteToEventCommand,
    ApplyTupletCommand,
    ChangePitchCommand,
    CommandValidationError,
    CompositeCommand,
    CompositeRecord,
    DeleteEventCommand,
    DeleteNoteCommand,
    EnterEventCommand,
    FieldChange,
    InsertEventCommand,
    LoadScoreCommand,
    RemoveTupletCommand,
    SetBpmCommand,
    SetClefCommand,
    SetKeySignatureCommand,
    SetTitleCommand,
    TransposeCommand,
    UpdateNoteCommand,
)
from score_editor.core.models import (
    Measure,
    Tuplet,
    create_default_score,
    make_note_event,
    make_rest_event,
    validate_score,
    with_events,
    with_measure,
)


def _score_with(*events, time_signature="4/4"):
    """One-staff, two-measure score whose first measure holds ``events``."""
    score = create_default_score(time_signature=time_signature)
    return with_events(score, 0, 0, events)


@pytest.fixture
def melody():
    return _score_with(
        make_note_event("C4", "quarter", id="e1"),
        make_note_event("D4", "quarter", id="e2"),
        make_note_event("E4", "quarter", id="e3"),
        make_rest_event("quarter", id="r1"),
    )


@pytest.fixture
def triplets():
    base = Tuplet(id="t1", ratio=(3, 2), group_size=3, position=0)
    return _score_with(
        *[make_note_event(p, "quarter", id=f"t{i}", tuplet=replace(base, position=i))
          for i, p in enumerate(["C4", "D4", "E4"])],
        make_note_event("F4", "quarter", id="q1"),
        make_rest_event("quarter", id="r1"),
        make_rest_event("thirtysecond", id="r2"),
    )


def assert_inverse(command, score):
    """Execute then undo and expect the original back exactly."""
    result = command.execute(score)
    assert result.changed
    assert result.score != score
    assert command.undo(result.score, result.record) == score
    return result


def first_events(score):
    return score.staves[0].measures[0].events


class TestInverseLaw:
    """undo(execute(s)) == s for every command type."""

    def test_insert_event(self, melody):
        """Test inserting then undoing restores order."""
        event = make_note_event("G4", "eighth", id="new")
        assert_inverse(InsertEventCommand(0, event, insert_index=1), melody)

    def test_add_note(self, melody):
        """Test AddNoteCommand builds and inserts a single-note event."""
        result = assert_inverse(AddNoteCommand(1, "A4", "h", event_id="added"), melody)
        added = result.score.staves[0].measures[1].events[-1]
        assert added.id == "added"
        assert added.notes[0].pitch == "A4"

    def test_delete_event(self, melody):
        """Test a deleted event returns at its original index."""
        result = assert_inverse(DeleteEventCommand(0, "e2"), melody)
        assert [e.id for e in first_events(result.score)] == ["e1", "e3", "r1"]

    def test_add_note_to_event(self, melody):
        """Test stacking a pitch into a chord."""
        result = assert_inverse(AddNoteToEventCommand(0, "e1", "E4"), melody)
        assert [n.pitch for n in first_events(result.score)[0].notes] == ["C4", "E4"]

    def test_delete_note_from_chord(self):
        """Test removing one note of a chord keeps the event."""
        chord = make_note_event(["C4", "E4", "G4"], "whole", id="ch")
        score = _score_with(chord)
        result = assert_inverse(DeleteNoteCommand(0, "ch", chord.notes[1].id), score)
        assert [n.pitch for n in first_events(result.score)[0].notes] == ["C4", "G4"]

    def test_delete_last_note_removes_event(self, melody):
        """Test removing the only note removes the event."""
        note_id = first_events(melody)[1].notes[0].id
        result = assert_inverse(DeleteNoteCommand(0, "e2", note_id), melody)
        assert [e.id for e in first_events(result.score)] == ["e1", "e3", "r1"]

    def test_change_pitch(self, melody):
        """Test pitch changes record the single prior pitch."""
        note_id = first_events(melody)[0].notes[0].id
        result = assert_inverse(ChangePitchCommand(0, "e1", note_id, "F#4"), melody)
        assert result.record == FieldChange("pitch", "C4")

    def test_update_note(self, melody):
        """Test updating tie and accidental together."""
        note_id = first_events(melody)[0].notes[0].id
        result = assert_inverse(UpdateNoteCommand(0, "e1", note_id, tied=True, accidental="natural"), melody)
        note = first_events(result.score)[0].notes[0]
        assert note.tied and note.accidental == "natural"

    def test_transpose_measure(self, melody):
        """Test transposing a measure skips rests and keeps spelling on undo."""
        result = assert_inverse(TransposeCommand(0, 2), melody)
        events = first_events(result.score)
        assert [e.notes[0].pitch for e in events[:3]] == ["D4", "E4", "F#4"]
        assert events[3].is_rest

    def test_transpose_single_note(self, melody):
        """Test transposing one note leaves the others."""
        note_id = first_events(melody)[2].notes[0].id
        result = assert_inverse(TransposeCommand(0, 1, event_id="e3", note_id=note_id), melody)
        assert first_events(result.score)[2].notes[0].pitch == "F4"
        assert first_events(result.score)[0].notes[0].pitch == "C4"

    def test_apply_tuplet(self, melody):
        """Test grouping three quarters as a triplet."""
        result = assert_inverse(ApplyTupletCommand(0, "e1"), melody)
        members = first_events(result.score)[:3]
        assert [e.tuplet.position for e in members] == [0, 1, 2]
        assert {e.tuplet.id for e in members} == {"tuplet-e1"}
        assert all(e.quants == 10 for e in members)

    def test_remove_tuplet(self, triplets):
        """Test stripping a triplet from any member and restoring it."""
        result = assert_inverse(RemoveTupletCommand(0, "t1"), triplets)
        assert all(e.tuplet is None for e in first_events(result.score))

    def test_remove_tuplet_with_gap(self, triplets):
        """Test a group with a missing member is restored exactly."""
        events = list(first_events(triplets))
        del events[1]
        score = with_events(triplets, 0, 0, events)
        assert_inverse(RemoveTupletCommand(0, "t2"), score)

    def test_set_bpm(self, melody):
        """Test tempo changes."""
        assert_inverse(SetBpmCommand(90), melody)

    def test_set_title_and_key(self, melody):
        """Test score field commands."""
        assert_inverse(SetTitleCommand("Etude"), melody)
        assert_inverse(SetKeySignatureCommand("G"), melody)

    def test_set_clef(self, melody):
        """Test clef changes."""
        result = assert_inverse(SetClefCommand("bass"), melody)
        assert result.score.staves[0].clef == "bass"

    def test_load_score(self, melody):
        """Test load records the previous document."""
        other = create_default_score(title="Other")
        result = assert_inverse(LoadScoreCommand(other), melody)
        assert result.score is other

    def test_composite(self, melody):
        """Test several commands undo as one."""
        command = CompositeCommand([SetBpmCommand(80), DeleteEventCommand(0, "e1"), SetTitleCommand("X")])
        result = assert_inverse(command, melody)
        assert isinstance(result.record, CompositeRecord)
        assert command.description == "Set tempo to 80 bpm, Delete event, Rename score to 'X'"


class TestSetBpm:
    """Tests for tempo clamping."""

    def test_clamp_low(self, melody):
        """Test 5 bpm is stored as 10."""
        assert SetBpmCommand(5).execute(melody).score.bpm == 10

    def test_clamp_high(self, melody):
        """Test 9000 bpm is stored as 500."""
        assert SetBpmCommand(9000).execute(melody).score.bpm == 500

    def test_undo_restores_default(self, melody):
        """Test undo restores the original 120 rather than the clamped value."""
        command = SetBpmCommand(5)
        result = command.execute(melody)
        assert command.undo(result.score, result.record).bpm == 120

    def test_rejects_non_numbers(self):
        """Test non-numeric tempos fail at construction."""
        with pytest.raises(CommandValidationError):
            SetBpmCommand("fast")
        with pytest.raises(CommandValidationError):
            SetBpmCommand(True)


class TestValidation:
    """Construction-time argument checks."""

    @pytest.mark.parametrize("build", [
        lambda: DeleteEventCommand(-1, "e1"),
        lambda: DeleteEventCommand(0, "   "),
        lambda: AddNoteCommand(0, "H9"),
        lambda: AddNoteCommand(0, "C4", "breve"),
        lambda: ChangePitchCommand(0, "e1", "n1", "not-a-pitch"),
        lambda: UpdateNoteCommand(0, "e1", "n1", duration="half"),
        lambda: UpdateNoteCommand(0, "e1", "n1"),
        lambda: TransposeCommand(0, 1.5),
        lambda: TransposeCommand(0, 1, note_id="n1"),
        lambda: ApplyTupletCommand(0, "e1", group_size=1),
        lambda: SetClefCommand("soprano"),
        lambda: CompositeCommand([]),
        lambda: LoadScoreCommand("score.json"),
        lambda: EnterEventCommand(0, make_rest_event("quarter"), start_quant=-16),
    ])
    def test_rejected(self, build):
        """Test malformed arguments raise before any mutation."""
        with pytest.raises(CommandValidationError):
            build()

    def test_validation_error_is_value_error(self):
        """Test callers can catch ValueError."""
        with pytest.raises(ValueError):
            DeleteEventCommand(0, "")


class TestNotFound:
    """Commands addressing missing targets leave the score alone."""

    @pytest.mark.parametrize("command", [
        InsertEventCommand(7, make_note_event("C4")),
        InsertEventCommand(0, make_note_event("C4"), staff_index=3),
        DeleteEventCommand(0, "missing"),
        AddNoteToEventCommand(0, "missing", "C4"),
        DeleteNoteCommand(0, "e1", "missing"),
        ChangePitchCommand(0, "missing", "n", "C4"),
        UpdateNoteCommand(0, "e1", "missing", tied=True),
        TransposeCommand(9, 3),
        TransposeCommand(0, 3, event_id="missing"),
        ApplyTupletCommand(0, "missing"),
        RemoveTupletCommand(0, "missing"),
        SetClefCommand("bass", staff_index=4),
        EnterEventCommand(5, make_note_event("C4")),
    ])
    def test_noop(self, melody, command):
        """Test the score comes back unchanged with no record."""
        result = command.execute(melody)
        assert result.score == melody
        assert result.record is None
        assert command.undo(result.score, result.record) == melody

    def test_duplicate_event_id(self, melody):
        """Test inserting an id already in the measure is a no-op."""
        result = InsertEventCommand(0, make_note_event("C4", id="e1")).execute(melody)
        assert result.record is None

    def test_duplicate_pitch_in_chord(self, melody):
        """Test adding a pitch already in the event is a no-op."""
        assert AddNoteToEventCommand(0, "e1", "C4").execute(melody).record is None

    def test_add_note_to_rest(self, melody):
        """Test rests cannot become chords."""
        assert AddNoteToEventCommand(0, "r1", "C4").execute(melody).record is None

    def test_change_pitch_of_rest(self, melody):
        """Test a rest's placeholder note has no pitch to change."""
        assert ChangePitchCommand(0, "r1", "r1-rest", "C4").execute(melody).record is None

    def test_tuplet_overlap(self, triplets):
        """Test events already in a tuplet cannot be grouped again."""
        assert ApplyTupletCommand(0, "t2").execute(triplets).record is None

    def test_remove_tuplet_plain_event(self, melody):
        """Test removing a tuplet from a plain event is a no-op."""
        assert RemoveTupletCommand(0, "e1").execute(melody).record is None

    def test_same_value_no_record(self, melody):
        """Test zero transposition changes nothing."""
        assert TransposeCommand(0, 0).execute(melody).record is None


class TestEnterEvent:
    """Tests for overwrite-mode entry."""

    def test_overwrite_middle(self):
        """Test e1 e2 e3 + quarter at 16 -> e1 new e3 padded to 64."""
        score = _score_with(
            make_note_event("C4", "quarter", id="e1"),
            make_note_event("D4", "quarter", id="e2"),
            make_note_event("E4", "quarter", id="e3"),
        )
        new = make_note_event("G4", "quarter", id="new")

        result = assert_inverse(EnterEventCommand(0, new, start_quant=16), score)
        events = first_events(result.score)

        assert [e.id for e in events[:3]] == ["e1", "new", "e3"]
        assert len(events) == 4
        assert events[3].is_rest and events[3].quants == 16
        assert events[3].notes[0].id == f"{events[3].id}-rest"
        assert sum(e.quants for e in events) == 64

    def test_overwrite_without_fill(self):
        """Test fill=False leaves the total at 48."""
        score = _score_with(
            make_note_event("C4", "quarter", id="e1"),
            make_note_event("D4", "quarter", id="e2"),
            make_note_event("E4", "quarter", id="e3"),
        )
        result = EnterEventCommand(0, make_note_event("G4", id="new"), 16, fill=False).execute(score)
        assert sum(e.quants for e in first_events(result.score)) == 48

    def test_partial_overlap_fills_gaps(self):
        """Test an eighth over the middle of a half note leaves rests around it."""
        score = _score_with(make_note_event("C4", "half", id="h"), make_rest_event("half", id="r"))
        result = EnterEventCommand(0, make_note_event("G4", "eighth", id="n"), start_quant=8).execute(score)

        events = first_events(result.score)
        assert [e.id for e in events][-1] == "r"
        assert events[0].is_rest and events[0].quants == 8
        assert events[1].id == "n"
        assert sum(e.quants for e in events) == 64
        assert validate_score(result.score) == []

    def test_keeps_capacity_in_rest_measure(self):
        """Test entering into an empty measure keeps it exactly full."""
        score = create_default_score()
        command = EnterEventCommand(1, make_note_event("C4", "quarter", dotted=True, id="n"), 16)

        result = command.execute(score)
        assert result.score.staves[0].measures[1].total_quants == 64
        assert validate_score(result.score) == []

    def test_pickup_not_padded(self):
        """Test entering into a pickup keeps it at its content length."""
        score = _score_with(make_note_event("G4", "quarter", id="p"))
        score = with_measure(score, 0, 0, replace(score.staves[0].measures[0], is_pickup=True))

        result = assert_inverse(EnterEventCommand(0, make_note_event("A4", "eighth", id="n"), 16), score)
        pickup = result.score.staves[0].measures[0]

        assert pickup.is_pickup
        assert [e.id for e in pickup.events] == ["p", "n"]
        assert pickup.total_quants == 24
        assert validate_score(result.score) == []

    def test_pickup_limited_to_one_measure(self):
        """Test a pickup cannot grow past a full measure."""
        score = _score_with(make_note_event("G4", "half", id="p"))
        score = with_measure(score, 0, 0, replace(score.staves[0].measures[0], is_pickup=True))

        command = EnterEventCommand(0, make_note_event("A4", "whole", id="n"), 32)
        assert command.execute(score).record is None

    def test_redo_reproduces_score(self):
        """Test executing twice yields identical scores, rest ids included."""
        score = create_default_score()
        command = EnterEventCommand(0, make_note_event("C4", id="n"), 16)
        assert command.execute(score).score == command.execute(score).score

    def test_exceeding_capacity(self, melody):
        """Test an event past the barline is a no-op."""
        command = EnterEventCommand(0, make_note_event("C4", "half"), start_quant=48)
        assert command.execute(melody).record is None

    def test_replace_same_id(self, melody):
        """Test re-entering an event over itself is allowed."""
        event = make_note_event("B4", "quarter", id="e2")
        result = EnterEventCommand(0, event, start_quant=16).execute(melody)
        assert first_events(result.score)[1].notes[0].pitch == "B4"

    def test_input_not_mutated(self, melody):
        """Test the original snapshot still holds the old events."""
        before = first_events(melody)
        EnterEventCommand(0, make_note_event("G4", id="x"), start_quant=0).execute(melody)
        assert first_events(melody) is before
        assert isinstance(melody.staves[0].measures[0], Measure)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
