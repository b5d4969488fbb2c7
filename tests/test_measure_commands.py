"""
Tests for measure-level commands and reflow.
"""

from dataclasses import replace

import pytest

from score_editor.core.commands import CommandValidationError
from score_editor.core.durations import Duration
from score_editor.core.ids import sequential_ids
from score_editor.core.measure_commands import (
    AddMeasureCommand,
    DeleteMeasureCommand,
    SetTimeSignatureCommand,
    reflow_measures,
)
from score_editor.core.models import (
    ChordSymbol,
    Measure,
    Tuplet,
    create_default_score,
    make_note_event,
    make_rest_event,
    validate_score,
    with_events,
)


@pytest.fixture
def whole_note():
    """Two measures of 4/4: a whole C4, then a whole rest; one chord per measure."""
    score = create_default_score()
    score = with_events(score, 0, 0, [make_note_event("C4", "whole", id="w")])
    return replace(
        score,
        chord_track=(ChordSymbol("c1", 0, 0, "C"), ChordSymbol("c2", 1, 0, "G")),
    )


class TestReflow:
    """Tests for redistributing events across barlines."""

    def test_split_with_tie(self):
        """Test a whole note in 3/4 becomes dotted half tied to quarter."""
        measures = [Measure(id="m1", events=(make_note_event("C4", "whole", id="w"),))]
        result = reflow_measures(measures, 48, sequential_ids("x"))

        assert len(result) == 2
        first, second = result[0].events, result[1].events
        assert first[0].id == "w"
        assert (first[0].duration, first[0].dotted) == (Duration.HALF, True)
        assert first[0].notes[0].tied
        assert second[0].duration == Duration.QUARTER
        assert not second[0].notes[0].tied
        assert all(m.total_quants == 48 for m in result)

    def test_rests_split_untied(self):
        """Test rests are split without ties."""
        measures = [Measure(id="m1", events=(make_rest_event("whole", id="r"),))]
        result = reflow_measures(measures, 48, sequential_ids("x"))

        assert all(e.is_rest for m in result for e in m.events)
        assert not any(n.tied for m in result for e in m.events for n in e.notes)

    def test_measure_ids_reused(self):
        """Test existing measure ids carry over in order."""
        measures = [
            Measure(id="a", events=(make_rest_event("whole"),)),
            Measure(id="b", events=(make_rest_event("whole"),)),
        ]
        result = reflow_measures(measures, 32, sequential_ids("x"))

        assert [m.id for m in result[:2]] == ["a", "b"]
        assert len(result) == 4

    def test_tuplets_not_split(self):
        """Test a tuplet member that does not fit moves to the next measure."""
        base = Tuplet(id="t", ratio=(3, 2), group_size=3, position=0)
        events = (
            make_note_event("C4", "half", id="h"),
            *[make_note_event("D4", tuplet=replace(base, position=i), id=f"t{i}") for i in range(3)],
            make_rest_event("thirtysecond", id="r"),
        )
        result = reflow_measures([Measure(id="m", events=events)], 48, sequential_ids("x"))

        members = [e for m in result for e in m.events if e.tuplet is not None]
        assert [e.id for e in members] == ["t0", "t1", "t2"]
        assert all(e.quants == 10 for e in members)
        assert all(m.total_quants == 48 for m in result)

    def test_pickup_kept_short(self):
        """Test a leading pickup keeps its length."""
        measures = [
            Measure(id="p", events=(make_note_event("G4", "quarter"),), is_pickup=True),
            Measure(id="m", events=(make_rest_event("whole"),)),
        ]
        result = reflow_measures(measures, 48, sequential_ids("x"))

        assert result[0].is_pickup
        assert result[0].total_quants == 16
        assert all(m.total_quants == 48 for m in result[1:])


class TestSetTimeSignature:
    """Tests for SetTimeSignatureCommand."""

    def test_reflow_to_three_four(self, whole_note):
        """Test every measure is at the new capacity and chords keep their time."""
        command = SetTimeSignatureCommand("3/4")
        result = command.execute(whole_note)
        score = result.score

        assert score.time_signature == "3/4"
        assert validate_score(score) == []
        # Chord at absolute quant 64 lands in measure 1 at quant 16
        assert [(c.measure, c.quant) for c in score.chord_track] == [(0, 0), (1, 16)]
        assert command.undo(score, result.record) == whole_note

    def test_all_staves(self):
        """Test each staff is reflowed and rest padding is not kept."""
        score = create_default_score(num_staves=2)
        result = SetTimeSignatureCommand("2/4").execute(score)

        for staff in result.score.staves:
            assert len(staff.measures) == 2
            assert all(m.total_quants == 32 for m in staff.measures)
        assert validate_score(result.score) == []

    def test_content_gets_new_measures(self):
        """Test notes past the old measure count get measures of their own."""
        score = create_default_score()
        for m in range(2):
            score = with_events(score, 0, m, [make_note_event("C4", "whole", id=f"w{m}")])
        result = SetTimeSignatureCommand("3/4").execute(score)

        assert result.score.num_measures == 3
        assert not result.score.staves[0].measures[2].events[0].is_rest
        assert validate_score(result.score) == []

    def test_chords_keep_measures(self):
        """Test a chord past the old measure count keeps its measure."""
        score = replace(create_default_score(), chord_track=(ChordSymbol("c", 1, 48, "G"),))
        result = SetTimeSignatureCommand("2/4").execute(score)

        assert [(c.measure, c.quant) for c in result.score.chord_track] == [(3, 16)]
        assert result.score.num_measures == 4
        assert validate_score(result.score) == []

    def test_staves_evened_out(self):
        """Test staves keep a common length when only one has content past the old count."""
        score = create_default_score(num_staves=2)
        score = with_events(score, 0, 0, [make_note_event("C4", "whole", id="w")])
        score = with_events(score, 0, 1, [make_note_event("D4", "whole", id="x")])
        result = SetTimeSignatureCommand("3/4").execute(score)

        assert [len(s.measures) for s in result.score.staves] == [3, 3]
        assert validate_score(result.score) == []

    def test_repeated_changes_keep_ids_unique(self):
        """Test a chain of signature changes never reuses an event id in a measure."""
        score = create_default_score(num_measures=3)
        score = with_events(score, 0, 2, [make_note_event("E4", "half", id="h"), make_rest_event("half")])
        for signature in ["7/8", "5/4", "4/4", "5/4", "7/8"]:
            score = SetTimeSignatureCommand(signature).execute(score).score

        assert score.time_signature == "7/8"
        assert validate_score(score) == []
        assert score.num_measures <= 5

    def test_same_signature_twice(self):
        """Test two commands to one signature draw distinct rest ids."""
        score = create_default_score(num_measures=3)
        score = SetTimeSignatureCommand("5/4").execute(score).score
        score = SetTimeSignatureCommand("4/4").execute(score).score
        score = SetTimeSignatureCommand("5/4").execute(score).score

        ids = [e.id for m in score.staves[0].measures for e in m.events]
        assert len(ids) == len(set(ids))
        assert score.num_measures == 3

    def test_redo_reproduces_score(self, whole_note):
        """Test re-executing yields the same ids."""
        command = SetTimeSignatureCommand("3/4")
        assert command.execute(whole_note).score == command.execute(whole_note).score

    def test_same_signature_noop(self, whole_note):
        """Test setting the current signature changes nothing."""
        assert SetTimeSignatureCommand("4/4").execute(whole_note).record is None

    def test_normalized(self):
        """Test whitespace is normalized."""
        assert SetTimeSignatureCommand(" 6 / 8 ").time_signature == "6/8"

    @pytest.mark.parametrize("signature", ["4", "3/5", "0/4", ""])
    def test_rejected(self, signature):
        """Test malformed signatures fail at construction."""
        with pytest.raises(CommandValidationError):
            SetTimeSignatureCommand(signature)


class TestAddMeasure:
    """Tests for AddMeasureCommand."""

    def test_append(self, whole_note):
        """Test appending a rest measure to every staff."""
        command = AddMeasureCommand()
        result = command.execute(whole_note)

        assert result.score.num_measures == 3
        assert result.score.staves[0].measures[2].total_quants == 64
        assert result.score.chord_track == whole_note.chord_track
        assert command.undo(result.score, result.record) == whole_note

    def test_insert_shifts_chords(self, whole_note):
        """Test inserting at 1 moves later chords one measure on."""
        command = AddMeasureCommand(1)
        result = command.execute(whole_note)

        assert result.score.staves[0].measures[0].events[0].id == "w"
        assert [c.measure for c in result.score.chord_track] == [0, 2]
        assert command.undo(result.score, result.record) == whole_note

    def test_grand_staff(self):
        """Test every staff gains a measure."""
        score = create_default_score(num_staves=2)
        result = AddMeasureCommand(0).execute(score)
        assert [len(s.measures) for s in result.score.staves] == [3, 3]

    def test_redo_reproduces_score(self, whole_note):
        """Test measure and rest ids are stable across executions."""
        command = AddMeasureCommand()
        assert command.execute(whole_note).score == command.execute(whole_note).score

    def test_negative_index(self):
        """Test negative indices are rejected."""
        with pytest.raises(CommandValidationError):
            AddMeasureCommand(-1)


class TestDeleteMeasure:
    """Tests for DeleteMeasureCommand."""

    def test_delete_drops_and_shifts_chords(self):
        """Test the measure's chords go and later chords move back."""
        score = replace(
            create_default_score(num_measures=3),
            chord_track=(
                ChordSymbol("a", 0, 0, "C"),
                ChordSymbol("b", 1, 0, "F"),
                ChordSymbol("c", 2, 16, "G"),
            ),
        )
        command = DeleteMeasureCommand(1)
        result = command.execute(score)

        assert result.score.num_measures == 2
        assert [(c.id, c.measure) for c in result.score.chord_track] == [("a", 0), ("c", 1)]
        assert command.undo(result.score, result.record) == score

    def test_last_measure_kept(self):
        """Test the only measure cannot be deleted."""
        score = create_default_score(num_measures=1)
        result = DeleteMeasureCommand(0).execute(score)
        assert result.score == score
        assert result.record is None

    def test_out_of_range(self, whole_note):
        """Test deleting a missing measure is a no-op."""
        assert DeleteMeasureCommand(9).execute(whole_note).record is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
