"""Tests for the diagnosis entry lifecycle."""

import pytest

from ayush_terminology.diagnosis import DiagnosisDraft, EntryState, ProblemList
from ayush_terminology.exceptions import InvalidTransitionError


@pytest.fixture
def problems():
    return ProblemList()


class TestDiagnosisDraft:
    def test_starts_unselected(self):
        draft = DiagnosisDraft()
        assert draft.state == EntryState.UNSELECTED
        assert draft.editable

    def test_select_then_annotate(self):
        draft = DiagnosisDraft().select("AY006", "Agni Mandya")
        assert draft.state == EntryState.SELECTED
        draft.annotate("After meals", "recurrence")
        assert draft.state == EntryState.ANNOTATED
        assert draft.notes == "After meals"
        assert draft.clinical_status == "recurrence"

    def test_reselect_while_editing_keeps_state(self):
        draft = DiagnosisDraft().select("AY006").annotate("note")
        draft.select("AY007", "Agni Vriddhi")
        assert draft.code == "AY007"
        assert draft.state == EntryState.ANNOTATED

    def test_annotate_requires_selection(self):
        with pytest.raises(InvalidTransitionError):
            DiagnosisDraft().annotate("note")

    def test_unknown_clinical_status_is_rejected(self):
        with pytest.raises(ValueError):
            DiagnosisDraft().select("AY006").annotate("", "cured")

    def test_select_requires_a_code(self):
        with pytest.raises(ValueError):
            DiagnosisDraft().select("")


class TestProblemList:
    def test_add_stamps_recorded_time(self, problems):
        draft = problems.add(DiagnosisDraft().select("AY006"))
        assert draft.state == EntryState.ADDED
        assert draft.recorded_at
        assert not draft.editable

    def test_unselected_draft_cannot_be_added(self, problems):
        with pytest.raises(InvalidTransitionError):
            problems.add(DiagnosisDraft())

    def test_added_entry_cannot_be_reselected(self, problems):
        draft = problems.add(DiagnosisDraft().select("AY006"))
        with pytest.raises(InvalidTransitionError):
            draft.select("AY007")

    def test_discarded_entries_are_dropped(self, problems):
        keep = problems.add(DiagnosisDraft().select("AY006"))
        drop = problems.add(DiagnosisDraft().select("AY007"))
        problems.discard(drop)
        assert drop.state == EntryState.DISCARDED
        assert problems.entries == [keep]

    def test_save_marks_entries_saved(self, problems):
        problems.add(DiagnosisDraft().select("AY006"))
        saved = problems.save()
        assert [d.state for d in saved] == [EntryState.SAVED]
        assert problems.saved

    def test_saved_list_is_final(self, problems):
        draft = problems.add(DiagnosisDraft().select("AY006"))
        problems.save()
        with pytest.raises(InvalidTransitionError):
            problems.save()
        with pytest.raises(InvalidTransitionError):
            problems.add(DiagnosisDraft().select("AY007"))
        with pytest.raises(InvalidTransitionError):
            problems.discard(draft)
        with pytest.raises(InvalidTransitionError):
            draft.annotate("late edit")

    def test_transition_error_names_state_and_action(self, problems):
        draft = problems.add(DiagnosisDraft().select("AY006"))
        problems.discard(draft)
        with pytest.raises(InvalidTransitionError, match="Cannot discard a diagnosis entry in state 'discarded'"):
            problems.discard(draft)
