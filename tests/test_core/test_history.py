"""
Tests for cowrite/core/history.py - bounded undo/redo stacks.
"""

import pytest

from cowrite.core.history import (
    UNDO_REDO_CAP,
    HistoryEmptyError,
    cap_stack,
    push_bounded,
    record_edit,
    plan_undo,
    plan_redo,
)


class TestBoundedStacks:
    """Tests for cap_stack and push_bounded."""

    def test_push_is_most_recent_first(self):
        assert push_bounded(["b", "a"], "c") == ["c", "b", "a"]

    def test_oldest_entries_dropped(self):
        stack = [str(i) for i in range(UNDO_REDO_CAP)]
        pushed = push_bounded(stack, "new")

        assert len(pushed) == UNDO_REDO_CAP
        assert pushed[0] == "new"
        assert str(UNDO_REDO_CAP - 1) not in pushed

    def test_cap_stack_copies(self):
        original = ["a"]
        capped = cap_stack(original)
        capped.append("b")
        assert original == ["a"]


class TestRecordEdit:
    """Tests for record_edit."""

    def test_change_pushes_previous_and_clears_redo(self):
        undo, redo = record_edit("old", "new", ["older"], ["undone"])
        assert undo == ["old", "older"]
        assert redo == []

    def test_identical_content_is_noop(self):
        undo, redo = record_edit("same", "same", ["older"], ["undone"])
        assert undo == ["older"]
        assert redo == ["undone"]

    def test_empty_previous_is_recorded(self):
        undo, _ = record_edit("", "first", [], [])
        assert undo == [""]


class TestPlanUndoRedo:
    """Tests for plan_undo / plan_redo."""

    def test_undo_moves_current_to_redo(self):
        assert plan_undo("new text", ["old text"], []) == ("old text", [], ["new text"])

    def test_redo_mirrors_undo(self):
        assert plan_redo("old text", [], ["new text"]) == ("new text", ["old text"], [])

    def test_round_trip_restores_stacks(self):
        content, undo, redo = plan_undo("c", ["b", "a"], [])
        content, undo, redo = plan_redo(content, undo, redo)
        assert (content, undo, redo) == ("c", ["b", "a"], [])

    def test_empty_stacks_raise(self):
        with pytest.raises(HistoryEmptyError):
            plan_undo("x", [], [])
        with pytest.raises(HistoryEmptyError):
            plan_redo("x", [], [])
