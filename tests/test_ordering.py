"""Tests for ordered sibling sets and the pure move computation."""
import random

import pytest

from curriculum_admin.structure import (
    Assignment,
    OrderedSiblingSet,
    ValidationError,
    is_dense,
    move_member,
    next_position,
    renumber,
)


@pytest.mark.ordering
class TestMoveMember:
    """Tests for move_member placements."""

    def test_dropping_last_over_first_moves_it_to_the_front(self):
        """Test that C dropped over A gives C, A, B."""
        assert move_member(["A", "B", "C"], "C", "A") == ["C", "A", "B"]

    def test_dragging_downwards_lands_after_target(self):
        """Test that A dropped over B takes B's index."""
        assert move_member(["A", "B", "C"], "A", "B") == ["B", "A", "C"]

    def test_before_and_after_placements(self):
        """Test that explicit placements land next to the target."""
        assert move_member(["A", "B", "C", "D"], "A", "C", "before") == ["B", "A", "C", "D"]
        assert move_member(["A", "B", "C", "D"], "A", "C", "after") == ["B", "C", "A", "D"]
        assert move_member(["A", "B", "C", "D"], "D", "B", "after") == ["A", "B", "D", "C"]

    def test_drop_on_itself_is_a_noop(self):
        """Test that moving a member onto itself keeps the order."""
        assert move_member(["A", "B", "C"], "B", "B") == ["A", "B", "C"]

    def test_single_member_scope_is_a_noop(self):
        """Test that a scope with one member never changes."""
        assert move_member(["A"], "A", "A") == ["A"]

    def test_moving_to_current_neighbour_slot_is_stable(self):
        """Test that placing a member before its successor changes nothing."""
        assert move_member(["A", "B", "C"], "A", "B", "before") == ["A", "B", "C"]

    def test_input_is_not_mutated(self):
        """Test that the caller's list stays untouched."""
        original = ["A", "B", "C"]
        move_member(original, "C", "A")
        assert original == ["A", "B", "C"]

    def test_unknown_member_raises(self):
        """Test that non-members are rejected."""
        with pytest.raises(ValidationError):
            move_member(["A", "B"], "Z", "A")
        with pytest.raises(ValidationError):
            move_member(["A", "B"], "A", "Z")

    def test_unknown_placement_raises(self):
        """Test that only known placements are accepted."""
        with pytest.raises(ValueError):
            move_member(["A", "B"], "A", "B", "inside")

    def test_move_then_move_back_restores_order(self):
        """Test that moving a member back over its old neighbour restores the order."""
        moved = move_member(["A", "B", "C", "D"], "D", "B")
        assert moved == ["A", "D", "B", "C"]
        assert move_member(moved, "D", "C") == ["A", "B", "C", "D"]

    def test_random_moves_keep_a_permutation(self):
        """Test that any sequence of moves keeps every member exactly once."""
        rng = random.Random(7)
        for size in range(1, 9):
            members = list(range(size))
            order = list(members)
            for _ in range(25):
                moved, target = rng.choice(order), rng.choice(order)
                order = move_member(order, moved, target, rng.choice(["over", "before", "after"]))
                assert sorted(order) == members
                assert is_dense(a.position for a in renumber(order))


@pytest.mark.ordering
class TestPositions:
    """Tests for position helpers."""

    def test_renumber_from_zero(self):
        """Test that renumbering assigns 0..n-1 in list order."""
        assert renumber(["C", "A", "B"]) == [
            Assignment("C", 0),
            Assignment("A", 1),
            Assignment("B", 2),
        ]

    def test_renumber_with_offset(self):
        """Test that renumbering can start from a quarantine base."""
        assert [a.position for a in renumber([5, 6], start=100000)] == [100000, 100001]

    def test_is_dense(self):
        """Test density detection."""
        assert is_dense([])
        assert is_dense([2, 0, 1])
        assert not is_dense([0, 2])
        assert not is_dense([0, 0, 1])
        assert not is_dense([1, 2])

    def test_next_position(self):
        """Test that appends land after the current maximum."""
        assert next_position([]) == 0
        assert next_position([0, 1, 2]) == 3
        assert next_position([0, 1, 4]) == 5


@pytest.mark.ordering
class TestOrderedSiblingSet:
    """Tests for OrderedSiblingSet."""

    def test_from_assignments_sorts_and_closes_gaps(self):
        """Test that stored positions with gaps load in order."""
        siblings = OrderedSiblingSet.from_assignments(
            1, [Assignment("B", 4), Assignment("A", 0), Assignment("C", 9)]
        )
        assert siblings.member_ids == ["A", "B", "C"]
        assert siblings.positions() == renumber(["A", "B", "C"])

    def test_membership_and_index(self):
        """Test membership helpers."""
        siblings = OrderedSiblingSet(1, ["A", "B"])
        assert len(siblings) == 2
        assert "B" in siblings
        assert "Z" not in siblings
        assert siblings.index_of("B") == 1
        assert siblings.index_of("Z") is None

    def test_move_returns_new_set(self):
        """Test that moving leaves the original set untouched."""
        siblings = OrderedSiblingSet(1, ["A", "B", "C"])
        moved = siblings.move_member("C", "A")
        assert moved.member_ids == ["C", "A", "B"]
        assert moved.scope_id == 1
        assert siblings.member_ids == ["A", "B", "C"]
