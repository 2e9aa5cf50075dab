"""Ordered sibling sets.

A scope (the parent id) holds members that each carry a unique, dense,
zero-based position. Moving a member is a pure in-memory computation:
remove it, reinsert it at the target index, renumber everything 0..n-1.
Persisting the result is the reorder coordinator's job.
"""
from dataclasses import dataclass, field
from typing import Hashable, Iterable, Optional, Sequence

from curriculum_admin.structure.errors import ValidationError

PLACEMENTS = ("over", "before", "after")


@dataclass(frozen=True)
class Assignment:
    """A member id paired with the position it should hold."""

    member_id: Hashable
    position: int


def renumber(member_ids: Sequence[Hashable], start: int = 0) -> list[Assignment]:
    """Assign consecutive positions from ``start`` in list order."""
    return [Assignment(member_id, start + index) for index, member_id in enumerate(member_ids)]


def is_dense(positions: Iterable[int]) -> bool:
    """True when ``positions`` is exactly {0, ..., n-1} with no duplicates."""
    values = list(positions)
    return sorted(values) == list(range(len(values)))


def next_position(positions: Iterable[int]) -> int:
    """Position for a member appended to a scope: max + 1, or 0 when empty."""
    return max(positions, default=-1) + 1


def move_member(
    member_ids: Sequence[Hashable],
    moved_id: Hashable,
    target_id: Hashable,
    placement: str = "over",
) -> list[Hashable]:
    """Return a new member order with ``moved_id`` relocated relative to ``target_id``.

    ``placement`` selects where the member lands:

    * ``"over"``: takes the target's current index, like a sortable list
      drop. Dragging downwards lands after the target, upwards before it.
    * ``"before"`` / ``"after"``: immediately before or after the target.

    Raises ``ValidationError`` when either id is not a member.
    """
    if placement not in PLACEMENTS:
        raise ValueError(f"placement must be one of: {', '.join(PLACEMENTS)}")

    ordered = list(member_ids)
    if moved_id not in ordered:
        raise ValidationError(f"{moved_id!r} is not a member of this scope")
    if target_id not in ordered:
        raise ValidationError(f"{target_id!r} is not a member of this scope")
    if moved_id == target_id or len(ordered) < 2:
        return ordered

    old_index = ordered.index(moved_id)
    if placement == "over":
        new_index = ordered.index(target_id)
        ordered.pop(old_index)
        ordered.insert(new_index, moved_id)
        return ordered

    ordered.pop(old_index)
    new_index = ordered.index(target_id)
    if placement == "after":
        new_index += 1
    ordered.insert(new_index, moved_id)
    return ordered


@dataclass
class OrderedSiblingSet:
    """The members of one scope in display order."""

    scope_id: Hashable
    member_ids: list = field(default_factory=list)

    @classmethod
    def from_assignments(cls, scope_id: Hashable, assignments: Iterable[Assignment]) -> "OrderedSiblingSet":
        """Build a set from stored positions; ties and gaps are resolved by sort order."""
        ordered = sorted(assignments, key=lambda a: a.position)
        return cls(scope_id, [a.member_id for a in ordered])

    def __len__(self) -> int:
        return len(self.member_ids)

    def __contains__(self, member_id) -> bool:
        return member_id in self.member_ids

    def positions(self) -> list[Assignment]:
        return renumber(self.member_ids)

    def index_of(self, member_id) -> Optional[int]:
        try:
            return self.member_ids.index(member_id)
        except ValueError:
            return None

    def move_member(self, moved_id, target_id, placement: str = "over") -> "OrderedSiblingSet":
        """Return a new set with the member moved; this set is left untouched."""
        return OrderedSiblingSet(self.scope_id, move_member(self.member_ids, moved_id, target_id, placement))
