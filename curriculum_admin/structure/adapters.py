"""Bindings of ordered sibling sets to the tables that store them.

Three relations carry a per-scope ``position``:

* modules ordered under a course (``modules.course_id``)
* subjects ordered under a module through ``module_subjects``
* lessons ordered under a module (``lessons.module_id``)

Member ids are always the id of the ordered entity (module, subject,
lesson). For subjects the adapter resolves the member to its association
row before writing, since one subject can sit in several modules.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from curriculum_admin.models import Lesson, Module, ModuleSubject
from curriculum_admin.structure.errors import PersistenceError, ValidationError
from curriculum_admin.structure.ordering import Assignment, OrderedSiblingSet, next_position
from curriculum_admin.structure.store import SqlAlchemyStore

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Placement:
    """Where a newly created member landed."""

    member_id: int
    position: int
    row_id: int


class RelationAdapter:
    """Ordered relation stored in ``model`` and scoped by ``scope_column``."""

    kind: str = ""
    model = None
    scope_column: str = ""
    member_column: str = "id"

    def __init__(self, store: SqlAlchemyStore):
        self.store = store

    def _rows(self, scope_id) -> list:
        return self.store.select(self.model, {self.scope_column: scope_id}, order_by="position")

    def list_ordered(self, scope_id) -> list[Assignment]:
        """Members of ``scope_id`` with their stored positions, lowest first."""
        return [Assignment(getattr(row, self.member_column), row.position) for row in self._rows(scope_id)]

    def sibling_set(self, scope_id) -> OrderedSiblingSet:
        return OrderedSiblingSet.from_assignments(scope_id, self.list_ordered(scope_id))

    def scopes_of(self, member_id) -> list:
        """Every scope that currently holds ``member_id``."""
        rows = self.store.select(self.model, {self.member_column: member_id})
        return sorted({getattr(row, self.scope_column) for row in rows})

    def _row_ids(self, scope_id) -> dict:
        return {getattr(row, self.member_column): row.id for row in self._rows(scope_id)}

    def bulk_set_positions(self, scope_id, assignments: Iterable[Assignment]) -> None:
        """Write every assignment, one row per statement, in the given order.

        Stops at the first failing write and raises ``PersistenceError``;
        writes made before it stay committed.
        """
        row_ids = self._row_ids(scope_id)
        for assignment in assignments:
            row_id = row_ids.get(assignment.member_id)
            if row_id is None:
                raise PersistenceError(
                    f"{self.kind} {assignment.member_id} is no longer in scope {scope_id}",
                    self.model.__name__,
                    "update",
                )
            updated = self.store.update(
                self.model,
                {"id": row_id, self.scope_column: scope_id},
                {"position": assignment.position},
            )
            if updated != 1:
                raise PersistenceError(
                    f"{self.kind} {assignment.member_id} is no longer in scope {scope_id}",
                    self.model.__name__,
                    "update",
                )

    def create(self, scope_id, member_id: Optional[int] = None, **fields) -> Placement:
        """Append a member to ``scope_id`` at max(position) + 1."""
        existing = self.list_ordered(scope_id)
        position = next_position(a.position for a in existing)
        row = dict(fields)
        row[self.scope_column] = scope_id
        row["position"] = position
        if self.member_column != "id":
            if member_id is None:
                raise ValueError(f"{self.kind} placement needs a member id")
            if any(a.member_id == member_id for a in existing):
                raise ValidationError(f"{self.kind} {member_id} is already in scope {scope_id}")
            row[self.member_column] = member_id

        (created,) = self.store.insert(self.model, [row])
        LOGGER.info("Placed %s %s in scope %s at position %d", self.kind, getattr(created, self.member_column), scope_id, position)
        return Placement(getattr(created, self.member_column), position, created.id)


class ModuleAdapter(RelationAdapter):
    """Modules ordered under their course."""

    kind = "module"
    model = Module
    scope_column = "course_id"


class ModuleSubjectAdapter(RelationAdapter):
    """Subjects ordered under a module via ``module_subjects``."""

    kind = "subject"
    model = ModuleSubject
    scope_column = "module_id"
    member_column = "subject_id"


class LessonAdapter(RelationAdapter):
    """Lessons ordered under their owning module."""

    kind = "lesson"
    model = Lesson
    scope_column = "module_id"


ADAPTERS = {
    ModuleAdapter.kind: ModuleAdapter,
    ModuleSubjectAdapter.kind: ModuleSubjectAdapter,
    LessonAdapter.kind: LessonAdapter,
}

# Parent kind whose id is the scope of each ordered kind.
SCOPE_KINDS = {
    "module": "course",
    "subject": "module",
    "lesson": "module",
}


def adapter_for(kind: str, store: SqlAlchemyStore) -> RelationAdapter:
    """Return the adapter for an ordered kind; unordered kinds are rejected."""
    try:
        return ADAPTERS[kind](store)
    except KeyError:
        raise ValidationError(f"{kind!r} items cannot be reordered") from None
