"""Membership edits that do not depend on sibling order.

Attaching and detaching subjects to modules, lessons to subjects and tests
to subjects, plus creation and cascading removal of structure nodes.
Removing a member never renumbers the remaining siblings; the gap closes
on the next reorder of that scope.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from curriculum_admin.models import Course, Lesson, Module, ModuleSubject, Subject, SubjectLesson, Test
from curriculum_admin.structure.adapters import LessonAdapter, ModuleAdapter, ModuleSubjectAdapter
from curriculum_admin.structure.errors import NotFoundError, ValidationError
from curriculum_admin.structure.store import SqlAlchemyStore

LOGGER = logging.getLogger(__name__)

ASSOCIATION_KINDS = ("subject", "lesson", "test")

AVAILABLE = "available"
CURRENT = "current"
ASSIGNED_ELSEWHERE = "assigned_elsewhere"


@dataclass
class AssociationOption:
    """A candidate for association and where it currently belongs."""

    id: int
    display_name: str
    description: Optional[str]
    availability: str
    status_text: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "description": self.description,
            "availability": self.availability,
            "status_text": self.status_text,
        }


def _unique(ids: Iterable[int]) -> list[int]:
    seen = []
    for member_id in ids:
        if member_id not in seen:
            seen.append(member_id)
    return seen


class AssociationEditor:
    """Adds and removes structure memberships through the store."""

    def __init__(self, store: SqlAlchemyStore):
        self.store = store

    def _require(self, model, row_id):
        row = self.store.get(model, row_id)
        if row is None:
            raise NotFoundError(f"{model.__name__} {row_id} not found")
        return row

    def _require_all(self, model, ids: list[int]) -> None:
        found = {row.id for row in self.store.select(model, {"id": ids})}
        missing = [member_id for member_id in ids if member_id not in found]
        if missing:
            raise NotFoundError(f"{model.__name__} not found: {', '.join(str(m) for m in missing)}")

    def _scope_model(self, kind: str):
        if kind not in ASSOCIATION_KINDS:
            raise ValidationError(f"Cannot associate {kind!r} items")
        return Module if kind == "subject" else Subject

    # ---- queries ----

    def list_available(self, kind: str, scope_id: int) -> list:
        """Every ``kind`` row not yet associated with ``scope_id``."""
        self._require(self._scope_model(kind), scope_id)

        if kind == "subject":
            taken = {ms.subject_id for ms in self.store.select(ModuleSubject, {"module_id": scope_id})}
            return [s for s in self.store.select(Subject, order_by="name") if s.id not in taken]
        if kind == "lesson":
            taken = {sl.lesson_id for sl in self.store.select(SubjectLesson, {"subject_id": scope_id})}
            return [lesson for lesson in self.store.select(Lesson, order_by="title") if lesson.id not in taken]
        return [t for t in self.store.select(Test, order_by="title") if t.subject_id != scope_id]

    def association_options(self, kind: str, scope_id: int) -> list[AssociationOption]:
        """All candidates of ``kind`` with their availability relative to ``scope_id``."""
        self._require(self._scope_model(kind), scope_id)
        options = []

        if kind == "subject":
            modules_by_subject: dict[int, set] = {}
            for link in self.store.select(ModuleSubject):
                modules_by_subject.setdefault(link.subject_id, set()).add(link.module_id)
            for subject in self.store.select(Subject, order_by="name"):
                holders = modules_by_subject.get(subject.id, set())
                if scope_id in holders:
                    availability, text = CURRENT, "Already part of this module"
                elif holders:
                    availability, text = ASSIGNED_ELSEWHERE, "Associated with another module"
                else:
                    availability, text = AVAILABLE, "Available for association"
                options.append(AssociationOption(subject.id, subject.display_title, subject.description, availability, text))

        elif kind == "lesson":
            subjects_by_lesson: dict[int, set] = {}
            for link in self.store.select(SubjectLesson):
                subjects_by_lesson.setdefault(link.lesson_id, set()).add(link.subject_id)
            for lesson in self.store.select(Lesson, order_by="title"):
                holders = subjects_by_lesson.get(lesson.id, set())
                if scope_id in holders:
                    availability, text = CURRENT, "Already part of this subject"
                elif holders:
                    availability, text = ASSIGNED_ELSEWHERE, f"Associated with {len(holders)} other subject(s)"
                else:
                    availability, text = AVAILABLE, "Available for association"
                options.append(AssociationOption(lesson.id, lesson.title, lesson.description, availability, text))

        else:
            for test in self.store.select(Test, order_by="title"):
                if test.subject_id is None:
                    availability, text = AVAILABLE, "Available for association"
                elif test.subject_id == scope_id:
                    availability, text = CURRENT, "Already part of this subject"
                else:
                    availability, text = ASSIGNED_ELSEWHERE, "Associated with another subject"
                options.append(AssociationOption(test.id, test.title, test.description, availability, text))

        return options

    # ---- membership ----

    def associate(self, kind: str, scope_id: int, member_ids: Iterable[int]) -> list[int]:
        """Attach ``member_ids`` to ``scope_id``; returns the ids attached."""
        scope_model = self._scope_model(kind)
        self._require(scope_model, scope_id)
        ids = _unique(member_ids)
        if not ids:
            return []

        if kind == "subject":
            self._require_all(Subject, ids)
            adapter = ModuleSubjectAdapter(self.store)
            present = {a.member_id for a in adapter.list_ordered(scope_id)}
            duplicates = [member_id for member_id in ids if member_id in present]
            if duplicates:
                raise ValidationError(f"Subjects already in module {scope_id}: {duplicates}")
            for subject_id in ids:
                adapter.create(scope_id, subject_id)

        elif kind == "lesson":
            self._require_all(Lesson, ids)
            present = {sl.lesson_id for sl in self.store.select(SubjectLesson, {"subject_id": scope_id})}
            duplicates = [member_id for member_id in ids if member_id in present]
            if duplicates:
                raise ValidationError(f"Lessons already in subject {scope_id}: {duplicates}")
            self.store.insert(SubjectLesson, [{"subject_id": scope_id, "lesson_id": lesson_id} for lesson_id in ids])

        else:
            self._require_all(Test, ids)
            # A test belongs to one subject; this moves it away from any previous one.
            self.store.update(Test, {"id": ids}, {"subject_id": scope_id})

        LOGGER.info("Associated %s %s with %s %s", kind, ids, scope_model.__name__.lower(), scope_id)
        return ids

    def disassociate(self, kind: str, scope_id: int, member_id: int) -> None:
        """Detach one member from ``scope_id`` without deleting the member."""
        scope_model = self._scope_model(kind)
        if kind == "subject":
            removed = self.store.delete(ModuleSubject, {"module_id": scope_id, "subject_id": member_id})
        elif kind == "lesson":
            removed = self.store.delete(SubjectLesson, {"subject_id": scope_id, "lesson_id": member_id})
        else:
            removed = self.store.update(Test, {"id": member_id, "subject_id": scope_id}, {"subject_id": None})

        if not removed:
            raise NotFoundError(f"{kind} {member_id} is not associated with {scope_model.__name__.lower()} {scope_id}")
        LOGGER.info("Detached %s %s from %s %s", kind, member_id, scope_model.__name__.lower(), scope_id)

    # ---- creation ----

    def create_module(self, course_id: int, title: str, description: Optional[str] = None, is_required: bool = True) -> Module:
        self._require(Course, course_id)
        placement = ModuleAdapter(self.store).create(
            course_id, title=title, description=description, is_required=is_required
        )
        return self.store.get(Module, placement.row_id)

    def create_lesson(
        self,
        module_id: int,
        title: str,
        description: Optional[str] = None,
        subject_id: Optional[int] = None,
    ) -> Lesson:
        """Append a lesson to its module, optionally grouping it under a subject."""
        self._require(Module, module_id)
        if subject_id is not None:
            self._require(Subject, subject_id)
        placement = LessonAdapter(self.store).create(module_id, title=title, description=description)
        if subject_id is not None:
            self.store.insert(SubjectLesson, [{"subject_id": subject_id, "lesson_id": placement.row_id}])
        return self.store.get(Lesson, placement.row_id)

    def create_subject(self, name: str, code: Optional[str] = None, description: Optional[str] = None) -> Subject:
        (subject,) = self.store.insert(Subject, [{"name": name, "code": code, "description": description}])
        return subject

    def create_test(self, title: str, subject_id: Optional[int] = None, description: Optional[str] = None) -> Test:
        if subject_id is not None:
            self._require(Subject, subject_id)
        (test,) = self.store.insert(Test, [{"title": title, "subject_id": subject_id, "description": description}])
        return test

    # ---- removal ----

    def delete_module(self, module_id: int) -> None:
        """Delete a module with its subject links and its lessons.

        Subjects are shared and survive; only their links to this module go.
        """
        self._require(Module, module_id)
        lesson_ids = [lesson.id for lesson in self.store.select(Lesson, {"module_id": module_id})]
        if lesson_ids:
            self.store.delete(SubjectLesson, {"lesson_id": lesson_ids})
            self.store.delete(Lesson, {"id": lesson_ids})
        self.store.delete(ModuleSubject, {"module_id": module_id})
        self.store.delete(Module, {"id": module_id})
        LOGGER.info("Deleted module %s with %d lesson(s)", module_id, len(lesson_ids))

    def delete_subject(self, subject_id: int) -> None:
        """Delete a subject, its links to modules and lessons, and detach its tests."""
        self._require(Subject, subject_id)
        self.store.delete(ModuleSubject, {"subject_id": subject_id})
        self.store.delete(SubjectLesson, {"subject_id": subject_id})
        self.store.update(Test, {"subject_id": subject_id}, {"subject_id": None})
        self.store.delete(Subject, {"id": subject_id})
        LOGGER.info("Deleted subject %s", subject_id)

    def delete_lesson(self, lesson_id: int) -> None:
        self._require(Lesson, lesson_id)
        self.store.delete(SubjectLesson, {"lesson_id": lesson_id})
        self.store.delete(Lesson, {"id": lesson_id})
        LOGGER.info("Deleted lesson %s", lesson_id)

    def remove_node(self, kind: str, node_id: int, parent_id: Optional[int] = None) -> None:
        """Remove a node shown in the structure tree.

        Modules and subjects are deleted with their links. A lesson or test
        shown under a subject is only detached from that subject; a lesson
        named without a subject is deleted outright.
        """
        if kind == "module":
            self.delete_module(node_id)
        elif kind == "subject":
            self.delete_subject(node_id)
        elif kind == "lesson" and parent_id is None:
            self.delete_lesson(node_id)
        elif kind in ("lesson", "test"):
            if parent_id is None:
                raise ValidationError(f"Removing a {kind} from the tree needs its subject")
            self.disassociate(kind, parent_id, node_id)
        else:
            raise ValidationError(f"Cannot remove {kind!r} nodes")
