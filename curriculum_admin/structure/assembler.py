"""Read-only projection of the stored curriculum into course trees."""
import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional

from curriculum_admin.models import Course, Lesson, Module, ModuleSubject, Subject, SubjectLesson, Test
from curriculum_admin.structure.errors import IntegrityWarning
from curriculum_admin.structure.store import SqlAlchemyStore

LOGGER = logging.getLogger(__name__)


def row_to_dict(row) -> dict:
    """Column values of an ORM row as a plain dictionary."""
    return {column.name: getattr(row, column.name) for column in row.__table__.columns}


def node_key(kind: str, node_id, parent_key: Optional[str] = None) -> str:
    key = f"{kind}:{node_id}"
    return f"{parent_key}/{key}" if parent_key else key


@dataclass
class TreeNode:
    """One node of a course tree.

    ``key`` is the path from the course root, so a subject shared by two
    modules yields two distinct nodes.
    """

    id: int
    kind: str
    title: str
    key: str
    parent_id: Optional[int] = None
    parent_key: Optional[str] = None
    position: Optional[int] = None
    data: dict = field(default_factory=dict)
    children: list["TreeNode"] = field(default_factory=list)

    def walk(self) -> Iterator["TreeNode"]:
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "title": self.title,
            "key": self.key,
            "parent_id": self.parent_id,
            "position": self.position,
            "data": self.data,
            "children": [child.to_dict() for child in self.children],
        }


def _by_position(row):
    return (row.position if row.position is not None else 0, row.id)


class TreeAssembler:
    """Loads the structure tables and assembles one tree per course."""

    def __init__(self, store: SqlAlchemyStore):
        self.store = store
        self.integrity_warnings: list[str] = []

    def _dangling(self, message: str, *args) -> None:
        text = message % args
        self.integrity_warnings.append(text)
        LOGGER.warning("%s: %s", IntegrityWarning.__name__, text)

    def assemble(self, course_id: Optional[int] = None) -> list[TreeNode]:
        """Trees for ``course_id``, or for every course when it is ``None``."""
        self.integrity_warnings = []
        course_filter = {"id": course_id} if course_id is not None else None
        courses = self.store.select(Course, course_filter, order_by="title")
        if not courses:
            return []

        modules = self.store.select(Module, {"course_id": [c.id for c in courses]}, order_by="position")
        module_ids = [m.id for m in modules]
        module_subjects = self.store.select(ModuleSubject, {"module_id": module_ids}, order_by="position")
        subjects = {
            s.id: s
            for s in self.store.select(Subject, {"id": sorted({ms.subject_id for ms in module_subjects})})
        }
        subject_lessons = self.store.select(SubjectLesson, {"subject_id": sorted(subjects)})
        lessons = {
            lesson.id: lesson
            for lesson in self.store.select(Lesson, {"id": sorted({sl.lesson_id for sl in subject_lessons})})
        }
        tests = self.store.select(Test, {"subject_id": sorted(subjects)}, order_by="title")

        modules_by_course: dict[int, list] = {}
        for module in sorted(modules, key=_by_position):
            modules_by_course.setdefault(module.course_id, []).append(module)
        links_by_module: dict[int, list] = {}
        for link in sorted(module_subjects, key=_by_position):
            links_by_module.setdefault(link.module_id, []).append(link)
        lesson_links_by_subject: dict[int, list] = {}
        for link in subject_lessons:
            lesson_links_by_subject.setdefault(link.subject_id, []).append(link)
        tests_by_subject: dict[int, list] = {}
        for test in tests:
            tests_by_subject.setdefault(test.subject_id, []).append(test)

        trees = []
        for course in courses:
            course_node = TreeNode(course.id, "course", course.title, node_key("course", course.id), data=row_to_dict(course))
            for module in modules_by_course.get(course.id, []):
                module_node = TreeNode(
                    module.id,
                    "module",
                    module.title,
                    node_key("module", module.id, course_node.key),
                    parent_id=course.id,
                    parent_key=course_node.key,
                    position=module.position,
                    data=row_to_dict(module),
                )
                for link in links_by_module.get(module.id, []):
                    subject = subjects.get(link.subject_id)
                    if subject is None:
                        self._dangling("module %s links missing subject %s", module.id, link.subject_id)
                        continue
                    module_node.children.append(
                        self._subject_node(subject, link, module_node, lessons, lesson_links_by_subject, tests_by_subject)
                    )
                course_node.children.append(module_node)
            trees.append(course_node)
        return trees

    def _subject_node(self, subject, link, module_node, lessons, lesson_links_by_subject, tests_by_subject) -> TreeNode:
        data = row_to_dict(subject)
        data["module_subject_id"] = link.id
        subject_node = TreeNode(
            subject.id,
            "subject",
            subject.display_title,
            node_key("subject", subject.id, module_node.key),
            parent_id=module_node.id,
            parent_key=module_node.key,
            position=link.position,
            data=data,
        )

        subject_lessons = []
        for lesson_link in lesson_links_by_subject.get(subject.id, []):
            lesson = lessons.get(lesson_link.lesson_id)
            if lesson is None:
                self._dangling("subject %s links missing lesson %s", subject.id, lesson_link.lesson_id)
                continue
            subject_lessons.append(lesson)

        for lesson in sorted(subject_lessons, key=_by_position):
            subject_node.children.append(
                TreeNode(
                    lesson.id,
                    "lesson",
                    lesson.title,
                    node_key("lesson", lesson.id, subject_node.key),
                    parent_id=subject.id,
                    parent_key=subject_node.key,
                    position=lesson.position,
                    data=row_to_dict(lesson),
                )
            )
        for test in tests_by_subject.get(subject.id, []):
            subject_node.children.append(
                TreeNode(
                    test.id,
                    "test",
                    test.title,
                    node_key("test", test.id, subject_node.key),
                    parent_id=subject.id,
                    parent_key=subject_node.key,
                    data=row_to_dict(test),
                )
            )
        return subject_node

    def course_structure(self, course_id: int) -> dict:
        """Per-scope ordered lists for one course: modules, their subjects and lessons."""
        modules = sorted(self.store.select(Module, {"course_id": course_id}), key=_by_position)
        module_ids = [m.id for m in modules]
        links = sorted(self.store.select(ModuleSubject, {"module_id": module_ids}), key=_by_position)
        subjects = {s.id: s for s in self.store.select(Subject, {"id": sorted({link.subject_id for link in links})})}
        module_lessons = sorted(self.store.select(Lesson, {"module_id": module_ids}), key=_by_position)

        module_subjects: dict[int, list] = {module_id: [] for module_id in module_ids}
        for link in links:
            subject = subjects.get(link.subject_id)
            if subject is None:
                self._dangling("module %s links missing subject %s", link.module_id, link.subject_id)
                continue
            entry = row_to_dict(link)
            entry["subject"] = row_to_dict(subject)
            module_subjects[link.module_id].append(entry)

        lessons_by_module: dict[int, list] = {module_id: [] for module_id in module_ids}
        for lesson in module_lessons:
            lessons_by_module[lesson.module_id].append(row_to_dict(lesson))

        return {
            "course_id": course_id,
            "modules": [row_to_dict(m) for m in modules],
            "module_subjects": module_subjects,
            "lessons": lessons_by_module,
        }
