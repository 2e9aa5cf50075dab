"""Tests for membership edits, node creation and cascading removal."""
import pytest

from curriculum_admin.models import Lesson, Module, ModuleSubject, Subject, SubjectLesson, Test
from curriculum_admin.structure import AssociationEditor, NotFoundError, ValidationError


@pytest.mark.associations
class TestListAvailable:
    """Tests for listing association candidates."""

    def test_subjects_not_in_module(self, store, curriculum):
        """Test that subjects already in the module are excluded."""
        available = AssociationEditor(store).list_available("subject", curriculum.module_b)
        assert sorted(s.id for s in available) == sorted([curriculum.s2, curriculum.s3])

    def test_lessons_not_in_subject(self, store, curriculum):
        """Test that lessons already grouped under the subject are excluded."""
        available = AssociationEditor(store).list_available("lesson", curriculum.s1)
        assert [lesson.id for lesson in available] == [curriculum.l2]

    def test_tests_not_on_subject(self, store, curriculum):
        """Test that tests on the subject are excluded, others stay listed."""
        available = AssociationEditor(store).list_available("test", curriculum.s1)
        assert [t.id for t in available] == [curriculum.t2]
        available = AssociationEditor(store).list_available("test", curriculum.s2)
        assert sorted(t.id for t in available) == sorted([curriculum.t1, curriculum.t2])

    def test_unknown_scope(self, store, curriculum):
        """Test that an unknown module raises NotFoundError."""
        with pytest.raises(NotFoundError):
            AssociationEditor(store).list_available("subject", 9999)

    def test_unknown_kind(self, store, curriculum):
        """Test that modules cannot be associated."""
        with pytest.raises(ValidationError):
            AssociationEditor(store).list_available("module", curriculum.course)


@pytest.mark.associations
class TestAssociationOptions:
    """Tests for availability-annotated options."""

    def test_subject_availability(self, store, db, curriculum):
        """Test current, elsewhere and free subjects for one module."""
        free = Subject(name="Visualisation", code="DS201")
        db.add(free)
        db.commit()

        options = {o.id: o for o in AssociationEditor(store).association_options("subject", curriculum.module_b)}
        assert options[curriculum.s1].availability == "current"
        assert options[curriculum.s2].availability == "assigned_elsewhere"
        assert options[free.id].availability == "available"
        assert options[free.id].display_name == "DS201 - Visualisation"

    def test_test_availability(self, store, curriculum):
        """Test that a test held by another subject is flagged."""
        options = {o.id: o for o in AssociationEditor(store).association_options("test", curriculum.s2)}
        assert options[curriculum.t1].availability == "assigned_elsewhere"
        assert options[curriculum.t2].availability == "available"
        assert options[curriculum.t2].to_dict()["status_text"] == "Available for association"


@pytest.mark.associations
class TestAssociate:
    """Tests for attaching and detaching members."""

    def test_subjects_append_in_request_order(self, store, stored_positions, curriculum):
        """Test that new subjects append at the end of the module."""
        associated = AssociationEditor(store).associate("subject", curriculum.module_b, [curriculum.s3, curriculum.s2])
        assert associated == [curriculum.s3, curriculum.s2]
        assert stored_positions(ModuleSubject, module_id=curriculum.module_b) == {
            curriculum.s1: 0,
            curriculum.s3: 1,
            curriculum.s2: 2,
        }

    def test_duplicate_subject_rejected(self, store, stored_positions, curriculum):
        """Test that nothing is written when a subject is already present."""
        with pytest.raises(ValidationError):
            AssociationEditor(store).associate("subject", curriculum.module_b, [curriculum.s2, curriculum.s1])
        assert stored_positions(ModuleSubject, module_id=curriculum.module_b) == {curriculum.s1: 0}

    def test_missing_subject_rejected(self, store, curriculum):
        """Test that unknown subjects raise NotFoundError."""
        with pytest.raises(NotFoundError):
            AssociationEditor(store).associate("subject", curriculum.module_b, [9999])

    def test_lessons(self, store, db, curriculum):
        """Test grouping a lesson under another subject."""
        AssociationEditor(store).associate("lesson", curriculum.s3, [curriculum.l2])
        links = db.query(SubjectLesson).filter_by(lesson_id=curriculum.l2).all()
        assert sorted(link.subject_id for link in links) == sorted([curriculum.s2, curriculum.s3])

    def test_test_moves_between_subjects(self, store, curriculum):
        """Test that a test belongs to one subject at a time."""
        AssociationEditor(store).associate("test", curriculum.s2, [curriculum.t1])
        assert store.get(Test, curriculum.t1).subject_id == curriculum.s2

    def test_empty_request(self, store, curriculum):
        """Test that associating nothing is a no-op."""
        assert AssociationEditor(store).associate("lesson", curriculum.s1, []) == []

    def test_disassociate_leaves_gap(self, store, stored_positions, curriculum):
        """Test that detaching a subject does not renumber its siblings."""
        AssociationEditor(store).disassociate("subject", curriculum.module_a, curriculum.s2)
        assert stored_positions(ModuleSubject, module_id=curriculum.module_a) == {
            curriculum.s1: 0,
            curriculum.s3: 2,
        }
        assert store.get(Subject, curriculum.s2) is not None

    def test_disassociate_test(self, store, curriculum):
        """Test that detaching a test clears its subject."""
        AssociationEditor(store).disassociate("test", curriculum.s1, curriculum.t1)
        assert store.get(Test, curriculum.t1).subject_id is None

    def test_disassociate_missing(self, store, curriculum):
        """Test that detaching a non-member raises NotFoundError."""
        with pytest.raises(NotFoundError):
            AssociationEditor(store).disassociate("lesson", curriculum.s3, curriculum.l1)


@pytest.mark.associations
class TestCreateNodes:
    """Tests for creating structure nodes."""

    def test_create_module_appends(self, store, curriculum):
        """Test that a new module lands after the last one."""
        module = AssociationEditor(store).create_module(curriculum.course, "Deployment")
        assert module.position == 3
        assert module.course_id == curriculum.course

    def test_create_module_unknown_course(self, store):
        """Test that modules need an existing course."""
        with pytest.raises(NotFoundError):
            AssociationEditor(store).create_module(9999, "Orphan")

    def test_create_lesson_under_subject(self, store, db, curriculum):
        """Test that a lesson can be grouped under a subject on creation."""
        lesson = AssociationEditor(store).create_lesson(curriculum.module_a, "Sampling", subject_id=curriculum.s1)
        assert lesson.position == 3
        assert db.query(SubjectLesson).filter_by(subject_id=curriculum.s1, lesson_id=lesson.id).count() == 1

    def test_create_subject_and_test(self, store):
        """Test creating shared subjects and tests."""
        editor = AssociationEditor(store)
        subject = editor.create_subject("Linear algebra", code="MA110")
        test = editor.create_test("Matrices quiz", subject_id=subject.id)
        assert subject.display_title == "MA110 - Linear algebra"
        assert test.subject_id == subject.id


@pytest.mark.associations
class TestRemoveNode:
    """Tests for removing tree nodes."""

    def test_delete_module_cascades(self, store, db, curriculum):
        """Test that a module goes with its lessons and links, subjects survive."""
        AssociationEditor(store).remove_node("module", curriculum.module_a)

        assert store.get(Module, curriculum.module_a) is None
        assert db.query(Lesson).filter_by(module_id=curriculum.module_a).count() == 0
        assert db.query(ModuleSubject).filter_by(module_id=curriculum.module_a).count() == 0
        assert db.query(SubjectLesson).count() == 0
        assert store.get(Subject, curriculum.s1) is not None
        assert db.query(ModuleSubject).filter_by(module_id=curriculum.module_b).count() == 1

    def test_delete_subject_detaches_tests(self, store, db, curriculum):
        """Test that deleting a subject removes its links and frees its tests."""
        AssociationEditor(store).remove_node("subject", curriculum.s1)

        assert store.get(Subject, curriculum.s1) is None
        assert db.query(ModuleSubject).filter_by(subject_id=curriculum.s1).count() == 0
        assert db.query(SubjectLesson).filter_by(subject_id=curriculum.s1).count() == 0
        assert store.get(Test, curriculum.t1).subject_id is None
        assert store.get(Lesson, curriculum.l1) is not None

    def test_remove_lesson_under_subject_detaches(self, store, curriculum):
        """Test that a lesson removed under a subject is only detached."""
        AssociationEditor(store).remove_node("lesson", curriculum.l1, parent_id=curriculum.s1)
        assert store.get(Lesson, curriculum.l1) is not None
        assert store.select(SubjectLesson, {"lesson_id": curriculum.l1}) == []

    def test_remove_lesson_without_subject_deletes(self, store, curriculum, stored_positions):
        """Test that a lesson removed without a subject is deleted with its links."""
        AssociationEditor(store).remove_node("lesson", curriculum.l2)
        assert store.get(Lesson, curriculum.l2) is None
        assert store.select(SubjectLesson, {"lesson_id": curriculum.l2}) == []
        assert stored_positions(Lesson, module_id=curriculum.module_a) == {curriculum.l1: 0, curriculum.l3: 2}

    def test_remove_test_needs_parent(self, store, curriculum):
        """Test that tests are only detached from a named subject."""
        with pytest.raises(ValidationError):
            AssociationEditor(store).remove_node("test", curriculum.t1)
        assert store.get(Test, curriculum.t1).subject_id == curriculum.s1

    def test_remove_course_rejected(self, store, curriculum):
        """Test that courses are not removable from the tree."""
        with pytest.raises(ValidationError):
            AssociationEditor(store).remove_node("course", curriculum.course)

    def test_delete_lesson(self, store, curriculum, stored_positions):
        """Test that deleting a lesson keeps the remaining positions."""
        AssociationEditor(store).delete_lesson(curriculum.l2)
        assert stored_positions(Lesson, module_id=curriculum.module_a) == {curriculum.l1: 0, curriculum.l3: 2}
