"""Shared test fixtures for the curriculum structure engine.

Tests run against an in-memory SQLite database. SQLite checks UNIQUE
constraints row by row, so position collisions during a reorder fail
exactly as they would on PostgreSQL.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from types import SimpleNamespace
from typing import Callable, Generator, Optional
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from curriculum_admin.config import settings
from curriculum_admin.database import Base, engine_options, get_db
from curriculum_admin.main import app
from curriculum_admin.models import (
    Course,
    Lesson,
    Module,
    ModuleSubject,
    Subject,
    SubjectLesson,
    Test,
    User,
    UserRole,
)
from curriculum_admin.structure import PersistenceError, SqlAlchemyStore


SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    poolclass=StaticPool,
    **engine_options(SQLALCHEMY_DATABASE_URL),
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def no_reconcile_delay(monkeypatch):
    """Reconcile re-reads run immediately in tests."""
    monkeypatch.setattr(settings, "RECONCILE_DELAY_SECONDS", 0.0)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store(db: Session) -> SqlAlchemyStore:
    return SqlAlchemyStore(db)


class RecordingStore(SqlAlchemyStore):
    """Store that records every update and can fail one chosen update call."""

    def __init__(self, db: Session, fail_on_update: Optional[int] = None, on_update: Optional[Callable] = None):
        super().__init__(db)
        self.updates: list[tuple[str, dict, dict]] = []
        self.fail_on_update = fail_on_update
        self.on_update = on_update

    def update(self, model, filters, patch):
        self.updates.append((model.__name__, dict(filters), dict(patch)))
        if self.on_update is not None:
            self.on_update(len(self.updates))
        if len(self.updates) == self.fail_on_update:
            raise PersistenceError("simulated write failure", model.__name__, "update")
        return super().update(model, filters, patch)


@pytest.fixture
def make_store(db: Session) -> Callable[..., RecordingStore]:
    """Factory for recording stores bound to the test session."""
    def factory(**kwargs) -> RecordingStore:
        return RecordingStore(db, **kwargs)
    return factory


# ==================== Curriculum Fixtures ====================


def _add(db: Session, *rows):
    db.add_all(rows)
    db.commit()
    for row in rows:
        db.refresh(row)
    return rows


@pytest.fixture
def curriculum(db: Session) -> SimpleNamespace:
    """A course with three modules, shared subjects, lessons and tests.

    Module A: subjects S1, S2, S3 and lessons L1, L2, L3.
    Module B: subject S1 (shared with A).
    Module C: empty.
    S1 groups L1 and L3 and owns test T1; S2 groups L2; T2 is unattached.
    """
    (course,) = _add(db, Course(title="Data Science"))
    module_a, module_b, module_c = _add(
        db,
        Module(course_id=course.id, title="Foundations", position=0),
        Module(course_id=course.id, title="Modelling", position=1),
        Module(course_id=course.id, title="Capstone", position=2),
    )
    s1, s2, s3 = _add(
        db,
        Subject(name="Statistics", code="DS101"),
        Subject(name="DS102-Probability", code="DS102"),
        Subject(name="Ethics"),
    )
    _add(
        db,
        ModuleSubject(module_id=module_a.id, subject_id=s1.id, position=0),
        ModuleSubject(module_id=module_a.id, subject_id=s2.id, position=1),
        ModuleSubject(module_id=module_a.id, subject_id=s3.id, position=2),
        ModuleSubject(module_id=module_b.id, subject_id=s1.id, position=0),
    )
    l1, l2, l3 = _add(
        db,
        Lesson(module_id=module_a.id, title="Descriptive statistics", position=0),
        Lesson(module_id=module_a.id, title="Random variables", position=1),
        Lesson(module_id=module_a.id, title="Hypothesis testing", position=2),
    )
    _add(
        db,
        SubjectLesson(subject_id=s1.id, lesson_id=l1.id),
        SubjectLesson(subject_id=s1.id, lesson_id=l3.id),
        SubjectLesson(subject_id=s2.id, lesson_id=l2.id),
    )
    t1, t2 = _add(
        db,
        Test(title="Statistics quiz", subject_id=s1.id),
        Test(title="Placement test", subject_id=None),
    )
    return SimpleNamespace(
        course=course.id,
        module_a=module_a.id,
        module_b=module_b.id,
        module_c=module_c.id,
        s1=s1.id,
        s2=s2.id,
        s3=s3.id,
        l1=l1.id,
        l2=l2.id,
        l3=l3.id,
        t1=t1.id,
        t2=t2.id,
    )


@pytest.fixture
def other_course(db: Session) -> SimpleNamespace:
    """A second course with two modules of its own."""
    (course,) = _add(db, Course(title="Art History"))
    first, second = _add(
        db,
        Module(course_id=course.id, title="Renaissance", position=0),
        Module(course_id=course.id, title="Baroque", position=1),
    )
    return SimpleNamespace(course=course.id, first=first.id, second=second.id)


def positions(db: Session, model, **filters) -> dict:
    """Map of member id to stored position for one scope."""
    query = db.query(model).populate_existing()
    for name, value in filters.items():
        query = query.filter(getattr(model, name) == value)
    member = "subject_id" if model is ModuleSubject else "id"
    return {getattr(row, member): row.position for row in query.all()}


@pytest.fixture
def stored_positions(db: Session) -> Callable[..., dict]:
    def read(model, **filters) -> dict:
        return positions(db, model, **filters)
    return read


# ==================== User Fixtures ====================


@pytest.fixture
def admin_user(db: Session) -> User:
    """Create an admin user."""
    (user,) = _add(db, User(email="admin@test.com", name="Test Admin", role=UserRole.admin))
    return user


@pytest.fixture
def editor_user(db: Session) -> User:
    """Create an editor user."""
    (user,) = _add(db, User(email="editor@test.com", name="Test Editor", role=UserRole.editor))
    return user


@pytest.fixture
def viewer_user(db: Session) -> User:
    """Create a viewer user."""
    (user,) = _add(db, User(email="viewer@test.com", name="Test Viewer", role=UserRole.viewer))
    return user


# ==================== Client Fixtures ====================


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def login(client: TestClient):
    """Return a helper that signs the client in as ``user``."""
    def sign_in(user: User):
        return patch("curriculum_admin.dependencies.get_current_user_id", return_value=user.id)
    return sign_in
