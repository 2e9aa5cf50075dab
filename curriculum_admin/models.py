"""SQLAlchemy ORM models."""
import enum
from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    Enum,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from curriculum_admin.database import Base


class UserRole(str, enum.Enum):
    """User role enumeration."""

    admin = "admin"
    editor = "editor"
    viewer = "viewer"


class Course(Base):
    """Top-level container of the curriculum tree."""

    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    modules = relationship("Module", back_populates="course", order_by="Module.position")


class Module(Base):
    """Module ordered directly under a course."""

    __tablename__ = "modules"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    position = Column(Integer, nullable=False, default=0)
    is_required = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    course = relationship("Course", back_populates="modules")

    __table_args__ = (
        UniqueConstraint("course_id", "position", name="uq_module_course_position"),
    )


class Subject(Base):
    """Shared subject, linked to modules through ModuleSubject."""

    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    code = Column(String(50))
    description = Column(Text)

    @property
    def display_title(self) -> str:
        """Name prefixed with the code, unless the name already carries it."""
        if self.code and not (self.name or "").startswith(self.code):
            return f"{self.code} - {self.name}"
        return self.name


class ModuleSubject(Base):
    """A subject placed at a position within a module."""

    __tablename__ = "module_subjects"

    id = Column(Integer, primary_key=True, index=True)
    module_id = Column(Integer, ForeignKey("modules.id"), nullable=False, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("module_id", "position", name="uq_module_subject_position"),
        UniqueConstraint("module_id", "subject_id", name="uq_module_subject"),
    )


class Lesson(Base):
    """Lesson owned by a module for ordering purposes."""

    __tablename__ = "lessons"

    id = Column(Integer, primary_key=True, index=True)
    module_id = Column(Integer, ForeignKey("modules.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    position = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("module_id", "position", name="uq_lesson_module_position"),
    )


class SubjectLesson(Base):
    """Unordered link grouping a lesson under a subject."""

    __tablename__ = "subject_lessons"

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False, index=True)
    lesson_id = Column(Integer, ForeignKey("lessons.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("subject_id", "lesson_id", name="uq_subject_lesson"),
    )


class Test(Base):
    """Assessment attached to at most one subject."""

    __tablename__ = "tests"
    __test__ = False  # not a pytest class

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=True, index=True)


class User(Base):
    """Operators of the structure editor."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255))
    role = Column(Enum(UserRole), default=UserRole.viewer, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
