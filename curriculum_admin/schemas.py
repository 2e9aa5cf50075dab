"""Pydantic schemas for request/response validation."""
from typing import Optional

from pydantic import BaseModel, field_validator

ORDERED_KINDS = ["module", "subject", "lesson"]
ASSOCIATION_KINDS = ["subject", "lesson", "test"]
NODE_KINDS = ["module", "subject", "lesson", "test"]


def _check_kind(value: str, valid: list[str]) -> str:
    if value not in valid:
        raise ValueError(f"Kind must be one of: {', '.join(valid)}")
    return value


class ModuleCreate(BaseModel):
    """Schema for creating a module."""

    course_id: int
    title: str
    description: Optional[str] = None
    is_required: bool = True


class ModuleResponse(BaseModel):
    """Schema for module response."""

    id: int
    course_id: int
    title: str
    description: Optional[str] = None
    position: int
    is_required: bool

    class Config:
        from_attributes = True


class LessonCreate(BaseModel):
    """Schema for creating a lesson."""

    module_id: int
    title: str
    description: Optional[str] = None
    subject_id: Optional[int] = None


class LessonResponse(BaseModel):
    """Schema for lesson response."""

    id: int
    module_id: int
    title: str
    description: Optional[str] = None
    position: int

    class Config:
        from_attributes = True


class SubjectCreate(BaseModel):
    """Schema for creating a subject."""

    name: str
    code: Optional[str] = None
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate name is not blank."""
        if not v.strip():
            raise ValueError("Subject name cannot be blank")
        return v


class SubjectResponse(BaseModel):
    """Schema for subject response."""

    id: int
    name: str
    code: Optional[str] = None
    description: Optional[str] = None
    display_title: str

    class Config:
        from_attributes = True


class TestCreate(BaseModel):
    """Schema for creating a test."""

    title: str
    description: Optional[str] = None
    subject_id: Optional[int] = None


class TestResponse(BaseModel):
    """Schema for test response."""

    id: int
    title: str
    description: Optional[str] = None
    subject_id: Optional[int] = None

    class Config:
        from_attributes = True


class DropRequest(BaseModel):
    """A completed drag: ``active_id`` was dropped over ``over_id``."""

    kind: str
    active_id: int
    over_id: int
    scope_id: Optional[int] = None
    over_kind: Optional[str] = None

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        """Validate kind is orderable."""
        return _check_kind(v, ORDERED_KINDS)


class OrderRequest(BaseModel):
    """A complete new order for one scope."""

    kind: str
    scope_id: int
    ordered_ids: list[int]

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        """Validate kind is orderable."""
        return _check_kind(v, ORDERED_KINDS)


class ReorderResponse(BaseModel):
    """Outcome of a reorder."""

    kind: str
    scope_id: Optional[int] = None
    order: list[int]
    changed: bool
    saving: bool = False
    error: Optional[str] = None


class AssociationRequest(BaseModel):
    """Attach members to a module (subjects) or a subject (lessons, tests)."""

    kind: str
    scope_id: int
    member_ids: list[int]

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        """Validate kind takes associations."""
        return _check_kind(v, ASSOCIATION_KINDS)


class AssociationOptionResponse(BaseModel):
    """A candidate member and its availability."""

    id: int
    display_name: str
    description: Optional[str] = None
    availability: str
    status_text: str


class TreeNodeResponse(BaseModel):
    """A node of the assembled structure tree."""

    id: int
    kind: str
    title: str
    key: str
    parent_id: Optional[int] = None
    position: Optional[int] = None
    data: dict = {}
    children: list["TreeNodeResponse"] = []


class RenderRowResponse(BaseModel):
    """A flattened, display-ready tree row."""

    key: str
    id: int
    kind: str
    title: str
    depth: int
    expanded: bool
    has_children: bool
    selected: bool


class TreeResponse(BaseModel):
    """Assembled trees plus the rows visible for the given search."""

    trees: list[TreeNodeResponse]
    rows: list[RenderRowResponse]
    integrity_warnings: list[str] = []
