"""Ordered curriculum structure: course -> module -> subject -> lesson/test."""
from .adapters import (
    LessonAdapter,
    ModuleAdapter,
    ModuleSubjectAdapter,
    Placement,
    RelationAdapter,
    adapter_for,
)
from .assembler import TreeAssembler, TreeNode
from .associations import AssociationEditor, AssociationOption
from .coordinator import DragEvent, ReorderCoordinator, ReorderResult, ReorderStatus
from .errors import (
    IntegrityWarning,
    NotFoundError,
    PersistenceError,
    ReorderInProgress,
    StructureError,
    ValidationError,
)
from .ordering import Assignment, OrderedSiblingSet, is_dense, move_member, next_position, renumber
from .store import SqlAlchemyStore
from .tree_view import RenderRow, TreeViewController

__all__ = [
    "Assignment",
    "AssociationEditor",
    "AssociationOption",
    "DragEvent",
    "IntegrityWarning",
    "LessonAdapter",
    "ModuleAdapter",
    "ModuleSubjectAdapter",
    "NotFoundError",
    "OrderedSiblingSet",
    "PersistenceError",
    "Placement",
    "RelationAdapter",
    "RenderRow",
    "ReorderCoordinator",
    "ReorderInProgress",
    "ReorderResult",
    "ReorderStatus",
    "SqlAlchemyStore",
    "StructureError",
    "TreeAssembler",
    "TreeNode",
    "TreeViewController",
    "ValidationError",
    "adapter_for",
    "is_dense",
    "move_member",
    "next_position",
    "renumber",
]
