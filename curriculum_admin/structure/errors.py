"""Exceptions raised by the curriculum structure engine."""
from typing import Optional


class StructureError(Exception):
    """Base class for structure engine errors."""


class ValidationError(StructureError):
    """A request was rejected before anything was written."""


class ReorderInProgress(ValidationError):
    """Another reorder of the same scope has not finished yet."""


class NotFoundError(StructureError):
    """A referenced row does not exist."""


class PersistenceError(StructureError):
    """A write against the store failed."""

    def __init__(self, message: str, model: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.model = model
        self.operation = operation

    def __str__(self) -> str:
        if self.model and self.operation:
            return f"{self.operation} on {self.model} failed: {self.message}"
        return self.message


class IntegrityWarning(UserWarning):
    """An association references a row that no longer exists."""
