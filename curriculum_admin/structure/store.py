"""Row-level persistence collaborator used by the structure engine.

Each write is committed on its own. The engine never relies on a
multi-statement transaction, so a batch of writes can fail partway and
leave earlier writes in place.
"""
import logging
from typing import Any, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from curriculum_admin.structure.errors import PersistenceError

LOGGER = logging.getLogger(__name__)

Filters = dict[str, Any]


def _driver_message(error: SQLAlchemyError) -> str:
    return str(getattr(error, "orig", None) or error)


class SqlAlchemyStore:
    """Generic select/insert/update/delete over ORM models."""

    def __init__(self, db: Session):
        self.db = db

    def _apply_filters(self, query, model, filters: Optional[Filters]):
        for column_name, value in (filters or {}).items():
            column = getattr(model, column_name)
            if isinstance(value, (list, tuple, set, frozenset)):
                query = query.filter(column.in_(list(value)))
            elif value is None:
                query = query.filter(column.is_(None))
            else:
                query = query.filter(column == value)
        return query

    def select(self, model, filters: Optional[Filters] = None, order_by: Optional[str] = None) -> list:
        """Return rows of ``model`` matching ``filters``, fresh from the database."""
        query = self._apply_filters(self.db.query(model), model, filters)
        if order_by:
            query = query.order_by(getattr(model, order_by), model.id)
        else:
            query = query.order_by(model.id)
        return query.populate_existing().all()

    def get(self, model, row_id) -> Optional[Any]:
        rows = self.select(model, {"id": row_id})
        return rows[0] if rows else None

    def insert(self, model, rows: Iterable[dict]) -> list:
        """Insert rows and return the created instances."""
        instances = [model(**row) for row in rows]
        if not instances:
            return []
        try:
            self.db.add_all(instances)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(_driver_message(e), model.__name__, "insert") from e
        for instance in instances:
            self.db.refresh(instance)
        return instances

    def update(self, model, filters: Filters, patch: dict) -> int:
        """Apply ``patch`` to the rows matching ``filters``; returns the row count."""
        if not filters:
            raise ValueError("update requires a filter")
        try:
            count = self._apply_filters(self.db.query(model), model, filters).update(
                patch, synchronize_session=False
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(_driver_message(e), model.__name__, "update") from e
        return count

    def delete(self, model, filters: Filters) -> int:
        """Delete the rows matching ``filters``; returns the row count."""
        if not filters:
            raise ValueError("delete requires a filter")
        try:
            count = self._apply_filters(self.db.query(model), model, filters).delete(
                synchronize_session=False
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(_driver_message(e), model.__name__, "delete") from e
        if count:
            LOGGER.debug("Deleted %d %s row(s) matching %s", count, model.__name__, filters)
        return count
