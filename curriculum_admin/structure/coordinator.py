"""Drag-and-drop reordering with two-phase persistence.

A completed drag names the moved member and the member it was dropped
over. The coordinator computes the new order in memory, shows it right
away, then writes it through a relation adapter in two passes:

1. every member of the scope is parked in the quarantine range
   (``base + index``, with ``base`` above every live position);
2. every member receives its final position ``0..n-1``.

No single write can collide with a position another member still holds,
so the per-scope unique constraint is never violated, even without a
multi-statement transaction. If either pass fails the displayed order
falls back to the pre-move snapshot and the error is reported.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, Optional, Sequence

from curriculum_admin.config import settings
from curriculum_admin.structure.adapters import RelationAdapter, adapter_for
from curriculum_admin.structure.errors import (
    PersistenceError,
    ReorderInProgress,
    ValidationError,
)
from curriculum_admin.structure.ordering import Assignment, is_dense, move_member, renumber
from curriculum_admin.structure.store import SqlAlchemyStore

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DragEvent:
    """A drop reported by the drag input: ``active_id`` landed on ``over_id``."""

    active_id: Any
    over_id: Any
    active_kind: Optional[str] = None
    over_kind: Optional[str] = None


@dataclass
class ReorderStatus:
    saving: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {"saving": self.saving, "error": self.error}


@dataclass
class ReorderResult:
    kind: str
    scope_id: Hashable
    order: list
    changed: bool
    status: ReorderStatus = field(default_factory=ReorderStatus)


@dataclass
class _ScopeState:
    last_good: list = field(default_factory=list)
    displayed: list = field(default_factory=list)
    status: ReorderStatus = field(default_factory=ReorderStatus)


class ReorderCoordinator:
    """Owns the displayed order and save status of every scope it has touched."""

    def __init__(
        self,
        store: SqlAlchemyStore,
        quarantine_offset: Optional[int] = None,
        compensate: Optional[bool] = None,
    ):
        self.store = store
        self.quarantine_offset = settings.QUARANTINE_OFFSET if quarantine_offset is None else quarantine_offset
        self.compensate = settings.REORDER_COMPENSATE if compensate is None else compensate
        self._scopes: dict[tuple, _ScopeState] = {}
        self._lock = threading.Lock()

    # ---- state ----

    def _state(self, kind: str, scope_id) -> _ScopeState:
        with self._lock:
            return self._scopes.setdefault((kind, scope_id), _ScopeState())

    def order(self, kind: str, scope_id) -> list:
        """Order to display for a scope, loading it on first use."""
        state = self._state(kind, scope_id)
        if not state.displayed and not state.status.saving:
            return self.refresh(kind, scope_id)
        return list(state.displayed)

    def status(self, kind: str, scope_id) -> ReorderStatus:
        status = self._state(kind, scope_id).status
        return ReorderStatus(status.saving, status.error)

    def refresh(self, kind: str, scope_id) -> list:
        """Replace the local order of a scope with what the store holds."""
        adapter = adapter_for(kind, self.store)
        stored = [a.member_id for a in adapter.sibling_set(scope_id).positions()]
        state = self._state(kind, scope_id)
        if not state.status.saving:
            state.last_good = list(stored)
            state.displayed = list(stored)
        return stored

    def reconcile(self, kind: str, scope_id, expected: Sequence, delay: Optional[float] = None) -> bool:
        """Re-read a scope after ``delay`` seconds and report whether it matches ``expected``.

        The stored order is adopted as this coordinator's displayed order;
        a divergence (another writer got in after the reorder) is logged.
        """
        delay = settings.RECONCILE_DELAY_SECONDS if delay is None else delay
        if delay > 0:
            time.sleep(delay)
        stored = self.refresh(kind, scope_id)
        if stored != list(expected):
            LOGGER.warning(
                "Stored order of %s scope %s diverged after reorder: expected %s, found %s",
                kind, scope_id, list(expected), stored,
            )
            return False
        return True

    # ---- entry points ----

    def resolve_scope(self, kind: str, active_id, over_id):
        """The single scope holding both members; cross-scope drags are rejected."""
        adapter = adapter_for(kind, self.store)
        shared = set(adapter.scopes_of(active_id)) & set(adapter.scopes_of(over_id))
        if not shared:
            raise ValidationError(f"{kind} {active_id} and {kind} {over_id} do not share a parent")
        if len(shared) > 1:
            raise ValidationError(f"{kind} {active_id} and {over_id} share several parents; name the scope")
        return shared.pop()

    def handle_drop(self, kind: str, event: Optional[DragEvent], scope_id=None, placement: str = "over") -> ReorderResult:
        """Apply a completed drag to the scope of ``kind`` items it happened in.

        ``event`` is ``None`` when the drag ended without a drop.
        """
        if event is None:
            return self._unchanged(kind, scope_id)

        if event.active_kind is not None and event.active_kind != kind:
            raise ValidationError(f"Dragged a {event.active_kind} while reordering {kind} items")
        if event.over_kind is not None and event.over_kind != (event.active_kind or kind):
            raise ValidationError(f"Cannot drop a {event.active_kind or kind} onto a {event.over_kind}")

        adapter = adapter_for(kind, self.store)
        if event.active_id == event.over_id:
            return self._unchanged(kind, scope_id)
        if scope_id is None:
            scope_id = self.resolve_scope(kind, event.active_id, event.over_id)

        def compute(current: list) -> list:
            for member_id in (event.active_id, event.over_id):
                if member_id not in current:
                    raise ValidationError(f"{kind} {member_id} is not in scope {scope_id}")
            return move_member(current, event.active_id, event.over_id, placement)

        return self._reorder(adapter, scope_id, compute)

    def apply_order(self, kind: str, scope_id, ordered_ids: Sequence) -> ReorderResult:
        """Persist a complete new order for a scope."""
        adapter = adapter_for(kind, self.store)
        requested = list(ordered_ids)

        def compute(current: list) -> list:
            if len(requested) != len(set(requested)) or set(requested) != set(current):
                raise ValidationError(f"Order for {kind} scope {scope_id} must list each member exactly once")
            return requested

        return self._reorder(adapter, scope_id, compute)

    # ---- algorithm ----

    def _unchanged(self, kind: str, scope_id) -> ReorderResult:
        order = self.order(kind, scope_id) if scope_id is not None else []
        return ReorderResult(kind, scope_id, order, changed=False, status=self.status(kind, scope_id))

    def _begin(self, kind: str, scope_id) -> _ScopeState:
        with self._lock:
            state = self._scopes.setdefault((kind, scope_id), _ScopeState())
            if state.status.saving:
                raise ReorderInProgress(f"A reorder of {kind} scope {scope_id} is already being saved")
            state.status.saving = True
            return state

    def _reorder(self, adapter: RelationAdapter, scope_id, compute: Callable[[list], list]) -> ReorderResult:
        kind = adapter.kind
        state = self._begin(kind, scope_id)
        try:
            stored = adapter.list_ordered(scope_id)
            current = [a.member_id for a in stored]
            new_order = compute(current)
        except Exception:
            state.status.saving = False
            raise

        if new_order == current and is_dense(a.position for a in stored):
            state.last_good = list(current)
            state.displayed = list(current)
            state.status.saving = False
            return ReorderResult(kind, scope_id, list(current), changed=False, status=self.status(kind, scope_id))

        # Optimistic: show the new order before it is saved.
        state.last_good = list(current)
        state.displayed = list(new_order)
        LOGGER.info("Reordering %s scope %s: %s -> %s", kind, scope_id, current, new_order)

        try:
            self._write_two_phase(adapter, scope_id, new_order, stored)
        except Exception as e:
            state.displayed = list(state.last_good)
            state.status.error = str(e)
            LOGGER.error("Reorder of %s scope %s failed: %s", kind, scope_id, e)
            if self.compensate and isinstance(e, PersistenceError):
                self._restore(adapter, scope_id, stored)
            raise
        finally:
            state.status.saving = False

        state.last_good = list(new_order)
        state.displayed = list(new_order)
        state.status.error = None
        LOGGER.info("Reordered %s scope %s", kind, scope_id)
        return ReorderResult(kind, scope_id, list(new_order), changed=True, status=self.status(kind, scope_id))

    def _quarantine_base(self, held: Sequence[int], count: int) -> int:
        return max(self.quarantine_offset, max(held, default=-1) + 1, count)

    def _write_two_phase(self, adapter: RelationAdapter, scope_id, new_order: list, stored: list[Assignment]) -> None:
        base = self._quarantine_base([a.position for a in stored], len(new_order))
        adapter.bulk_set_positions(scope_id, renumber(new_order, start=base))
        adapter.bulk_set_positions(scope_id, renumber(new_order))

    def _restore(self, adapter: RelationAdapter, scope_id, snapshot: list[Assignment]) -> None:
        """Put back the positions held before a failed reorder."""
        try:
            live = adapter.list_ordered(scope_id)
            live_ids = {a.member_id for a in live}
            originals = [a for a in snapshot if a.member_id in live_ids]
            held = [a.position for a in live] + [a.position for a in originals]
            base = self._quarantine_base(held, len(originals))
            adapter.bulk_set_positions(scope_id, renumber([a.member_id for a in originals], start=base))
            adapter.bulk_set_positions(scope_id, originals)
        except PersistenceError as e:
            LOGGER.error(
                "Could not restore %s scope %s after a failed reorder, positions stay out of range "
                "until the next successful reorder: %s",
                adapter.kind, scope_id, e,
            )
            return
        LOGGER.warning("Restored previous positions of %s scope %s", adapter.kind, scope_id)
