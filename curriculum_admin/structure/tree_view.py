"""Expansion, selection and search state for the structure tree.

The controller owns its state explicitly; every page or client gets its
own instance. It turns assembled trees into flat render rows and routes
drops on tree nodes to the reorder coordinator.
"""
import copy
import logging
from dataclasses import dataclass
from typing import Optional

from curriculum_admin.structure.assembler import TreeAssembler, TreeNode
from curriculum_admin.structure.associations import AssociationEditor
from curriculum_admin.structure.coordinator import DragEvent, ReorderCoordinator, ReorderResult
from curriculum_admin.structure.errors import NotFoundError, StructureError, ValidationError
from curriculum_admin.structure.ordering import move_member
from curriculum_admin.structure.store import SqlAlchemyStore

LOGGER = logging.getLogger(__name__)


@dataclass
class RenderRow:
    key: str
    id: int
    kind: str
    title: str
    depth: int
    expanded: bool
    has_children: bool
    selected: bool

    def to_dict(self) -> dict:
        return self.__dict__.copy()


def _filter(node: TreeNode, needle: str, matches: set) -> Optional[TreeNode]:
    children = [kept for kept in (_filter(child, needle, matches) for child in node.children) if kept]
    own_match = needle in node.title.lower()
    if own_match:
        matches.add(node.key)
    if not own_match and not children:
        return None
    kept = copy.copy(node)
    kept.children = children
    return kept


def _ancestor_keys(key: str) -> list[str]:
    parts = key.split("/")
    return ["/".join(parts[:i]) for i in range(1, len(parts))]


class TreeViewController:
    """Per-client view state over the assembled structure trees."""

    def __init__(
        self,
        store: SqlAlchemyStore,
        coordinator: Optional[ReorderCoordinator] = None,
        editor: Optional[AssociationEditor] = None,
        assembler: Optional[TreeAssembler] = None,
    ):
        self.store = store
        self.coordinator = coordinator or ReorderCoordinator(store)
        self.editor = editor or AssociationEditor(store)
        self.assembler = assembler or TreeAssembler(store)
        self.course_id: Optional[int] = None
        self.trees: list[TreeNode] = []
        self.expanded: set[str] = set()
        self.selected: Optional[str] = None
        self.query = ""
        self.error: Optional[str] = None
        self._saving = False
        self._forced: set[str] = set()
        self._visible: list[TreeNode] = []

    # ---- loading ----

    def load(self, course_id: Optional[int] = None) -> list[TreeNode]:
        """Assemble the trees again and re-apply the current search."""
        self.course_id = course_id
        self.trees = self.assembler.assemble(course_id)
        self._apply_search()
        known = set(self._index())
        self.expanded &= known
        if self.selected not in known:
            self.selected = None
        return self.trees

    def _index(self) -> dict[str, TreeNode]:
        return {node.key: node for tree in self.trees for node in tree.walk()}

    def node(self, key: str) -> TreeNode:
        try:
            return self._index()[key]
        except KeyError:
            raise NotFoundError(f"No tree node {key!r}") from None

    # ---- expansion and selection ----

    def is_expanded(self, key: str) -> bool:
        return key in self.expanded or key in self._forced

    def toggle(self, key: str) -> bool:
        self.node(key)
        if key in self.expanded:
            self.expanded.discard(key)
        else:
            self.expanded.add(key)
        return key in self.expanded

    def expand_all(self) -> None:
        self.expanded = {key for key, node in self._index().items() if node.children}

    def collapse_all(self) -> None:
        self.expanded.clear()

    def select(self, key: Optional[str]) -> None:
        if key is not None:
            self.node(key)
        self.selected = key

    # ---- search ----

    def search(self, query: str) -> list[TreeNode]:
        """Keep nodes whose title matches or that have a matching descendant."""
        self.query = (query or "").strip()
        self._apply_search()
        return self._visible

    def _apply_search(self) -> None:
        self._forced = set()
        if not self.query:
            self._visible = self.trees
            return
        matches: set[str] = set()
        needle = self.query.lower()
        self._visible = [kept for kept in (_filter(tree, needle, matches) for tree in self.trees) if kept]
        for key in matches:
            self._forced.update(_ancestor_keys(key))

    def visible_rows(self) -> list[RenderRow]:
        """Flattened rows for rendering, honouring expansion and search."""
        rows: list[RenderRow] = []

        def visit(node: TreeNode, depth: int) -> None:
            expanded = self.is_expanded(node.key)
            rows.append(
                RenderRow(
                    key=node.key,
                    id=node.id,
                    kind=node.kind,
                    title=node.title,
                    depth=depth,
                    expanded=expanded,
                    has_children=bool(node.children),
                    selected=node.key == self.selected,
                )
            )
            if expanded:
                for child in node.children:
                    visit(child, depth + 1)

        for tree in self._visible:
            visit(tree, 0)
        return rows

    # ---- reordering ----

    def status(self) -> dict:
        return {"saving": self._saving, "error": self.error}

    def _scope_of(self, node: TreeNode):
        if node.kind == "lesson":
            return node.data.get("module_id")
        return node.parent_id

    def handle_drop(self, event: Optional[DragEvent]) -> Optional[ReorderResult]:
        """Reorder after a drop of one tree node onto another.

        ``event`` carries node keys. Rejections and failed saves are kept
        in ``status()`` for display and the previous tree stays visible.
        """
        if event is None or event.active_id == event.over_id:
            return None
        if self._saving:
            self.error = "A reorder is already being saved"
            return None

        snapshot = self.trees
        try:
            active = self.node(event.active_id)
            over = self.node(event.over_id)
            if active.kind != over.kind:
                raise ValidationError(f"Cannot drop a {active.kind} onto a {over.kind}")
            scope_id = self._scope_of(active)
            if scope_id != self._scope_of(over):
                raise ValidationError(f"{active.title!r} and {over.title!r} do not share a parent")

            self._saving = True
            self.error = None
            self.trees = self._optimistic(active, over)
            self._apply_search()
            result = self.coordinator.handle_drop(
                active.kind,
                DragEvent(active.id, over.id, active.kind, over.kind),
                scope_id=scope_id,
            )
        except StructureError as e:
            self.trees = snapshot
            self._apply_search()
            self.error = str(e)
            LOGGER.warning("Drop of %s onto %s rejected: %s", event.active_id, event.over_id, e)
            return None
        except Exception as e:
            self.trees = snapshot
            self._apply_search()
            self.error = str(e)
            raise
        finally:
            self._saving = False

        self.load(self.course_id)
        return result

    def _optimistic(self, active: TreeNode, over: TreeNode) -> list[TreeNode]:
        """A copy of the trees with ``active`` moved within its parent's children."""
        working = copy.deepcopy(self.trees)
        if active.parent_key != over.parent_key or active.parent_key is None:
            return working
        parent = {node.key: node for tree in working for node in tree.walk()}[active.parent_key]
        by_key = {child.key: child for child in parent.children}
        order = move_member([child.key for child in parent.children], active.key, over.key)
        parent.children = [by_key[key] for key in order]
        return working
