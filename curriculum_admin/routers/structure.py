"""Curriculum structure routes: tree, reordering and associations."""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Response

from curriculum_admin.dependencies import get_store, is_admin_email, require_editor, require_user
from curriculum_admin.models import Course, User, UserRole
from curriculum_admin.schemas import (
    AssociationOptionResponse,
    AssociationRequest,
    DropRequest,
    LessonCreate,
    LessonResponse,
    ModuleCreate,
    ModuleResponse,
    NODE_KINDS,
    OrderRequest,
    ReorderResponse,
    SubjectCreate,
    SubjectResponse,
    TestCreate,
    TestResponse,
    TreeResponse,
)
from curriculum_admin.structure import (
    AssociationEditor,
    DragEvent,
    NotFoundError,
    PersistenceError,
    ReorderCoordinator,
    ReorderResult,
    SqlAlchemyStore,
    StructureError,
    TreeAssembler,
    TreeViewController,
    ValidationError,
)

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api/structure", tags=["structure"])


def _http_error(error: StructureError) -> HTTPException:
    """Translate an engine error into an HTTP error."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, PersistenceError):
        return HTTPException(status_code=409, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


def _reorder_response(result: ReorderResult) -> ReorderResponse:
    return ReorderResponse(
        kind=result.kind,
        scope_id=result.scope_id,
        order=result.order,
        changed=result.changed,
        saving=result.status.saving,
        error=result.status.error,
    )


# ==================== Tree ====================


@router.get("/tree", response_model=TreeResponse)
async def get_tree(
    course_id: Optional[int] = None,
    q: str = "",
    expand: bool = False,
    store: SqlAlchemyStore = Depends(get_store),
    user: User = Depends(require_user),
):
    """Assembled structure trees, optionally filtered by a search query."""
    controller = TreeViewController(store)
    trees = controller.load(course_id)
    if course_id is not None and not trees:
        raise HTTPException(status_code=404, detail="Course not found")
    if expand:
        controller.expand_all()
    visible = controller.search(q)
    return {
        "trees": [tree.to_dict() for tree in visible],
        "rows": [row.to_dict() for row in controller.visible_rows()],
        "integrity_warnings": controller.assembler.integrity_warnings,
    }


@router.get("/courses/{course_id}")
async def get_course_structure(
    course_id: int,
    store: SqlAlchemyStore = Depends(get_store),
    user: User = Depends(require_user),
):
    """Per-scope ordered lists for one course."""
    if store.get(Course, course_id) is None:
        raise HTTPException(status_code=404, detail="Course not found")
    return TreeAssembler(store).course_structure(course_id)


# ==================== Reordering ====================


@router.post("/reorder", response_model=ReorderResponse)
async def reorder(
    payload: DropRequest,
    background_tasks: BackgroundTasks,
    store: SqlAlchemyStore = Depends(get_store),
    user: User = Depends(require_editor),
):
    """Apply a completed drag within one scope.

    A successful reorder schedules a re-read of the scope after the
    response; it only checks for divergence and logs a warning.
    """
    coordinator = ReorderCoordinator(store)
    event = DragEvent(payload.active_id, payload.over_id, payload.kind, payload.over_kind or payload.kind)
    try:
        result = coordinator.handle_drop(payload.kind, event, scope_id=payload.scope_id)
    except StructureError as e:
        raise _http_error(e)

    if result.changed:
        background_tasks.add_task(coordinator.reconcile, result.kind, result.scope_id, result.order)
    return _reorder_response(result)


@router.post("/order", response_model=ReorderResponse)
async def apply_order(
    payload: OrderRequest,
    background_tasks: BackgroundTasks,
    store: SqlAlchemyStore = Depends(get_store),
    user: User = Depends(require_editor),
):
    """Persist a complete new order for one scope, then check it for divergence."""
    coordinator = ReorderCoordinator(store)
    try:
        result = coordinator.apply_order(payload.kind, payload.scope_id, payload.ordered_ids)
    except StructureError as e:
        raise _http_error(e)

    if result.changed:
        background_tasks.add_task(coordinator.reconcile, result.kind, result.scope_id, result.order)
    return _reorder_response(result)


# ==================== Associations ====================


@router.get("/available")
async def list_available(
    kind: str,
    scope_id: int,
    store: SqlAlchemyStore = Depends(get_store),
    user: User = Depends(require_user),
):
    """Items of ``kind`` not yet associated with the scope."""
    try:
        rows = AssociationEditor(store).list_available(kind, scope_id)
    except StructureError as e:
        raise _http_error(e)

    return [
        {
            "id": row.id,
            "display_name": row.display_title if kind == "subject" else row.title,
            "description": row.description,
        }
        for row in rows
    ]


@router.get("/options", response_model=list[AssociationOptionResponse])
async def association_options(
    kind: str,
    scope_id: int,
    store: SqlAlchemyStore = Depends(get_store),
    user: User = Depends(require_user),
):
    """Every candidate of ``kind`` with its availability for the scope."""
    try:
        options = AssociationEditor(store).association_options(kind, scope_id)
    except StructureError as e:
        raise _http_error(e)
    return [option.to_dict() for option in options]


@router.post("/associations")
async def associate(
    payload: AssociationRequest,
    store: SqlAlchemyStore = Depends(get_store),
    user: User = Depends(require_editor),
):
    """Attach members to a scope."""
    try:
        associated = AssociationEditor(store).associate(payload.kind, payload.scope_id, payload.member_ids)
    except StructureError as e:
        raise _http_error(e)
    return {"associated": associated}


@router.delete("/associations", status_code=204)
async def disassociate(
    kind: str = Query(...),
    scope_id: int = Query(...),
    member_id: int = Query(...),
    store: SqlAlchemyStore = Depends(get_store),
    user: User = Depends(require_editor),
):
    """Detach one member from a scope."""
    try:
        AssociationEditor(store).disassociate(kind, scope_id, member_id)
    except StructureError as e:
        raise _http_error(e)
    return Response(status_code=204)


# ==================== Nodes ====================


@router.post("/modules", response_model=ModuleResponse, status_code=201)
async def create_module(
    payload: ModuleCreate,
    store: SqlAlchemyStore = Depends(get_store),
    user: User = Depends(require_editor),
):
    """Append a module to its course."""
    try:
        return AssociationEditor(store).create_module(
            payload.course_id, payload.title, payload.description, payload.is_required
        )
    except StructureError as e:
        raise _http_error(e)


@router.post("/lessons", response_model=LessonResponse, status_code=201)
async def create_lesson(
    payload: LessonCreate,
    store: SqlAlchemyStore = Depends(get_store),
    user: User = Depends(require_editor),
):
    """Append a lesson to its module."""
    try:
        return AssociationEditor(store).create_lesson(
            payload.module_id, payload.title, payload.description, payload.subject_id
        )
    except StructureError as e:
        raise _http_error(e)


@router.post("/subjects", response_model=SubjectResponse, status_code=201)
async def create_subject(
    payload: SubjectCreate,
    store: SqlAlchemyStore = Depends(get_store),
    user: User = Depends(require_editor),
):
    """Create a shared subject."""
    try:
        return AssociationEditor(store).create_subject(payload.name, payload.code, payload.description)
    except StructureError as e:
        raise _http_error(e)


@router.post("/tests", response_model=TestResponse, status_code=201)
async def create_test(
    payload: TestCreate,
    store: SqlAlchemyStore = Depends(get_store),
    user: User = Depends(require_editor),
):
    """Create a test, optionally attached to a subject."""
    try:
        return AssociationEditor(store).create_test(payload.title, payload.subject_id, payload.description)
    except StructureError as e:
        raise _http_error(e)


@router.delete("/nodes/{kind}/{node_id}", status_code=204)
async def remove_node(
    kind: str,
    node_id: int,
    parent_id: Optional[int] = None,
    store: SqlAlchemyStore = Depends(get_store),
    user: User = Depends(require_editor),
):
    """Remove a tree node; deleting modules, subjects and lessons requires an admin."""
    if kind not in NODE_KINDS:
        raise HTTPException(status_code=400, detail="Invalid node kind")
    deletes = kind in ("module", "subject") or (kind == "lesson" and parent_id is None)
    if deletes and user.role != UserRole.admin and not is_admin_email(user.email):
        raise HTTPException(status_code=403, detail="Admin access required")

    try:
        AssociationEditor(store).remove_node(kind, node_id, parent_id)
    except StructureError as e:
        raise _http_error(e)
    LOGGER.info("%s removed %s %s", user.email, kind, node_id)
    return Response(status_code=204)
