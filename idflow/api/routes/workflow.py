"""
Workflow API Routes.

Endpoints the editor uses to build the workflow graph, validate and run it,
and save, load, export and import it.
"""

from typing import Any, Dict
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError as PydanticValidationError
import logging

from idflow.api.dependencies import (
    get_execution_port,
    get_run_storage,
    get_state,
    get_storage,
)
from idflow.api.schemas import (
    ConnectRequest,
    DiagramResponse,
    ErrorResponse,
    ImportRequest,
    LoadResponse,
    NodeCreateRequest,
    NodeUpdateRequest,
    OrderResponse,
    RunResponse,
    SaveResponse,
    SelectionRequest,
    TemplateListResponse,
    ValidationResponse,
    WorkflowStateResponse,
)
from idflow.config import settings
from idflow.endpoints.port import ExecutionPort
from idflow.engine.errors import MalformedImport, SerializationError, WorkflowBusy
from idflow.engine.executor import Executor
from idflow.engine.node import NODE_TEMPLATES, NodeKind, WorkflowNode, create_node, snap_to_grid
from idflow.engine.scheduler import execution_order
from idflow.engine.serializer import apply_import, export_workflow, load_workflow, save_workflow
from idflow.engine.state import WorkflowState
from idflow.engine.validator import validate
from idflow.storage.memory import RunStorage, WorkflowStorage


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflow", tags=["Workflow"])


def _state_response(state: WorkflowState) -> WorkflowStateResponse:
    return WorkflowStateResponse(**state.to_dict())


def _ensure_idle(state: WorkflowState) -> None:
    if state.is_executing:
        raise HTTPException(status_code=409, detail="A workflow run is in progress")


# ============================================================
# State & Palette
# ============================================================

@router.get("", response_model=WorkflowStateResponse)
async def get_workflow(state: WorkflowState = Depends(get_state)) -> WorkflowStateResponse:
    """Get the whole editor state: nodes, edges and run flags."""
    return _state_response(state)


@router.get("/templates", response_model=TemplateListResponse)
async def list_templates() -> TemplateListResponse:
    """List the node palette."""
    templates = [t.to_dict() for t in NODE_TEMPLATES.values()]
    return TemplateListResponse(templates=templates, total=len(templates))


# ============================================================
# Nodes
# ============================================================

@router.post(
    "/nodes",
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def add_node(
    request: NodeCreateRequest,
    state: WorkflowState = Depends(get_state),
) -> Dict[str, Any]:
    """
    Add a node to the workflow.

    Known kinds start from their palette template; any field given in the
    request overrides the template.
    """
    _ensure_idle(state)
    overrides = request.model_dump(exclude_none=True, exclude={"kind", "position", "id"})

    try:
        if request.kind in {k.value for k in NodeKind}:
            node = create_node(NodeKind(request.kind), request.position, node_id=request.id)
            if overrides:
                data = node.model_dump()
                data.update(overrides)
                node = WorkflowNode.model_validate(data)
        else:
            if not request.id:
                raise HTTPException(status_code=400, detail="Nodes of custom kinds need an explicit id")
            node = WorkflowNode(
                id=request.id,
                kind=request.kind,
                position=snap_to_grid(request.position),
                **overrides,
            )
        state.add_node(node)
    except PydanticValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors()[0]["msg"])
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Added node {node.id} ({node.kind})")
    return node.to_dict()


@router.patch(
    "/nodes/{node_id}",
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_node(
    node_id: str,
    request: NodeUpdateRequest,
    state: WorkflowState = Depends(get_state),
) -> Dict[str, Any]:
    """Update a node's label, endpoint, inputs, outputs or position."""
    _ensure_idle(state)
    patch = request.model_dump(exclude_unset=True)
    try:
        node = state.update_node(node_id, patch)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Node '{node_id}' not found")
    except PydanticValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors()[0]["msg"])
    return node.to_dict()


@router.delete(
    "/nodes/{node_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_node(node_id: str, state: WorkflowState = Depends(get_state)):
    """Delete a node and its connections."""
    _ensure_idle(state)
    if not state.remove_node(node_id):
        raise HTTPException(status_code=404, detail=f"Node '{node_id}' not found")
    logger.info(f"Deleted node: {node_id}")


@router.put("/selection", response_model=WorkflowStateResponse, responses={404: {"model": ErrorResponse}})
async def select_node(
    request: SelectionRequest,
    state: WorkflowState = Depends(get_state),
) -> WorkflowStateResponse:
    """Select a node in the editor (or clear the selection)."""
    try:
        state.select(request.node_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Node '{request.node_id}' not found")
    return _state_response(state)


# ============================================================
# Edges
# ============================================================

@router.post(
    "/edges",
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse, "description": "Connection rejected"}},
)
async def connect(
    request: ConnectRequest,
    state: WorkflowState = Depends(get_state),
) -> Dict[str, Any]:
    """Connect two nodes. Connections that break the wiring rules are rejected."""
    _ensure_idle(state)
    result = state.connect(request.source, request.target)
    if not result.accepted:
        raise HTTPException(status_code=400, detail=result.reason)
    return result.edge.to_dict()


@router.delete(
    "/edges/{edge_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_edge(edge_id: str, state: WorkflowState = Depends(get_state)):
    """Delete a connection."""
    _ensure_idle(state)
    if not state.remove_edge(edge_id):
        raise HTTPException(status_code=404, detail=f"Edge '{edge_id}' not found")


# ============================================================
# Validation & Ordering
# ============================================================

@router.get("/validate", response_model=ValidationResponse)
async def validate_workflow(state: WorkflowState = Depends(get_state)) -> ValidationResponse:
    """Check the workflow against the structural rules."""
    return ValidationResponse(**validate(state.graph).to_dict())


@router.get("/order", response_model=OrderResponse)
async def get_order(state: WorkflowState = Depends(get_state)) -> OrderResponse:
    """Compute the execution order without running anything."""
    order = execution_order(state.graph.nodes.values(), state.graph.edges)
    return OrderResponse(order=order, complete=len(order) == len(state.graph.nodes))


@router.get("/diagram", response_model=DiagramResponse)
async def get_diagram(state: WorkflowState = Depends(get_state)) -> DiagramResponse:
    """Mermaid diagram of the workflow."""
    return DiagramResponse(mermaid_diagram=state.graph.to_mermaid())


# ============================================================
# Execution
# ============================================================

@router.post(
    "/run",
    response_model=RunResponse,
    responses={
        409: {"model": ErrorResponse, "description": "A run is already in progress"},
        422: {"model": ErrorResponse, "description": "Workflow validation failed"},
    },
)
async def run_workflow(
    state: WorkflowState = Depends(get_state),
    port: ExecutionPort = Depends(get_execution_port),
    runs: RunStorage = Depends(get_run_storage),
) -> RunResponse:
    """
    Run the workflow to completion or to the first failing node.

    Node statuses are written into the workflow state as the run progresses.
    A workflow that fails validation is not started.
    """
    executor = Executor(state, port)
    await runs.create(executor.run_id)

    try:
        result = await executor.run()
    except WorkflowBusy as e:
        await runs.delete(executor.run_id)
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.exception(f"Execution failed: {e}")
        await runs.fail(executor.run_id, str(e))
        raise HTTPException(status_code=500, detail=str(e))

    await runs.finish(result)

    if result.status.value == "invalid":
        raise HTTPException(
            status_code=422,
            detail={"run_id": result.run_id, "errors": result.errors},
        )

    return RunResponse(**result.to_dict())


@router.post("/reset", response_model=WorkflowStateResponse)
async def reset_workflow(state: WorkflowState = Depends(get_state)) -> WorkflowStateResponse:
    """Return every node to idle and clear run results."""
    _ensure_idle(state)
    state.reset()
    return _state_response(state)


# ============================================================
# Persistence
# ============================================================

@router.post("/save", response_model=SaveResponse)
async def save(
    state: WorkflowState = Depends(get_state),
    storage: WorkflowStorage = Depends(get_storage),
) -> SaveResponse:
    """Save the workflow to the configured storage slot."""
    document = await save_workflow(state, storage, settings.STORAGE_KEY)
    return SaveResponse(
        key=settings.STORAGE_KEY,
        savedAt=document["savedAt"],
        node_count=len(document["nodes"]),
    )


@router.post(
    "/load",
    response_model=LoadResponse,
    responses={400: {"model": ErrorResponse, "description": "Stored workflow is corrupt"}},
)
async def load(
    state: WorkflowState = Depends(get_state),
    storage: WorkflowStorage = Depends(get_storage),
) -> LoadResponse:
    """Replace the workflow with the one in the storage slot, if any."""
    _ensure_idle(state)
    try:
        loaded = await load_workflow(state, storage, settings.STORAGE_KEY)
    except SerializationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return LoadResponse(key=settings.STORAGE_KEY, loaded=loaded, node_count=len(state.graph.nodes))


@router.get("/export")
async def export(state: WorkflowState = Depends(get_state)) -> Dict[str, Any]:
    """Export the workflow as a labeled adjacency list."""
    return export_workflow(state.graph, state.workflow_name)


@router.post(
    "/import",
    response_model=WorkflowStateResponse,
    responses={400: {"model": ErrorResponse, "description": "Malformed workflow document"}},
)
async def import_(
    request: ImportRequest,
    state: WorkflowState = Depends(get_state),
) -> WorkflowStateResponse:
    """Replace the workflow with an imported document."""
    _ensure_idle(state)
    document = {k: v for k, v in request.model_dump().items() if v is not None}
    try:
        apply_import(state, document)
    except (MalformedImport, SerializationError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _state_response(state)
