"""
Pydantic Schemas for API Request/Response Models.

These schemas define the structure of data flowing through the API,
providing automatic validation and documentation.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from idflow.engine.node import NodeKind, Position


# ============================================================
# Node Schemas
# ============================================================

class NodeCreateRequest(BaseModel):
    """Request to add a node, either from a template or fully specified."""
    kind: str = Field(..., description="Node kind (start, end, liveness, cardCapture, scanner)")
    position: Position = Field(default_factory=Position, description="Drop position on the canvas")
    id: Optional[str] = Field(None, description="Node id (generated if omitted)")
    label: Optional[str] = Field(None, description="Label override")
    api_endpoint: Optional[str] = Field(None, alias="apiEndpoint", description="Endpoint override")
    inputs: Optional[Dict[str, Any]] = Field(None, description="Request payload override")
    outputs: Optional[Dict[str, Any]] = Field(None, description="Declared outputs")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "kind": "liveness",
                "position": {"x": 240, "y": 120},
            }
        }


class NodeUpdateRequest(BaseModel):
    """Partial update of a node. Id and kind cannot be changed."""
    label: Optional[str] = None
    api_endpoint: Optional[str] = Field(None, alias="apiEndpoint")
    inputs: Optional[Dict[str, Any]] = None
    outputs: Optional[Dict[str, Any]] = None
    position: Optional[Position] = None

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "label": "Selfie Liveness",
                "inputs": {"token": "Sandip-Test", "file": "/tmp/selfie.jpg"},
            }
        }


class NodeTemplateInfo(BaseModel):
    """Palette entry for a node kind."""
    kind: NodeKind
    label: str
    apiEndpoint: Optional[str]
    defaultInputs: Dict[str, Any]
    description: str = ""


class TemplateListResponse(BaseModel):
    templates: List[NodeTemplateInfo]
    total: int


class SelectionRequest(BaseModel):
    node_id: Optional[str] = Field(None, alias="nodeId")

    class Config:
        populate_by_name = True


# ============================================================
# Edge Schemas
# ============================================================

class ConnectRequest(BaseModel):
    """Request to connect two nodes."""
    source: str = Field(..., description="Source node id")
    target: str = Field(..., description="Target node id")

    class Config:
        json_schema_extra = {
            "example": {"source": "card-capture", "target": "scanner"}
        }


# ============================================================
# Workflow Schemas
# ============================================================

class WorkflowStateResponse(BaseModel):
    """The whole editor state."""
    workflowName: str
    nodes: List[Dict[str, Any]]
    edges: List[Dict[str, Any]]
    isExecuting: bool
    executionOrder: List[str]
    selectedNode: Optional[str] = None


class ValidationResponse(BaseModel):
    valid: bool
    errors: List[str]


class OrderResponse(BaseModel):
    order: List[str]
    complete: bool = Field(..., description="False if a cycle kept nodes out of the order")


class DiagramResponse(BaseModel):
    mermaid_diagram: str


class SaveResponse(BaseModel):
    key: str
    savedAt: str
    node_count: int


class LoadResponse(BaseModel):
    key: str
    loaded: bool
    node_count: int


class ImportRequest(BaseModel):
    """Import document: the export format or a raw {nodes, edges} document."""
    workflowName: Optional[str] = None
    nodes: Optional[List[Dict[str, Any]]] = None
    edges: Optional[List[Dict[str, Any]]] = None

    class Config:
        extra = "allow"
        json_schema_extra = {
            "example": {
                "workflowName": "IDMScan Workflow",
                "nodes": [
                    {"id": "start", "type": "Start", "apiEndpoint": None,
                     "position": {"x": 0, "y": 0}, "inputs": {}, "outputs": {},
                     "connections": ["end"]},
                    {"id": "end", "type": "End", "apiEndpoint": None,
                     "position": {"x": 0, "y": 200}, "inputs": {}, "outputs": {},
                     "connections": []},
                ],
            }
        }


# ============================================================
# Run Schemas
# ============================================================

class ExecutionStepEntry(BaseModel):
    """A single entry in the execution log."""
    step: int
    node: str
    kind: str
    status: str
    started_at: str
    completed_at: Optional[str]
    duration_ms: Optional[int]
    error: Optional[str]


class RunResponse(BaseModel):
    """Result of a workflow run."""
    run_id: str
    status: str
    errors: List[str]
    execution_order: List[str]
    steps: List[ExecutionStepEntry]
    previous_result: Any = None
    failed_node: Optional[str] = None
    started_at: Optional[str]
    completed_at: Optional[str]
    total_duration_ms: Optional[float]

    class Config:
        json_schema_extra = {
            "example": {
                "run_id": "run-xyz789",
                "status": "completed",
                "errors": [],
                "execution_order": ["start", "liveness", "end"],
                "steps": [
                    {
                        "step": 2,
                        "node": "liveness",
                        "kind": "liveness",
                        "status": "success",
                        "started_at": "2024-01-01T12:00:00",
                        "completed_at": "2024-01-01T12:00:02",
                        "duration_ms": 1834,
                        "error": None,
                    }
                ],
                "previous_result": {"livenessScore": 0.95},
                "failed_node": None,
                "started_at": "2024-01-01T12:00:00",
                "completed_at": "2024-01-01T12:00:02",
                "total_duration_ms": 1850.0,
            }
        }


class RunListResponse(BaseModel):
    runs: List[RunResponse]
    total: int


# ============================================================
# Endpoint Schemas
# ============================================================

class EndpointInfo(BaseModel):
    """A simulated service endpoint."""
    path: str
    description: str


class EndpointListResponse(BaseModel):
    endpoints: List[EndpointInfo]
    total: int


# ============================================================
# Error Schemas
# ============================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[Any] = None
    status_code: int
