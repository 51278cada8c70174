"""
Node Definition for the identity workflow engine.

Nodes are the steps of a verification workflow. Each node has a fixed kind
(start, end, liveness, card capture, scanner), the endpoint it is executed
against, and the run-derived fields the executor writes back.
"""

from typing import Any, Dict, Optional, Union
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4
import time

from pydantic import BaseModel, Field, field_validator, model_validator


class NodeKind(str, Enum):
    """The fixed role of a workflow step."""
    START = "start"
    END = "end"
    LIVENESS = "liveness"
    CARD_CAPTURE = "cardCapture"
    SCANNER = "scanner"


class NodeStatus(str, Enum):
    """Per-node execution status."""
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


# Kinds that must carry an endpoint
ENDPOINT_KINDS = (NodeKind.LIVENESS, NodeKind.CARD_CAPTURE, NodeKind.SCANNER)

# Fields cleared when a node goes back to idle
RUN_FIELDS = ("error", "last_response", "execution_time_ms", "updated_at")


def utcnow() -> datetime:
    """Timezone-aware current time; every run timestamp uses this clock."""
    return datetime.now(timezone.utc)


class Position(BaseModel):
    """Canvas position of a node."""
    x: float = 0.0
    y: float = 0.0


class WorkflowNode(BaseModel):
    """
    A node in the workflow graph.

    Attributes:
        id: Unique identifier for the node
        kind: Role of the step; unknown kinds are kept as plain strings
        label: Human-readable name
        api_endpoint: Endpoint executed for this step (None for start/end)
        inputs: Request payload sent to the endpoint
        outputs: Declared outputs of the step
        status: Execution status
        error: Error message of the last failed execution
        last_response: Response of the last execution
        execution_time_ms: Wall-clock duration of the last execution
        updated_at: Time of the last status change
        position: Canvas position
    """

    id: str
    kind: Union[NodeKind, str]
    label: str = ""
    api_endpoint: Optional[str] = Field(None, alias="apiEndpoint")
    inputs: Dict[str, Any] = Field(default_factory=dict)
    outputs: Dict[str, Any] = Field(default_factory=dict)
    status: NodeStatus = NodeStatus.IDLE
    error: Optional[str] = None
    last_response: Optional[Any] = Field(None, alias="lastResponse")
    execution_time_ms: Optional[int] = Field(None, alias="executionTimeMs")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")
    position: Position = Field(default_factory=Position)

    class Config:
        populate_by_name = True

    @field_validator("kind", mode="before")
    @classmethod
    def _coerce_kind(cls, value: Any) -> Any:
        if isinstance(value, str) and not isinstance(value, NodeKind):
            try:
                return NodeKind(value)
            except ValueError:
                return value
        return value

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not value:
            raise ValueError("Node id cannot be empty")
        return value

    @model_validator(mode="after")
    def _check_endpoint(self) -> "WorkflowNode":
        if self.kind in ENDPOINT_KINDS and not self.api_endpoint:
            raise ValueError(f"Node '{self.id}' of kind '{kind_value(self.kind)}' requires an API endpoint")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the node to a JSON-compatible dictionary."""
        return self.model_dump(mode="json", by_alias=True)


def kind_value(kind: Union[NodeKind, str]) -> str:
    """Plain string value of a node kind."""
    return kind.value if isinstance(kind, NodeKind) else kind


def normalize_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Map camelCase aliases in a node patch to field names."""
    aliases = {
        info.alias: name
        for name, info in WorkflowNode.model_fields.items()
        if info.alias
    }
    return {aliases.get(key, key): value for key, value in patch.items()}


# ============================================================
# Node Templates
# ============================================================

_DEFAULT_MULTIPART_INPUT: Dict[str, Any] = {
    "token": "Sandip-Test",
    "latitude": 0.0,
    "longitude": 0.0,
    "user_agent": "Mozilla/5.0",
    "file": "/path/to/file.jpg",
}


@dataclass
class NodeTemplate:
    """Palette entry used to create new nodes of a kind."""
    kind: NodeKind
    label: str
    api_endpoint: Optional[str] = None
    default_inputs: Dict[str, Any] = field(default_factory=dict)
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "label": self.label,
            "apiEndpoint": self.api_endpoint,
            "defaultInputs": self.default_inputs,
            "description": self.description,
        }


NODE_TEMPLATES: Dict[NodeKind, NodeTemplate] = {
    NodeKind.START: NodeTemplate(NodeKind.START, "Start"),
    NodeKind.LIVENESS: NodeTemplate(
        NodeKind.LIVENESS,
        "Liveness Check",
        "/jdmscan/liveness",
        dict(_DEFAULT_MULTIPART_INPUT),
    ),
    NodeKind.CARD_CAPTURE: NodeTemplate(
        NodeKind.CARD_CAPTURE,
        "Card Capture",
        "/ml/document",
        {
            **{k: v for k, v in _DEFAULT_MULTIPART_INPUT.items() if k != "user_agent"},
            "metadataIndex": 2702,
        },
    ),
    NodeKind.SCANNER: NodeTemplate(
        NodeKind.SCANNER,
        "Scanner",
        "/jdmscan/scanner",
        dict(_DEFAULT_MULTIPART_INPUT),
        description="MRZ or Barcode scanning",
    ),
    NodeKind.END: NodeTemplate(NodeKind.END, "End"),
}

GRID_SIZE = 20


def snap_to_grid(position: Position) -> Position:
    """Round a drop position to the canvas grid."""
    return Position(
        x=round(position.x / GRID_SIZE) * GRID_SIZE,
        y=round(position.y / GRID_SIZE) * GRID_SIZE,
    )


def create_node(
    kind: NodeKind,
    position: Optional[Position] = None,
    node_id: Optional[str] = None,
    label: Optional[str] = None,
) -> WorkflowNode:
    """
    Create a node from the template of the given kind.

    Args:
        kind: Kind of node to create
        position: Drop position (snapped to the grid)
        node_id: Explicit id (generated from kind and time if omitted)
        label: Label override

    Returns:
        A new idle WorkflowNode
    """
    template = NODE_TEMPLATES[NodeKind(kind)]
    if node_id is None:
        node_id = f"{template.kind.value}-{int(time.time() * 1000)}-{uuid4().hex[:6]}"

    return WorkflowNode(
        id=node_id,
        kind=template.kind,
        label=label or template.label,
        api_endpoint=template.api_endpoint,
        inputs=dict(template.default_inputs),
        position=snap_to_grid(position or Position()),
    )
