"""
Engine package - Graph model, validation, scheduling, execution and serialization.
"""

from idflow.engine.node import NodeKind, NodeStatus, Position, WorkflowNode, create_node
from idflow.engine.graph import Edge, Graph
from idflow.engine.validator import ValidationResult, validate, check_connection
from idflow.engine.scheduler import execution_order
from idflow.engine.state import WorkflowState, ConnectionResult
from idflow.engine.executor import Executor, ExecutionResult, ExecutionStatus

__all__ = [
    "NodeKind",
    "NodeStatus",
    "Position",
    "WorkflowNode",
    "create_node",
    "Edge",
    "Graph",
    "ValidationResult",
    "validate",
    "check_connection",
    "execution_order",
    "WorkflowState",
    "ConnectionResult",
    "Executor",
    "ExecutionResult",
    "ExecutionStatus",
]
