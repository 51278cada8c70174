"""
Workflow State Container.

A single WorkflowState is shared by the API layer, the validator, the
scheduler and the executor. Editing operations go through it; during a run
the executor is the only writer of the run-derived node fields.
"""

from typing import Any, Dict, List, Optional
from dataclasses import dataclass
import logging

from idflow.engine.errors import ConnectionRejected
from idflow.engine.graph import Edge, Graph
from idflow.engine.node import RUN_FIELDS, NodeStatus, WorkflowNode, utcnow


logger = logging.getLogger(__name__)


@dataclass
class ConnectionResult:
    """Outcome of a connection attempt."""
    accepted: bool
    edge: Optional[Edge] = None
    reason: Optional[str] = None


class WorkflowState:
    """
    Holds the workflow graph and the workflow-level run flags.

    Attributes:
        graph: The workflow graph
        workflow_name: Name used when exporting
        is_executing: True while a run is in progress
        execution_order: Order computed for the most recent run
        selected_node: Node currently selected in the editor
    """

    def __init__(self, graph: Optional[Graph] = None, workflow_name: str = "IDMScan Workflow"):
        self.graph = graph or Graph()
        self.workflow_name = workflow_name
        self.is_executing = False
        self.execution_order: List[str] = []
        self.selected_node: Optional[str] = None

    # ------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------

    def add_node(self, node: WorkflowNode) -> WorkflowNode:
        self.graph.add_node(node)
        logger.debug(f"Added node {node.id}")
        return node

    def update_node(self, node_id: str, patch: Dict[str, Any]) -> WorkflowNode:
        return self.graph.update_node(node_id, patch)

    def remove_node(self, node_id: str) -> bool:
        removed = self.graph.remove_node(node_id)
        if removed and self.selected_node == node_id:
            self.selected_node = None
        return removed

    def connect(self, source: str, target: str) -> ConnectionResult:
        """
        Try to connect two nodes.

        A rejected connection leaves the graph unchanged and is reported in
        the result instead of being raised.
        """
        try:
            edge = self.graph.add_edge(source, target)
        except ConnectionRejected as e:
            logger.info(f"Connection {source} -> {target} rejected: {e.reason}")
            return ConnectionResult(accepted=False, reason=e.reason)
        return ConnectionResult(accepted=True, edge=edge)

    def remove_edge(self, edge_id: str) -> bool:
        return self.graph.remove_edge(edge_id)

    def select(self, node_id: Optional[str]) -> None:
        if node_id is not None and node_id not in self.graph.nodes:
            raise KeyError(node_id)
        self.selected_node = node_id

    def replace_graph(self, graph: Graph, workflow_name: Optional[str] = None) -> None:
        """Swap in a whole new graph (load/import)."""
        self.graph = graph
        self.execution_order = []
        self.selected_node = None
        if workflow_name:
            self.workflow_name = workflow_name

    # ------------------------------------------------------------
    # Run-derived fields
    # ------------------------------------------------------------

    def mark_node(self, node_id: str, status: NodeStatus, **changes: Any) -> WorkflowNode:
        """Set a node's status, stamp it, and apply other run-derived changes."""
        node = self.graph.nodes[node_id]
        updated = node.model_copy(update={
            "status": status,
            "updated_at": utcnow(),
            **changes,
        })
        self.graph.set_node(updated)
        return updated

    def reset(self) -> None:
        """Return every node to idle and clear run-derived fields."""
        for node in list(self.graph.nodes.values()):
            self.graph.set_node(reset_node(node))
        self.is_executing = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert the state to a plain dictionary."""
        return {
            "workflowName": self.workflow_name,
            **self.graph.to_dict(),
            "isExecuting": self.is_executing,
            "executionOrder": self.execution_order,
            "selectedNode": self.selected_node,
        }


def reset_node(node: WorkflowNode) -> WorkflowNode:
    """Idle copy of a node with its run-derived fields cleared."""
    return node.model_copy(update={
        "status": NodeStatus.IDLE,
        **{name: None for name in RUN_FIELDS},
    })
