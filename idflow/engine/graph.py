"""
Graph Definition for the identity workflow engine.

The Graph holds the workflow steps and the directed connections between
them. Node insertion order is preserved; the scheduler uses it to break ties.
"""

from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from idflow.engine.errors import ConnectionRejected
from idflow.engine.node import NodeKind, WorkflowNode, kind_value, normalize_patch
from idflow.engine.validator import check_connection


class Edge(BaseModel):
    """A directed connection between two nodes."""
    id: str = ""
    source: str
    target: str
    type: Optional[str] = None

    def model_post_init(self, __context: Any) -> None:
        if not self.id:
            self.id = edge_id(self.source, self.target)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


def edge_id(source: str, target: str) -> str:
    """Default id of the edge between two nodes."""
    return f"edge-{source}-{target}"


@dataclass
class Graph:
    """
    A workflow graph consisting of nodes and edges.

    Attributes:
        nodes: Dict of node_id -> WorkflowNode, in insertion order
        edges: List of edges, in insertion order
    """

    nodes: Dict[str, WorkflowNode] = field(default_factory=dict)
    edges: List[Edge] = field(default_factory=list)

    # ------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------

    def add_node(self, node: WorkflowNode) -> "Graph":
        """
        Add a node to the graph.

        Raises:
            ValueError: If a node with the same id already exists

        Returns:
            Self for chaining
        """
        if node.id in self.nodes:
            raise ValueError(f"Node '{node.id}' already exists in the graph")
        self.nodes[node.id] = node
        return self

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        """Get a node by id."""
        return self.nodes.get(node_id)

    def update_node(self, node_id: str, patch: Dict[str, Any]) -> WorkflowNode:
        """
        Merge a patch into a node's data.

        The node's id and kind are never taken from the patch.

        Raises:
            KeyError: If the node does not exist
            pydantic.ValidationError: If the patched node is invalid
        """
        current = self.nodes.get(node_id)
        if current is None:
            raise KeyError(node_id)

        changes = {
            key: value
            for key, value in normalize_patch(patch).items()
            if key not in ("id", "kind")
        }
        data = current.model_dump()
        data.update(changes)
        updated = WorkflowNode.model_validate(data)
        self.nodes[node_id] = updated
        return updated

    def set_node(self, node: WorkflowNode) -> None:
        """Replace an existing node object in place, keeping its position in order."""
        if node.id not in self.nodes:
            raise KeyError(node.id)
        self.nodes[node.id] = node

    def remove_node(self, node_id: str) -> bool:
        """Remove a node and every edge touching it."""
        if node_id not in self.nodes:
            return False
        del self.nodes[node_id]
        self.edges = [
            e for e in self.edges
            if e.source != node_id and e.target != node_id
        ]
        return True

    def nodes_of_kind(self, kind: NodeKind) -> List[WorkflowNode]:
        """All nodes of a kind, in graph order."""
        return [n for n in self.nodes.values() if n.kind == kind]

    # ------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------

    def add_edge(self, source: str, target: str, edge_type: Optional[str] = None) -> Edge:
        """
        Connect source to target after checking the wiring rules.

        Raises:
            ConnectionRejected: If the connection is not allowed

        Returns:
            The new edge
        """
        if source not in self.nodes:
            raise ConnectionRejected(source, target, f"Source node '{source}' not found in graph")
        if target not in self.nodes:
            raise ConnectionRejected(source, target, f"Target node '{target}' not found in graph")
        if any(e.source == source and e.target == target for e in self.edges):
            raise ConnectionRejected(source, target, f"Connection from '{source}' to '{target}' already exists")

        reason = check_connection(self, source, target)
        if reason:
            raise ConnectionRejected(source, target, reason)

        edge = Edge(
            id=self.unique_edge_id(source, target),
            source=source,
            target=target,
            type=edge_type,
        )
        self.edges.append(edge)
        return edge

    def unique_edge_id(self, source: str, target: str) -> str:
        """
        Default id for a new edge, suffixed when already taken.

        Node ids may contain dashes, so different node pairs can share the
        same default id.
        """
        base = edge_id(source, target)
        taken = {e.id for e in self.edges}
        candidate, n = base, 2
        while candidate in taken:
            candidate = f"{base}-{n}"
            n += 1
        return candidate

    def remove_edge(self, edge_id: str) -> bool:
        """Remove the edge with the given id."""
        for index, edge in enumerate(self.edges):
            if edge.id == edge_id:
                del self.edges[index]
                return True
        return False

    def incoming(self, node_id: str) -> List[Edge]:
        """Edges ending at a node."""
        return [e for e in self.edges if e.target == node_id]

    def outgoing(self, node_id: str) -> List[Edge]:
        """Edges starting at a node."""
        return [e for e in self.edges if e.source == node_id]

    def successors(self, node_id: str) -> List[str]:
        """Direct successor ids of a node, in edge order."""
        return [e.target for e in self.outgoing(node_id)]

    # ------------------------------------------------------------
    # Views
    # ------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the graph to a dictionary."""
        return {
            "nodes": [n.to_dict() for n in self.nodes.values()],
            "edges": [e.to_dict() for e in self.edges],
        }

    def to_mermaid(self) -> str:
        """Generate a Mermaid diagram of the graph."""
        lines = ["graph TD"]

        for node in self.nodes.values():
            label = node.label or kind_value(node.kind)
            key = _mermaid_id(node.id)
            if node.kind == NodeKind.START:
                lines.append(f'    {key}(["{label}"])')
            elif node.kind == NodeKind.END:
                lines.append(f'    {key}(("{label}"))')
            else:
                lines.append(f'    {key}["{label}"]')

        for edge in self.edges:
            lines.append(f"    {_mermaid_id(edge.source)} --> {_mermaid_id(edge.target)}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"Graph(nodes={list(self.nodes.keys())}, edges={len(self.edges)})"


def _mermaid_id(node_id: str) -> str:
    return "".join(ch if ch.isalnum() else "_" for ch in node_id)
