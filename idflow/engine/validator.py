"""
Structural validation of workflow graphs.

One rule set serves two call sites: the connection-time check that runs
before an edge is added, and the pre-flight check that gates a run.
"""

from typing import TYPE_CHECKING, List, Optional
from dataclasses import dataclass, field

from idflow.engine.node import NodeKind

if TYPE_CHECKING:
    from idflow.engine.graph import Graph


@dataclass
class ValidationResult:
    """Outcome of validating a graph."""
    errors: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self):
        return {"valid": self.valid, "errors": self.errors}


def _check_count(graph: "Graph", kind: NodeKind, name: str) -> List[str]:
    count = len(graph.nodes_of_kind(kind))
    if count == 0:
        article = "an" if name[0] in "aeiou" else "a"
        return [f"Workflow must have {article} {name} node"]
    if count > 1:
        return [f"Workflow can only have one {name} node"]
    return []


def check_scanner_wiring(graph: "Graph") -> List[str]:
    """
    Check that every scanner is fed by exactly one card capture node.

    Returns:
        List of errors, one per badly wired scanner
    """
    errors = []
    for scanner in graph.nodes_of_kind(NodeKind.SCANNER):
        name = scanner.label or scanner.id
        incoming = graph.incoming(scanner.id)
        if len(incoming) != 1:
            errors.append(f"Scanner node '{name}' must have exactly one incoming connection")
            continue
        source = graph.get_node(incoming[0].source)
        if source is None or source.kind != NodeKind.CARD_CAPTURE:
            errors.append(f"Scanner node '{name}' must connect directly from Card Capture node")
    return errors


def validate(graph: "Graph") -> ValidationResult:
    """
    Validate the graph structure.

    All rules are evaluated; errors are collected rather than short-circuited.
    """
    errors: List[str] = []
    errors.extend(_check_count(graph, NodeKind.START, "start"))
    errors.extend(_check_count(graph, NodeKind.END, "end"))
    errors.extend(check_scanner_wiring(graph))
    return ValidationResult(errors=errors)


def check_connection(graph: "Graph", source_id: str, target_id: str) -> Optional[str]:
    """
    Check a proposed edge against the wiring rules.

    Returns:
        The rejection reason, or None if the edge may be added
    """
    source = graph.get_node(source_id)
    target = graph.get_node(target_id)
    if source is None or target is None:
        return "Both ends of a connection must exist in the graph"

    if target.kind == NodeKind.SCANNER:
        if source.kind != NodeKind.CARD_CAPTURE:
            return "Scanner node must connect directly from Card Capture node"
        if graph.incoming(target_id):
            return "Scanner node can only have one incoming connection"
        for edge in graph.outgoing(source_id):
            other = graph.get_node(edge.target)
            if other is not None and other.kind == NodeKind.SCANNER and other.id != target_id:
                return "Card Capture node can only connect to one Scanner node"

    return None
