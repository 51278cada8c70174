"""
Workflow serialization.

Two document shapes are produced and accepted:

* the export format, a labeled adjacency list where each node carries a
  human-readable ``type`` and the ids of the nodes it connects to;
* the raw ``{nodes, edges}`` format used for save/load, which also covers
  canvas documents whose node fields live under ``data``.
"""

from typing import Any, Dict, List, Optional, Union
from dataclasses import dataclass
import json
import logging

from pydantic import ValidationError as PydanticValidationError

from idflow.engine.errors import MalformedImport, SerializationError
from idflow.engine.graph import Edge, Graph
from idflow.engine.node import NodeKind, WorkflowNode, utcnow
from idflow.engine.state import WorkflowState, reset_node


logger = logging.getLogger(__name__)

DEFAULT_WORKFLOW_NAME = "IDMScan Workflow"

TYPE_LABELS: Dict[NodeKind, str] = {
    NodeKind.START: "Start",
    NodeKind.END: "End",
    NodeKind.LIVENESS: "Liveness Check",
    NodeKind.CARD_CAPTURE: "Card Capture",
    NodeKind.SCANNER: "Scanner",
}

LABEL_TYPES: Dict[str, NodeKind] = {label: kind for kind, label in TYPE_LABELS.items()}


@dataclass
class ImportedWorkflow:
    """A workflow decoded from a document."""
    graph: Graph
    name: Optional[str] = None


def type_label(kind: Union[NodeKind, str]) -> str:
    """Human-readable label of a node kind."""
    if isinstance(kind, NodeKind):
        return TYPE_LABELS[kind]
    return kind


def kind_from_label(label: str) -> Union[NodeKind, str]:
    """Reverse of type_label; unknown labels are returned unchanged."""
    return LABEL_TYPES.get(label, label)


# ============================================================
# Export / Import
# ============================================================

def export_workflow(graph: Graph, workflow_name: str = DEFAULT_WORKFLOW_NAME) -> Dict[str, Any]:
    """
    Build the export document of a graph.

    Edges are written as each node's list of target ids.
    """
    nodes = []
    for node in graph.nodes.values():
        nodes.append({
            "id": node.id,
            "type": type_label(node.kind),
            "label": node.label,
            "apiEndpoint": node.api_endpoint,
            "position": node.position.model_dump(),
            "inputs": node.inputs,
            "outputs": node.outputs,
            "connections": graph.successors(node.id),
        })
    return {"workflowName": workflow_name, "nodes": nodes}


def export_json(graph: Graph, workflow_name: str = DEFAULT_WORKFLOW_NAME) -> str:
    """Export document as indented JSON text."""
    return json.dumps(export_workflow(graph, workflow_name), indent=2)


def _decode(document: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Invalid workflow JSON: {e}") from e
    if not isinstance(document, dict):
        raise MalformedImport("Workflow document must be a JSON object")
    return document


def _flatten_canvas_node(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Merge a canvas node's ``data`` block into a flat node dict."""
    data = dict(raw.get("data") or {})
    flat = {**data, "id": raw.get("id", data.get("id")), "position": raw.get("position", {})}
    if "type" in data:
        flat["kind"] = flat.pop("type")
    if "requestPayload" in flat and "inputs" not in flat:
        flat["inputs"] = flat.pop("requestPayload") or {}
    if "response" in flat and "lastResponse" not in flat:
        flat["lastResponse"] = flat.pop("response")
    if "timestamp" in flat and "updatedAt" not in flat:
        flat["updatedAt"] = flat.pop("timestamp")
    if "executionTime" in flat and "executionTimeMs" not in flat:
        flat["executionTimeMs"] = flat.pop("executionTime")
    return flat


def _graph_from_raw(nodes: List[Any], edges: List[Any]) -> Graph:
    graph = Graph()
    for raw in nodes:
        if not isinstance(raw, dict):
            raise MalformedImport("Workflow nodes must be JSON objects")
        if isinstance(raw.get("data"), dict):
            raw = _flatten_canvas_node(raw)
        if isinstance(raw.get("kind"), str):
            raw = {**raw, "kind": kind_from_label(raw["kind"])}
        graph.add_node(WorkflowNode.model_validate(raw))
    for raw in edges:
        if not isinstance(raw, dict):
            raise MalformedImport("Workflow edges must be JSON objects")
        edge = Edge.model_validate(raw)
        if edge.source not in graph.nodes or edge.target not in graph.nodes:
            raise MalformedImport(f"Edge '{edge.id}' references an unknown node")
        if not raw.get("id"):
            edge.id = graph.unique_edge_id(edge.source, edge.target)
        elif any(e.id == edge.id for e in graph.edges):
            raise MalformedImport(f"Duplicate edge id '{edge.id}'")
        graph.edges.append(edge)
    return graph


def _graph_from_labeled(nodes: List[Any]) -> Graph:
    graph = Graph()
    connections: List[tuple] = []
    for raw in nodes:
        if not isinstance(raw, dict):
            raise MalformedImport("Workflow nodes must be JSON objects")
        label = raw.get("type", "")
        if not isinstance(label, str):
            raise MalformedImport(f"Node type must be a string, got {type(label).__name__}")
        kind = kind_from_label(label)
        node = WorkflowNode(
            id=raw.get("id", ""),
            kind=kind,
            label=raw.get("label") or type_label(kind),
            api_endpoint=raw.get("apiEndpoint"),
            inputs=raw.get("inputs") or {},
            outputs=raw.get("outputs") or {},
            position=raw.get("position") or {},
        )
        graph.add_node(node)
        targets = raw.get("connections") or []
        if not isinstance(targets, list) or not all(isinstance(t, str) for t in targets):
            raise MalformedImport(f"Connections of node '{node.id}' must be a list of node ids")
        for target in targets:
            connections.append((node.id, target))

    for source, target in connections:
        if target not in graph.nodes:
            raise MalformedImport(f"Connection from '{source}' to unknown node '{target}'")
        graph.edges.append(Edge(id=graph.unique_edge_id(source, target), source=source, target=target))
    return graph


def import_workflow(document: Union[str, bytes, Dict[str, Any]]) -> ImportedWorkflow:
    """
    Decode an export or raw document into a new graph.

    Raises:
        SerializationError: If the text is not valid JSON
        MalformedImport: If the document matches neither format or its
            nodes and edges cannot be decoded

    Returns:
        ImportedWorkflow with a graph that has not been applied anywhere
    """
    data = _decode(document)
    nodes = data.get("nodes")
    edges = data.get("edges")

    try:
        if isinstance(nodes, list) and isinstance(edges, list):
            graph = _graph_from_raw(nodes, edges)
        elif isinstance(nodes, list):
            graph = _graph_from_labeled(nodes)
        else:
            raise MalformedImport("Invalid workflow format: expected 'nodes' with 'connections' or 'edges'")
    except PydanticValidationError as e:
        raise MalformedImport(f"Invalid workflow node: {e.errors()[0]['msg']}") from e
    except (TypeError, ValueError) as e:
        raise MalformedImport(str(e)) from e

    return ImportedWorkflow(graph=graph, name=data.get("workflowName"))


def apply_import(state: WorkflowState, document: Union[str, bytes, Dict[str, Any]]) -> ImportedWorkflow:
    """Import a document and replace the state's graph with it."""
    imported = import_workflow(document)
    state.replace_graph(imported.graph, imported.name)
    logger.info(f"Imported workflow with {len(imported.graph.nodes)} nodes")
    return imported


# ============================================================
# Save / Load
# ============================================================

def snapshot(graph: Graph, workflow_name: str = DEFAULT_WORKFLOW_NAME) -> Dict[str, Any]:
    """Raw document of a graph with every node reset to idle."""
    return {
        "workflowName": workflow_name,
        "nodes": [reset_node(n).to_dict() for n in graph.nodes.values()],
        "edges": [e.to_dict() for e in graph.edges],
        "savedAt": utcnow().isoformat(),
    }


async def save_workflow(state: WorkflowState, storage, key: str) -> Dict[str, Any]:
    """Persist the state's graph under a storage key."""
    document = snapshot(state.graph, state.workflow_name)
    await storage.save(key, document)
    logger.info(f"Workflow saved to '{key}'")
    return document


async def load_workflow(state: WorkflowState, storage, key: str) -> bool:
    """
    Replace the state's graph with the one saved under a storage key.

    Raises:
        SerializationError: If the stored document cannot be decoded

    Returns:
        True if a workflow was loaded, False if the slot is empty or has
        no nodes and edges
    """
    document = await storage.load(key)
    if document is None:
        return False
    if not isinstance(document, dict):
        raise SerializationError(f"Stored workflow '{key}' is not a JSON object")
    if "nodes" not in document or "edges" not in document:
        return False

    try:
        imported = import_workflow(document)
    except MalformedImport as e:
        raise SerializationError(f"Stored workflow '{key}' is invalid: {e}") from e

    state.replace_graph(imported.graph, imported.name)
    logger.info(f"Workflow loaded from '{key}'")
    return True
