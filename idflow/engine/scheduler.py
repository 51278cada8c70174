"""
Execution ordering for workflow graphs.
"""

from collections import deque
from typing import Dict, Iterable, List

from idflow.engine.graph import Edge
from idflow.engine.node import WorkflowNode


def execution_order(nodes: Iterable[WorkflowNode], edges: Iterable[Edge]) -> List[str]:
    """
    Compute a linear execution order with Kahn's algorithm.

    Ready nodes are taken first-in first-out: zero in-degree nodes in their
    stored order, then successors in the order they become ready. Nodes on a
    cycle never reach zero in-degree, so a result shorter than the node
    collection means the graph is not acyclic.

    Args:
        nodes: Nodes in stored order
        edges: Directed edges; edges to unknown nodes are ignored

    Returns:
        List of node ids
    """
    node_ids = [n.id for n in nodes]
    adjacency: Dict[str, List[str]] = {nid: [] for nid in node_ids}
    in_degree: Dict[str, int] = {nid: 0 for nid in node_ids}

    for edge in edges:
        if edge.source not in adjacency or edge.target not in in_degree:
            continue
        adjacency[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    queue = deque(nid for nid in node_ids if in_degree[nid] == 0)
    order: List[str] = []

    while queue:
        current = queue.popleft()
        order.append(current)
        for neighbor in adjacency[current]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    return order
