"""
Demo Identity Verification Workflow.

Start -> Liveness Check -> Card Capture -> Scanner -> End

The card capture result is handed to the scanner, which checks the MRZ
against the extracted document number.
"""

from typing import Optional
import logging

from idflow.engine.graph import Graph
from idflow.engine.node import NodeKind, Position, create_node
from idflow.engine.state import WorkflowState


logger = logging.getLogger(__name__)

DEMO_WORKFLOW_NAME = "Identity Verification Demo"


def create_demo_workflow() -> Graph:
    """
    Create the demo verification graph.

    Returns:
        Configured Graph ready for execution
    """
    graph = Graph()
    steps = [
        ("start", NodeKind.START),
        ("liveness", NodeKind.LIVENESS),
        ("card-capture", NodeKind.CARD_CAPTURE),
        ("scanner", NodeKind.SCANNER),
        ("end", NodeKind.END),
    ]

    for index, (node_id, kind) in enumerate(steps):
        graph.add_node(create_node(kind, Position(x=100, y=100 + index * 140), node_id=node_id))

    for (source, _), (target, _) in zip(steps, steps[1:]):
        graph.add_edge(source, target)

    return graph


def install_demo_workflow(state: WorkflowState, name: Optional[str] = None) -> WorkflowState:
    """Replace the state's graph with the demo workflow."""
    state.replace_graph(create_demo_workflow(), name or DEMO_WORKFLOW_NAME)
    logger.info(f"Installed demo workflow: {state.workflow_name}")
    return state


async def run_demo() -> None:
    """Run the demo workflow against the simulated services and print the result."""
    from idflow.endpoints.port import SimulatedExecutionPort
    from idflow.engine.executor import execute_workflow

    state = install_demo_workflow(WorkflowState())

    print("Starting identity verification...")
    result = await execute_workflow(state, SimulatedExecutionPort(latency_ms=(200, 500)))

    print(f"\nExecution Status: {result.status.value}")
    print(f"Total Duration: {result.total_duration_ms:.2f}ms")
    print(f"Order: {' -> '.join(result.execution_order)}")
    for node in state.graph.nodes.values():
        print(f"  - {node.label}: {node.status.value}")


if __name__ == "__main__":
    import asyncio
    asyncio.run(run_demo())
