"""
Async Workflow Executor.

The executor validates the workflow, orders it, and runs the nodes one at a
time against an execution backend, writing each node's status back into the
shared workflow state. The first failing node stops the run.
"""

from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import inspect
import logging
import time
import uuid

from idflow.engine.errors import ValidationError, WorkflowBusy
from idflow.engine.graph import Graph
from idflow.engine.node import NodeKind, NodeStatus, WorkflowNode, utcnow
from idflow.engine.scheduler import execution_order
from idflow.engine.state import WorkflowState
from idflow.engine.validator import check_scanner_wiring, validate

if TYPE_CHECKING:
    from idflow.endpoints.port import ExecutionPort


logger = logging.getLogger(__name__)

COMPLETION_MESSAGE = "Workflow completed successfully"


class ExecutionStatus(str, Enum):
    """Status of a workflow run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    INVALID = "invalid"


@dataclass
class ExecutionStep:
    """A single node transition in the execution log."""
    step: int
    node: str
    kind: str
    status: NodeStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "node": self.node,
            "kind": self.kind,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


@dataclass
class ExecutionResult:
    """Result of a workflow run."""
    run_id: str
    status: ExecutionStatus
    errors: List[str] = field(default_factory=list)
    execution_order: List[str] = field(default_factory=list)
    steps: List[ExecutionStep] = field(default_factory=list)
    previous_result: Any = None
    failed_node: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_duration_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "errors": self.errors,
            "execution_order": self.execution_order,
            "steps": [step.to_dict() for step in self.steps],
            "previous_result": self.previous_result,
            "failed_node": self.failed_node,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_duration_ms": self.total_duration_ms,
        }


StepCallback = Callable[[ExecutionStep, WorkflowNode], Any]


class Executor:
    """
    Sequential workflow executor.

    Runs one node at a time in topological order, threading the data of the
    last successful step into the next one. Start and end nodes complete
    without a backend call.

    Usage:
        executor = Executor(state, SimulatedExecutionPort())
        result = await executor.run()
    """

    def __init__(
        self,
        state: WorkflowState,
        port: "ExecutionPort",
        run_id: Optional[str] = None,
        on_step: Optional[StepCallback] = None,
    ):
        """
        Initialize the executor.

        Args:
            state: Workflow state to run and write statuses into
            port: Execution backend
            run_id: Optional run ID (generated if not provided)
            on_step: Optional callback for each node transition (sync or async)
        """
        self.state = state
        self.port = port
        self.run_id = run_id or str(uuid.uuid4())
        self.on_step = on_step

        self._steps: List[ExecutionStep] = []
        self._status = ExecutionStatus.PENDING

    async def run(self) -> ExecutionResult:
        """
        Execute the workflow.

        Validation problems and node failures are reported in the result,
        not raised.

        Raises:
            WorkflowBusy: If the state is already executing another run

        Returns:
            ExecutionResult with the order, step log and final status
        """
        if self.state.is_executing:
            raise WorkflowBusy("A workflow run is already in progress")

        start_time = time.time()
        started_at = utcnow()
        graph = self.state.graph

        try:
            order = self._preflight(graph)
        except ValidationError as e:
            logger.warning(f"Workflow validation failed: {e.errors}")
            return self._invalid_result(e.errors, started_at, start_time)

        self.state.is_executing = True
        self.state.execution_order = order
        self._status = ExecutionStatus.RUNNING
        logger.info(f"Run {self.run_id} started, order: {order}")

        previous_result: Any = None
        failed_node: Optional[str] = None
        errors: List[str] = []

        try:
            for node_id in order:
                node = self.state.graph.get_node(node_id)
                if node is None:
                    continue

                if node.kind == NodeKind.START:
                    await self._finish_terminal(node)
                    continue

                if node.kind == NodeKind.END:
                    await self._finish_terminal(node, {
                        "message": COMPLETION_MESSAGE,
                        "previousResult": previous_result,
                    })
                    continue

                ok, data = await self._execute_node(node, previous_result)
                if not ok:
                    failed_node = node_id
                    errors.append(data)
                    break
                previous_result = data
        finally:
            self.state.is_executing = False

        self._status = ExecutionStatus.FAILED if failed_node else ExecutionStatus.COMPLETED
        logger.info(f"Run {self.run_id} {self._status.value}")

        return ExecutionResult(
            run_id=self.run_id,
            status=self._status,
            errors=errors,
            execution_order=order,
            steps=self._steps,
            previous_result=previous_result,
            failed_node=failed_node,
            started_at=started_at,
            completed_at=utcnow(),
            total_duration_ms=(time.time() - start_time) * 1000,
        )

    def _preflight(self, graph: Graph) -> List[str]:
        """
        Check the graph and compute its execution order.

        Raises:
            ValidationError: If a structural rule is broken or the graph has a cycle
        """
        validation = validate(graph)
        if not validation.valid:
            raise ValidationError(validation.errors)

        wiring_errors = check_scanner_wiring(graph)
        if wiring_errors:
            raise ValidationError(wiring_errors)

        order = execution_order(graph.nodes.values(), graph.edges)
        if len(order) < len(graph.nodes):
            unscheduled = [nid for nid in graph.nodes if nid not in order]
            raise ValidationError([f"Workflow contains a cycle: {unscheduled}"])
        return order

    async def _finish_terminal(self, node: WorkflowNode, response: Any = None) -> None:
        """Mark a start or end node successful without calling the backend."""
        started = utcnow()
        changes = {"last_response": response} if response is not None else {}
        updated = self.state.mark_node(node.id, NodeStatus.SUCCESS, **changes)
        step = self._new_step(updated, NodeStatus.SUCCESS, started)
        step.completed_at = updated.updated_at
        await self._notify(step, updated)

    async def _execute_node(self, node: WorkflowNode, previous_result: Any):
        """
        Run a single node against the backend.

        Returns:
            (True, response data) on success, (False, error message) on failure
        """
        started = utcnow()
        running = self.state.mark_node(
            node.id,
            NodeStatus.RUNNING,
            last_response=None,
            error=None,
        )
        await self._notify(self._new_step(running, NodeStatus.RUNNING, started, log=False), running)

        payload = dict(node.inputs)
        if previous_result is not None:
            payload["previousStepResult"] = previous_result

        logger.info(f"Executing node: {node.id} -> {node.api_endpoint}")
        node_start = time.perf_counter()

        try:
            if not node.api_endpoint:
                raise ValueError(f"Node '{node.id}' has no API endpoint")
            response = await self.port.execute(node.api_endpoint, payload, node.id)
        except Exception as e:
            message = str(e) or "Unknown error"
            logger.error(f"Node {node.id} failed: {message}")
            failed = self.state.mark_node(node.id, NodeStatus.FAILED, error=message)
            step = self._new_step(failed, NodeStatus.FAILED, started)
            step.completed_at = failed.updated_at
            step.duration_ms = round((time.perf_counter() - node_start) * 1000)
            step.error = message
            await self._notify(step, failed)
            return False, message

        elapsed_ms = round((time.perf_counter() - node_start) * 1000)
        succeeded = self.state.mark_node(
            node.id,
            NodeStatus.SUCCESS,
            last_response=response.to_dict(),
            execution_time_ms=elapsed_ms,
        )
        step = self._new_step(succeeded, NodeStatus.SUCCESS, started)
        step.completed_at = succeeded.updated_at
        step.duration_ms = elapsed_ms
        await self._notify(step, succeeded)
        return True, response.data

    def _new_step(
        self,
        node: WorkflowNode,
        status: NodeStatus,
        started: datetime,
        log: bool = True,
    ) -> ExecutionStep:
        step = ExecutionStep(
            step=len(self._steps) + 1,
            node=node.id,
            kind=node.kind.value if isinstance(node.kind, NodeKind) else node.kind,
            status=status,
            started_at=started,
        )
        if log:
            self._steps.append(step)
        return step

    async def _notify(self, step: ExecutionStep, node: WorkflowNode) -> None:
        if not self.on_step:
            return
        try:
            result = self.on_step(step, node)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Step callback failed: {e}")

    def _invalid_result(
        self,
        errors: List[str],
        started_at: datetime,
        start_time: float,
    ) -> ExecutionResult:
        self._status = ExecutionStatus.INVALID
        return ExecutionResult(
            run_id=self.run_id,
            status=ExecutionStatus.INVALID,
            errors=list(errors),
            started_at=started_at,
            completed_at=utcnow(),
            total_duration_ms=(time.time() - start_time) * 1000,
        )


async def execute_workflow(
    state: WorkflowState,
    port: "ExecutionPort",
    run_id: Optional[str] = None,
    on_step: Optional[StepCallback] = None,
) -> ExecutionResult:
    """
    Convenience function to run a workflow.

    Args:
        state: Workflow state
        port: Execution backend
        run_id: Optional run ID
        on_step: Optional step callback

    Returns:
        ExecutionResult
    """
    executor = Executor(state, port, run_id, on_step)
    return await executor.run()
