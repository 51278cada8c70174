"""
Shared dependencies for the API routes.

The workflow state, storages and execution backend are provided through
FastAPI dependencies so tests can override them.
"""

from typing import AsyncIterator
import logging

from idflow.config import settings
from idflow.endpoints.port import ExecutionPort, HttpExecutionPort, SimulatedExecutionPort
from idflow.engine.state import WorkflowState
from idflow.storage.memory import FileStorage, RunStorage, WorkflowStorage, run_storage, workflow_storage


logger = logging.getLogger(__name__)

# Editor state shared by every request
workflow_state = WorkflowState(workflow_name=settings.WORKFLOW_NAME)

_file_storage = FileStorage(settings.STORAGE_DIR) if settings.STORAGE_BACKEND == "file" else None


def get_state() -> WorkflowState:
    return workflow_state


def get_storage() -> WorkflowStorage:
    return _file_storage or workflow_storage


def get_run_storage() -> RunStorage:
    return run_storage


def build_execution_port() -> ExecutionPort:
    """Create the execution backend selected in settings."""
    if settings.EXECUTION_BACKEND == "http":
        if not settings.API_BASE_URL:
            raise RuntimeError("API_BASE_URL must be set for the http execution backend")
        return HttpExecutionPort(settings.API_BASE_URL, timeout=settings.REQUEST_TIMEOUT)
    return SimulatedExecutionPort(
        latency_ms=(settings.SIMULATED_LATENCY_MIN_MS, settings.SIMULATED_LATENCY_MAX_MS),
    )


async def close_execution_port(port: ExecutionPort) -> None:
    if isinstance(port, HttpExecutionPort):
        await port.aclose()


async def get_execution_port() -> AsyncIterator[ExecutionPort]:
    port = build_execution_port()
    try:
        yield port
    finally:
        await close_execution_port(port)
