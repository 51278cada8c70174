"""
Storage package - Workflow document slots and run history.
"""

from idflow.storage.memory import (
    FileStorage,
    InMemoryStorage,
    RunStorage,
    WorkflowStorage,
    run_storage,
    workflow_storage,
)

__all__ = [
    "FileStorage",
    "InMemoryStorage",
    "RunStorage",
    "WorkflowStorage",
    "run_storage",
    "workflow_storage",
]
