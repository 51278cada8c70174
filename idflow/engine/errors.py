"""
Error types raised by the workflow engine.
"""

from typing import List, Optional


class WorkflowError(Exception):
    """Base class for all workflow engine errors."""


class ValidationError(WorkflowError):
    """The workflow graph violates one or more structural rules."""
    
    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Workflow validation failed")


class ConnectionRejected(WorkflowError):
    """A proposed edge violates the wiring rules and was not added."""
    
    def __init__(self, source: str, target: str, reason: str):
        self.source = source
        self.target = target
        self.reason = reason
        super().__init__(reason)


class StepExecutionError(WorkflowError):
    """The execution backend failed to run a node."""
    
    def __init__(self, message: str, node_id: Optional[str] = None, endpoint: Optional[str] = None):
        self.node_id = node_id
        self.endpoint = endpoint
        super().__init__(message)


class MalformedImport(WorkflowError):
    """An import document matches none of the recognized workflow formats."""


class SerializationError(WorkflowError):
    """Persisted or imported workflow JSON could not be decoded."""


class WorkflowBusy(WorkflowError):
    """A run was requested while another run is still executing."""
