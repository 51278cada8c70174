"""
Endpoints package - Execution backends and simulated services.
"""

from idflow.endpoints.registry import EndpointRegistry, endpoint_registry, register_endpoint
from idflow.endpoints.port import (
    ExecutionPort,
    ExecutionResponse,
    HttpExecutionPort,
    SimulatedExecutionPort,
)

__all__ = [
    "EndpointRegistry",
    "endpoint_registry",
    "register_endpoint",
    "ExecutionPort",
    "ExecutionResponse",
    "HttpExecutionPort",
    "SimulatedExecutionPort",
]
