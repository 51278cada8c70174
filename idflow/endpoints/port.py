"""
Execution backends for workflow nodes.

The executor talks to an ExecutionPort: it sends an endpoint, the request
payload and the node id, and gets back an ExecutionResponse or a
StepExecutionError. Two backends are provided: a simulated one driven by the
endpoint registry and an HTTP one for real services.
"""

from typing import Any, Dict, Optional, Protocol, Tuple
import asyncio
import logging
import random
import time

import httpx
from pydantic import BaseModel, Field

from idflow.endpoints.registry import EndpointRegistry, endpoint_registry
from idflow.engine.errors import StepExecutionError
from idflow.engine.node import utcnow

# Register the built-in simulated services
import idflow.endpoints.builtin  # noqa: F401


logger = logging.getLogger(__name__)


class ExecutionResponse(BaseModel):
    """Response returned by an execution backend."""
    success: bool = True
    data: Any = None
    timestamp: str = Field(default_factory=lambda: utcnow().isoformat())
    processing_time_ms: int = Field(0, alias="processingTimeMs")
    node_id: Optional[str] = Field(None, alias="nodeId")
    endpoint: Optional[str] = None

    class Config:
        populate_by_name = True

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ExecutionPort(Protocol):
    """Anything that can execute a node against an endpoint."""

    async def execute(self, endpoint: str, payload: Dict[str, Any], node_id: str) -> ExecutionResponse:
        ...


class SimulatedExecutionPort:
    """
    Execution backend that answers from the endpoint registry.

    A random delay within the latency range stands in for network time.
    """

    def __init__(
        self,
        registry: Optional[EndpointRegistry] = None,
        latency_ms: Tuple[int, int] = (1500, 2500),
    ):
        self.registry = registry or endpoint_registry
        self.latency_ms = latency_ms

    async def execute(self, endpoint: str, payload: Dict[str, Any], node_id: str) -> ExecutionResponse:
        low, high = self.latency_ms
        delay_ms = random.randint(low, high) if high > 0 else 0
        if delay_ms:
            await asyncio.sleep(delay_ms / 1000)

        handler = self.registry.get(endpoint)
        if handler is None:
            raise StepExecutionError(f"Unknown endpoint: {endpoint}", node_id=node_id, endpoint=endpoint)

        try:
            data = handler(payload)
        except Exception as e:
            raise StepExecutionError(str(e), node_id=node_id, endpoint=endpoint) from e

        return ExecutionResponse(
            success=True,
            data=data,
            processing_time_ms=delay_ms,
            node_id=node_id,
            endpoint=endpoint,
        )


class HttpExecutionPort:
    """
    Execution backend that POSTs the payload to a remote service.

    Usage:
        async with HttpExecutionPort("https://api.example.com") as port:
            response = await port.execute("/jdmscan/liveness", payload, "liveness-1")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    async def execute(self, endpoint: str, payload: Dict[str, Any], node_id: str) -> ExecutionResponse:
        start = time.perf_counter()
        try:
            response = await self._client.post(endpoint, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise StepExecutionError(
                f"Request failed with status code {e.response.status_code}",
                node_id=node_id,
                endpoint=endpoint,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise StepExecutionError(str(e) or type(e).__name__, node_id=node_id, endpoint=endpoint) from e

        elapsed_ms = round((time.perf_counter() - start) * 1000)
        logger.debug(f"POST {endpoint} for {node_id} took {elapsed_ms}ms")

        if isinstance(body, dict) and "data" in body:
            success = bool(body.get("success", True))
            data = body["data"]
        else:
            success, data = True, body

        if not success:
            raise StepExecutionError(
                f"Service reported failure for {endpoint}",
                node_id=node_id,
                endpoint=endpoint,
            )

        return ExecutionResponse(
            success=success,
            data=data,
            processing_time_ms=elapsed_ms,
            node_id=node_id,
            endpoint=endpoint,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpExecutionPort":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
