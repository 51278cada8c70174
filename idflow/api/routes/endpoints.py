"""
Endpoints API Routes.

Lists the services the simulated execution backend can answer for.
"""

from fastapi import APIRouter, HTTPException

from idflow.api.schemas import EndpointInfo, EndpointListResponse, ErrorResponse
from idflow.endpoints.registry import endpoint_registry


router = APIRouter(prefix="/endpoints", tags=["Endpoints"])


@router.get("/", response_model=EndpointListResponse)
async def list_endpoints() -> EndpointListResponse:
    """List all simulated endpoints."""
    endpoints = [EndpointInfo(**e) for e in endpoint_registry.list_endpoints()]
    return EndpointListResponse(endpoints=endpoints, total=len(endpoints))


@router.get(
    "/{path:path}",
    response_model=EndpointInfo,
    responses={404: {"model": ErrorResponse}},
)
async def get_endpoint(path: str) -> EndpointInfo:
    """Get a simulated endpoint by path (without the leading slash)."""
    handler = endpoint_registry.get(f"/{path}")
    if not handler:
        raise HTTPException(status_code=404, detail=f"Endpoint '/{path}' not found")
    return EndpointInfo(**handler.to_dict())
