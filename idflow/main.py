"""
idflow - FastAPI Application Entry Point.

Serves the workflow engine to the visual editor: graph editing, validation,
execution with live status, and save/load/export/import.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from idflow.config import settings
from idflow.api.dependencies import get_run_storage, get_state, get_storage
from idflow.api.routes import endpoints, runs, websocket, workflow
from idflow.engine.errors import SerializationError
from idflow.engine.serializer import load_workflow
from idflow.workflows.demo import install_demo_workflow


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    
    # Restore the saved workflow, or start from the demo
    state = get_state()
    try:
        loaded = await load_workflow(state, get_storage(), settings.STORAGE_KEY)
    except SerializationError as e:
        logger.error(f"Failed to load workflow: {e}")
        loaded = False
    if not loaded and not state.graph.nodes:
        install_demo_workflow(state)
    
    yield
    
    # Shutdown
    logger.info("Shutting down...")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="""
## Identity Verification Workflow API

Build and run graphs of identity-verification steps.

### Features
- **Nodes**: Start, Liveness Check, Card Capture, Scanner and End steps
- **Connections**: Wiring rules enforced as connections are made
- **Execution**: Steps run in dependency order, stopping at the first failure
- **Real-time Updates**: WebSocket streaming of node status
- **Persistence**: Save/load slots and JSON export/import

### Quick Start
1. Inspect the palette: `GET /workflow/templates`
2. Add nodes and connect them: `POST /workflow/nodes`, `POST /workflow/edges`
3. Run the workflow: `POST /workflow/run`
4. Inspect node statuses: `GET /workflow`
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(workflow.router)
app.include_router(runs.router)
app.include_router(endpoints.router)
app.include_router(websocket.router)


# ============================================================
# Root Endpoints
# ============================================================

@app.get("/", tags=["Root"])
async def root():
    """API root - returns basic info and links."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "Identity verification workflow engine",
        "docs": "/docs",
        "redoc": "/redoc",
        "endpoints": {
            "workflow": "/workflow",
            "runs": "/runs",
            "services": "/endpoints",
            "websocket_run": "/ws/run",
            "websocket_subscribe": "/ws/subscribe",
        },
    }


@app.get("/health", tags=["Root"])
async def health():
    """Health check endpoint."""
    state = get_state()
    
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "nodes_count": len(state.graph.nodes),
        "is_executing": state.is_executing,
        "runs_count": len(get_run_storage()),
    }


# ============================================================
# Error Handlers
# ============================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception(f"Unhandled error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
        },
    )
