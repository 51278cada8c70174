"""
WebSocket Routes for Real-time Execution Streaming.

Provides live node status updates during workflow execution.
"""

from typing import Any, Dict, Set
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
import logging

from idflow.api.dependencies import get_execution_port, get_run_storage, get_state
from idflow.endpoints.port import ExecutionPort
from idflow.engine.errors import WorkflowBusy
from idflow.engine.executor import ExecutionStep, Executor
from idflow.engine.node import WorkflowNode
from idflow.engine.state import WorkflowState
from idflow.storage.memory import RunStorage


logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])

CHANNEL = "workflow"


class ConnectionManager:
    """Manages WebSocket connections."""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, channel: str):
        """Accept a new WebSocket connection."""
        await websocket.accept()
        self.active_connections.setdefault(channel, set()).add(websocket)
        logger.info(f"WebSocket connected to channel: {channel}")

    def disconnect(self, websocket: WebSocket, channel: str):
        """Remove a WebSocket connection."""
        if channel in self.active_connections:
            self.active_connections[channel].discard(websocket)
            if not self.active_connections[channel]:
                del self.active_connections[channel]
        logger.info(f"WebSocket disconnected from channel: {channel}")

    async def broadcast(self, channel: str, message: Dict[str, Any]):
        """Broadcast a message to all connections on a channel."""
        if channel in self.active_connections:
            disconnected = set()
            for websocket in list(self.active_connections[channel]):
                try:
                    await websocket.send_json(message)
                except Exception:
                    disconnected.add(websocket)

            # Clean up disconnected clients
            for ws in disconnected:
                self.active_connections[channel].discard(ws)


# Global connection manager
manager = ConnectionManager()


@router.websocket("/ws/run")
async def websocket_run(
    websocket: WebSocket,
    state: WorkflowState = Depends(get_state),
    port: ExecutionPort = Depends(get_execution_port),
    runs: RunStorage = Depends(get_run_storage),
):
    """
    WebSocket endpoint for real-time workflow execution.

    Connect and send a start message; every node status change is pushed
    to this connection and to all subscribers.

    Message format (client -> server):
    ```json
    {"action": "start"}
    ```

    Message format (server -> client):
    ```json
    {
        "type": "step",
        "step": 2,
        "node": "liveness",
        "status": "success",
        "duration_ms": 1834,
        "data": {...}
    }
    ```
    """
    await manager.connect(websocket, CHANNEL)

    try:
        data = await websocket.receive_json()

        if data.get("action") != "start":
            await websocket.send_json({
                "type": "error",
                "error": "Expected 'start' action"
            })
            return

        async def on_step(step: ExecutionStep, node: WorkflowNode):
            await manager.broadcast(CHANNEL, {
                "type": "step",
                "run_id": executor.run_id,
                **step.to_dict(),
                "data": node.to_dict(),
            })

        executor = Executor(state, port, on_step=on_step)
        await runs.create(executor.run_id)

        await websocket.send_json({
            "type": "started",
            "run_id": executor.run_id,
        })

        try:
            result = await executor.run()
        except WorkflowBusy as e:
            await runs.delete(executor.run_id)
            await websocket.send_json({"type": "error", "error": str(e)})
            return
        except Exception as e:
            await runs.fail(executor.run_id, str(e))
            raise

        await runs.finish(result)

        await manager.broadcast(CHANNEL, {
            "type": "completed",
            **result.to_dict(),
        })

    except WebSocketDisconnect:
        logger.info("Client disconnected from workflow run")
    except Exception as e:
        logger.exception(f"WebSocket error: {e}")
        try:
            await websocket.send_json({
                "type": "error",
                "error": str(e),
            })
        except Exception:
            logger.debug("Could not report error to a closed WebSocket")
    finally:
        manager.disconnect(websocket, CHANNEL)


@router.websocket("/ws/subscribe")
async def websocket_subscribe(
    websocket: WebSocket,
    state: WorkflowState = Depends(get_state),
):
    """
    Subscribe to node status updates of runs started by anyone.

    The current workflow state is sent on connect.
    """
    await manager.connect(websocket, CHANNEL)

    try:
        await websocket.send_json({
            "type": "current_state",
            **state.to_dict(),
        })

        # Keep the connection open until the client leaves
        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        logger.info("Subscriber disconnected")
    finally:
        manager.disconnect(websocket, CHANNEL)
