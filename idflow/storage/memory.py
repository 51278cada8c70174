"""
Storage for workflow documents and execution runs.

Workflow documents are kept as JSON text in named slots, the way a browser
keeps them in local storage. Runs are kept in memory for the run endpoints.
"""

from typing import Any, Dict, List, Optional, Protocol
from datetime import datetime
from pathlib import Path
import asyncio
import json
import logging
import re
from dataclasses import dataclass, field

from idflow.engine.errors import SerializationError
from idflow.engine.node import utcnow


logger = logging.getLogger(__name__)


class WorkflowStorage(Protocol):
    """Key/JSON blob persistence."""

    async def save(self, key: str, blob: Dict[str, Any]) -> None:
        ...

    async def load(self, key: str) -> Optional[Any]:
        ...


def _decode(key: str, text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise SerializationError(f"Stored workflow '{key}' is not valid JSON: {e}") from e


class InMemoryStorage:
    """
    In-memory key/blob storage, safe for concurrent tasks on one event loop.

    Blobs are stored as JSON text, so a load always returns a fresh copy.
    """

    def __init__(self):
        self._slots: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def save(self, key: str, blob: Dict[str, Any]) -> None:
        """Store a JSON blob under a key."""
        async with self._lock:
            self._slots[key] = json.dumps(blob)

    async def load(self, key: str) -> Optional[Any]:
        """Load the blob stored under a key, or None."""
        async with self._lock:
            text = self._slots.get(key)
        if text is None:
            return None
        return _decode(key, text)

    async def delete(self, key: str) -> bool:
        """Delete a slot."""
        async with self._lock:
            return self._slots.pop(key, None) is not None

    async def keys(self) -> List[str]:
        async with self._lock:
            return list(self._slots.keys())

    def __len__(self) -> int:
        return len(self._slots)


class FileStorage:
    """
    Key/blob storage backed by one JSON file per key.

    Usage:
        storage = FileStorage(".idflow")
        await storage.save("idmscan-workflow", document)
    """

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self._lock = asyncio.Lock()

    def _path(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return self.directory / f"{safe}.json"

    def _write(self, path: Path, text: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(text, encoding="utf-8")
        tmp.replace(path)

    def _read(self, path: Path) -> Optional[str]:
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _unlink(self, path: Path) -> bool:
        if path.exists():
            path.unlink()
            return True
        return False

    async def save(self, key: str, blob: Dict[str, Any]) -> None:
        """Write a JSON blob to the key's file."""
        path = self._path(key)
        text = json.dumps(blob, indent=2)
        async with self._lock:
            await asyncio.to_thread(self._write, path, text)
        logger.debug(f"Wrote {path}")

    async def load(self, key: str) -> Optional[Any]:
        """Read the key's file, or None if it does not exist."""
        async with self._lock:
            text = await asyncio.to_thread(self._read, self._path(key))
        if text is None:
            return None
        return _decode(key, text)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return await asyncio.to_thread(self._unlink, self._path(key))


@dataclass
class StoredRun:
    """A stored execution run."""
    run_id: str
    status: str
    execution_order: List[str] = field(default_factory=list)
    steps: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    failed_node: Optional[str] = None
    previous_result: Any = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    total_duration_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "execution_order": self.execution_order,
            "steps": self.steps,
            "errors": self.errors,
            "failed_node": self.failed_node,
            "previous_result": self.previous_result,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_duration_ms": self.total_duration_ms,
        }


class RunStorage:
    """
    In-memory storage for execution runs, safe for concurrent tasks on one event loop.

    Runs are created when a run is requested and finished with the
    executor's result.
    """

    def __init__(self):
        self._runs: Dict[str, StoredRun] = {}
        self._lock = asyncio.Lock()

    async def create(self, run_id: str) -> StoredRun:
        """Create a pending run."""
        async with self._lock:
            stored = StoredRun(run_id=run_id, status="pending")
            self._runs[run_id] = stored
            return stored

    async def get(self, run_id: str) -> Optional[StoredRun]:
        """Get a run by ID."""
        async with self._lock:
            return self._runs.get(run_id)

    async def finish(self, result) -> StoredRun:
        """
        Record the result of a run.

        Args:
            result: ExecutionResult returned by the executor
        """
        async with self._lock:
            stored = self._runs.get(result.run_id) or StoredRun(run_id=result.run_id, status="pending")
            stored.status = result.status.value
            stored.execution_order = list(result.execution_order)
            stored.steps = [s.to_dict() for s in result.steps]
            stored.errors = list(result.errors)
            stored.failed_node = result.failed_node
            stored.previous_result = result.previous_result
            if result.started_at:
                stored.started_at = result.started_at
            stored.completed_at = result.completed_at or utcnow()
            stored.total_duration_ms = result.total_duration_ms
            self._runs[result.run_id] = stored
            return stored

    async def fail(self, run_id: str, error: str) -> Optional[StoredRun]:
        """Mark a run as failed outside the executor."""
        async with self._lock:
            if run_id not in self._runs:
                return None
            stored = self._runs[run_id]
            stored.status = "failed"
            stored.errors.append(error)
            stored.completed_at = utcnow()
            return stored

    async def list_all(self) -> List[StoredRun]:
        """List all runs."""
        async with self._lock:
            return list(self._runs.values())

    async def delete(self, run_id: str) -> bool:
        """Delete a run."""
        async with self._lock:
            if run_id in self._runs:
                del self._runs[run_id]
                return True
            return False

    def __len__(self) -> int:
        return len(self._runs)


# Global storage instances
workflow_storage = InMemoryStorage()
run_storage = RunStorage()
