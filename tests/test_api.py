"""
Tests for the FastAPI endpoints.
"""

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport

from idflow.api.dependencies import get_execution_port, get_run_storage, get_state, get_storage
from idflow.endpoints.port import SimulatedExecutionPort
from idflow.engine.node import WorkflowNode
from idflow.engine.state import WorkflowState
from idflow.main import app
from idflow.storage.memory import InMemoryStorage, RunStorage
from idflow.workflows.demo import install_demo_workflow


# ============================================================
# Sync Test Client (for simple tests)
# ============================================================

client = TestClient(app)


@pytest.fixture(autouse=True)
def state():
    """Fresh demo workflow, storages and an instant simulated backend per test."""
    state = install_demo_workflow(WorkflowState())
    storage = InMemoryStorage()
    runs = RunStorage()

    app.dependency_overrides[get_state] = lambda: state
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_run_storage] = lambda: runs
    app.dependency_overrides[get_execution_port] = lambda: SimulatedExecutionPort(latency_ms=(0, 0))
    yield state
    app.dependency_overrides.clear()


class TestRootEndpoints:
    """Tests for root endpoints."""

    def test_root(self):
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["name"] == "idflow"
        assert "version" in data
        assert "endpoints" in data

    def test_health(self):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestEndpointsRoutes:
    """Tests for the simulated service listing."""

    def test_list_endpoints(self):
        response = client.get("/endpoints/")
        assert response.status_code == 200

        data = response.json()
        paths = [e["path"] for e in data["endpoints"]]
        assert "/jdmscan/liveness" in paths
        assert "/ml/document" in paths
        assert "/jdmscan/scanner" in paths
        assert data["total"] == len(paths)

    def test_get_endpoint(self):
        response = client.get("/endpoints/ml/document")
        assert response.status_code == 200
        assert response.json()["path"] == "/ml/document"

    def test_get_nonexistent_endpoint(self):
        response = client.get("/endpoints/nope/nothing")
        assert response.status_code == 404


class TestEditing:
    """Tests for building the graph through the API."""

    def test_get_workflow(self):
        response = client.get("/workflow")
        assert response.status_code == 200

        data = response.json()
        assert data["workflowName"] == "Identity Verification Demo"
        assert [n["id"] for n in data["nodes"]] == ["start", "liveness", "card-capture", "scanner", "end"]
        assert len(data["edges"]) == 4
        assert data["isExecuting"] is False

    def test_templates(self):
        response = client.get("/workflow/templates")
        assert response.status_code == 200

        templates = {t["kind"]: t for t in response.json()["templates"]}
        assert templates["scanner"]["apiEndpoint"] == "/jdmscan/scanner"
        assert templates["start"]["apiEndpoint"] is None
        assert templates["cardCapture"]["defaultInputs"]["metadataIndex"] == 2702

    def test_add_node_from_template(self, state):
        response = client.post("/workflow/nodes", json={
            "kind": "liveness",
            "position": {"x": 251, "y": 118},
        })
        assert response.status_code == 201

        node = response.json()
        assert node["id"].startswith("liveness-")
        assert node["apiEndpoint"] == "/jdmscan/liveness"
        assert node["position"] == {"x": 260.0, "y": 120.0}
        assert node["status"] == "idle"
        assert node["id"] in state.graph.nodes

    def test_add_node_with_overrides(self, state):
        response = client.post("/workflow/nodes", json={
            "kind": "cardCapture",
            "id": "card-2",
            "label": "Back of card",
            "apiEndpoint": "/idmscan/card-capture",
        })
        assert response.status_code == 201
        node = state.graph.nodes["card-2"]
        assert node.label == "Back of card"
        assert node.api_endpoint == "/idmscan/card-capture"

    def test_add_duplicate_node(self):
        response = client.post("/workflow/nodes", json={"kind": "start", "id": "start"})
        assert response.status_code == 400
        assert "already exists" in response.json()["detail"]

    def test_add_custom_kind(self, state):
        response = client.post("/workflow/nodes", json={
            "kind": "faceMatch",
            "id": "face",
            "apiEndpoint": "/face",
        })
        assert response.status_code == 201
        assert state.graph.nodes["face"].kind == "faceMatch"

        response = client.post("/workflow/nodes", json={"kind": "faceMatch"})
        assert response.status_code == 400

    def test_update_node(self, state):
        response = client.patch("/workflow/nodes/liveness", json={
            "label": "Selfie",
            "inputs": {"token": "abc"},
        })
        assert response.status_code == 200
        assert response.json()["label"] == "Selfie"
        assert state.graph.nodes["liveness"].inputs == {"token": "abc"}
        assert state.graph.nodes["liveness"].kind == "liveness"

    def test_update_missing_node(self):
        response = client.patch("/workflow/nodes/ghost", json={"label": "x"})
        assert response.status_code == 404

    def test_update_cannot_clear_endpoint(self):
        response = client.patch("/workflow/nodes/scanner", json={"apiEndpoint": None})
        assert response.status_code == 400

    def test_delete_node(self, state):
        response = client.delete("/workflow/nodes/scanner")
        assert response.status_code == 204
        assert "scanner" not in state.graph.nodes
        assert all("scanner" not in (e.source, e.target) for e in state.graph.edges)

        response = client.delete("/workflow/nodes/scanner")
        assert response.status_code == 404

    def test_selection(self, state):
        response = client.put("/workflow/selection", json={"nodeId": "liveness"})
        assert response.status_code == 200
        assert response.json()["selectedNode"] == "liveness"

        response = client.put("/workflow/selection", json={"nodeId": "ghost"})
        assert response.status_code == 404

        client.delete("/workflow/nodes/liveness")
        assert state.selected_node is None

    def test_rejected_connection(self, state):
        response = client.post("/workflow/edges", json={"source": "liveness", "target": "scanner"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Scanner node must connect directly from Card Capture node"
        assert len(state.graph.edges) == 4

    def test_connect_and_delete_edge(self, state):
        state.graph.remove_edge("edge-liveness-card-capture")

        response = client.post("/workflow/edges", json={"source": "liveness", "target": "card-capture"})
        assert response.status_code == 201
        assert response.json() == {
            "id": "edge-liveness-card-capture",
            "source": "liveness",
            "target": "card-capture",
        }

        response = client.delete("/workflow/edges/edge-liveness-card-capture")
        assert response.status_code == 204
        response = client.delete("/workflow/edges/edge-liveness-card-capture")
        assert response.status_code == 404

    def test_delete_edge_with_colliding_default_id(self, state):
        for node_id in ["a-b", "c", "a", "b-c"]:
            state.add_node(WorkflowNode(id=node_id, kind="step"))

        first = client.post("/workflow/edges", json={"source": "a-b", "target": "c"}).json()
        second = client.post("/workflow/edges", json={"source": "a", "target": "b-c"}).json()
        assert first["id"] == "edge-a-b-c"
        assert second["id"] == "edge-a-b-c-2"

        assert client.delete("/workflow/edges/edge-a-b-c").status_code == 204
        assert [(e.source, e.target) for e in state.graph.edges[4:]] == [("a", "b-c")]


class TestInspection:
    """Tests for validation, ordering and diagrams."""

    def test_validate(self, state):
        assert client.get("/workflow/validate").json() == {"valid": True, "errors": []}

        state.remove_node("end")
        data = client.get("/workflow/validate").json()
        assert data["valid"] is False
        assert data["errors"] == ["Workflow must have an end node"]

    def test_order(self):
        data = client.get("/workflow/order").json()
        assert data == {
            "order": ["start", "liveness", "card-capture", "scanner", "end"],
            "complete": True,
        }

    def test_order_with_cycle(self, state):
        state.connect("card-capture", "liveness")
        data = client.get("/workflow/order").json()
        assert data["complete"] is False

    def test_diagram(self):
        data = client.get("/workflow/diagram").json()
        assert "graph TD" in data["mermaid_diagram"]


class TestExecution:
    """Tests for running the workflow."""

    def test_run(self, state):
        response = client.post("/workflow/run")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "completed"
        assert data["execution_order"] == ["start", "liveness", "card-capture", "scanner", "end"]
        assert [s["node"] for s in data["steps"]] == data["execution_order"]
        assert data["previous_result"]["documentNumber"] == "DL123456789"

        nodes = client.get("/workflow").json()["nodes"]
        assert {n["status"] for n in nodes} == {"success"}
        end = nodes[-1]
        assert end["lastResponse"]["message"] == "Workflow completed successfully"
        assert end["lastResponse"]["previousResult"] == data["previous_result"]

        run = client.get(f"/runs/{data['run_id']}")
        assert run.status_code == 200
        assert run.json()["status"] == "completed"
        assert client.get("/runs").json()["total"] == 1

    def test_run_with_failure(self, state):
        state.update_node("card-capture", {"apiEndpoint": "/missing"})

        data = client.post("/workflow/run").json()

        assert data["status"] == "failed"
        assert data["failed_node"] == "card-capture"
        assert data["errors"] == ["Unknown endpoint: /missing"]
        statuses = {nid: n.status.value for nid, n in state.graph.nodes.items()}
        assert statuses == {
            "start": "success",
            "liveness": "success",
            "card-capture": "failed",
            "scanner": "idle",
            "end": "idle",
        }

    def test_run_invalid_workflow(self, state):
        state.remove_node("start")

        response = client.post("/workflow/run")

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["errors"] == ["Workflow must have a start node"]
        assert client.get(f"/runs/{detail['run_id']}").json()["status"] == "invalid"
        assert all(n.status.value == "idle" for n in state.graph.nodes.values())

    def test_busy(self, state):
        state.is_executing = True

        assert client.post("/workflow/run").status_code == 409
        assert client.post("/workflow/nodes", json={"kind": "start"}).status_code == 409
        assert client.post("/workflow/reset").status_code == 409
        assert client.get("/runs").json()["total"] == 0

    def test_reset(self, state):
        client.post("/workflow/run")

        data = client.post("/workflow/reset").json()

        for node in data["nodes"]:
            assert node["status"] == "idle"
            assert node["lastResponse"] is None
            assert node["error"] is None
        assert len(data["edges"]) == 4

    def test_unknown_run(self):
        assert client.get("/runs/nope").status_code == 404

    def test_backend_error_marks_run_failed(self, state):
        class BrokenPort:
            async def execute(self, endpoint, payload, node_id):
                return {"endpoint": endpoint}

        app.dependency_overrides[get_execution_port] = lambda: BrokenPort()

        response = client.post("/workflow/run")

        assert response.status_code == 500
        runs = client.get("/runs").json()
        assert runs["total"] == 1
        assert runs["runs"][0]["status"] == "failed"
        assert len(runs["runs"][0]["errors"]) == 1
        assert runs["runs"][0]["completed_at"] is not None
        assert state.is_executing is False


class TestPersistence:
    """Tests for save/load and export/import."""

    def test_save_and_load(self, state):
        client.post("/workflow/run")
        saved = client.post("/workflow/save").json()
        assert saved["key"] == "idmscan-workflow"
        assert saved["node_count"] == 5

        client.delete("/workflow/nodes/scanner")
        assert len(state.graph.nodes) == 4

        loaded = client.post("/workflow/load").json()
        assert loaded["loaded"] is True
        assert loaded["node_count"] == 5

        nodes = client.get("/workflow").json()["nodes"]
        assert {n["status"] for n in nodes} == {"idle"}

    def test_load_empty_slot(self, state):
        data = client.post("/workflow/load").json()
        assert data["loaded"] is False
        assert len(state.graph.nodes) == 5

    def test_export_import(self, state):
        exported = client.get("/workflow/export").json()
        assert exported["workflowName"] == "Identity Verification Demo"
        assert exported["nodes"][2]["connections"] == ["scanner"]

        state.remove_node("scanner")

        response = client.post("/workflow/import", json=exported)
        assert response.status_code == 200
        assert len(response.json()["nodes"]) == 5
        assert client.get("/workflow/export").json() == exported

    def test_import_raw_document(self, state):
        response = client.post("/workflow/import", json={
            "nodes": [{"id": "s", "kind": "start"}, {"id": "e", "kind": "end"}],
            "edges": [{"source": "s", "target": "e"}],
        })
        assert response.status_code == 200
        assert list(state.graph.nodes) == ["s", "e"]

    def test_malformed_import(self, state):
        response = client.post("/workflow/import", json={"foo": "bar"})
        assert response.status_code == 400
        assert len(state.graph.nodes) == 5

    @pytest.mark.parametrize("nodes", [
        [{"id": "s", "type": "Start", "connections": [{"id": "e"}]}, {"id": "e", "type": "End"}],
        [{"id": "s", "type": ["Start"], "connections": []}],
    ])
    def test_import_with_wrongly_typed_fields(self, state, nodes):
        response = client.post("/workflow/import", json={"nodes": nodes})
        assert response.status_code == 400
        assert len(state.graph.nodes) == 5


class TestWebSocket:
    """Tests for streamed execution."""

    def test_run_stream(self):
        with client.websocket_connect("/ws/run") as ws:
            ws.send_json({"action": "start"})

            started = ws.receive_json()
            assert started["type"] == "started"

            messages = []
            while True:
                message = ws.receive_json()
                if message["type"] == "completed":
                    break
                messages.append(message)

        assert message["status"] == "completed"
        assert message["run_id"] == started["run_id"]
        assert [(m["node"], m["status"]) for m in messages] == [
            ("start", "success"),
            ("liveness", "running"),
            ("liveness", "success"),
            ("card-capture", "running"),
            ("card-capture", "success"),
            ("scanner", "running"),
            ("scanner", "success"),
            ("end", "success"),
        ]
        assert messages[-1]["data"]["lastResponse"]["message"] == "Workflow completed successfully"

    def test_bad_action(self):
        with client.websocket_connect("/ws/run") as ws:
            ws.send_json({"action": "stop"})
            assert ws.receive_json()["type"] == "error"

    def test_subscribe(self):
        with client.websocket_connect("/ws/subscribe") as ws:
            message = ws.receive_json()
        assert message["type"] == "current_state"
        assert len(message["nodes"]) == 5


# ============================================================
# Async Tests
# ============================================================

@pytest.mark.asyncio
async def test_async_run():
    """Run the workflow through the async client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post("/workflow/run")
        assert response.status_code == 200
        assert response.json()["status"] == "completed"

        response = await ac.get("/workflow")
        assert response.json()["executionOrder"][0] == "start"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
