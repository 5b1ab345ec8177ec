"""
Tests for the SpecSync HTTP API.
"""

import pytest
from fastapi.testclient import TestClient

from specsync import __version__
from specsync.core.config import PipelineConfig
from specsync.core.pipeline import SpecSyncPipeline
from specsync.server import app as server_app
from specsync.store import InMemorySpecificationStore


MATH_SOURCE = """function add(a, b) {
  return a + b;
}
"""

MATH_DIFF = """diff --git a/src/math.js b/src/math.js
new file mode 100644
--- /dev/null
+++ b/src/math.js
@@ -0,0 +1,3 @@
+function add(a, b) {
+  return a + b;
+}
"""


@pytest.fixture
def client(monkeypatch):
    pipeline = SpecSyncPipeline(config=PipelineConfig(), backends=[], store=InMemorySpecificationStore())
    monkeypatch.setattr(server_app, "pipeline", pipeline)
    return TestClient(server_app.app)


def test_health(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": __version__, "backends": []}


def test_analyze_diff(client):
    response = client.post("/api/analyze", json={"diff": MATH_DIFF, "files": {"src/math.js": MATH_SOURCE}})
    data = response.json()

    assert response.status_code == 200
    assert data["success"]
    assert data["summary"] == {"total": 1, "drifted": 0, "failed": 0}

    function = data["functions"][0]
    assert function["function_key"] == "src/math.js:add"
    assert function["change_type"] == "added"
    assert function["specification"]["provenance"] == "synthesized"
    assert function["drift"]["reasons"] == ["no baseline"]
    assert "theorem add_spec" in function["lean"]


def test_analyze_records_persist_between_requests(client):
    payload = {"diff": MATH_DIFF, "files": {"src/math.js": MATH_SOURCE}, "changed_files": ["src/math.js"]}
    client.post("/api/analyze", json=payload)
    second = client.post("/api/analyze", json=payload).json()

    assert second["functions"][0]["drift"]["reasons"] == []

    stats = client.get("/api/cache/stats").json()
    assert stats["total_entries"] == 1
    assert stats["cache_hits"] == 1
    assert stats["cache_misses"] == 1
    assert stats["stored_records"] == 1


def test_analyze_without_functions(client):
    data = client.post("/api/analyze", json={"diff": ""}).json()

    assert not data["success"]
    assert data["error"] == "No changed functions found in diff"


def test_lean_endpoint(client):
    response = client.post("/api/lean", json={
        "record": {
            "function_key": "src/math.js:add",
            "preconditions": ["a > 0"],
            "postconditions": ["result = a + b"],
            "invariants": [],
            "edge_cases": ["a = 0"],
            "complexity_estimate": {"time": "O(1)", "space": "O(1)"},
            "confidence": 90,
            "rationale": "Sum of two numbers",
            "provenance": "backend"
        },
        "function_name": "add",
        "parameters": [{"name": "a", "type": "number"}, {"name": "b", "type": "number"}],
        "return_type": "number"
    })
    data = response.json()

    assert response.status_code == 200
    assert data["success"]
    assert data["helper_lemmas"] == 1
    assert data["performance_lemmas"] == 2
    assert "theorem add_spec (a : ℕ) (b : ℕ) :" in data["lean"]


def test_lean_endpoint_rejects_record_without_confidence(client):
    response = client.post("/api/lean", json={
        "record": {"function_key": "k", "rationale": "r", "provenance": "backend"},
        "function_name": "f"
    })
    assert response.status_code == 422


def test_websocket_streams_results(client):
    with client.websocket_connect("/ws/analyze") as websocket:
        websocket.send_json({"diff": MATH_DIFF, "files": {"src/math.js": MATH_SOURCE}})

        result = websocket.receive_json()
        assert result["type"] == "result"
        assert result["function"]["function_key"] == "src/math.js:add"

        done = websocket.receive_json()
        assert done == {"type": "done", "total": 1}


def test_websocket_rejects_bad_request(client):
    with client.websocket_connect("/ws/analyze") as websocket:
        websocket.send_text("not json")
        message = websocket.receive_json()

    assert message["type"] == "error"
