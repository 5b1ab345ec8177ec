#!/usr/bin/env python3
"""
SpecSync FastAPI Server
Provides a REST API for diff analysis and Lean 4 skeleton generation
"""
import json
import logging
from typing import Dict, List, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from specsync import __version__
from specsync.api_models import SpecificationRecord
from specsync.core.config import PipelineConfig
from specsync.core.models import Parameter
from specsync.core.pipeline import SpecSyncPipeline
from specsync.sources import InMemorySourceAccessor
from specsync.store import InMemorySpecificationStore

logger = logging.getLogger(__name__)


# ============================================================================
# Request/Response Models
# ============================================================================

class AnalyzeRequest(BaseModel):
    diff: str
    files: Dict[str, str] = Field(default_factory=dict)
    changed_files: Optional[List[str]] = None


class AnalyzeResponse(BaseModel):
    success: bool
    functions: List[dict] = Field(default_factory=list)
    summary: Optional[dict] = None
    error: Optional[str] = None


class ParameterModel(BaseModel):
    name: str
    type: str = "any"
    required: bool = True


class LeanRequest(BaseModel):
    record: SpecificationRecord
    function_name: str
    parameters: List[ParameterModel] = Field(default_factory=list)
    return_type: str = "any"


class LeanResponse(BaseModel):
    success: bool
    lean: Optional[str] = None
    helper_lemmas: int = 0
    performance_lemmas: int = 0
    security_lemmas: int = 0
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    version: str
    backends: List[str]


class CacheStatsResponse(BaseModel):
    total_entries: int
    cache_hits: int
    cache_misses: int
    stored_records: int


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="SpecSync API",
    description="Change-to-specification analysis with Lean 4 proof obligations",
    version=__version__
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Shared pipeline; records persist across requests so drift can be detected
pipeline: Optional[SpecSyncPipeline] = None


def get_pipeline() -> SpecSyncPipeline:
    """Get or create the pipeline instance"""
    global pipeline
    if pipeline is None:
        pipeline = SpecSyncPipeline(config=PipelineConfig.from_env(), store=InMemorySpecificationStore())
    return pipeline


def _changed_files(current: SpecSyncPipeline, request: AnalyzeRequest):
    if request.changed_files is not None:
        return request.changed_files
    return current.segmenter.changed_files_from_diff(request.diff)


# ============================================================================
# Endpoints
# ============================================================================

@app.get("/", response_model=HealthResponse)
async def health():
    """Health check endpoint"""
    current = get_pipeline()
    return {
        "status": "ok",
        "version": __version__,
        "backends": [b.name for b in current.synthesizer.backends]
    }


@app.post("/api/analyze", response_model=AnalyzeResponse)
async def analyze(request: AnalyzeRequest):
    """
    Analyze a unified diff.

    Example:
        POST /api/analyze
        {
            "diff": "diff --git a/src/math.js b/src/math.js\\n...",
            "files": {"src/math.js": "function add(a, b) { return a + b; }"}
        }
    """
    current = get_pipeline()
    result = await current.process_diff(
        request.diff,
        _changed_files(current, request),
        sources=InMemorySourceAccessor(request.files)
    )
    if not result.results:
        return {"success": False, "error": "No changed functions found in diff", "summary": result.to_dict()["summary"]}

    data = result.to_dict()
    return {
        "success": True,
        "functions": data["functions"],
        "summary": data["summary"]
    }


@app.post("/api/lean", response_model=LeanResponse)
async def generate_lean(request: LeanRequest):
    """
    Render a specification record as a Lean 4 file.

    Example:
        POST /api/lean
        {
            "record": {"function_key": "math.js:add", "confidence": 85, ...},
            "function_name": "add",
            "parameters": [{"name": "a", "type": "number"}],
            "return_type": "number"
        }
    """
    current = get_pipeline()
    parameters = [Parameter(name=p.name, type=p.type, required=p.required) for p in request.parameters]
    artifact = current.emitter.emit(request.record, request.function_name, parameters, request.return_type)
    return {
        "success": True,
        "lean": artifact.render(),
        "helper_lemmas": len(artifact.helper_lemmas),
        "performance_lemmas": len(artifact.performance_lemmas),
        "security_lemmas": len(artifact.security_lemmas)
    }


@app.get("/api/cache/stats", response_model=CacheStatsResponse)
async def cache_stats():
    """Specification cache statistics"""
    current = get_pipeline()
    stats = current.cache.get_stats()
    stats["stored_records"] = len(current.store.keys()) if current.store is not None else 0
    return stats


# ============================================================================
# WebSocket for Streaming Results
# ============================================================================

@app.websocket("/ws/analyze")
async def websocket_analyze(websocket: WebSocket):
    """
    Stream per-function results as they complete.

    Send:
        {"diff": "...", "files": {"path": "contents"}}

    Receive one message per function, then a summary:
        {"type": "result", "function": {...}}
        {"type": "done", "total": 3}
    """
    await websocket.accept()

    try:
        data = await websocket.receive_text()
        try:
            request = AnalyzeRequest.model_validate(json.loads(data))
        except ValueError as e:
            await websocket.send_json({"type": "error", "message": str(e)})
            await websocket.close()
            return

        current = get_pipeline()
        total = 0
        async for result in current.iter_results(
            request.diff,
            _changed_files(current, request),
            sources=InMemorySourceAccessor(request.files)
        ):
            total += 1
            await websocket.send_json({"type": "result", "function": result.to_dict()})

        await websocket.send_json({"type": "done", "total": total})
        await websocket.close()

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")


def run(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Start the API server with uvicorn"""
    import uvicorn

    logger.info("Starting SpecSync API on http://%s:%d (docs at /docs)", host, port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run(host="0.0.0.0")
