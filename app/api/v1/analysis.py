"""
Kowalski Analysis — API Endpoints
===================================
FastAPI router exposing the analysis brain over JSON datasets.

Endpoints:
  POST   /analyze         — Full pipeline + deep insights + digest (optionally remembered)
  POST   /deep            — Deep insight analysis only
  POST   /ask             — Keyword-routed question answering over one dataset
  POST   /relationships   — Join-key discovery across datasets
  GET    /memory          — Remembered analyses and cross-dataset insights
  GET    /memory/compare  — Side-by-side comparison of two remembered files
  DELETE /memory          — Forget everything
  GET    /health          — Component health check

Integration (in main.py):
  from app.api.router import api_router
  app.include_router(api_router, prefix="/api/v1")
"""

import logging
import time
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from fastapi import APIRouter, Depends, Query, HTTPException

from app.config import settings
from app.core.analysis import (
    AnalysisError,
    BrainConfig,
    DataSet,
    QAEngine,
    QueryContext,
    SessionMemory,
    analyze_dataset,
    create_backend,
    find_relationships,
    format_digest,
    format_relationships,
    run_analysis,
    run_deep_analysis,
    validate_dataset,
)

logger = logging.getLogger(__name__)
router = APIRouter()
_start_time = time.time()


# ═══════════════════════════════════════════════════════════════
# SESSION MEMORY FACTORY (lazy singleton, overridable in tests)
# ═══════════════════════════════════════════════════════════════

_memory_cache: Dict[str, SessionMemory] = {}


def get_session_memory() -> SessionMemory:
    """
    Session memory over the backend named by MEMORY_BACKEND.
    Built once per process; tests replace it via dependency_overrides.
    """
    if "default" not in _memory_cache:
        session_factory = None
        if settings.MEMORY_BACKEND == "database":
            from app.core.database import SessionLocal
            session_factory = SessionLocal
        backend = create_backend(settings.MEMORY_BACKEND, path=settings.MEMORY_PATH,
                                 session_factory=session_factory)
        _memory_cache["default"] = SessionMemory(backend, max_entries=settings.MEMORY_MAX_ENTRIES)
        logger.info(f"Session memory ready (backend={backend.name})")
    return _memory_cache["default"]


# ═══════════════════════════════════════════════════════════════
# REQUEST / RESPONSE SCHEMAS
# ═══════════════════════════════════════════════════════════════

class DataSetPayload(BaseModel):
    name: str = Field(default="dataset", description="Display name, usually the file name")
    columns: List[str]
    rows: List[List[Any]] = Field(default_factory=list)
    types: Optional[List[str]] = Field(default=None, description="number|string|date per column; inferred when omitted")

    def to_dataset(self) -> DataSet:
        return DataSet.create(self.name, self.columns, self.rows, self.types)


class AnalyzeRequest(BaseModel):
    dataset: DataSetPayload
    filepath: Optional[str] = Field(default=None, description="Memory key; defaults to the dataset name")
    skip_hypotheses: Optional[bool] = None
    skip_timeseries: Optional[bool] = None
    max_hypotheses: Optional[int] = Field(default=None, ge=1, le=50)
    remember: bool = True


class DeepRequest(BaseModel):
    dataset: DataSetPayload


class AskRequest(BaseModel):
    dataset: DataSetPayload
    question: str = Field(..., min_length=1, max_length=2000)


class AskResponse(BaseModel):
    answer: str
    intent: str


class RelationshipsRequest(BaseModel):
    datasets: List[DataSetPayload]
    min_confidence: float = Field(default=30, ge=0, le=100)


class HealthResponse(BaseModel):
    status: str
    components: Dict[str, str]
    version: str
    uptime_seconds: float


# ──────────────────────────────────────────────────────────
# HELPERS
# ──────────────────────────────────────────────────────────

def _brain_config(request: AnalyzeRequest) -> BrainConfig:
    base = BrainConfig.from_settings(settings)
    return BrainConfig(
        skip_hypotheses=base.skip_hypotheses if request.skip_hypotheses is None else request.skip_hypotheses,
        skip_timeseries=base.skip_timeseries if request.skip_timeseries is None else request.skip_timeseries,
        max_hypotheses=request.max_hypotheses or base.max_hypotheses,
        question_threshold=base.question_threshold,
    )


def _load(payload: DataSetPayload, require_rows: bool = True) -> DataSet:
    """Build and validate a DataSet; input errors become HTTP 422."""
    try:
        return validate_dataset(payload.to_dataset(), require_rows=require_rows)
    except AnalysisError as e:
        raise HTTPException(status_code=422, detail=str(e))


# ═══════════════════════════════════════════════════════════════
# ENDPOINTS
# ═══════════════════════════════════════════════════════════════

@router.post("/analyze")
async def analyze(request: AnalyzeRequest, memory: SessionMemory = Depends(get_session_memory)):
    """
    Full pipeline: Schema → Statistics → EDA → Hypotheses → Time Series,
    then deep insights, then (optionally) a session memory update.
    """
    dataset = _load(request.dataset)
    config = _brain_config(request)
    brain = run_analysis(dataset, config)
    deep = run_deep_analysis(dataset, brain.analysis)

    response = brain.to_dict()
    response["deep"] = deep.to_dict()
    response["digest"] = format_digest(brain, config)
    response["memory_id"] = None
    if request.remember:
        remembered = memory.remember(dataset, brain.analysis, deep, request.filepath or dataset.name)
        response["memory_id"] = remembered.id
    return response


@router.post("/deep")
async def deep_analysis(request: DeepRequest):
    """Ranked insights, story, recommendations, quality and segments."""
    dataset = _load(request.dataset)
    return run_deep_analysis(dataset, analyze_dataset(dataset)).to_dict()


@router.post("/ask", response_model=AskResponse)
async def ask(request: AskRequest):
    """Answer a question about one dataset by keyword routing over computed results."""
    dataset = _load(request.dataset)
    analysis = analyze_dataset(dataset)
    context = QueryContext(dataset=dataset, analysis=analysis, deep=run_deep_analysis(dataset, analysis))
    return AskResponse(**QAEngine().answer(request.question, context))


@router.post("/relationships")
async def relationships(request: RelationshipsRequest):
    """
    Discover join keys. Datasets without rows yield success=false in the
    body; malformed datasets (ragged rows, duplicate columns) are a 422.
    """
    datasets = [_load(p, require_rows=False) for p in request.datasets]
    result = find_relationships(datasets, min_confidence=request.min_confidence)
    response = result.to_dict()
    response["report"] = format_relationships(result)
    return response


@router.get("/memory")
async def memory_status(
    limit: int = Query(default=5, ge=1, le=50),
    memory: SessionMemory = Depends(get_session_memory),
):
    return {
        "recent": [m.to_document() for m in memory.get_recent_analyses(limit)],
        "cross_insights": [c.to_document() for c in memory.get_cross_insights()],
        "status": memory.format_memory_status(),
        "degraded": memory.degraded,
    }


@router.get("/memory/compare")
async def memory_compare(
    file1: str = Query(..., min_length=1),
    file2: str = Query(..., min_length=1),
    memory: SessionMemory = Depends(get_session_memory),
):
    return {"comparison": memory.format_dataset_comparison(file1, file2)}


@router.delete("/memory")
async def memory_clear(memory: SessionMemory = Depends(get_session_memory)):
    memory.clear()
    logger.info("Session memory cleared")
    return {"cleared": True}


@router.get("/health", response_model=HealthResponse)
async def analysis_health():
    """Analysis brain health check — reports status of all components."""
    components = {
        "statistics": "active",
        "schema_inference": "active",
        "quality": "active",
        "insight_engine": "active",
        "hypotheses": "disabled (config)" if settings.BRAIN_SKIP_HYPOTHESES else "active",
        "time_series": "disabled (config)" if settings.BRAIN_SKIP_TIMESERIES else "active",
        "relationships": "active",
        "qa_engine": "active",
        "session_memory": settings.MEMORY_BACKEND,
    }
    return HealthResponse(
        status="healthy",
        components=components,
        version="1.0.0",
        uptime_seconds=round(time.time() - _start_time, 1),
    )
