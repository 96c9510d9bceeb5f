"""
API Router — Combines all endpoint groups under /analysis.

Analysis brain (8 endpoints):  /api/v1/analysis/{analyze,deep,ask,relationships,memory,memory/compare,health}
"""

from fastapi import APIRouter

from app.api.v1.analysis import router as analysis_router

api_router = APIRouter()

api_router.include_router(
    analysis_router,
    prefix="/analysis",
    tags=["Kowalski Analysis Brain"],
)
