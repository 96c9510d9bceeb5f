"""
Kowalski Analysis Brain — FastAPI Server (Port 8001)
======================================================
Deterministic tabular analytics: statistics, quality scoring, ranked
insights, hypotheses, time series signals, relationship discovery and
cross-dataset session memory.

Run:
  uvicorn main:app --host 0.0.0.0 --port 8001 --reload
  # or
  python main.py
"""

import logging
from contextlib import asynccontextmanager

# Load .env file BEFORE anything reads os.getenv()
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from app.config import settings  # noqa: E402

# ── Logging ──
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s | %(name)-30s | %(levelname)-7s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("kowalski")


# ── Lifespan: create tables ──
@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.MEMORY_BACKEND == "database":
        from app.core.database import engine, Base

        # Import models so they register with Base.metadata
        import app.models.analysis_memory  # noqa: F401

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ready")

    logger.info(f"Analysis brain ready (memory backend: {settings.MEMORY_BACKEND})")
    yield
    logger.info("Shutting down Kowalski Analysis Brain")


# ── Create FastAPI app ──
app = FastAPI(
    title="Kowalski Analysis Brain",
    description=(
        "Deterministic analytics over tabular datasets: column statistics, "
        "semantic schema inference, quality scoring, synthetic data detection, "
        "ranked insights, Welch t-test hypotheses, change points, seasonality, "
        "join-key discovery and cross-dataset session memory."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Mount all API routes ──
from app.api.router import api_router  # noqa: E402
app.include_router(api_router, prefix="/api/v1")


# ── Root ──
@app.get("/", tags=["Root"])
async def root():
    return {
        "service": "Kowalski Analysis Brain",
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "analysis": "/api/v1/analysis/ (8 endpoints)",
        },
        "health": "/api/v1/analysis/health",
    }


# ── Direct run ──
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
