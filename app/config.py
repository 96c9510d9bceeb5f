"""
Application Settings — All via environment variables with sensible defaults.
"""
import os


class Settings:
    # ── Server ──
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8001"))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # ── Database ──
    # Default: SQLite (zero config). Production: set DATABASE_URL env var.
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./kowalski.db")

    # ── CORS ──
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:8000,http://localhost:3000,*")

    # ── Session Memory ──
    # json: single document on disk | database: analysis_memory table | memory: process-local
    MEMORY_BACKEND: str = os.getenv("MEMORY_BACKEND", "json").lower()
    MEMORY_PATH: str = os.path.expanduser(
        os.getenv("MEMORY_PATH", os.path.join("~", ".kowalski", "session-memory.json"))
    )
    MEMORY_MAX_ENTRIES: int = int(os.getenv("MEMORY_MAX_ENTRIES", "20"))

    # ── Analysis Brain ──
    BRAIN_MAX_HYPOTHESES: int = int(os.getenv("BRAIN_MAX_HYPOTHESES", "10"))
    BRAIN_QUESTION_THRESHOLD: float = float(os.getenv("BRAIN_QUESTION_THRESHOLD", "70"))
    BRAIN_SKIP_HYPOTHESES: bool = os.getenv("BRAIN_SKIP_HYPOTHESES", "false").lower() == "true"
    BRAIN_SKIP_TIMESERIES: bool = os.getenv("BRAIN_SKIP_TIMESERIES", "false").lower() == "true"


settings = Settings()
