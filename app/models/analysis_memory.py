"""
Analysis Memory — Database Model
==================================
SQLAlchemy model persisting session memory for MEMORY_BACKEND=database.
One row per remembered filepath; list-valued fields are JSON text.
Cross-dataset insights are derived, so they are never stored here.

Table auto-created by Base.metadata.create_all(engine).
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, Integer, Float, DateTime, Index
from app.core.database import Base


class AnalysisMemoryRecord(Base):
    """Condensed snapshot of one analyzed dataset."""
    __tablename__ = "analysis_memory"

    id = Column(String(64), primary_key=True)
    filepath = Column(String(1024), nullable=False, unique=True)
    filename = Column(String(255), nullable=False)

    # Index in the in-memory list, 0 = most recent; load order
    position = Column(Integer, nullable=False, default=0)

    # Epoch milliseconds
    timestamp = Column(Float, nullable=False)

    summary = Column(Text, nullable=False, default="{}")         # JSON
    key_insights = Column(Text, nullable=False, default="[]")    # JSON list
    columns = Column(Text, nullable=False, default="[]")         # JSON list
    row_count = Column(Integer, nullable=False, default=0)
    checksum = Column(String(64), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_analysis_memory_position", "position"),
    )

    def __repr__(self):
        return f"<AnalysisMemoryRecord(file={self.filename}, rows={self.row_count})>"
