"""
Session Memory — Cross-Dataset Recall
=======================================
Keeps condensed summaries of past analyses and derives insights that span
files ("these two datasets share a join key").

Capabilities:
  1. Remember            — one entry per filepath, newest first, capped at N
  2. Change Detection    — md5 over the columns and first rows
  3. Cross Insights      — common columns, possible joins, schema similarity;
                           recomputed from the full list on every change
  4. Formatting          — memory status and pairwise dataset comparison

Storage is injected (MemoryBackend):
  InMemoryBackend   — tests, ephemeral sessions
  JsonFileBackend   — one JSON document {memories, crossInsights}
  DatabaseBackend   — analysis_memory table via SQLAlchemy

Persistence failures are logged and never reach the analysis caller: a
failed load starts empty, a failed save continues in memory only.
"""

import copy
import hashlib
import json
import logging
import os
import re
import tempfile
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from . import constants as C
from .dataset import DATE, DataSet
from .insight_engine import DeepAnalysisResult
from .statistics import AnalysisResult

logger = logging.getLogger(__name__)

ID_HINTS = ["id", "_id", "key", "code"]

ID_VARIATIONS = {
    "customerid": ["custid", "customer_id", "cust_id", "clientid"],
    "productid": ["prodid", "product_id", "prod_id", "itemid"],
    "orderid": ["ordid", "order_id", "ord_id"],
    "userid": ["user_id", "uid", "accountid"],
}


# ═══════════════════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════════════════

@dataclass
class DatasetSummary:
    numeric_columns: List[str] = field(default_factory=list)
    categorical_columns: List[str] = field(default_factory=list)
    date_columns: List[str] = field(default_factory=list)
    top_correlations: List[Dict[str, Any]] = field(default_factory=list)   # {col1, col2, value}
    quality_score: int = 0

    def to_document(self) -> Dict[str, Any]:
        return {
            "numericColumns": list(self.numeric_columns),
            "categoricalColumns": list(self.categorical_columns),
            "dateColumns": list(self.date_columns),
            "topCorrelations": [dict(c) for c in self.top_correlations],
            "qualityScore": self.quality_score,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "DatasetSummary":
        return cls(
            numeric_columns=list(doc.get("numericColumns", [])),
            categorical_columns=list(doc.get("categoricalColumns", [])),
            date_columns=list(doc.get("dateColumns", [])),
            top_correlations=[dict(c) for c in doc.get("topCorrelations", [])],
            quality_score=doc.get("qualityScore", 0),
        )


@dataclass
class AnalysisMemory:
    id: str
    timestamp: float            # epoch milliseconds
    filename: str
    filepath: str
    summary: DatasetSummary
    key_insights: List[str]
    columns: List[str]
    row_count: int
    checksum: str

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "filename": self.filename,
            "filepath": self.filepath,
            "summary": self.summary.to_document(),
            "keyInsights": list(self.key_insights),
            "columns": list(self.columns),
            "rowCount": self.row_count,
            "checksum": self.checksum,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "AnalysisMemory":
        return cls(
            id=doc["id"],
            timestamp=doc["timestamp"],
            filename=doc["filename"],
            filepath=doc["filepath"],
            summary=DatasetSummary.from_document(doc.get("summary", {})),
            key_insights=list(doc.get("keyInsights", [])),
            columns=list(doc.get("columns", [])),
            row_count=doc.get("rowCount", 0),
            checksum=doc.get("checksum", ""),
        )


@dataclass
class CrossDatasetInsight:
    type: str                   # common_columns | possible_join | schema_similarity
    confidence: int
    datasets: List[str]
    description: str
    details: List[str]
    suggestion: str

    def to_document(self) -> Dict[str, Any]:
        return dict(self.__dict__)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "CrossDatasetInsight":
        return cls(**{k: doc[k] for k in ("type", "confidence", "datasets", "description", "details", "suggestion")})


@dataclass
class MemoryState:
    memories: List[AnalysisMemory] = field(default_factory=list)
    cross_insights: List[CrossDatasetInsight] = field(default_factory=list)
    last_analysis: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        doc = {
            "memories": [m.to_document() for m in self.memories],
            "crossInsights": [c.to_document() for c in self.cross_insights],
        }
        if self.last_analysis:
            doc["lastAnalysis"] = self.last_analysis
        return doc

    @classmethod
    def from_document(cls, doc: Any) -> "MemoryState":
        """Raises ValueError on a malformed document."""
        if not isinstance(doc, dict):
            raise ValueError("session memory document must be a JSON object")
        try:
            return cls(
                memories=[AnalysisMemory.from_document(m) for m in doc.get("memories", [])],
                cross_insights=[CrossDatasetInsight.from_document(c) for c in doc.get("crossInsights", [])],
                last_analysis=doc.get("lastAnalysis"),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"malformed session memory document: {e}") from e


# ═══════════════════════════════════════════════════════════════
# BACKENDS
# ═══════════════════════════════════════════════════════════════

class MemoryBackend(ABC):
    """Read-whole / write-whole storage for a MemoryState."""

    name = "abstract"

    @abstractmethod
    def load(self) -> MemoryState:
        ...

    @abstractmethod
    def save(self, state: MemoryState) -> None:
        ...


class InMemoryBackend(MemoryBackend):
    name = "memory"

    def __init__(self, state: Optional[MemoryState] = None):
        self._state = copy.deepcopy(state) if state else MemoryState()

    def load(self) -> MemoryState:
        return copy.deepcopy(self._state)

    def save(self, state: MemoryState) -> None:
        self._state = copy.deepcopy(state)


class JsonFileBackend(MemoryBackend):
    """
    Single JSON document; the parent directory is created on save.
    Saves go through a temp file in the same directory and os.replace.
    """

    name = "json"

    def __init__(self, path: str):
        self.path = os.path.expanduser(path)

    def load(self) -> MemoryState:
        if not os.path.exists(self.path):
            return MemoryState()
        with open(self.path, "r", encoding="utf-8") as fh:
            return MemoryState.from_document(json.load(fh))

    def save(self, state: MemoryState) -> None:
        parent = os.path.dirname(self.path) or "."
        os.makedirs(parent, exist_ok=True)
        # Temp file beside the target, swapped in whole
        fd, tmp_path = tempfile.mkstemp(prefix=".session-memory-", suffix=".tmp", dir=parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(state.to_document(), fh, indent=2)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


class DatabaseBackend(MemoryBackend):
    """
    analysis_memory rows, one per filepath, stored with their list position
    so recency order survives timestamp ties. Save replaces the whole set in
    one transaction; cross insights are rebuilt on load.
    """

    name = "database"

    def __init__(self, session_factory: Callable):
        self.session_factory = session_factory

    def load(self) -> MemoryState:
        from app.models.analysis_memory import AnalysisMemoryRecord

        db = self.session_factory()
        try:
            rows = (
                db.query(AnalysisMemoryRecord)
                .order_by(
                    AnalysisMemoryRecord.position.asc(),
                    AnalysisMemoryRecord.timestamp.desc(),
                    AnalysisMemoryRecord.id.desc(),
                )
                .all()
            )
            memories = [
                AnalysisMemory(
                    id=r.id, timestamp=r.timestamp, filename=r.filename, filepath=r.filepath,
                    summary=DatasetSummary.from_document(json.loads(r.summary or "{}")),
                    key_insights=json.loads(r.key_insights or "[]"),
                    columns=json.loads(r.columns or "[]"),
                    row_count=r.row_count, checksum=r.checksum,
                )
                for r in rows
            ]
        finally:
            db.close()
        return MemoryState(
            memories=memories,
            cross_insights=find_cross_dataset_insights(memories),
            last_analysis=memories[0].id if memories else None,
        )

    def save(self, state: MemoryState) -> None:
        from app.models.analysis_memory import AnalysisMemoryRecord

        db = self.session_factory()
        try:
            db.query(AnalysisMemoryRecord).delete()
            for position, m in enumerate(state.memories):
                db.add(AnalysisMemoryRecord(
                    id=m.id, position=position, filepath=m.filepath, filename=m.filename,
                    timestamp=m.timestamp,
                    summary=json.dumps(m.summary.to_document()),
                    key_insights=json.dumps(m.key_insights),
                    columns=json.dumps(m.columns),
                    row_count=m.row_count, checksum=m.checksum,
                ))
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()


# ──────────────────────────────────────────────────────────
# CROSS-DATASET ANALYSIS
# ──────────────────────────────────────────────────────────

def dataset_checksum(dataset: DataSet) -> str:
    sample = {"columns": list(dataset.columns),
              "rows": [list(r) for r in dataset.rows[:C.MEMORY_CHECKSUM_ROWS]]}
    return hashlib.md5(json.dumps(sample, default=str).encode("utf-8")).hexdigest()


def similar_names(name1: str, name2: str) -> bool:
    n1 = re.sub(r"[_\-\s]", "", name1.lower())
    n2 = re.sub(r"[_\-\s]", "", name2.lower())
    if n1 == n2 or n1 in n2 or n2 in n1:
        return True
    for base, variants in ID_VARIATIONS.items():
        forms = [base] + [re.sub(r"[_\-\s]", "", v) for v in variants]
        if n1 in forms and n2 in forms:
            return True
    return False


def find_cross_dataset_insights(memories: List[AnalysisMemory]) -> List[CrossDatasetInsight]:
    insights: List[CrossDatasetInsight] = []
    for i in range(len(memories)):
        for j in range(i + 1, len(memories)):
            m1, m2 = memories[i], memories[j]
            pair = [m1.filename, m2.filename]
            common = [c for c in m1.columns if c in m2.columns]

            if common:
                more = "..." if len(common) > 5 else ""
                insights.append(CrossDatasetInsight(
                    type="common_columns",
                    confidence=min(90, 50 + len(common) * 10),
                    datasets=pair,
                    description=(f"{len(common)} common column{'s' if len(common) > 1 else ''} "
                                 f'between "{m1.filename}" and "{m2.filename}"'),
                    details=[f"Common columns: {', '.join(common[:5])}{more}"],
                    suggestion=(f"These datasets may be joinable on: {', '.join(common[:2])}"
                                if len(common) >= 2 else f"Possible join key: {common[0]}"),
                ))

            ids1 = [c for c in m1.columns if any(h in c.lower() for h in ID_HINTS)]
            ids2 = [c for c in m2.columns if any(h in c.lower() for h in ID_HINTS)]
            for id1 in ids1:
                for id2 in ids2:
                    if id1 != id2 and similar_names(id1, id2):
                        insights.append(CrossDatasetInsight(
                            type="possible_join", confidence=70, datasets=pair,
                            description=f'Possible join relationship: "{m1.filename}.{id1}" ↔ "{m2.filename}.{id2}"',
                            details=["Column names suggest a foreign key relationship"],
                            suggestion=f"Try joining on {id1} = {id2}",
                        ))

            widest = max(len(m1.columns), len(m2.columns))
            similarity = len(common) / widest if widest else 0.0
            if similarity > C.SCHEMA_SIMILARITY_THRESHOLD:
                insights.append(CrossDatasetInsight(
                    type="schema_similarity", confidence=85, datasets=pair,
                    description=f'"{m1.filename}" and "{m2.filename}" have {similarity * 100:.0f}% schema overlap',
                    details=[
                        "These might be the same data from different time periods or sources",
                        f"{m1.filename}: {len(m1.columns)} columns, {m1.row_count} rows",
                        f"{m2.filename}: {len(m2.columns)} columns, {m2.row_count} rows",
                    ],
                    suggestion="Consider combining these datasets or comparing their differences",
                ))

    insights.sort(key=lambda x: -x.confidence)
    return insights[:C.CROSS_INSIGHT_LIMIT]


def format_age(timestamp_ms: float, now_ms: float) -> str:
    minutes = int((now_ms - timestamp_ms) // 60000)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


# ═══════════════════════════════════════════════════════════════
# SESSION MEMORY
# ═══════════════════════════════════════════════════════════════

class SessionMemory:
    """
    Memory of past analyses over an injected backend.
    No call on this class raises for a storage failure.
    """

    def __init__(
        self,
        backend: Optional[MemoryBackend] = None,
        max_entries: int = C.MEMORY_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend or InMemoryBackend()
        self.max_entries = max_entries
        self._clock = clock
        self.degraded = False

    def _now_ms(self) -> float:
        return self._clock() * 1000

    # ── Storage boundary ──

    def load(self) -> MemoryState:
        try:
            return self.backend.load()
        except (OSError, ValueError, SQLAlchemyError) as e:
            logger.warning(f"Session memory load failed ({self.backend.name}): {e}")
            return MemoryState()

    def save(self, state: MemoryState) -> bool:
        try:
            self.backend.save(state)
            return True
        except (OSError, ValueError, SQLAlchemyError) as e:
            logger.warning(f"Session memory save failed ({self.backend.name}): {e}; continuing in memory")
            self.backend = InMemoryBackend(state)
            self.degraded = True
            return False

    # ── Operations ──

    def remember(
        self,
        dataset: DataSet,
        analysis: AnalysisResult,
        deep: DeepAnalysisResult,
        filepath: str,
    ) -> AnalysisMemory:
        """Create or replace the entry for `filepath`, evict beyond the cap, persist."""
        state = self.load()
        memory = AnalysisMemory(
            id=f"analysis-{uuid4().hex[:12]}",
            timestamp=self._now_ms(),
            filename=dataset.name,
            filepath=filepath,
            summary=DatasetSummary(
                numeric_columns=[c for c, s in analysis.statistics.items() if s.is_numeric],
                categorical_columns=[c for c in dataset.categorical_columns],
                date_columns=dataset.columns_of_type(DATE),
                top_correlations=[
                    {"col1": c.column1, "col2": c.column2, "value": c.value}
                    for c in analysis.correlations[:C.MEMORY_TOP_CORRELATIONS]
                ],
                quality_score=deep.data_quality.score,
            ),
            key_insights=[i.title for i in deep.insights[:C.MEMORY_KEY_INSIGHTS]],
            columns=list(dataset.columns),
            row_count=dataset.row_count,
            checksum=dataset_checksum(dataset),
        )

        # Latest analysis of a filepath replaces the old entry and moves to the front
        others = [m for m in state.memories if m.filepath != filepath]
        evicted = max(0, len(others) + 1 - self.max_entries)
        state.memories = ([memory] + others)[:self.max_entries]
        state.last_analysis = memory.id
        state.cross_insights = find_cross_dataset_insights(state.memories)
        if evicted:
            logger.debug(f"Session memory evicted {evicted} oldest entr{'y' if evicted == 1 else 'ies'}")

        self.save(state)
        return memory

    def get_recent_analyses(self, limit: int = 5) -> List[AnalysisMemory]:
        return self.load().memories[:limit]

    def get_cross_insights(self) -> List[CrossDatasetInsight]:
        return self.load().cross_insights

    def find_by_filepath(self, filepath: str) -> Optional[AnalysisMemory]:
        for m in self.load().memories:
            if m.filepath == filepath:
                return m
        return None

    def has_changed(self, filepath: str, dataset: DataSet) -> bool:
        """True when the file is unknown or its sampled content differs."""
        memory = self.find_by_filepath(filepath)
        return memory is None or memory.checksum != dataset_checksum(dataset)

    def clear(self) -> None:
        self.save(MemoryState())

    # ── Formatting ──

    def format_memory_status(self) -> str:
        state = self.load()
        if not state.memories:
            return "No previous analyses remembered. Run an analysis to start."

        n = len(state.memories)
        now = self._now_ms()
        lines = [f"📊 KOWALSKI MEMORY: {n} dataset{'s' if n > 1 else ''} remembered", ""]
        for m in state.memories[:5]:
            lines.append(f"• {m.filename} ({m.row_count:,} rows) - {format_age(m.timestamp, now)}")
        if state.cross_insights:
            lines += ["", "🔗 CROSS-DATASET INSIGHTS:"]
            lines.extend(f"• {c.description}" for c in state.cross_insights[:3])
        return "\n".join(lines)

    def format_dataset_comparison(self, file1: str, file2: str) -> str:
        memories = self.load().memories

        def find(name: str) -> Optional[AnalysisMemory]:
            return next((m for m in memories if m.filename == name or name in m.filepath), None)

        m1, m2 = find(file1), find(file2)
        if m1 is None or m2 is None:
            missing = file1 if m1 is None else file2
            return f"Cannot compare: {missing} not found in memory. Analyze both files first."

        common = [c for c in m1.columns if c in m2.columns]
        only1 = [c for c in m1.columns if c not in m2.columns]
        only2 = [c for c in m2.columns if c not in m1.columns]

        lines = [
            f"📊 COMPARISON: {m1.filename} vs {m2.filename}", "",
            "SIZE:",
            f"• {m1.filename}: {m1.row_count:,} rows, {len(m1.columns)} columns",
            f"• {m2.filename}: {m2.row_count:,} rows, {len(m2.columns)} columns",
            "",
            "SCHEMA:",
            f"• Common columns ({len(common)}): {', '.join(common[:5])}{'...' if len(common) > 5 else ''}",
        ]
        if only1:
            lines.append(f"• Only in {m1.filename} ({len(only1)}): {', '.join(only1[:3])}{'...' if len(only1) > 3 else ''}")
        if only2:
            lines.append(f"• Only in {m2.filename} ({len(only2)}): {', '.join(only2[:3])}{'...' if len(only2) > 3 else ''}")
        lines += [
            "",
            "DATA QUALITY:",
            f"• {m1.filename}: {m1.summary.quality_score}/100",
            f"• {m2.filename}: {m2.summary.quality_score}/100",
            "",
        ]
        if common:
            lines.append(f"💡 These datasets share {len(common)} column{'s' if len(common) > 1 else ''} "
                         "and may be joinable.")
        else:
            lines.append("💡 No common columns found. These datasets appear unrelated.")
        return "\n".join(lines)


def create_backend(kind: str, path: Optional[str] = None,
                   session_factory: Optional[Callable] = None) -> MemoryBackend:
    """Backend for a MEMORY_BACKEND setting value."""
    if kind == "json":
        return JsonFileBackend(path or os.path.join("~", ".kowalski", "session-memory.json"))
    if kind == "database":
        if session_factory is None:
            raise ValueError("database memory backend needs a session factory")
        return DatabaseBackend(session_factory)
    if kind == "memory":
        return InMemoryBackend()
    raise ValueError(f"Unknown memory backend: {kind}")
