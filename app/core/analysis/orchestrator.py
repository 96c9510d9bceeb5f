"""
Analysis Brain — The Pipeline
==============================
Runs every analytical stage over one DataSet in a fixed order:

    Schema Inference → Statistics → EDA / Quality Report
    → Hypotheses (optional) → Time Series (optional)

Design:
  - Stateless: run_analysis(dataset, config) is a pure function of its inputs
  - Configuration is an immutable BrainConfig value; "fast" mode skips the
    optional stages
  - Timing: each stage is timed (seconds, 3 decimals) and logged at DEBUG
  - Digest generation is formatting over computed results, never analysis
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import constants as C
from .dataset import DataSet, validate_dataset
from .eda_report import EDAReport, generate_eda_report
from .hypotheses import Hypothesis, generate_hypotheses
from .insight_engine import DeepAnalysisResult, run_deep_analysis
from .narrative import SKIPPER_INTROS, SKIPPER_OUTROS, banner, pick_phrase
from .schema_inference import ClarifyingQuestion, SchemaInference, infer_schema
from .session_memory import AnalysisMemory, SessionMemory
from .statistics import AnalysisResult, analyze_dataset
from .timeseries import TimeSeriesAnalysis, analyze_time_series

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# CONFIGURATION & RESULTS
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BrainConfig:
    skip_hypotheses: bool = False
    skip_timeseries: bool = False
    max_hypotheses: int = C.DEFAULT_MAX_HYPOTHESES
    question_threshold: float = C.DEFAULT_QUESTION_THRESHOLD

    @classmethod
    def fast(cls) -> "BrainConfig":
        """Schema, statistics and EDA only."""
        return cls(skip_hypotheses=True, skip_timeseries=True)

    @classmethod
    def from_settings(cls, settings) -> "BrainConfig":
        return cls(
            skip_hypotheses=settings.BRAIN_SKIP_HYPOTHESES,
            skip_timeseries=settings.BRAIN_SKIP_TIMESERIES,
            max_hypotheses=settings.BRAIN_MAX_HYPOTHESES,
            question_threshold=settings.BRAIN_QUESTION_THRESHOLD,
        )


@dataclass
class BrainAnalysisResult:
    dataset_name: str
    analysis: AnalysisResult
    schema: SchemaInference
    eda_report: EDAReport
    hypotheses: List[Hypothesis] = field(default_factory=list)
    time_series: Optional[TimeSeriesAnalysis] = None
    timing: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dataset_name": self.dataset_name,
            "analysis": self.analysis.to_dict(),
            "schema": self.schema.to_dict(),
            "eda_report": self.eda_report.to_dict(),
            "hypotheses": [h.to_dict() for h in self.hypotheses],
            "time_series": self.time_series.to_dict() if self.time_series else None,
            "timing": dict(self.timing),
        }


@dataclass
class SessionAnalysis:
    """Everything analyze_and_remember produces for one file."""
    brain: BrainAnalysisResult
    deep: DeepAnalysisResult
    memory: AnalysisMemory

    def to_dict(self) -> Dict[str, Any]:
        return {
            "brain": self.brain.to_dict(),
            "deep": self.deep.to_dict(),
            "memory": self.memory.to_document(),
        }


# ═══════════════════════════════════════════════════════════════
# PIPELINE
# ═══════════════════════════════════════════════════════════════

def run_analysis(dataset: DataSet, config: BrainConfig = BrainConfig()) -> BrainAnalysisResult:
    """
    Full pipeline over one dataset.

    Raises EmptyDataSetError before any stage runs when the dataset has
    no columns or no rows.
    """
    validate_dataset(dataset)
    timings: Dict[str, float] = {}

    t0 = time.time()
    schema = infer_schema(dataset, question_threshold=config.question_threshold)
    timings["schema_inference"] = round(time.time() - t0, 3)

    t0 = time.time()
    analysis = analyze_dataset(dataset)
    timings["statistics"] = round(time.time() - t0, 3)

    t0 = time.time()
    eda = generate_eda_report(dataset, analysis)
    timings["eda_report"] = round(time.time() - t0, 3)

    hypotheses: List[Hypothesis] = []
    if not config.skip_hypotheses:
        t0 = time.time()
        hypotheses = generate_hypotheses(dataset, analysis, max_hypotheses=config.max_hypotheses)
        timings["hypotheses"] = round(time.time() - t0, 3)

    series: Optional[TimeSeriesAnalysis] = None
    if not config.skip_timeseries:
        t0 = time.time()
        series = analyze_time_series(dataset)
        timings["time_series"] = round(time.time() - t0, 3)

    logger.debug(f"Brain analysis of '{dataset.name}' ({dataset.row_count} rows): {timings}")
    return BrainAnalysisResult(
        dataset_name=dataset.name,
        analysis=analysis,
        schema=schema,
        eda_report=eda,
        hypotheses=hypotheses,
        time_series=series,
        timing=timings,
    )


def fast_analysis(dataset: DataSet) -> BrainAnalysisResult:
    return run_analysis(dataset, BrainConfig.fast())


def get_clarifying_questions(
    schema: SchemaInference,
    threshold: float = C.DEFAULT_QUESTION_THRESHOLD,
) -> List[ClarifyingQuestion]:
    """Questions for columns whose semantic type confidence is below `threshold`."""
    return [q for q in schema.suggested_questions if q.confidence < threshold]


def analyze_and_remember(
    dataset: DataSet,
    filepath: str,
    memory: SessionMemory,
    config: BrainConfig = BrainConfig(),
) -> SessionAnalysis:
    """Brain pass, deep insight pass, then a session memory update."""
    brain = run_analysis(dataset, config)
    deep = run_deep_analysis(dataset, brain.analysis)
    remembered = memory.remember(dataset, brain.analysis, deep, filepath)
    logger.info(f"Analyzed and remembered '{dataset.name}' ({filepath})")
    return SessionAnalysis(brain=brain, deep=deep, memory=remembered)


# ═══════════════════════════════════════════════════════════════
# DIGEST
# ═══════════════════════════════════════════════════════════════

def format_digest(result: BrainAnalysisResult, config: BrainConfig = BrainConfig()) -> str:
    eda = result.eda_report
    ov = eda.overview
    key = f"{result.dataset_name}:{ov['rows']}:{ov['columns']}"

    lines = [
        banner("KOWALSKI ANALYSIS COMPLETE", width=43),
        "",
        pick_phrase(SKIPPER_INTROS, key),
        "",
        "📊 DATA OVERVIEW:",
        f"   • {ov['rows']:,} records across {ov['columns']} columns",
        f"   • {ov['numeric_columns']} numeric, {ov['categorical_columns']} categorical",
        f"   • Schema confidence: {round(result.schema.average_confidence)}%",
    ]

    if eda.is_synthetic:
        lines += ["", "⚠️  WARNING: Data appears to be SYNTHETIC"]
        lines.extend(f"   • {reason}" for reason in eda.synthetic.reasons[:3])

    lines += ["", "💡 BOTTOM LINE:", f"   {eda.bottom_line}"]

    if result.hypotheses:
        lines += ["", "🔬 TOP HYPOTHESES:"]
        lines.extend(f"   • {h.title} ({h.confidence:g}% confidence)" for h in result.hypotheses[:3])

    ts = result.time_series
    if ts is not None and (ts.change_point_count or ts.seasonality):
        lines += ["", "📈 TIME SERIES PATTERNS:"]
        if ts.change_point_count:
            lines.append(f"   • {ts.change_point_count} significant change point(s) detected")
        if ts.seasonality:
            lines.append(f"   • Seasonality detected in {len(ts.seasonality)} column(s)")

    questions = get_clarifying_questions(result.schema, config.question_threshold)
    if questions:
        lines += ["", "❓ CLARIFICATION NEEDED:"]
        lines.extend(f"   • {q.question}" for q in questions[:2])

    lines += ["", "═" * 43, f"  {pick_phrase(SKIPPER_OUTROS, key)}", "═" * 43]
    return "\n".join(lines)
