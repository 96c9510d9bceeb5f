"""
Kowalski Analysis Brain — Core Module
======================================
Deterministic analytics over small tabular datasets: statistics, quality
scoring, ranked insights, hypotheses, time series signals, relationship
discovery across files, and a memory of past analyses.

Components:
  ┌──────────────────────────────────────────────────────┐
  │ run_analysis        — Pipeline, single entry point   │
  │ analyze_dataset     — Column stats, correlations     │
  │ SchemaInferencer    — Semantic types + confidence    │
  │ analyze_quality     — 0-100 score and issues         │
  │ generate_eda_report — Findings, synthetic detection  │
  │ InsightEngine       — Ranked insights, story, segs   │
  │ HypothesisGenerator — Testable hypotheses (scipy)    │
  │ timeseries          — Change points, seasonality     │
  │ find_relationships  — Join keys across datasets      │
  │ SessionMemory       — Cross-dataset recall           │
  │ QAEngine            — Keyword-routed answers         │
  └──────────────────────────────────────────────────────┘

Usage:
  from app.core.analysis import DataSet, BrainConfig, run_analysis, format_digest
  dataset = DataSet.create("sales.csv", ["region", "revenue"], rows)
  result = run_analysis(dataset, BrainConfig.fast())
  print(format_digest(result))
"""

# Data model & errors
from .dataset import DataSet, NUMERIC, CATEGORICAL, DATE, validate_dataset
from .errors import AnalysisError, EmptyDataSetError, InvalidDataSetError

# Analytical stages
from .statistics import (
    AnalysisResult,
    ColumnStatistics,
    Correlation,
    DataSummary,
    Outlier,
    Trend,
    analyze_dataset,
    calculate_stats,
    detect_trend,
    pearson,
)
from .schema_inference import SchemaInference, SchemaInferencer, infer_schema, verbalize_confidence
from .quality import DataQualityReport, QualityIssue, analyze_quality, detect_synthetic_data
from .eda_report import EDAReport, format_eda_report, generate_eda_report
from .insight_engine import DeepAnalysisResult, DeepInsight, InsightEngine, rank_insights, run_deep_analysis
from .hypotheses import Hypothesis, HypothesisTestResult, format_hypothesis, generate_hypotheses, test_hypothesis
from .timeseries import TimeSeriesAnalysis, analyze_time_series, detect_change_points, detect_seasonality
from .relationships import RelationshipDiscoveryResult, find_relationships, format_relationships
from .qa_engine import QAEngine, QueryContext, answer_question

# Memory & pipeline
from .session_memory import (
    DatabaseBackend,
    InMemoryBackend,
    JsonFileBackend,
    MemoryBackend,
    SessionMemory,
    create_backend,
)
from .orchestrator import (
    BrainAnalysisResult,
    BrainConfig,
    SessionAnalysis,
    analyze_and_remember,
    fast_analysis,
    format_digest,
    get_clarifying_questions,
    run_analysis,
)

__all__ = [
    "DataSet", "NUMERIC", "CATEGORICAL", "DATE", "validate_dataset",
    "AnalysisError", "EmptyDataSetError", "InvalidDataSetError",
    "AnalysisResult", "ColumnStatistics", "Correlation", "DataSummary", "Outlier", "Trend",
    "analyze_dataset", "calculate_stats", "detect_trend", "pearson",
    "SchemaInference", "SchemaInferencer", "infer_schema", "verbalize_confidence",
    "DataQualityReport", "QualityIssue", "analyze_quality", "detect_synthetic_data",
    "EDAReport", "format_eda_report", "generate_eda_report",
    "DeepAnalysisResult", "DeepInsight", "InsightEngine", "rank_insights", "run_deep_analysis",
    "Hypothesis", "HypothesisTestResult", "format_hypothesis", "generate_hypotheses", "test_hypothesis",
    "TimeSeriesAnalysis", "analyze_time_series", "detect_change_points", "detect_seasonality",
    "RelationshipDiscoveryResult", "find_relationships", "format_relationships",
    "QAEngine", "QueryContext", "answer_question",
    "DatabaseBackend", "InMemoryBackend", "JsonFileBackend", "MemoryBackend", "SessionMemory", "create_backend",
    "BrainAnalysisResult", "BrainConfig", "SessionAnalysis", "analyze_and_remember",
    "fast_analysis", "format_digest", "get_clarifying_questions", "run_analysis",
]
