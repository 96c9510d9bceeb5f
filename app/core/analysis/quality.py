"""
Quality & Anomaly Engine
==========================
Scores data quality and flags row-level anomalies and synthetic-data
signatures from a DataSet plus its AnalysisResult.

Capabilities:
  1. Quality Score          — 100 minus capped penalties, floored at 0
  2. Missingness            — per column, severity by percentage
  3. Duplicate Rows         — exact serialized-row matches
  4. Near-Duplicate Values  — case/whitespace variant clusters
  5. Suspicious Values      — round-number ratios, ID-like categoricals
  6. Row Anomalies          — mean |z| across numeric columns
  7. Synthetic Data Signals — needs at least 2 independent signals

Scoring:
  score = 100
        - Σ min(missing%, 20)          per column with missing values
        - min(duplicate%, 15)          once
        - 5                            per near-duplicate cluster
"""

import logging
import math
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import constants as C
from .dataset import DataSet, is_missing, to_number
from .statistics import AnalysisResult, count_duplicate_rows, mean

logger = logging.getLogger(__name__)

_GARBAGE_TOKEN = re.compile(r"^[A-Za-z0-9]+$")


# ═══════════════════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════════════════

@dataclass
class QualityIssue:
    type: str                   # missing | inconsistent | outlier | duplicate | format | suspicious
    severity: str               # critical | warning | info
    description: str
    affected_count: int
    suggestion: str
    column: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type, "column": self.column, "severity": self.severity,
            "description": self.description, "affected_count": self.affected_count,
            "suggestion": self.suggestion,
        }


@dataclass
class DataQualityReport:
    score: int
    issues: List[QualityIssue] = field(default_factory=list)
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "issues": [i.to_dict() for i in self.issues],
            "summary": self.summary,
        }


@dataclass
class SyntheticVerdict:
    is_synthetic: bool
    reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"is_synthetic": self.is_synthetic, "reasons": list(self.reasons)}


# ──────────────────────────────────────────────────────────
# DETECTORS
# ──────────────────────────────────────────────────────────

def find_near_duplicate_clusters(values: List[Any]) -> List[List[str]]:
    """
    Groups of distinct raw values that collapse to the same string after
    lower-casing and trimming. Each group with 2+ spellings is one cluster.
    """
    groups: "OrderedDict[str, List[str]]" = OrderedDict()
    for v in values:
        if is_missing(v):
            continue
        raw = str(v)
        key = raw.strip().lower()
        spellings = groups.setdefault(key, [])
        if raw not in spellings:
            spellings.append(raw)
    return [spellings for spellings in groups.values() if len(spellings) > 1]


def detect_round_numbers(dataset: DataSet, column: str) -> float:
    """Fraction of numeric values divisible by 5 (which covers multiples of 10)."""
    values = dataset.numeric_values(column)
    if not values:
        return 0.0
    return sum(1 for v in values if v % 5 == 0) / len(values)


def detect_row_anomalies(dataset: DataSet, analysis: AnalysisResult) -> List[int]:
    """
    Rows whose mean |z| across usable numeric columns exceeds
    ROW_ANOMALY_ZSCORE, counted only when the row has 2+ valid numeric
    cells. Needs 2+ numeric columns with nonzero std dataset-wide.
    """
    usable = []
    for col, stats in analysis.numeric_stats().items():
        if stats.mean is None or not stats.std:
            continue
        usable.append((dataset.column_index(col), stats.mean, stats.std))
    if len(usable) < C.ROW_ANOMALY_MIN_COLUMNS:
        return []

    flagged = []
    for row_index, row in enumerate(dataset.rows):
        total, valid = 0.0, 0
        for idx, mu, std in usable:
            value = to_number(row[idx])
            if value is None:
                continue
            total += abs((value - mu) / std)
            valid += 1
        if valid >= C.ROW_ANOMALY_MIN_COLUMNS and total / valid > C.ROW_ANOMALY_ZSCORE:
            flagged.append(row_index)
    return flagged


def is_garbage_text(value: Any) -> bool:
    text = str(value)
    return len(text) > 20 and bool(_GARBAGE_TOKEN.match(text))


def quality_summary(score: int) -> str:
    if score >= 90:
        return "Excellent data quality - ready for analysis"
    if score >= 70:
        return "Good data quality with minor issues to address"
    if score >= 50:
        return "Moderate data quality - address issues before drawing conclusions"
    return "Significant data quality issues - clean data before analysis"


def quality_band(score: float) -> str:
    for threshold, label in C.QUALITY_BANDS:
        if score >= threshold:
            return label
    return "poor"


# ═══════════════════════════════════════════════════════════════
# QUALITY REPORT
# ═══════════════════════════════════════════════════════════════

def analyze_quality(dataset: DataSet, analysis: AnalysisResult) -> DataQualityReport:
    """Quality score in [0, 100] plus the issues that produced it."""
    issues: List[QualityIssue] = []
    score = 100.0
    total_rows = dataset.row_count or 1

    for col, stats in analysis.statistics.items():
        # ── Missing values ──
        if stats.missing_count > 0:
            missing_pct = stats.missing_count / total_rows * 100
            if missing_pct > C.MISSING_CRITICAL_PERCENT:
                severity = "critical"
            elif missing_pct > C.MISSING_WARNING_PERCENT:
                severity = "warning"
            else:
                severity = "info"
            issues.append(QualityIssue(
                type="missing", column=col, severity=severity,
                description=f'{missing_pct:.1f}% missing values in "{col}"',
                affected_count=stats.missing_count,
                suggestion=(f'Consider dropping "{col}" or investigating why data is missing'
                            if missing_pct > 50 else
                            f'Impute missing values or filter rows with missing "{col}"'),
            ))
            score -= min(missing_pct, C.QUALITY_MISSING_PENALTY_CAP)

        if stats.is_numeric:
            round_ratio = detect_round_numbers(dataset, col)
            if round_ratio > C.ROUND_NUMBER_RATIO:
                issues.append(QualityIssue(
                    type="suspicious", column=col, severity="info",
                    description=f'{round_ratio * 100:.0f}% of "{col}" values are round numbers',
                    affected_count=int(math.floor(total_rows * round_ratio)),
                    suggestion="This might indicate estimated or placeholder values",
                ))

            if stats.outlier_indices:
                outlier_count = len(stats.outlier_indices)
                outlier_pct = outlier_count / total_rows * 100
                issues.append(QualityIssue(
                    type="outlier", column=col,
                    severity="warning" if outlier_pct > C.OUTLIER_WARNING_PERCENT else "info",
                    description=f'{outlier_count} outliers detected in "{col}" ({outlier_pct:.1f}%)',
                    affected_count=outlier_count,
                    suggestion="Review outliers - they may be errors or genuinely unusual observations",
                ))
            continue

        # ── Categorical consistency ──
        unique_ratio = stats.unique_count / total_rows
        if unique_ratio > C.INCONSISTENT_UNIQUE_RATIO and dataset.row_count > C.INCONSISTENT_MIN_ROWS:
            issues.append(QualityIssue(
                type="inconsistent", column=col, severity="warning",
                description=(f'"{col}" has {stats.unique_count} unique values for {dataset.row_count} rows '
                             "- might be an ID column or have data issues"),
                affected_count=stats.unique_count,
                suggestion="Check if this should be categorical or if there are typos/variations",
            ))

        clusters = find_near_duplicate_clusters(dataset.column_values(col))
        if clusters:
            examples = ", ".join(" vs ".join(f'"{s}"' for s in c[:2]) for c in clusters[:3])
            issues.append(QualityIssue(
                type="inconsistent", column=col, severity="warning",
                description=f'Possible inconsistent values in "{col}": {examples}',
                affected_count=sum(len(c) for c in clusters),
                suggestion="Standardize these values for accurate analysis",
            ))
            score -= C.QUALITY_NEAR_DUPLICATE_PENALTY * len(clusters)

    # ── Duplicate rows ──
    duplicates = count_duplicate_rows(dataset)
    if duplicates > 0:
        dup_pct = duplicates / total_rows * 100
        issues.append(QualityIssue(
            type="duplicate",
            severity="critical" if dup_pct > C.DUPLICATE_CRITICAL_PERCENT else "warning",
            description=f"{duplicates} duplicate rows detected ({dup_pct:.1f}%)",
            affected_count=duplicates,
            suggestion="Remove duplicates unless they represent valid repeated measurements",
        ))
        score -= min(dup_pct, C.QUALITY_DUPLICATE_PENALTY_CAP)

    final = int(max(0, min(100, round(score))))
    return DataQualityReport(score=final, issues=issues, summary=quality_summary(final))


# ═══════════════════════════════════════════════════════════════
# SYNTHETIC DATA SIGNALS
# ═══════════════════════════════════════════════════════════════

def _uniform_deviation(values: List[float]) -> float:
    buckets = [0] * C.UNIFORM_BUCKETS
    width = 100 / C.UNIFORM_BUCKETS
    for v in values:
        buckets[min(C.UNIFORM_BUCKETS - 1, int(v // width))] += 1
    expected = len(values) / C.UNIFORM_BUCKETS
    return max(abs(b - expected) / expected for b in buckets)


def _group_means(dataset: DataSet, cat_col: str, num_col: str) -> List[float]:
    cat_idx, num_idx = dataset.column_index(cat_col), dataset.column_index(num_col)
    groups: "OrderedDict[str, List[float]]" = OrderedDict()
    for row in dataset.rows:
        if is_missing(row[cat_idx]):
            continue
        value = to_number(row[num_idx])
        if value is None:
            continue
        groups.setdefault(str(row[cat_idx]), []).append(value)
    return [mean(v) for v in groups.values()]


def garbage_columns(analysis: AnalysisResult) -> List[str]:
    """Categorical columns whose most common value looks like random characters."""
    cols = []
    for col, stats in analysis.statistics.items():
        if stats.is_numeric or not stats.top_values:
            continue
        if is_garbage_text(stats.top_values[0]["value"]):
            cols.append(col)
    return cols


def detect_synthetic_data(dataset: DataSet, analysis: AnalysisResult) -> SyntheticVerdict:
    """
    Collect synthetic-data signals. The verdict is positive only with at
    least SYNTHETIC_MIN_REASONS independent reasons.
    """
    reasons: List[str] = []
    rows = dataset.row_count
    large = rows >= C.SYNTHETIC_MIN_ROWS

    # 1. No missing values at scale
    if analysis.summary.missing_percent == 0 and large:
        reasons.append("Zero missing values in a large dataset "
                       "(real data almost always has some missing values)")

    # 2. Flat correlation structure
    correlations = analysis.correlations
    if len(correlations) >= C.SYNTHETIC_MIN_CORRELATIONS:
        max_corr = max(abs(c.value) for c in correlations)
        if max_corr < C.CORRELATION_NEAR_ZERO:
            reasons.append(f"Near-zero correlations across all variables (max: {max_corr:.3f}) "
                           "- real data usually has some relationships")

    # 3. Perfectly uniform 0-100 columns
    numeric = analysis.numeric_stats()
    if large:
        for col, stats in numeric.items():
            if stats.min != 0 or stats.max != 100:
                continue
            values = dataset.numeric_values(col)
            if values and _uniform_deviation(values) <= C.UNIFORM_MAX_DEVIATION:
                reasons.append(f"{col} has suspiciously perfect uniform distribution "
                               "(each 20% bucket has ~equal counts)")

    # 4. Identical group means across a categorical split
    categorical = [c for c, s in analysis.statistics.items() if not s.is_numeric]
    numeric_cols = list(numeric)
    if categorical and numeric_cols and large:
        num_col = numeric_cols[0]
        num_std = numeric[num_col].std or 0.0
        for cat_col in categorical[:2]:
            means = _group_means(dataset, cat_col, num_col)
            if len(means) < C.GROUP_MEAN_MIN_GROUPS:
                continue
            grand = mean(means)
            max_diff = max(abs(m - grand) for m in means)
            if max_diff < C.GROUP_MEAN_MAX_DIFF and num_std > C.GROUP_MEAN_MIN_STD:
                reasons.append(f"{num_col} has virtually identical means across all {cat_col} groups "
                               f"({max_diff:.2f} max difference) - real data shows variation")

    # 5. Random-character text
    garbage = garbage_columns(analysis)
    if garbage:
        reasons.append(f"{', '.join(garbage)} contain random characters, not real data")

    return SyntheticVerdict(is_synthetic=len(reasons) >= C.SYNTHETIC_MIN_REASONS, reasons=reasons)
