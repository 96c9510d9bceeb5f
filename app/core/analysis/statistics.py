"""
Statistics Engine — Descriptive Statistics & Correlations
===========================================================
Computes per-column statistics and per-pair correlations for a DataSet.
Pure functions over already-loaded rows; nothing here touches I/O.

Capabilities:
  1. Numeric Profiling      — count, mean, median, std, quartiles, skewness
  2. Categorical Profiling  — unique count, ranked top values
  3. Pearson Correlation    — over jointly non-null pairs, ranked by |r|
  4. Trend Detection        — regression slope + first/last quarter change
  5. Outlier Detection      — IQR fences with z-score ranking
  6. Dataset Summary        — missing fraction, duplicate rows, type counts
  7. Association Measures   — Cramér's V, point-biserial correlation

Formulas use the POPULATION form throughout (divide by n): std, skewness,
z-scores and correlation are all consistent with each other.
"""

import json
import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from . import constants as C
from .dataset import CATEGORICAL, NUMERIC, Cell, DataSet, is_missing, to_number

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════════════════

@dataclass
class ColumnStatistics:
    """Statistics for one column. Numeric and categorical fields are disjoint."""
    column: str
    type: str                              # numeric | categorical
    count: int = 0                         # non-missing (numeric: parseable) values
    missing_count: int = 0
    # Numeric
    mean: Optional[float] = None
    median: Optional[float] = None
    std: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    q1: Optional[float] = None
    q3: Optional[float] = None
    skewness: Optional[float] = None
    outlier_indices: List[int] = field(default_factory=list)
    # Categorical
    unique_count: int = 0
    top_values: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_numeric(self) -> bool:
        return self.type == NUMERIC

    def to_dict(self) -> Dict[str, Any]:
        base = {"type": self.type, "count": self.count, "missing_count": self.missing_count}
        if self.is_numeric:
            base.update({
                "mean": self.mean, "median": self.median, "std": self.std,
                "min": self.min, "max": self.max, "q1": self.q1, "q3": self.q3,
                "skewness": self.skewness, "outlier_indices": list(self.outlier_indices),
            })
        else:
            base.update({"unique_count": self.unique_count, "top_values": list(self.top_values)})
        return base


@dataclass
class Correlation:
    column1: str
    column2: str
    value: float
    strength: str                          # strong | moderate | weak

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column1": self.column1, "column2": self.column2,
            "value": round(self.value, 6), "strength": self.strength,
        }


@dataclass
class Trend:
    column: str
    direction: str                         # up | down
    change_percent: float
    description: str
    slope: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column": self.column, "direction": self.direction,
            "change_percent": round(self.change_percent, 4),
            "description": self.description, "slope": round(self.slope, 6),
        }


@dataclass
class Outlier:
    column: str
    row_index: int
    value: float
    expected_min: float
    expected_max: float
    zscore: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class DataSummary:
    total_rows: int = 0
    total_columns: int = 0
    numeric_columns: int = 0
    categorical_columns: int = 0
    missing_percent: float = 0.0           # fraction of all cells, 0..1
    duplicate_rows: int = 0
    null_counts: Dict[str, int] = field(default_factory=dict)
    unique_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class AnalysisResult:
    """Everything the statistics pass produces for one DataSet."""
    statistics: Dict[str, ColumnStatistics]
    correlations: List[Correlation]
    trends: List[Trend]
    outliers: List[Outlier]
    summary: DataSummary

    def numeric_stats(self) -> Dict[str, ColumnStatistics]:
        return {k: v for k, v in self.statistics.items() if v.is_numeric}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statistics": {k: v.to_dict() for k, v in self.statistics.items()},
            "correlations": [c.to_dict() for c in self.correlations],
            "trends": [t.to_dict() for t in self.trends],
            "outliers": [o.to_dict() for o in self.outliers],
            "summary": self.summary.to_dict(),
        }


# ═══════════════════════════════════════════════════════════════
# PRIMITIVES
# ═══════════════════════════════════════════════════════════════

def mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def population_std(values: Sequence[float], mu: Optional[float] = None) -> float:
    if not values:
        return 0.0
    mu = mean(values) if mu is None else mu
    return math.sqrt(sum((v - mu) ** 2 for v in values) / len(values))


def calculate_stats(values: Sequence[float]) -> Dict[str, float]:
    """
    Basic numeric statistics. Quartiles use the nearest-rank rule
    sorted[floor(n * p)]; the median averages the middle pair for even n.
    """
    if not values:
        return {"count": 0, "mean": 0.0, "median": 0.0, "min": 0.0, "max": 0.0,
                "std": 0.0, "sum": 0.0, "q1": 0.0, "q3": 0.0}

    ordered = sorted(values)
    n = len(ordered)
    total = sum(ordered)
    mu = total / n
    if n % 2 == 0:
        median = (ordered[n // 2 - 1] + ordered[n // 2]) / 2
    else:
        median = ordered[n // 2]

    return {
        "count": n,
        "mean": mu,
        "median": median,
        "min": ordered[0],
        "max": ordered[-1],
        "std": population_std(ordered, mu),
        "sum": total,
        "q1": ordered[int(math.floor(n * 0.25))],
        "q3": ordered[int(math.floor(n * 0.75))],
    }


def calculate_skewness(values: Sequence[float]) -> Optional[float]:
    """Third standardized moment; None below 3 values, 0 for zero variance."""
    n = len(values)
    if n < C.MIN_SKEWNESS_COUNT:
        return None
    mu = mean(values)
    m2 = sum((v - mu) ** 2 for v in values) / n
    if m2 <= 0:
        return 0.0
    m3 = sum((v - mu) ** 3 for v in values) / n
    return m3 / (m2 ** 1.5)


def calculate_categorical_stats(values: Sequence[Cell]) -> Dict[str, Any]:
    """Unique count plus top values by count (ties keep first-seen order)."""
    counts: Counter = Counter()
    missing = 0
    for v in values:
        if is_missing(v):
            missing += 1
        else:
            counts[category_key(v)] += 1

    # Counter preserves insertion order and sorted() is stable
    ranked = sorted(counts.items(), key=lambda kv: -kv[1])
    return {
        "count": len(values) - missing,
        "missing_count": missing,
        "unique_count": len(counts),
        "top_values": [{"value": k, "count": c} for k, c in ranked[:C.TOP_VALUES_LIMIT]],
    }


def category_key(value: Cell) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def correlation_strength(value: float) -> str:
    magnitude = abs(value)
    if magnitude >= C.CORRELATION_STRONG:
        return "strong"
    if magnitude >= C.CORRELATION_MODERATE:
        return "moderate"
    return "weak"


def pearson(x: Sequence[float], y: Sequence[float]) -> Optional[float]:
    """
    Pearson r, or None when it is undefined (length mismatch, fewer than
    2 pairs, or zero variance on either side).
    """
    n = len(x)
    if n != len(y) or n < C.MIN_JOINT_OBSERVATIONS:
        return None
    mx, my = mean(x), mean(y)
    sxy = sum((a - mx) * (b - my) for a, b in zip(x, y))
    sxx = sum((a - mx) ** 2 for a in x)
    syy = sum((b - my) ** 2 for b in y)
    if sxx <= 0 or syy <= 0:
        return None
    r = sxy / math.sqrt(sxx * syy)
    return max(-1.0, min(1.0, r))


def joint_values(dataset: DataSet, col1: str, col2: str) -> Tuple[List[float], List[float]]:
    """Values of two columns restricted to rows where both are numeric."""
    i1, i2 = dataset.column_index(col1), dataset.column_index(col2)
    xs, ys = [], []
    for row in dataset.rows:
        a, b = to_number(row[i1]), to_number(row[i2])
        if a is not None and b is not None:
            xs.append(a)
            ys.append(b)
    return xs, ys


def calculate_zscore(value: float, mu: float, std: float) -> float:
    if not std:
        return 0.0
    return (value - mu) / std


def detect_outliers_zscore(values: Sequence[float], threshold: float = 3.0) -> Dict[str, List]:
    """Indices (and z-scores) of values whose |z| exceeds threshold."""
    if len(values) < 3:
        return {"indices": [], "zscores": []}
    mu = mean(values)
    std = population_std(values, mu)
    if std == 0:
        return {"indices": [], "zscores": []}
    indices, zscores = [], []
    for i, v in enumerate(values):
        z = (v - mu) / std
        if abs(z) > threshold:
            indices.append(i)
            zscores.append(z)
    return {"indices": indices, "zscores": zscores}


def calculate_cramers_v(x: Sequence[Cell], y: Sequence[Cell]) -> float:
    """Cramér's V association between two categorical sequences (0..1)."""
    pairs = [(str(a), str(b)) for a, b in zip(x, y) if not is_missing(a) and not is_missing(b)]
    n = len(pairs)
    if n < 2:
        return 0.0
    x_levels = sorted({a for a, _ in pairs})
    y_levels = sorted({b for _, b in pairs})
    k = min(len(x_levels), len(y_levels))
    if k < 2:
        return 0.0

    observed = Counter(pairs)
    x_totals = Counter(a for a, _ in pairs)
    y_totals = Counter(b for _, b in pairs)
    chi2 = 0.0
    for a in x_levels:
        for b in y_levels:
            expected = x_totals[a] * y_totals[b] / n
            if expected > 0:
                chi2 += (observed[(a, b)] - expected) ** 2 / expected
    return min(1.0, math.sqrt(chi2 / (n * (k - 1))))


def calculate_point_biserial(numeric: Sequence[float], categorical: Sequence[Cell]) -> float:
    """
    Point-biserial correlation of a numeric sequence against membership in
    the most common category (vs. all other categories).
    """
    if len(numeric) != len(categorical):
        return 0.0
    pairs = []
    for v, c in zip(numeric, categorical):
        num = to_number(v)
        if num is None or is_missing(c):
            continue
        pairs.append((num, str(c)))
    counts = Counter(c for _, c in pairs)
    if len(counts) < 2:
        return 0.0
    reference = counts.most_common(1)[0][0]
    group = [v for v, c in pairs if c == reference]
    rest = [v for v, c in pairs if c != reference]
    all_values = [v for v, _ in pairs]
    std = population_std(all_values)
    if std == 0:
        return 0.0
    n = len(all_values)
    p, q = len(group) / n, len(rest) / n
    r = (mean(group) - mean(rest)) / std * math.sqrt(p * q)
    return max(-1.0, min(1.0, r))


# ═══════════════════════════════════════════════════════════════
# TREND DETECTION
# ═══════════════════════════════════════════════════════════════

def detect_trend(values: Sequence[float]) -> Dict[str, Any]:
    """
    Slope by least squares over the row index, change percent comparing
    the first and last quarter means.
    """
    n = len(values)
    if n < 2:
        return {"direction": "stable", "change_percent": 0.0, "slope": 0.0}

    x_mean = (n - 1) / 2
    y_mean = mean(values)
    num = sum((i - x_mean) * (v - y_mean) for i, v in enumerate(values))
    den = sum((i - x_mean) ** 2 for i in range(n))
    slope = num / den if den else 0.0

    quarter = int(math.ceil(n / 4))
    first = mean(values[:quarter])
    last = mean(values[-quarter:])
    if first == 0:
        base = abs(y_mean) if abs(y_mean) > 0 else 1.0
        change = (last - first) / base * 100 if last != 0 else 0.0
    else:
        change = (last - first) / abs(first) * 100

    threshold = abs(y_mean) * C.TREND_SLOPE_FACTOR / n
    if slope > threshold:
        direction = "up"
    elif slope < -threshold:
        direction = "down"
    else:
        direction = "stable"
    return {"direction": direction, "change_percent": change, "slope": slope}


def describe_trend(column: str, direction: str, change_percent: float) -> str:
    magnitude = f"{abs(change_percent):.1f}"
    if direction == "up":
        return f"{column} shows upward trend (+{magnitude}%)"
    if direction == "down":
        return f"{column} shows downward trend (-{magnitude}%)"
    return f"{column} remains stable"


# ═══════════════════════════════════════════════════════════════
# FULL ANALYSIS
# ═══════════════════════════════════════════════════════════════

def count_duplicate_rows(dataset: DataSet) -> int:
    """Rows whose exact serialized form was already seen earlier."""
    seen = set()
    duplicates = 0
    for row in dataset.rows:
        key = json.dumps(list(row), default=str)
        if key in seen:
            duplicates += 1
        else:
            seen.add(key)
    return duplicates


def _numeric_column_stats(dataset: DataSet, column: str) -> ColumnStatistics:
    raw = dataset.column_values(column)
    missing = sum(1 for v in raw if is_missing(v))
    values = dataset.numeric_values(column)
    basic = calculate_stats(values)
    col = ColumnStatistics(column=column, type=NUMERIC, count=len(values), missing_count=missing)
    if values:
        col.mean = basic["mean"]
        col.median = basic["median"]
        col.std = basic["std"]
        col.min = basic["min"]
        col.max = basic["max"]
        col.q1 = basic["q1"]
        col.q3 = basic["q3"]
        col.skewness = calculate_skewness(values)
    return col


def _categorical_column_stats(dataset: DataSet, column: str) -> ColumnStatistics:
    cat = calculate_categorical_stats(dataset.column_values(column))
    return ColumnStatistics(
        column=column, type=CATEGORICAL,
        count=cat["count"], missing_count=cat["missing_count"],
        unique_count=cat["unique_count"], top_values=cat["top_values"],
    )


def compute_correlations(dataset: DataSet, columns: Optional[List[str]] = None) -> List[Correlation]:
    """Pearson r for every unordered numeric pair, sorted by |r| descending."""
    cols = columns if columns is not None else dataset.numeric_columns
    results = []
    for i in range(len(cols)):
        for j in range(i + 1, len(cols)):
            xs, ys = joint_values(dataset, cols[i], cols[j])
            r = pearson(xs, ys)
            if r is None:
                continue
            results.append(Correlation(cols[i], cols[j], r, correlation_strength(r)))
    results.sort(key=lambda c: -abs(c.value))
    return results


def _compute_trends(dataset: DataSet) -> List[Trend]:
    trends = []
    for col in dataset.numeric_columns:
        values = dataset.numeric_values(col)
        if len(values) < C.TREND_MIN_VALUES:
            continue
        t = detect_trend(values)
        direction = t["direction"]
        if direction == "stable":
            if abs(t["change_percent"]) <= C.TREND_MIN_CHANGE_PERCENT:
                continue
            # flat slope but the ends differ: report the side the ends moved to
            direction = "up" if t["change_percent"] > 0 else "down"
        trends.append(Trend(
            column=col, direction=direction, change_percent=t["change_percent"],
            description=describe_trend(col, direction, t["change_percent"]),
            slope=t["slope"],
        ))
    return trends


def _compute_outliers(dataset: DataSet, statistics: Dict[str, ColumnStatistics]) -> List[Outlier]:
    outliers = []
    for col in dataset.numeric_columns:
        stats = statistics[col]
        if stats.q1 is None or stats.q3 is None:
            continue
        iqr = stats.q3 - stats.q1
        lower = stats.q1 - C.IQR_MULTIPLIER * iqr
        upper = stats.q3 + C.IQR_MULTIPLIER * iqr
        idx = dataset.column_index(col)
        for row_index, row in enumerate(dataset.rows):
            value = to_number(row[idx])
            if value is None or lower <= value <= upper:
                continue
            stats.outlier_indices.append(row_index)
            outliers.append(Outlier(
                column=col, row_index=row_index, value=value,
                expected_min=lower, expected_max=upper,
                zscore=calculate_zscore(value, stats.mean or 0.0, stats.std or 0.0),
            ))
    outliers.sort(key=lambda o: -abs(o.zscore))
    return outliers


def analyze_dataset(dataset: DataSet) -> AnalysisResult:
    """Run the full statistics pass. Keys of `statistics` equal dataset.columns."""
    statistics: Dict[str, ColumnStatistics] = {}
    summary = DataSummary(total_rows=dataset.row_count, total_columns=len(dataset.columns))
    total_missing = 0

    for col, col_type in zip(dataset.columns, dataset.types):
        raw = dataset.column_values(col)
        present = [v for v in raw if not is_missing(v)]
        summary.null_counts[col] = len(raw) - len(present)
        summary.unique_counts[col] = len({category_key(v) for v in present})
        total_missing += summary.null_counts[col]

        if col_type == NUMERIC:
            summary.numeric_columns += 1
            statistics[col] = _numeric_column_stats(dataset, col)
        else:
            summary.categorical_columns += 1
            statistics[col] = _categorical_column_stats(dataset, col)

    total_cells = dataset.row_count * len(dataset.columns)
    summary.missing_percent = total_missing / total_cells if total_cells else 0.0
    summary.duplicate_rows = count_duplicate_rows(dataset)

    correlations = compute_correlations(dataset)
    trends = _compute_trends(dataset)
    outliers = _compute_outliers(dataset, statistics)

    logger.debug(
        f"Statistics for '{dataset.name}': {len(statistics)} columns, "
        f"{len(correlations)} correlations, {len(trends)} trends, {len(outliers)} outliers"
    )
    return AnalysisResult(
        statistics=statistics, correlations=correlations,
        trends=trends, outliers=outliers, summary=summary,
    )
