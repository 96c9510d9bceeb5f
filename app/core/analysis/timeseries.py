"""
Time-Series Engine — Change Points & Seasonality
==================================================
Treats row order as time order (no timestamp column needed).

  1. Change Points  — sliding-window two-sample t test, Bonferroni over positions
  2. Seasonality    — Ljung-Box bounded autocorrelation peak, on the
                      linearly detrended series
  3. Trend          — slope + quarter comparison (shared with the statistics pass)

Short or constant series never raise; they return empty / not-detected.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from scipy import stats as sps

from . import constants as C
from .dataset import DataSet
from .statistics import detect_trend

logger = logging.getLogger(__name__)

_PERIOD_NAMES = {4: "quarterly", 7: "weekly", 12: "monthly", 24: "hourly", 52: "yearly"}


@dataclass
class ChangePoint:
    index: int
    before_mean: float
    after_mean: float
    direction: str              # increase | decrease
    significance: float         # |after - before| in pooled standard deviations
    p_value: float              # Bonferroni-adjusted over scanned positions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "before_mean": round(self.before_mean, 4),
            "after_mean": round(self.after_mean, 4),
            "direction": self.direction,
            "significance": round(self.significance, 3),
            "p_value": round(self.p_value, 6),
        }


@dataclass
class SeasonalityResult:
    detected: bool
    period: Optional[int] = None
    strength: Optional[float] = None
    description: str = "No seasonality detected"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detected": self.detected, "period": self.period,
            "strength": None if self.strength is None else round(self.strength, 4),
            "description": self.description,
        }


@dataclass
class TimeSeriesAnalysis:
    change_points: Dict[str, List[ChangePoint]] = field(default_factory=dict)
    seasonality: Dict[str, SeasonalityResult] = field(default_factory=dict)
    columns: List[str] = field(default_factory=list)

    @property
    def change_point_count(self) -> int:
        return sum(len(v) for v in self.change_points.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "change_points": {k: [cp.to_dict() for cp in v] for k, v in self.change_points.items()},
            "seasonality": {k: v.to_dict() for k, v in self.seasonality.items()},
            "columns": list(self.columns),
        }


# ──────────────────────────────────────────────────────────
# CHANGE POINTS
# ──────────────────────────────────────────────────────────

def detect_change_points(
    values: Sequence[float],
    window_size: int = C.CHANGE_POINT_WINDOW,
    threshold: float = C.CHANGE_POINT_THRESHOLD,
    min_points: int = C.TIMESERIES_MIN_POINTS,
    alpha: float = C.CHANGE_POINT_ALPHA,
) -> List[ChangePoint]:
    """
    Flag indices where the mean of the next `window_size` values differs
    from the mean of the previous `window_size` values.

    Every position is scored with a pooled two-sample t statistic
    (df = 2·window_size − 2). A position is kept when the shift is more
    than `threshold` pooled standard deviations AND the t statistic clears
    the Bonferroni critical value for `alpha` across all scanned positions.
    Returns peaks only, at least `window_size` apart, in index order.
    """
    series = np.asarray(values, dtype=float)
    n = series.size
    if n < max(min_points, 2 * window_size) or window_size < 2:
        return []
    overall_std = float(series.std())
    if overall_std == 0:
        return []

    positions = n - 2 * window_size + 1
    df = 2 * window_size - 2
    t_critical = float(sps.t.isf(alpha / (2 * positions), df))
    se_factor = float(np.sqrt(2.0 / window_size))

    # Perfectly flat windows would give an infinite score
    std_floor = max(overall_std * 0.1, 1e-9)
    scored = []
    for i in range(window_size, n - window_size + 1):
        before = series[i - window_size:i]
        after = series[i:i + window_size]
        pooled = float(np.sqrt((before.var(ddof=1) + after.var(ddof=1)) / 2))
        diff = float(after.mean() - before.mean())
        significance = abs(diff) / max(pooled, std_floor)
        t_stat = significance / se_factor
        if significance > threshold and t_stat > t_critical:
            p_value = min(1.0, float(2 * sps.t.sf(t_stat, df)) * positions)
            scored.append((significance, i, float(before.mean()), float(after.mean()), p_value))

    accepted: List[ChangePoint] = []
    for significance, i, before_mean, after_mean, p_value in sorted(scored, key=lambda s: (-s[0], s[1])):
        if any(abs(i - cp.index) <= window_size for cp in accepted):
            continue
        accepted.append(ChangePoint(
            index=i, before_mean=before_mean, after_mean=after_mean,
            direction="increase" if after_mean > before_mean else "decrease",
            significance=significance, p_value=p_value,
        ))
    accepted.sort(key=lambda cp: cp.index)
    return accepted


# ──────────────────────────────────────────────────────────
# SEASONALITY
# ──────────────────────────────────────────────────────────

def _autocorrelation(residuals: np.ndarray, lag: int) -> float:
    denom = float(np.dot(residuals, residuals))
    if denom == 0 or lag >= residuals.size:
        return 0.0
    return float(np.dot(residuals[:-lag], residuals[lag:]) / denom)


def detect_seasonality(values: Sequence[float], max_period: Optional[int] = None) -> SeasonalityResult:
    """
    Find the repeating period with the strongest autocorrelation peak.

    A period qualifies when it is a local ACF peak and clears both
    SEASONALITY_MIN_STRENGTH and the white-noise bound for its lag. The
    bound comes from the Ljung-Box term n(n+2)·r²/(n−k), which is
    chi-square(1) for noise, tested one-sided at SEASONALITY_ALPHA split
    across all candidate lags. Among periods within tolerance of the best,
    the shortest wins so multiples of the true period are not reported.
    """
    series = np.asarray(values, dtype=float)
    n = series.size
    if n < C.SEASONALITY_MIN_POINTS:
        return SeasonalityResult(detected=False, description="Not enough data to assess seasonality")

    # Remove a linear trend so drift is not mistaken for a cycle
    x = np.arange(n, dtype=float)
    slope, intercept = np.polyfit(x, series, 1)
    residuals = series - (slope * x + intercept)
    if float(np.abs(residuals).max()) < 1e-9:
        return SeasonalityResult(detected=False)

    upper = min(n // 2, max_period or C.SEASONALITY_MAX_PERIOD)
    if upper < 2:
        return SeasonalityResult(detected=False)
    acf = {lag: _autocorrelation(residuals, lag) for lag in range(1, upper + 2)}

    lags = range(2, upper + 1)
    z_critical = float(sps.norm.isf(C.SEASONALITY_ALPHA / len(lags)))
    peaks = {}
    for lag in lags:
        value = acf[lag]
        bound = max(C.SEASONALITY_MIN_STRENGTH, z_critical * float(np.sqrt((n - lag) / (n * (n + 2)))))
        if value >= bound and value > acf[lag - 1] and value >= acf[lag + 1]:
            peaks[lag] = value
    if not peaks:
        return SeasonalityResult(detected=False)

    best = max(peaks.values())
    period = min(lag for lag, v in peaks.items() if v >= best - C.SEASONALITY_PERIOD_TOLERANCE)
    strength = min(1.0, peaks[period])
    label = _PERIOD_NAMES.get(period)
    if label:
        description = f"Repeating {label} cycle every {period} observations (strength {strength:.2f})"
    else:
        description = f"Repeating cycle every {period} observations (strength {strength:.2f})"
    return SeasonalityResult(detected=True, period=period, strength=strength, description=description)


# ──────────────────────────────────────────────────────────
# DATASET PASS
# ──────────────────────────────────────────────────────────

def analyze_series(values: Sequence[float]) -> Dict[str, Any]:
    """Change points, seasonality and trend for one ordered sequence."""
    return {
        "change_points": detect_change_points(values),
        "seasonality": detect_seasonality(values),
        "trend": detect_trend(values),
    }


def analyze_time_series(dataset: DataSet) -> TimeSeriesAnalysis:
    """Run change-point and seasonality detection on every long-enough numeric column."""
    result = TimeSeriesAnalysis(columns=dataset.numeric_columns)
    for col in result.columns:
        values = dataset.numeric_values(col)
        if len(values) < C.TIMESERIES_MIN_POINTS:
            continue
        points = detect_change_points(values)
        if points:
            result.change_points[col] = points
        season = detect_seasonality(values)
        if season.detected:
            result.seasonality[col] = season
    logger.debug(
        f"Time series: {result.change_point_count} change points, "
        f"{len(result.seasonality)} seasonal columns"
    )
    return result
