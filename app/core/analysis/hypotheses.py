"""
Hypothesis Engine — Testable Hypotheses from Data Patterns
============================================================
Turns correlations, group differences, trends and outliers into ranked,
testable hypotheses, and re-tests a hypothesis against the data.

Hypothesis types:
  1. correlation       — "X may drive Y", from |r| ≥ 0.4 (top 5 pairs)
  2. group_difference  — "A affects B", Welch's t-test between extreme groups
  3. trend             — "X is increasing/decreasing"
  4. anomaly           — "X contains severe outliers"

p-values come from scipy.stats (t distribution), not a normal
approximation.
"""

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from scipy import stats as sps

from . import constants as C
from .dataset import DataSet, is_missing, to_number
from .statistics import AnalysisResult, calculate_stats, category_key, joint_values, mean, pearson

logger = logging.getLogger(__name__)

CAUSE_KEYWORDS = ["input", "spend", "investment", "effort", "time", "cost"]
EFFECT_KEYWORDS = ["output", "revenue", "result", "return", "outcome", "sales"]
TIME_KEYWORDS = ["date", "time", "year", "month", "day", "period"]
COMMON_CONFOUNDERS = ["time", "date", "size", "scale", "population", "region"]


# ═══════════════════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════════════════

@dataclass
class HypothesisEvidence:
    type: str                   # statistic | pattern | comparison | test
    description: str
    interpretation: str
    value: Optional[float] = None
    p_value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class Hypothesis:
    id: str
    type: str                   # correlation | group_difference | trend | anomaly
    title: str
    description: str
    confidence: float           # 0-100
    evidence: List[HypothesisEvidence] = field(default_factory=list)
    interpretation: str = "correlational"   # causal | correlational | reverse_causal | confounded
    confounders: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    variables: List[str] = field(default_factory=list)
    testable: bool = True
    test_method: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "confidence": self.confidence,
            "evidence": [e.to_dict() for e in self.evidence],
            "interpretation": self.interpretation,
            "confounders": list(self.confounders),
            "recommendations": list(self.recommendations),
            "variables": list(self.variables),
            "testable": self.testable,
            "test_method": self.test_method,
        }


@dataclass
class HypothesisTestResult:
    hypothesis_id: str
    supported: bool
    confidence: float
    interpretation: str
    caveats: List[str] = field(default_factory=list)
    test_statistic: Optional[float] = None
    p_value: Optional[float] = None
    effect_size: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


# ──────────────────────────────────────────────────────────
# STATISTICAL HELPERS
# ──────────────────────────────────────────────────────────

def welch_t_test(group1: List[float], group2: List[float]) -> Dict[str, Any]:
    """Welch's t-test. Degenerate inputs give t=0, p=1."""
    if len(group1) < 2 or len(group2) < 2:
        return {"t_statistic": 0.0, "p_value": 1.0, "significant": False}
    if calculate_stats(group1)["std"] == 0 and calculate_stats(group2)["std"] == 0:
        return {"t_statistic": 0.0, "p_value": 1.0, "significant": False}
    result = sps.ttest_ind(group1, group2, equal_var=False)
    t, p = float(result.statistic), float(result.pvalue)
    if math.isnan(t) or math.isnan(p):
        return {"t_statistic": 0.0, "p_value": 1.0, "significant": False}
    return {"t_statistic": t, "p_value": p, "significant": p < C.SIGNIFICANCE_LEVEL}


def correlation_p_value(r: float, n: int) -> float:
    """Two-sided p-value of Pearson r with n observations."""
    if n < 3:
        return 1.0
    if abs(r) >= 1:
        return 0.0
    t = r * math.sqrt((n - 2) / (1 - r * r))
    return float(2 * sps.t.sf(abs(t), n - 2))


def _format_p(p: float) -> str:
    return "<0.001" if p < 0.001 else f"={p:.3f}"


def _groups(dataset: DataSet, cat_col: str, num_col: str) -> "OrderedDict[str, List[float]]":
    cat_idx, num_idx = dataset.column_index(cat_col), dataset.column_index(num_col)
    groups: "OrderedDict[str, List[float]]" = OrderedDict()
    for row in dataset.rows:
        num = to_number(row[num_idx])
        if num is None or is_missing(row[cat_idx]):
            continue
        groups.setdefault(category_key(row[cat_idx]), []).append(num)
    return groups


def interpret_correlation(col1: str, col2: str) -> str:
    """Causal reading suggested by column names; correlational by default."""
    n1, n2 = col1.lower(), col2.lower()
    if any(k in n1 for k in CAUSE_KEYWORDS) and any(k in n2 for k in EFFECT_KEYWORDS):
        return "causal"
    if any(k in n2 for k in CAUSE_KEYWORDS) and any(k in n1 for k in EFFECT_KEYWORDS):
        return "reverse_causal"
    if any(k in n1 for k in TIME_KEYWORDS):
        return "causal"
    if any(k in n2 for k in TIME_KEYWORDS):
        return "reverse_causal"
    return "correlational"


def find_confounders(col1: str, col2: str, analysis: AnalysisResult, columns: List[str]) -> List[str]:
    """Variables correlated with both sides, then columns with confounder-like names."""
    with1: Dict[str, float] = {}
    with2: Dict[str, float] = {}
    for corr in analysis.correlations:
        pair = (corr.column1, corr.column2)
        if col1 in pair:
            other = corr.column2 if corr.column1 == col1 else corr.column1
            if other != col2:
                with1[other] = abs(corr.value)
        if col2 in pair:
            other = corr.column2 if corr.column1 == col2 else corr.column1
            if other != col1:
                with2[other] = abs(corr.value)

    confounders = [v for v, r1 in with1.items()
                   if r1 > C.CONFOUNDER_MIN_CORRELATION and with2.get(v, 0) > C.CONFOUNDER_MIN_CORRELATION]
    for col in columns:
        if col in (col1, col2) or col in confounders:
            continue
        if any(c in col.lower() for c in COMMON_CONFOUNDERS):
            confounders.append(col)
    return confounders[:5]


# ═══════════════════════════════════════════════════════════════
# HYPOTHESIS GENERATOR
# ═══════════════════════════════════════════════════════════════

class HypothesisGenerator:
    """Generates hypotheses; ids are H1, H2, ... in generation order."""

    def __init__(self, dataset: DataSet, analysis: AnalysisResult):
        self.dataset = dataset
        self.analysis = analysis
        self._counter = 0

    def _next_id(self) -> str:
        self._counter += 1
        return f"H{self._counter}"

    def generate(self, max_hypotheses: int = C.DEFAULT_MAX_HYPOTHESES) -> List[Hypothesis]:
        hypotheses: List[Hypothesis] = []
        hypotheses.extend(self._correlation_hypotheses())
        hypotheses.extend(self._group_difference_hypotheses())
        hypotheses.extend(self._trend_hypotheses())
        hypotheses.extend(self._anomaly_hypotheses())
        hypotheses.sort(key=lambda h: -h.confidence)
        return hypotheses[:max_hypotheses]

    def _correlation_hypotheses(self) -> List[Hypothesis]:
        out = []
        rows = self.dataset.row_count
        significant = [c for c in self.analysis.correlations if abs(c.value) >= C.HYPOTHESIS_MIN_CORRELATION]
        for corr in significant[:5]:
            c1, c2, r = corr.column1, corr.column2, corr.value
            direction = "positive" if r > 0 else "negative"
            interpretation = interpret_correlation(c1, c2)
            confounders = find_confounders(c1, c2, self.analysis, list(self.dataset.columns))

            confidence = round(abs(r) * 80)
            if rows > 1000:
                confidence += 10
            elif rows < 100:
                confidence -= 10
            if len(confounders) > 2:
                confidence -= 10
            confidence = max(30, min(95, confidence))

            evidence = [
                HypothesisEvidence(
                    "statistic", f"Pearson correlation coefficient: {r:.3f}",
                    f"This indicates a {corr.strength} {direction} relationship between the variables.",
                    value=r,
                ),
                HypothesisEvidence(
                    "pattern",
                    f"As {c1} increases, {c2} {'tends to increase' if r > 0 else 'tends to decrease'}.",
                    "This pattern is consistent across the dataset.",
                ),
            ]
            if interpretation in ("correlational", "confounded"):
                evidence.append(HypothesisEvidence(
                    "pattern", "Correlation does not imply causation",
                    (f"Potential confounders ({', '.join(confounders)}) may explain this relationship."
                     if confounders else
                     "Consider experimental design or instrumental variables to establish causality."),
                ))

            recs = []
            if interpretation == "correlational":
                recs += ["Run controlled experiment to test causality", "Consider instrumental variable analysis"]
            if confounders:
                recs.append(f"Control for potential confounders: {', '.join(confounders[:3])}")
            if abs(r) > C.CORRELATION_STRONG:
                recs.append("Strong relationship - investigate underlying mechanism")
            if abs(r) < 0.5:
                recs.append("Moderate relationship - other factors likely involved")
            recs.append(f"Build regression model with {c1} predicting {c2}")

            out.append(Hypothesis(
                id=self._next_id(), type="correlation",
                title=f"{c1} may {'drive' if interpretation == 'causal' else 'relate to'} {c2}",
                description=(f"{c1} {'increases with' if r > 0 else 'decreases as'} {c2} "
                             f"(r={r:.2f}, {corr.strength} {direction} correlation)"),
                confidence=confidence, evidence=evidence, interpretation=interpretation,
                confounders=confounders, recommendations=recs, variables=[c1, c2],
                test_method="Linear regression with significance testing",
            ))
        return out

    def _group_difference_hypotheses(self) -> List[Hypothesis]:
        out = []
        stats = self.analysis.statistics
        categorical = [c for c in self.dataset.categorical_columns
                       if stats[c].unique_count <= C.SEGMENT_MAX_CARDINALITY and len(stats[c].top_values) >= 2]
        numeric = self.dataset.numeric_columns[:3]

        for cat_col in categorical[:3]:
            for num_col in numeric:
                groups = _groups(self.dataset, cat_col, num_col)
                sized = [(name, vals) for name, vals in groups.items() if len(vals) >= C.GROUP_MIN_MEMBERS]
                if len(sized) < 2:
                    continue
                ranked = sorted(sized, key=lambda g: -mean(g[1]))
                (top_name, top_vals), (bottom_name, bottom_vals) = ranked[0], ranked[-1]
                top_mean, bottom_mean = mean(top_vals), mean(bottom_vals)
                midpoint = (top_mean + bottom_mean) / 2
                diff_pct = abs(top_mean - bottom_mean) / abs(midpoint) * 100 if midpoint else 0.0
                if diff_pct < C.GROUP_MIN_DIFF_PERCENT:
                    continue

                test = welch_t_test(top_vals, bottom_vals)
                if test["significant"]:
                    confidence = min(90.0, max(40.0, 70 + (1 - test["p_value"]) * 20))
                else:
                    confidence = 40.0
                recs = [
                    f"Investigate what drives {top_name}'s higher {num_col}",
                    "Consider controlling for other variables that may explain the difference",
                ]
                if len(ranked) > 2:
                    recs.append(f"Review all {len(ranked)} groups for patterns")

                out.append(Hypothesis(
                    id=self._next_id(), type="group_difference",
                    title=f"{cat_col} affects {num_col}",
                    description=f"{top_name} has {diff_pct:.0f}% higher {num_col} than {bottom_name}",
                    confidence=round(confidence, 1),
                    evidence=[
                        HypothesisEvidence("comparison", f"{top_name}: mean={top_mean:.2f}, n={len(top_vals)}",
                                           f"Highest {num_col} among {cat_col} groups", value=top_mean),
                        HypothesisEvidence("comparison", f"{bottom_name}: mean={bottom_mean:.2f}, n={len(bottom_vals)}",
                                           f"Lowest {num_col} among {cat_col} groups", value=bottom_mean),
                        HypothesisEvidence(
                            "test", f"t-test: t={test['t_statistic']:.2f}, p{_format_p(test['p_value'])}",
                            ("Statistically significant difference" if test["significant"]
                             else "Difference may not be statistically significant"),
                            p_value=test["p_value"],
                        ),
                    ],
                    recommendations=recs, variables=[cat_col, num_col],
                    test_method="Welch's t-test or ANOVA",
                ))
        return out

    def _trend_hypotheses(self) -> List[Hypothesis]:
        out = []
        for trend in self.analysis.trends[:5]:
            change = trend.change_percent
            if abs(change) < C.TREND_MIN_CHANGE_PERCENT:
                continue
            confidence = 50
            if abs(change) > 50:
                confidence += 25
            elif abs(change) > 20:
                confidence += 15
            if self.dataset.row_count > 100:
                confidence += 10
            up = trend.direction == "up"
            word = "increasing" if up else "decreasing"
            out.append(Hypothesis(
                id=self._next_id(), type="trend",
                title=f"{trend.column} is {word}",
                description=f"{trend.column} shows a {abs(change):.1f}% {word} trend over the dataset",
                confidence=min(85, confidence),
                evidence=[
                    HypothesisEvidence("statistic", f"Change: {'+' if change > 0 else ''}{change:.1f}%",
                                       trend.description, value=change),
                    HypothesisEvidence("pattern", f"Trend direction: {trend.direction}",
                                       f"This suggests {'growth or improvement' if up else 'decline or degradation'} "
                                       f"in {trend.column}."),
                ],
                confounders=[
                    "Time-related factors (seasonality, business cycles)",
                    "External events not captured in data",
                    "Changes in data collection methodology",
                ],
                recommendations=[
                    "Investigate root cause of the trend",
                    "Check for seasonality or cyclical patterns",
                    "Consider if trend is expected or concerning",
                    "Significant trend - may require action" if abs(change) > 10 else "Monitor for continued trend",
                ],
                variables=[trend.column],
                test_method="Linear regression with time as predictor",
            ))
        return out

    def _anomaly_hypotheses(self) -> List[Hypothesis]:
        out = []
        by_column: "OrderedDict[str, list]" = OrderedDict()
        for o in self.analysis.outliers:
            by_column.setdefault(o.column, []).append(o)
        total = self.dataset.row_count or 1

        for column, outliers in by_column.items():
            count = len(outliers)
            pct = count / total * 100
            max_z = max(abs(o.zscore) for o in outliers)
            severity = "extreme" if max_z > 4 else "severe" if max_z > 3 else "moderate"
            if pct > 5:
                confidence = 70
            elif pct > 2:
                confidence = 60
            else:
                confidence = 50
            if max_z > 5:
                confidence += 10

            recs = [
                "Investigate outlier records for data entry errors",
                "Determine if outliers represent valid edge cases",
            ]
            if pct > 3:
                recs.append("Consider robust statistics if outliers are valid")
            if max_z > 4:
                recs.append("Extreme outliers may significantly skew analysis")
            first = outliers[0]
            out.append(Hypothesis(
                id=self._next_id(), type="anomaly",
                title=f"{column} contains {severity} outliers",
                description=f"{count} values ({pct:.1f}%) are outside expected range",
                confidence=min(85, confidence),
                evidence=[
                    HypothesisEvidence("statistic", f"{count} outliers detected using IQR method",
                                       f"Values outside [{first.expected_min:.2f}, {first.expected_max:.2f}]",
                                       value=count),
                    HypothesisEvidence("pattern", f"Max z-score: {max_z:.2f}",
                                       f"{severity.capitalize()}ly unusual values present", value=max_z),
                ],
                recommendations=recs, variables=[column],
                test_method="Investigate individual records; consider Grubbs' test",
            ))
        return out


def generate_hypotheses(
    dataset: DataSet,
    analysis: AnalysisResult,
    max_hypotheses: int = C.DEFAULT_MAX_HYPOTHESES,
) -> List[Hypothesis]:
    """Highest-confidence hypotheses first, capped at max_hypotheses."""
    return HypothesisGenerator(dataset, analysis).generate(max_hypotheses)


# ═══════════════════════════════════════════════════════════════
# HYPOTHESIS TESTING
# ═══════════════════════════════════════════════════════════════

def _missing_columns(hypothesis: Hypothesis) -> HypothesisTestResult:
    return HypothesisTestResult(
        hypothesis_id=hypothesis.id, supported=False, confidence=0,
        interpretation="Could not find required columns",
        caveats=["Column names may have changed"],
    )


def _test_correlation(dataset: DataSet, h: Hypothesis) -> HypothesisTestResult:
    xs, ys = joint_values(dataset, h.variables[0], h.variables[1])
    if len(xs) < 10:
        return HypothesisTestResult(
            hypothesis_id=h.id, supported=False, confidence=0,
            interpretation="Insufficient paired data points",
            caveats=["Need at least 10 paired observations"],
        )
    r = pearson(xs, ys) or 0.0
    p = correlation_p_value(r, len(xs))
    supported = abs(r) >= C.HYPOTHESIS_MIN_CORRELATION and p < C.SIGNIFICANCE_LEVEL
    caveats = ["Correlation does not imply causation"]
    if h.confounders:
        caveats.append(f"Consider controlling for: {', '.join(h.confounders)}")
    return HypothesisTestResult(
        hypothesis_id=h.id, supported=supported, confidence=round(abs(r) * 100),
        test_statistic=r, p_value=p, effect_size=r,
        interpretation=(f"Hypothesis supported: r={r:.3f}, p{_format_p(p)}" if supported
                        else f"Hypothesis not supported: r={r:.3f}, p={p:.3f}"),
        caveats=caveats,
    )


def _test_group_difference(dataset: DataSet, h: Hypothesis) -> HypothesisTestResult:
    groups = _groups(dataset, h.variables[0], h.variables[1])
    sized = [(n, v) for n, v in groups.items() if len(v) >= C.GROUP_MIN_MEMBERS]
    if len(sized) < 2:
        return HypothesisTestResult(
            hypothesis_id=h.id, supported=False, confidence=0,
            interpretation="Insufficient groups for comparison",
            caveats=["Need at least 2 groups with 5+ observations each"],
        )
    ranked = sorted(sized, key=lambda g: -mean(g[1]))
    (top_name, top_vals), (bottom_name, bottom_vals) = ranked[0], ranked[-1]
    test = welch_t_test(top_vals, bottom_vals)
    bottom_mean = mean(bottom_vals)
    effect = (mean(top_vals) - bottom_mean) / bottom_mean if bottom_mean else None
    return HypothesisTestResult(
        hypothesis_id=h.id, supported=test["significant"],
        confidence=75 if test["significant"] else 40,
        test_statistic=test["t_statistic"], p_value=test["p_value"], effect_size=effect,
        interpretation=(
            f"Hypothesis supported: {top_name} significantly differs from {bottom_name} (p={test['p_value']:.3f})"
            if test["significant"] else
            f"Hypothesis not supported: Difference not statistically significant (p={test['p_value']:.3f})"
        ),
        caveats=["Comparison is between highest and lowest groups only",
                 "Other variables may explain the difference"],
    )


def _test_trend(dataset: DataSet, h: Hypothesis) -> HypothesisTestResult:
    values = dataset.numeric_values(h.variables[0])
    if len(values) < 10:
        return HypothesisTestResult(
            hypothesis_id=h.id, supported=False, confidence=0,
            interpretation="Insufficient data points for trend analysis",
            caveats=["Need at least 10 observations"],
        )
    r = pearson([float(i) for i in range(len(values))], values) or 0.0
    p = correlation_p_value(r, len(values))
    supported = abs(r) >= C.CORRELATION_WEAK and p < C.SIGNIFICANCE_LEVEL
    direction = "upward" if r > 0 else "downward"
    return HypothesisTestResult(
        hypothesis_id=h.id, supported=supported, confidence=round(abs(r) * 100),
        test_statistic=r, p_value=p,
        interpretation=(f"Hypothesis supported: Significant {direction} trend (r={r:.3f}, p={p:.3f})"
                        if supported else
                        f"Hypothesis not supported: No significant trend detected (r={r:.3f}, p={p:.3f})"),
        caveats=["Assumes linear trend", "Seasonality or cycles may not be captured",
                 "Data order assumed to be chronological"],
    )


def _test_anomaly(dataset: DataSet, h: Hypothesis) -> HypothesisTestResult:
    values = dataset.numeric_values(h.variables[0])
    if not values:
        return HypothesisTestResult(
            hypothesis_id=h.id, supported=False, confidence=0,
            interpretation="No numeric values to test", caveats=[],
        )
    basic = calculate_stats(values)
    iqr = basic["q3"] - basic["q1"]
    lower = basic["q1"] - C.IQR_MULTIPLIER * iqr
    upper = basic["q3"] + C.IQR_MULTIPLIER * iqr
    count = sum(1 for v in values if v < lower or v > upper)
    pct = count / len(values) * 100
    supported = count > 0
    return HypothesisTestResult(
        hypothesis_id=h.id, supported=supported,
        confidence=min(90, 50 + pct * 5) if supported else 30,
        test_statistic=count,
        interpretation=(f"Hypothesis supported: {count} outliers ({pct:.1f}%) detected" if supported
                        else "Hypothesis not supported: No outliers detected with IQR method"),
        caveats=["IQR method may miss outliers in skewed distributions",
                 "Consider Grubbs' test for formal outlier detection"],
    )


_TESTERS: Dict[str, Callable[[DataSet, Hypothesis], HypothesisTestResult]] = {
    "correlation": _test_correlation,
    "group_difference": _test_group_difference,
    "trend": _test_trend,
    "anomaly": _test_anomaly,
}


def test_hypothesis(dataset: DataSet, hypothesis: Hypothesis) -> HypothesisTestResult:
    """Re-run the statistic behind a hypothesis against `dataset`."""
    tester = _TESTERS.get(hypothesis.type)
    if tester is None:
        return HypothesisTestResult(
            hypothesis_id=hypothesis.id, supported=False, confidence=0,
            interpretation="Unable to test this hypothesis type",
            caveats=["Hypothesis type not supported for testing"],
        )
    if any(v not in dataset.columns for v in hypothesis.variables):
        return _missing_columns(hypothesis)
    return tester(dataset, hypothesis)


# Keep pytest from collecting the public function above as a test
test_hypothesis.__test__ = False


def format_hypothesis(hypothesis: Hypothesis) -> str:
    c = hypothesis.confidence
    if c >= 80:
        word = "highly confident"
    elif c >= 60:
        word = "reasonably confident"
    else:
        word = "tentatively suggesting"
    notes = {
        "causal": "This appears to be a causal relationship.",
        "correlational": "Note: Correlation does not imply causation.",
        "confounded": "Warning: Potential confounders may explain this relationship.",
    }
    lines = [
        f"**{hypothesis.id}: {hypothesis.title}**",
        f"Evidence: {hypothesis.description}",
        f"Confidence: {c:g}% ({word})",
    ]
    if hypothesis.interpretation in notes:
        lines.append(notes[hypothesis.interpretation])
    lines.append("Recommendations:")
    lines.extend(f"  - {r}" for r in hypothesis.recommendations[:3])
    return "\n".join(lines)
