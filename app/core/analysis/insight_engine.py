"""
Insight Engine — Deep Insights, Story & Recommendations
=========================================================
Composes the independent detectors into one ranked DeepAnalysisResult.
Works entirely from a DataSet plus its AnalysisResult.

Detectors (run in this order, then ranked):
  1. Quality Issues      — every QualityIssue becomes a quality insight
  2. Anomalies           — heavy skew, range concentration, anomalous rows
  3. Patterns            — look-alike numeric columns, dominant categories
  4. Correlations        — strong pairs, surprisingly weak "related" pairs
  5. Trends              — one insight per detected trend
  6. Segments            — categories whose members differ on numeric means

Ranking:
  critical < warning < success < info, then confidence descending.
  Python's sort is stable, so equal keys keep detector order.

The story and recommendations are derived from the ranked list; nothing
here is stored between calls.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from . import constants as C
from .dataset import DataSet, to_number
from .quality import DataQualityReport, QualityIssue, analyze_quality, detect_row_anomalies
from .statistics import AnalysisResult, category_key, mean

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"critical": 0, "warning": 1, "success": 2, "info": 3}
STORY_CORRELATION = 0.5

# Column-name pairs expected to move together
RELATED_NAME_PAIRS = [
    ("price", "cost"),
    ("revenue", "sales"),
    ("qty", "quantity"),
    ("date", "time"),
    ("start", "end"),
    ("min", "max"),
]


# ═══════════════════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Evidence:
    type: str                   # statistic | example | comparison | visualization
    label: str
    value: Union[str, float, int]
    context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {"type": self.type, "label": self.label, "value": self.value}
        if self.context:
            d["context"] = self.context
        return d


@dataclass(frozen=True)
class DeepInsight:
    """One finding. Immutable once emitted; ranking never mutates it."""
    id: str
    type: str                   # anomaly | pattern | correlation | trend | segment | quality | opportunity | risk | story
    severity: str               # critical | warning | info | success
    confidence: float           # 0-100
    title: str
    description: str
    details: List[str] = field(default_factory=list)
    evidence: List[Evidence] = field(default_factory=list)
    recommendation: Optional[str] = None
    affected_rows: Optional[List[int]] = None
    affected_columns: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "confidence": self.confidence,
            "title": self.title,
            "description": self.description,
            "details": list(self.details),
            "evidence": [e.to_dict() for e in self.evidence],
        }
        if self.recommendation:
            d["recommendation"] = self.recommendation
        if self.affected_rows is not None:
            d["affected_rows"] = list(self.affected_rows)
        if self.affected_columns is not None:
            d["affected_columns"] = list(self.affected_columns)
        return d


@dataclass
class DataStory:
    headline: str
    summary: str
    key_findings: List[str]
    surprises: List[str]
    questions: List[str]
    next_steps: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class Recommendation:
    priority: str               # high | medium | low
    action: str
    reason: str
    impact: str

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class Segment:
    name: str
    column: str
    value: str
    description: str
    size: int
    characteristics: List[str] = field(default_factory=list)

    @property
    def distinctive_features(self) -> List[str]:
        return self.characteristics[:2]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name, "column": self.column, "value": self.value,
            "description": self.description, "size": self.size,
            "characteristics": list(self.characteristics),
            "distinctive_features": self.distinctive_features,
        }


@dataclass
class DeepAnalysisResult:
    insights: List[DeepInsight]
    story: DataStory
    recommendations: List[Recommendation]
    data_quality: DataQualityReport
    segments: List[Segment] = field(default_factory=list)

    def insights_of_type(self, insight_type: str) -> List[DeepInsight]:
        return [i for i in self.insights if i.type == insight_type]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "insights": [i.to_dict() for i in self.insights],
            "story": self.story.to_dict(),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "data_quality": self.data_quality.to_dict(),
            "segments": [s.to_dict() for s in self.segments],
        }


# ──────────────────────────────────────────────────────────
# RANKING
# ──────────────────────────────────────────────────────────

def rank_insights(insights: List[DeepInsight]) -> List[DeepInsight]:
    """New list ordered by severity, then confidence descending."""
    return sorted(insights, key=lambda i: (SEVERITY_ORDER.get(i.severity, 99), -i.confidence))


def names_related(name1: str, name2: str) -> bool:
    """Whether two column names suggest the columns should correlate."""
    n1, n2 = name1.lower(), name2.lower()
    prefix1 = re.split(r"[_\s]", n1)[0]
    prefix2 = re.split(r"[_\s]", n2)[0]
    if len(prefix1) > 3 and prefix1 == prefix2:
        return True
    for a, b in RELATED_NAME_PAIRS:
        if (a in n1 and b in n2) or (b in n1 and a in n2):
            return True
    return False


def issue_to_insight(issue: QualityIssue) -> DeepInsight:
    return DeepInsight(
        id=f"quality-{issue.type}-{issue.column or 'general'}",
        type="quality",
        severity=issue.severity,
        confidence=95,
        title=issue.description,
        description=issue.suggestion,
        details=[f"Affected: {issue.affected_count} {'values' if issue.column else 'rows'}"],
        evidence=[Evidence("statistic", "Affected count", issue.affected_count)],
        recommendation=issue.suggestion,
        affected_columns=[issue.column] if issue.column else None,
    )


def segment_to_insight(segment: Segment) -> DeepInsight:
    return DeepInsight(
        id=f"segment-{segment.name}",
        type="segment",
        severity="info",
        confidence=70,
        title=f"Segment: {segment.name}",
        description=segment.description,
        details=list(segment.characteristics),
        evidence=[Evidence("statistic", "Size", segment.size)],
        affected_columns=[segment.column],
    )


# ═══════════════════════════════════════════════════════════════
# INSIGHT ENGINE
# ═══════════════════════════════════════════════════════════════

class InsightEngine:
    """
    Runs every detector over one dataset and assembles the result.
    Stateless: all methods are pure functions of their arguments.
    """

    def analyze(self, dataset: DataSet, analysis: AnalysisResult) -> DeepAnalysisResult:
        quality = analyze_quality(dataset, analysis)

        insights: List[DeepInsight] = [issue_to_insight(i) for i in quality.issues]
        insights.extend(self._detect_anomalies(dataset, analysis))
        insights.extend(self._discover_patterns(dataset, analysis))
        insights.extend(self._analyze_correlations(analysis))
        insights.extend(self._analyze_trends(analysis))
        segments = self._find_segments(dataset, analysis)
        insights.extend(segment_to_insight(s) for s in segments)

        ranked = rank_insights(insights)
        story = self._build_story(dataset, analysis, ranked)
        recommendations = self._build_recommendations(ranked, quality)

        logger.debug(
            f"Deep analysis of '{dataset.name}': {len(ranked)} insights, "
            f"quality={quality.score}, {len(segments)} segments"
        )
        return DeepAnalysisResult(
            insights=ranked, story=story, recommendations=recommendations,
            data_quality=quality, segments=segments,
        )

    # ──────────────────────────────────────────────────────────
    # ANOMALIES
    # ──────────────────────────────────────────────────────────

    def _detect_anomalies(self, dataset: DataSet, analysis: AnalysisResult) -> List[DeepInsight]:
        insights = []
        for col, stats in analysis.numeric_stats().items():
            if stats.skewness is not None and abs(stats.skewness) > C.SKEW_ANOMALY_THRESHOLD:
                if stats.skewness > 0:
                    description = (f'"{col}" is heavily right-skewed ({stats.skewness:.2f}) - '
                                   "most values are low with some very high outliers")
                else:
                    description = (f'"{col}" is heavily left-skewed ({stats.skewness:.2f}) - '
                                   "most values are high with some very low outliers")
                insights.append(DeepInsight(
                    id=f"anomaly-skew-{col}", type="anomaly", severity="info", confidence=85,
                    title=f'Highly skewed distribution in "{col}"',
                    description=description,
                    details=[
                        f"Mean ({stats.mean:.2f}) differs significantly from median ({stats.median:.2f})",
                        "Consider log transformation for analysis or using median instead of mean",
                    ],
                    evidence=[
                        Evidence("statistic", "Skewness", f"{stats.skewness:.2f}"),
                        Evidence("statistic", "Mean", f"{stats.mean:.2f}"),
                        Evidence("statistic", "Median", f"{stats.median:.2f}"),
                    ],
                    recommendation="Use median for central tendency and consider log transformation",
                    affected_columns=[col],
                ))

            if stats.mean is None or stats.max == stats.min:
                continue
            position = (stats.mean - stats.min) / (stats.max - stats.min)
            if C.CONCENTRATION_LOW <= position <= C.CONCENTRATION_HIGH:
                continue
            lower = position < 0.5
            insights.append(DeepInsight(
                id=f"anomaly-concentration-{col}", type="anomaly", severity="info", confidence=70,
                title=f'Values concentrated at {"lower" if lower else "upper"} end of "{col}"',
                description=f'Most values in "{col}" are clustered near the {"minimum" if lower else "maximum"}',
                details=[
                    f"Range: {stats.min:.2f} to {stats.max:.2f}",
                    f"Mean at {position * 100:.0f}% of range",
                ],
                evidence=[
                    Evidence("statistic", "Min", f"{stats.min:.2f}"),
                    Evidence("statistic", "Max", f"{stats.max:.2f}"),
                    Evidence("statistic", "Mean position", f"{position * 100:.0f}%"),
                ],
                affected_columns=[col],
            ))

        rows = detect_row_anomalies(dataset, analysis)
        if rows:
            total = dataset.row_count
            more = "..." if len(rows) > 10 else ""
            insights.append(DeepInsight(
                id="anomaly-rows", type="anomaly",
                severity="warning" if len(rows) > total * C.ROW_ANOMALY_WARNING_PERCENT / 100 else "info",
                confidence=80,
                title=f"{len(rows)} anomalous rows detected",
                description="These rows have unusual combinations of values across multiple columns",
                details=[
                    f"Row indices: {', '.join(str(r) for r in rows[:10])}{more}",
                    "Review these rows for data entry errors or genuinely unusual cases",
                ],
                evidence=[
                    Evidence("statistic", "Anomalous rows", len(rows)),
                    Evidence("statistic", "Percentage", f"{len(rows) / total * 100:.1f}%"),
                ],
                recommendation="Investigate these rows - they may reveal edge cases or errors",
                affected_rows=rows,
            ))
        return insights

    # ──────────────────────────────────────────────────────────
    # PATTERNS
    # ──────────────────────────────────────────────────────────

    def _discover_patterns(self, dataset: DataSet, analysis: AnalysisResult) -> List[DeepInsight]:
        insights = []
        numeric = analysis.numeric_stats()
        cols = list(numeric)
        for i in range(len(cols)):
            for j in range(i + 1, len(cols)):
                s1, s2 = numeric[cols[i]], numeric[cols[j]]
                if not (s1.mean and s2.mean and s1.std and s2.std):
                    continue
                mean_ratio = s1.mean / s2.mean
                std_ratio = s1.std / s2.std
                if abs(mean_ratio - 1) >= C.SIMILAR_MEAN_RATIO or abs(std_ratio - 1) >= C.SIMILAR_STD_RATIO:
                    continue
                c1, c2 = cols[i], cols[j]
                insights.append(DeepInsight(
                    id=f"pattern-similar-{c1}-{c2}", type="pattern", severity="info", confidence=75,
                    title=f'"{c1}" and "{c2}" have similar distributions',
                    description="These columns have very similar means and standard deviations",
                    details=[
                        f"{c1}: mean={s1.mean:.2f}, std={s1.std:.2f}",
                        f"{c2}: mean={s2.mean:.2f}, std={s2.std:.2f}",
                    ],
                    evidence=[
                        Evidence("comparison", "Mean ratio", f"{mean_ratio:.2f}"),
                        Evidence("comparison", "Std ratio", f"{std_ratio:.2f}"),
                    ],
                    recommendation="Check if these columns are measuring the same thing or are derived from each other",
                    affected_columns=[c1, c2],
                ))

        rows = dataset.row_count or 1
        for col, stats in analysis.statistics.items():
            if stats.is_numeric or not stats.top_values:
                continue
            top = stats.top_values[0]
            dominance = top["count"] / rows
            if dominance * 100 <= C.DOMINANT_CATEGORY_PERCENT:
                continue
            overwhelming = dominance * 100 > C.DOMINANT_CATEGORY_CRITICAL_PERCENT
            details = [f'"{top["value"]}": {top["count"]} rows ({dominance * 100:.1f}%)']
            if overwhelming:
                details.append("This column provides very little discriminating information")
            insights.append(DeepInsight(
                id=f"pattern-dominant-{col}", type="pattern",
                severity="warning" if overwhelming else "info", confidence=90,
                title=f'"{col}" is dominated by "{top["value"]}"',
                description=f"{dominance * 100:.0f}% of rows have the same value",
                details=details,
                evidence=[
                    Evidence("statistic", "Dominant value", str(top["value"])),
                    Evidence("statistic", "Frequency", f"{dominance * 100:.0f}%"),
                ],
                recommendation=("Consider dropping this column - it doesn't differentiate records"
                                if overwhelming else
                                "Focus analysis on the minority values - they may be more interesting"),
                affected_columns=[col],
            ))
        return insights

    # ──────────────────────────────────────────────────────────
    # CORRELATIONS
    # ──────────────────────────────────────────────────────────

    def _analyze_correlations(self, analysis: AnalysisResult) -> List[DeepInsight]:
        insights = []
        for corr in analysis.correlations:
            if abs(corr.value) <= C.CORRELATION_STRONG:
                continue
            positive = corr.value > 0
            r2 = f"{corr.value ** 2 * 100:.0f}%"
            insights.append(DeepInsight(
                id=f"corr-strong-{corr.column1}-{corr.column2}", type="correlation",
                severity="success", confidence=90,
                title=(f'Strong {"positive" if positive else "negative"} correlation: '
                       f'"{corr.column1}" ↔ "{corr.column2}"'),
                description=(f'As "{corr.column1}" increases, "{corr.column2}" tends to '
                             f'{"increase" if positive else "decrease"}'),
                details=[
                    f"Correlation coefficient: {corr.value:.3f}",
                    f"This explains {r2} of the variance",
                ],
                evidence=[
                    Evidence("statistic", "Correlation", f"{corr.value:.3f}"),
                    Evidence("statistic", "R²", r2),
                ],
                recommendation="Investigate causality - does one drive the other, or is there a common cause?",
                affected_columns=[corr.column1, corr.column2],
            ))

        for corr in analysis.correlations:
            if abs(corr.value) >= C.CORRELATION_NEAR_ZERO or not names_related(corr.column1, corr.column2):
                continue
            insights.append(DeepInsight(
                id=f"corr-surprise-{corr.column1}-{corr.column2}", type="anomaly",
                severity="info", confidence=60,
                title=f'Surprisingly weak correlation: "{corr.column1}" ↔ "{corr.column2}"',
                description="These columns might be expected to correlate but don't",
                details=[
                    f"Correlation: {corr.value:.3f} (essentially no relationship)",
                    "This could indicate independent factors or data issues",
                ],
                evidence=[Evidence("statistic", "Correlation", f"{corr.value:.3f}")],
                affected_columns=[corr.column1, corr.column2],
            ))
        return insights

    # ──────────────────────────────────────────────────────────
    # TRENDS
    # ──────────────────────────────────────────────────────────

    def _analyze_trends(self, analysis: AnalysisResult) -> List[DeepInsight]:
        insights = []
        for trend in analysis.trends:
            strong = abs(trend.change_percent) > C.TREND_WARNING_PERCENT
            up = trend.direction == "up"
            sign = "+" if trend.change_percent > 0 else ""
            insights.append(DeepInsight(
                id=f"trend-{trend.column}", type="trend",
                severity="warning" if strong else "info", confidence=75,
                title=f'{"Upward" if up else "Downward"} trend in "{trend.column}"',
                description=trend.description or f"Values {'increasing' if up else 'decreasing'} over time",
                details=[f"Change: {sign}{trend.change_percent:.1f}%"],
                evidence=[
                    Evidence("statistic", "Direction", trend.direction),
                    Evidence("statistic", "Change", f"{trend.change_percent:.1f}%"),
                ],
                recommendation=("Investigate what's driving this significant change"
                                if strong else "Monitor this trend over time"),
                affected_columns=[trend.column],
            ))
        return insights

    # ──────────────────────────────────────────────────────────
    # SEGMENTS
    # ──────────────────────────────────────────────────────────

    def _find_segments(self, dataset: DataSet, analysis: AnalysisResult) -> List[Segment]:
        segments: List[Segment] = []
        total = dataset.row_count
        numeric = list(analysis.numeric_stats().items())[:C.SEGMENT_NUMERIC_COLUMNS]

        for col, stats in analysis.statistics.items():
            if stats.is_numeric:
                continue
            if not C.SEGMENT_MIN_CARDINALITY <= stats.unique_count <= C.SEGMENT_MAX_CARDINALITY:
                continue
            idx = dataset.column_index(col)

            for top in stats.top_values[:C.SEGMENT_TOP_VALUES]:
                members = [r for r in dataset.rows if r[idx] is not None and category_key(r[idx]) == top["value"]]
                if len(members) < C.SEGMENT_MIN_ROWS:
                    continue

                characteristics = []
                for num_col, num_stats in numeric:
                    overall = num_stats.mean
                    if not overall:
                        continue
                    num_idx = dataset.column_index(num_col)
                    values = [v for v in (to_number(r[num_idx]) for r in members) if v is not None]
                    if not values:
                        continue
                    diff = (mean(values) - overall) / abs(overall) * 100
                    if abs(diff) > C.SEGMENT_MIN_DIFF_PERCENT:
                        characteristics.append(
                            f"{'Higher' if diff > 0 else 'Lower'} {num_col} "
                            f"({'+' if diff > 0 else ''}{diff:.0f}% vs average)"
                        )

                if characteristics:
                    segments.append(Segment(
                        name=f"{col}: {top['value']}", column=col, value=top["value"],
                        description=(f"{len(members)} rows ({len(members) / total * 100:.1f}%) "
                                     f'where {col} = "{top["value"]}"'),
                        size=len(members), characteristics=characteristics,
                    ))

        segments.sort(key=lambda s: -s.size)
        return segments[:C.SEGMENT_KEEP]

    # ──────────────────────────────────────────────────────────
    # STORY & RECOMMENDATIONS
    # ──────────────────────────────────────────────────────────

    def _build_story(self, dataset: DataSet, analysis: AnalysisResult,
                     insights: List[DeepInsight]) -> DataStory:
        critical = [i for i in insights if i.severity == "critical"]
        warnings = [i for i in insights if i.severity == "warning"]
        successes = [i for i in insights if i.severity == "success"]

        if critical:
            headline = f"Critical issues found: {critical[0].title}"
        elif successes:
            headline = successes[0].title
        elif warnings:
            headline = f"Attention needed: {warnings[0].title}"
        else:
            headline = f"Analysis of {dataset.row_count:,} records across {len(dataset.columns)} variables"

        summary = analysis.summary
        parts = [
            f"Dataset contains {dataset.row_count:,} rows and {len(dataset.columns)} columns.",
            f"{summary.numeric_columns} numeric and {summary.categorical_columns} categorical variables.",
        ]
        strong = [c for c in analysis.correlations if abs(c.value) > STORY_CORRELATION]
        if strong:
            parts.append(f"Found {len(strong)} significant correlation{'s' if len(strong) > 1 else ''}.")

        key_findings = [i.title for i in insights if i.confidence >= C.KEY_FINDING_MIN_CONFIDENCE][:5]
        surprises = [i.description for i in insights if i.type == "anomaly"][:3]

        questions: List[str] = []
        for insight in insights:
            cols = insight.affected_columns or []
            if insight.type == "correlation":
                q = f"What causes the relationship between {' and '.join(cols)}?"
            elif insight.type == "anomaly":
                q = f"Why are there anomalies in {cols[0] if cols else 'the data'}?"
            elif insight.type == "trend":
                q = f"What's driving the trend in {cols[0] if cols else 'the data'}?"
            else:
                continue
            if q not in questions:
                questions.append(q)

        next_steps = []
        if critical:
            next_steps.append("Address critical data quality issues first")
        if successes:
            next_steps.append("Investigate strong correlations for causal relationships")
        if warnings:
            next_steps.append("Review warnings and decide how to handle them")
        next_steps.append("Ask follow-up questions about specific findings")

        return DataStory(
            headline=headline,
            summary=" ".join(parts),
            key_findings=key_findings or ["No significant findings at high confidence"],
            surprises=surprises or ["No major surprises - data behaves as expected"],
            questions=questions[:5] or ["What specific aspect would you like to explore?"],
            next_steps=next_steps,
        )

    def _build_recommendations(self, insights: List[DeepInsight],
                               quality: DataQualityReport) -> List[Recommendation]:
        recs = []
        if quality.score < C.QUALITY_CLEANUP_SCORE:
            recs.append(Recommendation(
                priority="high", action="Clean your data before analysis",
                reason=f"Data quality score is {quality.score}/100",
                impact="Analysis results may be unreliable with current data quality",
            ))
        for insight in insights:
            if insight.severity == "critical" and insight.recommendation:
                recs.append(Recommendation(
                    priority="high", action=insight.recommendation, reason=insight.title,
                    impact="Critical issue affecting analysis validity",
                ))
        for insight in [i for i in insights if i.severity == "warning"][:3]:
            if insight.recommendation:
                recs.append(Recommendation(
                    priority="medium", action=insight.recommendation, reason=insight.title,
                    impact="May affect specific analyses",
                ))
        strong = [i for i in insights if i.type == "correlation" and i.severity == "success"]
        for insight in strong[:2]:
            recs.append(Recommendation(
                priority="medium",
                action=f"Investigate the {'-'.join(insight.affected_columns or [])} relationship",
                reason=insight.title,
                impact="Potential for actionable insights",
            ))
        return recs


def run_deep_analysis(dataset: DataSet, analysis: AnalysisResult) -> DeepAnalysisResult:
    return InsightEngine().analyze(dataset, analysis)
