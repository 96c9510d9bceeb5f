"""
EDA Report — first-pass read of a dataset.

Produces per-variable notes, a short list of findings, a synthetic-data
verdict, an interpretation paragraph and a bottom line. `format_eda_report`
renders the report as terminal text.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import constants as C
from .dataset import DataSet
from .narrative import pick_phrase
from .quality import SyntheticVerdict, detect_synthetic_data, garbage_columns, is_garbage_text
from .statistics import AnalysisResult

logger = logging.getLogger(__name__)

STRONG_FINDING_CORRELATION = 0.5
IMBALANCE_PERCENT = 60
MISSING_ALERT_FRACTION = 0.1
MISSING_NOTE_FRACTION = 0.05
OUTLIER_WARNING_COUNT = 10

_OPENERS = [
    "Skipper, here's what the numbers are telling me.",
    "Analysis complete. The data has spoken.",
    "I've run the figures, Skipper.",
]


@dataclass
class VariableSummary:
    name: str
    type: str                   # numeric | categorical
    unique_count: int
    description: str
    notable: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class DataInsight:
    category: str               # quality | pattern | anomaly | finding | warning
    title: str
    description: str
    severity: str               # info | success | warning | critical
    evidence: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class EDAReport:
    overview: Dict[str, Any]
    variables: List[VariableSummary]
    findings: List[DataInsight]
    interpretation: str
    bottom_line: str
    synthetic: SyntheticVerdict

    @property
    def is_synthetic(self) -> bool:
        return self.synthetic.is_synthetic

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overview": dict(self.overview),
            "variables": [v.to_dict() for v in self.variables],
            "findings": [f.to_dict() for f in self.findings],
            "interpretation": self.interpretation,
            "bottom_line": self.bottom_line,
            "is_synthetic": self.synthetic.is_synthetic,
            "synthetic_reasons": list(self.synthetic.reasons),
        }


def _fmt(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _summarize_variables(dataset: DataSet, analysis: AnalysisResult) -> List[VariableSummary]:
    rows = dataset.row_count
    variables = []
    for col in dataset.columns:
        stats = analysis.statistics[col]
        notable = None
        if stats.is_numeric:
            cv = (stats.std or 0.0) / stats.mean if stats.mean else 0.0
            if stats.mean is None:
                description = "no numeric values"
            else:
                description = (f"μ={stats.mean:.2f}, σ={stats.std:.2f}, "
                               f"range=[{_fmt(stats.min)}-{_fmt(stats.max)}]")
            if stats.min == 0 and stats.max == 100:
                notable = "Looks like a percentage/rate column"
            elif stats.mean is not None and cv < 0.1 and rows > 100:
                notable = "Very low variance - values are tightly clustered"
            elif cv > 2:
                notable = "High variance - widely spread values"
            unique = analysis.summary.unique_counts.get(col, 0)
        else:
            unique = stats.unique_count
            description = f"{unique} unique values"
            if stats.top_values and is_garbage_text(stats.top_values[0]["value"]):
                notable = "Looks like random/garbage data"
            if unique == rows and rows > 100:
                notable = "All unique values - possibly an ID column or garbage"
        variables.append(VariableSummary(
            name=col, type="numeric" if stats.is_numeric else "categorical",
            unique_count=unique, description=description, notable=notable,
        ))
    return variables


def _findings(analysis: AnalysisResult, is_synthetic: bool) -> List[DataInsight]:
    findings: List[DataInsight] = []
    missing = analysis.summary.missing_percent

    if missing == 0:
        findings.append(DataInsight(
            category="warning" if is_synthetic else "quality",
            title="Perfect Data Completeness",
            description="No missing values at all"
                        + (" - suspiciously perfect for real-world data" if is_synthetic else ""),
            severity="warning" if is_synthetic else "success",
        ))
    elif missing > MISSING_ALERT_FRACTION:
        findings.append(DataInsight(
            category="warning", title="Missing Data Alert",
            description=f"{missing * 100:.1f}% of values are missing - may need imputation",
            severity="warning",
        ))

    correlations = analysis.correlations
    if correlations:
        strong = [c for c in correlations if abs(c.value) > STRONG_FINDING_CORRELATION]
        top = correlations[0]
        if strong:
            findings.append(DataInsight(
                category="finding", title="Strong Correlations Found",
                description=(f"{len(strong)} variable pairs have correlation > 0.5. "
                             f"Strongest: {top.column1} ↔ {top.column2} ({top.value:.2f})"),
                severity="success",
                evidence=[f"{c.column1} ↔ {c.column2}: {c.value:.2f}" for c in strong[:3]],
            ))
        elif is_synthetic:
            findings.append(DataInsight(
                category="anomaly", title="Zero Meaningful Correlations",
                description=(f"All correlations are near zero (max: {abs(top.value):.3f}). "
                             "Nothing predicts anything - classic sign of random data."),
                severity="warning",
            ))

    significant = [t for t in analysis.trends if abs(t.change_percent) > C.TREND_MIN_CHANGE_PERCENT]
    if significant:
        findings.append(DataInsight(
            category="finding", title="Significant Trends Detected",
            description=", ".join(
                f"{t.column}: {'↑' if t.direction == 'up' else '↓'} {abs(t.change_percent):.1f}%"
                for t in significant
            ),
            severity="info",
        ))

    if analysis.outliers:
        count = len(analysis.outliers)
        findings.append(DataInsight(
            category="anomaly", title="Outliers Detected",
            description=f"Found {count} outlier values that fall outside expected ranges",
            severity="warning" if count > OUTLIER_WARNING_COUNT else "info",
        ))

    for col, stats in analysis.statistics.items():
        if stats.is_numeric or not stats.top_values:
            continue
        total = sum(v["count"] for v in stats.top_values)
        top_pct = stats.top_values[0]["count"] / total * 100
        if top_pct > IMBALANCE_PERCENT:
            findings.append(DataInsight(
                category="pattern", title=f"Imbalanced: {col}",
                description=f'"{stats.top_values[0]["value"]}" dominates with {top_pct:.0f}% of values',
                severity="info",
            ))

    garbage = garbage_columns(analysis)
    if garbage:
        findings.append(DataInsight(
            category="warning", title="Garbage Data Detected",
            description=f"{', '.join(garbage)} contain random characters, not usable data",
            severity="warning",
        ))
    return findings


def _interpretation(analysis: AnalysisResult, synthetic: SyntheticVerdict) -> str:
    if synthetic.is_synthetic:
        reasons = "\n".join(f"{i + 1}. {r}" for i, r in enumerate(synthetic.reasons))
        return (
            "This looks like **synthetically generated data**, probably for practice or "
            f"testing purposes. Here's why:\n\n{reasons}\n\n"
            "Real data would show natural variation: category-level differences in metrics, "
            "age group patterns, geographic variation based on real-world factors. "
            "Here? Everything's flat. Suspiciously flat."
        )

    parts = []
    missing = analysis.summary.missing_percent
    if missing > MISSING_NOTE_FRACTION:
        parts.append(f"The data has {missing * 100:.1f}% missing values that may need handling.")
    correlations = analysis.correlations
    if correlations and abs(correlations[0].value) > STRONG_FINDING_CORRELATION:
        top = correlations[0]
        parts.append(f"There's a strong relationship between {top.column1} and {top.column2} "
                     f"({top.value:.2f}) worth investigating.")
    if not parts:
        parts.append("The data looks reasonably clean and ready for analysis.")
    return " ".join(parts)


def _bottom_line(is_synthetic: bool, findings: List[DataInsight]) -> str:
    if is_synthetic:
        return "Data is clean but likely synthetic. Fine for practice, but don't draw real conclusions from it."
    warnings = [f for f in findings if f.severity in ("warning", "critical")]
    if len(warnings) > 2:
        return (f"Several data quality issues need attention before analysis. "
                f"Address the {len(warnings)} warnings first.")
    if any(f.severity == "success" for f in findings):
        return "Data quality looks good. Ready for deeper analysis."
    return "Data loaded successfully. Select an analysis type to dig deeper."


def generate_eda_report(dataset: DataSet, analysis: AnalysisResult) -> EDAReport:
    """Build the EDA report from an already-computed statistics pass."""
    synthetic = detect_synthetic_data(dataset, analysis)
    findings = _findings(analysis, synthetic.is_synthetic)
    summary = analysis.summary
    overview = {
        "rows": dataset.row_count,
        "columns": len(dataset.columns),
        "numeric_columns": summary.numeric_columns,
        "categorical_columns": summary.categorical_columns,
        "completeness_percent": round((1 - summary.missing_percent) * 100, 1),
        "suspiciously_clean": summary.missing_percent == 0 and dataset.row_count >= C.SYNTHETIC_MIN_ROWS,
    }
    if synthetic.is_synthetic:
        logger.info(f"'{dataset.name}' looks synthetic: {len(synthetic.reasons)} signals")
    return EDAReport(
        overview=overview,
        variables=_summarize_variables(dataset, analysis),
        findings=findings,
        interpretation=_interpretation(analysis, synthetic),
        bottom_line=_bottom_line(synthetic.is_synthetic, findings),
        synthetic=synthetic,
    )


def format_eda_report(report: EDAReport) -> str:
    ov = report.overview
    lines = ["## EDA Summary", "", pick_phrase(_OPENERS, f"{ov['rows']}:{ov['columns']}"), ""]

    clean_note = " Zero missing values (suspicious...)." if ov["suspiciously_clean"] else ""
    lines += ["**The Basics**", "",
              f"You've got {ov['rows']:,} rows across {ov['columns']} columns.{clean_note}", ""]

    lines.append("**Key Variables:**")
    for v in report.variables:
        notable = f" ← {v.notable}" if v.notable else ""
        lines.append(f"- **{v.name}** ({v.type}): {v.description}{notable}")
    lines.append("")

    if report.findings:
        lines += ['**The "Interesting" Findings**', ""]
        icons = {"warning": "⚠️", "critical": "⚠️", "success": "✓"}
        for f in report.findings:
            lines.append(f"{icons.get(f.severity, '•')} **{f.title}**: {f.description}")
            lines.extend(f"   - {e}" for e in f.evidence)
        lines.append("")

    lines += ["**What This Tells Me**", "", report.interpretation, ""]
    lines += ["**Bottom Line**", "", report.bottom_line]
    return "\n".join(lines)
