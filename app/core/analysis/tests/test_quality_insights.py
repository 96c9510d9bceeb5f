"""
Analysis Brain — Quality, Synthetic Detection, Insights & EDA Tests
=====================================================================
"""

import pytest


# ═══════════════════════════════════════════════════════════════
# TEST FIXTURES
# ═══════════════════════════════════════════════════════════════

def make_dataset(columns, rows, name="test.csv", types=None):
    from app.core.analysis.dataset import DataSet
    return DataSet.create(name, columns, rows, types)


def make_synthetic_dataset(n=1000):
    """
    No missing values, one numeric column whose mean is identical in
    every "group" bucket, and a second categorical split.
    """
    groups = ["a", "b", "c", "d"]
    rows = []
    for i in range(n):
        rows.append((groups[i % 4], f"r{i % 5}", ((i // 4) % 50) * 2))
    return make_dataset(["group", "region", "score"], rows, name="generated.csv")


def make_uncorrelated_dataset(n=1000):
    """
    Three numeric columns driven by independent on/off cycles (period 2,
    4 and 8); over whole 8-row blocks every pairwise correlation is 0.
    """
    rows = []
    for i in range(n):
        rows.append((20 + 4 * (i % 2), 1000 + 8 * ((i // 2) % 2), 40 + 10 * ((i // 4) % 2)))
    return make_dataset(["temp", "pressure", "humidity"], rows, name="sensors.csv")


def make_segment_dataset():
    rows = [("north", 100.0 + (i % 3)) for i in range(20)]
    rows += [("south", 300.0 + (i % 3)) for i in range(20)]
    return make_dataset(["region", "revenue"], rows, name="regions.csv")


def make_insight(severity, confidence, id_="i"):
    from app.core.analysis.insight_engine import DeepInsight
    return DeepInsight(id=id_, type="pattern", severity=severity, confidence=confidence,
                       title=id_, description="")


def analyze(ds):
    from app.core.analysis.statistics import analyze_dataset
    return analyze_dataset(ds)


# ═══════════════════════════════════════════════════════════════
# QUALITY SCORE
# ═══════════════════════════════════════════════════════════════

class TestQualityScore:

    def test_clean_dataset_scores_100(self):
        from app.core.analysis.quality import analyze_quality
        ds = make_dataset(["n", "label"], [(i + 1, "x" if i % 2 else "y") for i in range(20)])
        report = analyze_quality(ds, analyze(ds))
        assert report.score == 100
        assert report.summary == "Excellent data quality - ready for analysis"

    def test_score_floored_at_zero(self):
        from app.core.analysis.quality import analyze_quality
        cols = [f"c{j}" for j in range(10)]
        rows = [tuple(None if i % 2 else i for _ in cols) for i in range(10)]
        ds = make_dataset(cols, rows, types=["number"] * 10)
        report = analyze_quality(ds, analyze(ds))
        assert report.score == 0
        missing = [i for i in report.issues if i.type == "missing"]
        assert len(missing) == 10
        assert all(i.severity == "critical" for i in missing)

    def test_duplicate_rows_penalty_capped(self):
        from app.core.analysis.quality import analyze_quality
        ds = make_dataset(["v", "k"], [(7, "a")] * 10)
        report = analyze_quality(ds, analyze(ds))
        dup = next(i for i in report.issues if i.type == "duplicate")
        assert dup.affected_count == 9
        assert dup.severity == "critical"
        assert report.score == 85

    def test_near_duplicate_cluster_penalty(self):
        from app.core.analysis.quality import analyze_quality
        ds = make_dataset(["fruit"], [("Apple",), ("apple ",), ("APPLE",), ("Pear",)])
        report = analyze_quality(ds, analyze(ds))
        assert report.score == 95
        assert any(i.type == "inconsistent" and "Apple" in i.description for i in report.issues)

    def test_round_numbers_flagged_without_penalty(self):
        from app.core.analysis.quality import analyze_quality
        ds = make_dataset(["price"], [(v,) for v in [10, 20, 25, 50, 100, 15, 30, 45, 60, 75]])
        report = analyze_quality(ds, analyze(ds))
        assert any(i.type == "suspicious" for i in report.issues)
        assert report.score == 100

    def test_find_near_duplicate_clusters(self):
        from app.core.analysis.quality import find_near_duplicate_clusters
        clusters = find_near_duplicate_clusters(["NY", "ny", " NY", "LA", None, "LA"])
        assert clusters == [["NY", "ny", " NY"]]

    def test_quality_band(self):
        from app.core.analysis.quality import quality_band
        assert quality_band(90) == "excellent"
        assert quality_band(70) == "good"
        assert quality_band(50) == "fair"
        assert quality_band(49) == "poor"

    def test_row_anomalies(self):
        from app.core.analysis.quality import detect_row_anomalies
        rows = [(10 + (i % 3), 20 + (i % 3)) for i in range(30)] + [(100, 200)]
        ds = make_dataset(["a", "b"], rows)
        assert detect_row_anomalies(ds, analyze(ds)) == [30]

    def test_row_anomalies_need_two_columns(self):
        from app.core.analysis.quality import detect_row_anomalies
        ds = make_dataset(["a"], [(1,), (2,), (100,)])
        assert detect_row_anomalies(ds, analyze(ds)) == []


# ═══════════════════════════════════════════════════════════════
# SYNTHETIC DATA
# ═══════════════════════════════════════════════════════════════

class TestSyntheticDetection:

    def test_flat_thousand_row_dataset_is_synthetic(self):
        from app.core.analysis.quality import detect_synthetic_data
        ds = make_synthetic_dataset(1000)
        verdict = detect_synthetic_data(ds, analyze(ds))
        assert verdict.is_synthetic is True
        assert len(verdict.reasons) >= 2
        assert any("identical means" in r for r in verdict.reasons)
        assert any("Zero missing values" in r for r in verdict.reasons)

    def test_flat_correlations_are_a_signal(self):
        from app.core.analysis.quality import detect_synthetic_data
        ds = make_uncorrelated_dataset(1000)
        analysis = analyze(ds)
        assert len(analysis.correlations) == 3
        assert all(abs(c.value) < 0.1 for c in analysis.correlations)
        verdict = detect_synthetic_data(ds, analysis)
        assert verdict.is_synthetic is True
        assert any(r.startswith("Near-zero correlations across all variables") for r in verdict.reasons)
        assert any("Zero missing values" in r for r in verdict.reasons)

    def test_real_relationship_suppresses_flat_correlation_signal(self):
        from app.core.analysis.quality import detect_synthetic_data
        rows = [(t, p, t * 2 + 1) for t, p, _ in make_uncorrelated_dataset(1000).rows]
        ds = make_dataset(["temp", "pressure", "dew_point"], rows, name="sensors.csv")
        verdict = detect_synthetic_data(ds, analyze(ds))
        assert not any(r.startswith("Near-zero correlations") for r in verdict.reasons)
        assert verdict.is_synthetic is False

    def test_below_row_threshold_not_synthetic(self):
        from app.core.analysis.quality import detect_synthetic_data
        ds = make_synthetic_dataset(999)
        assert detect_synthetic_data(ds, analyze(ds)).is_synthetic is False

    def test_single_signal_is_not_enough(self):
        from app.core.analysis.quality import detect_synthetic_data
        rows = [("x1Y2z3W4v5U6t7S8r9Q0pp", i) for i in range(10)]
        ds = make_dataset(["token", "n"], rows)
        verdict = detect_synthetic_data(ds, analyze(ds))
        assert len(verdict.reasons) == 1
        assert verdict.is_synthetic is False

    def test_garbage_text(self):
        from app.core.analysis.quality import is_garbage_text
        assert is_garbage_text("aB3dE5gH7jK9mN1pQ3sT5") is True
        assert is_garbage_text("hello world with spaces in it") is False
        assert is_garbage_text("short") is False


# ═══════════════════════════════════════════════════════════════
# INSIGHT RANKING & DEEP ANALYSIS
# ═══════════════════════════════════════════════════════════════

class TestInsightEngine:

    def test_rank_by_severity_then_confidence(self):
        from app.core.analysis.insight_engine import rank_insights
        insights = [
            make_insight("info", 99, "info99"),
            make_insight("warning", 80, "warn80"),
            make_insight("critical", 50, "crit50"),
            make_insight("success", 90, "succ90"),
            make_insight("warning", 95, "warn95"),
        ]
        ranked = rank_insights(insights)
        assert [i.id for i in ranked] == ["crit50", "warn95", "warn80", "succ90", "info99"]
        # input untouched
        assert insights[0].id == "info99"

    def test_rank_is_stable_for_ties(self):
        from app.core.analysis.insight_engine import rank_insights
        ranked = rank_insights([make_insight("info", 70, "first"), make_insight("info", 70, "second")])
        assert [i.id for i in ranked] == ["first", "second"]

    def test_strong_correlation_insight(self):
        from app.core.analysis.insight_engine import run_deep_analysis
        ds = make_dataset(["x", "y"], [(i, 2 * i + (i % 2)) for i in range(20)])
        deep = run_deep_analysis(ds, analyze(ds))
        corr = deep.insights_of_type("correlation")
        assert [i.id for i in corr] == ["corr-strong-x-y"]
        assert corr[0].severity == "success"
        assert any("x-y relationship" in r.action for r in deep.recommendations)

    def test_insights_are_ranked(self):
        from app.core.analysis.insight_engine import SEVERITY_ORDER, run_deep_analysis
        ds = make_dataset(["v", "k"], [(7, "a")] * 10 + [(i, "b") for i in range(10)])
        deep = run_deep_analysis(ds, analyze(ds))
        keys = [(SEVERITY_ORDER[i.severity], -i.confidence) for i in deep.insights]
        assert keys == sorted(keys)

    def test_quality_issue_becomes_insight(self):
        from app.core.analysis.insight_engine import run_deep_analysis
        ds = make_dataset(["v", "k"], [(1, None), (2, "a"), (3, "b"), (4, "a")])
        deep = run_deep_analysis(ds, analyze(ds))
        ids = [i.id for i in deep.insights]
        assert "quality-missing-k" in ids
        insight = next(i for i in deep.insights if i.id == "quality-missing-k")
        assert insight.confidence == 95
        assert insight.severity == "critical"

    def test_segments_found(self):
        from app.core.analysis.insight_engine import run_deep_analysis
        deep = run_deep_analysis(make_segment_dataset(), analyze(make_segment_dataset()))
        assert len(deep.segments) == 2
        assert {s.value for s in deep.segments} == {"north", "south"}
        for seg in deep.segments:
            assert seg.size == 20
            assert "revenue" in seg.characteristics[0]
        assert len(deep.insights_of_type("segment")) == 2

    def test_story_questions_deduplicated_and_capped(self):
        from app.core.analysis.insight_engine import run_deep_analysis
        rows = [(i, i * 3, 100 - i, i * i) for i in range(30)]
        ds = make_dataset(["a", "b", "c", "d"], rows)
        story = run_deep_analysis(ds, analyze(ds)).story
        assert len(story.questions) <= 5
        assert len(story.questions) == len(set(story.questions))
        assert story.next_steps[-1] == "Ask follow-up questions about specific findings"

    def test_story_headline_for_critical_issue(self):
        from app.core.analysis.insight_engine import run_deep_analysis
        ds = make_dataset(["v", "k"], [(7, "a")] * 10)
        story = run_deep_analysis(ds, analyze(ds)).story
        assert story.headline.startswith("Critical issues found:")

    def test_low_quality_recommends_cleaning(self):
        from app.core.analysis.insight_engine import run_deep_analysis
        cols = [f"c{j}" for j in range(5)]
        rows = [tuple(None if i % 2 else i for _ in cols) for i in range(10)]
        ds = make_dataset(cols, rows, types=["number"] * 5)
        deep = run_deep_analysis(ds, analyze(ds))
        assert deep.data_quality.score < 70
        assert deep.recommendations[0].action == "Clean your data before analysis"
        assert deep.recommendations[0].priority == "high"

    def test_names_related(self):
        from app.core.analysis.insight_engine import names_related
        assert names_related("unit_price", "unit_cost") is True
        assert names_related("revenue", "total_sales") is True
        assert names_related("height", "colour") is False


# ═══════════════════════════════════════════════════════════════
# EDA REPORT
# ═══════════════════════════════════════════════════════════════

class TestEDAReport:

    def test_synthetic_report(self):
        from app.core.analysis.eda_report import generate_eda_report
        ds = make_synthetic_dataset(1000)
        report = generate_eda_report(ds, analyze(ds))
        assert report.is_synthetic is True
        assert report.overview["rows"] == 1000
        assert report.overview["suspiciously_clean"] is True
        assert report.bottom_line.startswith("Data is clean but likely synthetic")
        assert "synthetically generated data" in report.interpretation

    def test_report_overview_and_variables(self):
        from app.core.analysis.eda_report import generate_eda_report
        ds = make_segment_dataset()
        report = generate_eda_report(ds, analyze(ds))
        assert report.is_synthetic is False
        assert report.overview["numeric_columns"] == 1
        assert report.overview["categorical_columns"] == 1
        assert report.overview["completeness_percent"] == 100.0
        assert [v.name for v in report.variables] == ["region", "revenue"]

    def test_format_eda_report_sections(self):
        from app.core.analysis.eda_report import format_eda_report, generate_eda_report
        ds = make_segment_dataset()
        text = format_eda_report(generate_eda_report(ds, analyze(ds)))
        assert text.startswith("## EDA Summary")
        for section in ("**The Basics**", "**Key Variables:**", "**What This Tells Me**", "**Bottom Line**"):
            assert section in text

    def test_format_is_deterministic(self):
        from app.core.analysis.eda_report import format_eda_report, generate_eda_report
        ds = make_segment_dataset()
        assert (format_eda_report(generate_eda_report(ds, analyze(ds)))
                == format_eda_report(generate_eda_report(ds, analyze(ds))))
