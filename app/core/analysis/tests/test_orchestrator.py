"""
Analysis Brain — Pipeline, Digest & Q&A Tests
===============================================
run_analysis stage wiring, BrainConfig, the formatted digest,
analyze_and_remember and keyword-routed question answering.
"""

import dataclasses
from types import SimpleNamespace

import pytest


# ═══════════════════════════════════════════════════════════════
# TEST FIXTURES
# ═══════════════════════════════════════════════════════════════

def make_dataset(columns, rows, name="test.csv", types=None):
    from app.core.analysis.dataset import DataSet
    return DataSet.create(name, columns, rows, types)


def make_marketing_dataset():
    teams = ["red", "green", "blue"]
    rows = [(i + 1, 3 * (i + 1) + (i % 4), teams[i % 3]) for i in range(30)]
    return make_dataset(["ad_spend", "revenue", "team"], rows, name="marketing.csv")


def make_step_dataset():
    rows = [(10.0 if i < 15 else 50.0,) for i in range(30)]
    return make_dataset(["level"], rows, name="sensor.csv")


def make_synthetic_dataset():
    groups = ["a", "b", "c", "d"]
    rows = [(groups[i % 4], f"r{i % 5}", ((i // 4) % 50) * 2) for i in range(1000)]
    return make_dataset(["group", "region", "score"], rows, name="generated.csv")


def make_customer_dataset():
    rows = [(i + 1, f"user{i}@example.com", f"note-{i}") for i in range(20)]
    return make_dataset(["customer_id", "email", "notes"], rows, name="customers.csv")


def make_context(ds):
    from app.core.analysis.insight_engine import run_deep_analysis
    from app.core.analysis.qa_engine import QueryContext
    from app.core.analysis.statistics import analyze_dataset
    analysis = analyze_dataset(ds)
    return QueryContext(dataset=ds, analysis=analysis, deep=run_deep_analysis(ds, analysis))


# ═══════════════════════════════════════════════════════════════
# CONFIG
# ═══════════════════════════════════════════════════════════════

class TestBrainConfig:

    def test_defaults(self):
        from app.core.analysis.orchestrator import BrainConfig
        config = BrainConfig()
        assert config.skip_hypotheses is False
        assert config.skip_timeseries is False
        assert config.max_hypotheses == 10
        assert config.question_threshold == 70

    def test_fast(self):
        from app.core.analysis.orchestrator import BrainConfig
        config = BrainConfig.fast()
        assert config.skip_hypotheses and config.skip_timeseries

    def test_frozen(self):
        from app.core.analysis.orchestrator import BrainConfig
        with pytest.raises(dataclasses.FrozenInstanceError):
            BrainConfig().max_hypotheses = 3

    def test_from_settings(self):
        from app.core.analysis.orchestrator import BrainConfig
        settings = SimpleNamespace(
            BRAIN_SKIP_HYPOTHESES=True, BRAIN_SKIP_TIMESERIES=False,
            BRAIN_MAX_HYPOTHESES=4, BRAIN_QUESTION_THRESHOLD=55.0,
        )
        assert BrainConfig.from_settings(settings) == BrainConfig(
            skip_hypotheses=True, skip_timeseries=False, max_hypotheses=4, question_threshold=55.0,
        )


# ═══════════════════════════════════════════════════════════════
# PIPELINE
# ═══════════════════════════════════════════════════════════════

class TestRunAnalysis:

    def test_empty_dataset_raises(self):
        from app.core.analysis.errors import EmptyDataSetError
        from app.core.analysis.orchestrator import run_analysis
        with pytest.raises(EmptyDataSetError):
            run_analysis(make_dataset(["a"], []))
        with pytest.raises(EmptyDataSetError):
            run_analysis(make_dataset([], []))

    def test_full_pipeline_stages(self):
        from app.core.analysis.orchestrator import run_analysis
        result = run_analysis(make_marketing_dataset())
        assert result.dataset_name == "marketing.csv"
        assert set(result.timing) == {"schema_inference", "statistics", "eda_report", "hypotheses", "time_series"}
        assert all(v >= 0 for v in result.timing.values())
        assert result.hypotheses
        assert result.time_series is not None

    def test_fast_analysis_skips_optional_stages(self):
        from app.core.analysis.orchestrator import fast_analysis
        result = fast_analysis(make_marketing_dataset())
        assert result.hypotheses == []
        assert result.time_series is None
        assert set(result.timing) == {"schema_inference", "statistics", "eda_report"}

    def test_max_hypotheses_respected(self):
        from app.core.analysis.orchestrator import BrainConfig, run_analysis
        result = run_analysis(make_marketing_dataset(), BrainConfig(max_hypotheses=1))
        assert len(result.hypotheses) == 1

    def test_idempotent_apart_from_timing(self):
        from app.core.analysis.orchestrator import run_analysis
        ds = make_marketing_dataset()
        first, second = run_analysis(ds).to_dict(), run_analysis(ds).to_dict()
        first.pop("timing")
        second.pop("timing")
        assert first == second

    def test_clarifying_questions_threshold(self):
        from app.core.analysis.orchestrator import fast_analysis, get_clarifying_questions
        schema = fast_analysis(make_customer_dataset()).schema
        assert [q.column for q in get_clarifying_questions(schema)] == ["notes"]
        assert get_clarifying_questions(schema, threshold=0) == []


# ═══════════════════════════════════════════════════════════════
# DIGEST
# ═══════════════════════════════════════════════════════════════

class TestDigest:

    def test_sections(self):
        from app.core.analysis.narrative import SKIPPER_INTROS, SKIPPER_OUTROS
        from app.core.analysis.orchestrator import format_digest, run_analysis
        text = format_digest(run_analysis(make_marketing_dataset()))
        assert "KOWALSKI ANALYSIS COMPLETE" in text
        assert "📊 DATA OVERVIEW:" in text
        assert "   • 30 records across 3 columns" in text
        assert "💡 BOTTOM LINE:" in text
        assert "🔬 TOP HYPOTHESES:" in text
        assert any(intro in text for intro in SKIPPER_INTROS)
        assert any(outro in text for outro in SKIPPER_OUTROS)

    def test_deterministic(self):
        from app.core.analysis.orchestrator import format_digest, run_analysis
        ds = make_marketing_dataset()
        assert format_digest(run_analysis(ds)) == format_digest(run_analysis(ds))

    def test_synthetic_warning(self):
        from app.core.analysis.orchestrator import fast_analysis, format_digest
        text = format_digest(fast_analysis(make_synthetic_dataset()))
        assert "⚠️  WARNING: Data appears to be SYNTHETIC" in text
        assert "🔬 TOP HYPOTHESES:" not in text

    def test_time_series_section(self):
        from app.core.analysis.orchestrator import format_digest, run_analysis
        text = format_digest(run_analysis(make_step_dataset()))
        assert "📈 TIME SERIES PATTERNS:" in text
        assert "significant change point(s) detected" in text

    def test_clarification_section(self):
        from app.core.analysis.orchestrator import BrainConfig, fast_analysis, format_digest
        result = fast_analysis(make_customer_dataset())
        assert "❓ CLARIFICATION NEEDED:" in format_digest(result)
        assert "❓ CLARIFICATION NEEDED:" not in format_digest(result, BrainConfig(question_threshold=0))


# ═══════════════════════════════════════════════════════════════
# ANALYZE & REMEMBER
# ═══════════════════════════════════════════════════════════════

class TestAnalyzeAndRemember:

    def test_remembers_result(self):
        from app.core.analysis.orchestrator import BrainConfig, analyze_and_remember
        from app.core.analysis.session_memory import SessionMemory
        memory = SessionMemory()
        session = analyze_and_remember(make_marketing_dataset(), "/data/marketing.csv", memory, BrainConfig.fast())
        assert session.memory.filepath == "/data/marketing.csv"
        assert memory.find_by_filepath("/data/marketing.csv").id == session.memory.id
        assert session.memory.summary.quality_score == session.deep.data_quality.score
        assert set(session.to_dict()) == {"brain", "deep", "memory"}


# ═══════════════════════════════════════════════════════════════
# Q&A
# ═══════════════════════════════════════════════════════════════

class TestQAEngine:

    @pytest.mark.parametrize("question,intent", [
        ("What is the correlation between spend and revenue?", "correlation"),
        ("Is there a relationship here?", "correlation"),
        ("What quality issues exist?", "quality"),
        ("Why is revenue so high?", "why"),
        ("How many rows are there?", "count"),
        ("Give me a summary", "summary"),
        ("Tell me about this data", "summary"),
        ("hello", "general"),
    ])
    def test_intent_routing(self, question, intent):
        from app.core.analysis.qa_engine import QAEngine
        assert QAEngine().answer(question, make_context(make_marketing_dataset()))["intent"] == intent

    def test_correlation_answer(self):
        from app.core.analysis.qa_engine import answer_question
        text = answer_question("what correlation is strongest?", make_context(make_marketing_dataset()))
        assert text.startswith("The strongest correlations are:")
        assert "ad_spend ↔ revenue" in text

    def test_no_correlations(self):
        from app.core.analysis.qa_engine import answer_question
        ctx = make_context(make_dataset(["a"], [("x",), ("y",)]))
        assert answer_question("any relationship?", ctx) == "No significant correlations found in this dataset."

    def test_count_answer(self):
        from app.core.analysis.qa_engine import answer_question
        text = answer_question("how many records?", make_context(make_marketing_dataset()))
        assert "• 30 rows" in text
        assert "• 3 columns" in text

    def test_general_answer(self):
        from app.core.analysis.qa_engine import answer_question
        text = answer_question("hello", make_context(make_marketing_dataset()))
        assert text.startswith("I found ")
