"""
Analysis Brain — Session Memory Tests
=======================================
Remember/evict semantics, cross-dataset insights, the JSON and database
backends, and degradation when storage fails.
"""

import itertools
import json
import pytest


# ═══════════════════════════════════════════════════════════════
# TEST FIXTURES
# ═══════════════════════════════════════════════════════════════

def make_dataset(name, columns, rows):
    from app.core.analysis.dataset import DataSet
    return DataSet.create(name, columns, rows)


def make_customers():
    return make_dataset("customers.csv", ["customer_id", "name"],
                        [(i + 1, f"customer {i + 1}") for i in range(12)])


def make_orders():
    return make_dataset("orders.csv", ["order_id", "cust_id", "amount"],
                        [(i + 1, i % 12 + 1, 10.0 + i) for i in range(30)])


def make_regional(name):
    return make_dataset(name, ["region", "revenue"], [("north", 10), ("south", 20), ("east", 15)])


def make_memory(backend=None, **kwargs):
    from app.core.analysis.session_memory import SessionMemory
    kwargs.setdefault("clock", lambda: 1000.0)
    return SessionMemory(backend, **kwargs)


def remember(memory, dataset, filepath=None):
    from app.core.analysis.insight_engine import run_deep_analysis
    from app.core.analysis.statistics import analyze_dataset
    analysis = analyze_dataset(dataset)
    deep = run_deep_analysis(dataset, analysis)
    return memory.remember(dataset, analysis, deep, filepath or f"/data/{dataset.name}")


# ═══════════════════════════════════════════════════════════════
# REMEMBER & RECALL
# ═══════════════════════════════════════════════════════════════

class TestRemember:

    def test_remember_creates_entry(self):
        memory = make_memory()
        entry = remember(memory, make_customers())
        assert entry.id.startswith("analysis-")
        assert entry.filename == "customers.csv"
        assert entry.row_count == 12
        assert entry.columns == ["customer_id", "name"]
        assert entry.summary.numeric_columns == ["customer_id"]
        assert entry.summary.categorical_columns == ["name"]
        assert 0 <= entry.summary.quality_score <= 100
        assert len(entry.key_insights) <= 5
        assert memory.get_recent_analyses()[0].id == entry.id

    def test_same_filepath_replaced_and_moved_to_front(self):
        memory = make_memory()
        remember(memory, make_customers(), "/data/a.csv")
        remember(memory, make_orders(), "/data/b.csv")
        latest = remember(memory, make_customers(), "/data/a.csv")
        recent = memory.get_recent_analyses()
        assert [m.filepath for m in recent] == ["/data/a.csv", "/data/b.csv"]
        assert recent[0].id == latest.id

    def test_cap_evicts_oldest(self):
        memory = make_memory(max_entries=20)
        ds = make_customers()
        for i in range(21):
            remember(memory, ds, f"/data/file_{i}.csv")
        assert len(memory.get_recent_analyses(limit=50)) == 20
        assert memory.find_by_filepath("/data/file_0.csv") is None
        assert memory.find_by_filepath("/data/file_20.csv") is not None

    def test_recent_limit(self):
        memory = make_memory()
        for i in range(7):
            remember(memory, make_customers(), f"/data/{i}.csv")
        assert len(memory.get_recent_analyses()) == 5
        assert len(memory.get_recent_analyses(limit=2)) == 2

    def test_has_changed(self):
        memory = make_memory()
        ds = make_customers()
        assert memory.has_changed("/data/customers.csv", ds) is True
        remember(memory, ds)
        assert memory.has_changed("/data/customers.csv", ds) is False
        edited = make_dataset("customers.csv", ["customer_id", "name"], [(99, "someone else")])
        assert memory.has_changed("/data/customers.csv", edited) is True

    def test_clear(self):
        memory = make_memory()
        remember(memory, make_customers())
        memory.clear()
        assert memory.get_recent_analyses() == []
        assert memory.get_cross_insights() == []


# ═══════════════════════════════════════════════════════════════
# CROSS-DATASET INSIGHTS
# ═══════════════════════════════════════════════════════════════

class TestCrossInsights:

    def test_possible_join_on_id_variation(self):
        memory = make_memory()
        remember(memory, make_customers())
        remember(memory, make_orders())
        insights = memory.get_cross_insights()
        assert [c.type for c in insights] == ["possible_join"]
        assert insights[0].confidence == 70
        assert "cust_id" in insights[0].suggestion
        assert "customer_id" in insights[0].suggestion

    def test_identical_schemas(self):
        memory = make_memory()
        remember(memory, make_regional("jan.csv"))
        remember(memory, make_regional("feb.csv"))
        insights = memory.get_cross_insights()
        assert [c.type for c in insights] == ["schema_similarity", "common_columns"]
        assert insights[1].confidence == 70

    def test_similar_names(self):
        from app.core.analysis.session_memory import similar_names
        assert similar_names("customer_id", "cust_id") is True
        assert similar_names("Order-ID", "orderid") is True
        assert similar_names("order_id", "customer_id") is False

    def test_checksum_uses_leading_rows_only(self):
        from app.core.analysis.session_memory import dataset_checksum
        rows = [(i,) for i in range(20)]
        a = make_dataset("a.csv", ["n"], rows)
        b = make_dataset("a.csv", ["n"], rows[:10] + [(999,)] * 10)
        assert dataset_checksum(a) == dataset_checksum(b)


# ═══════════════════════════════════════════════════════════════
# FORMATTING
# ═══════════════════════════════════════════════════════════════

class TestFormatting:

    def test_empty_status(self):
        assert make_memory().format_memory_status() == (
            "No previous analyses remembered. Run an analysis to start."
        )

    def test_status_lists_files_with_age(self):
        now = [1000.0]
        memory = make_memory(clock=lambda: now[0])
        remember(memory, make_customers())
        now[0] += 2 * 3600
        text = memory.format_memory_status()
        assert text.startswith("📊 KOWALSKI MEMORY: 1 dataset remembered")
        assert "• customers.csv (12 rows) - 2h ago" in text

    def test_comparison_missing_file(self):
        memory = make_memory()
        remember(memory, make_customers())
        assert memory.format_dataset_comparison("customers.csv", "ghost.csv") == (
            "Cannot compare: ghost.csv not found in memory. Analyze both files first."
        )

    def test_comparison(self):
        memory = make_memory()
        remember(memory, make_regional("jan.csv"))
        remember(memory, make_customers())
        text = memory.format_dataset_comparison("jan.csv", "customers.csv")
        assert text.startswith("📊 COMPARISON: jan.csv vs customers.csv")
        assert "Common columns (0)" in text
        assert "No common columns found" in text

    def test_format_age(self):
        from app.core.analysis.session_memory import format_age
        assert format_age(0, 30_000) == "just now"
        assert format_age(0, 5 * 60_000) == "5m ago"
        assert format_age(0, 3 * 3_600_000) == "3h ago"
        assert format_age(0, 50 * 3_600_000) == "2d ago"


# ═══════════════════════════════════════════════════════════════
# BACKENDS
# ═══════════════════════════════════════════════════════════════

class TestJsonBackend:

    def test_persists_across_instances(self, tmp_path):
        from app.core.analysis.session_memory import JsonFileBackend
        path = tmp_path / "nested" / "memory.json"
        first = make_memory(JsonFileBackend(str(path)))
        entry = remember(first, make_customers())

        doc = json.loads(path.read_text(encoding="utf-8"))
        assert set(doc) == {"memories", "crossInsights", "lastAnalysis"}
        assert doc["lastAnalysis"] == entry.id
        assert doc["memories"][0]["rowCount"] == 12
        assert "keyInsights" in doc["memories"][0]

        second = make_memory(JsonFileBackend(str(path)))
        assert second.find_by_filepath("/data/customers.csv").id == entry.id

    def test_corrupt_file_loads_empty(self, tmp_path):
        from app.core.analysis.session_memory import JsonFileBackend
        path = tmp_path / "memory.json"
        path.write_text("{not json", encoding="utf-8")
        memory = make_memory(JsonFileBackend(str(path)))
        assert memory.get_recent_analyses() == []

    def test_wrong_document_shape_loads_empty(self, tmp_path):
        from app.core.analysis.session_memory import JsonFileBackend
        path = tmp_path / "memory.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        assert make_memory(JsonFileBackend(str(path))).get_recent_analyses() == []

    def test_unwritable_path_degrades_to_memory(self, tmp_path):
        from app.core.analysis.session_memory import InMemoryBackend, JsonFileBackend
        memory = make_memory(JsonFileBackend(str(tmp_path)))
        entry = remember(memory, make_customers())
        assert memory.degraded is True
        assert isinstance(memory.backend, InMemoryBackend)
        assert memory.get_recent_analyses()[0].id == entry.id

    def test_interrupted_write_keeps_previous_document(self, tmp_path, monkeypatch):
        from app.core.analysis import session_memory
        from app.core.analysis.session_memory import JsonFileBackend
        path = tmp_path / "memory.json"
        memory = make_memory(JsonFileBackend(str(path)))
        first = remember(memory, make_customers())

        def fail_midway(doc, fh, **kwargs):
            fh.write('{"memories": [')
            raise OSError("disk full")

        monkeypatch.setattr(session_memory.json, "dump", fail_midway)
        remember(memory, make_orders())
        monkeypatch.undo()

        assert memory.degraded is True
        assert [p.name for p in tmp_path.iterdir()] == ["memory.json"]
        doc = json.loads(path.read_text(encoding="utf-8"))
        assert [m["id"] for m in doc["memories"]] == [first.id]


class TestDatabaseBackend:

    @pytest.fixture
    def session_factory(self, tmp_path):
        from sqlalchemy import create_engine
        from sqlalchemy.orm import sessionmaker
        from app.core.database import Base
        from app.models.analysis_memory import AnalysisMemoryRecord  # noqa: F401 registers the table

        engine = create_engine(f"sqlite:///{tmp_path / 'memory.db'}")
        Base.metadata.create_all(bind=engine)
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
        engine.dispose()

    def test_round_trip_newest_first(self, session_factory):
        from app.core.analysis.session_memory import DatabaseBackend
        ticks = itertools.count(1000)
        memory = make_memory(DatabaseBackend(session_factory), clock=lambda: next(ticks))
        remember(memory, make_customers())
        remember(memory, make_orders())

        fresh = make_memory(DatabaseBackend(session_factory))
        recent = fresh.get_recent_analyses()
        assert [m.filename for m in recent] == ["orders.csv", "customers.csv"]
        assert recent[1].columns == ["customer_id", "name"]
        assert [c.type for c in fresh.get_cross_insights()] == ["possible_join"]
        assert fresh.degraded is False

    def test_timestamp_ties_keep_recency_order(self, session_factory):
        from app.core.analysis.session_memory import DatabaseBackend
        memory = make_memory(DatabaseBackend(session_factory))
        remember(memory, make_regional("a.csv"))
        remember(memory, make_regional("b.csv"))
        remember(memory, make_regional("c.csv"))
        remember(memory, make_regional("a.csv"))
        expected = [m.id for m in memory.get_recent_analyses()]
        assert [m.filename for m in memory.get_recent_analyses()] == ["a.csv", "c.csv", "b.csv"]

        fresh = make_memory(DatabaseBackend(session_factory))
        assert [m.id for m in fresh.get_recent_analyses()] == expected

    def test_save_replaces_rows(self, session_factory):
        from app.core.analysis.session_memory import DatabaseBackend
        from app.models.analysis_memory import AnalysisMemoryRecord
        ticks = itertools.count(1000)
        memory = make_memory(DatabaseBackend(session_factory), clock=lambda: next(ticks))
        remember(memory, make_customers())
        remember(memory, make_customers())

        db = session_factory()
        try:
            assert db.query(AnalysisMemoryRecord).count() == 1
        finally:
            db.close()


class TestCreateBackend:

    def test_kinds(self, tmp_path):
        from app.core.analysis.session_memory import (
            DatabaseBackend, InMemoryBackend, JsonFileBackend, create_backend,
        )
        assert isinstance(create_backend("memory"), InMemoryBackend)
        assert isinstance(create_backend("json", path=str(tmp_path / "m.json")), JsonFileBackend)
        assert isinstance(create_backend("database", session_factory=lambda: None), DatabaseBackend)

    def test_invalid(self):
        from app.core.analysis.session_memory import create_backend
        with pytest.raises(ValueError):
            create_backend("redis")
        with pytest.raises(ValueError):
            create_backend("database")
