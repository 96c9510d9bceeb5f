"""
Analysis Brain — Statistics Engine Tests
==========================================
Column statistics, correlations, trends, outliers, duplicates and the
DataSet input contract.

Run: pytest app/core/analysis/tests -v
"""

import math
import pytest


# ═══════════════════════════════════════════════════════════════
# TEST FIXTURES
# ═══════════════════════════════════════════════════════════════

def make_dataset(columns, rows, name="test.csv", types=None):
    from app.core.analysis.dataset import DataSet
    return DataSet.create(name, columns, rows, types)


def make_sales_dataset(n=40):
    """Region × units × revenue, revenue tracking units closely."""
    regions = ["north", "south", "east", "west"]
    rows = []
    for i in range(n):
        units = 10 + (i % 7)
        rows.append((regions[i % 4], units, units * 12.5 + (i % 3)))
    return make_dataset(["region", "units", "revenue"], rows, name="sales.csv")


# ═══════════════════════════════════════════════════════════════
# DATASET CONTRACT
# ═══════════════════════════════════════════════════════════════

class TestDataSet:

    def test_types_inferred_when_missing(self):
        ds = make_dataset(["a", "b"], [(1, "x"), (2, "y"), ("3.5", "z")])
        assert ds.types == ("numeric", "categorical")
        assert ds.numeric_columns == ["a"]
        assert ds.categorical_columns == ["b"]

    def test_loader_type_aliases(self):
        ds = make_dataset(["a", "b", "c"], [(1, "x", "2024-01-01")], types=["number", "string", "date"])
        assert ds.types == ("numeric", "categorical", "date")
        assert ds.columns_of_type("date") == ["c"]

    def test_numeric_values_skip_missing_and_text(self):
        ds = make_dataset(["a"], [(1,), (None,), ("",), ("2.5",), ("abc",)], types=["number"])
        assert ds.numeric_values("a") == [1.0, 2.5]

    def test_filter_rows_returns_new_dataset(self):
        ds = make_sales_dataset(8)
        north = ds.filter_rows(lambda r: r[0] == "north")
        assert north.row_count == 2
        assert ds.row_count == 8

    def test_empty_dataset_rejected(self):
        from app.core.analysis.dataset import validate_dataset
        from app.core.analysis.errors import EmptyDataSetError
        with pytest.raises(EmptyDataSetError):
            validate_dataset(make_dataset(["a"], []))
        with pytest.raises(EmptyDataSetError):
            validate_dataset(make_dataset([], []))
        with pytest.raises(EmptyDataSetError):
            validate_dataset(None)

    def test_ragged_row_rejected(self):
        from app.core.analysis.dataset import validate_dataset
        from app.core.analysis.errors import InvalidDataSetError
        ds = make_dataset(["a", "b"], [(1, 2), (3,)], types=["number", "number"])
        with pytest.raises(InvalidDataSetError):
            validate_dataset(ds)

    def test_duplicate_columns_rejected(self):
        from app.core.analysis.dataset import validate_dataset
        from app.core.analysis.errors import InvalidDataSetError
        with pytest.raises(InvalidDataSetError):
            validate_dataset(make_dataset(["a", "a"], [(1, 2)]))


# ═══════════════════════════════════════════════════════════════
# PRIMITIVES
# ═══════════════════════════════════════════════════════════════

class TestPrimitives:

    def test_calculate_stats_quartiles_and_median(self):
        from app.core.analysis.statistics import calculate_stats
        s = calculate_stats([4, 1, 3, 2])
        assert s["count"] == 4
        assert s["median"] == 2.5
        assert s["q1"] == 2
        assert s["q3"] == 4
        assert s["std"] == pytest.approx(math.sqrt(1.25))

    def test_calculate_stats_empty(self):
        from app.core.analysis.statistics import calculate_stats
        assert calculate_stats([])["count"] == 0

    def test_pearson_undefined_cases(self):
        from app.core.analysis.statistics import pearson
        assert pearson([1, 2, 3], [5, 5, 5]) is None
        assert pearson([1], [2]) is None
        assert pearson([1, 2], [1, 2, 3]) is None

    def test_pearson_self_correlation(self):
        from app.core.analysis.statistics import pearson
        values = [3.0, 1.5, 9.0, 4.2, 7.7]
        assert pearson(values, values) == pytest.approx(1.0)

    def test_pearson_negative(self):
        from app.core.analysis.statistics import pearson
        assert pearson([1, 2, 3, 4], [8, 6, 4, 2]) == pytest.approx(-1.0)

    def test_correlation_strength_boundaries(self):
        from app.core.analysis.statistics import correlation_strength
        assert correlation_strength(0.7) == "strong"
        assert correlation_strength(-0.7) == "strong"
        assert correlation_strength(0.4) == "moderate"
        assert correlation_strength(0.39) == "weak"

    def test_zscore_zero_std(self):
        from app.core.analysis.statistics import calculate_zscore
        assert calculate_zscore(5, 5, 0) == 0.0
        assert calculate_zscore(7, 5, 2) == 1.0

    def test_detect_outliers_zscore(self):
        from app.core.analysis.statistics import detect_outliers_zscore
        values = [10.0] * 20 + [100.0]
        result = detect_outliers_zscore(values, threshold=3.0)
        assert result["indices"] == [20]
        assert detect_outliers_zscore([1, 2])["indices"] == []

    def test_skewness(self):
        from app.core.analysis.statistics import calculate_skewness
        assert calculate_skewness([1, 2]) is None
        assert calculate_skewness([3, 3, 3]) == 0.0
        assert calculate_skewness([1, 1, 1, 1, 10]) > 0

    def test_cramers_v_perfect_association(self):
        from app.core.analysis.statistics import calculate_cramers_v
        assert calculate_cramers_v(["a", "a", "b", "b"], ["x", "x", "y", "y"]) == pytest.approx(1.0)
        assert calculate_cramers_v(["a", "a"], ["x", "y"]) == 0.0

    def test_point_biserial(self):
        from app.core.analysis.statistics import calculate_point_biserial
        r = calculate_point_biserial([1, 1, 1, 9, 9], ["a", "a", "a", "b", "b"])
        assert r < -0.9
        assert calculate_point_biserial([1, 2], ["a", "a"]) == 0.0
        assert calculate_point_biserial([1, 2], ["a"]) == 0.0

    def test_categorical_stats_top_values(self):
        from app.core.analysis.statistics import calculate_categorical_stats
        s = calculate_categorical_stats(["b", "a", "b", None, "c", "b", "a"])
        assert s["unique_count"] == 3
        assert s["missing_count"] == 1
        assert s["top_values"][0] == {"value": "b", "count": 3}
        assert s["top_values"][1] == {"value": "a", "count": 2}


# ═══════════════════════════════════════════════════════════════
# TRENDS
# ═══════════════════════════════════════════════════════════════

class TestTrends:

    def test_upward_trend(self):
        from app.core.analysis.statistics import detect_trend
        t = detect_trend([10, 20, 30, 40, 50, 60, 70, 80, 90, 100])
        assert t["direction"] == "up"
        # first quarter (3 values) mean 20, last quarter mean 90
        assert t["change_percent"] == pytest.approx(350.0)

    def test_flat_series_is_stable(self):
        from app.core.analysis.statistics import detect_trend
        t = detect_trend([5, 5, 5, 5, 5, 5])
        assert t["direction"] == "stable"
        assert t["change_percent"] == 0.0

    def test_describe_trend(self):
        from app.core.analysis.statistics import describe_trend
        assert describe_trend("sales", "up", 12.34) == "sales shows upward trend (+12.3%)"
        assert describe_trend("sales", "down", -8.0) == "sales shows downward trend (-8.0%)"

    def test_trends_in_analysis(self):
        from app.core.analysis.statistics import analyze_dataset
        ds = make_dataset(["sales"], [(v,) for v in range(10, 110, 10)])
        analysis = analyze_dataset(ds)
        assert len(analysis.trends) == 1
        assert analysis.trends[0].direction == "up"
        assert analysis.trends[0].description.startswith("sales shows upward trend")

    def test_short_series_has_no_trend(self):
        from app.core.analysis.statistics import analyze_dataset
        ds = make_dataset(["sales"], [(1,), (5,), (9,), (20,)])
        assert analyze_dataset(ds).trends == []


# ═══════════════════════════════════════════════════════════════
# FULL ANALYSIS
# ═══════════════════════════════════════════════════════════════

class TestAnalyzeDataset:

    def test_perfect_linear_correlation(self):
        from app.core.analysis.statistics import analyze_dataset
        ds = make_dataset(["x", "y"], [(1, 2), (2, 4), (3, 6)])
        analysis = analyze_dataset(ds)
        assert len(analysis.correlations) == 1
        corr = analysis.correlations[0]
        assert corr.value == pytest.approx(1.0)
        assert corr.strength == "strong"

    def test_identical_rows_counted_as_duplicates(self):
        from app.core.analysis.statistics import analyze_dataset
        ds = make_dataset(["a", "b"], [(1, "x")] * 7)
        assert analyze_dataset(ds).summary.duplicate_rows == 6

    def test_statistics_keys_match_columns(self):
        from app.core.analysis.statistics import analyze_dataset
        ds = make_sales_dataset()
        analysis = analyze_dataset(ds)
        assert list(analysis.statistics) == list(ds.columns)
        assert analysis.statistics["region"].type == "categorical"
        assert analysis.statistics["units"].type == "numeric"

    def test_missing_values_counted(self):
        from app.core.analysis.statistics import analyze_dataset
        ds = make_dataset(["a", "b"], [(1, "x"), (None, "y"), (3, ""), (4, "x")],
                          types=["number", "string"])
        analysis = analyze_dataset(ds)
        assert analysis.statistics["a"].missing_count == 1
        assert analysis.statistics["b"].missing_count == 1
        assert analysis.summary.missing_percent == pytest.approx(2 / 8)
        assert analysis.summary.null_counts == {"a": 1, "b": 1}

    def test_correlations_sorted_by_magnitude(self):
        from app.core.analysis.statistics import analyze_dataset
        rows = [(i, i * 2, (i * 7) % 5, 10 - i) for i in range(10)]
        analysis = analyze_dataset(make_dataset(["a", "b", "c", "d"], rows))
        magnitudes = [abs(c.value) for c in analysis.correlations]
        assert magnitudes == sorted(magnitudes, reverse=True)
        assert all(-1.0 <= c.value <= 1.0 for c in analysis.correlations)

    def test_iqr_outlier_detected(self):
        from app.core.analysis.statistics import analyze_dataset
        values = [10, 11, 12, 10, 11, 12, 10, 11, 100]
        analysis = analyze_dataset(make_dataset(["v"], [(v,) for v in values]))
        assert len(analysis.outliers) == 1
        outlier = analysis.outliers[0]
        assert outlier.row_index == 8
        assert outlier.value == 100
        assert outlier.expected_max == pytest.approx(15.0)
        assert analysis.statistics["v"].outlier_indices == [8]

    def test_constant_column_skipped_in_correlations(self):
        from app.core.analysis.statistics import analyze_dataset
        ds = make_dataset(["a", "b"], [(1, 5), (2, 5), (3, 5)])
        assert analyze_dataset(ds).correlations == []

    def test_to_dict_serializable(self):
        import json
        from app.core.analysis.statistics import analyze_dataset
        payload = analyze_dataset(make_sales_dataset()).to_dict()
        assert json.loads(json.dumps(payload))["summary"]["total_rows"] == 40
