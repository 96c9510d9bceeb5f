"""
Analysis Thresholds — Named Heuristic Constants
=================================================
Every magic number used by the detectors lives here so that tests can
assert behaviour exactly at the boundary values.
"""

# ── Correlation strength ──
CORRELATION_STRONG = 0.7
CORRELATION_MODERATE = 0.4
CORRELATION_WEAK = 0.2
CORRELATION_NEAR_ZERO = 0.1          # "surprising" lack of correlation
MIN_JOINT_OBSERVATIONS = 2           # pairs with fewer joint values are omitted

# ── Descriptive statistics ──
TOP_VALUES_LIMIT = 10
MIN_SKEWNESS_COUNT = 3
IQR_MULTIPLIER = 1.5
SKEW_ANOMALY_THRESHOLD = 2.0

# ── Trend detection ──
TREND_MIN_VALUES = 5
TREND_SLOPE_FACTOR = 0.05            # slope must exceed |mean| * factor / n
TREND_MIN_CHANGE_PERCENT = 5.0
TREND_WARNING_PERCENT = 20.0

# ── Time series ──
TIMESERIES_MIN_POINTS = 20
CHANGE_POINT_WINDOW = 5
CHANGE_POINT_THRESHOLD = 2.0         # minimum shift in pooled SDs
CHANGE_POINT_ALPHA = 0.01            # family-wise, Bonferroni over scanned positions
SEASONALITY_MIN_POINTS = 8
SEASONALITY_MAX_PERIOD = 24
SEASONALITY_MIN_STRENGTH = 0.3
SEASONALITY_ALPHA = 0.001            # family-wise, Bonferroni over candidate lags
SEASONALITY_PERIOD_TOLERANCE = 0.1

# ── Quality score ──
QUALITY_MISSING_PENALTY_CAP = 20.0
QUALITY_DUPLICATE_PENALTY_CAP = 15.0
QUALITY_NEAR_DUPLICATE_PENALTY = 5.0
MISSING_CRITICAL_PERCENT = 20.0
MISSING_WARNING_PERCENT = 5.0
DUPLICATE_CRITICAL_PERCENT = 10.0
OUTLIER_WARNING_PERCENT = 5.0
ROUND_NUMBER_RATIO = 0.8
INCONSISTENT_UNIQUE_RATIO = 0.9
INCONSISTENT_MIN_ROWS = 100

# ── Row anomalies ──
ROW_ANOMALY_ZSCORE = 2.5
ROW_ANOMALY_MIN_COLUMNS = 2
ROW_ANOMALY_WARNING_PERCENT = 5.0

# ── Synthetic data signals ──
SYNTHETIC_MIN_ROWS = 1000
SYNTHETIC_MIN_REASONS = 2
SYNTHETIC_MIN_CORRELATIONS = 3
UNIFORM_BUCKETS = 5
UNIFORM_MAX_DEVIATION = 0.05
GROUP_MEAN_MAX_DIFF = 1.0
GROUP_MEAN_MIN_STD = 10.0
GROUP_MEAN_MIN_GROUPS = 3

# ── Patterns & segments ──
SIMILAR_MEAN_RATIO = 0.1
SIMILAR_STD_RATIO = 0.2
DOMINANT_CATEGORY_PERCENT = 70.0
DOMINANT_CATEGORY_CRITICAL_PERCENT = 90.0
CONCENTRATION_LOW = 0.2
CONCENTRATION_HIGH = 0.8
SEGMENT_MIN_CARDINALITY = 2
SEGMENT_MAX_CARDINALITY = 10
SEGMENT_MIN_ROWS = 10
SEGMENT_MIN_DIFF_PERCENT = 10.0
SEGMENT_TOP_VALUES = 5
SEGMENT_NUMERIC_COLUMNS = 3
SEGMENT_KEEP = 5

# ── Story & recommendations ──
KEY_FINDING_MIN_CONFIDENCE = 70
QUALITY_CLEANUP_SCORE = 70
QUALITY_BANDS = ((90, "excellent"), (70, "good"), (50, "fair"))

# ── Schema inference ──
CONFIDENCE_HIGH = 90
CONFIDENCE_MEDIUM = 70
CONFIDENCE_LOW = 50
DEFAULT_QUESTION_THRESHOLD = 70

# ── Hypotheses ──
DEFAULT_MAX_HYPOTHESES = 10
HYPOTHESIS_MIN_CORRELATION = 0.4
CONFOUNDER_MIN_CORRELATION = 0.3
GROUP_MIN_MEMBERS = 5
GROUP_MIN_DIFF_PERCENT = 10.0
SIGNIFICANCE_LEVEL = 0.05

# ── Relationship discovery ──
RELATIONSHIP_MIN_CONFIDENCE = 30
PRIMARY_KEY_UNIQUE_RATIO = 0.95
CANDIDATE_UNIQUE_RATIO = 0.5
MATCH_CONFIDENCE = {"exact": 70, "fuzzy": 50, "value_overlap": 30}

# ── Session memory ──
MEMORY_MAX_ENTRIES = 20
MEMORY_CHECKSUM_ROWS = 10
MEMORY_KEY_INSIGHTS = 5
MEMORY_TOP_CORRELATIONS = 5
CROSS_INSIGHT_LIMIT = 10
SCHEMA_SIMILARITY_THRESHOLD = 0.7
