"""
Schema Inference — Semantic Column Types with Confidence
==========================================================
Classifies what each column represents, combining column-name hints with
value-shape evidence (range, format, cardinality).

Semantic types:
  id, boolean, percentage, currency, count, rate, date, timestamp,
  email, phone, url, categorical, text, unknown

Confidence levels:
  >= 90  high      — proceed automatically
  >= 70  medium    — note uncertainty, proceed
  >= 50  low       — ask a clarifying question
  <  50  very_low  — require user input

Deterministic: identical input always yields identical output.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from . import constants as C
from .dataset import Cell, DataSet, is_missing

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# PATTERNS
# ═══════════════════════════════════════════════════════════════

PATTERNS = {
    "uuid": re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I),
    "email": re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$"),
    "phone": re.compile(r"^[\d\s\-\(\)\+\.]{7,20}$"),
    "url": re.compile(r"^https?://\S+$", re.I),
    "currency": re.compile(r"^\$[\d,]+\.?\d*$|^[\d,]+\.?\d*\s*(?:USD|EUR|GBP|JPY)$", re.I),
    "percentage": re.compile(r"^[\d.]+%$"),
    "date_iso": re.compile(r"^\d{4}-\d{2}-\d{2}"),
    "date_us": re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}$"),
    "date_eu": re.compile(r"^\d{1,2}-\d{1,2}-\d{2,4}$"),
    "timestamp": re.compile(r"^\d{10,13}$"),
}

BOOLEAN_VALUES = {
    "true", "false", "yes", "no", "y", "n", "1", "0",
    "on", "off", "enabled", "disabled", "active", "inactive",
}

SEMANTIC_TYPE_LABELS = {
    "percentage": "Percentage (0-100%)",
    "currency": "Currency/Money",
    "count": "Count/Quantity",
    "rate": "Rate/Probability (0-1)",
    "id": "ID/Identifier",
    "boolean": "Yes/No (Boolean)",
    "categorical": "Category/Label",
    "text": "Free-form Text",
    "date": "Date/Time",
    "timestamp": "Unix Timestamp",
    "email": "Email Address",
    "phone": "Phone Number",
    "url": "URL/Link",
    "unknown": "Unknown/Other",
}

_MAX_UNIX_MS = 4102444800000


# ═══════════════════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════════════════

@dataclass
class ConfidenceScore:
    value: float
    level: str                      # high | medium | low | very_low
    reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "level": self.level, "reasons": list(self.reasons)}


@dataclass
class ClarifyingQuestion:
    column: str
    question: str
    options: List[str]
    reason: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class ColumnTypeInference:
    column: str
    basic_type: str                 # string | number | date | boolean | null
    basic_type_confidence: ConfidenceScore
    semantic_type: str
    semantic_type_confidence: ConfidenceScore
    alternatives: List[Dict[str, Any]] = field(default_factory=list)
    sample_values: List[Cell] = field(default_factory=list)
    statistics: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column": self.column,
            "basic_type": self.basic_type,
            "basic_type_confidence": self.basic_type_confidence.to_dict(),
            "semantic_type": self.semantic_type,
            "semantic_type_confidence": self.semantic_type_confidence.to_dict(),
            "alternatives": list(self.alternatives),
            "sample_values": list(self.sample_values),
            "statistics": dict(self.statistics),
        }


@dataclass
class SchemaInference:
    columns: List[ColumnTypeInference]
    overall_confidence: ConfidenceScore
    suggested_questions: List[ClarifyingQuestion] = field(default_factory=list)

    def column(self, name: str) -> Optional[ColumnTypeInference]:
        return next((c for c in self.columns if c.column == name), None)

    @property
    def average_confidence(self) -> float:
        if not self.columns:
            return 0.0
        return sum(c.semantic_type_confidence.value for c in self.columns) / len(self.columns)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columns": [c.to_dict() for c in self.columns],
            "overall_confidence": self.overall_confidence.to_dict(),
            "suggested_questions": [q.to_dict() for q in self.suggested_questions],
        }


# ═══════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════

def confidence_level(value: float) -> str:
    if value >= C.CONFIDENCE_HIGH:
        return "high"
    if value >= C.CONFIDENCE_MEDIUM:
        return "medium"
    if value >= C.CONFIDENCE_LOW:
        return "low"
    return "very_low"


def make_confidence(value: float, reasons: List[str]) -> ConfidenceScore:
    clamped = min(100, max(0, value))
    return ConfidenceScore(value=clamped, level=confidence_level(clamped), reasons=reasons)


def _is_number(v: Cell) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _is_integer(v: float) -> bool:
    return float(v).is_integer()


def _is_date_value(v: Cell) -> bool:
    text = str(v)
    return bool(
        PATTERNS["date_iso"].match(text)
        or PATTERNS["date_us"].match(text)
        or PATTERNS["date_eu"].match(text)
    )


def _decimal_places(v: float) -> int:
    text = repr(float(v)) if not isinstance(v, int) else str(v)
    if "." not in text or "e" in text.lower():
        return 0
    decimals = text.split(".")[1]
    return 0 if decimals == "0" else len(decimals)


def format_semantic_type(semantic_type: str) -> str:
    return SEMANTIC_TYPE_LABELS.get(semantic_type, semantic_type)


def verbalize_confidence(confidence: ConfidenceScore) -> str:
    value = int(round(confidence.value))
    if confidence.level == "high":
        return "highly confident"
    if confidence.level == "medium":
        return f"{value}% confident"
    if confidence.level == "low":
        return f"only {value}% confident"
    return f"uncertain ({value}% confidence)"


def describe_inference(inference: ColumnTypeInference) -> str:
    """One-line persona message describing a column's inferred type."""
    conf = inference.semantic_type_confidence
    label = format_semantic_type(inference.semantic_type)
    if conf.level == "high":
        return f'I\'m {verbalize_confidence(conf)} that "{inference.column}" is {label}, Skipper.'
    if conf.level == "medium":
        return (f'"{inference.column}" appears to be {label}. '
                f"{verbalize_confidence(conf)} - proceeding with caution.")
    return (f'Skipper, I\'m {verbalize_confidence(conf)} about "{inference.column}". '
            f"Might be {label}, but I'd appreciate clarification.")


# ═══════════════════════════════════════════════════════════════
# SCORING
# ═══════════════════════════════════════════════════════════════

def _score_id(name: str, values: List[Cell], unique_count: int, non_null: int) -> float:
    uuid_count = sum(1 for v in values if PATTERNS["uuid"].match(str(v)))
    if uuid_count / len(values) > 0.8:
        return 95

    score = 0
    if unique_count == non_null and non_null > 10:
        score += 40

    if any(kw in name for kw in ("_id", "uuid", "guid", "identifier")):
        score += 35
    elif name == "id" or name.endswith("id"):
        score += 30
    elif any(kw in name for kw in ("key", "code")):
        score += 15

    numbers = [v for v in values if _is_number(v)]
    if len(numbers) == len(values) and len(numbers) > 10:
        ordered = sorted(numbers)
        strictly_increasing = all(ordered[i] > ordered[i - 1] for i in range(1, len(ordered)))
        if strictly_increasing and ordered[0] >= 0:
            score += 25 if "id" in name else 10
    return min(100, score)


def _score_boolean(values: List[Cell]) -> float:
    ratio = sum(1 for v in values if str(v).lower() in BOOLEAN_VALUES) / len(values)
    if len({str(v).lower() for v in values}) == 2:
        return round(ratio * 100)
    return round(ratio * 95) if ratio > 0.9 else 0


def _score_percentage(name: str, values: List[Cell], basic_type: str) -> float:
    suffixed = sum(1 for v in values if isinstance(v, str) and PATTERNS["percentage"].match(v))
    if suffixed / len(values) > 0.8:
        return 95

    keywords = ("percent", "pct", "share", "proportion")
    named = any(kw in name for kw in keywords)
    score = 35 if named else 0

    if basic_type == "number":
        numbers = [v for v in values if _is_number(v)]
        if numbers:
            lo, hi = min(numbers), max(numbers)
            if lo >= 0 and hi <= 100 and hi > 1:
                score += 30
                if hi > 90 or lo < 10:
                    score += 15
            if lo >= 0 and hi <= 1:
                score += 30 if named else 15
    return min(100, score)


def _score_currency(name: str, values: List[Cell]) -> float:
    patterned = sum(1 for v in values if isinstance(v, str) and PATTERNS["currency"].match(v))
    if patterned / len(values) > 0.8:
        return 90

    strong = ("price", "cost", "revenue", "income", "expense", "salary", "wage",
              "fee", "payment", "balance", "budget")
    weak = ("amount", "total", "spend", "value")
    score = 0
    if any(kw in name for kw in strong):
        score += 50
    elif any(kw in name for kw in weak):
        score += 25

    numbers = [v for v in values if _is_number(v)]
    if numbers:
        if min(numbers) >= 0 and max(numbers) < 10_000_000:
            score += 15
        two_decimals = sum(1 for v in numbers if _decimal_places(v) == 2)
        if two_decimals / len(numbers) > 0.5:
            score += 20
    return min(100, score)


def _score_count(name: str, values: List[Cell], basic_type: str) -> float:
    if basic_type != "number":
        return 0
    keywords = ("count", "quantity", "qty", "num", "number", "total", "amount",
                "units", "items", "size", "length", "age", "year", "month", "day")
    score = 25 if any(kw in name for kw in keywords) else 0
    numbers = [v for v in values if _is_number(v)]
    if numbers:
        ratio = sum(1 for v in numbers if _is_integer(v) and v >= 0) / len(numbers)
        if ratio > 0.95:
            score += 40
        elif ratio > 0.8:
            score += 25
    return min(100, score)


def _score_rate(name: str, values: List[Cell], basic_type: str) -> float:
    if basic_type != "number":
        return 0
    strong = any(kw in name for kw in ("rate", "ratio", "probability", "likelihood"))
    weak = any(kw in name for kw in ("confidence", "score", "conversion", "churn", "retention"))
    score = 45 if strong else (25 if weak else 0)

    numbers = [v for v in values if _is_number(v)]
    if numbers and min(numbers) >= 0 and max(numbers) <= 1:
        score += 50 if strong else 40
        fractional = sum(1 for v in numbers if not _is_integer(v))
        if fractional / len(numbers) > 0.5:
            score += 10
    return min(100, score)


def _score_date(name: str, values: List[Cell]) -> float:
    keywords = ("date", "time", "created", "updated", "modified", "timestamp",
                "born", "start", "end", "expire", "due")
    score = 25 if any(kw in name for kw in keywords) else 0
    ratio = sum(1 for v in values if _is_date_value(v)) / len(values)
    if ratio > 0.8:
        score += 60
    elif ratio > 0.5:
        score += 35
    return min(100, score)


def _score_timestamp(name: str, values: List[Cell]) -> float:
    score = 40 if ("timestamp" in name or "unix" in name) else 0
    matches = 0
    for v in values:
        text = str(int(v)) if _is_number(v) and _is_integer(v) else str(v)
        if PATTERNS["timestamp"].match(text) and 0 <= int(text) <= _MAX_UNIX_MS:
            matches += 1
    if matches / len(values) > 0.8:
        score += 50
    return min(100, score)


def _score_email(name: str, values: List[Cell]) -> float:
    score = 40 if ("email" in name or "mail" in name) else 0
    ratio = sum(1 for v in values if isinstance(v, str) and PATTERNS["email"].match(v)) / len(values)
    if ratio > 0.8:
        score += 55
    elif ratio > 0.5:
        score += 30
    return min(100, score)


def _score_phone(name: str, values: List[Cell]) -> float:
    score = 40 if any(kw in name for kw in ("phone", "tel", "mobile")) else 0
    matches = 0
    for v in values:
        text = str(v)
        if PATTERNS["phone"].match(text) and len(re.sub(r"\D", "", text)) >= 7:
            matches += 1
    if matches / len(values) > 0.8:
        score += 50
    return min(100, score)


def _score_url(name: str, values: List[Cell]) -> float:
    score = 40 if any(kw in name for kw in ("url", "link", "website")) else 0
    ratio = sum(1 for v in values if isinstance(v, str) and PATTERNS["url"].match(v)) / len(values)
    if ratio > 0.8:
        score += 55
    return min(100, score)


def _score_categorical(unique_count: int, non_null: int, basic_type: str) -> float:
    ratio = unique_count / non_null
    if unique_count <= 10 and non_null > 50:
        return 85
    if ratio < 0.05 and non_null > 100:
        return 75
    if ratio < 0.1 and non_null > 50:
        return 60
    if unique_count <= 20 and basic_type == "string":
        return 50
    return 0


def _score_text(values: List[Cell], basic_type: str) -> float:
    if basic_type != "string":
        return 0
    avg_length = sum(len(str(v)) for v in values) / len(values)
    if avg_length > 50:
        return 80
    if avg_length > 20:
        return 60
    return 30


# ═══════════════════════════════════════════════════════════════
# INFERENCER
# ═══════════════════════════════════════════════════════════════

class SchemaInferencer:
    """
    Infers basic and semantic types for every column of a DataSet and
    proposes clarifying questions below a confidence threshold.
    """

    def __init__(self, question_threshold: float = C.DEFAULT_QUESTION_THRESHOLD):
        self.question_threshold = question_threshold

    def infer(self, dataset: DataSet) -> SchemaInference:
        inferences = [
            self.infer_column(col, dataset.column_values(col))
            for col in dataset.columns
        ]
        questions = []
        for inference in inferences:
            if inference.semantic_type_confidence.value < self.question_threshold:
                question = self._clarifying_question(inference)
                if question:
                    questions.append(question)

        average = (
            sum(i.semantic_type_confidence.value for i in inferences) / len(inferences)
            if inferences else 0.0
        )
        low = [i for i in inferences if i.semantic_type_confidence.level in ("low", "very_low")]
        if low:
            reasons = [f"{len(low)} column(s) have low confidence"]
        else:
            reasons = ["All columns have high or medium confidence inference"]

        return SchemaInference(
            columns=inferences,
            overall_confidence=make_confidence(average, reasons),
            suggested_questions=questions,
        )

    # ──────────────────────────────────────────────────────────
    # PER COLUMN
    # ──────────────────────────────────────────────────────────

    def infer_column(self, column: str, values: Sequence[Cell]) -> ColumnTypeInference:
        present = [v for v in values if not is_missing(v)]
        numeric_count = sum(1 for v in present if _is_number(v))
        string_count = len(present) - numeric_count
        unique_count = len({str(v) for v in present})

        basic_type, basic_conf = self._basic_type(present, numeric_count, string_count, len(values))
        semantic_type, semantic_conf, alternatives = self._semantic_type(
            column.lower(), present, basic_type, unique_count,
        )
        return ColumnTypeInference(
            column=column,
            basic_type=basic_type,
            basic_type_confidence=basic_conf,
            semantic_type=semantic_type,
            semantic_type_confidence=semantic_conf,
            alternatives=alternatives,
            sample_values=present[:5],
            statistics={
                "total_count": len(values),
                "null_count": len(values) - len(present),
                "unique_count": unique_count,
                "numeric_count": numeric_count,
                "string_count": string_count,
            },
        )

    def _basic_type(self, present, numeric_count, string_count, total):
        if not present:
            return "null", make_confidence(100, ["All values are null"])
        n = len(present)
        numeric_ratio = numeric_count / n
        string_ratio = string_count / n

        boolean_ratio = sum(1 for v in present if str(v).lower() in BOOLEAN_VALUES) / n
        if boolean_ratio > 0.9:
            pct = round(boolean_ratio * 100)
            return "boolean", make_confidence(pct, [f"{pct}% of values are boolean-like"])

        date_ratio = sum(1 for v in present if _is_date_value(v)) / n
        if date_ratio > 0.8:
            pct = round(date_ratio * 100)
            return "date", make_confidence(pct, [f"{pct}% of values match date patterns"])

        if numeric_ratio > 0.8:
            reasons = [f"{round(numeric_ratio * 100)}% of values are numeric"]
            if string_ratio > 0:
                reasons.append(f"{round(string_ratio * 100)}% are strings (possibly mixed data)")
            return "number", make_confidence(round(numeric_ratio * 100), reasons)

        if string_ratio > 0.8:
            pct = round(string_ratio * 100)
            return "string", make_confidence(pct, [f"{pct}% of values are strings"])

        return "string", make_confidence(50, [
            "Mixed data types detected",
            f"{round(numeric_ratio * 100)}% numeric, {round(string_ratio * 100)}% string",
        ])

    def _semantic_type(self, name, present, basic_type, unique_count):
        if not present:
            return "unknown", make_confidence(30, ["Could not determine semantic type"]), []

        non_null = len(present)
        scores = {
            "id": _score_id(name, present, unique_count, non_null),
            "boolean": _score_boolean(present),
            "percentage": _score_percentage(name, present, basic_type),
            "currency": _score_currency(name, present),
            "count": _score_count(name, present, basic_type),
            "rate": _score_rate(name, present, basic_type),
            "date": _score_date(name, present),
            "timestamp": _score_timestamp(name, present),
            "email": _score_email(name, present),
            "phone": _score_phone(name, present),
            "url": _score_url(name, present),
            "categorical": _score_categorical(unique_count, non_null, basic_type),
            "text": _score_text(present, basic_type),
        }
        # Stable sort keeps the declaration order above as the tie-breaker
        ranked = sorted(
            ({"type": t, "confidence": s} for t, s in scores.items() if s > 0),
            key=lambda a: -a["confidence"],
        )
        if not ranked:
            return "unknown", make_confidence(30, ["Could not determine semantic type"]), []

        best = ranked[0]
        reasons = []
        if best["type"] == "id":
            reasons.append("All values are unique")
            if "id" in name:
                reasons.append("Column name suggests identifier")
        elif best["type"] == "percentage":
            reasons.append("Values are in 0-100 or 0-1 range")
            if "rate" in name or "percent" in name:
                reasons.append("Column name suggests percentage")
        elif best["type"] == "currency":
            reasons.append("Values match currency patterns")
        elif best["type"] == "boolean":
            reasons.append("Values are boolean-like (true/false, yes/no, 1/0)")
        elif best["type"] == "categorical":
            reasons.append(f"Limited unique values ({unique_count}) relative to row count")

        return best["type"], make_confidence(best["confidence"], reasons), ranked[1:4]

    def _clarifying_question(self, inference: ColumnTypeInference) -> Optional[ClarifyingQuestion]:
        conf = inference.semantic_type_confidence.value
        if inference.alternatives:
            options = [inference.semantic_type] + [a["type"] for a in inference.alternatives]
            samples = ", ".join(f'"{v}"' for v in inference.sample_values[:3])
            return ClarifyingQuestion(
                column=inference.column,
                question=f"Column '{inference.column}' has values like {samples}. What type of data is this?",
                options=[format_semantic_type(o) for o in options[:4]],
                reason=f"Detected as {inference.semantic_type} but with {conf}% confidence",
                confidence=conf,
            )

        stats = inference.statistics
        if stats["unique_count"] == stats["total_count"] - stats["null_count"]:
            return ClarifyingQuestion(
                column=inference.column,
                question=(f"Column '{inference.column}' has all unique values. "
                          "Is this an identifier or unique data?"),
                options=["ID/Primary Key", "Unique text values", "Something else"],
                reason="All values are unique, could be ID or just diverse data",
                confidence=conf,
            )
        return None


def infer_schema(dataset: DataSet, question_threshold: float = C.DEFAULT_QUESTION_THRESHOLD) -> SchemaInference:
    return SchemaInferencer(question_threshold).infer(dataset)
