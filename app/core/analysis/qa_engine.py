"""
Q&A Engine — Deterministic Question Answering
===============================================
Answers free-text questions about an analyzed dataset WITHOUT an LLM:
  1. Intent classification (keyword regexes, checked in priority order)
  2. Templated answer built from the already-computed result bundle

Intent Categories (first match wins):
  - correlation:  "what ... correlation", "relationship"
  - quality:      "what ... issue / problem / quality"
  - why:          "why"
  - count:        "how many", "count"
  - summary:      "summary", "overview", "tell me about"
  - general:      anything else, a short digest

This is lookup and templating only; no semantic parsing is attempted.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from .dataset import DataSet
from .insight_engine import DeepAnalysisResult
from .statistics import AnalysisResult

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# INTENT PATTERNS
# ═══════════════════════════════════════════════════════════════

# Each intent matches when ANY of its rules matches; a rule is a tuple of
# regexes that must ALL match.
INTENT_PATTERNS: List[Tuple[str, List[Tuple[str, ...]]]] = [
    ("correlation", [(r"\bwhat", r"correlation"), (r"relationship",)]),
    ("quality", [(r"\bwhat", r"issue"), (r"\bwhat", r"problem"), (r"\bwhat", r"quality")]),
    ("why", [(r"\bwhy\b",)]),
    ("count", [(r"how many",), (r"count",)]),
    ("summary", [(r"summary",), (r"overview",), (r"tell me about",)]),
]


@dataclass
class QueryContext:
    dataset: DataSet
    analysis: AnalysisResult
    deep: DeepAnalysisResult


class QAEngine:
    """Classifies a question and routes it to a templated handler."""

    def answer(self, question: str, context: QueryContext) -> Dict[str, Any]:
        intent = self._classify_intent(question)
        handler = self._get_handler(intent)
        logger.debug(f"Q&A intent={intent} for question: {question[:60]!r}")
        return {"answer": handler(context), "intent": intent}

    # ──────────────────────────────────────────────────────────
    # INTENT CLASSIFICATION
    # ──────────────────────────────────────────────────────────

    def _classify_intent(self, question: str) -> str:
        q_lower = question.lower().strip()
        for intent, rules in INTENT_PATTERNS:
            for rule in rules:
                if all(re.search(p, q_lower) for p in rule):
                    return intent
        return "general"

    def _get_handler(self, intent: str):
        handlers = {
            "correlation": self._answer_correlation,
            "quality": self._answer_quality,
            "why": self._answer_why,
            "count": self._answer_count,
            "summary": self._answer_summary,
            "general": self._answer_general,
        }
        return handlers.get(intent, self._answer_general)

    # ══════════════════════════════════════════════════════════
    # INTENT HANDLERS
    # ══════════════════════════════════════════════════════════

    def _answer_correlation(self, ctx: QueryContext) -> str:
        corrs = ctx.analysis.correlations
        if not corrs:
            return "No significant correlations found in this dataset."
        lines = [f"• {c.column1} ↔ {c.column2}: {c.value:.3f} ({c.strength})" for c in corrs[:3]]
        return "The strongest correlations are:\n" + "\n".join(lines)

    def _answer_quality(self, ctx: QueryContext) -> str:
        issues = ctx.deep.data_quality.issues
        if not issues:
            return "No significant data quality issues found."
        return "Data quality issues found:\n" + "\n".join(f"• {i.description}" for i in issues[:5])

    def _answer_why(self, ctx: QueryContext) -> str:
        return (
            "To understand causality, I'd need to run specific statistical tests. "
            "Based on the correlations I found, here are possible explanations:\n"
            + "\n".join(f"• {q}" for q in ctx.deep.story.questions[:3])
        )

    def _answer_count(self, ctx: QueryContext) -> str:
        summary = ctx.analysis.summary
        return (
            "The dataset has:\n"
            f"• {ctx.dataset.row_count:,} rows\n"
            f"• {len(ctx.dataset.columns)} columns\n"
            f"• {summary.numeric_columns} numeric columns\n"
            f"• {summary.categorical_columns} categorical columns"
        )

    def _answer_summary(self, ctx: QueryContext) -> str:
        story = ctx.deep.story
        return story.summary + "\n\nKey findings:\n" + "\n".join(f"• {f}" for f in story.key_findings)

    def _answer_general(self, ctx: QueryContext) -> str:
        story = ctx.deep.story
        return (
            f"I found {len(ctx.deep.insights)} insights in this data. The main story is:\n\n"
            f"{story.headline}\n\n{story.summary}\n\n"
            "Ask me about correlations, quality issues, trends, or specific columns."
        )


def answer_question(question: str, context: QueryContext) -> str:
    """Pure function: templated answer for `question` over `context`."""
    return QAEngine().answer(question, context)["answer"]
