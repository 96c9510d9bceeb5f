"""
Relationship Discovery — Cross-Dataset Join Key Inference
===========================================================
Guesses how two or more datasets join, independent of the single-dataset
pipeline.

Steps:
  1. Candidate columns   — key-like names (id, *_id, *_key, *_code, ...)
                           or more than half of the values distinct
  2. Name matching       — exact (normalized), fuzzy (synonym table), or
                           shared key suffix (value overlap only)
  3. Value overlap       — distinct-value intersection, orphans per side
  4. Cardinality         — a side is "one" when >95% of its values are unique
  5. Confidence          — base by match type, adjusted by overlap size

Empty inputs never raise: they yield success=False with the reason.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

from . import constants as C
from .dataset import DataSet, is_missing
from .statistics import category_key

logger = logging.getLogger(__name__)

ID_PATTERNS = [
    re.compile(r"^id$", re.I),
    re.compile(r"^.*_id$", re.I),
    re.compile(r"^.*Id$"),
    re.compile(r"^pk$", re.I),
    re.compile(r"^fk_", re.I),
    re.compile(r"^.*_key$", re.I),
    re.compile(r"^.*_code$", re.I),
    re.compile(r"^.*_num$", re.I),
    re.compile(r"^uuid$", re.I),
    re.compile(r"^guid$", re.I),
]

FUZZY_MAPPINGS = {
    "customer": ["cust", "client", "buyer"],
    "product": ["prod", "item", "sku"],
    "order": ["ord", "purchase", "transaction"],
    "employee": ["emp", "staff", "worker"],
    "department": ["dept", "div", "division"],
    "category": ["cat", "type", "class"],
    "user": ["usr", "account", "member"],
}

KEY_SUFFIXES = ("_id", "_key", "_code", "_num")

ARROWS = {
    "one_to_one": "──────",
    "one_to_many": "──────<",
    "many_to_one": ">──────",
    "many_to_many": ">────<",
}


# ═══════════════════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════════════════

@dataclass
class RelationshipStatistics:
    source_unique_count: int
    target_unique_count: int
    matched_count: int
    source_orphan_count: int
    target_orphan_count: int
    match_percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class Relationship:
    source_dataset: str
    source_column: str
    target_dataset: str
    target_column: str
    type: str                   # one_to_one | one_to_many | many_to_one | many_to_many
    match_type: str             # exact | fuzzy | value_overlap
    confidence: int
    statistics: RelationshipStatistics

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_dataset": self.source_dataset, "source_column": self.source_column,
            "target_dataset": self.target_dataset, "target_column": self.target_column,
            "type": self.type, "match_type": self.match_type, "confidence": self.confidence,
            "statistics": self.statistics.to_dict(),
        }


@dataclass
class OrphanAnalysis:
    dataset: str
    column: str
    orphan_count: int
    sample_orphans: List[str] = field(default_factory=list)
    possible_reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class RelationshipDiscoveryResult:
    success: bool
    datasets: List[str]
    relationships: List[Relationship] = field(default_factory=list)
    orphan_analysis: List[OrphanAnalysis] = field(default_factory=list)
    diagram: str = ""
    summary: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "datasets": list(self.datasets),
            "relationships": [r.to_dict() for r in self.relationships],
            "orphan_analysis": [o.to_dict() for o in self.orphan_analysis],
            "diagram": self.diagram,
            "summary": self.summary,
        }


@dataclass
class _Candidate:
    dataset: str
    column: str
    values: Set[str]
    total_count: int

    @property
    def unique_count(self) -> int:
        return len(self.values)

    @property
    def unique_ratio(self) -> float:
        return self.unique_count / self.total_count if self.total_count else 0.0


# ──────────────────────────────────────────────────────────
# NAME MATCHING
# ──────────────────────────────────────────────────────────

def is_key_like(column: str) -> bool:
    return any(p.search(column) for p in ID_PATTERNS)


def normalize_column_name(name: str) -> str:
    s = re.sub(r"[_\-\s]+", "_", name.strip().lower())
    s = re.sub(r"_?id$", "_id", s)
    return re.sub(r"^(fk|pk)_", "", s)


def _strip_key_suffix(name: str) -> str:
    return re.sub(r"_?(id|key|code|num|number)$", "", name)


def fuzzy_match(name1: str, name2: str) -> bool:
    base1, base2 = _strip_key_suffix(name1), _strip_key_suffix(name2)
    if base1 and base1 == base2:
        return True
    for canonical, variants in FUZZY_MAPPINGS.items():
        forms = [canonical] + variants
        if any(f in base1 for f in forms) and any(f in base2 for f in forms):
            return True
    return False


def match_type(col1: str, col2: str) -> Optional[str]:
    n1, n2 = normalize_column_name(col1), normalize_column_name(col2)
    if n1 == n2:
        return "exact"
    if fuzzy_match(n1, n2):
        return "fuzzy"
    l1, l2 = col1.lower(), col2.lower()
    if any(l1.endswith(s) and l2.endswith(s) for s in KEY_SUFFIXES):
        return "value_overlap"
    return None


def classify_cardinality(source_ratio: float, target_ratio: float) -> str:
    source_pk = source_ratio > C.PRIMARY_KEY_UNIQUE_RATIO
    target_pk = target_ratio > C.PRIMARY_KEY_UNIQUE_RATIO
    if source_pk and target_pk:
        return "one_to_one"
    if source_pk:
        return "one_to_many"
    if target_pk:
        return "many_to_one"
    return "many_to_many"


def score_confidence(kind: str, match_percentage: float, matched_count: int) -> int:
    confidence = C.MATCH_CONFIDENCE[kind]
    if match_percentage > 80:
        confidence += 20
    elif match_percentage > 50:
        confidence += 10
    elif match_percentage < 20:
        confidence -= 20
    if matched_count > 100:
        confidence += 10
    elif matched_count < 10:
        confidence -= 10
    return max(0, min(100, confidence))


# ═══════════════════════════════════════════════════════════════
# DISCOVERY
# ═══════════════════════════════════════════════════════════════

def _extract_candidates(datasets: Sequence[DataSet]) -> List[_Candidate]:
    candidates = []
    for ds in datasets:
        for col in ds.columns:
            present = [v for v in ds.column_values(col) if not is_missing(v)]
            cand = _Candidate(ds.name, col, {category_key(v) for v in present}, len(present))
            if is_key_like(col) or cand.unique_ratio > C.CANDIDATE_UNIQUE_RATIO:
                candidates.append(cand)
    return candidates


def _check_pair(c1: _Candidate, c2: _Candidate, min_confidence: float) -> Optional[Relationship]:
    kind = match_type(c1.column, c2.column)
    if kind is None:
        return None
    matched = len(c1.values & c2.values)
    if matched == 0:
        return None
    smaller = min(c1.unique_count, c2.unique_count)
    match_pct = matched / smaller * 100 if smaller else 0.0
    confidence = score_confidence(kind, match_pct, matched)
    if confidence < min_confidence:
        return None
    return Relationship(
        source_dataset=c1.dataset, source_column=c1.column,
        target_dataset=c2.dataset, target_column=c2.column,
        type=classify_cardinality(c1.unique_ratio, c2.unique_ratio),
        match_type=kind, confidence=confidence,
        statistics=RelationshipStatistics(
            source_unique_count=c1.unique_count, target_unique_count=c2.unique_count,
            matched_count=matched,
            source_orphan_count=c1.unique_count - matched,
            target_orphan_count=c2.unique_count - matched,
            match_percentage=match_pct,
        ),
    )


def _orphan_reasons(orphans: int, unique: int) -> List[str]:
    pct = orphans / unique * 100 if unique else 0.0
    if pct > 50:
        return ["Data export timing mismatch", "Different data periods or filters applied"]
    if pct > 10:
        return ["Records deleted from related table", "Data entry errors or inconsistencies"]
    return ["Recent records not yet synced", "Test/demo data mixed with production"]


def _analyze_orphans(relationships: List[Relationship],
                     candidates: Dict[tuple, _Candidate]) -> List[OrphanAnalysis]:
    analyses = []
    for rel in relationships:
        src = candidates[(rel.source_dataset, rel.source_column)]
        tgt = candidates[(rel.target_dataset, rel.target_column)]
        stats = rel.statistics
        if stats.source_orphan_count > 0:
            analyses.append(OrphanAnalysis(
                rel.source_dataset, rel.source_column, stats.source_orphan_count,
                sample_orphans=sorted(src.values - tgt.values)[:5],
                possible_reasons=_orphan_reasons(stats.source_orphan_count, stats.source_unique_count),
            ))
        if stats.target_orphan_count > 0:
            analyses.append(OrphanAnalysis(
                rel.target_dataset, rel.target_column, stats.target_orphan_count,
                sample_orphans=sorted(tgt.values - src.values)[:5],
                possible_reasons=_orphan_reasons(stats.target_orphan_count, stats.target_unique_count),
            ))
    return analyses


def _diagram(relationships: List[Relationship]) -> str:
    if not relationships:
        return "No relationships detected between datasets."
    lines = [
        "┌" + "─" * 58 + "┐",
        "│" + "RELATIONSHIP DIAGRAM".center(58) + "│",
        "└" + "─" * 58 + "┘",
        "",
    ]
    best_by_pair: Dict[tuple, Relationship] = {}
    for rel in relationships:
        best_by_pair.setdefault((rel.source_dataset, rel.target_dataset), rel)
    box = "─" * 16
    for (ds1, ds2), rel in best_by_pair.items():
        lines += [
            f"  ┌{box}┐           ┌{box}┐",
            f"  │ {ds1[:14]:<14} │           │ {ds2[:14]:<14} │",
            f"  └───────┬────────┘           └───────┬────────┘",
            "          │                           │",
            f"   {rel.source_column:<14}  {ARROWS[rel.type]}  {rel.target_column:<14}",
            f"          │    ({rel.statistics.match_percentage:.0f}% match)     │",
            "",
        ]
    return "\n".join(lines)


def _summary(datasets: Sequence[DataSet], relationships: List[Relationship],
             orphans: List[OrphanAnalysis]) -> str:
    lines = [f"Analyzed {len(datasets)} datasets for relationships."]
    if not relationships:
        lines += [
            "No relationships detected between the datasets.",
            "",
            "Possible reasons:",
            "  • No common column names or patterns",
            "  • Completely different value ranges",
            "  • Datasets are not related",
        ]
        return "\n".join(lines)

    lines += [f"Found {len(relationships)} potential relationship(s):", ""]
    for rel in relationships[:5]:
        lines.append(f"  • {rel.source_dataset}.{rel.source_column} → {rel.target_dataset}.{rel.target_column}")
        lines.append(f"    Type: {rel.type.replace('_', '-')}, Confidence: {rel.confidence}%, "
                     f"Match: {rel.statistics.match_percentage:.1f}%")
    if orphans:
        total = sum(o.orphan_count for o in orphans)
        lines += ["", f"⚠️ Found {total} orphan records across {len(orphans)} column(s)."]
    return "\n".join(lines)


def find_relationships(
    datasets: Sequence[DataSet],
    min_confidence: float = C.RELATIONSHIP_MIN_CONFIDENCE,
) -> RelationshipDiscoveryResult:
    """Candidate join relationships across datasets, highest confidence first."""
    names = [ds.name for ds in datasets]

    empty = [ds.name for ds in datasets if not ds.rows or not ds.columns]
    if empty:
        reason = f"Cannot discover relationships: empty dataset(s): {', '.join(empty)}"
        logger.warning(reason)
        return RelationshipDiscoveryResult(
            success=False, datasets=names, error=reason,
            diagram="No relationships detected between datasets.", summary=reason,
        )
    if len(datasets) < 2:
        return RelationshipDiscoveryResult(
            success=True, datasets=names,
            diagram="Need at least 2 datasets for relationship discovery",
            summary="No relationships to discover with a single dataset.",
        )

    candidates = _extract_candidates(datasets)
    relationships: List[Relationship] = []
    seen = set()
    for i, c1 in enumerate(candidates):
        for j, c2 in enumerate(candidates):
            if i == j or c1.dataset == c2.dataset:
                continue
            key = tuple(sorted([(c1.dataset, c1.column), (c2.dataset, c2.column)]))
            if key in seen:
                continue
            seen.add(key)
            rel = _check_pair(c1, c2, min_confidence)
            if rel is not None:
                relationships.append(rel)
    relationships.sort(key=lambda r: -r.confidence)

    lookup = {(c.dataset, c.column): c for c in candidates}
    orphans = _analyze_orphans(relationships, lookup)
    logger.debug(f"Relationship discovery over {len(names)} datasets: {len(relationships)} found")
    return RelationshipDiscoveryResult(
        success=True, datasets=names, relationships=relationships,
        orphan_analysis=orphans, diagram=_diagram(relationships),
        summary=_summary(datasets, relationships, orphans),
    )


def format_relationships(result: RelationshipDiscoveryResult) -> str:
    rule = "═" * 59
    lines = [rule, "  KOWALSKI RELATIONSHIP INTEL", rule, ""]

    if not result.success:
        lines += [f"Skipper, I couldn't complete the analysis: {result.error}"]
    elif not result.relationships:
        lines += [
            "Skipper, my analysis shows no detectable relationships",
            "between these datasets. They appear to be independent.",
            "",
            "Recommendations:",
            "  1. Verify these are the correct datasets",
            "  2. Check if a join column exists with different naming",
            "  3. Consider if data was filtered differently",
        ]
    else:
        lines += [f"Skipper, I've mapped {len(result.relationships)} relationship(s):", ""]
        for rel in result.relationships:
            level = "HIGH" if rel.confidence >= 80 else "MEDIUM" if rel.confidence >= 50 else "LOW"
            s = rel.statistics
            lines += [
                f"📊 {rel.source_dataset}.{rel.source_column} ↔ {rel.target_dataset}.{rel.target_column}",
                f"   Type: {rel.type.replace('_', ' ')} | Confidence: {level} ({rel.confidence}%)",
                f"   Match: {s.match_percentage:.1f}% | Orphans: {s.source_orphan_count + s.target_orphan_count}",
                "",
            ]
        if result.orphan_analysis:
            lines.append("⚠️ DATA INTEGRITY NOTE:")
            for o in result.orphan_analysis[:3]:
                lines.append(f"   {o.dataset}.{o.column}: {o.orphan_count} orphan records")
            lines.append("")
        best = result.relationships[0]
        lines += [
            "💡 RECOMMENDED JOIN:",
            f"   SELECT * FROM {best.source_dataset}",
            f"   {'LEFT' if best.type == 'one_to_many' else 'INNER'} JOIN {best.target_dataset}",
            f"   ON {best.source_dataset}.{best.source_column} = {best.target_dataset}.{best.target_column}",
        ]
    lines += ["", rule]
    return "\n".join(lines)
