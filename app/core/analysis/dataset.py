"""
DataSet — Immutable Tabular Input
===================================
The loader hands the core a name, ordered column names, rectangular rows
and one primitive type per column. Nothing in the core mutates a DataSet;
filtering returns a new instance.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .errors import EmptyDataSetError, InvalidDataSetError

logger = logging.getLogger(__name__)

Cell = Union[int, float, str, None]

NUMERIC = "numeric"
CATEGORICAL = "categorical"
DATE = "date"
COLUMN_TYPES = (NUMERIC, CATEGORICAL, DATE)

# Loader spellings accepted on input
_TYPE_ALIASES = {
    "number": NUMERIC, "numeric": NUMERIC, "float": NUMERIC, "int": NUMERIC,
    "string": CATEGORICAL, "categorical": CATEGORICAL, "str": CATEGORICAL,
    "date": DATE, "datetime": DATE,
}


@dataclass(frozen=True)
class DataSet:
    """Rows × typed columns, created once by the loader."""
    name: str
    columns: Tuple[str, ...]
    rows: Tuple[Tuple[Cell, ...], ...]
    types: Tuple[str, ...] = field(default=())

    @classmethod
    def create(
        cls,
        name: str,
        columns: Sequence[str],
        rows: Iterable[Sequence[Cell]],
        types: Optional[Sequence[str]] = None,
    ) -> "DataSet":
        """Build a DataSet, inferring column types when none are given."""
        cols = tuple(str(c) for c in columns)
        frozen_rows = tuple(tuple(r) for r in rows)
        if types is None:
            resolved = tuple(_infer_primitive(frozen_rows, i) for i in range(len(cols)))
        else:
            resolved = tuple(_TYPE_ALIASES.get(str(t).lower(), CATEGORICAL) for t in types)
        return cls(name=name, columns=cols, rows=frozen_rows, types=resolved)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DataSet":
        return cls.create(
            name=payload.get("name", "dataset"),
            columns=payload.get("columns", []),
            rows=payload.get("rows", []),
            types=payload.get("types"),
        )

    # ── Accessors ──

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def column_index(self, column: str) -> int:
        return self.columns.index(column)

    def column_type(self, column: str) -> str:
        return self.types[self.column_index(column)]

    def columns_of_type(self, column_type: str) -> List[str]:
        return [c for c, t in zip(self.columns, self.types) if t == column_type]

    @property
    def numeric_columns(self) -> List[str]:
        return self.columns_of_type(NUMERIC)

    @property
    def categorical_columns(self) -> List[str]:
        return self.columns_of_type(CATEGORICAL)

    def column_values(self, column: str) -> List[Cell]:
        idx = self.column_index(column)
        return [row[idx] for row in self.rows]

    def numeric_values(self, column: str) -> List[float]:
        """Non-missing values of a column that parse as finite numbers."""
        values = []
        for v in self.column_values(column):
            num = to_number(v)
            if num is not None:
                values.append(num)
        return values

    def filter_rows(self, predicate) -> "DataSet":
        """New DataSet holding only rows for which predicate(row) is true."""
        kept = tuple(r for r in self.rows if predicate(r))
        return DataSet(name=self.name, columns=self.columns, rows=kept, types=self.types)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "columns": list(self.columns),
            "rows": [list(r) for r in self.rows],
            "types": list(self.types),
        }


# ═══════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════

def is_missing(value: Cell) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value.strip() == ""


def to_number(value: Cell) -> Optional[float]:
    """Coerce a cell to float; None when missing or non-numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    text = str(value).strip()
    if not text:
        return None
    try:
        num = float(text)
    except ValueError:
        return None
    return num if math.isfinite(num) else None


def _infer_primitive(rows: Tuple[Tuple[Cell, ...], ...], idx: int) -> str:
    present = [r[idx] for r in rows if idx < len(r) and not is_missing(r[idx])]
    if not present:
        return CATEGORICAL
    numeric = sum(1 for v in present if to_number(v) is not None)
    return NUMERIC if numeric / len(present) >= 0.9 else CATEGORICAL


def validate_dataset(dataset: Optional[DataSet], require_rows: bool = True) -> DataSet:
    """
    Check the loader contract before any stage runs.
    Raises EmptyDataSetError / InvalidDataSetError.
    """
    if dataset is None:
        raise EmptyDataSetError(reason="no dataset supplied")
    if not dataset.columns:
        raise EmptyDataSetError(dataset.name, "dataset has no columns")
    if require_rows and not dataset.rows:
        raise EmptyDataSetError(dataset.name, "dataset has no rows")
    if len(set(dataset.columns)) != len(dataset.columns):
        raise InvalidDataSetError(f"Dataset '{dataset.name}' has duplicate column names")
    if len(dataset.types) != len(dataset.columns):
        raise InvalidDataSetError(
            f"Dataset '{dataset.name}' declares {len(dataset.types)} types "
            f"for {len(dataset.columns)} columns"
        )
    width = len(dataset.columns)
    for i, row in enumerate(dataset.rows):
        if len(row) != width:
            raise InvalidDataSetError(
                f"Dataset '{dataset.name}' row {i} has {len(row)} cells, expected {width}"
            )
    return dataset
