"""
Analysis Errors
================
Input errors are raised so callers can short-circuit before the pipeline
runs. Degenerate statistics never raise (detectors omit what they cannot
support) and persistence failures are absorbed at the memory boundary.
"""


class AnalysisError(Exception):
    """Base class for errors surfaced by the analysis core."""


class EmptyDataSetError(AnalysisError):
    """Dataset is missing, has no columns, or has no rows."""

    def __init__(self, name: str = "", reason: str = "dataset is empty"):
        self.name = name
        self.reason = reason
        label = f"'{name}' " if name else ""
        super().__init__(f"Dataset {label}cannot be analyzed: {reason}")


class InvalidDataSetError(AnalysisError):
    """Dataset shape is inconsistent (ragged rows, mismatched types)."""
