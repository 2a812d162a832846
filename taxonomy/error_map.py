"""
Mapping from Python exception names observed at runtime to taxonomy slots.
"""

from typing import NamedTuple


class ErrorCategory(NamedTuple):
    type: str
    subtype: str
    severity: str
    confidence: float


ERROR_CATEGORY_MAP = {
    "TypeError": ErrorCategory("mapping", "data_compliance", "high", 0.9),
    "ValueError": ErrorCategory("mapping", "data_compliance", "medium", 0.8),
    "IndexError": ErrorCategory("mapping", "structure_access", "medium", 0.9),
    "KeyError": ErrorCategory("mapping", "structure_access", "medium", 0.9),
    "NameError": ErrorCategory("naming", "identity", "high", 0.95),
    "UnboundLocalError": ErrorCategory("naming", "identity", "high", 0.95),
    "AttributeError": ErrorCategory("naming", "identity", "medium", 0.85),
    "ImportError": ErrorCategory("naming", "external_source", "critical", 0.95),
    "ModuleNotFoundError": ErrorCategory("naming", "external_source", "critical", 0.95),
    "MemoryError": ErrorCategory("resource", "physical_constraint", "critical", 0.9),
    "RecursionError": ErrorCategory("resource", "physical_constraint", "high", 0.9),
    "OverflowError": ErrorCategory("resource", "computational_boundary", "medium", 0.8),
    "TimeoutError": ErrorCategory("resource", "computational_boundary", "critical", 0.9),
    "ZeroDivisionError": ErrorCategory("logic", "logic_deviation", "high", 0.9),
    "AssertionError": ErrorCategory("logic", "logic_deviation", "high", 0.85),
    "SyntaxError": ErrorCategory("logic", "logic_breakdown", "critical", 0.95),
    "IndentationError": ErrorCategory("logic", "logic_breakdown", "critical", 0.95),
    "TabError": ErrorCategory("logic", "logic_breakdown", "critical", 0.95),
}

UNCAUGHT_EXCEPTION_CATEGORY = ErrorCategory("logic", "logic_breakdown", "high", 0.8)

# Error types the sandbox reports about itself rather than about the code.
SANDBOX_ERROR_TYPES = frozenset({"ValidationError", "ExecutionError"})


def categorize_error(error_type: str) -> ErrorCategory:
    """Return the taxonomy slot for an exception name (qualified names allowed)."""
    short_name = error_type.rsplit(".", 1)[-1]
    return ERROR_CATEGORY_MAP.get(short_name, UNCAUGHT_EXCEPTION_CATEGORY)
