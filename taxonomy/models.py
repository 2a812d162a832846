"""
Hallucination taxonomy and the finding records produced by every detector.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, List, Optional, Tuple

# Closed taxonomy: type -> allowed subtypes
HALLUCINATION_TYPES = ("mapping", "naming", "resource", "logic")

SUBTYPES_BY_TYPE = {
    "mapping": ("data_compliance", "structure_access"),
    "naming": ("identity", "external_source"),
    "resource": ("physical_constraint", "computational_boundary"),
    "logic": ("logic_deviation", "logic_breakdown"),
}

SEVERITIES = ("low", "medium", "high", "critical")
SEVERITY_ORDER = {"low": 1, "medium": 2, "high": 3, "critical": 4}

DETECTION_METHODS = ("pattern", "static", "execution")


def severity_rank(severity: str) -> int:
    """Return the sort rank of a severity (higher is worse)."""
    return SEVERITY_ORDER.get(severity, 0)


def worst_severity(severities) -> Optional[str]:
    """Return the worst severity in an iterable, or None if it is empty."""
    ranked = sorted(severities, key=severity_rank)
    return ranked[-1] if ranked else None


@dataclass(frozen=True)
class BusinessImpact:
    """Estimated cost of a single finding, or of a whole analysis when aggregated.

    Attributes:
        estimated_dev_time_wasted_hours: Developer hours lost chasing the problem.
        cost_multiplier: Cost relative to baseline (1.0 = baseline).
        quality_impact: Quality cost on a 0-100 scale.
        estimated_cost_usd: Dollar estimate, when one has been computed.
    """
    estimated_dev_time_wasted_hours: float
    cost_multiplier: float
    quality_impact: float
    estimated_cost_usd: Optional[float] = None

    def __post_init__(self):
        if not 0 <= self.quality_impact <= 100:
            raise ValueError(f"quality_impact must be within [0, 100], got {self.quality_impact}")

    def to_dict(self) -> Dict:
        return {
            "estimatedDevTimeWastedHours": round(self.estimated_dev_time_wasted_hours, 3),
            "costMultiplier": self.cost_multiplier,
            "qualityImpact": self.quality_impact,
            "estimatedCostUSD": (
                round(self.estimated_cost_usd, 2) if self.estimated_cost_usd is not None else None
            ),
        }


@dataclass(frozen=True)
class HallucinationCategory:
    """
    One finding, typed by the fixed type/subtype taxonomy.

    Categories are immutable. Detectors create them; the orchestrator only
    ever merges them into new instances.
    """
    type: str
    subtype: str
    severity: str
    confidence: float
    evidence: Tuple[str, ...]
    detection_method: str
    business_impact: BusinessImpact
    line_numbers: FrozenSet[int] = frozenset()
    description: str = ""
    error_message: Optional[str] = None
    suggested_fix: Optional[str] = None

    def __post_init__(self):
        """Validate invariants."""
        if self.type not in SUBTYPES_BY_TYPE:
            raise ValueError(f"type must be one of {HALLUCINATION_TYPES}, got '{self.type}'")
        if self.subtype not in SUBTYPES_BY_TYPE[self.type]:
            raise ValueError(
                f"subtype '{self.subtype}' is not valid for type '{self.type}' "
                f"(expected one of {SUBTYPES_BY_TYPE[self.type]})"
            )
        if self.severity not in SEVERITY_ORDER:
            raise ValueError(f"severity must be one of {SEVERITIES}, got '{self.severity}'")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        if self.detection_method not in DETECTION_METHODS:
            raise ValueError(
                f"detection_method must be one of {DETECTION_METHODS}, got '{self.detection_method}'"
            )
        # Normalize containers so callers may pass lists/sets
        object.__setattr__(self, "evidence", tuple(self.evidence))
        object.__setattr__(self, "line_numbers", frozenset(self.line_numbers))

    @property
    def first_line(self) -> int:
        return min(self.line_numbers) if self.line_numbers else 0

    def merged_with(self, other: "HallucinationCategory") -> "HallucinationCategory":
        """Return a new category combining this finding with a duplicate of it.

        The stronger finding (severity, then confidence) keeps its identity;
        evidence and line numbers are unioned in order.
        """
        stronger, weaker = (self, other)
        if (severity_rank(other.severity), other.confidence) > (severity_rank(self.severity), self.confidence):
            stronger, weaker = other, self

        evidence: List[str] = list(stronger.evidence)
        for item in weaker.evidence:
            if item not in evidence:
                evidence.append(item)

        return replace(
            stronger,
            evidence=tuple(evidence),
            line_numbers=stronger.line_numbers | weaker.line_numbers,
            error_message=stronger.error_message or weaker.error_message,
            suggested_fix=stronger.suggested_fix or weaker.suggested_fix,
        )

    def to_dict(self) -> Dict:
        return {
            "type": self.type,
            "subtype": self.subtype,
            "severity": self.severity,
            "confidence": round(self.confidence, 4),
            "description": self.description,
            "evidence": list(self.evidence),
            "detectionMethod": self.detection_method,
            "lineNumbers": sorted(self.line_numbers),
            "errorMessage": self.error_message,
            "suggestedFix": self.suggested_fix,
            "businessImpact": self.business_impact.to_dict(),
        }


@dataclass(frozen=True)
class CodeStructure:
    """Read-only structural snapshot of one piece of source code."""
    functions: Tuple[str, ...] = ()
    classes: Tuple[str, ...] = ()
    variables: Tuple[str, ...] = ()
    imports: Tuple[str, ...] = ()
    loops: int = 0
    conditionals: int = 0
    try_blocks: int = 0
    cyclomatic_complexity: int = 1
    lines_of_code: int = 0
    nesting_depth: int = 0
    has_async_code: bool = False
    has_error_handling: bool = False

    def to_dict(self) -> Dict:
        return {
            "functions": list(self.functions),
            "classes": list(self.classes),
            "variables": list(self.variables),
            "imports": list(self.imports),
            "controlFlow": {
                "loops": self.loops,
                "conditionals": self.conditionals,
                "tryBlocks": self.try_blocks,
            },
            "complexity": {
                "cyclomaticComplexity": self.cyclomatic_complexity,
                "linesOfCode": self.lines_of_code,
                "nestingDepth": self.nesting_depth,
            },
            "hasAsyncCode": self.has_async_code,
            "hasErrorHandling": self.has_error_handling,
        }


@dataclass(frozen=True)
class SafetyAssessment:
    """Result of the pre-execution safety gate.

    `is_safe` and `allow_execution` are independent: medium-risk code is
    reported unsafe but may still run.
    """
    is_safe: bool
    risks: Tuple[str, ...]
    confidence: float
    allow_execution: bool
    recommendations: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict:
        return {
            "isSafe": self.is_safe,
            "risks": list(self.risks),
            "confidence": round(self.confidence, 4),
            "allowExecution": self.allow_execution,
            "recommendations": list(self.recommendations),
        }
