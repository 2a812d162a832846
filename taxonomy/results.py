"""
Options accepted by the orchestrator and the unified result it returns.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from taxonomy.execution import ExecutionResult
from taxonomy.models import (
    HALLUCINATION_TYPES,
    BusinessImpact,
    CodeStructure,
    HallucinationCategory,
    SafetyAssessment,
)

DETECTION_VERSION = "1.0.0"
DEFAULT_CONFIDENCE_THRESHOLD = 0.6
DEFAULT_MEMORY_THRESHOLD_MB = 100.0
DEFAULT_EXECUTION_TIME_THRESHOLD_MS = 3000.0
DEFAULT_CPU_USAGE_THRESHOLD = 80.0


@dataclass
class DetectionOptions:
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    focus_categories: Tuple[str, ...] = HALLUCINATION_TYPES
    generate_recommendations: bool = True
    enable_execution_analysis: bool = True
    enable_static_analysis: bool = True
    enable_pattern_matching: bool = True
    max_execution_time_ms: Optional[int] = None
    memory_threshold_mb: float = DEFAULT_MEMORY_THRESHOLD_MB
    execution_time_threshold_ms: float = DEFAULT_EXECUTION_TIME_THRESHOLD_MS
    cpu_usage_threshold: float = DEFAULT_CPU_USAGE_THRESHOLD
    expected_output: Optional[str] = None

    def __post_init__(self):
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError(f"confidence_threshold must be within [0, 1], got {self.confidence_threshold}")
        if self.execution_time_threshold_ms <= 0:
            raise ValueError(f"execution_time_threshold_ms must be positive, got {self.execution_time_threshold_ms}")
        if not 0.0 < self.cpu_usage_threshold <= 100.0:
            raise ValueError(f"cpu_usage_threshold must be within (0, 100], got {self.cpu_usage_threshold}")
        self.focus_categories = tuple(self.focus_categories)
        unknown = [name for name in self.focus_categories if name not in HALLUCINATION_TYPES]
        if unknown:
            raise ValueError(f"Unknown focus categories: {', '.join(unknown)}")

    @classmethod
    def from_config(cls, detection_config: Dict[str, Any], **overrides) -> "DetectionOptions":
        """Build options from ConfigLoader.get_detection_config(); keyword overrides win."""
        values = {
            "confidence_threshold": detection_config.get("confidence_threshold", DEFAULT_CONFIDENCE_THRESHOLD),
            "focus_categories": detection_config.get("focus_categories", HALLUCINATION_TYPES),
            "generate_recommendations": detection_config.get("generate_recommendations", True),
            "enable_execution_analysis": detection_config.get("enable_execution_analysis", True),
            "enable_static_analysis": detection_config.get("enable_static_analysis", True),
            "enable_pattern_matching": detection_config.get("enable_pattern_matching", True),
            "memory_threshold_mb": detection_config.get("memory_threshold_mb", DEFAULT_MEMORY_THRESHOLD_MB),
            "execution_time_threshold_ms": detection_config.get(
                "execution_time_threshold_ms", DEFAULT_EXECUTION_TIME_THRESHOLD_MS),
            "cpu_usage_threshold": detection_config.get("cpu_usage_threshold", DEFAULT_CPU_USAGE_THRESHOLD),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


@dataclass(frozen=True)
class Recommendation:
    """Remediation guidance for one hallucination type."""
    type: str
    priority: str
    title: str
    description: str
    action_items: Tuple[str, ...]
    estimated_fix_time: str
    expected_impact: str

    def to_dict(self) -> Dict:
        return {
            "type": self.type,
            "priority": self.priority,
            "title": self.title,
            "description": self.description,
            "actionItems": list(self.action_items),
            "estimatedFixTime": self.estimated_fix_time,
            "expectedImpact": self.expected_impact,
        }


@dataclass(frozen=True)
class DetectionSummary:
    total_hallucinations: int = 0
    critical_count: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0
    most_common_category: Optional[str] = None
    overall_risk: str = "none"

    def to_dict(self) -> Dict:
        return {
            "totalHallucinations": self.total_hallucinations,
            "criticalCount": self.critical_count,
            "highCount": self.high_count,
            "mediumCount": self.medium_count,
            "lowCount": self.low_count,
            "mostCommonCategory": self.most_common_category,
            "overallRisk": self.overall_risk,
        }


@dataclass(frozen=True)
class DetectionMetadata:
    analysis_time_ms: float
    version: str
    language: str
    code_length: int
    timestamp: str
    execution_verified: bool
    patterns_checked: int = 0
    pattern_statistics: Dict[str, Any] = field(default_factory=dict)
    failed_detectors: Tuple[str, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "analysisTimeMs": round(self.analysis_time_ms, 3),
            "version": self.version,
            "language": self.language,
            "codeLength": self.code_length,
            "timestamp": self.timestamp,
            "executionVerified": self.execution_verified,
            "patternsChecked": self.patterns_checked,
            "patternStatistics": self.pattern_statistics,
            "failedDetectors": list(self.failed_detectors),
        }


@dataclass(frozen=True)
class DetectionResult:
    """Unified output of one orchestrator analysis. Built once, never mutated."""
    overall_hallucination_rate: float
    categories: Tuple[HallucinationCategory, ...]
    business_impact: BusinessImpact
    recommendations: Tuple[Recommendation, ...]
    detection_metadata: DetectionMetadata
    has_critical_issues: bool
    summary: DetectionSummary
    execution_result: Optional[ExecutionResult] = None
    code_structure: Optional[CodeStructure] = None
    safety_assessment: Optional[SafetyAssessment] = None

    def categories_of(self, hallucination_type: str) -> List[HallucinationCategory]:
        return [category for category in self.categories if category.type == hallucination_type]

    def to_dict(self) -> Dict:
        return {
            "overallHallucinationRate": round(self.overall_hallucination_rate, 4),
            "categories": [category.to_dict() for category in self.categories],
            "executionResult": self.execution_result.to_dict() if self.execution_result else None,
            "businessImpact": self.business_impact.to_dict(),
            "recommendations": [recommendation.to_dict() for recommendation in self.recommendations],
            "detectionMetadata": self.detection_metadata.to_dict(),
            "hasCriticalIssues": self.has_critical_issues,
            "summary": self.summary.to_dict(),
            "codeStructure": self.code_structure.to_dict() if self.code_structure else None,
            "safetyAssessment": self.safety_assessment.to_dict() if self.safety_assessment else None,
        }
