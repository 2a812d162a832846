"""
Detection method interface.

The pattern, static and execution detectors all implement `detect()` and
feed the same merge step in the orchestrator. A detector never knows about
the others; anything it needs from earlier pipeline stages arrives through
the DetectionContext.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from taxonomy.execution import ExecutionResult
from taxonomy.models import CodeStructure, HallucinationCategory, SafetyAssessment
from taxonomy.results import DetectionOptions


@dataclass(frozen=True)
class DetectionContext:
    language: str = "python"
    options: DetectionOptions = field(default_factory=DetectionOptions)
    code_structure: Optional[CodeStructure] = None
    safety: Optional[SafetyAssessment] = None


@dataclass(frozen=True)
class DetectionOutcome:
    categories: Tuple[HallucinationCategory, ...] = ()
    execution_result: Optional[ExecutionResult] = None
    details: Dict[str, Any] = field(default_factory=dict)


class DetectionMethod(ABC):
    """A single technique for finding hallucinations in code."""

    method: str = ""

    @abstractmethod
    def detect(self, code: str, context: Optional[DetectionContext] = None) -> DetectionOutcome:
        """
        Analyse `code` and return the categories this method found.

        Implementations must be safe to call concurrently and must not
        mutate the context.
        """
