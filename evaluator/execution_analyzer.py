"""
Execution detector: runs the code in the sandbox and turns what happened
at runtime into hallucination categories.
"""

import difflib
import logging
from dataclasses import replace
from typing import List, Optional

from detector.base import DetectionContext, DetectionMethod, DetectionOutcome
from evaluator.executor import ExecutionSandbox
from taxonomy.business_impact import default_impact
from taxonomy.error_map import SANDBOX_ERROR_TYPES, categorize_error
from taxonomy.execution import ExecutionResult
from taxonomy.models import HallucinationCategory
from taxonomy.results import DetectionOptions

log = logging.getLogger(__name__)

OUTPUT_SIMILARITY_THRESHOLD = 0.7

# CPU share is only meaningful once the program has run this long
MIN_CPU_SAMPLE_MS = 1000

ERROR_FIXES = {
    "TypeError": "Check operand and argument types; convert values explicitly",
    "IndexError": "Check sequence length before indexing",
    "KeyError": "Use dict.get() or check membership before reading a key",
    "NameError": "Define or import the name before using it",
    "AttributeError": "Verify the object actually provides this attribute",
    "ModuleNotFoundError": "Install the package or replace the import with an existing module",
    "ImportError": "Install the package or replace the import with an existing module",
    "TimeoutError": "Bound loops and long computations",
    "MemoryError": "Reduce data size or process it incrementally",
    "RecursionError": "Add a base case or convert the recursion to a loop",
    "ZeroDivisionError": "Guard divisors against zero",
    "SyntaxError": "Fix the syntax error",
}


def is_execution_verified(result: Optional[ExecutionResult]) -> bool:
    """Whether the sandbox actually ran the code (as opposed to refusing or failing to start)."""
    if result is None:
        return False
    return not any(error.type in SANDBOX_ERROR_TYPES for error in result.errors)


def output_similarity(actual: str, expected: str) -> float:
    return difflib.SequenceMatcher(None, actual.strip(), expected.strip()).ratio()


def memory_severity(memory_mb: float) -> str:
    if memory_mb > 200:
        return "critical"
    if memory_mb > 128:
        return "high"
    if memory_mb > 64:
        return "medium"
    return "low"


def time_severity(execution_time_ms: float) -> str:
    if execution_time_ms > 10000:
        return "critical"
    if execution_time_ms > 5000:
        return "high"
    if execution_time_ms > 3000:
        return "medium"
    return "low"


class ExecutionAnalyzer(DetectionMethod):
    method = "execution"

    def __init__(self, sandbox: Optional[ExecutionSandbox] = None):
        self.sandbox = sandbox or ExecutionSandbox()

    def detect(self, code: str, context: Optional[DetectionContext] = None) -> DetectionOutcome:
        context = context or DetectionContext()
        if context.safety is not None and not context.safety.allow_execution:
            log.debug("Execution skipped: safety gate denied execution")
            return DetectionOutcome(details={"skipped": "safety"})

        limits = None
        if context.options.max_execution_time_ms:
            limits = replace(self.sandbox.get_resource_limits(),
                             max_execution_time_ms=context.options.max_execution_time_ms)

        result = self.sandbox.execute(code, context.language, limits)
        categories = self.translate(result, context)
        return DetectionOutcome(categories=tuple(categories), execution_result=result)

    def translate(self, result: ExecutionResult, context: Optional[DetectionContext] = None) -> List[HallucinationCategory]:
        """Convert one ExecutionResult into categories."""
        context = context or DetectionContext()
        if not is_execution_verified(result):
            return []

        categories = [self._error_category(error) for error in result.errors]
        categories.extend(self._resource_categories(result, context.options))

        expected = context.options.expected_output
        if expected is not None and result.success:
            similarity = output_similarity(result.output, expected)
            if similarity < OUTPUT_SIMILARITY_THRESHOLD:
                categories.append(HallucinationCategory(
                    type="logic",
                    subtype="logic_deviation",
                    severity="high" if similarity < 0.3 else "medium",
                    confidence=round(1 - similarity, 4),
                    evidence=[
                        f"Output differs from expected (similarity {similarity:.2f})",
                        f"Expected: {expected.strip()[:200]}",
                        f"Actual: {result.output.strip()[:200]}",
                    ],
                    detection_method="execution",
                    business_impact=default_impact("logic"),
                    description="Output does not match expectation",
                    suggested_fix="Review the algorithm against the expected behaviour",
                ))
        return categories

    @staticmethod
    def _error_category(error) -> HallucinationCategory:
        slot = categorize_error(error.type)
        evidence = [f"{error.type}: {error.message}" if error.message else error.type]
        if error.line_number:
            evidence.append(f"Raised at line {error.line_number}")
        return HallucinationCategory(
            type=slot.type,
            subtype=slot.subtype,
            severity=slot.severity,
            confidence=slot.confidence,
            evidence=evidence,
            detection_method="execution",
            business_impact=default_impact(slot.type),
            line_numbers=frozenset({error.line_number}) if error.line_number else frozenset(),
            description=f"Runtime {error.type}",
            error_message=error.message,
            suggested_fix=ERROR_FIXES.get(error.type, "Handle or prevent this exception"),
        )

    @staticmethod
    def _resource_categories(result: ExecutionResult, options: DetectionOptions) -> List[HallucinationCategory]:
        """Memory, wall-time and CPU findings from the recorded resource usage."""
        usage = result.resource_usage
        categories = []

        if usage.memory_mb > options.memory_threshold_mb:
            evidence = [f"Memory usage {usage.memory_mb:.1f}MB exceeds {options.memory_threshold_mb:.0f}MB"]
            if usage.peak_memory_mb is not None:
                evidence.append(f"Peak memory {usage.peak_memory_mb:.1f}MB")
            categories.append(HallucinationCategory(
                type="resource",
                subtype="physical_constraint",
                severity=memory_severity(usage.memory_mb),
                confidence=0.9,
                evidence=evidence,
                detection_method="execution",
                business_impact=default_impact("resource"),
                description="Excessive memory usage",
                suggested_fix="Use generators or memory-efficient data structures instead of holding everything in memory",
            ))

        # a timed-out run is already reported through its TimeoutError
        if result.timed_out:
            return categories

        if usage.execution_time_ms > options.execution_time_threshold_ms:
            categories.append(HallucinationCategory(
                type="resource",
                subtype="computational_boundary",
                severity=time_severity(usage.execution_time_ms),
                confidence=0.85,
                evidence=[
                    f"Execution time {usage.execution_time_ms:.0f}ms exceeds "
                    f"{options.execution_time_threshold_ms:.0f}ms"
                ],
                detection_method="execution",
                business_impact=default_impact("resource"),
                description="Excessive execution time",
                suggested_fix="Reduce algorithmic complexity or cache repeated work",
            ))

        if usage.execution_time_ms >= MIN_CPU_SAMPLE_MS and usage.cpu_usage > options.cpu_usage_threshold:
            categories.append(HallucinationCategory(
                type="resource",
                subtype="computational_boundary",
                severity="medium",
                confidence=0.7,
                evidence=[f"CPU usage {usage.cpu_usage:.0f}% exceeds {options.cpu_usage_threshold:.0f}%"],
                detection_method="execution",
                business_impact=default_impact("resource"),
                description="High CPU usage",
                suggested_fix="Reduce computational work or bound the hot loop",
            ))
        return categories
