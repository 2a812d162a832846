"""
End-to-end tests for the DetectionOrchestrator.

Covers:
- Input validation errors raised to the caller
- Clean code, pattern-only and runtime-only findings
- Merging of pattern and execution evidence for the same line
- The safety gate and critical-issue flagging
- Options: thresholds, focus, disabled detectors, expected output
- Metadata, serialization and determinism
- Detector failures that degrade the result instead of raising
- Batch analysis with detect_many()
"""

import json
from datetime import datetime
from unittest.mock import patch

import pytest

from core.config_loader import ConfigLoader
from core.orchestrator import DetectionOrchestrator
from detector.patterns import PATTERN_CATALOG
from evaluator.execution_analyzer import ExecutionAnalyzer
from evaluator.executor import ExecutionSandbox
from taxonomy.business_impact import NO_IMPACT
from taxonomy.errors import InputValidationError, UnsupportedLanguageError
from taxonomy.results import DetectionOptions

CLEAN = 'def greet(name):\n    return f"Hello, {name}!"\n\nprint(greet("World"))'


# ============================================================================
# Input validation
# ============================================================================

def test_empty_code_raises(orchestrator):
    with pytest.raises(InputValidationError, match="Code cannot be empty"):
        orchestrator.detect_hallucinations("")


def test_unsupported_language_raises(orchestrator):
    with pytest.raises(UnsupportedLanguageError, match="Language 'javascript' not yet supported"):
        orchestrator.detect_hallucinations("console.log('hi')", "javascript")


def test_oversized_code_raises():
    orchestrator = DetectionOrchestrator(
        execution_analyzer=ExecutionAnalyzer(ExecutionSandbox(max_code_length=5))
    )

    with pytest.raises(InputValidationError, match="too long"):
        orchestrator.detect_hallucinations("print('hello')")


# ============================================================================
# Findings
# ============================================================================

def test_clean_code(orchestrator):
    result = orchestrator.detect_hallucinations(CLEAN)

    assert result.categories == ()
    assert result.overall_hallucination_rate == 0.0
    assert result.has_critical_issues is False
    assert result.summary.overall_risk == "none"
    assert result.recommendations == ()
    assert result.business_impact == NO_IMPACT
    assert result.execution_result.output == "Hello, World!"
    assert result.detection_metadata.execution_verified is True
    assert result.safety_assessment.is_safe is True
    assert result.code_structure.functions == ("greet",)


def test_pattern_and_runtime_evidence_are_merged(orchestrator):
    result = orchestrator.detect_hallucinations('x = 5 + "text"\nprint(x)')

    mapping = result.categories_of("mapping")
    assert len(mapping) == 1
    finding = mapping[0]
    assert finding.subtype == "data_compliance"
    assert finding.line_numbers == frozenset({1})
    assert finding.confidence >= 0.8
    assert any("Type mismatch detected" in item for item in finding.evidence)
    assert any(item.startswith("TypeError") for item in finding.evidence)
    assert result.detection_metadata.execution_verified is True


def test_multiline_comprehension_is_clean(orchestrator):
    result = orchestrator.detect_hallucinations("squares = [\n    i * i\n    for i in range(10)\n]\nprint(squares)\n")

    assert result.execution_result.success is True
    assert result.execution_result.output.startswith("[0, 1, 4")
    assert result.categories == ()
    assert result.summary.overall_risk == "none"


def test_runtime_only_finding(orchestrator):
    result = orchestrator.detect_hallucinations("items = [1, 2, 3]\nprint(items[5])")

    assert len(result.categories) == 1
    finding = result.categories[0]
    assert (finding.type, finding.subtype) == ("mapping", "structure_access")
    assert finding.detection_method == "execution"
    assert finding.line_numbers == frozenset({2})


def test_unbounded_loop_is_critical_and_never_runs(orchestrator):
    result = orchestrator.detect_hallucinations("while True:\n    pass")

    assert result.has_critical_issues is True
    assert result.summary.overall_risk == "critical"
    resource = result.categories_of("resource")
    assert resource[0].subtype == "computational_boundary"
    assert resource[0].severity == "critical"
    assert result.execution_result is None
    assert result.detection_metadata.execution_verified is False
    assert result.safety_assessment.allow_execution is False
    assert result.overall_hallucination_rate >= 0.6
    assert result.recommendations[0].type == "resource"


def test_syntax_error_is_found_statically_and_at_runtime(orchestrator):
    result = orchestrator.detect_hallucinations("def broken(:\n    pass")

    logic = result.categories_of("logic")
    assert logic
    assert logic[0].severity == "critical"
    assert result.has_critical_issues is True


def test_categories_are_sorted_by_severity(orchestrator, static_only):
    code = 'while True:\n    pass\nx = 5 + "a"\nprint(data["k"])\ndata = {}'
    result = orchestrator.detect_hallucinations(code, options=static_only)

    ranks = [("low", "medium", "high", "critical").index(c.severity) for c in result.categories]
    assert ranks == sorted(ranks, reverse=True)


# ============================================================================
# Options
# ============================================================================

def test_confidence_threshold_filters(orchestrator):
    code = 'arr = [1, 2, 3]\nvalue = arr[100]\nx = 5 + "a"\nprint(value, x)'
    options = DetectionOptions(confidence_threshold=0.9, enable_execution_analysis=False)

    result = orchestrator.detect_hallucinations(code, options=options)

    assert len(result.categories) == 1
    assert all(c.confidence >= 0.9 for c in result.categories)


def test_focus_categories(orchestrator):
    options = DetectionOptions(focus_categories=["logic"], enable_execution_analysis=False)

    result = orchestrator.detect_hallucinations('assert False\nx = 5 + "a"', options=options)

    assert {c.type for c in result.categories} == {"logic"}


def test_disabled_pattern_matching(orchestrator):
    options = DetectionOptions(enable_pattern_matching=False, enable_execution_analysis=False)

    result = orchestrator.detect_hallucinations('x = 5 + "a"', options=options)

    assert result.categories == ()
    assert result.detection_metadata.patterns_checked == 0


def test_disabled_recommendations(orchestrator):
    options = DetectionOptions(generate_recommendations=False, enable_execution_analysis=False)

    result = orchestrator.detect_hallucinations("assert False", options=options)

    assert result.categories
    assert result.recommendations == ()


def test_expected_output_mismatch(orchestrator):
    options = DetectionOptions(expected_output="hello world", confidence_threshold=0.0)

    result = orchestrator.detect_hallucinations('print("something else entirely")', options=options)

    deviations = [c for c in result.categories if c.subtype == "logic_deviation"]
    assert len(deviations) == 1
    assert deviations[0].detection_method == "execution"


# ============================================================================
# Metadata, serialization, determinism
# ============================================================================

def test_metadata(orchestrator, static_only):
    result = orchestrator.detect_hallucinations("assert False", "py", static_only)
    metadata = result.detection_metadata

    assert metadata.version == "1.0.0"
    assert metadata.language == "python"
    assert metadata.code_length == len("assert False")
    assert metadata.analysis_time_ms > 0
    assert metadata.patterns_checked == len(PATTERN_CATALOG)
    assert metadata.pattern_statistics["totalPatterns"] == 1
    assert metadata.failed_detectors == ()
    assert datetime.fromisoformat(metadata.timestamp).tzinfo is not None


def test_result_serializes_to_json(orchestrator):
    result = orchestrator.detect_hallucinations('x = 5 + "text"\nprint(x)')

    data = json.loads(json.dumps(result.to_dict()))

    assert data["hasCriticalIssues"] is False
    assert data["detectionMetadata"]["version"] == "1.0.0"
    assert data["categories"][0]["type"] == "mapping"
    assert data["executionResult"]["errors"][0]["type"] == "TypeError"
    assert data["summary"]["totalHallucinations"] == len(result.categories)


def test_analysis_is_deterministic(orchestrator, static_only):
    code = 'x = 5 + "a"\nwhile True:\n    pass\nprint(missing)\nprint(missing)'

    first = orchestrator.detect_hallucinations(code, options=static_only)
    second = orchestrator.detect_hallucinations(code, options=static_only)

    assert first.categories == second.categories
    assert first.overall_hallucination_rate == second.overall_hallucination_rate
    assert first.summary == second.summary
    assert first.recommendations == second.recommendations


# ============================================================================
# Degraded operation
# ============================================================================

def test_failing_detector_is_recorded(orchestrator, static_only):
    with patch.object(orchestrator.pattern_matcher, "detect", side_effect=RuntimeError("boom")):
        result = orchestrator.detect_hallucinations("def broken(:\n    pass", options=static_only)

    assert result.detection_metadata.failed_detectors == ("pattern",)
    assert result.categories_of("logic")
    assert all(c.detection_method == "static" for c in result.categories)


def test_failing_safety_assessment_skips_execution(orchestrator):
    with patch.object(orchestrator.safety_assessor, "validate_safety", side_effect=RuntimeError("boom")):
        result = orchestrator.detect_hallucinations("print(1)")

    assert "safety" in result.detection_metadata.failed_detectors
    assert result.safety_assessment is None
    assert result.execution_result is None


def test_sandbox_start_failure_is_not_a_finding():
    sandbox = ExecutionSandbox(interpreter="/nonexistent/python")
    orchestrator = DetectionOrchestrator(execution_analyzer=ExecutionAnalyzer(sandbox))

    result = orchestrator.detect_hallucinations("print(1)")

    assert result.categories == ()
    assert result.execution_result.errors[0].type == "ExecutionError"
    assert result.detection_metadata.execution_verified is False


# ============================================================================
# Batch analysis and configuration
# ============================================================================

def test_detect_many_preserves_order(orchestrator, static_only):
    results = orchestrator.detect_many(["print(1)", ('x = 5 + "a"', "py"), "assert False"], static_only)

    assert len(results) == 3
    assert results[0].categories == ()
    assert results[1].categories_of("mapping")
    assert results[2].categories_of("logic")


def test_detect_many_validates_everything_first(orchestrator, static_only):
    with patch.object(orchestrator, "detect_hallucinations") as detect:
        with pytest.raises(InputValidationError):
            orchestrator.detect_many(["print(1)", ""], static_only)

    detect.assert_not_called()


def test_from_config(tmp_path):
    config_file = tmp_path / "config.ini"
    config_file.write_text(
        "[Sandbox]\nMaxMemoryMB = 64\nMaxExecutionTimeMs = 2000\n\n"
        "[Detection]\nConfidenceThreshold = 0.8\nFocusCategories = naming, logic\nMaxWorkers = 2\n"
    )

    orchestrator = DetectionOrchestrator.from_config(ConfigLoader(config_file))

    limits = orchestrator.sandbox.get_resource_limits()
    assert (limits.max_memory_mb, limits.max_execution_time_ms) == (64, 2000)
    assert orchestrator.default_options.confidence_threshold == 0.8
    assert orchestrator.default_options.focus_categories == ("naming", "logic")
    assert orchestrator.max_workers == 2
    assert orchestrator.sandbox.safety_assessor is orchestrator.safety_assessor
