"""Shared fixtures for the HalGuard test suite."""

import pytest

from core.orchestrator import DetectionOrchestrator
from detector.pattern_matcher import PatternMatcher
from evaluator.execution_analyzer import ExecutionAnalyzer
from evaluator.executor import ExecutionSandbox
from guardian.safety import SafetyAssessor
from taxonomy.execution import ResourceLimits
from taxonomy.results import DetectionOptions


@pytest.fixture
def matcher():
    return PatternMatcher()


@pytest.fixture
def assessor():
    return SafetyAssessor()


@pytest.fixture
def sandbox():
    """Sandbox with a short deadline so failing tests do not hang."""
    return ExecutionSandbox(resource_limits=ResourceLimits(max_execution_time_ms=5000))


@pytest.fixture
def orchestrator(sandbox):
    return DetectionOrchestrator(execution_analyzer=ExecutionAnalyzer(sandbox))


@pytest.fixture
def static_only():
    """Options that skip the sandbox for fast, deterministic checks."""
    return DetectionOptions(enable_execution_analysis=False)
