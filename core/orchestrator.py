#!/usr/bin/env python3
"""
HalGuard DetectionOrchestrator - composes the detectors into one verdict.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple, Union

from core.config_loader import ConfigLoader
from core.recommendations import generate_recommendations
from core.risk_scoring import filter_categories, hallucination_rate, merge_categories, summarize
from detector.base import DetectionContext, DetectionMethod
from detector.code_structure import analyze_code_structure
from detector.pattern_matcher import PatternMatcher, pattern_statistics
from detector.static_analyzer import StaticAnalyzer
from evaluator.execution_analyzer import ExecutionAnalyzer, is_execution_verified
from evaluator.executor import ExecutionSandbox, normalize_language
from guardian.safety import SafetyAssessor
from taxonomy.business_impact import aggregate_business_impact
from taxonomy.errors import InputValidationError, UnsupportedLanguageError
from taxonomy.models import HallucinationCategory
from taxonomy.results import DETECTION_VERSION, DetectionMetadata, DetectionOptions, DetectionResult

log = logging.getLogger(__name__)

Sample = Union[str, Tuple[str, str]]


class DetectionOrchestrator:
    """
    Runs the structure analyzer, the safety gate and the enabled detection
    methods over one piece of code and merges their findings.

    The orchestrator holds no per-analysis state, so one instance can serve
    concurrent callers.
    """
    def __init__(self,
                 pattern_matcher: Optional[PatternMatcher] = None,
                 static_analyzer: Optional[StaticAnalyzer] = None,
                 safety_assessor: Optional[SafetyAssessor] = None,
                 execution_analyzer: Optional[ExecutionAnalyzer] = None,
                 default_options: Optional[DetectionOptions] = None,
                 max_workers: int = 4):
        """
        Initialize the DetectionOrchestrator.

        Args:
            pattern_matcher: Pattern detection method.
            static_analyzer: Static (parse-only) detection method.
            safety_assessor: Gate deciding whether execution may happen.
            execution_analyzer: Sandbox-backed detection method.
            default_options: Options used when a call passes none.
            max_workers: Thread pool size for detect_many().
        """
        self.pattern_matcher = pattern_matcher or PatternMatcher()
        self.static_analyzer = static_analyzer or StaticAnalyzer()
        self.safety_assessor = safety_assessor or SafetyAssessor()
        self.execution_analyzer = execution_analyzer or ExecutionAnalyzer(
            ExecutionSandbox(safety_assessor=self.safety_assessor)
        )
        self.default_options = default_options or DetectionOptions()
        self.max_workers = max_workers

    @classmethod
    def from_config(cls, config_loader: ConfigLoader) -> "DetectionOrchestrator":
        detection_config = config_loader.get_detection_config()
        safety_assessor = SafetyAssessor()
        sandbox = ExecutionSandbox.from_config(config_loader.get_sandbox_config())
        sandbox.safety_assessor = safety_assessor
        return cls(
            safety_assessor=safety_assessor,
            execution_analyzer=ExecutionAnalyzer(sandbox),
            default_options=DetectionOptions.from_config(detection_config),
            max_workers=detection_config.get('max_workers', 4),
        )

    @property
    def sandbox(self) -> ExecutionSandbox:
        return self.execution_analyzer.sandbox

    def validate_input(self, code: Optional[str], language: str) -> str:
        """Return the canonical language, or raise InputValidationError."""
        if code is None or code == "":
            raise InputValidationError("Code cannot be empty")
        canonical = normalize_language(language)
        if canonical is None:
            raise UnsupportedLanguageError(language)
        if len(code) > self.sandbox.max_code_length:
            raise InputValidationError(
                f"Code is too long ({len(code)} characters, maximum {self.sandbox.max_code_length})"
            )
        return canonical

    def detect_hallucinations(self, code: str, language: str = "python",
                              options: Optional[DetectionOptions] = None) -> DetectionResult:
        """
        Analyse one piece of code.

        Args:
            code: Source text to analyse.
            language: Language tag ("python" or an alias).
            options: Per-call options; defaults to the configured options.

        Returns:
            DetectionResult: A new, immutable result.

        Raises:
            InputValidationError: Empty or oversized code, or an unsupported language.
        """
        start_time = time.perf_counter()
        canonical_language = self.validate_input(code, language)
        options = options or self.default_options

        code_structure = analyze_code_structure(code)
        safety = None
        failed_detectors: List[str] = []
        try:
            safety = self.safety_assessor.validate_safety(code)
        except Exception as e:
            log.warning(f"Safety assessment failed, execution will be skipped: {e}")
            failed_detectors.append("safety")

        context = DetectionContext(
            language=canonical_language,
            options=options,
            code_structure=code_structure,
            safety=safety,
        )

        detectors: List[DetectionMethod] = []
        if options.enable_pattern_matching:
            detectors.append(self.pattern_matcher)
        if options.enable_static_analysis:
            detectors.append(self.static_analyzer)
        if options.enable_execution_analysis and safety is not None:
            detectors.append(self.execution_analyzer)

        collected: List[HallucinationCategory] = []
        execution_result = None
        statistics = {}
        for detector in detectors:
            log.debug(f"Running {detector.method} detection")
            try:
                outcome = detector.detect(code, context)
            except Exception as e:
                # A failing detection method must not block the others
                log.warning(f"{detector.method} detection failed: {e}")
                failed_detectors.append(detector.method)
                continue
            collected.extend(outcome.categories)
            if outcome.execution_result is not None:
                execution_result = outcome.execution_result
            if "scan" in outcome.details:
                statistics = pattern_statistics(outcome.details["scan"].matches, self.pattern_matcher.rules)

        categories = filter_categories(
            merge_categories(collected),
            options.confidence_threshold,
            options.focus_categories,
        )
        rate = hallucination_rate(categories)
        summary = summarize(categories, rate)
        recommendations = generate_recommendations(categories, rate) if options.generate_recommendations else []

        metadata = DetectionMetadata(
            analysis_time_ms=(time.perf_counter() - start_time) * 1000,
            version=DETECTION_VERSION,
            language=canonical_language,
            code_length=len(code),
            timestamp=datetime.now(timezone.utc).isoformat(),
            execution_verified=is_execution_verified(execution_result),
            patterns_checked=len(self.pattern_matcher.rules) if options.enable_pattern_matching else 0,
            pattern_statistics=statistics,
            failed_detectors=tuple(failed_detectors),
        )

        result = DetectionResult(
            overall_hallucination_rate=rate,
            categories=tuple(categories),
            business_impact=aggregate_business_impact(categories),
            recommendations=tuple(recommendations),
            detection_metadata=metadata,
            has_critical_issues=any(c.severity == "critical" for c in categories),
            summary=summary,
            execution_result=execution_result,
            code_structure=code_structure,
            safety_assessment=safety,
        )
        log.info(
            f"Analysis complete: {summary.total_hallucinations} finding(s), "
            f"rate={rate:.2f}, risk={summary.overall_risk}, "
            f"executed={metadata.execution_verified}, {metadata.analysis_time_ms:.0f}ms"
        )
        return result

    def detect_many(self, samples: Sequence[Sample],
                    options: Optional[DetectionOptions] = None) -> List[DetectionResult]:
        """
        Analyse independent samples concurrently, preserving input order.

        Each sample is either a code string (Python) or a (code, language) pair.
        All samples are validated before any analysis starts.
        """
        normalized = [(sample, "python") if isinstance(sample, str) else tuple(sample) for sample in samples]
        for code, language in normalized:
            self.validate_input(code, language)

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [
                pool.submit(self.detect_hallucinations, code, language, options)
                for code, language in normalized
            ]
            return [future.result() for future in futures]
