"""
Static analysis detector: parses the code without running it and reports
what the parser and the structure snapshot reveal.
"""

import ast
import logging
from typing import List, Optional

from detector.base import DetectionContext, DetectionMethod, DetectionOutcome
from detector.code_structure import analyze_code_structure
from taxonomy.business_impact import default_impact
from taxonomy.models import HallucinationCategory

log = logging.getLogger(__name__)

MAX_NESTING_DEPTH = 5
MAX_CYCLOMATIC_COMPLEXITY = 15


class StaticAnalyzer(DetectionMethod):
    method = "static"

    def detect(self, code: str, context: Optional[DetectionContext] = None) -> DetectionOutcome:
        categories: List[HallucinationCategory] = []

        try:
            ast.parse(code)
        except SyntaxError as e:
            line = e.lineno or 0
            evidence = [f"Syntax error: {e.msg}"]
            if e.text:
                evidence.append(f"Line {line}: {e.text.strip()}")
            categories.append(HallucinationCategory(
                type="logic",
                subtype="logic_breakdown",
                severity="critical",
                confidence=0.95,
                evidence=evidence,
                detection_method="static",
                business_impact=default_impact("logic"),
                line_numbers=frozenset({line}) if line else frozenset(),
                description="Code does not parse",
                error_message=e.msg,
                suggested_fix="Fix the syntax error before using this code",
            ))

        structure = context.code_structure if context and context.code_structure else analyze_code_structure(code)
        if structure.nesting_depth > MAX_NESTING_DEPTH:
            categories.append(self._complexity_finding(
                f"Nesting depth {structure.nesting_depth} exceeds {MAX_NESTING_DEPTH}",
                "Deeply nested code",
                "Extract nested blocks into functions or use early returns",
            ))
        if structure.cyclomatic_complexity > MAX_CYCLOMATIC_COMPLEXITY:
            categories.append(self._complexity_finding(
                f"Cyclomatic complexity {structure.cyclomatic_complexity} exceeds {MAX_CYCLOMATIC_COMPLEXITY}",
                "Overly complex control flow",
                "Split the logic into smaller functions",
            ))

        log.debug(f"Static analysis: {len(categories)} finding(s)")
        return DetectionOutcome(categories=tuple(categories))

    @staticmethod
    def _complexity_finding(evidence: str, description: str, fix: str) -> HallucinationCategory:
        return HallucinationCategory(
            type="logic",
            subtype="logic_breakdown",
            severity="low",
            confidence=0.6,
            evidence=[evidence],
            detection_method="static",
            business_impact=default_impact("logic"),
            description=description,
            suggested_fix=fix,
        )
