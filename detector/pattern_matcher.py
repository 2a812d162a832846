"""
Pattern Matcher - runs the rule catalog over source text line by line.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from detector.base import DetectionContext, DetectionMethod, DetectionOutcome
from detector.code_structure import analyze_code_structure
from detector.patterns import PATTERN_CATALOG, PatternRule
from detector.source_text import SourceText
from taxonomy.business_impact import default_impact
from taxonomy.models import CodeStructure, HallucinationCategory

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchLocation:
    start_line: int
    end_line: int
    start_column: int
    end_column: int

    def to_dict(self) -> Dict:
        return {
            "startLine": self.start_line,
            "endLine": self.end_line,
            "startColumn": self.start_column,
            "endColumn": self.end_column,
        }


@dataclass(frozen=True)
class PatternMatch:
    rule_id: str
    confidence: float
    location: MatchLocation
    evidence: Tuple[str, ...]

    def to_dict(self) -> Dict:
        return {
            "ruleId": self.rule_id,
            "confidence": self.confidence,
            "location": self.location.to_dict(),
            "evidence": list(self.evidence),
        }


@dataclass(frozen=True)
class PatternScan:
    """Everything one call to detect_patterns() found."""
    matches: Tuple[PatternMatch, ...]
    categories: Tuple[HallucinationCategory, ...]
    code_structure: CodeStructure
    confidence: float
    failed_rules: Tuple[str, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "matches": [match.to_dict() for match in self.matches],
            "categories": [category.to_dict() for category in self.categories],
            "codeStructure": self.code_structure.to_dict(),
            "confidence": round(self.confidence, 4),
            "failedRules": list(self.failed_rules),
        }


class PatternMatcher(DetectionMethod):
    """
    Stateless scanner: matching depends only on the code and the rule catalog,
    so one instance can be shared by concurrent analyses.
    """

    method = "pattern"

    def __init__(self, rules: Optional[Sequence[PatternRule]] = None):
        self.rules: Tuple[PatternRule, ...] = tuple(rules) if rules is not None else PATTERN_CATALOG
        self._rules_by_id = {rule.id: rule for rule in self.rules}

    def detect_patterns(self, code: str) -> PatternScan:
        """Scan `code` with every rule.

        Args:
            code: Python source text.

        Returns:
            PatternScan with the raw matches, one category per match, the code
            structure and the mean match confidence (1.0 when nothing matched).
        """
        structure = analyze_code_structure(code)
        if not code.strip():
            return PatternScan(matches=(), categories=(), code_structure=structure, confidence=1.0)

        source = SourceText(code)
        matches: List[PatternMatch] = []
        failed: List[str] = []

        for rule in self.rules:
            try:
                matches.extend(self._apply_rule(rule, source))
            except Exception as e:
                # One broken rule must not hide the findings of the others
                log.warning(f"Pattern rule '{rule.id}' failed and was skipped: {e}")
                failed.append(rule.id)

        categories = tuple(self._to_category(match, source) for match in matches)
        confidence = sum(match.confidence for match in matches) / len(matches) if matches else 1.0

        log.debug(f"Pattern scan: {len(matches)} match(es) from {len(self.rules)} rule(s)")
        return PatternScan(
            matches=tuple(matches),
            categories=categories,
            code_structure=structure,
            confidence=confidence,
            failed_rules=tuple(failed),
        )

    def detect(self, code: str, context: Optional[DetectionContext] = None) -> DetectionOutcome:
        scan = self.detect_patterns(code)
        return DetectionOutcome(categories=scan.categories, details={"scan": scan})

    def _apply_rule(self, rule: PatternRule, source: SourceText) -> List[PatternMatch]:
        found = []
        for index, line in enumerate(source.masked):
            for match in rule.match_expression.finditer(line):
                evidence = rule.evidence_extractor(match, source, index)
                if not evidence:
                    continue
                end_line = source.block_end(index) + 1 if rule.spans_block else index + 1
                found.append(PatternMatch(
                    rule_id=rule.id,
                    confidence=rule.confidence,
                    location=MatchLocation(
                        start_line=index + 1,
                        end_line=end_line,
                        start_column=match.start() + 1,
                        end_column=max(match.end(), match.start() + 1),
                    ),
                    evidence=tuple(evidence),
                ))
        return found

    def _to_category(self, match: PatternMatch, source: SourceText) -> HallucinationCategory:
        rule = self._rules_by_id[match.rule_id]
        line_number = match.location.start_line
        code_line = source.lines[line_number - 1].strip()
        return HallucinationCategory(
            type=rule.category,
            subtype=rule.subtype,
            severity=rule.severity,
            confidence=match.confidence,
            evidence=match.evidence + (f"Line {line_number}: {code_line}",),
            detection_method="pattern",
            business_impact=default_impact(rule.category),
            line_numbers=frozenset({line_number}),
            description=rule.name,
            suggested_fix=rule.suggested_fix,
        )


def pattern_statistics(matches: Sequence[PatternMatch], rules: Optional[Sequence[PatternRule]] = None) -> Dict:
    """Summarize matches by category and severity of the rules that produced them."""
    rules_by_id = {rule.id: rule for rule in (rules if rules is not None else PATTERN_CATALOG)}
    by_category: Counter = Counter()
    by_severity: Counter = Counter()
    for match in matches:
        rule = rules_by_id.get(match.rule_id)
        if rule is None:
            continue
        by_category[rule.category] += 1
        by_severity[rule.severity] += 1

    return {
        "totalPatterns": len(matches),
        "byCategory": dict(by_category),
        "bySeverity": dict(by_severity),
        "avgConfidence": (sum(match.confidence for match in matches) / len(matches)) if matches else 0.0,
    }
