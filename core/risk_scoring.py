"""
Risk scoring for merged findings: deduplication, ordering, the overall
hallucination rate and the per-severity summary.
"""

from collections import Counter
from typing import Dict, List, Sequence, Tuple

from taxonomy.models import HALLUCINATION_TYPES, HallucinationCategory, severity_rank, worst_severity
from taxonomy.results import DetectionSummary

SEVERITY_WEIGHTS = {
    "low": 0.25,
    "medium": 0.5,
    "high": 0.75,
    "critical": 1.0,
}

# Denominator floor, so a single low finding cannot produce a high rate
MIN_RATE_DENOMINATOR = 4
CRITICAL_RATE_FLOOR = 0.75


def _dedup_key(category: HallucinationCategory) -> Tuple:
    if category.line_numbers:
        return (category.type, category.subtype, category.line_numbers)
    return (category.type, category.subtype, category.description)


def merge_categories(categories: Sequence[HallucinationCategory]) -> List[HallucinationCategory]:
    """Merge duplicate findings and return them in a deterministic order.

    Findings with the same type, subtype and lines (or the same description
    when they carry no lines) are merged into one new category.
    """
    merged: Dict[Tuple, HallucinationCategory] = {}
    for category in categories:
        key = _dedup_key(category)
        if key in merged:
            merged[key] = merged[key].merged_with(category)
        else:
            merged[key] = category
    return sort_categories(merged.values())


def sort_categories(categories) -> List[HallucinationCategory]:
    return sorted(
        categories,
        key=lambda c: (-severity_rank(c.severity), -c.confidence, c.first_line, c.type, c.subtype, c.description),
    )


def filter_categories(categories: Sequence[HallucinationCategory], confidence_threshold: float,
                      focus_categories: Sequence[str] = HALLUCINATION_TYPES) -> List[HallucinationCategory]:
    focus = set(focus_categories)
    return [c for c in categories if c.confidence >= confidence_threshold and c.type in focus]


def hallucination_rate(categories: Sequence[HallucinationCategory]) -> float:
    """
    Severity-weighted risk in [0, 1]; 0 when there are no findings.

    rate = min(1, sum(weight * confidence) / max(4, n)), raised to at least
    0.75 * confidence for the most confident critical finding.
    """
    if not categories:
        return 0.0
    weighted = sum(SEVERITY_WEIGHTS[c.severity] * c.confidence for c in categories)
    rate = weighted / max(MIN_RATE_DENOMINATOR, len(categories))
    critical = [c.confidence for c in categories if c.severity == "critical"]
    if critical:
        rate = max(rate, CRITICAL_RATE_FLOOR * max(critical))
    return min(1.0, rate)


def overall_risk(categories: Sequence[HallucinationCategory], rate: float) -> str:
    if not categories:
        return "none"
    worst = worst_severity(c.severity for c in categories)
    if worst in ("critical", "high"):
        return worst
    if rate >= 0.5:
        return "high"
    if rate >= 0.25:
        return "medium"
    return "low"


def summarize(categories: Sequence[HallucinationCategory], rate: float) -> DetectionSummary:
    severities = Counter(c.severity for c in categories)
    types = Counter(c.type for c in categories)
    most_common = None
    if types:
        # ties resolve in taxonomy order for determinism
        most_common = max(HALLUCINATION_TYPES, key=lambda t: (types.get(t, 0), -HALLUCINATION_TYPES.index(t)))
    return DetectionSummary(
        total_hallucinations=len(categories),
        critical_count=severities.get("critical", 0),
        high_count=severities.get("high", 0),
        medium_count=severities.get("medium", 0),
        low_count=severities.get("low", 0),
        most_common_category=most_common,
        overall_risk=overall_risk(categories, rate),
    )
