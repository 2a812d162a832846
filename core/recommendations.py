"""
Remediation guidance: one recommendation per hallucination type present.
"""

from typing import Dict, List, Sequence

from core.risk_scoring import sort_categories
from taxonomy.models import HALLUCINATION_TYPES, HallucinationCategory, worst_severity
from taxonomy.results import Recommendation

CRITICAL_REVIEW_RATE = 0.7
MAX_FINDING_ACTIONS = 3

RECOMMENDATION_TEMPLATES = {
    "mapping": {
        "title": "Data Type and Structure Issues",
        "description": "Code contains potential data mapping problems",
        "action_items": (
            "Add type checking and validation",
            "Verify data structure assumptions",
            "Test with edge cases and different data types",
        ),
    },
    "naming": {
        "title": "Identifier and Reference Issues",
        "description": "Code contains potential naming and reference problems",
        "action_items": (
            "Verify all variables and functions are defined",
            "Check import statements and module availability",
            "Review scope and naming conventions",
        ),
    },
    "resource": {
        "title": "Resource and Performance Issues",
        "description": "Code may have resource consumption problems",
        "action_items": (
            "Add resource limits and monitoring",
            "Optimize memory and CPU usage",
            "Implement proper error handling for resource constraints",
        ),
    },
    "logic": {
        "title": "Logic and Flow Issues",
        "description": "Code contains potential logical inconsistencies",
        "action_items": (
            "Review algorithm logic and flow",
            "Add proper termination conditions",
            "Test with various input scenarios",
        ),
    },
}

CRITICAL_REVIEW = Recommendation(
    type="general",
    priority="critical",
    title="Critical Code Review Required",
    description="Multiple serious issues detected that require immediate attention",
    action_items=(
        "Conduct thorough code review",
        "Test with multiple input scenarios",
        "Consider alternative implementation approach",
    ),
    estimated_fix_time="2-4 hours",
    expected_impact="Prevent production issues and reduce debugging time",
)


def estimate_fix_time(categories: Sequence[HallucinationCategory]) -> str:
    total_hours = sum(c.business_impact.estimated_dev_time_wasted_hours for c in categories)
    if total_hours < 1:
        return "15-30 minutes"
    if total_hours < 2:
        return "30-60 minutes"
    if total_hours < 4:
        return "1-2 hours"
    if total_hours < 8:
        return "2-4 hours"
    return "4+ hours"


def generate_recommendations(categories: Sequence[HallucinationCategory], rate: float) -> List[Recommendation]:
    """Build recommendations in taxonomy order.

    Action items are ranked: concrete fixes from the worst findings first,
    then the generic checklist for the type.
    """
    by_type: Dict[str, List[HallucinationCategory]] = {}
    for category in categories:
        by_type.setdefault(category.type, []).append(category)

    recommendations = []
    for hallucination_type in HALLUCINATION_TYPES:
        group = by_type.get(hallucination_type)
        if not group:
            continue
        template = RECOMMENDATION_TEMPLATES[hallucination_type]

        fixes: List[str] = []
        for category in sort_categories(group):
            if category.suggested_fix and category.suggested_fix not in fixes:
                fixes.append(category.suggested_fix)
        action_items = tuple(fixes[:MAX_FINDING_ACTIONS]) + tuple(
            item for item in template["action_items"] if item not in fixes
        )

        recommendations.append(Recommendation(
            type=hallucination_type,
            priority=worst_severity(c.severity for c in group),
            title=template["title"],
            description=template["description"],
            action_items=action_items,
            estimated_fix_time=estimate_fix_time(group),
            expected_impact=f"Resolve {len(group)} {hallucination_type} issue(s)",
        ))

    if rate > CRITICAL_REVIEW_RATE:
        recommendations.append(CRITICAL_REVIEW)
    return recommendations
