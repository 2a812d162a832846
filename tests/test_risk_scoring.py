"""
Tests for the taxonomy records and the scoring built on top of them.

Covers:
- HallucinationCategory validation and merging
- Deduplication, ordering and filtering of findings
- Hallucination rate, overall risk and summary counts
- Business impact aggregation
- Recommendation generation
"""

import pytest

from core.recommendations import CRITICAL_REVIEW, estimate_fix_time, generate_recommendations
from core.risk_scoring import (
    filter_categories,
    hallucination_rate,
    merge_categories,
    overall_risk,
    summarize,
)
from taxonomy.business_impact import (
    DEFAULT_BUSINESS_IMPACT,
    NO_IMPACT,
    aggregate_business_impact,
    default_impact,
)
from taxonomy.models import BusinessImpact, HallucinationCategory


def make(type_="logic", subtype="logic_deviation", severity="high", confidence=0.9,
         lines=(1,), method="pattern", evidence=("something",), description="", fix=None):
    return HallucinationCategory(
        type=type_,
        subtype=subtype,
        severity=severity,
        confidence=confidence,
        evidence=evidence,
        detection_method=method,
        business_impact=DEFAULT_BUSINESS_IMPACT.get(type_, NO_IMPACT),
        line_numbers=lines,
        description=description,
        suggested_fix=fix,
    )


# ============================================================================
# HallucinationCategory
# ============================================================================

@pytest.mark.parametrize("overrides", [
    {"type_": "syntax"},
    {"subtype": "identity"},
    {"severity": "fatal"},
    {"confidence": 1.5},
    {"method": "guess"},
])
def test_invalid_categories_are_rejected(overrides):
    with pytest.raises(ValueError):
        make(**overrides)


def test_unknown_type_reaches_category_validation():
    with pytest.raises(ValueError, match="syntax"):
        make(type_="syntax")


def test_containers_are_normalized():
    category = make(lines=[3, 1, 3], evidence=["a", "b"])

    assert category.line_numbers == frozenset({1, 3})
    assert category.evidence == ("a", "b")
    assert category.first_line == 1


def test_business_impact_validates_quality():
    with pytest.raises(ValueError):
        BusinessImpact(estimated_dev_time_wasted_hours=1, cost_multiplier=1, quality_impact=120)


def test_merge_keeps_the_stronger_finding_and_unions_evidence():
    pattern = make(severity="medium", confidence=0.8, evidence=("from pattern",), fix="fix A")
    execution = make(severity="high", confidence=0.9, method="execution", evidence=("from runtime",),
                     lines=(1, 2))

    merged = pattern.merged_with(execution)

    assert merged.detection_method == "execution"
    assert merged.severity == "high"
    assert merged.evidence == ("from runtime", "from pattern")
    assert merged.line_numbers == frozenset({1, 2})
    assert merged.suggested_fix == "fix A"
    # originals are untouched
    assert pattern.evidence == ("from pattern",)


def test_category_to_dict():
    data = make(lines=(4, 2)).to_dict()

    assert data["lineNumbers"] == [2, 4]
    assert data["detectionMethod"] == "pattern"
    assert data["businessImpact"]["estimatedCostUSD"] == 160


# ============================================================================
# Merge, order, filter
# ============================================================================

def test_duplicates_on_the_same_line_are_merged():
    categories = merge_categories([
        make(evidence=("pattern evidence",)),
        make(method="execution", evidence=("runtime evidence",)),
    ])

    assert len(categories) == 1
    assert set(categories[0].evidence) == {"pattern evidence", "runtime evidence"}


def test_findings_on_different_lines_stay_separate():
    categories = merge_categories([make(lines=(1,)), make(lines=(2,))])

    assert len(categories) == 2


def test_line_less_findings_merge_by_description():
    categories = merge_categories([
        make(lines=(), description="Deeply nested code"),
        make(lines=(), description="Deeply nested code", evidence=("more",)),
        make(lines=(), description="Overly complex control flow"),
    ])

    assert len(categories) == 2


def test_ordering_is_severity_then_confidence_then_line():
    low = make(severity="low", confidence=0.9, lines=(1,))
    high_late = make(severity="high", confidence=0.8, lines=(9,))
    high_early = make(severity="high", confidence=0.8, lines=(3,), subtype="logic_breakdown")
    critical = make(type_="resource", subtype="computational_boundary", severity="critical",
                    confidence=0.7, lines=(5,))
    confident_high = make(type_="mapping", subtype="data_compliance", confidence=0.95, lines=(7,))

    ordered = merge_categories([low, high_late, high_early, critical, confident_high])

    assert ordered == [critical, confident_high, high_early, high_late, low]


def test_merge_is_order_independent():
    items = [make(lines=(1,)), make(severity="low", lines=(2,)), make(type_="naming", subtype="identity")]

    assert merge_categories(items) == merge_categories(list(reversed(items)))


def test_filter_by_confidence_and_focus():
    categories = [
        make(confidence=0.95),
        make(confidence=0.5, lines=(2,)),
        make(type_="naming", subtype="identity", confidence=0.95, lines=(3,)),
    ]

    assert len(filter_categories(categories, 0.9)) == 2
    assert [c.type for c in filter_categories(categories, 0.0, ["naming"])] == ["naming"]


# ============================================================================
# Rate, risk and summary
# ============================================================================

def test_rate_is_zero_without_findings():
    assert hallucination_rate([]) == 0.0
    assert overall_risk([], 0.0) == "none"


def test_single_low_finding_has_a_small_rate():
    rate = hallucination_rate([make(severity="low", confidence=0.6)])

    assert rate == pytest.approx(0.25 * 0.6 / 4)
    assert overall_risk([make(severity="low")], rate) == "low"


def test_critical_finding_floors_the_rate():
    rate = hallucination_rate([make(severity="critical", confidence=0.9)])

    assert rate == pytest.approx(0.75 * 0.9)


def test_rate_is_bounded():
    categories = [make(severity="critical", confidence=1.0, lines=(i,)) for i in range(1, 20)]

    assert hallucination_rate(categories) == 1.0


def test_overall_risk_uses_worst_severity_first():
    assert overall_risk([make(severity="high")], 0.1) == "high"
    assert overall_risk([make(severity="medium")], 0.3) == "medium"
    assert overall_risk([make(severity="medium")], 0.6) == "high"


def test_summary_counts():
    categories = [
        make(severity="critical", lines=(1,)),
        make(severity="high", lines=(2,)),
        make(type_="naming", subtype="identity", severity="medium", lines=(3,)),
        make(type_="naming", subtype="identity", severity="low", lines=(4,)),
        make(type_="naming", subtype="identity", severity="low", lines=(5,)),
    ]

    summary = summarize(categories, hallucination_rate(categories))

    assert summary.total_hallucinations == 5
    assert (summary.critical_count, summary.high_count, summary.medium_count, summary.low_count) == (1, 1, 1, 2)
    assert summary.most_common_category == "naming"
    assert summary.overall_risk == "critical"


def test_most_common_ties_follow_taxonomy_order():
    categories = [make(type_="logic"), make(type_="mapping", subtype="data_compliance")]

    assert summarize(categories, 0.5).most_common_category == "mapping"


# ============================================================================
# Business impact
# ============================================================================

def test_no_findings_have_no_impact():
    assert aggregate_business_impact([]) == NO_IMPACT


def test_impact_aggregation():
    impact = aggregate_business_impact([
        make(type_="mapping", subtype="data_compliance"),
        make(type_="resource", subtype="physical_constraint", lines=(2,)),
    ])

    assert impact.estimated_dev_time_wasted_hours == pytest.approx(6.5)
    assert impact.cost_multiplier == pytest.approx(1.8)
    assert impact.quality_impact == 40
    assert impact.estimated_cost_usd == pytest.approx(6.5 * 100 * 1.8)


def test_unknown_type_has_no_default_impact():
    with pytest.raises(KeyError):
        default_impact("syntax")


# ============================================================================
# Recommendations
# ============================================================================

def test_one_recommendation_per_type_in_taxonomy_order():
    categories = [
        make(type_="logic", fix="Guard divisors against zero"),
        make(type_="mapping", subtype="data_compliance", severity="medium", lines=(2,)),
    ]

    recommendations = generate_recommendations(categories, 0.3)

    assert [r.type for r in recommendations] == ["mapping", "logic"]
    mapping, logic = recommendations
    assert mapping.title == "Data Type and Structure Issues"
    assert mapping.priority == "medium"
    assert mapping.expected_impact == "Resolve 1 mapping issue(s)"
    assert logic.action_items[0] == "Guard divisors against zero"
    assert "Review algorithm logic and flow" in logic.action_items


def test_priority_is_the_worst_severity_of_the_type():
    categories = [make(severity="low"), make(severity="critical", lines=(2,))]

    assert generate_recommendations(categories, 0.5)[0].priority == "critical"


def test_high_rate_adds_a_critical_review():
    recommendations = generate_recommendations([make(severity="critical")], 0.9)

    assert recommendations[-1] == CRITICAL_REVIEW
    assert recommendations[-1].estimated_fix_time == "2-4 hours"


def test_no_findings_no_recommendations():
    assert generate_recommendations([], 0.0) == []


def test_fix_time_buckets():
    assert estimate_fix_time([]) == "15-30 minutes"
    assert estimate_fix_time([make(type_="naming", subtype="identity")]) == "30-60 minutes"
    assert estimate_fix_time([make(type_="mapping", subtype="data_compliance")]) == "1-2 hours"
    assert estimate_fix_time([make(type_="resource", subtype="physical_constraint")] * 3) == "4+ hours"
