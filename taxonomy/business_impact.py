"""
Business impact estimates per hallucination type, and their aggregation.
"""

from typing import Iterable

from taxonomy.models import BusinessImpact, HallucinationCategory

HOURLY_RATE_USD = 100.0

# Default impact per hallucination type, attached when a category is created.
DEFAULT_BUSINESS_IMPACT = {
    "mapping": BusinessImpact(
        estimated_dev_time_wasted_hours=2.5,
        cost_multiplier=1.3,
        quality_impact=25,
        estimated_cost_usd=125,
    ),
    "naming": BusinessImpact(
        estimated_dev_time_wasted_hours=1.8,
        cost_multiplier=1.2,
        quality_impact=20,
        estimated_cost_usd=90,
    ),
    "resource": BusinessImpact(
        estimated_dev_time_wasted_hours=4.0,
        cost_multiplier=1.8,
        quality_impact=40,
        estimated_cost_usd=200,
    ),
    "logic": BusinessImpact(
        estimated_dev_time_wasted_hours=3.2,
        cost_multiplier=1.5,
        quality_impact=35,
        estimated_cost_usd=160,
    ),
}

NO_IMPACT = BusinessImpact(
    estimated_dev_time_wasted_hours=0.0,
    cost_multiplier=1.0,
    quality_impact=0,
    estimated_cost_usd=0.0,
)


def default_impact(hallucination_type: str) -> BusinessImpact:
    """Return the default impact for a type (raises KeyError for unknown types)."""
    return DEFAULT_BUSINESS_IMPACT[hallucination_type]


def aggregate_business_impact(categories: Iterable[HallucinationCategory]) -> BusinessImpact:
    """
    Combine per-finding impacts into one estimate for a whole analysis.

    Hours add up; the multiplier and quality impact take the worst finding.
    The dollar estimate is recomputed from the totals.
    """
    impacts = [category.business_impact for category in categories]
    if not impacts:
        return NO_IMPACT

    hours = sum(impact.estimated_dev_time_wasted_hours for impact in impacts)
    multiplier = max(impact.cost_multiplier for impact in impacts)
    quality = min(100, max(impact.quality_impact for impact in impacts))

    return BusinessImpact(
        estimated_dev_time_wasted_hours=hours,
        cost_multiplier=multiplier,
        quality_impact=quality,
        estimated_cost_usd=hours * HOURLY_RATE_USD * multiplier,
    )
