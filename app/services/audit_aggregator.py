"""
Audit level rollup: overall score, verdicts and category scores.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from app.models.audit_schema import AggregationStrategy
from app.services.records import CategoryDefinition, Verdict
from app.services.section_aggregator import percentage_of
from app.services.threshold_service import Thresholds

logger = logging.getLogger(__name__)


def verdict_for(percentage: Optional[float], threshold: float) -> Verdict:
    """Pass when percentage >= threshold; undetermined when there is no percentage."""
    if percentage is None:
        return Verdict.UNDETERMINED
    return Verdict.PASS if percentage >= threshold else Verdict.FAIL


@dataclass(frozen=True)
class SectionResult:
    """A section score judged against its threshold."""
    section_number: int
    section_name: str
    earned_score: float
    max_score: float
    percentage: Optional[float]
    threshold: float
    verdict: Verdict
    excluded: bool = False


@dataclass(frozen=True)
class AuditScore:
    overall_percentage: Optional[float]
    earned_score: float
    max_score: float
    threshold: float
    verdict: Verdict
    strategy: AggregationStrategy
    sections: List[SectionResult]
    scored_section_count: int


@dataclass(frozen=True)
class CategoryScore:
    category_id: int
    name: str
    display_order: int
    section_numbers: Sequence[int]
    earned_score: float
    max_score: float
    percentage: Optional[float]
    threshold: float
    verdict: Verdict


def aggregate_audit(
    sections: Iterable,
    thresholds: Optional[Thresholds] = None,
    strategy: AggregationStrategy = AggregationStrategy.WEIGHTED,
    excluded_section_numbers: Iterable[int] = (),
) -> AuditScore:
    """
    Roll section scores into an overall score and verdict.

    Sections whose percentage is undefined (every item not applicable) and
    sections listed in excluded_section_numbers do not take part in the
    rollup under either strategy.

    Args:
        sections: Objects exposing section_number, section_name, earned_score,
            max_score and percentage (SectionScore or SectionSnapshot)
        thresholds: Pass/fail thresholds; defaults apply when omitted
        strategy: WEIGHTED (global earned/max) or SECTION_AVERAGE (mean of section ratios)
        excluded_section_numbers: Sections skipped by the caller

    Returns:
        AuditScore
    """
    thresholds = thresholds or Thresholds()
    strategy = AggregationStrategy(strategy)
    excluded = set(excluded_section_numbers)

    ordered = sorted(sections, key=lambda s: s.section_number)
    results: List[SectionResult] = []
    earned = 0.0
    maximum = 0.0
    percentages: List[float] = []

    for section in ordered:
        threshold = thresholds.section_threshold(section.section_number)
        is_excluded = section.section_number in excluded
        results.append(SectionResult(
            section_number=section.section_number,
            section_name=section.section_name,
            earned_score=section.earned_score,
            max_score=section.max_score,
            percentage=section.percentage,
            threshold=threshold,
            verdict=verdict_for(section.percentage, threshold),
            excluded=is_excluded,
        ))
        if is_excluded or section.percentage is None:
            continue
        earned += section.earned_score
        maximum += section.max_score
        # unrounded ratio; rounding happens once on the mean
        percentages.append(
            section.earned_score / section.max_score * 100 if section.max_score > 0 else section.percentage
        )

    if strategy == AggregationStrategy.SECTION_AVERAGE:
        overall = round(sum(percentages) / len(percentages), 2) if percentages else None
    else:
        overall = percentage_of(earned, maximum)

    if overall is None:
        logger.info("No scorable sections; overall verdict is undetermined")

    return AuditScore(
        overall_percentage=overall,
        earned_score=earned,
        max_score=maximum,
        threshold=thresholds.overall,
        verdict=verdict_for(overall, thresholds.overall),
        strategy=strategy,
        sections=results,
        scored_section_count=len(percentages),
    )


def aggregate_categories(
    categories: Iterable[CategoryDefinition],
    sections: Iterable,
    thresholds: Optional[Thresholds] = None,
) -> List[CategoryScore]:
    """
    Score each category as weighted earned/max over its member sections.

    Member sections with an undefined percentage contribute nothing.
    """
    thresholds = thresholds or Thresholds()
    by_number = {section.section_number: section for section in sections}
    scores = []

    for category in sorted(categories, key=lambda c: (c.display_order, c.category_id)):
        earned = 0.0
        maximum = 0.0
        for number in category.section_numbers:
            section = by_number.get(number)
            if section is None or section.percentage is None:
                continue
            earned += section.earned_score
            maximum += section.max_score
        percentage = percentage_of(earned, maximum)
        scores.append(CategoryScore(
            category_id=category.category_id,
            name=category.name,
            display_order=category.display_order,
            section_numbers=tuple(category.section_numbers),
            earned_score=earned,
            max_score=maximum,
            percentage=percentage,
            threshold=thresholds.category,
            verdict=verdict_for(percentage, thresholds.category),
        ))

    return scores
