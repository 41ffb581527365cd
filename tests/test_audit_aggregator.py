"""
Tests for the overall rollup, verdicts and category scores.
"""
from app.models.audit_schema import AggregationStrategy
from app.services.audit_aggregator import aggregate_audit, aggregate_categories, verdict_for
from app.services.records import CategoryDefinition, SectionSnapshot, Verdict
from app.services.threshold_service import Thresholds


def section(number, earned, maximum, percentage=None):
    if percentage is None and maximum:
        percentage = round(earned / maximum * 100, 2)
    return SectionSnapshot(
        section_id=number * 10,
        section_number=number,
        section_name=f"Section {number}",
        earned_score=earned,
        max_score=maximum,
        percentage=percentage,
    )


def test_weighted_strategy_uses_global_earned_over_max():
    """(9 + 1) / (10 + 10) = 50%, not the mean of 90% and 10%."""
    result = aggregate_audit([section(1, 9, 10), section(2, 1, 10)])
    assert result.overall_percentage == 50.0
    assert result.strategy == AggregationStrategy.WEIGHTED


def test_section_average_strategy():
    result = aggregate_audit(
        [section(1, 9, 10), section(2, 1, 4)],
        strategy=AggregationStrategy.SECTION_AVERAGE,
    )
    assert result.overall_percentage == 57.5


def test_section_average_rounds_once():
    """Mean of 66.666..%, 66.666..% and 0% is 44.44, not the mean of 66.67, 66.67 and 0 (44.45)."""
    result = aggregate_audit(
        [section(1, 2, 3), section(2, 2, 3), section(3, 0, 3)],
        strategy=AggregationStrategy.SECTION_AVERAGE,
    )
    assert result.overall_percentage == 44.44


def test_strategies_differ_on_unequal_sections():
    sections = [section(1, 10, 10), section(2, 0, 30)]
    weighted = aggregate_audit(sections, strategy=AggregationStrategy.WEIGHTED)
    average = aggregate_audit(sections, strategy=AggregationStrategy.SECTION_AVERAGE)
    assert weighted.overall_percentage == 25.0
    assert average.overall_percentage == 50.0


def test_all_na_section_excluded_from_rollup():
    sections = [section(1, 8, 10), section(2, 0, 0)]
    for strategy in AggregationStrategy:
        result = aggregate_audit(sections, strategy=strategy)
        assert result.overall_percentage == 80.0
        assert result.scored_section_count == 1


def test_manually_excluded_sections_are_skipped():
    result = aggregate_audit([section(1, 8, 10), section(2, 0, 10)], excluded_section_numbers=[2])
    assert result.overall_percentage == 80.0
    assert result.sections[1].excluded is True


def test_pass_is_inclusive_at_threshold():
    assert verdict_for(83.0, 83.0) == Verdict.PASS
    assert verdict_for(82.99, 83.0) == Verdict.FAIL
    assert verdict_for(None, 83.0) == Verdict.UNDETERMINED


def test_no_scorable_sections_is_undetermined():
    result = aggregate_audit([section(1, 0, 0)])
    assert result.overall_percentage is None
    assert result.verdict == Verdict.UNDETERMINED


def test_overall_verdict_uses_overall_threshold():
    thresholds = Thresholds(overall=90, section=50, category=50)
    result = aggregate_audit([section(1, 85, 100)], thresholds=thresholds)
    assert result.verdict == Verdict.FAIL
    assert result.sections[0].verdict == Verdict.PASS


def test_section_override_threshold():
    thresholds = Thresholds(overall=80, section=80, category=80, section_overrides={2: 95})
    result = aggregate_audit([section(1, 9, 10), section(2, 9, 10)], thresholds=thresholds)
    assert result.sections[0].verdict == Verdict.PASS
    assert result.sections[1].threshold == 95
    assert result.sections[1].verdict == Verdict.FAIL


def test_category_score_is_weighted_over_member_sections():
    sections = [section(1, 9, 10), section(2, 1, 10), section(3, 5, 5)]
    categories = [
        CategoryDefinition(category_id=1, name="Storage & Hygiene", display_order=1, section_numbers=(1, 2)),
        CategoryDefinition(category_id=2, name="Premises", display_order=2, section_numbers=(3, 99)),
    ]
    scores = aggregate_categories(categories, sections, Thresholds(category=60))

    assert scores[0].percentage == 50.0
    assert scores[0].verdict == Verdict.FAIL
    assert scores[1].percentage == 100.0
    assert scores[1].verdict == Verdict.PASS


def test_category_without_scorable_sections_is_undetermined():
    categories = [CategoryDefinition(1, "Empty", 1, (1,))]
    scores = aggregate_categories(categories, [section(1, 0, 0)])
    assert scores[0].percentage is None
    assert scores[0].verdict == Verdict.UNDETERMINED
