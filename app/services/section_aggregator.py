"""
Section score rollup.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from app.core.errors import ValidationError
from app.services.records import BlankChoicePolicy, Choice, ChecklistItem, reference_sort_key
from app.services.score_calculator import parse_choice, score_choice

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvalidItem:
    """Item excluded from scoring because it failed validation."""
    response_id: int
    reference_value: str
    reason: str


@dataclass(frozen=True)
class SectionScore:
    section_id: int
    section_number: int
    section_name: str
    earned_score: float
    max_score: float
    percentage: Optional[float]
    answered_count: int
    not_applicable_count: int
    total_count: int
    invalid_items: Tuple[InvalidItem, ...] = field(default_factory=tuple)

    @property
    def is_scorable(self) -> bool:
        return self.percentage is not None


def percentage_of(earned: float, maximum: float) -> Optional[float]:
    """earned/maximum as a percentage rounded to 2 dp; None when maximum is 0."""
    if maximum <= 0:
        return None
    return round(earned / maximum * 100, 2)


def sort_items(items: Iterable[ChecklistItem]) -> List[ChecklistItem]:
    """Order items by reference value, numerically per dot segment."""
    return sorted(items, key=lambda item: (reference_sort_key(item.reference_value), item.response_id))


def group_items_by_section(items: Iterable[ChecklistItem]) -> "OrderedDict[int, List[ChecklistItem]]":
    """
    Group items into an ordered mapping keyed by section number.

    Keys are in ascending section number; each list is sorted by reference value.
    """
    buckets = {}
    for item in items:
        buckets.setdefault(item.section_number, []).append(item)
    grouped = OrderedDict()
    for section_number in sorted(buckets):
        grouped[section_number] = sort_items(buckets[section_number])
    return grouped


def aggregate_section(
    items: Iterable[ChecklistItem],
    section_id: Optional[int] = None,
    section_number: Optional[int] = None,
    section_name: Optional[str] = None,
    blank_policy: BlankChoicePolicy = BlankChoicePolicy.WORST,
) -> SectionScore:
    """
    Roll item values into a section score.

    Items failing validation (unknown choice, non-positive weight, issues
    flagged at ingestion) are reported in invalid_items and excluded from
    both earned and max; the remaining items are still aggregated.

    Args:
        items: Checklist items of one section
        section_id: Section id (taken from the first item when omitted)
        section_number: Section number (taken from the first item when omitted)
        section_name: Section label (taken from the first item when omitted)
        blank_policy: Scoring of unanswered items

    Returns:
        SectionScore
    """
    items = list(items)
    first = items[0] if items else None
    if section_id is None:
        section_id = first.section_id if first else 0
    if section_number is None:
        section_number = first.section_number if first else 0
    if section_name is None:
        section_name = first.section_name if first else ""

    earned = 0.0
    maximum = 0.0
    answered = 0
    not_applicable = 0
    invalid: List[InvalidItem] = []

    for item in sort_items(items):
        if item.issues:
            invalid.append(InvalidItem(item.response_id, item.reference_value, "; ".join(item.issues)))
            continue
        try:
            choice = parse_choice(item.selected_choice, item.answer_domain)
            value = score_choice(choice, item.weight, blank_policy)
        except ValidationError as exc:
            invalid.append(InvalidItem(item.response_id, item.reference_value, str(exc)))
            continue

        if choice is not None:
            answered += 1
        if choice == Choice.NA:
            not_applicable += 1
        if value is None:
            continue
        earned += value
        maximum += float(item.weight)

    if invalid:
        logger.warning(
            f"Section {section_number} ({section_name}): {len(invalid)} invalid item(s) excluded "
            f"from scoring: {', '.join(i.reference_value or str(i.response_id) for i in invalid)}"
        )

    return SectionScore(
        section_id=section_id,
        section_number=section_number,
        section_name=section_name,
        earned_score=earned,
        max_score=maximum,
        percentage=percentage_of(earned, maximum),
        answered_count=answered,
        not_applicable_count=not_applicable,
        total_count=len(items),
        invalid_items=tuple(invalid),
    )


def aggregate_sections(
    items: Iterable[ChecklistItem],
    blank_policy: BlankChoicePolicy = BlankChoicePolicy.WORST,
) -> List[SectionScore]:
    """Aggregate every section present in items, in section-number order."""
    return [
        aggregate_section(section_items, blank_policy=blank_policy)
        for section_items in group_items_by_section(items).values()
    ]
