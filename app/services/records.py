"""
Canonical typed records consumed by the scoring and report components.

The audit store normalizes persisted rows into these once; the scoring
core never inspects ORM objects or raw column values.
"""
import enum
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Optional, Tuple, Union

from app.models.audit import AuditStatus
from app.models.audit_schema import AggregationStrategy


class Choice(str, enum.Enum):
    """Closed set of answer labels."""
    YES = "Yes"
    PARTIALLY = "Partially"
    NO = "No"
    NA = "NA"


class Priority(str, enum.Enum):
    """Finding priority."""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK: Dict[Priority, int] = {
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}
UNSET_PRIORITY_RANK = 4


class BlankChoicePolicy(str, enum.Enum):
    """How an item without a selected choice is scored."""
    WORST = "worst"  # counted as answered with 0 points
    EXCLUDE = "exclude"  # left out of the denominator, like NA


class Verdict(str, enum.Enum):
    """Pass/fail outcome of a score against a threshold."""
    PASS = "pass"
    FAIL = "fail"
    UNDETERMINED = "undetermined"  # nothing scorable


class EvidenceTag(str, enum.Enum):
    """What an evidence image shows."""
    ISSUE = "issue"  # "before"
    CORRECTIVE = "corrective"  # "after"
    GOOD = "good"  # compliant observation


_SEGMENT_SPLIT = re.compile(r"[.\s]+")


def reference_sort_key(reference_value: Optional[str]) -> Tuple[Tuple[int, Union[int, str]], ...]:
    """
    Sort key comparing dotted reference values numerically per segment.

    "1.2" < "1.10" < "2.1". Non-numeric segments sort after numeric ones
    at the same position, alphabetically.
    """
    if not reference_value:
        return ()
    key = []
    for segment in _SEGMENT_SPLIT.split(reference_value.strip()):
        if not segment:
            continue
        if segment.isdigit():
            key.append((0, int(segment)))
        else:
            key.append((1, segment.lower()))
    return tuple(key)


def split_departments(raw: Optional[str]) -> Tuple[str, ...]:
    """Split a comma-separated department field into trimmed, non-empty tokens."""
    if not raw:
        return ()
    return tuple(token.strip() for token in raw.split(",") if token.strip())


@dataclass(frozen=True)
class ChecklistItem:
    """One answered (or unanswered) checklist question of an audit."""
    response_id: int
    section_id: int
    section_number: int
    section_name: str
    reference_value: str
    title: str
    weight: float
    answer_domain: Tuple[str, ...] = ()
    selected_choice: Optional[str] = None  # raw label, validated by the score calculator
    finding: Optional[str] = None
    corrective_action: Optional[str] = None
    criterion: Optional[str] = None
    priority: Optional[Priority] = None
    departments: Tuple[str, ...] = ()
    escalate: bool = False
    has_picture: bool = False
    issues: Tuple[str, ...] = ()  # normalization problems found at ingestion


@dataclass(frozen=True)
class AuditHeader:
    """Audit header with its store and schema identity resolved."""
    audit_id: int
    document_number: str
    store_id: int
    store_code: str
    store_name: str
    schema_id: int
    schema_name: str
    report_title: str
    audit_date: date
    cycle: str
    year: int
    auditors: str
    status: AuditStatus
    created_at: datetime
    aggregation_strategy: AggregationStrategy = AggregationStrategy.WEIGHTED
    accompanied_by: Optional[str] = None
    total_score: Optional[float] = None
    completed_at: Optional[datetime] = None
    department_names: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SectionSnapshot:
    """Persisted section score of an audit."""
    section_id: int
    section_number: int
    section_name: str
    earned_score: float
    max_score: float
    percentage: Optional[float]
    total_questions: int = 0
    answered_questions: int = 0
    na_questions: int = 0
    invalid_questions: int = 0


@dataclass(frozen=True)
class CategoryDefinition:
    """Category of a schema and the section numbers it groups."""
    category_id: int
    name: str
    display_order: int
    section_numbers: Tuple[int, ...]


@dataclass(frozen=True)
class HistoricalItemResult:
    """Non-compliant answer recorded in a prior completed audit."""
    audit_id: int
    document_number: str
    audit_date: date
    reference_value: str
    title: str
    choice: Choice


@dataclass(frozen=True)
class HistoricalRecord:
    """Prior completed audit of a store, with its frozen scores."""
    audit_id: int
    document_number: str
    audit_date: date
    cycle: str
    created_at: datetime
    total_score: Optional[float]
    sections: Tuple[SectionSnapshot, ...] = ()
