"""
Action plan builder: derives findings from checklist items.

Findings are never persisted; extracting twice from the same items gives
the same result.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from app.core.errors import ValidationError
from app.services.records import (
    ChecklistItem,
    Choice,
    Priority,
    UNSET_PRIORITY_RANK,
    reference_sort_key,
)
from app.services.score_calculator import parse_choice

logger = logging.getLogger(__name__)

NON_COMPLIANT_CHOICES = (Choice.NO, Choice.PARTIALLY)


def parse_priority(raw: Optional[str]) -> Optional[Priority]:
    """
    Normalize a priority label (case-insensitive).

    Raises:
        ValidationError: Label is not High, Medium or Low
    """
    if raw is None or not str(raw).strip():
        return None
    label = str(raw).strip().lower()
    for priority in Priority:
        if priority.value.lower() == label:
            return priority
    raise ValidationError(f"Unknown priority: {raw!r}")


@dataclass(frozen=True)
class Finding:
    response_id: int
    section_number: int
    section_name: str
    reference_value: str
    title: str
    selected_choice: Optional[Choice]
    finding: Optional[str]
    corrective_action: Optional[str]
    priority: Optional[Priority]
    has_picture: bool
    escalate: bool
    departments: Tuple[str, ...]
    criterion: Optional[str] = None

    @property
    def priority_rank(self) -> int:
        return self.priority.rank if self.priority else UNSET_PRIORITY_RANK

    def matches_department(self, department: str) -> bool:
        wanted = department.strip().lower()
        return any(token.lower() == wanted for token in self.departments)


@dataclass(frozen=True)
class ActionPlanSummary:
    total: int
    high: int
    medium: int
    low: int
    unset: int
    escalated: int


@dataclass(frozen=True)
class SectionFindings:
    section_number: int
    section_name: str
    findings: List[Finding] = field(default_factory=list)


def _safe_choice(item: ChecklistItem) -> Optional[Choice]:
    try:
        return parse_choice(item.selected_choice, item.answer_domain)
    except ValidationError:
        return None


def is_finding(item: ChecklistItem) -> bool:
    """True when the item is non-compliant or carries any remark, flag or picture."""
    return bool(
        _safe_choice(item) in NON_COMPLIANT_CHOICES
        or item.priority is not None
        or (item.finding and item.finding.strip())
        or (item.corrective_action and item.corrective_action.strip())
        or item.has_picture
        or item.escalate
    )


def finding_sort_key(finding: Finding):
    """Priority rank, then section number, then reference value per numeric segment."""
    return (
        finding.priority_rank,
        finding.section_number,
        reference_sort_key(finding.reference_value),
        finding.response_id,
    )


def extract_findings(items: Iterable[ChecklistItem]) -> List[Finding]:
    """
    Build the ordered list of findings for a set of checklist items.

    Args:
        items: Checklist items of an audit

    Returns:
        Findings sorted by priority, section and reference value
    """
    findings = []
    for item in items:
        if not is_finding(item):
            continue
        findings.append(Finding(
            response_id=item.response_id,
            section_number=item.section_number,
            section_name=item.section_name,
            reference_value=item.reference_value,
            title=item.title,
            selected_choice=_safe_choice(item),
            finding=item.finding,
            corrective_action=item.corrective_action,
            priority=item.priority,
            has_picture=item.has_picture,
            escalate=item.escalate,
            departments=item.departments,
            criterion=item.criterion,
        ))
    findings.sort(key=finding_sort_key)
    return findings


def filter_by_department(
    findings: Iterable[Finding],
    department: str,
    escalated_only: bool = False,
) -> List[Finding]:
    """
    Keep findings tagged with the department (case-insensitive token match).

    Order is preserved. A finding tagged with several departments matches each.
    """
    return [
        finding for finding in findings
        if finding.matches_department(department) and (finding.escalate or not escalated_only)
    ]


def group_by_section(findings: Iterable[Finding]) -> List[SectionFindings]:
    """Group findings by section, in section-number order; input order kept within a group."""
    groups: "OrderedDict[int, SectionFindings]" = OrderedDict()
    for finding in sorted(findings, key=lambda f: f.section_number):
        group = groups.get(finding.section_number)
        if group is None:
            group = SectionFindings(finding.section_number, finding.section_name)
            groups[finding.section_number] = group
        group.findings.append(finding)
    return list(groups.values())


def summarize(findings: Iterable[Finding]) -> ActionPlanSummary:
    counts: Dict[Optional[Priority], int] = {}
    escalated = 0
    total = 0
    for finding in findings:
        total += 1
        counts[finding.priority] = counts.get(finding.priority, 0) + 1
        if finding.escalate:
            escalated += 1
    return ActionPlanSummary(
        total=total,
        high=counts.get(Priority.HIGH, 0),
        medium=counts.get(Priority.MEDIUM, 0),
        low=counts.get(Priority.LOW, 0),
        unset=counts.get(None, 0),
        escalated=escalated,
    )
