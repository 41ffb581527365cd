"""
Tests for findings extraction, ordering and department filtering.
"""
import pytest
from conftest import make_item

from app.core.errors import ValidationError
from app.services.findings_service import (
    extract_findings,
    filter_by_department,
    group_by_section,
    is_finding,
    parse_priority,
    summarize,
)
from app.services.records import Choice, Priority


def test_compliant_item_without_remarks_is_not_a_finding():
    assert not is_finding(make_item("1.1", "Yes"))
    assert not is_finding(make_item("1.2", "NA"))
    assert not is_finding(make_item("1.3", None))


@pytest.mark.parametrize("fields", [
    {"choice": "No"},
    {"choice": "Partially"},
    {"choice": "Yes", "priority": Priority.LOW},
    {"choice": "Yes", "finding": "Label missing on container"},
    {"choice": "Yes", "corrective_action": "Relabelled"},
    {"choice": "Yes", "has_picture": True},
    {"choice": "Yes", "escalate": True},
])
def test_finding_triggers(fields):
    assert is_finding(make_item("1.1", **fields))


def test_whitespace_remarks_do_not_trigger():
    assert not is_finding(make_item("1.1", "Yes", finding="   ", corrective_action=""))


def test_findings_sorted_by_priority_section_reference():
    items = [
        make_item("2.10", "No", section_number=2),
        make_item("2.9", "No", section_number=2),
        make_item("1.5", "No", section_number=1, priority=Priority.LOW),
        make_item("3.1", "No", section_number=3, priority=Priority.HIGH),
        make_item("1.1", "No", section_number=1),
        make_item("2.2", "Partially", section_number=2, priority=Priority.HIGH),
    ]
    findings = extract_findings(items)

    assert [f.reference_value for f in findings] == ["2.2", "3.1", "1.5", "1.1", "2.9", "2.10"]
    assert findings[0].selected_choice == Choice.PARTIALLY


def test_extract_findings_is_idempotent():
    items = [make_item("1.2", "No"), make_item("1.1", "Partially", escalate=True)]
    assert extract_findings(items) == extract_findings(items)


def test_department_filter_matches_any_token_case_insensitive():
    items = [
        make_item("1.1", "No", departments=("Kitchen", "Maintenance")),
        make_item("1.2", "No", departments=("Front of House",)),
        make_item("1.3", "No", departments=("maintenance",)),
    ]
    findings = extract_findings(items)

    maintenance = filter_by_department(findings, "MAINTENANCE")
    kitchen = filter_by_department(findings, " kitchen ")

    assert [f.reference_value for f in maintenance] == ["1.1", "1.3"]
    assert [f.reference_value for f in kitchen] == ["1.1"]
    assert filter_by_department(findings, "Kit") == []


def test_department_filter_escalated_only():
    items = [
        make_item("1.1", "No", departments=("Maintenance",), escalate=True),
        make_item("1.2", "No", departments=("Maintenance",)),
    ]
    result = filter_by_department(extract_findings(items), "Maintenance", escalated_only=True)
    assert [f.reference_value for f in result] == ["1.1"]


def test_group_by_section_in_section_order():
    items = [
        make_item("2.1", "No", section_number=2, priority=Priority.HIGH),
        make_item("1.1", "No", section_number=1),
        make_item("2.2", "No", section_number=2),
    ]
    groups = group_by_section(extract_findings(items))

    assert [g.section_number for g in groups] == [1, 2]
    assert [f.reference_value for f in groups[1].findings] == ["2.1", "2.2"]


def test_summary_counts_by_priority():
    items = [
        make_item("1.1", "No", priority=Priority.HIGH, escalate=True),
        make_item("1.2", "No", priority=Priority.HIGH),
        make_item("1.3", "No", priority=Priority.LOW),
        make_item("1.4", "No"),
    ]
    summary = summarize(extract_findings(items))

    assert (summary.total, summary.high, summary.medium, summary.low, summary.unset) == (4, 2, 0, 1, 1)
    assert summary.escalated == 1


@pytest.mark.parametrize("raw,expected", [
    ("High", Priority.HIGH),
    ("medium", Priority.MEDIUM),
    (" LOW ", Priority.LOW),
    (None, None),
    ("", None),
])
def test_parse_priority(raw, expected):
    assert parse_priority(raw) == expected


def test_parse_priority_rejects_unknown():
    with pytest.raises(ValidationError):
        parse_priority("Urgent")
