"""Report document model schemas."""
from datetime import date, datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field


class ReportHeader(BaseModel):
    """Audit identity shown at the top of a report."""
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
    accompanied_by: Optional[str] = None
    status: str
    completed_at: Optional[datetime] = None


class ThresholdsOut(BaseModel):
    overall: float
    section: float
    category: float
    section_overrides: Dict[int, float] = Field(default_factory=dict)
    degraded: bool = False


class InvalidItemOut(BaseModel):
    response_id: int
    reference_value: str
    reason: str


class SectionReport(BaseModel):
    section_number: int
    section_name: str
    earned_score: float
    max_score: float
    percentage: Optional[float] = None  # None when every item is not applicable
    threshold: float
    verdict: str
    total_count: int = 0
    answered_count: int = 0
    not_applicable_count: int = 0
    invalid_items: List[InvalidItemOut] = Field(default_factory=list)


class CategoryReport(BaseModel):
    category_id: int
    name: str
    section_numbers: List[int]
    earned_score: float
    max_score: float
    percentage: Optional[float] = None
    threshold: float
    verdict: str


class EvidenceImageOut(BaseModel):
    picture_id: int
    tag: str  # issue, corrective, good
    content_type: str
    file_name: Optional[str] = None
    data_url: str


class FindingOut(BaseModel):
    response_id: int
    section_number: int
    section_name: str
    reference_value: str
    title: str
    selected_choice: Optional[str] = None
    finding: Optional[str] = None
    corrective_action: Optional[str] = None
    priority: Optional[str] = None
    has_picture: bool = False
    escalate: bool = False
    departments: List[str] = Field(default_factory=list)
    repeat_count: int = 0
    evidence: List[EvidenceImageOut] = Field(default_factory=list)


class ActionPlanSummaryOut(BaseModel):
    total: int
    high: int
    medium: int
    low: int
    unset: int
    escalated: int


class TrendRowOut(BaseModel):
    key: str
    label: str
    section_number: Optional[int] = None
    # cycle label -> percentage, or "not_available"
    values: Dict[str, Union[float, str]]


class ReportDocument(BaseModel):
    """Everything an external renderer needs to produce the audit report."""
    header: ReportHeader
    thresholds: ThresholdsOut
    strategy: str
    overall_percentage: Optional[float] = None
    overall_verdict: str
    sections: List[SectionReport]
    categories: List[CategoryReport] = Field(default_factory=list)
    findings: List[FindingOut] = Field(default_factory=list)
    action_plan_summary: ActionPlanSummaryOut
    trend_cycles: List[str] = Field(default_factory=list)
    trend: List[TrendRowOut] = Field(default_factory=list)
    evidence_failures: int = 0
    warnings: List[str] = Field(default_factory=list)
    generated_at: datetime


class ActionPlanResponse(BaseModel):
    audit_id: int
    document_number: str
    department: Optional[str] = None
    findings: List[FindingOut]
    summary: ActionPlanSummaryOut


class DepartmentReportResponse(BaseModel):
    audit_id: int
    document_number: str
    store_name: str
    department: str
    department_display_name: str
    findings: List[FindingOut]
    summary: ActionPlanSummaryOut
    evidence_failures: int = 0
    warnings: List[str] = Field(default_factory=list)
