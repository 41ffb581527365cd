"""Schemas for audit lifecycle operations."""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.audit import AuditStatus


class AuditCreate(BaseModel):
    """Request body for starting an audit."""
    store_id: int
    schema_id: int
    audit_date: date
    cycle: str = Field(..., min_length=1, max_length=50)
    auditors: str = Field(..., min_length=1, max_length=500)
    year: Optional[int] = None  # defaults to the audit date's year
    accompanied_by: Optional[str] = None
    time_in: Optional[str] = None
    time_out: Optional[str] = None


class ResponseUpdate(BaseModel):
    """Answer fields an auditor may change; only fields sent are applied."""
    selected_choice: Optional[str] = None
    finding: Optional[str] = None
    comment: Optional[str] = None
    corrective_action: Optional[str] = None
    priority: Optional[str] = None
    department: Optional[str] = None  # comma-separated
    escalate: Optional[bool] = None
    has_picture: Optional[bool] = None


class ReopenRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class ChecklistResponseOut(BaseModel):
    """Checklist item of an audit with its answer."""
    id: int
    section_id: int
    section_number: int
    section_name: str
    reference_value: Optional[str] = None
    title: str
    weight: float
    answer_options: Optional[str] = None
    criterion: Optional[str] = None
    selected_choice: Optional[str] = None
    value: Optional[float] = None
    finding: Optional[str] = None
    comment: Optional[str] = None
    corrective_action: Optional[str] = None
    priority: Optional[str] = None
    department: Optional[str] = None
    escalate: bool = False
    has_picture: bool = False

    model_config = {"from_attributes": True}


class SectionScoreOut(BaseModel):
    section_id: int
    section_number: int
    section_name: str
    earned_score: float
    max_score: float
    percentage: Optional[float] = None
    total_questions: int
    answered_questions: int
    na_questions: int
    invalid_questions: int

    model_config = {"from_attributes": True}


class AuditSummary(BaseModel):
    """Audit header."""
    id: int
    document_number: str
    store_id: int
    schema_id: int
    store_code: str
    store_name: str
    audit_date: date
    cycle: str
    year: int
    auditors: str
    accompanied_by: Optional[str] = None
    status: AuditStatus
    total_score: Optional[float] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    reopened_at: Optional[datetime] = None
    reopen_reason: Optional[str] = None

    model_config = {"from_attributes": True}


class AuditDetail(AuditSummary):
    """Audit header with its checklist and section scores."""
    responses: List[ChecklistResponseOut] = Field(default_factory=list)
    section_scores: List[SectionScoreOut] = Field(default_factory=list)


class SyncResult(BaseModel):
    audit_id: int
    added: int
