"""
Report endpoints: full report document, action plan and department report.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_report_service
from app.core.auth import require_role
from app.core.errors import NotFoundError
from app.schemas.report import ActionPlanResponse, DepartmentReportResponse, ReportDocument
from app.services.report_service import ReportService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{audit_id}", response_model=ReportDocument)
def get_report(
    audit_id: int,
    cycles: Optional[List[str]] = Query(None, description="Cycle labels for the trend table (default: TREND_CYCLES)"),
    include_evidence: bool = Query(True, description="Attach evidence images to findings"),
    exclude_section: Optional[List[int]] = Query(None, description="Section numbers left out of the overall score"),
    _client=Depends(require_role("viewer")),
    service: ReportService = Depends(get_report_service),
):
    """
    Build the report document for an audit.

    Scores of completed audits come from the frozen snapshot. Missing history
    and evidence failures are listed in `warnings`.
    """
    try:
        return service.build_report(
            audit_id,
            cycles=cycles,
            include_evidence=include_evidence,
            excluded_sections=exclude_section or (),
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/{audit_id}/action-plan", response_model=ActionPlanResponse)
def get_action_plan(
    audit_id: int,
    department: Optional[str] = Query(None, description="Only findings tagged with this department"),
    _client=Depends(require_role("viewer")),
    service: ReportService = Depends(get_report_service),
):
    """Findings sorted by priority, section and reference."""
    try:
        return service.build_action_plan(audit_id, department=department)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/{audit_id}/departments/{department}", response_model=DepartmentReportResponse)
def get_department_report(
    audit_id: int,
    department: str,
    include_evidence: bool = Query(True),
    _client=Depends(require_role("viewer")),
    service: ReportService = Depends(get_report_service),
):
    """Escalated findings for one department."""
    try:
        return service.build_department_report(audit_id, department, include_evidence=include_evidence)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
