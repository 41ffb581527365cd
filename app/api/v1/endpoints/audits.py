"""
Audit lifecycle endpoints.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_audit_service
from app.core.auth import APIClient, require_role
from app.core.errors import AuditStateError, NotFoundError, ValidationError
from app.schemas.audit import (
    AuditCreate,
    AuditDetail,
    AuditSummary,
    ChecklistResponseOut,
    ReopenRequest,
    ResponseUpdate,
    SyncResult,
)
from app.services.audit_service import AuditService

logger = logging.getLogger(__name__)

router = APIRouter()


def _raise_http(exc: Exception) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ValidationError):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if isinstance(exc, AuditStateError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    raise exc


@router.post("", response_model=AuditDetail, status_code=status.HTTP_201_CREATED)
def create_audit(
    payload: AuditCreate,
    client: APIClient = Depends(require_role("auditor")),
    service: AuditService = Depends(get_audit_service),
):
    """
    Start an audit for a store.

    Assigns the next document number and clones the schema's checklist.
    """
    try:
        audit = service.create_audit(
            store_id=payload.store_id,
            schema_id=payload.schema_id,
            audit_date=payload.audit_date,
            cycle=payload.cycle,
            auditors=payload.auditors,
            year=payload.year,
            accompanied_by=payload.accompanied_by,
            time_in=payload.time_in,
            time_out=payload.time_out,
            created_by=client.source,
        )
    except (NotFoundError, ValidationError, AuditStateError) as e:
        _raise_http(e)
    return audit


@router.get("/{audit_id}", response_model=AuditDetail)
def get_audit(
    audit_id: int,
    _client=Depends(require_role("viewer")),
    service: AuditService = Depends(get_audit_service),
):
    """Get an audit with its checklist and section scores."""
    try:
        return service.get_audit(audit_id)
    except NotFoundError as e:
        _raise_http(e)


@router.put("/{audit_id}/responses/{response_id}", response_model=ChecklistResponseOut)
def update_response(
    audit_id: int,
    response_id: int,
    payload: ResponseUpdate,
    _client=Depends(require_role("auditor")),
    service: AuditService = Depends(get_audit_service),
):
    """Record an answer. Only the fields present in the body are changed."""
    try:
        return service.update_response(audit_id, response_id, payload.model_dump(exclude_unset=True))
    except (NotFoundError, ValidationError, AuditStateError) as e:
        _raise_http(e)


@router.post("/{audit_id}/complete", response_model=AuditSummary)
def complete_audit(
    audit_id: int,
    _client=Depends(require_role("auditor")),
    service: AuditService = Depends(get_audit_service),
):
    """Complete an audit and freeze its scores."""
    try:
        return service.complete_audit(audit_id)
    except (NotFoundError, AuditStateError) as e:
        _raise_http(e)


@router.post("/{audit_id}/reopen", response_model=AuditSummary)
def reopen_audit(
    audit_id: int,
    payload: ReopenRequest,
    _client=Depends(require_role("auditor")),
    service: AuditService = Depends(get_audit_service),
):
    """Reopen a completed audit for corrections."""
    try:
        return service.reopen_audit(audit_id, payload.reason)
    except (NotFoundError, ValidationError, AuditStateError) as e:
        _raise_http(e)


@router.post("/{audit_id}/sync", response_model=SyncResult)
def sync_audit(
    audit_id: int,
    _client=Depends(require_role("auditor")),
    service: AuditService = Depends(get_audit_service),
):
    """Add checklist items added to the template after the audit started."""
    try:
        added = service.sync_with_template(audit_id)
    except (NotFoundError, AuditStateError) as e:
        _raise_http(e)
    return SyncResult(audit_id=audit_id, added=added)
