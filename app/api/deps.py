"""
Request-scoped service providers.

The threshold cache is created with the application and shared by every
request; stores and services are built per request on the request's session.
"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.cache import Cache
from app.core.database import get_db
from app.services.audit_service import AuditService
from app.services.audit_store import SqlAuditStore
from app.services.evidence_service import build_evidence_store
from app.services.report_service import ReportService
from app.services.threshold_service import SqlConfigurationStore, ThresholdConfigProvider


def get_threshold_cache(request: Request) -> Cache:
    return request.app.state.threshold_cache


def get_threshold_provider(
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_threshold_cache),
) -> ThresholdConfigProvider:
    return ThresholdConfigProvider(SqlConfigurationStore(db), cache)


def get_audit_service(db: Session = Depends(get_db)) -> AuditService:
    return AuditService(db)


def get_report_service(
    db: Session = Depends(get_db),
    provider: ThresholdConfigProvider = Depends(get_threshold_provider),
) -> ReportService:
    return ReportService(SqlAuditStore(db), provider, build_evidence_store(db))
