"""
Read access to audits, normalized into canonical records.

Everything downstream of the store works with the typed records from
app.services.records; choice labels, priorities, departments and the store
identity are normalized here, once.
"""
import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, ValidationError
from app.models.audit import Audit, AuditResponse, AuditSectionScore, AuditStatus
from app.models.audit_schema import AggregationStrategy
from app.models.category import AuditCategory
from app.services.findings_service import NON_COMPLIANT_CHOICES, parse_priority
from app.services.records import (
    AuditHeader,
    CategoryDefinition,
    ChecklistItem,
    HistoricalItemResult,
    HistoricalRecord,
    SectionSnapshot,
    split_departments,
)
from app.services.score_calculator import parse_choice

logger = logging.getLogger(__name__)


def split_answer_options(raw: Optional[str]):
    if not raw:
        return ()
    return tuple(option.strip() for option in raw.split(",") if option.strip())


class AuditStore(ABC):
    """Audit data needed to build scores and reports."""

    @abstractmethod
    def get_header(self, audit_id: int) -> AuditHeader:
        """Raises NotFoundError when the audit does not exist."""

    @abstractmethod
    def get_items(self, audit_id: int) -> List[ChecklistItem]:
        """Checklist items of the audit."""

    @abstractmethod
    def get_section_snapshots(self, audit_id: int) -> List[SectionSnapshot]:
        """Persisted section scores, by section number."""

    @abstractmethod
    def list_completed_audits(
        self, store_id: int, schema_id: int, exclude_audit_id: Optional[int] = None
    ) -> List[HistoricalRecord]:
        """Completed audits of a store for a schema, newest audit date first."""

    @abstractmethod
    def get_categories(self, schema_id: int) -> List[CategoryDefinition]:
        """Active categories of a schema."""

    @abstractmethod
    def get_failing_items(self, audit_ids: Iterable[int]) -> List[HistoricalItemResult]:
        """Items answered No or Partially in the given audits."""


def snapshot_from_row(row: AuditSectionScore) -> SectionSnapshot:
    return SectionSnapshot(
        section_id=row.section_id,
        section_number=row.section_number,
        section_name=row.section_name,
        earned_score=row.earned_score or 0.0,
        max_score=row.max_score or 0.0,
        percentage=row.percentage,
        total_questions=row.total_questions or 0,
        answered_questions=row.answered_questions or 0,
        na_questions=row.na_questions or 0,
        invalid_questions=row.invalid_questions or 0,
    )


def item_from_response(response: AuditResponse) -> ChecklistItem:
    """
    Normalize an AuditResponse row.

    A recognizable choice label is rewritten to its canonical form; an
    unrecognizable one is kept as-is so the aggregator can flag the item.
    An unknown priority is recorded in `issues`.
    """
    issues = []
    answer_domain = split_answer_options(response.answer_options)

    selected = response.selected_choice
    try:
        choice = parse_choice(selected, answer_domain)
        if choice is not None:
            selected = choice.value
    except ValidationError:
        pass

    try:
        priority = parse_priority(response.priority)
    except ValidationError as e:
        priority = None
        issues.append(str(e))

    return ChecklistItem(
        response_id=response.id,
        section_id=response.section_id,
        section_number=response.section_number,
        section_name=response.section_name,
        reference_value=response.reference_value or "",
        title=response.title,
        weight=response.weight,
        answer_domain=answer_domain,
        selected_choice=selected,
        finding=response.finding,
        corrective_action=response.corrective_action,
        criterion=response.criterion,
        priority=priority,
        departments=split_departments(response.department),
        escalate=bool(response.escalate),
        has_picture=bool(response.has_picture) or bool(response.pictures),
        issues=tuple(issues),
    )


class SqlAuditStore(AuditStore):
    """Audit store over the SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def _get_audit(self, audit_id: int) -> Audit:
        audit = self.db.query(Audit).filter(Audit.id == audit_id).first()
        if not audit:
            raise NotFoundError("Audit", audit_id)
        return audit

    def get_header(self, audit_id: int) -> AuditHeader:
        audit = self._get_audit(audit_id)
        schema = audit.schema
        store = audit.store

        store_name = audit.store_name or (store.store_name if store else "")
        store_code = audit.store_code or (store.store_code if store else "")

        return AuditHeader(
            audit_id=audit.id,
            document_number=audit.document_number,
            store_id=audit.store_id,
            store_code=store_code,
            store_name=store_name,
            schema_id=audit.schema_id,
            schema_name=schema.schema_name if schema else "",
            report_title=(schema.report_title or schema.schema_name) if schema else "",
            audit_date=audit.audit_date,
            cycle=audit.cycle,
            year=audit.year,
            auditors=audit.auditors,
            status=AuditStatus(audit.status),
            created_at=audit.created_at,
            aggregation_strategy=AggregationStrategy(
                schema.aggregation_strategy if schema and schema.aggregation_strategy else AggregationStrategy.WEIGHTED
            ),
            accompanied_by=audit.accompanied_by,
            total_score=audit.total_score,
            completed_at=audit.completed_at,
            department_names=dict(schema.department_names or {}) if schema else {},
        )

    def get_items(self, audit_id: int) -> List[ChecklistItem]:
        self._get_audit(audit_id)
        responses = (
            self.db.query(AuditResponse)
            .filter(AuditResponse.audit_id == audit_id)
            .order_by(AuditResponse.section_number, AuditResponse.id)
            .all()
        )
        items = [item_from_response(response) for response in responses]
        flagged = [item for item in items if item.issues]
        if flagged:
            logger.warning(f"Audit {audit_id}: {len(flagged)} response(s) failed normalization")
        return items

    def get_section_snapshots(self, audit_id: int) -> List[SectionSnapshot]:
        rows = (
            self.db.query(AuditSectionScore)
            .filter(AuditSectionScore.audit_id == audit_id)
            .order_by(AuditSectionScore.section_number)
            .all()
        )
        return [snapshot_from_row(row) for row in rows]

    def list_completed_audits(
        self, store_id: int, schema_id: int, exclude_audit_id: Optional[int] = None
    ) -> List[HistoricalRecord]:
        query = self.db.query(Audit).filter(
            Audit.store_id == store_id,
            Audit.schema_id == schema_id,
            Audit.status == AuditStatus.COMPLETED,
        )
        if exclude_audit_id is not None:
            query = query.filter(Audit.id != exclude_audit_id)
        audits = query.order_by(Audit.audit_date.desc(), Audit.id.desc()).all()

        return [
            HistoricalRecord(
                audit_id=audit.id,
                document_number=audit.document_number,
                audit_date=audit.audit_date,
                cycle=audit.cycle,
                created_at=audit.created_at,
                total_score=audit.total_score,
                sections=tuple(snapshot_from_row(row) for row in audit.section_scores),
            )
            for audit in audits
        ]

    def get_categories(self, schema_id: int) -> List[CategoryDefinition]:
        categories = (
            self.db.query(AuditCategory)
            .filter(AuditCategory.schema_id == schema_id, AuditCategory.is_active.is_(True))
            .order_by(AuditCategory.display_order, AuditCategory.id)
            .all()
        )
        return [
            CategoryDefinition(
                category_id=category.id,
                name=category.category_name,
                display_order=category.display_order,
                section_numbers=tuple(
                    link.section.section_number for link in category.section_links if link.section is not None
                ),
            )
            for category in categories
        ]

    def get_failing_items(self, audit_ids: Iterable[int]) -> List[HistoricalItemResult]:
        audit_ids = list(audit_ids)
        if not audit_ids:
            return []
        rows = (
            self.db.query(AuditResponse, Audit)
            .join(Audit, AuditResponse.audit_id == Audit.id)
            .filter(AuditResponse.audit_id.in_(audit_ids), AuditResponse.selected_choice.isnot(None))
            .all()
        )
        results = []
        for response, audit in rows:
            try:
                choice = parse_choice(response.selected_choice, split_answer_options(response.answer_options))
            except ValidationError:
                continue
            if choice not in NON_COMPLIANT_CHOICES:
                continue
            results.append(HistoricalItemResult(
                audit_id=audit.id,
                document_number=audit.document_number,
                audit_date=audit.audit_date,
                reference_value=response.reference_value or "",
                title=response.title,
                choice=choice,
            ))
        return results
