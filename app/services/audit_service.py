"""
Audit lifecycle: creation, response updates, completion and reopening.
"""
import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import AuditStateError, NotFoundError, ValidationError
from app.models.audit import Audit, AuditResponse, AuditSectionScore, AuditStatus
from app.models.audit_schema import AggregationStrategy, AuditSchema, SchemaSection, TemplateItem
from app.models.store import Store
from app.services.audit_aggregator import aggregate_audit
from app.services.audit_store import item_from_response, split_answer_options
from app.services.findings_service import parse_priority
from app.services.records import BlankChoicePolicy, split_departments
from app.services.score_calculator import parse_choice, score_choice
from app.services.section_aggregator import SectionScore, aggregate_section

logger = logging.getLogger(__name__)

DOCUMENT_NUMBER_ATTEMPTS = 3

ALLOWED_TRANSITIONS = {
    AuditStatus.DRAFT: {AuditStatus.IN_PROGRESS},
    AuditStatus.IN_PROGRESS: {AuditStatus.COMPLETED},
    AuditStatus.COMPLETED: {AuditStatus.REOPENED},
    AuditStatus.REOPENED: {AuditStatus.IN_PROGRESS, AuditStatus.COMPLETED},
}

EDITABLE_FIELDS = (
    "selected_choice",
    "finding",
    "comment",
    "corrective_action",
    "priority",
    "department",
    "escalate",
    "has_picture",
)


def configured_blank_policy() -> BlankChoicePolicy:
    try:
        return BlankChoicePolicy(settings.BLANK_CHOICE_POLICY)
    except ValueError:
        logger.warning(f"Unknown BLANK_CHOICE_POLICY '{settings.BLANK_CHOICE_POLICY}', using 'worst'")
        return BlankChoicePolicy.WORST


def format_document_number(prefix: str, sequence: int) -> str:
    return f"{prefix}-{sequence:04d}"


class AuditService:
    """Service for the audit lifecycle."""

    def __init__(self, db: Session):
        """
        Initialize audit service.

        Args:
            db: Database session
        """
        self.db = db

    def get_audit(self, audit_id: int) -> Audit:
        audit = self.db.query(Audit).filter(Audit.id == audit_id).first()
        if not audit:
            raise NotFoundError("Audit", audit_id)
        return audit

    def _transition(self, audit: Audit, target: AuditStatus) -> None:
        current = AuditStatus(audit.status)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise AuditStateError(
                f"Audit {audit.document_number} cannot move from {current.value} to {target.value}"
            )
        audit.status = target

    def next_document_number(self, prefix: str) -> str:
        """Next free document number for a prefix (PREFIX-0001, PREFIX-0002, ...)."""
        pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")
        highest = 0
        numbers = self.db.query(Audit.document_number).filter(Audit.document_number.like(f"{prefix}-%")).all()
        for (number,) in numbers:
            match = pattern.match(number or "")
            if match:
                highest = max(highest, int(match.group(1)))
        return format_document_number(prefix, highest + 1)

    def create_audit(
        self,
        store_id: int,
        schema_id: int,
        audit_date: date,
        cycle: str,
        auditors: str,
        year: Optional[int] = None,
        accompanied_by: Optional[str] = None,
        time_in: Optional[str] = None,
        time_out: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Audit:
        """
        Create a draft audit with the schema's active items cloned into it.

        Args:
            store_id: Audited store
            schema_id: Checklist schema
            audit_date: Date of the visit
            cycle: Cycle label, e.g. "C1"
            auditors: Auditor names

        Returns:
            The new Audit

        Raises:
            NotFoundError: Store or schema does not exist
            AuditStateError: No free document number after repeated collisions
        """
        store = self.db.query(Store).filter(Store.id == store_id).first()
        if not store:
            raise NotFoundError("Store", store_id)
        schema = self.db.query(AuditSchema).filter(AuditSchema.id == schema_id).first()
        if not schema:
            raise NotFoundError("Schema", schema_id)
        if not cycle or not cycle.strip():
            raise ValidationError("Cycle is required")

        prefix = (schema.document_prefix or settings.DEFAULT_DOCUMENT_PREFIX).strip()
        store_id, store_code, store_name, schema_id = store.id, store.store_code, store.store_name, schema.id
        for attempt in range(1, DOCUMENT_NUMBER_ATTEMPTS + 1):
            audit = Audit(
                document_number=self.next_document_number(prefix),
                store_id=store_id,
                schema_id=schema_id,
                store_code=store_code,
                store_name=store_name,
                audit_date=audit_date,
                time_in=time_in,
                time_out=time_out,
                cycle=cycle.strip(),
                year=year or audit_date.year,
                auditors=auditors,
                accompanied_by=accompanied_by,
                status=AuditStatus.DRAFT,
                created_by=created_by,
            )
            try:
                self.db.add(audit)
                self.db.flush()
                cloned = self._clone_items(audit, self._active_template_items(schema_id))
                self.db.commit()
                break
            except IntegrityError as e:
                self.db.rollback()
                logger.warning(
                    f"Document number {audit.document_number} taken concurrently "
                    f"(attempt {attempt}/{DOCUMENT_NUMBER_ATTEMPTS}): {e.orig}"
                )
        else:
            raise AuditStateError(f"Could not allocate a document number for prefix '{prefix}', retry the request")
        self.db.refresh(audit)

        logger.info(
            f"Created audit {audit.document_number} for store {store_code} "
            f"(schema {schema_id}, cycle {audit.cycle}, {cloned} items)"
        )
        return audit

    def _active_template_items(self, schema_id: int) -> List[TemplateItem]:
        return (
            self.db.query(TemplateItem)
            .join(SchemaSection, TemplateItem.section_id == SchemaSection.id)
            .filter(
                SchemaSection.schema_id == schema_id,
                SchemaSection.is_active.is_(True),
                TemplateItem.is_active.is_(True),
            )
            .order_by(SchemaSection.section_number, TemplateItem.sort_order, TemplateItem.id)
            .all()
        )

    def _clone_items(self, audit: Audit, template_items: List[TemplateItem]) -> int:
        for template in template_items:
            section = template.section
            self.db.add(AuditResponse(
                audit_id=audit.id,
                section_id=section.id,
                section_number=section.section_number,
                section_name=section.section_name,
                template_item_id=template.id,
                reference_value=template.reference_value,
                title=template.title,
                weight=template.weight,
                answer_options=template.answer_options,
                criterion=template.criterion,
            ))
        return len(template_items)

    def update_response(self, audit_id: int, response_id: int, changes: Dict[str, Any]) -> AuditResponse:
        """
        Save an auditor's answer and refresh the running scores.

        Args:
            audit_id: Audit ID
            response_id: Response ID within the audit
            changes: Subset of EDITABLE_FIELDS

        Returns:
            Updated AuditResponse

        Raises:
            NotFoundError: Audit or response does not exist
            AuditStateError: Audit is completed
            ValidationError: Choice outside the item's domain or unknown priority
        """
        audit = self.get_audit(audit_id)
        status = AuditStatus(audit.status)
        if status == AuditStatus.COMPLETED:
            raise AuditStateError(f"Audit {audit.document_number} is completed; reopen it before editing")

        response = (
            self.db.query(AuditResponse)
            .filter(AuditResponse.id == response_id, AuditResponse.audit_id == audit_id)
            .first()
        )
        if not response:
            raise NotFoundError("Response", response_id)

        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        if "selected_choice" in changes:
            choice = parse_choice(changes["selected_choice"], split_answer_options(response.answer_options))
            response.selected_choice = choice.value if choice else None
            response.value = None
            if choice is not None:
                try:
                    response.value = score_choice(choice, response.weight, configured_blank_policy())
                except ValidationError as e:
                    # answer is kept; the item is flagged when the section is aggregated
                    logger.warning(f"Response {response.id} ({response.reference_value}) has no value: {e}")
        if "priority" in changes:
            priority = parse_priority(changes["priority"])
            response.priority = priority.value if priority else None
        if "department" in changes:
            departments = split_departments(changes["department"])
            response.department = ", ".join(departments) if departments else None
        for key in ("finding", "comment", "corrective_action"):
            if key in changes:
                value = changes[key]
                setattr(response, key, value.strip() if isinstance(value, str) and value.strip() else None)
        for key in ("escalate", "has_picture"):
            if key in changes and changes[key] is not None:
                setattr(response, key, bool(changes[key]))

        if status in (AuditStatus.DRAFT, AuditStatus.REOPENED):
            self._transition(audit, AuditStatus.IN_PROGRESS)

        self.db.flush()
        self._recompute_section(audit, response.section_id)
        self._recompute_total(audit)
        self.db.commit()
        self.db.refresh(response)
        return response

    def _section_responses(self, audit_id: int, section_id: int) -> List[AuditResponse]:
        return (
            self.db.query(AuditResponse)
            .filter(AuditResponse.audit_id == audit_id, AuditResponse.section_id == section_id)
            .all()
        )

    def _recompute_section(self, audit: Audit, section_id: int) -> SectionScore:
        responses = self._section_responses(audit.id, section_id)
        items = [item_from_response(response) for response in responses]
        first = responses[0] if responses else None
        score = aggregate_section(
            items,
            section_id=section_id,
            section_number=first.section_number if first else None,
            section_name=first.section_name if first else None,
            blank_policy=configured_blank_policy(),
        )

        row = (
            self.db.query(AuditSectionScore)
            .filter(AuditSectionScore.audit_id == audit.id, AuditSectionScore.section_id == section_id)
            .first()
        )
        if row is None:
            row = AuditSectionScore(audit_id=audit.id, section_id=section_id)
            self.db.add(row)
        row.section_number = score.section_number
        row.section_name = score.section_name
        row.earned_score = score.earned_score
        row.max_score = score.max_score
        row.percentage = score.percentage
        row.total_questions = score.total_count
        row.answered_questions = score.answered_count
        row.na_questions = score.not_applicable_count
        row.invalid_questions = len(score.invalid_items)
        self.db.flush()
        return score

    def _recompute_total(self, audit: Audit) -> Optional[float]:
        rows = (
            self.db.query(AuditSectionScore)
            .filter(AuditSectionScore.audit_id == audit.id)
            .all()
        )
        strategy = AggregationStrategy.WEIGHTED
        if audit.schema is not None and audit.schema.aggregation_strategy:
            strategy = AggregationStrategy(audit.schema.aggregation_strategy)
        result = aggregate_audit(rows, strategy=strategy)
        audit.total_score = result.overall_percentage
        return audit.total_score

    def _recompute_all(self, audit: Audit) -> None:
        section_ids = {
            section_id for (section_id,) in
            self.db.query(AuditResponse.section_id).filter(AuditResponse.audit_id == audit.id).distinct().all()
        }
        for section_id in section_ids:
            self._recompute_section(audit, section_id)
        # Sections that no longer have items
        stale = (
            self.db.query(AuditSectionScore)
            .filter(AuditSectionScore.audit_id == audit.id)
            .all()
        )
        for row in stale:
            if row.section_id not in section_ids:
                self.db.delete(row)
        self.db.flush()
        self._recompute_total(audit)

    def complete_audit(self, audit_id: int) -> Audit:
        """
        Freeze the audit's section and overall scores.

        Raises:
            AuditStateError: Audit is a draft or already completed
        """
        audit = self.get_audit(audit_id)
        self._transition(audit, AuditStatus.COMPLETED)
        self._recompute_all(audit)
        audit.completed_at = datetime.now(timezone.utc)
        self.db.commit()
        self.db.refresh(audit)
        logger.info(f"Audit {audit.document_number} completed with total score {audit.total_score}")
        return audit

    def reopen_audit(self, audit_id: int, reason: str) -> Audit:
        """
        Reopen a completed audit for corrections.

        Raises:
            ValidationError: No reason given
            AuditStateError: Audit is not completed
        """
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to reopen an audit")
        audit = self.get_audit(audit_id)
        self._transition(audit, AuditStatus.REOPENED)
        audit.reopened_at = datetime.now(timezone.utc)
        audit.reopen_reason = reason.strip()
        self.db.commit()
        self.db.refresh(audit)
        logger.info(f"Audit {audit.document_number} reopened: {audit.reopen_reason}")
        return audit

    def sync_with_template(self, audit_id: int) -> int:
        """
        Add template items created after the audit was started.

        Returns:
            Number of items added
        """
        audit = self.get_audit(audit_id)
        if AuditStatus(audit.status) == AuditStatus.COMPLETED:
            raise AuditStateError(f"Audit {audit.document_number} is completed and cannot be synced")

        existing = {
            template_id for (template_id,) in
            self.db.query(AuditResponse.template_item_id).filter(AuditResponse.audit_id == audit.id).all()
            if template_id is not None
        }
        missing = [item for item in self._active_template_items(audit.schema_id) if item.id not in existing]
        if not missing:
            return 0

        added = self._clone_items(audit, missing)
        self.db.flush()
        for section_id in {item.section_id for item in missing}:
            self._recompute_section(audit, section_id)
        self._recompute_total(audit)
        self.db.commit()
        logger.info(f"Synced audit {audit.document_number} with template: {added} item(s) added")
        return added
