"""
Report assembly.

Builds the report document model for an audit from the scoring, findings,
history and evidence components. Missing history and failed evidence never
abort a report; they are reported in `warnings`.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from app.models.audit import AuditStatus
from app.schemas.report import (
    ActionPlanResponse,
    ActionPlanSummaryOut,
    CategoryReport,
    DepartmentReportResponse,
    EvidenceImageOut,
    FindingOut,
    InvalidItemOut,
    ReportDocument,
    ReportHeader,
    SectionReport,
    ThresholdsOut,
    TrendRowOut,
)
from app.services.audit_aggregator import aggregate_audit, aggregate_categories, verdict_for
from app.services.audit_service import configured_blank_policy
from app.services.audit_store import AuditStore
from app.services.evidence_service import EvidenceAttachmentResolver, EvidenceResult, EvidenceStore
from app.services.findings_service import Finding, extract_findings, filter_by_department, summarize
from app.services.history_service import HistoricalTrendResolver, Unavailable
from app.services.records import AuditHeader
from app.services.section_aggregator import aggregate_sections
from app.services.threshold_service import ThresholdConfigProvider, Thresholds

logger = logging.getLogger(__name__)


def _finding_out(
    finding: Finding,
    repeat_counts: Optional[Dict[str, int]] = None,
    evidence: Optional[EvidenceResult] = None,
) -> FindingOut:
    images = evidence.for_response(finding.response_id) if evidence else []
    return FindingOut(
        response_id=finding.response_id,
        section_number=finding.section_number,
        section_name=finding.section_name,
        reference_value=finding.reference_value,
        title=finding.title,
        selected_choice=finding.selected_choice.value if finding.selected_choice else None,
        finding=finding.finding,
        corrective_action=finding.corrective_action,
        priority=finding.priority.value if finding.priority else None,
        has_picture=finding.has_picture,
        escalate=finding.escalate,
        departments=list(finding.departments),
        repeat_count=(repeat_counts or {}).get(finding.reference_value, 0),
        evidence=[
            EvidenceImageOut(
                picture_id=image.picture_id,
                tag=image.tag.value,
                content_type=image.content_type,
                file_name=image.file_name,
                data_url=image.data_url,
            )
            for image in images
        ],
    )


def _summary_out(findings: Iterable[Finding]) -> ActionPlanSummaryOut:
    summary = summarize(findings)
    return ActionPlanSummaryOut(
        total=summary.total,
        high=summary.high,
        medium=summary.medium,
        low=summary.low,
        unset=summary.unset,
        escalated=summary.escalated,
    )


def _header_out(header: AuditHeader) -> ReportHeader:
    return ReportHeader(
        audit_id=header.audit_id,
        document_number=header.document_number,
        store_id=header.store_id,
        store_code=header.store_code,
        store_name=header.store_name,
        schema_id=header.schema_id,
        schema_name=header.schema_name,
        report_title=header.report_title,
        audit_date=header.audit_date,
        cycle=header.cycle,
        year=header.year,
        auditors=header.auditors,
        accompanied_by=header.accompanied_by,
        status=header.status.value,
        completed_at=header.completed_at,
    )


def department_display_name(header: AuditHeader, department: str) -> str:
    wanted = department.strip().lower()
    for key, display in header.department_names.items():
        if key.strip().lower() == wanted and display:
            return display
    return department.strip()


class ReportService:
    """Service for building audit reports."""

    def __init__(
        self,
        audit_store: AuditStore,
        threshold_provider: ThresholdConfigProvider,
        evidence_store: Optional[EvidenceStore] = None,
    ):
        """
        Initialize report service.

        Args:
            audit_store: Source of audit records
            threshold_provider: Pass/fail thresholds
            evidence_store: Source of evidence images (no evidence when omitted)
        """
        self.audit_store = audit_store
        self.threshold_provider = threshold_provider
        self.evidence_store = evidence_store

    def _attach_evidence(self, findings: Sequence[Finding], warnings: List[str]) -> Optional[EvidenceResult]:
        if self.evidence_store is None:
            return None
        response_ids = [finding.response_id for finding in findings if finding.has_picture]
        result = EvidenceAttachmentResolver(self.evidence_store).resolve(response_ids)
        if result.failed:
            warnings.append(f"{result.failed} evidence image(s) could not be retrieved")
        return result

    def build_report(
        self,
        audit_id: int,
        cycles: Optional[Sequence[str]] = None,
        include_evidence: bool = True,
        excluded_sections: Iterable[int] = (),
    ) -> ReportDocument:
        """
        Build the report document for an audit.

        Args:
            audit_id: Audit ID
            cycles: Cycle labels for the trend table (TREND_CYCLES by default)
            include_evidence: Attach evidence images to findings
            excluded_sections: Section numbers left out of the overall score

        Returns:
            ReportDocument

        Raises:
            NotFoundError: Audit does not exist
        """
        header = self.audit_store.get_header(audit_id)
        items = self.audit_store.get_items(audit_id)
        thresholds: Thresholds = self.threshold_provider.get_thresholds(header.schema_id)
        excluded_sections = list(excluded_sections)
        warnings: List[str] = []

        if thresholds.degraded:
            warnings.append("Thresholds could not be loaded; default thresholds applied")

        live_sections = aggregate_sections(items, blank_policy=configured_blank_policy())
        live_by_number = {section.section_number: section for section in live_sections}

        completed = header.status == AuditStatus.COMPLETED
        score_sources = live_sections
        if completed:
            snapshots = self.audit_store.get_section_snapshots(audit_id)
            if snapshots:
                score_sources = snapshots
            else:
                logger.warning(f"Completed audit {header.document_number} has no score snapshot; computing live")
                warnings.append("Completed audit has no frozen scores; scores computed from current answers")

        audit_score = aggregate_audit(
            score_sources,
            thresholds=thresholds,
            strategy=header.aggregation_strategy,
            excluded_section_numbers=excluded_sections,
        )
        overall = audit_score.overall_percentage
        if completed and header.total_score is not None and not excluded_sections:
            overall = header.total_score

        sections_out = []
        for result in audit_score.sections:
            live = live_by_number.get(result.section_number)
            invalid = list(live.invalid_items) if live else []
            for item in invalid:
                warnings.append(
                    f"Item {item.reference_value or item.response_id} in section {result.section_number} "
                    f"excluded from scoring: {item.reason}"
                )
            sections_out.append(SectionReport(
                section_number=result.section_number,
                section_name=result.section_name,
                earned_score=result.earned_score,
                max_score=result.max_score,
                percentage=result.percentage,
                threshold=result.threshold,
                verdict=result.verdict.value,
                total_count=live.total_count if live else 0,
                answered_count=live.answered_count if live else 0,
                not_applicable_count=live.not_applicable_count if live else 0,
                invalid_items=[
                    InvalidItemOut(response_id=i.response_id, reference_value=i.reference_value, reason=i.reason)
                    for i in invalid
                ],
            ))

        categories = aggregate_categories(
            self.audit_store.get_categories(header.schema_id), score_sources, thresholds
        )

        history = HistoricalTrendResolver(
            self.audit_store, header.store_id, header.schema_id, header.audit_id, cycles=cycles
        )
        trend = history.trend_table(score_sources)
        missing = history.missing_cycles()
        if missing:
            logger.info(f"Report {header.document_number}: no history for cycle(s) {', '.join(missing)}")
            warnings.append(f"No completed audit found for cycle(s): {', '.join(missing)}")
        repeat_counts = history.repeat_findings()

        findings = extract_findings(items)
        evidence = self._attach_evidence(findings, warnings) if include_evidence else None

        return ReportDocument(
            header=_header_out(header),
            thresholds=ThresholdsOut(
                overall=thresholds.overall,
                section=thresholds.section,
                category=thresholds.category,
                section_overrides=dict(thresholds.section_overrides),
                degraded=thresholds.degraded,
            ),
            strategy=audit_score.strategy.value,
            overall_percentage=overall,
            overall_verdict=verdict_for(overall, thresholds.overall).value,
            sections=sections_out,
            categories=[
                CategoryReport(
                    category_id=category.category_id,
                    name=category.name,
                    section_numbers=list(category.section_numbers),
                    earned_score=category.earned_score,
                    max_score=category.max_score,
                    percentage=category.percentage,
                    threshold=category.threshold,
                    verdict=category.verdict.value,
                )
                for category in categories
            ],
            findings=[_finding_out(finding, repeat_counts, evidence) for finding in findings],
            action_plan_summary=_summary_out(findings),
            trend_cycles=list(history.cycles),
            trend=[
                TrendRowOut(
                    key=row.key,
                    label=row.label,
                    section_number=row.section_number,
                    values={
                        cycle: value.value if isinstance(value, Unavailable) else value
                        for cycle, value in row.values.items()
                    },
                )
                for row in trend
            ],
            evidence_failures=evidence.failed if evidence else 0,
            warnings=warnings,
            generated_at=datetime.now(timezone.utc),
        )

    def build_action_plan(self, audit_id: int, department: Optional[str] = None) -> ActionPlanResponse:
        """
        Sorted findings of an audit, optionally limited to one department.

        Raises:
            NotFoundError: Audit does not exist
        """
        header = self.audit_store.get_header(audit_id)
        findings = extract_findings(self.audit_store.get_items(audit_id))
        if department:
            findings = filter_by_department(findings, department)
        return ActionPlanResponse(
            audit_id=header.audit_id,
            document_number=header.document_number,
            department=department,
            findings=[_finding_out(finding) for finding in findings],
            summary=_summary_out(findings),
        )

    def build_department_report(
        self, audit_id: int, department: str, include_evidence: bool = True
    ) -> DepartmentReportResponse:
        """
        Escalated findings of one department, with evidence.

        Raises:
            NotFoundError: Audit does not exist
        """
        header = self.audit_store.get_header(audit_id)
        findings = filter_by_department(
            extract_findings(self.audit_store.get_items(audit_id)), department, escalated_only=True
        )
        warnings: List[str] = []
        evidence = self._attach_evidence(findings, warnings) if include_evidence else None
        return DepartmentReportResponse(
            audit_id=header.audit_id,
            document_number=header.document_number,
            store_name=header.store_name,
            department=department,
            department_display_name=department_display_name(header, department),
            findings=[_finding_out(finding, evidence=evidence) for finding in findings],
            summary=_summary_out(findings),
            evidence_failures=evidence.failed if evidence else 0,
            warnings=warnings,
        )
