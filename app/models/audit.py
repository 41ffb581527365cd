"""Audit instance, response and section score snapshot models."""
from sqlalchemy import Column, Integer, String, DateTime, Date, Text, Boolean, Float, ForeignKey, Enum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship, validates
import enum

from app.core.database import Base


class AuditStatus(str, enum.Enum):
    """Audit lifecycle status."""
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REOPENED = "reopened"


class Audit(Base):
    """One audit event for a store against a schema."""
    __tablename__ = "audits"

    id = Column(Integer, primary_key=True, index=True)
    document_number = Column(String(50), nullable=False, unique=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    schema_id = Column(Integer, ForeignKey("audit_schemas.id"), nullable=False, index=True)

    # Store identity as it was when the audit was created
    store_code = Column(String(50), nullable=False)
    store_name = Column(String(200), nullable=False)

    audit_date = Column(Date, nullable=False, index=True)
    time_in = Column(String(10), nullable=True)
    time_out = Column(String(10), nullable=True)
    cycle = Column(String(50), nullable=False, index=True)  # C1..C6, possibly with a suffix
    year = Column(Integer, nullable=False)
    auditors = Column(String(500), nullable=False)
    accompanied_by = Column(String(500), nullable=True)

    status = Column(Enum(AuditStatus), nullable=False, default=AuditStatus.DRAFT, index=True)
    total_score = Column(Float, nullable=True)

    created_by = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    reopened_at = Column(DateTime(timezone=True), nullable=True)
    reopen_reason = Column(Text, nullable=True)

    store = relationship("Store")
    schema = relationship("AuditSchema")
    responses = relationship("AuditResponse", back_populates="audit", cascade="all, delete-orphan")
    section_scores = relationship(
        "AuditSectionScore",
        back_populates="audit",
        cascade="all, delete-orphan",
        order_by="AuditSectionScore.section_number",
    )

    @validates("document_number")
    def validate_document_number(self, key, value):
        """Document numbers are assigned once and never change."""
        if self.document_number is not None and value != self.document_number:
            raise ValueError(
                f"Document number is immutable: {self.document_number} cannot become {value}"
            )
        return value


class AuditResponse(Base):
    """Checklist item cloned into an audit, with the auditor's answer."""
    __tablename__ = "audit_responses"

    id = Column(Integer, primary_key=True, index=True)
    audit_id = Column(Integer, ForeignKey("audits.id", ondelete="CASCADE"), nullable=False, index=True)
    section_id = Column(Integer, ForeignKey("audit_sections.id"), nullable=False, index=True)
    section_number = Column(Integer, nullable=False)
    section_name = Column(String(200), nullable=False)
    template_item_id = Column(Integer, ForeignKey("audit_template_items.id"), nullable=True, index=True)

    reference_value = Column(String(50), nullable=True)
    title = Column(String(1000), nullable=False)
    weight = Column(Float, nullable=False, default=2.0)
    answer_options = Column(String(200), nullable=True)  # e.g. "Yes,Partially,No,NA"
    criterion = Column(Text, nullable=True)

    selected_choice = Column(String(20), nullable=True)
    value = Column(Float, nullable=True)  # NULL until answered, and for NA
    finding = Column(Text, nullable=True)
    comment = Column(Text, nullable=True)
    corrective_action = Column(Text, nullable=True)
    priority = Column(String(20), nullable=True)  # High, Medium, Low
    has_picture = Column(Boolean, default=False, nullable=False)
    escalate = Column(Boolean, default=False, nullable=False)
    department = Column(String(200), nullable=True)  # comma-separated list
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    audit = relationship("Audit", back_populates="responses")
    pictures = relationship("AuditPicture", back_populates="response", cascade="all, delete-orphan")


class AuditSectionScore(Base):
    """Memoized section score; frozen once the audit is completed."""
    __tablename__ = "audit_section_scores"

    id = Column(Integer, primary_key=True, index=True)
    audit_id = Column(Integer, ForeignKey("audits.id", ondelete="CASCADE"), nullable=False, index=True)
    section_id = Column(Integer, ForeignKey("audit_sections.id"), nullable=False)
    section_number = Column(Integer, nullable=False)
    section_name = Column(String(200), nullable=False)
    earned_score = Column(Float, nullable=False, default=0.0)
    max_score = Column(Float, nullable=False, default=0.0)
    percentage = Column(Float, nullable=True)  # NULL when every item is not applicable
    total_questions = Column(Integer, nullable=False, default=0)
    answered_questions = Column(Integer, nullable=False, default=0)
    na_questions = Column(Integer, nullable=False, default=0)
    invalid_questions = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    audit = relationship("Audit", back_populates="section_scores")
