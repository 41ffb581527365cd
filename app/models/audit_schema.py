"""
Audit schema (checklist template) models.

A schema owns its ordered sections, each section owns its template items.
Items are cloned into AuditResponse rows when an audit is created.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Float, JSON, ForeignKey, Enum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base


class AggregationStrategy(str, enum.Enum):
    """How section results roll up into the overall audit score."""
    WEIGHTED = "weighted"  # global earned / max across all items
    SECTION_AVERAGE = "section_average"  # mean of section percentages


class AuditSchema(Base):
    """Checklist schema for a class of audits."""
    __tablename__ = "audit_schemas"

    id = Column(Integer, primary_key=True, index=True)
    schema_name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    report_title = Column(String(255), nullable=True)
    document_prefix = Column(String(50), nullable=True)
    aggregation_strategy = Column(
        Enum(AggregationStrategy), nullable=False, default=AggregationStrategy.WEIGHTED
    )
    # Custom department display names, e.g. {"Maintenance": "Technical Services"}
    department_names = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    sections = relationship(
        "SchemaSection",
        back_populates="schema",
        cascade="all, delete-orphan",
        order_by="SchemaSection.section_number",
    )


class SchemaSection(Base):
    """Section of a checklist schema."""
    __tablename__ = "audit_sections"

    id = Column(Integer, primary_key=True, index=True)
    schema_id = Column(Integer, ForeignKey("audit_schemas.id", ondelete="CASCADE"), nullable=False, index=True)
    section_number = Column(Integer, nullable=False)
    section_name = Column(String(200), nullable=False)
    section_icon = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    schema = relationship("AuditSchema", back_populates="sections")
    items = relationship(
        "TemplateItem",
        back_populates="section",
        cascade="all, delete-orphan",
        order_by="TemplateItem.sort_order",
    )


class TemplateItem(Base):
    """Master checklist question."""
    __tablename__ = "audit_template_items"

    id = Column(Integer, primary_key=True, index=True)
    section_id = Column(Integer, ForeignKey("audit_sections.id", ondelete="CASCADE"), nullable=False, index=True)
    reference_value = Column(String(50), nullable=False)
    title = Column(String(1000), nullable=False)
    weight = Column(Float, nullable=False, default=2.0)
    answer_options = Column(String(200), nullable=False, default="Yes,Partially,No,NA")
    criterion = Column(Text, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    section = relationship("SchemaSection", back_populates="items")
