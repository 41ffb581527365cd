"""Pass/fail threshold settings per schema."""
from sqlalchemy import Column, Integer, DateTime, Float, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.sql import func
import enum

from app.core.database import Base


class SettingType(str, enum.Enum):
    """Threshold scope."""
    OVERALL = "overall"
    SECTION = "section"
    CATEGORY = "category"


class SystemSetting(Base):
    """
    Passing grade for a schema.

    entity_id is NULL for the schema-wide value of a scope; for SECTION
    settings it may hold a section number to override that single section.
    """
    __tablename__ = "system_settings"
    __table_args__ = (
        UniqueConstraint("schema_id", "setting_type", "entity_id", name="uq_system_setting_scope"),
    )

    id = Column(Integer, primary_key=True, index=True)
    schema_id = Column(Integer, ForeignKey("audit_schemas.id", ondelete="CASCADE"), nullable=False, index=True)
    setting_type = Column(Enum(SettingType), nullable=False, index=True)
    entity_id = Column(Integer, nullable=True)
    passing_grade = Column(Float, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
