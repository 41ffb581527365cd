"""Database models."""
from app.models.store import Store
from app.models.audit_schema import AuditSchema, SchemaSection, TemplateItem, AggregationStrategy
from app.models.category import AuditCategory, CategorySection
from app.models.audit import Audit, AuditResponse, AuditSectionScore, AuditStatus
from app.models.picture import AuditPicture
from app.models.system_setting import SystemSetting, SettingType

__all__ = [
    "Store",
    "AuditSchema",
    "SchemaSection",
    "TemplateItem",
    "AggregationStrategy",
    "AuditCategory",
    "CategorySection",
    "Audit",
    "AuditResponse",
    "AuditSectionScore",
    "AuditStatus",
    "AuditPicture",
    "SystemSetting",
    "SettingType",
]
