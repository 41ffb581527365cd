"""Category models (named groups of schema sections scored together)."""
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from app.core.database import Base


class AuditCategory(Base):
    """Category of sections within a schema."""
    __tablename__ = "audit_categories"

    id = Column(Integer, primary_key=True, index=True)
    schema_id = Column(Integer, ForeignKey("audit_schemas.id", ondelete="CASCADE"), nullable=False, index=True)
    category_name = Column(String(200), nullable=False)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    section_links = relationship(
        "CategorySection",
        back_populates="category",
        cascade="all, delete-orphan",
        order_by="CategorySection.display_order",
    )


class CategorySection(Base):
    """Membership of a schema section in a category."""
    __tablename__ = "category_sections"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("audit_categories.id", ondelete="CASCADE"), nullable=False, index=True)
    section_id = Column(Integer, ForeignKey("audit_sections.id", ondelete="CASCADE"), nullable=False, index=True)
    display_order = Column(Integer, nullable=False, default=0)

    category = relationship("AuditCategory", back_populates="section_links")
    section = relationship("SchemaSection")
