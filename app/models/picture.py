"""Evidence picture database model."""
from sqlalchemy import Column, Integer, String, DateTime, LargeBinary, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.core.database import Base


class AuditPicture(Base):
    """
    Picture attached to an audit response.

    Content lives either inline in file_data or in a file referenced by
    file_path (relative to EVIDENCE_DIR, or to EVIDENCE_BASE_URL for the
    HTTP evidence store). picture_type is stored as entered by the client
    ("Finding", "issue", "Corrective", "Good", ...) and normalized when read.
    """
    __tablename__ = "audit_pictures"

    id = Column(Integer, primary_key=True, index=True)
    response_id = Column(Integer, ForeignKey("audit_responses.id", ondelete="CASCADE"), nullable=False, index=True)
    audit_id = Column(Integer, ForeignKey("audits.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name = Column(String(255), nullable=True)
    content_type = Column(String(100), nullable=True)
    picture_type = Column(String(50), nullable=True)
    file_data = Column(LargeBinary, nullable=True)
    file_path = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    response = relationship("AuditResponse", back_populates="pictures")
