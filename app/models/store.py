"""Store database model."""
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.sql import func

from app.core.database import Base


class Store(Base):
    """A store (restaurant/outlet) that is audited."""
    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, index=True)
    store_code = Column(String(50), nullable=False, unique=True, index=True)
    store_name = Column(String(200), nullable=False)
    brand = Column(String(100), nullable=True, index=True)
    location = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
