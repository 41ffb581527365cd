"""Schemas for pass/fail threshold settings."""
from typing import Dict

from pydantic import BaseModel, Field


class ThresholdUpdate(BaseModel):
    """New passing grades for a schema (percent)."""
    overall: float = Field(..., ge=0, le=100)
    section: float = Field(..., ge=0, le=100)
    category: float = Field(..., ge=0, le=100)
    # section number -> passing grade
    section_overrides: Dict[int, float] = Field(default_factory=dict)


class ThresholdResponse(BaseModel):
    schema_id: int
    overall: float
    section: float
    category: float
    section_overrides: Dict[int, float] = Field(default_factory=dict)
    degraded: bool = False
