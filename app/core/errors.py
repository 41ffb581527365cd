"""
Exception types raised by the scoring and report engine.

Endpoints translate these into HTTP status codes:
NotFoundError -> 404, ValidationError -> 422, AuditStateError -> 409.
PartialDataError and ExternalFetchError are normally absorbed by the
component that raised them and surface only as report warnings.
"""
from typing import Optional


class AuditEngineError(Exception):
    """Base class for engine errors."""


class NotFoundError(AuditEngineError):
    """A required audit, schema, store or response does not exist."""

    def __init__(self, entity: str, identifier):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}")


class PartialDataError(AuditEngineError):
    """Optional data (e.g. a historical cycle) is missing."""


class ExternalFetchError(AuditEngineError):
    """A configuration or evidence fetch failed."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        super().__init__(message)


class ValidationError(AuditEngineError):
    """A checklist item carries a malformed choice, priority or weight."""

    def __init__(self, message: str, reference_value: Optional[str] = None):
        self.reference_value = reference_value
        super().__init__(message)


class AuditStateError(AuditEngineError):
    """The requested operation is not allowed in the audit's current status."""
