"""
Pass/fail threshold endpoints.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_threshold_provider
from app.core.auth import require_role
from app.core.errors import NotFoundError, ValidationError
from app.schemas.threshold import ThresholdResponse, ThresholdUpdate
from app.services.threshold_service import ThresholdConfigProvider, Thresholds

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(schema_id: int, thresholds: Thresholds) -> ThresholdResponse:
    return ThresholdResponse(
        schema_id=schema_id,
        overall=thresholds.overall,
        section=thresholds.section,
        category=thresholds.category,
        section_overrides=dict(thresholds.section_overrides),
        degraded=thresholds.degraded,
    )


# Static route before the {schema_id} routes
@router.delete("/cache", status_code=status.HTTP_204_NO_CONTENT)
def clear_threshold_cache(
    _client=Depends(require_role("admin")),
    provider: ThresholdConfigProvider = Depends(get_threshold_provider),
):
    """Drop every cached threshold."""
    provider.invalidate()
    logger.info("Threshold cache cleared")


@router.get("/{schema_id}", response_model=ThresholdResponse)
def get_thresholds(
    schema_id: int,
    _client=Depends(require_role("viewer")),
    provider: ThresholdConfigProvider = Depends(get_threshold_provider),
):
    """Current thresholds of a schema (cached)."""
    return _to_response(schema_id, provider.get_thresholds(schema_id))


@router.put("/{schema_id}", response_model=ThresholdResponse)
def update_thresholds(
    schema_id: int,
    payload: ThresholdUpdate,
    _client=Depends(require_role("admin")),
    provider: ThresholdConfigProvider = Depends(get_threshold_provider),
):
    """Replace the thresholds of a schema and invalidate its cache entry."""
    try:
        thresholds = provider.update_thresholds(
            schema_id,
            overall=payload.overall,
            section=payload.section,
            category=payload.category,
            section_overrides=payload.section_overrides,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return _to_response(schema_id, thresholds)
