"""
API key authentication and RBAC for protected endpoints.
"""
import logging
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from app.core.config import settings
from app.core.roles import Role, has_permission, normalize_role

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


class APIClient:
    """Simple object representing an authenticated API client."""
    def __init__(self, source: str, role: str):
        self.source = source  # "static" or "anonymous"
        self.role = normalize_role(role)


def get_current_api_client(api_key: Optional[str] = Security(api_key_header)) -> APIClient:
    """
    Dependency to verify the API key and return the API client.

    If settings.API_KEY is not set, authentication is disabled and every
    caller is treated as admin (local development and tests).

    Raises:
        HTTPException: If API key is missing or invalid
    """
    if not settings.is_api_key_configured():
        logger.debug("API_KEY not configured - authentication is disabled")
        return APIClient(source="anonymous", role=Role.ADMIN.value)

    if not api_key:
        logger.warning("API key missing from request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    static_keys = (
        (settings.API_KEY, Role.ADMIN),
        (settings.AUDITOR_API_KEY, Role.AUDITOR),
        (settings.VIEWER_API_KEY, Role.VIEWER),
    )
    for key, role in static_keys:
        if key and secrets.compare_digest(api_key, key):
            logger.debug(f"Authenticated with static API key (role: {role.value})")
            return APIClient(source="static", role=role.value)

    logger.warning(f"Invalid API key attempted: {api_key[:4]}...")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid API key",
        headers={"WWW-Authenticate": "ApiKey"},
    )


def require_role(min_role: str = "viewer"):
    """
    Dependency factory for role-based access control.

    Args:
        min_role: Minimum required role (viewer, auditor, admin)

    Returns:
        Dependency function that checks role permissions
    """
    def check_role(client: APIClient = Depends(get_current_api_client)) -> APIClient:
        if not has_permission(client.role, min_role):
            normalized_min = normalize_role(min_role)
            logger.warning(
                f"Access denied: client role '{client.role}' does not meet minimum requirement '{normalized_min}'"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required role: {normalized_min}",
            )
        return client

    return check_role
