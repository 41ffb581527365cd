"""
Role definitions for RBAC.

Roles in hierarchy (lowest to highest):
- viewer: Read reports, action plans and thresholds
- auditor: Create audits, record answers, complete and reopen audits
- admin: Change thresholds and manage the threshold cache
"""
from enum import Enum
from typing import Dict, Set


class Role(str, Enum):
    """User roles with hierarchy."""
    VIEWER = "viewer"
    AUDITOR = "auditor"
    ADMIN = "admin"


ROLE_HIERARCHY: Dict[str, int] = {
    Role.VIEWER: 1,
    Role.AUDITOR: 2,
    Role.ADMIN: 3,
}

# Labels used by the checklist front-end
ROLE_ALIASES: Dict[str, str] = {
    "read_only": Role.VIEWER,
    "supervisor": Role.AUDITOR,
}

VALID_ROLES: Set[str] = {r.value for r in Role}


def normalize_role(role: str) -> str:
    """
    Normalize role string, handling aliases.

    Unknown roles are treated as viewer.
    """
    role_lower = role.lower().strip()

    if role_lower in ROLE_ALIASES:
        return ROLE_ALIASES[role_lower].value

    if role_lower in VALID_ROLES:
        return role_lower

    return Role.VIEWER.value


def has_permission(user_role: str, required_role: str) -> bool:
    """
    Check if user role has permission for required role.

    Args:
        user_role: User's role
        required_role: Minimum required role

    Returns:
        True if user has sufficient permissions
    """
    user_level = ROLE_HIERARCHY.get(normalize_role(user_role), 0)
    required_level = ROLE_HIERARCHY.get(normalize_role(required_role), 0)
    return user_level >= required_level
