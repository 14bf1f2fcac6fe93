"""
Authentication collaborator.

Resolves the requesting principal from identity headers set by the gateway
in front of the service. Deployments that verify tokens themselves override
get_current_principal through app.dependency_overrides.

Dependencies: fastapi, mediajobs.models.principal
System role: Principal resolution for job routes
"""

import logging

from fastapi import Depends, Header, HTTPException, status

from mediajobs.models.principal import ADMIN_ROLE, USER_ROLE, Principal

logger = logging.getLogger(__name__)

VALID_ROLES = (ADMIN_ROLE, USER_ROLE)


async def get_current_principal(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=USER_ROLE),
) -> Principal:
    """
    Build the principal from X-User-Id / X-User-Role.

    Raises:
        HTTPException: 401 if the id is missing or the role is unknown
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )

    role = (x_user_role or USER_ROLE).strip().lower()
    if role not in VALID_ROLES:
        logger.warning("Rejected unknown role", extra={"role": role})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-User-Role header",
        )

    return Principal(id=x_user_id.strip(), role=role)


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """
    Principal that must hold the admin role.

    Raises:
        HTTPException: 403 for non-admin principals
    """
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrative privileges required",
        )
    return principal
