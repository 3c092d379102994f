"""
Caller identity.

Session validation happens upstream; by the time a request reaches this
service the gateway has put the authenticated user (and, when the user
belongs to one, their organization) in request headers.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, status


@dataclass(frozen=True)
class OwnerScope:
    """The caller: their own private documents plus their organization's shared ones."""
    user_id: str
    organization_id: Optional[str] = None


async def get_owner_scope(
    x_user_id: Optional[str] = Header(None),
    x_organization_id: Optional[str] = Header(None),
) -> OwnerScope:
    """
    Build the owner scope from ``X-User-Id`` / ``X-Organization-Id``.

    Raises:
        HTTPException: 401 if no user is present
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    org_id = (x_organization_id or "").strip() or None
    return OwnerScope(user_id=user_id, organization_id=org_id)
