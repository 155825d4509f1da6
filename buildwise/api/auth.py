"""Role gating for the BuildWise REST API.

Tokens are verified upstream by the JWT gateway, which forwards the caller as
two headers:

    X-User-Id:   opaque user id, recorded as the actor on audits and snapshots
    X-User-Role: admin | teacher | student

``require_role(*roles)`` builds a FastAPI dependency that:
1. Returns 401 if either header is absent.
2. Returns 403 if the role is not one of ``roles``.
3. Returns the :class:`Actor` for downstream use.

Tests substitute headers directly; no dependency override is needed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

# auto_error=False so a missing header becomes our 401 rather than FastAPI's 403.
USER_ID_HEADER = APIKeyHeader(name="X-User-Id", auto_error=False)
USER_ROLE_HEADER = APIKeyHeader(name="X-User-Role", auto_error=False)

REVIEWER_ROLES = ("admin", "teacher")


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str


def require_role(*roles: str) -> Callable[..., Actor]:
    """Return a dependency admitting only callers whose role is in ``roles``.

    With no roles given, any authenticated caller is admitted.
    """
    allowed = frozenset(roles)

    async def dependency(
        user_id: str | None = Security(USER_ID_HEADER),
        role: str | None = Security(USER_ROLE_HEADER),
    ) -> Actor:
        if not user_id or not role:
            raise HTTPException(status_code=401, detail="Authentication required")
        if allowed and role not in allowed:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{role}' is not permitted for this operation",
            )
        return Actor(user_id=user_id, role=role)

    return dependency


require_reviewer = require_role(*REVIEWER_ROLES)
require_user = require_role()
