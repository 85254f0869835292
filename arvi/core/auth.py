"""
Caller identity for the API.

Authentication and session issuance happen upstream; this service trusts the
X-User-Id header set by the gateway in front of it.
"""
from typing import Optional

from fastapi import Header

from arvi.core.errors import AuthorizationError
from arvi.core.logging import bind_user_id


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, description="Authenticated user ID set by the upstream gateway"),
) -> str:
    """Return the caller's user id or raise 401."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise AuthorizationError("Missing X-User-Id header", code="unauthenticated", status_code=401)
    bind_user_id(user_id)
    return user_id
