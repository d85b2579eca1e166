"""Minimal auth dependency.

Stub implementation that extracts the owner id from a bearer token or uses a
default for local development. Real token validation belongs to the identity
provider in front of the API.
"""

import re
from typing import Annotated

from fastapi import Header, HTTPException, status

from backend.app.db.context import RequestContext

DEFAULT_OWNER_ID = "anonymous"

# Owner ids become storage key segments, so "/" and whitespace are rejected
_OWNER_ID_RE = re.compile(r"^[A-Za-z0-9._@:-]{1,128}$")


async def get_current_context(
    authorization: Annotated[str | None, Header()] = None,
) -> RequestContext:
    """Extract request context from authorization header.

    Accepts "Bearer <owner_id>"; with no header the default owner is used.

    Args:
        authorization: Authorization header (e.g., "Bearer u1")

    Returns:
        RequestContext with owner_id

    Raises:
        HTTPException: If authorization is invalid
    """
    if not authorization:
        return RequestContext(owner_id=DEFAULT_OWNER_ID)

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization[7:].strip()  # Strip "Bearer "

    if not _OWNER_ID_RE.match(token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid bearer token (expected owner id)",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return RequestContext(owner_id=token)
