"""Request context for ownership enforcement."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Request context carrying the caller's identity.

    Every document and session query is scoped to owner_id.
    """

    owner_id: str
