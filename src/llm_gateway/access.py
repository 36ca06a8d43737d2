"""
Access-control seam.

Authorization is decided by an external collaborator; the gateway only calls
through it before every entry point.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Awaitable, Optional, Protocol, Union

from llm_gateway.errors import AccessDenied

__all__ = ["CandidateRole", "AccessCandidate", "Authorizer", "AllowAll", "guard"]

logger = logging.getLogger(__name__)


class CandidateRole(StrEnum):
    AGENT = "agent"
    USER = "user"
    TEAM = "team"


@dataclass(frozen=True, slots=True)
class AccessCandidate:
    """The principal a call is made on behalf of."""

    role: CandidateRole
    id: str
    team_id: Optional[str] = None

    @classmethod
    def agent(cls, agent_id: str, team_id: Optional[str] = None) -> "AccessCandidate":
        return cls(CandidateRole.AGENT, agent_id, team_id)

    @classmethod
    def user(cls, user_id: str, team_id: Optional[str] = None) -> "AccessCandidate":
        return cls(CandidateRole.USER, user_id, team_id)

    @property
    def agent_id(self) -> Optional[str]:
        return self.id if self.role is CandidateRole.AGENT else None


class Authorizer(Protocol):
    def authorize(
        self, candidate: AccessCandidate, action: str, resource_id: str
    ) -> Union[bool, Awaitable[bool]]:
        """Return True to allow the action."""
        ...


class AllowAll:
    """Authorizer that allows everything; the default for standalone use."""

    def authorize(self, candidate: AccessCandidate, action: str, resource_id: str) -> bool:
        return True


async def guard(
    authorizer: Authorizer,
    candidate: AccessCandidate,
    action: str,
    resource_id: str,
) -> None:
    """Raise AccessDenied unless the authorizer allows the action."""
    decision = authorizer.authorize(candidate, action, resource_id)
    if inspect.isawaitable(decision):
        decision = await decision
    if not decision:
        logger.info("Denied %s on %s for %s:%s", action, resource_id, candidate.role, candidate.id)
        raise AccessDenied(candidate.id, action, resource_id)
