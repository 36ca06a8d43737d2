from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Optional

__all__ = ["KeySource", "UsageRecord"]


class KeySource(StrEnum):
    """Who pays for the call: the caller's own key or the platform's."""
    USER = "user"
    PLATFORM = "platform"


@dataclass(frozen=True, slots=True)
class UsageRecord:
    """Normalized token/cost accounting for one call (or one stream)."""

    input_tokens: int = 0
    output_tokens: int = 0
    cached_read_tokens: int = 0
    cached_write_tokens: int = 0
    reasoning_tokens: int = 0
    # flat cost for per-call priced tools; token fields may then be zero
    cost: Optional[float] = None
    key_source: KeySource = KeySource.PLATFORM
    agent_id: Optional[str] = None
    team_id: Optional[str] = None
    source_id: Optional[str] = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens + self.cached_read_tokens + self.cached_write_tokens
