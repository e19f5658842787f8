"""Per-session budget state, usage records and pre-flight checks."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from chuk_context_budget.config import (
    DEFAULT_SESSION_COST_CEILING,
    DEFAULT_SESSION_TOKEN_CEILING,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionBudgetConfig(BaseModel):
    """Ceilings configured for a session by the data layer."""

    ceiling_tokens: int = Field(default=DEFAULT_SESSION_TOKEN_CEILING, gt=0)
    ceiling_cost: float | None = Field(default=DEFAULT_SESSION_COST_CEILING, gt=0)


class BudgetState(BaseModel):
    """
    Cumulative usage for one session.

    Owned by the BudgetTracker; callers only ever receive copies.
    ``cumulative_tokens`` and ``cumulative_cost`` only grow, except on reset.
    """

    session_id: str
    cumulative_tokens: int = Field(default=0, ge=0)
    cumulative_cost: float = Field(default=0.0, ge=0)
    budget_ceiling_tokens: int = Field(default=DEFAULT_SESSION_TOKEN_CEILING, gt=0)
    budget_ceiling_cost: float | None = Field(default=None)
    calls_recorded: int = Field(default=0, ge=0)
    version: int = Field(default=0, ge=0, description="Bumped on every update; stores keep the highest")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def consumed_fraction(self) -> float:
        """Token usage over the ceiling, clamped to [0, 1]."""
        return min(1.0, self.cumulative_tokens / self.budget_ceiling_tokens)

    @property
    def cost_fraction(self) -> float | None:
        if not self.budget_ceiling_cost:
            return None
        return min(1.0, self.cumulative_cost / self.budget_ceiling_cost)

    @property
    def remaining_tokens(self) -> int:
        return max(0, self.budget_ceiling_tokens - self.cumulative_tokens)

    @property
    def over_budget(self) -> bool:
        return self.cumulative_tokens > self.budget_ceiling_tokens


class UsageRecord(BaseModel):
    """Actual spend of one completed model call."""

    call_id: str
    session_id: str
    tokens: int = Field(ge=0)
    cost: float = Field(default=0.0, ge=0)
    model: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    recorded_at: datetime = Field(default_factory=_utcnow)


class BudgetCheckConfig(BaseModel):
    """Limits for the pre-flight budget check."""

    query_limit: int = Field(default=10_000, gt=0, description="Max tokens for a single call")
    warn_threshold: float = Field(default=0.8, gt=0, le=1.0)
    stop_threshold: float = Field(default=1.0, gt=0)


class BudgetCheckResult(BaseModel):
    """Outcome of a pre-flight budget check."""

    allowed: bool
    warnings: list[str] = Field(default_factory=list)
    reason: str | None = None
    limit: int | None = None
    current: int | None = None
    estimated: int | None = None
