"""Statistics models for caches and provider health."""

from pydantic import BaseModel, Field

from chuk_context_budget.models.enums import ProviderHealth, TierKind


class TokenCacheStats(BaseModel):
    """Statistics for the token memo cache."""

    hits: int = Field(default=0)
    misses: int = Field(default=0)
    evictions: int = Field(default=0)
    size: int = Field(default=0, description="Current number of entries")
    max_size: int = Field(default=0, description="Entry-count ceiling")

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


class ProviderHealthSnapshot(BaseModel):
    """Recent fetch outcomes for one tier provider."""

    tier: TierKind
    attempts: int = Field(default=0)
    failures: int = Field(default=0)
    consecutive_failures: int = Field(default=0)
    failure_rate: float = Field(default=0.0)
    health: ProviderHealth = Field(default=ProviderHealth.HEALTHY)
    last_error: str | None = Field(default=None)
