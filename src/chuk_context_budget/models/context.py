"""Assembly output: per-tier accounting and the assembled context."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from chuk_context_budget.base_models import DictCompatModel
from chuk_context_budget.models.candidate import CandidateItem
from chuk_context_budget.models.enums import TIER_ORDER, TierKind
from chuk_context_budget.models.policy import PruningPolicy

if TYPE_CHECKING:
    from chuk_context_budget.tokens import TokenCounter

# Separator between items of one tier in rendered text
ITEM_SEPARATOR = "\n\n---\n\n"
# Separator between tiers in rendered text
TIER_SEPARATOR = "\n\n"


class TierUsage(DictCompatModel):
    """Tokens and item count actually included for one tier."""

    tokens: int = Field(default=0, ge=0)
    items: int = Field(default=0, ge=0)


class TierBreakdown(DictCompatModel):
    """
    Per-tier accounting of what an assembly actually included.

    Derived from the included items, never from what the policy allowed.
    """

    core: TierUsage = Field(default_factory=TierUsage)
    curated: TierUsage = Field(default_factory=TierUsage)
    reference: TierUsage = Field(default_factory=TierUsage)
    history: TierUsage = Field(default_factory=TierUsage)
    total: int = Field(default=0, ge=0)

    @classmethod
    def from_items(cls, items: list[CandidateItem], counter: TokenCounter | None = None) -> TierBreakdown:
        usage = {tier: TierUsage() for tier in TIER_ORDER}
        for item in items:
            tier_usage = usage[item.tier]
            tier_usage.tokens += item.measure(counter)
            tier_usage.items += 1
        return cls(
            core=usage[TierKind.CORE],
            curated=usage[TierKind.CURATED],
            reference=usage[TierKind.REFERENCE],
            history=usage[TierKind.HISTORY],
            total=sum(u.tokens for u in usage.values()),
        )

    def for_tier(self, tier: TierKind) -> TierUsage:
        return getattr(self, tier.value)

    def present_tiers(self) -> list[TierKind]:
        """Tiers that contributed at least one item."""
        return [tier for tier in TIER_ORDER if self.for_tier(tier).items > 0]


class AssembledContext(BaseModel):
    """
    Ordered result of one assembly.

    ``items`` are in inclusion order: Core, Curated, Reference, then History
    newest-to-oldest. ``to_messages`` renders History chronologically.
    """

    session_id: str
    items: list[CandidateItem] = Field(default_factory=list)
    breakdown: TierBreakdown = Field(default_factory=TierBreakdown)
    policy: PruningPolicy
    bracket: str = Field(default="", description="Label of the pruning bracket applied")
    consumed_fraction: float = Field(default=0.0, ge=0, le=1.0)
    ceiling_tokens: int = Field(..., gt=0)
    truncated_by_ceiling: bool = Field(default=False)
    truncated_at: TierKind | None = Field(default=None, description="Tier where the ceiling stopped inclusion")

    @property
    def total_tokens(self) -> int:
        return self.breakdown.total

    def items_for(self, tier: TierKind) -> list[CandidateItem]:
        return [item for item in self.items if item.tier == tier]

    def tier_text(self, tier: TierKind) -> str:
        items = self.items_for(tier)
        if tier == TierKind.HISTORY:
            items = list(reversed(items))
        return ITEM_SEPARATOR.join(item.text for item in items)

    @property
    def text(self) -> str:
        """Deterministic rendering of all included content in tier order."""
        parts = [self.tier_text(tier) for tier in TIER_ORDER]
        return TIER_SEPARATOR.join(part for part in parts if part)

    def to_messages(self, current_query: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """
        Render as chat messages: one system message per non-empty tier.

        Lower tiers are headed with their display name so the model can tell
        seeds, files and history apart.
        """
        messages: list[dict[str, Any]] = []
        for tier in TIER_ORDER:
            content = self.tier_text(tier)
            if not content:
                continue
            if tier != TierKind.CORE:
                content = f"{tier.display_name}:\n\n{content}"
            messages.append({"role": "system", "content": content})

        if current_query:
            messages.append(current_query)
        return messages
