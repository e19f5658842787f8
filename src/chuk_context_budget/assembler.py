# chuk_context_budget/assembler.py
"""
Context Assembler - the orchestrator.

For one model call it:
1. reads the session's consumed fraction and selects a PruningPolicy
2. fetches candidates from the tier providers (concurrently)
3. applies the policy tier by tier in priority order
4. enforces the hard token ceiling, which always wins over the policy
5. returns the AssembledContext and a TierBreakdown of what was included

Core is added unconditionally; if Core alone exceeds the ceiling the call
fails with CoreOverflow rather than silently dropping essential context.
Once an item of any lower tier would cross the ceiling, that tier stops and
every lower-priority tier is skipped.

The result is a pure function of the candidate snapshots and budget state,
so re-running with the same inputs yields byte-identical output.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence

from pydantic import BaseModel, Field

from chuk_context_budget.budget_tracker import BudgetTracker
from chuk_context_budget.config import SUMMARY_LINES
from chuk_context_budget.exceptions import CoreOverflow, InvalidCeiling
from chuk_context_budget.models import (
    TIER_ORDER,
    AssembledContext,
    CandidateItem,
    PruningPolicy,
    ReferenceMode,
    TierBreakdown,
    TierKind,
)
from chuk_context_budget.providers.base import CandidateProvider, order_newest_first
from chuk_context_budget.pruning import PruningStrategySelector
from chuk_context_budget.tokens import TokenCounter, get_token_counter

logger = logging.getLogger(__name__)


class AssemblerConfig(BaseModel):
    """Configuration for context assembly."""

    summary_lines: int = Field(default=SUMMARY_LINES, gt=0, description="Leading lines kept per Summary excerpt")
    relevance_weight: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Blend of relevance_hint into ordering (0 = pure recency)",
    )


class TokenSavings(BaseModel):
    """Tokens saved by assembly relative to sending everything."""

    saved_tokens: int = 0
    percent_saved: float = 0.0


def condense_text(text: str, max_lines: int) -> str:
    """Leading ``max_lines`` lines of ``text`` plus a truncation marker."""
    lines = text.splitlines()
    if len(lines) <= max_lines:
        return text
    head = "\n".join(lines[:max_lines])
    return f"{head}\n... [truncated: {len(lines)} lines total]"


def rank_candidates(items: Sequence[CandidateItem], relevance_weight: float = 0.0) -> list[CandidateItem]:
    """
    Newest-first ordering, optionally blended with ``relevance_hint``.

    With a weight of 0 this is a stable recency sort. Otherwise each item
    scores ``relevance * w + recency_position * (1 - w)`` where the newest
    item has recency_position 1.0; ties keep recency order.
    """
    ordered = order_newest_first(items)
    if relevance_weight <= 0 or not ordered:
        return ordered

    count = len(ordered)
    scored = [
        ((item.relevance_hint or 0.0) * relevance_weight + ((count - i) / count) * (1 - relevance_weight), item)
        for i, item in enumerate(ordered)
    ]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [item for _, item in scored]


def calculate_token_savings(original_tokens: int, context: AssembledContext) -> TokenSavings:
    saved = max(0, original_tokens - context.total_tokens)
    percent = (saved / original_tokens) * 100 if original_tokens > 0 else 0.0
    return TokenSavings(saved_tokens=saved, percent_saved=percent)


class ContextAssembler:
    """
    Builds the context for one model call under a hard token ceiling.

    Examples:
        ```python
        assembler = ContextAssembler(
            tracker,
            providers={
                TierKind.CORE: SystemPromptProvider(messages, agent="dojo"),
                TierKind.HISTORY: MessageHistoryProvider(messages),
            },
        )
        context, breakdown = await assembler.assemble("session-1", hard_ceiling_tokens=8000)
        ```
    """

    def __init__(
        self,
        tracker: BudgetTracker,
        providers: Mapping[TierKind, CandidateProvider] | Sequence[CandidateProvider],
        selector: PruningStrategySelector | None = None,
        counter: TokenCounter | None = None,
        config: AssemblerConfig | None = None,
    ):
        self.tracker = tracker
        if isinstance(providers, Mapping):
            self.providers: dict[TierKind, CandidateProvider] = dict(providers)
        else:
            self.providers = {provider.tier: provider for provider in providers}
        self.selector = selector or PruningStrategySelector.from_config()
        self.counter = counter or get_token_counter()
        self.config = config or AssemblerConfig()

    async def assemble(
        self,
        session_id: str,
        hard_ceiling_tokens: int,
    ) -> tuple[AssembledContext, TierBreakdown]:
        """
        Assemble context for ``session_id``.

        Raises:
            InvalidCeiling: ``hard_ceiling_tokens`` is not a positive integer
                (checked before any provider is queried).
            CoreOverflow: Core content alone exceeds the ceiling.
        """
        if isinstance(hard_ceiling_tokens, bool) or not isinstance(hard_ceiling_tokens, int):
            raise InvalidCeiling(hard_ceiling_tokens)
        if hard_ceiling_tokens <= 0:
            raise InvalidCeiling(hard_ceiling_tokens)

        await self.tracker.ensure_loaded(session_id)
        fraction = self.tracker.consumed_fraction(session_id)
        bracket = self.selector.bracket_for(fraction)
        policy = bracket.policy
        logger.debug(
            f"Session {session_id}: consumed {fraction:.2%}, bracket {bracket.label or bracket.upper_bound} "
            f"({policy.describe()})"
        )

        candidates = await self._fetch_all(session_id, policy)

        # Core: unconditional, never truncated to fit
        core = self._select(TierKind.CORE, candidates[TierKind.CORE], policy)
        core_tokens = sum(item.measure(self.counter) for item in core)
        if core_tokens > hard_ceiling_tokens:
            raise CoreOverflow(session_id, core_tokens, hard_ceiling_tokens)

        included: list[CandidateItem] = list(core)
        total = core_tokens
        truncated_at: TierKind | None = None

        for tier in TIER_ORDER[1:]:
            for item in self._select(tier, candidates[tier], policy):
                cost = item.measure(self.counter)
                if total + cost > hard_ceiling_tokens:
                    truncated_at = tier
                    break
                included.append(item)
                total += cost
            if truncated_at is not None:
                logger.info(
                    f"Session {session_id}: ceiling of {hard_ceiling_tokens} tokens reached in tier "
                    f"{truncated_at.value}, skipping lower tiers"
                )
                break

        breakdown = TierBreakdown.from_items(included, self.counter)
        context = AssembledContext(
            session_id=session_id,
            items=included,
            breakdown=breakdown,
            policy=policy,
            bracket=bracket.label,
            consumed_fraction=fraction,
            ceiling_tokens=hard_ceiling_tokens,
            truncated_by_ceiling=truncated_at is not None,
            truncated_at=truncated_at,
        )
        logger.debug(
            f"Session {session_id}: assembled {breakdown.total} tokens "
            + ", ".join(f"{tier.value}={breakdown.for_tier(tier).tokens}" for tier in TIER_ORDER)
        )
        return context, breakdown

    # ------------------------------------------------------------------ #
    # Candidate fetching
    # ------------------------------------------------------------------ #

    def _tiers_needed(self, policy: PruningPolicy) -> list[TierKind]:
        needed = [TierKind.CORE]
        if policy.curated_cap != 0:
            needed.append(TierKind.CURATED)
        if policy.reference_mode != ReferenceMode.OMIT:
            needed.append(TierKind.REFERENCE)
        if policy.history_limit > 0:
            needed.append(TierKind.HISTORY)
        return needed

    async def _fetch_tier(self, tier: TierKind, session_id: str) -> list[CandidateItem]:
        provider = self.providers.get(tier)
        if provider is None:
            return []
        try:
            items = await provider.fetch_candidates(session_id)
        except Exception:
            logger.warning(
                "Candidate provider for tier %s failed (session %s), continuing without it",
                tier.value,
                session_id,
                exc_info=True,
            )
            return []
        # Items from another tier are never mixed in
        return [item for item in items if item.tier == tier]

    async def _fetch_all(self, session_id: str, policy: PruningPolicy) -> dict[TierKind, list[CandidateItem]]:
        """Fetch the tiers the policy can use; cancelling the caller cancels every fetch."""
        needed = self._tiers_needed(policy)
        results = await asyncio.gather(*(self._fetch_tier(tier, session_id) for tier in needed))
        candidates: dict[TierKind, list[CandidateItem]] = {tier: [] for tier in TIER_ORDER}
        candidates.update(zip(needed, results))
        return candidates

    # ------------------------------------------------------------------ #
    # Policy application
    # ------------------------------------------------------------------ #

    def _select(self, tier: TierKind, items: list[CandidateItem], policy: PruningPolicy) -> list[CandidateItem]:
        """Apply the policy's soft limit for ``tier`` to ranked candidates."""
        if tier == TierKind.CORE:
            ranked = order_newest_first(items)
            cap = policy.core_cap
            return ranked if cap is None else ranked[:cap]

        ranked = rank_candidates(items, self.config.relevance_weight)

        if tier == TierKind.CURATED:
            cap = policy.curated_cap
            return ranked if cap is None else ranked[:cap]

        if tier == TierKind.REFERENCE:
            if policy.reference_mode == ReferenceMode.FULL:
                return ranked
            if policy.reference_mode == ReferenceMode.SUMMARY:
                return [self._condense(item) for item in ranked]
            return []

        return ranked[: policy.history_limit]

    def _condense(self, item: CandidateItem) -> CandidateItem:
        excerpt = condense_text(item.text, self.config.summary_lines)
        if excerpt == item.text:
            return item
        return item.condensed(excerpt)
