# chuk_context_budget/manager.py
"""
ContextBudgetManager - one object wiring the whole adaptive loop.

    assemble -> model call -> record -> (next) assemble

The manager owns the token counter, budget tracker, pruning selector, tier
providers, assembler, usage recorder and snapshot log, and exposes the
handful of calls an agent runtime needs.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from chuk_context_budget.assembler import AssemblerConfig, ContextAssembler
from chuk_context_budget.budget_tracker import BudgetTracker
from chuk_context_budget.models import (
    AssembledContext,
    BudgetCheckConfig,
    BudgetCheckResult,
    BudgetHealth,
    BudgetState,
    ProviderHealthSnapshot,
    SessionBudgetConfig,
    TierBreakdown,
    TierKind,
)
from chuk_context_budget.providers.base import CandidateProvider, ProviderHealthTracker
from chuk_context_budget.pruning import PruningStrategySelector
from chuk_context_budget.status import ContextStatus, SnapshotLog
from chuk_context_budget.storage import BudgetStore
from chuk_context_budget.tokens import TokenCounter, get_token_counter
from chuk_context_budget.usage_recorder import UsageRecorder

logger = logging.getLogger(__name__)


class ContextBudgetManager:
    """
    Facade over the context budget components.

    Examples:
        ```python
        manager = ContextBudgetManager(
            providers=[
                SystemPromptProvider(messages, agent="librarian"),
                MessageHistoryProvider(messages),
                FileReferenceProvider(messages, base_dir="docs"),
            ],
        )
        manager.configure_session("s1", ceiling_tokens=20_000)

        context, breakdown = await manager.assemble("s1", hard_ceiling_tokens=8_000)
        reply = await llm.chat(context.to_messages(current_query))
        await manager.record_completion("s1", reply.id, reply.prompt_tokens, reply.completion_tokens, "gpt-4o")
        ```
    """

    def __init__(
        self,
        providers: Mapping[TierKind, CandidateProvider] | Sequence[CandidateProvider] | None = None,
        tracker: BudgetTracker | None = None,
        store: BudgetStore | None = None,
        selector: PruningStrategySelector | None = None,
        counter: TokenCounter | None = None,
        assembler_config: AssemblerConfig | None = None,
        snapshots: SnapshotLog | None = None,
    ):
        """
        Args:
            providers: Tier providers, keyed by tier or as a list (each carries its tier).
            tracker: Shared BudgetTracker; built over ``store`` when omitted.
            store: Optional persistence for budget state.
            selector: Pruning bracket table; env/default table when omitted.
            counter: Token counter; the process-wide default when omitted.
            assembler_config: Summary length and relevance weighting.
            snapshots: Snapshot log for status reporting.
        """
        self.counter = counter or get_token_counter()
        self.tracker = tracker or BudgetTracker(store=store)
        self.selector = selector or PruningStrategySelector.from_config()
        self.assembler = ContextAssembler(
            self.tracker,
            providers or {},
            selector=self.selector,
            counter=self.counter,
            config=assembler_config,
        )
        self.recorder = UsageRecorder(self.tracker)
        self.snapshots = snapshots or SnapshotLog()

    # ------------------------------------------------------------------ #
    # Setup
    # ------------------------------------------------------------------ #

    def register_provider(self, provider: CandidateProvider) -> None:
        """Add or replace the provider for ``provider.tier``."""
        self.assembler.providers[provider.tier] = provider

    def configure_session(
        self,
        session_id: str,
        ceiling_tokens: int,
        ceiling_cost: float | None = None,
    ) -> None:
        self.tracker.configure_session(
            session_id,
            SessionBudgetConfig(ceiling_tokens=ceiling_tokens, ceiling_cost=ceiling_cost),
        )

    # ------------------------------------------------------------------ #
    # Adaptive loop
    # ------------------------------------------------------------------ #

    async def assemble(self, session_id: str, hard_ceiling_tokens: int) -> tuple[AssembledContext, TierBreakdown]:
        """Assemble context for the next call and snapshot it."""
        context, breakdown = await self.assembler.assemble(session_id, hard_ceiling_tokens)
        self.snapshots.save(context)
        return context, breakdown

    async def record(self, session_id: str, actual_tokens_used: int, actual_cost: float, call_id: str) -> bool:
        return await self.recorder.record(session_id, actual_tokens_used, actual_cost, call_id)

    async def record_completion(
        self,
        session_id: str,
        call_id: str,
        prompt_tokens: int,
        completion_tokens: int,
        model: str,
    ) -> bool:
        return await self.recorder.record_completion(session_id, call_id, prompt_tokens, completion_tokens, model)

    def check_budget(
        self,
        session_id: str | None,
        estimated_tokens: int,
        config: BudgetCheckConfig | None = None,
    ) -> BudgetCheckResult:
        return self.tracker.check_budget(session_id, estimated_tokens, config)

    # ------------------------------------------------------------------ #
    # Status
    # ------------------------------------------------------------------ #

    def health(self, session_id: str) -> BudgetHealth:
        return self.tracker.health(session_id)

    async def load_session(self, session_id: str) -> BudgetState:
        """Fold any persisted totals into memory ahead of synchronous reads."""
        return await self.tracker.ensure_loaded(session_id)

    def status(self, session_id: str) -> ContextStatus:
        return ContextStatus(
            session_id=session_id,
            health=self.tracker.health(session_id),
            budget=self.tracker.current_state(session_id),
            latest=self.snapshots.latest(session_id),
        )

    def provider_health(self) -> list[ProviderHealthSnapshot]:
        """Health of every provider that tracks its fetch outcomes."""
        snapshots = []
        for tier, provider in sorted(self.assembler.providers.items(), key=lambda pair: pair[0].priority):
            health = getattr(provider, "health", None)
            if isinstance(health, ProviderHealthTracker):
                snapshots.append(health.snapshot(tier))
        return snapshots

    async def close_session(self, session_id: str) -> bool:
        """Reclaim all per-session state: budget, usage ledger and snapshots."""
        self.recorder.forget_session(session_id)
        self.snapshots.forget_session(session_id)
        removed = await self.tracker.close_session(session_id)
        logger.info(f"Closed session {session_id}")
        return removed
