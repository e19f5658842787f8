# chuk_context_budget/budget_tracker.py
"""
Budget Tracker - process-wide per-session usage state.

The tracker owns one BudgetState per session and is the only shared mutable
state in the manager. Increments happen inside a short ``threading.Lock``
critical section with no suspension point, so concurrent completions for the
same session (parallel agent branches, threads, or tasks) are never lost.
Reads of the consumed fraction take no lock and may observe a slightly stale
value; the adaptive loop tolerates that.

State is created lazily on first access. With a BudgetStore, the persisted
copy is folded in by ``ensure_loaded`` before the first async read or write,
the state is saved after every update, and it is reclaimed on session close.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from chuk_context_budget.classifier import BucketedClassifier, budget_health_classifier
from chuk_context_budget.models import (
    BudgetCheckConfig,
    BudgetCheckResult,
    BudgetHealth,
    BudgetState,
    SessionBudgetConfig,
)
from chuk_context_budget.storage import BudgetStore

logger = logging.getLogger(__name__)

# Budget check reasons and warnings
REASON_QUERY_LIMIT = "query_limit_exceeded"
REASON_SESSION_LIMIT = "session_limit_exceeded"
WARNING_QUERY_APPROACHING = "query_approaching_limit"
WARNING_SESSION_APPROACHING = "session_approaching_limit"


class BudgetTracker:
    """
    Per-session cumulative token and cost accounting.

    Examples:
        ```python
        tracker = BudgetTracker()
        tracker.configure_session("s1", SessionBudgetConfig(ceiling_tokens=10_000))
        await tracker.record_usage("s1", tokens=2_500, cost=0.01)
        tracker.consumed_fraction("s1")  # 0.25
        ```
    """

    def __init__(
        self,
        store: BudgetStore | None = None,
        default_config: SessionBudgetConfig | None = None,
        health_classifier: BucketedClassifier[BudgetHealth] | None = None,
    ):
        self._store = store
        self._default_config = default_config or SessionBudgetConfig()
        self._health = health_classifier or budget_health_classifier()
        self._states: dict[str, BudgetState] = {}
        self._configs: dict[str, SessionBudgetConfig] = {}
        self._loaded: set[str] = set()
        self._lock = threading.Lock()

    @property
    def store(self) -> BudgetStore | None:
        return self._store

    # ------------------------------------------------------------------ #
    # Session lifecycle
    # ------------------------------------------------------------------ #

    def configure_session(self, session_id: str, config: SessionBudgetConfig) -> None:
        """Set a session's ceilings; applies immediately if the session already exists."""
        with self._lock:
            self._configs[session_id] = config
            state = self._states.get(session_id)
            if state is not None:
                state.budget_ceiling_tokens = config.ceiling_tokens
                state.budget_ceiling_cost = config.ceiling_cost
                state.version += 1

    def _config_for(self, session_id: str) -> SessionBudgetConfig:
        return self._configs.get(session_id, self._default_config)

    def _get_or_create(self, session_id: str) -> BudgetState:
        # Caller must hold self._lock
        state = self._states.get(session_id)
        if state is None:
            config = self._config_for(session_id)
            state = BudgetState(
                session_id=session_id,
                budget_ceiling_tokens=config.ceiling_tokens,
                budget_ceiling_cost=config.ceiling_cost,
            )
            self._states[session_id] = state
            logger.debug(f"Created budget state for session {session_id}")
        return state

    def _state(self, session_id: str) -> BudgetState:
        state = self._states.get(session_id)
        if state is not None:
            return state
        with self._lock:
            return self._get_or_create(session_id)

    async def ensure_loaded(self, session_id: str) -> BudgetState:
        """
        Fold the persisted copy of a session into memory, once per process.

        Usage recorded before the load (for example a completion reported
        ahead of the first assembly after a restart) is added on top of the
        persisted totals, and the version continues from the persisted one.
        A failed load is retried on the next call; until then nothing is
        saved for the session, so a stale write cannot replace stored totals.
        """
        if self._store is None or session_id in self._loaded:
            return self.current_state(session_id)

        try:
            loaded = await self._store.load(session_id)
        except Exception:
            logger.warning("Failed to load budget state for %s", session_id, exc_info=True)
            return self.current_state(session_id)

        merged = False
        with self._lock:
            if session_id in self._loaded:
                return self._get_or_create(session_id).model_copy()
            self._loaded.add(session_id)
            state = self._states.get(session_id)
            if loaded is not None:
                if session_id in self._configs:
                    config = self._configs[session_id]
                    loaded.budget_ceiling_tokens = config.ceiling_tokens
                    loaded.budget_ceiling_cost = config.ceiling_cost
                if state is None:
                    state = self._states[session_id] = loaded
                else:
                    state.cumulative_tokens += loaded.cumulative_tokens
                    state.cumulative_cost += loaded.cumulative_cost
                    state.calls_recorded += loaded.calls_recorded
                    state.version += loaded.version
                    state.created_at = loaded.created_at
                    merged = True
                logger.info(f"Loaded budget state for session {session_id}: {state.cumulative_tokens} tokens")
            elif state is None:
                state = self._get_or_create(session_id)
            snapshot = state.model_copy()

        if merged:
            await self._persist(snapshot)
        return snapshot

    async def reset_session(self, session_id: str) -> BudgetState:
        """Zero a session's counters (new conversation on the same id)."""
        await self.ensure_loaded(session_id)
        with self._lock:
            state = self._get_or_create(session_id)
            state.cumulative_tokens = 0
            state.cumulative_cost = 0.0
            state.calls_recorded = 0
            state.version += 1
            state.updated_at = datetime.now(timezone.utc)
            snapshot = state.model_copy()
        await self._persist(snapshot)
        return snapshot

    async def close_session(self, session_id: str) -> bool:
        """Reclaim a session's state and its persisted copy."""
        with self._lock:
            removed = self._states.pop(session_id, None) is not None
            self._configs.pop(session_id, None)
            self._loaded.discard(session_id)
        if self._store is not None:
            try:
                await self._store.delete(session_id)
            except Exception:
                logger.warning("Failed to delete persisted budget state for %s", session_id, exc_info=True)
        return removed

    def session_ids(self) -> list[str]:
        return list(self._states)

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def current_state(self, session_id: str) -> BudgetState:
        """Copy of the session's state, created zeroed on first access."""
        return self._state(session_id).model_copy()

    def consumed_fraction(self, session_id: str) -> float:
        """Cumulative tokens over the ceiling, clamped to [0, 1]. Never blocks once the session exists."""
        return self._state(session_id).consumed_fraction

    def cost_fraction(self, session_id: str) -> float | None:
        return self._state(session_id).cost_fraction

    def health(self, session_id: str) -> BudgetHealth:
        return self._health.classify(self.consumed_fraction(session_id))

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def apply_usage(self, session_id: str, tokens: int, cost: float = 0.0) -> BudgetState:
        """
        Atomically add usage to a session and return a copy of the new state.

        Safe to call from several threads at once; does not persist.
        """
        if tokens < 0 or cost < 0:
            raise ValueError(f"Usage must be non-negative (tokens={tokens}, cost={cost})")

        with self._lock:
            state = self._get_or_create(session_id)
            state.cumulative_tokens += tokens
            state.cumulative_cost += cost
            state.calls_recorded += 1
            state.version += 1
            state.updated_at = datetime.now(timezone.utc)
            snapshot = state.model_copy()

        if snapshot.over_budget:
            logger.warning(
                f"Session {session_id} over budget: {snapshot.cumulative_tokens}/{snapshot.budget_ceiling_tokens} tokens"
            )
        return snapshot

    async def record_usage(self, session_id: str, tokens: int, cost: float = 0.0) -> BudgetState:
        """Add usage to a session, after folding in any persisted totals, and persist the result."""
        await self.ensure_loaded(session_id)
        snapshot = self.apply_usage(session_id, tokens, cost)
        await self._persist(snapshot)
        return snapshot

    async def _persist(self, snapshot: BudgetState) -> None:
        if self._store is None or snapshot.session_id not in self._loaded:
            return
        try:
            await self._store.save(snapshot)
        except Exception:
            logger.warning("Failed to persist budget state for %s", snapshot.session_id, exc_info=True)

    # ------------------------------------------------------------------ #
    # Pre-flight check
    # ------------------------------------------------------------------ #

    def check_budget(
        self,
        session_id: str | None,
        estimated_tokens: int,
        config: BudgetCheckConfig | None = None,
    ) -> BudgetCheckResult:
        """
        Decide whether a call of ``estimated_tokens`` may proceed.

        Checks the single-call limit first, then the session ceiling. Warns
        past ``warn_threshold`` and rejects past ``stop_threshold``.
        """
        config = config or BudgetCheckConfig()
        warnings: list[str] = []

        if estimated_tokens <= 0:
            return BudgetCheckResult(allowed=True)

        if estimated_tokens > config.query_limit * config.stop_threshold:
            return BudgetCheckResult(
                allowed=False,
                reason=REASON_QUERY_LIMIT,
                limit=config.query_limit,
                estimated=estimated_tokens,
            )
        if estimated_tokens > config.query_limit * config.warn_threshold:
            warnings.append(WARNING_QUERY_APPROACHING)

        if session_id:
            state = self._state(session_id)
            session_total = state.cumulative_tokens + estimated_tokens
            limit = state.budget_ceiling_tokens
            if session_total > limit * config.stop_threshold:
                return BudgetCheckResult(
                    allowed=False,
                    reason=REASON_SESSION_LIMIT,
                    limit=limit,
                    current=state.cumulative_tokens,
                    estimated=estimated_tokens,
                )
            if session_total > limit * config.warn_threshold:
                warnings.append(WARNING_SESSION_APPROACHING)

        return BudgetCheckResult(allowed=True, warnings=warnings)


def format_budget_error(result: BudgetCheckResult) -> str:
    """User-facing message for a rejected budget check; empty when allowed."""
    if result.allowed:
        return ""
    if result.reason == REASON_QUERY_LIMIT:
        return (
            f"Query budget exceeded: Estimated {result.estimated} tokens exceeds limit of {result.limit} tokens."
        )
    if result.reason == REASON_SESSION_LIMIT:
        return (
            f"Session budget exceeded: Current usage {result.current} + estimated {result.estimated} "
            f"exceeds limit of {result.limit} tokens."
        )
    return "Budget limit exceeded."
