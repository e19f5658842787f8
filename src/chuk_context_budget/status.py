# chuk_context_budget/status.py
"""
Context status and snapshots.

Every assembly can be snapshotted so dashboards can answer "what went into
the context for this session's last call, and how close is it to budget?":

- ContextSnapshot: per-tier breakdown, policy and bracket of one assembly
- SnapshotLog: bounded per-session history of snapshots
- ContextStatus: read model combining the latest snapshot with budget health
"""

from __future__ import annotations

import threading
import uuid
from collections import deque
from datetime import datetime, timezone

from pydantic import BaseModel, Field, PrivateAttr

from chuk_context_budget.models import (
    AssembledContext,
    BudgetHealth,
    BudgetState,
    PruningPolicy,
    TierBreakdown,
    TierKind,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContextSnapshot(BaseModel):
    """What one assembly included, without the content itself."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    session_id: str
    breakdown: TierBreakdown
    total_tokens: int = Field(default=0, ge=0)
    consumed_fraction: float = Field(default=0.0, ge=0, le=1.0)
    policy: PruningPolicy
    bracket: str = ""
    ceiling_tokens: int = Field(default=0, ge=0)
    truncated_at: TierKind | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_context(cls, context: AssembledContext) -> ContextSnapshot:
        return cls(
            session_id=context.session_id,
            breakdown=context.breakdown,
            total_tokens=context.total_tokens,
            consumed_fraction=context.consumed_fraction,
            policy=context.policy,
            bracket=context.bracket,
            ceiling_tokens=context.ceiling_tokens,
            truncated_at=context.truncated_at,
        )


class SnapshotLog(BaseModel):
    """
    Bounded history of context snapshots.

    Keeps at most ``max_per_session`` snapshots per session, dropping the
    oldest first.
    """

    max_per_session: int = Field(default=50, gt=0)

    _by_session: dict[str, deque[ContextSnapshot]] = PrivateAttr(default_factory=dict)
    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    def save(self, context: AssembledContext) -> ContextSnapshot:
        """Snapshot an assembled context and append it to the session's history."""
        snapshot = ContextSnapshot.from_context(context)
        with self._lock:
            history = self._by_session.get(context.session_id)
            if history is None:
                history = deque(maxlen=self.max_per_session)
                self._by_session[context.session_id] = history
            history.append(snapshot)
        return snapshot

    def latest(self, session_id: str) -> ContextSnapshot | None:
        history = self._by_session.get(session_id)
        if not history:
            return None
        return history[-1]

    def session_snapshots(self, session_id: str) -> list[ContextSnapshot]:
        """Snapshots for a session, oldest first."""
        return list(self._by_session.get(session_id, ()))

    def recent(self, limit: int = 10) -> list[ContextSnapshot]:
        """Most recent snapshots across all sessions, newest first."""
        with self._lock:
            everything = [snapshot for history in self._by_session.values() for snapshot in history]
        everything.sort(key=lambda snapshot: snapshot.created_at, reverse=True)
        return everything[:limit]

    def forget_session(self, session_id: str) -> None:
        with self._lock:
            self._by_session.pop(session_id, None)


class ContextStatus(BaseModel):
    """Budget health plus the last assembly for one session."""

    session_id: str
    health: BudgetHealth
    budget: BudgetState
    latest: ContextSnapshot | None = None

    @property
    def consumed_fraction(self) -> float:
        return self.budget.consumed_fraction

    @property
    def percent_used(self) -> float:
        return round(self.budget.consumed_fraction * 100, 1)
