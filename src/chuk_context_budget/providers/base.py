# chuk_context_budget/providers/base.py
"""
Tier candidate provider protocol, base class and health tracking.

Providers read the external data stores and hand the assembler an ordered
(newest-first) list of CandidateItems for their tier. A provider that cannot
reach its store degrades to "nothing from this tier": the failure is logged,
counted in the ProviderHealthTracker, and an empty list is returned.
Cancellation is never swallowed.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from chuk_context_budget.classifier import BucketedClassifier, provider_health_classifier
from chuk_context_budget.exceptions import ProviderUnavailable
from chuk_context_budget.models import (
    TIER_ORDER,
    CandidateItem,
    ProviderHealth,
    ProviderHealthSnapshot,
    TierKind,
)

logger = logging.getLogger(__name__)

RawRecord = dict[str, Any]
"""Minimal data-layer shape: ``{"id": ..., "text": ..., "timestamp": ...}``."""


@runtime_checkable
class CandidateProvider(Protocol):
    """Anything that can supply candidates for one tier."""

    tier: TierKind

    async def fetch_candidates(self, session_id: str) -> list[CandidateItem]: ...


def order_newest_first(items: Sequence[CandidateItem]) -> list[CandidateItem]:
    """Newest-first ordering; equal timestamps fall back to ``sequence``, then insertion order."""
    return sorted(items, key=lambda item: (item.recency, -item.sequence), reverse=True)


class ProviderHealthTracker:
    """Rolling window of fetch outcomes per tier."""

    def __init__(
        self,
        window: int = 20,
        classifier: BucketedClassifier[ProviderHealth] | None = None,
    ):
        self.window = window
        self._classifier = classifier or provider_health_classifier()
        self._outcomes: dict[TierKind, deque[bool]] = {}
        self._consecutive: dict[TierKind, int] = {}
        self._last_error: dict[TierKind, str] = {}

    def _window_for(self, tier: TierKind) -> deque[bool]:
        if tier not in self._outcomes:
            self._outcomes[tier] = deque(maxlen=self.window)
        return self._outcomes[tier]

    def record_success(self, tier: TierKind) -> None:
        self._window_for(tier).append(True)
        self._consecutive[tier] = 0

    def record_failure(self, tier: TierKind, error: BaseException | None = None) -> None:
        self._window_for(tier).append(False)
        self._consecutive[tier] = self._consecutive.get(tier, 0) + 1
        if error is not None:
            self._last_error[tier] = f"{type(error).__name__}: {error}"

    def failure_rate(self, tier: TierKind) -> float:
        outcomes = self._outcomes.get(tier)
        if not outcomes:
            return 0.0
        return outcomes.count(False) / len(outcomes)

    def health(self, tier: TierKind) -> ProviderHealth:
        return self._classifier.classify(self.failure_rate(tier))

    def snapshot(self, tier: TierKind) -> ProviderHealthSnapshot:
        outcomes = self._outcomes.get(tier, ())
        return ProviderHealthSnapshot(
            tier=tier,
            attempts=len(outcomes),
            failures=list(outcomes).count(False),
            consecutive_failures=self._consecutive.get(tier, 0),
            failure_rate=self.failure_rate(tier),
            health=self.health(tier),
            last_error=self._last_error.get(tier),
        )

    def snapshots(self) -> list[ProviderHealthSnapshot]:
        return [self.snapshot(tier) for tier in TIER_ORDER if tier in self._outcomes]


class TierProvider:
    """
    Base class for providers.

    Subclasses implement ``_fetch`` and may return raw records or ready
    CandidateItems; this class handles conversion, ordering and failure.
    """

    tier: TierKind

    def __init__(self, tier: TierKind | None = None, health: ProviderHealthTracker | None = None):
        if tier is not None:
            self.tier = tier
        if getattr(self, "tier", None) is None:
            raise ValueError(f"{type(self).__name__} needs a tier")
        self.health = health or ProviderHealthTracker()

    async def _fetch(self, session_id: str) -> Sequence[RawRecord | CandidateItem]:
        raise NotImplementedError

    async def fetch_candidates(self, session_id: str) -> list[CandidateItem]:
        try:
            records = await self._fetch(session_id)
            items = [
                record if isinstance(record, CandidateItem) else CandidateItem.from_record(self.tier, record, seq)
                for seq, record in enumerate(records)
            ]
            ordered = order_newest_first(items)
        except Exception as e:
            error = e
            if not isinstance(e, ProviderUnavailable):
                error = ProviderUnavailable(self.tier, f"{type(e).__name__}: {e}")
            logger.warning(
                "%s (session %s), continuing without it",
                error,
                session_id,
                exc_info=True,
            )
            self.health.record_failure(self.tier, error)
            return []

        self.health.record_success(self.tier)
        return ordered
