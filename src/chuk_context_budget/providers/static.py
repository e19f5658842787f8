# chuk_context_budget/providers/static.py
"""Providers over fixed records and over data-layer query callbacks."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence

from chuk_context_budget.models import CandidateItem, TierKind
from chuk_context_budget.providers.base import ProviderHealthTracker, RawRecord, TierProvider

FetchFn = Callable[[str], Awaitable[Sequence[RawRecord]]]
"""Callback: session_id -> records for one tier."""


class StaticProvider(TierProvider):
    """The same records for every session."""

    def __init__(
        self,
        tier: TierKind,
        records: Sequence[RawRecord | CandidateItem] = (),
        health: ProviderHealthTracker | None = None,
    ):
        super().__init__(tier, health)
        self.records = list(records)

    async def _fetch(self, session_id: str) -> Sequence[RawRecord | CandidateItem]:
        return self.records


class CallbackProvider(TierProvider):
    """Delegates to an async query supplied by the data layer."""

    def __init__(self, tier: TierKind, fetch: FetchFn, health: ProviderHealthTracker | None = None):
        super().__init__(tier, health)
        self._fetch_fn = fetch

    async def _fetch(self, session_id: str) -> Sequence[RawRecord]:
        return await self._fetch_fn(session_id)
