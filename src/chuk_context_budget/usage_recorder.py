# chuk_context_budget/usage_recorder.py
"""
Usage Recorder - writes the real cost of completed model calls back into
the Budget Tracker.

Every record is tied to a call identifier. A retried "call completed"
notification carrying an identifier that was already applied is a no-op, so
duplicate delivery never double-counts.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict

from chuk_context_budget.budget_tracker import BudgetTracker
from chuk_context_budget.exceptions import DuplicateUsageRecord
from chuk_context_budget.models import UsageRecord
from chuk_context_budget.pricing import calculate_cost

logger = logging.getLogger(__name__)


class UsageLedger:
    """Call identifiers already applied, per session."""

    def __init__(self) -> None:
        self._seen: dict[str, set[str]] = defaultdict(set)
        self._lock = threading.Lock()

    def claim(self, session_id: str, call_id: str) -> None:
        """Mark ``call_id`` as applied; raises DuplicateUsageRecord if it already was."""
        with self._lock:
            seen = self._seen[session_id]
            if call_id in seen:
                raise DuplicateUsageRecord(call_id)
            seen.add(call_id)

    def release(self, session_id: str, call_id: str) -> None:
        with self._lock:
            self._seen.get(session_id, set()).discard(call_id)

    def seen(self, session_id: str, call_id: str) -> bool:
        return call_id in self._seen.get(session_id, ())

    def forget_session(self, session_id: str) -> None:
        with self._lock:
            self._seen.pop(session_id, None)


class UsageRecorder:
    """Idempotent bridge from completed model calls to the BudgetTracker."""

    def __init__(self, tracker: BudgetTracker, ledger: UsageLedger | None = None):
        self.tracker = tracker
        self.ledger = ledger or UsageLedger()
        self._records: dict[str, list[UsageRecord]] = defaultdict(list)

    async def record(
        self,
        session_id: str,
        actual_tokens_used: int,
        actual_cost: float,
        call_id: str,
    ) -> bool:
        """
        Apply one completed call's usage.

        Returns:
            True if applied, False if ``call_id`` was already recorded.
        """
        return await self._apply(
            UsageRecord(
                call_id=call_id,
                session_id=session_id,
                tokens=actual_tokens_used,
                cost=actual_cost,
            )
        )

    async def record_completion(
        self,
        session_id: str,
        call_id: str,
        prompt_tokens: int,
        completion_tokens: int,
        model: str,
    ) -> bool:
        """Price a call from its token split and apply it."""
        return await self._apply(
            UsageRecord(
                call_id=call_id,
                session_id=session_id,
                tokens=prompt_tokens + completion_tokens,
                cost=calculate_cost(prompt_tokens, completion_tokens, model),
                model=model,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
            )
        )

    async def _apply(self, record: UsageRecord) -> bool:
        try:
            self.ledger.claim(record.session_id, record.call_id)
        except DuplicateUsageRecord:
            logger.debug(f"Ignoring duplicate usage record {record.call_id} for session {record.session_id}")
            return False

        try:
            await self.tracker.record_usage(record.session_id, record.tokens, record.cost)
        except ValueError:
            self.ledger.release(record.session_id, record.call_id)
            raise

        self._records[record.session_id].append(record)
        logger.debug(
            f"Recorded {record.tokens} tokens (${record.cost:.6f}) for session {record.session_id}, "
            f"call {record.call_id}"
        )
        return True

    def records(self, session_id: str) -> list[UsageRecord]:
        return list(self._records.get(session_id, []))

    def forget_session(self, session_id: str) -> None:
        self.ledger.forget_session(session_id)
        self._records.pop(session_id, None)
