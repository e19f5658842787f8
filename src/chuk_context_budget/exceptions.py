# chuk_context_budget/exceptions.py
"""Exception hierarchy for the context budget manager.

Only ``CoreOverflow`` and ``InvalidCeiling`` reach callers of
``ContextAssembler.assemble``. ``ProviderUnavailable`` and
``DuplicateUsageRecord`` are raised internally and absorbed where they occur.
"""

from __future__ import annotations

from typing import Any


class ContextBudgetError(Exception):
    """Base class for all context budget errors."""


class CoreOverflow(ContextBudgetError):
    """The Core tier alone does not fit under the hard ceiling."""

    def __init__(self, session_id: str, core_tokens: int, ceiling: int):
        self.session_id = session_id
        self.core_tokens = core_tokens
        self.ceiling = ceiling
        super().__init__(
            f"budget too small for required context: core context for session "
            f"{session_id} needs {core_tokens} tokens but the ceiling is {ceiling}"
        )


class InvalidCeiling(ContextBudgetError, ValueError):
    """A non-positive hard ceiling was requested."""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"hard_ceiling_tokens must be a positive integer, got {value!r}")


class ProviderUnavailable(ContextBudgetError):
    """A tier provider could not reach its data store."""

    def __init__(self, tier: Any, reason: str = ""):
        self.tier = tier
        self.reason = reason
        message = f"Candidate provider for tier {getattr(tier, 'value', tier)} unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class DuplicateUsageRecord(ContextBudgetError):
    """Usage for this call identifier has already been applied."""

    def __init__(self, call_id: str):
        self.call_id = call_id
        super().__init__(f"Usage for call {call_id} already recorded")


class PruningTableError(ContextBudgetError, ValueError):
    """The pruning bracket table is empty, not total, or not monotonic."""


class BudgetStoreError(ContextBudgetError):
    """A budget persistence backend failed."""
