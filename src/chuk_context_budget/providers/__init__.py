# chuk_context_budget/providers/__init__.py
"""Tier candidate providers."""

from chuk_context_budget.providers.base import (
    CandidateProvider,
    ProviderHealthTracker,
    RawRecord,
    TierProvider,
    order_newest_first,
)
from chuk_context_budget.providers.conversation import (
    SYSTEM_PROMPTS,
    FileReferenceProvider,
    MessageHistoryProvider,
    MessagesFn,
    SystemPromptProvider,
    extract_file_references,
)
from chuk_context_budget.providers.static import CallbackProvider, FetchFn, StaticProvider

__all__ = [
    # Protocol and base
    "CandidateProvider",
    "TierProvider",
    "ProviderHealthTracker",
    "RawRecord",
    "order_newest_first",
    # Generic providers
    "StaticProvider",
    "CallbackProvider",
    "FetchFn",
    # Conversation providers
    "SystemPromptProvider",
    "MessageHistoryProvider",
    "FileReferenceProvider",
    "MessagesFn",
    "SYSTEM_PROMPTS",
    "extract_file_references",
]
