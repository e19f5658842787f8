# chuk_context_budget/__init__.py
"""
Adaptive, tier-aware context assembly under a per-session token budget.

- Token counting: deterministic, memoized per-text token costs
- Budget tracking: cumulative per-session usage, safe under concurrency
- Pruning: consumed fraction -> tier-by-tier policy via a bracket table
- Assembly: priority-ordered inclusion under a hard token ceiling
- Usage recording: idempotent write-back of actual call costs
"""

from .assembler import (
    AssemblerConfig,
    ContextAssembler,
    TokenSavings,
    calculate_token_savings,
    condense_text,
    rank_candidates,
)
from .budget_tracker import BudgetTracker, format_budget_error
from .classifier import BucketedClassifier, budget_health_classifier, provider_health_classifier
from .exceptions import (
    BudgetStoreError,
    ContextBudgetError,
    CoreOverflow,
    DuplicateUsageRecord,
    InvalidCeiling,
    ProviderUnavailable,
    PruningTableError,
)
from .manager import ContextBudgetManager
from .models import (
    AssembledContext,
    BudgetCheckConfig,
    BudgetCheckResult,
    BudgetHealth,
    BudgetState,
    CandidateItem,
    ProviderHealth,
    PruningBracket,
    PruningPolicy,
    ReferenceMode,
    SessionBudgetConfig,
    TierBreakdown,
    TierKind,
    TierUsage,
    UsageRecord,
)
from .pricing import calculate_cost, get_pricing
from .pruning import DEFAULT_BRACKETS, PruningStrategySelector, validate_monotonic
from .status import ContextSnapshot, ContextStatus, SnapshotLog
from .storage import BudgetStore, ChukSessionsBudgetStore, InMemoryBudgetStore
from .tokens import TokenCounter, Tokenizer, count_tokens, get_token_counter, set_token_counter
from .usage_recorder import UsageLedger, UsageRecorder

__all__ = [
    # Tokens
    "TokenCounter",
    "Tokenizer",
    "count_tokens",
    "get_token_counter",
    "set_token_counter",
    # Budget
    "BudgetTracker",
    "BudgetStore",
    "ChukSessionsBudgetStore",
    "InMemoryBudgetStore",
    "format_budget_error",
    # Classification
    "BucketedClassifier",
    "budget_health_classifier",
    "provider_health_classifier",
    # Pruning
    "DEFAULT_BRACKETS",
    "PruningStrategySelector",
    "validate_monotonic",
    # Assembly
    "AssemblerConfig",
    "ContextAssembler",
    "TokenSavings",
    "calculate_token_savings",
    "condense_text",
    "rank_candidates",
    # Usage
    "UsageLedger",
    "UsageRecorder",
    "calculate_cost",
    "get_pricing",
    # Status
    "ContextSnapshot",
    "ContextStatus",
    "SnapshotLog",
    # Facade
    "ContextBudgetManager",
    # Models
    "AssembledContext",
    "BudgetCheckConfig",
    "BudgetCheckResult",
    "BudgetHealth",
    "BudgetState",
    "CandidateItem",
    "ProviderHealth",
    "PruningBracket",
    "PruningPolicy",
    "ReferenceMode",
    "SessionBudgetConfig",
    "TierBreakdown",
    "TierKind",
    "TierUsage",
    "UsageRecord",
    # Exceptions
    "BudgetStoreError",
    "ContextBudgetError",
    "CoreOverflow",
    "DuplicateUsageRecord",
    "InvalidCeiling",
    "ProviderUnavailable",
    "PruningTableError",
]
