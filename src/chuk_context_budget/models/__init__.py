# chuk_context_budget/models/__init__.py
"""
Models for the context budget manager.

Re-exports all models and enums so callers can use::

    from chuk_context_budget.models import CandidateItem, TierKind
"""

from chuk_context_budget.models.budget import (
    BudgetCheckConfig,
    BudgetCheckResult,
    BudgetState,
    SessionBudgetConfig,
    UsageRecord,
)
from chuk_context_budget.models.candidate import CandidateItem
from chuk_context_budget.models.context import (
    ITEM_SEPARATOR,
    TIER_SEPARATOR,
    AssembledContext,
    TierBreakdown,
    TierUsage,
)
from chuk_context_budget.models.enums import (
    ALL,
    TIER_DISPLAY_NAMES,
    TIER_ORDER,
    UNLIMITED,
    BudgetHealth,
    ProviderHealth,
    ReferenceMode,
    TierKind,
)
from chuk_context_budget.models.policy import PruningBracket, PruningPolicy
from chuk_context_budget.models.stats import ProviderHealthSnapshot, TokenCacheStats

__all__ = [
    # Enums
    "BudgetHealth",
    "ProviderHealth",
    "ReferenceMode",
    "TierKind",
    # Constants
    "ALL",
    "UNLIMITED",
    "ITEM_SEPARATOR",
    "TIER_SEPARATOR",
    "TIER_DISPLAY_NAMES",
    "TIER_ORDER",
    # Candidates
    "CandidateItem",
    # Budget
    "BudgetCheckConfig",
    "BudgetCheckResult",
    "BudgetState",
    "SessionBudgetConfig",
    "UsageRecord",
    # Policy
    "PruningBracket",
    "PruningPolicy",
    # Output
    "AssembledContext",
    "TierBreakdown",
    "TierUsage",
    # Stats
    "ProviderHealthSnapshot",
    "TokenCacheStats",
]
