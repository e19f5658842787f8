"""Enums and sentinels for the context budget manager."""

from enum import Enum


class TierKind(str, Enum):
    """
    Priority classes of context content.

    Declaration order is priority order: Core > Curated > Reference > History.
    Core is never pruned.
    """

    CORE = "core"  # System prompt, current query, always-on instructions
    CURATED = "curated"  # Seeds and curated facts
    REFERENCE = "reference"  # Referenced files and documents
    HISTORY = "history"  # Prior conversation turns

    @property
    def priority(self) -> int:
        """1 for Core through 4 for History (lower = more important)."""
        return TIER_ORDER.index(self) + 1

    @property
    def display_name(self) -> str:
        return TIER_DISPLAY_NAMES[self]


class ReferenceMode(str, Enum):
    """How much of each Reference document to include."""

    FULL = "full"
    SUMMARY = "summary"
    OMIT = "omit"

    @property
    def rank(self) -> int:
        """Permissiveness rank: FULL (2) > SUMMARY (1) > OMIT (0)."""
        return {ReferenceMode.FULL: 2, ReferenceMode.SUMMARY: 1, ReferenceMode.OMIT: 0}[self]


class BudgetHealth(str, Enum):
    """Three-bucket label derived from the consumed fraction."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    SATURATED = "saturated"


class ProviderHealth(str, Enum):
    """Three-bucket label derived from a provider's recent failure rate."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


# =============================================================================
# Constants
# =============================================================================

TIER_ORDER: list[TierKind] = [
    TierKind.CORE,
    TierKind.CURATED,
    TierKind.REFERENCE,
    TierKind.HISTORY,
]

TIER_DISPLAY_NAMES: dict[TierKind, str] = {
    TierKind.CORE: "Core Context",
    TierKind.CURATED: "Active Seeds",
    TierKind.REFERENCE: "Referenced Files",
    TierKind.HISTORY: "Conversation History",
}

# Sentinels for "no cap" limits (kept as strings so policies round-trip JSON)
UNLIMITED = "unlimited"
ALL = "all"
