# chuk_context_budget/pruning.py
"""
Pruning Strategy Selector.

Maps a session's budget-consumed fraction to a PruningPolicy through a small
ordered bracket table. The table is validated whenever it is built:

- it is non-empty and its last bound covers 1.0 (every fraction gets a policy)
- bounds strictly increase
- policies degrade monotonically: each bracket's limits are <= the previous
  bracket's limits, tier by tier

The default numbers are a starting point; deployments can supply their own
table as JSON (``CHUK_BUDGET_PRUNING_TABLE``) without code changes::

    [
      {"upper_bound": 0.5, "label": "<50%", "policy": {"reference_mode": "full", "history_limit": 20}},
      {"upper_bound": 1.0, "label": ">50%", "policy": {"reference_mode": "omit", "history_limit": 2,
                                                     "curated_limit": 0}}
    ]
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from chuk_context_budget.classifier import BucketedClassifier
from chuk_context_budget.config import PRUNING_TABLE_PATH
from chuk_context_budget.exceptions import PruningTableError
from chuk_context_budget.models import (
    ALL,
    UNLIMITED,
    PruningBracket,
    PruningPolicy,
    ReferenceMode,
)

logger = logging.getLogger(__name__)

DEFAULT_BRACKETS: list[PruningBracket] = [
    PruningBracket(
        upper_bound=0.4,
        label="<40%",
        policy=PruningPolicy(
            core_limit=UNLIMITED,
            curated_limit=ALL,
            reference_mode=ReferenceMode.FULL,
            history_limit=20,
        ),
    ),
    PruningBracket(
        upper_bound=0.6,
        label="40-60%",
        policy=PruningPolicy(
            core_limit=UNLIMITED,
            curated_limit=ALL,
            reference_mode=ReferenceMode.SUMMARY,
            history_limit=10,
        ),
    ),
    PruningBracket(
        upper_bound=0.8,
        label="60-80%",
        policy=PruningPolicy(
            core_limit=UNLIMITED,
            curated_limit=3,
            reference_mode=ReferenceMode.OMIT,
            history_limit=5,
        ),
    ),
    PruningBracket(
        upper_bound=1.0,
        label=">80%",
        policy=PruningPolicy(
            core_limit=UNLIMITED,
            curated_limit=0,
            reference_mode=ReferenceMode.OMIT,
            history_limit=2,
        ),
    ),
]

_BRACKET_LIST = TypeAdapter(list[PruningBracket])


def validate_monotonic(brackets: Sequence[PruningBracket]) -> None:
    """Raise PruningTableError unless each bracket is no more permissive than the one before."""
    for previous, current in zip(brackets, brackets[1:]):
        if not previous.policy.is_at_least_as_permissive(current.policy):
            raise PruningTableError(
                f"Bracket '{current.label or current.upper_bound}' ({current.policy.describe()}) "
                f"is more permissive than '{previous.label or previous.upper_bound}' "
                f"({previous.policy.describe()})"
            )


class PruningStrategySelector:
    """Pure, total ``fraction -> PruningPolicy`` lookup."""

    def __init__(self, brackets: Sequence[PruningBracket] | None = None):
        brackets = list(brackets) if brackets is not None else list(DEFAULT_BRACKETS)
        try:
            self._classifier = BucketedClassifier([(b.upper_bound, b) for b in brackets])
        except ValueError as e:
            raise PruningTableError(str(e)) from e
        validate_monotonic(brackets)
        self._brackets = brackets

    @classmethod
    def default(cls) -> PruningStrategySelector:
        return cls(DEFAULT_BRACKETS)

    @classmethod
    def from_json(cls, path: str | Path) -> PruningStrategySelector:
        """Load a bracket table from a JSON file (a list of bracket objects)."""
        raw = Path(path).read_text(encoding="utf-8")
        try:
            brackets = _BRACKET_LIST.validate_python(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            raise PruningTableError(f"Invalid pruning table {path}: {e}") from e
        logger.info("Loaded %d pruning brackets from %s", len(brackets), path)
        return cls(brackets)

    @classmethod
    def from_config(cls) -> PruningStrategySelector:
        """Selector from ``CHUK_BUDGET_PRUNING_TABLE`` when set, else the default table."""
        if PRUNING_TABLE_PATH:
            return cls.from_json(PRUNING_TABLE_PATH)
        return cls.default()

    @property
    def brackets(self) -> list[PruningBracket]:
        return list(self._brackets)

    def bracket_for(self, fraction: float) -> PruningBracket:
        return self._classifier.classify(fraction)

    def select(self, fraction: float) -> PruningPolicy:
        return self.bracket_for(fraction).policy
