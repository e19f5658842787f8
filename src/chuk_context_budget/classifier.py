# chuk_context_budget/classifier.py
"""
Threshold-bucket classification.

One utility backs every "which bucket does this fraction fall into" decision:
budget health, provider health and the pruning bracket table. Buckets are
``(upper_bound, label)`` pairs evaluated top-down; the first bucket whose
inclusive upper bound is >= the value wins. The last bound must be >= 1.0 so
every fraction in [0, 1] gets a label.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Generic, TypeVar

from chuk_context_budget.config import CRITICAL_THRESHOLD, WARN_THRESHOLD
from chuk_context_budget.models.enums import BudgetHealth, ProviderHealth

T = TypeVar("T")

# Provider failure-rate thresholds
PROVIDER_DEGRADED_FAILURE_RATE = 0.1
PROVIDER_UNAVAILABLE_FAILURE_RATE = 0.5


class BucketedClassifier(Generic[T]):
    """Map a fraction to a label via an ordered table of upper bounds."""

    def __init__(self, buckets: Sequence[tuple[float, T]], clamp: bool = True):
        if not buckets:
            raise ValueError("At least one bucket is required")

        bounds = [bound for bound, _ in buckets]
        for lower, upper in zip(bounds, bounds[1:]):
            if upper <= lower:
                raise ValueError(f"Bucket bounds must be strictly increasing, got {lower} then {upper}")
        if bounds[-1] < 1.0:
            raise ValueError(f"Last bucket bound must be >= 1.0 (or inf), got {bounds[-1]}")

        self._buckets: list[tuple[float, T]] = list(buckets)
        self.clamp = clamp

    @property
    def buckets(self) -> list[tuple[float, T]]:
        return list(self._buckets)

    def classify(self, value: float) -> T:
        if math.isnan(value):
            raise ValueError("Cannot classify NaN")
        if self.clamp:
            value = min(1.0, max(0.0, value))
        for upper_bound, label in self._buckets:
            if value <= upper_bound:
                return label
        # Only reachable with clamp=False and a value above a finite last bound
        return self._buckets[-1][1]

    __call__ = classify


def budget_health_classifier(
    warn_threshold: float = WARN_THRESHOLD,
    critical_threshold: float = CRITICAL_THRESHOLD,
) -> BucketedClassifier[BudgetHealth]:
    """Healthy up to ``warn``, degraded up to ``critical``, saturated above."""
    return BucketedClassifier(
        [
            (warn_threshold, BudgetHealth.HEALTHY),
            (critical_threshold, BudgetHealth.DEGRADED),
            (math.inf, BudgetHealth.SATURATED),
        ]
    )


def provider_health_classifier(
    degraded_rate: float = PROVIDER_DEGRADED_FAILURE_RATE,
    unavailable_rate: float = PROVIDER_UNAVAILABLE_FAILURE_RATE,
) -> BucketedClassifier[ProviderHealth]:
    """Classify a provider by its recent failure rate."""
    return BucketedClassifier(
        [
            (degraded_rate, ProviderHealth.HEALTHY),
            (unavailable_rate, ProviderHealth.DEGRADED),
            (math.inf, ProviderHealth.UNAVAILABLE),
        ]
    )
