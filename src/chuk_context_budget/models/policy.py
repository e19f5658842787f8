"""Pruning policies and the brackets that select them."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chuk_context_budget.models.enums import ALL, UNLIMITED, ReferenceMode


class PruningPolicy(BaseModel):
    """
    How much of each tier to keep for one assembly.

    ``curated_limit`` and ``history_limit`` of 0 omit the tier entirely.
    """

    model_config = ConfigDict(frozen=True)

    core_limit: int | Literal["unlimited"] = UNLIMITED
    curated_limit: int | Literal["all"] = ALL
    reference_mode: ReferenceMode = ReferenceMode.FULL
    history_limit: int = Field(default=20, ge=0)

    @field_validator("core_limit")
    @classmethod
    def _core_positive(cls, value: int | str) -> int | str:
        if isinstance(value, int) and value <= 0:
            raise ValueError("core_limit must be positive or 'unlimited'")
        return value

    @field_validator("curated_limit")
    @classmethod
    def _curated_non_negative(cls, value: int | str) -> int | str:
        if isinstance(value, int) and value < 0:
            raise ValueError("curated_limit must be non-negative or 'all'")
        return value

    @property
    def core_cap(self) -> int | None:
        """Item cap for Core, None when unlimited."""
        return None if self.core_limit == UNLIMITED else int(self.core_limit)

    @property
    def curated_cap(self) -> int | None:
        return None if self.curated_limit == ALL else int(self.curated_limit)

    def is_at_least_as_permissive(self, other: PruningPolicy) -> bool:
        """True when every per-tier limit of ``self`` is >= the one in ``other``."""
        return (
            _cap_ge(self.core_cap, other.core_cap)
            and _cap_ge(self.curated_cap, other.curated_cap)
            and self.reference_mode.rank >= other.reference_mode.rank
            and self.history_limit >= other.history_limit
        )

    def describe(self) -> str:
        return (
            f"core={self.core_limit} curated={self.curated_limit} "
            f"reference={self.reference_mode.value} history={self.history_limit}"
        )


def _cap_ge(a: int | None, b: int | None) -> bool:
    """Compare caps where None means unbounded."""
    if a is None:
        return True
    if b is None:
        return False
    return a >= b


class PruningBracket(BaseModel):
    """A ``(upper_bound, policy)`` row of the selector table."""

    model_config = ConfigDict(frozen=True)

    upper_bound: float = Field(..., gt=0, description="Inclusive upper bound of the consumed fraction")
    label: str = Field(default="", description="Budget range shown on dashboards, e.g. '40-60%'")
    policy: PruningPolicy
