"""Candidate items: units of potential context content."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from chuk_context_budget.models.enums import TierKind

if TYPE_CHECKING:
    from chuk_context_budget.tokens import TokenCounter

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class CandidateItem(BaseModel):
    """
    One unit of potential context content.

    Created fresh on every assembly request and never mutated. The token cost
    is cached on the instance per counter; identical text is additionally
    memoized process-wide by the TokenCounter. Timestamps without a timezone
    are taken as UTC.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Identifier, unique within its tier")
    tier: TierKind
    text: str = Field(default="")
    recency: datetime = Field(default=EPOCH, description="Newer wins within a tier")
    relevance_hint: float | None = Field(default=None, description="Externally supplied relevance score")
    sequence: int = Field(default=0, description="Provider insertion order, breaks recency ties")
    source: str | None = Field(default=None, description="Where the content came from")
    excerpt: bool = Field(default=False, description="True when text is a condensed excerpt")

    _token_costs: dict[Any, int] = PrivateAttr(default_factory=dict)

    @field_validator("recency")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_record(
        cls,
        tier: TierKind,
        record: dict[str, Any],
        sequence: int = 0,
    ) -> CandidateItem:
        """Build an item from a data-layer record shaped ``{id, text, timestamp}``."""
        timestamp = record.get("timestamp") or record.get("recency")
        fields: dict[str, Any] = {} if timestamp is None else {"recency": timestamp}
        return cls(
            id=str(record["id"]),
            tier=tier,
            text=record.get("text") or "",
            relevance_hint=record.get("relevance_hint"),
            sequence=sequence,
            source=record.get("source"),
            **fields,
        )

    def measure(self, counter: TokenCounter | None = None) -> int:
        """Token cost of ``text`` under ``counter``, computed once per counter."""
        if counter is None:
            from chuk_context_budget.tokens import get_token_counter

            counter = get_token_counter()
        cost = self._token_costs.get(counter)
        if cost is None:
            cost = self._token_costs[counter] = counter.count(self.text)
        return cost

    @property
    def token_cost(self) -> int:
        """Cost under the process-wide default counter."""
        return self.measure()

    def condensed(self, text: str) -> CandidateItem:
        """Copy of this item carrying an excerpt in place of its text."""
        return CandidateItem(
            id=self.id,
            tier=self.tier,
            text=text,
            recency=self.recency,
            relevance_hint=self.relevance_hint,
            sequence=self.sequence,
            source=self.source,
            excerpt=True,
        )
