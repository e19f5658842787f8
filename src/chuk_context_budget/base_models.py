# chuk_context_budget/base_models.py
"""Base model for read projections handed to dashboard code."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class DictCompatModel(BaseModel):
    """Model that also answers ``obj["field"]`` and ``"field" in obj``.

    Tier breakdowns used to travel as plain JSON objects; visualization code
    that indexes them by key keeps working when handed the model instead.
    """

    def __getitem__(self, key: str) -> Any:
        if key not in type(self).model_fields:
            raise KeyError(key)
        return getattr(self, key)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key in type(self).model_fields

    def __eq__(self, other: object) -> bool:
        if isinstance(other, dict):
            return self.model_dump(mode="json") == other
        return super().__eq__(other)
