# tests/conftest.py
"""
Shared pytest fixtures and configuration for chuk_context_budget tests.

Token costs are counted with the ``words`` tokenizer so that test arithmetic
is exact: ``words(50)`` costs 50 tokens.
"""

import logging

import pytest

from chuk_context_budget.budget_tracker import BudgetTracker
from chuk_context_budget.models import SessionBudgetConfig, TierKind
from chuk_context_budget.providers import StaticProvider
from chuk_context_budget.tokens import TokenCounter, Tokenizer, set_token_counter
from tests.helpers import BASE_TIME, make_document, make_records, words

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logging.getLogger("chuk_context_budget").setLevel(logging.DEBUG)


@pytest.fixture
def counter():
    return TokenCounter(tokenizer=Tokenizer.WORDS, max_entries=1024)


@pytest.fixture(autouse=True)
def default_counter(counter):
    """Route the process-wide counter through the words tokenizer."""
    set_token_counter(counter)
    yield counter
    set_token_counter(None)


@pytest.fixture
def tracker():
    return BudgetTracker(default_config=SessionBudgetConfig(ceiling_tokens=1000, ceiling_cost=None))


@pytest.fixture
def scenario_providers():
    """Core 1 x 50, Curated 3 x 30, Reference 1 x 200 (20 lines), History 10 x 20."""
    return {
        TierKind.CORE: StaticProvider(TierKind.CORE, [{"id": "core", "text": words(50, "core")}]),
        TierKind.CURATED: StaticProvider(TierKind.CURATED, make_records("seed", 3, 30)),
        TierKind.REFERENCE: StaticProvider(
            TierKind.REFERENCE,
            [{"id": "doc", "text": make_document(20, 10), "timestamp": BASE_TIME.isoformat()}],
        ),
        TierKind.HISTORY: StaticProvider(TierKind.HISTORY, make_records("turn", 10, 20)),
    }
