# chuk_context_budget/config.py
"""Environment-driven defaults for the context budget manager."""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _optional_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return float(raw)


# Tokenizer the counter mirrors: "tiktoken" or "words"
DEFAULT_TOKEN_MODEL = os.getenv("CHUK_BUDGET_TOKEN_MODEL", "gpt-4o-mini")
DEFAULT_TOKENIZER = os.getenv("CHUK_BUDGET_TOKENIZER", "tiktoken")
TOKEN_CACHE_SIZE = int(os.getenv("CHUK_BUDGET_TOKEN_CACHE_SIZE", "4096"))

# Per-session ceilings used when a session has no explicit configuration
DEFAULT_SESSION_TOKEN_CEILING = int(os.getenv("CHUK_BUDGET_SESSION_TOKENS", "50000"))
DEFAULT_SESSION_COST_CEILING = _optional_float("CHUK_BUDGET_SESSION_COST")

# Budget health buckets
WARN_THRESHOLD = float(os.getenv("CHUK_BUDGET_WARN_THRESHOLD", "0.6"))
CRITICAL_THRESHOLD = float(os.getenv("CHUK_BUDGET_CRITICAL_THRESHOLD", "0.8"))

# Optional JSON file overriding the default pruning bracket table
PRUNING_TABLE_PATH = os.getenv("CHUK_BUDGET_PRUNING_TABLE")

# Reference tier condensation
SUMMARY_LINES = int(os.getenv("CHUK_BUDGET_SUMMARY_LINES", "10"))

# chuk-sessions persistence (backend chosen by chuk-sessions via SESSION_PROVIDER)
BUDGET_SANDBOX_ID = os.getenv("CHUK_BUDGET_SANDBOX_ID", "chuk-context-budget")
BUDGET_TTL_HOURS = int(os.getenv("CHUK_BUDGET_STATE_TTL_HOURS", "24"))
