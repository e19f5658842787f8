# chuk_context_budget/tokens.py
"""
Token counting with a bounded, process-wide memo cache.

Every tier measures its candidates through a TokenCounter so that budget
comparisons use one counting convention. Identical strings are counted once
per process lifetime (until evicted): the cache is keyed by the SHA-256 of
the text and evicts least-recently-used entries beyond ``max_entries``.

Usage::

    counter = TokenCounter(model="gpt-4o")
    counter.count("Hello world")

    # Exact word arithmetic, no tokenizer download
    counter = TokenCounter(tokenizer=Tokenizer.WORDS)
"""

from __future__ import annotations

import hashlib
import logging
import threading
from collections import OrderedDict
from collections.abc import Callable, Iterable
from enum import Enum

import tiktoken

from chuk_context_budget.config import DEFAULT_TOKEN_MODEL, DEFAULT_TOKENIZER, TOKEN_CACHE_SIZE
from chuk_context_budget.models.stats import TokenCacheStats

logger = logging.getLogger(__name__)

# Encoding used for models tiktoken has no mapping for
FALLBACK_ENCODING = "o200k_base"


class Tokenizer(str, Enum):
    """Counting conventions."""

    TIKTOKEN = "tiktoken"  # Sub-word units, matches OpenAI-style models
    WORDS = "words"  # Whitespace-delimited words


EncodeFn = Callable[[str], int]
"""Callback: text -> token count."""


def _tiktoken_encoder(model: str) -> EncodeFn:
    try:
        encoding = tiktoken.encoding_for_model(model)
    except KeyError:
        logger.warning("Model %s not known to tiktoken, using %s", model, FALLBACK_ENCODING)
        encoding = tiktoken.get_encoding(FALLBACK_ENCODING)

    def encode(text: str) -> int:
        return len(encoding.encode(text, disallowed_special=()))

    return encode


def _word_encoder(text: str) -> int:
    return len(text.split())


class TokenCounter:
    """
    Deterministic text -> token count with an LRU memo cache.

    ``count`` never raises for string input; the empty string costs 0.
    """

    def __init__(
        self,
        model: str = DEFAULT_TOKEN_MODEL,
        tokenizer: Tokenizer | str = DEFAULT_TOKENIZER,
        max_entries: int = TOKEN_CACHE_SIZE,
        encode: EncodeFn | None = None,
    ):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.model = model
        self.tokenizer = Tokenizer(tokenizer)
        self.max_entries = max_entries
        self._encode = encode
        self._cache: OrderedDict[str, int] = OrderedDict()
        self._lock = threading.Lock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
        }

    def _encoder(self) -> EncodeFn:
        if self._encode is None:
            if self.tokenizer == Tokenizer.WORDS:
                self._encode = _word_encoder
            else:
                self._encode = _tiktoken_encoder(self.model)
        return self._encode

    @staticmethod
    def _key(text: str) -> str:
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def count(self, text: str) -> int:
        """Token count of ``text``."""
        if not text:
            return 0

        key = self._key(text)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                self._stats["hits"] += 1
                return cached
            self._stats["misses"] += 1

        tokens = self._encoder()(text)

        with self._lock:
            self._cache[key] = tokens
            self._cache.move_to_end(key)
            while len(self._cache) > self.max_entries:
                self._cache.popitem(last=False)
                self._stats["evictions"] += 1
        return tokens

    def count_many(self, texts: Iterable[str]) -> int:
        """Sum of counts for several texts."""
        return sum(self.count(text) for text in texts)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    @property
    def size(self) -> int:
        return len(self._cache)

    def cache_stats(self) -> TokenCacheStats:
        with self._lock:
            return TokenCacheStats(
                hits=self._stats["hits"],
                misses=self._stats["misses"],
                evictions=self._stats["evictions"],
                size=len(self._cache),
                max_size=self.max_entries,
            )


# Process-wide default counter, created on first use
_default_counter: TokenCounter | None = None


def get_token_counter() -> TokenCounter:
    global _default_counter
    if _default_counter is None:
        _default_counter = TokenCounter()
    return _default_counter


def set_token_counter(counter: TokenCounter | None) -> None:
    """Replace (or with None, reset) the process-wide default counter."""
    global _default_counter
    _default_counter = counter


def count_tokens(text: str) -> int:
    return get_token_counter().count(text)
