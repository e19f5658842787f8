# chuk_context_budget/providers/conversation.py
"""
Providers built from a session's conversation.

- SystemPromptProvider (Core): the agent's system prompt plus the current query
- MessageHistoryProvider (History): prior turns, newest first
- FileReferenceProvider (Reference): files mentioned in the conversation

All three read messages through a ``MessagesFn`` callback so the data layer
keeps ownership of storage.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from chuk_context_budget.models import TierKind
from chuk_context_budget.providers.base import ProviderHealthTracker, RawRecord, TierProvider

logger = logging.getLogger(__name__)

MessagesFn = Callable[[str], Awaitable[Sequence[dict[str, Any]]]]
"""Callback: session_id -> chat messages (``role``/``content`` dicts), oldest first."""

SYSTEM_PROMPTS: dict[str, str] = {
    "supervisor": (
        "You are the Supervisor agent, responsible for coordinating other agents and managing workflows.\n"
        "Your role is to analyze user queries, route them to the appropriate agent, and synthesize responses.\n"
        "You have access to Dojo, Librarian, and Debugger agents."
    ),
    "dojo": (
        "You are the Dojo agent, a core thinking partner for exploring perspectives and generating next moves.\n"
        "Your role is to help users think through complex problems, consider multiple perspectives, "
        "and develop actionable plans."
    ),
    "librarian": (
        "You are the Librarian agent, specialized in semantic search and retrieval.\n"
        "Your role is to find relevant seed patches and project memory based on user queries."
    ),
    "debugger": (
        "You are the Debugger agent, focused on conflict resolution and reasoning validation.\n"
        "Your role is to analyze logical inconsistencies, validate reasoning chains, and resolve conflicts."
    ),
    "default": (
        "You are an AI assistant helping users with their tasks.\n"
        "You provide thoughtful, accurate, and helpful responses."
    ),
}

# "name.ext" or "dir/name.ext" surrounded by whitespace, line edges or a colon
FILE_REFERENCE_PATTERN = re.compile(r"(?:^|\s)([a-zA-Z0-9_\-/]+\.[a-zA-Z0-9]+)(?=\s|$|:)")


def _content(message: dict[str, Any]) -> str:
    content = message.get("content") or ""
    return content if isinstance(content, str) else str(content)


def extract_file_references(messages: Sequence[dict[str, Any]]) -> list[str]:
    """File-looking tokens in message content, first mention first, URLs skipped."""
    seen: dict[str, None] = {}
    for message in messages:
        for match in FILE_REFERENCE_PATTERN.finditer(_content(message)):
            ref = match.group(1)
            if "http" in ref or "www" in ref:
                continue
            seen.setdefault(ref, None)
    return list(seen)


class SystemPromptProvider(TierProvider):
    """Core tier: system prompt for the agent, then the current query."""

    tier = TierKind.CORE

    def __init__(
        self,
        messages: MessagesFn,
        agent: str = "default",
        prompts: dict[str, str] | None = None,
        health: ProviderHealthTracker | None = None,
    ):
        super().__init__(health=health)
        self._messages = messages
        self.agent = agent
        self.prompts = prompts or SYSTEM_PROMPTS

    def system_prompt(self) -> str:
        return self.prompts.get(self.agent.lower()) or self.prompts.get("default", "")

    async def _fetch(self, session_id: str) -> list[RawRecord]:
        records: list[RawRecord] = [{"id": "system_prompt", "text": self.system_prompt(), "source": self.agent}]
        messages = await self._messages(session_id)
        if messages:
            query = _content(messages[-1])
            if query:
                records.append({"id": "current_query", "text": f"Current Query: {query}", "source": "query"})
        return records


class MessageHistoryProvider(TierProvider):
    """History tier: prior turns rendered ``role: content``, newest first."""

    tier = TierKind.HISTORY

    def __init__(
        self,
        messages: MessagesFn,
        include_current: bool = False,
        health: ProviderHealthTracker | None = None,
    ):
        super().__init__(health=health)
        self._messages = messages
        self.include_current = include_current

    async def _fetch(self, session_id: str) -> list[RawRecord]:
        messages = list(await self._messages(session_id))
        if not self.include_current:
            messages = messages[:-1]

        records: list[RawRecord] = []
        for index in range(len(messages) - 1, -1, -1):
            message = messages[index]
            records.append(
                {
                    "id": str(message.get("id") or f"turn_{index}"),
                    "text": f"{message.get('role') or 'user'}: {_content(message)}",
                    "timestamp": message.get("timestamp"),
                    "relevance_hint": message.get("relevance"),
                    "source": "history",
                }
            )
        return records


class FileReferenceProvider(TierProvider):
    """
    Reference tier: files referenced in the conversation, read from ``base_dir``.

    Paths resolving outside ``base_dir`` are ignored. Files that cannot be
    read are skipped with a warning; the rest are still returned.
    """

    tier = TierKind.REFERENCE

    def __init__(
        self,
        messages: MessagesFn,
        base_dir: str | Path = ".",
        max_files: int = 10,
        health: ProviderHealthTracker | None = None,
    ):
        super().__init__(health=health)
        self._messages = messages
        self.base_dir = Path(base_dir).resolve()
        self.max_files = max_files

    def _resolve(self, ref: str) -> Path | None:
        path = (self.base_dir / ref).resolve()
        if not path.is_relative_to(self.base_dir):
            logger.warning(f"Ignoring file reference outside {self.base_dir}: {ref}")
            return None
        return path

    def _read(self, ref: str, path: Path) -> RawRecord | None:
        try:
            content = path.read_text(encoding="utf-8")
            mtime = path.stat().st_mtime
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to load referenced file {ref}: {e}")
            return None
        return {
            "id": ref,
            "text": f"File: {ref}\n\n{content}",
            "timestamp": datetime.fromtimestamp(mtime, tz=timezone.utc),
            "source": str(path),
        }

    async def _fetch(self, session_id: str) -> list[RawRecord]:
        messages = await self._messages(session_id)
        records: list[RawRecord] = []
        for ref in extract_file_references(messages)[: self.max_files]:
            path = self._resolve(ref)
            if path is None:
                continue
            record = await asyncio.to_thread(self._read, ref, path)
            if record is not None:
                records.append(record)
        return records
