# chuk_context_budget/storage.py
"""
Persistence backends for per-session budget state.

The in-memory view held by the BudgetTracker is the source of truth for the
running process; a store only lets totals survive a restart. Every saved
state carries a ``version`` and stores keep the highest version they have
seen, so two saves racing each other can never regress persisted totals.

Design principles:
- Async-native: All I/O operations are async
- Pydantic-native: States are serialized with model_dump_json
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Protocol, runtime_checkable

from chuk_sessions import SessionManager as ChukSessionManager
from pydantic import BaseModel, Field, PrivateAttr, ValidationError

from chuk_context_budget.config import BUDGET_SANDBOX_ID, BUDGET_TTL_HOURS
from chuk_context_budget.exceptions import BudgetStoreError
from chuk_context_budget.models import BudgetState

logger = logging.getLogger(__name__)

# chuk-sessions entries holding budget state
KEY_PREFIX = "budget-"
STATE_METADATA_KEY = "budget_state"
SESSION_TYPE = "context_budget"


@runtime_checkable
class BudgetStore(Protocol):
    """Protocol for budget state persistence."""

    async def load(self, session_id: str) -> BudgetState | None: ...

    async def save(self, state: BudgetState) -> None: ...

    async def delete(self, session_id: str) -> bool: ...


class InMemoryBudgetStore(BaseModel):
    """
    Simple in-memory store for testing/development.

    Not persistent - states are lost when the process exits.
    """

    states: dict[str, str] = Field(default_factory=dict, description="session_id -> state JSON")
    writes: int = Field(default=0)

    _versions: dict[str, int] = PrivateAttr(default_factory=dict)

    async def load(self, session_id: str) -> BudgetState | None:
        data = self.states.get(session_id)
        if data is None:
            return None
        return BudgetState.model_validate_json(data)

    async def save(self, state: BudgetState) -> None:
        if state.version < self._versions.get(state.session_id, -1):
            return
        self._versions[state.session_id] = state.version
        self.states[state.session_id] = state.model_dump_json()
        self.writes += 1

    async def delete(self, session_id: str) -> bool:
        self._versions.pop(session_id, None)
        return self.states.pop(session_id, None) is not None

    def clear(self) -> None:
        self.states.clear()
        self._versions.clear()
        self.writes = 0


class ChukSessionsBudgetStore:
    """
    Budget state kept as custom metadata on a chuk-sessions session.

    The backend (in-process memory or redis) is selected by chuk-sessions
    through ``SESSION_PROVIDER``; entries expire after ``default_ttl_hours``.
    Each budget session maps to its own chuk-sessions id derived from a
    SHA-256 of the session id, so any id string is safe and distinct ids
    never share an entry.
    """

    def __init__(
        self,
        sandbox_id: str = BUDGET_SANDBOX_ID,
        default_ttl_hours: int = BUDGET_TTL_HOURS,
        sessions: ChukSessionManager | None = None,
    ):
        self.sandbox_id = sandbox_id
        self.sessions = sessions or ChukSessionManager(sandbox_id=sandbox_id, default_ttl_hours=default_ttl_hours)
        self._lock = asyncio.Lock()

    @staticmethod
    def storage_key(session_id: str) -> str:
        return f"{KEY_PREFIX}{hashlib.sha256(session_id.encode('utf-8')).hexdigest()}"

    async def _read(self, key: str) -> str | None:
        info = await self.sessions.get_session_info(key)
        if not info:
            return None
        return (info.get("custom_metadata") or {}).get(STATE_METADATA_KEY)

    async def load(self, session_id: str) -> BudgetState | None:
        key = self.storage_key(session_id)
        try:
            data = await self._read(key)
            if data is None:
                return None
            state = BudgetState.model_validate_json(data)
        except ValidationError as e:
            raise BudgetStoreError(f"Stored budget state for {session_id} is invalid: {e}") from e
        except Exception as e:
            raise BudgetStoreError(f"Failed to load budget state for {session_id}: {e}") from e

        if state.session_id != session_id:
            logger.warning(f"Budget entry {key} belongs to session {state.session_id}, not {session_id}")
            return None
        return state

    async def save(self, state: BudgetState) -> None:
        async with self._lock:
            try:
                existing = await self.load(state.session_id)
            except BudgetStoreError:
                logger.warning("Overwriting unreadable budget state for %s", state.session_id, exc_info=True)
                existing = None
            if existing is not None and existing.version > state.version:
                return

            key = self.storage_key(state.session_id)
            metadata = {STATE_METADATA_KEY: state.model_dump_json(), "session_type": SESSION_TYPE}
            try:
                if await self.sessions.validate_session(key):
                    await self.sessions.update_session_metadata(key, metadata)
                else:
                    await self.sessions.allocate_session(session_id=key, custom_metadata=metadata)
            except Exception as e:
                raise BudgetStoreError(f"Failed to save budget state for {state.session_id}: {e}") from e

    async def delete(self, session_id: str) -> bool:
        async with self._lock:
            try:
                return bool(await self.sessions.delete_session(self.storage_key(session_id)))
            except Exception as e:
                raise BudgetStoreError(f"Failed to delete budget state for {session_id}: {e}") from e
