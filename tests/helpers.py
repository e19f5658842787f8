# tests/helpers.py
"""Record and text builders shared by the test modules."""

from datetime import datetime, timedelta, timezone

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


def words(count: int, tag: str = "w") -> str:
    """Text costing exactly ``count`` tokens under the words tokenizer."""
    return " ".join([tag] * count)


def make_records(prefix: str, count: int, tokens: int, start: datetime = BASE_TIME) -> list[dict]:
    """``count`` records of ``tokens`` each; record ``{prefix}{count-1}`` is the newest."""
    return [
        {
            "id": f"{prefix}{i}",
            "text": words(tokens, f"{prefix}{i}"),
            "timestamp": (start + timedelta(minutes=i)).isoformat(),
        }
        for i in range(count)
    ]


def make_document(lines: int, words_per_line: int, tag: str = "doc") -> str:
    """``lines`` lines of ``words_per_line`` words each."""
    return "\n".join(words(words_per_line, f"{tag}{i}") for i in range(lines))


class RecordingSessions:
    """Dict-backed double for a chuk-sessions SessionManager."""

    def __init__(self):
        self.sessions: dict[str, dict] = {}
        self.allocated: list[str] = []

    async def allocate_session(self, session_id=None, custom_metadata=None, **kwargs):
        self.sessions[session_id] = {"session_id": session_id, "custom_metadata": dict(custom_metadata or {})}
        self.allocated.append(session_id)
        return session_id

    async def validate_session(self, session_id):
        return session_id in self.sessions

    async def get_session_info(self, session_id):
        return self.sessions.get(session_id)

    async def update_session_metadata(self, session_id, metadata):
        self.sessions[session_id]["custom_metadata"].update(metadata)
        return True

    async def delete_session(self, session_id):
        return self.sessions.pop(session_id, None) is not None
