"""In-memory session store.

Sessions are kept as JSON documents so that callers never share mutable
state with the store.
"""

from src.simulator.models import Session
from src.storage.base import SessionStore, SessionSummary


class InMemorySessionStore(SessionStore):
    """Session store backed by a dictionary."""

    def __init__(self) -> None:
        """Initialize an empty store."""
        super().__init__()
        self._documents: dict[tuple[str, str], str] = {}

    def list_sessions(self, owner_id: str) -> list[SessionSummary]:
        """List an owner's sessions, newest first."""
        sessions = [
            Session.model_validate_json(doc)
            for (owner, _), doc in self._documents.items()
            if owner == owner_id
        ]
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return [SessionSummary.from_session(s) for s in sessions]

    def get(self, owner_id: str, session_id: str) -> Session | None:
        """Fetch a session, or None if the owner has no such session."""
        document = self._documents.get((owner_id, session_id))
        if document is None:
            return None
        return Session.model_validate_json(document)

    def _write(self, owner_id: str, session: Session) -> None:
        self._documents[(owner_id, session.session_id)] = session.model_dump_json()

    def _remove(self, owner_id: str, session_id: str) -> bool:
        return self._documents.pop((owner_id, session_id), None) is not None

    def __len__(self) -> int:
        return len(self._documents)
