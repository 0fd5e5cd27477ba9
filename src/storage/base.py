"""Session store contract.

A store is a plain repository of sessions keyed by owner and session id.
Saving replaces the whole session, child collections included. Callers that
need to react to changes subscribe explicitly and are notified after every
successful ``put`` or ``delete``.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel

from src.simulator.models import Session, SessionStatus

logger = logging.getLogger(__name__)


class SessionNotFoundError(Exception):
    """Raised when a session is not found."""

    pass


class PersistenceError(Exception):
    """Raised when a store cannot read or write a session."""

    pass


class SchemaVersionError(PersistenceError):
    """Raised when a stored document has an unsupported schema version."""

    pass


class StoreChangeType(str, Enum):
    """Kind of change a store reports."""

    PUT = "put"
    DELETE = "delete"


class StoreChange(BaseModel):
    """Notification sent to store subscribers."""

    change: StoreChangeType
    owner_id: str
    session_id: str


class SessionSummary(BaseModel):
    """Listing entry for a stored session."""

    session_id: str
    owner_id: str
    symbol: str
    stock_name: str
    status: SessionStatus
    current_day: int
    period_days: int
    initial_capital: Decimal
    current_capital: Decimal
    trade_count: int
    win_rate: float
    created_at: datetime

    @classmethod
    def from_session(cls, session: Session) -> "SessionSummary":
        """Build a summary from a full session."""
        return cls(
            session_id=session.session_id,
            owner_id=session.owner_id,
            symbol=session.symbol,
            stock_name=session.stock_name,
            status=session.status,
            current_day=session.current_day,
            period_days=session.period_days,
            initial_capital=session.initial_capital,
            current_capital=session.current_capital,
            trade_count=session.trade_count,
            win_rate=session.win_rate,
            created_at=session.created_at,
        )


StoreListener = Callable[[StoreChange], None]


class SessionStore(ABC):
    """Repository of practice sessions."""

    def __init__(self) -> None:
        """Initialize the listener registry."""
        self._listeners: list[StoreListener] = []

    @abstractmethod
    def list_sessions(self, owner_id: str) -> list[SessionSummary]:
        """List an owner's sessions, newest first."""
        pass

    @abstractmethod
    def get(self, owner_id: str, session_id: str) -> Session | None:
        """Fetch a session, or None if the owner has no such session."""
        pass

    @abstractmethod
    def _write(self, owner_id: str, session: Session) -> None:
        """Persist a session, replacing any stored version."""
        pass

    @abstractmethod
    def _remove(self, owner_id: str, session_id: str) -> bool:
        """Remove a session and its children; return whether it existed."""
        pass

    def put(self, owner_id: str, session: Session) -> None:
        """Store a session, replacing positions, trades and violations.

        Raises:
            PersistenceError: If the session belongs to another owner or the
                write fails
        """
        if session.owner_id != owner_id:
            raise PersistenceError(
                f"Session {session.session_id} belongs to {session.owner_id}, "
                f"not {owner_id}"
            )
        self._write(owner_id, session)
        self._notify(
            StoreChange(
                change=StoreChangeType.PUT,
                owner_id=owner_id,
                session_id=session.session_id,
            )
        )

    def delete(self, owner_id: str, session_id: str) -> bool:
        """Delete a session and everything it owns.

        Returns:
            True if a session was deleted
        """
        deleted = self._remove(owner_id, session_id)
        if deleted:
            self._notify(
                StoreChange(
                    change=StoreChangeType.DELETE,
                    owner_id=owner_id,
                    session_id=session_id,
                )
            )
        return deleted

    def load_session(self, owner_id: str, session_id: str) -> Session:
        """Fetch a session that must exist.

        Raises:
            SessionNotFoundError: If the owner has no such session
        """
        session = self.get(owner_id, session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found for {owner_id}")
        return session

    def save_session(self, owner_id: str, session: Session) -> None:
        """Alias of ``put``."""
        self.put(owner_id, session)

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a change listener.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: StoreChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception(f"Store listener failed on {change.change.value}")
