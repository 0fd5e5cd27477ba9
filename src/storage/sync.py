"""Write-through persistence of the active session.

Gameplay never waits on storage. ``save`` makes a single write attempt and,
if it fails, keeps the session as a pending write and marks it dirty.
``flush`` retries the pending write with exponential backoff and is meant to
be called outside the session lock (on close, or from a background caller).
"""

import logging
import threading

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.simulator.models import Session
from src.storage.base import PersistenceError, SessionStore

logger = logging.getLogger(__name__)


class SessionSynchronizer:
    """Writes committed session states to a store.

    Store writes are serialised by an internal lock. A ``save`` arriving
    while a ``flush`` is writing only queues its state; the flush picks it
    up before returning.

    Attributes:
        store: Destination store
        owner_id: Owner the sessions are saved under
        max_attempts: Write attempts per flush before giving up
    """

    def __init__(
        self,
        store: SessionStore,
        owner_id: str,
        max_attempts: int = 3,
        wait_multiplier: float = 0.5,
        wait_max: float = 4.0,
    ) -> None:
        """Initialize the synchronizer.

        Args:
            store: Destination store
            owner_id: Owner the sessions are saved under
            max_attempts: Write attempts per flush before giving up
            wait_multiplier: Exponential backoff multiplier in seconds
            wait_max: Maximum wait between attempts in seconds
        """
        self.store = store
        self.owner_id = owner_id
        self.max_attempts = max_attempts
        self.wait_multiplier = wait_multiplier
        self.wait_max = wait_max
        self._pending: Session | None = None
        self._last_error: Exception | None = None
        self._state_lock = threading.Lock()
        self._write_lock = threading.Lock()

    @property
    def is_dirty(self) -> bool:
        """Check if a committed state has not reached the store yet."""
        return self._pending is not None

    @property
    def pending(self) -> Session | None:
        """The session state waiting to be written, if any."""
        return self._pending

    @property
    def last_error(self) -> Exception | None:
        """Error from the most recent failed write."""
        return self._last_error

    def save(self, session: Session) -> bool:
        """Write a session once, replacing any older pending state.

        Never sleeps or retries. If a flush is already writing, the state is
        only queued and the flush writes it.

        Returns:
            True if the store accepted the write
        """
        with self._state_lock:
            self._pending = session
        if not self._write_lock.acquire(blocking=False):
            return False
        try:
            return self._write_pending(attempts=1)
        finally:
            self._write_lock.release()

    def flush(self) -> bool:
        """Retry the pending write with backoff, if anything is pending.

        Returns:
            True if nothing is pending after the call
        """
        with self._write_lock:
            return self._write_pending(attempts=self.max_attempts)

    def _write_pending(self, attempts: int) -> bool:
        while True:
            with self._state_lock:
                session = self._pending
            if session is None:
                return True

            try:
                for attempt in self._retrying(attempts):
                    with attempt:
                        self.store.save_session(self.owner_id, session)
            except PersistenceError as e:
                self._record_failure(session, e, attempts)
                return False

            with self._state_lock:
                # A newer state queued during the write is written next
                if self._pending is session:
                    self._pending = None
                recovered = self._last_error is not None
                self._last_error = None
            if recovered:
                logger.info(f"Session {session.session_id} synchronised after failure")

    def _retrying(self, attempts: int) -> Retrying:
        return Retrying(
            retry=retry_if_exception_type(PersistenceError),
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(
                multiplier=self.wait_multiplier, min=0, max=self.wait_max
            ),
            reraise=True,
        )

    def _record_failure(
        self, session: Session, error: Exception, attempts: int
    ) -> None:
        with self._state_lock:
            first_failure = self._last_error is None
            self._last_error = error
        if first_failure:
            logger.error(
                f"Failed to persist session {session.session_id} after {attempts} "
                f"attempt(s); keeping it as a pending write: {error}"
            )
        else:
            logger.warning(f"Session {session.session_id} still unsynced: {error}")
