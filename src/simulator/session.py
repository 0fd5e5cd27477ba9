"""Orchestrator for a live practice session.

``TradingSession`` owns the current session value, its price window, the
playback controller and the write-through synchronizer. Every operation runs
under one re-entrant lock shared with the playback tick, so a timer-driven
advance can never interleave with an order. Orders, closures, pauses and
manual steps stop playback before touching state; playback only resumes on
an explicit ``start``.
"""

import logging
import threading
from collections.abc import Callable, Sequence
from datetime import datetime

from pydantic import BaseModel, Field

from src.market.indicators import Timeframe, aggregate_timeframe, moving_averages
from src.market.models import PracticeWindow, StockPrice
from src.market.providers.base import DataNotAvailableError, PriceProvider
from src.simulator.engine import OrderPreview, SessionEngine
from src.simulator.models import (
    ChangeSet,
    EngineResult,
    OrderRequest,
    Session,
    SessionStatus,
    UnrealizedPnL,
    ViolationCheck,
)
from src.simulator.playback import PlaybackController, Scheduler
from src.storage.base import SessionStore
from src.storage.sync import SessionSynchronizer

logger = logging.getLogger(__name__)


class SessionEvent(BaseModel):
    """Emitted to subscribers after every committed operation."""

    operation: str
    session: Session
    changes: ChangeSet
    synced: bool = Field(description="Whether the state reached the store")
    emitted_at: datetime = Field(default_factory=datetime.now)


SessionListener = Callable[[SessionEvent], None]


class _PlaybackHooks:
    """Adapter exposing the session operations the controller drives."""

    def __init__(self, owner: "TradingSession") -> None:
        self._owner = owner

    def is_playing(self) -> bool:
        return self._owner.session.status == SessionStatus.PLAYING

    def at_terminal_bar(self) -> bool:
        session = self._owner.session
        return session.current_index >= session.terminal_index

    def advance(self) -> None:
        self._owner._advance()

    def complete(self) -> None:
        self._owner._apply("complete", self._owner.engine.complete(self._owner.session))

    def playback_speed(self) -> float:
        return self._owner.session.playback_speed


class TradingSession:
    """A session being played, with playback and persistence attached.

    Example:
        ```python
        live = TradingSession.create(engine, window, owner_id="alice", store=store)
        live.subscribe(lambda event: print(event.operation))
        live.start()
        ...
        live.submit_order(OrderRequest(side=TradeType.BUY, shares=100, memo="MA cross"))
        ```
    """

    def __init__(
        self,
        engine: SessionEngine,
        session: Session,
        prices: Sequence[StockPrice],
        synchronizer: SessionSynchronizer | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            engine: Engine applying operations
            session: Session to play
            prices: Full price window of the session
            synchronizer: Write-through persistence (none if None)
            scheduler: Playback scheduler (threading timers if None)

        Raises:
            DataNotAvailableError: If the prices do not cover the session
        """
        engine.validate_price_window(session, prices)

        self.engine = engine
        self.synchronizer = synchronizer
        self._session = session
        self._prices = list(prices)
        self._lock = threading.RLock()
        self._listeners: list[SessionListener] = []
        self.controller = PlaybackController(
            _PlaybackHooks(self), scheduler=scheduler, lock=self._lock
        )

        # A session saved while playing resumes paused
        if session.status == SessionStatus.PLAYING:
            self._session = engine.pause(session).session

    @classmethod
    def create(
        cls,
        engine: SessionEngine,
        window: PracticeWindow,
        owner_id: str,
        store: SessionStore | None = None,
        scheduler: Scheduler | None = None,
        **session_options,
    ) -> "TradingSession":
        """Create a new session from a window and persist it.

        Args:
            engine: Engine applying operations
            window: Price window from the originator
            owner_id: Owner reference
            store: Store to persist into (none if None)
            scheduler: Playback scheduler
            **session_options: Passed to ``SessionEngine.create_session``
        """
        result = engine.create_session(window, owner_id, **session_options)
        synchronizer = (
            SessionSynchronizer(store, owner_id) if store is not None else None
        )
        live = cls(engine, result.session, window.prices, synchronizer, scheduler)
        live._commit("create", result)
        return live

    @classmethod
    def load(
        cls,
        engine: SessionEngine,
        store: SessionStore,
        owner_id: str,
        session_id: str,
        provider: PriceProvider,
        scheduler: Scheduler | None = None,
    ) -> "TradingSession":
        """Load a stored session and re-fetch its price window.

        Raises:
            SessionNotFoundError: If the session does not exist
            DataNotAvailableError: If the price window cannot be rebuilt
        """
        session = store.load_session(owner_id, session_id)
        if session.data_start_date is None or session.data_end_date is None:
            raise DataNotAvailableError(
                f"Session {session_id} does not record its price window"
            )

        prices = provider.fetch_prices(
            session.symbol, session.data_start_date, session.data_end_date
        )
        logger.info(
            f"Loaded session {session_id} ({session.symbol}, day "
            f"{session.current_day}/{session.period_days}) with {len(prices)} bars"
        )
        return cls(
            engine, session, prices, SessionSynchronizer(store, owner_id), scheduler
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session:
        """Current session value."""
        return self._session

    @property
    def prices(self) -> list[StockPrice]:
        """Full price window, history included."""
        return list(self._prices)

    @property
    def status(self) -> SessionStatus:
        """Current lifecycle state."""
        return self._session.status

    @property
    def is_dirty(self) -> bool:
        """Check if the latest committed state has not been persisted."""
        return self.synchronizer is not None and self.synchronizer.is_dirty

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener for committed operations.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start or resume playback."""
        with self._lock:
            self._apply("start", self.engine.start(self._session))
            self.controller.start()

    def pause(self) -> None:
        """Pause playback."""
        with self._lock:
            self.controller.stop()
            self._apply("pause", self.engine.pause(self._session))

    def step(self) -> None:
        """Advance one bar manually; only allowed while paused."""
        with self._lock:
            self.controller.step()

    def set_playback_speed(self, seconds_per_bar: float) -> None:
        """Change playback speed; takes effect from the next scheduled tick."""
        with self._lock:
            self._apply(
                "set_playback_speed",
                self.engine.set_playback_speed(self._session, seconds_per_bar),
            )

    def submit_order(self, request: OrderRequest) -> EngineResult:
        """Place a market order at the current close, pausing playback."""
        with self._lock:
            self.controller.stop()
            result = self.engine.submit_order(self._session, self._prices, request)
            self._apply("submit_order", result)
            return result

    def close_position(self, position_id: str, memo: str = "") -> EngineResult:
        """Close a position at the current close, pausing playback."""
        with self._lock:
            self.controller.stop()
            result = self.engine.close_position(
                self._session, self._prices, position_id, memo
            )
            self._apply("close_position", result)
            return result

    def complete(self) -> None:
        """Finish the session early."""
        with self._lock:
            self.controller.stop()
            self._apply("complete", self.engine.complete(self._session))

    def record_reflection(self, text: str) -> None:
        """Store the post-session review."""
        with self._lock:
            self._apply(
                "record_reflection", self.engine.record_reflection(self._session, text)
            )

    def preview_order(self, request: OrderRequest) -> OrderPreview:
        """Price an order without placing it."""
        with self._lock:
            return self.engine.preview_order(self._session, self._prices, request)

    def flush(self) -> bool:
        """Retry a pending write with backoff.

        Does not take the session lock.

        Returns:
            True if nothing is left unsynced
        """
        if self.synchronizer is None:
            return True
        return self.synchronizer.flush()

    def close(self) -> bool:
        """Stop playback and flush pending writes."""
        self.controller.stop()
        return self.flush()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def current_bar(self) -> StockPrice:
        """Bar the session is on."""
        return self.engine.current_bar(self._session, self._prices)

    def visible_prices(
        self, timeframe: Timeframe = Timeframe.DAILY
    ) -> list[StockPrice]:
        """Bars up to today, optionally aggregated."""
        visible = self.engine.visible_prices(self._session, self._prices)
        return aggregate_timeframe(visible, timeframe)

    def moving_averages(
        self, timeframe: Timeframe = Timeframe.DAILY
    ) -> dict[int, list[float | None]]:
        """Moving averages of the visible bars for the session's periods."""
        return moving_averages(
            self.visible_prices(timeframe), self._session.ma_periods
        )

    def unrealized_pnl(self) -> list[UnrealizedPnL]:
        """Mark-to-market profit of open positions."""
        return self.engine.unrealized_pnl(self._session, self._prices)

    def pending_violations(self) -> list[ViolationCheck]:
        """Breaches at the current bar not yet recorded."""
        return self.engine.evaluate_rules(self._session, self._prices)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _advance(self) -> None:
        result = self.engine.advance(self._session, self._prices)
        self._apply("advance", result)
        if result.changes.completed:
            self.controller.stop()

    def _apply(self, operation: str, result: EngineResult) -> None:
        with self._lock:
            self._session = result.session
            self._commit(operation, result)

    def _commit(self, operation: str, result: EngineResult) -> None:
        if self.synchronizer is not None and not result.changes.is_empty:
            self.synchronizer.save(result.session)
        synced = not self.is_dirty

        event = SessionEvent(
            operation=operation,
            session=result.session,
            changes=result.changes,
            synced=synced,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Session listener failed on {operation}")
