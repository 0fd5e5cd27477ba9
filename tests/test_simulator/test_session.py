"""Tests for the live session orchestrator."""

import time
from decimal import Decimal

import pytest

from src.market.indicators import Timeframe
from src.market.models import PracticeWindow
from src.market.providers.memory import InMemoryPriceProvider
from src.simulator.engine import SessionEngine
from src.simulator.errors import InvalidOperationError
from src.simulator.models import (
    OrderRequest,
    Session,
    SessionStatus,
    TradeType,
)
from src.simulator.session import SessionEvent, TradingSession
from src.storage.base import PersistenceError
from src.storage.memory import InMemorySessionStore
from src.storage.sync import SessionSynchronizer
from tests.conftest import ManualScheduler, build_window


class FlakyStore(InMemorySessionStore):
    """In-memory store whose writes can be switched off."""

    def __init__(self) -> None:
        super().__init__()
        self.fail = False
        self.attempts = 0

    def _write(self, owner_id: str, session: Session) -> None:
        self.attempts += 1
        if self.fail:
            raise PersistenceError("disk full")
        super()._write(owner_id, session)


BUY = OrderRequest(side=TradeType.BUY, shares=100, memo="Breakout")


@pytest.fixture
def store() -> InMemorySessionStore:
    """Empty in-memory store."""
    return InMemorySessionStore()


@pytest.fixture
def live(
    engine: SessionEngine,
    flat_window: PracticeWindow,
    store: InMemorySessionStore,
    scheduler: ManualScheduler,
) -> TradingSession:
    """Persisted session on a flat ten-bar window."""
    return TradingSession.create(
        engine, flat_window, "alice", store=store, scheduler=scheduler
    )


def _stored(store: InMemorySessionStore, live: TradingSession) -> Session:
    return store.load_session("alice", live.session.session_id)


class TestCreateAndLoad:
    """Tests for creating and reloading sessions."""

    def test_create_persists(
        self, live: TradingSession, store: InMemorySessionStore
    ) -> None:
        """Test the new session is written before any play."""
        assert len(store) == 1
        assert _stored(store, live).current_day == 0
        assert not live.is_dirty

    def test_create_without_store(
        self, engine: SessionEngine, flat_window: PracticeWindow
    ) -> None:
        """Test sessions can run without persistence."""
        live = TradingSession.create(engine, flat_window, "alice")
        live.step()
        assert live.session.current_day == 1
        assert not live.is_dirty

    def test_load_rebuilds_prices(
        self,
        live: TradingSession,
        engine: SessionEngine,
        store: InMemorySessionStore,
        flat_window: PracticeWindow,
    ) -> None:
        """Test loading re-fetches the window the session was built on."""
        live.step()
        provider = InMemoryPriceProvider(flat_window.prices)

        loaded = TradingSession.load(
            engine, store, "alice", live.session.session_id, provider
        )

        assert loaded.session.current_day == 1
        assert loaded.prices == flat_window.prices
        assert loaded.current_bar() == flat_window.prices[6]

    def test_playing_session_loads_paused(
        self,
        live: TradingSession,
        engine: SessionEngine,
        store: InMemorySessionStore,
        flat_window: PracticeWindow,
    ) -> None:
        """Test a session saved mid-playback comes back paused."""
        live.start()
        assert _stored(store, live).status == SessionStatus.PLAYING

        loaded = TradingSession.load(
            engine,
            store,
            "alice",
            live.session.session_id,
            InMemoryPriceProvider(flat_window.prices),
        )
        assert loaded.status == SessionStatus.PAUSED


class TestPlayback:
    """Tests for timer-driven play."""

    def test_tick_advances_and_saves(
        self,
        live: TradingSession,
        scheduler: ManualScheduler,
        store: InMemorySessionStore,
    ) -> None:
        """Test each tick is committed to the store."""
        live.start()
        scheduler.run_next()

        assert live.session.current_day == 1
        assert _stored(store, live).current_day == 1
        assert len(scheduler.pending) == 1

    def test_events_emitted(
        self, live: TradingSession, scheduler: ManualScheduler
    ) -> None:
        """Test subscribers see every committed operation."""
        events: list[SessionEvent] = []
        unsubscribe = live.subscribe(events.append)

        live.start()
        scheduler.run_next()
        live.pause()
        unsubscribe()
        live.step()

        assert [e.operation for e in events] == ["start", "advance", "pause"]
        assert all(e.synced for e in events)
        assert events[1].changes.day_advanced

    def test_order_pauses_playback(
        self,
        live: TradingSession,
        scheduler: ManualScheduler,
        store: InMemorySessionStore,
    ) -> None:
        """Test an order stops the timer and pauses the session."""
        live.start()
        live.submit_order(BUY)

        assert live.status == SessionStatus.PAUSED
        assert not live.controller.is_running
        assert scheduler.pending == []
        assert len(_stored(store, live).trades) == 1

    def test_playback_completes_session(
        self,
        engine: SessionEngine,
        store: InMemorySessionStore,
        scheduler: ManualScheduler,
    ) -> None:
        """Test playing through the last bar completes the session."""
        window = build_window([1000, 1010, 1020])
        live = TradingSession.create(
            engine, window, "alice", store=store, scheduler=scheduler
        )

        live.start()
        for _ in range(3):
            scheduler.run_next()

        assert live.status == SessionStatus.COMPLETED
        assert live.session.current_day == 2
        assert scheduler.pending == []
        assert _stored(store, live).status == SessionStatus.COMPLETED

    def test_speed_change_takes_effect_next_tick(
        self, live: TradingSession, scheduler: ManualScheduler
    ) -> None:
        """Test the current wait keeps the old speed."""
        live.start()
        live.set_playback_speed(1.0)

        assert scheduler.pending[0].delay == 5.0
        scheduler.run_next()
        assert scheduler.pending[0].delay == 1.0

    def test_step_rejected_while_playing(self, live: TradingSession) -> None:
        """Test manual stepping requires a paused session."""
        live.start()
        with pytest.raises(InvalidOperationError):
            live.step()

        live.pause()
        live.step()
        assert live.session.current_day == 1

    def test_close_stops_timer(
        self, live: TradingSession, scheduler: ManualScheduler
    ) -> None:
        """Test close cancels the outstanding tick."""
        live.start()
        assert live.close()
        assert scheduler.pending == []


class TestPersistenceFailures:
    """Tests for write-through behaviour when the store fails."""

    def test_failed_write_keeps_playing(
        self,
        engine: SessionEngine,
        flat_window: PracticeWindow,
        scheduler: ManualScheduler,
    ) -> None:
        """Test gameplay continues and the state is flushed later."""
        store = FlakyStore()
        session = engine.create_session(flat_window, "alice").session
        synchronizer = SessionSynchronizer(store, "alice", wait_multiplier=0)
        live = TradingSession(
            engine, session, flat_window.prices, synchronizer, scheduler
        )
        events: list[SessionEvent] = []
        live.subscribe(events.append)

        store.fail = True
        live.step()

        assert live.session.current_day == 1
        assert live.is_dirty
        assert not events[-1].synced
        assert store.attempts == 1

        store.fail = False
        assert live.flush()
        assert not live.is_dirty
        assert store.load_session("alice", session.session_id).current_day == 1

    def test_failing_store_does_not_block_orders(
        self,
        engine: SessionEngine,
        flat_window: PracticeWindow,
        scheduler: ManualScheduler,
    ) -> None:
        """Test orders and steps make one write attempt without backoff waits."""
        store = FlakyStore()
        store.fail = True
        session = engine.create_session(flat_window, "alice").session
        synchronizer = SessionSynchronizer(store, "alice", wait_multiplier=2.0)
        live = TradingSession(
            engine, session, flat_window.prices, synchronizer, scheduler
        )

        started = time.monotonic()
        live.submit_order(BUY)
        live.step()
        elapsed = time.monotonic() - started

        assert elapsed < 1.0
        assert store.attempts == 2
        assert live.is_dirty
        assert live.session.current_day == 1

    def test_listener_errors_are_contained(self, live: TradingSession) -> None:
        """Test a failing subscriber does not break the operation."""

        def broken(event: SessionEvent) -> None:
            raise RuntimeError("listener bug")

        live.subscribe(broken)
        live.step()
        assert live.session.current_day == 1


class TestViews:
    """Tests for read-only chart and position views."""

    def test_visible_prices_and_averages(self, live: TradingSession) -> None:
        """Test averages align with the visible bars."""
        visible = live.visible_prices()
        averages = live.moving_averages()

        assert len(visible) == 6
        assert sorted(averages) == [5, 10, 20, 50, 100]
        assert averages[5][-1] == pytest.approx(1000.0)
        assert averages[10][-1] is None

    def test_weekly_view(self, live: TradingSession) -> None:
        """Test aggregated views never show more bars than daily."""
        assert len(live.visible_prices(Timeframe.WEEKLY)) <= len(
            live.visible_prices()
        )

    def test_unrealized_and_pending(self, live: TradingSession) -> None:
        """Test open position marks and pending breaches."""
        live.submit_order(BUY)

        pnl = live.unrealized_pnl()
        assert len(pnl) == 1
        assert pnl[0].pnl == Decimal("0")
        assert live.pending_violations() == []

    def test_preview_order(self, live: TradingSession) -> None:
        """Test previews leave the session untouched."""
        preview = live.preview_order(BUY)
        assert preview.calculation.total_cost == Decimal("100150.00")
        assert live.session.trades == []
