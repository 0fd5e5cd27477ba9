"""Session lifecycle state machine.

The engine is the only place where a session changes. Every operation takes
a session value and the session's price window, works on a deep copy and
returns an ``EngineResult`` with the new session and a ``ChangeSet``
describing what happened. Invalid requests raise before anything is
copied, so a rejected operation never leaves partial state behind.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from src.market.models import PracticeWindow, StockPrice
from src.market.providers.base import DataNotAvailableError
from src.simulator.config import EngineConfig
from src.simulator.costs import OrderCostModel
from src.simulator.errors import (
    InsufficientCapitalError,
    InvalidOperationError,
    OrderValidationError,
)
from src.simulator.models import (
    ChangeSet,
    EngineResult,
    OrderRequest,
    RuleViolation,
    Session,
    SessionStatus,
    TradeCalculation,
    TradeType,
    UnrealizedPnL,
    ViolationCheck,
)
from src.simulator.positions import (
    PositionTracker,
    calculate_unrealized_pnl,
    position_type_for,
)
from src.simulator.rules import RuleMonitor

logger = logging.getLogger(__name__)


class OrderPreview(BaseModel):
    """What an order would cost, without placing it."""

    calculation: TradeCalculation
    advisories: list[ViolationCheck] = Field(default_factory=list)
    buying_power: Decimal
    max_shares: int
    affordable: bool


class SessionEngine:
    """Applies user and playback operations to practice sessions.

    Example:
        ```python
        engine = SessionEngine()
        result = engine.create_session(window, owner_id="alice")
        session = result.session

        result = engine.submit_order(
            session,
            window.prices,
            OrderRequest(side=TradeType.BUY, shares=100, memo="Breakout"),
        )
        session = result.session
        ```
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        cost_model: OrderCostModel | None = None,
        monitor: RuleMonitor | None = None,
        require_memo: bool = True,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Engine configuration (uses defaults if None)
            cost_model: Cost model (built from config if None)
            monitor: Rule monitor (built from config if None)
            require_memo: Reject orders without a trade rationale
        """
        self.config = config or EngineConfig()
        self.cost_model = cost_model or OrderCostModel(self.config.costs)
        self.monitor = monitor or RuleMonitor(self.config.rules)
        self.tracker = PositionTracker(self.cost_model)
        self.require_memo = require_memo

    # ------------------------------------------------------------------
    # Creation and lifecycle
    # ------------------------------------------------------------------

    def create_session(
        self,
        window: PracticeWindow,
        owner_id: str,
        initial_capital: Decimal | None = None,
        playback_speed: float | None = None,
        ma_periods: list[int] | None = None,
    ) -> EngineResult:
        """Create a paused session positioned on the first practice bar.

        Args:
            window: Price window from the originator
            owner_id: Owner reference
            initial_capital: Starting cash (configured default if None)
            playback_speed: Seconds per bar (configured default if None)
            ma_periods: Moving average periods (configured default if None)

        Returns:
            Result holding the new session
        """
        capital = (
            initial_capital
            if initial_capital is not None
            else self.config.initial_capital
        )
        session = Session(
            owner_id=owner_id,
            symbol=window.stock.symbol,
            stock_name=window.stock.name,
            initial_capital=capital,
            current_capital=capital,
            period_days=window.period_days,
            practice_start_index=window.practice_start_index,
            playback_speed=playback_speed or self.config.playback_speed,
            ma_periods=(
                list(ma_periods)
                if ma_periods is not None
                else list(self.config.ma_periods)
            ),
            data_start_date=window.start_date,
            data_end_date=window.end_date,
            practice_start_date=window.practice_start_date,
        )
        self.tracker.record_equity(session, self.current_bar(session, window.prices))

        logger.info(
            f"Created session {session.session_id} for {session.owner_id}: "
            f"{session.symbol} from {session.practice_start_date}, "
            f"{session.period_days} days, capital {capital}"
        )
        return EngineResult(
            session=session,
            changes=ChangeSet(status=session.status),
        )

    def start(self, session: Session) -> EngineResult:
        """Start or resume playback.

        Raises:
            InvalidOperationError: If the session is completed or already playing
        """
        self._ensure_active(session, "start")
        if session.status == SessionStatus.PLAYING:
            raise InvalidOperationError(
                f"Session {session.session_id} is already playing"
            )
        if session.current_day >= session.period_days:
            raise InvalidOperationError("No bars left to play")

        working = session.model_copy(deep=True)
        working.status = SessionStatus.PLAYING
        logger.info(
            f"Session {session.session_id} playing from day {session.current_day}"
        )
        return self._result(working, ChangeSet(previous_status=session.status))

    resume = start

    def pause(self, session: Session) -> EngineResult:
        """Pause playback; pausing a paused session is a no-op.

        Raises:
            InvalidOperationError: If the session is completed
        """
        self._ensure_active(session, "pause")

        working = session.model_copy(deep=True)
        working.status = SessionStatus.PAUSED
        if session.status != SessionStatus.PAUSED:
            logger.info(
                f"Session {session.session_id} paused at day {session.current_day}"
            )
        return self._result(working, ChangeSet(previous_status=session.status))

    def advance(self, session: Session, prices: Sequence[StockPrice]) -> EngineResult:
        """Move to the next bar, or complete the session at the terminal bar.

        Rules are evaluated against the new bar and new breaches recorded.

        Args:
            session: Session to advance
            prices: Full price window of the session

        Returns:
            Result; ``changes.completed`` is set when the terminal bar was passed

        Raises:
            InvalidOperationError: If the session is already completed
        """
        self._ensure_active(session, "advance")
        self.validate_price_window(session, prices)

        if session.current_day >= session.period_days - 1:
            return self.complete(session)

        working = session.model_copy(deep=True)
        working.current_day += 1
        bar = self.current_bar(working, prices)
        changes = ChangeSet(previous_status=session.status, day_advanced=True)

        self._record_violations(working, bar, changes)
        self.tracker.record_equity(working, bar)

        logger.debug(
            f"Session {session.session_id} advanced to day {working.current_day} "
            f"({bar.date}, close {bar.close})"
        )
        return self._result(working, changes)

    def complete(self, session: Session) -> EngineResult:
        """Finish the session; completed is terminal.

        Raises:
            InvalidOperationError: If the session is already completed
        """
        self._ensure_active(session, "complete")

        working = session.model_copy(deep=True)
        working.status = SessionStatus.COMPLETED
        working.completed_at = datetime.now()

        logger.info(
            f"Session {session.session_id} completed: capital "
            f"{working.current_capital}, {working.trade_count} trades, "
            f"win rate {working.win_rate:.1f}%, "
            f"{working.rule_violation_count} violations"
        )
        return self._result(
            working, ChangeSet(previous_status=session.status, completed=True)
        )

    def set_playback_speed(
        self, session: Session, seconds_per_bar: float
    ) -> EngineResult:
        """Change the playback speed; a wait already in flight is unaffected.

        Raises:
            ValueError: If the speed is not positive
        """
        if seconds_per_bar <= 0:
            raise ValueError(f"Playback speed must be positive, got {seconds_per_bar}")

        working = session.model_copy(deep=True)
        working.playback_speed = seconds_per_bar
        return self._result(
            working, ChangeSet(previous_status=session.status, settings_changed=True)
        )

    def record_reflection(self, session: Session, text: str) -> EngineResult:
        """Attach the post-session review to a completed session.

        Raises:
            InvalidOperationError: If the session is not completed
            ValueError: If the text is blank
        """
        if not session.is_completed:
            raise InvalidOperationError(
                "Reflections can only be recorded after completion"
            )
        if not text.strip():
            raise ValueError("Reflection text must not be empty")

        working = session.model_copy(deep=True)
        working.reflection = text.strip()
        return self._result(
            working, ChangeSet(previous_status=session.status, settings_changed=True)
        )

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def preview_order(
        self,
        session: Session,
        prices: Sequence[StockPrice],
        request: OrderRequest,
    ) -> OrderPreview:
        """Price an order at the current bar without placing it.

        Raises:
            OrderValidationError: If the share count is not tradable
        """
        self.validate_price_window(session, prices)
        bar = self.current_bar(session, prices)
        calculation = self.cost_model.calculate_order(
            request.side, bar.close, request.shares, request.trading_type
        )
        buying_power = self.cost_model.buying_power(
            session.current_capital, request.trading_type
        )
        return OrderPreview(
            calculation=calculation,
            advisories=self.monitor.pre_trade_check(session, request, calculation),
            buying_power=buying_power,
            max_shares=self.cost_model.calculate_max_shares(
                session.current_capital, bar.close, request.trading_type
            ),
            affordable=self._required_capital(calculation) <= buying_power,
        )

    def submit_order(
        self,
        session: Session,
        prices: Sequence[StockPrice],
        request: OrderRequest,
    ) -> EngineResult:
        """Fill a market order at the current close and open a position.

        Playing sessions are paused first. Pre-trade advisories are returned
        in the change-set but never block the order.

        Raises:
            InvalidOperationError: If the session is completed or the order is
                a spot sell
            OrderValidationError: If shares or memo are invalid
            InsufficientCapitalError: If the order exceeds buying power
        """
        self._ensure_active(session, "accept orders")
        position_type_for(request.side, request.trading_type)
        self.validate_price_window(session, prices)

        self.cost_model.validate_shares(request.shares)
        if self.require_memo and not request.memo.strip():
            raise OrderValidationError("A trade rationale (memo) is required")

        bar = self.current_bar(session, prices)
        calculation = self.cost_model.calculate_order(
            request.side, bar.close, request.shares, request.trading_type
        )
        buying_power = self.cost_model.buying_power(
            session.current_capital, request.trading_type
        )
        required = self._required_capital(calculation)
        if required > buying_power:
            raise InsufficientCapitalError(required, buying_power)

        advisories = self.monitor.pre_trade_check(session, request, calculation)

        working = session.model_copy(deep=True)
        working.status = self._paused_status(session)
        position, trade = self.tracker.open_position(working, request, calculation, bar)

        changes = ChangeSet(
            previous_status=session.status,
            trades=[trade],
            opened_positions=[position],
            advisories=advisories,
        )
        self._record_violations(working, bar, changes)
        self.tracker.record_equity(working, bar)
        return self._result(working, changes)

    def close_position(
        self,
        session: Session,
        prices: Sequence[StockPrice],
        position_id: str,
        memo: str = "",
    ) -> EngineResult:
        """Close an open position at the current close.

        Raises:
            InvalidOperationError: If the session is completed or the position
                is unknown or already closed
        """
        self._ensure_active(session, "close positions")
        self.validate_price_window(session, prices)

        bar = self.current_bar(session, prices)
        working = session.model_copy(deep=True)
        working.status = self._paused_status(session)
        position, trade = self.tracker.close_position(working, position_id, bar, memo)

        changes = ChangeSet(
            previous_status=session.status,
            trades=[trade],
            closed_positions=[position],
        )
        self._record_violations(working, bar, changes)
        self.tracker.record_equity(working, bar)
        return self._result(working, changes)

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    def evaluate_rules(
        self, session: Session, prices: Sequence[StockPrice]
    ) -> list[ViolationCheck]:
        """Breaches at the current bar not yet recorded on the session."""
        self.validate_price_window(session, prices)
        return self.monitor.evaluate(session, self.current_bar(session, prices).close)

    def unrealized_pnl(
        self, session: Session, prices: Sequence[StockPrice]
    ) -> list[UnrealizedPnL]:
        """Mark-to-market profit of each open position at the current bar."""
        mark = self.current_bar(session, prices).close
        return [calculate_unrealized_pnl(p, mark) for p in session.open_positions]

    @staticmethod
    def current_bar(session: Session, prices: Sequence[StockPrice]) -> StockPrice:
        """Bar at the session's current index."""
        return prices[session.current_index]

    @staticmethod
    def visible_prices(
        session: Session, prices: Sequence[StockPrice]
    ) -> list[StockPrice]:
        """Bars the user may see: history plus practice bars up to today."""
        return list(prices[: session.current_index + 1])

    @staticmethod
    def validate_price_window(session: Session, prices: Sequence[StockPrice]) -> None:
        """Ensure the price window covers the session's practice period.

        Raises:
            DataNotAvailableError: If bars are missing or for another symbol
        """
        if len(prices) <= session.terminal_index:
            raise DataNotAvailableError(
                f"Price window has {len(prices)} bars, session needs "
                f"{session.terminal_index + 1}"
            )
        if prices[0].symbol != session.symbol:
            raise DataNotAvailableError(
                f"Price window is for {prices[0].symbol}, "
                f"session trades {session.symbol}"
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _ensure_active(session: Session, action: str) -> None:
        if session.is_completed:
            raise InvalidOperationError(
                f"Cannot {action}: session {session.session_id} is completed"
            )

    @staticmethod
    def _paused_status(session: Session) -> SessionStatus:
        if session.status == SessionStatus.PLAYING:
            logger.info(f"Session {session.session_id} paused for order entry")
        return SessionStatus.PAUSED

    @staticmethod
    def _required_capital(calculation: TradeCalculation) -> Decimal:
        """Buying power an opening fill consumes.

        Buys need their full cost; short sales are bounded by their notional.
        """
        if calculation.side == TradeType.BUY:
            return calculation.total_cost
        return calculation.notional

    def _record_violations(
        self, session: Session, bar: StockPrice, changes: ChangeSet
    ) -> None:
        """Evaluate rules at the bar and append new breaches to the session."""
        for check in self.monitor.evaluate(session, bar.close):
            violation = RuleViolation(
                session_id=session.session_id,
                bar_date=bar.date,
                position_id=check.position_id,
                type=check.type,
                description=check.description,
                severity=check.severity,
            )
            session.violations.append(violation)
            changes.violations.append(violation)
            logger.warning(
                f"Rule violation in {session.session_id} on {bar.date}: "
                f"{check.type.value} ({check.severity.value}) {check.description}"
            )
        session.rule_violation_count = len(session.violations)

    @staticmethod
    def _result(session: Session, changes: ChangeSet) -> EngineResult:
        changes.status = session.status
        return EngineResult(session=session, changes=changes)

