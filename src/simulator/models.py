"""Pydantic models for the trading simulator.

This module defines the session state and everything a session owns
(positions, trades, rule violations), plus the value objects exchanged with
the engine (order requests, cost calculations, change-sets).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

CURRENT_SCHEMA_VERSION = 2

# Position id used for portfolio-wide rule violations
SESSION_SCOPE = "session"


class SessionStatus(str, Enum):
    """Lifecycle state of a practice session."""

    PAUSED = "paused"
    PLAYING = "playing"
    COMPLETED = "completed"


class TradingType(str, Enum):
    """Account type an order is placed through."""

    SPOT = "spot"
    MARGIN = "margin"


class TradeType(str, Enum):
    """Order side."""

    BUY = "buy"
    SELL = "sell"


class PositionType(str, Enum):
    """Direction of a position."""

    LONG = "long"
    SHORT = "short"


class PositionStatus(str, Enum):
    """Status of a position."""

    OPEN = "open"
    CLOSED = "closed"


class ViolationType(str, Enum):
    """Rulebook entries that can be breached."""

    STOP_LOSS = "stop_loss"
    POSITION_SIZE = "position_size"
    MAX_POSITIONS = "max_positions"
    LEVERAGE = "leverage"


class Severity(str, Enum):
    """Severity of a rule violation."""

    WARNING = "warning"
    CRITICAL = "critical"


class OrderRequest(BaseModel):
    """Market order submitted by the user.

    Share count and memo are checked by the engine, not here, so malformed
    requests surface as ``OrderValidationError`` rather than a schema error.
    """

    side: TradeType = Field(description="Buy or sell")
    trading_type: TradingType = Field(default=TradingType.SPOT)
    shares: int = Field(description="Number of shares (multiple of the lot)")
    memo: str = Field(default="", description="Trade rationale")


class TradeCalculation(BaseModel):
    """Cost breakdown of a fill at a given price."""

    model_config = ConfigDict(frozen=True)

    side: TradeType
    trading_type: TradingType
    shares: int
    price: Decimal
    notional: Decimal
    fee: Decimal
    slippage: Decimal
    total_cost: Decimal = Field(
        description="Cash paid (buy) or received (sell), fees included"
    )


class Position(BaseModel):
    """Open or closed position within a session."""

    position_id: str = Field(default_factory=lambda: str(uuid4()))
    session_id: str
    open_trade_id: str
    close_trade_id: str | None = None
    type: PositionType
    trading_type: TradingType
    shares: int = Field(gt=0)
    entry_price: Decimal = Field(gt=Decimal("0"))
    entry_date: date
    status: PositionStatus = PositionStatus.OPEN
    exit_price: Decimal | None = None
    exit_date: date | None = None
    profit: Decimal | None = None
    profit_rate: float | None = None

    @model_validator(mode="after")
    def validate_position(self) -> "Position":
        """Spot positions are long-only; closed positions carry exit data."""
        if self.trading_type == TradingType.SPOT and self.type == PositionType.SHORT:
            raise ValueError("spot positions must be long")
        if self.status == PositionStatus.CLOSED and (
            self.exit_price is None or self.profit is None
        ):
            raise ValueError("closed positions require exit_price and profit")
        return self

    @property
    def is_open(self) -> bool:
        """Check if the position is open."""
        return self.status == PositionStatus.OPEN

    @property
    def cost_basis(self) -> Decimal:
        """Entry notional."""
        return self.entry_price * self.shares


class Trade(BaseModel):
    """Immutable record of a single fill."""

    model_config = ConfigDict(frozen=True)

    trade_id: str = Field(default_factory=lambda: str(uuid4()))
    session_id: str
    position_id: str | None = None
    type: TradeType
    trading_type: TradingType
    is_short: bool = False
    trade_date: date
    price: Decimal
    shares: int
    fee: Decimal
    slippage: Decimal
    total_cost: Decimal
    memo: str = ""
    capital_after_trade: Decimal
    executed_at: datetime = Field(default_factory=datetime.now)


class RuleViolation(BaseModel):
    """Recorded breach of the risk rulebook."""

    model_config = ConfigDict(frozen=True)

    violation_id: str = Field(default_factory=lambda: str(uuid4()))
    session_id: str
    timestamp: datetime = Field(default_factory=datetime.now)
    bar_date: date | None = None
    position_id: str = Field(description="Position id or 'session'")
    type: ViolationType
    description: str
    severity: Severity

    @property
    def key(self) -> tuple[str, ViolationType]:
        """Deduplication key."""
        return self.position_id, self.type


class ViolationCheck(BaseModel):
    """Rule breach found by the monitor but not yet recorded."""

    model_config = ConfigDict(frozen=True)

    position_id: str
    type: ViolationType
    description: str
    severity: Severity

    @property
    def key(self) -> tuple[str, ViolationType]:
        """Deduplication key."""
        return self.position_id, self.type


class UnrealizedPnL(BaseModel):
    """Mark-to-market profit of an open position."""

    position_id: str
    mark_price: Decimal
    pnl: Decimal
    pnl_percent: float


class EquityPoint(BaseModel):
    """Mark-to-market account value at a bar."""

    bar_date: date
    equity: Decimal


class Session(BaseModel):
    """State of one practice run.

    The session exclusively owns its positions, trades and violations.
    ``current_day`` counts bars from ``practice_start_index``.
    """

    schema_version: int = Field(default=CURRENT_SCHEMA_VERSION)
    session_id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str = Field(min_length=1)
    symbol: str
    stock_name: str
    initial_capital: Decimal = Field(gt=Decimal("0"))
    current_capital: Decimal
    period_days: int = Field(ge=1)
    practice_start_index: int = Field(default=0, ge=0)
    current_day: int = Field(default=0, ge=0)
    status: SessionStatus = SessionStatus.PAUSED
    playback_speed: float = Field(default=5.0, gt=0.0)
    ma_periods: list[int] = Field(default_factory=list)

    trade_count: int = Field(default=0, ge=0)
    win_count: int = Field(default=0, ge=0)
    win_rate: float = Field(default=0.0, ge=0.0, le=100.0)
    rule_violation_count: int = Field(default=0, ge=0)
    max_drawdown: float = Field(default=0.0, ge=0.0)
    equity_curve: list[EquityPoint] = Field(default_factory=list)

    positions: list[Position] = Field(default_factory=list)
    trades: list[Trade] = Field(default_factory=list)
    violations: list[RuleViolation] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None
    data_start_date: date | None = None
    data_end_date: date | None = None
    practice_start_date: date | None = None
    reflection: str | None = None

    @model_validator(mode="after")
    def validate_progress(self) -> "Session":
        """Ensure current_day stays within the practice period."""
        if self.current_day > self.period_days - 1:
            raise ValueError(
                f"current_day ({self.current_day}) exceeds "
                f"period_days - 1 ({self.period_days - 1})"
            )
        if self.schema_version != CURRENT_SCHEMA_VERSION:
            raise ValueError(
                f"Unsupported schema_version {self.schema_version}; "
                "migrate the document before loading"
            )
        return self

    @property
    def current_index(self) -> int:
        """Index of the current bar in the full price series."""
        return self.practice_start_index + self.current_day

    @property
    def terminal_index(self) -> int:
        """Index of the last bar of the practice period."""
        return self.practice_start_index + self.period_days - 1

    @property
    def is_completed(self) -> bool:
        """Check if the session has finished."""
        return self.status == SessionStatus.COMPLETED

    @property
    def open_positions(self) -> list[Position]:
        """Open positions in opening order."""
        return [p for p in self.positions if p.is_open]

    @property
    def closed_positions(self) -> list[Position]:
        """Closed positions in opening order."""
        return [p for p in self.positions if not p.is_open]

    @property
    def recorded_violation_keys(self) -> set[tuple[str, ViolationType]]:
        """Keys of violations already recorded for this session."""
        return {v.key for v in self.violations}

    def get_position(self, position_id: str) -> Position | None:
        """Find a position by id."""
        for position in self.positions:
            if position.position_id == position_id:
                return position
        return None


class ChangeSet(BaseModel):
    """What a single engine operation changed."""

    trades: list[Trade] = Field(default_factory=list)
    opened_positions: list[Position] = Field(default_factory=list)
    closed_positions: list[Position] = Field(default_factory=list)
    violations: list[RuleViolation] = Field(default_factory=list)
    advisories: list[ViolationCheck] = Field(
        default_factory=list, description="Pre-trade warnings, never recorded"
    )
    previous_status: SessionStatus | None = None
    status: SessionStatus | None = None
    day_advanced: bool = False
    completed: bool = False
    settings_changed: bool = Field(
        default=False, description="Playback speed or reflection was updated"
    )

    @property
    def status_changed(self) -> bool:
        """Check if the operation changed the session status."""
        return self.previous_status != self.status

    @property
    def is_empty(self) -> bool:
        """Check if nothing needs to be persisted."""
        return not (
            self.trades
            or self.opened_positions
            or self.closed_positions
            or self.violations
            or self.status_changed
            or self.day_advanced
            or self.settings_changed
        )


class EngineResult(BaseModel):
    """Updated session plus the change-set that produced it."""

    session: Session
    changes: ChangeSet
