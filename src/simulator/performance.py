"""Performance statistics for practice sessions.

Trade statistics are computed from closed positions only, for one session or
pooled across several. The cross-session summary covers completed sessions
and normalises returns to a month of 20 trading days.
"""

from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, Field

from src.simulator.config import CENT
from src.simulator.models import Position, Session, SessionStatus
from src.simulator.positions import calculate_win_rate

BARS_PER_MONTH = 20

ZERO = Decimal("0")


class TradeStatistics(BaseModel):
    """Profit statistics over a set of closed positions."""

    closed_trades: int = Field(default=0, ge=0, description="Closed positions")
    winning_trades: int = Field(default=0, ge=0, description="Positions with profit")
    losing_trades: int = Field(default=0, ge=0, description="Positions with loss")
    win_rate: float = Field(default=0.0, description="Winning share in percent")
    average_profit: Decimal = Field(
        default=ZERO, description="Mean profit of winning positions"
    )
    average_loss: Decimal = Field(
        default=ZERO, description="Mean loss of losing positions (negative)"
    )
    max_profit: Decimal = Field(default=ZERO, description="Largest single profit")
    max_loss: Decimal = Field(
        default=ZERO, description="Largest single loss (negative)"
    )


class PerformanceSummary(BaseModel):
    """Results across completed sessions."""

    total_sessions: int = Field(default=0, ge=0, description="Completed sessions")
    profitable_sessions: int = Field(
        default=0, ge=0, description="Sessions ending above initial capital"
    )
    total_trades: int = Field(default=0, ge=0, description="Closed positions")
    average_win_rate: float = Field(
        default=0.0, description="Mean of the session win rates"
    )
    total_profit: Decimal = Field(
        default=ZERO, description="Sum of capital gained or lost"
    )
    total_profit_percent: float = Field(
        default=0.0, description="Sum of the session returns in percent"
    )
    monthly_return: float = Field(
        default=0.0, description="Mean session return scaled to 20 bars"
    )
    trades: TradeStatistics = Field(default_factory=TradeStatistics)


def _mean(values: Sequence[Decimal]) -> Decimal:
    if not values:
        return ZERO
    return (sum(values, start=ZERO) / len(values)).quantize(
        CENT, rounding=ROUND_HALF_UP
    )


def calculate_trade_statistics(positions: Iterable[Position]) -> TradeStatistics:
    """Summarise profits and losses of the closed positions given.

    Open positions are ignored. Averages are rounded to the cent; a side with
    no positions reports zero.
    """
    profits = [
        p.profit for p in positions if not p.is_open and p.profit is not None
    ]
    wins = [p for p in profits if p > 0]
    losses = [p for p in profits if p < 0]

    return TradeStatistics(
        closed_trades=len(profits),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=calculate_win_rate(len(wins), len(profits)),
        average_profit=_mean(wins),
        average_loss=_mean(losses),
        max_profit=max(wins, default=ZERO),
        max_loss=min(losses, default=ZERO),
    )


def session_return_percent(session: Session) -> float:
    """Capital change of a session relative to its initial capital."""
    change = session.current_capital - session.initial_capital
    return float(change / session.initial_capital * 100)


def summarize_sessions(sessions: Iterable[Session]) -> PerformanceSummary:
    """Aggregate results of the completed sessions given.

    Sessions still in progress are skipped. With no completed session every
    figure is zero.
    """
    completed = [s for s in sessions if s.status == SessionStatus.COMPLETED]
    if not completed:
        return PerformanceSummary()

    returns = [session_return_percent(s) for s in completed]
    total_percent = sum(returns)
    average_days = sum(s.period_days for s in completed) / len(completed)
    average_return = total_percent / len(completed)
    monthly = average_return / average_days * BARS_PER_MONTH if average_days else 0.0

    return PerformanceSummary(
        total_sessions=len(completed),
        profitable_sessions=sum(
            1 for s in completed if s.current_capital > s.initial_capital
        ),
        total_trades=sum(s.trade_count for s in completed),
        average_win_rate=sum(s.win_rate for s in completed) / len(completed),
        total_profit=sum(
            (s.current_capital - s.initial_capital for s in completed), start=ZERO
        ),
        total_profit_percent=total_percent,
        monthly_return=monthly,
        trades=calculate_trade_statistics(
            p for s in completed for p in s.positions
        ),
    )
