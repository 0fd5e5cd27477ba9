"""Position and profit-and-loss bookkeeping.

Translates fills into position openings and closures, computes realized and
unrealized profit, and keeps the session's trade statistics and equity curve
current. Methods here mutate the session they are given; the engine only
ever hands them a working copy.
"""

import logging
from collections.abc import Sequence
from decimal import Decimal

from src.market.models import StockPrice
from src.simulator.costs import OrderCostModel
from src.simulator.errors import InvalidOperationError
from src.simulator.models import (
    EquityPoint,
    OrderRequest,
    Position,
    PositionStatus,
    PositionType,
    Session,
    Trade,
    TradeCalculation,
    TradeType,
    TradingType,
    UnrealizedPnL,
)

logger = logging.getLogger(__name__)


def position_type_for(side: TradeType, trading_type: TradingType) -> PositionType:
    """Direction of the position an opening order creates.

    Raises:
        InvalidOperationError: For spot sells, which may only exit an
            existing holding through position closure
    """
    if side == TradeType.BUY:
        return PositionType.LONG
    if trading_type == TradingType.SPOT:
        raise InvalidOperationError(
            "Spot sell orders are not allowed; close the long position instead"
        )
    return PositionType.SHORT


def calculate_unrealized_pnl(position: Position, mark_price: Decimal) -> UnrealizedPnL:
    """Mark-to-market profit of a position at the given price."""
    if position.type == PositionType.LONG:
        pnl = (mark_price - position.entry_price) * position.shares
    else:
        pnl = (position.entry_price - mark_price) * position.shares

    return UnrealizedPnL(
        position_id=position.position_id,
        mark_price=mark_price,
        pnl=pnl,
        pnl_percent=float(pnl / position.cost_basis * 100),
    )


def calculate_win_rate(win_count: int, total_count: int) -> float:
    """Percentage of winning trades; 0 when nothing has been closed."""
    if total_count == 0:
        return 0.0
    return win_count / total_count * 100


def calculate_max_drawdown(values: Sequence[Decimal | float]) -> float:
    """Largest peak-to-trough decline of a value series, in percent."""
    if not values:
        return 0.0

    peak = float(values[0])
    max_drawdown = 0.0
    for value in values:
        current = float(value)
        if current > peak:
            peak = current
        if peak > 0:
            drawdown = (peak - current) / peak * 100
            max_drawdown = max(max_drawdown, drawdown)
    return max_drawdown


def gross_exposure(positions: Sequence[Position], mark_price: Decimal) -> Decimal:
    """Sum of shares times price over the given positions."""
    return sum((p.shares * mark_price for p in positions), start=Decimal("0"))


def mark_to_market_equity(session: Session, mark_price: Decimal) -> Decimal:
    """Capital plus long holdings minus short liabilities at the mark."""
    equity = session.current_capital
    for position in session.open_positions:
        value = position.shares * mark_price
        equity += value if position.type == PositionType.LONG else -value
    return equity


class PositionTracker:
    """Opens and closes positions and maintains session statistics."""

    def __init__(self, cost_model: OrderCostModel | None = None) -> None:
        """Initialize the tracker.

        Args:
            cost_model: Cost model used to price closing fills.
        """
        self.cost_model = cost_model or OrderCostModel()

    def open_position(
        self,
        session: Session,
        request: OrderRequest,
        calculation: TradeCalculation,
        bar: StockPrice,
    ) -> tuple[Position, Trade]:
        """Record an opening fill and the position it creates.

        Buys debit the total cost; short sales credit the net proceeds.

        Args:
            session: Working copy of the session (mutated).
            request: The accepted order.
            calculation: Cost breakdown of the fill.
            bar: Current price bar.

        Returns:
            Tuple of (new position, opening trade).
        """
        position_type = position_type_for(request.side, request.trading_type)

        if request.side == TradeType.BUY:
            new_capital = session.current_capital - calculation.total_cost
        else:
            new_capital = session.current_capital + calculation.total_cost

        trade = Trade(
            session_id=session.session_id,
            type=request.side,
            trading_type=request.trading_type,
            is_short=position_type == PositionType.SHORT,
            trade_date=bar.date,
            price=calculation.price,
            shares=calculation.shares,
            fee=calculation.fee,
            slippage=calculation.slippage,
            total_cost=calculation.total_cost,
            memo=request.memo.strip(),
            capital_after_trade=new_capital,
        )
        position = Position(
            session_id=session.session_id,
            open_trade_id=trade.trade_id,
            type=position_type,
            trading_type=request.trading_type,
            shares=calculation.shares,
            entry_price=calculation.price,
            entry_date=bar.date,
        )
        trade = trade.model_copy(update={"position_id": position.position_id})

        session.current_capital = new_capital
        session.trades.append(trade)
        session.positions.append(position)

        logger.info(
            f"Opened {position.type.value}/{position.trading_type.value} "
            f"{position.shares} {session.symbol} @ {position.entry_price} "
            f"(total {calculation.total_cost}, capital {new_capital})"
        )
        return position, trade

    def close_position(
        self,
        session: Session,
        position_id: str,
        bar: StockPrice,
        memo: str = "",
    ) -> tuple[Position, Trade]:
        """Close an open position at the bar's close.

        Long: profit is sale proceeds minus entry notional. Short: profit is
        the net proceeds the short sale would have received at entry minus
        the net amount at exit; capital is debited by the exit amount.

        Args:
            session: Working copy of the session (mutated).
            position_id: Position to close.
            bar: Current price bar.
            memo: Closing rationale.

        Returns:
            Tuple of (closed position, closing trade).

        Raises:
            InvalidOperationError: If the position does not exist or is closed.
        """
        index, position = self._find_open_position(session, position_id)
        exit_price = bar.close

        exit_calc = self.cost_model.calculate_sell_order(
            exit_price, position.shares, position.trading_type
        )

        if position.type == PositionType.LONG:
            capital_change = exit_calc.total_cost
            profit = exit_calc.total_cost - position.cost_basis
            trade_type = TradeType.SELL
        else:
            entry_calc = self.cost_model.calculate_sell_order(
                position.entry_price, position.shares, position.trading_type
            )
            capital_change = -exit_calc.total_cost
            profit = entry_calc.total_cost - exit_calc.total_cost
            trade_type = TradeType.BUY

        new_capital = session.current_capital + capital_change
        trade = Trade(
            session_id=session.session_id,
            position_id=position.position_id,
            type=trade_type,
            trading_type=position.trading_type,
            is_short=position.type == PositionType.SHORT,
            trade_date=bar.date,
            price=exit_price,
            shares=position.shares,
            fee=exit_calc.fee,
            slippage=exit_calc.slippage,
            total_cost=exit_calc.total_cost,
            memo=memo.strip(),
            capital_after_trade=new_capital,
        )
        closed = position.model_copy(
            update={
                "status": PositionStatus.CLOSED,
                "close_trade_id": trade.trade_id,
                "exit_price": exit_price,
                "exit_date": bar.date,
                "profit": profit,
                "profit_rate": float(profit / position.cost_basis * 100),
            }
        )

        session.current_capital = new_capital
        session.positions[index] = closed
        session.trades.append(trade)
        self.recompute_statistics(session)

        logger.info(
            f"Closed {closed.type.value} {closed.shares} {session.symbol} "
            f"@ {exit_price}: profit {profit} ({closed.profit_rate:.2f}%)"
        )
        return closed, trade

    def recompute_statistics(self, session: Session) -> None:
        """Refresh trade count, win count and win rate from closed positions."""
        closed = session.closed_positions
        wins = sum(1 for p in closed if p.profit is not None and p.profit > 0)
        session.trade_count = len(closed)
        session.win_count = wins
        session.win_rate = calculate_win_rate(wins, len(closed))

    def record_equity(self, session: Session, bar: StockPrice) -> None:
        """Append the mark-to-market equity at this bar and update drawdown.

        A second point for the same bar replaces the first.
        """
        point = EquityPoint(
            bar_date=bar.date, equity=mark_to_market_equity(session, bar.close)
        )
        if session.equity_curve and session.equity_curve[-1].bar_date == bar.date:
            session.equity_curve[-1] = point
        else:
            session.equity_curve.append(point)

        session.max_drawdown = calculate_max_drawdown(
            [p.equity for p in session.equity_curve]
        )

    @staticmethod
    def _find_open_position(
        session: Session, position_id: str
    ) -> tuple[int, Position]:
        for index, position in enumerate(session.positions):
            if position.position_id != position_id:
                continue
            if not position.is_open:
                raise InvalidOperationError(f"Position {position_id} is already closed")
            return index, position
        raise InvalidOperationError(f"Position {position_id} not found")
