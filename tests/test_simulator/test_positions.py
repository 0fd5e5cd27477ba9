"""Tests for position bookkeeping and profit calculations."""

from datetime import date
from decimal import Decimal

import pytest

from src.simulator.errors import InvalidOperationError
from src.simulator.models import (
    OrderRequest,
    Position,
    PositionStatus,
    PositionType,
    Session,
    TradeType,
    TradingType,
)
from src.simulator.positions import (
    PositionTracker,
    calculate_max_drawdown,
    calculate_unrealized_pnl,
    calculate_win_rate,
    mark_to_market_equity,
    position_type_for,
)
from tests.conftest import build_prices


@pytest.fixture
def tracker() -> PositionTracker:
    """Tracker with the default cost model."""
    return PositionTracker()


@pytest.fixture
def session() -> Session:
    """Empty session with 1,000,000 capital."""
    return Session(
        owner_id="alice",
        symbol="7203.T",
        stock_name="Toyota Motor",
        initial_capital=Decimal("1000000"),
        current_capital=Decimal("1000000"),
        period_days=10,
    )


def _open(
    tracker: PositionTracker,
    session: Session,
    price: int,
    side: TradeType = TradeType.BUY,
    trading_type: TradingType = TradingType.SPOT,
    shares: int = 100,
) -> Position:
    bar = build_prices([price])[0]
    request = OrderRequest(
        side=side, trading_type=trading_type, shares=shares, memo="entry"
    )
    calculation = tracker.cost_model.calculate_order(
        side, bar.close, shares, trading_type
    )
    position, _ = tracker.open_position(session, request, calculation, bar)
    return position


class TestPositionType:
    """Tests for mapping order sides to position directions."""

    def test_buy_is_long(self) -> None:
        """Test buys open long positions in either account."""
        assert position_type_for(TradeType.BUY, TradingType.SPOT) == PositionType.LONG
        assert (
            position_type_for(TradeType.BUY, TradingType.MARGIN) == PositionType.LONG
        )

    def test_margin_sell_is_short(self) -> None:
        """Test margin sells open short positions."""
        assert (
            position_type_for(TradeType.SELL, TradingType.MARGIN)
            == PositionType.SHORT
        )

    def test_spot_sell_rejected(self) -> None:
        """Test spot sells are never an opening order."""
        with pytest.raises(InvalidOperationError):
            position_type_for(TradeType.SELL, TradingType.SPOT)


class TestOpenClose:
    """Tests for opening and closing positions."""

    def test_long_round_trip(self, tracker: PositionTracker, session: Session) -> None:
        """Test buy 100 @ 1000 then sell @ 1200."""
        position = _open(tracker, session, 1000)
        assert session.current_capital == Decimal("899850.00")
        assert session.trades[0].position_id == position.position_id
        assert position.open_trade_id == session.trades[0].trade_id

        exit_bar = build_prices([1200], start=date(2024, 1, 5))[0]
        closed, trade = tracker.close_position(
            session, position.position_id, exit_bar, "target"
        )

        assert closed.status == PositionStatus.CLOSED
        assert closed.profit == Decimal("19820.00")
        assert closed.profit_rate == pytest.approx(19.82)
        assert closed.close_trade_id == trade.trade_id
        assert closed.exit_date == date(2024, 1, 5)
        assert trade.type == TradeType.SELL
        assert trade.total_cost == Decimal("119820.00")
        assert session.current_capital == Decimal("1019670.00")
        assert session.trade_count == 1
        assert session.win_count == 1
        assert session.win_rate == 100.0

    def test_short_round_trip(
        self, tracker: PositionTracker, session: Session
    ) -> None:
        """Test margin short @ 1000 covered @ 900."""
        position = _open(
            tracker, session, 1000, side=TradeType.SELL, trading_type=TradingType.MARGIN
        )
        assert position.type == PositionType.SHORT
        assert session.current_capital == Decimal("1099850.00")
        assert session.trades[0].is_short

        exit_bar = build_prices([900], start=date(2024, 1, 3))[0]
        closed, trade = tracker.close_position(session, position.position_id, exit_bar)

        # Entry nets 99,850; covering at 900 costs 90,000 - 99 - 45 = 89,856
        assert closed.profit == Decimal("9994.00")
        assert trade.type == TradeType.BUY
        assert trade.is_short
        assert session.current_capital == Decimal("1009994.00")

    def test_losing_trade_counts_towards_win_rate(
        self, tracker: PositionTracker, session: Session
    ) -> None:
        """Test one win and one loss give 50%."""
        winner = _open(tracker, session, 1000)
        loser = _open(tracker, session, 1000)
        tracker.close_position(session, winner.position_id, build_prices([1100])[0])
        tracker.close_position(session, loser.position_id, build_prices([900])[0])

        assert session.trade_count == 2
        assert session.win_count == 1
        assert session.win_rate == 50.0

    def test_close_twice_rejected(
        self, tracker: PositionTracker, session: Session
    ) -> None:
        """Test a closed position cannot be closed again."""
        position = _open(tracker, session, 1000)
        bar = build_prices([1000])[0]
        tracker.close_position(session, position.position_id, bar)

        with pytest.raises(InvalidOperationError):
            tracker.close_position(session, position.position_id, bar)

    def test_close_unknown_rejected(
        self, tracker: PositionTracker, session: Session
    ) -> None:
        """Test closing an unknown id."""
        with pytest.raises(InvalidOperationError):
            tracker.close_position(session, "missing", build_prices([1000])[0])


class TestCalculations:
    """Tests for stateless profit helpers."""

    def test_win_rate_without_trades(self) -> None:
        """Test win rate is zero when nothing was closed."""
        assert calculate_win_rate(0, 0) == 0.0

    def test_unrealized_pnl_long_and_short(
        self, tracker: PositionTracker, session: Session
    ) -> None:
        """Test mark-to-market sign depends on direction."""
        long = _open(tracker, session, 1000)
        short = _open(
            tracker, session, 1000, side=TradeType.SELL, trading_type=TradingType.MARGIN
        )

        long_pnl = calculate_unrealized_pnl(long, Decimal("890"))
        short_pnl = calculate_unrealized_pnl(short, Decimal("890"))

        assert long_pnl.pnl == Decimal("-11000")
        assert long_pnl.pnl_percent == pytest.approx(-11.0)
        assert short_pnl.pnl == Decimal("11000")

    def test_max_drawdown(self) -> None:
        """Test peak-to-trough decline."""
        values = [Decimal("100"), Decimal("120"), Decimal("90"), Decimal("130")]
        assert calculate_max_drawdown(values) == pytest.approx(25.0)
        assert calculate_max_drawdown([]) == 0.0

    def test_equity_marks_holdings(
        self, tracker: PositionTracker, session: Session
    ) -> None:
        """Test equity adds long value to remaining capital."""
        _open(tracker, session, 1000)
        assert mark_to_market_equity(session, Decimal("1100")) == Decimal(
            "1009850.00"
        )

    def test_record_equity_replaces_same_bar(
        self, tracker: PositionTracker, session: Session
    ) -> None:
        """Test two points for one bar collapse into one."""
        bar = build_prices([1000])[0]
        tracker.record_equity(session, bar)
        _open(tracker, session, 1000)
        tracker.record_equity(session, bar)

        assert len(session.equity_curve) == 1
        assert session.equity_curve[0].equity == Decimal("999850.00")
