"""Session listing and detail commands."""

import json
import logging
from typing import Optional

import typer
from rich.table import Table

from src.cli.common import (
    DATABASE_OPTION,
    OWNER_OPTION,
    PRICES_OPTION,
    colored_pnl,
    console,
    fail,
    format_money,
    load_live,
    open_store,
    performance_panel,
    resolve_owner,
    session_panel,
    trades_table,
    violations_table,
)
from src.market.indicators import Timeframe
from src.simulator.models import SessionStatus
from src.simulator.performance import summarize_sessions
from src.simulator.session import TradingSession

logger = logging.getLogger(__name__)


def sessions(
    db_path: str = DATABASE_OPTION,
    owner: Optional[str] = OWNER_OPTION,
    output_format: str = typer.Option(
        "rich",
        "--format",
        "-f",
        help="Output format: 'rich' (default) or 'json'.",
    ),
) -> None:
    """List practice sessions, newest first.

    Example:
        swing-trainer sessions
        swing-trainer sessions --owner alice --format json
    """
    try:
        store = open_store(db_path)
        owner_id = resolve_owner(owner)
        summaries = store.list_sessions(owner_id)

        if output_format == "json":
            console.print(
                json.dumps([s.model_dump(mode="json") for s in summaries], indent=2)
            )
            return

        if not summaries:
            console.print("[yellow]No sessions yet.[/yellow] Run: swing-trainer new")
            return

        table = Table(title="Practice Sessions", show_header=True, header_style="bold")
        table.add_column("Session")
        table.add_column("Stock")
        table.add_column("Status")
        table.add_column("Day", justify="right")
        table.add_column("Capital", justify="right")
        table.add_column("Return", justify="right")
        table.add_column("Trades", justify="right")
        table.add_column("Win Rate", justify="right")
        table.add_column("Created")

        for s in summaries:
            ret = (s.current_capital - s.initial_capital) / s.initial_capital * 100
            table.add_row(
                s.session_id,
                f"{s.stock_name} ({s.symbol})",
                s.status.value,
                f"{s.current_day + 1}/{s.period_days}",
                format_money(s.current_capital),
                colored_pnl(ret, "%"),
                str(s.trade_count),
                f"{s.win_rate:.1f}%",
                s.created_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)

        completed = [
            store.load_session(owner_id, s.session_id)
            for s in summaries
            if s.status == SessionStatus.COMPLETED
        ]
        if completed:
            console.print(performance_panel(summarize_sessions(completed)))

    except Exception as e:
        fail("Failed to list sessions", e)


def show(
    session_id: str = typer.Argument(..., help="Session to display."),
    db_path: str = DATABASE_OPTION,
    owner: Optional[str] = OWNER_OPTION,
    prices_csv: Optional[str] = PRICES_OPTION,
    timeframe: str = typer.Option(
        "daily",
        "--timeframe",
        "-t",
        help="Timeframe for recent bars: 'daily', 'weekly' or 'monthly'.",
    ),
    bars: int = typer.Option(
        5,
        "--bars",
        "-n",
        help="Number of recent bars to show.",
    ),
) -> None:
    """Show a session with positions, trades, violations and recent bars.

    Example:
        swing-trainer show <session-id>
        swing-trainer show <session-id> --timeframe weekly --bars 8
    """
    try:
        frame = Timeframe(timeframe.lower())
    except ValueError:
        console.print(
            f"[red]Error:[/red] Invalid timeframe. "
            f"Choose from: {', '.join(t.value for t in Timeframe)}"
        )
        raise typer.Exit(code=1) from None

    try:
        live = load_live(db_path, owner, session_id, prices_csv)
        session = live.session

        console.print(session_panel(session))
        _display_chart_summary(live, frame, bars)
        _display_positions(live)

        if session.trades:
            console.print(trades_table(session.trades))
        if session.violations:
            console.print(violations_table(session.violations))

    except Exception as e:
        fail("Failed to show session", e)


def _display_chart_summary(
    live: TradingSession, timeframe: Timeframe, bars: int
) -> None:
    """Print the most recent visible bars with moving averages."""
    visible = live.visible_prices(timeframe)
    averages = live.moving_averages(timeframe)
    periods = sorted(averages)

    table = Table(
        title=f"Recent {timeframe.value} bars", show_header=True, header_style="bold"
    )
    table.add_column("Date")
    table.add_column("Open", justify="right")
    table.add_column("High", justify="right")
    table.add_column("Low", justify="right")
    table.add_column("Close", justify="right")
    table.add_column("Volume", justify="right")
    for period in periods:
        table.add_column(f"MA{period}", justify="right")

    start = max(0, len(visible) - bars)
    for index in range(start, len(visible)):
        bar = visible[index]
        ma_cells = []
        for period in periods:
            value = averages[period][index]
            ma_cells.append("-" if value is None else f"{value:,.1f}")
        table.add_row(
            bar.date.isoformat(),
            f"{bar.open:,.1f}",
            f"{bar.high:,.1f}",
            f"{bar.low:,.1f}",
            f"{bar.close:,.1f}",
            f"{bar.volume:,}",
            *ma_cells,
        )
    console.print(table)


def _display_positions(live: TradingSession) -> None:
    """Print open positions with unrealized profit."""
    session = live.session
    if not session.open_positions:
        console.print("[dim]No open positions.[/dim]")
        return

    pnl_by_id = {p.position_id: p for p in live.unrealized_pnl()}
    table = Table(title="Open Positions", show_header=True, header_style="bold green")
    table.add_column("Position")
    table.add_column("Type")
    table.add_column("Account")
    table.add_column("Shares", justify="right")
    table.add_column("Entry", justify="right")
    table.add_column("Entry Date")
    table.add_column("Unrealized", justify="right")
    table.add_column("%", justify="right")

    for position in session.open_positions:
        pnl = pnl_by_id[position.position_id]
        table.add_row(
            position.position_id,
            position.type.value,
            position.trading_type.value,
            str(position.shares),
            f"{position.entry_price:,.2f}",
            position.entry_date.isoformat(),
            colored_pnl(pnl.pnl),
            colored_pnl(pnl.pnl_percent, "%"),
        )
    console.print(table)
