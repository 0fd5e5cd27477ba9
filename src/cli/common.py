"""Shared helpers for CLI commands: stores, providers and rendering."""

import logging
import os
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.market.models import StockInfo
from src.market.providers.base import PriceProvider
from src.market.providers.memory import InMemoryPriceProvider
from src.market.providers.yahoo import YahooPriceProvider
from src.simulator.config import EngineConfig
from src.simulator.engine import SessionEngine
from src.simulator.models import RuleViolation, Session, Trade, ViolationCheck
from src.simulator.performance import (
    PerformanceSummary,
    calculate_trade_statistics,
)
from src.simulator.session import TradingSession
from src.storage.duckdb import DuckDBSessionStore

console = Console()
logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "data/swing_trainer.duckdb"

# Liquid Tokyo Stock Exchange names used when practising against Yahoo data
DEFAULT_UNIVERSE = [
    StockInfo(symbol="7203.T", name="Toyota Motor", sector="Automobiles"),
    StockInfo(symbol="6758.T", name="Sony Group", sector="Electronics"),
    StockInfo(symbol="9984.T", name="SoftBank Group", sector="Telecommunications"),
    StockInfo(symbol="8306.T", name="Mitsubishi UFJ Financial", sector="Banks"),
    StockInfo(symbol="6861.T", name="Keyence", sector="Electronics"),
    StockInfo(symbol="9432.T", name="NTT", sector="Telecommunications"),
    StockInfo(symbol="7974.T", name="Nintendo", sector="Other Products"),
    StockInfo(symbol="4063.T", name="Shin-Etsu Chemical", sector="Chemicals"),
    StockInfo(symbol="8035.T", name="Tokyo Electron", sector="Electronics"),
    StockInfo(symbol="6501.T", name="Hitachi", sector="Electronics"),
]

DATABASE_OPTION = typer.Option(
    DEFAULT_DB_PATH,
    "--database",
    "-d",
    help="Path to the session database.",
)
OWNER_OPTION = typer.Option(
    None,
    "--owner",
    "-u",
    help="Owner of the sessions (default: $SWING_OWNER or 'default').",
)
PRICES_OPTION = typer.Option(
    None,
    "--prices",
    "-p",
    help="CSV file of daily bars to practise offline (default: Yahoo Finance).",
)


def resolve_owner(owner: Optional[str]) -> str:
    """Return the explicit owner, the SWING_OWNER variable or 'default'."""
    return owner or os.getenv("SWING_OWNER") or "default"


def open_store(db_path: str) -> DuckDBSessionStore:
    """Open the DuckDB session store."""
    return DuckDBSessionStore(Path(db_path))


def build_provider(prices_csv: Optional[str]) -> PriceProvider:
    """Offline CSV provider when a file is given, Yahoo Finance otherwise."""
    if prices_csv:
        return InMemoryPriceProvider.from_csv(prices_csv)
    return YahooPriceProvider()


def universe_for(provider: PriceProvider) -> list[StockInfo]:
    """Instruments eligible for random selection."""
    if isinstance(provider, InMemoryPriceProvider):
        return provider.stocks
    return list(DEFAULT_UNIVERSE)


def history_bounds(provider: PriceProvider, years: int) -> tuple[date, date]:
    """Date range to draw practice windows from."""
    if isinstance(provider, InMemoryPriceProvider):
        ranges = [provider.history_range(s) for s in provider.symbols]
        return min(r[0] for r in ranges), max(r[1] for r in ranges)
    end = date.today()
    return end - timedelta(days=365 * years), end


def build_engine() -> SessionEngine:
    """Engine configured from SWING_* environment variables."""
    return SessionEngine(EngineConfig.from_env())


def load_live(
    db_path: str, owner: Optional[str], session_id: str, prices_csv: Optional[str]
) -> TradingSession:
    """Load a stored session with its prices for interactive commands."""
    owner_id = resolve_owner(owner)
    return TradingSession.load(
        build_engine(),
        open_store(db_path),
        owner_id,
        session_id,
        build_provider(prices_csv),
    )


def format_money(value: Decimal | float) -> str:
    """Format a money value with thousands separators."""
    return f"{float(value):,.0f}"


def colored_pnl(value: Decimal | float, suffix: str = "") -> str:
    """Green for gains, red for losses."""
    color = "green" if value >= 0 else "red"
    return f"[{color}]{float(value):+,.2f}{suffix}[/{color}]"


def session_panel(session: Session) -> Panel:
    """Summary panel of a session."""
    ret = (session.current_capital - session.initial_capital) / session.initial_capital
    lines = [
        f"[bold]{session.stock_name}[/bold] ({session.symbol})",
        f"Session: {session.session_id}",
        f"Status: {session.status.value}   "
        f"Day: {session.current_day + 1}/{session.period_days}",
        f"Capital: {format_money(session.current_capital)} "
        f"(initial {format_money(session.initial_capital)}, "
        f"{colored_pnl(ret * 100, '%')})",
        f"Trades: {session.trade_count}   Wins: {session.win_count}   "
        f"Win rate: {session.win_rate:.1f}%",
        f"Violations: {session.rule_violation_count}   "
        f"Max drawdown: {session.max_drawdown:.2f}%",
    ]
    stats = calculate_trade_statistics(session.positions)
    if stats.closed_trades:
        lines.append(
            f"Avg profit: {colored_pnl(stats.average_profit)}   "
            f"Avg loss: {colored_pnl(stats.average_loss)}"
        )
    if session.reflection:
        lines.append(f"Reflection: {session.reflection}")
    return Panel("\n".join(lines), title="Practice Session", border_style="blue")


def performance_panel(summary: PerformanceSummary) -> Panel:
    """Panel of results across completed sessions."""
    trades = summary.trades
    lines = [
        f"Completed: {summary.total_sessions}   "
        f"Profitable: {summary.profitable_sessions}   "
        f"Trades: {summary.total_trades}   "
        f"Avg win rate: {summary.average_win_rate:.1f}%",
        f"Total profit: {colored_pnl(summary.total_profit)} "
        f"({colored_pnl(summary.total_profit_percent, '%')})   "
        f"Monthly return: {colored_pnl(summary.monthly_return, '%')}",
        f"Avg profit: {colored_pnl(trades.average_profit)}   "
        f"Avg loss: {colored_pnl(trades.average_loss)}",
        f"Max profit: {colored_pnl(trades.max_profit)}   "
        f"Max loss: {colored_pnl(trades.max_loss)}",
    ]
    return Panel("\n".join(lines), title="Performance", border_style="magenta")


def trades_table(trades: list[Trade]) -> Table:
    """Table of fills."""
    table = Table(title="Trades", show_header=True, header_style="bold cyan")
    table.add_column("Date")
    table.add_column("Side")
    table.add_column("Account")
    table.add_column("Shares", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Fee", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Capital After", justify="right")
    table.add_column("Memo")

    for trade in trades:
        side = trade.type.value + (" (short)" if trade.is_short else "")
        table.add_row(
            trade.trade_date.isoformat(),
            side,
            trade.trading_type.value,
            str(trade.shares),
            f"{trade.price:,.2f}",
            f"{trade.fee + trade.slippage:,.2f}",
            format_money(trade.total_cost),
            format_money(trade.capital_after_trade),
            trade.memo,
        )
    return table


def violations_table(violations: list[RuleViolation] | list[ViolationCheck]) -> Table:
    """Table of rule violations or advisories."""
    table = Table(title="Rule Violations", show_header=True, header_style="bold red")
    table.add_column("Rule")
    table.add_column("Severity")
    table.add_column("Position")
    table.add_column("Description")

    for violation in violations:
        severity = violation.severity.value
        color = "red" if severity == "critical" else "yellow"
        table.add_row(
            violation.type.value,
            f"[{color}]{severity}[/{color}]",
            violation.position_id[:8],
            violation.description,
        )
    return table


def fail(message: str, error: Exception) -> None:
    """Log an error, print it and exit with status 1."""
    logger.exception(message)
    console.print(f"[red]Error:[/red] {error}")
    raise typer.Exit(code=1) from error
