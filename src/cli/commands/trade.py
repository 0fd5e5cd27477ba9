"""Commands that drive a stored session: playback, orders and review."""

import logging
import threading
from typing import Optional

import typer

from src.cli.common import (
    DATABASE_OPTION,
    OWNER_OPTION,
    PRICES_OPTION,
    build_engine,
    colored_pnl,
    console,
    fail,
    format_money,
    load_live,
    open_store,
    resolve_owner,
    session_panel,
    trades_table,
    violations_table,
)
from src.simulator.models import (
    OrderRequest,
    SessionStatus,
    TradeType,
    TradingType,
)
from src.simulator.session import SessionEvent, TradingSession

logger = logging.getLogger(__name__)

SESSION_ARGUMENT = typer.Argument(..., help="Session to operate on.")


def _print_bar(live: TradingSession) -> None:
    session = live.session
    bar = live.current_bar()
    console.print(
        f"Day {session.current_day + 1}/{session.period_days}  "
        f"{bar.date.isoformat()}  O {bar.open:,.1f}  H {bar.high:,.1f}  "
        f"L {bar.low:,.1f}  C [bold]{bar.close:,.1f}[/bold]  V {bar.volume:,}"
    )


def _warn_unsynced(live: TradingSession) -> None:
    if not live.close():
        console.print(
            "[yellow]Warning:[/yellow] latest state could not be saved; "
            "it will be retried on the next command"
        )


def play(
    session_id: str = SESSION_ARGUMENT,
    db_path: str = DATABASE_OPTION,
    owner: Optional[str] = OWNER_OPTION,
    prices_csv: Optional[str] = PRICES_OPTION,
    speed: Optional[float] = typer.Option(
        None,
        "--speed",
        help="Seconds per bar.",
    ),
    bars: Optional[int] = typer.Option(
        None,
        "--bars",
        "-n",
        help="Pause automatically after this many bars.",
    ),
) -> None:
    """Play a session bar by bar until paused, completed or interrupted.

    Press Ctrl+C to pause.

    Example:
        swing-trainer play <session-id> --speed 1
        swing-trainer play <session-id> --bars 10 --speed 0.2
    """
    try:
        live = load_live(db_path, owner, session_id, prices_csv)
        if speed is not None:
            live.set_playback_speed(speed)

        stopped = threading.Event()
        advanced = 0

        def on_event(event: SessionEvent) -> None:
            nonlocal advanced
            if event.changes.day_advanced:
                advanced += 1
                _print_bar(live)
                if event.changes.violations:
                    console.print(violations_table(event.changes.violations))
                if (
                    bars is not None
                    and advanced >= bars
                    and event.session.status == SessionStatus.PLAYING
                ):
                    live.pause()
                    return
            if event.session.status != SessionStatus.PLAYING:
                stopped.set()

        live.subscribe(on_event)
        _print_bar(live)
        live.start()

        try:
            while not stopped.wait(timeout=0.5):
                pass
        except KeyboardInterrupt:
            live.pause()

        console.print(session_panel(live.session))
        _warn_unsynced(live)

    except typer.Exit:
        raise
    except Exception as e:
        fail("Playback failed", e)


def next_bar(
    session_id: str = SESSION_ARGUMENT,
    db_path: str = DATABASE_OPTION,
    owner: Optional[str] = OWNER_OPTION,
    prices_csv: Optional[str] = PRICES_OPTION,
    count: int = typer.Option(
        1,
        "--count",
        "-n",
        help="Number of bars to advance.",
    ),
) -> None:
    """Advance a paused session manually.

    Example:
        swing-trainer next <session-id>
        swing-trainer next <session-id> --count 5
    """
    try:
        live = load_live(db_path, owner, session_id, prices_csv)

        for _ in range(count):
            if live.status == SessionStatus.COMPLETED:
                break
            recorded = len(live.session.violations)
            live.step()
            if live.status != SessionStatus.COMPLETED:
                _print_bar(live)
            new_violations = live.session.violations[recorded:]
            if new_violations:
                console.print(violations_table(new_violations))

        if live.status == SessionStatus.COMPLETED:
            console.print("[bold green]Session completed.[/bold green]")
            console.print(session_panel(live.session))
        _warn_unsynced(live)

    except typer.Exit:
        raise
    except Exception as e:
        fail("Failed to advance session", e)


def order(
    session_id: str = SESSION_ARGUMENT,
    side: str = typer.Option(
        ...,
        "--side",
        help="Order side: 'buy' or 'sell'.",
    ),
    shares: int = typer.Option(
        ...,
        "--shares",
        "-q",
        help="Number of shares (multiple of 100).",
    ),
    margin: bool = typer.Option(
        False,
        "--margin",
        help="Place the order through the margin account.",
    ),
    memo: str = typer.Option(
        "",
        "--memo",
        "-m",
        help="Trade rationale.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show the cost breakdown without placing the order.",
    ),
    db_path: str = DATABASE_OPTION,
    owner: Optional[str] = OWNER_OPTION,
    prices_csv: Optional[str] = PRICES_OPTION,
) -> None:
    """Place a market order at the current close.

    Example:
        swing-trainer order <session-id> --side buy --shares 100 -m "MA cross"
        swing-trainer order <session-id> --side sell --shares 200 --margin -m "Top"
    """
    try:
        trade_side = TradeType(side.lower())
    except ValueError:
        console.print("[red]Error:[/red] Invalid side. Choose from: buy, sell")
        raise typer.Exit(code=1) from None

    try:
        live = load_live(db_path, owner, session_id, prices_csv)
        request = OrderRequest(
            side=trade_side,
            trading_type=TradingType.MARGIN if margin else TradingType.SPOT,
            shares=shares,
            memo=memo,
        )
        _print_bar(live)

        if dry_run:
            preview = live.preview_order(request)
            calc = preview.calculation
            console.print(
                f"Notional {format_money(calc.notional)}  Fee {calc.fee:,.2f}  "
                f"Slippage {calc.slippage:,.2f}  Total {format_money(calc.total_cost)}"
            )
            console.print(
                f"Buying power {format_money(preview.buying_power)}  "
                f"Max shares {preview.max_shares}  "
                f"Affordable: {'yes' if preview.affordable else '[red]no[/red]'}"
            )
            if preview.advisories:
                console.print(violations_table(preview.advisories))
            return

        result = live.submit_order(request)
        console.print(trades_table(result.changes.trades))
        if result.changes.advisories:
            console.print("[yellow]Advisories for this order:[/yellow]")
            console.print(violations_table(result.changes.advisories))
        if result.changes.violations:
            console.print(violations_table(result.changes.violations))
        position = result.changes.opened_positions[0]
        console.print(
            f"Opened {position.type.value} position [bold]{position.position_id}"
            f"[/bold]  Capital {format_money(result.session.current_capital)}"
        )
        _warn_unsynced(live)

    except typer.Exit:
        raise
    except Exception as e:
        fail("Order rejected", e)


def close(
    session_id: str = SESSION_ARGUMENT,
    position_id: str = typer.Argument(
        ..., help="Position to close (a unique prefix is enough)."
    ),
    memo: str = typer.Option(
        "",
        "--memo",
        "-m",
        help="Exit rationale.",
    ),
    db_path: str = DATABASE_OPTION,
    owner: Optional[str] = OWNER_OPTION,
    prices_csv: Optional[str] = PRICES_OPTION,
) -> None:
    """Close an open position at the current close.

    Example:
        swing-trainer close <session-id> 3f2a -m "Hit target"
    """
    try:
        live = load_live(db_path, owner, session_id, prices_csv)
        matches = [
            p.position_id
            for p in live.session.open_positions
            if p.position_id.startswith(position_id)
        ]
        if len(matches) != 1:
            reason = "No open position" if not matches else "Ambiguous position id"
            console.print(f"[red]Error:[/red] {reason}: {position_id}")
            raise typer.Exit(code=1)

        result = live.close_position(matches[0], memo)
        closed = result.changes.closed_positions[0]
        _print_bar(live)
        console.print(trades_table(result.changes.trades))
        console.print(
            f"Profit {colored_pnl(closed.profit or 0)} "
            f"({colored_pnl(closed.profit_rate or 0.0, '%')})  "
            f"Capital {format_money(result.session.current_capital)}"
        )
        if result.changes.violations:
            console.print(violations_table(result.changes.violations))
        _warn_unsynced(live)

    except typer.Exit:
        raise
    except Exception as e:
        fail("Failed to close position", e)


def reflect(
    session_id: str = SESSION_ARGUMENT,
    text: str = typer.Argument(..., help="Review of the completed session."),
    db_path: str = DATABASE_OPTION,
    owner: Optional[str] = OWNER_OPTION,
) -> None:
    """Record a reflection on a completed session.

    Example:
        swing-trainer reflect <session-id> "Cut losers faster."
    """
    try:
        owner_id = resolve_owner(owner)
        store = open_store(db_path)
        session = store.load_session(owner_id, session_id)

        # Reflection needs no price data, so the engine is used directly
        result = build_engine().record_reflection(session, text)
        store.save_session(owner_id, result.session)
        console.print(session_panel(result.session))

    except typer.Exit:
        raise
    except Exception as e:
        fail("Failed to record reflection", e)
