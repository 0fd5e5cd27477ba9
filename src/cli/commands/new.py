"""New command: start a practice session on a random or chosen stock."""

import logging
import random
from decimal import Decimal
from typing import Optional

import typer

from src.cli.common import (
    DATABASE_OPTION,
    OWNER_OPTION,
    PRICES_OPTION,
    build_engine,
    build_provider,
    console,
    fail,
    history_bounds,
    open_store,
    resolve_owner,
    session_panel,
    universe_for,
)
from src.market.originator import SessionOriginator
from src.market.providers.memory import InMemoryPriceProvider
from src.simulator.session import TradingSession

logger = logging.getLogger(__name__)


def new(
    db_path: str = DATABASE_OPTION,
    owner: Optional[str] = OWNER_OPTION,
    prices_csv: Optional[str] = PRICES_OPTION,
    symbol: Optional[str] = typer.Option(
        None,
        "--symbol",
        "-s",
        help="Practise on this symbol instead of a random pick.",
    ),
    period_days: Optional[int] = typer.Option(
        None,
        "--period-days",
        help="Number of bars in the practice period.",
    ),
    historical_days: Optional[int] = typer.Option(
        None,
        "--historical-days",
        help="Number of context bars shown before the practice period.",
    ),
    capital: Optional[float] = typer.Option(
        None,
        "--capital",
        "-c",
        help="Initial capital.",
    ),
    history_years: int = typer.Option(
        5,
        "--history-years",
        help="Years of Yahoo history to draw the window from.",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Random seed for reproducible picks.",
    ),
) -> None:
    """Start a new practice session.

    A random stock and a random window of its history are drawn unless
    --symbol is given, in which case the most recent window is used.

    Example:
        swing-trainer new
        swing-trainer new --prices data/prices.csv --seed 42
        swing-trainer new --symbol 7203.T --period-days 60
    """
    try:
        engine = build_engine()
        provider = build_provider(prices_csv)
        start, end = history_bounds(provider, history_years)
        periods = period_days or engine.config.period_days
        history = (
            historical_days
            if historical_days is not None
            else engine.config.historical_days
        )

        originator = SessionOriginator(
            provider,
            universe_for(provider),
            start,
            end,
            rng=random.Random(seed),  # noqa: S311 - simulation, not crypto
        )

        with console.status("[bold blue]Loading price history...[/bold blue]"):
            if symbol:
                if isinstance(provider, InMemoryPriceProvider):
                    stock = provider.get_stock(symbol)
                else:
                    stock = provider.fetch_stock_info(symbol)
                window = originator.window_for_symbol(stock, periods, history)
            else:
                window = originator.pick(periods, history)

        live = TradingSession.create(
            engine,
            window,
            resolve_owner(owner),
            store=open_store(db_path),
            initial_capital=Decimal(str(capital)) if capital else None,
        )
        live.close()

        console.print(session_panel(live.session))
        if live.is_dirty:
            console.print("[yellow]Warning:[/yellow] session could not be saved")
        console.print(
            f"\nNext: [bold]swing-trainer play {live.session.session_id}[/bold]"
        )

    except typer.Exit:
        raise
    except Exception as e:
        fail("Failed to create session", e)
