"""Shared fixtures for SwingTrainer tests.

Price series are built from plain close values so that expected profits and
rule breaches can be worked out by hand.
"""

import tempfile
import uuid
from collections.abc import Callable, Sequence
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

import pytest

from src.market.models import PracticeWindow, StockInfo, StockPrice
from src.simulator.config import EngineConfig
from src.simulator.engine import SessionEngine

SYMBOL = "7203.T"
STOCK = StockInfo(symbol=SYMBOL, name="Toyota Motor", sector="Automobiles")


def build_prices(
    closes: Sequence[float | int | str],
    symbol: str = SYMBOL,
    start: date = date(2024, 1, 1),
) -> list[StockPrice]:
    """Build one flat bar per close on consecutive calendar days."""
    prices = []
    for offset, close in enumerate(closes):
        value = Decimal(str(close))
        prices.append(
            StockPrice(
                symbol=symbol,
                date=start + timedelta(days=offset),
                open=value,
                high=value,
                low=value,
                close=value,
                volume=10_000,
            )
        )
    return prices


def build_window(
    practice_closes: Sequence[float | int | str],
    history_closes: Sequence[float | int | str] = (1000,) * 5,
    stock: StockInfo = STOCK,
) -> PracticeWindow:
    """Build a window of history bars followed by the practice bars."""
    prices = build_prices([*history_closes, *practice_closes], symbol=stock.symbol)
    return PracticeWindow(
        stock=stock,
        prices=prices,
        practice_start_index=len(history_closes),
        period_days=len(practice_closes),
    )


class ManualTask:
    """Scheduled callback run explicitly by the test."""

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.ran = False

    def cancel(self) -> None:
        self.cancelled = True

    def run(self) -> None:
        if not self.cancelled:
            self.ran = True
            self.callback()


class ManualScheduler:
    """Scheduler that records callbacks instead of starting timers."""

    def __init__(self) -> None:
        self.tasks: list[ManualTask] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTask:
        task = ManualTask(delay, callback)
        self.tasks.append(task)
        return task

    @property
    def pending(self) -> list[ManualTask]:
        """Tasks neither run nor cancelled."""
        return [t for t in self.tasks if not t.cancelled and not t.ran]

    def run_next(self) -> ManualTask:
        """Run the oldest pending task."""
        task = self.pending[0]
        task.run()
        return task


@pytest.fixture
def make_prices() -> Callable[..., list[StockPrice]]:
    """Factory for flat price series."""
    return build_prices


@pytest.fixture
def make_window() -> Callable[..., PracticeWindow]:
    """Factory for practice windows."""
    return build_window


@pytest.fixture
def flat_window() -> PracticeWindow:
    """Ten practice bars at 1000 after five history bars."""
    return build_window([1000] * 10)


@pytest.fixture
def engine_config() -> EngineConfig:
    """Engine configuration with round-number capital."""
    return EngineConfig(initial_capital=Decimal("1000000"))


@pytest.fixture
def engine(engine_config: EngineConfig) -> SessionEngine:
    """Session engine with default costs and rules."""
    return SessionEngine(engine_config)


@pytest.fixture
def scheduler() -> ManualScheduler:
    """Scheduler driven by the test."""
    return ManualScheduler()


@pytest.fixture
def temp_db_path() -> Path:
    """Create a temporary database path (path only, not the file)."""
    temp_dir = Path(tempfile.gettempdir())
    return temp_dir / f"test_swing_trainer_{uuid.uuid4().hex}.duckdb"
