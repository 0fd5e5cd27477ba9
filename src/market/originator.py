"""Random selection of a symbol and price window for a new practice session.

The user should not know in advance which stock or which period they are
trading, so the originator draws a random instrument and a random contiguous
window from its history.
"""

import logging
import random
from datetime import date

from src.market.models import PracticeWindow, StockInfo, StockPrice
from src.market.providers.base import DataNotAvailableError, PriceProvider

logger = logging.getLogger(__name__)


class InsufficientHistoryError(DataNotAvailableError):
    """Raised when no symbol has enough history for the requested window."""

    pass


class SessionOriginator:
    """Picks a random symbol and practice window from a stock universe.

    Attributes:
        provider: Source of daily price bars
        universe: Instruments eligible for practice
        history_start: Earliest date to request from the provider
        history_end: Latest date to request from the provider
        max_attempts: Number of random draws before giving up
    """

    def __init__(
        self,
        provider: PriceProvider,
        universe: list[StockInfo],
        history_start: date,
        history_end: date,
        rng: random.Random | None = None,
        max_attempts: int = 100,
    ) -> None:
        """Initialize the originator.

        Args:
            provider: Source of daily price bars
            universe: Instruments eligible for practice
            history_start: Earliest date to request from the provider
            history_end: Latest date to request from the provider
            rng: Random generator (seed it for reproducible draws)
            max_attempts: Number of random draws before giving up
        """
        if not universe:
            raise ValueError("universe must contain at least one stock")
        if max_attempts < 1:
            raise ValueError("max_attempts must be positive")

        self.provider = provider
        self.universe = list(universe)
        self.history_start = history_start
        self.history_end = history_end
        self.max_attempts = max_attempts
        self._rng = rng or random.Random()  # noqa: S311 - simulation, not crypto
        self._history_cache: dict[str, list[StockPrice]] = {}

    def pick(self, period_days: int, historical_days: int) -> PracticeWindow:
        """Draw a random symbol and a window of history + practice bars.

        Args:
            period_days: Number of bars in the practice period
            historical_days: Number of context bars shown before it

        Returns:
            Window with ``practice_start_index == historical_days``

        Raises:
            InsufficientHistoryError: If no draw finds enough history
        """
        self._validate_lengths(period_days, historical_days)
        total_days = historical_days + period_days

        for attempt in range(1, self.max_attempts + 1):
            stock = self._rng.choice(self.universe)
            history = self._load_history(stock.symbol)

            if len(history) < total_days:
                logger.debug(
                    f"Draw {attempt}: {stock.symbol} has {len(history)} bars, "
                    f"needs {total_days}"
                )
                continue

            start = self._rng.randint(0, len(history) - total_days)
            window = PracticeWindow(
                stock=stock,
                prices=history[start : start + total_days],
                practice_start_index=historical_days,
                period_days=period_days,
            )
            logger.info(
                f"Picked {stock.symbol} after {attempt} draw(s): "
                f"{window.start_date} to {window.end_date}, "
                f"practice starts {window.practice_start_date}"
            )
            return window

        raise InsufficientHistoryError(
            f"No symbol has {total_days} bars of history "
            f"after {self.max_attempts} attempts"
        )

    def window_for_symbol(
        self, stock: StockInfo, period_days: int, historical_days: int
    ) -> PracticeWindow:
        """Build the most recent window for a specific symbol.

        Raises:
            SymbolNotFoundError: If the provider does not know the symbol
            InsufficientHistoryError: If the symbol's history is too short
        """
        self._validate_lengths(period_days, historical_days)
        total_days = historical_days + period_days

        history = self.provider.fetch_prices(
            stock.symbol, self.history_start, self.history_end
        )
        if len(history) < total_days:
            raise InsufficientHistoryError(
                f"{stock.symbol} has {len(history)} bars, needs {total_days}"
            )

        return PracticeWindow(
            stock=stock,
            prices=history[-total_days:],
            practice_start_index=historical_days,
            period_days=period_days,
        )

    def _load_history(self, symbol: str) -> list[StockPrice]:
        """Fetch and cache the full history of a symbol.

        Symbols the provider cannot serve are treated as empty so the draw
        moves on to another instrument.
        """
        if symbol not in self._history_cache:
            try:
                self._history_cache[symbol] = self.provider.fetch_prices(
                    symbol, self.history_start, self.history_end
                )
            except DataNotAvailableError as e:
                logger.warning(f"Skipping {symbol}: {e}")
                self._history_cache[symbol] = []
        return self._history_cache[symbol]

    @staticmethod
    def _validate_lengths(period_days: int, historical_days: int) -> None:
        if period_days < 1:
            raise ValueError(f"period_days must be positive, got {period_days}")
        if historical_days < 0:
            raise ValueError(
                f"historical_days must be non-negative, got {historical_days}"
            )
