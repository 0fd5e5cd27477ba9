"""In-memory price provider, loadable from pandas DataFrames or CSV files."""

import logging
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from pathlib import Path

import pandas as pd

from src.market.models import StockInfo, StockPrice, validate_price_series
from src.market.providers.base import (
    DataNotAvailableError,
    PriceProvider,
    SymbolNotFoundError,
)

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["symbol", "date", "open", "high", "low", "close", "volume"]


class InMemoryPriceProvider(PriceProvider):
    """Serves price bars from a dictionary keyed by symbol.

    Used for offline practice from cached data and as the test double for
    the session originator and orchestrator.
    """

    source_name = "memory"

    def __init__(
        self,
        prices: Iterable[StockPrice] = (),
        stocks: Iterable[StockInfo] = (),
    ) -> None:
        """Initialize the provider.

        Args:
            prices: Bars for any number of symbols (order does not matter)
            stocks: Optional instrument descriptors; symbols with prices but
                no descriptor get a descriptor named after the symbol
        """
        by_symbol: dict[str, list[StockPrice]] = {}
        for bar in prices:
            by_symbol.setdefault(bar.symbol, []).append(bar)

        self._prices: dict[str, list[StockPrice]] = {}
        for symbol, bars in by_symbol.items():
            ordered = sorted(bars, key=lambda b: b.date)
            validate_price_series(ordered)
            self._prices[symbol] = ordered

        self._stocks: dict[str, StockInfo] = {s.symbol: s for s in stocks}
        for symbol in self._prices:
            self._stocks.setdefault(symbol, StockInfo(symbol=symbol, name=symbol))

    @classmethod
    def from_dataframe(
        cls, df: pd.DataFrame, stocks: Iterable[StockInfo] = ()
    ) -> "InMemoryPriceProvider":
        """Build a provider from a long-format OHLCV DataFrame.

        Args:
            df: DataFrame with columns symbol, date, open, high, low, close,
                volume
            stocks: Optional instrument descriptors

        Returns:
            Provider serving the rows of the DataFrame

        Raises:
            ValueError: If required columns are missing
        """
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Missing price columns: {missing}")

        clean = df.dropna(subset=["open", "high", "low", "close"])
        dropped = len(df) - len(clean)
        if dropped:
            logger.warning(f"Dropped {dropped} price rows with missing values")

        prices = [
            StockPrice(
                symbol=str(row.symbol),
                date=pd.Timestamp(row.date).date(),
                open=Decimal(str(row.open)),
                high=Decimal(str(row.high)),
                low=Decimal(str(row.low)),
                close=Decimal(str(row.close)),
                volume=int(row.volume),
            )
            for row in clean.itertuples(index=False)
        ]
        return cls(prices, stocks)

    @classmethod
    def from_csv(
        cls, path: str | Path, stocks: Iterable[StockInfo] = ()
    ) -> "InMemoryPriceProvider":
        """Build a provider from a CSV file with the standard OHLCV columns."""
        df = pd.read_csv(path, dtype={"symbol": str})
        logger.info(f"Loaded {len(df)} price rows from {path}")
        return cls.from_dataframe(df, stocks)

    @property
    def symbols(self) -> list[str]:
        """Symbols with price data."""
        return sorted(self._prices)

    @property
    def stocks(self) -> list[StockInfo]:
        """Descriptors for every symbol with price data."""
        return [self._stocks[s] for s in self.symbols]

    def get_stock(self, symbol: str) -> StockInfo:
        """Return the descriptor for a symbol.

        Raises:
            SymbolNotFoundError: If the symbol is unknown
        """
        if symbol not in self._prices:
            raise SymbolNotFoundError(f"Unknown symbol {symbol}", source="memory")
        return self._stocks[symbol]

    def history_range(self, symbol: str) -> tuple[date, date]:
        """Return the first and last date available for a symbol."""
        bars = self._prices.get(symbol)
        if not bars:
            raise SymbolNotFoundError(f"Unknown symbol {symbol}", source="memory")
        return bars[0].date, bars[-1].date

    def fetch_prices(
        self, symbol: str, start_date: date, end_date: date
    ) -> list[StockPrice]:
        """Return the stored bars for a symbol within the date range."""
        self._validate_date_range(start_date, end_date)

        bars = self._prices.get(symbol)
        if bars is None:
            raise SymbolNotFoundError(f"Unknown symbol {symbol}", source="memory")

        selected = [b for b in bars if start_date <= b.date <= end_date]
        if not selected:
            raise DataNotAvailableError(
                f"No data available for {symbol} between {start_date} and {end_date}",
                source="memory",
            )
        return selected
