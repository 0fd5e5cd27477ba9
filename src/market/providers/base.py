"""Base price provider abstract class and fetch errors."""

from abc import ABC, abstractmethod
from datetime import date

from src.market.models import StockPrice


class FetchError(Exception):
    """Base exception for price fetching errors."""

    def __init__(self, message: str, source: str | None = None) -> None:
        """Initialize fetch error.

        Args:
            message: Error description
            source: Data source name (e.g., 'Yahoo Finance', 'CSV')
        """
        self.source = source
        super().__init__(f"[{source}] {message}" if source else message)


class RateLimitError(FetchError):
    """Exception raised when rate limit is exceeded."""

    pass


class DataNotAvailableError(FetchError):
    """Exception raised when the requested price range is not available."""

    pass


class SymbolNotFoundError(DataNotAvailableError):
    """Exception raised when the provider does not know the symbol at all."""

    pass


class PriceProvider(ABC):
    """Abstract source of daily price bars.

    Implementations must return bars ascending by date with no duplicates and
    must distinguish an unknown symbol from an unavailable range.
    """

    source_name: str = "unknown"

    @abstractmethod
    def fetch_prices(
        self, symbol: str, start_date: date, end_date: date
    ) -> list[StockPrice]:
        """Fetch daily bars for a symbol within an inclusive date range.

        Args:
            symbol: Ticker symbol
            start_date: First date to include
            end_date: Last date to include

        Returns:
            Bars ordered by ascending date

        Raises:
            SymbolNotFoundError: If the symbol is unknown
            DataNotAvailableError: If no bars exist in the range
        """

    def _validate_date_range(self, start_date: date, end_date: date) -> None:
        """Validate that date range is valid.

        Args:
            start_date: Start date for data fetch
            end_date: End date for data fetch

        Raises:
            ValueError: If date range is invalid
        """
        if start_date > end_date:
            raise ValueError(
                f"start_date ({start_date}) must be before end_date ({end_date})"
            )
