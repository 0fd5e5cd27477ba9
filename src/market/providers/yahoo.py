"""Yahoo Finance price provider."""

import logging
import time
from datetime import date, timedelta
from decimal import Decimal

import pandas as pd
import yfinance as yf
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.market.models import StockInfo, StockPrice
from src.market.providers.base import (
    DataNotAvailableError,
    FetchError,
    PriceProvider,
    RateLimitError,
    SymbolNotFoundError,
)

logger = logging.getLogger(__name__)


class YahooPriceProviderError(FetchError):
    """Custom exception for Yahoo Finance provider errors."""

    pass


class YahooPriceProvider(PriceProvider):
    """Price provider backed by Yahoo Finance via the yfinance library.

    Includes retry logic for transient rate limiting and a configurable delay
    between requests. Tokyo-listed symbols use the '.T' suffix (e.g.,
    '7203.T').
    """

    source_name = "Yahoo Finance"

    def __init__(
        self,
        delay_between_requests: float = 0.5,
        max_retries: int = 3,
        retry_wait: float = 1.0,
    ) -> None:
        """Initialize the Yahoo Finance provider.

        Args:
            delay_between_requests: Delay in seconds between API requests
                to respect rate limits (default: 0.5s)
            max_retries: Maximum number of retry attempts for failed
                requests (default: 3)
            retry_wait: Backoff multiplier in seconds; waits grow from
                2x to 10x this value (default: 1.0)
        """
        self._delay = delay_between_requests
        self._max_retries = max_retries
        self._retry_wait = retry_wait
        self._last_request_time: float = 0.0

    def _rate_limit(self) -> None:
        """Enforce rate limiting between requests."""
        current_time = time.time()
        time_since_last_request = current_time - self._last_request_time

        if time_since_last_request < self._delay:
            time.sleep(self._delay - time_since_last_request)

        self._last_request_time = time.time()

    def _retrying(self) -> Retrying:
        """Retry policy for rate-limited requests."""
        return Retrying(
            retry=retry_if_exception_type(RateLimitError),
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(
                multiplier=self._retry_wait,
                min=2 * self._retry_wait,
                max=10 * self._retry_wait,
            ),
        )

    def _fetch_ticker_data(
        self, symbol: str, start_date: date, end_date: date
    ) -> pd.DataFrame:
        """Fetch data for a single ticker in one request.

        Args:
            symbol: Ticker symbol to fetch
            start_date: Start date for data
            end_date: End date for data (inclusive)

        Returns:
            DataFrame with OHLCV data indexed by date

        Raises:
            SymbolNotFoundError: If Yahoo has no data for the symbol
            DataNotAvailableError: If the symbol exists but the range is empty
            RateLimitError: If rate limit is exceeded
            YahooPriceProviderError: If fetch fails otherwise
        """
        self._rate_limit()

        try:
            ticker = yf.Ticker(symbol)
            # yfinance treats the end date as exclusive
            data = ticker.history(
                start=start_date, end=end_date + timedelta(days=1), auto_adjust=False
            )

            if data.empty:
                recent = ticker.history(period="1mo", auto_adjust=False)
                if recent.empty:
                    raise SymbolNotFoundError(
                        f"Unknown symbol {symbol}", source=self.source_name
                    )
                raise DataNotAvailableError(
                    f"No data available for {symbol} "
                    f"between {start_date} and {end_date}",
                    source=self.source_name,
                )

            return data

        except FetchError:
            raise
        except Exception as e:
            error_msg = str(e).lower()
            if "429" in error_msg or "rate limit" in error_msg:
                raise RateLimitError(
                    f"Rate limit exceeded for {symbol}", source=self.source_name
                ) from e

            raise YahooPriceProviderError(
                f"Failed to fetch data for {symbol}: {e!s}",
                source=self.source_name,
            ) from e

    def fetch_prices(
        self, symbol: str, start_date: date, end_date: date
    ) -> list[StockPrice]:
        """Fetch daily bars for a symbol from Yahoo Finance.

        Rows with missing OHLC values are skipped.
        """
        self._validate_date_range(start_date, end_date)

        try:
            for attempt in self._retrying():
                with attempt:
                    df = self._fetch_ticker_data(symbol, start_date, end_date)
        except RetryError as e:
            raise YahooPriceProviderError(
                f"Max retries exceeded for {symbol}", source=self.source_name
            ) from e

        prices: list[StockPrice] = []
        for date_idx, row in df.iterrows():
            if not isinstance(date_idx, pd.Timestamp):
                continue
            if row[["Open", "High", "Low", "Close"]].isna().any():
                logger.debug(f"Skipping incomplete bar for {symbol} on {date_idx}")
                continue

            prices.append(
                StockPrice(
                    symbol=symbol,
                    date=date_idx.date(),
                    open=Decimal(str(row["Open"])),
                    high=Decimal(str(row["High"])),
                    low=Decimal(str(row["Low"])),
                    close=Decimal(str(row["Close"])),
                    volume=int(row["Volume"]) if not pd.isna(row["Volume"]) else 0,
                )
            )

        if not prices:
            raise DataNotAvailableError(
                f"No complete bars for {symbol} between {start_date} and {end_date}",
                source=self.source_name,
            )

        logger.info(f"Fetched {len(prices)} bars for {symbol} from Yahoo Finance")
        return prices

    def fetch_stock_info(self, symbol: str) -> StockInfo:
        """Fetch the display name and sector for a symbol.

        Falls back to the bare symbol when Yahoo returns no metadata.
        """
        self._rate_limit()

        try:
            info = yf.Ticker(symbol).info or {}
        except Exception as e:
            logger.warning(f"Could not fetch info for {symbol}: {e}")
            info = {}

        return StockInfo(
            symbol=symbol,
            name=info.get("longName") or info.get("shortName") or symbol,
            sector=info.get("sector"),
            description=info.get("longBusinessSummary"),
        )
