"""Pydantic models for historical market data.

Price bars are supplied by external providers and shared read-only between
sessions, so they are frozen once constructed.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StockInfo(BaseModel):
    """Descriptor of a tradable instrument.

    Attributes:
        symbol: Ticker symbol (e.g., '7203.T')
        name: Display name
        sector: Optional industry sector
        description: Optional business summary
    """

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(min_length=1)
    name: str
    sector: str | None = None
    description: str | None = None


class StockPrice(BaseModel):
    """Daily OHLCV bar for a symbol.

    Attributes:
        symbol: Ticker symbol
        date: Trading date
        open: Opening price
        high: Highest price during the day
        low: Lowest price during the day
        close: Closing price
        volume: Number of shares traded
    """

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(min_length=1)
    date: date
    open: Decimal = Field(gt=Decimal("0"))
    high: Decimal = Field(gt=Decimal("0"))
    low: Decimal = Field(gt=Decimal("0"))
    close: Decimal = Field(gt=Decimal("0"))
    volume: int = Field(ge=0)

    @model_validator(mode="after")
    def validate_price_consistency(self) -> "StockPrice":
        """Validate that high >= low and prices are consistent."""
        if self.high < self.low:
            raise ValueError("high must be >= low")
        if self.high < self.open or self.high < self.close:
            raise ValueError("high must be >= open and close")
        if self.low > self.open or self.low > self.close:
            raise ValueError("low must be <= open and close")
        return self


class PracticeWindow(BaseModel):
    """Contiguous price window a practice session replays.

    Bars before ``practice_start_index`` are historical context only; the
    practice period covers the remaining ``period_days`` bars.
    """

    model_config = ConfigDict(frozen=True)

    stock: StockInfo
    prices: list[StockPrice]
    practice_start_index: int = Field(ge=0)
    period_days: int = Field(ge=1)

    @model_validator(mode="after")
    def validate_window(self) -> "PracticeWindow":
        """Ensure the window covers the practice period."""
        required = self.practice_start_index + self.period_days
        if len(self.prices) < required:
            raise ValueError(
                f"Window has {len(self.prices)} bars, "
                f"needs {required} (history + practice period)"
            )
        validate_price_series(self.prices)
        return self

    @property
    def practice_start_date(self) -> date:
        """Date of the first practice bar."""
        return self.prices[self.practice_start_index].date

    @property
    def start_date(self) -> date:
        """Date of the first bar in the window."""
        return self.prices[0].date

    @property
    def end_date(self) -> date:
        """Date of the last bar in the window."""
        return self.prices[-1].date


def validate_price_series(prices: Sequence[StockPrice]) -> None:
    """Check that a price series is for one symbol with ascending unique dates.

    Args:
        prices: Bars to validate

    Raises:
        ValueError: If symbols are mixed or dates are not strictly ascending
    """
    if not prices:
        return

    symbol = prices[0].symbol
    previous: date | None = None
    for bar in prices:
        if bar.symbol != symbol:
            raise ValueError(f"Mixed symbols in series: {symbol} and {bar.symbol}")
        if previous is not None and bar.date <= previous:
            raise ValueError(
                f"Price dates must be strictly ascending: {bar.date} after {previous}"
            )
        previous = bar.date
