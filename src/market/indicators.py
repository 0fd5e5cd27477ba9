"""Technical indicators and timeframe aggregation for price charts.

All functions are pure: they take the full daily series and return new
values, so they can be recomputed from scratch after every bar advance.
Indices without enough observations yield ``None`` rather than a partial
window value.
"""

from collections.abc import Sequence
from decimal import Decimal
from enum import Enum

import numpy as np
import pandas as pd
from pydantic import BaseModel

from src.market.models import StockPrice


class Timeframe(str, Enum):
    """Chart timeframe."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class BollingerBands(BaseModel):
    """Upper, middle and lower Bollinger bands."""

    upper: list[float | None]
    middle: list[float | None]
    lower: list[float | None]


def _to_series(values: Sequence[float | Decimal]) -> pd.Series:
    return pd.Series([float(v) for v in values], dtype="float64")


def _to_optional_list(series: pd.Series) -> list[float | None]:
    return [None if pd.isna(v) else float(v) for v in series]


def _validate_period(period: int) -> None:
    if period < 1:
        raise ValueError(f"period must be positive, got {period}")


def closing_prices(prices: Sequence[StockPrice]) -> list[float]:
    """Extract closing prices as floats."""
    return [float(p.close) for p in prices]


def simple_moving_average(
    values: Sequence[float | Decimal], period: int
) -> list[float | None]:
    """Calculate the simple moving average.

    Args:
        values: Observations in chronological order
        period: Window length

    Returns:
        One entry per observation; ``None`` for the first ``period - 1``
    """
    _validate_period(period)
    series = _to_series(values)
    return _to_optional_list(series.rolling(window=period, min_periods=period).mean())


def moving_averages(
    prices: Sequence[StockPrice], periods: Sequence[int]
) -> dict[int, list[float | None]]:
    """Calculate a simple moving average of closes for each period."""
    closes = closing_prices(prices)
    return {period: simple_moving_average(closes, period) for period in periods}


def exponential_moving_average(
    values: Sequence[float | Decimal], period: int
) -> list[float | None]:
    """Calculate the exponential moving average.

    The first value is seeded with the simple average of the first
    ``period`` observations; smoothing factor is ``2 / (period + 1)``.
    """
    _validate_period(period)
    data = [float(v) for v in values]
    result: list[float | None] = [None] * len(data)
    if len(data) < period:
        return result

    multiplier = 2.0 / (period + 1)
    ema = float(np.mean(data[:period]))
    result[period - 1] = ema
    for i in range(period, len(data)):
        ema = (data[i] - ema) * multiplier + ema
        result[i] = ema
    return result


def bollinger_bands(
    values: Sequence[float | Decimal], period: int = 20, num_std: float = 2.0
) -> BollingerBands:
    """Calculate Bollinger bands using the population standard deviation."""
    _validate_period(period)
    series = _to_series(values)
    rolling = series.rolling(window=period, min_periods=period)
    middle = rolling.mean()
    std = rolling.std(ddof=0)
    return BollingerBands(
        upper=_to_optional_list(middle + std * num_std),
        middle=_to_optional_list(middle),
        lower=_to_optional_list(middle - std * num_std),
    )


def relative_strength_index(
    values: Sequence[float | Decimal], period: int = 14
) -> list[float | None]:
    """Calculate RSI from simple averages of gains and losses.

    Returns 100 for windows without any losses.
    """
    _validate_period(period)
    series = _to_series(values)
    changes = series.diff()
    gains = changes.clip(lower=0).rolling(window=period, min_periods=period).mean()
    losses = (-changes.clip(upper=0)).rolling(window=period, min_periods=period).mean()

    result: list[float | None] = []
    for gain, loss in zip(gains, losses, strict=True):
        if pd.isna(gain) or pd.isna(loss):
            result.append(None)
        elif loss == 0:
            result.append(100.0)
        else:
            result.append(100.0 - 100.0 / (1.0 + gain / loss))
    return result


def aggregate_timeframe(
    prices: Sequence[StockPrice], timeframe: Timeframe
) -> list[StockPrice]:
    """Aggregate daily bars into weekly or monthly bars.

    Weeks are ISO calendar weeks starting Monday; months are calendar months.
    Each aggregated bar is dated on the first trading day of its group, opens
    at the first open, closes at the last close, spans the group's high/low
    and sums volume.

    Args:
        prices: Daily bars for one symbol, ascending by date
        timeframe: Target timeframe

    Returns:
        Aggregated bars (a copy of the input for ``Timeframe.DAILY``)
    """
    if timeframe == Timeframe.DAILY or not prices:
        return list(prices)

    df = pd.DataFrame(
        {
            "date": [p.date for p in prices],
            "open": [p.open for p in prices],
            "high": [p.high for p in prices],
            "low": [p.low for p in prices],
            "close": [p.close for p in prices],
            "volume": [p.volume for p in prices],
        }
    )
    dates = pd.to_datetime(df["date"])
    if timeframe == Timeframe.WEEKLY:
        df["period"] = (dates - pd.to_timedelta(dates.dt.weekday, unit="D")).dt.date
    else:
        df["period"] = dates.dt.to_period("M")

    symbol = prices[0].symbol
    aggregated: list[StockPrice] = []
    for _, group in df.groupby("period", sort=True):
        aggregated.append(
            StockPrice(
                symbol=symbol,
                date=group["date"].iloc[0],
                open=group["open"].iloc[0],
                high=max(group["high"]),
                low=min(group["low"]),
                close=group["close"].iloc[-1],
                volume=int(group["volume"].sum()),
            )
        )
    return aggregated
