"""Price providers for historical daily bars."""

from src.market.providers.base import (
    DataNotAvailableError,
    FetchError,
    PriceProvider,
    RateLimitError,
    SymbolNotFoundError,
)
from src.market.providers.memory import InMemoryPriceProvider

__all__ = [
    "DataNotAvailableError",
    "FetchError",
    "InMemoryPriceProvider",
    "PriceProvider",
    "RateLimitError",
    "SymbolNotFoundError",
]
