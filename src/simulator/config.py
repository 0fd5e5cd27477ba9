"""Configuration models for the trading simulator.

Fee schedules, slippage, leverage and the risk rulebook are all expressed as
pydantic models so they can be validated, serialised alongside a session and
overridden from the environment.
"""

import os
from decimal import ROUND_HALF_UP, Decimal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Minimum tradable unit (tangen kabu)
LOT_SIZE: int = 100

# Money values are rounded to this precision after every fee/slippage calc
CENT = Decimal("0.01")

DEFAULT_INITIAL_CAPITAL = Decimal("1500000")
DEFAULT_PERIOD_DAYS = 40
DEFAULT_HISTORICAL_DAYS = 120
DEFAULT_PLAYBACK_SPEED = 5.0
DEFAULT_MA_PERIODS: list[int] = [5, 10, 20, 50, 100]


class FeeSchedule(BaseModel):
    """Brokerage commission: a percentage of notional with floor and ceiling.

    Attributes:
        rate: Commission rate as a decimal fraction (0.001 = 0.1%)
        minimum: Floor applied to small orders
        maximum: Ceiling applied to large orders
    """

    rate: Decimal = Field(ge=Decimal("0"), le=Decimal("0.05"))
    minimum: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))
    maximum: Decimal | None = Field(default=None, ge=Decimal("0"))

    @model_validator(mode="after")
    def validate_clamps(self) -> "FeeSchedule":
        """Ensure floor does not exceed ceiling."""
        if self.maximum is not None and self.minimum > self.maximum:
            raise ValueError(
                f"fee minimum ({self.minimum}) must be <= maximum ({self.maximum})"
            )
        return self

    def fee_for(self, notional: Decimal) -> Decimal:
        """Calculate the commission for a trade of the given notional value."""
        fee = notional * self.rate
        if fee < self.minimum:
            fee = self.minimum
        if self.maximum is not None and fee > self.maximum:
            fee = self.maximum
        return fee.quantize(CENT, rounding=ROUND_HALF_UP)


class CostModelConfig(BaseModel):
    """Cost assumptions used by the order execution model."""

    spot_fees: FeeSchedule = Field(
        default_factory=lambda: FeeSchedule(
            rate=Decimal("0.001"), minimum=Decimal("55"), maximum=Decimal("1013")
        ),
        description="Cash account commission schedule",
    )
    margin_fees: FeeSchedule = Field(
        default_factory=lambda: FeeSchedule(
            rate=Decimal("0.001"), minimum=Decimal("99"), maximum=Decimal("385")
        ),
        description="Margin account commission schedule",
    )
    slippage_rate: Decimal = Field(
        default=Decimal("0.0005"),
        ge=Decimal("0"),
        le=Decimal("0.05"),
        description="Flat slippage as a fraction of notional (0.05% default)",
    )
    margin_leverage: float = Field(
        default=3.0, ge=1.0, le=10.0, description="Buying power multiplier for margin"
    )
    lot_size: int = Field(default=LOT_SIZE, ge=1, description="Shares per lot")


class RuleLimits(BaseModel):
    """Thresholds of the risk-management rulebook.

    Attributes:
        stop_loss_percent: Unrealized loss (percent) beyond which a position
            must be cut
        max_position_size_percent: Maximum value of one position relative to
            current capital (percent)
        max_positions: Maximum number of concurrently open positions
        max_leverage: Maximum gross exposure relative to current capital
    """

    stop_loss_percent: float = Field(default=-10.0, lt=0.0)
    max_position_size_percent: float = Field(default=30.0, gt=0.0, le=100.0)
    max_positions: int = Field(default=3, ge=1)
    max_leverage: float = Field(default=2.0, gt=0.0)


class EngineConfig(BaseModel):
    """Top-level configuration for the simulation engine."""

    costs: CostModelConfig = Field(default_factory=CostModelConfig)
    rules: RuleLimits = Field(default_factory=RuleLimits)
    initial_capital: Decimal = Field(
        default=DEFAULT_INITIAL_CAPITAL, gt=Decimal("0"), description="Starting cash"
    )
    period_days: int = Field(default=DEFAULT_PERIOD_DAYS, ge=1, le=1000)
    historical_days: int = Field(default=DEFAULT_HISTORICAL_DAYS, ge=0, le=2000)
    playback_speed: float = Field(
        default=DEFAULT_PLAYBACK_SPEED, gt=0.0, le=60.0, description="Seconds per bar"
    )
    ma_periods: list[int] = Field(default_factory=lambda: list(DEFAULT_MA_PERIODS))

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a configuration, applying ``SWING_*`` environment overrides.

        A ``.env`` file in the working directory is loaded first.

        Recognised variables:
            SWING_INITIAL_CAPITAL, SWING_PERIOD_DAYS, SWING_HISTORICAL_DAYS,
            SWING_PLAYBACK_SPEED, SWING_SLIPPAGE_RATE, SWING_MARGIN_LEVERAGE,
            SWING_STOP_LOSS_PERCENT, SWING_MAX_POSITIONS
        """
        load_dotenv()

        data = cls().model_dump()

        env_map: dict[str, tuple[str | None, str]] = {
            "SWING_SLIPPAGE_RATE": ("costs", "slippage_rate"),
            "SWING_MARGIN_LEVERAGE": ("costs", "margin_leverage"),
            "SWING_STOP_LOSS_PERCENT": ("rules", "stop_loss_percent"),
            "SWING_MAX_POSITIONS": ("rules", "max_positions"),
            "SWING_INITIAL_CAPITAL": (None, "initial_capital"),
            "SWING_PERIOD_DAYS": (None, "period_days"),
            "SWING_HISTORICAL_DAYS": (None, "historical_days"),
            "SWING_PLAYBACK_SPEED": (None, "playback_speed"),
        }
        for env_name, (section, field) in env_map.items():
            value = os.getenv(env_name)
            if not value:
                continue
            target = data[section] if section else data
            target[field] = value

        # Validation coerces the raw strings and rejects bad values loudly
        return cls.model_validate(data)
