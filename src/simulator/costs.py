"""Order execution cost model.

Market orders fill at the current bar's close. Costs are a brokerage
commission (percentage of notional with floor and ceiling) plus a flat
slippage percentage applied identically to buys and sells.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from src.simulator.config import CENT, CostModelConfig, FeeSchedule
from src.simulator.errors import OrderValidationError
from src.simulator.models import TradeCalculation, TradeType, TradingType


class OrderCostModel:
    """Deterministic fee and slippage calculator.

    Example:
        >>> model = OrderCostModel()
        >>> calc = model.calculate_buy_order(Decimal("1000"), 100, TradingType.SPOT)
        >>> calc.total_cost
        Decimal('100150.00')
    """

    def __init__(self, config: CostModelConfig | None = None) -> None:
        """Initialize the cost model.

        Args:
            config: Cost assumptions (uses defaults if None).
        """
        self.config = config or CostModelConfig()

    @property
    def lot_size(self) -> int:
        """Shares per tradable lot."""
        return self.config.lot_size

    def fee_schedule(self, trading_type: TradingType) -> FeeSchedule:
        """Return the commission schedule for an account type."""
        if trading_type == TradingType.MARGIN:
            return self.config.margin_fees
        return self.config.spot_fees

    def leverage_for(self, trading_type: TradingType) -> float:
        """Buying power multiplier: 1.0 for spot, configured for margin."""
        if trading_type == TradingType.MARGIN:
            return self.config.margin_leverage
        return 1.0

    def validate_shares(self, shares: int) -> None:
        """Ensure shares is a positive multiple of the lot size.

        Raises:
            OrderValidationError: If the share count is not tradable
        """
        if isinstance(shares, bool) or not isinstance(shares, int):
            raise OrderValidationError(f"Shares must be an integer, got {shares!r}")
        if shares <= 0:
            raise OrderValidationError(f"Shares must be positive, got {shares}")
        if shares % self.lot_size != 0:
            raise OrderValidationError(
                f"Shares must be a multiple of {self.lot_size}, got {shares}"
            )

    def calculate_order(
        self,
        side: TradeType,
        price: Decimal,
        shares: int,
        trading_type: TradingType,
    ) -> TradeCalculation:
        """Calculate the cost breakdown of a fill.

        Args:
            side: Buy or sell.
            price: Fill price (current bar close).
            shares: Number of shares (positive multiple of the lot).
            trading_type: Spot or margin.

        Returns:
            TradeCalculation with fee, slippage and total cost.

        Raises:
            OrderValidationError: If shares or price are invalid.
        """
        self.validate_shares(shares)
        if price <= 0:
            raise OrderValidationError(f"Price must be positive, got {price}")

        notional = price * shares
        fee = self.fee_schedule(trading_type).fee_for(notional)
        slippage = (notional * self.config.slippage_rate).quantize(
            CENT, rounding=ROUND_HALF_UP
        )

        if side == TradeType.BUY:
            total_cost = notional + fee + slippage
        else:
            total_cost = notional - fee - slippage

        return TradeCalculation(
            side=side,
            trading_type=trading_type,
            shares=shares,
            price=price,
            notional=notional,
            fee=fee,
            slippage=slippage,
            total_cost=total_cost,
        )

    def calculate_buy_order(
        self, price: Decimal, shares: int, trading_type: TradingType
    ) -> TradeCalculation:
        """Cost of buying: notional plus fee and slippage."""
        return self.calculate_order(TradeType.BUY, price, shares, trading_type)

    def calculate_sell_order(
        self, price: Decimal, shares: int, trading_type: TradingType
    ) -> TradeCalculation:
        """Proceeds of selling: notional minus fee and slippage."""
        return self.calculate_order(TradeType.SELL, price, shares, trading_type)

    def calculate_max_shares(
        self,
        capital: Decimal,
        price: Decimal,
        trading_type: TradingType,
        leverage: float | None = None,
    ) -> int:
        """Largest lot-rounded share count the capital can carry.

        Args:
            capital: Available capital.
            price: Current price.
            trading_type: Spot (leverage forced to 1.0) or margin.
            leverage: Margin multiplier (configured default if None).

        Returns:
            Share count rounded down to the lot; 0 if nothing is affordable.
        """
        if price <= 0 or capital <= 0:
            return 0

        if trading_type == TradingType.SPOT:
            multiplier = Decimal("1")
        else:
            multiplier = Decimal(
                str(leverage if leverage is not None else self.config.margin_leverage)
            )

        max_shares = int(
            (capital * multiplier / price).to_integral_value(rounding=ROUND_DOWN)
        )
        return (max_shares // self.lot_size) * self.lot_size

    def buying_power(self, capital: Decimal, trading_type: TradingType) -> Decimal:
        """Capital available to an order of the given account type."""
        return capital * Decimal(str(self.leverage_for(trading_type)))
