"""Risk rulebook compliance checks.

The monitor is stateless: it looks at a session and the current mark price
and reports which rules are breached. Recording, and therefore
deduplication against what was already recorded, is driven by the keys the
session carries.
"""

import logging
from collections.abc import Iterable
from decimal import Decimal

from src.simulator.config import RuleLimits
from src.simulator.models import (
    SESSION_SCOPE,
    OrderRequest,
    Position,
    Session,
    Severity,
    TradeCalculation,
    TradingType,
    ViolationCheck,
    ViolationType,
)
from src.simulator.positions import calculate_unrealized_pnl, gross_exposure

logger = logging.getLogger(__name__)

# Placeholder position id for advisories about a position not yet opened
PROPOSED_POSITION = "proposed"


def _ratio_percent(value: Decimal, capital: Decimal) -> float | None:
    """Value as a percentage of capital; None when capital is exhausted."""
    if capital <= 0:
        return None
    return float(value / capital * 100)


class RuleMonitor:
    """Evaluates sessions against the risk rulebook.

    Attributes:
        limits: Rule thresholds
    """

    def __init__(self, limits: RuleLimits | None = None) -> None:
        """Initialize the monitor.

        Args:
            limits: Rule thresholds (uses defaults if None)
        """
        self.limits = limits or RuleLimits()

    def check_stop_loss(
        self, position: Position, mark_price: Decimal
    ) -> ViolationCheck | None:
        """Check whether an open position's unrealized loss is past the stop."""
        pnl = calculate_unrealized_pnl(position, mark_price)
        if pnl.pnl_percent < self.limits.stop_loss_percent:
            return ViolationCheck(
                position_id=position.position_id,
                type=ViolationType.STOP_LOSS,
                description=(
                    f"Unrealized loss of {pnl.pnl_percent:.2f}% exceeds the "
                    f"stop-loss line of {self.limits.stop_loss_percent}%"
                ),
                severity=Severity.CRITICAL,
            )
        return None

    def check_position_size(
        self, position_id: str, position_value: Decimal, capital: Decimal
    ) -> ViolationCheck | None:
        """Check whether one position is too large relative to capital."""
        size = _ratio_percent(position_value, capital)
        limit = self.limits.max_position_size_percent
        if size is not None and size <= limit:
            return None

        detail = "capital is exhausted" if size is None else f"size is {size:.1f}%"
        return ViolationCheck(
            position_id=position_id,
            type=ViolationType.POSITION_SIZE,
            description=f"Position {detail} of capital (limit {limit}%)",
            severity=Severity.WARNING,
        )

    def check_max_positions(self, open_count: int) -> ViolationCheck | None:
        """Check the number of concurrently open positions."""
        if open_count > self.limits.max_positions:
            return ViolationCheck(
                position_id=SESSION_SCOPE,
                type=ViolationType.MAX_POSITIONS,
                description=(
                    f"{open_count} positions open at once "
                    f"(limit {self.limits.max_positions})"
                ),
                severity=Severity.WARNING,
            )
        return None

    def check_leverage(
        self, total_exposure: Decimal, capital: Decimal
    ) -> ViolationCheck | None:
        """Check gross exposure relative to capital."""
        if total_exposure <= 0:
            return None

        ratio = _ratio_percent(total_exposure, capital)
        leverage = None if ratio is None else ratio / 100
        if leverage is not None and leverage <= self.limits.max_leverage:
            return None

        detail = (
            "capital is exhausted"
            if leverage is None
            else f"leverage is {leverage:.2f}x"
        )
        return ViolationCheck(
            position_id=SESSION_SCOPE,
            type=ViolationType.LEVERAGE,
            description=f"Gross {detail} (limit {self.limits.max_leverage}x)",
            severity=Severity.CRITICAL,
        )

    def check_all(self, session: Session, mark_price: Decimal) -> list[ViolationCheck]:
        """Run every rule against the session's open positions.

        Per-position checks come first (stop-loss then size, in opening
        order), followed by the session-wide checks.
        """
        open_positions = session.open_positions
        capital = session.current_capital
        checks: list[ViolationCheck | None] = []

        for position in open_positions:
            checks.append(self.check_stop_loss(position, mark_price))
        for position in open_positions:
            checks.append(
                self.check_position_size(
                    position.position_id, position.shares * mark_price, capital
                )
            )
        checks.append(self.check_max_positions(len(open_positions)))
        checks.append(
            self.check_leverage(gross_exposure(open_positions, mark_price), capital)
        )

        return [c for c in checks if c is not None]

    def evaluate(self, session: Session, mark_price: Decimal) -> list[ViolationCheck]:
        """Return breaches whose key has not been recorded on the session yet.

        Args:
            session: Session to evaluate
            mark_price: Current bar close

        Returns:
            New breaches in evaluation order, each key at most once
        """
        return suppress_recorded(
            self.check_all(session, mark_price), session.recorded_violation_keys
        )

    def pre_trade_check(
        self,
        session: Session,
        request: OrderRequest,
        calculation: TradeCalculation,
    ) -> list[ViolationCheck]:
        """Project the rules onto the exposure after a proposed order.

        Advisory only: the result is never recorded and never blocks the
        order.

        Args:
            session: Session before the order
            request: Proposed order
            calculation: Cost breakdown of the proposed fill

        Returns:
            Breaches the order would cause or aggravate
        """
        open_positions = session.open_positions
        capital = session.current_capital
        new_value = calculation.notional
        checks: list[ViolationCheck | None] = [
            self.check_max_positions(len(open_positions) + 1),
            self.check_position_size(PROPOSED_POSITION, new_value, capital),
        ]

        if request.trading_type == TradingType.MARGIN:
            total = gross_exposure(open_positions, calculation.price) + new_value
            checks.append(self.check_leverage(total, capital))

        advisories = [c for c in checks if c is not None]
        if advisories:
            logger.debug(
                f"Pre-trade advisories for {request.side.value} {request.shares} "
                f"{session.symbol}: {[a.type.value for a in advisories]}"
            )
        return advisories


def suppress_recorded(
    checks: Iterable[ViolationCheck],
    recorded_keys: set[tuple[str, ViolationType]],
) -> list[ViolationCheck]:
    """Drop checks whose key is already recorded or repeated in the batch."""
    seen = set(recorded_keys)
    fresh: list[ViolationCheck] = []
    for check in checks:
        if check.key in seen:
            logger.debug(f"Suppressed already recorded violation {check.key}")
            continue
        seen.add(check.key)
        fresh.append(check)
    return fresh
