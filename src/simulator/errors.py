"""Exceptions raised by the trading simulator.

Every rejection happens before any state is touched, so callers can surface
the message and let the user correct the order. Rule violations are never
raised: they are recorded on the session as data.
"""


class SimulatorError(Exception):
    """Base exception for simulator errors."""

    pass


class OrderValidationError(SimulatorError):
    """Raised when an order request is malformed.

    Examples: share count that is not a positive multiple of the lot size,
    or an empty trade rationale.
    """

    pass


class InvalidOperationError(SimulatorError):
    """Raised when an operation is not allowed in the current session state.

    Examples: a spot sell order, an order or advance against a completed
    session, or closing a position that is not open.
    """

    pass


class InsufficientCapitalError(SimulatorError):
    """Raised when an order costs more than the available buying power."""

    def __init__(self, required: object, available: object) -> None:
        """Initialize the error.

        Args:
            required: Total cost of the order
            available: Buying power at the time of the order
        """
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient capital: order requires {required} "
            f"but only {available} is available"
        )
