"""Trading-session simulation engine.

This package holds the core of the trainer: the session state machine, the
order cost model, position and profit bookkeeping, performance statistics,
the risk rule monitor and the day-by-day playback controller. The
``TradingSession`` orchestrator lives in ``src.simulator.session`` because it
depends on the storage layer.
"""

from src.simulator.config import (
    CostModelConfig,
    EngineConfig,
    FeeSchedule,
    RuleLimits,
)
from src.simulator.costs import OrderCostModel
from src.simulator.engine import OrderPreview, SessionEngine
from src.simulator.errors import (
    InsufficientCapitalError,
    InvalidOperationError,
    OrderValidationError,
    SimulatorError,
)
from src.simulator.models import (
    ChangeSet,
    EngineResult,
    OrderRequest,
    Position,
    PositionStatus,
    PositionType,
    RuleViolation,
    Session,
    SessionStatus,
    Severity,
    Trade,
    TradeType,
    TradingType,
    ViolationType,
)
from src.simulator.performance import (
    PerformanceSummary,
    TradeStatistics,
    calculate_trade_statistics,
    summarize_sessions,
)
from src.simulator.playback import PlaybackController, ThreadingScheduler
from src.simulator.positions import PositionTracker
from src.simulator.rules import RuleMonitor

__all__ = [
    "ChangeSet",
    "CostModelConfig",
    "EngineConfig",
    "EngineResult",
    "FeeSchedule",
    "InsufficientCapitalError",
    "InvalidOperationError",
    "OrderCostModel",
    "OrderPreview",
    "OrderRequest",
    "OrderValidationError",
    "PerformanceSummary",
    "PlaybackController",
    "Position",
    "PositionStatus",
    "PositionTracker",
    "PositionType",
    "RuleLimits",
    "RuleMonitor",
    "RuleViolation",
    "Session",
    "SessionEngine",
    "SessionStatus",
    "Severity",
    "SimulatorError",
    "ThreadingScheduler",
    "Trade",
    "TradeStatistics",
    "TradeType",
    "TradingType",
    "ViolationType",
    "calculate_trade_statistics",
    "summarize_sessions",
]
