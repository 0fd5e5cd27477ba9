"""Session document schema migrations.

Version 1 is the camelCase JSON document written by the earlier web client:
no ``schema_version`` field, dates spread over several optional keys and
violations without a position reference. Version 2 is the snake_case
``Session`` model. Migration is a single step applied when a document is
loaded; documents from a newer version are rejected.
"""

import logging
from typing import Any
from uuid import uuid4

from src.simulator.models import CURRENT_SCHEMA_VERSION, SESSION_SCOPE, Session
from src.storage.base import SchemaVersionError

logger = logging.getLogger(__name__)

LEGACY_SCHEMA_VERSION = 1


def detect_version(document: dict[str, Any]) -> int:
    """Return the schema version of a stored session document."""
    version = document.get("schema_version")
    if version is None:
        return LEGACY_SCHEMA_VERSION
    try:
        return int(version)
    except (TypeError, ValueError) as e:
        raise SchemaVersionError(f"Invalid schema_version: {version!r}") from e


def migrate_document(
    document: dict[str, Any], owner_id: str | None = None
) -> dict[str, Any]:
    """Bring a session document up to the current schema version.

    Args:
        document: Raw stored document
        owner_id: Owner to assign when a legacy document has none

    Returns:
        Document in the current schema

    Raises:
        SchemaVersionError: If the version is unknown or newer than supported
    """
    version = detect_version(document)
    if version == CURRENT_SCHEMA_VERSION:
        return document
    if version == LEGACY_SCHEMA_VERSION:
        return migrate_v1_to_v2(document, owner_id)
    raise SchemaVersionError(
        f"Unsupported session schema version {version} "
        f"(supported: {LEGACY_SCHEMA_VERSION}, {CURRENT_SCHEMA_VERSION})"
    )


def load_session_document(
    document: dict[str, Any], owner_id: str | None = None
) -> Session:
    """Migrate a stored document and validate it as a ``Session``."""
    return Session.model_validate(migrate_document(document, owner_id))


def _date_part(value: Any) -> str | None:
    """Reduce an ISO date or datetime string to ``YYYY-MM-DD``."""
    if not value:
        return None
    return str(value)[:10]


def _first(document: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = document.get(key)
        if value not in (None, ""):
            return value
    return None


def migrate_v1_to_v2(
    document: dict[str, Any], owner_id: str | None = None
) -> dict[str, Any]:
    """Convert a legacy camelCase document to the current schema.

    The legacy data-start date was stored under ``startDateOfData``,
    ``practiceStartDate`` or ``startDate`` depending on the client version;
    the first one present wins. A missing ``practiceStartIndex`` means 0.
    Embedded violations carry no position reference and are attached to the
    session scope.

    Raises:
        SchemaVersionError: If no owner can be determined
    """
    session_id = document.get("id") or document.get("sessionId") or str(uuid4())
    owner = document.get("ownerId") or document.get("nickname") or owner_id
    if not owner:
        raise SchemaVersionError(
            f"Legacy session {session_id} has no owner; pass owner_id to migrate it"
        )

    current_capital = document.get("currentCapital", document.get("initialCapital"))
    period_days = int(document.get("periodDays") or 60)
    status = document.get("status") or "paused"
    current_day = int(document.get("currentDay") or 0)
    # Legacy clients could store currentDay == periodDays after completion
    current_day = min(current_day, period_days - 1)

    created_at = _first(document, "createdAt", "startDate")
    practice_start = _first(document, "practiceStartDate")

    trades = [
        _migrate_trade(t, session_id, current_capital)
        for t in document.get("trades") or []
    ]
    positions = [
        _migrate_position(p, session_id, trades)
        for p in document.get("positions") or []
    ]
    violations = [
        _migrate_violation(v, session_id) for v in document.get("violations") or []
    ]

    migrated: dict[str, Any] = {
        "schema_version": CURRENT_SCHEMA_VERSION,
        "session_id": session_id,
        "owner_id": owner,
        "symbol": document["symbol"],
        "stock_name": document.get("stockName") or document["symbol"],
        "initial_capital": document["initialCapital"],
        "current_capital": current_capital,
        "period_days": period_days,
        "practice_start_index": int(document.get("practiceStartIndex") or 0),
        "current_day": current_day,
        "status": status,
        "playback_speed": document.get("playbackSpeed") or 5.0,
        "ma_periods": document.get("maSettings") or [],
        "trade_count": document.get("tradeCount") or 0,
        "win_count": document.get("winCount") or 0,
        "win_rate": document.get("winRate") or 0.0,
        "rule_violation_count": max(
            int(document.get("ruleViolations") or 0), len(violations)
        ),
        "max_drawdown": abs(float(document.get("maxDrawdown") or 0.0)),
        "positions": positions,
        "trades": trades,
        "violations": violations,
        "completed_at": document.get("endDate") if status == "completed" else None,
        "data_start_date": _date_part(
            _first(document, "startDateOfData", "practiceStartDate", "startDate")
        ),
        "data_end_date": _date_part(document.get("endDateOfData")),
        "practice_start_date": _date_part(practice_start),
        "reflection": document.get("reflection"),
    }
    if created_at:
        # Date-only values are taken as midnight
        created = str(created_at)
        migrated["created_at"] = created if len(created) > 10 else f"{created}T00:00:00"

    logger.info(
        f"Migrated legacy session {session_id} ({migrated['symbol']}) "
        f"to schema version {CURRENT_SCHEMA_VERSION}"
    )
    return migrated


def _migrate_trade(
    trade: dict[str, Any], session_id: str, fallback_capital: Any
) -> dict[str, Any]:
    migrated = {
        "session_id": trade.get("sessionId") or session_id,
        "position_id": trade.get("positionId"),
        "type": trade["type"],
        "trading_type": trade.get("tradingType") or "spot",
        "is_short": bool(trade.get("isShort", False)),
        "trade_date": _date_part(trade.get("tradeDate") or trade.get("timestamp")),
        "price": trade["price"],
        "shares": trade["shares"],
        "fee": trade.get("fee") or 0,
        "slippage": trade.get("slippage") or 0,
        "total_cost": trade.get("totalCost") or 0,
        "memo": trade.get("memo") or "",
        "capital_after_trade": trade.get("capitalAfterTrade", fallback_capital),
    }
    if trade.get("id"):
        migrated["trade_id"] = trade["id"]
    if trade.get("timestamp") and len(str(trade["timestamp"])) > 10:
        migrated["executed_at"] = trade["timestamp"]
    return migrated


def _migrate_position(
    position: dict[str, Any],
    session_id: str,
    trades: list[dict[str, Any]],
) -> dict[str, Any]:
    position_id = position.get("id")
    position_type = position.get("type") or "long"
    trading_type = position.get("tradingType") or (
        "margin" if position_type == "short" else "spot"
    )

    linked = [t for t in trades if position_id and t.get("position_id") == position_id]
    open_trade_id = position.get("openTradeId") or (
        linked[0].get("trade_id") if linked else None
    )
    close_trade_id = position.get("closeTradeId") or (
        linked[1].get("trade_id") if len(linked) > 1 else None
    )

    migrated = {
        "session_id": position.get("sessionId") or session_id,
        "open_trade_id": open_trade_id or f"legacy-{position_id}",
        "close_trade_id": close_trade_id,
        "type": position_type,
        "trading_type": trading_type,
        "shares": position["shares"],
        "entry_price": position["entryPrice"],
        "entry_date": _date_part(position["entryDate"]),
        "status": position.get("status") or "open",
        "exit_price": position.get("exitPrice"),
        "exit_date": _date_part(position.get("exitDate")),
        "profit": _first(position, "profit", "profitLoss"),
        "profit_rate": position.get("profitRate"),
    }
    if position_id:
        migrated["position_id"] = position_id
    return migrated


def _migrate_violation(
    violation: dict[str, Any], session_id: str
) -> dict[str, Any]:
    migrated = {
        "session_id": violation.get("sessionId") or session_id,
        "position_id": violation.get("positionId") or SESSION_SCOPE,
        "type": violation["type"],
        "description": violation.get("description") or "",
        "severity": violation.get("severity") or "warning",
    }
    if violation.get("id"):
        migrated["violation_id"] = violation["id"]
    if violation.get("timestamp"):
        migrated["timestamp"] = violation["timestamp"]
        migrated["bar_date"] = _date_part(violation["timestamp"])
    return migrated
