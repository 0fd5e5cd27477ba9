"""Tests for session document migrations."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

import pytest

from src.simulator.models import (
    CURRENT_SCHEMA_VERSION,
    SESSION_SCOPE,
    PositionStatus,
    PositionType,
    SessionStatus,
    TradingType,
)
from src.storage.base import SchemaVersionError
from src.storage.migrations import (
    detect_version,
    load_session_document,
    migrate_document,
)


@pytest.fixture
def legacy_document() -> dict[str, Any]:
    """A camelCase session written by the old client."""
    return {
        "id": "sess-1",
        "nickname": "trader_a",
        "symbol": "7203.T",
        "stockName": "Toyota Motor",
        "initialCapital": 1000000,
        "currentCapital": 1019670,
        "periodDays": 20,
        "currentDay": 20,
        "status": "completed",
        "startDate": "2023-04-03",
        "endDate": "2023-06-01T18:00:00",
        "practiceStartDate": "2023-01-05",
        "endDateOfData": "2023-02-10",
        "tradeCount": 1,
        "winCount": 1,
        "winRate": 100,
        "maxDrawdown": -3.5,
        "trades": [
            {
                "id": "t-1",
                "positionId": "p-1",
                "type": "buy",
                "tradeDate": "2023-01-10",
                "price": 1000,
                "shares": 100,
                "fee": 100,
                "slippage": 50,
                "totalCost": 100150,
                "memo": "Breakout",
                "capitalAfterTrade": 899850,
                "timestamp": "2023-04-03T10:15:00",
            },
            {
                "id": "t-2",
                "positionId": "p-1",
                "type": "sell",
                "tradeDate": "2023-01-20",
                "price": 1200,
                "shares": 100,
                "fee": 120,
                "slippage": 60,
                "totalCost": 119820,
                "capitalAfterTrade": 1019670,
            },
        ],
        "positions": [
            {
                "id": "p-1",
                "type": "long",
                "shares": 100,
                "entryPrice": 1000,
                "entryDate": "2023-01-10",
                "status": "closed",
                "exitPrice": 1200,
                "exitDate": "2023-01-20",
                "profitLoss": 19820,
                "profitRate": 19.82,
            }
        ],
        "violations": [
            {
                "id": "v-1",
                "type": "position_size",
                "description": "Position too large",
                "severity": "warning",
                "timestamp": "2023-01-10T09:00:00",
            }
        ],
    }


class TestDetectVersion:
    """Tests for schema version detection."""

    def test_missing_version_is_legacy(self) -> None:
        """Test documents without a version are version 1."""
        assert detect_version({}) == 1

    def test_explicit_version(self) -> None:
        """Test the stored version is used."""
        assert detect_version({"schema_version": "2"}) == 2

    def test_invalid_version(self) -> None:
        """Test garbage versions are rejected."""
        with pytest.raises(SchemaVersionError):
            detect_version({"schema_version": "two"})


class TestMigrateLegacy:
    """Tests for the camelCase to snake_case migration."""

    def test_scalar_fields(self, legacy_document: dict[str, Any]) -> None:
        """Test session fields are renamed and normalised."""
        session = load_session_document(legacy_document)

        assert session.schema_version == CURRENT_SCHEMA_VERSION
        assert session.session_id == "sess-1"
        assert session.owner_id == "trader_a"
        assert session.status == SessionStatus.COMPLETED
        assert session.current_capital == Decimal("1019670")
        assert session.max_drawdown == 3.5
        assert session.completed_at == datetime(2023, 6, 1, 18, 0)
        assert session.created_at == datetime(2023, 4, 3)

    def test_current_day_clamped(self, legacy_document: dict[str, Any]) -> None:
        """Test a day equal to the period length is pulled back to the last bar."""
        session = load_session_document(legacy_document)
        assert session.current_day == 19

    def test_data_start_date_precedence(
        self, legacy_document: dict[str, Any]
    ) -> None:
        """Test the first present start-date key wins."""
        assert load_session_document(legacy_document).data_start_date == date(
            2023, 1, 5
        )

        legacy_document["startDateOfData"] = "2022-12-01"
        session = load_session_document(legacy_document)
        assert session.data_start_date == date(2022, 12, 1)
        assert session.data_end_date == date(2023, 2, 10)
        assert session.practice_start_date == date(2023, 1, 5)

    def test_positions_and_trades(self, legacy_document: dict[str, Any]) -> None:
        """Test children are converted and linked."""
        session = load_session_document(legacy_document)
        position = session.positions[0]

        assert position.position_id == "p-1"
        assert position.type == PositionType.LONG
        assert position.trading_type == TradingType.SPOT
        assert position.status == PositionStatus.CLOSED
        assert position.profit == Decimal("19820")
        assert position.open_trade_id == "t-1"
        assert position.close_trade_id == "t-2"

        assert [t.trade_id for t in session.trades] == ["t-1", "t-2"]
        assert session.trades[0].executed_at == datetime(2023, 4, 3, 10, 15)
        assert session.trades[1].memo == ""

    def test_violations_attached_to_session(
        self, legacy_document: dict[str, Any]
    ) -> None:
        """Test legacy violations without a position get the session scope."""
        session = load_session_document(legacy_document)
        violation = session.violations[0]

        assert violation.position_id == SESSION_SCOPE
        assert violation.bar_date == date(2023, 1, 10)
        assert session.rule_violation_count == 1

    def test_short_position_defaults_to_margin(
        self, legacy_document: dict[str, Any]
    ) -> None:
        """Test legacy shorts are margin positions."""
        legacy_document["positions"][0]["type"] = "short"
        session = load_session_document(legacy_document)
        assert session.positions[0].trading_type == TradingType.MARGIN

    def test_missing_trade_link(self, legacy_document: dict[str, Any]) -> None:
        """Test positions without trades get a placeholder open trade id."""
        legacy_document["trades"] = []
        session = load_session_document(legacy_document)
        assert session.positions[0].open_trade_id == "legacy-p-1"

    def test_owner_fallback(self, legacy_document: dict[str, Any]) -> None:
        """Test the caller's owner is used when the document has none."""
        del legacy_document["nickname"]
        assert load_session_document(legacy_document, "alice").owner_id == "alice"

    def test_owner_required(self, legacy_document: dict[str, Any]) -> None:
        """Test a legacy document without any owner cannot be migrated."""
        del legacy_document["nickname"]
        with pytest.raises(SchemaVersionError):
            migrate_document(legacy_document)


class TestMigrateDocument:
    """Tests for version dispatch."""

    def test_current_version_passthrough(self) -> None:
        """Test current documents are returned unchanged."""
        document = {"schema_version": CURRENT_SCHEMA_VERSION, "symbol": "X"}
        assert migrate_document(document) is document

    def test_unknown_version(self) -> None:
        """Test newer versions are rejected."""
        with pytest.raises(SchemaVersionError):
            migrate_document({"schema_version": 3})
