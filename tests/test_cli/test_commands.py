"""Tests for CLI commands against a CSV price file and a temporary database."""

import json
from collections.abc import Callable
from pathlib import Path

import pandas as pd
import pytest
from typer.testing import CliRunner, Result

from src.cli.main import app
from src.simulator.models import PositionStatus, Session, SessionStatus
from src.storage.duckdb import DuckDBSessionStore
from tests.conftest import SYMBOL, build_prices

runner = CliRunner()

Invoke = Callable[..., Result]


@pytest.fixture
def prices_csv(tmp_path: Path) -> Path:
    """Thirty rising daily bars for one symbol."""
    bars = build_prices(range(1000, 1030))
    path = tmp_path / "prices.csv"
    pd.DataFrame(
        {
            "symbol": [b.symbol for b in bars],
            "date": [b.date.isoformat() for b in bars],
            "open": [float(b.open) for b in bars],
            "high": [float(b.high) for b in bars],
            "low": [float(b.low) for b in bars],
            "close": [float(b.close) for b in bars],
            "volume": [b.volume for b in bars],
        }
    ).to_csv(path, index=False)
    return path


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Database file in the test directory."""
    return tmp_path / "sessions.duckdb"


@pytest.fixture
def invoke(prices_csv: Path, db_path: Path) -> Invoke:
    """Run a session command with the test database, prices and owner."""

    def _invoke(command: str, *args: str, prices: bool = True) -> Result:
        options = ["-d", str(db_path), "-u", "alice"]
        if prices:
            options += ["-p", str(prices_csv)]
        return runner.invoke(app, ["--quiet", command, *args, *options])

    return _invoke


@pytest.fixture
def session_id(invoke: Invoke, db_path: Path) -> str:
    """Create a ten-bar session and return its id."""
    result = invoke(
        "new", "--period-days", "10", "--historical-days", "5", "--seed", "1"
    )
    assert result.exit_code == 0, result.stdout
    return DuckDBSessionStore(db_path).list_sessions("alice")[0].session_id


def _stored(db_path: Path, session_id: str) -> Session:
    return DuckDBSessionStore(db_path).load_session("alice", session_id)


class TestNewAndList:
    """Tests for creating and listing sessions."""

    def test_new_creates_paused_session(
        self, session_id: str, db_path: Path
    ) -> None:
        """Test the session is stored paused on the first practice bar."""
        session = _stored(db_path, session_id)

        assert session.symbol == SYMBOL
        assert session.status == SessionStatus.PAUSED
        assert session.current_day == 0
        assert session.period_days == 10
        assert session.practice_start_index == 5

    def test_sessions_json(self, invoke: Invoke, session_id: str) -> None:
        """Test JSON listing of sessions."""
        result = invoke("sessions", "--format", "json", prices=False)

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [s["session_id"] for s in data] == [session_id]
        assert data[0]["status"] == "paused"

    def test_sessions_empty(self, invoke: Invoke) -> None:
        """Test the hint shown when there are no sessions."""
        result = invoke("sessions", prices=False)
        assert result.exit_code == 0
        assert "No sessions yet" in result.stdout

    def test_new_unknown_symbol(self, invoke: Invoke) -> None:
        """Test an unknown symbol fails cleanly."""
        result = invoke("new", "--symbol", "0000.T")
        assert result.exit_code == 1
        assert "Error" in result.stdout


class TestOrders:
    """Tests for order and close commands."""

    def test_buy_opens_position(
        self, invoke: Invoke, session_id: str, db_path: Path
    ) -> None:
        """Test a spot buy is filled and stored."""
        result = invoke(
            "order", session_id, "--side", "buy", "--shares", "100", "-m", "Breakout"
        )

        assert result.exit_code == 0, result.stdout
        assert "Opened long position" in result.stdout
        session = _stored(db_path, session_id)
        assert len(session.trades) == 1
        assert session.open_positions[0].shares == 100

    def test_dry_run_places_nothing(
        self, invoke: Invoke, session_id: str, db_path: Path
    ) -> None:
        """Test a preview does not change the session."""
        result = invoke(
            "order",
            session_id,
            "--side",
            "buy",
            "--shares",
            "100",
            "-m",
            "Check",
            "--dry-run",
        )

        assert result.exit_code == 0
        assert "Max shares" in result.stdout
        assert _stored(db_path, session_id).trades == []

    def test_spot_sell_rejected(self, invoke: Invoke, session_id: str) -> None:
        """Test short selling requires the margin account."""
        result = invoke(
            "order", session_id, "--side", "sell", "--shares", "100", "-m", "Top"
        )
        assert result.exit_code == 1
        assert "Spot sell" in result.stdout

    def test_margin_short(
        self, invoke: Invoke, session_id: str, db_path: Path
    ) -> None:
        """Test a margin sell opens a short position."""
        result = invoke(
            "order",
            session_id,
            "--side",
            "sell",
            "--shares",
            "100",
            "--margin",
            "-m",
            "Fade",
        )

        assert result.exit_code == 0, result.stdout
        assert "Opened short position" in result.stdout
        assert _stored(db_path, session_id).trades[0].is_short

    def test_invalid_side(self, invoke: Invoke, session_id: str) -> None:
        """Test an unknown side is rejected before loading the session."""
        result = invoke("order", session_id, "--side", "hold", "--shares", "100")
        assert result.exit_code == 1
        assert "Invalid side" in result.stdout

    def test_close_by_prefix(
        self, invoke: Invoke, session_id: str, db_path: Path
    ) -> None:
        """Test a position can be closed by a unique id prefix."""
        invoke("order", session_id, "--side", "buy", "--shares", "100", "-m", "Entry")
        invoke("next", session_id)
        position_id = _stored(db_path, session_id).positions[0].position_id

        result = invoke("close", session_id, position_id[:8], "-m", "Target")

        assert result.exit_code == 0, result.stdout
        assert "Profit" in result.stdout
        session = _stored(db_path, session_id)
        assert session.positions[0].status == PositionStatus.CLOSED
        assert session.trade_count == 1

    def test_close_unknown_position(self, invoke: Invoke, session_id: str) -> None:
        """Test closing without a matching open position fails."""
        result = invoke("close", session_id, "zzzz")
        assert result.exit_code == 1
        assert "No open position" in result.stdout


class TestPlayback:
    """Tests for next and play commands."""

    def test_next_advances(
        self, invoke: Invoke, session_id: str, db_path: Path
    ) -> None:
        """Test manual steps are persisted."""
        result = invoke("next", session_id, "--count", "3")

        assert result.exit_code == 0, result.stdout
        assert "Day 4/10" in result.stdout
        assert _stored(db_path, session_id).current_day == 3

    def test_next_to_completion_then_reflect(
        self, invoke: Invoke, session_id: str, db_path: Path
    ) -> None:
        """Test stepping past the last bar completes the session."""
        result = invoke("next", session_id, "--count", "20")
        assert result.exit_code == 0, result.stdout
        assert "Session completed" in result.stdout

        result = invoke(
            "reflect", session_id, "Waited too long to enter.", prices=False
        )
        assert result.exit_code == 0, result.stdout

        session = _stored(db_path, session_id)
        assert session.status == SessionStatus.COMPLETED
        assert session.current_day == 9
        assert session.reflection == "Waited too long to enter."

    def test_performance_after_completion(
        self, invoke: Invoke, session_id: str, db_path: Path
    ) -> None:
        """Test show and sessions report profit statistics of finished sessions."""
        invoke("order", session_id, "--side", "buy", "--shares", "100", "-m", "Entry")
        invoke("next", session_id)
        position_id = _stored(db_path, session_id).positions[0].position_id
        invoke("close", session_id, position_id, "-m", "Exit")

        result = invoke("sessions", prices=False)
        assert result.exit_code == 0, result.stdout
        assert "Performance" not in result.stdout

        invoke("next", session_id, "--count", "20")

        result = invoke("sessions", prices=False)
        assert result.exit_code == 0, result.stdout
        assert "Performance" in result.stdout
        assert "Completed: 1" in result.stdout

        result = invoke("show", session_id)
        assert result.exit_code == 0, result.stdout
        assert "Avg profit" in result.stdout

    def test_reflect_before_completion(self, invoke: Invoke, session_id: str) -> None:
        """Test reflections wait for the end of the session."""
        result = invoke("reflect", session_id, "Too early", prices=False)
        assert result.exit_code == 1
        assert "completion" in result.stdout

    def test_play_pauses_after_bars(
        self, invoke: Invoke, session_id: str, db_path: Path
    ) -> None:
        """Test timed playback stops after the requested number of bars."""
        result = invoke("play", session_id, "--bars", "2", "--speed", "0.01")

        assert result.exit_code == 0, result.stdout
        session = _stored(db_path, session_id)
        assert session.current_day == 2
        assert session.status == SessionStatus.PAUSED
        assert session.playback_speed == 0.01


class TestShow:
    """Tests for the show command."""

    def test_show_session(self, invoke: Invoke, session_id: str) -> None:
        """Test the panel and recent bars are displayed."""
        invoke("order", session_id, "--side", "buy", "--shares", "100", "-m", "Entry")
        result = invoke("show", session_id, "--bars", "3")

        assert result.exit_code == 0, result.stdout
        assert SYMBOL in result.stdout
        assert "Open Positions" in result.stdout
        assert "Trades" in result.stdout

    def test_show_weekly(self, invoke: Invoke, session_id: str) -> None:
        """Test aggregated bars can be displayed."""
        result = invoke("show", session_id, "--timeframe", "weekly")
        assert result.exit_code == 0, result.stdout
        assert "weekly" in result.stdout

    def test_invalid_timeframe(self, invoke: Invoke, session_id: str) -> None:
        """Test an unknown timeframe is rejected."""
        result = invoke("show", session_id, "--timeframe", "hourly")
        assert result.exit_code == 1
        assert "Invalid timeframe" in result.stdout

    def test_unknown_session(self, invoke: Invoke) -> None:
        """Test a missing session fails cleanly."""
        result = invoke("show", "does-not-exist")
        assert result.exit_code == 1


class TestImportLegacy:
    """Tests for importing exported sessions."""

    def test_import_assigns_owner(
        self, invoke: Invoke, tmp_path: Path, db_path: Path
    ) -> None:
        """Test legacy documents are migrated under the given owner."""
        export = tmp_path / "export.json"
        export.write_text(
            json.dumps(
                [
                    {
                        "id": "legacy-1",
                        "symbol": "6758.T",
                        "stockName": "Sony Group",
                        "initialCapital": 1000000,
                        "currentCapital": 1000000,
                        "periodDays": 30,
                        "currentDay": 4,
                        "status": "paused",
                        "createdAt": "2023-05-01",
                    }
                ]
            ),
            encoding="utf-8",
        )

        result = invoke("import-legacy", str(export), prices=False)

        assert result.exit_code == 0, result.stdout
        assert "Imported 1 session(s)" in result.stdout
        session = _stored(db_path, "legacy-1")
        assert session.stock_name == "Sony Group"
        assert session.current_day == 4

    def test_import_rejects_future_schema(
        self, invoke: Invoke, tmp_path: Path
    ) -> None:
        """Test unsupported documents fail the import."""
        export = tmp_path / "export.json"
        export.write_text(json.dumps({"schema_version": 9}), encoding="utf-8")

        result = invoke("import-legacy", str(export), prices=False)
        assert result.exit_code == 1
