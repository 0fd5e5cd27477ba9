"""DuckDB session store.

Each session is stored as one row in ``simulator.sessions`` (summary columns
plus the JSON document of the scalar fields) and one row per child in the
positions, trades and violations tables. Saving replaces the session and all
of its children inside a single transaction.

Money columns hold the decimal text of each amount so prices with more digits
than a fixed DECIMAL scale come back unchanged.
"""

import json
import logging
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any

import duckdb

from src.simulator.models import Session, SessionStatus
from src.storage.base import PersistenceError, SessionStore, SessionSummary
from src.storage.migrations import migrate_document

logger = logging.getLogger(__name__)

CHILD_COLLECTIONS = ("positions", "trades", "violations")

POSITION_COLUMNS = (
    "position_id",
    "session_id",
    "open_trade_id",
    "close_trade_id",
    "type",
    "trading_type",
    "shares",
    "entry_price",
    "entry_date",
    "status",
    "exit_price",
    "exit_date",
    "profit",
    "profit_rate",
)

TRADE_COLUMNS = (
    "trade_id",
    "session_id",
    "position_id",
    "type",
    "trading_type",
    "is_short",
    "trade_date",
    "price",
    "shares",
    "fee",
    "slippage",
    "total_cost",
    "memo",
    "capital_after_trade",
    "executed_at",
)

VIOLATION_COLUMNS = (
    "violation_id",
    "session_id",
    "timestamp",
    "bar_date",
    "position_id",
    "type",
    "description",
    "severity",
)


def _to_param(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    return value


class DuckDBSessionStore(SessionStore):
    """Session store in a dedicated schema of a DuckDB database.

    Note: SQL queries use f-strings with the SCHEMA constant (not user input).
    Saves delete and re-insert rows in one transaction, so the tables carry no
    unique constraints.
    """

    SCHEMA = "simulator"  # noqa: S608 - constant, not user input

    def __init__(self, db_path: str | Path = "data/swing_trainer.duckdb") -> None:
        """Initialize storage with database path.

        Args:
            db_path: Path to the DuckDB database file.
        """
        super().__init__()
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get a database connection."""
        return duckdb.connect(str(self.db_path))

    def _init_schema(self) -> None:
        """Initialize the simulator schema and tables."""
        with self._get_connection() as conn:
            conn.execute(f"CREATE SCHEMA IF NOT EXISTS {self.SCHEMA}")

            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.SCHEMA}.sessions (
                    session_id VARCHAR NOT NULL,
                    owner_id VARCHAR NOT NULL,
                    symbol VARCHAR NOT NULL,
                    stock_name VARCHAR NOT NULL,
                    status VARCHAR NOT NULL,
                    current_day INTEGER NOT NULL,
                    period_days INTEGER NOT NULL,
                    initial_capital VARCHAR NOT NULL,
                    current_capital VARCHAR NOT NULL,
                    trade_count INTEGER NOT NULL,
                    win_rate DOUBLE NOT NULL,
                    schema_version INTEGER NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    document TEXT NOT NULL
                )
            """)

            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.SCHEMA}.positions (
                    position_id VARCHAR NOT NULL,
                    session_id VARCHAR NOT NULL,
                    open_trade_id VARCHAR NOT NULL,
                    close_trade_id VARCHAR,
                    type VARCHAR NOT NULL,
                    trading_type VARCHAR NOT NULL,
                    shares INTEGER NOT NULL,
                    entry_price VARCHAR NOT NULL,
                    entry_date DATE NOT NULL,
                    status VARCHAR NOT NULL,
                    exit_price VARCHAR,
                    exit_date DATE,
                    profit VARCHAR,
                    profit_rate DOUBLE,
                    seq INTEGER NOT NULL
                )
            """)

            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.SCHEMA}.trades (
                    trade_id VARCHAR NOT NULL,
                    session_id VARCHAR NOT NULL,
                    position_id VARCHAR,
                    type VARCHAR NOT NULL,
                    trading_type VARCHAR NOT NULL,
                    is_short BOOLEAN NOT NULL,
                    trade_date DATE NOT NULL,
                    price VARCHAR NOT NULL,
                    shares INTEGER NOT NULL,
                    fee VARCHAR NOT NULL,
                    slippage VARCHAR NOT NULL,
                    total_cost VARCHAR NOT NULL,
                    memo TEXT,
                    capital_after_trade VARCHAR NOT NULL,
                    executed_at TIMESTAMP NOT NULL,
                    seq INTEGER NOT NULL
                )
            """)

            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.SCHEMA}.violations (
                    violation_id VARCHAR NOT NULL,
                    session_id VARCHAR NOT NULL,
                    timestamp TIMESTAMP NOT NULL,
                    bar_date DATE,
                    position_id VARCHAR NOT NULL,
                    type VARCHAR NOT NULL,
                    description TEXT NOT NULL,
                    severity VARCHAR NOT NULL,
                    seq INTEGER NOT NULL
                )
            """)

            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_sessions_owner "
                f"ON {self.SCHEMA}.sessions(owner_id)"
            )

    def list_sessions(self, owner_id: str) -> list[SessionSummary]:
        """List an owner's sessions, newest first."""
        with self._get_connection() as conn:
            result = conn.execute(
                f"""
                SELECT session_id, owner_id, symbol, stock_name, status,
                       current_day, period_days, initial_capital,
                       current_capital, trade_count, win_rate, created_at
                FROM {self.SCHEMA}.sessions
                WHERE owner_id = ?
                ORDER BY created_at DESC
                """,
                [owner_id],
            ).fetchall()

        return [
            SessionSummary(
                session_id=row[0],
                owner_id=row[1],
                symbol=row[2],
                stock_name=row[3],
                status=SessionStatus(row[4]),
                current_day=row[5],
                period_days=row[6],
                initial_capital=row[7],
                current_capital=row[8],
                trade_count=row[9],
                win_rate=row[10],
                created_at=row[11],
            )
            for row in result
        ]

    def get(self, owner_id: str, session_id: str) -> Session | None:
        """Fetch a session with all of its children.

        Raises:
            SchemaVersionError: If the stored document is from a newer version
            PersistenceError: If the stored data cannot be read
        """
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    f"""
                    SELECT document FROM {self.SCHEMA}.sessions
                    WHERE session_id = ? AND owner_id = ?
                    """,
                    [session_id, owner_id],
                ).fetchone()
                if row is None:
                    return None

                document = migrate_document(json.loads(row[0]), owner_id)
                document["positions"] = self._fetch_children(
                    conn, "positions", POSITION_COLUMNS, session_id
                )
                document["trades"] = self._fetch_children(
                    conn, "trades", TRADE_COLUMNS, session_id
                )
                document["violations"] = self._fetch_children(
                    conn, "violations", VIOLATION_COLUMNS, session_id
                )
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to load session {session_id}: {e}") from e

        return Session.model_validate(document)

    def _write(self, owner_id: str, session: Session) -> None:
        document = session.model_dump_json(exclude=set(CHILD_COLLECTIONS))

        try:
            with self._get_connection() as conn:
                conn.begin()
                try:
                    self._delete_rows(conn, session.session_id)
                    conn.execute(
                        f"""
                        INSERT INTO {self.SCHEMA}.sessions
                        (session_id, owner_id, symbol, stock_name, status,
                         current_day, period_days, initial_capital,
                         current_capital, trade_count, win_rate,
                         schema_version, created_at, updated_at, document)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?,
                                CURRENT_TIMESTAMP, ?)
                        """,
                        [
                            session.session_id,
                            owner_id,
                            session.symbol,
                            session.stock_name,
                            session.status.value,
                            session.current_day,
                            session.period_days,
                            str(session.initial_capital),
                            str(session.current_capital),
                            session.trade_count,
                            session.win_rate,
                            session.schema_version,
                            session.created_at,
                            document,
                        ],
                    )
                    self._insert_children(
                        conn, "positions", POSITION_COLUMNS, session.positions
                    )
                    self._insert_children(conn, "trades", TRADE_COLUMNS, session.trades)
                    self._insert_children(
                        conn, "violations", VIOLATION_COLUMNS, session.violations
                    )
                    conn.commit()
                except duckdb.Error:
                    conn.rollback()
                    raise
        except duckdb.Error as e:
            raise PersistenceError(
                f"Failed to save session {session.session_id}: {e}"
            ) from e

        logger.debug(
            f"Saved session {session.session_id}: {len(session.positions)} positions, "
            f"{len(session.trades)} trades, {len(session.violations)} violations"
        )

    def _remove(self, owner_id: str, session_id: str) -> bool:
        try:
            with self._get_connection() as conn:
                exists = conn.execute(
                    f"""
                    SELECT COUNT(*) FROM {self.SCHEMA}.sessions
                    WHERE session_id = ? AND owner_id = ?
                    """,
                    [session_id, owner_id],
                ).fetchone()
                if not exists or exists[0] == 0:
                    return False

                conn.begin()
                self._delete_rows(conn, session_id)
                conn.commit()
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to delete session {session_id}: {e}") from e

        logger.info(f"Deleted session {session_id}")
        return True

    def _delete_rows(self, conn: duckdb.DuckDBPyConnection, session_id: str) -> None:
        """Delete a session row and every child row."""
        for table in (*CHILD_COLLECTIONS, "sessions"):
            conn.execute(
                f"DELETE FROM {self.SCHEMA}.{table} WHERE session_id = ?",
                [session_id],
            )

    def _insert_children(
        self,
        conn: duckdb.DuckDBPyConnection,
        table: str,
        columns: tuple[str, ...],
        children: list[Any],
    ) -> None:
        if not children:
            return

        placeholders = ", ".join("?" for _ in range(len(columns) + 1))
        rows = []
        for seq, child in enumerate(children):
            data = child.model_dump()
            rows.append([_to_param(data[c]) for c in columns] + [seq])

        conn.executemany(
            f"""
            INSERT INTO {self.SCHEMA}.{table} ({", ".join(columns)}, seq)
            VALUES ({placeholders})
            """,
            rows,
        )

    def _fetch_children(
        self,
        conn: duckdb.DuckDBPyConnection,
        table: str,
        columns: tuple[str, ...],
        session_id: str,
    ) -> list[dict[str, Any]]:
        result = conn.execute(
            f"""
            SELECT {", ".join(columns)}
            FROM {self.SCHEMA}.{table}
            WHERE session_id = ?
            ORDER BY seq
            """,
            [session_id],
        ).fetchall()
        return [dict(zip(columns, row, strict=True)) for row in result]

    def count_violations(self, session_id: str) -> int:
        """Number of stored violations for a session."""
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) FROM {self.SCHEMA}.violations WHERE session_id = ?",
                [session_id],
            ).fetchone()
        return int(row[0]) if row else 0

