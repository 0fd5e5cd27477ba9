"""Import command for sessions exported by the previous version of the app."""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from src.cli.common import (
    DATABASE_OPTION,
    OWNER_OPTION,
    console,
    fail,
    format_money,
    open_store,
    resolve_owner,
)
from src.storage.migrations import load_session_document

logger = logging.getLogger(__name__)


def import_legacy(
    path: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="JSON file with one exported session or a list of them.",
    ),
    db_path: str = DATABASE_OPTION,
    owner: Optional[str] = OWNER_OPTION,
) -> None:
    """Migrate exported session documents into the session database.

    Documents without an owner are assigned to --owner.

    Example:
        swing-trainer import-legacy exports/sessions.json --owner alice
    """
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        documents = payload if isinstance(payload, list) else [payload]
        owner_id = resolve_owner(owner)
        store = open_store(db_path)

        table = Table(title="Imported Sessions", show_header=True, header_style="bold")
        table.add_column("Session")
        table.add_column("Owner")
        table.add_column("Stock")
        table.add_column("Status")
        table.add_column("Trades", justify="right")
        table.add_column("Capital", justify="right")

        imported = 0
        for document in documents:
            session = load_session_document(document, owner_id)
            store.put(session.owner_id, session)
            imported += 1
            table.add_row(
                session.session_id,
                session.owner_id,
                f"{session.stock_name} ({session.symbol})",
                session.status.value,
                str(len(session.trades)),
                format_money(session.current_capital),
            )

        logger.info(f"Imported {imported} session(s) from {path}")
        console.print(table)
        console.print(f"[green]Imported {imported} session(s).[/green]")

    except typer.Exit:
        raise
    except Exception as e:
        fail(f"Failed to import {path}", e)
