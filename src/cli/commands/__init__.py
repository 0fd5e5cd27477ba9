"""CLI commands for SwingTrainer."""

from src.cli.commands.legacy import import_legacy
from src.cli.commands.new import new
from src.cli.commands.sessions import sessions, show
from src.cli.commands.trade import close, next_bar, order, play, reflect

__all__ = [
    "close",
    "import_legacy",
    "new",
    "next_bar",
    "order",
    "play",
    "reflect",
    "sessions",
    "show",
]
