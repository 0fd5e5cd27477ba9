"""Command-line interface for SwingTrainer.

Commands:
    new: Start a practice session on a random or chosen stock
    sessions: List practice sessions
    show: Show a session in detail
    play: Replay bars at the session's playback speed
    next: Advance a paused session manually
    order: Place a market order at the current close
    close: Close an open position
    reflect: Record a review of a completed session
    import-legacy: Import sessions exported by the previous version
"""

from src.cli.main import app

__all__ = ["app"]
