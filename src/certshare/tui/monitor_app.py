# src/certshare/tui/monitor_app.py
"""Table monitor TUI.

Redraws the worker table every refresh interval from the log directory.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, ClassVar

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header, Static

from certshare.monitor.logparse import MAX_TABLE_SLOTS, WorkerBoard
from certshare.monitor.table import render_table

TABLE_ID = "worker-table"
REFRESH_SECONDS = 2.0


class MonitorApp(App[None]):
    """Live table of the newest worker log files."""

    TITLE = "certshare monitor"
    CSS = f"""
    #{TABLE_ID} {{
        height: 100%;
        border: solid green;
    }}
    """

    BINDINGS: ClassVar[list[Binding | tuple[str, str] | tuple[str, str, str]]] = [
        Binding("q", "quit", "Quit"),
        Binding("r", "refresh", "Refresh"),
    ]

    def __init__(
        self,
        logs_dir: Path,
        *,
        max_slots: int = MAX_TABLE_SLOTS,
        refresh_seconds: float = REFRESH_SECONDS,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._board = WorkerBoard(logs_dir, max_slots=max_slots)
        self._refresh_seconds = refresh_seconds

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static(self.render_board(), id=TABLE_ID, markup=False)
        yield Footer()

    def on_mount(self) -> None:
        self.set_interval(self._refresh_seconds, self.action_refresh)

    def render_board(self) -> str:
        return render_table(self._board.refresh(), datetime.now(), refresh_seconds=self._refresh_seconds)

    def action_refresh(self) -> None:
        self.query_one(f"#{TABLE_ID}", Static).update(self.render_board())
