# src/certshare/monitor/tail.py
"""Live multiplexed tail of the newest worker log files."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import typer

from certshare.monitor.logparse import list_log_files

POLL_INTERVAL_SECONDS = 0.5
MAX_CHUNK_BYTES = 256 * 1024
MAX_TRACKED_FILES = 64
COLORS: tuple[str, ...] = (
    typer.colors.CYAN,
    typer.colors.GREEN,
    typer.colors.YELLOW,
    typer.colors.MAGENTA,
    typer.colors.BLUE,
    typer.colors.WHITE,
    typer.colors.BRIGHT_BLACK,
    typer.colors.RED,
)


@dataclass(frozen=True)
class TailLine:
    source: str
    color: str
    text: str

    def render(self) -> str:
        return typer.style(f"[{self.source}] ", fg=self.color) + self.text


@dataclass
class _Tracked:
    offset: int
    color: str
    pending: bytes = b""


class LiveTail:
    """Follows appended lines across the newest ``max_files`` log files.

    Files already present when ``prime()`` runs are followed from their
    current end; files that appear later are read from the beginning. At
    most ``chunk_bytes`` are read from a file per poll, the rest is picked
    up on the next one. Files that leave the window lose their state.
    """

    def __init__(
        self,
        logs_dir: Path,
        *,
        max_files: int = MAX_TRACKED_FILES,
        chunk_bytes: int = MAX_CHUNK_BYTES,
    ) -> None:
        self.logs_dir = logs_dir
        self.max_files = max_files
        self.chunk_bytes = chunk_bytes
        self._tracked: dict[Path, _Tracked] = {}
        self._seen = 0

    @property
    def tracked(self) -> list[Path]:
        return list(self._tracked)

    def offset_of(self, path: Path) -> int | None:
        state = self._tracked.get(path)
        return state.offset if state is not None else None

    def _next_color(self) -> str:
        color = COLORS[self._seen % len(COLORS)]
        self._seen += 1
        return color

    def _sync(self, *, from_end: bool) -> None:
        files = list_log_files(self.logs_dir, self.max_files)
        for path in files:
            if path in self._tracked:
                continue
            offset = 0
            if from_end:
                try:
                    offset = path.stat().st_size
                except FileNotFoundError:
                    continue
            self._tracked[path] = _Tracked(offset=offset, color=self._next_color())
        for gone in set(self._tracked) - set(files):
            del self._tracked[gone]

    def prime(self) -> None:
        """Start following the current files from their end."""
        self._sync(from_end=True)

    def poll(self) -> list[TailLine]:
        """Read newly appended complete lines from every tracked file."""
        self._sync(from_end=False)
        lines: list[TailLine] = []
        for path, state in list(self._tracked.items()):
            try:
                size = path.stat().st_size
                if size < state.offset:
                    state.offset = 0
                    state.pending = b""
                if size == state.offset:
                    continue
                with path.open("rb") as f:
                    f.seek(state.offset)
                    chunk = f.read(min(size - state.offset, self.chunk_bytes))
            except FileNotFoundError:
                del self._tracked[path]
                continue
            state.offset += len(chunk)
            *complete, state.pending = (state.pending + chunk).split(b"\n")
            for raw in complete:
                text = raw.decode("utf-8", errors="replace").rstrip("\r")
                if text:
                    lines.append(TailLine(source=path.name, color=state.color, text=text))
        return lines


def follow(
    tail: LiveTail,
    stop: threading.Event,
    *,
    interval: float = POLL_INTERVAL_SECONDS,
    emit: Callable[[str], None] = typer.echo,
) -> None:
    """Print new lines until ``stop`` is set."""
    tail.prime()
    emit(typer.style("Live logs: following the latest log files. Press Ctrl+C to stop.", fg=typer.colors.YELLOW))
    while not stop.is_set():
        for line in tail.poll():
            emit(line.render())
        stop.wait(interval)
