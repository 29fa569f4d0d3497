# src/certshare/monitor/logparse.py
"""Rebuild worker state from worker log files.

The monitor never talks to workers. Everything it shows is derived from
the ``share-*.log`` files: counters come from outcome lines, progress from
the latest ``Processing N participants`` marker, and liveness from the
file's modification time when there is no marker to go by.

Two equivalent strategies are provided. ``parse_log_text`` re-parses a
whole file; ``IncrementalLogReader`` carries a byte offset across polls and
feeds only appended lines. Both end in the same counters.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from certshare.contracts import log_grammar
from certshare.contracts.enums import WorkerState
from certshare.core.logging import WORKER_LOG_PREFIX, WORKER_LOG_SUFFIX

FRESHNESS_SECONDS = 15.0
MAX_TABLE_SLOTS = 16


@dataclass(frozen=True)
class WorkerSnapshot:
    """Derived, disposable view of one worker slot."""

    slot: int
    state: WorkerState = WorkerState.IDLE
    current: str = "-"
    processed: int = 0
    total: int = 0
    success: int = 0
    errors: int = 0
    skipped: int = 0
    last_activity: str = "-"
    log_file: str | None = None

    @property
    def progress(self) -> str:
        if self.total > 0:
            return f"{self.processed}/{self.total}"
        return str(self.processed)


def _clock_time(timestamp: str) -> str | None:
    try:
        parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.strftime("%H:%M:%S")


class LogParser:
    """Line-by-line accumulator of worker counters.

    Counters (success/errors/skipped) are cumulative over the whole file.
    Progress counts outcome lines since the latest ``Processing N`` marker.
    """

    def __init__(self) -> None:
        self.success = 0
        self.errors = 0
        self.skipped = 0
        self.since_marker = 0
        self.total = 0
        self.current = "-"
        self.last_activity = "-"

    @property
    def processed(self) -> int:
        return self.success + self.errors + self.skipped

    def feed_line(self, line: str) -> None:
        if not line.strip():
            return
        header = log_grammar.LINE_RE.match(line)
        if header:
            clock = _clock_time(header.group("ts"))
            if clock:
                self.last_activity = clock

        if success := log_grammar.SUCCESS_RE.search(line):
            self.success += 1
            self.since_marker += 1
            local_part = success.group("email").split("@")[0]
            if local_part:
                self.current = local_part
        elif skip := log_grammar.SKIP_RE.search(line):
            self.skipped += 1
            self.since_marker += 1
            token = skip.group("token").strip()
            if token and token != "-":
                self.current = token
        elif error := log_grammar.ERROR_RE.search(line):
            self.errors += 1
            self.since_marker += 1
            name = (error.group("name") or "").strip()
            if name:
                self.current = name

        if marker := log_grammar.PROCESSING_RE.search(line):
            self.total = int(marker.group("count"))
            self.since_marker = 0

    def feed(self, lines: list[str]) -> None:
        for line in lines:
            self.feed_line(line)

    def snapshot(self, slot: int, *, mtime: float, now: float, log_file: str | None = None) -> WorkerSnapshot:
        """Freeze the counters into a snapshot, deciding the worker state."""
        fresh = (now - mtime) < FRESHNESS_SECONDS
        if self.total > 0:
            state = WorkerState.RUNNING if self.since_marker < self.total else WorkerState.COMPLETED
            processed = self.since_marker
        else:
            processed = self.processed
            if fresh:
                state = WorkerState.RUNNING
            elif processed > 0:
                state = WorkerState.COMPLETED
            else:
                state = WorkerState.IDLE
        return WorkerSnapshot(
            slot=slot,
            state=state,
            current=self.current,
            processed=processed,
            total=self.total,
            success=self.success,
            errors=self.errors,
            skipped=self.skipped,
            last_activity=self.last_activity,
            log_file=log_file,
        )


def parse_log_text(text: str) -> LogParser:
    """Full re-parse of a log file's content."""
    parser = LogParser()
    parser.feed(text.splitlines())
    return parser


class IncrementalLogReader:
    """Parses one log file across polls, reading only appended bytes.

    A trailing line without a newline is held back until it is complete. A
    file that shrinks (truncated or replaced) is parsed again from the start.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.parser = LogParser()
        self._offset = 0
        self._pending = b""

    def poll(self) -> LogParser:
        size = self.path.stat().st_size
        if size < self._offset:
            self.parser = LogParser()
            self._offset = 0
            self._pending = b""
        if size > self._offset:
            with self.path.open("rb") as f:
                f.seek(self._offset)
                chunk = f.read(size - self._offset)
            self._offset += len(chunk)
            data = self._pending + chunk
            *complete, self._pending = data.split(b"\n")
            self.parser.feed([line.decode("utf-8", errors="replace").rstrip("\r") for line in complete])
        return self.parser

    def finish(self) -> LogParser:
        """Feed a held-back partial line; used when the file is final."""
        if self._pending:
            self.parser.feed_line(self._pending.decode("utf-8", errors="replace").rstrip("\r"))
            self._pending = b""
        return self.parser


def list_log_files(logs_dir: Path, limit: int | None = None) -> list[Path]:
    """Worker log files in ``logs_dir``, newest modification first."""
    if not logs_dir.is_dir():
        return []
    stamped: list[tuple[float, Path]] = []
    for path in logs_dir.iterdir():
        if not (path.name.startswith(WORKER_LOG_PREFIX) and path.name.endswith(WORKER_LOG_SUFFIX)):
            continue
        try:
            stamped.append((path.stat().st_mtime, path))
        except FileNotFoundError:
            continue
    stamped.sort(key=lambda item: item[0], reverse=True)
    paths = [path for _, path in stamped]
    return paths[:limit] if limit is not None else paths


class WorkerBoard:
    """Tracks the newest log files as fixed table slots.

    Slot 1 is the most recently modified file. Readers of files that fall
    out of the window are discarded.
    """

    def __init__(self, logs_dir: Path, *, max_slots: int = MAX_TABLE_SLOTS) -> None:
        self.logs_dir = logs_dir
        self.max_slots = max_slots
        self._readers: dict[Path, IncrementalLogReader] = {}

    def refresh(self, now: float | None = None) -> list[WorkerSnapshot]:
        now = time.time() if now is None else now
        files = list_log_files(self.logs_dir, self.max_slots)
        for stale in set(self._readers) - set(files):
            del self._readers[stale]

        snapshots: list[WorkerSnapshot] = []
        for index, path in enumerate(files):
            reader = self._readers.setdefault(path, IncrementalLogReader(path))
            try:
                parser = reader.poll()
                mtime = path.stat().st_mtime
            except FileNotFoundError:
                self._readers.pop(path, None)
                snapshots.append(WorkerSnapshot(slot=index + 1))
                continue
            snapshots.append(parser.snapshot(index + 1, mtime=mtime, now=now, log_file=path.name))
        snapshots.extend(WorkerSnapshot(slot=slot) for slot in range(len(snapshots) + 1, self.max_slots + 1))
        return snapshots
