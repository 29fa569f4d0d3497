"""Monitoring of worker log files: snapshots, table, live tail, lock and launcher."""

from certshare.monitor.launcher import WorkerLauncher
from certshare.monitor.lock import MonitorLock
from certshare.monitor.logparse import (
    IncrementalLogReader,
    LogParser,
    WorkerBoard,
    WorkerSnapshot,
    list_log_files,
    parse_log_text,
)
from certshare.monitor.table import render_table
from certshare.monitor.tail import LiveTail, TailLine

__all__ = [
    "IncrementalLogReader",
    "LiveTail",
    "LogParser",
    "MonitorLock",
    "TailLine",
    "WorkerBoard",
    "WorkerLauncher",
    "WorkerSnapshot",
    "list_log_files",
    "parse_log_text",
    "render_table",
]
