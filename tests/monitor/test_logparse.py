# tests/monitor/test_logparse.py
"""Tests for rebuilding worker state from log files."""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path

from hypothesis import given
from hypothesis import strategies as st

from certshare.contracts import log_grammar
from certshare.contracts.enums import SkipReason, WorkerState
from certshare.monitor.logparse import (
    IncrementalLogReader,
    LogParser,
    WorkerBoard,
    list_log_files,
    parse_log_text,
)

NOW = 1_800_000_000.0


def line(message: str, level: str = "INFO", ts: str = "2026-10-19T03:30:15.000Z") -> str:
    return f"[{ts}] [{level}] {message}"


def granted(row: int, email: str) -> str:
    return line(log_grammar.granted(row, "reader", email, dry_run=False, total_ms=10, folder_ms=4, permission_ms=3, grant_ms=3))


def skipped(row: int, email: str) -> str:
    return line(log_grammar.skipped(row, SkipReason.DUPLICATE, email, total_ms=1))


def not_found(row: int, name: str) -> str:
    return line(log_grammar.folder_not_found(row, name, total_ms=30, folder_ms=29), level="ERROR")


def failed(row: int) -> str:
    return line(log_grammar.failed(row, "Too many requests", total_ms=5, folder_ms=0, technical="HTTP 429 - boom"), level="ERROR")


def marker(count: int) -> str:
    return line(log_grammar.processing(count, "root-1"))


SAMPLE = "\n".join(
    [
        line(log_grammar.session_start("2026-10-19T03:30:00.000Z")),
        "Participants: 12",
        marker(10),
        granted(2, "ani@gmail.com"),
        skipped(3, "budi@gmail.com"),
        not_found(4, "Cici Paramida"),
        granted(5, "dewi@gmail.com"),
        failed(6),
        line("Row 7 DRY_RUN reader -> eko@gmail.com - Time: 3ms (folder: 1ms, permission: 1ms, grant: 0ms)"),
    ]
) + "\n"


class TestLogParser:
    def test_six_of_ten_is_running(self) -> None:
        snapshot = parse_log_text(SAMPLE).snapshot(1, mtime=NOW - 600, now=NOW)

        assert snapshot.state is WorkerState.RUNNING
        assert snapshot.progress == "6/10"
        assert (snapshot.success, snapshot.skipped, snapshot.errors) == (3, 1, 2)

    def test_current_participant_follows_last_outcome(self) -> None:
        parser = LogParser()
        parser.feed([granted(2, "ani@gmail.com")])
        assert parser.current == "ani"
        parser.feed([skipped(3, "budi@gmail.com")])
        assert parser.current == "budi@gmail.com"
        parser.feed([not_found(4, "Cici Paramida")])
        assert parser.current == "Cici Paramida"
        parser.feed([failed(5)])
        assert parser.current == "Cici Paramida"

    def test_last_activity_is_clock_time(self) -> None:
        parser = parse_log_text(SAMPLE)

        assert re.fullmatch(r"\d{2}:\d{2}:\d{2}", parser.last_activity)

    def test_all_outcomes_in_completes(self) -> None:
        text = "\n".join([marker(2), granted(2, "a@gmail.com"), granted(3, "b@gmail.com")])

        snapshot = parse_log_text(text).snapshot(1, mtime=NOW, now=NOW)

        assert snapshot.state is WorkerState.COMPLETED
        assert snapshot.progress == "2/2"

    def test_new_marker_restarts_progress_but_not_counters(self) -> None:
        text = "\n".join([marker(2), granted(2, "a@gmail.com"), granted(3, "b@gmail.com"), marker(3), skipped(4, "c@gmail.com")])

        snapshot = parse_log_text(text).snapshot(1, mtime=NOW - 600, now=NOW)

        assert snapshot.progress == "1/3"
        assert snapshot.state is WorkerState.RUNNING
        assert (snapshot.success, snapshot.skipped) == (2, 1)

    def test_without_marker_freshness_decides(self) -> None:
        parser = parse_log_text("\n".join([granted(2, "a@gmail.com"), granted(3, "b@gmail.com")]))

        assert parser.snapshot(1, mtime=NOW - 5, now=NOW).state is WorkerState.RUNNING
        assert parser.snapshot(1, mtime=NOW - 60, now=NOW).state is WorkerState.COMPLETED
        assert parser.snapshot(1, mtime=NOW - 60, now=NOW).progress == "2"

    def test_stale_empty_log_is_idle(self) -> None:
        snapshot = parse_log_text(line("Session start: x")).snapshot(1, mtime=NOW - 60, now=NOW)

        assert snapshot.state is WorkerState.IDLE
        assert snapshot.current == "-"

    def test_unrelated_lines_ignored(self) -> None:
        parser = parse_log_text("garbage\n\n[not a log line\nSharding applied: 3/9 records for shard 0/2\n")

        assert parser.processed == 0
        assert parser.last_activity == "-"


class TestIncrementalLogReader:
    def test_matches_full_parse_across_polls(self, tmp_path: Path) -> None:
        path = tmp_path / "share-20261019-103000.log"
        reader = IncrementalLogReader(path)
        lines = SAMPLE.splitlines(keepends=True)

        path.write_text("".join(lines[:4]) + lines[4][:20], encoding="utf-8")
        partial = reader.poll()
        assert partial.processed == 1

        path.write_text(SAMPLE, encoding="utf-8")
        incremental = reader.poll()
        full = parse_log_text(SAMPLE)

        assert vars(incremental) == vars(full)

    @given(cuts=st.lists(st.integers(min_value=0, max_value=len(SAMPLE.encode())), max_size=6))
    def test_any_poll_schedule_matches_full_parse(self, cuts: list[int]) -> None:
        data = SAMPLE.encode()
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "share-x.log"
            path.write_bytes(b"")
            reader = IncrementalLogReader(path)
            for cut in [*sorted(set(cuts)), len(data)]:
                path.write_bytes(data[:cut])
                reader.poll()
            incremental = reader.finish()

        assert vars(incremental) == vars(parse_log_text(SAMPLE))

    def test_finish_feeds_partial_last_line(self, tmp_path: Path) -> None:
        path = tmp_path / "share-x.log"
        path.write_text(granted(2, "a@gmail.com"), encoding="utf-8")
        reader = IncrementalLogReader(path)

        assert reader.poll().processed == 0
        assert reader.finish().processed == 1

    def test_truncated_file_is_parsed_again(self, tmp_path: Path) -> None:
        path = tmp_path / "share-x.log"
        path.write_text(SAMPLE, encoding="utf-8")
        reader = IncrementalLogReader(path)
        assert reader.poll().processed == 6

        path.write_text(granted(2, "a@gmail.com") + "\n", encoding="utf-8")

        parser = reader.poll()
        assert parser.processed == 1
        assert parser.total == 0


def _touch(path: Path, text: str, mtime: float) -> Path:
    path.write_text(text, encoding="utf-8")
    os.utime(path, (mtime, mtime))
    return path


class TestWorkerBoard:
    def test_list_log_files_newest_first(self, tmp_path: Path) -> None:
        old = _touch(tmp_path / "share-1.log", "", NOW - 100)
        new = _touch(tmp_path / "share-2.log", "", NOW - 10)
        _touch(tmp_path / "other.log", "", NOW)
        _touch(tmp_path / "share-3.txt", "", NOW)

        assert list_log_files(tmp_path) == [new, old]
        assert list_log_files(tmp_path, limit=1) == [new]
        assert list_log_files(tmp_path / "missing") == []

    def test_slots_padded_with_idle(self, tmp_path: Path) -> None:
        _touch(tmp_path / "share-a.log", SAMPLE, NOW - 600)

        snapshots = WorkerBoard(tmp_path, max_slots=4).refresh(now=NOW)

        assert [s.slot for s in snapshots] == [1, 2, 3, 4]
        first = snapshots[0]
        assert (first.state, first.progress, first.log_file) == (WorkerState.RUNNING, "6/10", "share-a.log")
        assert all(s.state is WorkerState.IDLE and s.log_file is None for s in snapshots[1:])

    def test_refresh_reads_only_new_lines(self, tmp_path: Path) -> None:
        path = _touch(tmp_path / "share-a.log", marker(3) + "\n" + granted(2, "a@gmail.com") + "\n", NOW)
        board = WorkerBoard(tmp_path, max_slots=1)
        assert board.refresh(now=NOW)[0].progress == "1/3"

        with path.open("a", encoding="utf-8") as f:
            f.write(granted(3, "b@gmail.com") + "\n")

        (snapshot,) = board.refresh(now=NOW)
        assert snapshot.progress == "2/3"
        assert snapshot.success == 2
