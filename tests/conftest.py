# tests/conftest.py
"""Shared test fixtures and in-memory fakes for the Google service objects.

The fakes mimic the discovery client's chained call style:

    service.files().list(q=...).execute()
    service.spreadsheets().values().get(spreadsheetId=..., range=...).execute()

Errors are injected per operation name ("files.list", "permissions.list",
"permissions.create", "values.get", "values.update") and are raised by
``execute()`` in FIFO order before the fake falls back to normal behavior.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)
"""

from __future__ import annotations

import json
import os
import re
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import httplib2
import pytest
from googleapiclient.errors import HttpError
from hypothesis import Verbosity, settings

from certshare.core.clock import MockClock
from certshare.core.config import CertshareSettings

settings.register_profile("ci", max_examples=100, deadline=None)
settings.register_profile("nightly", max_examples=1000, deadline=None)
settings.register_profile("debug", max_examples=10, verbosity=Verbosity.verbose, deadline=None)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


def make_http_error(status: int, reason: str = "", message: str = "boom") -> HttpError:
    """Build an HttpError the way googleapiclient does from a JSON body."""
    errors = [{"reason": reason, "message": message}] if reason else []
    body = json.dumps({"error": {"code": status, "message": message, "errors": errors}}).encode()
    return HttpError(httplib2.Response({"status": str(status)}), body)


def rate_limited() -> HttpError:
    return make_http_error(403, "rateLimitExceeded", "Rate Limit Exceeded")


class FakeRequest:
    def __init__(self, run: Callable[[], Any]) -> None:
        self._run = run

    def execute(self) -> Any:
        return self._run()


class _ErrorQueue:
    def __init__(self) -> None:
        self.pending: dict[str, list[BaseException]] = defaultdict(list)

    def fail(self, operation: str, *errors: BaseException) -> None:
        self.pending[operation].extend(errors)

    def raise_pending(self, operation: str) -> None:
        if self.pending[operation]:
            raise self.pending[operation].pop(0)


_PARENT_RE = re.compile(r"'([^']+)' in parents")
_CONTAINS_RE = re.compile(r"name contains '((?:[^'\\]|\\.)*)'")


@dataclass
class FakeDriveService(_ErrorQueue):
    """Folder tree plus permissions, enough for search/check/grant flows."""

    folders: dict[str, dict[str, Any]] = field(default_factory=dict)
    permissions_by_file: dict[str, list[dict[str, Any]]] = field(default_factory=lambda: defaultdict(list))
    calls: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    page_size: int | None = None

    def __post_init__(self) -> None:
        _ErrorQueue.__init__(self)

    def add_folder(self, folder_id: str, name: str, parent: str = "root") -> None:
        self.folders[folder_id] = {"id": folder_id, "name": name, "parents": [parent]}

    def calls_to(self, operation: str) -> list[dict[str, Any]]:
        return [kwargs for op, kwargs in self.calls if op == operation]

    # files() -----------------------------------------------------------

    def files(self) -> FakeDriveService:
        return self

    def list(self, **kwargs: Any) -> FakeRequest:
        return FakeRequest(lambda: self._list(kwargs))

    def _list(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("files.list", kwargs))
        self.raise_pending("files.list")
        query = kwargs["q"]
        if parent := _PARENT_RE.search(query):
            matches = [f for f in self.folders.values() if parent.group(1) in f["parents"]]
        elif contains := _CONTAINS_RE.search(query):
            term = contains.group(1).replace("\\'", "'").lower()
            matches = [f for f in self.folders.values() if term in f["name"].lower()]
        else:
            matches = list(self.folders.values())

        size = self.page_size or kwargs.get("pageSize") or len(matches) or 1
        start = int(kwargs.get("pageToken") or 0)
        page = matches[start : start + size]
        response: dict[str, Any] = {"files": [dict(f) for f in page]}
        if start + size < len(matches) and "nextPageToken" in kwargs.get("fields", ""):
            response["nextPageToken"] = str(start + size)
        return response

    # permissions() -----------------------------------------------------

    def permissions(self) -> _FakePermissions:
        return _FakePermissions(self)


class _FakePermissions:
    def __init__(self, drive: FakeDriveService) -> None:
        self._drive = drive

    def list(self, **kwargs: Any) -> FakeRequest:
        def run() -> dict[str, Any]:
            self._drive.calls.append(("permissions.list", kwargs))
            self._drive.raise_pending("permissions.list")
            return {"permissions": list(self._drive.permissions_by_file[kwargs["fileId"]])}

        return FakeRequest(run)

    def create(self, **kwargs: Any) -> FakeRequest:
        def run() -> dict[str, Any]:
            self._drive.calls.append(("permissions.create", kwargs))
            self._drive.raise_pending("permissions.create")
            body = kwargs["body"]
            permission = {"id": f"perm-{len(self._drive.calls)}", "emailAddress": body["emailAddress"], "role": body["role"]}
            self._drive.permissions_by_file[kwargs["fileId"]].append(permission)
            return permission

        return FakeRequest(run)


_CELL_RE = re.compile(r"^([A-Z]+)(\d+)$")
_COLUMNS_RE = re.compile(r"^A:([A-Z]+)$")


def _column_index(letters: str) -> int:
    index = 0
    for ch in letters:
        index = index * 26 + (ord(ch) - 64)
    return index - 1


@dataclass
class FakeSheetsService(_ErrorQueue):
    """One worksheet held as a list of rows (row 0 is the header)."""

    grid: list[list[str]] = field(default_factory=list)
    sheet_name: str = "participants_sample"
    failing_cells: set[str] = field(default_factory=set)
    updates: list[tuple[str, list[list[Any]]]] = field(default_factory=list)
    reads: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        _ErrorQueue.__init__(self)

    def spreadsheets(self) -> FakeSheetsService:
        return self

    def values(self) -> FakeSheetsService:
        return self

    def _local(self, a1: str) -> str:
        sheet, _, local = a1.partition("!")
        assert sheet == self.sheet_name, f"unexpected sheet {sheet!r}"
        return local

    def get(self, **kwargs: Any) -> FakeRequest:
        def run() -> dict[str, Any]:
            self.raise_pending("values.get")
            local = self._local(kwargs["range"])
            self.reads.append(local)
            if local == "1:1":
                rows = self.grid[:1]
            else:
                match = _COLUMNS_RE.match(local)
                assert match, f"unsupported range {local!r}"
                end = _column_index(match.group(1)) + 1
                rows = [row[:end] for row in self.grid]
            # The API trims trailing empty cells and omits "values" when empty.
            trimmed = []
            for row in rows:
                cells = list(row)
                while cells and cells[-1] == "":
                    cells.pop()
                trimmed.append(cells)
            return {"values": trimmed} if trimmed else {}

        return FakeRequest(run)

    def update(self, **kwargs: Any) -> FakeRequest:
        def run() -> dict[str, Any]:
            self.raise_pending("values.update")
            local = self._local(kwargs["range"])
            if local in self.failing_cells:
                raise make_http_error(500, "backendError", "Internal error")
            assert kwargs["valueInputOption"] == "RAW"
            values = kwargs["body"]["values"]
            self.updates.append((local, values))
            match = _CELL_RE.match(local)
            assert match, f"unsupported range {local!r}"
            col = _column_index(match.group(1))
            row = int(match.group(2)) - 1
            for r_offset, row_values in enumerate(values):
                self._set_row(row + r_offset, col, row_values)
            return {"updatedCells": sum(len(v) for v in values)}

        return FakeRequest(run)

    def _set_row(self, row: int, col: int, values: list[Any]) -> None:
        while len(self.grid) <= row:
            self.grid.append([])
        target = self.grid[row]
        while len(target) < col + len(values):
            target.append("")
        for offset, value in enumerate(values):
            target[col + offset] = str(value)

    def cell(self, row: int, header: str) -> str:
        """Value of a 1-based sheet row under the named header."""
        col = self.grid[0].index(header)
        cells = self.grid[row - 1]
        return cells[col] if col < len(cells) else ""


@pytest.fixture
def clock() -> MockClock:
    return MockClock(start=1000.0)


@pytest.fixture
def drive_service() -> FakeDriveService:
    return FakeDriveService()


@pytest.fixture
def sheets_service() -> FakeSheetsService:
    return FakeSheetsService()


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., CertshareSettings]:
    """Settings factory isolated to tmp_path with throttling disabled."""

    def factory(**overrides: Any) -> CertshareSettings:
        values: dict[str, Any] = {
            "sheet_id": "sheet-1",
            "throttle_ms": 0,
            "logs_dir": tmp_path / "logs",
            "folder_mapping_path": tmp_path / "cache" / "folder-mapping.json",
            "credentials_path": tmp_path / "service.json",
        }
        values.update(overrides)
        return CertshareSettings(**values)

    return factory


FIXED_NOW = datetime(2026, 10, 19, 10, 30, 15)
