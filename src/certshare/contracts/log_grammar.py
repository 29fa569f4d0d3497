"""Worker log-line grammar.

Workers append ``[<ISO timestamp>] [<LEVEL>] <message>`` lines to their log
file and the monitor rebuilds worker state by matching the same messages.
Both sides go through this module; changing a format here without changing
its pattern is a breaking change for every monitor reading older logs.
"""

from __future__ import annotations

import re

from certshare.contracts.enums import SkipReason

LINE_RE = re.compile(r"^\[(?P<ts>[^\]]+)\]\s+\[(?P<level>[A-Z]+)\]\s?(?P<message>.*)$")
SUCCESS_RE = re.compile(r"Row\s+(?P<row>\d+)\s+(?P<status>GRANTED|DRY_RUN)\s+\S+\s+->\s+(?P<email>\S+)\s+-")
SKIP_RE = re.compile(r"Row\s+(?P<row>\d+)\s+SKIP\s+(?P<reason>[A-Z_]+):\s+(?P<token>\S+)\s+-")
ERROR_RE = re.compile(r"Row\s+(?P<row>\d+)\s+ERROR\b(?:.*?name='(?P<name>[^']*)')?")
PROCESSING_RE = re.compile(r"Processing\s+(?P<count>\d+)\s+participants")


def _token(value: str) -> str:
    """Collapse a value to a single whitespace-free token ("-" when empty)."""
    return "".join(value.split()) or "-"


def session_start(iso_timestamp: str) -> str:
    return f"Session start: {iso_timestamp}"


def processing(count: int, parent_folder_id: str) -> str:
    return f"Processing {count} participants. parentFolderId={parent_folder_id}"


def granted(
    row: int,
    role: str,
    email: str,
    *,
    dry_run: bool,
    total_ms: int,
    folder_ms: int,
    permission_ms: int,
    grant_ms: int,
) -> str:
    status = "DRY_RUN" if dry_run else "GRANTED"
    return (
        f"Row {row} {status} {role} -> {_token(email)} - Time: {total_ms}ms "
        f"(folder: {folder_ms}ms, permission: {permission_ms}ms, grant: {grant_ms}ms)"
    )


def skipped(row: int, reason: SkipReason, email: str, *, total_ms: int) -> str:
    return f"Row {row} SKIP {reason.value}: {_token(email)} - Time: {total_ms}ms"


def folder_not_found(row: int, name: str, *, total_ms: int, folder_ms: int) -> str:
    return f"Row {row} ERROR folder not found for name='{name}' - Time: {total_ms}ms (folder search: {folder_ms}ms)"


def failed(row: int, friendly: str, *, total_ms: int, folder_ms: int, technical: str) -> str:
    folder = f" (folder: {folder_ms}ms)" if folder_ms else ""
    return f"Row {row} ERROR: {friendly} - Time: {total_ms}ms{folder} | Technical: {technical}"


def summary(total: int, done: int, skipped_count: int, errors: int, success_rate: float) -> str:
    return f"Summary: total={total} done={done} skipped={skipped_count} errors={errors} successRate={success_rate:.1f}%"
