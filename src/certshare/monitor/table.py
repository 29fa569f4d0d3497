"""Fixed-width table of worker slots.

Pure presentation: the same snapshots and clock always render the same text.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from certshare.contracts.enums import WorkerState
from certshare.monitor.logparse import WorkerSnapshot

TITLE = "CERTIFICATE SHARING WORKERS MONITOR"
CURRENT_WIDTH = 25

_STATE_LABELS = {
    WorkerState.RUNNING: "● RUN",
    WorkerState.COMPLETED: "● DONE",
    WorkerState.IDLE: "○ IDLE",
}

# (header, width, align)
_COLUMNS: tuple[tuple[str, int, str], ...] = (
    ("ID", 2, ">"),
    ("Status", 6, "<"),
    ("Progress", 9, "<"),
    ("Current Participant", CURRENT_WIDTH, "<"),
    ("Success", 7, ">"),
    ("Error", 5, ">"),
    ("Skip", 5, ">"),
    ("Last", 8, "<"),
)


def _truncate(value: str, width: int) -> str:
    if len(value) > width:
        return value[: width - 3] + "..."
    return value


def _row(cells: Sequence[str]) -> str:
    parts = [f"{_truncate(cell, width):{align}{width}}" for cell, (_, width, align) in zip(cells, _COLUMNS, strict=True)]
    return "║ " + " │ ".join(parts) + " ║"


def _rule(left: str, joint: str, right: str) -> str:
    return left + joint.join("═" * (width + 2) for _, width, _ in _COLUMNS) + right


def table_width() -> int:
    return len(_rule("╔", "═", "╗"))


def render_table(snapshots: Sequence[WorkerSnapshot], now: datetime, *, refresh_seconds: float = 2.0) -> str:
    """Render worker slots plus a totals line as one block of text."""
    inner = table_width() - 2
    lines = [
        _rule("╔", "═", "╗"),
        "║" + f"{TITLE:^{inner}}" + "║",
        _rule("╠", "╤", "╣"),
        _row([header for header, _, _ in _COLUMNS]),
        _rule("╠", "╪", "╣"),
    ]

    active = success = errors = skipped = 0
    for snap in snapshots:
        lines.append(
            _row(
                [
                    str(snap.slot),
                    _STATE_LABELS[snap.state],
                    snap.progress,
                    snap.current,
                    str(snap.success),
                    str(snap.errors),
                    str(snap.skipped),
                    snap.last_activity,
                ]
            )
        )
        if snap.state is not WorkerState.IDLE:
            active += 1
        success += snap.success
        errors += snap.errors
        skipped += snap.skipped

    totals = f"TOTAL │ Active: {active:>2} │ Success: {success:>5} │ Error: {errors:>4} │ Skip: {skipped:>5}"
    lines += [
        _rule("╠", "╧", "╣"),
        "║ " + f"{totals:<{inner - 2}}" + " ║",
        _rule("╚", "═", "╝"),
        f"Last updated: {now.strftime('%H:%M:%S')} | Refresh: {refresh_seconds:g}s | Press Ctrl+C to exit",
    ]
    return "\n".join(lines)
