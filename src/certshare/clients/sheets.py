"""Google Sheets v4 store holding participants and their progress columns.

Column positions are detected from the header row on every read. Name and
Email accept several spellings; the four progress columns are appended to
the header when missing. Cell writes are best-effort and report failure
through IOResult instead of raising.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog

from certshare.clients.base import GoogleClientBase
from certshare.contracts.errors import SetupError, describe_error
from certshare.contracts.records import AUX_COLUMNS, ColumnMap, Participant
from certshare.contracts.results import IOResult
from certshare.core.retry import CHECK_POLICY, SEARCH_POLICY

logger = structlog.get_logger(__name__)

NAME_CANDIDATES: tuple[str, ...] = (
    "nama peserta",
    "nama",
    "nama lengkap",
    "name",
    "full name",
    "participant name",
)
EMAIL_CANDIDATES: tuple[str, ...] = (
    "email address",
    "email",
    "e-mail",
    "gmail",
    "participant email",
)


def column_letter(index: int) -> str:
    """Zero-based column index to A1 letters (0 -> A, 26 -> AA)."""
    if index < 0:
        raise ValueError(f"Column index must be non-negative, got {index}")
    letters = ""
    n = index + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


def _find_column(lowered: Sequence[str], candidates: Sequence[str]) -> int:
    for candidate in candidates:
        if candidate in lowered:
            return lowered.index(candidate)
    return -1


def detect_columns(header: Sequence[str]) -> tuple[ColumnMap, list[str]]:
    """Map logical columns to positions in ``header``.

    Returns:
        The column map and the progress columns that must be appended to
        the header (their positions in the map already account for them).

    Raises:
        SetupError: If the header is empty or lacks a Name/Email column.
    """
    if not header:
        raise SetupError("Sheet is empty or has no header row")
    lowered = [str(h or "").strip().lower() for h in header]
    name_col = _find_column(lowered, NAME_CANDIDATES)
    email_col = _find_column(lowered, EMAIL_CANDIDATES)
    if name_col == -1 or email_col == -1:
        raise SetupError(f"Name/Email columns not found. Headers: {', '.join(str(h) for h in header)}")

    positions: dict[str, int] = {}
    missing: list[str] = []
    for aux in AUX_COLUMNS:
        if aux.lower() in lowered:
            positions[aux] = lowered.index(aux.lower())
        else:
            positions[aux] = len(header) + len(missing)
            missing.append(aux)

    columns = ColumnMap(
        name=name_col,
        email=email_col,
        folder_id=positions["FolderId"],
        is_shared=positions["isShared"],
        is_folder_exists=positions["isFolderExists"],
        last_log=positions["LastLog"],
    )
    return columns, missing


def _cell(row: Sequence[Any], index: int) -> str:
    if index < len(row) and row[index] is not None:
        return str(row[index])
    return ""


def rows_to_participants(rows: Sequence[Sequence[Any]], columns: ColumnMap) -> list[Participant]:
    """Build participants from data rows (header excluded).

    Sheet row numbers are 1-based and the header is row 1, so the first data
    row is row 2. Rows whose cells are all blank are not participants.
    """
    participants: list[Participant] = []
    for offset, row in enumerate(rows):
        if not any(str(value).strip() for value in row if value is not None):
            continue
        participants.append(
            Participant(
                row=offset + 2,
                name=_cell(row, columns.name),
                email=_cell(row, columns.email),
                folder_id=_cell(row, columns.folder_id),
                is_shared=_cell(row, columns.is_shared),
                is_folder_exists=_cell(row, columns.is_folder_exists),
                last_log=_cell(row, columns.last_log),
            )
        )
    return participants


class SheetStore(GoogleClientBase):
    """Participant sheet access over a Sheets service object."""

    def __init__(self, service: Any, spreadsheet_id: str, sheet_name: str, **kwargs: Any) -> None:
        super().__init__(service, **kwargs)
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name

    def _get_values(self, a1_range: str) -> list[list[Any]]:
        response = self._call(
            "sheets.values.get",
            {"range": a1_range},
            lambda: self._service.spreadsheets()
            .values()
            .get(spreadsheetId=self.spreadsheet_id, range=f"{self.sheet_name}!{a1_range}")
            .execute(),
            CHECK_POLICY,
        )
        return list(response.get("values") or [])

    def _put_values(self, a1_range: str, values: list[list[Any]]) -> None:
        self._call(
            "sheets.values.update",
            {"range": a1_range},
            lambda: self._service.spreadsheets()
            .values()
            .update(
                spreadsheetId=self.spreadsheet_id,
                range=f"{self.sheet_name}!{a1_range}",
                valueInputOption="RAW",
                body={"values": values},
            )
            .execute(),
            SEARCH_POLICY,
        )

    def read_header(self) -> list[str]:
        values = self._get_values("1:1")
        return [str(v) for v in values[0]] if values else []

    def load(self) -> tuple[list[Participant], ColumnMap]:
        """Read the whole sheet, appending missing progress columns first.

        Raises:
            SetupError: If the header is empty or lacks Name/Email.
        """
        header = self.read_header()
        columns, missing = detect_columns(header)
        if missing:
            start = column_letter(len(header))
            self._put_values(f"{start}1", [missing])
            logger.info("Added missing columns", columns=missing)

        # Appended progress columns can sit past the last header cell.
        values = self._get_values(f"A:{column_letter(columns.last_index)}")
        participants = rows_to_participants(values[1:], columns)
        return participants, columns

    def update_cell(self, row: int, column: int, value: str) -> IOResult:
        """Write one cell.

        Failures are returned, never raised; the caller decides whether to
        log and carry on.
        """
        a1 = f"{column_letter(column)}{row}"
        try:
            self._put_values(a1, [[value]])
        except Exception as e:
            return IOResult.failure(f"{a1}: {describe_error(e).summary()}")
        return IOResult.success()
