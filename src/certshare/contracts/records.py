"""Participant records and the column layout they were read with."""

from __future__ import annotations

from dataclasses import dataclass

from certshare.contracts.enums import ShareStatus

# Logical columns appended to the header when the sheet lacks them.
AUX_COLUMNS: tuple[str, ...] = ("FolderId", "isShared", "isFolderExists", "LastLog")


@dataclass(frozen=True)
class ColumnMap:
    """Zero-based physical positions of the logical columns.

    Recomputed from the header on every cycle; never hard-coded by letter.
    """

    name: int
    email: int
    folder_id: int
    is_shared: int
    is_folder_exists: int
    last_log: int

    def index_of(self, logical: str) -> int:
        """Look up a column position by its logical name."""
        return {
            "name": self.name,
            "email": self.email,
            "FolderId": self.folder_id,
            "isShared": self.is_shared,
            "isFolderExists": self.is_folder_exists,
            "LastLog": self.last_log,
        }[logical]

    @property
    def last_index(self) -> int:
        """Rightmost column any logical field lives in."""
        return max(self.name, self.email, self.folder_id, self.is_shared, self.is_folder_exists, self.last_log)


@dataclass(frozen=True)
class Participant:
    """One recipient row of the sheet.

    Identity is the 1-based sheet row. Values are kept as read; use
    ``normalized()`` for the trimmed/lowercased form the processor works on.
    """

    row: int
    name: str
    email: str
    folder_id: str = ""
    is_shared: str = ""
    is_folder_exists: str = ""
    last_log: str = ""

    @property
    def share_status(self) -> ShareStatus:
        return ShareStatus.parse(self.is_shared)

    @property
    def folder_known_missing(self) -> bool:
        """True when a previous cycle recorded the folder as not found."""
        return self.is_folder_exists.strip().lower() == "false"

    @property
    def partition_key(self) -> str:
        """Key that decides the owning worker.

        Prefers the pre-resolved folder id (case-sensitive), falling back to
        the lowercased display name.
        """
        if self.folder_id:
            return self.folder_id
        return self.name.lower()

    def normalized(self) -> Participant:
        return Participant(
            row=self.row,
            name=self.name.strip(),
            email=self.email.strip().lower(),
            folder_id=self.folder_id.strip(),
            is_shared=self.is_shared,
            is_folder_exists=self.is_folder_exists,
            last_log=self.last_log,
        )
