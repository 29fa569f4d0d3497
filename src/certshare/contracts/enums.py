"""Status codes, outcome kinds and worker states used across module boundaries."""

from enum import StrEnum


class ShareStatus(StrEnum):
    """Tri-state value of the ``isShared`` column.

    Only UNSET records are eligible for processing. TRUE and FALSE are
    terminal until somebody clears the cell by hand.
    """

    UNSET = ""
    TRUE = "TRUE"
    FALSE = "FALSE"

    @classmethod
    def parse(cls, raw: str | None) -> "ShareStatus":
        """Parse a cell value case-insensitively.

        Anything other than "true"/"false" counts as unset.
        """
        value = (raw or "").strip().lower()
        if value == "true":
            return cls.TRUE
        if value == "false":
            return cls.FALSE
        return cls.UNSET


class OutcomeKind(StrEnum):
    """Terminal state of one record in one processing cycle."""

    GRANTED = "granted"
    DRY_RUN = "dry_run"
    SKIPPED = "skipped"
    ERROR = "error"


class SkipReason(StrEnum):
    """Why a record was skipped.

    Values double as the reason token in worker log lines.
    """

    INVALID_FORMAT = "INVALID_FORMAT"
    INVALID_EMAIL_FORMAT = "INVALID_EMAIL_FORMAT"
    DOMAIN_NOT_ALLOWED = "DOMAIN_NOT_ALLOWED"
    DUPLICATE = "DUPLICATE"
    ALREADY_GRANTED = "ALREADY_GRANTED"


class ErrorReason(StrEnum):
    """Why a record ended in ERROR."""

    NOT_FOUND = "not_found"
    GRANT_FAILED = "grant_failed"


class WorkerState(StrEnum):
    """Lifecycle state of a worker as reconstructed by the monitor."""

    IDLE = "IDLE"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"


class ResolutionSource(StrEnum):
    """Where a folder id came from."""

    PRERESOLVED = "preresolved"
    CACHE = "cache"
    GLOBAL_SEARCH = "global_search"
    SCOPED_SEARCH = "scoped_search"
