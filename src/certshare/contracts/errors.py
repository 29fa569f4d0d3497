"""Error taxonomy and remote-error inspection.

Transient remote errors are retried by the executor and only surface here
once retries are exhausted. Everything the worker cannot recover from at
startup is a SetupError.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from googleapiclient.errors import HttpError

RATE_LIMIT_REASONS = frozenset({"rateLimitExceeded", "userRateLimitExceeded", "sharingRateLimitExceeded"})


class SetupError(Exception):
    """Raised for unrecoverable setup failures (exit code 1).

    Missing credentials, missing sheet id, an empty header row or missing
    Name/Email columns all end the run before any record is touched.
    """


class MonitorAlreadyRunning(Exception):
    """Raised when another monitor instance holds the lock file."""

    def __init__(self, pid: int, lock_path: str) -> None:
        self.pid = pid
        self.lock_path = lock_path
        super().__init__(f"Another monitor is running (pid={pid}, lock={lock_path})")


@dataclass(frozen=True)
class ErrorDetails:
    """Structured view of a remote error for logs and the sheet."""

    status: int | None
    reasons: tuple[str, ...]
    message: str

    def summary(self) -> str:
        reason_str = "|".join(self.reasons) if self.reasons else "unknown"
        status = self.status if self.status is not None else "n/a"
        return f"[HTTP {status}] {reason_str} - {self.message}"


def _reasons_from_content(content: bytes | str | None) -> tuple[list[str], str | None]:
    if not content:
        return [], None
    try:
        payload = json.loads(content)
    except (TypeError, ValueError):
        return [], None
    if not isinstance(payload, dict):
        return [], None
    error = payload.get("error")
    if not isinstance(error, dict):
        return [], None
    reasons = [str(item["reason"]) for item in error.get("errors") or [] if isinstance(item, dict) and item.get("reason")]
    message = error.get("message")
    return reasons, str(message) if message else None


def describe_error(error: BaseException) -> ErrorDetails:
    """Extract status, reason codes and message from any exception.

    HttpError bodies carry the reason codes (``rateLimitExceeded`` etc.)
    inside ``error.errors[].reason``; other exceptions only have a message.
    """
    if isinstance(error, HttpError):
        status = int(error.resp.status) if error.resp is not None else None
        reasons, message = _reasons_from_content(error.content)
        if not reasons:
            details: Any = getattr(error, "error_details", None)
            if isinstance(details, list):
                reasons = [str(d["reason"]) for d in details if isinstance(d, dict) and d.get("reason")]
        return ErrorDetails(status=status, reasons=tuple(reasons), message=message or str(error))
    return ErrorDetails(status=None, reasons=(), message=str(error) or type(error).__name__)


def is_retryable_rate_limit(error: BaseException) -> bool:
    """True for HTTP 429, or HTTP 403 tagged with a rate-limit reason."""
    details = describe_error(error)
    if details.status == 429:
        return True
    if details.status == 403:
        return any(reason in RATE_LIMIT_REASONS for reason in details.reasons)
    return False


def friendly_reason(error: BaseException, email: str) -> str:
    """Human-readable explanation recorded on the sheet and console."""
    details = describe_error(error)
    if details.status == 403:
        if "cannotInviteNonGoogleUser" in details.reasons:
            return f"Email {email} has no active Google account or cannot be invited"
        if "sharingRateLimitExceeded" in details.reasons:
            return "Sharing rate limit reached, try again later"
        if "permissionDenied" in details.reasons:
            return "No permission to share this folder"
        return f"Access denied: {details.message}"
    if details.status == 404:
        return "Folder not found or has been deleted"
    if details.status == 429:
        return "Too many requests, try again later"
    return details.message or "Unknown error"


def tag_error(error: BaseException, operation: str, context: dict[str, Any]) -> BaseException:
    """Attach the failing operation and its inputs to an exception in place.

    The exception itself is not replaced so callers can still match on its
    type and inspect the original response.
    """
    error.operation = operation  # type: ignore[attr-defined]
    error.context = dict(context)  # type: ignore[attr-defined]
    error.add_note(f"operation={operation} context={context}")
    return error
