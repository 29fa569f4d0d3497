# src/certshare/core/logging.py
"""Structured logging configuration for certshare.

Two independent trails are configured here:

- Operator console: structlog routed through stdlib logging with
  ProcessorFormatter, so modules using logging.getLogger(__name__) and
  structlog.get_logger() produce the same output (JSON or console).
- Worker log file: a plain, append-only ``[ts] [LEVEL] message`` file per
  worker session. The monitor parses it, so its layout is fixed.
"""

from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

from certshare.contracts import log_grammar

# Third-party loggers that are excessively verbose at DEBUG level.
_NOISY_LOGGERS: tuple[str, ...] = (
    "googleapiclient",
    "googleapiclient.discovery",
    "googleapiclient.discovery_cache",
    "google.auth",
    "google.auth.transport",
    "httplib2",
    "urllib3",
    "urllib3.connectionpool",
)

WORKER_LOG_PREFIX = "share-"
WORKER_LOG_SUFFIX = ".log"


def _remove_internal_fields(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Remove internal structlog fields from output.

    ProcessorFormatter ALWAYS adds _record and _from_structlog when processing
    log records. These are internal bookkeeping and should not appear in output.
    """
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
) -> None:
    """Configure structlog and stdlib logging for the operator console.

    Args:
        json_output: If True, output JSON. If False, human-readable.
        level: Log level (DEBUG, INFO, WARNING, ERROR).
    """
    log_level = getattr(logging, level.upper())

    # Shared processors applied to ALL log records (structlog and stdlib)
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        final_processors: list[Any] = [
            _remove_internal_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        final_processors = [
            _remove_internal_fields,
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ]

    structlog.configure(
        processors=[*shared_processors, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Disable caching to allow reconfiguration in tests
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        ProcessorFormatter(
            processors=final_processors,
            foreign_pre_chain=shared_processors,
        )
    )

    root = logging.getLogger()
    root.handlers = []
    root.addHandler(handler)
    root.setLevel(log_level)

    # Never make noisy loggers less restrictive than the configured root level.
    noisy_level = max(log_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(noisy_level)


class WorkerLogFormatter(logging.Formatter):
    """``[2026-10-19T03:48:00.123Z] [INFO] message``"""

    def __init__(self) -> None:
        super().__init__("[%(asctime)s] [%(levelname)s] %(message)s")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: N802
        ts = datetime.fromtimestamp(record.created, tz=UTC)
        return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"

    def format(self, record: logging.LogRecord) -> str:
        # One record is one line; the monitor splits on newlines.
        return super().format(record).replace("\r", " ").replace("\n", " ")


def worker_log_name(started_at: datetime, shard_index: int | None = None) -> str:
    """File name of a worker session log.

    The shard suffix keeps workers launched in the same second apart.
    """
    stamp = started_at.strftime("%Y%m%d-%H%M%S")
    suffix = f"-s{shard_index}" if shard_index is not None else ""
    return f"{WORKER_LOG_PREFIX}{stamp}{suffix}{WORKER_LOG_SUFFIX}"


class WorkerLog:
    """Append-only log file of one worker session.

    Backed by a dedicated, non-propagating stdlib logger so lines never leak
    to the console handler. Writes are best-effort: logging.Handler reports
    I/O errors through handleError and never raises into the caller.
    """

    def __init__(self, path: Path, *, debug: bool = False) -> None:
        self.path = path
        self._debug_enabled = debug
        path.parent.mkdir(parents=True, exist_ok=True)
        self._logger = logging.getLogger(f"certshare.worklog.{path.stem}")
        self._logger.propagate = False
        self._logger.setLevel(logging.DEBUG)
        self._handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        self._handler.setFormatter(WorkerLogFormatter())
        self._logger.addHandler(self._handler)

    @classmethod
    def open(
        cls,
        logs_dir: Path,
        *,
        shard_index: int | None = None,
        debug: bool = False,
        now: datetime | None = None,
    ) -> WorkerLog:
        started_at = now or datetime.now()
        log = cls(logs_dir / worker_log_name(started_at, shard_index), debug=debug)
        log.info(log_grammar.session_start(started_at.astimezone(UTC).isoformat().replace("+00:00", "Z")))
        return log

    def info(self, message: str) -> None:
        self._logger.info(message)

    def warning(self, message: str) -> None:
        self._logger.warning(message)

    def error(self, message: str) -> None:
        self._logger.error(message)

    def debug(self, message: str) -> None:
        if self._debug_enabled:
            self._logger.debug(message)

    def close(self) -> None:
        self._logger.removeHandler(self._handler)
        self._handler.close()

    def __enter__(self) -> WorkerLog:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
