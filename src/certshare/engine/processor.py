# src/certshare/engine/processor.py
"""Batch processor: drives each participant through the record state machine.

One cycle is read -> tri-state gate -> partition -> prioritize -> cap ->
process sequentially. Per record the states are visited in a fixed order,
stopping at the first terminal one:

    validate  -> SKIPPED (INVALID_FORMAT / INVALID_EMAIL_FORMAT /
                 DOMAIN_NOT_ALLOWED / DUPLICATE)
    resolve   -> ERROR (not found)
    check     -> SKIPPED (ALREADY_GRANTED)
    grant     -> GRANTED | DRY_RUN | ERROR (grant failed)

Every outcome leaves three trails: sheet cells, the worker log file and the
operator console. Each is attempted on its own; a failing sheet write is
logged and never stops the cycle.
"""

from __future__ import annotations

import random
import re
import threading
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

import structlog

from certshare.clients.drive import DriveClient
from certshare.clients.sheets import SheetStore
from certshare.contracts import log_grammar
from certshare.contracts.enums import ErrorReason, OutcomeKind, ResolutionSource, ShareStatus, SkipReason
from certshare.contracts.errors import SetupError, describe_error, friendly_reason
from certshare.contracts.records import ColumnMap, Participant
from certshare.contracts.results import CycleStats, RecordOutcome
from certshare.core.clock import DEFAULT_CLOCK, Clock
from certshare.core.config import CertshareSettings
from certshare.core.logging import WorkerLog
from certshare.core.partition import select_partition
from certshare.core.retry import Throttle
from certshare.engine.folder_map import FolderMapping
from certshare.engine.resolver import FolderResolver

logger = structlog.get_logger(__name__)

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
LAST_LOG_TIME_FORMAT = "%d/%m/%Y, %H.%M.%S"
PACING_JITTER_SECONDS = 0.2


def check_email(email: str, allowed_domains: Sequence[str]) -> SkipReason | None:
    """Reason to skip ``email``, or None when it may be processed."""
    if not EMAIL_RE.match(email):
        return SkipReason.INVALID_EMAIL_FORMAT
    if not any(email.endswith(f"@{domain}") for domain in allowed_domains):
        return SkipReason.DOMAIN_NOT_ALLOWED
    return None


def eligible(participants: Iterable[Participant]) -> list[Participant]:
    """Only records whose isShared cell is unset take part in a cycle."""
    return [p for p in participants if p.share_status is ShareStatus.UNSET]


def prioritize(participants: Sequence[Participant]) -> list[Participant]:
    """Order records into three bands, keeping sheet order inside each band.

    1. records with a known folder id
    2. records still needing a search
    3. records whose folder was not found in an earlier cycle
    """
    known = [p for p in participants if p.folder_id]
    searchable = [p for p in participants if not p.folder_id and not p.folder_known_missing]
    missing = [p for p in participants if not p.folder_id and p.folder_known_missing]
    return known + searchable + missing


class BatchProcessor:
    """Processes this worker's share of the sheet, one cycle at a time.

    Example:
        processor = BatchProcessor(settings, sheet, drive, resolver, worklog)
        stats = processor.run_cycle()
    """

    def __init__(
        self,
        settings: CertshareSettings,
        sheet: SheetStore,
        drive: DriveClient,
        resolver: FolderResolver,
        worklog: WorkerLog,
        *,
        clock: Clock = DEFAULT_CLOCK,
        now: Callable[[], datetime] | None = None,
        pacing_jitter: Callable[[], float] | None = None,
    ) -> None:
        self._settings = settings
        self._sheet = sheet
        self._drive = drive
        self._resolver = resolver
        self._worklog = worklog
        self._clock = clock
        if now is None:
            tz = ZoneInfo(settings.timezone)
            now = lambda: datetime.now(tz)  # noqa: E731
        self._now = now
        self._pacing_jitter = pacing_jitter or (lambda: random.uniform(0, PACING_JITTER_SECONDS))
        self._columns: ColumnMap | None = None

    # -- selection -----------------------------------------------------------

    def select(self, participants: Sequence[Participant]) -> list[Participant]:
        """Apply the tri-state gate, the partition, the bands and the cap."""
        settings = self._settings
        candidates = eligible(p.normalized() for p in participants)
        if settings.sharded:
            before = len(candidates)
            candidates = list(select_partition(candidates, settings.shard_total, settings.shard_index))
            self._worklog.info(
                f"Sharding applied: {len(candidates)}/{before} records for shard "
                f"{settings.shard_index}/{settings.shard_total - 1}"
            )
        ordered = prioritize(candidates)
        selected = ordered[: settings.max_per_run]
        logger.info(
            "Processing prioritization",
            with_folder_id=sum(1 for p in ordered if p.folder_id),
            needs_search=sum(1 for p in ordered if not p.folder_id and not p.folder_known_missing),
            problematic=sum(1 for p in ordered if not p.folder_id and p.folder_known_missing),
            selected=len(selected),
        )
        return selected

    # -- side effects --------------------------------------------------------

    def _timestamp(self) -> str:
        return self._now().strftime(LAST_LOG_TIME_FORMAT)

    def _write(self, row: int, logical: str, value: str) -> None:
        assert self._columns is not None
        result = self._sheet.update_cell(row, self._columns.index_of(logical), value)
        if not result.ok:
            logger.warning("Could not update cell", row=row, column=logical, error=result.error)

    def _last_log(self, row: int, text: str) -> None:
        self._write(row, "LastLog", f"[{self._timestamp()}] {text}")

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock.monotonic() - started) * 1000)

    def _pace(self) -> None:
        self._clock.sleep(max(0.0, self._settings.throttle_seconds / 2) + self._pacing_jitter())

    # -- state machine -------------------------------------------------------

    def _skip(
        self,
        p: Participant,
        reason: SkipReason,
        started: float,
        *,
        share: ShareStatus | None,
        note: str,
    ) -> RecordOutcome:
        total_ms = self._elapsed_ms(started)
        if share is not None:
            self._write(p.row, "isShared", share.value)
        self._last_log(p.row, f"SKIP: {note} ({total_ms}ms)")
        self._worklog.info(log_grammar.skipped(p.row, reason, p.email, total_ms=total_ms))
        logger.info("Skipped", row=p.row, name=p.name, email=p.email, reason=reason.value, elapsed_ms=total_ms)
        return RecordOutcome(row=p.row, kind=OutcomeKind.SKIPPED, skip_reason=reason, message=note, elapsed_ms=total_ms)

    def process(self, p: Participant, seen: set[tuple[str, str]]) -> RecordOutcome:
        """Run one normalized participant to a terminal outcome."""
        settings = self._settings
        role = settings.role
        started = self._clock.monotonic()
        folder_ms = 0
        try:
            if not p.name or not p.email:
                return self._skip(
                    p, SkipReason.INVALID_FORMAT, started, share=ShareStatus.FALSE, note="Missing name or email"
                )

            email_problem = check_email(p.email, settings.allowed_email_domains)
            if email_problem is not None:
                note = (
                    f"Invalid email format '{p.email}'"
                    if email_problem is SkipReason.INVALID_EMAIL_FORMAT
                    else f"Email domain not allowed '{p.email}'"
                )
                return self._skip(p, email_problem, started, share=ShareStatus.FALSE, note=note)

            key = (p.name.lower(), p.email)
            if key in seen:
                return self._skip(p, SkipReason.DUPLICATE, started, share=None, note="Duplicate entry")
            seen.add(key)

            folder_id = p.folder_id
            source: ResolutionSource | None = ResolutionSource.PRERESOLVED if folder_id else None
            if not folder_id:
                resolution = self._resolver.resolve(p.name, settings.parent_folder_id or None)
                folder_ms = resolution.elapsed_ms
                folder_id = resolution.folder_id or ""
                source = resolution.source

            if not folder_id:
                total_ms = self._elapsed_ms(started)
                self._write(p.row, "isFolderExists", ShareStatus.FALSE.value)
                self._last_log(p.row, f"FOLDER NOT FOUND: '{p.name}' ({total_ms}ms)")
                self._worklog.error(log_grammar.folder_not_found(p.row, p.name, total_ms=total_ms, folder_ms=folder_ms))
                logger.error(
                    "Folder not found",
                    row=p.row,
                    name=p.name,
                    email=p.email,
                    search_location=settings.parent_folder_id or "global",
                    folder_ms=folder_ms,
                    elapsed_ms=total_ms,
                )
                return RecordOutcome(
                    row=p.row,
                    kind=OutcomeKind.ERROR,
                    error_reason=ErrorReason.NOT_FOUND,
                    message=f"Folder not found for '{p.name}'",
                    elapsed_ms=total_ms,
                )

            self._write(p.row, "isFolderExists", ShareStatus.TRUE.value)
            if not p.folder_id:
                self._write(p.row, "FolderId", folder_id)

            check_started = self._clock.monotonic()
            already = self._already_granted(folder_id, p.email, role)
            permission_ms = self._elapsed_ms(check_started)
            if already:
                total_ms = self._elapsed_ms(started)
                self._write(p.row, "isShared", ShareStatus.TRUE.value)
                self._last_log(p.row, f"SKIP: Already has {role} access ({total_ms}ms)")
                self._worklog.info(log_grammar.skipped(p.row, SkipReason.ALREADY_GRANTED, p.email, total_ms=total_ms))
                logger.info(
                    "Already has access",
                    row=p.row,
                    name=p.name,
                    email=p.email,
                    folder_id=folder_id,
                    role=role,
                    folder_ms=folder_ms,
                    permission_ms=permission_ms,
                    elapsed_ms=total_ms,
                )
                return RecordOutcome(
                    row=p.row,
                    kind=OutcomeKind.SKIPPED,
                    skip_reason=SkipReason.ALREADY_GRANTED,
                    folder_id=folder_id,
                    source=source,
                    elapsed_ms=total_ms,
                )

            grant_started = self._clock.monotonic()
            if not settings.dry_run:
                self._drive.create_permission(folder_id, p.email, role)
            grant_ms = self._elapsed_ms(grant_started)
            total_ms = self._elapsed_ms(started)

            status = "DRY_RUN" if settings.dry_run else "GRANTED"
            if not settings.dry_run:
                self._write(p.row, "isShared", ShareStatus.TRUE.value)
            self._last_log(p.row, f"{status} {role} -> {p.email} ({total_ms}ms)")
            self._worklog.info(
                log_grammar.granted(
                    p.row,
                    role,
                    p.email,
                    dry_run=settings.dry_run,
                    total_ms=total_ms,
                    folder_ms=folder_ms,
                    permission_ms=permission_ms,
                    grant_ms=grant_ms,
                )
            )
            logger.info(
                "Would grant access" if settings.dry_run else "Access granted",
                row=p.row,
                name=p.name,
                email=p.email,
                folder_id=folder_id,
                role=role,
                folder_ms=folder_ms,
                permission_ms=permission_ms,
                grant_ms=grant_ms,
                elapsed_ms=total_ms,
            )
            self._pace()
            return RecordOutcome(
                row=p.row,
                kind=OutcomeKind.DRY_RUN if settings.dry_run else OutcomeKind.GRANTED,
                folder_id=folder_id,
                source=source,
                elapsed_ms=total_ms,
            )
        except Exception as e:
            return self._failed(p, e, started, folder_ms)

    def _already_granted(self, folder_id: str, email: str, role: str) -> bool:
        try:
            return self._drive.has_permission(folder_id, email, role)
        except Exception as e:
            # Unknown state counts as not granted.
            logger.warning("Permission check failed", folder_id=folder_id, email=email, error=describe_error(e).summary())
            self._worklog.debug(f"permissions.list error: {describe_error(e).summary()}")
            return False

    def _failed(self, p: Participant, error: Exception, started: float, folder_ms: int) -> RecordOutcome:
        total_ms = self._elapsed_ms(started)
        details = describe_error(error)
        friendly = friendly_reason(error, p.email)
        technical = f"HTTP {details.status if details.status is not None else 'n/a'} {','.join(details.reasons)} - {details.message}"
        self._write(p.row, "isShared", ShareStatus.FALSE.value)
        self._last_log(p.row, f"ERROR: {friendly} ({total_ms}ms)")
        self._worklog.error(log_grammar.failed(p.row, friendly, total_ms=total_ms, folder_ms=folder_ms, technical=technical))
        logger.error(
            "Grant failed",
            row=p.row,
            name=p.name,
            email=p.email,
            reason=friendly,
            technical=details.summary(),
            operation=getattr(error, "operation", "unknown"),
            folder_ms=folder_ms,
            elapsed_ms=total_ms,
        )
        return RecordOutcome(
            row=p.row,
            kind=OutcomeKind.ERROR,
            error_reason=ErrorReason.GRANT_FAILED,
            message=friendly,
            elapsed_ms=total_ms,
        )

    # -- cycles --------------------------------------------------------------

    def run_cycle(self, stop: threading.Event | None = None) -> CycleStats:
        """Read the sheet from scratch and process this worker's selection.

        When ``stop`` is set the cycle ends after the record in flight.

        Raises:
            SetupError: If the header lacks Name/Email columns.
        """
        participants, columns = self._sheet.load()
        self._columns = columns
        self._worklog.info(f"Participants: {len(participants)}")
        selected = self.select(participants)

        settings = self._settings
        logger.info(
            "Processing participants",
            parent_folder_id=settings.parent_folder_id or "all folders",
            role=settings.role,
            mode="dry-run" if settings.dry_run else "production",
            shard=f"{settings.shard_index + 1}/{settings.shard_total}" if settings.sharded else None,
            count=len(selected),
        )
        self._worklog.info(log_grammar.processing(len(selected), settings.parent_folder_id))

        stats = CycleStats()
        seen: set[tuple[str, str]] = set()
        for p in selected:
            if stop is not None and stop.is_set():
                logger.info("Shutdown requested, ending cycle early", processed=stats.total, selected=len(selected))
                break
            stats.record(self.process(p, seen))

        self._worklog.info(
            log_grammar.summary(stats.total, stats.done, stats.skipped, stats.errors, stats.success_rate)
        )
        logger.info(
            "Cycle finished",
            total=stats.total,
            done=stats.done,
            skipped=stats.skipped,
            errors=stats.errors,
            success_rate=f"{stats.success_rate:.1f}%",
            log_file=str(self._worklog.path),
        )
        return stats

    def run(self, *, stop: threading.Event | None = None, max_cycles: int | None = None) -> list[CycleStats]:
        """Run one cycle, or keep cycling in loop mode until ``stop`` is set.

        In loop mode a failed cycle is logged and the next poll goes ahead;
        only a SetupError ends the loop. A single run lets every error out.
        The wait between cycles returns early as soon as ``stop`` is set.
        """
        stop = stop or threading.Event()
        history: list[CycleStats] = []
        cycles = 0
        while not stop.is_set():
            cycles += 1
            if not self._settings.loop:
                history.append(self.run_cycle(stop))
                break
            try:
                history.append(self.run_cycle(stop))
            except SetupError:
                raise
            except Exception as e:
                summary = describe_error(e).summary()
                self._worklog.error(f"Loop error: {summary}")
                logger.error(
                    "Cycle failed, retrying next poll",
                    error=summary,
                    operation=getattr(e, "operation", "unknown"),
                    exc_info=True,
                )
            if max_cycles is not None and cycles >= max_cycles:
                break
            interval = self._settings.poll_interval_seconds
            logger.info("Waiting for next cycle", seconds=interval)
            if stop.wait(interval):
                break
        return history


def build_processor(
    settings: CertshareSettings,
    drive_service: Any,
    sheets_service: Any,
    worklog: WorkerLog,
    *,
    clock: Clock = DEFAULT_CLOCK,
) -> BatchProcessor:
    """Wire clients, cache and resolver for one worker.

    Drive calls share one throttle so searches, checks and grants are spaced
    as a single stream. Sheet writes are not throttled.
    """
    throttle = Throttle(settings.throttle_seconds, clock=clock)
    drive = DriveClient(drive_service, throttle=throttle, clock=clock)
    sheet = SheetStore(sheets_service, settings.sheet_id, settings.sheet_name, clock=clock)
    resolver = FolderResolver(
        drive,
        FolderMapping.load(settings.folder_mapping_path),
        timeout_seconds=settings.search_timeout_seconds,
        max_depth=settings.search_max_depth,
        clock=clock,
        worklog=worklog,
    )
    return BatchProcessor(settings, sheet, drive, resolver, worklog, clock=clock)
