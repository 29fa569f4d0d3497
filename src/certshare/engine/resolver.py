# src/certshare/engine/resolver.py
"""Resolve a participant's display name to a Drive folder id.

Lookup order, first hit wins:

1. Folder mapping cache: exact name, lowercased name, then every name
   variation (verbatim and lowercased).
2. Live search bounded by an overall deadline:
   - no scope root: ``name contains`` queries across Drive, one per search
     term, preferring an exact case-insensitive match over a containment
     match in either direction;
   - scope root: breadth-first walk of sub-folders down to ``max_depth``,
     checking each level for an exact case-insensitive match.

The resolver never raises. Timeouts, remote errors and exhausted searches
all come back as an unresolved Resolution.
"""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass
from typing import Any

import structlog

from certshare.clients.drive import DriveClient
from certshare.contracts.enums import ResolutionSource
from certshare.contracts.errors import describe_error, is_retryable_rate_limit
from certshare.core.clock import DEFAULT_CLOCK, Clock
from certshare.core.logging import WorkerLog
from certshare.engine.folder_map import FolderMapping

logger = structlog.get_logger(__name__)

# Common Indonesian honorifics and titles prefixed to names.
_HONORIFIC_RE = re.compile(r"\b(muhammad|moh|drs|dr|prof|hj|h)\b", re.IGNORECASE)
_PUNCTUATION_RE = re.compile(r"[.,-]")
_WHITESPACE_RE = re.compile(r"\s+")

GLOBAL_SEARCH_TERMS = 5
REQUEUE_DELAY_SECONDS = 1.0


def _squash(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value).strip()


def name_variations(name: str) -> list[str]:
    """Spellings of ``name`` worth trying against the cache, most literal first."""
    candidates = [name, name.lower(), name.upper()]
    normalized = _squash(name)
    candidates += [normalized, normalized.lower()]
    without_titles = _squash(_HONORIFIC_RE.sub("", name))
    if without_titles and without_titles != name:
        candidates += [without_titles, without_titles.lower()]
    without_punctuation = _squash(_PUNCTUATION_RE.sub(" ", name))
    if without_punctuation and without_punctuation != name:
        candidates += [without_punctuation, without_punctuation.lower()]
    return [v for v in dict.fromkeys(candidates) if v]


def search_terms(name: str) -> list[str]:
    """The terms used for ``name contains`` queries, at most five."""
    candidates = [name, name.lower(), name.upper(), _squash(name), _squash(_HONORIFIC_RE.sub("", name))]
    return [v for v in dict.fromkeys(candidates) if v][:GLOBAL_SEARCH_TERMS]


def pick_match(files: list[dict[str, Any]], target: str) -> dict[str, Any] | None:
    """Exact case-insensitive name match, else containment either way."""
    target_lower = target.lower()
    for f in files:
        if (f.get("name") or "").lower() == target_lower:
            return f
    for f in files:
        folder_name = (f.get("name") or "").lower()
        if folder_name and (target_lower in folder_name or folder_name in target_lower):
            return f
    return None


@dataclass(frozen=True)
class Resolution:
    """Result of resolving one name."""

    folder_id: str | None
    source: ResolutionSource | None
    elapsed_ms: int

    @property
    def found(self) -> bool:
        return self.folder_id is not None


class _Deadline:
    """Search budget; a shutdown request spends it at once."""

    def __init__(self, clock: Clock, seconds: float) -> None:
        self._clock = clock
        self._expires_at = clock.monotonic() + seconds

    @property
    def expired(self) -> bool:
        return self._clock.interrupted() or self._clock.monotonic() >= self._expires_at


class FolderResolver:
    """Cache-first folder lookup with a bounded live-search fallback."""

    def __init__(
        self,
        drive: DriveClient,
        mapping: FolderMapping | None = None,
        *,
        timeout_seconds: float = 30.0,
        max_depth: int = 3,
        clock: Clock = DEFAULT_CLOCK,
        worklog: WorkerLog | None = None,
    ) -> None:
        self._drive = drive
        self._mapping = mapping or FolderMapping()
        self._timeout_seconds = timeout_seconds
        self._max_depth = max_depth
        self._clock = clock
        self._worklog = worklog

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock.monotonic() - started) * 1000)

    def _debug(self, message: str, **fields: Any) -> None:
        logger.debug(message, **fields)
        if self._worklog is not None:
            details = " ".join(f"{k}={v}" for k, v in fields.items())
            self._worklog.debug(f"{message} {details}".rstrip())

    def lookup_cached(self, name: str) -> str | None:
        """Cache-only lookup; no remote call."""
        if not len(self._mapping):
            return None
        hit = self._mapping.get(name) or self._mapping.get(name.lower())
        if hit:
            return hit
        for variation in name_variations(name):
            hit = self._mapping.get(variation) or self._mapping.get(variation.lower())
            if hit:
                return hit
        return None

    def resolve(self, name: str, scope_root: str | None = None) -> Resolution:
        """Resolve ``name`` to a folder id, searching under ``scope_root`` if given."""
        started = self._clock.monotonic()
        target = name.strip()
        if not target:
            return Resolution(folder_id=None, source=None, elapsed_ms=0)

        cached = self.lookup_cached(target)
        if cached:
            elapsed = self._elapsed_ms(started)
            self._debug("Folder resolved", name=target, source=ResolutionSource.CACHE.value, elapsed_ms=elapsed)
            return Resolution(folder_id=cached, source=ResolutionSource.CACHE, elapsed_ms=elapsed)

        deadline = _Deadline(self._clock, self._timeout_seconds)
        if scope_root:
            source = ResolutionSource.SCOPED_SEARCH
            folder_id = self._scoped_search(target, scope_root, deadline)
        else:
            source = ResolutionSource.GLOBAL_SEARCH
            folder_id = self._global_search(target, deadline)

        elapsed = self._elapsed_ms(started)
        if folder_id is None:
            self._debug("Folder not found", name=target, source=source.value, elapsed_ms=elapsed)
            return Resolution(folder_id=None, source=None, elapsed_ms=elapsed)
        self._debug("Folder resolved", name=target, source=source.value, elapsed_ms=elapsed)
        return Resolution(folder_id=folder_id, source=source, elapsed_ms=elapsed)

    def _global_search(self, target: str, deadline: _Deadline) -> str | None:
        for term in search_terms(target):
            if deadline.expired:
                self._debug("Folder search timed out", name=target, timeout_s=self._timeout_seconds)
                return None
            try:
                files = self._drive.search_folders_by_name(term)
            except Exception as e:
                # Search errors only cost this term; the next one is tried.
                self._debug("Global search failed", term=term, error=describe_error(e).summary())
                continue
            match = pick_match(files, target)
            if match is not None and match.get("id"):
                return str(match["id"])
        return None

    def _scoped_search(self, target: str, scope_root: str, deadline: _Deadline) -> str | None:
        target_lower = target.lower()
        queue: deque[tuple[str, int]] = deque([(scope_root, 0)])
        while queue:
            if deadline.expired:
                self._debug("Folder search timed out", name=target, timeout_s=self._timeout_seconds)
                return None
            folder_id, depth = queue.popleft()
            try:
                children = self._drive.list_child_folders(folder_id)
            except Exception as e:
                if is_retryable_rate_limit(e):
                    self._clock.sleep(REQUEUE_DELAY_SECONDS)
                    queue.append((folder_id, depth))
                    continue
                self._debug("Child listing failed, skipping branch", folder_id=folder_id, error=describe_error(e).summary())
                continue
            for child in children:
                if (child.get("name") or "").lower() == target_lower and child.get("id"):
                    return str(child["id"])
            if depth < self._max_depth:
                queue.extend((str(c["id"]), depth + 1) for c in children if c.get("id"))
        return None
