# src/certshare/engine/folder_map.py
"""Folder-name to folder-id cache.

``certshare map-folders`` scans a parent folder once and writes the cache;
workers load it read-only at startup. The cache is a hint, never an
authority: a miss falls back to a live search.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path

import structlog
from googleapiclient.errors import HttpError

from certshare.clients.drive import DriveClient
from certshare.contracts.errors import describe_error
from certshare.core.retry import SEARCH_POLICY

logger = structlog.get_logger(__name__)


class FolderMapping:
    """Read-only lookup of folder ids by name.

    Keys are stored both verbatim and lowercased by the builder.
    """

    def __init__(self, entries: Mapping[str, str] | None = None) -> None:
        self._entries: dict[str, str] = dict(entries or {})

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def get(self, name: str) -> str | None:
        return self._entries.get(name)

    def as_dict(self) -> dict[str, str]:
        return dict(self._entries)

    @classmethod
    def load(cls, path: Path) -> FolderMapping:
        """Load the cache file; a missing or unreadable file yields an empty cache."""
        if not path.exists():
            logger.info("No folder mapping cache, using live search only", path=str(path))
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Could not read folder mapping cache", path=str(path), error=str(e))
            return cls()
        if not isinstance(data, dict):
            logger.warning("Folder mapping cache is not a JSON object", path=str(path))
            return cls()
        entries = {str(k): str(v) for k, v in data.items() if v}
        logger.info("Loaded folder mapping", path=str(path), entries=len(entries))
        return cls(entries)

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self._entries, indent=2, ensure_ascii=False), encoding="utf-8")


def build_folder_mapping(drive: DriveClient, parent_folder_id: str, *, max_depth: int = 3) -> FolderMapping:
    """Scan ``parent_folder_id`` down to ``max_depth`` levels of sub-folders.

    Every folder found is stored under its name and its lowercased name. A
    branch whose listing fails is logged and skipped; the rest of the tree
    is still mapped.
    """
    entries: dict[str, str] = {}
    unique = 0

    def scan(folder_id: str, depth: int, parent_name: str) -> None:
        nonlocal unique
        if depth >= max_depth:
            return
        try:
            children = drive.list_child_folders(folder_id, policy=SEARCH_POLICY)
        except HttpError as e:
            logger.warning(
                "Could not list folder, skipping branch",
                folder_id=folder_id,
                depth=depth,
                error=describe_error(e).summary(),
            )
            return
        logger.debug("Scanned folder", depth=depth + 1, parent=parent_name or folder_id, children=len(children))
        for child in children:
            name = str(child.get("name") or "")
            child_id = str(child.get("id") or "")
            if not name or not child_id:
                continue
            entries[name] = child_id
            entries[name.lower()] = child_id
            unique += 1
            scan(child_id, depth + 1, name)

    scan(parent_folder_id, 0, "")
    logger.info("Folder mapping built", parent_folder_id=parent_folder_id, folders=unique, entries=len(entries))
    return FolderMapping(entries)
