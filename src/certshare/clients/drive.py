"""Google Drive v3 client: folder lookups and permissions."""

from __future__ import annotations

from typing import Any

from certshare.clients.base import GoogleClientBase
from certshare.core.retry import CHECK_POLICY, MUTATION_POLICY, SEARCH_POLICY, RetryPolicy

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

# Scoped traversal handles rate limits itself by requeueing the node.
SINGLE_ATTEMPT = RetryPolicy(max_attempts=1)


def _quote(value: str) -> str:
    """Escape a value for a Drive query string literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveClient(GoogleClientBase):
    """Folder search and permission management over a Drive service object."""

    def search_folders_by_name(self, term: str, *, page_size: int = 20) -> list[dict[str, Any]]:
        """Folders anywhere in Drive whose name contains ``term``.

        Only the first page is returned; callers refine with exact/fuzzy
        matching on the names.
        """
        query = f"mimeType='{FOLDER_MIME_TYPE}' and name contains '{_quote(term)}' and trashed=false"
        response = self._call(
            "drive.files.list(global)",
            {"term": term},
            lambda: self._service.files()
            .list(
                q=query,
                spaces="drive",
                fields="files(id,name,parents)",
                includeItemsFromAllDrives=True,
                supportsAllDrives=True,
                pageSize=page_size,
            )
            .execute(),
            SEARCH_POLICY,
        )
        return list(response.get("files") or [])

    def list_child_folders(self, parent_id: str, *, policy: RetryPolicy = SINGLE_ATTEMPT) -> list[dict[str, Any]]:
        """All direct sub-folders of ``parent_id``, with pagination drained."""
        query = f"'{_quote(parent_id)}' in parents and mimeType='{FOLDER_MIME_TYPE}' and trashed=false"
        folders: list[dict[str, Any]] = []
        page_token: str | None = None
        while True:
            token = page_token
            response = self._call(
                "drive.files.list(children)",
                {"parent_id": parent_id, "page_token": token},
                lambda: self._service.files()
                .list(
                    q=query,
                    spaces="drive",
                    fields="nextPageToken, files(id,name,parents)",
                    includeItemsFromAllDrives=True,
                    supportsAllDrives=True,
                    pageSize=100,
                    pageToken=token,
                )
                .execute(),
                policy,
            )
            folders.extend(response.get("files") or [])
            page_token = response.get("nextPageToken")
            if not page_token:
                return folders

    def list_permissions(self, file_id: str) -> list[dict[str, Any]]:
        permissions: list[dict[str, Any]] = []
        page_token: str | None = None
        while True:
            token = page_token
            response = self._call(
                "drive.permissions.list",
                {"file_id": file_id},
                lambda: self._service.permissions()
                .list(
                    fileId=file_id,
                    fields="nextPageToken, permissions(emailAddress,role)",
                    supportsAllDrives=True,
                    pageToken=token,
                )
                .execute(),
                CHECK_POLICY,
            )
            permissions.extend(response.get("permissions") or [])
            page_token = response.get("nextPageToken")
            if not page_token:
                return permissions

    def has_permission(self, file_id: str, email: str, role: str) -> bool:
        """Whether ``email`` already holds exactly ``role`` on the file."""
        target = email.lower()
        return any(
            (p.get("emailAddress") or "").lower() == target and p.get("role") == role
            for p in self.list_permissions(file_id)
        )

    def create_permission(self, file_id: str, email: str, role: str) -> dict[str, Any]:
        """Grant ``role`` to a user without sending a notification email."""
        result: dict[str, Any] = self._call(
            "drive.permissions.create",
            {"file_id": file_id, "email": email, "role": role},
            lambda: self._service.permissions()
            .create(
                fileId=file_id,
                sendNotificationEmail=False,
                supportsAllDrives=True,
                body={"type": "user", "role": role, "emailAddress": email},
            )
            .execute(),
            MUTATION_POLICY,
        )
        return result
