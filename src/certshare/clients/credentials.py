"""Service-account credential loading and service construction."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from google.oauth2 import service_account
from googleapiclient.discovery import build

from certshare.contracts.errors import SetupError

SCOPES: tuple[str, ...] = (
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/spreadsheets",
)


def load_credentials(credentials_path: Path) -> service_account.Credentials:
    """Load a service-account key file.

    Raises:
        SetupError: If the file is missing or not a valid key.
    """
    if not credentials_path.exists():
        raise SetupError(f"Credentials file not found: {credentials_path}")
    try:
        return service_account.Credentials.from_service_account_file(str(credentials_path), scopes=list(SCOPES))
    except (ValueError, KeyError) as e:
        raise SetupError(f"Invalid service account file {credentials_path}: {e}") from e


def build_services(credentials_path: Path) -> tuple[Any, Any]:
    """Return ``(drive, sheets)`` discovery service objects."""
    credentials = load_credentials(credentials_path)
    drive = build("drive", "v3", credentials=credentials, cache_discovery=False)
    sheets = build("sheets", "v4", credentials=credentials, cache_discovery=False)
    return drive, sheets
