"""Clients for the remote stores: Google Drive (folders, permissions) and Google Sheets."""

from certshare.clients.base import GoogleClientBase
from certshare.clients.credentials import build_services, load_credentials
from certshare.clients.drive import DriveClient
from certshare.clients.sheets import SheetStore, column_letter, detect_columns

__all__ = [
    "DriveClient",
    "GoogleClientBase",
    "SheetStore",
    "build_services",
    "column_letter",
    "detect_columns",
    "load_credentials",
]
