# tests/clients/test_drive.py
"""Tests for the Drive client over the fake service."""

import pytest
from googleapiclient.errors import HttpError

from certshare.clients.drive import DriveClient
from certshare.core.clock import MockClock
from certshare.core.retry import Throttle
from tests.conftest import FakeDriveService, make_http_error, rate_limited


class TestFolderListing:
    def test_child_listing_drains_pages(self, drive_service: FakeDriveService, clock: MockClock) -> None:
        for i in range(5):
            drive_service.add_folder(f"F{i}", f"Folder {i}", parent="P")
        drive_service.add_folder("X", "Elsewhere", parent="Q")
        drive_service.page_size = 2

        children = DriveClient(drive_service, clock=clock).list_child_folders("P")

        assert [c["id"] for c in children] == ["F0", "F1", "F2", "F3", "F4"]
        assert len(drive_service.calls_to("files.list")) == 3

    def test_child_listing_is_single_attempt_by_default(self, drive_service: FakeDriveService, clock: MockClock) -> None:
        drive_service.fail("files.list", rate_limited())

        with pytest.raises(HttpError):
            DriveClient(drive_service, clock=clock).list_child_folders("P")

        assert clock.sleeps == []

    def test_global_search_escapes_quotes(self, drive_service: FakeDriveService, clock: MockClock) -> None:
        drive_service.add_folder("F1", "Nur'aini")

        files = DriveClient(drive_service, clock=clock).search_folders_by_name("Nur'aini")

        assert [f["id"] for f in files] == ["F1"]
        query = drive_service.calls_to("files.list")[0]["q"]
        assert "name contains 'Nur\\'aini'" in query
        assert "trashed=false" in query

    def test_global_search_retries_rate_limits(self, drive_service: FakeDriveService, clock: MockClock) -> None:
        drive_service.add_folder("F1", "Ani")
        drive_service.fail("files.list", rate_limited(), rate_limited())

        files = DriveClient(drive_service, clock=clock).search_folders_by_name("Ani")

        assert [f["id"] for f in files] == ["F1"]
        assert len(drive_service.calls_to("files.list")) == 3


class TestPermissions:
    def test_has_permission_matches_email_and_role(self, drive_service: FakeDriveService, clock: MockClock) -> None:
        drive_service.permissions_by_file["F1"] = [
            {"emailAddress": "Ani@Gmail.com", "role": "reader"},
            {"emailAddress": "budi@gmail.com", "role": "writer"},
        ]
        drive = DriveClient(drive_service, clock=clock)

        assert drive.has_permission("F1", "ani@gmail.com", "reader")
        assert not drive.has_permission("F1", "budi@gmail.com", "reader")
        assert not drive.has_permission("F1", "cici@gmail.com", "reader")

    def test_create_permission_without_notification(self, drive_service: FakeDriveService, clock: MockClock) -> None:
        DriveClient(drive_service, clock=clock).create_permission("F1", "ani@gmail.com", "reader")

        (call,) = drive_service.calls_to("permissions.create")
        assert call["fileId"] == "F1"
        assert call["sendNotificationEmail"] is False
        assert call["body"] == {"type": "user", "role": "reader", "emailAddress": "ani@gmail.com"}

    def test_create_permission_gives_up_after_six_attempts(self, drive_service: FakeDriveService, clock: MockClock) -> None:
        drive_service.fail("permissions.create", *[make_http_error(429) for _ in range(6)])

        with pytest.raises(HttpError) as exc_info:
            DriveClient(drive_service, clock=clock).create_permission("F1", "ani@gmail.com", "reader")

        assert len(drive_service.calls_to("permissions.create")) == 6
        assert exc_info.value.operation == "drive.permissions.create"  # type: ignore[attr-defined]
        assert exc_info.value.context["file_id"] == "F1"  # type: ignore[attr-defined]

    def test_throttle_applies_to_every_attempt(self, drive_service: FakeDriveService, clock: MockClock) -> None:
        throttle = Throttle(2.0, clock=clock, jitter=lambda: 0.0)
        drive = DriveClient(drive_service, throttle=throttle, clock=clock)

        drive.list_permissions("F1")
        drive.list_permissions("F1")

        assert clock.sleeps == [pytest.approx(2.0, abs=0.01)]
