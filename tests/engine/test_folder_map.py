# tests/engine/test_folder_map.py
"""Tests for the folder mapping cache and its builder."""

import json
from pathlib import Path

from certshare.clients.drive import DriveClient
from certshare.core.clock import MockClock
from certshare.engine.folder_map import FolderMapping, build_folder_mapping
from tests.conftest import FakeDriveService, make_http_error, rate_limited


def _tree(drive_service: FakeDriveService) -> None:
    drive_service.add_folder("B1", "Batch 1", parent="R")
    drive_service.add_folder("F1", "Ani Lestari", parent="B1")
    drive_service.add_folder("G1", "Sertifikat", parent="F1")


class TestBuildFolderMapping:
    def test_names_stored_verbatim_and_lowercased(self, drive_service: FakeDriveService, clock: MockClock) -> None:
        _tree(drive_service)

        mapping = build_folder_mapping(DriveClient(drive_service, clock=clock), "R")

        assert mapping.as_dict() == {
            "Batch 1": "B1",
            "batch 1": "B1",
            "Ani Lestari": "F1",
            "ani lestari": "F1",
            "Sertifikat": "G1",
            "sertifikat": "G1",
        }

    def test_depth_limit(self, drive_service: FakeDriveService, clock: MockClock) -> None:
        _tree(drive_service)

        mapping = build_folder_mapping(DriveClient(drive_service, clock=clock), "R", max_depth=1)

        assert "Batch 1" in mapping
        assert "Ani Lestari" not in mapping

    def test_rate_limits_are_retried(self, drive_service: FakeDriveService, clock: MockClock) -> None:
        _tree(drive_service)
        drive_service.fail("files.list", rate_limited())

        mapping = build_folder_mapping(DriveClient(drive_service, clock=clock), "R")

        assert mapping.get("sertifikat") == "G1"
        assert len(clock.sleeps) == 1

    def test_failed_listing_skips_branch(self, drive_service: FakeDriveService, clock: MockClock) -> None:
        _tree(drive_service)
        drive_service.fail("files.list", make_http_error(404, "notFound"))

        mapping = build_folder_mapping(DriveClient(drive_service, clock=clock), "R")

        assert len(mapping) == 0


class TestFolderMappingFile:
    def test_save_then_load(self, tmp_path: Path) -> None:
        path = tmp_path / "cache" / "folder-mapping.json"
        FolderMapping({"Ani Lestari": "F1", "ani lestari": "F1"}).save(path)

        loaded = FolderMapping.load(path)

        assert loaded.get("ani lestari") == "F1"
        assert len(loaded) == 2

    def test_non_ascii_names_kept_readable(self, tmp_path: Path) -> None:
        path = tmp_path / "map.json"
        FolderMapping({"Zoë": "F1"}).save(path)

        assert "Zoë" in path.read_text(encoding="utf-8")

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert len(FolderMapping.load(tmp_path / "missing.json")) == 0

    def test_invalid_json_is_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "map.json"
        path.write_text("{not json", encoding="utf-8")

        assert len(FolderMapping.load(path)) == 0

    def test_non_object_is_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "map.json"
        path.write_text(json.dumps(["Ani", "F1"]), encoding="utf-8")

        assert len(FolderMapping.load(path)) == 0

    def test_blank_ids_dropped(self, tmp_path: Path) -> None:
        path = tmp_path / "map.json"
        path.write_text(json.dumps({"Ani": "F1", "Budi": ""}), encoding="utf-8")

        loaded = FolderMapping.load(path)

        assert "Ani" in loaded
        assert "Budi" not in loaded
