"""Tests for blob packing and manifest assembly."""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path

from wasm_file_packager import packer
from wasm_file_packager.packer import (
    Manifest,
    ManifestFile,
    RemotePackage,
    build_manifest,
    pack_blob,
    remote_package_for,
)
from wasm_file_packager.paths import FileEntry


def _plan(paths: list[tuple[Path, str]]) -> tuple[FileEntry, ...]:
    return tuple(FileEntry(source_path=p, virtual_path=v, explicit_destination=True) for p, v in paths)


class TestPackBlob:
    """Test byte-exact concatenation."""

    def test_ranges_are_contiguous_and_cover_the_blob(self, tmp_path, write_file):
        contents = [b"first", b"", b"\x00\x01\x02third", b"4"]
        plan = _plan(
            [(write_file(tmp_path / f"f{i}.bin", data), f"/f{i}.bin") for i, data in enumerate(contents)]
        )
        target = tmp_path / "out.data"

        result = pack_blob(plan, target)

        assert target.read_bytes() == b"".join(contents)
        assert result.total_size == sum(len(c) for c in contents) == target.stat().st_size
        ranges = [e.byte_range for e in result.plan]
        assert ranges[0][0] == 0
        for (_, prev_end), (start, _) in zip(ranges, ranges[1:]):
            assert start == prev_end
        assert max(end for _, end in ranges) == result.total_size
        for entry, data in zip(result.plan, contents):
            start, end = entry.byte_range
            assert end - start == len(data)

    def test_input_plan_is_left_untouched(self, tmp_path, write_file):
        plan = _plan([(write_file(tmp_path / "a.txt", b"abc"), "/a.txt")])

        result = pack_blob(plan, tmp_path / "out.data")

        assert plan[0].byte_range is None
        assert result.plan[0].byte_range == (0, 3)

    def test_existing_target_is_truncated(self, tmp_path, write_file):
        target = write_file(tmp_path / "out.data", b"stale content that is long")
        plan = _plan([(write_file(tmp_path / "a.txt", b"new"), "/a.txt")])

        pack_blob(plan, target)

        assert target.read_bytes() == b"new"

    def test_large_bundle_warns_but_continues(self, tmp_path, write_file, monkeypatch, caplog):
        monkeypatch.setattr(packer, "LARGE_BUNDLE_THRESHOLD", 4)
        logger = logging.getLogger("test.packer")
        caplog.set_level(logging.WARNING, logger="test.packer")
        plan = _plan([(write_file(tmp_path / "a.bin", b"0123456789"), "/a.bin")])

        result = pack_blob(plan, tmp_path / "out.data", logger=logger)

        assert result.total_size == 10
        assert "asset bundle" in caplog.text


class TestBuildManifest:
    """Test manifest contents and schema."""

    def test_files_follow_plan_order_with_audio_flags(self):
        plan = (
            FileEntry(Path("s.ogg"), "/sfx/s.ogg", True, (0, 4)),
            FileEntry(Path("t.txt"), "/t.txt", True, (4, 9)),
            FileEntry(Path("m.mp3"), "/m.mp3", True, (9, 9)),
            FileEntry(Path("w.wav"), "/w.wav", True, (9, 12)),
        )

        manifest = build_manifest(plan)

        assert manifest.files == (
            ManifestFile("/sfx/s.ogg", 0, 4, 1),
            ManifestFile("/t.txt", 4, 9, 0),
            ManifestFile("/m.mp3", 9, 9, 1),
            ManifestFile("/w.wav", 9, 12, 1),
        )
        assert manifest.remote_package_size is None
        assert "remote_package_size" not in manifest.to_dict()
        assert "package_uuid" not in manifest.to_dict()

    def test_remote_fields_are_attached(self):
        plan = (FileEntry(Path("a"), "/a", True, (0, 3)),)

        manifest = build_manifest(plan, remote_package=RemotePackage(size=3, uuid="abc"))

        assert json.loads(manifest.to_json()) == {
            "files": [{"filename": "/a", "start": 0, "end": 3, "audio": 0}],
            "remote_package_size": 3,
            "package_uuid": "abc",
        }

    def test_audio_suffix_is_case_sensitive(self):
        plan = (FileEntry(Path("a"), "/LOUD.OGG", True, (0, 1)),)
        assert build_manifest(plan).files[0].audio == 0


class TestRemotePackageFor:
    """Test remote package description."""

    def test_size_matches_disk_and_uuid_is_fresh(self, tmp_path, write_file):
        target = write_file(tmp_path / "out.data", b"12345")

        first = remote_package_for(target)
        second = remote_package_for(target)

        assert first.size == 5
        assert uuid.UUID(first.uuid).version == 4
        assert first.uuid != second.uuid

    def test_manifest_roundtrips_through_json(self):
        manifest = Manifest(files=(ManifestFile("/x", 0, 1, 0),), remote_package_size=1, package_uuid="u")
        assert json.loads(manifest.to_json()) == manifest.to_dict()
