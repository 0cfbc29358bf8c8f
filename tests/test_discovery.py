"""Unit tests for input path classification and directory expansion."""

import os
from pathlib import Path
from unittest import mock

import pytest

from watermarker.discovery import (
    DiscoveryFailure,
    PathKind,
    SourceFile,
    classify,
    discover,
    expand,
)
from watermarker.errors import DiscoveryError, MetadataError


def touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    return path


needs_unprivileged = pytest.mark.skipif(
    not hasattr(os, "geteuid") or os.geteuid() == 0,
    reason="permission bits are not enforced for root",
)


class TestClassify:
    """Test suite for classify()."""

    def test_file(self, tmp_path):
        assert classify(touch(tmp_path / "a.png")) is PathKind.FILE

    def test_directory(self, tmp_path):
        assert classify(tmp_path) is PathKind.DIRECTORY

    def test_not_found(self, tmp_path):
        assert classify(tmp_path / "missing.png") is PathKind.NOT_FOUND

    def test_symlink_to_file_is_followed(self, tmp_path):
        target = touch(tmp_path / "a.png")
        link = tmp_path / "link.png"
        link.symlink_to(target)

        assert classify(link) is PathKind.FILE

    def test_broken_symlink_is_not_found(self, tmp_path):
        link = tmp_path / "dangling.png"
        link.symlink_to(tmp_path / "nowhere.png")

        assert classify(link) is PathKind.NOT_FOUND

    @pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="requires mkfifo")
    def test_special_file_is_rejected(self, tmp_path):
        fifo = tmp_path / "pipe"
        os.mkfifo(fifo)

        with pytest.raises(DiscoveryError, match="neither file nor directory"):
            classify(fifo)

    def test_metadata_error(self, tmp_path):
        # A regular file used as a directory component fails with ENOTDIR
        parent = touch(tmp_path / "a.png")

        with pytest.raises(MetadataError) as exc_info:
            classify(parent / "child.png")

        assert exc_info.value.path == parent / "child.png"
        assert isinstance(exc_info.value.cause, OSError)


class TestExpand:
    """Test suite for expand()."""

    def test_lists_files_sorted(self, tmp_path):
        for name in ["c.png", "a.png", "b.jpg"]:
            touch(tmp_path / name)

        assert expand(tmp_path) == [tmp_path / "a.png", tmp_path / "b.jpg", tmp_path / "c.png"]

    def test_empty_directory(self, tmp_path):
        assert expand(tmp_path) == []

    def test_non_recursive_skips_subdirectories(self, tmp_path):
        touch(tmp_path / "a.png")
        touch(tmp_path / "nested" / "b.png")

        assert expand(tmp_path) == [tmp_path / "a.png"]

    def test_recursive_includes_nested_files(self, tmp_path):
        touch(tmp_path / "a.png")
        touch(tmp_path / "nested" / "b.png")
        touch(tmp_path / "nested" / "deeper" / "c.png")

        assert expand(tmp_path, recursive=True) == [
            tmp_path / "a.png",
            tmp_path / "nested" / "b.png",
            tmp_path / "nested" / "deeper" / "c.png",
        ]

    def test_symlinked_file_included(self, tmp_path):
        outside = touch(tmp_path / "outside" / "real.png")
        photos = tmp_path / "photos"
        photos.mkdir()
        (photos / "link.png").symlink_to(outside)

        assert expand(photos) == [photos / "link.png"]

    def test_broken_symlink_excluded(self, tmp_path):
        (tmp_path / "dangling.png").symlink_to(tmp_path / "nowhere.png")

        assert expand(tmp_path) == []

    def test_symlinked_directory_not_followed(self, tmp_path):
        photos = tmp_path / "photos"
        touch(photos / "a.png")
        # A link back to the parent would cycle forever if followed
        (photos / "loop").symlink_to(photos, target_is_directory=True)

        assert expand(photos, recursive=True) == [photos / "a.png"]

    @pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="requires mkfifo")
    def test_special_files_excluded(self, tmp_path):
        touch(tmp_path / "a.png")
        os.mkfifo(tmp_path / "pipe")

        assert expand(tmp_path) == [tmp_path / "a.png"]

    def test_missing_directory(self, tmp_path):
        with pytest.raises(DiscoveryError, match="Failed to read directory"):
            expand(tmp_path / "missing")

    @needs_unprivileged
    def test_unreadable_directory(self, tmp_path):
        locked = tmp_path / "locked"
        touch(locked / "a.png")
        locked.chmod(0)
        try:
            with pytest.raises(DiscoveryError):
                expand(locked)
        finally:
            locked.chmod(0o755)

    @needs_unprivileged
    def test_unreadable_subdirectory_is_skipped(self, tmp_path, caplog):
        touch(tmp_path / "a.png")
        touch(tmp_path / "locked" / "hidden.png")
        touch(tmp_path / "open" / "b.png")
        locked = tmp_path / "locked"
        locked.chmod(0)
        try:
            with caplog.at_level("WARNING", logger="watermarker.discovery"):
                found = expand(tmp_path, recursive=True)
        finally:
            locked.chmod(0o755)

        assert found == [tmp_path / "a.png", tmp_path / "open" / "b.png"]
        assert "Skipping subdirectory" in caplog.text
        assert str(locked) in caplog.text

    def test_subdirectory_read_error_is_skipped(self, tmp_path, caplog):
        touch(tmp_path / "a.png")
        touch(tmp_path / "bad" / "x.png")
        touch(tmp_path / "good" / "b.png")
        real_scandir = os.scandir

        def scandir(path):
            if Path(path).name == "bad":
                raise PermissionError(13, "Permission denied", str(path))
            return real_scandir(path)

        with mock.patch("watermarker.discovery.os.scandir", side_effect=scandir):
            with caplog.at_level("WARNING", logger="watermarker.discovery"):
                found = expand(tmp_path, recursive=True)

        assert found == [tmp_path / "a.png", tmp_path / "good" / "b.png"]
        assert "Skipping subdirectory" in caplog.text

    def test_top_level_read_error_still_raises(self, tmp_path):
        touch(tmp_path / "a.png")

        with mock.patch("watermarker.discovery.os.scandir", side_effect=PermissionError("denied")):
            with pytest.raises(DiscoveryError, match="Failed to read directory"):
                expand(tmp_path, recursive=True)


class TestDiscover:
    """Test suite for discover() over mixed inputs."""

    def test_mixed_inputs(self, tmp_path):
        single = touch(tmp_path / "single.png")
        photos = tmp_path / "photos"
        touch(photos / "a.png")
        touch(photos / "b.png")

        sources, failures = discover([single, photos])

        assert sources == [
            SourceFile(single),
            SourceFile(photos / "a.png", base_dir=photos),
            SourceFile(photos / "b.png", base_dir=photos),
        ]
        assert failures == []

    def test_directory_never_becomes_a_source(self, tmp_path):
        photos = tmp_path / "photos"
        photos.mkdir()

        sources, failures = discover([photos])

        assert sources == []
        assert failures == []

    def test_missing_input_does_not_stop_others(self, tmp_path):
        missing = tmp_path / "missing.png"
        present = touch(tmp_path / "present.png")

        sources, failures = discover([missing, present])

        assert sources == [SourceFile(present)]
        assert failures == [DiscoveryFailure(missing, "No such file or directory")]

    def test_recursive_flag_is_forwarded(self, tmp_path):
        photos = tmp_path / "photos"
        touch(photos / "nested" / "a.png")

        flat, _ = discover([photos])
        deep, _ = discover([photos], recursive=True)

        assert flat == []
        assert deep == [SourceFile(photos / "nested" / "a.png", base_dir=photos)]
