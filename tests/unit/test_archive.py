"""
Unit tests for export_worker/services/archive.py

Tests ZIP packaging of the scratch output tree and asset checksums.
"""

import hashlib
import os
import zipfile
from pathlib import Path

import pytest

from export_worker.services.archive import create_zip, file_checksum


@pytest.fixture
def output_tree(temp_dir: Path) -> Path:
    out = temp_dir / "out"
    (out / "9x16").mkdir(parents=True)
    (out / "16x9").mkdir()
    (out / "thumbnails").mkdir()
    (out / "metadata").mkdir()

    (out / "9x16" / "video.mp4").write_bytes(os.urandom(2048))
    (out / "16x9" / "video.mp4").write_bytes(os.urandom(2048))
    (out / "thumbnails" / "thumb_9x16.png").write_bytes(b"\x89PNG\r\n\x1a\n" + os.urandom(64))
    (out / "thumbnails" / "thumb_16x9.png").write_bytes(b"\x89PNG\r\n\x1a\n" + os.urandom(64))
    (out / "metadata" / "title.txt").write_text("Title")
    (out / "metadata" / "description.txt").write_text("")
    (out / "metadata" / "hashtags.txt").write_text("#a #b")
    return out


class TestCreateZip:
    """Tests for create_zip."""

    @pytest.mark.unit
    def test_paths_are_relative_to_output_root(self, output_tree, temp_dir):
        zip_path = temp_dir / "export.zip"

        create_zip(output_tree, zip_path)

        with zipfile.ZipFile(zip_path) as zf:
            names = sorted(zf.namelist())

        assert names == [
            "16x9/video.mp4",
            "9x16/video.mp4",
            "metadata/description.txt",
            "metadata/hashtags.txt",
            "metadata/title.txt",
            "thumbnails/thumb_16x9.png",
            "thumbnails/thumb_9x16.png",
        ]

    @pytest.mark.unit
    def test_returns_size_of_closed_archive(self, output_tree, temp_dir):
        zip_path = temp_dir / "export.zip"

        size = create_zip(output_tree, zip_path)

        assert size == zip_path.stat().st_size
        assert size > 0
        with zipfile.ZipFile(zip_path) as zf:
            assert zf.testzip() is None

    @pytest.mark.unit
    def test_uses_deflate_compression(self, output_tree, temp_dir):
        zip_path = temp_dir / "export.zip"

        create_zip(output_tree, zip_path)

        with zipfile.ZipFile(zip_path) as zf:
            for info in zf.infolist():
                assert info.compress_type == zipfile.ZIP_DEFLATED

    @pytest.mark.unit
    def test_preserves_file_contents(self, output_tree, temp_dir):
        zip_path = temp_dir / "export.zip"

        create_zip(output_tree, zip_path)

        with zipfile.ZipFile(zip_path) as zf:
            assert zf.read("9x16/video.mp4") == (output_tree / "9x16" / "video.mp4").read_bytes()
            assert zf.read("metadata/hashtags.txt") == b"#a #b"


class TestFileChecksum:
    """Tests for file_checksum."""

    @pytest.mark.unit
    def test_matches_md5_of_contents(self, temp_dir):
        data = os.urandom(3 * 1024 * 1024 + 17)
        path = temp_dir / "blob.bin"
        path.write_bytes(data)

        assert file_checksum(path) == hashlib.md5(data).hexdigest()

    @pytest.mark.unit
    def test_is_stable_across_calls(self, temp_dir):
        path = temp_dir / "title.txt"
        path.write_text("Launch day")

        assert file_checksum(path) == file_checksum(path)
