"""
Tests for the local image storage.
"""

import io

import pytest
from fastapi import UploadFile

from library_app.exceptions import ValidationError
from library_app.images import ImageStorage


def upload(content, filename="cover.jpg"):
    return UploadFile(file=io.BytesIO(content), filename=filename)


class TestImageStorage:

    def test_save_writes_file_and_returns_url_path(self, tmp_path):
        storage = ImageStorage(str(tmp_path / "images"))

        path = storage.save(upload(b"jpeg-bytes"))

        assert path.startswith("/images/") and path.endswith(".jpg")
        assert storage.path_for(path).read_bytes() == b"jpeg-bytes"

    def test_empty_file_is_rejected(self, tmp_path):
        storage = ImageStorage(str(tmp_path))

        with pytest.raises(ValidationError):
            storage.save(upload(b""))

    def test_delete(self, tmp_path):
        storage = ImageStorage(str(tmp_path))
        path = storage.save(upload(b"x"))

        storage.delete(path)

        assert not storage.path_for(path).exists()

    def test_delete_missing_or_foreign_paths_is_noop(self, tmp_path):
        storage = ImageStorage(str(tmp_path / "images"))
        outside = tmp_path / "keep.txt"
        outside.write_text("keep")

        storage.delete(None)
        storage.delete("/images/missing.png")
        storage.delete("/other/keep.txt")
        storage.delete("/images/../keep.txt")

        assert outside.exists()
