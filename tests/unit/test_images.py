"""
Unit tests for filesystem profile image storage.
"""

import os
from io import BytesIO

import pytest
from PIL import Image

from customer_sync.images import (
    FilesystemProfileImageStore,
    detect_format,
    subject_folder,
)


def image_bytes(fmt):
    buffer = BytesIO()
    Image.new("RGB", (4, 4), color=(200, 30, 30)).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def image_store(tmp_path):
    return FilesystemProfileImageStore(str(tmp_path), clock=lambda: 1700000000.0)


class TestSubjectFolder:

    def test_names_and_id(self):
        assert subject_folder(7, {"firstname": "Juan", "lastname": "Dela Cruz"}) == "juan_dela_cruz_7"

    def test_falls_back_to_user_id(self):
        assert subject_folder(7, {"firstname": "Juan"}) == "user_7"
        assert subject_folder(7) == "user_7"


class TestDetectFormat:

    @pytest.mark.parametrize("fmt", ["PNG", "JPEG", "GIF"])
    def test_identifies_real_images(self, fmt):
        assert detect_format(image_bytes(fmt)) == fmt

    def test_unreadable_bytes(self):
        assert detect_format(b"<?php echo 'hi'; ?>") is None


class TestFilesystemProfileImageStore:

    def test_stores_png(self, image_store, tmp_path):
        data = image_bytes("PNG")

        result = image_store.store(data, "customer", 7, {"firstname": "Juan", "lastname": "Dela Cruz"})

        assert result.ok
        assert result.stored_filename == "customer_profiles/juan_dela_cruz_7/profile_1700000000.png"
        with open(os.path.join(str(tmp_path), result.stored_filename), "rb") as f:
            assert f.read() == data

    def test_jpeg_gets_jpg_extension(self, image_store):
        result = image_store.store(image_bytes("JPEG"), "customer", 3)

        assert result.stored_filename == "customer_profiles/user_3/profile_1700000000.jpg"

    def test_empty_upload(self, image_store):
        result = image_store.store(b"", "customer", 3)

        assert not result.ok
        assert result.reason == "No file was uploaded."

    def test_too_large(self, tmp_path):
        image_store = FilesystemProfileImageStore(str(tmp_path), max_bytes=1024 * 1024)

        result = image_store.store(b"x" * (1024 * 1024 + 1), "customer", 3)

        assert not result.ok
        assert result.reason == "File is too large. Maximum size is 1MB."

    def test_disallowed_format(self, image_store, tmp_path):
        result = image_store.store(image_bytes("GIF"), "customer", 3)

        assert not result.ok
        assert result.reason == "Invalid file type. Only JPG, JPEG, PNG, and WEBP are allowed."
        assert not os.path.exists(os.path.join(str(tmp_path), "customer_profiles"))

    def test_not_an_image(self, image_store):
        result = image_store.store(b"plain text, not an image", "customer", 3)

        assert not result.ok
        assert result.reason.startswith("Invalid file type.")

    def test_unwritable_root(self, tmp_path):
        blocker = tmp_path / "uploads"
        blocker.write_text("not a directory")
        image_store = FilesystemProfileImageStore(str(blocker))

        result = image_store.store(image_bytes("PNG"), "customer", 3)

        assert not result.ok
        assert result.reason == "Failed to save uploaded file."

    def test_discard_removes_stored_file(self, image_store, tmp_path):
        result = image_store.store(image_bytes("PNG"), "customer", 3)

        assert image_store.discard(result.stored_filename) is True
        assert not os.path.exists(os.path.join(str(tmp_path), result.stored_filename))

    def test_discard_missing_file(self, image_store):
        assert image_store.discard("customer_profiles/user_3/profile_1.png") is False

    def test_discard_outside_root_refused(self, tmp_path):
        image_store = FilesystemProfileImageStore(str(tmp_path / "uploads"))
        outside = tmp_path / "keep.png"
        outside.write_bytes(b"keep")

        assert image_store.discard("../keep.png") is False
        assert outside.exists()
