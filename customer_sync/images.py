"""
Profile image storage on the local filesystem.

Uploads are identified with Pillow rather than trusted by extension or
declared content type. Accepted files land in
`<upload_root>/customer_profiles/<first>_<last>_<id>/profile_<timestamp>.<ext>`
and the path relative to upload_root is what gets stored on the account.
"""

import os
import re
import time
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Callable, Mapping, Optional

from PIL import Image, UnidentifiedImageError

from customer_sync.config import DEFAULT_MAX_IMAGE_BYTES

logger = logging.getLogger(__name__)

# Pillow format name -> stored file extension
ALLOWED_FORMATS = {
    "JPEG": "jpg",
    "PNG": "png",
    "WEBP": "webp",
}

_UNSAFE_NAME_CHARS = re.compile(r"[^a-z0-9]")


@dataclass
class ImageStoreResult:
    ok: bool
    stored_filename: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def stored(cls, filename: str) -> "ImageStoreResult":
        return cls(ok=True, stored_filename=filename)

    @classmethod
    def failed(cls, reason: str) -> "ImageStoreResult":
        return cls(ok=False, reason=reason)


def subject_folder(subject_id: int, name_hints: Optional[Mapping[str, str]] = None) -> str:
    """`first_last_id` with names lowercased and non-alphanumerics replaced by `_`."""
    hints = name_hints or {}
    first = hints.get("firstname")
    last = hints.get("lastname")

    if first and last:
        first = _UNSAFE_NAME_CHARS.sub("_", first.lower())
        last = _UNSAFE_NAME_CHARS.sub("_", last.lower())
        return f"{first}_{last}_{subject_id}"

    return f"user_{subject_id}"


def detect_format(image_bytes: bytes) -> Optional[str]:
    """Pillow's format name for the bytes, or None when unreadable."""
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            img.verify()
            return img.format
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        logger.debug(f"Image not recognised: {e}")
        return None


class FilesystemProfileImageStore:
    """
    Stores profile images under an upload root.

    Args:
        upload_root: Base directory for uploads
        max_bytes: Size cap for a single image
        clock: Returns the current UNIX time, used in file names
    """

    def __init__(
        self,
        upload_root: str,
        max_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
        clock: Callable[[], float] = time.time
    ):
        self.upload_root = upload_root
        self.max_bytes = max_bytes
        self._clock = clock

    def store(
        self,
        image_bytes: bytes,
        subject_kind: str = "customer",
        subject_id: int = 0,
        name_hints: Optional[Mapping[str, str]] = None
    ) -> ImageStoreResult:
        if not image_bytes:
            return ImageStoreResult.failed("No file was uploaded.")

        if len(image_bytes) > self.max_bytes:
            limit_mb = self.max_bytes // (1024 * 1024)
            return ImageStoreResult.failed(f"File is too large. Maximum size is {limit_mb}MB.")

        image_format = detect_format(image_bytes)
        if image_format not in ALLOWED_FORMATS:
            return ImageStoreResult.failed(
                "Invalid file type. Only JPG, JPEG, PNG, and WEBP are allowed."
            )

        relative_dir = os.path.join(
            f"{subject_kind}_profiles",
            subject_folder(subject_id, name_hints)
        )
        filename = f"profile_{int(self._clock())}.{ALLOWED_FORMATS[image_format]}"
        relative_path = os.path.join(relative_dir, filename)
        target = os.path.join(self.upload_root, relative_path)

        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "wb") as f:
                f.write(image_bytes)
        except OSError as e:
            logger.error(f"Failed to write profile image for {subject_kind} {subject_id}: {e}")
            return ImageStoreResult.failed("Failed to save uploaded file.")

        logger.info(f"Stored profile image for {subject_kind} {subject_id} at {relative_path}")
        return ImageStoreResult.stored(relative_path.replace(os.sep, "/"))

    def discard(self, stored_filename: str) -> bool:
        """Remove a file returned by store() that no row ended up referencing."""
        target = os.path.normpath(os.path.join(self.upload_root, stored_filename))
        root = os.path.normpath(self.upload_root)
        if os.path.commonpath([root, target]) != root:
            logger.warning(f"Refusing to discard {stored_filename}: outside upload root")
            return False

        try:
            os.remove(target)
        except OSError as e:
            logger.warning(f"Could not discard unreferenced image {stored_filename}: {e}")
            return False

        logger.info(f"Discarded unreferenced image {stored_filename}")
        return True
