"""
File storage for product images and payment proofs.

Files live under UPLOAD_DIR/images and are referenced by their relative
path, e.g. ``images/1718000000000-483920113.png``. Content type is decided
from the file's magic bytes, never from the client's header.
"""
import logging
import secrets
import time
from pathlib import Path
from typing import Optional

from butik.core.config import settings
from butik.core.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

IMAGE_SUBDIR = "images"

# Allowed image types with their magic bytes
IMAGE_SIGNATURES = {
    "image/jpeg": [
        bytes([0xFF, 0xD8, 0xFF]),
    ],
    "image/png": [
        bytes([0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A]),
    ],
    "image/gif": [
        b"GIF87a",
        b"GIF89a",
    ],
    "image/webp": [
        # RIFF....WEBP (bytes 0-3 and 8-11)
        b"RIFF",
    ],
}

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


def detect_image_type(content: bytes) -> Optional[str]:
    """Return the MIME type matching the content's signature, or None."""
    for mime_type, signatures in IMAGE_SIGNATURES.items():
        for sig in signatures:
            if content.startswith(sig):
                if mime_type == "image/webp":
                    if len(content) >= 12 and content[8:12] == b"WEBP":
                        return mime_type
                else:
                    return mime_type
    return None


def upload_root() -> Path:
    return Path(settings.UPLOAD_DIR)


def validate_image(content: bytes, field: str = "image") -> str:
    if not content:
        raise InvalidInputError("Uploaded file is empty", field=field)

    max_bytes = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
    if len(content) > max_bytes:
        raise InvalidInputError(
            f"File too large. Maximum size is {settings.MAX_UPLOAD_SIZE_MB}MB", field=field
        )

    mime_type = detect_image_type(content)
    if mime_type is None:
        raise InvalidInputError(
            "Only image files are allowed (jpeg, png, gif, webp)", field=field
        )
    return mime_type


def save_image(content: bytes, field: str = "image") -> str:
    """Validate and store an image. Returns its reference relative to UPLOAD_DIR."""
    mime_type = validate_image(content, field)
    name = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}.{EXTENSIONS[mime_type]}"

    directory = upload_root() / IMAGE_SUBDIR
    directory.mkdir(parents=True, exist_ok=True)
    (directory / name).write_bytes(content)

    reference = f"{IMAGE_SUBDIR}/{name}"
    logger.info("Stored %s upload as %s (%d bytes)", mime_type, reference, len(content))
    return reference


def delete_file(reference: Optional[str]) -> bool:
    """
    Remove a stored file. Missing files and storage errors are logged, not
    raised: the database change that orphaned the file has already committed.
    """
    if not reference:
        return False

    root = upload_root().resolve()
    path = (root / reference).resolve()
    if root not in path.parents:
        logger.warning("Refusing to delete %s outside upload directory", reference)
        return False

    try:
        path.unlink()
    except FileNotFoundError:
        logger.warning("Stored file %s already missing", reference)
        return False
    except OSError as e:
        logger.warning("Failed to delete stored file %s: %s", reference, e)
        return False

    logger.info("Deleted stored file %s", reference)
    return True
