import logging
import os
import uuid
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from library_app.config import settings
from library_app.exceptions import ValidationError

logger = logging.getLogger(__name__)


class ImageStorage:
    """
    Book cover images on the local filesystem, referenced as "/images/<name>"
    """

    def __init__(self, directory: str, url_prefix: str = "/images"):
        self.directory = Path(directory)
        self.url_prefix = url_prefix.rstrip("/")

    def ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def save(self, upload: UploadFile) -> str:
        content = upload.file.read()
        if not content:
            raise ValidationError("File not provided.")

        self.ensure_directory()
        extension = os.path.splitext(upload.filename or "")[1].lower()
        file_name = f"{uuid.uuid4()}{extension}"
        (self.directory / file_name).write_bytes(content)

        logger.info(f"Image saved: {file_name} ({len(content)} bytes)")
        return f"{self.url_prefix}/{file_name}"

    def path_for(self, image_path: str) -> Optional[Path]:
        if not image_path.startswith(self.url_prefix + "/"):
            return None
        # basename only, so a stored path can never point outside the directory
        return self.directory / os.path.basename(image_path)

    def delete(self, image_path: Optional[str]) -> None:
        if not image_path:
            return
        file_path = self.path_for(image_path)
        if file_path is None or not file_path.exists():
            return
        file_path.unlink()
        logger.info(f"Image deleted: {file_path.name}")


_storage: Optional[ImageStorage] = None


def get_image_storage() -> ImageStorage:
    """Dependency; tests override it with a storage rooted in a temp dir"""
    global _storage
    if _storage is None:
        _storage = ImageStorage(settings.IMAGES_DIR, settings.IMAGES_URL_PREFIX)
    return _storage
