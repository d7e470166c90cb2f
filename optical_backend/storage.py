"""
Image blob storage on the local file system and in memory for testing.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)

IMAGE_FOLDERS = ("frames", "sunglasses", "company", "team")
DEFAULT_FOLDER = "frames"

EXTERNAL_PREFIXES = ("http://", "https://")
DATA_URL_PREFIX = "data:"


class InvalidImagePath(ValueError):
    """Raised when a folder or path falls outside the image store."""


@dataclass(frozen=True)
class StoredImage:
    folder: str
    filename: str
    path: str
    size: int


@dataclass(frozen=True)
class DeleteResult:
    deleted: bool
    message: str


def is_image_content_type(content_type: str | None) -> bool:
    return bool(content_type) and content_type.lower().startswith("image/")


def make_filename(original_name: str, requested: str | None = None) -> str:
    """
    Return ``requested`` stripped of any directory part, or
    ``<epoch ms>_<original name>`` when no usable name was supplied.
    """
    if requested:
        name = os.path.basename(requested.replace("\\", "/")).strip()
        if name and name not in (".", ".."):
            return name
    original = os.path.basename((original_name or "image").replace("\\", "/"))
    return f"{int(time.time() * 1000)}_{original or 'image'}"


def validate_folder(folder: str | None) -> str:
    folder = (folder or DEFAULT_FOLDER).strip()
    if folder not in IMAGE_FOLDERS:
        raise InvalidImagePath(f"Unknown image folder: {folder}")
    return folder


def skip_reason(image_path: str) -> str | None:
    """Return why a path needs no file-system work, or None for local paths."""
    if image_path.startswith(EXTERNAL_PREFIXES):
        return "External URL - no deletion needed"
    if image_path.startswith(DATA_URL_PREFIX):
        return "Data URL - no deletion needed"
    return None


class ImageStorageClient(Protocol):
    """Defines the operations the API needs from image storage."""

    def ensure_folders(self) -> None:
        ...

    def save_upload(self, src_path: str, folder: str, filename: str) -> StoredImage:
        ...

    def delete(self, image_path: str) -> DeleteResult:
        ...


class LocalImageStorage:
    """
    Keeps images under ``<images_dir>/<folder>/<filename>`` and reports them
    as ``<url_prefix>/<folder>/<filename>``.
    """

    def __init__(self, images_dir: str, url_prefix: str = "/images"):
        self.images_dir = os.path.abspath(images_dir)
        self.url_prefix = "/" + url_prefix.strip("/")

    def ensure_folders(self) -> None:
        for folder in IMAGE_FOLDERS:
            os.makedirs(os.path.join(self.images_dir, folder), exist_ok=True)

    def save_upload(self, src_path: str, folder: str, filename: str) -> StoredImage:
        folder = validate_folder(folder)
        target_dir = os.path.join(self.images_dir, folder)
        target = os.path.join(target_dir, filename)
        if os.path.dirname(os.path.abspath(target)) != target_dir:
            raise InvalidImagePath(f"Invalid filename: {filename}")

        os.makedirs(target_dir, exist_ok=True)
        if os.path.abspath(src_path) != target:
            logger.info("Moving upload from %s to %s", src_path, target)
            shutil.move(src_path, target)

        size = os.path.getsize(target)
        stored = StoredImage(
            folder=folder,
            filename=filename,
            path=f"{self.url_prefix}/{folder}/{filename}",
            size=size,
        )
        logger.info(
            "Image uploaded: %s (%.2f KB)", stored.path, stored.size / 1024
        )
        return stored

    def resolve(self, image_path: str) -> str:
        prefix = self.url_prefix + "/"
        if image_path.startswith(prefix):
            relative = image_path[len(prefix):]
        else:
            relative = image_path.lstrip("/")
        full_path = os.path.abspath(os.path.join(self.images_dir, relative))
        if os.path.commonpath([full_path, self.images_dir]) != self.images_dir:
            raise InvalidImagePath(f"Path outside image store: {image_path}")
        return full_path

    def delete(self, image_path: str) -> DeleteResult:
        reason = skip_reason(image_path)
        if reason:
            logger.info("Delete skipped for %s: %s", image_path[:64], reason)
            return DeleteResult(deleted=False, message=reason)

        full_path = self.resolve(image_path)
        if not os.path.isfile(full_path):
            logger.warning("File not found: %s", full_path)
            return DeleteResult(
                deleted=False, message="File not found (already deleted)"
            )
        os.unlink(full_path)
        logger.info("File deleted successfully: %s", full_path)
        return DeleteResult(deleted=True, message="Image deleted successfully")


@dataclass
class InMemoryImageStorage:
    """Test double for image storage."""

    url_prefix: str = "/images"
    stored_objects: dict = field(default_factory=dict)

    def ensure_folders(self) -> None:
        return None

    def save_upload(self, src_path: str, folder: str, filename: str) -> StoredImage:
        folder = validate_folder(folder)
        with open(src_path, "rb") as f:
            payload = f.read()
        path = f"{self.url_prefix}/{folder}/{filename}"
        self.stored_objects[path] = payload
        return StoredImage(
            folder=folder, filename=filename, path=path, size=len(payload)
        )

    def delete(self, image_path: str) -> DeleteResult:
        reason = skip_reason(image_path)
        if reason:
            return DeleteResult(deleted=False, message=reason)
        if self.stored_objects.pop(image_path, None) is None:
            return DeleteResult(
                deleted=False, message="File not found (already deleted)"
            )
        return DeleteResult(deleted=True, message="Image deleted successfully")
