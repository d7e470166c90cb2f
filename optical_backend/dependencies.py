"""
Dependency wiring for the FastAPI app.

Backends are built once per application by ``build_backends`` and kept on
``app.state`` so each app (and each test) owns its own store.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from optical_backend.config import Settings
from optical_backend.records import CONTACT_KIND, INQUIRY_KIND, RecordService
from optical_backend.storage import (
    ImageStorageClient,
    InMemoryImageStorage,
    LocalImageStorage,
)
from optical_backend.store import InMemoryJsonStore, JsonFileStore, JsonStore


@dataclass
class Backends:
    store: JsonStore
    images: ImageStorageClient
    inquiries: RecordService
    contacts: RecordService


def build_backends(settings: Settings) -> Backends:
    """Create the store and image storage and bootstrap their directories."""
    if settings.use_in_memory_backends:
        store: JsonStore = InMemoryJsonStore()
        images: ImageStorageClient = InMemoryImageStorage(
            url_prefix=settings.images_url_prefix
        )
    else:
        store = JsonFileStore(settings.data_dir)
        images = LocalImageStorage(
            settings.images_dir, url_prefix=settings.images_url_prefix
        )
    store.ensure_directories()
    images.ensure_folders()
    return Backends(
        store=store,
        images=images,
        inquiries=RecordService(store, INQUIRY_KIND),
        contacts=RecordService(store, CONTACT_KIND),
    )


def get_backends(request: Request) -> Backends:
    return request.app.state.backends


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_json_store(request: Request) -> JsonStore:
    return get_backends(request).store


def get_image_storage(request: Request) -> ImageStorageClient:
    return get_backends(request).images


def get_inquiry_service(request: Request) -> RecordService:
    return get_backends(request).inquiries


def get_contact_service(request: Request) -> RecordService:
    return get_backends(request).contacts
