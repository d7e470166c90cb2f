"""
HTTP routes for the optical shop API.
"""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Any, Iterator

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Query, UploadFile

from optical_backend.config import Settings
from optical_backend.dependencies import (
    get_app_settings,
    get_contact_service,
    get_image_storage,
    get_inquiry_service,
    get_json_store,
)
from optical_backend.records import (
    DuplicateRecordError,
    RecordService,
    StoreError,
    format_timestamp,
    utc_now,
)
from optical_backend.schemas import (
    ContactCreate,
    ContactUpdate,
    DeleteImageRequest,
    HealthResponse,
    InquiryCreate,
    InquiryUpdate,
    MutationResponse,
    SaveCollectionResponse,
    StatsResponse,
    UploadImageResponse,
)
from optical_backend.storage import (
    ImageStorageClient,
    InvalidImagePath,
    is_image_content_type,
    make_filename,
    validate_folder,
)
from optical_backend.store import COMPANY, FRAMES, SUNGLASSES, JsonStore

logger = logging.getLogger(__name__)

router = APIRouter()


@contextmanager
def _store_errors() -> Iterator[None]:
    try:
        yield
    except StoreError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


# --- Catalog ---


def _read_catalog(store: JsonStore, collection: str) -> Any:
    data = store.read(collection)
    if data is None:
        raise HTTPException(
            status_code=500, detail=f"Failed to read {collection} data"
        )
    return data


def _write_catalog(store: JsonStore, collection: str, data: Any) -> None:
    with store.lock(collection):
        saved = store.write(collection, data)
    if not saved:
        raise HTTPException(
            status_code=500, detail=f"Failed to save {collection} data"
        )


def _replace_list(
    store: JsonStore, collection: str, payload: Any
) -> SaveCollectionResponse:
    if not isinstance(payload, list):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid data format. Expected array of {collection}.",
        )
    _write_catalog(store, collection, payload)
    logger.info("Updated %s with %d records", collection, len(payload))
    return SaveCollectionResponse(
        success=True,
        message=f"{collection.capitalize()} data updated successfully",
        count=len(payload),
    )


@router.get("/frames")
def get_frames(store: JsonStore = Depends(get_json_store)):
    return _read_catalog(store, FRAMES)


@router.post("/frames", response_model=SaveCollectionResponse)
def save_frames(
    payload: Any = Body(None), store: JsonStore = Depends(get_json_store)
):
    return _replace_list(store, FRAMES, payload)


@router.get("/sunglasses")
def get_sunglasses(store: JsonStore = Depends(get_json_store)):
    return _read_catalog(store, SUNGLASSES)


@router.post("/sunglasses", response_model=SaveCollectionResponse)
def save_sunglasses(
    payload: Any = Body(None), store: JsonStore = Depends(get_json_store)
):
    return _replace_list(store, SUNGLASSES, payload)


@router.get("/company")
def get_company(store: JsonStore = Depends(get_json_store)):
    return _read_catalog(store, COMPANY)


@router.post(
    "/company",
    response_model=SaveCollectionResponse,
    response_model_exclude_none=True,
)
def save_company(
    payload: Any = Body(None), store: JsonStore = Depends(get_json_store)
):
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=400,
            detail="Invalid data format. Expected company object.",
        )
    _write_catalog(store, COMPANY, payload)
    logger.info("Updated company data")
    return SaveCollectionResponse(
        success=True, message="Company data updated successfully"
    )


# --- Images ---


@router.post("/upload-image", response_model=UploadImageResponse)
async def upload_image(
    image: UploadFile | None = File(None),
    folder: str | None = Form(None),
    filename: str | None = Form(None),
    settings: Settings = Depends(get_app_settings),
    images: ImageStorageClient = Depends(get_image_storage),
):
    if image is None:
        raise HTTPException(status_code=400, detail="No image file provided")
    if not is_image_content_type(image.content_type):
        raise HTTPException(status_code=400, detail="Only image files are allowed")
    try:
        folder = validate_folder(folder)
    except InvalidImagePath as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    payload = await image.read(settings.max_upload_bytes + 1)
    if len(payload) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"Image exceeds the {settings.max_upload_bytes} byte limit",
        )

    original_name = image.filename or "image"
    target_name = make_filename(original_name, filename)
    fd, temp_path = tempfile.mkstemp(prefix="upload_")
    try:
        with os.fdopen(fd, "wb") as temp_file:
            temp_file.write(payload)
        stored = images.save_upload(temp_path, folder, target_name)
    except InvalidImagePath as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except OSError as exc:
        logger.exception("Error uploading image")
        raise HTTPException(status_code=500, detail="Failed to upload image") from exc
    finally:
        if os.path.exists(temp_path):
            os.unlink(temp_path)

    return UploadImageResponse(
        success=True,
        path=stored.path,
        originalName=original_name,
        filename=stored.filename,
        size=stored.size,
    )


@router.delete("/delete-image", response_model=MutationResponse)
def delete_image(
    payload: DeleteImageRequest,
    images: ImageStorageClient = Depends(get_image_storage),
):
    if not payload.imagePath:
        raise HTTPException(status_code=400, detail="No image path provided")
    try:
        result = images.delete(payload.imagePath)
    except InvalidImagePath as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except OSError as exc:
        logger.exception("Error deleting image %s", payload.imagePath)
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to delete image", "details": str(exc)},
        ) from exc
    return MutationResponse(success=True, message=result.message)


# --- Inquiries and contacts ---


def _create(service: RecordService, fields: dict, record_id: str | None = None) -> dict:
    with _store_errors():
        try:
            record = service.create(fields, record_id=record_id)
        except DuplicateRecordError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {
        "success": True,
        "message": f"{service.kind.label} created successfully",
        service.kind.response_key: record,
    }


def _update(
    service: RecordService, record_id: str, payload: InquiryUpdate | ContactUpdate
) -> dict:
    if payload.id is not None and payload.id != record_id:
        raise HTTPException(
            status_code=400, detail=f"{service.kind.label} id cannot be changed"
        )
    with _store_errors():
        record = service.update(record_id, payload.changes())
    if record is None:
        raise HTTPException(
            status_code=404, detail=f"{service.kind.label} not found"
        )
    return {
        "success": True,
        "message": f"{service.kind.label} updated successfully",
        service.kind.response_key: record,
    }


def _delete(service: RecordService, record_id: str) -> MutationResponse:
    with _store_errors():
        deleted = service.delete(record_id)
    if not deleted:
        raise HTTPException(
            status_code=404, detail=f"{service.kind.label} not found"
        )
    return MutationResponse(
        success=True, message=f"{service.kind.label} deleted successfully"
    )


@router.get("/inquiries/stats", response_model=StatsResponse)
def inquiry_stats(service: RecordService = Depends(get_inquiry_service)):
    with _store_errors():
        return service.stats()


@router.get("/inquiries")
def list_inquiries(
    status: str | None = Query(None),
    priority: str | None = Query(None),
    productType: str | None = Query(None),
    assignedTo: str | None = Query(None),
    service: RecordService = Depends(get_inquiry_service),
):
    filters = {
        "status": status,
        "priority": priority,
        "productType": productType,
        "assignedTo": assignedTo,
    }
    with _store_errors():
        return service.list_records(filters)


@router.post("/inquiries", status_code=201)
def create_inquiry(
    payload: InquiryCreate,
    service: RecordService = Depends(get_inquiry_service),
):
    return _create(service, payload.model_dump(exclude_none=True))


@router.put("/inquiries/{inquiry_id}")
def update_inquiry(
    inquiry_id: str,
    payload: InquiryUpdate,
    service: RecordService = Depends(get_inquiry_service),
):
    return _update(service, inquiry_id, payload)


@router.delete("/inquiries/{inquiry_id}", response_model=MutationResponse)
def delete_inquiry(
    inquiry_id: str, service: RecordService = Depends(get_inquiry_service)
):
    return _delete(service, inquiry_id)


@router.get("/contacts/stats", response_model=StatsResponse)
def contact_stats(service: RecordService = Depends(get_contact_service)):
    with _store_errors():
        return service.stats()


@router.get("/contacts")
def list_contacts(
    status: str | None = Query(None),
    priority: str | None = Query(None),
    serviceInterest: str | None = Query(None),
    assignedTo: str | None = Query(None),
    source: str | None = Query(None),
    service: RecordService = Depends(get_contact_service),
):
    filters = {
        "status": status,
        "priority": priority,
        "serviceInterest": serviceInterest,
        "assignedTo": assignedTo,
        "source": source,
    }
    with _store_errors():
        return service.list_records(filters)


@router.post("/contacts", status_code=201)
def create_contact(
    payload: ContactCreate,
    service: RecordService = Depends(get_contact_service),
):
    fields = payload.model_dump(exclude_none=True)
    record_id = fields.pop("id", None)
    return _create(service, fields, record_id=record_id)


@router.put("/contacts/{contact_id}")
def update_contact(
    contact_id: str,
    payload: ContactUpdate,
    service: RecordService = Depends(get_contact_service),
):
    return _update(service, contact_id, payload)


@router.delete("/contacts/{contact_id}", response_model=MutationResponse)
def delete_contact(
    contact_id: str, service: RecordService = Depends(get_contact_service)
):
    return _delete(service, contact_id)


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(
        status="OK",
        message="Optical Database API is running",
        timestamp=format_timestamp(utc_now()),
    )
