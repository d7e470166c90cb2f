"""
Python client for the optical shop API.

Reads go to the API first. When the API is unreachable or answers with an
error, reads fall back to the last fetched copy held in ``CollectionCache``
and then to a JSON fallback store on disk, so dashboards keep working
offline. Every mutating call invalidates or patches the cached entry it
touches.
"""

from __future__ import annotations

import base64
import copy
import logging
from typing import Any, Mapping, Optional

import requests

from optical_backend.records import (
    CONTACT_KIND,
    INQUIRY_KIND,
    RecordKind,
    compute_stats,
    filter_records,
    format_timestamp,
    new_contact_id,
    parse_timestamp,
    utc_now,
)
from optical_backend.store import (
    COMPANY,
    FRAMES,
    SUNGLASSES,
    InMemoryJsonStore,
    JsonFileStore,
    JsonStore,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3001/api"
REQUEST_TIMEOUT = 30  # seconds


class ApiClientError(RuntimeError):
    """The API answered with an error status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


# Failures that make the client use its local copies.
UNAVAILABLE = (requests.RequestException, ApiClientError, ValueError)


class CollectionCache:
    """Last fetched value per collection name."""

    def __init__(self):
        self._entries: dict[str, Any] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def get(self, name: str) -> Optional[Any]:
        if name not in self._entries:
            return None
        return copy.deepcopy(self._entries[name])

    def set(self, name: str, value: Any) -> None:
        self._entries[name] = copy.deepcopy(value)

    def invalidate(self, name: str) -> None:
        self._entries.pop(name, None)

    def clear(self) -> None:
        self._entries.clear()


class OpticalApiClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        session: Any = None,
        fallback_dir: str | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.cache = CollectionCache()
        self.fallback: JsonStore = (
            JsonFileStore(fallback_dir) if fallback_dir else InMemoryJsonStore()
        )

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            message = response.text
            if isinstance(body, dict):
                message = body.get("error", message)
            raise ApiClientError(response.status_code, str(message))
        return response.json()

    def _local(self, name: str, default: Any) -> Any:
        cached = self.cache.get(name)
        if cached is not None:
            return cached
        if self.fallback.exists(name):
            stored = self.fallback.read(name)
            if stored is not None:
                logger.info("Loading %s from local fallback", name)
                self.cache.set(name, stored)
                return stored
        logger.error("No %s data available", name)
        return default

    def _remember(self, name: str, data: Any) -> None:
        self.cache.set(name, data)
        self.fallback.write(name, data)

    # --- Catalog ---

    def _get_collection(self, name: str, default: Any) -> Any:
        try:
            data = self._request("GET", name)
        except UNAVAILABLE as exc:
            logger.warning("Failed to load %s from API, using local data: %s", name, exc)
            return self._local(name, default)
        self._remember(name, data)
        return data

    def _save_collection(self, name: str, data: Any) -> bool:
        self.cache.invalidate(name)
        try:
            self._request("POST", name, json=data)
        except UNAVAILABLE as exc:
            logger.warning("Failed to save %s via API, saving locally: %s", name, exc)
            self.fallback.write(name, data)
            return False
        self.fallback.write(name, data)
        return True

    def get_frames(self) -> list:
        return self._get_collection(FRAMES, [])

    def save_frames(self, frames: list) -> bool:
        return self._save_collection(FRAMES, frames)

    def get_sunglasses(self) -> list:
        return self._get_collection(SUNGLASSES, [])

    def save_sunglasses(self, sunglasses: list) -> bool:
        return self._save_collection(SUNGLASSES, sunglasses)

    def get_company(self) -> Optional[dict]:
        return self._get_collection(COMPANY, None)

    def save_company(self, company: dict) -> bool:
        return self._save_collection(COMPANY, company)

    # --- Images ---

    def upload_image(
        self,
        original_name: str,
        content: bytes,
        folder: str = "frames",
        content_type: str = "image/jpeg",
        filename: str | None = None,
    ) -> str:
        """
        Upload an image and return its public path.

        When the API cannot take the upload the image is returned inline as a
        ``data:`` URL, which the API later treats as nothing to delete.
        """
        data = {"folder": folder}
        if filename:
            data["filename"] = filename
        try:
            result = self._request(
                "POST",
                "upload-image",
                files={"image": (original_name, content, content_type)},
                data=data,
            )
        except UNAVAILABLE as exc:
            logger.warning("Image upload failed, keeping it inline: %s", exc)
            encoded = base64.b64encode(content).decode("ascii")
            return f"data:{content_type};base64,{encoded}"
        return result["path"]

    def delete_image(self, image_path: str) -> bool:
        try:
            self._request("DELETE", "delete-image", json={"imagePath": image_path})
        except UNAVAILABLE as exc:
            logger.warning("Failed to delete image %s: %s", image_path, exc)
            return False
        return True

    # --- Inquiries and contacts ---

    def _list_records(self, kind: RecordKind, filters: Optional[Mapping]) -> list:
        params = {k: v for k, v in (filters or {}).items() if v not in (None, "")}
        try:
            records = self._request("GET", kind.collection, params=params)
        except UNAVAILABLE as exc:
            logger.warning(
                "Failed to load %s from API, using local data: %s", kind.collection, exc
            )
            return filter_records(
                self._local(kind.collection, []), params, kind.filter_fields
            )
        if not params:
            self._remember(kind.collection, records)
        return records

    def _create_record(self, kind: RecordKind, payload: Mapping) -> dict:
        result = self._request("POST", kind.collection, json=dict(payload))
        self.cache.invalidate(kind.collection)
        return result[kind.response_key]

    def _update_record(self, kind: RecordKind, record_id: str, changes: Mapping) -> dict:
        result = self._request("PUT", f"{kind.collection}/{record_id}", json=dict(changes))
        record = result[kind.response_key]
        cached = self.cache.get(kind.collection)
        if cached is not None:
            self.cache.set(
                kind.collection,
                [record if r.get("id") == record_id else r for r in cached],
            )
        return record

    def _delete_record(self, kind: RecordKind, record_id: str) -> bool:
        self._request("DELETE", f"{kind.collection}/{record_id}")
        cached = self.cache.get(kind.collection)
        if cached is not None:
            self.cache.set(
                kind.collection, [r for r in cached if r.get("id") != record_id]
            )
        return True

    def _record_stats(self, kind: RecordKind) -> dict:
        try:
            return self._request("GET", f"{kind.collection}/stats")
        except UNAVAILABLE as exc:
            logger.warning(
                "Failed to load %s stats from API, calculating locally: %s",
                kind.collection,
                exc,
            )
            return compute_stats(self._local(kind.collection, []))

    def get_inquiries(self, filters: Optional[Mapping] = None) -> list:
        return self._list_records(INQUIRY_KIND, filters)

    def create_inquiry(self, customer_info: dict, product: dict, message: str) -> dict:
        payload = {"customerInfo": customer_info, "product": product, "message": message}
        return self._create_record(INQUIRY_KIND, payload)

    def update_inquiry(self, inquiry_id: str, changes: Mapping) -> dict:
        return self._update_record(INQUIRY_KIND, inquiry_id, changes)

    def delete_inquiry(self, inquiry_id: str) -> bool:
        return self._delete_record(INQUIRY_KIND, inquiry_id)

    def get_inquiry_stats(self) -> dict:
        return self._record_stats(INQUIRY_KIND)

    def get_contacts(self, filters: Optional[Mapping] = None) -> list:
        return self._list_records(CONTACT_KIND, filters)

    def add_contact(self, contact: Mapping) -> dict:
        """
        Submit a contact form entry. If the API is down the contact is kept
        in the local fallback so it is not lost.
        """
        now = utc_now()
        payload = dict(contact)
        payload.setdefault("id", new_contact_id(now))
        try:
            return self._create_record(CONTACT_KIND, payload)
        except ApiClientError as exc:
            # 4xx: the API rejected the contact itself.
            if exc.status_code < 500:
                raise
            logger.warning("Failed to add contact via API, saving locally: %s", exc)
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Failed to add contact via API, saving locally: %s", exc)

        timestamp = format_timestamp(now)
        local_contact = {
            "status": "new",
            "priority": "medium",
            "source": "contact-form",
            **payload,
            "createdAt": timestamp,
            "updatedAt": timestamp,
        }
        contacts = self._local(CONTACT_KIND.collection, [])
        contacts.insert(0, local_contact)
        self._remember(CONTACT_KIND.collection, contacts)
        return local_contact

    def update_contact(self, contact_id: str, changes: Mapping) -> dict:
        return self._update_record(CONTACT_KIND, contact_id, changes)

    def delete_contact(self, contact_id: str) -> bool:
        return self._delete_record(CONTACT_KIND, contact_id)

    def get_contact_stats(self) -> dict:
        return self._record_stats(CONTACT_KIND)

    def filter_contacts(self, filters: Mapping) -> list:
        """
        Filter contacts by the API's equality fields plus an optional
        ``dateRange`` of ``{"start": iso, "end": iso}`` on ``createdAt``.
        """
        contacts = filter_records(
            self.get_contacts(), filters, CONTACT_KIND.filter_fields
        )
        date_range = filters.get("dateRange")
        if not date_range:
            return contacts
        start = parse_timestamp(date_range.get("start"))
        end = parse_timestamp(date_range.get("end"))
        selected = []
        for contact in contacts:
            created = parse_timestamp(contact.get("createdAt"))
            if created is None:
                continue
            if start is not None and created < start:
                continue
            if end is not None and created > end:
                continue
            selected.append(contact)
        return selected

    def refresh(self) -> None:
        """Drop every cached collection so the next reads hit the API."""
        self.cache.clear()

    def health(self) -> dict:
        return self._request("GET", "health")
