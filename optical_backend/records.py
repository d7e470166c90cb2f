"""
Lifecycle service for customer inquiries and contacts.

Both collections are JSON arrays kept newest-first. Every mutation is a
read-modify-write of the whole array, done under the store's
per-collection lock.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, Iterable, Mapping, Optional

from optical_backend.store import CONTACTS, INQUIRIES, JsonStore

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase
_SERVER_FIELDS = ("id", "createdAt", "updatedAt")


class StoreError(RuntimeError):
    """Raised when a collection cannot be read or written."""

    def __init__(self, collection: str, operation: str):
        super().__init__(f"Failed to {operation} {collection} data")
        self.collection = collection
        self.operation = operation


class DuplicateRecordError(ValueError):
    """Raised when a create would reuse an existing id."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. 2025-01-05T10:00:00.000Z."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _epoch_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def _random_suffix(length: int = 9) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def new_inquiry_id(now: datetime) -> str:
    return f"INQ-{_epoch_millis(now)}-{_random_suffix()}"


def new_contact_id(now: datetime) -> str:
    return f"contact_{_epoch_millis(now)}_{_random_suffix()}"


def month_start(now: datetime) -> datetime:
    local = now.astimezone()
    # Localise the wall-clock midnight so the offset is the one in force then.
    return datetime(local.year, local.month, 1).astimezone()


def week_start(now: datetime) -> datetime:
    """Local midnight of the most recent Sunday (today if today is Sunday)."""
    local = now.astimezone()
    days_since_sunday = (local.weekday() + 1) % 7
    sunday = local.date() - timedelta(days=days_since_sunday)
    return datetime.combine(sunday, time()).astimezone()


def compute_stats(records: Iterable[Mapping], now: Optional[datetime] = None) -> dict:
    now = now or utc_now()
    since_month = month_start(now)
    since_week = week_start(now)

    stats = {
        "total": 0,
        "new": 0,
        "inProgress": 0,
        "completed": 0,
        "thisMonth": 0,
        "thisWeek": 0,
    }
    for record in records:
        if not isinstance(record, Mapping):
            continue
        stats["total"] += 1
        status = record.get("status")
        if status == "new":
            stats["new"] += 1
        elif status == "in-progress":
            stats["inProgress"] += 1
        elif status == "completed":
            stats["completed"] += 1

        created = parse_timestamp(record.get("createdAt"))
        if created is None:
            continue
        if created >= since_month:
            stats["thisMonth"] += 1
        if created >= since_week:
            stats["thisWeek"] += 1
    return stats


def _lookup(record: Mapping, path: tuple[str, ...]) -> Any:
    value: Any = record
    for key in path:
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return value


def filter_records(
    records: Iterable[Mapping],
    filters: Optional[Mapping[str, Optional[str]]],
    fields: Mapping[str, tuple[str, ...]],
) -> list:
    """
    Keep records whose fields equal every non-empty filter value.

    ``fields`` maps a filter name to the key path it reads, so
    ``{"productType": ("product", "type")}`` compares ``record["product"]["type"]``.
    Filter names missing from ``fields`` are ignored.
    """
    active = {
        name: value
        for name, value in (filters or {}).items()
        if value not in (None, "") and name in fields
    }
    return [
        record
        for record in records
        if all(_lookup(record, fields[name]) == value for name, value in active.items())
    ]


@dataclass(frozen=True)
class RecordKind:
    collection: str
    label: str
    response_key: str
    make_id: Callable[[datetime], str]
    filter_fields: Mapping[str, tuple[str, ...]]
    # Values the server always assigns on create, whatever the client sent.
    forced_on_create: Mapping[str, Any] = field(default_factory=dict)


INQUIRY_KIND = RecordKind(
    collection=INQUIRIES,
    label="Inquiry",
    response_key="inquiry",
    make_id=new_inquiry_id,
    filter_fields={
        "status": ("status",),
        "priority": ("priority",),
        "productType": ("product", "type"),
        "assignedTo": ("assignedTo",),
    },
    forced_on_create={"status": "new", "priority": "medium"},
)

CONTACT_KIND = RecordKind(
    collection=CONTACTS,
    label="Contact",
    response_key="contact",
    make_id=new_contact_id,
    filter_fields={
        "status": ("status",),
        "priority": ("priority",),
        "serviceInterest": ("serviceInterest",),
        "assignedTo": ("assignedTo",),
        "source": ("source",),
    },
)


class RecordService:
    """Create, filter, update, delete and count records of one kind."""

    def __init__(
        self,
        store: JsonStore,
        kind: RecordKind,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.kind = kind
        self.clock = clock

    @property
    def collection(self) -> str:
        return self.kind.collection

    def _load(self) -> list:
        data = self.store.read(self.collection)
        if data is None:
            if self.store.exists(self.collection):
                raise StoreError(self.collection, "read")
            return []
        if not isinstance(data, list):
            logger.error("%s data is not a JSON array", self.collection)
            raise StoreError(self.collection, "read")
        return data

    def _save(self, records: list) -> None:
        if not self.store.write(self.collection, records):
            raise StoreError(self.collection, "save")

    def list_records(self, filters: Optional[Mapping[str, Optional[str]]] = None) -> list:
        return filter_records(self._load(), filters, self.kind.filter_fields)

    def create(self, fields: Mapping[str, Any], record_id: Optional[str] = None) -> dict:
        now = self.clock()
        with self.store.lock(self.collection):
            records = self._load()
            record_id = record_id or self.kind.make_id(now)
            if _find_index(records, record_id) is not None:
                raise DuplicateRecordError(
                    f"{self.kind.label} {record_id} already exists"
                )
            timestamp = format_timestamp(now)
            record = {"id": record_id}
            record.update(
                (k, v) for k, v in fields.items() if k not in _SERVER_FIELDS
            )
            record.update(self.kind.forced_on_create)
            record["createdAt"] = timestamp
            record["updatedAt"] = timestamp

            records.insert(0, record)
            self._save(records)
        email = (record.get("customerInfo") or {}).get("email")
        logger.info("New %s created: %s from %s", self.collection, record_id, email)
        return record

    def update(self, record_id: str, changes: Mapping[str, Any]) -> Optional[dict]:
        with self.store.lock(self.collection):
            records = self._load()
            index = _find_index(records, record_id)
            if index is None:
                return None
            current = records[index]
            updated = dict(current)
            updated.update(changes)
            updated["id"] = current.get("id", record_id)
            if "createdAt" in current:
                updated["createdAt"] = current["createdAt"]
            updated["updatedAt"] = self._next_timestamp(current.get("updatedAt"))

            records[index] = updated
            self._save(records)
        logger.info("%s updated: %s", self.kind.label, record_id)
        return updated

    def delete(self, record_id: str) -> bool:
        with self.store.lock(self.collection):
            records = self._load()
            index = _find_index(records, record_id)
            if index is None:
                return False
            del records[index]
            self._save(records)
        logger.info("%s deleted: %s", self.kind.label, record_id)
        return True

    def stats(self, now: Optional[datetime] = None) -> dict:
        return compute_stats(self._load(), now or self.clock())

    def _next_timestamp(self, previous: Any) -> str:
        now = self.clock()
        before = parse_timestamp(previous)
        # Keep updatedAt strictly increasing at millisecond resolution.
        if before is not None and now < before + timedelta(milliseconds=1):
            now = before + timedelta(milliseconds=1)
        return format_timestamp(now)


def _find_index(records: list, record_id: str) -> Optional[int]:
    for index, record in enumerate(records):
        if isinstance(record, Mapping) and record.get("id") == record_id:
            return index
    return None
