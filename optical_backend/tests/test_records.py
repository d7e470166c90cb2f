import os
import time
import unittest
from datetime import datetime, timedelta, timezone

from optical_backend.records import (
    CONTACT_KIND,
    INQUIRY_KIND,
    DuplicateRecordError,
    RecordService,
    StoreError,
    compute_stats,
    filter_records,
    format_timestamp,
    month_start,
    parse_timestamp,
    week_start,
)
from optical_backend.store import InMemoryJsonStore

FIXED_NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def _customer():
    return {"name": "Ana", "email": "ana@example.com"}


class TimestampTests(unittest.TestCase):
    def test_format_uses_millisecond_utc(self):
        value = datetime(2025, 1, 5, 10, 0, 0, 123456, tzinfo=timezone.utc)
        self.assertEqual(format_timestamp(value), "2025-01-05T10:00:00.123Z")

    def test_parse_round_trips_and_rejects_garbage(self):
        parsed = parse_timestamp("2025-01-05T10:00:00.123Z")
        self.assertEqual(parsed, datetime(2025, 1, 5, 10, 0, 0, 123000, tzinfo=timezone.utc))
        self.assertIsNone(parse_timestamp("yesterday"))
        self.assertIsNone(parse_timestamp(None))

    def test_week_starts_on_sunday_midnight(self):
        wednesday = datetime(2025, 1, 15, 12, 0).astimezone()
        self.assertEqual(week_start(wednesday).replace(tzinfo=None), datetime(2025, 1, 12))
        sunday = datetime(2025, 1, 12, 18, 30).astimezone()
        self.assertEqual(week_start(sunday).replace(tzinfo=None), datetime(2025, 1, 12))
        saturday = datetime(2025, 1, 11, 23, 0).astimezone()
        self.assertEqual(week_start(saturday).replace(tzinfo=None), datetime(2025, 1, 5))

    def test_month_start(self):
        now = datetime(2025, 3, 31, 9, 15).astimezone()
        self.assertEqual(month_start(now).replace(tzinfo=None), datetime(2025, 3, 1))


class StatsTests(unittest.TestCase):
    def test_reference_distribution(self):
        records = [
            {"id": "1", "status": "new", "createdAt": "2025-01-14T10:00:00.000Z"},
            {"id": "2", "status": "new", "createdAt": "2025-01-13T12:00:00.000Z"},
            {"id": "3", "status": "in-progress", "createdAt": "2025-01-08T12:00:00.000Z"},
            {"id": "4", "status": "completed", "createdAt": "2024-12-20T12:00:00.000Z"},
            {"id": "5", "status": "completed", "createdAt": "not a date"},
        ]
        self.assertEqual(
            compute_stats(records, now=FIXED_NOW),
            {
                "total": 5,
                "new": 2,
                "inProgress": 1,
                "completed": 2,
                "thisMonth": 3,
                "thisWeek": 2,
            },
        )

    def test_other_statuses_count_only_toward_total(self):
        stats = compute_stats([{"status": "cancelled"}, {"status": "scheduled"}], now=FIXED_NOW)
        self.assertEqual(stats["total"], 2)
        self.assertEqual(stats["new"] + stats["inProgress"] + stats["completed"], 0)


@unittest.skipUnless(hasattr(time, "tzset"), "requires time.tzset")
class DaylightSavingBoundaryTests(unittest.TestCase):
    """Boundaries in a zone that moved from EST to EDT on 2025-03-09."""

    def setUp(self):
        previous = os.environ.get("TZ")
        os.environ["TZ"] = "America/New_York"
        time.tzset()
        self.addCleanup(self._restore_tz, previous)

    @staticmethod
    def _restore_tz(previous):
        if previous is None:
            os.environ.pop("TZ", None)
        else:
            os.environ["TZ"] = previous
        time.tzset()

    def test_month_start_uses_offset_of_that_midnight(self):
        now = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)
        self.assertEqual(
            month_start(now), datetime(2025, 3, 1, 5, 0, tzinfo=timezone.utc)
        )

    def test_week_start_uses_offset_of_that_midnight(self):
        now = datetime(2025, 3, 12, 12, 0, tzinfo=timezone.utc)
        self.assertEqual(
            week_start(now), datetime(2025, 3, 9, 5, 0, tzinfo=timezone.utc)
        )

    def test_stats_exclude_last_local_hour_before_boundaries(self):
        records = [
            # 23:30 EST on Friday 28 February
            {"status": "new", "createdAt": "2025-03-01T04:30:00.000Z"},
            {"status": "new", "createdAt": "2025-03-01T05:30:00.000Z"},
            # 23:30 EST on Saturday 8 March
            {"status": "new", "createdAt": "2025-03-09T04:30:00.000Z"},
            {"status": "new", "createdAt": "2025-03-09T05:30:00.000Z"},
        ]
        stats = compute_stats(records, now=datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc))
        self.assertEqual(stats["total"], 4)
        self.assertEqual(stats["thisMonth"], 3)
        self.assertEqual(stats["thisWeek"], 1)


class FilterTests(unittest.TestCase):
    records = [
        {"id": "a", "status": "new", "priority": "high", "product": {"type": "frame"}},
        {"id": "b", "status": "completed", "priority": "high", "product": {"type": "sunglasses"}},
        {"id": "c", "status": "new", "priority": "low"},
    ]

    def ids(self, filters):
        return [r["id"] for r in filter_records(self.records, filters, INQUIRY_KIND.filter_fields)]

    def test_no_filters_returns_everything_in_order(self):
        self.assertEqual(self.ids({}), ["a", "b", "c"])
        self.assertEqual(self.ids(None), ["a", "b", "c"])

    def test_and_semantics(self):
        self.assertEqual(self.ids({"status": "new"}), ["a", "c"])
        self.assertEqual(self.ids({"status": "new", "priority": "high"}), ["a"])

    def test_nested_product_type(self):
        self.assertEqual(self.ids({"productType": "sunglasses"}), ["b"])

    def test_unknown_values_and_names(self):
        self.assertEqual(self.ids({"status": "archived"}), [])
        self.assertEqual(self.ids({"color": "red"}), ["a", "b", "c"])


class RecordServiceTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryJsonStore()
        self.store.ensure_directories()
        self.now = FIXED_NOW
        self.inquiries = RecordService(self.store, INQUIRY_KIND, clock=lambda: self.now)
        self.contacts = RecordService(self.store, CONTACT_KIND, clock=lambda: self.now)

    def create_inquiry(self, message="hello"):
        return self.inquiries.create(
            {"customerInfo": _customer(), "product": {"type": "frame"}, "message": message}
        )

    def test_create_prepends_and_forces_defaults(self):
        first = self.create_inquiry("one")
        second = self.inquiries.create(
            {
                "customerInfo": _customer(),
                "product": {"type": "frame"},
                "message": "two",
                "status": "completed",
            }
        )
        self.assertEqual(second["status"], "new")
        self.assertEqual(first["createdAt"], "2025-01-15T12:00:00.000Z")
        self.assertEqual(
            [r["id"] for r in self.store.read("inquiries")], [second["id"], first["id"]]
        )

    def test_update_timestamp_strictly_increases_with_frozen_clock(self):
        inquiry = self.create_inquiry()
        updated = self.inquiries.update(inquiry["id"], {"status": "in-progress"})
        again = self.inquiries.update(inquiry["id"], {"priority": "high"})
        self.assertEqual(updated["updatedAt"], "2025-01-15T12:00:00.001Z")
        self.assertEqual(again["updatedAt"], "2025-01-15T12:00:00.002Z")
        self.assertEqual(again["createdAt"], inquiry["createdAt"])
        self.assertEqual(again["status"], "in-progress")

    def test_update_uses_clock_when_later(self):
        inquiry = self.create_inquiry()
        self.now = FIXED_NOW + timedelta(minutes=5)
        updated = self.inquiries.update(inquiry["id"], {"notes": "called"})
        self.assertEqual(updated["updatedAt"], "2025-01-15T12:05:00.000Z")

    def test_update_and_delete_missing(self):
        self.create_inquiry()
        self.assertIsNone(self.inquiries.update("nope", {"status": "completed"}))
        self.assertFalse(self.inquiries.delete("nope"))
        self.assertEqual(len(self.store.read("inquiries")), 1)

    def test_delete_removes_one(self):
        keep = self.create_inquiry("keep")
        drop = self.create_inquiry("drop")
        self.assertTrue(self.inquiries.delete(drop["id"]))
        self.assertEqual([r["id"] for r in self.store.read("inquiries")], [keep["id"]])
        self.assertEqual([r["message"] for r in self.inquiries.list_records()], ["keep"])

    def test_contact_id_from_client(self):
        contact = self.contacts.create(
            {"customerInfo": _customer(), "message": "hi", "status": "new"},
            record_id="contact_1_x",
        )
        self.assertEqual(contact["id"], "contact_1_x")
        with self.assertRaises(DuplicateRecordError):
            self.contacts.create({"customerInfo": _customer(), "message": "again"}, record_id="contact_1_x")

    def test_server_fields_in_payload_are_ignored(self):
        contact = self.contacts.create(
            {"customerInfo": _customer(), "message": "hi", "createdAt": "1999", "id": "x"}
        )
        self.assertTrue(contact["id"].startswith("contact_"))
        self.assertEqual(contact["createdAt"], "2025-01-15T12:00:00.000Z")

    def test_write_failure_leaves_collection(self):
        self.create_inquiry()
        self.store.fail_writes = True
        with self.assertRaises(StoreError):
            self.create_inquiry()
        self.assertEqual(len(self.store.read("inquiries")), 1)

    def test_non_array_collection_is_read_error(self):
        self.store.collections["contacts"] = {"oops": True}
        with self.assertRaises(StoreError):
            self.contacts.list_records()

    def test_missing_collection_is_empty(self):
        self.store.reset()
        self.assertEqual(self.inquiries.list_records(), [])
        self.assertEqual(self.inquiries.stats()["total"], 0)


if __name__ == "__main__":
    unittest.main()
