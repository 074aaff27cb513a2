import tempfile
import unittest
from datetime import datetime
from pathlib import Path

import yaml

from court_reservations import (
    CreateBlockoutData,
    ScheduleConfig,
    YamlBlockoutStore,
    YamlDisplacementAuditStore,
    YamlReservationStore,
    YamlScheduleConfigStore,
)
from court_reservations.errors import (
    AtomicPathUnsupportedError,
    BlockoutNotFoundError,
    CourtNotFoundError,
    ReservationAlreadyCancelledError,
    ReservationNotFoundError,
    ReservationSlotUnavailableError,
    ValidationError,
)
from court_reservations.models import (
    DEFAULT_SCHEDULE_CONFIG,
    PRIORITY_GUARANTEED,
    PRIORITY_PROVISIONAL,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    DisplacementDetails,
)

from tests.helpers import fixed_clock, request


class StoreTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._temp_dir.name) / "data"

    def tearDown(self) -> None:
        self._temp_dir.cleanup()

    def events(self) -> list[str]:
        rows = yaml.safe_load((self.data_dir / "reservation_events.yaml").read_text(encoding="utf-8"))
        return [row["event_type"] for row in rows]


class TestYamlReservationStore(StoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.store = YamlReservationStore(self.data_dir, clock=fixed_clock)

    async def test_insert_fills_court_name_and_persists(self) -> None:
        created = await self.store.insert(request("A-101", "2026-03-04", "10:00", "11:00"), PRIORITY_GUARANTEED)

        loaded = await self.store.find_by_id(created.reservation_id)
        self.assertEqual(loaded, created)
        self.assertEqual(loaded.court_name, "Court 1")
        self.assertEqual(loaded.duration, 60)
        self.assertIsNone(loaded.conversion_timestamp)
        self.assertIn("RESERVATION_CREATED", self.events())

    async def test_provisional_insert_schedules_conversion(self) -> None:
        created = await self.store.insert(request("A-101", "2026-03-04", "10:00", "10:30"), PRIORITY_PROVISIONAL)

        self.assertEqual(created.conversion_timestamp, datetime(2026, 3, 3, 10, 0))

    async def test_apartment_start_time_is_unique_across_courts(self) -> None:
        await self.store.insert(request("A-101", "2026-03-04", "10:00", "10:30"), PRIORITY_GUARANTEED)

        with self.assertRaises(ReservationSlotUnavailableError):
            await self.store.insert(
                request("A-101", "2026-03-04", "10:00", "10:30", court_id="court-2"), PRIORITY_PROVISIONAL
            )

    async def test_court_overlap_is_rejected(self) -> None:
        await self.store.insert(request("A-101", "2026-03-04", "10:00", "11:00"), PRIORITY_GUARANTEED)

        with self.assertRaises(ReservationSlotUnavailableError):
            await self.store.insert(request("B-202", "2026-03-04", "10:30", "11:30"), PRIORITY_GUARANTEED)

        touching = await self.store.insert(request("B-202", "2026-03-04", "11:00", "11:30"), PRIORITY_GUARANTEED)
        self.assertEqual(touching.start_time, "11:00")

    async def test_inverted_range_is_a_validation_error(self) -> None:
        with self.assertRaises(ValidationError):
            await self.store.insert(request("A-101", "2026-03-04", "11:00", "10:00"), PRIORITY_GUARANTEED)

    async def test_unknown_court_and_loose_times_are_not_written(self) -> None:
        with self.assertRaises(CourtNotFoundError):
            await self.store.insert(
                request("A-101", "2026-03-04", "10:00", "10:30", court_id="court-9"), PRIORITY_GUARANTEED
            )
        with self.assertRaises(ValidationError):
            await self.store.insert(request("A-101", "2026-03-04", "9:00", "09:30"), PRIORITY_GUARANTEED)

        self.assertEqual(await self.store.find_all(), [])
        self.assertEqual(await self.store.close_expired(datetime(2026, 3, 5, 0, 0)), 0)

    async def test_cancel_rules(self) -> None:
        created = await self.store.insert(request("A-101", "2026-03-04", "10:00", "10:30"), PRIORITY_GUARANTEED)

        await self.store.cancel(created.reservation_id)

        self.assertEqual((await self.store.find_by_id(created.reservation_id)).status, STATUS_CANCELLED)
        with self.assertRaises(ReservationAlreadyCancelledError):
            await self.store.cancel(created.reservation_id)
        with self.assertRaises(ReservationNotFoundError):
            await self.store.cancel("missing")

    async def test_cancelled_slot_can_be_booked_again(self) -> None:
        created = await self.store.insert(request("A-101", "2026-03-04", "10:00", "10:30"), PRIORITY_GUARANTEED)
        await self.store.cancel(created.reservation_id)

        again = await self.store.insert(request("A-101", "2026-03-04", "10:00", "10:30"), PRIORITY_GUARANTEED)

        self.assertNotEqual(again.reservation_id, created.reservation_id)

    async def test_close_expired_marks_completed(self) -> None:
        created = await self.store.insert(request("A-101", "2026-03-04", "10:00", "10:30"), PRIORITY_GUARANTEED)

        self.assertEqual(await self.store.close_expired(datetime(2026, 3, 4, 10, 29)), 0)
        self.assertEqual(await self.store.close_expired(datetime(2026, 3, 4, 10, 30)), 1)

        self.assertEqual((await self.store.find_by_id(created.reservation_id)).status, STATUS_COMPLETED)
        self.assertIn("RESERVATION_COMPLETED", self.events())

    async def test_statistics(self) -> None:
        await self.store.insert(request("A-101", "2026-03-02", "18:00", "18:30"), PRIORITY_GUARANTEED)
        second = await self.store.insert(request("B-202", "2026-03-05", "10:00", "10:30"), PRIORITY_GUARANTEED)
        await self.store.insert(request("C-303", "2026-03-20", "10:00", "10:30"), PRIORITY_GUARANTEED)
        await self.store.cancel(second.reservation_id)

        stats = await self.store.get_statistics()

        self.assertEqual(stats.total_reservations, 3)
        self.assertEqual(stats.confirmed_reservations, 2)
        self.assertEqual(stats.cancelled_reservations, 1)
        self.assertEqual(stats.today_reservations, 1)
        self.assertEqual(stats.week_reservations, 2)

    async def test_conversion_info_counts_down(self) -> None:
        created = await self.store.insert(request("A-101", "2026-03-04", "10:00", "10:30"), PRIORITY_PROVISIONAL)

        info = await self.store.get_conversion_info(created.reservation_id)

        self.assertEqual(info.priority, PRIORITY_PROVISIONAL)
        self.assertEqual(info.time_remaining, 25 * 3600)
        self.assertIsNone(await self.store.get_conversion_info("missing"))

    async def test_recalculate_conversions_promotes_earliest(self) -> None:
        later = await self.store.insert(request("A-101", "2026-03-05", "10:00", "10:30"), PRIORITY_PROVISIONAL)
        earlier = await self.store.insert(request("A-101", "2026-03-04", "10:00", "10:30"), PRIORITY_PROVISIONAL)

        await self.store.recalculate_conversions("A-101")

        self.assertEqual((await self.store.find_by_id(earlier.reservation_id)).priority, PRIORITY_GUARANTEED)
        self.assertEqual((await self.store.find_by_id(later.reservation_id)).priority, PRIORITY_PROVISIONAL)
        self.assertEqual(self.events().count("RESERVATION_CONVERTED"), 1)

    async def test_update_priority_and_lookup_by_user(self) -> None:
        created = await self.store.insert(request("A-101", "2026-03-04", "10:00", "10:30"), PRIORITY_PROVISIONAL)

        updated = await self.store.update_priority(created.reservation_id, PRIORITY_GUARANTEED)

        self.assertEqual(updated.priority, PRIORITY_GUARANTEED)
        self.assertEqual(await self.store.find_by_user("user-A-101"), [updated])
        self.assertEqual(await self.store.find_by_user("user-B-202"), [])
        with self.assertRaises(ValidationError):
            await self.store.update_priority(created.reservation_id, "vip")

    async def test_create_atomic_is_unsupported(self) -> None:
        with self.assertRaises(AtomicPathUnsupportedError):
            await self.store.create_atomic(request("A-101", "2026-03-04", "10:00", "10:30"))

    async def test_displace_and_create_atomic(self) -> None:
        victim = await self.store.insert(request("A-101", "2026-03-04", "10:00", "10:30"), PRIORITY_PROVISIONAL)

        created = await self.store.displace_and_create_atomic(
            victim.reservation_id, request("B-202", "2026-03-04", "10:00", "10:30")
        )

        self.assertEqual(created.priority, PRIORITY_GUARANTEED)
        self.assertEqual((await self.store.find_by_id(victim.reservation_id)).status, STATUS_CANCELLED)
        self.assertIn("RESERVATION_DISPLACED", self.events())

    async def test_displace_and_create_atomic_refuses_guaranteed(self) -> None:
        holder = await self.store.insert(request("A-101", "2026-03-04", "10:00", "10:30"), PRIORITY_GUARANTEED)

        with self.assertRaises(ReservationSlotUnavailableError):
            await self.store.displace_and_create_atomic(
                holder.reservation_id, request("B-202", "2026-03-04", "10:00", "10:30")
            )
        self.assertTrue((await self.store.find_by_id(holder.reservation_id)).is_confirmed)

    async def test_corrupted_file_is_backed_up_and_reset(self) -> None:
        self.store.reservations_file.write_text("reservations: [broken", encoding="utf-8")

        self.assertEqual(await self.store.find_all(), [])

        backups = list(self.data_dir.glob("reservations.corrupt.*.yaml"))
        self.assertEqual(len(backups), 1)
        self.assertIn("YAML_RECOVERED", self.events())

    async def test_non_mapping_rows_are_skipped(self) -> None:
        created = await self.store.insert(request("A-101", "2026-03-04", "10:00", "10:30"), PRIORITY_GUARANTEED)
        rows = yaml.safe_load(self.store.reservations_file.read_text(encoding="utf-8"))
        rows.append("not a reservation")
        self.store.reservations_file.write_text(yaml.safe_dump(rows), encoding="utf-8")

        loaded = await self.store.find_all()

        self.assertEqual([row.reservation_id for row in loaded], [created.reservation_id])
        self.assertIn("YAML_ROW_SKIPPED", self.events())


class TestYamlBlockoutStore(StoreTestCase):
    async def test_insert_find_delete(self) -> None:
        store = YamlBlockoutStore(self.data_dir, clock=fixed_clock)
        created = await store.insert(CreateBlockoutData("court-1", "2026-03-04", "14:00", "15:00", "admin-1"))

        self.assertEqual(await store.find_by_date_and_court("2026-03-04", "court-1"), [created])
        self.assertEqual(await store.find_by_date_and_court("2026-03-04", "court-2"), [])

        await store.delete(created.blockout_id)

        self.assertEqual(await store.find_by_date_and_court("2026-03-04", "court-1"), [])
        with self.assertRaises(BlockoutNotFoundError):
            await store.delete(created.blockout_id)
        self.assertIn("BLOCKOUT_DELETED", self.events())

    async def test_unknown_court_is_rejected(self) -> None:
        store = YamlBlockoutStore(self.data_dir, court_names={"court-1": "Court 1"}, clock=fixed_clock)

        with self.assertRaises(CourtNotFoundError):
            await store.insert(CreateBlockoutData("court-2", "2026-03-04", "14:00", "15:00", "admin-1"))


class TestYamlScheduleConfigStore(StoreTestCase):
    async def test_defaults_until_updated(self) -> None:
        store = YamlScheduleConfigStore(self.data_dir, clock=fixed_clock)

        self.assertEqual(await store.get_config(), DEFAULT_SCHEDULE_CONFIG)

        config = ScheduleConfig(break_start="12:00", break_end="13:00", break_days_of_week=(1, 2, 3, 4, 5))
        await store.update_config("admin-1", config)

        reopened = YamlScheduleConfigStore(self.data_dir, clock=fixed_clock)
        self.assertEqual(await reopened.get_config(), config)


class TestYamlDisplacementAuditStore(StoreTestCase):
    async def test_unread_then_marked_read(self) -> None:
        store = YamlDisplacementAuditStore(self.data_dir, clock=fixed_clock)
        details = DisplacementDetails("2026-03-04", "10:00", "10:30", "Court 1", "B-202")
        await store.insert("user-A-101", details)
        await store.insert("user-C-303", details)

        unread = await store.find_unread_by_user("user-A-101")
        self.assertEqual(len(unread), 1)
        self.assertEqual(unread[0].displaced_by_apartment, "B-202")

        await store.mark_all_as_read("user-A-101")

        self.assertEqual(await store.find_unread_by_user("user-A-101"), [])
        self.assertEqual(len(await store.find_unread_by_user("user-C-303")), 1)


if __name__ == "__main__":
    unittest.main()
