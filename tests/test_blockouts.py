import unittest

import yaml

from court_reservations.errors import BlockoutNotFoundError, CourtNotFoundError, ValidationError
from court_reservations.models import STATUS_CANCELLED, CreateBlockoutData

from tests.helpers import YamlEngineTestCase, request


def blockout(start_time: str, end_time: str, reason: str | None = None) -> CreateBlockoutData:
    return CreateBlockoutData(
        court_id="court-1",
        date="2026-03-04",
        start_time=start_time,
        end_time=end_time,
        created_by="admin-1",
        reason=reason,
    )


class TestCreateBlockout(YamlEngineTestCase):
    async def test_blockout_cancels_covered_reservations_and_notifies(self) -> None:
        first = (await self.create(request("A-101", "2026-03-04", "10:00", "10:30"))).value
        second = (await self.create(request("B-202", "2026-03-04", "10:30", "11:00"))).value
        outside = (await self.create(request("C-303", "2026-03-04", "11:00", "11:30"))).value

        result = await self.engine.create_blockout.execute(blockout("10:00", "11:00", reason="Resurfacing"))
        await self.engine.background.drain()

        self.assertTrue(result.success)
        self.assertEqual(result.value.reason, "Resurfacing")
        store = self.engine.reservation_store
        self.assertEqual((await store.find_by_id(first.reservation_id)).status, STATUS_CANCELLED)
        self.assertEqual((await store.find_by_id(second.reservation_id)).status, STATUS_CANCELLED)
        self.assertTrue((await store.find_by_id(outside.reservation_id)).is_confirmed)

        outbox = yaml.safe_load((self.data_dir / "notifications.yaml").read_text(encoding="utf-8"))
        notified = sorted(row["apartment"] for row in outbox if row["kind"] == "blockout_cancellation")
        self.assertEqual(notified, ["A-101", "B-202"])

        slots = (await self.engine.get_availability.execute("court-1", "2026-03-04")).value
        blocked = [slot.start_time for slot in slots if slot.blocked]
        self.assertEqual(blocked, ["10:00", "10:30"])
        self.assertTrue(all(slot.blockout_reason == "Resurfacing" for slot in slots if slot.blocked))

    async def test_multi_slot_reservation_is_cancelled_once(self) -> None:
        await self.create(request("A-101", "2026-03-04", "10:00", "11:00"))

        await self.engine.create_blockout.execute(blockout("10:00", "12:00"))
        await self.engine.background.drain()

        events = yaml.safe_load((self.data_dir / "reservation_events.yaml").read_text(encoding="utf-8"))
        cancellations = [event for event in events if event["event_type"] == "RESERVATION_CANCELLED"]
        self.assertEqual(len(cancellations), 1)

    async def test_reservation_starting_before_window_is_kept(self) -> None:
        early = (await self.create(request("A-101", "2026-03-04", "09:30", "10:00"))).value

        await self.engine.create_blockout.execute(blockout("10:00", "11:00"))
        await self.engine.background.drain()

        self.assertTrue((await self.engine.reservation_store.find_by_id(early.reservation_id)).is_confirmed)

    async def test_invalid_blockout_times(self) -> None:
        inverted = await self.engine.create_blockout.execute(blockout("11:00", "10:00"))
        garbled = await self.engine.create_blockout.execute(blockout("noon", "13:00"))
        unpadded = await self.engine.create_blockout.execute(blockout("9:00", "10:00"))

        self.assertIsInstance(inverted.error, ValidationError)
        self.assertIsInstance(garbled.error, ValidationError)
        self.assertIsInstance(unpadded.error, ValidationError)

    async def test_unknown_court_is_rejected(self) -> None:
        data = CreateBlockoutData(
            court_id="court-9",
            date="2026-03-04",
            start_time="10:00",
            end_time="11:00",
            created_by="admin-1",
        )

        result = await self.engine.create_blockout.execute(data)

        self.assertIsInstance(result.error, CourtNotFoundError)
        listed = await self.engine.get_blockouts.execute("court-9", "2026-03-04")
        self.assertEqual(listed.value, [])


class TestDeleteBlockout(YamlEngineTestCase):
    async def test_deleting_blockout_frees_slots(self) -> None:
        created = (await self.engine.create_blockout.execute(blockout("14:00", "15:00"))).value

        deleted = await self.engine.delete_blockout.execute(created.blockout_id)
        slots = (await self.engine.get_availability.execute("court-1", "2026-03-04")).value

        self.assertTrue(deleted.success)
        self.assertFalse(any(slot.blocked for slot in slots))

    async def test_deleting_unknown_blockout(self) -> None:
        result = await self.engine.delete_blockout.execute("missing")

        self.assertIsInstance(result.error, BlockoutNotFoundError)


if __name__ == "__main__":
    unittest.main()
