import unittest

from court_reservations import apply_priority_conversion, determine_reservation_priority
from court_reservations.models import PRIORITY_GUARANTEED, PRIORITY_PROVISIONAL, STATUS_CANCELLED

from tests.helpers import make_reservation


class TestApplyPriorityConversion(unittest.TestCase):
    def test_empty_input_is_returned_unchanged(self) -> None:
        self.assertEqual(apply_priority_conversion([]), [])

    def test_earliest_provisional_is_promoted(self) -> None:
        later = make_reservation("r-2", "A-101", "2026-03-05", "10:00")
        earlier = make_reservation("r-1", "A-101", "2026-03-04", "18:00")

        converted = apply_priority_conversion([later, earlier])

        self.assertEqual([item.reservation_id for item in converted], ["r-2", "r-1"])
        self.assertEqual(converted[0].priority, PRIORITY_PROVISIONAL)
        self.assertEqual(converted[1].priority, PRIORITY_GUARANTEED)

    def test_existing_guaranteed_is_sticky(self) -> None:
        guaranteed = make_reservation("r-1", "A-101", "2026-03-06", "10:00", priority=PRIORITY_GUARANTEED)
        provisional = make_reservation("r-2", "A-101", "2026-03-03", "10:00")

        converted = apply_priority_conversion([guaranteed, provisional])

        self.assertEqual([item.priority for item in converted], [PRIORITY_GUARANTEED, PRIORITY_PROVISIONAL])

    def test_cancelled_reservations_are_ignored(self) -> None:
        cancelled = make_reservation(
            "r-1", "A-101", "2026-03-03", "10:00", priority=PRIORITY_GUARANTEED, status=STATUS_CANCELLED
        )
        provisional = make_reservation("r-2", "A-101", "2026-03-04", "10:00")

        converted = apply_priority_conversion([cancelled, provisional])

        self.assertEqual(converted[0], cancelled)
        self.assertEqual(converted[1].priority, PRIORITY_GUARANTEED)

    def test_tie_keeps_first_encountered(self) -> None:
        first = make_reservation("r-1", "A-101", "2026-03-04", "10:00")
        second = make_reservation("r-2", "A-101", "2026-03-04", "10:00", court_id="court-2")

        converted = apply_priority_conversion([first, second])

        self.assertEqual([item.priority for item in converted], [PRIORITY_GUARANTEED, PRIORITY_PROVISIONAL])

    def test_conversion_is_idempotent(self) -> None:
        reservations = [
            make_reservation("r-1", "A-101", "2026-03-05", "09:00"),
            make_reservation("r-2", "A-101", "2026-03-04", "20:00"),
        ]

        once = apply_priority_conversion(reservations)

        self.assertEqual(apply_priority_conversion(once), once)


class TestDetermineReservationPriority(unittest.TestCase):
    def test_first_reservation_is_guaranteed(self) -> None:
        self.assertEqual(determine_reservation_priority([]), PRIORITY_GUARANTEED)

    def test_second_reservation_is_provisional(self) -> None:
        existing = [make_reservation("r-1", "A-101", "2026-03-04", "10:00", priority=PRIORITY_GUARANTEED)]

        self.assertEqual(determine_reservation_priority(existing), PRIORITY_PROVISIONAL)

    def test_third_reservation_exceeds_limit(self) -> None:
        existing = [
            make_reservation("r-1", "A-101", "2026-03-04", "10:00", priority=PRIORITY_GUARANTEED),
            make_reservation("r-2", "A-101", "2026-03-05", "10:00"),
        ]

        self.assertIsNone(determine_reservation_priority(existing))

    def test_cancelled_reservations_do_not_count(self) -> None:
        existing = [make_reservation("r-1", "A-101", "2026-03-04", "10:00", status=STATUS_CANCELLED)]

        self.assertEqual(determine_reservation_priority(existing), PRIORITY_GUARANTEED)


if __name__ == "__main__":
    unittest.main()
