import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from court_reservations import CreateReservationData, build_yaml_engine
from court_reservations.models import PRIORITY_PROVISIONAL, STATUS_CONFIRMED, Reservation

NOW = datetime(2026, 3, 2, 9, 0)


def fixed_clock() -> datetime:
    return NOW


def make_reservation(
    reservation_id: str,
    apartment: str,
    date: str,
    start_time: str,
    end_time: str | None = None,
    priority: str = PRIORITY_PROVISIONAL,
    status: str = STATUS_CONFIRMED,
    court_id: str = "court-1",
    user_id: str | None = None,
) -> Reservation:
    if end_time is None:
        hours, minutes = start_time.split(":")
        total = int(hours) * 60 + int(minutes) + 30
        end_time = f"{total // 60:02d}:{total % 60:02d}"
    return Reservation(
        reservation_id=reservation_id,
        court_id=court_id,
        court_name="Court 1" if court_id == "court-1" else court_id,
        user_id=user_id or f"user-{apartment}",
        user_name=f"Resident {apartment}",
        apartment=apartment,
        date=date,
        start_time=start_time,
        end_time=end_time,
        status=status,
        priority=priority,
    )


def request(apartment: str, date: str, start_time: str, end_time: str, court_id: str = "court-1", **kwargs):
    return CreateReservationData(
        court_id=court_id,
        user_id=kwargs.pop("user_id", f"user-{apartment}"),
        user_name=f"Resident {apartment}",
        apartment=apartment,
        date=date,
        start_time=start_time,
        end_time=end_time,
        **kwargs,
    )


class YamlEngineTestCase(unittest.IsolatedAsyncioTestCase):
    """Runs use cases against YAML files in a temporary data directory."""

    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._temp_dir.name) / "data"
        self.engine = build_yaml_engine(self.data_dir, fixed_clock)

    def tearDown(self) -> None:
        self._temp_dir.cleanup()

    async def create(self, data: CreateReservationData):
        result = await self.engine.create_reservation.execute(data)
        await self.engine.background.drain()
        return result
