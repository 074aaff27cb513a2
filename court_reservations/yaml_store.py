from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Callable
import logging
import shutil
from uuid import uuid4

import yaml

from .booking import can_reserve, parse_clock_time, parse_day
from .config import COURT_NAMES, PROTECTION_WINDOW_HOURS
from .errors import (
    AtomicPathUnsupportedError,
    BlockoutNotFoundError,
    CourtNotFoundError,
    ReservationAlreadyCancelledError,
    ReservationNotFoundError,
    ReservationSlotUnavailableError,
    ReservationStorageError,
    ValidationError,
)
from .models import (
    DEFAULT_SCHEDULE_CONFIG,
    PRIORITY_GUARANTEED,
    PRIORITY_PROVISIONAL,
    RESERVATION_PRIORITIES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    Blockout,
    ConversionInfo,
    CreateBlockoutData,
    CreateReservationData,
    DisplacementDetails,
    DisplacementNotificationRecord,
    Reservation,
    ReservationStatistics,
    ScheduleConfig,
)
from .priority import CONVERSION_RULE_EARLIEST, apply_priority_conversion

logger = logging.getLogger(__name__)

CONVERSION_RULE_PROTECTION = "protection_window"
EVENT_LOG_FILE = "reservation_events.yaml"


def check_booking_fields(court_names: dict[str, str], court_id: str, day: str, start_time: str, end_time: str) -> None:
    """Reject unknown courts and anything but ``YYYY-MM-DD`` / ``HH:MM`` before a row is written."""
    if court_id not in court_names:
        raise CourtNotFoundError(f"Court {court_id} not found")
    try:
        parse_day(day)
        parse_clock_time(start_time)
        parse_clock_time(end_time)
    except ValueError as error:
        raise ValidationError(str(error)) from error


class YamlDataDirectory:
    """Shared YAML plumbing: atomic writes, corruption recovery and the event log.

    Coroutine methods of the stores never await while holding file contents,
    so each read-modify-write runs to completion on the event loop.
    """

    def __init__(self, base_dir: str | Path = "data", clock: Callable[[], datetime] = datetime.now) -> None:
        self.base_dir = Path(base_dir)
        self.log_file = self.base_dir / EVENT_LOG_FILE
        self.clock = clock
        self._ensure_files(self.log_file)

    def _ensure_files(self, *paths: Path) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for path in paths:
            if not path.exists():
                path.write_text("[]\n", encoding="utf-8")

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            else:
                self._log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def _write_yaml(self, path: Path, payload: Any) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(payload, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise ReservationStorageError(f"Failed to write YAML file: {path}", error) from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError as backup_error:
            logger.warning("Could not back up corrupted file %s: %s", path, backup_error)

        logger.warning("Recovered corrupted YAML file %s: %s", path, error)
        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self._log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or self.clock()).isoformat(timespec="seconds")
        events = self._read_yaml_list(self.log_file)
        events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
        self._write_yaml(self.log_file, events)

    def read_events(self) -> list[dict[str, Any]]:
        return self._read_yaml_list(self.log_file)


class YamlReservationStore(YamlDataDirectory):
    """Reservation store on a single YAML file.

    Confirmed reservations are unique per (apartment, date, start_time) and
    may not overlap on the same court; violations surface as
    ``ReservationSlotUnavailableError``. There is no server-side creation
    procedure, so ``create_atomic`` always reports the atomic path as absent.
    """

    def __init__(
        self,
        base_dir: str | Path = "data",
        court_names: dict[str, str] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        super().__init__(base_dir, clock)
        self.reservations_file = self.base_dir / "reservations.yaml"
        self.court_names = dict(COURT_NAMES if court_names is None else court_names)
        self._ensure_files(self.reservations_file)

    def _load(self) -> list[Reservation]:
        return [Reservation.from_dict(row) for row in self._read_yaml_list(self.reservations_file)]

    def _save(self, reservations: list[Reservation]) -> None:
        self._write_yaml(self.reservations_file, [reservation.to_dict() for reservation in reservations])

    async def find_by_id(self, reservation_id: str) -> Reservation | None:
        return next((row for row in self._load() if row.reservation_id == reservation_id), None)

    async def find_by_apartment(self, apartment: str) -> list[Reservation]:
        return [row for row in self._load() if row.apartment == apartment]

    async def find_by_user(self, user_id: str) -> list[Reservation]:
        return [row for row in self._load() if row.user_id == user_id]

    async def find_by_date_and_court(self, day: str, court_id: str) -> list[Reservation]:
        return [row for row in self._load() if row.date == day and row.court_id == court_id]

    async def find_by_date(self, day: str) -> list[Reservation]:
        return [row for row in self._load() if row.date == day]

    async def find_all(self) -> list[Reservation]:
        return self._load()

    async def insert(self, data: CreateReservationData, priority: str) -> Reservation:
        rows = self._load()
        record = self._build_record(rows, data, priority)
        rows.append(record)
        self._save(rows)
        self._log_created(record)
        return record

    async def cancel(self, reservation_id: str) -> None:
        rows = self._load()
        index = self._index_of(rows, reservation_id)
        current = rows[index]
        if current.status != STATUS_CONFIRMED:
            raise ReservationAlreadyCancelledError()

        now = self.clock()
        rows[index] = replace(current, status=STATUS_CANCELLED, updated_at=now)
        self._save(rows)
        self._log_event(
            "RESERVATION_CANCELLED",
            {
                "reservation_id": reservation_id,
                "apartment": current.apartment,
                "date": current.date,
                "start_time": current.start_time,
            },
            now,
        )

    async def update_priority(self, reservation_id: str, priority: str) -> Reservation:
        if priority not in RESERVATION_PRIORITIES:
            raise ValidationError(f"Unknown priority: {priority}")

        rows = self._load()
        index = self._index_of(rows, reservation_id)
        now = self.clock()
        updated = replace(rows[index], priority=priority, updated_at=now)
        rows[index] = updated
        self._save(rows)
        self._log_event("RESERVATION_PRIORITY_UPDATED", {"reservation_id": reservation_id, "priority": priority}, now)
        return updated

    async def get_statistics(self) -> ReservationStatistics:
        rows = self._load()
        today = self.clock().date()
        week_end = today + timedelta(days=7)
        return ReservationStatistics(
            total_reservations=len(rows),
            confirmed_reservations=sum(1 for row in rows if row.status == STATUS_CONFIRMED),
            cancelled_reservations=sum(1 for row in rows if row.status == STATUS_CANCELLED),
            today_reservations=sum(1 for row in rows if date.fromisoformat(row.date) == today),
            week_reservations=sum(1 for row in rows if today <= date.fromisoformat(row.date) <= week_end),
        )

    async def get_conversion_info(self, reservation_id: str) -> ConversionInfo | None:
        record = await self.find_by_id(reservation_id)
        if record is None:
            return None

        time_remaining = None
        if record.conversion_timestamp is not None:
            time_remaining = max(0.0, (record.conversion_timestamp - self.clock()).total_seconds())
        return ConversionInfo(
            reservation_id=record.reservation_id,
            priority=record.priority,
            conversion_timestamp=record.conversion_timestamp,
            conversion_rule=record.conversion_rule,
            converted_at=record.converted_at,
            time_remaining=time_remaining,
        )

    async def create_atomic(self, data: CreateReservationData) -> Reservation:
        raise AtomicPathUnsupportedError()

    async def displace_and_create_atomic(self, displaced_id: str, data: CreateReservationData) -> Reservation:
        """Cancel ``displaced_id`` and insert a guaranteed reservation in one write."""
        rows = self._load()
        index = self._index_of(rows, displaced_id)
        displaced = rows[index]
        if displaced.status != STATUS_CONFIRMED:
            raise ReservationAlreadyCancelledError()
        if displaced.priority != PRIORITY_PROVISIONAL:
            raise ReservationSlotUnavailableError("Only provisional reservations can be displaced")

        now = self.clock()
        rows[index] = replace(displaced, status=STATUS_CANCELLED, updated_at=now)
        record = self._build_record(rows, data, PRIORITY_GUARANTEED)
        rows.append(record)
        self._save(rows)

        self._log_event(
            "RESERVATION_DISPLACED",
            {
                "reservation_id": displaced_id,
                "apartment": displaced.apartment,
                "displaced_by_apartment": data.apartment,
            },
            now,
        )
        self._log_created(record)
        return record

    async def recalculate_conversions(self, apartment: str) -> None:
        rows = self._load()
        now = self.clock()
        active = [
            row for row in rows if row.apartment == apartment and row.is_confirmed and row.starts_at > now
        ]
        converted = {row.reservation_id: row for row in apply_priority_conversion(active)}

        changed: list[str] = []
        for index, row in enumerate(rows):
            target = converted.get(row.reservation_id)
            if target is None or target.priority == row.priority:
                continue
            rows[index] = replace(
                row,
                priority=target.priority,
                conversion_rule=CONVERSION_RULE_EARLIEST,
                converted_at=now,
                updated_at=now,
            )
            changed.append(row.reservation_id)

        if not changed:
            return

        self._save(rows)
        for reservation_id in changed:
            self._log_event(
                "RESERVATION_CONVERTED",
                {"reservation_id": reservation_id, "apartment": apartment, "priority": PRIORITY_GUARANTEED},
                now,
            )

    async def close_expired(self, now: datetime | None = None) -> int:
        """Mark confirmed reservations whose end has passed as completed."""
        effective_now = now or self.clock()
        rows = self._load()
        completed: list[Reservation] = []

        for index, row in enumerate(rows):
            ends_at = datetime.fromisoformat(f"{row.date}T{row.end_time}")
            if row.is_confirmed and ends_at <= effective_now:
                rows[index] = replace(row, status=STATUS_COMPLETED, updated_at=effective_now)
                completed.append(row)

        if not completed:
            return 0

        self._save(rows)
        for row in completed:
            self._log_event(
                "RESERVATION_COMPLETED",
                {"reservation_id": row.reservation_id, "date": row.date, "end_time": row.end_time},
                effective_now,
            )
        return len(completed)

    def _build_record(self, rows: list[Reservation], data: CreateReservationData, priority: str) -> Reservation:
        check_booking_fields(self.court_names, data.court_id, data.date, data.start_time, data.end_time)
        confirmed = [row for row in rows if row.is_confirmed]
        for row in confirmed:
            if row.apartment == data.apartment and row.date == data.date and row.start_time == data.start_time:
                raise ReservationSlotUnavailableError("Your apartment already has a reservation at this time")

        same_court = [(row.start_time, row.end_time) for row in confirmed if row.court_id == data.court_id and row.date == data.date]
        try:
            free = can_reserve(data.start_time, data.end_time, same_court)
        except ValueError as error:
            raise ValidationError(str(error)) from error
        if not free:
            raise ReservationSlotUnavailableError("Reservation overlaps with an existing confirmed reservation")

        now = self.clock()
        record = Reservation(
            reservation_id=str(uuid4()),
            court_id=data.court_id,
            court_name=self.court_names[data.court_id],
            user_id=data.user_id,
            user_name=data.user_name,
            apartment=data.apartment,
            date=data.date,
            start_time=data.start_time,
            end_time=data.end_time,
            status=STATUS_CONFIRMED,
            priority=priority,
            players=tuple(data.players),
            created_at=now,
            updated_at=now,
        )
        if priority == PRIORITY_PROVISIONAL:
            record = replace(
                record,
                conversion_timestamp=record.starts_at - timedelta(hours=PROTECTION_WINDOW_HOURS),
                conversion_rule=CONVERSION_RULE_PROTECTION,
            )
        return record

    def _index_of(self, rows: list[Reservation], reservation_id: str) -> int:
        for index, row in enumerate(rows):
            if row.reservation_id == reservation_id:
                return index
        raise ReservationNotFoundError()

    def _log_created(self, record: Reservation) -> None:
        self._log_event(
            "RESERVATION_CREATED",
            {
                "reservation_id": record.reservation_id,
                "court_id": record.court_id,
                "apartment": record.apartment,
                "user_id": record.user_id,
                "date": record.date,
                "start_time": record.start_time,
                "end_time": record.end_time,
                "priority": record.priority,
            },
            record.created_at,
        )


class YamlBlockoutStore(YamlDataDirectory):
    def __init__(
        self,
        base_dir: str | Path = "data",
        court_names: dict[str, str] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        super().__init__(base_dir, clock)
        self.blockouts_file = self.base_dir / "blockouts.yaml"
        self.court_names = dict(COURT_NAMES if court_names is None else court_names)
        self._ensure_files(self.blockouts_file)

    def _load(self) -> list[Blockout]:
        return [Blockout.from_dict(row) for row in self._read_yaml_list(self.blockouts_file)]

    async def find_by_date_and_court(self, day: str, court_id: str) -> list[Blockout]:
        return [row for row in self._load() if row.date == day and row.court_id == court_id]

    async def insert(self, data: CreateBlockoutData) -> Blockout:
        check_booking_fields(self.court_names, data.court_id, data.date, data.start_time, data.end_time)
        now = self.clock()
        blockout = Blockout(
            blockout_id=str(uuid4()),
            court_id=data.court_id,
            date=data.date,
            start_time=data.start_time,
            end_time=data.end_time,
            reason=data.reason,
            created_by=data.created_by,
            created_at=now,
        )
        rows = self._read_yaml_list(self.blockouts_file)
        rows.append(blockout.to_dict())
        self._write_yaml(self.blockouts_file, rows)
        self._log_event("BLOCKOUT_CREATED", blockout.to_dict(), now)
        return blockout

    async def delete(self, blockout_id: str) -> None:
        rows = self._read_yaml_list(self.blockouts_file)
        remaining = [row for row in rows if str(row.get("blockout_id")) != blockout_id]
        if len(remaining) == len(rows):
            raise BlockoutNotFoundError()
        self._write_yaml(self.blockouts_file, remaining)
        self._log_event("BLOCKOUT_DELETED", {"blockout_id": blockout_id})


class YamlScheduleConfigStore(YamlDataDirectory):
    def __init__(self, base_dir: str | Path = "data", clock: Callable[[], datetime] = datetime.now) -> None:
        super().__init__(base_dir, clock)
        self.config_file = self.base_dir / "schedule_config.yaml"

    async def get_config(self) -> ScheduleConfig:
        if not self.config_file.exists():
            return DEFAULT_SCHEDULE_CONFIG
        try:
            payload = yaml.safe_load(self.config_file.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            raise ReservationStorageError("Failed to read schedule configuration", error) from error

        if not isinstance(payload, dict) or not isinstance(payload.get("config"), dict):
            return DEFAULT_SCHEDULE_CONFIG
        return ScheduleConfig.from_dict(payload["config"])

    async def update_config(self, user_id: str, config: ScheduleConfig) -> ScheduleConfig:
        now = self.clock()
        self._write_yaml(
            self.config_file,
            {
                "updated_by": user_id,
                "updated_at": now.isoformat(timespec="seconds"),
                "config": config.to_dict(),
            },
        )
        self._log_event("SCHEDULE_CONFIG_UPDATED", {"updated_by": user_id}, now)
        return config


class YamlDisplacementAuditStore(YamlDataDirectory):
    def __init__(self, base_dir: str | Path = "data", clock: Callable[[], datetime] = datetime.now) -> None:
        super().__init__(base_dir, clock)
        self.notifications_file = self.base_dir / "displacement_notifications.yaml"
        self._ensure_files(self.notifications_file)

    def _load(self) -> list[DisplacementNotificationRecord]:
        return [DisplacementNotificationRecord.from_dict(row) for row in self._read_yaml_list(self.notifications_file)]

    async def insert(self, user_id: str, details: DisplacementDetails) -> DisplacementNotificationRecord:
        record = DisplacementNotificationRecord(
            notification_id=str(uuid4()),
            user_id=user_id,
            reservation_date=details.reservation_date,
            start_time=details.start_time,
            end_time=details.end_time,
            court_name=details.court_name,
            displaced_by_apartment=details.displaced_by_apartment,
            created_at=self.clock(),
        )
        rows = self._read_yaml_list(self.notifications_file)
        rows.append(record.to_dict())
        self._write_yaml(self.notifications_file, rows)
        return record

    async def find_unread_by_user(self, user_id: str) -> list[DisplacementNotificationRecord]:
        return [row for row in self._load() if row.user_id == user_id and not row.is_read]

    async def mark_all_as_read(self, user_id: str) -> None:
        rows = self._load()
        updated = [replace(row, is_read=True) if row.user_id == user_id else row for row in rows]
        self._write_yaml(self.notifications_file, [row.to_dict() for row in updated])
