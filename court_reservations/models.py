from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any

STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"
RESERVATION_STATUSES = (STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_COMPLETED)

PRIORITY_GUARANTEED = "guaranteed"
PRIORITY_PROVISIONAL = "provisional"
RESERVATION_PRIORITIES = (PRIORITY_GUARANTEED, PRIORITY_PROVISIONAL)

# Weekday numbering used by break windows: 0=Sunday .. 6=Saturday.
WEEKEND_DAYS = (0, 6)


def _time_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def _optional_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _optional_str(value: Any) -> str | None:
    return str(value) if value is not None else None


def _optional_days(value: Any) -> tuple[int, ...] | None:
    if value is None:
        return None
    return tuple(int(day) for day in value)


@dataclass(frozen=True)
class Reservation:
    reservation_id: str
    court_id: str
    court_name: str
    user_id: str
    user_name: str
    apartment: str
    date: str
    start_time: str
    end_time: str
    status: str = STATUS_CONFIRMED
    priority: str = PRIORITY_PROVISIONAL
    players: tuple[str, ...] = ()
    conversion_timestamp: datetime | None = None
    conversion_rule: str | None = None
    converted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def duration(self) -> int:
        return _time_to_minutes(self.end_time) - _time_to_minutes(self.start_time)

    @property
    def starts_at(self) -> datetime:
        return datetime.fromisoformat(f"{self.date}T{self.start_time}")

    @property
    def is_confirmed(self) -> bool:
        return self.status == STATUS_CONFIRMED

    def with_priority(self, priority: str) -> "Reservation":
        return replace(self, priority=priority)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "reservation_id": self.reservation_id,
            "court_id": self.court_id,
            "court_name": self.court_name,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "apartment": self.apartment,
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "status": self.status,
            "priority": self.priority,
            "players": list(self.players),
            "conversion_timestamp": _isoformat(self.conversion_timestamp),
            "conversion_rule": self.conversion_rule,
            "converted_at": _isoformat(self.converted_at),
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }
        return payload

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Reservation":
        return Reservation(
            reservation_id=str(data["reservation_id"]),
            court_id=str(data["court_id"]),
            court_name=str(data.get("court_name") or data["court_id"]),
            user_id=str(data["user_id"]),
            user_name=str(data.get("user_name") or ""),
            apartment=str(data["apartment"]),
            date=str(data["date"]),
            start_time=str(data["start_time"]),
            end_time=str(data["end_time"]),
            status=str(data.get("status", STATUS_CONFIRMED)),
            priority=str(data.get("priority", PRIORITY_PROVISIONAL)),
            players=tuple(str(player) for player in data.get("players") or []),
            conversion_timestamp=_optional_datetime(data.get("conversion_timestamp")),
            conversion_rule=_optional_str(data.get("conversion_rule")),
            converted_at=_optional_datetime(data.get("converted_at")),
            created_at=_optional_datetime(data.get("created_at")),
            updated_at=_optional_datetime(data.get("updated_at")),
        )


@dataclass(frozen=True)
class CreateReservationData:
    court_id: str
    user_id: str
    user_name: str
    apartment: str
    date: str
    start_time: str
    end_time: str
    players: tuple[str, ...] = ()
    force_displacement: bool = False


@dataclass(frozen=True)
class ReservationStatistics:
    total_reservations: int
    confirmed_reservations: int
    cancelled_reservations: int
    today_reservations: int
    week_reservations: int

    def to_dict(self) -> dict[str, int]:
        return {
            "total_reservations": self.total_reservations,
            "confirmed_reservations": self.confirmed_reservations,
            "cancelled_reservations": self.cancelled_reservations,
            "today_reservations": self.today_reservations,
            "week_reservations": self.week_reservations,
        }


@dataclass(frozen=True)
class ConversionInfo:
    reservation_id: str
    priority: str
    conversion_timestamp: datetime | None
    conversion_rule: str | None
    converted_at: datetime | None
    time_remaining: float | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "reservation_id": self.reservation_id,
            "priority": self.priority,
            "conversion_timestamp": _isoformat(self.conversion_timestamp),
            "conversion_rule": self.conversion_rule,
            "converted_at": _isoformat(self.converted_at),
            "time_remaining": self.time_remaining,
        }


@dataclass(frozen=True)
class ScheduleConfig:
    opening_time: str = "08:00"
    closing_time: str = "22:00"
    slot_duration: int = 30
    break_start: str | None = None
    break_end: str | None = None
    break_reason: str = "Lunch break"
    # None means the break applies every day.
    break_days_of_week: tuple[int, ...] | None = None
    # None means "infer from whether any weekend field is set".
    use_differentiated_schedules: bool | None = False
    weekday_opening_time: str | None = None
    weekday_closing_time: str | None = None
    weekend_opening_time: str | None = None
    weekend_closing_time: str | None = None
    weekend_break_start: str | None = None
    weekend_break_end: str | None = None
    weekend_break_reason: str | None = None
    weekend_break_days_of_week: tuple[int, ...] | None = None

    @property
    def differentiated(self) -> bool:
        if self.use_differentiated_schedules is not None:
            return bool(self.use_differentiated_schedules)
        return any(
            value is not None
            for value in (
                self.weekend_break_start,
                self.weekend_break_end,
                self.weekend_break_days_of_week,
                self.weekend_opening_time,
                self.weekend_closing_time,
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "opening_time": self.opening_time,
            "closing_time": self.closing_time,
            "slot_duration": self.slot_duration,
            "break_start": self.break_start,
            "break_end": self.break_end,
            "break_reason": self.break_reason,
            "break_days_of_week": list(self.break_days_of_week) if self.break_days_of_week is not None else None,
            "use_differentiated_schedules": self.use_differentiated_schedules,
            "weekday_opening_time": self.weekday_opening_time,
            "weekday_closing_time": self.weekday_closing_time,
            "weekend_opening_time": self.weekend_opening_time,
            "weekend_closing_time": self.weekend_closing_time,
            "weekend_break_start": self.weekend_break_start,
            "weekend_break_end": self.weekend_break_end,
            "weekend_break_reason": self.weekend_break_reason,
            "weekend_break_days_of_week": (
                list(self.weekend_break_days_of_week) if self.weekend_break_days_of_week is not None else None
            ),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ScheduleConfig":
        differentiated = data.get("use_differentiated_schedules", False)
        return ScheduleConfig(
            opening_time=str(data.get("opening_time", "08:00")),
            closing_time=str(data.get("closing_time", "22:00")),
            slot_duration=int(data.get("slot_duration", 30)),
            break_start=_optional_str(data.get("break_start")),
            break_end=_optional_str(data.get("break_end")),
            break_reason=str(data.get("break_reason") or "Lunch break"),
            break_days_of_week=_optional_days(data.get("break_days_of_week")),
            use_differentiated_schedules=bool(differentiated) if differentiated is not None else None,
            weekday_opening_time=_optional_str(data.get("weekday_opening_time")),
            weekday_closing_time=_optional_str(data.get("weekday_closing_time")),
            weekend_opening_time=_optional_str(data.get("weekend_opening_time")),
            weekend_closing_time=_optional_str(data.get("weekend_closing_time")),
            weekend_break_start=_optional_str(data.get("weekend_break_start")),
            weekend_break_end=_optional_str(data.get("weekend_break_end")),
            weekend_break_reason=_optional_str(data.get("weekend_break_reason")),
            weekend_break_days_of_week=_optional_days(data.get("weekend_break_days_of_week")),
        )


DEFAULT_SCHEDULE_CONFIG = ScheduleConfig()


@dataclass(frozen=True)
class Blockout:
    blockout_id: str
    court_id: str
    date: str
    start_time: str
    end_time: str
    reason: str | None
    created_by: str
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "blockout_id": self.blockout_id,
            "court_id": self.court_id,
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": _isoformat(self.created_at),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Blockout":
        return Blockout(
            blockout_id=str(data["blockout_id"]),
            court_id=str(data["court_id"]),
            date=str(data["date"]),
            start_time=str(data["start_time"]),
            end_time=str(data["end_time"]),
            reason=_optional_str(data.get("reason")),
            created_by=str(data.get("created_by") or ""),
            created_at=_optional_datetime(data.get("created_at")),
        )


@dataclass(frozen=True)
class CreateBlockoutData:
    court_id: str
    date: str
    start_time: str
    end_time: str
    created_by: str
    reason: str | None = None


@dataclass(frozen=True)
class AvailabilitySlot:
    start_time: str
    end_time: str
    available: bool
    blocked: bool = False
    blockout_id: str | None = None
    blockout_reason: str | None = None
    existing_reservation: Reservation | None = None
    priority: str | None = None
    is_displaceable: bool = False
    is_protected: bool = False

    @property
    def occupied(self) -> bool:
        return self.existing_reservation is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_time": self.start_time,
            "end_time": self.end_time,
            "available": self.available,
            "blocked": self.blocked,
            "blockout_id": self.blockout_id,
            "blockout_reason": self.blockout_reason,
            "existing_reservation": (
                self.existing_reservation.to_dict() if self.existing_reservation is not None else None
            ),
            "priority": self.priority,
            "is_displaceable": self.is_displaceable,
            "is_protected": self.is_protected,
        }


@dataclass(frozen=True)
class DisplacementNotificationRecord:
    notification_id: str
    user_id: str
    reservation_date: str
    start_time: str
    end_time: str
    court_name: str
    displaced_by_apartment: str
    is_read: bool = False
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "notification_id": self.notification_id,
            "user_id": self.user_id,
            "reservation_date": self.reservation_date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "court_name": self.court_name,
            "displaced_by_apartment": self.displaced_by_apartment,
            "is_read": self.is_read,
            "created_at": _isoformat(self.created_at),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "DisplacementNotificationRecord":
        return DisplacementNotificationRecord(
            notification_id=str(data["notification_id"]),
            user_id=str(data["user_id"]),
            reservation_date=str(data["reservation_date"]),
            start_time=str(data["start_time"]),
            end_time=str(data["end_time"]),
            court_name=str(data.get("court_name") or ""),
            displaced_by_apartment=str(data.get("displaced_by_apartment") or ""),
            is_read=bool(data.get("is_read", False)),
            created_at=_optional_datetime(data.get("created_at")),
        )


@dataclass(frozen=True)
class DisplacementDetails:
    reservation_date: str
    start_time: str
    end_time: str
    court_name: str
    displaced_by_apartment: str


def weekday_number(target: date) -> int:
    """Return the day of week with Sunday as 0 and Saturday as 6."""
    return target.isoweekday() % 7


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat(timespec="seconds") if value is not None else None

