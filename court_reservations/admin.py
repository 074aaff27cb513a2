from __future__ import annotations

import logging

from .booking import parse_clock_time
from .errors import ReservationNotFoundError, Result, ValidationError, as_failure
from .models import (
    DEFAULT_SCHEDULE_CONFIG,
    Blockout,
    ConversionInfo,
    DisplacementNotificationRecord,
    Reservation,
    ReservationStatistics,
    ScheduleConfig,
)
from .ports import BlockoutStore, DisplacementAuditStore, ReservationStore, ScheduleConfigStore

logger = logging.getLogger(__name__)


def validate_schedule_config(config: ScheduleConfig) -> ValidationError | None:
    """Return the first rule the config breaks, or None when it is valid."""
    try:
        if parse_clock_time(config.opening_time) >= parse_clock_time(config.closing_time):
            return ValidationError("Opening time must be before closing time")

        if bool(config.break_start) != bool(config.break_end):
            return ValidationError("Both break start and end are required")
        if config.break_start and config.break_end:
            if parse_clock_time(config.break_start) >= parse_clock_time(config.break_end):
                return ValidationError("Break start must be before break end")

        if config.slot_duration <= 0:
            return ValidationError("Slot duration must be positive")

        for days in (config.break_days_of_week, config.weekend_break_days_of_week):
            if days is not None and any(day < 0 or day > 6 for day in days):
                return ValidationError("Days of week must be between 0 (Sunday) and 6 (Saturday)")

        if config.differentiated:
            if not config.weekday_opening_time or not config.weekday_closing_time:
                return ValidationError("Weekday hours are required when using differentiated schedules")
            if not config.weekend_opening_time or not config.weekend_closing_time:
                return ValidationError("Weekend hours are required when using differentiated schedules")
            if parse_clock_time(config.weekday_opening_time) >= parse_clock_time(config.weekday_closing_time):
                return ValidationError("Weekday opening time must be before closing time")
            if parse_clock_time(config.weekend_opening_time) >= parse_clock_time(config.weekend_closing_time):
                return ValidationError("Weekend opening time must be before closing time")
            if bool(config.weekend_break_start) != bool(config.weekend_break_end):
                return ValidationError("Both weekend break start and end are required")
            if config.weekend_break_start and config.weekend_break_end:
                if parse_clock_time(config.weekend_break_start) >= parse_clock_time(config.weekend_break_end):
                    return ValidationError("Weekend break start must be before weekend break end")
    except ValueError:
        return ValidationError("Times must use the HH:MM format")
    return None


class GetScheduleConfig:
    def __init__(self, schedule_config_store: ScheduleConfigStore) -> None:
        self.schedule_config_store = schedule_config_store

    async def execute(self) -> Result[ScheduleConfig]:
        try:
            config = await self.schedule_config_store.get_config()
        except Exception as error:
            return as_failure(error, "Error loading schedule configuration")
        return Result.ok(config or DEFAULT_SCHEDULE_CONFIG)


class UpdateScheduleConfig:
    def __init__(self, schedule_config_store: ScheduleConfigStore) -> None:
        self.schedule_config_store = schedule_config_store

    async def execute(self, user_id: str, config: ScheduleConfig) -> Result[ScheduleConfig]:
        error = validate_schedule_config(config)
        if error is not None:
            return Result.fail(error)

        try:
            updated = await self.schedule_config_store.update_config(user_id, config)
        except Exception as storage_error:
            return as_failure(storage_error, "Error updating schedule configuration")

        logger.info("Schedule configuration updated by %s", user_id)
        return Result.ok(updated)


class GetConversionInfo:
    def __init__(self, reservation_store: ReservationStore) -> None:
        self.reservation_store = reservation_store

    async def execute(self, reservation_id: str) -> Result[ConversionInfo]:
        try:
            info = await self.reservation_store.get_conversion_info(reservation_id)
        except Exception as error:
            return as_failure(error, "Error loading conversion info")
        if info is None:
            return Result.fail(ReservationNotFoundError())
        return Result.ok(info)


class RecalculateApartmentConversions:
    def __init__(self, reservation_store: ReservationStore) -> None:
        self.reservation_store = reservation_store

    async def execute(self, apartment: str) -> Result[None]:
        try:
            await self.reservation_store.recalculate_conversions(apartment)
        except Exception as error:
            return as_failure(error, "Error recalculating conversions")
        return Result.ok()


class GetReservationStatistics:
    def __init__(self, reservation_store: ReservationStore) -> None:
        self.reservation_store = reservation_store

    async def execute(self) -> Result[ReservationStatistics]:
        try:
            return Result.ok(await self.reservation_store.get_statistics())
        except Exception as error:
            return as_failure(error, "Error loading statistics")


class GetReservationsByApartment:
    def __init__(self, reservation_store: ReservationStore) -> None:
        self.reservation_store = reservation_store

    async def execute(self, apartment: str) -> Result[list[Reservation]]:
        try:
            reservations = await self.reservation_store.find_by_apartment(apartment)
        except Exception as error:
            return as_failure(error, "Error loading apartment reservations")
        return Result.ok(sorted(reservations, key=lambda item: (item.date, item.start_time)))


class GetReservationsByDate:
    def __init__(self, reservation_store: ReservationStore) -> None:
        self.reservation_store = reservation_store

    async def execute(self, day: str) -> Result[list[Reservation]]:
        try:
            reservations = await self.reservation_store.find_by_date(day)
        except Exception as error:
            return as_failure(error, "Error loading reservations")
        return Result.ok(sorted(reservations, key=lambda item: (item.court_id, item.start_time)))


class GetAllReservations:
    def __init__(self, reservation_store: ReservationStore) -> None:
        self.reservation_store = reservation_store

    async def execute(self) -> Result[list[Reservation]]:
        try:
            return Result.ok(await self.reservation_store.find_all())
        except Exception as error:
            return as_failure(error, "Error loading reservations")


class GetBlockouts:
    def __init__(self, blockout_store: BlockoutStore) -> None:
        self.blockout_store = blockout_store

    async def execute(self, court_id: str, day: str) -> Result[list[Blockout]]:
        try:
            return Result.ok(await self.blockout_store.find_by_date_and_court(day, court_id))
        except Exception as error:
            return as_failure(error, "Error loading blockouts")


class DeleteBlockout:
    def __init__(self, blockout_store: BlockoutStore) -> None:
        self.blockout_store = blockout_store

    async def execute(self, blockout_id: str) -> Result[None]:
        try:
            await self.blockout_store.delete(blockout_id)
        except Exception as error:
            return as_failure(error, "Error deleting blockout")
        logger.info("Blockout %s deleted", blockout_id)
        return Result.ok()


class GetPendingDisplacementNotifications:
    def __init__(self, audit_store: DisplacementAuditStore) -> None:
        self.audit_store = audit_store

    async def execute(self, user_id: str) -> Result[list[DisplacementNotificationRecord]]:
        try:
            return Result.ok(await self.audit_store.find_unread_by_user(user_id))
        except Exception as error:
            return as_failure(error, "Error loading displacement notifications")


class MarkDisplacementNotificationsRead:
    def __init__(self, audit_store: DisplacementAuditStore) -> None:
        self.audit_store = audit_store

    async def execute(self, user_id: str) -> Result[None]:
        try:
            await self.audit_store.mark_all_as_read(user_id)
        except Exception as error:
            return as_failure(error, "Error marking displacement notifications as read")
        return Result.ok()
