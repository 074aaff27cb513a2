from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable

from .booking import generate_slots, hours_until, parse_day, ranges_overlap, time_to_minutes
from .config import DEFAULT_BLOCKOUT_REASON, PROTECTION_WINDOW_HOURS
from .errors import Result, ValidationError, as_failure
from .models import (
    DEFAULT_SCHEDULE_CONFIG,
    PRIORITY_PROVISIONAL,
    AvailabilitySlot,
    Blockout,
    Reservation,
    ScheduleConfig,
)
from .ports import BlockoutStore, ReservationStore, ScheduleConfigStore
from .priority import apply_priority_conversion

logger = logging.getLogger(__name__)


class GetActiveApartmentReservations:
    """Future confirmed reservations of an apartment, without conversion applied."""

    def __init__(self, reservation_store: ReservationStore, clock: Callable[[], datetime] = datetime.now) -> None:
        self.reservation_store = reservation_store
        self.clock = clock

    async def execute(self, apartment: str) -> Result[list[Reservation]]:
        try:
            reservations = await self.reservation_store.find_by_apartment(apartment)
        except Exception as error:
            return as_failure(error, "Error loading apartment reservations")

        now = self.clock()
        try:
            active = [
                reservation
                for reservation in reservations
                if reservation.is_confirmed and reservation.starts_at > now
            ]
        except ValueError as error:
            return as_failure(error, "Stored reservation has an unreadable date or time")
        return Result.ok(active)


class GetAvailability:
    """Builds the slot grid of one court for one day.

    Reservations, blockouts and the schedule config are read concurrently.
    Only the reservation read is fatal; the other two fall back to an empty
    list and the default config. Each apartment's priority is recomputed from
    its global active set so a slot shows the apartment's current standing.
    """

    def __init__(
        self,
        reservation_store: ReservationStore,
        blockout_store: BlockoutStore,
        schedule_config_store: ScheduleConfigStore,
        get_active_reservations: GetActiveApartmentReservations,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.reservation_store = reservation_store
        self.blockout_store = blockout_store
        self.schedule_config_store = schedule_config_store
        self.get_active_reservations = get_active_reservations
        self.clock = clock

    async def execute(self, court_id: str, day: str) -> Result[list[AvailabilitySlot]]:
        try:
            parse_day(day)
        except ValueError:
            return Result.fail(ValidationError(f"Invalid date {day!r}, expected YYYY-MM-DD"))

        reservations_result, blockouts_result, config_result = await asyncio.gather(
            self.reservation_store.find_by_date_and_court(day, court_id),
            self.blockout_store.find_by_date_and_court(day, court_id),
            self.schedule_config_store.get_config(),
            return_exceptions=True,
        )

        if isinstance(reservations_result, BaseException):
            return as_failure(reservations_result, "Error loading reservations for availability")

        blockouts: list[Blockout]
        if isinstance(blockouts_result, BaseException):
            logger.warning("Blockouts unavailable for %s on %s: %s", court_id, day, blockouts_result)
            blockouts = []
        else:
            blockouts = blockouts_result

        config: ScheduleConfig
        if isinstance(config_result, BaseException):
            logger.warning("Schedule config unavailable, using defaults: %s", config_result)
            config = DEFAULT_SCHEDULE_CONFIG
        else:
            config = config_result or DEFAULT_SCHEDULE_CONFIG

        try:
            reservations = [reservation for reservation in reservations_result if reservation.is_confirmed]
            reservations = await self._apply_conversions(reservations)
            slots = self._build_grid(day, config, reservations, blockouts)
        except Exception as error:
            return as_failure(error, "Error computing availability")
        return Result.ok(slots)

    async def _apply_conversions(self, reservations: list[Reservation]) -> list[Reservation]:
        apartments = list(dict.fromkeys(reservation.apartment for reservation in reservations))
        for apartment in apartments:
            active_result = await self.get_active_reservations.execute(apartment)
            if not active_result.success:
                logger.debug("Skipping conversion for apartment %s: %s", apartment, active_result.error)
                continue

            converted = {
                reservation.reservation_id: reservation.priority
                for reservation in apply_priority_conversion(active_result.value or [])
            }
            reservations = [
                reservation.with_priority(converted[reservation.reservation_id])
                if reservation.apartment == apartment and reservation.reservation_id in converted
                else reservation
                for reservation in reservations
            ]
        return reservations

    def _build_grid(
        self,
        day: str,
        config: ScheduleConfig,
        reservations: list[Reservation],
        blockouts: list[Blockout],
    ) -> list[AvailabilitySlot]:
        now = self.clock()
        grid: list[AvailabilitySlot] = []

        for slot in generate_slots(day, config):
            slot_start = time_to_minutes(slot.start_time)
            slot_end = time_to_minutes(slot.end_time)

            blockout = next(
                (
                    item
                    for item in blockouts
                    if ranges_overlap(slot_start, slot_end, time_to_minutes(item.start_time), time_to_minutes(item.end_time))
                ),
                None,
            )
            if blockout is not None:
                grid.append(
                    AvailabilitySlot(
                        start_time=slot.start_time,
                        end_time=slot.end_time,
                        available=False,
                        blocked=True,
                        blockout_id=blockout.blockout_id,
                        blockout_reason=blockout.reason or DEFAULT_BLOCKOUT_REASON,
                        is_protected=True,
                    )
                )
                continue

            reservation = next(
                (
                    item
                    for item in reservations
                    if ranges_overlap(slot_start, slot_end, time_to_minutes(item.start_time), time_to_minutes(item.end_time))
                ),
                None,
            )
            if reservation is not None:
                is_protected = hours_until(day, slot.start_time, now) < PROTECTION_WINDOW_HOURS
                grid.append(
                    AvailabilitySlot(
                        start_time=slot.start_time,
                        end_time=slot.end_time,
                        available=False,
                        existing_reservation=reservation,
                        priority=reservation.priority,
                        is_displaceable=reservation.priority == PRIORITY_PROVISIONAL and not is_protected,
                        is_protected=is_protected,
                    )
                )
                continue

            grid.append(AvailabilitySlot(start_time=slot.start_time, end_time=slot.end_time, available=True))

        return grid
