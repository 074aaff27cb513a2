from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable

from .availability import GetActiveApartmentReservations, GetAvailability
from .background import BackgroundTasks
from .booking import hours_until, parse_clock_time, parse_day, time_to_minutes
from .config import MAX_DAYS_ADVANCE, MIN_HOURS_ADVANCE
from .errors import (
    AtomicPathUnsupportedError,
    DisplacementFailedError,
    DisplacementRequiredError,
    ReservationAlreadyCancelledError,
    ReservationError,
    ReservationLimitExceededError,
    ReservationNotFoundError,
    ReservationPermissionError,
    ReservationSlotUnavailableError,
    ReservationTooEarlyError,
    ReservationTooFarAheadError,
    Result,
    ValidationError,
    as_failure,
)
from .models import (
    PRIORITY_GUARANTEED,
    STATUS_CANCELLED,
    Blockout,
    CreateBlockoutData,
    CreateReservationData,
    DisplacementDetails,
    Reservation,
)
from .ports import (
    BlockoutStore,
    DisplacementAuditStore,
    DisplacementNotifier,
    LinkedEntityCancellation,
    ReservationStore,
)
from .priority import determine_reservation_priority

logger = logging.getLogger(__name__)


def spawn_conversion_recalculation(
    background: BackgroundTasks,
    reservation_store: ReservationStore,
    apartment: str,
) -> None:
    background.spawn(reservation_store.recalculate_conversions(apartment), f"recalculate-conversions:{apartment}")


class DisplaceReservation:
    """Cancels another apartment's provisional reservation and tells them about it."""

    def __init__(
        self,
        reservation_store: ReservationStore,
        audit_store: DisplacementAuditStore,
        notifier: DisplacementNotifier,
        linked_cancellation: LinkedEntityCancellation,
        background: BackgroundTasks,
    ) -> None:
        self.reservation_store = reservation_store
        self.audit_store = audit_store
        self.notifier = notifier
        self.linked_cancellation = linked_cancellation
        self.background = background

    async def execute(self, reservation: Reservation, displacing_apartment: str) -> Result[None]:
        try:
            await self.reservation_store.cancel(reservation.reservation_id)
        except Exception as error:
            logger.error("Could not cancel displaced reservation %s: %s", reservation.reservation_id, error)
            return Result.fail(DisplacementFailedError("Could not cancel displaced reservation", error))

        logger.info(
            "Reservation %s of apartment %s displaced by apartment %s",
            reservation.reservation_id,
            reservation.apartment,
            displacing_apartment,
        )
        await self.after_displaced(reservation, displacing_apartment)
        return Result.ok()

    async def after_displaced(self, reservation: Reservation, displacing_apartment: str) -> None:
        """Record the audit entry and fire the best-effort cascades."""
        try:
            await self.audit_store.insert(
                reservation.user_id,
                DisplacementDetails(
                    reservation_date=reservation.date,
                    start_time=reservation.start_time,
                    end_time=reservation.end_time,
                    court_name=reservation.court_name,
                    displaced_by_apartment=displacing_apartment,
                ),
            )
        except Exception as error:
            logger.warning("Could not record displacement of %s: %s", reservation.reservation_id, error)

        self.background.spawn(
            self.notifier.notify_apartment_displacement(
                reservation.apartment,
                reservation.date,
                reservation.start_time,
                reservation.end_time,
                reservation.court_name,
                displacing_apartment,
            ),
            f"notify-displacement:{reservation.reservation_id}",
        )
        self.background.spawn(
            self.linked_cancellation.cancel_by_reservation(reservation.reservation_id),
            f"cancel-linked:{reservation.reservation_id}",
        )
        spawn_conversion_recalculation(self.background, self.reservation_store, reservation.apartment)


class CancelReservation:
    def __init__(
        self,
        reservation_store: ReservationStore,
        linked_cancellation: LinkedEntityCancellation,
        background: BackgroundTasks,
    ) -> None:
        self.reservation_store = reservation_store
        self.linked_cancellation = linked_cancellation
        self.background = background

    async def execute(self, reservation_id: str, user_id: str, apartment: str | None = None) -> Result[Reservation]:
        """Cancel a reservation on behalf of a user.

        When ``apartment`` is given any member of that apartment may cancel;
        otherwise only the user who booked it may.
        """
        try:
            reservation = await self.reservation_store.find_by_id(reservation_id)
        except Exception as error:
            return as_failure(error, "Error loading reservation")

        if reservation is None:
            return Result.fail(ReservationNotFoundError())

        if apartment:
            if reservation.apartment != apartment:
                return Result.fail(
                    ReservationPermissionError("Can only cancel reservations from your own apartment")
                )
        elif reservation.user_id != user_id:
            return Result.fail(ReservationPermissionError("Can only cancel your own reservations"))

        if not reservation.is_confirmed:
            return Result.fail(ReservationAlreadyCancelledError())

        try:
            await self.reservation_store.cancel(reservation_id)
        except Exception as error:
            return as_failure(error, "Error cancelling reservation")

        logger.info("Reservation %s cancelled by user %s", reservation_id, user_id)
        self.background.spawn(
            self.linked_cancellation.cancel_by_reservation(reservation_id),
            f"cancel-linked:{reservation_id}",
        )
        spawn_conversion_recalculation(self.background, self.reservation_store, reservation.apartment)
        return Result.ok(replace(reservation, status=STATUS_CANCELLED))


class CreateReservation:
    """Creates a reservation, preferring the store's atomic procedure.

    The manual path decides everything first (timing, slot conflicts,
    displacement confirmation) and only then mutates: displacements, priority
    assignment and the insert. A request that would displace a provisional
    reservation stops with ``DisplacementRequiredError`` until the caller
    repeats it with ``force_displacement=True``.
    """

    def __init__(
        self,
        reservation_store: ReservationStore,
        get_availability: GetAvailability,
        get_active_reservations: GetActiveApartmentReservations,
        displace_reservation: DisplaceReservation,
        background: BackgroundTasks,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.reservation_store = reservation_store
        self.get_availability = get_availability
        self.get_active_reservations = get_active_reservations
        self.displace_reservation = displace_reservation
        self.background = background
        self.clock = clock

    async def execute(self, data: CreateReservationData) -> Result[Reservation]:
        try:
            if not data.force_displacement:
                try:
                    created = await self.reservation_store.create_atomic(data)
                except AtomicPathUnsupportedError:
                    logger.debug("Atomic creation unavailable, falling back to manual flow")
                except Exception as error:
                    return as_failure(error, "Error creating reservation")
                else:
                    self._after_created(created)
                    return Result.ok(created)

            return await self._manual_create(data)
        except Exception as error:
            logger.exception("Unexpected error creating reservation")
            return as_failure(error, "Unexpected error creating reservation")

    async def _manual_create(self, data: CreateReservationData) -> Result[Reservation]:
        if not data.apartment:
            return Result.fail(ValidationError("Apartment is required to create reservations"))

        try:
            start_minutes = parse_clock_time(data.start_time)
            end_minutes = parse_clock_time(data.end_time)
            hours_ahead = hours_until(parse_day(data.date), data.start_time, self.clock())
        except ValueError:
            return Result.fail(ValidationError("Reservation date must be YYYY-MM-DD and times HH:MM"))

        if start_minutes >= end_minutes:
            return Result.fail(ValidationError("Start time must be earlier than end time"))
        if hours_ahead < MIN_HOURS_ADVANCE:
            return Result.fail(
                ReservationTooEarlyError(f"Reservations must be made at least {MIN_HOURS_ADVANCE} hours in advance")
            )
        if hours_ahead / 24 > MAX_DAYS_ADVANCE:
            return Result.fail(ReservationTooFarAheadError(f"Cannot book more than {MAX_DAYS_ADVANCE} days in advance"))

        availability = await self.get_availability.execute(data.court_id, data.date)
        if not availability.success:
            return Result.fail(availability.error)

        target_slots = [
            slot
            for slot in availability.value or []
            if start_minutes <= time_to_minutes(slot.start_time) < end_minutes
        ]
        if not target_slots:
            return Result.fail(ReservationSlotUnavailableError("Requested time is outside of opening hours"))
        if target_slots[0].start_time != data.start_time or target_slots[-1].end_time != data.end_time:
            return Result.fail(ValidationError("Reservation must start and end on slot boundaries"))
        for previous, following in zip(target_slots, target_slots[1:]):
            if previous.end_time != following.start_time:
                return Result.fail(ReservationSlotUnavailableError("Requested time overlaps the break"))

        to_displace: dict[str, Reservation] = {}
        for slot in target_slots:
            if slot.available:
                continue
            if not slot.is_displaceable:
                return Result.fail(ReservationSlotUnavailableError(f"Slot {slot.start_time} is unavailable"))

            existing = slot.existing_reservation
            if existing is None:
                continue
            if existing.apartment == data.apartment:
                return Result.fail(
                    ReservationSlotUnavailableError("Your apartment already has a reservation at this time")
                )
            to_displace.setdefault(existing.reservation_id, existing)

        if to_displace and not data.force_displacement:
            conflict = next(iter(to_displace.values()))
            logger.debug("Request on %s %s needs displacement of %s", data.date, data.start_time, conflict.reservation_id)
            return Result.fail(DisplacementRequiredError(conflict))

        if to_displace:
            guard = await self._check_own_slot(data)
            if not guard.success:
                return Result.fail(guard.error)

            if len(to_displace) == 1:
                displaced = next(iter(to_displace.values()))
                atomic = await self._displace_and_create_atomic(displaced, data)
                if atomic is not None:
                    return atomic

            for reservation in to_displace.values():
                displaced_result = await self.displace_reservation.execute(reservation, data.apartment)
                if not displaced_result.success:
                    return Result.fail(displaced_result.error)
            # Taking over a provisional slot always yields a guaranteed reservation.
            priority = PRIORITY_GUARANTEED
        else:
            active = await self.get_active_reservations.execute(data.apartment)
            if not active.success:
                return Result.fail(active.error)
            determined = determine_reservation_priority(active.value or [])
            if determined is None:
                return Result.fail(
                    ReservationLimitExceededError("Apartment already holds the maximum number of active reservations")
                )
            priority = determined

        guard = await self._check_own_slot(data)
        if not guard.success:
            return Result.fail(guard.error)

        try:
            created = await self.reservation_store.insert(data, priority)
        except Exception as error:
            return as_failure(error, "Error inserting reservation")

        self._after_created(created)
        return Result.ok(created)

    async def _check_own_slot(self, data: CreateReservationData) -> Result[None]:
        active = await self.get_active_reservations.execute(data.apartment)
        if not active.success:
            return Result.fail(active.error)
        for reservation in active.value or []:
            if reservation.date == data.date and reservation.start_time == data.start_time:
                return Result.fail(
                    ReservationSlotUnavailableError("Your apartment already has a reservation at this time")
                )
        return Result.ok()

    async def _displace_and_create_atomic(
        self,
        displaced: Reservation,
        data: CreateReservationData,
    ) -> Result[Reservation] | None:
        try:
            created = await self.reservation_store.displace_and_create_atomic(displaced.reservation_id, data)
        except AtomicPathUnsupportedError:
            logger.debug("Atomic displacement unavailable, displacing %s manually", displaced.reservation_id)
            return None
        except ReservationError as error:
            return Result.fail(error)
        except Exception as error:
            return Result.fail(DisplacementFailedError("Could not displace reservation", error))

        logger.info(
            "Reservation %s of apartment %s displaced by apartment %s",
            displaced.reservation_id,
            displaced.apartment,
            data.apartment,
        )
        await self.displace_reservation.after_displaced(displaced, data.apartment)
        self._after_created(created)
        return Result.ok(created)

    def _after_created(self, created: Reservation) -> None:
        logger.info(
            "Reservation %s created for apartment %s on %s %s-%s (%s)",
            created.reservation_id,
            created.apartment,
            created.date,
            created.start_time,
            created.end_time,
            created.priority,
        )
        spawn_conversion_recalculation(self.background, self.reservation_store, created.apartment)


class CreateBlockout:
    """Admin blockout: cancels the reservations it covers, then records the range.

    Conflict resolution is best effort; if availability cannot be read the
    blockout is still recorded.
    """

    def __init__(
        self,
        blockout_store: BlockoutStore,
        get_availability: GetAvailability,
        cancel_reservation: CancelReservation,
        notifier: DisplacementNotifier,
        background: BackgroundTasks,
    ) -> None:
        self.blockout_store = blockout_store
        self.get_availability = get_availability
        self.cancel_reservation = cancel_reservation
        self.notifier = notifier
        self.background = background

    async def execute(self, data: CreateBlockoutData) -> Result[Blockout]:
        try:
            start_minutes = parse_clock_time(data.start_time)
            end_minutes = parse_clock_time(data.end_time)
            parse_day(data.date)
        except ValueError:
            return Result.fail(ValidationError("Blockout date must be YYYY-MM-DD and times HH:MM"))
        if start_minutes >= end_minutes:
            return Result.fail(ValidationError("Blockout start must be earlier than its end"))

        availability = await self.get_availability.execute(data.court_id, data.date)
        if availability.success:
            to_cancel: dict[str, Reservation] = {}
            for slot in availability.value or []:
                if slot.available or slot.blocked or slot.existing_reservation is None:
                    continue
                if start_minutes <= time_to_minutes(slot.start_time) < end_minutes:
                    to_cancel.setdefault(slot.existing_reservation.reservation_id, slot.existing_reservation)

            for reservation in to_cancel.values():
                cancelled = await self.cancel_reservation.execute(reservation.reservation_id, reservation.user_id)
                if not cancelled.success:
                    logger.warning(
                        "Blockout could not cancel reservation %s: %s",
                        reservation.reservation_id,
                        cancelled.error,
                    )
                    continue
                self.background.spawn(
                    self.notifier.notify_apartment_blockout_cancellation(
                        reservation.apartment,
                        reservation.date,
                        reservation.start_time,
                        reservation.end_time,
                        reservation.court_name,
                    ),
                    f"notify-blockout:{reservation.reservation_id}",
                )
        else:
            logger.warning(
                "Could not check conflicts for blockout on %s %s: %s",
                data.court_id,
                data.date,
                availability.error,
            )

        try:
            blockout = await self.blockout_store.insert(data)
        except Exception as error:
            return as_failure(error, "Error creating blockout")

        logger.info(
            "Blockout %s recorded on %s %s %s-%s",
            blockout.blockout_id,
            blockout.court_id,
            blockout.date,
            blockout.start_time,
            blockout.end_time,
        )
        return Result.ok(blockout)
